# Tests for the OAuth audit trail.
# Created: 2026-10-11

import json
from urllib.parse import parse_qs, urlparse

import pytest
from conftest import REDIRECT_URI, identity_token

from axiom.api.oauth2.errors import InvalidGrant
from axiom.security.audit import AuditLogger, AuditSeverity


def _read(path):
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestAuditLogger:
    def test_log_oauth_event(self, tmp_path):
        audit = AuditLogger(log_path=tmp_path / "audit.jsonl")
        event_id = audit.log_oauth_event(
            action="client_registered",
            target="client:abc123",
            client_name="Agent",
        )
        assert event_id is not None

        (entry,) = _read(tmp_path / "audit.jsonl")
        assert entry["id"] == event_id
        assert entry["action"] == "client_registered"
        assert entry["target"] == "client:abc123"
        assert entry["actor"] == "anonymous"
        assert entry["severity"] == "info"
        assert entry["status"] == "success"
        assert entry["context"]["client_name"] == "Agent"

    def test_append_only(self, tmp_path):
        audit = AuditLogger(log_path=tmp_path / "audit.jsonl")
        audit.log_oauth_event(action="a", target="t")
        audit.log_oauth_event(action="b", target="t", severity=AuditSeverity.WARNING)
        entries = _read(tmp_path / "audit.jsonl")
        assert [e["action"] for e in entries] == ["a", "b"]
        assert entries[1]["severity"] == "warning"

    def test_unwritable_path_does_not_propagate(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        audit = AuditLogger(log_path=blocker / "audit.jsonl")
        assert audit.log_oauth_event(action="a", target="t")


class TestServerAuditTrail:
    def _flow(self, server, registered_client):
        redirect = server.approve(
            identity_token=identity_token(),
            client_id=registered_client.client_id,
            redirect_uri=REDIRECT_URI,
        )
        code = parse_qs(urlparse(redirect).query)["code"][0]
        result = server.exchange(
            grant_type="authorization_code",
            code=code,
            redirect_uri=REDIRECT_URI,
            client_id=registered_client.client_id,
        )
        return code, result["access_token"]

    def test_events_never_contain_secrets(self, server, registered_client, audit):
        code, token = self._flow(server, registered_client)
        actions = [e["action"] for e in audit.events]
        assert actions == ["client_registered", "code_issued", "token_issued"]
        dumped = json.dumps(audit.events)
        assert code not in dumped
        assert token not in dumped

    def test_replay_lost_race_is_audited(self, server, registered_client, audit, monkeypatch):
        redirect = server.approve(
            identity_token=identity_token(),
            client_id=registered_client.client_id,
            redirect_uri=REDIRECT_URI,
        )
        code = parse_qs(urlparse(redirect).query)["code"][0]
        # Simulate a concurrent redemption landing between lookup and swap.
        monkeypatch.setattr(server.storage, "mark_code_used", lambda c: False)

        with pytest.raises(InvalidGrant):
            server.exchange(
                grant_type="authorization_code",
                code=code,
                redirect_uri=REDIRECT_URI,
                client_id=registered_client.client_id,
            )
        replay = audit.events[-1]
        assert replay["action"] == "code_replay"
        assert replay["severity"] == "warning"
        assert replay["status"] == "block"
