# Tests for the axiom command line.
# Created: 2026-10-11

import json

import pytest

from axiom.__main__ import main
from axiom.api.oauth2.server import get_oauth_server, reset_oauth_server
from axiom.config import get_settings


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    import axiom.__main__ as cli
    import axiom.security.audit as audit_mod

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AXIOM_DATA_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("AXIOM_STORAGE_BACKEND", "sqlite")
    monkeypatch.delenv("AXIOM_AUTH_TOKEN_SECRET", raising=False)
    monkeypatch.setattr(cli, "setup_logging", lambda level="INFO": None)
    monkeypatch.setattr(audit_mod, "_audit_logger", None)
    get_settings.cache_clear()
    reset_oauth_server()
    yield tmp_path / "state"
    reset_oauth_server()
    get_settings.cache_clear()


def _run(*argv):
    # Each invocation is a fresh process in real life.
    reset_oauth_server()
    return main(list(argv))


class TestCLI:
    def test_register_client(self, cli_env, capsys):
        argv = ["register-client", "--name", "Agent", "--redirect-uri", "https://a.example/cb"]
        assert _run(*argv) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["client_name"] == "Agent"
        assert data["redirect_uris"] == ["https://a.example/cb"]

        reset_oauth_server()
        assert get_oauth_server().storage.get_client(data["client_id"]) is not None
        assert (cli_env / "audit.jsonl").exists()

    def test_identity_token_round_trip(self, cli_env, capsys):
        assert _run("add-user", "--user-id", "u9") == 0
        assert _run("identity-token", "--user-id", "u9", "--ttl", "60") == 0
        token = capsys.readouterr().out.strip()

        reset_oauth_server()
        assert get_oauth_server().identity.verify(token) == "u9"
        assert (cli_env / "auth_secret").exists()

    def test_identity_token_unknown_user(self, cli_env, capsys):
        assert _run("identity-token", "--user-id", "ghost") == 1
        assert capsys.readouterr().out == ""

    def test_cleanup(self, cli_env):
        assert _run("cleanup") == 0

    def test_requires_command(self, cli_env):
        with pytest.raises(SystemExit):
            main([])
