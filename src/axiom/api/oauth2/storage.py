# OAuth2 client, code, token and user storage.
# Created: 2026-10-06
# Updated: 2026-10-19: durable backend moved from a JSON snapshot to SQLite.
#
# MemoryOAuthStorage keeps everything in one process (tests, storage_backend=memory).
# SqliteOAuthStorage is the durable backend: every call reads and writes the
# database directly, so several server workers and the operator CLI share
# one state. mark_code_used() is a compare-and-swap in both backends.

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, TypeVar

from axiom.api.oauth2.models import AccessToken, AuthorizationCode, OAuthClient, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OAuthStorageProtocol(Protocol):
    """Interface the authorization server needs from the record store.

    Implement this to back the server with a real datastore (SQL, a BaaS
    collection API, Redis...).
    """

    def get_client(self, client_id: str) -> OAuthClient | None: ...

    def create_client(self, client: OAuthClient) -> bool:
        """Insert *client*. Returns False if the client_id already exists."""
        ...

    def store_code(self, code: AuthorizationCode) -> None: ...

    def get_unused_code(self, code: str) -> AuthorizationCode | None: ...

    def mark_code_used(self, code: str) -> bool:
        """Atomically flip used false->true. Returns False if already used."""
        ...

    def store_token(self, token: AccessToken) -> None: ...

    def get_token(self, token: str) -> AccessToken | None: ...

    def get_user_token_key(self, user_id: str) -> str | None: ...


def decode_redirect_uris(raw: Any) -> list[str]:
    """Coerce a stored redirect_uris value into a plain list of strings.

    Older records may hold a JSON-encoded string or a list of character codes
    instead of a list of URIs.
    """
    if raw is None:
        return []
    if isinstance(raw, list):
        if raw and all(isinstance(item, int) for item in raw):
            return decode_redirect_uris("".join(chr(item) for item in raw))
        return [str(item) for item in raw]
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return [raw]
        if isinstance(parsed, list):
            return decode_redirect_uris(parsed)
        return [str(parsed)]
    return [str(raw)]


class MemoryOAuthStorage:
    """In-process OAuth2 storage."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._clients: dict[str, OAuthClient] = {}
        self._codes: dict[str, AuthorizationCode] = {}
        self._tokens: dict[str, AccessToken] = {}
        self._users: dict[str, str] = {}  # user_id -> token_key

    # -- clients ---------------------------------------------------------

    def get_client(self, client_id: str) -> OAuthClient | None:
        with self._lock:
            return self._clients.get(client_id)

    def create_client(self, client: OAuthClient) -> bool:
        with self._lock:
            if client.client_id in self._clients:
                return False
            self._clients[client.client_id] = client
            return True

    # -- authorization codes --------------------------------------------

    def store_code(self, code: AuthorizationCode) -> None:
        with self._lock:
            self._codes[code.code] = code

    def get_unused_code(self, code: str) -> AuthorizationCode | None:
        with self._lock:
            auth_code = self._codes.get(code)
            if auth_code is None or auth_code.used:
                return None
            return auth_code

    def mark_code_used(self, code: str) -> bool:
        with self._lock:
            auth_code = self._codes.get(code)
            if auth_code is None or auth_code.used:
                return False
            auth_code.used = True
            return True

    # -- access tokens ---------------------------------------------------

    def store_token(self, token: AccessToken) -> None:
        with self._lock:
            self._tokens[token.token] = token

    def get_token(self, token: str) -> AccessToken | None:
        with self._lock:
            return self._tokens.get(token)

    # -- users -----------------------------------------------------------

    def get_user_token_key(self, user_id: str) -> str | None:
        with self._lock:
            return self._users.get(user_id)

    def put_user(self, user_id: str, token_key: str) -> None:
        """Register or update the per-user signing key material."""
        with self._lock:
            self._users[user_id] = token_key

    def cleanup_expired(self, now: datetime | None = None) -> tuple[int, int]:
        """Remove expired codes and tokens. Returns (codes, tokens) removed.

        Operator-invoked only; validity checks never depend on it.
        """
        now = now or utcnow()
        with self._lock:
            expired_codes = [k for k, v in self._codes.items() if v.is_expired(now)]
            for k in expired_codes:
                del self._codes[k]
            expired_tokens = [k for k, v in self._tokens.items() if v.is_expired(now)]
            for k in expired_tokens:
                del self._tokens[k]
        return len(expired_codes), len(expired_tokens)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS clients (
    client_id TEXT PRIMARY KEY,
    client_name TEXT NOT NULL DEFAULT '',
    redirect_uris TEXT NOT NULL DEFAULT '[]',
    grant_types TEXT,
    response_types TEXT,
    token_endpoint_auth_method TEXT,
    scope TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS codes (
    code TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    redirect_uri TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    scope TEXT NOT NULL DEFAULT '',
    code_challenge TEXT NOT NULL DEFAULT '',
    code_challenge_method TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    used INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS tokens (
    token TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    scope TEXT NOT NULL DEFAULT 'read',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    token_key TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_codes_expires_at ON codes(expires_at);
CREATE INDEX IF NOT EXISTS idx_tokens_expires_at ON tokens(expires_at);
"""


def _ts(value: datetime) -> str:
    # Fixed-width UTC text so that SQL string comparison orders by time.
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _dt(value: str | None) -> datetime:
    return datetime.fromisoformat(value) if value else utcnow()


def _client_from_row(row: sqlite3.Row) -> OAuthClient:
    return OAuthClient(
        client_id=row["client_id"],
        client_name=row["client_name"] or "",
        redirect_uris=decode_redirect_uris(row["redirect_uris"]),
        grant_types=json.loads(row["grant_types"] or "null") or ["authorization_code"],
        response_types=json.loads(row["response_types"] or "null") or ["code"],
        token_endpoint_auth_method=row["token_endpoint_auth_method"] or "none",
        scope=row["scope"] or "read",
        created_at=_dt(row["created_at"]),
    )


def _code_from_row(row: sqlite3.Row) -> AuthorizationCode:
    return AuthorizationCode(
        code=row["code"],
        client_id=row["client_id"],
        user_id=row["user_id"],
        redirect_uri=row["redirect_uri"],
        expires_at=_dt(row["expires_at"]),
        scope=row["scope"],
        code_challenge=row["code_challenge"],
        code_challenge_method=row["code_challenge_method"],
        created_at=_dt(row["created_at"]),
        used=bool(row["used"]),
    )


def _token_from_row(row: sqlite3.Row) -> AccessToken:
    return AccessToken(
        token=row["token"],
        client_id=row["client_id"],
        user_id=row["user_id"],
        expires_at=_dt(row["expires_at"]),
        scope=row["scope"],
        created_at=_dt(row["created_at"]),
    )


class SqliteOAuthStorage:
    """SQLite-backed OAuth2 storage shared by every process using *path*.

    A database that cannot be opened raises ``sqlite3.DatabaseError`` and is
    left untouched on disk.
    """

    def __init__(self, path: Path | None = None, timeout: float = 10.0):
        if path is None:
            from axiom.config import get_config_dir

            path = get_config_dir() / "oauth.db"
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        # Autocommit: every statement is its own transaction.
        self._conn = sqlite3.connect(
            str(self.path),
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except sqlite3.DatabaseError:
            self._conn.close()
            logger.critical("Cannot open OAuth database %s; refusing to start", self.path)
            raise
        try:
            self.path.chmod(0o600)
        except OSError as e:
            logger.warning("Could not restrict permissions on %s: %s", self.path, e)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._conn.execute(sql, params)

    def _fetch_one(
        self, sql: str, key: str, convert: Callable[[sqlite3.Row], T]
    ) -> T | None:
        with self._lock:
            row = self._conn.execute(sql, (key,)).fetchone()
        if row is None:
            return None
        try:
            return convert(row)
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("Ignoring malformed OAuth record %s…: %s", key[:6], exc)
            return None

    # -- clients ---------------------------------------------------------

    def get_client(self, client_id: str) -> OAuthClient | None:
        return self._fetch_one(
            "SELECT * FROM clients WHERE client_id = ?", client_id, _client_from_row
        )

    def create_client(self, client: OAuthClient) -> bool:
        try:
            self._execute(
                "INSERT INTO clients (client_id, client_name, redirect_uris, grant_types,"
                " response_types, token_endpoint_auth_method, scope, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    client.client_id,
                    client.client_name,
                    json.dumps(list(client.redirect_uris)),
                    json.dumps(list(client.grant_types)),
                    json.dumps(list(client.response_types)),
                    client.token_endpoint_auth_method,
                    client.scope,
                    _ts(client.created_at),
                ),
            )
        except sqlite3.IntegrityError:
            return False
        return True

    # -- authorization codes --------------------------------------------

    def store_code(self, code: AuthorizationCode) -> None:
        self._execute(
            "INSERT OR REPLACE INTO codes (code, client_id, user_id, redirect_uri,"
            " expires_at, scope, code_challenge, code_challenge_method, created_at, used)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                code.code,
                code.client_id,
                code.user_id,
                code.redirect_uri,
                _ts(code.expires_at),
                code.scope,
                code.code_challenge,
                code.code_challenge_method,
                _ts(code.created_at),
                int(code.used),
            ),
        )

    def get_unused_code(self, code: str) -> AuthorizationCode | None:
        return self._fetch_one(
            "SELECT * FROM codes WHERE code = ? AND used = 0", code, _code_from_row
        )

    def mark_code_used(self, code: str) -> bool:
        cursor = self._execute("UPDATE codes SET used = 1 WHERE code = ? AND used = 0", (code,))
        return cursor.rowcount == 1

    # -- access tokens ---------------------------------------------------

    def store_token(self, token: AccessToken) -> None:
        self._execute(
            "INSERT OR REPLACE INTO tokens (token, client_id, user_id, expires_at, scope,"
            " created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                token.token,
                token.client_id,
                token.user_id,
                _ts(token.expires_at),
                token.scope,
                _ts(token.created_at),
            ),
        )

    def get_token(self, token: str) -> AccessToken | None:
        return self._fetch_one("SELECT * FROM tokens WHERE token = ?", token, _token_from_row)

    # -- users -----------------------------------------------------------

    def get_user_token_key(self, user_id: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT token_key FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row["token_key"] if row else None

    def put_user(self, user_id: str, token_key: str) -> None:
        """Register or update the per-user signing key material."""
        self._execute(
            "INSERT OR REPLACE INTO users (user_id, token_key) VALUES (?, ?)",
            (user_id, token_key),
        )

    def cleanup_expired(self, now: datetime | None = None) -> tuple[int, int]:
        """Remove expired codes and tokens. Returns (codes, tokens) removed."""
        cutoff = _ts(now or utcnow())
        codes = self._execute("DELETE FROM codes WHERE expires_at <= ?", (cutoff,)).rowcount
        tokens = self._execute("DELETE FROM tokens WHERE expires_at <= ?", (cutoff,)).rowcount
        return codes, tokens
