"""Axiom authorization server entry point.

Changes:
  - 2026-10-10: Added `cleanup` subcommand (operator-run reaper for expired codes/tokens).
  - 2026-10-09: Added `register-client`, `add-user` and `identity-token` admin subcommands.
  - 2026-10-09: Rich console logging.
"""

from __future__ import annotations

import argparse
import json
import logging
import secrets
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from axiom.config import get_settings
from axiom.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("axiom-oauth")
    except PackageNotFoundError:
        from axiom import __version__

        return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="axiom",
        description="Axiom OAuth 2.0 authorization server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  axiom serve                                   Start the server
  axiom serve --dev                             Start with auto-reload
  axiom register-client --name ChatGPT --redirect-uri https://chat.openai.com/aip/cb
  axiom add-user --user-id u1                   Register a user's token key
  axiom identity-token --user-id u1             Mint a session token (development)
  axiom cleanup                                 Delete expired codes and tokens
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the authorization server")
    serve.add_argument("--host", type=str, default=None, help="Bind address")
    serve.add_argument("--port", "-p", type=int, default=None, help="Bind port")
    serve.add_argument("--dev", action="store_true", help="Development mode with auto-reload")

    register = sub.add_parser("register-client", help="Register an OAuth client")
    register.add_argument("--name", required=True, help="Client display name")
    register.add_argument(
        "--redirect-uri",
        dest="redirect_uris",
        action="append",
        required=True,
        help="Allowed redirect URI (repeatable)",
    )

    add_user = sub.add_parser("add-user", help="Register a user's token signing key")
    add_user.add_argument("--user-id", required=True)
    add_user.add_argument("--token-key", default=None, help="Defaults to a random key")

    identity = sub.add_parser("identity-token", help="Mint a session token for a user")
    identity.add_argument("--user-id", required=True)
    identity.add_argument("--ttl", type=int, default=3600, help="Lifetime in seconds")

    sub.add_parser("cleanup", help="Delete expired authorization codes and access tokens")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(level=settings.log_level)

    if args.command == "serve":
        from axiom.api.serve import run_api_server

        try:
            run_api_server(
                host=args.host or settings.host,
                port=args.port or settings.port,
                dev=args.dev,
            )
        except KeyboardInterrupt:
            logger.info("Axiom stopped.")
        return 0

    from axiom.api.oauth2.server import get_oauth_server

    server = get_oauth_server()

    if args.command == "register-client":
        client = server.register_client(client_name=args.name, redirect_uris=args.redirect_uris)
        print(json.dumps(client.to_registration_response(), indent=2))
    elif args.command == "add-user":
        token_key = args.token_key or secrets.token_urlsafe(32)
        server.storage.put_user(args.user_id, token_key)
        logger.info("Stored token key for user %s", args.user_id)
    elif args.command == "identity-token":
        from axiom.api.oauth2.identity import create_identity_token

        token_key = server.storage.get_user_token_key(args.user_id)
        if token_key is None:
            logger.error("Unknown user %s (run add-user first)", args.user_id)
            return 1
        print(create_identity_token(args.user_id, token_key, server.identity.secret, args.ttl))
    elif args.command == "cleanup":
        codes, tokens = server.storage.cleanup_expired()
        logger.info("Removed %d expired codes and %d expired tokens", codes, tokens)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
