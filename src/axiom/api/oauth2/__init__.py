# OAuth 2.0 authorization server core.
# Created: 2026-10-06
