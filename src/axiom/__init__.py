# Axiom: OAuth 2.0 authorization server for the Axiom collaboration app.
# Created: 2026-10-06

__version__ = "0.1.0"
