# Axiom HTTP API layer.
# Created: 2026-10-06
#
# OAuth endpoints live at the root paths OAuth clients expect:
# /oauth/*, /api/oauth/* and /.well-known/*.
