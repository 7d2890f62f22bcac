# API router aggregation.
# Created: 2026-10-08
#
# mount_routers(app) registers every domain router at the paths OAuth clients
# expect (/oauth/*, /api/oauth/*, /.well-known/*), without a version prefix.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# (module_path, attr_name, tag)
_ROUTERS: list[tuple[str, str, str]] = [
    ("axiom.api.routes.oauth2", "router", "OAuth2"),
    ("axiom.api.routes.discovery", "router", "Discovery"),
]


def mount_routers(app: FastAPI) -> None:
    """Mount all domain routers on *app*.

    Import errors propagate: an authorization server missing its token
    endpoint must not start.
    """
    for module_path, attr_name, tag in _ROUTERS:
        mod = importlib.import_module(module_path)
        app.include_router(getattr(mod, attr_name))
        logger.debug("Mounted router: %s (%s)", module_path, tag)
