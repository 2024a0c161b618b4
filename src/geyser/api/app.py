# src/geyser/api/app.py
from __future__ import annotations

import os

from fastapi import FastAPI

from geyser.api.errors import geyser_error_handler
from geyser.api.middleware import RequestLogMiddleware
from geyser.api.routes import router
from geyser.errors import GeyserError
from geyser.geyser import TokenGeyser


def create_app(geyser: TokenGeyser) -> FastAPI:
    """Read-only HTTP view over one geyser.

    Mutating calls take the caller identity from the host, which this
    service does not have, so none of them are routed.
    """
    mode = os.environ.get("GEYSER_MODE", "prod").strip().lower()
    if mode == "prod":
        app = FastAPI(title="Geyser Query API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Geyser Query API")

    app.state.geyser = geyser
    app.add_middleware(RequestLogMiddleware)
    app.add_exception_handler(GeyserError, geyser_error_handler)
    app.include_router(router)
    return app
