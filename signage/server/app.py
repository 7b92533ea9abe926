"""HTTP identity service backing the kiosk: identities, registration and ad listings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from signage.errors import InvalidPayload, StoreUnavailable
from signage.store.ads import URL_PREFIX, list_ad_images
from signage.store.identity_store import JsonFileIdentityStore

LOGGER = logging.getLogger("signage.server.app")


class SaveRequest(BaseModel):
    id: Optional[str] = None
    descriptor: Optional[List[float]] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(store: JsonFileIdentityStore, ads_root: Optional[Path] = None) -> FastAPI:
    """Build the service around ``store``; ads are served from ``ads_root`` when given."""
    app = FastAPI(title="Signage identity service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.state.store = store
    app.state.ads_root = Path(ads_root) if ads_root is not None else None

    @app.get("/users.json")
    def list_users():
        try:
            identities = store.load()
        except StoreUnavailable as exc:
            LOGGER.error("Error reading users: %s", exc)
            return _error(500, "Failed to read users")
        return [identity.to_dict() for identity in identities]

    @app.post("/register_new")
    def register_new():
        try:
            identity_id = store.allocate()
        except StoreUnavailable as exc:
            LOGGER.error("register error: %s", exc)
            return _error(500, "register failed")
        return {"id": identity_id}

    @app.post("/save")
    def save(payload: Optional[SaveRequest] = None):
        try:
            if payload is None:
                raise InvalidPayload("Invalid payload: empty body")
            result = store.append(payload.id, payload.descriptor)
        except InvalidPayload:
            return _error(400, "Invalid payload")
        except StoreUnavailable as exc:
            LOGGER.error("Save error: %s", exc)
            return _error(500, "save failed")
        return {"ok": result.ok, "usersCount": result.total_identity_count}

    @app.get("/ads/{category}")
    def list_ads(category: str, gender: Optional[str] = None):
        if app.state.ads_root is None:
            return {"images": []}
        try:
            images = list_ad_images(app.state.ads_root, category, gender)
        except OSError as exc:
            LOGGER.error("Error listing ads: %s", exc)
            return _error(500, "Failed to list ads")
        return {"images": images}

    if app.state.ads_root is not None and app.state.ads_root.is_dir():
        app.mount(URL_PREFIX, StaticFiles(directory=str(app.state.ads_root)), name="ads")

    LOGGER.info("Identity service ready (users=%s ads=%s)", store.path, app.state.ads_root)
    return app
