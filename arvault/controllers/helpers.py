"""Shared helpers for API controllers."""

from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import quote

import pydantic
from litestar import Request
from litestar.background_tasks import BackgroundTask
from litestar.exceptions import SerializationException

from arvault.db.models.asset import Asset
from arvault.lib.exceptions import InvalidFormatError, ValidationError

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


async def parse_body(request: Request, model: type[ModelT]) -> ModelT:
    """Parse a JSON body into *model*, mapping failures to a 400."""
    try:
        body = await request.json()
    except SerializationException as exc:
        raise InvalidFormatError("Request body is not valid JSON") from exc
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise InvalidFormatError("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid request body",
            details=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ],
        ) from exc


def query_int(request: Request, name: str) -> int | None:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidFormatError(f"{name} must be an integer") from exc


def asset_url(key: str) -> str:
    return f"/asset/{quote(key)}"


def path_key(key: str) -> str:
    """Path parameters of type ``path`` keep their leading slash."""
    return key.lstrip("/")


def asset_to_dict(asset: Asset) -> dict[str, Any]:
    return {
        "key": asset.key,
        "url": asset_url(asset.key),
        "name": asset.display_name,
        "category": asset.category,
        "contentType": asset.content_type,
        "size": asset.size_bytes,
        "ownerId": str(asset.owner_id),
        "isPublic": asset.is_public,
        "isAdminUpload": asset.is_admin_upload,
        "uploadedByAdmin": str(asset.uploaded_by_admin) if asset.uploaded_by_admin else None,
        "companionKey": asset.companion_key,
        "createdAt": asset.created_at.isoformat() if asset.created_at else None,
    }


def post_upload_task(request: Request, key: str) -> BackgroundTask:
    """Companion linking and notifications, run after the response is sent."""
    coordinator = request.app.state.upload_coordinator
    return BackgroundTask(coordinator.run_post_upload, request.app.state.session_factory, key)
