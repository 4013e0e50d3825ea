"""Asset read proxy and asset management routes."""

from __future__ import annotations

from litestar import Controller, Request, delete, get, post
from litestar.di import Provide
from litestar.response import Response, Stream
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.auth.access import AccessRequest, AccessResolver
from arvault.auth.guards import admin_guard, bearer_guard, provide_principal
from arvault.auth.tokens import Principal, create_asset_token
from arvault.controllers.helpers import (
    asset_to_dict,
    asset_url,
    parse_body,
    path_key,
    post_upload_task,
)
from arvault.db.services import asset_service
from arvault.lib import observability
from arvault.lib.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    MissingFieldError,
    NotFoundError,
    ValidationError,
)
from arvault.uploads.companion import companion_suggestions, lookup_companion
from arvault.uploads.keys import guess_content_type

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"


class AssetProxyController(Controller):
    """Serves stored bytes to whoever one of the access strategies admits."""

    path = "/asset"

    @get("/{key:path}")
    async def read_asset(self, request: Request, db_session: AsyncSession, key: str) -> Response:
        key = path_key(key)
        asset = await asset_service.get_asset_by_key(db_session, key)
        if asset is None:
            raise NotFoundError("Asset not found")

        resolver: AccessResolver = request.app.state.access_resolver
        decision = await resolver.resolve(
            db_session,
            asset,
            AccessRequest(
                key=key,
                authorization=request.headers.get("authorization"),
                referer=request.headers.get("referer"),
                url_token=request.query_params.get("t"),
            ),
        )
        if not decision.granted:
            observability.event("asset.denied", level="warn", asset_key=key)
            raise AuthenticationError("Unauthorized")

        store = request.app.state.object_store
        info = await store.head(key)
        if info is None:
            # Row without object: deleted mid-way or lost; the sweep cleans up
            raise NotFoundError("Asset not found")

        etag = f'"{info.etag}"'
        headers = {"cache-control": IMMUTABLE_CACHE, "etag": etag}
        if request.headers.get("if-none-match") == etag:
            return Response(content=b"", status_code=304, headers=headers)

        return Stream(
            store.stream(key),
            status_code=200,
            media_type=guess_content_type(key, info.content_type or asset.content_type),
            headers={**headers, "content-length": str(info.size)},
        )


class UserAssetController(Controller):
    path = "/api/user"
    guards = [bearer_guard]
    dependencies = {"principal": Provide(provide_principal)}

    @get("/assets")
    async def list_assets(self, db_session: AsyncSession, principal: Principal) -> Response:
        assets = await asset_service.list_visible_assets(
            db_session, principal.user_id, include_all=principal.is_admin
        )
        return Response(
            content={
                "assets": [asset_to_dict(a) for a in assets],
                "totalSize": sum(a.size_bytes for a in assets),
            },
            status_code=200,
        )

    @post("/upload")
    async def upload_direct(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        coordinator = request.app.state.upload_coordinator
        asset = await coordinator.upload_direct(
            db_session,
            principal,
            request.query_params.get("fileName"),
            request.headers.get("content-type"),
            await request.body(),
        )
        return Response(
            content={"success": True, "key": asset.key, "url": asset_url(asset.key)},
            status_code=201,
            background=post_upload_task(request, asset.key),
        )

    @get("/asset/signed-url")
    async def signed_url(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        key = request.query_params.get("key")
        if not key:
            raise MissingFieldError("key")
        asset = await asset_service.get_asset_by_key(db_session, key)
        if asset is None:
            raise NotFoundError("Asset not found")
        if not (principal.is_admin or asset.owner_id == principal.user_id or asset.is_admin_public):
            raise AccessDeniedError()

        ttl = request.app.state.settings.auth.asset_token_ttl
        token = create_asset_token(key, request.app.state.signing_secret, ttl)
        return Response(
            content={"url": f"{asset_url(key)}?t={token}", "expiresIn": ttl},
            status_code=200,
        )

    @get("/asset/companion")
    async def companion(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        key = request.query_params.get("key")
        if not key:
            raise MissingFieldError("key")
        asset = await asset_service.get_asset_by_key(db_session, key)
        if asset is None or asset.owner_id != principal.user_id:
            raise NotFoundError("Asset not found")

        threshold = request.app.state.settings.uploads.large_file_threshold
        found = await lookup_companion(db_session, asset, threshold)
        if found.companion_key:
            return Response(
                content={
                    "success": True,
                    "companionKey": found.companion_key,
                    "companionUrl": asset_url(found.companion_key),
                    "linked": found.linked,
                },
                status_code=200,
            )
        # Instructions, not an error: the model is fine without a companion
        return Response(
            content={
                "success": False,
                "requiresManualUpload": True,
                "size": asset.size_bytes,
                "largeFile": found.large_file,
                "suggestedName": found.suggested_name,
                "message": found.message,
            },
            status_code=200,
        )

    @get("/companion-suggestions")
    async def list_companion_suggestions(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        threshold = request.app.state.settings.uploads.large_file_threshold
        suggestions = await companion_suggestions(db_session, principal.user_id, threshold)
        return Response(
            content={
                "suggestions": [
                    {
                        "key": s.key,
                        "name": s.display_name,
                        "currentFormat": s.current_format,
                        "suggestedFormat": s.suggested_format,
                        "message": s.message,
                    }
                    for s in suggestions
                ]
            },
            status_code=200,
        )

    @delete("/asset/{key:path}", status_code=200)
    async def delete_asset(
        self, request: Request, db_session: AsyncSession, principal: Principal, key: str
    ) -> Response:
        asset = await asset_service.get_asset_by_key(db_session, path_key(key))
        if asset is None:
            raise NotFoundError("Asset not found")
        if asset.owner_id != principal.user_id:
            raise AccessDeniedError("Only the owner can delete this asset")
        await request.app.state.upload_coordinator.delete(db_session, asset)
        return Response(content={"success": True}, status_code=200)


class SharingBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str | None = None
    is_public: bool | None = Field(None, alias="isPublic")


class AdminAssetController(Controller):
    path = "/api/admin"
    guards = [bearer_guard, admin_guard]
    dependencies = {"principal": Provide(provide_principal)}

    @post("/upload")
    async def upload_direct(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        coordinator = request.app.state.upload_coordinator
        asset = await coordinator.upload_direct(
            db_session,
            principal,
            request.query_params.get("fileName"),
            request.headers.get("content-type"),
            await request.body(),
            as_admin=True,
        )
        return Response(
            content={"success": True, "key": asset.key, "url": asset_url(asset.key)},
            status_code=201,
            background=post_upload_task(request, asset.key),
        )

    @delete("/assets/{key:path}", status_code=200)
    async def delete_asset(self, request: Request, db_session: AsyncSession, key: str) -> Response:
        asset = await asset_service.get_asset_by_key(db_session, path_key(key))
        if asset is None:
            raise NotFoundError("Asset not found")
        await request.app.state.upload_coordinator.delete(db_session, asset)
        return Response(content={"success": True}, status_code=200)

    @post("/assets/sharing")
    async def update_sharing(self, request: Request, db_session: AsyncSession) -> Response:
        body = await parse_body(request, SharingBody)
        missing = [name for name, value in (("key", body.key), ("isPublic", body.is_public)) if value is None]
        if missing:
            raise MissingFieldError(*missing)
        asset = await asset_service.get_asset_by_key(db_session, body.key)
        if asset is None:
            raise NotFoundError("Asset not found")
        if not asset.is_admin_upload:
            raise ValidationError("Only admin uploads can be shared with everyone")
        asset = await asset_service.set_public(db_session, asset, body.is_public)
        return Response(content={"success": True, "asset": asset_to_dict(asset)}, status_code=200)
