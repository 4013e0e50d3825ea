"""Multipart upload routes.

User and admin variants share one contract; the admin variant may upload
on behalf of another user, publish to everyone and bypass quotas.
"""

from __future__ import annotations

from uuid import UUID

from litestar import Controller, Request, delete, post, put
from litestar.di import Provide
from litestar.response import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.auth.guards import admin_guard, bearer_guard, provide_principal
from arvault.auth.tokens import Principal
from arvault.controllers.helpers import asset_url, parse_body, post_upload_task, query_int
from arvault.lib.storage import UploadedPart
from arvault.uploads.coordinator import CompletionRequest, UploadSessionCoordinator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateUploadBody(_CamelModel):
    file_name: str | None = Field(None, alias="fileName")
    mime_type: str | None = Field(None, alias="mimeType")


class PartBody(_CamelModel):
    part_number: int = Field(alias="partNumber")
    etag: str


class CompleteUploadBody(_CamelModel):
    key: str | None = None
    upload_id: str | None = Field(None, alias="uploadId")
    parts: list[PartBody] = Field(default_factory=list)
    original_name: str | None = Field(None, alias="originalName")
    size: int | None = None


class AdminCompleteUploadBody(CompleteUploadBody):
    owner_user_id: UUID | None = Field(None, alias="ownerUserId")
    is_public: bool = Field(False, alias="isPublic")
    increase_user_limit: bool = Field(False, alias="increaseUserLimit")


def _coordinator(request: Request) -> UploadSessionCoordinator:
    return request.app.state.upload_coordinator


class MultipartUploadRoutes(Controller):
    """Route handlers shared by the user and admin upload controllers."""

    as_admin = False
    complete_body: type[CompleteUploadBody] = CompleteUploadBody
    dependencies = {"principal": Provide(provide_principal)}

    @post("/mpu/create")
    async def create_upload(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        body = await parse_body(request, CreateUploadBody)
        session = await _coordinator(request).create(
            db_session, principal, body.file_name, body.mime_type, as_admin=self.as_admin
        )
        return Response(
            content={
                "key": session.key,
                "uploadId": session.upload_id,
                "partSize": request.app.state.settings.uploads.part_size,
            },
            status_code=200,
        )

    @put("/mpu/uploadpart")
    async def upload_part(self, request: Request, principal: Principal) -> Response:
        data = await request.body()
        etag = await _coordinator(request).upload_part(
            principal,
            request.query_params.get("key"),
            request.query_params.get("uploadId"),
            query_int(request, "partNumber"),
            data,
        )
        return Response(content={"etag": etag}, status_code=200)

    @post("/mpu/complete")
    async def complete_upload(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        body = await parse_body(request, self.complete_body)
        completion = CompletionRequest(
            key=body.key,
            upload_id=body.upload_id,
            parts=[UploadedPart(p.part_number, p.etag) for p in body.parts],
            original_name=body.original_name,
            declared_size=body.size,
        )
        if isinstance(body, AdminCompleteUploadBody):
            completion.owner_id = body.owner_user_id
            completion.is_public = body.is_public
            completion.increase_user_limit = body.increase_user_limit

        asset = await _coordinator(request).complete(
            db_session, principal, completion, as_admin=self.as_admin
        )
        return Response(
            content={"success": True, "key": asset.key, "url": asset_url(asset.key)},
            status_code=200,
            background=post_upload_task(request, asset.key),
        )

    @delete("/mpu/abort", status_code=200)
    async def abort_upload(self, request: Request, principal: Principal) -> Response:
        await _coordinator(request).abort(
            principal, request.query_params.get("key"), request.query_params.get("uploadId")
        )
        return Response(content={"success": True}, status_code=200)


class UserUploadController(MultipartUploadRoutes):
    path = "/api/user"
    guards = [bearer_guard]


class AdminUploadController(MultipartUploadRoutes):
    path = "/api/admin"
    guards = [bearer_guard, admin_guard]
    as_admin = True
    complete_body = AdminCompleteUploadBody
