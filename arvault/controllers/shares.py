"""Dashboard share routes."""

from __future__ import annotations

from uuid import UUID

from litestar import Controller, Request, delete, get, post
from litestar.di import Provide
from litestar.response import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from arvault.auth.guards import bearer_guard, provide_principal
from arvault.auth.tokens import Principal
from arvault.controllers.helpers import parse_body
from arvault.db.models.share import Share
from arvault.db.services import share_service, user_service
from arvault.lib.exceptions import AccessDeniedError, NotFoundError, ShareExpiredError


class CreateShareBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(None, max_length=255)
    description: str | None = None
    expires_in_days: int | None = Field(None, alias="expiresInDays", ge=1, le=3650)


def share_to_dict(share: Share, include_content: bool = False) -> dict:
    data = {
        "id": str(share.id),
        "url": f"/share/{share.id}",
        "title": share.title,
        "description": share.description,
        "createdAt": share.created_at.isoformat() if share.created_at else None,
        "expiresAt": share.expires_at.isoformat() if share.expires_at else None,
    }
    if include_content:
        data["content"] = share.content_snapshot
    return data


class UserShareController(Controller):
    path = "/api/user/shares"
    guards = [bearer_guard]
    dependencies = {"principal": Provide(provide_principal)}

    @post("/")
    async def create_share(
        self, request: Request, db_session: AsyncSession, principal: Principal
    ) -> Response:
        body = await parse_body(request, CreateShareBody)
        owner = await user_service.get_user_by_id(db_session, principal.user_id)
        if owner is None:
            raise NotFoundError("User not found")
        share = await share_service.create_share(
            db_session,
            owner,
            title=body.title,
            description=body.description,
            expires_in_days=body.expires_in_days,
        )
        return Response(content=share_to_dict(share), status_code=201)

    @get("/")
    async def list_shares(self, db_session: AsyncSession, principal: Principal) -> Response:
        shares = await share_service.list_shares(db_session, principal.user_id)
        return Response(content={"shares": [share_to_dict(s) for s in shares]}, status_code=200)

    @delete("/{share_id:uuid}", status_code=200)
    async def delete_share(
        self, db_session: AsyncSession, principal: Principal, share_id: UUID
    ) -> Response:
        share = await share_service.get_share(db_session, share_id)
        if share is None:
            raise NotFoundError("Share not found")
        if share.owner_id != principal.user_id:
            raise AccessDeniedError("Only the owner can delete this share")
        await share_service.delete_share(db_session, share)
        return Response(content={"success": True}, status_code=200)


class PublicShareController(Controller):
    path = "/api/share"

    @get("/{share_id:uuid}")
    async def get_share(self, db_session: AsyncSession, share_id: UUID) -> Response:
        share = await share_service.get_share(db_session, share_id)
        if share is None:
            raise NotFoundError("Share not found")
        if share.is_expired():
            raise ShareExpiredError()
        return Response(content=share_to_dict(share, include_content=True), status_code=200)
