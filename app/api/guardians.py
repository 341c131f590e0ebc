"""Guardian API: invitations, access management, and owner notifications."""

from fastapi import APIRouter, Depends

from app.api.api_helpers import unwrap
from app.core import guardian_service
from app.core.auth_middleware import AuthContext, get_current_user
from app.core.schemas_guardians import (
    DocumentAccessRequest,
    GuardianUpdate,
    InvitationTokenRequest,
    InviteGuardianRequest,
)
from app.core.schemas_notifications import MarkedRead, Notification, UnreadCount
from app.core.service_result import ServiceResult
from app.db import notifications as notifications_db

router = APIRouter(prefix="/guardians")


@router.post("", response_model=ServiceResult, status_code=201)
async def invite_guardian(
    request: InviteGuardianRequest, auth: AuthContext = Depends(get_current_user)
):
    return unwrap(await guardian_service.invite_guardian(auth.user_id, request))


@router.get("", response_model=ServiceResult)
async def get_guardians(auth: AuthContext = Depends(get_current_user)):
    return unwrap(guardian_service.get_guardians(auth.user_id))


@router.get("/emergency", response_model=ServiceResult)
async def get_emergency_guardians(auth: AuthContext = Depends(get_current_user)):
    """Accepted guardians allowed to trigger the emergency protocol, by priority."""
    return unwrap(guardian_service.get_emergency_guardians(auth.user_id))


@router.get("/notifications", response_model=list[Notification])
async def get_guardian_notifications(
    unread_only: bool = False, limit: int = 20, auth: AuthContext = Depends(get_current_user)
):
    return notifications_db.list_notifications(auth.user_id, unread_only=unread_only, limit=limit)


@router.get("/notifications/unread-count", response_model=UnreadCount)
async def get_unread_count(auth: AuthContext = Depends(get_current_user)):
    return UnreadCount(count=notifications_db.count_unread(auth.user_id))


@router.post("/notifications/read", response_model=MarkedRead)
async def mark_all_notifications_read(auth: AuthContext = Depends(get_current_user)):
    return MarkedRead(updated=notifications_db.mark_read(auth.user_id))


@router.post("/notifications/{notification_id}/read", response_model=MarkedRead)
async def mark_notification_read(
    notification_id: str, auth: AuthContext = Depends(get_current_user)
):
    return MarkedRead(updated=notifications_db.mark_read(auth.user_id, notification_id))


# Invitee endpoints authenticate with the invitation token itself


@router.get("/invitations/{token}", response_model=ServiceResult)
async def get_invitation_details(token: str):
    return unwrap(guardian_service.get_invitation_details(token))


@router.post("/invitations/accept", response_model=ServiceResult)
async def accept_invitation(request: InvitationTokenRequest):
    return unwrap(await guardian_service.accept_invitation(request.token))


@router.post("/invitations/decline", response_model=ServiceResult)
async def decline_invitation(request: InvitationTokenRequest):
    return unwrap(await guardian_service.decline_invitation(request.token))


@router.patch("/{guardian_id}", response_model=ServiceResult)
async def update_guardian(
    guardian_id: str, updates: GuardianUpdate, auth: AuthContext = Depends(get_current_user)
):
    return unwrap(await guardian_service.update_guardian(guardian_id, auth.user_id, updates))


@router.post("/{guardian_id}/revoke", response_model=ServiceResult)
async def revoke_guardian(guardian_id: str, auth: AuthContext = Depends(get_current_user)):
    return unwrap(await guardian_service.revoke_guardian(guardian_id, auth.user_id))


@router.delete("/{guardian_id}", response_model=ServiceResult)
async def delete_guardian(guardian_id: str, auth: AuthContext = Depends(get_current_user)):
    return unwrap(await guardian_service.delete_guardian(guardian_id, auth.user_id))


@router.post("/{guardian_id}/resend", response_model=ServiceResult)
async def resend_invitation(guardian_id: str, auth: AuthContext = Depends(get_current_user)):
    return unwrap(guardian_service.resend_invitation(guardian_id, auth.user_id))


@router.post("/{guardian_id}/documents", response_model=ServiceResult)
async def grant_document_access(
    guardian_id: str,
    request: DocumentAccessRequest,
    auth: AuthContext = Depends(get_current_user),
):
    return unwrap(
        guardian_service.grant_document_access(guardian_id, auth.user_id, request.document_ids)
    )


@router.post("/{guardian_id}/documents/revoke", response_model=ServiceResult)
async def revoke_document_access(
    guardian_id: str,
    request: DocumentAccessRequest,
    auth: AuthContext = Depends(get_current_user),
):
    return unwrap(
        guardian_service.revoke_document_access(guardian_id, auth.user_id, request.document_ids)
    )
