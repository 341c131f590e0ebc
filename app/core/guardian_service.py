"""
Guardian management.

Guardians are invited by token, accept or decline, and can later be
soft-revoked. Every call returns a ServiceResult instead of raising, and
lifecycle changes are published as webhook events scoped to the owner.
"""

import secrets
from datetime import datetime, timedelta
from typing import Any

from app.core.analytics import track_server_event
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_guardians import (
    AccessLevel,
    FamilyOwner,
    Guardian,
    GuardianPermissions,
    GuardianUpdate,
    InvitationDetails,
    InviteGuardianRequest,
)
from app.core.service_result import ServiceResult
from app.db import guardians as guardians_db
from app.db.notifications import create_notification
from app.db.profiles import get_account_profile
from app.db.supabase_client import parse_ts, utc_now
from app.services.webhook_system import get_webhook_system

logger = get_logger(__name__)

# None means unlimited
TIER_GUARDIAN_LIMITS: dict[str, int | None] = {
    "free": 1,
    "premium": 5,
    "enterprise": None,
}


def guardian_limit(tier: str) -> int | None:
    return TIER_GUARDIAN_LIMITS.get(tier, TIER_GUARDIAN_LIMITS["free"])


def default_permissions(access_level: AccessLevel) -> GuardianPermissions:
    if access_level == "full":
        return GuardianPermissions(
            view_documents=True,
            download_documents=True,
            trigger_emergency_protocol=True,
            access_emergency_contacts=True,
            view_family_tree=True,
            receive_milestone_notifications=True,
        )
    if access_level == "standard":
        return GuardianPermissions(
            view_documents=True,
            trigger_emergency_protocol=True,
            access_emergency_contacts=True,
            view_family_tree=True,
        )
    if access_level == "limited":
        return GuardianPermissions(view_documents=True, access_emergency_contacts=True)
    return GuardianPermissions(trigger_emergency_protocol=True, access_emergency_contacts=True)


def _new_invitation(now: datetime) -> dict[str, str]:
    expires = now + timedelta(days=get_settings().GUARDIAN_INVITATION_DAYS)
    return {
        "invitation_token": secrets.token_urlsafe(32),
        "token_expires_at": expires.isoformat(),
    }


def _is_expired(row: dict, now: datetime) -> bool:
    expires = row.get("token_expires_at")
    return expires is not None and now > parse_ts(expires)


def _public(row: dict) -> dict[str, Any]:
    """Guardian fields safe to put in webhook payloads."""
    return {
        "guardian_id": row["id"],
        "guardian_name": row.get("guardian_name"),
        "relationship": row.get("relationship"),
        "access_level": row.get("access_level"),
        "invitation_status": row.get("invitation_status"),
    }


async def _emit(user_id: str, event_type: str, payload: dict[str, Any]) -> None:
    # The guardian write has already committed; a webhook failure must not undo the response
    try:
        result = await get_webhook_system().trigger_webhook_event(
            user_id, event_type, payload, source="guardians"
        )
    except Exception:
        logger.exception(f"Webhook event {event_type} for user {user_id} raised")
        return
    if not result.success:
        logger.warning(f"Webhook event {event_type} for user {user_id} failed: {result.error}")


def _send_invitation(row: dict) -> None:
    # Delivery of the email itself is handled by the notification pipeline downstream
    logger.info(
        f"Guardian invitation issued for {row['guardian_email']}",
        extra={"extra_data": {"guardian_id": row["id"], "expires": row.get("token_expires_at")}},
    )


def _check_guardian_limit(user_id: str) -> str | None:
    """Return an error message when the owner's tier has no free guardian slots."""
    count = guardians_db.count_active_guardians(user_id)
    profile = get_account_profile(user_id) or {}
    tier = profile.get("subscription_tier") or "free"
    limit = guardian_limit(tier)
    if limit is not None and count >= limit:
        return f"Guardian limit reached for {tier} tier ({limit} guardians)"
    return None


# =========================
# Owner operations
# =========================


async def invite_guardian(
    user_id: str, request: InviteGuardianRequest, now: datetime | None = None
) -> ServiceResult:
    now = now or utc_now()
    try:
        limit_error = _check_guardian_limit(user_id)
        if limit_error:
            return ServiceResult.fail(limit_error)

        row = guardians_db.create_guardian(
            {
                **request.model_dump(mode="json"),
                "user_id": user_id,
                "permissions": default_permissions(request.access_level).model_dump(),
                "invitation_status": "pending",
                "accessible_documents": [],
                **_new_invitation(now),
            }
        )
    except Exception as e:
        logger.exception(f"Failed to invite guardian for user {user_id}")
        return ServiceResult.fail(str(e))

    _send_invitation(row)
    track_server_event(user_id, "guardian_invited", {"access_level": request.access_level})
    await _emit(user_id, "guardian.invited", _public(row))
    return ServiceResult.ok(Guardian.model_validate(row))


def get_guardians(user_id: str) -> ServiceResult:
    try:
        rows = guardians_db.list_guardians(user_id)
    except Exception as e:
        logger.exception(f"Failed to fetch guardians for user {user_id}")
        return ServiceResult.fail(str(e))
    return ServiceResult.ok([Guardian.model_validate(r) for r in rows])


async def update_guardian(
    guardian_id: str, user_id: str, updates: GuardianUpdate
) -> ServiceResult:
    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        return ServiceResult.fail("No fields to update")
    if "access_level" in changes and "permissions" not in changes:
        changes["permissions"] = default_permissions(changes["access_level"]).model_dump()

    try:
        row = guardians_db.update_guardian(guardian_id, user_id, changes)
    except Exception as e:
        logger.exception(f"Failed to update guardian {guardian_id}")
        return ServiceResult.fail(str(e))
    if row is None:
        return ServiceResult.fail("Guardian not found")

    await _emit(user_id, "guardian.updated", {**_public(row), "fields": sorted(changes)})
    return ServiceResult.ok(Guardian.model_validate(row))


async def revoke_guardian(guardian_id: str, user_id: str) -> ServiceResult:
    try:
        row = guardians_db.update_guardian(
            guardian_id,
            user_id,
            {"invitation_status": "revoked", "invitation_token": None, "token_expires_at": None},
        )
    except Exception as e:
        logger.exception(f"Failed to revoke guardian {guardian_id}")
        return ServiceResult.fail(str(e))
    if row is None:
        return ServiceResult.fail("Guardian not found")

    await _emit(user_id, "guardian.revoked", _public(row))
    return ServiceResult.ok(message="Guardian access revoked successfully")


async def delete_guardian(guardian_id: str, user_id: str) -> ServiceResult:
    try:
        row = guardians_db.get_guardian(guardian_id, user_id)
        if row is None:
            return ServiceResult.fail("Guardian not found")
        guardians_db.delete_guardian(guardian_id, user_id)
    except Exception as e:
        logger.exception(f"Failed to delete guardian {guardian_id}")
        return ServiceResult.fail(str(e))

    await _emit(user_id, "guardian.deleted", _public(row))
    return ServiceResult.ok(message="Guardian deleted successfully")


def grant_document_access(
    guardian_id: str, user_id: str, document_ids: list[str]
) -> ServiceResult:
    try:
        row = guardians_db.get_guardian(guardian_id, user_id)
        if row is None:
            return ServiceResult.fail("Guardian not found")
        merged = list(dict.fromkeys([*(row.get("accessible_documents") or []), *document_ids]))
        updated = guardians_db.update_guardian(
            guardian_id, user_id, {"accessible_documents": merged}
        )
    except Exception as e:
        logger.exception(f"Failed to grant document access for guardian {guardian_id}")
        return ServiceResult.fail(str(e))
    return ServiceResult.ok(
        Guardian.model_validate(updated or {**row, "accessible_documents": merged})
    )


def revoke_document_access(
    guardian_id: str, user_id: str, document_ids: list[str]
) -> ServiceResult:
    try:
        row = guardians_db.get_guardian(guardian_id, user_id)
        if row is None:
            return ServiceResult.fail("Guardian not found")
        removed = set(document_ids)
        remaining = [d for d in row.get("accessible_documents") or [] if d not in removed]
        updated = guardians_db.update_guardian(
            guardian_id, user_id, {"accessible_documents": remaining}
        )
    except Exception as e:
        logger.exception(f"Failed to revoke document access for guardian {guardian_id}")
        return ServiceResult.fail(str(e))
    return ServiceResult.ok(
        Guardian.model_validate(updated or {**row, "accessible_documents": remaining})
    )


def get_emergency_guardians(user_id: str) -> ServiceResult:
    try:
        rows = guardians_db.list_emergency_guardians(user_id)
    except Exception as e:
        logger.exception(f"Failed to fetch emergency guardians for user {user_id}")
        return ServiceResult.fail(str(e))
    return ServiceResult.ok([Guardian.model_validate(r) for r in rows])


def resend_invitation(
    guardian_id: str, user_id: str, now: datetime | None = None
) -> ServiceResult:
    now = now or utc_now()
    try:
        row = guardians_db.update_guardian(
            guardian_id, user_id, _new_invitation(now), only_status="pending"
        )
    except Exception as e:
        logger.exception(f"Failed to resend invitation for guardian {guardian_id}")
        return ServiceResult.fail(str(e))
    if row is None:
        return ServiceResult.fail("No pending invitation for this guardian")

    _send_invitation(row)
    return ServiceResult.ok(message="Invitation resent successfully")


# =========================
# Invitee operations (token based)
# =========================


async def accept_invitation(token: str, now: datetime | None = None) -> ServiceResult:
    now = now or utc_now()
    try:
        row = guardians_db.get_pending_by_token(token)
        if row is None:
            return ServiceResult.fail("Invalid or expired invitation token")
        if _is_expired(row, now):
            return ServiceResult.fail("Invitation has expired")

        updated = guardians_db.update_guardian(
            row["id"],
            row["user_id"],
            {
                "invitation_status": "accepted",
                "accepted_at": now.isoformat(),
                "invitation_token": None,
                "token_expires_at": None,
            },
        )
    except Exception as e:
        logger.exception("Failed to accept guardian invitation")
        return ServiceResult.fail(str(e))

    guardian = updated or {
        **row,
        "invitation_status": "accepted",
        "accepted_at": now.isoformat(),
        "invitation_token": None,
        "token_expires_at": None,
    }
    _notify_owner(row)
    track_server_event(row["user_id"], "guardian_accepted", {"guardian_id": row["id"]})
    await _emit(row["user_id"], "guardian.accepted", _public(guardian))
    return ServiceResult.ok(Guardian.model_validate(guardian))


def _notify_owner(row: dict) -> None:
    try:
        create_notification(
            user_id=row["user_id"],
            type="guardian_accepted",
            title=f"{row['guardian_name']} accepted your guardian invitation",
            entity_type="guardian",
            entity_id=row["id"],
            metadata={"relationship": row.get("relationship")},
        )
    except Exception:
        logger.exception(f"Failed to notify owner {row['user_id']} of accepted invitation")


async def decline_invitation(token: str) -> ServiceResult:
    try:
        row = guardians_db.get_pending_by_token(token)
        if row is None:
            return ServiceResult.fail("Invalid or expired invitation token")
        guardians_db.update_guardian(
            row["id"],
            row["user_id"],
            {"invitation_status": "declined", "invitation_token": None, "token_expires_at": None},
            only_status="pending",
        )
    except Exception as e:
        logger.exception("Failed to decline guardian invitation")
        return ServiceResult.fail(str(e))

    await _emit(
        row["user_id"], "guardian.declined", {**_public(row), "invitation_status": "declined"}
    )
    return ServiceResult.ok(message="Invitation declined successfully")


def get_invitation_details(token: str, now: datetime | None = None) -> ServiceResult:
    now = now or utc_now()
    try:
        row = guardians_db.get_pending_by_token(token)
        if row is None:
            return ServiceResult.fail("Invalid or expired invitation")
        if _is_expired(row, now):
            return ServiceResult.fail("Invitation has expired")
        owner = get_account_profile(row["user_id"])
    except Exception as e:
        logger.exception("Failed to fetch invitation details")
        return ServiceResult.fail(str(e))

    if owner is None:
        return ServiceResult.fail("Failed to fetch family owner information")
    return ServiceResult.ok(
        InvitationDetails(
            guardian=Guardian.model_validate(row),
            family_owner=FamilyOwner(name=owner.get("full_name"), email=owner.get("email")),
        )
    )
