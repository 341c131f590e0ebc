"""Tests for guardian invitations, access management, and webhook emission."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core import guardian_service
from app.core.guardian_service import default_permissions, guardian_limit
from app.core.schemas_guardians import GuardianUpdate, InviteGuardianRequest
from app.core.service_result import ServiceResult

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
OWNER = "owner-1"


def _guardian_row(**overrides) -> dict:
    row = {
        "id": "g-1",
        "user_id": OWNER,
        "guardian_name": "Ada",
        "guardian_email": "ada@example.com",
        "relationship": "sibling",
        "access_level": "standard",
        "invitation_status": "pending",
        "invitation_token": "tok-1",
        "token_expires_at": (NOW + timedelta(days=3)).isoformat(),
        "accessible_documents": [],
        "emergency_priority": 1,
    }
    row.update(overrides)
    return row


@pytest.fixture
def webhooks():
    system = MagicMock()
    system.trigger_webhook_event = AsyncMock(return_value=ServiceResult.ok({"deliveries": 0}))
    with (
        patch("app.core.guardian_service.get_webhook_system", return_value=system),
        patch("app.core.guardian_service.track_server_event"),
    ):
        yield system


def _invite(access_level: str = "standard") -> InviteGuardianRequest:
    return InviteGuardianRequest(
        guardian_name="Ada",
        guardian_email="ada@example.com",
        relationship="sibling",
        access_level=access_level,
    )


class TestTierLimits:
    def test_known_tiers(self):
        assert guardian_limit("free") == 1
        assert guardian_limit("premium") == 5
        assert guardian_limit("enterprise") is None

    def test_unknown_tier_falls_back_to_free(self):
        assert guardian_limit("platinum") == 1


class TestDefaultPermissions:
    def test_full_grants_everything(self):
        perms = default_permissions("full")
        assert perms.download_documents is True
        assert perms.receive_milestone_notifications is True

    def test_limited_cannot_trigger_emergency(self):
        perms = default_permissions("limited")
        assert perms.view_documents is True
        assert perms.trigger_emergency_protocol is False

    def test_emergency_only_hides_documents(self):
        perms = default_permissions("emergency_only")
        assert perms.view_documents is False
        assert perms.trigger_emergency_protocol is True
        assert perms.access_emergency_contacts is True


class TestInviteGuardian:
    @pytest.mark.asyncio
    async def test_invite_creates_pending_guardian(self, fake_db, webhooks):
        result = await guardian_service.invite_guardian(OWNER, _invite(), now=NOW)

        assert result.success
        guardian = result.data
        assert guardian.invitation_status == "pending"
        assert guardian.invitation_token
        assert guardian.token_expires_at > NOW
        assert guardian.permissions.view_family_tree is True

        webhooks.trigger_webhook_event.assert_awaited_once()
        args, kwargs = webhooks.trigger_webhook_event.call_args
        assert args[0] == OWNER
        assert args[1] == "guardian.invited"
        assert kwargs["source"] == "guardians"

    @pytest.mark.asyncio
    async def test_free_tier_limit(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row(invitation_status="accepted")]

        result = await guardian_service.invite_guardian(OWNER, _invite(), now=NOW)

        assert not result.success
        assert result.error == "Guardian limit reached for free tier (1 guardians)"
        webhooks.trigger_webhook_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_revoked_guardians_free_a_slot(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row(invitation_status="revoked")]

        result = await guardian_service.invite_guardian(OWNER, _invite(), now=NOW)

        assert result.success

    @pytest.mark.asyncio
    async def test_enterprise_is_unlimited(self, fake_db, webhooks):
        fake_db.tables["profiles"] = [{"user_id": OWNER, "subscription_tier": "enterprise"}]
        fake_db.tables["guardians"] = [
            _guardian_row(id=f"g-{i}", invitation_status="accepted") for i in range(8)
        ]

        result = await guardian_service.invite_guardian(OWNER, _invite(), now=NOW)

        assert result.success

    @pytest.mark.asyncio
    async def test_webhook_storage_error_does_not_fail_invite(self, fake_db, webhooks):
        webhooks.trigger_webhook_event.side_effect = RuntimeError("db down")

        result = await guardian_service.invite_guardian(OWNER, _invite(), now=NOW)

        assert result.success
        assert fake_db.rows("guardians")[0]["invitation_status"] == "pending"


class TestUpdateAndRevoke:
    @pytest.mark.asyncio
    async def test_update_without_fields_fails(self, fake_db, webhooks):
        result = await guardian_service.update_guardian("g-1", OWNER, GuardianUpdate())

        assert not result.success
        assert result.error == "No fields to update"

    @pytest.mark.asyncio
    async def test_access_level_change_resets_permissions(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = await guardian_service.update_guardian(
            "g-1", OWNER, GuardianUpdate(access_level="full")
        )

        assert result.success
        assert result.data.permissions.download_documents is True
        payload = webhooks.trigger_webhook_event.call_args.args[2]
        assert payload["fields"] == ["access_level", "permissions"]

    @pytest.mark.asyncio
    async def test_update_unknown_guardian(self, fake_db, webhooks):
        result = await guardian_service.update_guardian(
            "missing", OWNER, GuardianUpdate(notes="hi")
        )

        assert result.error == "Guardian not found"

    @pytest.mark.asyncio
    async def test_revoke_clears_token(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row(invitation_status="accepted")]

        result = await guardian_service.revoke_guardian("g-1", OWNER)

        assert result.success
        assert result.message == "Guardian access revoked successfully"
        stored = fake_db.rows("guardians")[0]
        assert stored["invitation_status"] == "revoked"
        assert stored["invitation_token"] is None
        assert webhooks.trigger_webhook_event.call_args.args[1] == "guardian.revoked"

    @pytest.mark.asyncio
    async def test_other_owner_cannot_revoke(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = await guardian_service.revoke_guardian("g-1", "someone-else")

        assert result.error == "Guardian not found"

    @pytest.mark.asyncio
    async def test_delete_removes_row(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = await guardian_service.delete_guardian("g-1", OWNER)

        assert result.success
        assert fake_db.rows("guardians") == []


class TestDocumentAccess:
    def test_grant_keeps_order_and_dedupes(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row(accessible_documents=["d1", "d2"])]

        result = guardian_service.grant_document_access("g-1", OWNER, ["d3", "d1", "d4"])

        assert result.data.accessible_documents == ["d1", "d2", "d3", "d4"]

    def test_revoke_removes_listed_documents(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row(accessible_documents=["d1", "d2", "d3"])]

        result = guardian_service.revoke_document_access("g-1", OWNER, ["d2", "d9"])

        assert result.data.accessible_documents == ["d1", "d3"]

    def test_grant_for_unknown_guardian(self, fake_db):
        result = guardian_service.grant_document_access("nope", OWNER, ["d1"])

        assert result.error == "Guardian not found"


class TestEmergencyGuardians:
    def test_only_accepted_triggerers_by_priority(self, fake_db):
        fake_db.tables["guardians"] = [
            _guardian_row(
                id="a", invitation_status="accepted", can_trigger_emergency=True,
                emergency_priority=2,
            ),
            _guardian_row(
                id="b", invitation_status="accepted", can_trigger_emergency=True,
                emergency_priority=1,
            ),
            _guardian_row(id="c", invitation_status="pending", can_trigger_emergency=True),
            _guardian_row(id="d", invitation_status="accepted", can_trigger_emergency=False),
        ]

        result = guardian_service.get_emergency_guardians(OWNER)

        assert [g.id for g in result.data] == ["b", "a"]


class TestInvitations:
    @pytest.mark.asyncio
    async def test_accept_valid_token(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = await guardian_service.accept_invitation("tok-1", now=NOW)

        assert result.success
        assert result.data.invitation_status == "accepted"
        assert result.data.accepted_at == NOW
        assert result.data.invitation_token is None
        notification = fake_db.rows("notifications")[0]
        assert notification["user_id"] == OWNER
        assert notification["type"] == "guardian_accepted"
        assert webhooks.trigger_webhook_event.call_args.args[1] == "guardian.accepted"

    @pytest.mark.asyncio
    async def test_accept_expired_token(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [
            _guardian_row(token_expires_at=(NOW - timedelta(minutes=1)).isoformat())
        ]

        result = await guardian_service.accept_invitation("tok-1", now=NOW)

        assert result.error == "Invitation has expired"
        assert fake_db.rows("guardians")[0]["invitation_status"] == "pending"

    @pytest.mark.asyncio
    async def test_accept_unknown_token(self, fake_db, webhooks):
        result = await guardian_service.accept_invitation("nope", now=NOW)

        assert result.error == "Invalid or expired invitation token"

    @pytest.mark.asyncio
    async def test_token_cannot_be_used_twice(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        await guardian_service.accept_invitation("tok-1", now=NOW)
        second = await guardian_service.accept_invitation("tok-1", now=NOW)

        assert not second.success

    @pytest.mark.asyncio
    async def test_decline(self, fake_db, webhooks):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = await guardian_service.decline_invitation("tok-1")

        assert result.message == "Invitation declined successfully"
        assert fake_db.rows("guardians")[0]["invitation_status"] == "declined"
        payload = webhooks.trigger_webhook_event.call_args.args[2]
        assert payload["invitation_status"] == "declined"

    def test_resend_requires_pending(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row(invitation_status="accepted")]

        result = guardian_service.resend_invitation("g-1", OWNER, now=NOW)

        assert result.error == "No pending invitation for this guardian"

    def test_resend_rotates_token(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = guardian_service.resend_invitation("g-1", OWNER, now=NOW)

        assert result.success
        assert fake_db.rows("guardians")[0]["invitation_token"] != "tok-1"

    def test_invitation_details(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row()]
        fake_db.tables["profiles"] = [
            {"user_id": OWNER, "full_name": "Grace", "email": "grace@example.com"}
        ]

        result = guardian_service.get_invitation_details("tok-1", now=NOW)

        assert result.data.family_owner.name == "Grace"
        assert result.data.guardian.id == "g-1"

    def test_invitation_details_without_owner_profile(self, fake_db):
        fake_db.tables["guardians"] = [_guardian_row()]

        result = guardian_service.get_invitation_details("tok-1", now=NOW)

        assert result.error == "Failed to fetch family owner information"
