"""Tests for v1 API routing, auth dependencies, and error mapping with mocked services."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.auth_middleware import AuthContext, get_optional_user
from app.core.schemas_tracking import SessionSummary
from app.core.service_result import ServiceResult
from app.main import app

client = TestClient(app)

USER = AuthContext(user_id="user-1", token="jwt")
ADMIN = AuthContext(user_id="admin", token="api-key", is_admin=True)


@pytest.fixture
def login():
    """Authenticate subsequent requests as the given AuthContext."""

    def _login(auth: AuthContext | None):
        app.dependency_overrides[get_optional_user] = lambda: auth

    yield _login
    app.dependency_overrides.clear()


@pytest.fixture
def tracker():
    mock = MagicMock()
    mock.buffer = []
    mock.record_interaction.side_effect = lambda i: mock.buffer.append(i)
    with patch("app.api.tracking.get_behavior_tracker", return_value=mock):
        yield mock


class TestAuth:
    def test_missing_credentials_is_401(self):
        response = client.get("/v1/guardians")

        assert response.status_code == 401

    def test_admin_endpoint_rejects_users(self, login):
        login(USER)

        response = client.get("/v1/experiments/running")

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_cannot_act_for_another_user(self, login):
        login(USER)

        response = client.get(
            "/v1/experiments/by-name/pricing/variant", params={"user_id": "user-2"}
        )

        assert response.status_code == 403

    def test_admin_can_act_for_any_user(self, login):
        login(ADMIN)

        with patch("app.core.ab_testing.get_variant", return_value="treatment"):
            response = client.get(
                "/v1/experiments/by-name/pricing/variant", params={"user_id": "user-2"}
            )

        assert response.status_code == 200
        assert response.json() == {
            "experiment_name": "pricing",
            "user_id": "user-2",
            "variant": "treatment",
        }

    def test_admin_api_key_header(self):
        settings = MagicMock(ADMIN_API_KEY="sekret")
        with (
            patch("app.core.auth_middleware.get_settings", return_value=settings),
            patch("app.core.ab_testing.get_running_experiments", return_value=[]),
        ):
            accepted = client.get("/v1/experiments/running", headers={"X-API-Key": "sekret"})
            rejected = client.get("/v1/experiments/running", headers={"X-API-Key": "sekreT"})

        assert accepted.status_code == 200
        assert accepted.json() == []
        assert rejected.status_code == 401


class TestProductExperimentEndpoints:
    def test_will_generation_outcome(self, login):
        login(USER)

        with patch("app.core.ab_testing.track_will_generation", return_value=True) as track:
            response = client.post(
                "/v1/experiments/will-generation/outcome",
                json={"user_id": "user-1", "variant": "form", "completed": True},
            )

        assert response.status_code == 200
        assert response.json() == {"recorded": True}
        track.assert_called_once_with("user-1", "form", True)

    def test_onboarding_completion_for_another_user_is_403(self, login):
        login(USER)

        with patch("app.core.ab_testing.track_onboarding_completion") as track:
            response = client.post(
                "/v1/experiments/onboarding/completion",
                json={"user_id": "user-2", "time_to_complete": 42.5},
            )

        assert response.status_code == 403
        track.assert_not_called()

    def test_onboarding_step_must_be_positive(self, login):
        login(USER)

        response = client.post(
            "/v1/experiments/onboarding/steps",
            json={"user_id": "user-1", "step": 0, "completed": True},
        )

        assert response.status_code == 422

    def test_onboarding_variant(self, login):
        login(USER)

        with patch("app.core.ab_testing.get_onboarding_variant", return_value="detailed"):
            response = client.get("/v1/experiments/onboarding/variant", params={"user_id": "user-1"})

        assert response.status_code == 200
        assert response.json()["experiment_name"] == "onboarding_flow"
        assert response.json()["variant"] == "detailed"


class TestGuardianEndpoints:
    def test_invite_returns_created(self, login):
        login(USER)
        with patch(
            "app.core.guardian_service.invite_guardian",
            new_callable=AsyncMock,
            return_value=ServiceResult.ok({"id": "g-1"}),
        ) as invite:
            response = client.post(
                "/v1/guardians",
                json={
                    "guardian_name": "Ada",
                    "guardian_email": "ada@example.com",
                    "relationship": "sibling",
                },
            )

        assert response.status_code == 201
        assert response.json()["data"] == {"id": "g-1"}
        assert invite.call_args.args[0] == "user-1"

    def test_invalid_email_is_422(self, login):
        login(USER)

        response = client.post(
            "/v1/guardians",
            json={"guardian_name": "Ada", "guardian_email": "nope", "relationship": "sibling"},
        )

        assert response.status_code == 422

    def test_limit_error_maps_to_400(self, login):
        login(USER)
        with patch(
            "app.core.guardian_service.invite_guardian",
            new_callable=AsyncMock,
            return_value=ServiceResult.fail("Guardian limit reached for free tier (1 guardians)"),
        ):
            response = client.post(
                "/v1/guardians",
                json={
                    "guardian_name": "Ada",
                    "guardian_email": "ada@example.com",
                    "relationship": "sibling",
                },
            )

        assert response.status_code == 400
        assert "limit reached" in response.json()["detail"]

    def test_not_found_maps_to_404(self, login):
        login(USER)
        with patch(
            "app.core.guardian_service.revoke_guardian",
            new_callable=AsyncMock,
            return_value=ServiceResult.fail("Guardian not found"),
        ):
            response = client.post("/v1/guardians/g-9/revoke")

        assert response.status_code == 404

    def test_accept_needs_no_login(self):
        with patch(
            "app.core.guardian_service.accept_invitation",
            new_callable=AsyncMock,
            return_value=ServiceResult.ok({"invitation_status": "accepted"}),
        ) as accept:
            response = client.post("/v1/guardians/invitations/accept", json={"token": "tok"})

        assert response.status_code == 200
        accept.assert_awaited_once_with("tok")


class TestTrackingEndpoints:
    def _batch(self, user_id: str | None = "spoofed") -> dict:
        return {
            "interactions": [
                {
                    "session_id": "s-1",
                    "user_id": user_id,
                    "event_type": "click",
                    "page_path": "/pricing",
                }
            ]
        }

    def test_anonymous_batch_drops_user_id(self, tracker):
        response = client.post("/v1/tracking/interactions", json=self._batch())

        assert response.status_code == 202
        assert response.json() == {"accepted": 1, "buffered": 1}
        assert tracker.buffer[0].user_id is None

    def test_user_batch_is_attributed_to_caller(self, login, tracker):
        login(USER)

        client.post("/v1/tracking/interactions", json=self._batch())

        assert tracker.buffer[0].user_id == "user-1"

    def test_empty_batch_is_rejected(self, tracker):
        response = client.post("/v1/tracking/interactions", json={"interactions": []})

        assert response.status_code == 422

    def test_unknown_session_is_404(self, login, tracker):
        login(USER)
        tracker.get_session_data.side_effect = LookupError("Session s-1 not found")

        response = client.get("/v1/tracking/sessions/s-1")

        assert response.status_code == 404

    def test_other_users_session_is_403(self, login, tracker):
        login(USER)
        ts = datetime(2026, 3, 1, tzinfo=timezone.utc)
        tracker.get_session_data.return_value = SessionSummary(
            id="s-1",
            user_id="user-2",
            start_time=ts,
            end_time=ts,
            page_views=1,
            pages=["/"],
            total_duration=0,
            interactions_count=1,
            interaction_counts={"page_view": 1},
            bounce_rate=1.0,
            conversion_events=[],
        )

        response = client.get("/v1/tracking/sessions/s-1")

        assert response.status_code == 403


class TestIntegrationEndpoints:
    def test_trigger_event(self, login):
        login(ADMIN)
        system = MagicMock()
        system.trigger_webhook_event = AsyncMock(
            return_value=ServiceResult.ok({"event_id": "e-1", "deliveries": 2, "delivered": 2})
        )
        with patch("app.api.integrations.get_webhook_system", return_value=system):
            response = client.post(
                "/v1/integrations/events",
                json={"organization_id": "org-1", "event_type": "guardian.invited"},
            )

        assert response.status_code == 202
        assert response.json()["data"]["delivered"] == 2
        system.trigger_webhook_event.assert_awaited_once_with(
            "org-1", "guardian.invited", {}, source="api", correlation_id=None
        )

    def test_webhook_url_must_be_valid(self, login):
        login(ADMIN)

        response = client.post(
            "/v1/integrations/webhooks",
            json={"organization_id": "org-1", "url": "not a url", "events": ["*"]},
        )

        assert response.status_code == 422


class TestContentEndpoints:
    def test_reversed_window_is_400(self, login):
        login(ADMIN)

        response = client.get(
            "/v1/content/c-1/metrics",
            params={"start": "2026-03-02T00:00:00Z", "end": "2026-03-01T00:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "start must be before end"

    def test_optimize_without_experiment_is_404(self, login):
        login(ADMIN)
        optimizer = MagicMock()
        optimizer.optimize_content_allocation.return_value = None
        with patch("app.api.content.get_content_optimizer", return_value=optimizer):
            response = client.post("/v1/content/c-1/optimize")

        assert response.status_code == 404

    def test_invalid_experiment_split_is_400(self, login, fake_db):
        login(ADMIN)

        response = client.post(
            "/v1/experiments",
            json={
                "name": "pricing",
                "variants": [{"name": "control", "is_control": True}, {"name": "treatment"}],
                "traffic_split": {"control": 50, "treatment": 40},
                "target_metric": "signup",
            },
        )

        assert response.status_code == 400
        assert "100%" in response.json()["detail"]
        assert fake_db.rows("ab_experiments") == []


class TestNotificationEndpoints:
    def _seed(self, fake_db):
        fake_db.tables["notifications"] = [
            {
                "id": "n-1", "user_id": "user-1", "type": "guardian_accepted",
                "title": "Ada accepted", "read": False, "created_at": "2026-03-01T10:00:00+00:00",
            },
            {
                "id": "n-2", "user_id": "user-1", "type": "guardian_accepted",
                "title": "Bob accepted", "read": True, "created_at": "2026-03-02T10:00:00+00:00",
            },
            {
                "id": "n-3", "user_id": "user-2", "type": "guardian_accepted",
                "title": "Cy accepted", "read": False, "created_at": "2026-03-03T10:00:00+00:00",
            },
        ]

    def test_list_newest_first(self, login, fake_db):
        login(USER)
        self._seed(fake_db)

        response = client.get("/v1/guardians/notifications")

        assert [n["id"] for n in response.json()] == ["n-2", "n-1"]

    def test_unread_count_and_mark_all(self, login, fake_db):
        login(USER)
        self._seed(fake_db)

        assert client.get("/v1/guardians/notifications/unread-count").json() == {"count": 1}
        assert client.post("/v1/guardians/notifications/read").json() == {"updated": 1}
        assert client.get("/v1/guardians/notifications/unread-count").json() == {"count": 0}
        assert fake_db.rows("notifications")[2]["read"] is False
