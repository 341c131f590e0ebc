"""Tests for the PostHog analytics wrapper."""

from unittest.mock import MagicMock, patch

import pytest

from app.core import analytics


@pytest.fixture
def posthog_client():
    client = MagicMock()
    with patch("app.core.analytics.get_posthog", return_value=client):
        yield client


class TestTrackServerEvent:
    def test_disabled_without_api_key(self):
        with patch("app.core.analytics.get_posthog", return_value=None):
            analytics.track_server_event("user-1", "guardian_invited")

    def test_capture(self, posthog_client):
        analytics.track_server_event("user-1", "guardian_invited", {"access_level": "full"})

        posthog_client.capture.assert_called_once_with(
            distinct_id="user-1", event="guardian_invited", properties={"access_level": "full"}
        )

    def test_capture_errors_are_swallowed(self, posthog_client):
        posthog_client.capture.side_effect = RuntimeError("network down")

        analytics.track_server_event("user-1", "guardian_invited")


class TestInteractionBatch:
    def test_anonymous_rows_use_session_id(self, posthog_client):
        analytics.track_interaction_batch(
            [
                {"user_id": "u-1", "session_id": "s-1", "event_type": "click"},
                {"user_id": None, "session_id": "s-2", "event_type": "page_view"},
            ]
        )

        calls = posthog_client.capture.call_args_list
        assert [c.kwargs["distinct_id"] for c in calls] == ["u-1", "s-2"]
        assert [c.kwargs["event"] for c in calls] == ["interaction_click", "interaction_page_view"]

    def test_shutdown_flushes_client(self, posthog_client):
        analytics.shutdown_analytics()

        posthog_client.shutdown.assert_called_once()
