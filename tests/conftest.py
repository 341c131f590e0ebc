"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest

from tests.fakes.fake_supabase import FakeSupabase

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LEGACYGUARD_ENV", "test")
os.environ.setdefault("ENABLE_BACKGROUND_JOBS", "false")

DB_MODULES = [
    "app.db.adaptive_ui",
    "app.db.behavior",
    "app.db.content",
    "app.db.experiments",
    "app.db.funnels",
    "app.db.guardians",
    "app.db.integrations",
    "app.db.interactions",
    "app.db.notifications",
    "app.db.profiles",
    "app.db.recommendations",
    "app.db.user_profiles",
]


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["LEGACYGUARD_ENV"] = "test"
    os.environ["ENABLE_BACKGROUND_JOBS"] = "false"


@pytest.fixture
def fake_db():
    """FakeSupabase wired into every db module in place of the real client."""
    db = FakeSupabase()
    patchers = [patch(f"{module}.get_supabase", return_value=db) for module in DB_MODULES]
    for p in patchers:
        p.start()
    yield db
    for p in patchers:
        p.stop()


@pytest.fixture
def fresh_engines():
    """Drop the cached engine singletons so each test starts from empty caches."""
    from app.core.adaptive_ui import get_adaptive_ui_engine
    from app.core.content_analytics import get_content_analytics
    from app.core.content_optimizer import get_content_optimizer
    from app.core.funnel_tracker import get_funnel_tracker
    from app.core.personalization_engine import get_personalization_engine
    from app.core.recommendation_engine import get_recommendation_engine
    from app.services.behavior_tracker import get_behavior_tracker
    from app.services.webhook_system import get_webhook_system

    factories = [
        get_adaptive_ui_engine,
        get_content_analytics,
        get_content_optimizer,
        get_funnel_tracker,
        get_personalization_engine,
        get_recommendation_engine,
        get_behavior_tracker,
        get_webhook_system,
    ]
    for factory in factories:
        factory.cache_clear()
    yield
    for factory in factories:
        factory.cache_clear()
