import sys
from pathlib import Path

import pytest

# Ensure the app package is importable when tests run from the repo root
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.config import settings
from tests.fake_supabase import FakeSupabase


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture(autouse=True)
def force_test_settings():
    """Pin the shared-profile settings every test relies on"""
    original = (settings.max_group_members, settings.sync_apartment_partners_on_merge)
    settings.max_group_members = 4
    settings.sync_apartment_partners_on_merge = True
    try:
        yield
    finally:
        settings.max_group_members, settings.sync_apartment_partners_on_merge = original


@pytest.fixture
def users(db):
    """Seed a handful of users u1..u6 and return their ids"""
    ids = [f"u{i}" for i in range(1, 7)]
    db.seed("users", *[
        {"id": uid, "full_name": f"User {uid[1:]}", "avatar_url": None, "phone": None, "role": "user"}
        for uid in ids
    ])
    return ids


