"""
Shared fixtures for helpdesk-access tests.
"""

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache

from helpdesk_access.config_proxy import settings_proxy
from helpdesk_access.models import Department, Role
from helpdesk_access.security.bootstrap import apply_manifest, load_manifest
from helpdesk_access.security.roles import add_department_member, assign_role

SEED_USERS = {
    "admin": "admin@company.com",
    "john": "john.support@company.com",
    "sarah": "sarah.tech@company.com",
    "mike": "mike.hardware@company.com",
    "alice": "alice.user@company.com",
    "bob": "bob.employee@company.com",
}


@pytest.fixture(autouse=True)
def _isolated_caches():
    cache.clear()
    settings_proxy.clear_cache()
    yield
    cache.clear()
    settings_proxy.clear_cache()


@pytest.fixture
def make_user(db):
    User = get_user_model()

    def _make_user(username, email=None, **extra):
        return User.objects.create_user(
            username=username,
            email=email or f"{username}@example.com",
            password="pass12345",
            **extra,
        )

    return _make_user


@pytest.fixture
def roles(db):
    return {
        name: Role.objects.create(name=name, is_system=True)
        for name in ("admin", "manager", "agent", "user")
    }


@pytest.fixture
def departments(db):
    return {
        "it": Department.objects.create(name="IT Support"),
        "billing": Department.objects.create(name="Billing"),
    }


@pytest.fixture
def agent(make_user, roles, departments):
    user = make_user("agent")
    assign_role(user, roles["agent"], is_primary=True)
    add_department_member(user, departments["it"], is_primary=True)
    return user


@pytest.fixture
def end_user(make_user, roles):
    user = make_user("enduser")
    assign_role(user, roles["user"], is_primary=True)
    return user


@pytest.fixture
def admin_user(make_user, roles):
    user = make_user("boss")
    assign_role(user, roles["admin"], is_primary=True)
    return user


@pytest.fixture
def seed_users(make_user):
    return {key: make_user(key, email=email) for key, email in SEED_USERS.items()}


@pytest.fixture
def seeded(db, seed_users):
    """Reference roles, permissions, statuses and policies with seed users."""
    summary = apply_manifest(load_manifest())
    return {"users": seed_users, "summary": summary}
