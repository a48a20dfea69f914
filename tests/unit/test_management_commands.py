"""
Unit tests for the management commands and settings resolution.
"""

import json
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from helpdesk_access.config_proxy import get_setting
from helpdesk_access.models import AccessPolicy, Department, TicketStatus

pytestmark = pytest.mark.unit


def _call(*args, **kwargs):
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


@pytest.mark.django_db
class TestLoadAccessManifest:
    def test_loads_bundled_manifest(self):
        output = _call("load_access_manifest")
        assert "Manifest applied" in output
        assert AccessPolicy.objects.count() == 14
        assert TicketStatus.objects.count() == 8
        assert "Skipped user:admin@company.com" in output

    def test_dry_run(self):
        output = _call("load_access_manifest", "--dry-run")
        assert "Dry run" in output
        assert AccessPolicy.objects.count() == 0

    def test_custom_path(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps({"departments": [{"name": "Facilities"}]}), encoding="utf-8")
        _call("load_access_manifest", "--path", str(path))
        assert Department.objects.filter(name="Facilities").exists()

    def test_invalid_manifest(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps({"roles": "admin"}), encoding="utf-8")
        with pytest.raises(CommandError):
            _call("load_access_manifest", "--path", str(path))


@pytest.mark.django_db
class TestExplainAccess:
    def test_explains_decision(self, seeded):
        john = seeded["users"]["john"]
        it_support = Department.objects.get(name="IT Support")
        attrs = json.dumps({"assignedToDepartmentId": it_support.pk})

        output = _call("explain_access", "john", "tickets", "read", "--attrs", attrs)

        assert "ALLOW (policy_allow) policy: Agents can read tickets in their department" in output
        assert "Roles: agent" in output
        assert "tickets:read" in output

    def test_deny_lists_no_match(self, seeded):
        output = _call("explain_access", seeded["users"]["alice"].email, "settings", "write")
        assert "DENY (no_matching_policy)" in output
        assert "No applicable policies" in output

    def test_unknown_user_and_bad_attrs(self, seeded):
        with pytest.raises(CommandError):
            _call("explain_access", "nobody", "tickets", "read")
        with pytest.raises(CommandError):
            _call("explain_access", "john", "tickets", "read", "--attrs", "{oops")


class TestSettings:
    def test_library_defaults(self):
        assert get_setting("access_settings.in_scalar_mode") == "coerce"
        assert get_setting("access_settings.resource_aliases")["tickets"] == "ticket"
        assert get_setting("access_settings.missing", "fallback") == "fallback"

    def test_project_overrides(self, settings):
        settings.HELPDESK_ACCESS = {"access_settings": {"in_scalar_mode": "strict"}}
        assert get_setting("access_settings.in_scalar_mode") == "strict"
        assert get_setting("access_settings.permission_cache_ttl_seconds") == 300
