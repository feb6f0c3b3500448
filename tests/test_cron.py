"""
tests/test_cron.py -- GET /api/cron/reset-database.

Runs against its own database: a successful call wipes users, roles and logs.
"""

from __future__ import annotations

from audit.models import LogRecord, Ref, RoleCreated
from auth.models import Role
from core.config import get_settings
from conftest import AppHarness, auth_headers, make_user

URL = "/api/cron/reset-database"


class TestCronAuth:
    def test_missing_header(self, app_client: AppHarness) -> None:
        resp = app_client.client.get(URL)
        assert resp.status_code == 401
        assert resp.json() == {"ok": False, "error": "Unauthorized"}

    def test_wrong_secret(self, app_client: AppHarness) -> None:
        resp = app_client.client.get(URL, headers=auth_headers("wrong-secret-value"))
        assert resp.status_code == 401
        assert resp.json() == {"ok": False, "error": "Unauthorized"}

    def test_user_session_is_not_enough(self, app_client: AppHarness) -> None:
        resp = app_client.client.get(URL, headers=auth_headers(app_client.admin_token))
        assert resp.status_code == 401

    def test_nothing_deleted_on_failure(self, app_client: AppHarness) -> None:
        user, _ = make_user(app_client.store, "survivor@example.com")
        app_client.client.get(URL, headers=auth_headers("nope"))
        assert app_client.store.get_user(user.id) is not None


class TestCronReset:
    def test_reset_keeps_system_records(self, app_client: AppHarness) -> None:
        h = app_client
        user, _ = make_user(h.store, "doomed@example.com", permissions=["role_edit"])
        rid = h.store.create_role(Role(name="Doomed Role"))
        h.log_store.append(LogRecord(payload=RoleCreated(Ref(rid, "Doomed Role")), user_id=h.admin.id))

        resp = h.client.get(URL, headers=auth_headers(get_settings().cron_secret))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

        assert h.store.get_user(user.id) is None
        assert h.store.get_role(rid) is None
        assert h.log_store.count() == 0
        assert h.store.get_user(h.admin.id) is not None
        assert h.store.get_role_by_name("Super Admin") is not None
        assert len(h.store.list_entities()) >= 2
