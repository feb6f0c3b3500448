"""
tests/test_actions.py -- Integration tests for POST /api/actions/{name}.

These tests exercise the full stack: route middleware -> action dispatcher ->
schema validation -> Auth Guard -> AccessStore mutation -> audit writer ->
LogStore. Every call goes through call_action(), which drains the writer so
log assertions see the record the action queued.

Coverage:
  - Roles: CRUD, permission assignment round trip, Super Admin protection
  - Permission checks: missing permission, union across roles, inactive users
  - Users: CRUD, self-delete/self-disable refusal, system-managed protection,
    role/entity assignment, entity selection, invites
  - Entities: CRUD, activation toggles, entity-scoped log records
  - Logs: log_view permission, entity scoping, date range validation
  - Audit failures never fail the action
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from actions.base import DEFAULT_SERVER_ERROR_MESSAGE
from audit.models import EntityCreated, LogActionType, LogRecord, Ref, RoleCreated
from auth.models import Role
from auth.tokens import decode_invite_token
from core.permissions import (
    ENTITY_CREATE,
    ENTITY_DISABLE,
    ENTITY_EDIT,
    LOG_VIEW,
    ROLE_CREATE,
    ROLE_DELETE,
    ROLE_EDIT,
    USER_CREATE,
    USER_DELETE,
    USER_DISABLE,
    USER_EDIT,
    USER_VIEW,
)
from conftest import AppHarness, call_action, make_user

EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


def _data(resp):
    """Assert a successful envelope and return its data."""
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["server_error"] is None, body
    assert body["validation_errors"] is None, body
    return body["data"]


def _server_error(resp) -> str:
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["data"] is None
    return body["server_error"]


def _latest_log(h: AppHarness, entity_ids=()):
    entries = h.log_store.get_logs(list(entity_ids), EPOCH)
    assert entries, "expected at least one log entry"
    return entries[0]


def _entity_id(h: AppHarness, name: str) -> int:
    return h.store.get_entity_by_name(name).id


def _super_admin_id(h: AppHarness) -> int:
    return h.store.get_role_by_name("Super Admin").id


class TestDispatcher:
    def test_unknown_action_returns_404(self, app_client: AppHarness) -> None:
        resp = call_action(app_client.client, app_client.admin_token, "no_such_action", {})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "unknown_action"

    def test_invalid_json_returns_400(self, app_client: AppHarness) -> None:
        h = app_client
        resp = h.client.post(
            "/api/actions/create_role",
            content=b"{not json",
            headers={"Authorization": f"Bearer {h.admin_token}", "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_json"

    def test_unknown_field_is_a_validation_error(self, app_client: AppHarness) -> None:
        resp = call_action(app_client.client, app_client.admin_token, "create_role", {"name": "Ok", "extra": 1})
        errors = resp.json()["validation_errors"]
        assert "extra" in errors


class TestRoleActions:
    def test_get_roles_includes_super_admin(self, app_client: AppHarness) -> None:
        roles = _data(call_action(app_client.client, app_client.admin_token, "get_roles"))
        super_admin = next(r for r in roles if r["name"] == "Super Admin")
        assert super_admin["is_system_managed"] is True

    def test_create_role_trims_and_logs(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "  Editors  ", "description": " x "}))
        assert role["name"] == "Editors"
        assert role["description"] == "x"
        assert role["permissions"] == []

        entry = _latest_log(h)
        assert entry.action_type == LogActionType.ROLE_CREATE
        assert entry.payload.role == Ref(id=role["id"], name="Editors")
        assert entry.user_id == h.admin.id
        assert entry.entity_id is None

    def test_create_role_name_too_short(self, app_client: AppHarness) -> None:
        h = app_client
        before = len(h.store.list_roles())
        resp = call_action(h.client, h.admin_token, "create_role", {"name": "a"})
        body = resp.json()
        assert body["server_error"] is None
        assert "name" in body["validation_errors"]
        assert len(h.store.list_roles()) == before

    def test_create_role_name_missing(self, app_client: AppHarness) -> None:
        resp = call_action(app_client.client, app_client.admin_token, "create_role", None)
        assert "name" in resp.json()["validation_errors"]

    def test_update_role(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Auditors"}))
        updated = _data(
            call_action(h.client, h.admin_token, "update_role", {"id": role["id"], "name": "Auditors 2", "description": "d"})
        )
        assert updated["name"] == "Auditors 2"
        assert _latest_log(h).action_type == LogActionType.ROLE_UPDATE

    def test_update_role_requires_description(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Keepers", "description": "keep me"}))
        resp = call_action(h.client, h.admin_token, "update_role", {"id": role["id"], "name": "Keepers 2"})
        assert "description" in resp.json()["validation_errors"]
        assert h.store.get_role(role["id"]).description == "keep me"

    def test_assign_permissions_round_trip(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Role Editors"}))
        _data(
            call_action(
                h.client,
                h.admin_token,
                "assign_permissions_to_role",
                {"role_id": role["id"], "permission_codes": ["role_edit", "role_create"]},
            )
        )
        roles = _data(call_action(h.client, h.admin_token, "get_roles"))
        fetched = next(r for r in roles if r["id"] == role["id"])
        assert fetched["permissions"] == ["role_create", "role_edit"]
        assert _latest_log(h).action_type == LogActionType.ROLE_SET_PERMISSION

    def test_assign_unknown_permission_fails(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Bogus Perms"}))
        error = _server_error(
            call_action(
                h.client, h.admin_token, "assign_permissions_to_role", {"role_id": role["id"], "permission_codes": ["nope"]}
            )
        )
        assert error == DEFAULT_SERVER_ERROR_MESSAGE
        assert h.store.get_role(role["id"]).permissions == []

    def test_delete_role(self, app_client: AppHarness) -> None:
        h = app_client
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Temporary"}))
        result = _data(call_action(h.client, h.admin_token, "delete_role", {"id": role["id"]}))
        assert result == {"id": role["id"], "deleted": True}
        assert h.store.get_role(role["id"]) is None
        entry = _latest_log(h)
        assert entry.action_type == LogActionType.ROLE_DELETE
        assert entry.payload.role.name == "Temporary"

    def test_delete_super_admin_fails(self, app_client: AppHarness) -> None:
        h = app_client
        rid = _super_admin_id(h)
        assert _server_error(call_action(h.client, h.admin_token, "delete_role", {"id": rid})) == DEFAULT_SERVER_ERROR_MESSAGE
        assert h.store.get_role(rid) is not None

    def test_update_super_admin_fails(self, app_client: AppHarness) -> None:
        h = app_client
        rid = _super_admin_id(h)
        _server_error(call_action(h.client, h.admin_token, "update_role", {"id": rid, "name": "Renamed", "description": ""}))
        assert h.store.get_role(rid).name == "Super Admin"

    def test_change_super_admin_permissions_fails(self, app_client: AppHarness) -> None:
        h = app_client
        rid = _super_admin_id(h)
        _server_error(
            call_action(h.client, h.admin_token, "assign_permissions_to_role", {"role_id": rid, "permission_codes": []})
        )
        assert len(h.store.get_role(rid).permissions) > 0

    def test_delete_missing_role_fails(self, app_client: AppHarness) -> None:
        _server_error(call_action(app_client.client, app_client.admin_token, "delete_role", {"id": 99999}))

    def test_get_permissions(self, app_client: AppHarness) -> None:
        codes = {p["code"] for p in _data(call_action(app_client.client, app_client.admin_token, "get_permissions"))}
        assert {ROLE_CREATE, USER_VIEW, LOG_VIEW} <= codes


class TestPermissionChecks:
    def test_missing_permission_is_a_generic_error(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "noperms@example.com")
        before = len(h.store.list_roles())
        error = _server_error(call_action(h.client, token, "create_role", {"name": "Sneaky"}))
        assert error == DEFAULT_SERVER_ERROR_MESSAGE
        assert "permission" not in error.lower()
        assert len(h.store.list_roles()) == before

    def test_action_without_permission_requirement(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "reader@example.com")
        assert isinstance(_data(call_action(h.client, token, "get_roles")), list)

    def test_single_permission_allows_only_that_action(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "creator@example.com", permissions=[ROLE_CREATE])
        role = _data(call_action(h.client, token, "create_role", {"name": "By Creator"}))
        _server_error(call_action(h.client, token, "delete_role", {"id": role["id"]}))
        assert h.store.get_role(role["id"]) is not None

    def test_permissions_union_across_roles(self, app_client: AppHarness) -> None:
        h = app_client
        a = h.store.create_role(Role(name="Union A", permissions=[ROLE_CREATE]))
        b = h.store.create_role(Role(name="Union B", permissions=[ROLE_DELETE]))
        user, token = make_user(h.store, "union@example.com")
        h.store.set_user_roles(user.id, [a, b])

        role = _data(call_action(h.client, token, "create_role", {"name": "Union Made"}))
        _data(call_action(h.client, token, "delete_role", {"id": role["id"]}))

    def test_role_edit_and_user_create_permissions_are_distinct(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "roleeditor@example.com", permissions=[ROLE_EDIT])
        _server_error(
            call_action(h.client, token, "create_user", {"name": "Blocked", "email": "blocked@example.com", "password": "longenough"})
        )
        _, creator = make_user(h.store, "usercreator@example.com", permissions=[USER_CREATE])
        _data(call_action(h.client, creator, "create_user", {"name": "Allowed", "email": "allowed@example.com", "password": "longenough"}))

    def test_inactive_user_is_redirected(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "inactive@example.com", permissions=[ROLE_CREATE], is_active=False)
        resp = call_action(h.client, token, "create_role", {"name": "Never"})
        assert resp.status_code == 302
        assert h.store.get_role_by_name("Never") is None


class TestUserActions:
    def test_get_users_requires_user_view(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "noview@example.com")
        _server_error(call_action(h.client, token, "get_users"))

    def test_get_users_hides_credentials(self, app_client: AppHarness) -> None:
        h = app_client
        users = _data(call_action(h.client, h.admin_token, "get_users"))
        admin = next(u for u in users if u["email"] == h.admin.email)
        assert admin["is_system_managed"] is True
        assert "hashed_password" not in admin
        assert "password" not in admin

    def test_create_user(self, app_client: AppHarness) -> None:
        h = app_client
        e1 = _entity_id(h, "Entity 1")
        user = _data(
            call_action(
                h.client,
                h.admin_token,
                "create_user",
                {
                    "name": "New Person",
                    "email": "New.Person@Example.com",
                    "password": "longenough",
                    "role_ids": [],
                    "entity_ids": [e1],
                },
            )
        )
        assert user["email"] == "new.person@example.com"
        assert user["selected_entity_id"] == e1
        assert [e["id"] for e in user["entities"]] == [e1]
        entry = _latest_log(h)
        assert entry.action_type == LogActionType.USER_CREATE
        assert entry.payload.user.id == user["id"]

    def test_create_user_short_password(self, app_client: AppHarness) -> None:
        resp = call_action(
            app_client.client,
            app_client.admin_token,
            "create_user",
            {"name": "Shorty", "email": "shorty@example.com", "password": "short"},
        )
        assert "password" in resp.json()["validation_errors"]

    def test_create_user_duplicate_email(self, app_client: AppHarness) -> None:
        h = app_client
        body = {"name": "Dup", "email": "dup@example.com", "password": "longenough"}
        _data(call_action(h.client, h.admin_token, "create_user", body))
        _server_error(call_action(h.client, h.admin_token, "create_user", body))

    def test_create_user_unknown_role(self, app_client: AppHarness) -> None:
        h = app_client
        body = {"name": "Norole", "email": "norole@example.com", "password": "longenough", "role_ids": [9999]}
        _server_error(call_action(h.client, h.admin_token, "create_user", body))
        assert h.store.get_by_email("norole@example.com") is None

    def test_update_user(self, app_client: AppHarness) -> None:
        h = app_client
        user, _ = make_user(h.store, "rename@example.com")
        updated = _data(
            call_action(h.client, h.admin_token, "update_user", {"id": user.id, "name": "Renamed", "email": "rename@example.com"})
        )
        assert updated["name"] == "Renamed"
        assert _latest_log(h).action_type == LogActionType.USER_UPDATE

    def test_update_system_user_fails(self, app_client: AppHarness) -> None:
        h = app_client
        _server_error(
            call_action(h.client, h.admin_token, "update_user", {"id": h.admin.id, "name": "Hacked", "email": h.admin.email})
        )
        assert h.store.get_user(h.admin.id).name == h.admin.name

    def test_created_user_signs_in_with_padded_password(self, app_client: AppHarness) -> None:
        h = app_client
        body = {"name": "Spacey", "email": "spacey@example.com", "password": " spaced out "}
        _data(call_action(h.client, h.admin_token, "create_user", body))
        resp = h.client.post("/api/auth/sign-in", json={"email": "spacey@example.com", "password": " spaced out "})
        h.client.cookies.clear()
        assert resp.status_code == 200, resp.text

    def test_verify_system_user_email_fails(self, app_client: AppHarness) -> None:
        h = app_client
        _, editor = make_user(h.store, "verifier@example.com", permissions=[USER_EDIT])
        h.store.update_user(h.admin.id, email_verified=False)
        try:
            _server_error(call_action(h.client, editor, "verify_user_email", {"id": h.admin.id}))
            assert h.store.get_user(h.admin.id).email_verified is False
        finally:
            h.store.update_user(h.admin.id, email_verified=True)

    def test_delete_user(self, app_client: AppHarness) -> None:
        h = app_client
        user, _ = make_user(h.store, "goner@example.com")
        _data(call_action(h.client, h.admin_token, "delete_user", {"id": user.id}))
        assert h.store.get_user(user.id) is None
        assert _latest_log(h).action_type == LogActionType.USER_DELETE

    def test_delete_self_fails(self, app_client: AppHarness) -> None:
        h = app_client
        me, token = make_user(h.store, "selfdelete@example.com", permissions=[USER_DELETE])
        _server_error(call_action(h.client, token, "delete_user", {"id": me.id}))
        assert h.store.get_user(me.id) is not None

    def test_delete_system_user_fails(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "deleter@example.com", permissions=[USER_DELETE])
        _server_error(call_action(h.client, token, "delete_user", {"id": h.admin.id}))
        assert h.store.get_user(h.admin.id) is not None

    def test_disable_self_fails(self, app_client: AppHarness) -> None:
        h = app_client
        me, token = make_user(h.store, "selfdisable@example.com", permissions=[USER_DISABLE])
        _server_error(call_action(h.client, token, "set_user_active", {"id": me.id, "active": False}))
        assert h.store.get_user(me.id).is_active is True

    def test_disable_system_user_fails(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "disabler@example.com", permissions=[USER_DISABLE])
        _server_error(call_action(h.client, token, "set_user_active", {"id": h.admin.id, "active": False}))
        assert h.store.get_user(h.admin.id).is_active is True

    def test_disable_then_enable(self, app_client: AppHarness) -> None:
        h = app_client
        target, target_token = make_user(h.store, "toggle@example.com")
        data = _data(call_action(h.client, h.admin_token, "set_user_active", {"id": target.id, "active": False}))
        assert data["is_active"] is False
        assert _latest_log(h).action_type == LogActionType.USER_DISABLE
        # A disabled user's existing token stops working at once.
        assert call_action(h.client, target_token, "get_roles").status_code == 302

        _data(call_action(h.client, h.admin_token, "set_user_active", {"id": target.id, "active": True}))
        assert _latest_log(h).action_type == LogActionType.USER_ENABLE
        _data(call_action(h.client, target_token, "get_roles"))

    def test_verify_email(self, app_client: AppHarness) -> None:
        h = app_client
        user, _ = make_user(h.store, "verify@example.com")
        data = _data(call_action(h.client, h.admin_token, "verify_user_email", {"id": user.id}))
        assert data["email_verified"] is True
        assert _latest_log(h).action_type == LogActionType.USER_EMAIL_VERIFIED

    def test_assign_roles(self, app_client: AppHarness) -> None:
        h = app_client
        user, _ = make_user(h.store, "assignroles@example.com")
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Assignable"}))
        data = _data(call_action(h.client, h.admin_token, "assign_roles_to_user", {"user_id": user.id, "role_ids": [role["id"]]}))
        assert [r["id"] for r in data["roles"]] == [role["id"]]
        assert _latest_log(h).action_type == LogActionType.USER_SET_ROLE

    def test_assign_entities_moves_selection(self, app_client: AppHarness) -> None:
        h = app_client
        e1, e2 = _entity_id(h, "Entity 1"), _entity_id(h, "Entity 2")
        user, _ = make_user(h.store, "assignentities@example.com", entity_ids=[e1])
        data = _data(
            call_action(h.client, h.admin_token, "assign_entities_to_user", {"user_id": user.id, "entity_ids": [e2]})
        )
        assert [e["id"] for e in data["entities"]] == [e2]
        assert data["selected_entity_id"] == e2
        assert _latest_log(h).action_type == LogActionType.USER_SET_ENTITY

    def test_select_entity(self, app_client: AppHarness) -> None:
        h = app_client
        e1, e2 = _entity_id(h, "Entity 1"), _entity_id(h, "Entity 2")
        _, token = make_user(h.store, "selector@example.com", entity_ids=[e1, e2])
        assert _data(call_action(h.client, token, "select_entity", {"entity_id": e2}))["selected_entity_id"] == e2

    def test_select_unassigned_entity_fails(self, app_client: AppHarness) -> None:
        h = app_client
        e1, e2 = _entity_id(h, "Entity 1"), _entity_id(h, "Entity 2")
        user, token = make_user(h.store, "wanderer@example.com", entity_ids=[e1])
        _server_error(call_action(h.client, token, "select_entity", {"entity_id": e2}))
        assert h.store.get_user(user.id).selected_entity_id == e1

    def test_create_invite(self, app_client: AppHarness) -> None:
        h = app_client
        data = _data(
            call_action(h.client, h.admin_token, "create_invite", {"name": "Invitee", "email": "Invitee@Example.com", "expires_in_hours": 2})
        )
        assert decode_invite_token(data["token"]) == {"name": "Invitee", "email": "invitee@example.com"}

    def test_create_invite_requires_user_create(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "noinvite@example.com", permissions=[USER_EDIT])
        _server_error(call_action(h.client, token, "create_invite", {"name": "Nobody", "email": "nobody@example.com"}))


class TestEntityActions:
    def test_create_entity_logs_against_new_entity(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "entitycreator@example.com", permissions=[ENTITY_CREATE])
        entity = _data(call_action(h.client, token, "create_entity", {"name": "Entity 3"}))
        entry = _latest_log(h, [entity["id"]])
        assert entry.action_type == LogActionType.ENTITY_CREATE
        assert entry.entity_id == entity["id"]
        assert entry.entity_name == "Entity 3"

    def test_update_entity(self, app_client: AppHarness) -> None:
        h = app_client
        entity = _data(call_action(h.client, h.admin_token, "create_entity", {"name": "Rename Me"}))
        _, token = make_user(h.store, "entityeditor@example.com", permissions=[ENTITY_EDIT])
        data = _data(call_action(h.client, token, "update_entity", {"id": entity["id"], "name": "Renamed Entity"}))
        assert data["name"] == "Renamed Entity"
        assert _latest_log(h, [entity["id"]]).action_type == LogActionType.ENTITY_UPDATE

    def test_update_missing_entity_fails(self, app_client: AppHarness) -> None:
        _server_error(call_action(app_client.client, app_client.admin_token, "update_entity", {"id": 9999, "name": "Ghost"}))

    def test_disable_and_enable_entity(self, app_client: AppHarness) -> None:
        h = app_client
        entity = _data(call_action(h.client, h.admin_token, "create_entity", {"name": "Toggled"}))
        _, token = make_user(h.store, "entitydisabler@example.com", permissions=[ENTITY_DISABLE])
        assert _data(call_action(h.client, token, "set_entity_active", {"id": entity["id"], "active": False}))["is_active"] is False
        assert _latest_log(h, [entity["id"]]).action_type == LogActionType.ENTITY_DISABLE
        _data(call_action(h.client, token, "set_entity_active", {"id": entity["id"], "active": True}))
        assert _latest_log(h, [entity["id"]]).action_type == LogActionType.ENTITY_ENABLE

    def test_get_entities(self, app_client: AppHarness) -> None:
        names = {e["name"] for e in _data(call_action(app_client.client, app_client.admin_token, "get_entities"))}
        assert {"Entity 1", "Entity 2"} <= names


class TestLogActions:
    def test_requires_log_view(self, app_client: AppHarness) -> None:
        h = app_client
        _, token = make_user(h.store, "nologs@example.com")
        _server_error(call_action(h.client, token, "get_logs", {"start_date": EPOCH.isoformat()}))

    def test_scoped_to_callers_entities(self, app_client: AppHarness) -> None:
        h = app_client
        e1, e2 = _entity_id(h, "Entity 1"), _entity_id(h, "Entity 2")
        h.log_store.append(LogRecord(payload=EntityCreated(Ref(e1, "Entity 1")), user_id=h.admin.id, entity_id=e1))
        h.log_store.append(LogRecord(payload=EntityCreated(Ref(e2, "Entity 2")), user_id=h.admin.id, entity_id=e2))
        h.log_store.append(LogRecord(payload=RoleCreated(Ref(1, "Global")), user_id=h.admin.id))

        _, token = make_user(h.store, "scoped@example.com", permissions=[LOG_VIEW], entity_ids=[e1])
        entries = _data(call_action(h.client, token, "get_logs", {"start_date": EPOCH.isoformat()}))
        entity_ids = {e["entity_id"] for e in entries}
        assert e2 not in entity_ids
        assert e1 in entity_ids
        assert None in entity_ids
        first = entries[0]
        assert {"id", "type", "info", "summary", "user_name", "entity_name", "created_at"} <= set(first)

    def test_newest_first(self, app_client: AppHarness) -> None:
        h = app_client
        entries = _data(call_action(h.client, h.admin_token, "get_logs", {"start_date": EPOCH.isoformat()}))
        stamps = [datetime.fromisoformat(e["created_at"]) for e in entries]
        assert stamps == sorted(stamps, reverse=True)

    def test_end_before_start_is_a_validation_error(self, app_client: AppHarness) -> None:
        now = datetime.now(timezone.utc)
        resp = call_action(
            app_client.client,
            app_client.admin_token,
            "get_logs",
            {"start_date": now.isoformat(), "end_date": (now - timedelta(days=1)).isoformat()},
        )
        assert resp.json()["validation_errors"]

    def test_future_window_is_empty(self, app_client: AppHarness) -> None:
        start = datetime.now(timezone.utc) + timedelta(days=1)
        entries = _data(call_action(app_client.client, app_client.admin_token, "get_logs", {"start_date": start.isoformat()}))
        assert entries == []


class TestAuditFailureIsolation:
    def test_failing_log_store_does_not_fail_the_action(self, app_client: AppHarness, monkeypatch) -> None:
        h = app_client
        writer = h.client.app.state.audit_writer
        failed_before = writer.failed

        def broken_append(record, at=None):
            raise RuntimeError("disk full")

        monkeypatch.setattr(h.log_store, "append", broken_append)
        role = _data(call_action(h.client, h.admin_token, "create_role", {"name": "Unlogged"}))
        assert h.store.get_role(role["id"]) is not None
        assert writer.failed == failed_before + 1
