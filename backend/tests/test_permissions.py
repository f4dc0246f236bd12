"""Permission assignment: assign, revoke, groups, bulk replace, checks."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from app.middleware.exceptions import BadRequestError
from app.models.permission import UserMinistryPermission
from app.models.user import User
from app.services import permissions as permission_service


async def _rows(sessions, user_id: int) -> list[UserMinistryPermission]:
    async with sessions() as s:
        result = await s.execute(
            select(UserMinistryPermission)
            .where(UserMinistryPermission.user_id == user_id)
            .order_by(UserMinistryPermission.ministry_id)
        )
        return list(result.scalars().all())


def _entry(payload: dict, ministry_id: int) -> dict:
    return next(p for p in payload["permissions"] if p["ministry_id"] == ministry_id)


@pytest.mark.api
@pytest.mark.asyncio
class TestAssign:

    async def test_assign_then_read_back(
        self, client: AsyncClient, admin_headers, regular_user, ministries
    ):
        justice = ministries["Justice"]
        response = await client.post(
            "/api/permissions/assign",
            json={
                "user_id": regular_user.id,
                "ministry_id": justice.id,
                "permissions": {"can_edit_actions": True},
            },
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["affected_ministries"] == 1

        read = await client.get(
            f"/api/permissions/user/{regular_user.id}", headers=admin_headers
        )
        assert read.status_code == 200
        data = read.json()
        assert len(data["permissions"]) == 3

        entry = _entry(data, justice.id)
        assert entry["has_access"] is True
        assert entry["can_edit_actions"] is True
        assert entry["can_view_actions"] is False
        assert entry["can_export_data"] is False

        other = _entry(data, ministries["Finance"].id)
        assert other["has_access"] is False
        assert not any(v for k, v in other.items() if k.startswith("can_"))

    async def test_assign_is_idempotent(
        self, client: AsyncClient, admin_headers, regular_user, finance, sessions
    ):
        payload = {
            "user_id": regular_user.id,
            "ministry_id": finance.id,
            "permissions": {"can_view_actions": True, "can_view_team": True},
        }
        for _ in range(2):
            response = await client.post(
                "/api/permissions/assign", json=payload, headers=admin_headers
            )
            assert response.status_code == 200

        rows = await _rows(sessions, regular_user.id)
        assert len(rows) == 1
        assert rows[0].can_view_actions and rows[0].can_view_team

    async def test_assign_replaces_whole_set(
        self, client: AsyncClient, admin_headers, regular_user, finance, grant, sessions
    ):
        await grant(regular_user, finance, can_view_actions=True, can_delete_actions=True)

        await client.post(
            "/api/permissions/assign",
            json={
                "user_id": regular_user.id,
                "ministry_id": finance.id,
                "permissions": {"can_view_reports": True},
            },
            headers=admin_headers,
        )

        (row,) = await _rows(sessions, regular_user.id)
        assert row.can_view_reports is True
        assert row.can_view_actions is False
        assert row.can_delete_actions is False

    async def test_assign_to_all_ministries(
        self, client: AsyncClient, admin_headers, regular_user, ministries, sessions
    ):
        response = await client.post(
            "/api/permissions/assign",
            json={
                "user_id": regular_user.id,
                "permissions": {"can_view_actions": True},
                "apply_to_all_ministries": True,
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["affected_ministries"] == len(ministries)
        rows = await _rows(sessions, regular_user.id)
        assert {r.ministry_id for r in rows} == {m.id for m in ministries.values()}

    async def test_assign_to_all_ministries_is_all_or_nothing(
        self, client: AsyncClient, admin_headers, regular_user, ministries, sessions,
        monkeypatch,
    ):
        real_upsert = permission_service._upsert
        calls = {"n": 0}

        async def failing_upsert(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise BadRequestError("Ministry unavailable")
            return await real_upsert(*args, **kwargs)

        monkeypatch.setattr(permission_service, "_upsert", failing_upsert)

        response = await client.post(
            "/api/permissions/assign",
            json={
                "user_id": regular_user.id,
                "permissions": {"can_view_actions": True},
                "apply_to_all_ministries": True,
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert calls["n"] == 2
        assert await _rows(sessions, regular_user.id) == []

    async def test_assign_needs_a_target(
        self, client: AsyncClient, admin_headers, regular_user
    ):
        response = await client.post(
            "/api/permissions/assign",
            json={"user_id": regular_user.id, "permissions": {"can_view_actions": True}},
            headers=admin_headers,
        )

        assert response.status_code == 400

    async def test_assign_unknown_ministry(
        self, client: AsyncClient, admin_headers, regular_user, ministries
    ):
        response = await client.post(
            "/api/permissions/assign",
            json={"user_id": regular_user.id, "ministry_id": 999},
            headers=admin_headers,
        )

        assert response.status_code == 404

    async def test_non_admin_cannot_assign(
        self, client: AsyncClient, user_headers, regular_user, finance, sessions
    ):
        response = await client.post(
            "/api/permissions/assign",
            json={
                "user_id": regular_user.id,
                "ministry_id": finance.id,
                "permissions": {"can_delete_actions": True},
            },
            headers=user_headers,
        )

        assert response.status_code == 403
        assert await _rows(sessions, regular_user.id) == []


@pytest.mark.api
@pytest.mark.asyncio
class TestRevoke:

    async def test_revoke_one(
        self, client: AsyncClient, admin_headers, regular_user, ministries, grant, sessions
    ):
        await grant(regular_user, ministries["Finance"], can_view_actions=True)
        await grant(regular_user, ministries["Santé"], can_view_actions=True)

        response = await client.request(
            "DELETE",
            "/api/permissions/revoke",
            json={"user_id": regular_user.id, "ministry_id": ministries["Finance"].id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["revoked_count"] == 1
        rows = await _rows(sessions, regular_user.id)
        assert [r.ministry_id for r in rows] == [ministries["Santé"].id]

    async def test_revoke_all(
        self, client: AsyncClient, admin_headers, regular_user, ministries, grant, sessions
    ):
        for ministry in ministries.values():
            await grant(regular_user, ministry, can_view_team=True)

        response = await client.request(
            "DELETE",
            "/api/permissions/revoke",
            json={"user_id": regular_user.id, "revoke_all": True},
            headers=admin_headers,
        )

        assert response.json()["revoked_count"] == 3
        assert await _rows(sessions, regular_user.id) == []

    async def test_revoke_nothing_is_not_an_error(
        self, client: AsyncClient, admin_headers, regular_user, finance
    ):
        response = await client.request(
            "DELETE",
            "/api/permissions/revoke",
            json={"user_id": regular_user.id, "ministry_id": finance.id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["revoked_count"] == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestGroups:

    async def test_list_groups_normalized(
        self, client: AsyncClient, admin_headers, permission_groups
    ):
        response = await client.get("/api/permissions/groups", headers=admin_headers)

        assert response.status_code == 200
        groups = {g["name"]: g["permissions"] for g in response.json()}
        assert set(groups) == {"viewer", "editor"}
        assert groups["viewer"]["can_view_team"] is True
        assert groups["viewer"]["can_export_data"] is False

    async def test_apply_group(
        self, client: AsyncClient, admin_headers, regular_user, ministries,
        permission_groups, sessions,
    ):
        targets = [ministries["Finance"].id, ministries["Justice"].id]

        response = await client.post(
            "/api/permissions/apply-group",
            json={"user_id": regular_user.id, "group_name": "editor", "ministry_ids": targets},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["affected_ministries"] == 2
        rows = await _rows(sessions, regular_user.id)
        assert sorted(r.ministry_id for r in rows) == sorted(targets)
        assert all(r.can_edit_actions and not r.can_delete_actions for r in rows)

    async def test_apply_group_rolls_back_on_bad_ministry(
        self, client: AsyncClient, admin_headers, regular_user, finance,
        permission_groups, sessions,
    ):
        response = await client.post(
            "/api/permissions/apply-group",
            json={
                "user_id": regular_user.id,
                "group_name": "viewer",
                "ministry_ids": [finance.id, 4242],
            },
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert await _rows(sessions, regular_user.id) == []

    async def test_unknown_group(
        self, client: AsyncClient, admin_headers, regular_user, finance, permission_groups
    ):
        response = await client.post(
            "/api/permissions/apply-group",
            json={"user_id": regular_user.id, "group_name": "auditor", "ministry_ids": [finance.id]},
            headers=admin_headers,
        )

        assert response.status_code == 404

    async def test_empty_ministry_list(
        self, client: AsyncClient, admin_headers, regular_user, permission_groups
    ):
        response = await client.post(
            "/api/permissions/apply-group",
            json={"user_id": regular_user.id, "group_name": "viewer", "ministry_ids": []},
            headers=admin_headers,
        )

        assert response.status_code == 400


@pytest.mark.api
@pytest.mark.asyncio
class TestReadEndpoints:

    async def test_user_reads_own_permissions(
        self, client: AsyncClient, user_headers, regular_user, finance, grant
    ):
        await grant(regular_user, finance, can_view_actions=True)

        response = await client.get(
            f"/api/permissions/user/{regular_user.id}", headers=user_headers
        )

        assert response.status_code == 200
        assert _entry(response.json(), finance.id)["can_view_actions"] is True

    async def test_user_cannot_read_others(
        self, client: AsyncClient, user_headers, admin_user
    ):
        response = await client.get(
            f"/api/permissions/user/{admin_user.id}", headers=user_headers
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Access denied"

    async def test_all_lists_every_user(
        self, client: AsyncClient, admin_headers, admin_user, regular_user, finance, grant
    ):
        await grant(regular_user, finance, can_view_actions=True)

        response = await client.get("/api/permissions/all", headers=admin_headers)

        assert response.status_code == 200
        by_email = {u["user_email"]: u for u in response.json()}
        assert by_email[admin_user.email]["permissions"] == []
        assert by_email[regular_user.email]["permissions"][0]["ministry_name"] == "Finance"

    async def test_check_endpoint(
        self, client: AsyncClient, user_headers, regular_user, finance, grant
    ):
        await grant(regular_user, finance, can_export_data=True)

        granted = await client.get(
            "/api/permissions/check",
            params={"ministry_id": finance.id, "permission": "export_data"},
            headers=user_headers,
        )
        denied = await client.get(
            "/api/permissions/check",
            params={"ministry_id": finance.id, "permission": "can_delete_actions"},
            headers=user_headers,
        )

        assert granted.json() == {"has_permission": True}
        assert denied.json() == {"has_permission": False}

    async def test_check_unknown_permission(self, client: AsyncClient, user_headers, finance):
        response = await client.get(
            "/api/permissions/check",
            params={"ministry_id": finance.id, "permission": "launch_rockets"},
            headers=user_headers,
        )

        assert response.status_code == 400

    async def test_check_unknown_ministry(self, client: AsyncClient, user_headers, finance):
        response = await client.get(
            "/api/permissions/check",
            params={"ministry_id": 777, "permission": "view_actions"},
            headers=user_headers,
        )

        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestUserPermissionsAdapter:

    async def test_bulk_replace(
        self, client: AsyncClient, admin_headers, regular_user, ministries, grant, sessions
    ):
        await grant(regular_user, ministries["Justice"], can_view_actions=True)

        response = await client.post(
            "/api/user-permissions/assign",
            json={
                "user_id": regular_user.id,
                "ministry_permissions": [
                    {"ministry_id": ministries["Finance"].id, "can_view": True, "can_edit": True},
                    {"ministry_id": ministries["Santé"].id, "can_view_team": True},
                ],
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert {row["ministry_name"] for row in data["permissions"]} == {"Finance", "Santé"}

        rows = {r.ministry_id: r for r in await _rows(sessions, regular_user.id)}
        assert ministries["Justice"].id not in rows
        finance_row = rows[ministries["Finance"].id]
        assert finance_row.can_view_actions and finance_row.can_edit_actions
        assert not finance_row.can_create_actions

    async def test_bulk_replace_rolls_back_on_bad_ministry(
        self, client: AsyncClient, admin_headers, regular_user, finance, grant, sessions
    ):
        await grant(regular_user, finance, can_view_actions=True)

        response = await client.post(
            "/api/user-permissions/assign",
            json={
                "user_id": regular_user.id,
                "ministry_permissions": [{"ministry_id": 999, "can_view": True}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 404
        rows = await _rows(sessions, regular_user.id)
        assert [r.ministry_id for r in rows] == [finance.id]

    async def test_create_user_with_permissions(
        self, client: AsyncClient, admin_headers, admin_user, finance, sessions
    ):
        response = await client.post(
            "/api/user-permissions/create-user",
            json={
                "name": "Ibrahima Fall",
                "email": "Ibrahima.Fall@sgg.gov.sn",
                "password": "bienvenue-2026",
                "ministry_permissions": [{"ministry_id": finance.id, "can_view": True}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        user = response.json()
        assert user["email"] == "ibrahima.fall@sgg.gov.sn"
        assert user["is_active"] is True
        assert user["approved_at"] is not None

        rows = await _rows(sessions, user["id"])
        assert len(rows) == 1
        assert rows[0].created_by == admin_user.id

    async def test_create_user_duplicate_email(
        self, client: AsyncClient, admin_headers, regular_user, sessions
    ):
        response = await client.post(
            "/api/user-permissions/create-user",
            json={"name": "Dup", "email": regular_user.email, "password": "bienvenue-2026"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        async with sessions() as s:
            count = await s.scalar(select(func.count(User.id)))
        assert count == 2

    async def test_summary_skips_admins(
        self, client: AsyncClient, admin_headers, admin_user, regular_user, ministries, grant
    ):
        await grant(regular_user, ministries["Santé"], can_view_actions=True)
        await grant(regular_user, ministries["Finance"], can_view_team=True)

        response = await client.get("/api/user-permissions/summary", headers=admin_headers)

        assert response.status_code == 200
        (row,) = response.json()
        assert row["email"] == regular_user.email
        assert row["ministries_count"] == 2
        assert row["ministries"] == ["Finance", "Santé"]

    async def test_ministry_choices(self, client: AsyncClient, admin_headers, ministries):
        response = await client.get("/api/user-permissions/ministries", headers=admin_headers)

        assert response.status_code == 200
        assert [m["name"] for m in response.json()] == ["Finance", "Justice", "Santé"]
