"""Action routes: CRUD, scoping, history, statistics and export."""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.action import Action, ActionHistory
from app.utils.numbering import generate_action_code


def _payload(**overrides) -> dict:
    payload = {
        "ministry": "Finance",
        "action_title": "Réforme du code des marchés publics",
        "description": "Révision complète",
        "responsible": "Awa Ndiaye",
        "priority": "high",
        "start_date": "2026-03-01",
        "end_date": "2026-06-30",
        "stakeholders": ["DGID", "DCMP"],
    }
    payload.update(overrides)
    return payload


async def _history(sessions, entity_id, entity_type: str = "action") -> list[ActionHistory]:
    async with sessions() as s:
        result = await s.execute(
            select(ActionHistory)
            .where(
                ActionHistory.entity_type == entity_type,
                ActionHistory.entity_id == str(entity_id),
            )
            .order_by(ActionHistory.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
class TestActionCodes:

    async def test_first_code_of_the_year(self, sessions):
        async with sessions() as s:
            assert await generate_action_code(s, date(2026, 5, 1)) == "ACT-2026-0001"

    async def test_continues_after_highest(self, sessions, finance, make_action):
        await make_action(finance, action_code="ACT-2026-0041")
        await make_action(finance, action_code="ACT-2025-0099")

        async with sessions() as s:
            assert await generate_action_code(s, date(2026, 1, 2)) == "ACT-2026-0042"
            assert await generate_action_code(s, date(2027, 1, 2)) == "ACT-2027-0001"


@pytest.mark.api
@pytest.mark.asyncio
class TestActionCrud:

    async def test_create(
        self, client: AsyncClient, regular_user, user_headers, finance, grant, sessions
    ):
        await grant(regular_user, finance, can_create_actions=True)

        response = await client.post("/api/actions/", json=_payload(), headers=user_headers)

        assert response.status_code == 201
        action = response.json()["action"]
        assert action["action_code"] == f"ACT-{date.today().year}-0001"
        assert action["ministry"] == "Finance"
        assert action["ministry_id"] == finance.id
        assert action["status"] == "new"
        assert action["created_by"] == regular_user.id

        (row,) = await _history(sessions, action["id"])
        assert row.action_type == "created"
        assert row.user_id == regular_user.id
        assert row.changes["method"] == "POST"
        assert row.changes["body"]["action_title"] == _payload()["action_title"]

    async def test_create_by_ministry_abbrev(
        self, client: AsyncClient, admin_headers, ministries
    ):
        response = await client.post(
            "/api/actions/", json=_payload(ministry="jus"), headers=admin_headers
        )

        assert response.status_code == 201
        assert response.json()["action"]["ministry"] == "Justice"

    async def test_create_requires_capability(
        self, client: AsyncClient, regular_user, user_headers, finance, grant, sessions
    ):
        await grant(regular_user, finance, can_view_actions=True)

        response = await client.post("/api/actions/", json=_payload(), headers=user_headers)

        assert response.status_code == 403
        assert response.json()["required"] == "create on Finance"
        async with sessions() as s:
            assert (await s.execute(select(Action))).first() is None

    async def test_create_rejects_inverted_dates(
        self, client: AsyncClient, admin_headers, finance
    ):
        response = await client.post(
            "/api/actions/",
            json=_payload(start_date="2026-06-30", end_date="2026-03-01"),
            headers=admin_headers,
        )

        assert response.status_code == 400

    async def test_read_by_code(self, client: AsyncClient, admin_headers, finance, make_action):
        action = await make_action(finance)

        response = await client.get(f"/api/actions/{action.action_code}", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["id"] == action.id

    async def test_plain_read_is_not_recorded(
        self, client: AsyncClient, admin_headers, finance, make_action, sessions
    ):
        action = await make_action(finance)

        await client.get(f"/api/actions/{action.id}", headers=admin_headers)

        assert await _history(sessions, action.id) == []

    async def test_view_is_recorded(
        self, client: AsyncClient, regular_user, user_headers, finance, grant,
        make_action, sessions,
    ):
        await grant(regular_user, finance, can_view_actions=True)
        action = await make_action(finance)

        response = await client.get(f"/api/actions/{action.id}/view", headers=user_headers)

        assert response.status_code == 200
        (row,) = await _history(sessions, action.id)
        assert row.action_type == "viewed"
        assert row.user_id == regular_user.id
        assert row.changes["body"] is None

    async def test_update(
        self, client: AsyncClient, regular_user, user_headers, finance, grant,
        make_action, sessions,
    ):
        await grant(regular_user, finance, can_view_actions=True, can_edit_actions=True)
        action = await make_action(finance)

        response = await client.put(
            f"/api/actions/{action.id}",
            json={"status": "in-progress", "responsible": "Mamadou Ba"},
            headers=user_headers,
        )

        assert response.status_code == 200
        updated = response.json()["action"]
        assert updated["status"] == "in-progress"
        assert updated["responsible"] == "Mamadou Ba"
        assert updated["action_title"] == action.action_title

        (row,) = await _history(sessions, action.id)
        assert row.action_type == "updated"
        assert row.changes["body"] == {"status": "in-progress", "responsible": "Mamadou Ba"}

    async def test_update_rejects_end_before_existing_start(
        self, client: AsyncClient, admin_headers, finance, make_action, sessions
    ):
        action = await make_action(finance)

        response = await client.put(
            f"/api/actions/{action.id}",
            json={"end_date": (action.start_date - timedelta(days=1)).isoformat()},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert await _history(sessions, action.id) == []
        async with sessions() as s:
            assert (await s.get(Action, action.id)).end_date == action.end_date

    async def test_move_needs_create_on_target(
        self, client: AsyncClient, regular_user, user_headers, ministries, grant, make_action
    ):
        finance, justice = ministries["Finance"], ministries["Justice"]
        await grant(regular_user, finance, can_edit_actions=True)
        await grant(regular_user, justice, can_view_actions=True)
        action = await make_action(finance)

        denied = await client.put(
            f"/api/actions/{action.id}",
            json={"ministry_id": justice.id},
            headers=user_headers,
        )
        assert denied.status_code == 403
        assert denied.json()["required"] == "create on Justice"

        await grant(regular_user, ministries["Santé"], can_create_actions=True)
        moved = await client.put(
            f"/api/actions/{action.id}",
            json={"ministry": "Santé"},
            headers=user_headers,
        )
        assert moved.status_code == 200
        assert moved.json()["action"]["ministry"] == "Santé"

    async def test_delete_keeps_history(
        self, client: AsyncClient, regular_user, user_headers, finance, grant,
        make_action, sessions,
    ):
        await grant(regular_user, finance, can_delete_actions=True)
        action = await make_action(finance)

        response = await client.delete(f"/api/actions/{action.id}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["deleted"] == {"id": action.id, "action_title": action.action_title}
        async with sessions() as s:
            assert await s.get(Action, action.id) is None
        (row,) = await _history(sessions, action.id)
        assert row.action_type == "deleted"

    async def test_history_endpoint(
        self, client: AsyncClient, admin_user, admin_headers, finance, make_action
    ):
        action = await make_action(finance)
        await client.get(f"/api/actions/{action.id}/view", headers=admin_headers)
        await client.put(
            f"/api/actions/{action.action_code}",
            json={"priority": "low"},
            headers=admin_headers,
        )

        response = await client.get(f"/api/actions/{action.id}/history", headers=admin_headers)

        assert response.status_code == 200
        types = [h["action_type"] for h in response.json()]
        assert types == ["updated", "viewed"]
        assert all(h["user_id"] == admin_user.id for h in response.json())

    async def test_audit_failure_does_not_fail_request(
        self, client: AsyncClient, admin_headers, finance, make_action, sessions, monkeypatch
    ):
        async def broken_snapshot(request):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr("app.utils.activity._request_snapshot", broken_snapshot)
        action = await make_action(finance)

        response = await client.put(
            f"/api/actions/{action.id}", json={"status": "done"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert await _history(sessions, action.id) == []
        async with sessions() as s:
            assert (await s.get(Action, action.id)).status == "done"


@pytest.mark.api
@pytest.mark.asyncio
class TestActionListing:

    async def test_list_is_scoped(
        self, client: AsyncClient, regular_user, user_headers, ministries, grant, make_action
    ):
        await grant(regular_user, ministries["Finance"], can_view_actions=True)
        await grant(regular_user, ministries["Santé"], can_view_team=True)
        own = await make_action(ministries["Finance"])
        await make_action(ministries["Santé"])
        await make_action(ministries["Justice"])

        response = await client.get("/api/actions/", headers=user_headers)

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [own.id]

    async def test_list_without_any_permission_is_empty(
        self, client: AsyncClient, user_headers, finance, make_action
    ):
        await make_action(finance)

        response = await client.get("/api/actions/", headers=user_headers)

        assert response.status_code == 200
        assert response.json() == []

    async def test_list_filtered_by_other_ministry_is_denied(
        self, client: AsyncClient, regular_user, user_headers, ministries, grant
    ):
        await grant(regular_user, ministries["Finance"], can_view_actions=True)

        response = await client.get(
            "/api/actions/", params={"ministry": "Justice"}, headers=user_headers
        )

        assert response.status_code == 403

    async def test_admin_filters(
        self, client: AsyncClient, admin_headers, ministries, make_action
    ):
        await make_action(ministries["Finance"], status="done")
        target = await make_action(ministries["Finance"], responsible="Khady Sarr")
        await make_action(ministries["Justice"], responsible="Khady Sarr")

        response = await client.get(
            "/api/actions/",
            params={"ministry": "Finance", "responsible": "Khady Sarr", "status": "new"},
            headers=admin_headers,
        )

        assert [a["id"] for a in response.json()] == [target.id]

    async def test_stats_scoped_to_reports(
        self, client: AsyncClient, regular_user, user_headers, ministries, grant, make_action
    ):
        await grant(regular_user, ministries["Finance"], can_view_reports=True)
        await grant(regular_user, ministries["Justice"], can_view_actions=True)
        today = date.today()
        await make_action(ministries["Finance"], status="done")
        await make_action(ministries["Finance"], status="in-progress")
        await make_action(
            ministries["Finance"],
            start_date=today - timedelta(days=20),
            end_date=today - timedelta(days=1),
        )
        await make_action(ministries["Justice"])

        response = await client.get("/api/actions/stats", headers=user_headers)

        assert response.status_code == 200
        assert response.json() == {
            "total": 3, "completed": 1, "in_progress": 1, "new": 1, "overdue": 1,
        }

    async def test_stats_overview(
        self, client: AsyncClient, admin_headers, ministries, make_action
    ):
        today = date.today()
        await make_action(ministries["Finance"], priority="high", end_date=today + timedelta(days=3))
        await make_action(ministries["Finance"], priority="low", status="done")
        await make_action(ministries["Santé"], priority="high")

        response = await client.get("/api/actions/stats/overview", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["overview"]["total"] == 3
        assert data["by_ministry"][0] == {"ministry": "Finance", "total": 2, "completed": 1}
        assert {p["priority"]: p["count"] for p in data["by_priority"]} == {"high": 2, "low": 1}
        assert [d["end_date"] for d in data["upcoming_deadlines"]] == [
            (today + timedelta(days=3)).isoformat()
        ]

    async def test_export_csv(
        self, client: AsyncClient, regular_user, user_headers, ministries, grant, make_action
    ):
        await grant(regular_user, ministries["Finance"], can_export_data=True)
        await make_action(
            ministries["Finance"],
            action_title='Budget "2027"',
            start_date=date(2026, 1, 5),
            end_date=date(2026, 12, 31),
        )
        await make_action(ministries["Justice"], action_title="Hidden")

        response = await client.get("/api/actions/export/csv", headers=user_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "actions_export.csv" in response.headers["content-disposition"]
        assert response.content.startswith(b"\xef\xbb\xbf")

        text = response.content.decode("utf-8-sig")
        lines = text.strip().split("\n")
        assert lines[0].startswith('"ID","Code","Ministry"')
        assert len(lines) == 2
        assert '"Budget ""2027"""' in lines[1]
        assert '"05/01/2026","31/12/2026"' in lines[1]
        assert "Hidden" not in text

    async def test_export_without_capability_is_empty(
        self, client: AsyncClient, regular_user, user_headers, finance, grant, make_action
    ):
        await grant(regular_user, finance, can_view_actions=True)
        await make_action(finance)

        response = await client.get("/api/actions/export/csv", headers=user_headers)

        assert response.status_code == 200
        assert len(response.content.decode("utf-8-sig").strip().split("\n")) == 1
