"""Action routes: CRUD, history, statistics and CSV export.

Every route is gated by a ministry capability (app.auth.ministry_access).
Single-action routes resolve the ministry from the addressed action; the
listing, statistics and export routes are narrowed to the caller's
authorized ministries.

Endpoints:
    GET    /api/actions/                 list (filters: ministry, status, responsible)
    GET    /api/actions/stats            status counts
    GET    /api/actions/stats/overview   counts, per ministry, per priority, deadlines
    GET    /api/actions/export/csv       CSV download
    GET    /api/actions/{id}             one action (id or action code)
    GET    /api/actions/{id}/view        same, recorded as "viewed"
    GET    /api/actions/{id}/history     audit trail of one action
    POST   /api/actions/                 create
    PUT    /api/actions/{id}             partial update
    DELETE /api/actions/{id}             delete
"""

import enum
import logging
from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.ministry_access import (
    MinistryAccess,
    ensure_capability,
    require_ministry_access,
    resolve_ministry,
)
from app.auth.permissions import Capability
from app.database import get_db, utcnow
from app.middleware.exceptions import BadRequestError, ResourceNotFoundError
from app.models.action import Action, ActionHistory, ActionStatus
from app.models.ministry import Ministry
from app.schemas.action import (
    ActionCreate,
    ActionDeleted,
    ActionEnvelope,
    ActionHistoryOut,
    ActionOut,
    ActionUpdate,
    MinistryCount,
    PriorityCount,
    StatsOverview,
    StatusCounts,
    UpcomingDeadline,
)
from app.utils.activity import record_history
from app.utils.csv_export import build_csv, csv_response
from app.utils.numbering import generate_action_code

logger = logging.getLogger(__name__)

router = APIRouter()

MINISTRY_FIELDS = {"ministry", "ministry_id"}
REQUIRED_FIELDS = {
    "action_title", "responsible", "priority", "status", "start_date", "end_date",
}


# ── Helpers ──────────────────────────────────────────────────

async def get_action(db: AsyncSession, ref: str) -> Action:
    """Look an action up by numeric id or by action code."""
    condition = Action.action_code == ref
    if ref.isdigit():
        condition = or_(Action.id == int(ref), condition)
    result = await db.execute(select(Action).where(condition))
    action = result.scalars().first()
    if action is None:
        raise ResourceNotFoundError("Action", ref)
    return action


async def action_ministry_id(db: AsyncSession, ref: str) -> int:
    return (await get_action(db, ref)).ministry_id


def _column_values(data: dict) -> dict:
    return {
        key: value.value if isinstance(value, enum.Enum) else value
        for key, value in data.items()
    }


def _status_counts():
    today = date.today()
    done = ActionStatus.DONE.value
    return (
        func.count(Action.id).label("total"),
        func.count(case((Action.status == done, 1))).label("completed"),
        func.count(case((Action.status == ActionStatus.IN_PROGRESS.value, 1))).label("in_progress"),
        func.count(case((Action.status == ActionStatus.NEW.value, 1))).label("new"),
        func.count(case(((Action.end_date < today) & (Action.status != done), 1))).label("overdue"),
    )


def _narrow(stmt, access: MinistryAccess):
    """Apply the caller's scope, plus the explicit ministry filter if any."""
    stmt = access.scope(stmt, Action.ministry_id)
    if access.ministry is not None:
        stmt = stmt.where(Action.ministry_id == access.ministry.id)
    return stmt


async def _status_overview(db: AsyncSession, access: MinistryAccess) -> StatusCounts:
    row = (await db.execute(_narrow(select(*_status_counts()), access))).one()
    return StatusCounts(**row._mapping)


# ── Collection routes ───────────────────────────────────────

@router.get("/", response_model=list[ActionOut])
async def list_actions(
    status_filter: str | None = Query(None, alias="status"),
    responsible: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access("read", collection=True)),
):
    stmt = _narrow(select(Action), access)
    if status_filter:
        stmt = stmt.where(Action.status == status_filter)
    if responsible:
        stmt = stmt.where(Action.responsible == responsible)

    result = await db.execute(stmt.order_by(Action.created_at.desc(), Action.id.desc()))
    return [ActionOut.model_validate(a) for a in result.scalars().unique().all()]


@router.get("/stats", response_model=StatusCounts)
async def action_stats(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "view reports", capability=Capability.VIEW_REPORTS, collection=True,
    )),
):
    return await _status_overview(db, access)


@router.get("/stats/overview", response_model=StatsOverview)
async def stats_overview(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "view reports", capability=Capability.VIEW_REPORTS, collection=True,
    )),
):
    overview = await _status_overview(db, access)
    done = ActionStatus.DONE.value

    total = func.count(Action.id).label("total")
    by_ministry = await db.execute(
        _narrow(
            select(
                Ministry.name,
                total,
                func.count(case((Action.status == done, 1))).label("completed"),
            ).join(Ministry, Ministry.id == Action.ministry_id),
            access,
        )
        .group_by(Ministry.name)
        .order_by(total.desc(), Ministry.name)
    )

    by_priority = await db.execute(
        _narrow(select(Action.priority, func.count(Action.id)), access)
        .group_by(Action.priority)
        .order_by(Action.priority)
    )

    today = date.today()
    upcoming = await db.execute(
        _narrow(select(Action), access)
        .where(
            Action.status != done,
            Action.end_date >= today,
            Action.end_date <= today + timedelta(days=7),
        )
        .order_by(Action.end_date.asc())
        .limit(5)
    )

    return StatsOverview(
        overview=overview,
        by_ministry=[
            MinistryCount(ministry=name, total=count, completed=completed)
            for name, count, completed in by_ministry.all()
        ],
        by_priority=[
            PriorityCount(priority=priority, count=count)
            for priority, count in by_priority.all()
        ],
        upcoming_deadlines=[
            UpcomingDeadline.model_validate(a, from_attributes=True)
            for a in upcoming.scalars().unique().all()
        ],
    )


EXPORT_HEADERS = (
    "ID", "Code", "Ministry", "Title", "Description", "Responsible",
    "Priority", "Start date", "End date", "Status",
)


@router.get("/export/csv")
async def export_actions_csv(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "export", capability=Capability.EXPORT_DATA, collection=True,
    )),
):
    result = await db.execute(
        _narrow(select(Action), access).order_by(Action.created_at.desc(), Action.id.desc())
    )
    rows = (
        (
            a.id,
            a.action_code,
            a.ministry_name,
            a.action_title,
            a.description,
            a.responsible,
            a.priority,
            a.start_date.strftime("%d/%m/%Y"),
            a.end_date.strftime("%d/%m/%Y"),
            a.status,
        )
        for a in result.scalars().unique().all()
    )
    return csv_response(build_csv(EXPORT_HEADERS, rows), "actions_export.csv")


# ── Single action ────────────────────────────────────────────

@router.get("/{action_id}", response_model=ActionOut)
async def read_action(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    _access: MinistryAccess = Depends(require_ministry_access(
        "read", path_param="action_id", lookup=action_ministry_id,
    )),
):
    return ActionOut.model_validate(await get_action(db, action_id))


@router.get("/{action_id}/view", response_model=ActionOut)
@record_history("viewed", id_param="action_id")
async def view_action(
    action_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "read", path_param="action_id", lookup=action_ministry_id,
    )),
):
    return ActionOut.model_validate(await get_action(db, action_id))


@router.get("/{action_id}/history", response_model=list[ActionHistoryOut])
async def action_history(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    _access: MinistryAccess = Depends(require_ministry_access(
        "read", path_param="action_id", lookup=action_ministry_id,
    )),
):
    action = await get_action(db, action_id)
    result = await db.execute(
        select(ActionHistory)
        .where(
            ActionHistory.entity_type == "action",
            ActionHistory.entity_id.in_([str(action.id), action.action_code]),
        )
        .order_by(ActionHistory.performed_at.desc(), ActionHistory.id.desc())
    )
    return [ActionHistoryOut.model_validate(h) for h in result.scalars().all()]


@router.post("/", response_model=ActionEnvelope, status_code=status.HTTP_201_CREATED)
@record_history("created")
async def create_action(
    body: ActionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access("create")),
):
    ministry = access.ministry or await resolve_ministry(
        db, body.ministry if body.ministry not in (None, "") else body.ministry_id
    )

    data = _column_values(body.model_dump(exclude=MINISTRY_FIELDS))
    action = Action(
        **data,
        action_code=await generate_action_code(db),
        ministry_id=ministry.id,
        created_by=access.identity.user_id,
    )
    action.ministry = ministry
    db.add(action)
    await db.flush()

    logger.info(
        f"Action {action.action_code} created in {ministry.name}",
        extra={"user_id": access.identity.user_id},
    )
    return ActionEnvelope(message="Action created", action=ActionOut.model_validate(action))


@router.put("/{action_id}", response_model=ActionEnvelope)
@record_history("updated", id_param="action_id")
async def update_action(
    action_id: str,
    body: ActionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "update", path_param="action_id", lookup=action_ministry_id,
    )),
):
    action = await get_action(db, action_id)
    updates = body.model_dump(exclude_unset=True)

    target_ref = updates.get("ministry")
    if target_ref in (None, ""):
        target_ref = updates.get("ministry_id")
    if target_ref not in (None, ""):
        target = await resolve_ministry(db, target_ref)
        if target.id != action.ministry_id:
            # Moving an action creates it in the target ministry.
            await ensure_capability(
                db, access.identity, target, "create", Capability.CREATE_ACTIONS
            )
            action.ministry_id = target.id
            action.ministry = target

    for key, value in _column_values(updates).items():
        if key in MINISTRY_FIELDS or (value is None and key in REQUIRED_FIELDS):
            continue
        setattr(action, key, value if key != "stakeholders" else value or [])

    if action.end_date < action.start_date:
        raise BadRequestError("end_date must be on or after start_date")

    action.updated_at = utcnow()
    await db.flush()

    logger.info(f"Action {action.action_code} updated", extra={"user_id": access.identity.user_id})
    return ActionEnvelope(message="Action updated", action=ActionOut.model_validate(action))


@router.delete("/{action_id}", response_model=ActionDeleted)
@record_history("deleted", id_param="action_id")
async def delete_action(
    action_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "delete", path_param="action_id", lookup=action_ministry_id,
    )),
):
    action = await get_action(db, action_id)
    deleted = {"id": action.id, "action_title": action.action_title}
    await db.delete(action)
    await db.flush()

    logger.info(f"Action {action.action_code} deleted", extra={"user_id": access.identity.user_id})
    return ActionDeleted(message="Action deleted", deleted=deleted)
