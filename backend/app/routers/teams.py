"""Team member routes: list, get, create, update, delete, import, export.

Reads need `can_view_team`, mutations `can_manage_team` on the member's
ministry. Members without a ministry are only reachable by admins.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError
from sqlalchemy import and_, case, false, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity, get_identity
from app.auth.ministry_access import (
    MinistryAccess,
    ensure_capability,
    has_capability,
    require_ministry_access,
    resolve_ministry,
)
from app.auth.permissions import Capability
from app.database import get_db
from app.middleware.exceptions import (
    BadRequestError,
    ResourceNotFoundError,
    describe_integrity_error,
)
from app.models.action import Action, ActionStatus
from app.models.ministry import Ministry
from app.models.team_member import TeamMember
from app.schemas.team import (
    DeletedMember,
    ImportRowError,
    MemberDeleted,
    MemberEnvelope,
    MemberPerformance,
    ResponsibleOut,
    TeamImportRequest,
    TeamImportResult,
    TeamMemberCreate,
    TeamMemberOut,
    TeamMemberUpdate,
    TeamPerformance,
    TopPerformer,
)
from app.utils.activity import record_history
from app.utils.csv_export import build_csv, csv_response

logger = logging.getLogger(__name__)

router = APIRouter()

MINISTRY_FIELDS = {"ministry", "ministry_id"}


async def get_member(db: AsyncSession, member_id: str) -> TeamMember:
    member = await db.get(TeamMember, int(member_id)) if member_id.isdigit() else None
    if member is None:
        raise ResourceNotFoundError("Team member", member_id)
    return member


async def member_ministry_id(db: AsyncSession, member_id: str) -> int | None:
    return (await get_member(db, member_id)).ministry_id


async def _ensure_email_free(db: AsyncSession, email: str | None, exclude_id: int | None = None):
    if not email:
        return
    stmt = select(TeamMember.id).where(TeamMember.email == email)
    if exclude_id is not None:
        stmt = stmt.where(TeamMember.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise BadRequestError("A team member with this email already exists", "DUPLICATE_RECORD")


def _ministry_ref(data: dict):
    ref = data.get("ministry")
    if ref in (None, ""):
        ref = data.get("ministry_id")
    return None if ref in (None, "") else ref


def _narrow(stmt, access: MinistryAccess):
    stmt = access.scope(stmt, TeamMember.ministry_id)
    if access.ministry is not None:
        stmt = stmt.where(TeamMember.ministry_id == access.ministry.id)
    return stmt


def _visible_actions(access: MinistryAccess):
    """Join condition from a member to the actions counted in its stats."""
    condition = Action.responsible == TeamMember.name
    if access.ministry is not None:
        return and_(condition, Action.ministry_id == access.ministry.id)
    if access.ministry_ids is None:
        return condition
    if not access.ministry_ids:
        return and_(condition, false())
    return and_(condition, Action.ministry_id.in_(sorted(access.ministry_ids)))


# ── Collection routes ───────────────────────────────────────

@router.get("/", response_model=list[TeamMemberOut])
async def list_members(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "view team", capability=Capability.VIEW_TEAM, collection=True,
    )),
):
    result = await db.execute(_narrow(select(TeamMember), access).order_by(TeamMember.name))
    return [TeamMemberOut.model_validate(m) for m in result.scalars().all()]


@router.get("/stats/performance", response_model=TeamPerformance)
async def team_performance(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "view reports", capability=Capability.VIEW_REPORTS, collection=True,
    )),
):
    done = ActionStatus.DONE.value
    total = func.count(Action.id).label("total_actions")
    stmt = (
        select(
            TeamMember.id,
            TeamMember.name,
            TeamMember.position,
            Ministry.name.label("ministry"),
            total,
            func.count(case((Action.status == done, 1))).label("completed_actions"),
            func.count(
                case((Action.status == ActionStatus.IN_PROGRESS.value, 1))
            ).label("in_progress_actions"),
            func.count(
                case(((Action.end_date < date.today()) & (Action.status != done), 1))
            ).label("overdue_actions"),
        )
        .select_from(TeamMember)
        .outerjoin(Ministry, Ministry.id == TeamMember.ministry_id)
        .outerjoin(Action, _visible_actions(access))
        .group_by(TeamMember.id, TeamMember.name, TeamMember.position, Ministry.name)
        .order_by(total.desc(), TeamMember.name)
    )
    result = await db.execute(_narrow(stmt, access))

    member_stats = []
    for row in result.all():
        values = dict(row._mapping)
        count = values["total_actions"]
        values["completion_rate"] = (
            round(values["completed_actions"] * 100 / count, 2) if count else 0.0
        )
        member_stats.append(MemberPerformance(**values))

    ranked = sorted(
        (m for m in member_stats if m.completed_actions > 0),
        key=lambda m: m.completed_actions,
        reverse=True,
    )
    top = [
        TopPerformer(name=m.name, ministry=m.ministry, completed_count=m.completed_actions)
        for m in ranked[:5]
    ]
    return TeamPerformance(member_stats=member_stats, top_performers=top)


@router.get("/list/responsables", response_model=list[ResponsibleOut])
async def list_responsibles(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "view team", capability=Capability.VIEW_TEAM, collection=True,
    )),
):
    result = await db.execute(_narrow(select(TeamMember), access).order_by(TeamMember.name))
    seen: set[tuple[str, str | None]] = set()
    out = []
    for member in result.scalars().all():
        key = (member.name, member.ministry_name)
        if key not in seen:
            seen.add(key)
            out.append(ResponsibleOut(name=member.name, ministry=member.ministry_name))
    return out


EXPORT_HEADERS = ("Name", "Position", "Ministry", "Email", "Phone", "Notes")


@router.get("/export/csv")
async def export_members_csv(
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "export", capability=Capability.EXPORT_DATA, collection=True,
    )),
):
    result = await db.execute(_narrow(select(TeamMember), access).order_by(TeamMember.name))
    rows = (
        (m.name, m.position, m.ministry_name, m.email, m.phone, m.notes)
        for m in result.scalars().all()
    )
    return csv_response(build_csv(EXPORT_HEADERS, rows), "team_export.csv")


@router.post("/import", response_model=TeamImportResult)
async def import_members(
    body: TeamImportRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    """Create members row by row; a failing row is reported, not fatal."""
    imported: list[TeamMemberOut] = []
    errors: list[ImportRowError] = []

    for index, raw in enumerate(body.members, start=1):
        try:
            payload = TeamMemberCreate.model_validate(raw)
        except ValidationError as exc:
            message = "; ".join(err["msg"] for err in exc.errors())
            errors.append(ImportRowError(row=index, member=raw, error=message))
            continue

        ref = _ministry_ref(payload.model_dump())
        try:
            ministry = await resolve_ministry(db, ref) if ref is not None else None
            if ministry is None:
                allowed = identity.is_admin
            else:
                allowed = await has_capability(db, identity, ministry.id, Capability.MANAGE_TEAM)
            if not allowed:
                errors.append(ImportRowError(row=index, member=raw, error="Permission denied"))
                continue

            await _ensure_email_free(db, payload.email)
            async with db.begin_nested():
                member = TeamMember(
                    **payload.model_dump(exclude=MINISTRY_FIELDS),
                    ministry_id=ministry.id if ministry else None,
                )
                member.ministry = ministry
                db.add(member)
            imported.append(TeamMemberOut.model_validate(member))
        except (BadRequestError, ResourceNotFoundError) as exc:
            errors.append(ImportRowError(row=index, member=raw, error=exc.message))
        except IntegrityError as exc:
            logger.warning(f"Team import row {index} rejected by the database: {exc.orig}")
            message, _code = describe_integrity_error(exc)
            errors.append(ImportRowError(row=index, member=raw, error=message))

    logger.info(
        f"Team import: {len(imported)} created, {len(errors)} rejected",
        extra={"user_id": identity.user_id},
    )
    return TeamImportResult(
        message=f"Import finished: {len(imported)} members added, {len(errors)} errors",
        imported=imported,
        errors=errors,
    )


# ── Single member ────────────────────────────────────────────

@router.get("/{member_id}", response_model=TeamMemberOut)
async def read_member(
    member_id: str,
    db: AsyncSession = Depends(get_db),
    _access: MinistryAccess = Depends(require_ministry_access(
        "view team", capability=Capability.VIEW_TEAM,
        path_param="member_id", lookup=member_ministry_id,
    )),
):
    return TeamMemberOut.model_validate(await get_member(db, member_id))


@router.post("/", response_model=MemberEnvelope, status_code=status.HTTP_201_CREATED)
@record_history("created", entity_type="team_member")
async def create_member(
    body: TeamMemberCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "manage team", capability=Capability.MANAGE_TEAM,
    )),
):
    await _ensure_email_free(db, body.email)

    member = TeamMember(
        **body.model_dump(exclude=MINISTRY_FIELDS),
        ministry_id=access.ministry.id if access.ministry else None,
    )
    member.ministry = access.ministry
    db.add(member)
    await db.flush()

    logger.info(f"Team member {member.name} added", extra={"user_id": access.identity.user_id})
    return MemberEnvelope(message="Member added", member=TeamMemberOut.model_validate(member))


@router.put("/{member_id}", response_model=MemberEnvelope)
@record_history("updated", entity_type="team_member", id_param="member_id")
async def update_member(
    member_id: str,
    body: TeamMemberUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "manage team", capability=Capability.MANAGE_TEAM,
        path_param="member_id", lookup=member_ministry_id,
    )),
):
    member = await get_member(db, member_id)
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise BadRequestError("No changes supplied")

    ref = _ministry_ref(updates)
    if ref is not None:
        target = await resolve_ministry(db, ref)
        if target.id != member.ministry_id:
            await ensure_capability(
                db, access.identity, target, "manage team", Capability.MANAGE_TEAM
            )
            member.ministry_id = target.id
            member.ministry = target

    if updates.get("email") and updates["email"] != member.email:
        await _ensure_email_free(db, updates["email"], exclude_id=member.id)

    for key, value in updates.items():
        if key in MINISTRY_FIELDS or (key == "name" and not value):
            continue
        setattr(member, key, value)
    await db.flush()

    logger.info(f"Team member {member.id} updated", extra={"user_id": access.identity.user_id})
    return MemberEnvelope(message="Member updated", member=TeamMemberOut.model_validate(member))


@router.delete("/{member_id}", response_model=MemberDeleted)
@record_history("deleted", entity_type="team_member", id_param="member_id")
async def delete_member(
    member_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: MinistryAccess = Depends(require_ministry_access(
        "manage team", capability=Capability.MANAGE_TEAM,
        path_param="member_id", lookup=member_ministry_id,
    )),
):
    member = await get_member(db, member_id)

    assigned = await db.scalar(
        select(func.count(Action.id)).where(Action.responsible == member.name)
    ) or 0
    if assigned:
        raise BadRequestError(
            f"This member is responsible for {assigned} action(s); reassign them first"
        )

    deleted = DeletedMember(id=member.id, name=member.name)
    await db.delete(member)
    await db.flush()

    logger.info(f"Team member {deleted.name} deleted", extra={"user_id": access.identity.user_id})
    return MemberDeleted(message="Member deleted", deleted=deleted)
