"""Sequential code generation for actions.

Format: ACT-{year}-{seq:4}, e.g. ACT-2026-0007. The sequence restarts every
calendar year and continues from the highest existing code of that year, so
deleting an action never causes a code to be reissued.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.action import Action

ACTION_PREFIX = "ACT"
SEQ_WIDTH = 4


def _prefix(year: int) -> str:
    return f"{ACTION_PREFIX}-{year}-"


async def generate_action_code(db: AsyncSession, today: date | None = None) -> str:
    """Next free action code for the current year."""
    prefix = _prefix((today or date.today()).year)

    result = await db.execute(
        select(Action.action_code)
        .where(Action.action_code.like(f"{prefix}%"))
        .order_by(Action.action_code.desc())
        .limit(1)
    )
    last = result.scalar_one_or_none()

    seq = 1
    if last:
        try:
            seq = int(last[len(prefix):]) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:0{SEQ_WIDTH}d}"
