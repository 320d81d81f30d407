"""
Compyy Backend — Public Site Statistics
=========================================
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.models.user import User
from compyy.schemas.community import StatsResponse
from compyy.services.game_service import game_service


def format_stat(value: int) -> str:
    """1234 -> '1.2K+', 2500000 -> '2.5M+', 42 -> '42+'."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M+"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K+"
    return f"{value}+"


async def site_stats(db: AsyncSession) -> StatsResponse:
    teachers = (await db.execute(select(func.count(User.id)))).scalar() or 0
    games, plays = await game_service.counts(db)
    return StatsResponse(
        active_teachers=format_stat(teachers),
        games_created=format_stat(games),
        students_engaged=format_stat(plays),
    )
