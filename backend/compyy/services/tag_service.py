"""
Compyy Backend — Tag Usage Counts
===================================

Tag rows count how many PUBLIC games and templates carry a name. Callers
increment when content becomes public (or gains a tag while public) and
decrement when it is hidden, deleted or loses the tag.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.models.tag import Tag

logger = logging.getLogger(__name__)

MAX_TAG_LENGTH = 50


def normalize_tags(names: Optional[Iterable[str]]) -> List[str]:
    """Trim, lowercase, drop empties and duplicates; keeps first-seen order."""
    result: List[str] = []
    for name in names or []:
        if not isinstance(name, str):
            continue
        cleaned = name.strip().lower()[:MAX_TAG_LENGTH]
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


class TagService:

    async def increment(self, db: AsyncSession, names: Iterable[str]) -> None:
        for name in normalize_tags(names):
            tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
            if tag is None:
                db.add(Tag(name=name, usage_count=1))
            else:
                tag.usage_count = tag.usage_count + 1
        await db.flush()

    async def decrement(self, db: AsyncSession, names: Iterable[str]) -> None:
        for name in normalize_tags(names):
            # delete first: a count of 2 must become 1, not be removed
            await db.execute(delete(Tag).where(Tag.name == name, Tag.usage_count <= 1))
            await db.execute(
                update(Tag).where(Tag.name == name, Tag.usage_count > 1)
                .values(usage_count=Tag.usage_count - 1)
            )
        await db.flush()

    async def update_from_changes(
        self, db: AsyncSession, old: Iterable[str], new: Iterable[str]
    ) -> None:
        old_set, new_list = set(normalize_tags(old)), normalize_tags(new)
        added = [name for name in new_list if name not in old_set]
        removed = [name for name in old_set if name not in new_list]
        if added:
            await self.increment(db, added)
        if removed:
            await self.decrement(db, removed)
        if added or removed:
            logger.debug("Tag usage updated: +%s -%s", added, removed)

    async def sync_visibility(
        self,
        db: AsyncSession,
        was_public: bool,
        old_tags: Iterable[str],
        is_public: bool,
        new_tags: Iterable[str],
    ) -> None:
        """Adjust counts for a content change where visibility and tags may both move."""
        if was_public and is_public:
            await self.update_from_changes(db, old_tags, new_tags)
        elif was_public:
            await self.decrement(db, old_tags)
        elif is_public:
            await self.increment(db, new_tags)

    async def popular(self, db: AsyncSession, limit: int = 20) -> List[Tag]:
        result = await db.execute(
            select(Tag).order_by(Tag.usage_count.desc(), Tag.name.asc()).limit(limit)
        )
        return list(result.scalars().all())


# ── Singleton Instance ────────────────────────────────────────────────────
tag_service = TagService()
