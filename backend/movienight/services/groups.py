"""Read-only access to groups and memberships owned by the group service."""

from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.errors import ForbiddenError, NotFoundError
from movienight.models.tables import Group, GroupMember


class GroupDirectory:
    """Membership lookups used for round authorization and attendee defaults."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_group(self, group_id: str) -> Group:
        group = await self.db.get(Group, group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def get_members(self, group_id: str) -> list[GroupMember]:
        result = await self.db.execute(
            select(GroupMember)
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at, GroupMember.user_id)
        )
        return list(result.scalars())

    async def get_member(self, group_id: str, user_id: str) -> Optional[GroupMember]:
        result = await self.db.execute(
            select(GroupMember).where(
                and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            )
        )
        return result.scalar_one_or_none()

    async def require_member(self, group_id: str, user_id: str) -> GroupMember:
        member = await self.get_member(group_id, user_id)
        if member is None:
            raise ForbiddenError("Not a member of this group")
        return member

    async def display_names(self, group_id: str) -> dict[str, str]:
        """{user_id: display name}, falling back to the id."""
        return {m.user_id: m.display_name or m.user_id for m in await self.get_members(group_id)}
