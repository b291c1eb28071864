"""
Group membership service (read-only)

그룹 멤버십 CRUD는 별도 계층이 담당하며, 실시간 처리에서는 멤버 여부만 조회합니다.
"""

from typing import List
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.core.errors import PersistenceError
from snappy.core.logging import get_logger
from snappy.database import mysql
from snappy.models.group_room_members import GroupRoomMember

logger = get_logger(__name__)


def _active_member_query(group_id: int, user_id: int):
    return select(GroupRoomMember.id).where(
        GroupRoomMember.group_room_id == group_id,
        GroupRoomMember.user_id == user_id,
        GroupRoomMember.is_active.is_(True)
    )


async def is_user_in_group(db: AsyncSession, group_id: int, user_id: int) -> bool:
    """요청 세션으로 멤버 여부 확인"""
    result = await db.execute(_active_member_query(group_id, user_id))
    return result.first() is not None


async def is_group_member(group_id: int, user_id: int) -> bool:
    """WebSocket 핸들러용 멤버 여부 확인 (자체 세션 사용)"""
    try:
        async with mysql.session_scope() as db:
            return await is_user_in_group(db, group_id, user_id)
    except SQLAlchemyError as e:
        raise PersistenceError("is_group_member", e) from e


async def get_user_group_ids(db: AsyncSession, user_id: int) -> List[int]:
    """사용자가 속한 그룹 ID 목록"""
    result = await db.execute(
        select(GroupRoomMember.group_room_id).where(
            GroupRoomMember.user_id == user_id,
            GroupRoomMember.is_active.is_(True)
        )
    )
    return [row[0] for row in result.all()]
