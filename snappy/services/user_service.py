"""
User service layer for MySQL operations.

사용자의 온라인 상태(is_online)와 마지막 접속 시간(last_seen)을 저장합니다.
Presence Registry의 connect/disconnect 처리만 persist_presence를 호출합니다.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.core.errors import PersistenceError
from snappy.core.logging import get_logger, log_database_operation
from snappy.database import mysql
from snappy.models.users import User
from snappy.services import online_status_service

logger = get_logger(__name__)


async def find_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """사용자 ID로 조회"""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def update_user_presence(
    db: AsyncSession,
    user: User,
    is_online: bool,
    last_seen: Optional[datetime] = None
) -> User:
    """요청 세션 안에서 사용자 접속 상태를 수정합니다."""
    user.is_online = is_online
    if not is_online:
        user.last_seen = last_seen or datetime.utcnow()
    elif last_seen:
        user.last_seen = last_seen
    await db.commit()
    await db.refresh(user)
    return user


async def persist_presence(
    user_id: int,
    is_online: bool,
    last_seen: Optional[datetime] = None
) -> bool:
    """
    실시간 연결 처리용 접속 상태 저장.

    MySQL 쓰기가 실패하면 PersistenceError를 발생시킵니다.
    Redis 미러링은 best-effort이며 실패해도 예외를 발생시키지 않습니다.

    Returns:
        bool: 사용자 행이 존재하여 수정되었으면 True
    """
    values = {"is_online": is_online}
    if last_seen is not None:
        values["last_seen"] = last_seen

    try:
        async with mysql.session_scope() as db:
            result = await db.execute(
                update(User).where(User.id == user_id).values(**values)
            )
            affected = result.rowcount
    except SQLAlchemyError as e:
        raise PersistenceError("persist_presence", e) from e

    log_database_operation(logger, "update", "users", affected_rows=affected, user_id=user_id, is_online=is_online)

    if is_online:
        await online_status_service.set_online(user_id)
    else:
        await online_status_service.set_offline(user_id, last_seen=last_seen)

    return affected > 0
