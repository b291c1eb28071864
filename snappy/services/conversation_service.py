"""
Conversation organization service

사용자가 자신의 대화 목록에서 상대별로 고정(pin), 보관(archive), 알림 끔(mute)을 토글합니다.
설정은 본인에게만 적용되며 상대의 설정이나 메시지 상태에는 영향을 주지 않습니다.
"""

from enum import Enum
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.core.logging import get_logger, log_database_operation
from snappy.models.conversation_settings import ConversationSetting

logger = get_logger(__name__)


class ConversationFlag(str, Enum):
    PIN = "pin"
    ARCHIVE = "archive"
    MUTE = "mute"

    @property
    def column(self) -> str:
        return _FLAG_COLUMNS[self]


_FLAG_COLUMNS = {
    ConversationFlag.PIN: "is_pinned",
    ConversationFlag.ARCHIVE: "is_archived",
    ConversationFlag.MUTE: "is_muted",
}


async def find_setting(db: AsyncSession, user_id: int, peer_id: int) -> Optional[ConversationSetting]:
    result = await db.execute(
        select(ConversationSetting).where(
            ConversationSetting.user_id == user_id,
            ConversationSetting.peer_id == peer_id
        )
    )
    return result.scalar_one_or_none()


async def get_settings(db: AsyncSession, user_id: int) -> List[ConversationSetting]:
    """사용자의 대화 설정 목록 (고정된 대화 먼저)"""
    result = await db.execute(
        select(ConversationSetting)
        .where(ConversationSetting.user_id == user_id)
        .order_by(ConversationSetting.is_pinned.desc(), ConversationSetting.peer_id)
    )
    return list(result.scalars().all())


async def toggle_flag(
    db: AsyncSession,
    user_id: int,
    peer_id: int,
    flag: ConversationFlag
) -> ConversationSetting:
    """
    대화 설정 플래그를 반전합니다. 설정 행이 없으면 모든 플래그 False로 만든 뒤 반전합니다.

    Returns:
        ConversationSetting: 수정된 설정
    """
    setting = await find_setting(db, user_id, peer_id)
    if setting is None:
        setting = ConversationSetting(user_id=user_id, peer_id=peer_id)
        db.add(setting)

    enabled = not bool(getattr(setting, flag.column))
    setattr(setting, flag.column, enabled)
    await db.commit()
    await db.refresh(setting)

    log_database_operation(
        logger, "upsert", "conversation_settings",
        affected_rows=1, user_id=user_id, peer_id=peer_id, flag=flag.value, enabled=enabled
    )
    return setting
