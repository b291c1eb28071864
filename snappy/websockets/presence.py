"""
Presence Registry

접속 중인 사용자 ID -> WebSocket 세션 ID 매핑을 관리합니다.
1:1 메시지를 실시간으로 밀어줄 수 있는지 판단하는 유일한 기준입니다.

단일 프로세스 asyncio 모델에서 동작하므로 register/lookup/unregister 사이에 별도 락이 없습니다.
스레드 기반으로 옮기거나 여러 서버 프로세스로 확장할 경우 Redis 같은 공유 저장소 구현이 필요합니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from snappy.core.errors import PersistenceError
from snappy.core.logging import get_logger
from snappy.domain.events import UserOnlineStatusChanged
from snappy.infrastructure.kafka import kafka_config, publish_event
from snappy.schemas.events import user_status_change
from snappy.services import user_service

logger = get_logger(__name__)


class PresenceRegistry(ABC):
    """사용자 접속 상태 레지스트리 인터페이스"""

    @abstractmethod
    async def register(self, user_id: int, session_id: str) -> None:
        """매핑을 추가하거나 덮어씁니다 (마지막 연결 우선)."""

    @abstractmethod
    def lookup(self, user_id: int) -> Optional[str]:
        """현재 세션 ID. 접속 중이 아니면 None"""

    @abstractmethod
    async def unregister(self, session_id: str) -> Optional[int]:
        """세션에 매핑된 사용자를 제거합니다. 매핑이 없으면 아무 것도 하지 않습니다."""

    @abstractmethod
    def online_user_ids(self) -> List[int]:
        """현재 접속 중인 사용자 ID 목록"""


class InMemoryPresenceRegistry(PresenceRegistry):
    """
    프로세스 내 dict 기반 구현

    Args:
        manager: 상태 변경을 다른 세션에 브로드캐스트할 ConnectionManager
        users: persist_presence(user_id, is_online, last_seen)를 제공하는 사용자 저장소
    """

    def __init__(self, manager, users=user_service):
        self._manager = manager
        self._users = users
        self._sessions: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    async def register(self, user_id: int, session_id: str) -> None:
        previous = self._sessions.get(user_id)
        self._sessions[user_id] = session_id
        if previous and previous != session_id:
            logger.info(f"User {user_id} session {previous} superseded by {session_id}")

        if not await self._persist(user_id, True):
            return

        # 저장 도중 연결이 끊기거나 다른 세션으로 교체되었으면 온라인 알림을 보내지 않음
        if self._sessions.get(user_id) != session_id:
            return

        await self._announce(user_id, True, None, exclude=session_id)

    def lookup(self, user_id: int) -> Optional[str]:
        return self._sessions.get(user_id)

    async def unregister(self, session_id: str) -> Optional[int]:
        # 사용자 기준 매핑이므로 값으로 검색 (O(n), 수백 명 규모에서는 충분)
        user_id = next((uid for uid, sid in self._sessions.items() if sid == session_id), None)
        if user_id is None:
            return None

        del self._sessions[user_id]
        last_seen = datetime.utcnow()

        if not await self._persist(user_id, False, last_seen):
            return user_id

        if user_id in self._sessions:
            # 오프라인 저장 중에 새 세션으로 재접속: 온라인 상태를 다시 기록
            logger.info(f"User {user_id} reconnected while going offline; restoring online flag")
            await self._persist(user_id, True)
            return user_id

        await self._announce(user_id, False, last_seen, exclude=session_id)
        return user_id

    def online_user_ids(self) -> List[int]:
        return sorted(self._sessions)

    async def _persist(self, user_id: int, is_online: bool, last_seen: Optional[datetime] = None) -> bool:
        try:
            await self._users.persist_presence(user_id, is_online, last_seen)
            return True
        except PersistenceError as e:
            logger.error(f"Failed to persist presence for user {user_id} (online={is_online}): {e}")
            return False

    async def _announce(self, user_id: int, is_online: bool, last_seen: Optional[datetime], exclude: str):
        await self._manager.broadcast(user_status_change(user_id, is_online, last_seen), exclude=exclude)
        await publish_event(
            kafka_config.topic_user_events,
            UserOnlineStatusChanged(
                user_id=user_id,
                is_online=is_online,
                last_seen=last_seen.isoformat() if last_seen else None,
                timestamp=datetime.utcnow()
            )
        )
