"""
Room Membership Manager

그룹 브로드캐스트 채널(room)별로 구독 중인 세션을 관리합니다.
room은 첫 join 시 생성되고, 마지막 세션이 나가면 제거됩니다.
"""

from typing import Dict, Set

from snappy.core.logging import get_logger

logger = get_logger(__name__)


class RoomMembershipManager:
    def __init__(self):
        # {group_id: {session_id}}
        self._rooms: Dict[int, Set[str]] = {}
        # {session_id: {group_id}}
        self._session_rooms: Dict[str, Set[int]] = {}

    def join(self, session_id: str, room_id: int) -> bool:
        """세션을 room에 추가합니다. 이미 멤버면 False (멱등)"""
        members = self._rooms.setdefault(room_id, set())
        if session_id in members:
            return False
        members.add(session_id)
        self._session_rooms.setdefault(session_id, set()).add(room_id)
        return True

    def leave(self, session_id: str, room_id: int) -> bool:
        members = self._rooms.get(room_id)
        if not members or session_id not in members:
            return False

        members.discard(session_id)
        if not members:
            del self._rooms[room_id]

        joined = self._session_rooms.get(session_id)
        if joined is not None:
            joined.discard(room_id)
            if not joined:
                del self._session_rooms[session_id]
        return True

    def leave_all(self, session_id: str) -> Set[int]:
        """연결 해제 시 세션이 속한 모든 room에서 제거합니다."""
        joined = set(self._session_rooms.get(session_id, ()))
        for room_id in joined:
            self.leave(session_id, room_id)
        if joined:
            logger.debug(f"Session {session_id} left rooms {sorted(joined)}")
        return joined

    def members(self, room_id: int) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    def rooms_of(self, session_id: str) -> Set[int]:
        return set(self._session_rooms.get(session_id, ()))

    def is_member(self, session_id: str, room_id: int) -> bool:
        return session_id in self._rooms.get(room_id, ())

    @property
    def room_count(self) -> int:
        return len(self._rooms)
