from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional
from uuid import uuid4
from fastapi import WebSocket

from snappy.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Connection:
    """하나의 WebSocket 세션. add-user 이벤트를 받기 전까지 user_id는 None"""
    session_id: str
    websocket: WebSocket
    user_id: Optional[int] = None
    connected_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_registered(self) -> bool:
        return self.user_id is not None


class ConnectionManager:
    def __init__(self):
        # 세션별 연결: {session_id: Connection}
        self.connections: Dict[str, Connection] = {}

    async def connect(self, websocket: WebSocket) -> Connection:
        """새로운 WebSocket 연결을 수락하고 세션 ID를 발급합니다."""
        await websocket.accept()
        connection = Connection(session_id=uuid4().hex, websocket=websocket)
        self.connections[connection.session_id] = connection
        logger.info(f"Session {connection.session_id} connected")
        return connection

    def remove(self, session_id: str) -> Optional[Connection]:
        """연결 정보를 제거합니다. 이후 이 세션으로는 이벤트가 전송되지 않습니다."""
        connection = self.connections.pop(session_id, None)
        if connection:
            logger.info(f"Session {session_id} removed (user {connection.user_id})")
        return connection

    def get(self, session_id: str) -> Optional[Connection]:
        return self.connections.get(session_id)

    async def send(self, session_id: str, data: dict) -> bool:
        """특정 세션에 JSON 프레임을 전송합니다."""
        connection = self.connections.get(session_id)
        if connection is None:
            return False

        try:
            await connection.websocket.send_json(data)
            return True
        except Exception as e:
            # 끊어진 연결은 수신 루프의 finally에서 정리됨
            logger.error(f"Failed to send '{data.get('event')}' to session {session_id}: {e}")
            return False

    async def send_many(self, session_ids: Iterable[str], data: dict) -> int:
        """여러 세션에 전송하고 성공한 수를 반환합니다."""
        delivered = 0
        for session_id in list(session_ids):
            if await self.send(session_id, data):
                delivered += 1
        return delivered

    async def broadcast(self, data: dict, exclude: Optional[str] = None) -> int:
        """exclude를 제외한 모든 세션에 브로드캐스트합니다."""
        targets = [sid for sid in self.connections if sid != exclude]
        return await self.send_many(targets, data)

    @property
    def connection_count(self) -> int:
        return len(self.connections)
