"""
WebSocket 실시간 모듈

주요 구성 요소:
- connection_manager: WebSocket 세션 관리
- presence: 사용자 -> 세션 매핑 (Presence Registry)
- rooms: 그룹 room 구독 관리
- delivery: 메시지 전달 상태 전이
- handlers: 이벤트 라우팅 (Event Router)
"""

from dataclasses import dataclass

from .connection_manager import Connection, ConnectionManager
from .presence import PresenceRegistry, InMemoryPresenceRegistry
from .rooms import RoomMembershipManager
from .delivery import DeliveryStateMachine
from .handlers import EventRouter


@dataclass
class Realtime:
    """앱 수명 동안 공유되는 실시간 구성 요소 묶음 (app.state.realtime)"""
    manager: ConnectionManager
    registry: PresenceRegistry
    rooms: RoomMembershipManager
    delivery: DeliveryStateMachine
    router: EventRouter


def create_realtime(users=None, messages=None, groups=None) -> Realtime:
    """
    실시간 구성 요소를 생성하고 서로 연결합니다.

    users/messages/groups를 넘기면 기본 서비스 모듈 대신 사용합니다 (테스트용 대체 저장소).
    """
    from snappy.services import user_service, message_service, group_service

    users = users or user_service
    messages = messages or message_service
    groups = groups or group_service

    manager = ConnectionManager()
    registry = InMemoryPresenceRegistry(manager, users=users)
    rooms = RoomMembershipManager()
    delivery = DeliveryStateMachine(manager, registry, messages=messages)
    router = EventRouter(manager, registry, rooms, delivery, messages=messages, groups=groups)
    return Realtime(manager=manager, registry=registry, rooms=rooms, delivery=delivery, router=router)


__all__ = [
    "Connection",
    "ConnectionManager",
    "PresenceRegistry",
    "InMemoryPresenceRegistry",
    "RoomMembershipManager",
    "DeliveryStateMachine",
    "EventRouter",
    "Realtime",
    "create_realtime",
]
