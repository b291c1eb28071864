"""
API Dependencies

앱 수명 동안 공유되는 실시간 구성 요소를 라우터에 주입합니다.
"""

from fastapi import Request, WebSocket

from snappy.core.errors import ServiceUnavailableException
from snappy.websockets import Realtime


def _realtime_from_state(state) -> Realtime:
    realtime = getattr(state, "realtime", None)
    if realtime is None:
        raise ServiceUnavailableException("Realtime components are not initialized")
    return realtime


async def get_realtime(request: Request) -> Realtime:
    return _realtime_from_state(request.app.state)


def get_ws_realtime(websocket: WebSocket) -> Realtime:
    return _realtime_from_state(websocket.app.state)
