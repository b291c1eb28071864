from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.api.dependencies import get_realtime, get_ws_realtime
from snappy.core.errors import AuthorizationException
from snappy.core.logging import get_logger, clear_request_context
from snappy.database.mysql import get_async_session
from snappy.schemas.events import error_frame
from snappy.services import group_service
from snappy.websockets import Realtime

logger = get_logger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


@router.websocket("")
async def websocket_endpoint(websocket: WebSocket):
    """
    실시간 이벤트 WebSocket 엔드포인트

    연결 직후에는 익명 세션이며, 클라이언트가 add-user 이벤트를 보내야 사용자와 연결됩니다.
    모든 프레임은 {"event": ..., "data": ...} 형식의 JSON입니다.
    """
    realtime = get_ws_realtime(websocket)

    # 1. 연결 수락 및 세션 발급
    connection = await realtime.manager.connect(websocket)

    try:
        # 2. 이벤트 수신 루프
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError as e:
                # JSON 파싱 오류: 세션은 유지
                logger.warning(f"Invalid JSON from session {connection.session_id}: {e}")
                await realtime.manager.send(
                    connection.session_id, error_frame("invalid_json", "Frame is not valid JSON")
                )
                continue

            await realtime.router.handle_frame(connection, frame)

    except WebSocketDisconnect:
        # 정상적인 연결 해제
        logger.info(f"WebSocket disconnected: session {connection.session_id} (user {connection.user_id})")

    except Exception as e:
        logger.error(f"Unexpected error in WebSocket session {connection.session_id}: {e}")

    finally:
        # 3. 연결 해제 처리 (room 정리, 세션 제거, 오프라인 알림)
        await realtime.router.on_disconnect(connection)
        clear_request_context()


@router.get("/rooms/{group_id}/status")
async def get_room_status(
    group_id: int,
    user_id: int = Query(..., description="조회하는 사용자 ID"),
    realtime: Realtime = Depends(get_realtime),
    db: AsyncSession = Depends(get_async_session)
):
    """
    그룹 room의 현재 실시간 구독 상태를 조회합니다.
    해당 그룹의 멤버여야 접근 가능합니다.

    Returns:
        dict: room 상태 정보
    """
    if not await group_service.is_user_in_group(db, group_id, user_id):
        raise AuthorizationException("Access denied to this group")

    members = realtime.rooms.members(group_id)
    online_users = sorted(
        connection.user_id
        for connection in (realtime.manager.get(sid) for sid in members)
        if connection is not None and connection.user_id is not None
    )

    return {
        "group_id": group_id,
        "online_users": online_users,
        "online_count": len(members),
        "is_active": len(members) > 0
    }
