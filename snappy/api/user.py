from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.api.dependencies import get_realtime
from snappy.core.errors import (
    BusinessLogicException, PersistenceError, ServiceUnavailableException, user_not_found_error
)
from snappy.core.logging import get_logger
from snappy.database.mysql import get_async_session
from snappy.schemas.user import (
    UserProfile, UserPresenceUpdate, UserStatusResponse, OnlineUsersResponse, ConversationSettingResponse
)
from snappy.services import user_service, group_service, online_status_service, conversation_service
from snappy.services.conversation_service import ConversationFlag
from snappy.websockets import Realtime

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/online", response_model=OnlineUsersResponse)
async def get_online_users(realtime: Realtime = Depends(get_realtime)) -> OnlineUsersResponse:
    """
    이 서버에 실시간 연결된 사용자 목록을 조회합니다.

    Returns:
        OnlineUsersResponse: Presence Registry에 등록된 사용자 ID
    """
    user_ids = realtime.registry.online_user_ids()
    return OnlineUsersResponse(user_ids=user_ids, count=len(user_ids))


@router.get("/{user_id}", response_model=UserProfile)
async def get_user_by_id(
    user_id: int,
    db: AsyncSession = Depends(get_async_session)
) -> UserProfile:
    """특정 ID의 사용자를 조회합니다."""
    user = await user_service.find_user_by_id(db, user_id)
    if not user:
        raise user_not_found_error(user_id)

    return UserProfile.model_validate(user)


@router.patch("/{user_id}", response_model=UserProfile)
async def update_user_presence(
    user_id: int,
    presence: UserPresenceUpdate,
    db: AsyncSession = Depends(get_async_session)
) -> UserProfile:
    """
    사용자의 온라인 상태와 마지막 접속 시간을 수정합니다.

    Args:
        user_id: 사용자 ID
        presence: is_online, last_seen
        db: 데이터베이스 세션

    Returns:
        UserProfile: 수정된 사용자 프로필
    """
    user = await user_service.find_user_by_id(db, user_id)
    if not user:
        raise user_not_found_error(user_id)

    user = await user_service.update_user_presence(db, user, presence.is_online, presence.last_seen)
    return UserProfile.model_validate(user)


@router.get("/{user_id}/status", response_model=UserStatusResponse)
async def get_user_status(
    user_id: int,
    realtime: Realtime = Depends(get_realtime),
    db: AsyncSession = Depends(get_async_session)
) -> UserStatusResponse:
    """
    사용자 접속 상태 조회

    is_online은 Redis 미러(장애 시 MySQL 값), is_reachable은 이 프로세스의 Presence Registry 기준입니다.
    """
    user = await user_service.find_user_by_id(db, user_id)
    if not user:
        raise user_not_found_error(user_id)

    mirrored = await online_status_service.get_user_status(user_id)
    is_online = mirrored["is_online"] if mirrored else bool(user.is_online)

    return UserStatusResponse(
        user_id=user_id,
        is_online=is_online,
        is_reachable=realtime.registry.lookup(user_id) is not None,
        last_seen=user.last_seen
    )


@router.get("/{user_id}/groups", response_model=List[int])
async def get_user_groups(
    user_id: int,
    db: AsyncSession = Depends(get_async_session)
) -> List[int]:
    """사용자가 속한 그룹 ID 목록 (클라이언트가 join-group 할 대상)"""
    return await group_service.get_user_group_ids(db, user_id)


@router.post("/{user_id}/logout", response_model=UserStatusResponse)
async def logout(
    user_id: int,
    realtime: Realtime = Depends(get_realtime),
    db: AsyncSession = Depends(get_async_session)
) -> UserStatusResponse:
    """
    로그아웃: 사용자를 오프라인으로 표시합니다.

    실시간 연결이 남아 있으면 Presence Registry에서 제거하여 다른 사용자에게 오프라인이 알려집니다.
    """
    user = await user_service.find_user_by_id(db, user_id)
    if not user:
        raise user_not_found_error(user_id)

    last_seen = datetime.utcnow()
    session_id = realtime.registry.lookup(user_id)
    if session_id is not None:
        await realtime.registry.unregister(session_id)
    else:
        try:
            await user_service.persist_presence(user_id, False, last_seen)
        except PersistenceError as e:
            logger.error(f"Failed to mark user {user_id} offline on logout: {e}")
            raise ServiceUnavailableException("User status could not be saved")

    logger.info(f"User {user_id} logged out")

    return UserStatusResponse(
        user_id=user_id,
        is_online=False,
        is_reachable=realtime.registry.lookup(user_id) is not None,
        last_seen=last_seen
    )


@router.get("/{user_id}/conversations", response_model=List[ConversationSettingResponse])
async def get_conversation_settings(
    user_id: int,
    db: AsyncSession = Depends(get_async_session)
) -> List[ConversationSettingResponse]:
    """사용자의 대화 정리 상태 목록 (고정된 대화 먼저)"""
    settings = await conversation_service.get_settings(db, user_id)
    return [ConversationSettingResponse.model_validate(s) for s in settings]


@router.post("/{user_id}/conversations/{peer_id}/{flag}", response_model=ConversationSettingResponse)
async def toggle_conversation_flag(
    user_id: int,
    peer_id: int,
    flag: ConversationFlag,
    db: AsyncSession = Depends(get_async_session)
) -> ConversationSettingResponse:
    """
    대화 고정 / 보관 / 알림 끔 토글

    - **flag**: pin, archive, mute 중 하나
    - 본인의 대화 목록에만 적용되며 상대에게는 알리지 않습니다.
    """
    if user_id == peer_id:
        raise BusinessLogicException("Cannot organize a conversation with yourself")

    for target_id in (user_id, peer_id):
        if not await user_service.find_user_by_id(db, target_id):
            raise user_not_found_error(target_id)

    setting = await conversation_service.toggle_flag(db, user_id, peer_id, flag)
    logger.info(f"User {user_id} toggled {flag.value} for conversation with {peer_id}")

    return ConversationSettingResponse.model_validate(setting)
