"""
온라인 상태 미러링 서비스

Presence Registry의 접속/해제 결과를 Redis에 미러링하고 Pub/Sub으로 상태 변화를 발행합니다.
실시간 도달 가능 여부는 프로세스 내 Presence Registry가 결정하며,
이 서비스는 다른 프로세스/대시보드를 위한 best-effort 사본입니다.
"""

import json
from datetime import datetime
from typing import Dict, Optional
from snappy.core.config import settings
from snappy.database.redis import get_redis
from snappy.core.logging import get_logger

logger = get_logger(__name__)

# Redis 키 패턴
USER_ONLINE_KEY = "user:online:{user_id}"
USER_LAST_SEEN_KEY = "user:last_seen:{user_id}"
ONLINE_USERS_SET = "online_users"
USER_STATUS_CHANNEL = "user:status:{user_id}"


class OnlineStatusService:
    """온라인 상태 미러링 서비스"""

    @staticmethod
    async def set_user_online(user_id: int) -> bool:
        """
        사용자를 온라인 상태로 설정

        Args:
            user_id: 사용자 ID

        Returns:
            성공 여부
        """
        try:
            redis = await get_redis()
            current_time = datetime.utcnow().isoformat()

            # 파이프라인을 사용한 원자적 연산
            pipe = redis.pipeline()
            pipe.setex(
                USER_ONLINE_KEY.format(user_id=user_id),
                settings.online_status_ttl,
                json.dumps({"user_id": user_id, "status": "online", "since": current_time})
            )
            pipe.sadd(ONLINE_USERS_SET, user_id)
            await pipe.execute()

            await redis.publish(
                USER_STATUS_CHANNEL.format(user_id=user_id),
                json.dumps({"user_id": user_id, "is_online": True, "timestamp": current_time})
            )

            logger.info(f"User {user_id} mirrored as online", extra={
                "user_id": user_id,
                "event_type": "user_online"
            })
            return True

        except Exception as e:
            logger.error(f"Failed to mirror user {user_id} online: {e}")
            return False

    @staticmethod
    async def set_user_offline(user_id: int, last_seen: Optional[datetime] = None) -> bool:
        """
        사용자를 오프라인 상태로 설정하고 마지막 접속 시간을 기록

        Args:
            user_id: 사용자 ID
            last_seen: 마지막 접속 시간 (생략 시 현재 시각)

        Returns:
            성공 여부
        """
        try:
            redis = await get_redis()
            last_seen_iso = (last_seen or datetime.utcnow()).isoformat()

            pipe = redis.pipeline()
            pipe.delete(USER_ONLINE_KEY.format(user_id=user_id))
            pipe.srem(ONLINE_USERS_SET, user_id)
            pipe.setex(
                USER_LAST_SEEN_KEY.format(user_id=user_id),
                settings.last_seen_ttl,
                last_seen_iso
            )
            await pipe.execute()

            await redis.publish(
                USER_STATUS_CHANNEL.format(user_id=user_id),
                json.dumps({"user_id": user_id, "is_online": False, "last_seen": last_seen_iso})
            )

            logger.info(f"User {user_id} mirrored as offline", extra={
                "user_id": user_id,
                "event_type": "user_offline"
            })
            return True

        except Exception as e:
            logger.error(f"Failed to mirror user {user_id} offline: {e}")
            return False

    @staticmethod
    async def get_user_status(user_id: int) -> Optional[Dict]:
        """
        미러링된 사용자 상태 조회

        Returns:
            {"user_id", "is_online", "last_seen"} 또는 Redis 장애 시 None
        """
        try:
            redis = await get_redis()
            online_data = await redis.get(USER_ONLINE_KEY.format(user_id=user_id))
            last_seen = await redis.get(USER_LAST_SEEN_KEY.format(user_id=user_id))

            return {
                "user_id": user_id,
                "is_online": online_data is not None,
                "last_seen": last_seen
            }

        except Exception as e:
            logger.error(f"Failed to get status for user {user_id}: {e}")
            return None


# 편의 함수들
async def set_online(user_id: int) -> bool:
    return await OnlineStatusService.set_user_online(user_id)


async def set_offline(user_id: int, last_seen: Optional[datetime] = None) -> bool:
    return await OnlineStatusService.set_user_offline(user_id, last_seen=last_seen)


async def get_user_status(user_id: int) -> Optional[Dict]:
    return await OnlineStatusService.get_user_status(user_id)
