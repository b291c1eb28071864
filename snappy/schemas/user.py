from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class UserProfile(BaseModel):
    """사용자 프로필 스키마 (접속 상태 포함)"""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="사용자 ID")
    username: str = Field(..., description="사용자명")
    avatar_image: Optional[str] = Field(None, description="아바타 이미지")
    about: Optional[str] = Field(None, description="상태 메시지")
    is_online: bool = Field(default=False, description="온라인 상태")
    last_seen: Optional[datetime] = Field(None, description="마지막 접속 시간")


class UserPresenceUpdate(BaseModel):
    """온라인 상태 / 마지막 접속 시간 수정 스키마"""
    is_online: bool = Field(..., description="온라인 여부")
    last_seen: Optional[datetime] = Field(None, description="마지막 접속 시간 (오프라인 전환 시 생략하면 현재 시각)")


class UserStatusResponse(BaseModel):
    """사용자 접속 상태 응답"""
    user_id: int
    is_online: bool
    is_reachable: bool = Field(..., description="이 서버 프로세스에 실시간 연결이 있는지 여부")
    last_seen: Optional[datetime] = None


class OnlineUsersResponse(BaseModel):
    """현재 접속 중인 사용자 목록"""
    user_ids: List[int]
    count: int


class ConversationSettingResponse(BaseModel):
    """대화 정리 상태 응답"""
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    peer_id: int
    is_pinned: bool = False
    is_archived: bool = False
    is_muted: bool = False
