from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint
from snappy.database.mysql import Base


class ConversationSetting(Base):
    """사용자별 1:1 대화 정리 상태 (고정 / 보관 / 알림 끔)"""
    __tablename__ = "conversation_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "peer_id", name="uq_conversation_setting"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    peer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_muted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return (
            f"<ConversationSetting(user_id={self.user_id}, peer_id={self.peer_id}, "
            f"pinned={self.is_pinned}, archived={self.is_archived}, muted={self.is_muted})>"
        )
