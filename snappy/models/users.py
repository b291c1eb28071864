from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from snappy.database.mysql import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(20), unique=True, index=True, nullable=False)
    email = Column(String(50), unique=True, index=True, nullable=False)
    is_avatar_image_set = Column(Boolean, default=False)
    avatar_image = Column(String(255), default="")
    about = Column(String(50), default="Hey there! I am using Snappy.")

    # 실시간 접속 상태 (Presence Registry의 connect/disconnect 처리에서만 변경)
    is_online = Column(Boolean, default=False, nullable=False)
    last_seen = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    created_groups = relationship("GroupChatRoom", back_populates="admin")
    group_memberships = relationship("GroupRoomMember", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, is_online={self.is_online})>"
