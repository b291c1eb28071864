"""
Domain Event Base Class
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional


@dataclass
class DomainEvent:
    """Domain Event 기본 클래스"""
    timestamp: datetime

    # Kafka partition key로 사용할 필드 이름 (순서 보장 단위)
    key_field = None

    def partition_key(self) -> Optional[str]:
        """같은 키의 이벤트는 같은 파티션으로 발행되어 순서가 유지됩니다."""
        if self.key_field is None:
            return None
        value = getattr(self, self.key_field, None)
        return str(value) if value is not None else None

    def to_dict(self) -> Dict:
        """Event를 dict로 변환"""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        # Event 타입 추가 (Consumer에서 라우팅용)
        data['__event_type__'] = self.__class__.__name__
        return data

    @classmethod
    def from_dict(cls, data: Dict):
        """dict에서 Event 복원 (입력 dict는 변경하지 않음)"""
        payload = {k: v for k, v in data.items() if k != '__event_type__'}
        if isinstance(payload.get('timestamp'), str):
            payload['timestamp'] = datetime.fromisoformat(payload['timestamp'])
        return cls(**payload)
