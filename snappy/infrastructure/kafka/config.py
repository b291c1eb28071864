"""
Kafka Configuration
"""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings

from snappy.core.config import settings


class KafkaConfig(BaseSettings):
    """Kafka Producer 설정"""

    enabled: bool = Field(
        default=settings.kafka_enabled,
        description="Domain Event 발행 여부 (비활성화 시 발행은 no-op)"
    )

    # Kafka 브로커 주소
    bootstrap_servers: List[str] = Field(
        default=settings.kafka_bootstrap_servers.split(","),
        description="Kafka bootstrap servers"
    )

    producer_acks: str = Field(
        default="all",
        description="Producer acks: 'all', '1', '0'"
    )
    producer_compression_type: str = Field(
        default="gzip",
        description="Compression type: 'none', 'gzip', 'snappy', 'lz4'"
    )
    producer_request_timeout_ms: int = Field(
        default=30000,
        description="Request timeout in milliseconds"
    )

    # Topic 설정
    topic_message_events: str = settings.kafka_topic_message_events
    topic_user_events: str = settings.kafka_topic_user_events

    class Config:
        env_prefix = "KAFKA_"
        case_sensitive = False


# Singleton instance
kafka_config = KafkaConfig()
