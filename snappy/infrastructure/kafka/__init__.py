"""
Kafka Infrastructure

Domain Event 발행용 Producer와 설정
"""

from .producer import DomainEventProducer, get_event_producer, publish_event
from .config import KafkaConfig, kafka_config

__all__ = [
    'DomainEventProducer',
    'get_event_producer',
    'publish_event',
    'KafkaConfig',
    'kafka_config',
]
