from .base import Producer, ProducerKind
from .console_producer import MAX_CONSOLE_LENGTH, ConsoleProducer, build_console_line
from .sentences import FakerSentenceSource, SentenceSource
from .template_producer import (
    FUNC_NAME_ID,
    MEMBER_NAME_ID,
    PLACEHOLDER_IDS,
    TEMPLATE_VARIANTS,
    TemplateProducer,
)
from .timestamp_producer import TimestampProducer
from .update_producer import UpdateProducer

__all__ = [
    "Producer",
    "ProducerKind",
    "SentenceSource",
    "FakerSentenceSource",
    "TimestampProducer",
    "ConsoleProducer",
    "TemplateProducer",
    "UpdateProducer",
    "build_console_line",
    "MAX_CONSOLE_LENGTH",
    "TEMPLATE_VARIANTS",
    "PLACEHOLDER_IDS",
    "FUNC_NAME_ID",
    "MEMBER_NAME_ID",
]
