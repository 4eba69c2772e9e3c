"""
Schemas Package

This package contains the application envelope and the Q&A domain payloads
carried inside it. Schemas are organized by category: the envelope and its
message kinds, and the question/answer domain objects.
"""

from .base import BasePayload
from .envelope import Envelope, MessageType, make_envelope, now_ms
from .question import (
    PAYLOAD_TYPES,
    Answer,
    AnswerSubmittedPayload,
    Instance,
    Question,
    QuestionActivatedPayload,
    QuestionAddedPayload,
    QuestionDeactivatedPayload,
)

__all__ = [
    # Base classes
    "BasePayload",
    # Envelope
    "Envelope",
    "MessageType",
    "make_envelope",
    "now_ms",
    # Domain objects
    "Question",
    "Answer",
    "Instance",
    # Payloads
    "QuestionAddedPayload",
    "QuestionActivatedPayload",
    "QuestionDeactivatedPayload",
    "AnswerSubmittedPayload",
    "PAYLOAD_TYPES",
]
