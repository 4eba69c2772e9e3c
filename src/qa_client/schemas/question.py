"""
Question Schema Definitions

This module defines the Q&A domain objects and the payloads carried by each
MessageType. JSON keys use the camelCase names of the browser client so
that both ends read the same payloads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .base import BasePayload
from .envelope import MessageType


@dataclass
class Question(BasePayload):
    """
    A question prepared by an instance administrator.

    Attributes:
        id: Unique question identifier
        text: Question text
        active: Whether attendees may currently answer
        created_at: Epoch milliseconds of creation
    """

    id: str
    text: str
    active: bool = False
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "active": self.active,
            "createdAt": self.created_at,
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            id=data["id"],
            text=data["text"],
            active=bool(data.get("active", False)),
            created_at=int(data.get("createdAt", 0)),
        )


@dataclass
class Answer(BasePayload):
    """
    An attendee's answer to a question.

    Attributes:
        id: Unique answer identifier
        question_id: ID of the answered question
        text: Answer text
        sender_id: ID of the answering client
        timestamp: Epoch milliseconds of submission
    """

    id: str
    question_id: str
    text: str
    sender_id: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "questionId": self.question_id,
            "text": self.text,
            "senderId": self.sender_id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "Answer":
        return cls(
            id=data["id"],
            question_id=data["questionId"],
            text=data["text"],
            sender_id=data["senderId"],
            timestamp=int(data["timestamp"]),
        )


@dataclass
class Instance(BasePayload):
    """
    A Q&A session, addressed by its instance (room) ID.

    Attributes:
        id: Instance ID, used as the room key
        name: Display name
        questions: Questions prepared for the session
        created_at: Epoch milliseconds of creation
    """

    id: str
    name: str
    questions: List[Question] = field(default_factory=list)
    created_at: int = 0

    @property
    def message_type(self) -> str:
        return MessageType.INSTANCE_CREATED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "questions": [q.to_dict() for q in self.questions],
            "createdAt": self.created_at,
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "Instance":
        return cls(
            id=data["id"],
            name=data["name"],
            questions=[
                Question.from_dict(q) for q in data.get("questions", [])
            ],
            created_at=int(data.get("createdAt", 0)),
        )


@dataclass
class QuestionAddedPayload(BasePayload):
    """Payload of QUESTION_ADDED."""

    question: Question

    @property
    def message_type(self) -> str:
        return MessageType.QUESTION_ADDED.value

    def to_dict(self) -> Dict[str, Any]:
        return {"question": self.question.to_dict()}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "QuestionAddedPayload":
        return cls(question=Question.from_dict(data["question"]))


@dataclass
class QuestionActivatedPayload(BasePayload):
    """Payload of QUESTION_ACTIVATED."""

    question_id: str

    @property
    def message_type(self) -> str:
        return MessageType.QUESTION_ACTIVATED.value

    def to_dict(self) -> Dict[str, Any]:
        return {"questionId": self.question_id}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "QuestionActivatedPayload":
        return cls(question_id=data["questionId"])


@dataclass
class QuestionDeactivatedPayload(BasePayload):
    """Payload of QUESTION_DEACTIVATED."""

    question_id: str

    @property
    def message_type(self) -> str:
        return MessageType.QUESTION_DEACTIVATED.value

    def to_dict(self) -> Dict[str, Any]:
        return {"questionId": self.question_id}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "QuestionDeactivatedPayload":
        return cls(question_id=data["questionId"])


@dataclass
class AnswerSubmittedPayload(BasePayload):
    """Payload of ANSWER_SUBMITTED."""

    answer: Answer

    @property
    def message_type(self) -> str:
        return MessageType.ANSWER_SUBMITTED.value

    def to_dict(self) -> Dict[str, Any]:
        return {"answer": self.answer.to_dict()}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "AnswerSubmittedPayload":
        return cls(answer=Answer.from_dict(data["answer"]))


PAYLOAD_TYPES = {
    MessageType.QUESTION_ADDED.value: QuestionAddedPayload,
    MessageType.QUESTION_ACTIVATED.value: QuestionActivatedPayload,
    MessageType.QUESTION_DEACTIVATED.value: QuestionDeactivatedPayload,
    MessageType.ANSWER_SUBMITTED.value: AnswerSubmittedPayload,
    MessageType.INSTANCE_CREATED.value: Instance,
}
