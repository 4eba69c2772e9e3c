"""
Base Schema Classes

This module provides the base class for domain payload schemas with common
serialization and deserialization methods to avoid code duplication.
"""

import json
from dataclasses import asdict
from typing import Any, Dict, TypeVar

T = TypeVar("T", bound="BasePayload")


class BasePayload:
    """
    Base class for payloads carried inside an envelope.

    Subclasses are dataclasses. Serialization is key-sorted and compact so
    that equal payload values always produce the same JSON text, which the
    content identity of the enclosing envelope depends on.
    """

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary of the dataclass fields.
        """
        return asdict(self)

    def to_json(self) -> str:
        """
        Convert to JSON string.

        Returns:
            Canonical JSON string representation of the payload.
        """
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @property
    def message_type(self) -> str:
        """
        Message kind this payload travels under.

        Should be overridden by subclasses to provide the specific type.
        """
        raise NotImplementedError("Subclasses must define message_type")

    @classmethod
    def from_dict(cls: type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from dictionary.

        Args:
            data: Dictionary containing payload data.

        Returns:
            Instance of the payload class.
        """
        return cls._from_data(data)

    @classmethod
    def from_json(cls: type[T], json_str: str) -> T:
        """
        Create instance from JSON string.

        Args:
            json_str: JSON string containing payload data.

        Returns:
            Instance of the payload class.
        """
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def _from_data(cls: type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from payload data dictionary.

        Should be overridden by subclasses with nested structures.
        """
        return cls(**data)
