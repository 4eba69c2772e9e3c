"""
Tests for the Message Codec

Tests for protobuf encoding of the envelope, decode failures and payload
parsing.
"""

import json

import pytest

from qa_client import (
    DecodeError,
    Envelope,
    MessageType,
    decode,
    decode_payload,
    decode_typed_payload,
    encode,
    make_envelope,
)
from qa_client.codec import DataPacket
from qa_client.schemas import (
    Answer,
    AnswerSubmittedPayload,
    Question,
    QuestionActivatedPayload,
    QuestionAddedPayload,
)


class TestEncodeDecode:
    """Round-trip and determinism of the wire encoding."""

    def test_round_trip(self):
        """Test that decode(encode(e)) == e."""
        envelope = Envelope(
            type="PING", timestamp=1000, sender_id="u1", payload="{}"
        )
        assert decode(encode(envelope)) == envelope

    def test_round_trip_with_unicode_and_large_timestamp(self):
        """Test non-ASCII payloads and timestamps beyond 32 bits."""
        envelope = Envelope(
            type=MessageType.ANSWER_SUBMITTED.value,
            timestamp=2**40 + 7,
            sender_id="user-ä",
            payload='{"text":"¿Qué tal? 👋"}',
        )
        assert decode(encode(envelope)) == envelope

    def test_encoding_is_deterministic(self):
        """Test that identical envelopes give byte-identical output."""
        first = Envelope("QUESTION_ADDED", 42, "admin", '{"a":1}')
        second = Envelope("QUESTION_ADDED", 42, "admin", '{"a":1}')
        assert first is not second
        assert encode(first) == encode(second)

    def test_wire_field_numbers(self):
        """Test the packet uses the fixed field numbers 1-4."""
        fields = {f.name: f.number for f in DataPacket.DESCRIPTOR.fields}
        assert fields == {
            "type": 1,
            "timestamp": 2,
            "senderId": 3,
            "payload": 4,
        }

    def test_encoded_bytes_parse_as_data_packet(self):
        """Test that other protobuf readers see the same fields."""
        data = encode(Envelope("PING", 1000, "u1", "{}"))
        packet = DataPacket()
        packet.ParseFromString(data)
        assert packet.type == "PING"
        assert packet.timestamp == 1000
        assert packet.senderId == "u1"
        assert packet.payload == "{}"

    def test_encode_rejects_negative_timestamp(self):
        """Test that timestamps must be unsigned."""
        with pytest.raises(ValueError):
            encode(Envelope("PING", -1, "u1", "{}"))

    def test_encode_rejects_non_integer_timestamp(self):
        """Test that timestamps must be integers."""
        with pytest.raises(ValueError):
            encode(Envelope("PING", "1000", "u1", "{}"))

    def test_encode_rejects_empty_sender(self):
        """Test that encode refuses what decode would reject."""
        with pytest.raises(ValueError):
            encode(Envelope("PING", 1000, "", "{}"))

    def test_encode_rejects_empty_type(self):
        """Test that an envelope without a kind is not encoded."""
        with pytest.raises(ValueError):
            encode(Envelope("", 1000, "u1", "{}"))

    def test_empty_payload_round_trips(self):
        """Test that an empty payload is still a valid envelope."""
        envelope = Envelope("PING", 0, "u1", "")
        assert decode(encode(envelope)) == envelope


class TestDecodeErrors:
    """Malformed input must raise DecodeError and nothing else."""

    def test_truncated_packet(self):
        """Test a length-delimited field running past the end."""
        with pytest.raises(DecodeError):
            decode(b"\x0a\x05ab")

    def test_empty_bytes_has_no_type(self):
        """Test that an empty packet is rejected."""
        with pytest.raises(DecodeError):
            decode(b"")

    def test_missing_sender(self):
        """Test that a packet without senderId is rejected."""
        data = DataPacket(type="PING", timestamp=1).SerializeToString()
        with pytest.raises(DecodeError):
            decode(data)

    def test_non_bytes_input(self):
        """Test that non-bytes input raises DecodeError, not TypeError."""
        with pytest.raises(DecodeError):
            decode(None)
        with pytest.raises(DecodeError):
            decode("not bytes")

    def test_protobuf_error_is_attached(self):
        """Test that the parser error is kept as inner."""
        with pytest.raises(DecodeError) as excinfo:
            decode(b"\x0a\x05ab")
        assert excinfo.value.inner is not None


class TestPayload:
    """Tests for make_envelope and decode_payload."""

    def test_make_envelope_serializes_canonically(self):
        """Test that key order does not change the payload text."""
        first = make_envelope("PING", "u1", {"b": 2, "a": 1}, timestamp=5)
        second = make_envelope("PING", "u1", {"a": 1, "b": 2}, timestamp=5)
        assert first.payload == '{"a":1,"b":2}'
        assert encode(first) == encode(second)

    def test_make_envelope_accepts_message_type_enum(self):
        """Test that MessageType members are stored as their value."""
        envelope = make_envelope(MessageType.QUESTION_ACTIVATED, "admin", {})
        assert envelope.type == "QUESTION_ACTIVATED"
        assert envelope.timestamp > 0

    def test_make_envelope_keeps_string_payload(self):
        """Test that string payloads are used as-is."""
        envelope = make_envelope("PING", "u1", "{}", timestamp=1000)
        assert envelope == Envelope("PING", 1000, "u1", "{}")

    def test_make_envelope_with_payload_schema(self):
        """Test that payload dataclasses serialize with camelCase keys."""
        answer = Answer(
            id="a1",
            question_id="q1",
            text="42",
            sender_id="user-1",
            timestamp=7,
        )
        envelope = make_envelope(
            MessageType.ANSWER_SUBMITTED,
            "user-1",
            AnswerSubmittedPayload(answer=answer),
            timestamp=7,
        )
        body = decode_payload(envelope)
        assert body["answer"]["questionId"] == "q1"
        assert AnswerSubmittedPayload.from_dict(body).answer == answer

    def test_decode_payload_round_trip(self):
        """Test parsing the JSON payload of a decoded envelope."""
        question = Question(id="q1", text="Ready?", active=True, created_at=3)
        payload = QuestionAddedPayload(question=question)
        envelope = decode(
            encode(make_envelope(payload.message_type, "admin", payload, 3))
        )
        parsed = QuestionAddedPayload.from_dict(decode_payload(envelope))
        assert parsed.question == question

    def test_decode_payload_invalid_json(self):
        """Test that JSON errors surface as DecodeError with inner error."""
        envelope = Envelope("PING", 1, "u1", "{not json")
        with pytest.raises(DecodeError) as excinfo:
            decode_payload(envelope)
        assert isinstance(excinfo.value.inner, json.JSONDecodeError)
        assert excinfo.value.__cause__ is excinfo.value.inner


class TestTypedPayload:
    """Tests for decode_typed_payload."""

    def test_known_kind_builds_dataclass(self):
        """Test that a known kind is parsed into its payload class."""
        envelope = make_envelope(
            MessageType.QUESTION_ACTIVATED, "admin", {"questionId": "q1"}, 1
        )
        assert decode_typed_payload(envelope) == QuestionActivatedPayload(
            question_id="q1"
        )

    def test_unknown_kind_returns_json(self):
        """Test that other kinds are returned as parsed JSON."""
        envelope = make_envelope("PING", "u1", {"n": 1}, 1)
        assert decode_typed_payload(envelope) == {"n": 1}

    def test_missing_field_raises_decode_error(self):
        """Test that a payload lacking required fields is rejected."""
        envelope = make_envelope(MessageType.ANSWER_SUBMITTED, "u1", {"text": "hi"}, 1)
        with pytest.raises(DecodeError) as excinfo:
            decode_typed_payload(envelope)
        assert isinstance(excinfo.value.inner, KeyError)
