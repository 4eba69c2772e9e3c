"""
Message Codec

Binary encoding of the application envelope using Protocol Buffers.

Wire schema (field numbers are fixed for interoperability with the browser
client):

    message DataPacket {
        string type = 1;
        uint64 timestamp = 2;
        string senderId = 3;
        string payload = 4;
    }

The message class is built at import time from a FileDescriptorProto, so no
generated module is needed. Encoding is deterministic: identical envelope
values always produce byte-identical output.
"""

import json
import logging
from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError as ProtobufDecodeError

from .errors import DecodeError
from .schemas import PAYLOAD_TYPES, Envelope

logger = logging.getLogger(__name__)

PACKET_FULL_NAME = "audience_qa.DataPacket"

_FIELDS = (
    ("type", 1, descriptor_pb2.FieldDescriptorProto.TYPE_STRING),
    ("timestamp", 2, descriptor_pb2.FieldDescriptorProto.TYPE_UINT64),
    ("senderId", 3, descriptor_pb2.FieldDescriptorProto.TYPE_STRING),
    ("payload", 4, descriptor_pb2.FieldDescriptorProto.TYPE_STRING),
)


def _build_packet_class():
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "audience_qa/data_packet.proto"
    file_proto.package = "audience_qa"
    file_proto.syntax = "proto3"

    message_proto = file_proto.message_type.add()
    message_proto.name = "DataPacket"
    for name, number, field_type in _FIELDS:
        field_proto = message_proto.field.add()
        field_proto.name = name
        field_proto.number = number
        field_proto.type = field_type
        field_proto.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return message_factory.GetMessageClass(
        pool.FindMessageTypeByName(PACKET_FULL_NAME)
    )


DataPacket = _build_packet_class()


def encode(envelope: Envelope) -> bytes:
    """
    Serialize an envelope to its wire bytes.

    Args:
        envelope: The envelope to encode

    Returns:
        Deterministic protobuf encoding of the envelope

    Raises:
        ValueError: If the type or sender is empty, or the timestamp is not
                    a non-negative integer (decode() would reject the bytes)
    """
    if not envelope.type:
        raise ValueError("envelope has no message type")
    if not envelope.sender_id:
        raise ValueError("envelope has no sender id")
    timestamp = envelope.timestamp
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ValueError(f"timestamp must be an integer, got {timestamp!r}")
    if timestamp < 0:
        raise ValueError("timestamp must be unsigned")

    packet = DataPacket(
        type=envelope.type,
        timestamp=timestamp,
        senderId=envelope.sender_id,
        payload=envelope.payload,
    )
    return packet.SerializeToString(deterministic=True)


def decode(data: bytes) -> Envelope:
    """
    Parse wire bytes back into an envelope.

    Args:
        data: Raw payload received from the transport

    Returns:
        The decoded envelope

    Raises:
        DecodeError: If the bytes are not a valid DataPacket, or the packet
                     lacks a type or sender
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(
            f"expected bytes, got {type(data).__name__}"
        )

    packet = DataPacket()
    try:
        packet.ParseFromString(bytes(data))
    except ProtobufDecodeError as e:
        raise DecodeError(f"malformed packet: {e}", inner=e) from e

    if not packet.type:
        raise DecodeError("packet has no message type")
    if not packet.senderId:
        raise DecodeError("packet has no sender id")

    return Envelope(
        type=packet.type,
        timestamp=int(packet.timestamp),
        sender_id=packet.senderId,
        payload=packet.payload,
    )


def decode_payload(envelope: Envelope) -> Any:
    """
    Parse the JSON payload carried by an envelope.

    Raises:
        DecodeError: With the json error attached as ``inner``
    """
    try:
        return json.loads(envelope.payload)
    except (TypeError, ValueError) as e:
        logger.debug(f"Payload of {envelope.type} is not valid JSON: {e}")
        raise DecodeError(
            f"invalid payload for {envelope.type}: {e}", inner=e
        ) from e


def decode_typed_payload(envelope: Envelope) -> Any:
    """
    Parse an envelope's payload into its domain dataclass.

    Kinds listed in PAYLOAD_TYPES are built with the matching payload
    class; any other kind returns the parsed JSON unchanged.

    Raises:
        DecodeError: If the payload is not JSON or lacks required fields
    """
    data = decode_payload(envelope)
    payload_class = PAYLOAD_TYPES.get(envelope.type)
    if payload_class is None:
        return data
    try:
        return payload_class.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(
            f"malformed {envelope.type} payload: {e!r}", inner=e
        ) from e
