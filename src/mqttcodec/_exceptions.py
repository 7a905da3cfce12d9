from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mqttcodec._types import FixedHeader


class MQTTException(Exception):
    """Base class for all MQTT exceptions."""


class MQTTEncodeError(MQTTException):
    """Raised when a value does not fit in the wire field it's being encoded to."""


class MQTTPacketTooLarge(MQTTException):
    """
    Raised when decoding a packet, and its size exceeds the configured maximum packet
    size.
    """


class MQTTProtocolError(MQTTException):
    """Raised when a violation of the MQTT v3.1.1 protocol is encountered."""


class InvalidTopic(MQTTException):
    """Base class for topic name and topic filter validation errors."""


class InvalidTopicName(InvalidTopic):
    """Raised when encountering an invalid MQTT topic name."""


class InvalidTopicFilter(InvalidTopic):
    """Raised when encountering an invalid MQTT topic filter."""


class MQTTDecodeError(MQTTException):
    """Raised when something goes wrong when trying to decode an MQTT packet."""


class InsufficientData(MQTTDecodeError):
    """
    Raised when trying to decode an MQTT packet but there's not enough data to decode a
    complete packet.

    On a streaming source this only means that more bytes need to arrive before
    decoding can be retried.
    """


class MQTTValueOutOfRange(MQTTDecodeError):
    """
    Raised when a decoded field is well formed but its value is outside of the range
    allowed by the protocol (like a QoS level of 3).
    """


class MQTTFrameLengthMismatch(MQTTDecodeError):
    """
    Raised when the contents of a packet don't take up exactly the number of bytes
    declared by the remaining length in its fixed header.
    """


class MQTTUnrecognizedPacketType(MQTTDecodeError):
    """
    Raised when the packet type in a fixed header is not one of the MQTT v3.1.1
    control packet types.

    The parsed fixed header is available in :attr:`fixed_header`, and the caller can
    skip over the whole packet by discarding ``header_length + remaining_length``
    bytes from the start of the packet.
    """

    def __init__(self, fixed_header: FixedHeader, header_length: int) -> None:
        super().__init__(fixed_header.packet_type, fixed_header.remaining_length)
        self.fixed_header = fixed_header
        self.header_length = header_length
        self.packet_type = fixed_header.packet_type
        self.remaining_length = fixed_header.remaining_length

    def __str__(self) -> str:
        return (
            f"unrecognized packet type: {self.packet_type} (remaining length: "
            f"{self.remaining_length})"
        )
