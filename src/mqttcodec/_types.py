from __future__ import annotations

import sys
from abc import ABCMeta, abstractmethod
from collections.abc import Iterable
from enum import IntEnum
from itertools import zip_longest
from typing import Any, ClassVar, Union

from attrs import field, frozen
from attrs.validators import deep_iterable, ge, instance_of, le, optional

from ._exceptions import (
    InsufficientData,
    InvalidTopic,
    InvalidTopicFilter,
    InvalidTopicName,
    MQTTDecodeError,
    MQTTEncodeError,
    MQTTFrameLengthMismatch,
    MQTTPacketTooLarge,
    MQTTProtocolError,
    MQTTUnrecognizedPacketType,
    MQTTValueOutOfRange,
)

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if sys.version_info >= (3, 10):
    from typing import TypeAlias
else:
    from typing_extensions import TypeAlias

MAX_VARIABLE_INTEGER = 268_435_455
MAX_FIELD_LENGTH = 65_535
MAX_PACKET_ID = 65_535
PROTOCOL_NAME = "MQTT"
PROTOCOL_LEVEL = 4


def encode_fixed_integer(value: int, buffer: bytearray, size: int) -> None:
    try:
        buffer.extend(value.to_bytes(size, "big"))
    except OverflowError:
        raise MQTTEncodeError(
            f"cannot encode {value} as a {size * 8}-bit unsigned integer"
        ) from None


def decode_fixed_integer(data: memoryview, size: int) -> tuple[memoryview, int]:
    if len(data) < size:
        raise InsufficientData

    return data[size:], int.from_bytes(data[:size], "big")


def variable_integer_length(value: int) -> int:
    """
    Return the number of bytes needed to encode the given value as a variable byte
    integer.

    """
    if not 0 <= value <= MAX_VARIABLE_INTEGER:
        raise MQTTEncodeError(
            f"variable byte integer out of range (0-{MAX_VARIABLE_INTEGER}): {value}"
        )

    length = 1
    while value >= 128:
        value //= 128
        length += 1

    return length


def encode_variable_integer(value: int, buffer: bytearray) -> None:
    if not 0 <= value <= MAX_VARIABLE_INTEGER:
        raise MQTTEncodeError(
            f"variable byte integer out of range (0-{MAX_VARIABLE_INTEGER}): {value}"
        )

    while True:
        new_byte = value % 128
        value //= 128
        if value > 0:
            new_byte |= 128

        buffer.append(new_byte)
        if value == 0:
            return


def decode_variable_integer(data: memoryview) -> tuple[memoryview, int]:
    multiplier = 1
    value = 0
    for i, val in enumerate(data[:4], 1):
        value += (val & 127) * multiplier
        multiplier *= 128
        if not val & 128:
            return data[i:], value

    if len(data) >= 4:
        raise MQTTDecodeError(
            "malformed variable byte integer: continuation bit set on the fourth byte"
        )

    raise InsufficientData


def encode_binary(value: bytes, buffer: bytearray) -> None:
    if len(value) > MAX_FIELD_LENGTH:
        raise MQTTEncodeError(
            f"value too long for a length-prefixed field ({len(value)} bytes, "
            f"maximum is {MAX_FIELD_LENGTH})"
        )

    encode_fixed_integer(len(value), buffer, 2)
    buffer.extend(value)


def decode_binary(data: memoryview) -> tuple[memoryview, bytes]:
    data, length = decode_fixed_integer(data, 2)
    if len(data) < length:
        raise InsufficientData

    return data[length:], bytes(data[:length])


def encode_utf8(value: str, buffer: bytearray) -> None:
    encode_binary(value.encode("utf-8"), buffer)


def decode_utf8(data: memoryview) -> tuple[memoryview, str]:
    data, length = decode_fixed_integer(data, 2)
    if len(data) < length:
        raise InsufficientData

    try:
        return data[length:], str(data[:length], "utf-8")
    except UnicodeDecodeError as exc:
        raise MQTTDecodeError(f"error decoding utf-8 string: {exc}") from None


class ControlPacketType(IntEnum):
    CONNECT = 1
    CONNACK = 2
    PUBLISH = 3
    PUBACK = 4
    PUBREC = 5
    PUBREL = 6
    PUBCOMP = 7
    SUBSCRIBE = 8
    SUBACK = 9
    UNSUBSCRIBE = 10
    UNSUBACK = 11
    PINGREQ = 12
    PINGRESP = 13
    DISCONNECT = 14


class QoS(IntEnum):
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2

    @classmethod
    def get(cls, value: int) -> Self:
        for member in cls.__members__.values():
            if member.value == value:
                return member

        raise MQTTValueOutOfRange(f"unknown QoS value: 0x{value:02X}")


class ConnectReturnCode(IntEnum):
    ACCEPTED = 0x00
    UNACCEPTABLE_PROTOCOL_VERSION = 0x01
    IDENTIFIER_REJECTED = 0x02
    SERVER_UNAVAILABLE = 0x03
    BAD_USERNAME_OR_PASSWORD = 0x04
    NOT_AUTHORIZED = 0x05

    @classmethod
    def get(cls, value: int) -> Self:
        for member in cls.__members__.values():
            if member.value == value:
                return member

        raise MQTTValueOutOfRange(f"unknown connect return code: 0x{value:02X}")


class SubscribeReturnCode(IntEnum):
    GRANTED_QOS_0 = 0x00
    GRANTED_QOS_1 = 0x01
    GRANTED_QOS_2 = 0x02
    FAILURE = 0x80

    @classmethod
    def get(cls, value: int) -> Self:
        for member in cls.__members__.values():
            if member.value == value:
                return member

        raise MQTTValueOutOfRange(f"unknown subscribe return code: 0x{value:02X}")

    @classmethod
    def from_qos(cls, qos: QoS) -> SubscribeReturnCode:
        return cls(int(qos))

    @property
    def granted_qos(self) -> QoS | None:
        """The granted QoS level, or ``None`` if the subscription failed."""
        if self is SubscribeReturnCode.FAILURE:
            return None

        return QoS(self.value)


def _check_topic_string(
    value: str, description: str, exc_class: type[InvalidTopic]
) -> None:
    if not value:
        # MQTT-4.7.3-1
        raise exc_class(f"{description} must not be empty")

    if "\x00" in value:
        # MQTT-4.7.3-2
        raise exc_class(f"{description} must not contain the null character")

    try:
        encoded = value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise exc_class(f"{description} is not encodable as utf-8: {exc}") from None

    if len(encoded) > MAX_FIELD_LENGTH:
        # MQTT-4.7.3-3
        raise exc_class(
            f"{description} must not be longer than {MAX_FIELD_LENGTH} bytes when "
            f"encoded"
        )


@frozen
class TopicName:
    """
    A validated topic name, as used in ``PUBLISH`` packets and wills.

    Topic names must be non-empty, must not contain wildcard characters (``#`` or
    ``+``) or the null character, and must fit in 65535 bytes when encoded as UTF-8.

    :raises InvalidTopicName: if the value is not a valid topic name
    """

    value: str = field(validator=instance_of(str))

    def __attrs_post_init__(self) -> None:
        _check_topic_string(self.value, "topic name", InvalidTopicName)
        if "#" in self.value or "+" in self.value:
            # MQTT-3.3.2-2
            raise InvalidTopicName(
                "topic name must not contain wildcard characters ('#' or '+')"
            )

    def __str__(self) -> str:
        return self.value

    @property
    def is_server_specific(self) -> bool:
        """``True`` if the topic name is reserved for server use (starts with ``$``)."""
        return self.value.startswith("$")

    @classmethod
    def decode(cls, data: memoryview) -> tuple[memoryview, TopicName]:
        data, value = decode_utf8(data)
        return data, cls(value)

    def encode(self, buffer: bytearray) -> None:
        encode_utf8(self.value, buffer)


@frozen
class TopicFilter:
    """
    A validated topic filter, as used in ``SUBSCRIBE`` and ``UNSUBSCRIBE`` packets.

    In addition to the rules applying to topic names, the single-level wildcard
    (``+``) must occupy an entire level, and the multi-level wildcard (``#``) must
    occupy an entire level and be the last level of the filter.

    :raises InvalidTopicFilter: if the value is not a valid topic filter
    """

    value: str = field(validator=instance_of(str))

    def __attrs_post_init__(self) -> None:
        _check_topic_string(self.value, "topic filter", InvalidTopicFilter)
        levels = self.levels
        for i, level in enumerate(levels):
            if "+" in level and len(level) != 1:
                # MQTT-4.7.1-3
                raise InvalidTopicFilter(
                    "single-level wildcard ('+') must occupy an entire level of the "
                    "topic filter"
                )
            elif "#" in level:
                if len(level) != 1:
                    # MQTT-4.7.1-2
                    raise InvalidTopicFilter(
                        "multi-level wildcard ('#') must occupy an entire level of "
                        "the topic filter"
                    )
                elif i != len(levels) - 1:
                    # MQTT-4.7.1-2
                    raise InvalidTopicFilter(
                        "multi-level wildcard ('#') must be the last character in "
                        "the topic filter"
                    )

    def __str__(self) -> str:
        return self.value

    @property
    def levels(self) -> list[str]:
        return self.value.split("/")

    def matches(self, topic: TopicName | str) -> bool:
        """
        Check if a topic name matches this filter.

        :param topic: a topic name
        :return: ``True`` if the topic name matches this filter, ``False`` if not

        """
        topic_parts = str(topic).split("/")
        for i, (filter_part, topic_part) in enumerate(
            zip_longest(self.levels, topic_parts)
        ):
            # Wildcards at the first level don't match topics starting with "$"
            if i or not topic_part.startswith("$"):
                if filter_part == "#":
                    # MQTT-4.7.1-2
                    return True
                elif filter_part == "+" and topic_part is not None:
                    # MQTT-4.7.1-3
                    continue

            if topic_part != filter_part:
                return False

        return True

    @classmethod
    def decode(cls, data: memoryview) -> tuple[memoryview, TopicFilter]:
        data, value = decode_utf8(data)
        return data, cls(value)

    def encode(self, buffer: bytearray) -> None:
        encode_utf8(self.value, buffer)


def _to_topic_name(value: Any) -> Any:
    return TopicName(value) if isinstance(value, str) else value


def _to_topic_filter(value: Any) -> Any:
    return TopicFilter(value) if isinstance(value, str) else value


def _to_topic_filters(values: Iterable[Any]) -> tuple[Any, ...]:
    return tuple(_to_topic_filter(value) for value in values)


def _to_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return value.encode("utf-8")
    elif isinstance(value, (bytearray, memoryview)):
        return bytes(value)

    return value


def _to_optional_bytes(value: Any) -> Any:
    return None if value is None else _to_bytes(value)


packet_id_validator = [instance_of(int), ge(0), le(MAX_PACKET_ID)]


@frozen
class AtMostOnce:
    """QoS 0 delivery; carries no packet identifier."""

    qos: ClassVar[QoS] = QoS.AT_MOST_ONCE
    packet_id: ClassVar[None] = None


@frozen
class AtLeastOnce:
    """QoS 1 delivery with its packet identifier."""

    qos: ClassVar[QoS] = QoS.AT_LEAST_ONCE
    packet_id: int = field(validator=packet_id_validator)


@frozen
class ExactlyOnce:
    """QoS 2 delivery with its packet identifier."""

    qos: ClassVar[QoS] = QoS.EXACTLY_ONCE
    packet_id: int = field(validator=packet_id_validator)


QoSWithPacketId: TypeAlias = Union[AtMostOnce, AtLeastOnce, ExactlyOnce]


def qos_with_packet_id(qos: QoS, packet_id: int | None = None) -> QoSWithPacketId:
    """
    Combine a QoS level and a packet identifier.

    :param qos: the QoS level
    :param packet_id: the packet identifier (must be given if, and only if, ``qos``
        is above 0)

    """
    if qos == QoS.AT_MOST_ONCE:
        if packet_id is not None:
            raise ValueError("packet_id must be None when qos is 0")

        return AtMostOnce()

    if packet_id is None:
        raise ValueError("packet_id must be an integer when qos > 0")

    if qos == QoS.AT_LEAST_ONCE:
        return AtLeastOnce(packet_id)
    elif qos == QoS.EXACTLY_ONCE:
        return ExactlyOnce(packet_id)

    raise ValueError(f"invalid QoS level: {qos}")


@frozen
class FixedHeader:
    """
    The fixed header present at the start of every MQTT control packet.

    The packet type is kept as a raw 4-bit value so that headers of unknown packet
    types can still be represented.

    Format::

        7                          3                          0
        +--------------------------+--------------------------+
        | MQTT Control Packet Type | Flags for each type      |
        +--------------------------+--------------------------+
        | Remaining Length (1-4 bytes)                        |
        +-----------------------------------------------------+
    """

    packet_type: int = field(validator=[instance_of(int), ge(0), le(15)])
    flags: int = field(default=0, validator=[instance_of(int), ge(0), le(15)])
    remaining_length: int = field(
        default=0, validator=[instance_of(int), ge(0), le(MAX_VARIABLE_INTEGER)]
    )

    @property
    def encoded_length(self) -> int:
        """Size of this header when encoded."""
        return 1 + variable_integer_length(self.remaining_length)

    @classmethod
    def decode(cls, data: memoryview) -> tuple[memoryview, FixedHeader]:
        data, first_byte = decode_fixed_integer(data, 1)
        data, remaining_length = decode_variable_integer(data)
        return data, cls(
            packet_type=first_byte >> 4,
            flags=first_byte & 15,
            remaining_length=remaining_length,
        )

    def encode(self, buffer: bytearray) -> None:
        encode_fixed_integer(self.packet_type << 4 | self.flags, buffer, 1)
        encode_variable_integer(self.remaining_length, buffer)


class MQTTPacket(metaclass=ABCMeta):
    """Abstract base class for all MQTT packets"""

    reserved_flags_mask: ClassVar[int] = 15
    expected_reserved_bits: ClassVar[int] = 0
    packet_type: ClassVar[ControlPacketType]

    __slots__ = ()

    @property
    def flags(self) -> int:
        """The 4 flag bits of this packet's fixed header."""
        return self.expected_reserved_bits

    def encode_fixed_header(self, payload: bytes, buffer: bytearray) -> None:
        if len(payload) > MAX_VARIABLE_INTEGER:
            raise MQTTEncodeError(
                f"{self.packet_type._name_} packet too large to encode "
                f"({len(payload)} bytes after the fixed header)"
            )

        FixedHeader(self.packet_type, self.flags, len(payload)).encode(buffer)
        buffer.extend(payload)

    @classmethod
    def decode(
        cls,
        data: memoryview,
        fixed_header: FixedHeader,
        *,
        allow_zero_packet_id: bool = True,
    ) -> tuple[memoryview, Self]:
        """
        Decode the variable header and payload of a packet of this type.

        :param data: the bytes following the fixed header
        :param fixed_header: the already decoded fixed header of the packet
        :param allow_zero_packet_id: if ``False``, reject packets with a packet
            identifier of 0
        :return: a tuple of (bytes following this packet, the decoded packet)
        :raises InsufficientData: if there are fewer bytes available than the
            remaining length, or if the packet contents are cut short
        :raises MQTTFrameLengthMismatch: if the packet contents did not use up all
            of the bytes declared by the remaining length

        """
        if fixed_header.packet_type != cls.packet_type:
            raise MQTTDecodeError(
                f"cannot decode a packet of type {fixed_header.packet_type} as "
                f"{cls.packet_type._name_}"
            )

        if fixed_header.flags & cls.reserved_flags_mask != cls.expected_reserved_bits:
            raise MQTTProtocolError(
                f"received {cls.packet_type._name_} with reserved bits set in its "
                f"fixed header"
            )

        remaining_length = fixed_header.remaining_length
        if len(data) < remaining_length:
            raise InsufficientData

        leftover_data, packet = cls.decode_body(
            data[:remaining_length], fixed_header.flags
        )
        if leftover_data:
            raise MQTTFrameLengthMismatch(
                f"{len(leftover_data)} bytes left over after decoding a "
                f"{cls.packet_type._name_} packet"
            )

        if not allow_zero_packet_id and getattr(packet, "packet_id", None) == 0:
            raise MQTTProtocolError(
                f"received {cls.packet_type._name_} with a packet identifier of 0"
            )

        return data[remaining_length:], packet

    @classmethod
    @abstractmethod
    def decode_body(cls, data: memoryview, flags: int) -> tuple[memoryview, Self]:
        pass

    @abstractmethod
    def encode(self, buffer: bytearray) -> None:
        pass


class PacketIdentifierMixin:
    """Body codec for packets that consist of nothing but a packet identifier."""

    __slots__ = ()

    packet_id: int

    @classmethod
    def decode_body(cls, data: memoryview, flags: int) -> tuple[memoryview, Self]:
        data, packet_id = decode_fixed_integer(data, 2)
        return data, cls(packet_id=packet_id)

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()
        encode_fixed_integer(self.packet_id, internal_buffer, 2)
        self.encode_fixed_header(internal_buffer, buffer)  # type: ignore[attr-defined]


@frozen(kw_only=True)
class Will:
    """
    The will message published by the server when the client disconnects
    unexpectedly.
    """

    topic: TopicName = field(
        converter=_to_topic_name, validator=instance_of(TopicName)
    )
    message: bytes = field(converter=_to_bytes, validator=instance_of(bytes))
    qos: QoS = field(default=QoS.AT_MOST_ONCE, converter=QoS)
    retain: bool = field(default=False, validator=instance_of(bool))


@frozen(kw_only=True)
class MQTTConnectPacket(MQTTPacket):
    """Connection request"""

    packet_type = ControlPacketType.CONNECT

    # Connect flags
    RESERVED_FLAG = 1
    CLEAN_SESSION_FLAG = 2
    WILL_FLAG = 4
    WILL_QOS_MASK = 24
    WILL_RETAIN_FLAG = 32
    PASSWORD_FLAG = 64
    USERNAME_FLAG = 128

    client_id: str = field(validator=instance_of(str))
    protocol_name: str = field(default=PROTOCOL_NAME, validator=instance_of(str))
    protocol_level: int = field(
        default=PROTOCOL_LEVEL, validator=[instance_of(int), ge(0), le(255)]
    )
    clean_session: bool = field(default=False, validator=instance_of(bool))
    keep_alive: int = field(
        default=0, validator=[instance_of(int), ge(0), le(65535)]
    )
    will: Will | None = field(default=None, validator=optional(instance_of(Will)))
    username: str | None = field(default=None, validator=optional(instance_of(str)))
    password: bytes | None = field(
        default=None,
        converter=_to_optional_bytes,
        validator=optional(instance_of(bytes)),
    )

    def __attrs_post_init__(self) -> None:
        if self.password is not None and self.username is None:
            # MQTT-3.1.2-22
            raise MQTTProtocolError("a password cannot be sent without a username")

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTConnectPacket]:
        # Decode the variable header
        data, protocol_name = decode_utf8(data)
        data, protocol_level = decode_fixed_integer(data, 1)
        data, connect_flags = decode_fixed_integer(data, 1)
        if connect_flags & cls.RESERVED_FLAG:
            # MQTT-3.1.2-3
            raise MQTTProtocolError("reserved bit set in the connect flags")

        data, keep_alive = decode_fixed_integer(data, 2)

        # Decode the payload
        data, client_id = decode_utf8(data)

        will: Will | None = None
        if connect_flags & cls.WILL_FLAG:
            data, will_topic = TopicName.decode(data)
            data, will_message = decode_binary(data)
            will = Will(
                topic=will_topic,
                message=will_message,
                qos=QoS.get((connect_flags & cls.WILL_QOS_MASK) >> 3),
                retain=bool(connect_flags & cls.WILL_RETAIN_FLAG),
            )
        elif connect_flags & (cls.WILL_QOS_MASK | cls.WILL_RETAIN_FLAG):
            # MQTT-3.1.2-13, MQTT-3.1.2-15
            raise MQTTProtocolError(
                "will QoS or will retain set in the connect flags without the will "
                "flag"
            )

        username: str | None = None
        if connect_flags & cls.USERNAME_FLAG:
            data, username = decode_utf8(data)

        password: bytes | None = None
        if connect_flags & cls.PASSWORD_FLAG:
            data, password = decode_binary(data)

        return data, MQTTConnectPacket(
            client_id=client_id,
            protocol_name=protocol_name,
            protocol_level=protocol_level,
            clean_session=bool(connect_flags & cls.CLEAN_SESSION_FLAG),
            keep_alive=keep_alive,
            will=will,
            username=username,
            password=password,
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()

        # Gather the flags for the variable header
        connect_flags = 0
        if self.clean_session:
            connect_flags |= self.CLEAN_SESSION_FLAG

        if self.will:
            connect_flags |= self.WILL_FLAG | (self.will.qos << 3)
            if self.will.retain:
                connect_flags |= self.WILL_RETAIN_FLAG

        if self.username is not None:
            connect_flags |= self.USERNAME_FLAG

        if self.password is not None:
            connect_flags |= self.PASSWORD_FLAG

        # Encode the variable header
        encode_utf8(self.protocol_name, internal_buffer)
        encode_fixed_integer(self.protocol_level, internal_buffer, 1)
        encode_fixed_integer(connect_flags, internal_buffer, 1)
        encode_fixed_integer(self.keep_alive, internal_buffer, 2)

        # Encode the payload
        encode_utf8(self.client_id, internal_buffer)
        if self.will:
            self.will.topic.encode(internal_buffer)
            encode_binary(self.will.message, internal_buffer)

        if self.username is not None:
            encode_utf8(self.username, internal_buffer)

        if self.password is not None:
            encode_binary(self.password, internal_buffer)

        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTConnAckPacket(MQTTPacket):
    """Connection acknowledgment"""

    packet_type = ControlPacketType.CONNACK

    SESSION_PRESENT_FLAG = 1

    session_present: bool = field(default=False, validator=instance_of(bool))
    return_code: ConnectReturnCode = field(
        default=ConnectReturnCode.ACCEPTED, validator=instance_of(ConnectReturnCode)
    )

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTConnAckPacket]:
        data, connect_ack_flags = decode_fixed_integer(data, 1)
        if connect_ack_flags & ~cls.SESSION_PRESENT_FLAG:
            raise MQTTProtocolError(
                "reserved bits set in the connect acknowledge flags"
            )

        data, return_code_num = decode_fixed_integer(data, 1)
        return data, MQTTConnAckPacket(
            session_present=bool(connect_ack_flags & cls.SESSION_PRESENT_FLAG),
            return_code=ConnectReturnCode.get(return_code_num),
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()
        encode_fixed_integer(int(self.session_present), internal_buffer, 1)
        encode_fixed_integer(self.return_code, internal_buffer, 1)
        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTPublishPacket(MQTTPacket):
    """Publish message"""

    packet_type = ControlPacketType.PUBLISH
    reserved_flags_mask = 0

    RETAIN_FLAG = 1
    QOS_MASK = 6
    DUP_FLAG = 8

    topic: TopicName = field(
        converter=_to_topic_name, validator=instance_of(TopicName)
    )
    payload: bytes = field(
        default=b"", converter=_to_bytes, validator=instance_of(bytes)
    )
    qos: QoSWithPacketId = field(
        factory=AtMostOnce,
        validator=instance_of((AtMostOnce, AtLeastOnce, ExactlyOnce)),
    )
    retain: bool = field(default=False, validator=instance_of(bool))
    duplicate: bool = field(default=False, validator=instance_of(bool))

    @property
    def qos_level(self) -> QoS:
        return self.qos.qos

    @property
    def packet_id(self) -> int | None:
        return self.qos.packet_id

    @property
    def flags(self) -> int:
        return int(self.retain) | self.qos.qos << 1 | self.duplicate << 3

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTPublishPacket]:
        # Decode the fixed header flags
        retain = bool(flags & cls.RETAIN_FLAG)
        qos = QoS.get((flags & cls.QOS_MASK) >> 1)
        duplicate = bool(flags & cls.DUP_FLAG)

        # Decode the variable header
        data, topic = TopicName.decode(data)
        packet_id: int | None = None
        if qos:
            data, packet_id = decode_fixed_integer(data, 2)

        # The payload is the rest of the packet
        return memoryview(b""), MQTTPublishPacket(
            topic=topic,
            payload=data.tobytes(),
            qos=qos_with_packet_id(qos, packet_id),
            retain=retain,
            duplicate=duplicate,
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()

        # Encode the variable header
        self.topic.encode(internal_buffer)
        if self.packet_id is not None:
            encode_fixed_integer(self.packet_id, internal_buffer, 2)

        # Encode the payload
        internal_buffer.extend(self.payload)

        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTPublishAckPacket(PacketIdentifierMixin, MQTTPacket):
    """Publish acknowledgment (QoS 1)"""

    packet_type = ControlPacketType.PUBACK

    packet_id: int = field(validator=packet_id_validator)


@frozen(kw_only=True)
class MQTTPublishReceivePacket(PacketIdentifierMixin, MQTTPacket):
    """Publish received (QoS 2 delivery part 1)"""

    packet_type = ControlPacketType.PUBREC

    packet_id: int = field(validator=packet_id_validator)


@frozen(kw_only=True)
class MQTTPublishReleasePacket(PacketIdentifierMixin, MQTTPacket):
    """Publish release (QoS 2 delivery part 2)"""

    packet_type = ControlPacketType.PUBREL
    expected_reserved_bits = 2

    packet_id: int = field(validator=packet_id_validator)


@frozen(kw_only=True)
class MQTTPublishCompletePacket(PacketIdentifierMixin, MQTTPacket):
    """Publish complete (QoS 2 delivery part 3)"""

    packet_type = ControlPacketType.PUBCOMP

    packet_id: int = field(validator=packet_id_validator)


@frozen
class Subscription:
    """A topic filter paired with the maximum QoS requested for it."""

    QOS_MASK = 3

    topic_filter: TopicFilter = field(
        converter=_to_topic_filter, validator=instance_of(TopicFilter)
    )
    qos: QoS = field(default=QoS.EXACTLY_ONCE, converter=QoS)

    @classmethod
    def decode(cls, data: memoryview) -> tuple[memoryview, Subscription]:
        data, topic_filter = TopicFilter.decode(data)
        data, options = decode_fixed_integer(data, 1)
        if options & ~cls.QOS_MASK:
            # MQTT-3.8.3-4
            raise MQTTProtocolError("reserved bits set in the requested QoS byte")

        return data, Subscription(topic_filter, QoS.get(options & cls.QOS_MASK))

    def encode(self, buffer: bytearray) -> None:
        self.topic_filter.encode(buffer)
        encode_fixed_integer(self.qos, buffer, 1)

    def matches(self, publish: MQTTPublishPacket) -> bool:
        """
        Check if a published message matches this subscription.

        :param publish: an MQTT ``PUBLISH`` packet
        :return: ``True`` if the message's topic matches the topic filter, ``False``
            if not

        """
        return self.topic_filter.matches(publish.topic)


@frozen(kw_only=True)
class MQTTSubscribePacket(MQTTPacket):
    """Subscribe request"""

    packet_type = ControlPacketType.SUBSCRIBE
    expected_reserved_bits = 2

    packet_id: int = field(validator=packet_id_validator)
    subscriptions: tuple[Subscription, ...] = field(
        converter=tuple, validator=deep_iterable(instance_of(Subscription))
    )

    def __attrs_post_init__(self) -> None:
        if not self.subscriptions:
            # MQTT-3.8.3-3
            raise MQTTProtocolError("subscription must have at least one topic filter")

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTSubscribePacket]:
        # Decode the variable header
        data, packet_id = decode_fixed_integer(data, 2)

        # Decode the payload
        subscriptions: list[Subscription] = []
        while data:
            data, subscription = Subscription.decode(data)
            subscriptions.append(subscription)

        return data, MQTTSubscribePacket(
            packet_id=packet_id, subscriptions=subscriptions
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()

        # Encode the variable header
        encode_fixed_integer(self.packet_id, internal_buffer, 2)

        # Encode the payload
        for subscription in self.subscriptions:
            subscription.encode(internal_buffer)

        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTSubscribeAckPacket(MQTTPacket):
    """Subscribe acknowledgment"""

    packet_type = ControlPacketType.SUBACK

    packet_id: int = field(validator=packet_id_validator)
    return_codes: tuple[SubscribeReturnCode, ...] = field(
        converter=tuple, validator=deep_iterable(instance_of(SubscribeReturnCode))
    )

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTSubscribeAckPacket]:
        # Decode the variable header
        data, packet_id = decode_fixed_integer(data, 2)

        # Decode the payload
        return_codes: list[SubscribeReturnCode] = []
        while data:
            data, return_code_num = decode_fixed_integer(data, 1)
            return_codes.append(SubscribeReturnCode.get(return_code_num))

        return data, MQTTSubscribeAckPacket(
            packet_id=packet_id, return_codes=return_codes
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()

        # Encode the variable header
        encode_fixed_integer(self.packet_id, internal_buffer, 2)

        # Encode the payload
        for return_code in self.return_codes:
            encode_fixed_integer(return_code, internal_buffer, 1)

        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTUnsubscribePacket(MQTTPacket):
    """Unsubscribe request"""

    packet_type = ControlPacketType.UNSUBSCRIBE
    expected_reserved_bits = 2

    packet_id: int = field(validator=packet_id_validator)
    topic_filters: tuple[TopicFilter, ...] = field(
        converter=_to_topic_filters, validator=deep_iterable(instance_of(TopicFilter))
    )

    def __attrs_post_init__(self) -> None:
        if not self.topic_filters:
            # MQTT-3.10.3-2
            raise MQTTProtocolError(
                "an unsubscribe request must have at least one topic filter"
            )

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTUnsubscribePacket]:
        # Decode the variable header
        data, packet_id = decode_fixed_integer(data, 2)

        # Decode the payload
        topic_filters: list[TopicFilter] = []
        while data:
            data, topic_filter = TopicFilter.decode(data)
            topic_filters.append(topic_filter)

        return data, MQTTUnsubscribePacket(
            packet_id=packet_id, topic_filters=topic_filters
        )

    def encode(self, buffer: bytearray) -> None:
        internal_buffer = bytearray()

        # Encode the variable header
        encode_fixed_integer(self.packet_id, internal_buffer, 2)

        # Encode the payload
        for topic_filter in self.topic_filters:
            topic_filter.encode(internal_buffer)

        self.encode_fixed_header(internal_buffer, buffer)


@frozen(kw_only=True)
class MQTTUnsubscribeAckPacket(PacketIdentifierMixin, MQTTPacket):
    """Unsubscribe acknowledgment"""

    packet_type = ControlPacketType.UNSUBACK

    packet_id: int = field(validator=packet_id_validator)


@frozen(kw_only=True)
class MQTTPingRequestPacket(MQTTPacket):
    """PING request"""

    packet_type = ControlPacketType.PINGREQ

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTPingRequestPacket]:
        return data, MQTTPingRequestPacket()

    def encode(self, buffer: bytearray) -> None:
        self.encode_fixed_header(b"", buffer)


@frozen(kw_only=True)
class MQTTPingResponsePacket(MQTTPacket):
    """PING response"""

    packet_type = ControlPacketType.PINGRESP

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTPingResponsePacket]:
        return data, MQTTPingResponsePacket()

    def encode(self, buffer: bytearray) -> None:
        self.encode_fixed_header(b"", buffer)


@frozen(kw_only=True)
class MQTTDisconnectPacket(MQTTPacket):
    """Disconnect notification"""

    packet_type = ControlPacketType.DISCONNECT

    @classmethod
    def decode_body(
        cls, data: memoryview, flags: int
    ) -> tuple[memoryview, MQTTDisconnectPacket]:
        return data, MQTTDisconnectPacket()

    def encode(self, buffer: bytearray) -> None:
        self.encode_fixed_header(b"", buffer)


VariablePacket: TypeAlias = Union[
    MQTTConnectPacket,
    MQTTConnAckPacket,
    MQTTPublishPacket,
    MQTTPublishAckPacket,
    MQTTPublishReceivePacket,
    MQTTPublishReleasePacket,
    MQTTPublishCompletePacket,
    MQTTSubscribePacket,
    MQTTSubscribeAckPacket,
    MQTTUnsubscribePacket,
    MQTTUnsubscribeAckPacket,
    MQTTPingRequestPacket,
    MQTTPingResponsePacket,
    MQTTDisconnectPacket,
]

packet_classes: dict[ControlPacketType, type[MQTTPacket]] = {
    ControlPacketType.CONNECT: MQTTConnectPacket,
    ControlPacketType.CONNACK: MQTTConnAckPacket,
    ControlPacketType.PUBLISH: MQTTPublishPacket,
    ControlPacketType.PUBACK: MQTTPublishAckPacket,
    ControlPacketType.PUBREC: MQTTPublishReceivePacket,
    ControlPacketType.PUBREL: MQTTPublishReleasePacket,
    ControlPacketType.PUBCOMP: MQTTPublishCompletePacket,
    ControlPacketType.SUBSCRIBE: MQTTSubscribePacket,
    ControlPacketType.SUBACK: MQTTSubscribeAckPacket,
    ControlPacketType.UNSUBSCRIBE: MQTTUnsubscribePacket,
    ControlPacketType.UNSUBACK: MQTTUnsubscribeAckPacket,
    ControlPacketType.PINGREQ: MQTTPingRequestPacket,
    ControlPacketType.PINGRESP: MQTTPingResponsePacket,
    ControlPacketType.DISCONNECT: MQTTDisconnectPacket,
}


def decode_packet(
    data: bytes | bytearray | memoryview,
    *,
    max_packet_size: int | None = None,
    allow_zero_packet_id: bool = True,
) -> tuple[memoryview, VariablePacket]:
    """
    Decode the next packet of any type from the given data.

    :param data: bytes starting with a fixed header
    :param max_packet_size: if given, reject packets larger than this (in bytes,
        including the fixed header)
    :param allow_zero_packet_id: if ``False``, reject packets with a packet
        identifier of 0
    :return: a tuple of (bytes following the packet, the decoded packet)
    :raises InsufficientData: if the data ends before the packet does
    :raises MQTTUnrecognizedPacketType: if the packet type is not one of the MQTT
        v3.1.1 control packet types
    :raises MQTTPacketTooLarge: if the packet is larger than ``max_packet_size``

    """
    view = memoryview(data)
    data, fixed_header = FixedHeader.decode(view)
    header_length = len(view) - len(data)
    try:
        packet_cls = packet_classes[ControlPacketType(fixed_header.packet_type)]
    except ValueError:
        raise MQTTUnrecognizedPacketType(fixed_header, header_length) from None

    if max_packet_size is not None:
        packet_size = header_length + fixed_header.remaining_length
        if packet_size > max_packet_size:
            raise MQTTPacketTooLarge(
                f"{packet_cls.packet_type._name_} packet of {packet_size} bytes "
                f"exceeds the maximum packet size of {max_packet_size} bytes"
            )

    data, packet = packet_cls.decode(
        data, fixed_header, allow_zero_packet_id=allow_zero_packet_id
    )
    return data, packet  # type: ignore[return-value]


def encode_packet(packet: VariablePacket) -> bytes:
    """
    Encode a packet of any type.

    :param packet: the packet to encode
    :return: the encoded packet, fixed header included

    """
    buffer = bytearray()
    packet.encode(buffer)
    return bytes(buffer)
