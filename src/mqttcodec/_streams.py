from __future__ import annotations

import logging
from typing import IO

from anyio import EndOfStream
from anyio.abc import ByteReceiveStream, ByteSendStream
from attrs import define, field
from attrs.validators import and_, ge, instance_of, optional

from ._exceptions import (
    InsufficientData,
    MQTTException,
    MQTTFrameLengthMismatch,
    MQTTPacketTooLarge,
    MQTTUnrecognizedPacketType,
)
from ._types import FixedHeader, VariablePacket, decode_packet, encode_packet

logger = logging.getLogger(__name__)

#: Maximum size of a fixed header (1 type/flags byte + 4 remaining length bytes)
MAX_HEADER_LENGTH = 5


def _frame_length(data: memoryview) -> int | None:
    try:
        rest, fixed_header = FixedHeader.decode(data)
    except InsufficientData:
        return None

    return len(data) - len(rest) + fixed_header.remaining_length


def _parse_header(header: bytes, max_packet_size: int | None) -> FixedHeader:
    _, fixed_header = FixedHeader.decode(memoryview(header))
    if max_packet_size is not None:
        packet_size = len(header) + fixed_header.remaining_length
        if packet_size > max_packet_size:
            raise MQTTPacketTooLarge(
                f"packet of {packet_size} bytes exceeds the maximum packet size of "
                f"{max_packet_size} bytes"
            )

    return fixed_header


@define(eq=False)
class PacketDecoder:
    """
    Incremental decoder for a stream of MQTT packets.

    Bytes can be fed to the decoder in chunks of arbitrary size. Packets split across
    chunk boundaries are buffered until the rest of the packet arrives.

    :param max_packet_size: if given, reject packets larger than this (in bytes,
        including the fixed header)
    :param allow_zero_packet_id: if ``False``, reject packets with a packet
        identifier of 0
    :param skip_unrecognized: if ``True``, skip (and log a warning for) packets with
        an unrecognized packet type instead of raising
        :exc:`~mqttcodec.MQTTUnrecognizedPacketType`
    """

    max_packet_size: int | None = field(
        kw_only=True, default=None, validator=optional(and_(instance_of(int), ge(2)))
    )
    allow_zero_packet_id: bool = field(
        kw_only=True, default=True, validator=instance_of(bool)
    )
    skip_unrecognized: bool = field(
        kw_only=True, default=False, validator=instance_of(bool)
    )
    _buffer: bytearray = field(init=False, factory=bytearray)

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet decoded into a packet."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[VariablePacket]:
        """
        Input bytes received from the transport stream to the decoder.

        If the last packet is incomplete, it will remain in the buffer until a later
        call which completes the packet.

        If a packet fails to decode after other packets have already been decoded
        in the same call, those packets are returned and the error is raised on the
        next call instead. The failing packet stays at the start of the buffer.

        :param data: bytes received from the transport stream
        :return: a list of complete packets parsed from the bytes
        :raises MQTTFrameLengthMismatch: if a complete packet frame ended before its
            contents did

        """
        self._buffer.extend(data)
        view = memoryview(self._buffer)
        received_packets: list[VariablePacket] = []
        try:
            while view:
                try:
                    view, packet = decode_packet(
                        view,
                        max_packet_size=self.max_packet_size,
                        allow_zero_packet_id=self.allow_zero_packet_id,
                    )
                except InsufficientData:
                    frame_length = _frame_length(view)
                    if frame_length is not None and len(view) >= frame_length:
                        raise MQTTFrameLengthMismatch(
                            "packet contents extend past the end of the frame"
                        ) from None

                    break
                except MQTTUnrecognizedPacketType as exc:
                    if not self.skip_unrecognized:
                        raise

                    frame_length = exc.header_length + exc.remaining_length
                    if len(view) < frame_length:
                        break

                    logger.warning(
                        "Skipping packet of unrecognized type %d (%d bytes)",
                        exc.packet_type,
                        frame_length,
                    )
                    view = view[frame_length:]
                    continue

                logger.debug("Decoded packet: %r", packet)
                received_packets.append(packet)
        except MQTTException:
            if not received_packets:
                raise

            logger.debug(
                "Decode error after %d packets; deferring it to the next call",
                len(received_packets),
            )
        finally:
            # Keep only the undecoded bytes, starting at the failing frame if any
            self._buffer = bytearray(view)

        return received_packets


def _read_exactly(stream: IO[bytes], num_bytes: int) -> bytes:
    data = bytearray()
    while len(data) < num_bytes:
        chunk = stream.read(num_bytes - len(data))
        if not chunk:
            raise InsufficientData

        data += chunk

    return bytes(data)


def read_packet(
    stream: IO[bytes],
    *,
    max_packet_size: int | None = None,
    allow_zero_packet_id: bool = True,
) -> VariablePacket:
    """
    Read exactly one packet from a blocking binary stream.

    No bytes past the end of the packet are consumed from the stream. This holds
    even when :exc:`~mqttcodec.MQTTUnrecognizedPacketType` is raised, so reading can
    continue with the next packet.

    :param stream: a binary file-like object
    :param max_packet_size: if given, reject packets larger than this before reading
        their contents
    :param allow_zero_packet_id: if ``False``, reject packets with a packet
        identifier of 0
    :return: the decoded packet
    :raises EOFError: if the stream ended before the first byte of a packet
    :raises InsufficientData: if the stream ended in the middle of a packet

    """
    header = stream.read(1)
    if not header:
        raise EOFError("end of stream reached before the start of a packet")

    while len(header) < MAX_HEADER_LENGTH:
        header += _read_exactly(stream, 1)
        if not header[-1] & 128:
            break

    fixed_header = _parse_header(header, max_packet_size)
    body = _read_exactly(stream, fixed_header.remaining_length)
    _, packet = decode_packet(
        header + body,
        max_packet_size=max_packet_size,
        allow_zero_packet_id=allow_zero_packet_id,
    )
    logger.debug("Read packet from stream: %r", packet)
    return packet


def write_packet(stream: IO[bytes], packet: VariablePacket) -> None:
    """Encode a packet and write it to a blocking binary stream."""
    data = encode_packet(packet)
    stream.write(data)
    logger.debug("Wrote bytes to stream: %r", data)


async def _receive_exactly(stream: ByteReceiveStream, num_bytes: int) -> bytes:
    data = bytearray()
    while len(data) < num_bytes:
        try:
            data += await stream.receive(num_bytes - len(data))
        except EndOfStream:
            raise InsufficientData from None

    return bytes(data)


async def receive_packet(
    stream: ByteReceiveStream,
    *,
    max_packet_size: int | None = None,
    allow_zero_packet_id: bool = True,
) -> VariablePacket:
    """
    Receive exactly one packet from an AnyIO byte stream.

    Only as many bytes as the packet occupies are requested from the stream.

    :param stream: the stream to receive bytes from
    :param max_packet_size: if given, reject packets larger than this before receiving
        their contents
    :param allow_zero_packet_id: if ``False``, reject packets with a packet
        identifier of 0
    :return: the decoded packet
    :raises ~anyio.EndOfStream: if the stream ended before the first byte of a packet
    :raises InsufficientData: if the stream ended in the middle of a packet

    """
    header = await stream.receive(1)
    while len(header) < MAX_HEADER_LENGTH:
        header += await _receive_exactly(stream, 1)
        if not header[-1] & 128:
            break

    fixed_header = _parse_header(header, max_packet_size)
    body = await _receive_exactly(stream, fixed_header.remaining_length)
    _, packet = decode_packet(
        header + body,
        max_packet_size=max_packet_size,
        allow_zero_packet_id=allow_zero_packet_id,
    )
    logger.debug("Received packet from transport stream: %r", packet)
    return packet


async def send_packet(stream: ByteSendStream, packet: VariablePacket) -> None:
    """Encode a packet and send it to an AnyIO byte stream."""
    data = encode_packet(packet)
    await stream.send(data)
    logger.debug("Sent bytes to transport stream: %r", data)
