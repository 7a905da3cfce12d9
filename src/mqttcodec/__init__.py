from __future__ import annotations

from ._exceptions import InsufficientData as InsufficientData
from ._exceptions import InvalidTopic as InvalidTopic
from ._exceptions import InvalidTopicFilter as InvalidTopicFilter
from ._exceptions import InvalidTopicName as InvalidTopicName
from ._exceptions import MQTTDecodeError as MQTTDecodeError
from ._exceptions import MQTTEncodeError as MQTTEncodeError
from ._exceptions import MQTTException as MQTTException
from ._exceptions import MQTTFrameLengthMismatch as MQTTFrameLengthMismatch
from ._exceptions import MQTTPacketTooLarge as MQTTPacketTooLarge
from ._exceptions import MQTTProtocolError as MQTTProtocolError
from ._exceptions import MQTTUnrecognizedPacketType as MQTTUnrecognizedPacketType
from ._exceptions import MQTTValueOutOfRange as MQTTValueOutOfRange
from ._streams import PacketDecoder as PacketDecoder
from ._streams import read_packet as read_packet
from ._streams import receive_packet as receive_packet
from ._streams import send_packet as send_packet
from ._streams import write_packet as write_packet
from ._types import AtLeastOnce as AtLeastOnce
from ._types import AtMostOnce as AtMostOnce
from ._types import ConnectReturnCode as ConnectReturnCode
from ._types import ControlPacketType as ControlPacketType
from ._types import ExactlyOnce as ExactlyOnce
from ._types import FixedHeader as FixedHeader
from ._types import MQTTConnAckPacket as MQTTConnAckPacket
from ._types import MQTTConnectPacket as MQTTConnectPacket
from ._types import MQTTDisconnectPacket as MQTTDisconnectPacket
from ._types import MQTTPacket as MQTTPacket
from ._types import MQTTPingRequestPacket as MQTTPingRequestPacket
from ._types import MQTTPingResponsePacket as MQTTPingResponsePacket
from ._types import MQTTPublishAckPacket as MQTTPublishAckPacket
from ._types import MQTTPublishCompletePacket as MQTTPublishCompletePacket
from ._types import MQTTPublishPacket as MQTTPublishPacket
from ._types import MQTTPublishReceivePacket as MQTTPublishReceivePacket
from ._types import MQTTPublishReleasePacket as MQTTPublishReleasePacket
from ._types import MQTTSubscribeAckPacket as MQTTSubscribeAckPacket
from ._types import MQTTSubscribePacket as MQTTSubscribePacket
from ._types import MQTTUnsubscribeAckPacket as MQTTUnsubscribeAckPacket
from ._types import MQTTUnsubscribePacket as MQTTUnsubscribePacket
from ._types import QoS as QoS
from ._types import QoSWithPacketId as QoSWithPacketId
from ._types import SubscribeReturnCode as SubscribeReturnCode
from ._types import Subscription as Subscription
from ._types import TopicFilter as TopicFilter
from ._types import TopicName as TopicName
from ._types import VariablePacket as VariablePacket
from ._types import Will as Will
from ._types import decode_packet as decode_packet
from ._types import encode_packet as encode_packet
from ._types import qos_with_packet_id as qos_with_packet_id

# Re-export imports so they look like they live directly in this package
for value in list(locals().values()):
    if getattr(value, "__module__", "").startswith("mqttcodec."):
        value.__module__ = __name__
