from protocol import MessageType
from . import ClientPacket, ServerPacket
from .registry import register_packet


@register_packet
class LeavePacket(ClientPacket):
    packet_type = MessageType.LEAVE


@register_packet
class PlayerLeftPacket(ServerPacket):
    packet_type = MessageType.PLAYER_LEFT
    fields = {"player_id": str}


@register_packet
class ErrorPacket(ServerPacket):
    packet_type = MessageType.ERROR
    fields = {"message": str}
