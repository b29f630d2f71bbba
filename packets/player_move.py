from protocol import MessageType
from . import ClientPacket, ServerPacket
from .registry import register_packet


@register_packet
class UpdatePositionPacket(ClientPacket):
    packet_type = MessageType.UPDATE_POSITION
    fields = {"x": float, "y": float, "z": float}


@register_packet
class PlayerMovedPacket(ServerPacket):
    packet_type = MessageType.PLAYER_MOVED
    fields = {"player_id": str, "x": float, "y": float, "z": float}
