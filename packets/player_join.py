from protocol import MessageType
from . import ClientPacket, ServerPacket
from .registry import register_packet


@register_packet
class JoinPacket(ClientPacket):
    packet_type = MessageType.JOIN
    fields = {"player_id": str, "player_name": str}


@register_packet
class PlayerJoinedPacket(ServerPacket):
    packet_type = MessageType.PLAYER_JOINED
    fields = {"player_id": str, "player_name": str, "x": float, "y": float, "z": float}
