from protocol import MessageType
from . import ServerPacket
from .registry import register_packet


@register_packet
class GameStatePacket(ServerPacket):
    """Full registry contents: players is a list of {id, name, x, y, z}."""
    packet_type = MessageType.GAME_STATE
    fields = {"players": list}
