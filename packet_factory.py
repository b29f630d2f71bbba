import json

from protocol import Direction
from packets import BasePacket, DecodeError, parse_raw_packet


class PacketFactory:
    @staticmethod
    def build(packet: BasePacket) -> str:
        """Serialize a packet to a tagged JSON text frame."""
        envelope = {"type": packet.packet_type}
        envelope.update(packet.to_data())
        return json.dumps(envelope)

    @staticmethod
    def parse(raw_data, direction: str = Direction.CLIENT) -> BasePacket:
        """Deserialize one text frame into a packet; raises DecodeError."""
        try:
            raw = json.loads(raw_data)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError and UnicodeDecodeError are ValueErrors too
            raise DecodeError(f"invalid JSON: {e}") from e
        return parse_raw_packet(raw, direction)
