import math
from typing import Any, Dict

from protocol import Direction
from .registry import register_packet, lookup_packet


class DecodeError(ValueError):
    """Raised when a raw envelope cannot be turned into a packet."""


PLAYER_SCHEMA = {"id": str, "name": str, "x": float, "y": float, "z": float}


def _require(data: Dict[str, Any], key: str, owner: str):
    if key not in data:
        raise DecodeError(f"{owner} is missing field {key!r}")
    return data[key]


def _coerce(name: str, kind, value):
    if kind is str:
        if not isinstance(value, str):
            raise DecodeError(f"field {name!r} must be a string")
        return value
    if kind is float:
        # bool is an int subclass, reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError(f"field {name!r} must be a number")
        try:
            value = float(value)
        except OverflowError:
            raise DecodeError(f"field {name!r} is out of range") from None
        if not math.isfinite(value):
            raise DecodeError(f"field {name!r} must be finite")
        return value
    if kind is list:
        if not isinstance(value, list):
            raise DecodeError(f"field {name!r} must be a list")
        return [_coerce_player(f"{name}[{i}]", entry) for i, entry in enumerate(value)]
    raise TypeError(f"unsupported field kind {kind!r}")


def _coerce_player(name: str, entry):
    if not isinstance(entry, dict):
        raise DecodeError(f"field {name!r} must be an object")
    return {
        key: _coerce(f"{name}.{key}", kind, _require(entry, key, name))
        for key, kind in PLAYER_SCHEMA.items()
    }


class BasePacket:
    packet_type: str = None
    direction: str = None
    # field name -> kind (str, float, or list for player lists)
    fields: Dict[str, Any] = {}

    def __init__(self, **kwargs):
        data = {}
        for name, kind in self.fields.items():
            data[name] = _coerce(name, kind, _require(kwargs, name, self.packet_type))
        object.__setattr__(self, "_data", data)

    @classmethod
    def from_data(cls, data: Dict[str, Any]):
        # unknown keys (including the "type" tag) are ignored
        return cls(**{k: v for k, v in data.items() if k in cls.fields})

    def to_data(self) -> Dict[str, Any]:
        return {
            k: [dict(p) for p in v] if isinstance(v, list) else v
            for k, v in self._data.items()
        }

    def __getattr__(self, item):
        data = self.__dict__.get("_data", {})
        if item in data:
            return data[item]
        raise AttributeError(item)

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._data == other._data

    __hash__ = None

    def __repr__(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self._data.items())
        return f"{type(self).__name__}({args})"


class ClientPacket(BasePacket):
    direction = Direction.CLIENT


class ServerPacket(BasePacket):
    direction = Direction.SERVER


def parse_raw_packet(raw: Dict[str, Any], direction: str = Direction.CLIENT) -> BasePacket:
    """Parse a decoded envelope (a dict tagged by "type") into a packet object.

    Raises DecodeError if the envelope is not an object, the tag is unknown
    for the given direction, or a field is missing or has the wrong type.
    """
    if not isinstance(raw, dict):
        raise DecodeError("envelope must be a JSON object")
    ptype = raw.get("type")
    cls = lookup_packet(direction, ptype)
    if cls is None:
        raise DecodeError(f"unknown {direction} message type {ptype!r}")
    return cls.from_data(raw)


__all__ = [
    "BasePacket",
    "ClientPacket",
    "ServerPacket",
    "DecodeError",
    "parse_raw_packet",
    "register_packet",
]

# Import concrete packet modules so they register themselves on package import.
from . import player_join  # noqa: F401,E402
from . import player_move  # noqa: F401,E402
from . import world_update  # noqa: F401,E402
from . import other  # noqa: F401,E402
from .player_join import JoinPacket, PlayerJoinedPacket  # noqa: E402
from .player_move import UpdatePositionPacket, PlayerMovedPacket  # noqa: E402
from .world_update import GameStatePacket  # noqa: E402
from .other import LeavePacket, PlayerLeftPacket, ErrorPacket  # noqa: E402

__all__ += [
    "JoinPacket",
    "PlayerJoinedPacket",
    "UpdatePositionPacket",
    "PlayerMovedPacket",
    "GameStatePacket",
    "LeavePacket",
    "PlayerLeftPacket",
    "ErrorPacket",
]
