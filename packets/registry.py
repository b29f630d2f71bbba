from typing import Type, Dict, Optional


_registry: Dict[str, Dict[str, Type]] = {}


def register_packet(cls: Type):
    ptype = getattr(cls, "packet_type", None)
    direction = getattr(cls, "direction", None)
    if ptype is None or direction is None:
        raise ValueError("packet class must define packet_type and direction")
    _registry.setdefault(direction, {})[ptype] = cls
    return cls


def lookup_packet(direction: str, ptype) -> Optional[Type]:
    return _registry.get(direction, {}).get(ptype)
