# player_registry.py
import threading
from dataclasses import dataclass, replace
from typing import Dict, List


@dataclass
class Player:
    id: str
    name: str
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_data(self):
        return {"id": self.id, "name": self.name, "x": self.x, "y": self.y, "z": self.z}


class PlayerRegistry:
    """Authoritative store of joined players, keyed by player id.

    Every operation runs inside one short critical section and never
    suspends while holding the lock. Callers only ever get copies of the
    stored records back.
    """

    def __init__(self):
        self._players: Dict[str, Player] = {}
        self._lock = threading.Lock()

    def try_insert(self, player_id: str, player: Player) -> bool:
        """Insert iff player_id is absent. Returns False without mutating otherwise."""
        with self._lock:
            if player_id in self._players:
                return False
            self._players[player_id] = replace(player, id=player_id)
            return True

    def update(self, player_id: str, x: float, y: float, z: float) -> bool:
        """Move a player. A missing id is ignored and reported as False."""
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                return False
            player.x, player.y, player.z = x, y, z
            return True

    def remove(self, player_id: str) -> bool:
        with self._lock:
            return self._players.pop(player_id, None) is not None

    def snapshot(self) -> List[Player]:
        """Point-in-time copy of every record, in join order."""
        with self._lock:
            return [replace(p) for p in self._players.values()]

    def __contains__(self, player_id) -> bool:
        with self._lock:
            return player_id in self._players

    def __len__(self) -> int:
        with self._lock:
            return len(self._players)
