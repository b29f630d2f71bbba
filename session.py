from enum import Enum
from typing import Optional


class SessionState(Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    TERMINATED = "terminated"


class Session:
    """Server-side state of one live connection.

    Holds only the bound player id, never the player record itself.
    """

    def __init__(self, address=None):
        self.address = address
        self.player_id: Optional[str] = None
        self.state = SessionState.UNBOUND

    @property
    def is_bound(self) -> bool:
        return self.state is SessionState.BOUND

    def bind(self, player_id: str):
        if self.state is not SessionState.UNBOUND:
            raise RuntimeError(f"cannot bind {player_id!r} in state {self.state.value}")
        self.player_id = player_id
        self.state = SessionState.BOUND

    def unbind(self) -> Optional[str]:
        if self.state is not SessionState.BOUND:
            return None
        player_id, self.player_id = self.player_id, None
        self.state = SessionState.UNBOUND
        return player_id

    def terminate(self) -> Optional[str]:
        """Move to TERMINATED. Returns the id that was bound, only on the first call."""
        if self.state is SessionState.TERMINATED:
            return None
        player_id, self.player_id = self.player_id, None
        self.state = SessionState.TERMINATED
        return player_id

    def __repr__(self):
        return f"Session(address={self.address!r}, state={self.state.value}, player_id={self.player_id!r})"
