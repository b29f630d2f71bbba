import logging

from packets import (
    ErrorPacket,
    GameStatePacket,
    PlayerJoinedPacket,
    PlayerLeftPacket,
    PlayerMovedPacket,
)
from player_registry import Player

log = logging.getLogger(__name__)

# Registry mutations and the matching publish happen with no await in
# between, so publish order follows registry order.


async def handle_join(server, session, packet):
    player_id = packet.player_id

    if session.is_bound:
        log.warning("[JOIN] %s already joined as %s, rejecting %s",
                    session.address, session.player_id, player_id)
        server.bus.publish(ErrorPacket(
            message=f"Connection is already joined as {session.player_id}"
        ))
        return

    player = Player(id=player_id, name=packet.player_name)
    if not server.registry.try_insert(player_id, player):
        log.info("[JOIN] Player ID %s is already in use (from %s)", player_id, session.address)
        server.bus.publish(ErrorPacket(message=f"Player ID {player_id} is already in use"))
        return

    players = [p.to_data() for p in server.registry.snapshot()]
    server.bus.publish(GameStatePacket(players=players))
    server.bus.publish(PlayerJoinedPacket(
        player_id=player_id,
        player_name=player.name,
        x=player.x,
        y=player.y,
        z=player.z,
    ))
    session.bind(player_id)
    log.info("[JOIN] Player %s joined with ID: %s", player.name, player_id)


async def handle_update_position(server, session, packet):
    if not session.is_bound:
        log.warning("[WARN] Move packet from unjoined client %s", session.address)
        return

    player_id = session.player_id
    x, y, z = packet.x, packet.y, packet.z
    if not server.registry.update(player_id, x, y, z):
        # record already gone, nothing to announce
        return
    server.bus.publish(PlayerMovedPacket(player_id=player_id, x=x, y=y, z=z))
    log.debug("[MOVE] Player %s -> (%.2f, %.2f, %.2f)", player_id, x, y, z)


async def handle_leave(server, session, packet=None):
    player_id = session.unbind()
    if player_id is None:
        return
    if server.registry.remove(player_id):
        server.bus.publish(PlayerLeftPacket(player_id=player_id))
    log.info("[LEAVE] Player %s left", player_id)


def handle_disconnect(server, session):
    """Final cleanup for a session. Only the first call has any effect."""
    player_id = session.terminate()
    if player_id is None:
        return None
    if server.registry.remove(player_id):
        server.bus.publish(PlayerLeftPacket(player_id=player_id))
    log.info("[DISCONNECT] %s, player %s", session.address, player_id)
    return player_id
