# presence_server.py
import argparse
import asyncio
import contextlib
import logging
import signal
import sys

import websockets
from websockets.exceptions import ConnectionClosed

from protocol import MessageType
from packets import DecodeError
from packet_factory import PacketFactory
from player_registry import PlayerRegistry
from notification_bus import NotificationBus, SubscriberLagged
from session import Session
from server_config import ConfigError, ServerConfig, load_config
from handlers import player as player_handlers
from handlers.broadcast import forward_events

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

HANDLERS = {
    MessageType.JOIN: player_handlers.handle_join,
    MessageType.UPDATE_POSITION: player_handlers.handle_update_position,
    MessageType.LEAVE: player_handlers.handle_leave,
}


class PresenceServer:
    def __init__(self, config=None):
        self.config = config or ServerConfig()
        self.registry = PlayerRegistry()
        self.bus = NotificationBus(self.config.bus_capacity)
        self.sessions = set()
        self.started = asyncio.Event()
        self.port = None

    async def handle_client(self, websocket):
        addr = websocket.remote_address
        session = Session(addr)
        # subscribe before reading so the session sees its own join events
        subscription = self.bus.subscribe()
        self.sessions.add(session)
        log.info("[CONNECT] %s", addr)

        inbound = asyncio.create_task(self._receive_loop(session, websocket))
        outbound = asyncio.create_task(forward_events(subscription, websocket))
        try:
            await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            subscription.close()
            for task in (inbound, outbound):
                task.cancel()
            results = await asyncio.gather(inbound, outbound, return_exceptions=True)
            for result in results:
                self._log_task_end(session, result)
            player_handlers.handle_disconnect(self, session)
            self.sessions.discard(session)
            log.info("[DISCONNECT] Connection closed: %s", addr)

    async def _receive_loop(self, session, websocket):
        async for message in websocket:
            if not isinstance(message, str):
                # binary frames carry nothing for us
                continue
            log.debug("[RECV] From %s: %s", session.address, message)
            try:
                packet = PacketFactory.parse(message)
            except DecodeError as e:
                log.warning("[ERROR] Dropping message from %s: %s", session.address, e)
                continue
            await self.handle_packet(session, packet)
        log.info("[DISCONNECT] Client %s disconnected", session.address)

    async def handle_packet(self, session, packet):
        handler = HANDLERS.get(packet.packet_type)
        if handler is None:
            log.warning("[ERROR] Unknown packet type: %s", packet.packet_type)
            return
        await handler(self, session, packet)

    def _log_task_end(self, session, result):
        if result is None or isinstance(result, asyncio.CancelledError):
            return
        if isinstance(result, SubscriberLagged):
            log.warning("[LAG] Dropping %s: %s", session.address, result)
        elif isinstance(result, ConnectionClosed):
            log.info("[DISCONNECT] %s: %s", session.address, result)
        elif isinstance(result, BaseException):
            log.error("[ERROR] Session %s failed", session.address, exc_info=result)

    async def serve(self, stop=None):
        """Accept connections until stop (an asyncio.Event) is set, or forever."""
        async with websockets.serve(
            self.handle_client,
            self.config.host,
            self.config.port,
            max_size=self.config.max_message_size,
        ) as server:
            self.port = server.sockets[0].getsockname()[1]
            log.info("[SERVER] Presence server listening on: %s:%s", self.config.host, self.port)
            self.started.set()
            if stop is None:
                await asyncio.Future()
            else:
                await stop.wait()
            log.info("[SERVER] Shutting down, %d sessions open", len(self.sessions))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Real-time player presence server")
    parser.add_argument("--config", help="INI file with a [server] section")
    parser.add_argument("--host", help="bind address (env BIND_ADDRESS)")
    parser.add_argument("--port", type=int, help="bind port (env PORT)")
    parser.add_argument("--bus-capacity", type=int, help="events retained for slow clients")
    parser.add_argument("--log-level", type=str.upper, help="DEBUG, INFO, WARNING, ...")
    return parser.parse_args(argv)


async def run(config):
    server = PresenceServer(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    await server.serve(stop)


def main(argv=None):
    args = parse_args(argv)
    try:
        config = load_config(args.config).with_overrides(
            host=args.host,
            port=args.port,
            bus_capacity=args.bus_capacity,
            log_level=args.log_level,
        ).validated()
    except ConfigError as e:
        logging.basicConfig(format=LOG_FORMAT)
        log.error("[SERVER] Invalid configuration: %s", e)
        return 2

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    try:
        asyncio.run(run(config))
    except OSError as e:
        log.error("[SERVER] Failed to bind %s:%s: %s", config.host, config.port, e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
