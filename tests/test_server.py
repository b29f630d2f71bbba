import asyncio
import json
import unittest

from websockets.asyncio.client import connect as connect_ws
from websockets.exceptions import ConnectionClosed

from packets import ErrorPacket
from presence_server import PresenceServer
from server_config import ServerConfig
from session import SessionState


def find(registry, player_id):
    return next((p for p in registry.snapshot() if p.id == player_id), None)


_CLOSE = object()


class DummyWebSocket:
    """Scripted stand-in for a websockets connection."""

    def __init__(self, port=12345):
        self.remote_address = ("127.0.0.1", port)
        self.inbox = asyncio.Queue()
        self.sent = []
        self.send_gate = None
        self.fail_sends = False

    def feed(self, message):
        if isinstance(message, dict):
            message = json.dumps(message)
        self.inbox.put_nowait(message)

    def hang_up(self):
        self.inbox.put_nowait(_CLOSE)

    def drop(self):
        self.inbox.put_nowait(ConnectionClosed(None, None))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, text):
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.fail_sends:
            raise ConnectionClosed(None, None)
        self.sent.append(json.loads(text))

    def types(self):
        return [m["type"] for m in self.sent]


async def until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


async def connect(server, ws):
    before = server.bus.subscriber_count
    task = asyncio.create_task(server.handle_client(ws))
    await until(lambda: server.bus.subscriber_count > before)
    return task


class TestPresenceServer(unittest.TestCase):
    def test_join_move_disconnect_scenario(self):
        async def run():
            server = PresenceServer()
            observer = DummyWebSocket(1)
            alice = DummyWebSocket(2)
            observer_task = await connect(server, observer)
            alice_task = await connect(server, alice)

            alice.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            await until(lambda: len(alice.sent) == 2)
            self.assertEqual(alice.sent, [
                {"type": "GameState", "players": [{"id": "p1", "name": "Alice", "x": 0.0, "y": 0.0, "z": 0.0}]},
                {"type": "PlayerJoined", "player_id": "p1", "player_name": "Alice", "x": 0.0, "y": 0.0, "z": 0.0},
            ])

            alice.feed({"type": "UpdatePosition", "x": 1.0, "y": 2.0, "z": 3.0})
            await until(lambda: len(alice.sent) == 3)
            self.assertEqual(alice.sent[2], {"type": "PlayerMoved", "player_id": "p1", "x": 1.0, "y": 2.0, "z": 3.0})
            p = find(server.registry, "p1")
            self.assertEqual((p.x, p.y, p.z), (1.0, 2.0, 3.0))

            alice.hang_up()
            await asyncio.wait_for(alice_task, 1)
            await until(lambda: len(observer.sent) == 4)
            self.assertEqual(observer.types(), ["GameState", "PlayerJoined", "PlayerMoved", "PlayerLeft"])
            self.assertEqual(observer.sent[3], {"type": "PlayerLeft", "player_id": "p1"})
            self.assertNotIn("p1", server.registry)
            self.assertEqual(len(server.sessions), 1)

            observer.hang_up()
            await asyncio.wait_for(observer_task, 1)
            self.assertEqual(server.bus.subscriber_count, 0)

        asyncio.run(run())

    def test_concurrent_duplicate_join(self):
        async def run():
            server = PresenceServer()
            a, b = DummyWebSocket(1), DummyWebSocket(2)
            tasks = [await connect(server, a), await connect(server, b)]
            a.feed({"type": "Join", "player_id": "dup", "player_name": "A"})
            b.feed({"type": "Join", "player_id": "dup", "player_name": "B"})
            await until(lambda: len(a.sent) == 3 and len(b.sent) == 3)

            bound = [s for s in server.sessions if s.state is SessionState.BOUND]
            unbound = [s for s in server.sessions if s.state is SessionState.UNBOUND]
            self.assertEqual(len(bound), 1)
            self.assertEqual(len(unbound), 1)
            self.assertEqual(bound[0].player_id, "dup")
            self.assertEqual(len(server.registry), 1)
            self.assertIn({"type": "Error", "message": "Player ID dup is already in use"}, a.sent)
            self.assertEqual(a.types().count("PlayerJoined"), 1)

            a.hang_up()
            b.hang_up()
            await asyncio.wait_for(asyncio.gather(*tasks), 1)
            self.assertEqual(len(server.registry), 0)

        asyncio.run(run())

    def test_malformed_messages_do_not_end_the_session(self):
        async def run():
            server = PresenceServer()
            ws = DummyWebSocket()
            task = await connect(server, ws)
            ws.feed("{not json")
            ws.feed(b"\x00\x01")
            ws.feed({"type": "Teleport"})
            ws.feed({"type": "UpdatePosition", "x": "far"})
            ws.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            await until(lambda: len(ws.sent) == 2)
            self.assertEqual(ws.types(), ["GameState", "PlayerJoined"])
            self.assertFalse(task.done())
            ws.feed('{"type": "UpdatePosition", "x": 1' + "0" * 400 + ', "y": 0, "z": 0}')
            ws.feed('{"type": "UpdatePosition", "x": ' + "9" * 5000 + ', "y": 0, "z": 0}')
            ws.feed("[" * 20000 + "]" * 20000)
            ws.feed({"type": "UpdatePosition", "x": 1.0, "y": 2.0, "z": 3.0})
            await until(lambda: len(ws.sent) == 3)
            self.assertEqual(ws.sent[2]["type"], "PlayerMoved")
            self.assertFalse(task.done())
            self.assertIn("p1", server.registry)
            ws.hang_up()
            await asyncio.wait_for(task, 1)

        asyncio.run(run())

    def test_transport_error_cleans_up_once(self):
        async def run():
            server = PresenceServer()
            observer, ws = DummyWebSocket(1), DummyWebSocket(2)
            observer_task = await connect(server, observer)
            task = await connect(server, ws)
            ws.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            await until(lambda: "p1" in server.registry)
            ws.drop()
            await asyncio.wait_for(task, 1)
            await until(lambda: "PlayerLeft" in observer.types())
            self.assertEqual(observer.types().count("PlayerLeft"), 1)
            self.assertNotIn("p1", server.registry)
            observer.hang_up()
            await asyncio.wait_for(observer_task, 1)

        asyncio.run(run())

    def test_write_failure_tears_down_session(self):
        async def run():
            server = PresenceServer()
            observer, ws = DummyWebSocket(1), DummyWebSocket(2)
            observer_task = await connect(server, observer)
            task = await connect(server, ws)
            ws.fail_sends = True
            ws.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            await asyncio.wait_for(task, 1)
            await until(lambda: "PlayerLeft" in observer.types())
            self.assertEqual(observer.types(), ["GameState", "PlayerJoined", "PlayerLeft"])
            self.assertNotIn("p1", server.registry)
            self.assertEqual(len(server.sessions), 1)
            observer.hang_up()
            await asyncio.wait_for(observer_task, 1)

        asyncio.run(run())

    def test_lagging_client_is_dropped(self):
        async def run():
            server = PresenceServer(ServerConfig(bus_capacity=2))
            slow = DummyWebSocket()
            slow.send_gate = asyncio.Event()
            task = await connect(server, slow)
            slow.feed({"type": "Join", "player_id": "slow", "player_name": "Snail"})
            await until(lambda: "slow" in server.registry)
            for n in range(5):
                server.bus.publish(ErrorPacket(message=f"filler {n}"))
            slow.send_gate.set()
            await asyncio.wait_for(task, 1)
            self.assertNotIn("slow", server.registry)
            self.assertEqual(server.bus.subscriber_count, 0)

        asyncio.run(run())

    def test_leave_keeps_connection_open(self):
        async def run():
            server = PresenceServer()
            ws = DummyWebSocket()
            task = await connect(server, ws)
            ws.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            ws.feed({"type": "Leave"})
            await until(lambda: len(ws.sent) == 3)
            self.assertEqual(ws.sent[2], {"type": "PlayerLeft", "player_id": "p1"})
            self.assertFalse(task.done())
            ws.feed({"type": "UpdatePosition", "x": 1.0, "y": 1.0, "z": 1.0})
            ws.feed({"type": "Join", "player_id": "p1", "player_name": "Alice"})
            await until(lambda: len(ws.sent) == 5)
            self.assertEqual(ws.types()[3:], ["GameState", "PlayerJoined"])
            ws.hang_up()
            await asyncio.wait_for(task, 1)
            self.assertNotIn("p1", server.registry)

        asyncio.run(run())


class TestServeOverWebSocket(unittest.TestCase):
    def test_real_connection(self):
        async def run():
            server = PresenceServer(ServerConfig(host="127.0.0.1", port=0))
            stop = asyncio.Event()
            serve_task = asyncio.create_task(server.serve(stop))
            await asyncio.wait_for(server.started.wait(), 5)

            async with connect_ws(f"ws://127.0.0.1:{server.port}") as ws:
                await ws.send(json.dumps({"type": "Join", "player_id": "p1", "player_name": "Alice"}))
                state = json.loads(await asyncio.wait_for(ws.recv(), 5))
                joined = json.loads(await asyncio.wait_for(ws.recv(), 5))
            self.assertEqual(state["type"], "GameState")
            self.assertEqual(joined["type"], "PlayerJoined")

            await until(lambda: "p1" not in server.registry, 5)
            stop.set()
            await asyncio.wait_for(serve_task, 5)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
