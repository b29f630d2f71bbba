import json
import os
import sys
import time

from websockets.sync.client import connect

from protocol import MessageType

url = sys.argv[1] if len(sys.argv) > 1 else f"ws://127.0.0.1:{os.environ.get('PORT', '8087')}"
ws = connect(url)


def send_packet(p):
    ws.send(json.dumps(p))
    time.sleep(0.05)


# Join
send_packet({"type": MessageType.JOIN, "player_id": "smoke-1", "player_name": "Smoke"})
# Move
send_packet({"type": MessageType.UPDATE_POSITION, "x": 1.0, "y": 2.0, "z": 3.0})
# Malformed, should be ignored by the server
send_packet({"type": "Teleport"})
# Leave
send_packet({"type": MessageType.LEAVE})

try:
    while True:
        print('CLIENT RECV:', ws.recv(timeout=1.0))
except TimeoutError:
    pass

ws.close()
print('client done')
