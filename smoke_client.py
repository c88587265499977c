"""Manual smoke test against a running server: python smoke_client.py <userId> [recipientId]"""
import asyncio
import json
import sys

import websockets


async def run(user_id, recipient_id=None):
    async with websockets.connect("ws://localhost:3000/ws") as ws:
        await ws.send(json.dumps({"event": "authenticate", "data": user_id}))
        print(f"Online: {await ws.recv()}")

        if recipient_id:
            await ws.send(json.dumps({
                "event": "message:send",
                "data": {"recipientId": recipient_id, "content": f"Hello from {user_id}!"},
            }))

        while True:
            print(f"Received: {await ws.recv()}")


if __name__ == "__main__":
    asyncio.run(run(*sys.argv[1:3]))
