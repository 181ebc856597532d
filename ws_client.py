import asyncio
import json
import uuid

import websockets

HELP = """Commands:
  clinic <id> | doctor <id> | date <YYYY-MM-DD> | time <HH:MM>
  note <text> | submit | confirm | cancel | view | exit"""

COMMANDS = {
    "clinic": ("select_clinic", "clinic_id"),
    "doctor": ("select_doctor", "doctor_id"),
    "date": ("select_date", "date"),
    "time": ("select_time", "time"),
    "note": ("describe", "description"),
}


async def connect_and_book(token: str):
    """Connect to the WebSocket server and book interactively."""
    uri = "ws://localhost:8000/ws"
    thread_id = str(uuid.uuid4())

    try:
        print("Connecting to the clinic scheduler...")
        print(f"Using thread ID: {thread_id}")
        async with websockets.connect(uri) as websocket:
            await send_action(websocket, thread_id, token, "start")
            show(json.loads(await websocket.recv()))
            print(HELP)

            while True:
                user_input = input("You: ").strip()
                if user_input.lower() in ["exit", "quit", "bye"]:
                    print("Ending session. Goodbye!")
                    break

                word, _, rest = user_input.partition(" ")
                if word in COMMANDS:
                    action, field = COMMANDS[word]
                    payload = {field: rest.strip()}
                else:
                    action, payload = word, {}

                await send_action(websocket, thread_id, token, action, payload)
                show(json.loads(await websocket.recv()))

    except websockets.exceptions.ConnectionClosedError:
        print("\nConnection closed by the server. Make sure the server is running.")
        print("To start the server, run: python -m slot_scheduler.main")
    except ConnectionRefusedError:
        print("\nCould not connect to the server. Make sure the server is running.")
        print("To start the server, run: python -m slot_scheduler.main")
    finally:
        print("\nClient closed.")


def show(response_data: dict):
    """Print a server reply, including the free times of the chosen day."""
    if "error" in response_data:
        print(f"Server Error: {response_data['error']}")
        return

    print(f"[{response_data['phase']}] {response_data['message']}")
    view = response_data.get("view") or {}
    if view.get("doctor_id") is None:
        return
    for group in view.get("hour_groups", []):
        times = [s["time"] if not s["disabled"] else "--:--" for s in group["slots"]]
        print(f"  {group['hour']:>5}  {' '.join(times)}")


async def send_action(websocket, thread_id, token, action, payload=None):
    """Send one booking action to the WebSocket server."""
    message_data = {
        "thread_id": thread_id,
        "token": token,
        "action": action,
        "payload": payload or {},
    }
    await websocket.send(json.dumps(message_data))


if __name__ == "__main__":
    asyncio.run(connect_and_book("patient-1-token"))
