"""Live check: observe a session, push detection frames, fetch the report.

Run against a server started with:
    uvicorn integrity_monitor.main:app --port 8000
"""

import asyncio
import json
import urllib.request

import websockets


HOST = "127.0.0.1:8000"
API = f"http://{HOST}/api"


def _post(path: str, body: dict | None = None) -> dict:
    data = json.dumps(body or {}).encode()
    req = urllib.request.Request(
        f"{API}{path}", data=data, headers={"Content-Type": "application/json"}, method="POST"
    )
    with urllib.request.urlopen(req) as resp:
        return json.loads(resp.read())


def _face(nose_x: float) -> dict:
    """A 264-point mesh with eyes at x=600/680 and the nose where asked."""
    mesh = [[640.0, 360.0, 0.0]] * 264
    mesh[33] = [600.0, 340.0, 0.0]
    mesh[263] = [680.0, 340.0, 0.0]
    mesh[1] = [nose_x, 380.0, 0.0]
    return {"scaledMesh": mesh}


def _frame(faces: list[dict], predictions: list[dict] | None = None) -> dict:
    # Omitting "predictions" means the object detector did not run this tick
    frame = {"source_type": "face_mesh", "video_width": 1280, "video_height": 720, "faces": faces}
    if predictions is not None:
        frame["predictions"] = predictions
    return frame


async def observer(session_id: str, ready: asyncio.Event):
    """Print every live signal pushed for the session."""
    async with websockets.connect(f"ws://{HOST}/ws/sessions/{session_id}/events") as ws:
        print("[OBSERVER] Connected, waiting for signals...\n")
        ready.set()
        while True:
            data = json.loads(await ws.recv())
            if data.get("type") != "signal":
                continue
            sig = data["signal"]
            print(f"[OBSERVER] #{sig['sequence']:>3} {sig['kind']:<18} {json.dumps(sig['payload'])}")


async def send_frames(session_id: str):
    """Centered face, then a long look-away, a phone, and a second face."""
    script = (
        [_frame([_face(640.0)], [])] * 5
        + [_frame([_face(760.0)], [])] * 22
        + [_frame([_face(640.0)], [{"class": "cell phone", "score": 0.9, "bbox": [10, 10, 50, 90]}])] * 8
        + [_frame([_face(640.0), _face(640.0)], [])] * 2
    )
    async with websockets.connect(f"ws://{HOST}/ws/frames/{session_id}") as ws:
        for frame in script:
            await ws.send(json.dumps(frame))
            ack = json.loads(await ws.recv())
            if ack.get("status") != "accepted":
                print(f"[FRAMES] rejected: {ack}")
            await asyncio.sleep(0.3)


async def main():
    session = _post("/sessions", {"subject": "Live Check"})
    session_id = session["session_id"]
    print(f"Session {session_id}\n")

    ready = asyncio.Event()
    listener_task = asyncio.create_task(observer(session_id, ready))
    await ready.wait()

    await send_frames(session_id)
    _post(f"/sessions/{session_id}/end")
    await asyncio.sleep(1)

    report = _post(f"/reports/{session_id}")
    print(f"\nScore: {report['score']}/100  counts={report['counts']}")
    print(f"Artifacts: {report['csv']}, {report['text']}, {report['pdf']}")

    listener_task.cancel()


if __name__ == "__main__":
    asyncio.run(main())
