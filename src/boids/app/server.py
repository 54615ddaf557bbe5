from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from ..sim.core.config import AppConfig, SimulationConfig, SteeringWeights
from ..sim.core.state import InputEvent, SimulationState, SimulationStateError
from ..sim.core.world import World

logger = logging.getLogger("boids.app.server")


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class WeightsPayload(BaseModel):
    separation: float = Field(ge=0.0)
    alignment: float = Field(ge=0.0)
    cohesion: float = Field(ge=0.0)


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.tick = 0
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque()
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self.world.state is SimulationState.RUNNING

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
            self._loop_task.add_done_callback(self._on_loop_done)

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if self._loop_task is task:
            self._loop_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("tick loop stopped at tick %d", self.tick, exc_info=exc)

    async def transition(self, action: str) -> SimulationState:
        async with self._lock:
            if action == "start":
                self.world.start()
            elif action == "pause":
                self.world.pause()
            elif action == "resume":
                self.world.resume()
            elif action == "menu":
                self.world.open_menu()
            else:
                raise ValueError(f"Unknown control action: {action}")
            state = self.world.state
        await self._broadcast_snapshot()
        return state

    async def handle_input(self, event: InputEvent) -> SimulationState:
        async with self._lock:
            state = self.world.handle_input(event)
        await self._broadcast_snapshot()
        return state

    async def set_weights(self, weights: SteeringWeights) -> None:
        async with self._lock:
            self.world.set_weights(weights)

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
            self.tick = 0
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def _loop(self) -> None:
        last = time.monotonic()
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            now = time.monotonic()
            elapsed = now - last
            last = now
            if not self.running:
                continue
            dt = min(elapsed * self.speed_multiplier, self.config.max_frame_dt)
            async with self._lock:
                self.world.step(self.tick, dt)
                self.tick += 1
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot(self.tick)
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "world": asdict(snapshot.world),
                "metadata": asdict(snapshot.metadata),
                "weights": asdict(snapshot.weights),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        if client in self.clients:
            self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            if self._snapshot_queue and self._snapshot_queue[-1].tick == queued.tick:
                self._snapshot_queue[-1] = queued
            else:
                self._snapshot_queue.append(queued)
        # a later snapshot for an already-sent tick (state change, reset) is resent
        for client, last_sent in self._client_last_sent.items():
            if last_sent >= queued.tick:
                self._client_last_sent[client] = queued.tick - 1
        stale: Set[WebSocket] = set()
        # clients connect and disconnect while sends are awaited
        for client in list(self.clients):
            if client not in self.clients:
                continue
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


def _load_app_config() -> AppConfig:
    config_path = os.environ.get("BOIDS_CONFIG")
    if not config_path:
        return AppConfig()
    logger.info("loading simulation config from %s", config_path)
    return AppConfig(simulation=SimulationConfig.from_yaml(Path(config_path)))


app = FastAPI(title="Boids Flocking Simulation")
app_config = _load_app_config()
controller = SimulationController(app_config.simulation, app_config.broadcast_interval)
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=static_dir), name="static")


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/")
async def index() -> FileResponse:
    return FileResponse(static_dir / "index.html")


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot(controller.tick)
    return JSONResponse(
        {
            "state": controller.world.state.value,
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "metrics": asdict(snapshot.metrics),
            "weights": asdict(snapshot.weights),
        }
    )


async def _control(action: str) -> JSONResponse:
    try:
        state = await controller.transition(action)
    except SimulationStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return JSONResponse({"state": state.value, "running": controller.running})


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    return await _control("start")


@app.post("/api/control/pause")
async def pause_simulation() -> JSONResponse:
    return await _control("pause")


@app.post("/api/control/resume")
async def resume_simulation() -> JSONResponse:
    return await _control("resume")


@app.post("/api/control/menu")
async def open_menu() -> JSONResponse:
    return await _control("menu")


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"state": controller.world.state.value, "tick": controller.tick})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    try:
        speed = float(payload.get("multiplier", 1.0))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail="multiplier must be a number") from exc
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.get("/api/weights")
async def get_weights() -> JSONResponse:
    return JSONResponse(asdict(controller.world.weights))


@app.post("/api/weights")
async def update_weights(payload: WeightsPayload) -> JSONResponse:
    weights = SteeringWeights(
        separation=payload.separation,
        alignment=payload.alignment,
        cohesion=payload.cohesion,
    )
    await controller.set_weights(weights)
    return JSONResponse(asdict(weights))


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                logger.warning("ignoring malformed websocket message")
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type")
            if kind == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
            elif kind == "input":
                try:
                    event = InputEvent(payload.get("key"))
                except ValueError:
                    logger.warning("ignoring unknown input key %r", payload.get("key"))
                    continue
                await controller.handle_input(event)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
