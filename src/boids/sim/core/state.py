from __future__ import annotations

from enum import Enum


class SimulationState(str, Enum):
    MENU = "Menu"
    RUNNING = "Running"
    PAUSED = "Paused"


class InputEvent(str, Enum):
    SPACE = "space"
    ESCAPE = "escape"


class SimulationStateError(RuntimeError):
    pass


_KEY_TRANSITIONS = {
    (SimulationState.MENU, InputEvent.SPACE): SimulationState.RUNNING,
    (SimulationState.RUNNING, InputEvent.SPACE): SimulationState.PAUSED,
    (SimulationState.PAUSED, InputEvent.SPACE): SimulationState.RUNNING,
    (SimulationState.MENU, InputEvent.ESCAPE): SimulationState.RUNNING,
    (SimulationState.RUNNING, InputEvent.ESCAPE): SimulationState.MENU,
    (SimulationState.PAUSED, InputEvent.ESCAPE): SimulationState.MENU,
}


def next_state(state: SimulationState, event: InputEvent) -> SimulationState:
    return _KEY_TRANSITIONS[(state, InputEvent(event))]
