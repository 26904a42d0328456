"""Keyboard handling and refresh scheduling for the dashboard loop."""

from __future__ import annotations

import curses
from dataclasses import dataclass
from enum import Enum, auto

from hosttop.engine import EngineContext
from hosttop.layout import Pane, PaneVisibility

# Control-key codes as delivered by curses in raw mode
CTRL_A = 1
CTRL_B = 2
CTRL_C = 3
CTRL_E = 5
CTRL_F = 6
CTRL_N = 14
CTRL_P = 16
CTRL_V = 22
ESC = 27


class Action(Enum):
    TOGGLE_CPU = auto()
    TOGGLE_MEMORY = auto()
    TOGGLE_DISK = auto()
    TOGGLE_NETWORK = auto()
    TOGGLE_PROCESSES = auto()
    SORT_NEXT = auto()
    SORT_PREVIOUS = auto()
    SELECT_DOWN = auto()
    SELECT_UP = auto()
    PAGE_DOWN = auto()
    PAGE_UP = auto()
    HOME = auto()
    END = auto()
    QUIT = auto()
    RESIZE = auto()


TOGGLES: dict[Action, Pane] = {
    Action.TOGGLE_CPU: Pane.CPU,
    Action.TOGGLE_MEMORY: Pane.MEMORY,
    Action.TOGGLE_DISK: Pane.DISK,
    Action.TOGGLE_NETWORK: Pane.NETWORK,
    Action.TOGGLE_PROCESSES: Pane.PROCESSES,
}

NAVIGATION = frozenset(
    {
        Action.SELECT_DOWN,
        Action.SELECT_UP,
        Action.PAGE_DOWN,
        Action.PAGE_UP,
        Action.HOME,
        Action.END,
    }
)

_KEYMAP: dict[int, Action] = {
    ord("1"): Action.TOGGLE_CPU,
    ord("2"): Action.TOGGLE_MEMORY,
    ord("3"): Action.TOGGLE_DISK,
    ord("4"): Action.TOGGLE_NETWORK,
    ord("5"): Action.TOGGLE_PROCESSES,
    CTRL_F: Action.SORT_NEXT,
    CTRL_B: Action.SORT_PREVIOUS,
    CTRL_N: Action.SELECT_DOWN,
    curses.KEY_DOWN: Action.SELECT_DOWN,
    CTRL_P: Action.SELECT_UP,
    curses.KEY_UP: Action.SELECT_UP,
    CTRL_V: Action.PAGE_DOWN,
    curses.KEY_NPAGE: Action.PAGE_DOWN,
    curses.KEY_PPAGE: Action.PAGE_UP,
    CTRL_A: Action.HOME,
    curses.KEY_HOME: Action.HOME,
    CTRL_E: Action.END,
    curses.KEY_END: Action.END,
    ord("q"): Action.QUIT,
    ord("Q"): Action.QUIT,
    ESC: Action.QUIT,
    CTRL_C: Action.QUIT,
    curses.KEY_RESIZE: Action.RESIZE,
}


def translate_key(key: int, alt: bool = False) -> Action | None:
    """Map a curses key code (plus Alt modifier) to an action."""
    if alt:
        return Action.PAGE_UP if key == ord("v") else None
    return _KEYMAP.get(key)


def time_until_refresh(now: float, last_update: float, interval: float) -> float:
    """Seconds left before the next scheduled tick, never negative."""
    return max(0.0, interval - (now - last_update))


@dataclass
class Outcome:
    redraw: bool = False
    refresh: bool = False
    save_settings: bool = False
    quit: bool = False


class Controller:
    """Applies input actions to the pane visibility and engine state."""

    def __init__(self, engine: EngineContext, visibility: PaneVisibility) -> None:
        self.engine = engine
        self.visibility = visibility
        self.running = True

    def handle(self, action: Action | None, in_error_mode: bool = False) -> Outcome:
        if action is None:
            return Outcome()

        if action is Action.QUIT:
            self.running = False
            return Outcome(quit=True)

        if action is Action.RESIZE:
            return Outcome(redraw=True)

        if action in TOGGLES:
            self.visibility = self.visibility.toggled(TOGGLES[action])
            return Outcome(redraw=True, refresh=True, save_settings=True)

        if action is Action.SORT_NEXT:
            self.engine.set_sort_mode(self.engine.sort_mode.next())
            return Outcome(redraw=True, refresh=True)

        if action is Action.SORT_PREVIOUS:
            self.engine.set_sort_mode(self.engine.sort_mode.previous())
            return Outcome(redraw=True, refresh=True)

        if action in NAVIGATION:
            if in_error_mode or not self.visibility.proc:
                return Outcome()
            self._navigate(action)
            return Outcome(redraw=True)

        return Outcome()

    def _navigate(self, action: Action) -> None:
        cursor = self.engine.selection
        count = len(self.engine.table)
        if action is Action.SELECT_DOWN:
            cursor.move(1, count)
        elif action is Action.SELECT_UP:
            cursor.move(-1, count)
        elif action is Action.PAGE_DOWN:
            cursor.page_down(count)
        elif action is Action.PAGE_UP:
            cursor.page_up(count)
        elif action is Action.HOME:
            cursor.home()
        elif action is Action.END:
            cursor.end(count)
