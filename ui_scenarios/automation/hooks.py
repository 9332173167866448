"""Global mouse/keyboard hooks (pynput) feeding an :class:`ActionRecorder`."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Optional, Set, Tuple

from .driver.exceptions import DriverUnavailableError
from .models import ElementSnapshot
from .recorder import ActionRecorder, normalize_key

try:
    from pynput import keyboard, mouse  # type: ignore
except Exception:  # pragma: no cover - needs a desktop session
    keyboard = None  # type: ignore
    mouse = None  # type: ignore

logger = logging.getLogger(__name__)

DRAG_THRESHOLD_PX = 5
# Windows default double-click time.
DOUBLE_CLICK_INTERVAL_S = 0.5

_MODIFIERS = {
    "ctrl": "ctrl",
    "ctrl_l": "ctrl",
    "ctrl_r": "ctrl",
    "alt": "alt",
    "alt_l": "alt",
    "alt_r": "alt",
    "alt_gr": "alt",
    "shift": "shift",
    "shift_l": "shift",
    "shift_r": "shift",
    "cmd": "win",
    "cmd_l": "win",
    "cmd_r": "win",
}


class InputHookSource:
    """Translate pynput callbacks into recorder events.

    The element under the cursor is captured through the driver's
    ``element_from_point`` and ``get_element_properties`` at press time.
    Key events carry no element; the recorder attributes them to the last
    clicked element. A second left click in place within
    ``DOUBLE_CLICK_INTERVAL_S`` turns the first into a ``doubleClick``.
    """

    def __init__(
        self,
        recorder: ActionRecorder,
        driver: Any,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.recorder = recorder
        self.driver = driver
        self._clock = clock
        self._last_click: Optional[Tuple[int, int, float]] = None
        self._modifiers: Set[str] = set()
        self._pressed: Optional[Tuple[int, int, str, Optional[ElementSnapshot]]] = None
        self._mouse_listener: Any = None
        self._kb_listener: Any = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._mouse_listener is not None or self._kb_listener is not None

    def start(self, begin_recording: bool = True) -> None:
        if mouse is None or keyboard is None:
            raise DriverUnavailableError("pynput is required for input hooks but is not available.")
        if self.running:
            return
        if begin_recording:
            self.recorder.start()
        self._modifiers.clear()
        self._pressed = None
        self._last_click = None
        self._mouse_listener = mouse.Listener(on_click=self.on_click, on_scroll=self.on_scroll)
        self._kb_listener = keyboard.Listener(on_press=self.on_press, on_release=self.on_release)
        self._mouse_listener.start()
        self._kb_listener.start()
        logger.info("Input hooks started")

    def stop(self) -> list:
        for listener in (self._mouse_listener, self._kb_listener):
            if listener is not None:
                listener.stop()
        self._mouse_listener = None
        self._kb_listener = None
        self._modifiers.clear()
        logger.info("Input hooks stopped")
        return self.recorder.stop()

    def snapshot_at(self, x: int, y: int) -> Optional[ElementSnapshot]:
        lookup = getattr(self.driver, "element_from_point", None)
        if lookup is None:
            return None
        try:
            element = lookup(int(x), int(y))
            if element is None:
                return None
            return ElementSnapshot.from_properties(self.driver.get_element_properties(element) or {})
        except Exception as exc:
            logger.debug("No element snapshot at (%s, %s): %s", x, y, exc)
            return None

    # -- mouse --------------------------------------------------------------------

    def on_click(self, x: int, y: int, button: Any, pressed: bool) -> None:
        name = str(getattr(button, "name", button) or "left").lower()
        if pressed:
            with self._lock:
                self._pressed = (int(x), int(y), name, self.snapshot_at(x, y))
            return
        with self._lock:
            start, self._pressed = self._pressed, None
        if start is None:
            return
        sx, sy, start_button, element = start
        if math.hypot(int(x) - sx, int(y) - sy) > DRAG_THRESHOLD_PX:
            self._last_click = None
            self.recorder.record_drag((sx, sy), (x, y), element=element, button=start_button)
            return
        now = self._clock()
        previous, self._last_click = self._last_click, None
        if (
            start_button == "left"
            and previous is not None
            and now - previous[2] <= DOUBLE_CLICK_INTERVAL_S
            and math.hypot(sx - previous[0], sy - previous[1]) <= DRAG_THRESHOLD_PX
            and self.recorder.promote_last_click()
        ):
            return
        self.recorder.record_click(element, (sx, sy), button=start_button)
        if start_button == "left":
            self._last_click = (sx, sy, now)

    def on_scroll(self, x: int, y: int, dx: int, dy: int) -> None:
        self.recorder.record_scroll((x, y), dx, dy)

    # -- keyboard -----------------------------------------------------------------

    def on_press(self, key: Any) -> None:
        name = getattr(key, "name", None)
        if name in _MODIFIERS:
            self._modifiers.add(_MODIFIERS[name])
            return
        char = getattr(key, "char", None)
        if char and len(char) == 1 and 1 <= ord(char) <= 26 and "ctrl" in self._modifiers:
            # Ctrl+letter arrives as a control character.
            char = chr(ord(char) + 96)
        chord = [mod for mod in ("ctrl", "alt", "win") if mod in self._modifiers]
        if char and not chord:
            self.recorder.record_key(char)
            return
        base = (char or name or "").lower()
        if not base:
            return
        if chord:
            if "shift" in self._modifiers:
                chord.append("shift")
            self.recorder.record_key(normalize_key("+".join(chord + [base])))
        else:
            self.recorder.record_key(" " if base == "space" else normalize_key(base))

    def on_release(self, key: Any) -> None:
        name = getattr(key, "name", None)
        if name in _MODIFIERS:
            self._modifiers.discard(_MODIFIERS[name])
