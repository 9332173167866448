"""
Action recorder: buffers raw interaction events and turns them into steps.

The recorder is fed by :mod:`ui_scenarios.automation.hooks` (live OS input)
or directly by callers. Each recorder owns its buffer; ``start()`` clears it
and ``stop()`` freezes it. ``to_steps`` coalesces consecutive keystrokes
aimed at the same element into a single ``type`` step and synthesizes a
locator for each target from its captured snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .locator import locator_from_snapshot
from .models import (
    ACTION_CLICK,
    ACTION_DOUBLE_CLICK,
    ACTION_HOVER,
    ACTION_KEYPRESS,
    ACTION_RIGHT_CLICK,
    ACTION_TYPE,
    ElementSnapshot,
    Locator,
    RecordedEvent,
    Scenario,
    Step,
)

logger = logging.getLogger(__name__)

EVENT_CLICK = "click"
EVENT_DOUBLE_CLICK = "doubleClick"
EVENT_RIGHT_CLICK = "rightClick"
EVENT_HOVER = "hover"
EVENT_TYPE = "type"
EVENT_KEYPRESS = "keypress"
EVENT_SCROLL = "scroll"
EVENT_DRAG = "drag"

_POINTER_STEPS = {
    EVENT_CLICK: ACTION_CLICK,
    EVENT_DOUBLE_CLICK: ACTION_DOUBLE_CLICK,
    EVENT_RIGHT_CLICK: ACTION_RIGHT_CLICK,
    EVENT_HOVER: ACTION_HOVER,
}

# Named keys as the drivers' press_key expects them.
_KEY_ALIASES = {
    "return": "enter",
    "esc": "escape",
    "del": "delete",
    "page_up": "pageup",
    "page_down": "pagedown",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
}

ElementLike = Union[ElementSnapshot, Mapping[str, Any], None]
Point = Tuple[int, int]


def normalize_key(key: str) -> str:
    parts = [part.strip().lower() for part in str(key).split("+") if part.strip()]
    return "+".join(_KEY_ALIASES.get(part, part) for part in parts)


def _snapshot(element: ElementLike) -> Optional[ElementSnapshot]:
    if element is None or isinstance(element, ElementSnapshot):
        return element
    if isinstance(element, Mapping):
        return ElementSnapshot.from_properties(element)
    raise TypeError(f"Unsupported element snapshot: {type(element).__name__}")


def _point(coordinates: Optional[Sequence[int]]) -> Optional[Point]:
    if coordinates is None:
        return None
    x, y = coordinates
    return int(x), int(y)


class ActionRecorder:
    """Per-instance event buffer with an explicit start/stop lifecycle."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._events: List[RecordedEvent] = []
        self._active = False
        self._last_element: Optional[ElementSnapshot] = None

    @property
    def is_recording(self) -> bool:
        return self._active

    @property
    def events(self) -> List[RecordedEvent]:
        with self._lock:
            return list(self._events)

    def start(self) -> None:
        with self._lock:
            self._events.clear()
            self._last_element = None
            self._active = True
        logger.info("Recording started")

    def stop(self) -> List[RecordedEvent]:
        with self._lock:
            self._active = False
            frozen = list(self._events)
        logger.info("Recording stopped with %d event(s)", len(frozen))
        return frozen

    def record(self, event: RecordedEvent) -> bool:
        """Append an event; returns False when the recorder is not active."""
        with self._lock:
            if not self._active:
                return False
            self._events.append(event)
            if event.kind in _POINTER_STEPS and event.element is not None:
                self._last_element = event.element
        logger.info("Recorded: %s%s", event.kind, f" '{event.key or event.value}'" if (event.key or event.value) else "")
        return True

    def record_click(
        self,
        element: ElementLike,
        coordinates: Optional[Sequence[int]] = None,
        button: str = "left",
        double: bool = False,
    ) -> bool:
        button = str(button or "left").lower()
        if double:
            kind = EVENT_DOUBLE_CLICK
        elif button == "right":
            kind = EVENT_RIGHT_CLICK
        else:
            kind = EVENT_CLICK
        return self.record(
            RecordedEvent(
                kind=kind,
                timestamp=self._clock(),
                element=_snapshot(element),
                coordinates=_point(coordinates),
                button=button,
            )
        )

    def promote_last_click(self) -> bool:
        """Turn the most recent left ``click`` into a ``doubleClick``.

        Returns False when the recorder is idle or the last event is not a
        left click.
        """
        with self._lock:
            if not self._active or not self._events or self._events[-1].kind != EVENT_CLICK:
                return False
            self._events[-1] = replace(self._events[-1], kind=EVENT_DOUBLE_CLICK, timestamp=self._clock())
        logger.info("Recorded: %s", EVENT_DOUBLE_CLICK)
        return True

    def record_hover(self, element: ElementLike, coordinates: Optional[Sequence[int]] = None) -> bool:
        return self.record(
            RecordedEvent(kind=EVENT_HOVER, timestamp=self._clock(), element=_snapshot(element), coordinates=_point(coordinates))
        )

    def _key_target(self, element: ElementLike) -> Optional[ElementSnapshot]:
        snapshot = _snapshot(element)
        return snapshot if snapshot is not None else self._last_element

    def record_key(self, key: str, element: ElementLike = None) -> bool:
        """Printable characters become ``type`` events, everything else ``keypress``."""
        if not key:
            return False
        target = self._key_target(element)
        if len(key) == 1 and key.isprintable():
            event = RecordedEvent(kind=EVENT_TYPE, timestamp=self._clock(), element=target, value=key)
        else:
            event = RecordedEvent(kind=EVENT_KEYPRESS, timestamp=self._clock(), element=target, key=normalize_key(key))
        return self.record(event)

    def record_text(self, text: str, element: ElementLike = None) -> bool:
        if not text:
            return False
        return self.record(
            RecordedEvent(kind=EVENT_TYPE, timestamp=self._clock(), element=self._key_target(element), value=str(text))
        )

    def record_scroll(
        self,
        coordinates: Optional[Sequence[int]],
        dx: int,
        dy: int,
        element: ElementLike = None,
    ) -> bool:
        return self.record(
            RecordedEvent(
                kind=EVENT_SCROLL,
                timestamp=self._clock(),
                element=_snapshot(element),
                coordinates=_point(coordinates),
                value=f"{int(dx)},{int(dy)}",
            )
        )

    def record_drag(
        self,
        start: Sequence[int],
        end: Sequence[int],
        element: ElementLike = None,
        button: str = "left",
    ) -> bool:
        end_point = _point(end)
        return self.record(
            RecordedEvent(
                kind=EVENT_DRAG,
                timestamp=self._clock(),
                element=_snapshot(element),
                coordinates=_point(start),
                value=f"{end_point[0]},{end_point[1]}" if end_point else None,
                button=str(button or "left").lower(),
            )
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_steps(self, events: Optional[Iterable[RecordedEvent]] = None) -> List[Step]:
        source = self.events if events is None else list(events)
        return _StepBuilder().build(source)

    def to_scenario(
        self,
        name: str,
        events: Optional[Iterable[RecordedEvent]] = None,
        *,
        description: Optional[str] = None,
        tags: Sequence[str] = ("recorded",),
    ) -> Scenario:
        return Scenario(name=name, steps=tuple(self.to_steps(events)), description=description, tags=tuple(tags))


class _StepBuilder:
    """Single pass over recorded events with one pending ``type`` buffer."""

    def __init__(self) -> None:
        self.steps: List[Step] = []
        self._buffer: List[str] = []
        self._buffer_target: Optional[ElementSnapshot] = None

    def build(self, events: Sequence[RecordedEvent]) -> List[Step]:
        for event in events:
            if event.kind == EVENT_TYPE:
                self._on_type(event)
            elif event.kind == EVENT_KEYPRESS:
                self._on_key(event)
            elif event.kind in _POINTER_STEPS:
                self._flush()
                self._emit(_POINTER_STEPS[event.kind], event.element)
            elif event.kind in (EVENT_SCROLL, EVENT_DRAG):
                self._flush()
                logger.info("Dropping %s event at %s: no replayable step kind", event.kind, event.coordinates)
            else:
                self._flush()
                logger.warning("Dropping unknown recorded event kind '%s'", event.kind)
        self._flush()
        return self.steps

    def _on_type(self, event: RecordedEvent) -> None:
        if self._buffer and not self._same_target(event.element):
            self._flush()
        if not self._buffer:
            self._buffer_target = event.element
        self._buffer.append(event.value or "")

    def _on_key(self, event: RecordedEvent) -> None:
        key = event.key or ""
        if key == "backspace" and self._buffer and self._same_target(event.element):
            last = self._buffer.pop()
            if len(last) > 1:
                self._buffer.append(last[:-1])
            return
        self._flush()
        self._emit(ACTION_KEYPRESS, None, value=key)

    def _same_target(self, element: Optional[ElementSnapshot]) -> bool:
        current = self._buffer_target.identity() if self._buffer_target is not None else None
        other = element.identity() if element is not None else None
        return current == other

    def _flush(self) -> None:
        if not self._buffer:
            return
        text = "".join(self._buffer)
        target = self._buffer_target
        self._buffer = []
        self._buffer_target = None
        if text:
            self._emit(ACTION_TYPE, target, value=text)

    def _emit(self, action: str, element: Optional[ElementSnapshot], value: Optional[str] = None) -> None:
        locator: Optional[Locator] = None
        if action != ACTION_KEYPRESS:
            locator = locator_from_snapshot(element)
            if locator is None:
                logger.warning("Dropping recorded %s: target element has no identifying attributes", action)
                return
        self.steps.append(
            Step(
                step=len(self.steps) + 1,
                action=action,
                locator=locator,
                value=value,
                description=_describe(action, element, value),
            )
        )


def _describe(action: str, element: Optional[ElementSnapshot], value: Optional[str]) -> str:
    target = None
    if element is not None:
        target = element.name or element.automation_id or element.control_type
    if action == ACTION_KEYPRESS:
        return f"Press {value}"
    if action == ACTION_TYPE:
        return f"Type '{value}'" + (f" into {target}" if target else "")
    verb = {ACTION_CLICK: "Click", ACTION_DOUBLE_CLICK: "Double click", ACTION_RIGHT_CLICK: "Right click"}.get(
        action, "Hover"
    )
    return f"{verb} {target}" if target else verb
