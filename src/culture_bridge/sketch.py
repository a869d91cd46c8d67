from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence


class InvalidNote(ValueError):
    """Raised when a note field falls outside its declared domain."""


def _is_real(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Note:
    """One discrete tone event of a melodic sketch.

    - ``pitch`` is a MIDI note number from 0 to 127 (69 = A4 = 440 Hz).
    - ``start`` is the offset from the beginning of the sketch in seconds.
    - ``duration`` is the sounding length in seconds and must be positive.
    """

    pitch: int
    start: float
    duration: float

    def __post_init__(self) -> None:
        if not isinstance(self.pitch, int) or isinstance(self.pitch, bool):
            raise InvalidNote(f"Note pitch must be an integer, got {self.pitch!r}.")
        if not (0 <= self.pitch <= 127):
            raise InvalidNote(f"Note pitch must be in [0,127], got {self.pitch}.")
        if not _is_real(self.start) or not math.isfinite(self.start) or self.start < 0:
            raise InvalidNote(f"Note start must be a finite number >= 0, got {self.start!r}.")
        if not _is_real(self.duration) or not math.isfinite(self.duration) or self.duration <= 0:
            raise InvalidNote(f"Note duration must be a finite number > 0, got {self.duration!r}.")

    @property
    def end(self) -> float:
        return self.start + self.duration


def sketch_span(notes: Iterable[Note]) -> float:
    return max((n.start + n.duration for n in notes), default=0.0)


@dataclass(frozen=True)
class Sketch:
    """Ordered notes of one proposition plus its display metadata."""

    notes: tuple[Note, ...] = field(default_factory=tuple)
    title: str = ""
    description: str = ""
    musical_sketch_prompt: str = ""

    def __post_init__(self) -> None:
        # Lists are accepted and stored as a tuple.
        object.__setattr__(self, "notes", tuple(self.notes))

    @property
    def span(self) -> float:
        return sketch_span(self.notes)

    @property
    def is_empty(self) -> bool:
        return not self.notes


def note_from_mapping(item: object, idx: int = 0) -> Note:
    if not isinstance(item, dict):
        raise ValueError(f"Note item {idx} must be an object.")
    try:
        pitch = item["pitch"]
        start = item["start"]
        duration = item["duration"]
    except KeyError as exc:
        raise ValueError(f"Note item {idx} is missing field {exc.args[0]!r}.") from None
    # JSON numbers may arrive as 60.0 for an integral pitch.
    if isinstance(pitch, float) and pitch.is_integer():
        pitch = int(pitch)
    return Note(pitch=pitch, start=start, duration=duration)


def notes_from_sequence(raw: Sequence[object]) -> tuple[Note, ...]:
    return tuple(note_from_mapping(item, idx) for idx, item in enumerate(raw))
