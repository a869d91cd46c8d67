from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Sequence

from culture_bridge.sketch import Note, sketch_span

DEFAULT_COLOR = "#22d3ee"
DEFAULT_MIN_RANGE = 12
TIME_SCALE = 100.0
PITCH_SCALE = 10.0
NOTE_HEIGHT = 8.0
PITCH_PADDING = 2
GRID_STROKE = "rgba(255,255,255,0.05)"


@dataclass(frozen=True)
class NoteRect:
    x: float
    y: float
    width: float
    height: float
    pitch: int


@dataclass(frozen=True)
class PianoRollLayout:
    """Drawable piano-roll description of one sketch.

    Coordinates live in a viewbox of ``viewbox_width`` x ``viewbox_height``
    units with y growing downward. ``grid_lines`` holds the y offset of each
    semitone row. A layout built from no notes has ``is_placeholder`` set and
    carries nothing else worth drawing.
    """

    viewbox_width: float
    viewbox_height: float
    rects: tuple[NoteRect, ...]
    grid_lines: tuple[float, ...]
    color: str
    min_pitch: int | None = None
    max_pitch: int | None = None
    display_range: int = 0
    time_scale: float = TIME_SCALE
    pitch_scale: float = PITCH_SCALE
    is_placeholder: bool = False


def placeholder_layout(color: str = DEFAULT_COLOR) -> PianoRollLayout:
    return PianoRollLayout(
        viewbox_width=0.0,
        viewbox_height=0.0,
        rects=(),
        grid_lines=(),
        color=color,
        is_placeholder=True,
    )


def pitch_bounds(notes: Sequence[Note]) -> tuple[int, int]:
    """Padded (min, max) pitch of a non-empty note sequence."""
    if not notes:
        raise ValueError("pitch_bounds requires at least one note.")
    pitches = [n.pitch for n in notes]
    return min(pitches) - PITCH_PADDING, max(pitches) + PITCH_PADDING


def display_range(notes: Sequence[Note], min_range: int = DEFAULT_MIN_RANGE) -> int:
    min_pitch, max_pitch = pitch_bounds(notes)
    return max(max_pitch - min_pitch, int(min_range))


def render_piano_roll(
    notes: Sequence[Note],
    color: str | None = None,
    min_range: int | None = None,
    time_scale: float = TIME_SCALE,
    pitch_scale: float = PITCH_SCALE,
    note_height: float = NOTE_HEIGHT,
) -> PianoRollLayout:
    color = color or DEFAULT_COLOR
    notes = tuple(notes)
    if not notes:
        return placeholder_layout(color)

    floor = DEFAULT_MIN_RANGE if min_range is None else int(min_range)
    min_pitch, max_pitch = pitch_bounds(notes)
    rows = display_range(notes, floor)

    rects = tuple(
        NoteRect(
            x=n.start * time_scale,
            y=(max_pitch - n.pitch) * pitch_scale,
            width=n.duration * time_scale,
            height=note_height,
            pitch=n.pitch,
        )
        for n in notes
    )
    return PianoRollLayout(
        viewbox_width=sketch_span(notes) * time_scale,
        viewbox_height=rows * pitch_scale,
        rects=rects,
        grid_lines=tuple(i * pitch_scale for i in range(rows)),
        color=color,
        min_pitch=min_pitch,
        max_pitch=max_pitch,
        display_range=rows,
        time_scale=time_scale,
        pitch_scale=pitch_scale,
    )


def _fmt(value: float) -> str:
    return f"{value:g}"


def layout_to_svg(layout: PianoRollLayout, placeholder_text: str = "No sequence data") -> str:
    if layout.is_placeholder:
        return (
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 200 40">'
            '<text x="100" y="24" text-anchor="middle" font-style="italic" font-size="10" fill="#334155">'
            f"{escape(placeholder_text)}</text></svg>"
        )

    w = _fmt(layout.viewbox_width)
    h = _fmt(layout.viewbox_height)
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {w} {h}" preserveAspectRatio="none">',
    ]
    for y in layout.grid_lines:
        parts.append(
            f'<line x1="0" y1="{_fmt(y)}" x2="{w}" y2="{_fmt(y)}" stroke="{GRID_STROKE}" stroke-width="0.5"/>'
        )
    for rect in layout.rects:
        parts.append(
            f'<rect x="{_fmt(rect.x)}" y="{_fmt(rect.y)}" width="{_fmt(rect.width)}" '
            f'height="{_fmt(rect.height)}" fill="{escape(layout.color)}" rx="1"/>'
        )
    parts.append("</svg>")
    return "".join(parts)
