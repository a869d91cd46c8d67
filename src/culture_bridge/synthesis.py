from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Iterable

import numpy as np

from culture_bridge.envelope import Envelope

WAVEFORMS = ("sine", "triangle", "noise")


@dataclass(frozen=True)
class ToneEvent:
    """One oscillator scheduled on an absolute clock.

    The oscillator sounds on ``[start, end)``. Its amplitude is
    ``envelope(t) * master(t)``; tones of one playback pass share the same
    ``master`` envelope. ``owner`` lets a scheduler find its own tones again.
    """

    frequency: float
    start: float
    end: float
    envelope: Envelope
    waveform: str = "triangle"
    master: Envelope | None = None
    owner: Hashable = None

    def __post_init__(self) -> None:
        if self.waveform not in WAVEFORMS:
            raise ValueError(f"Unsupported waveform: {self.waveform!r}")
        if self.end < self.start:
            raise ValueError("ToneEvent end must be >= start.")


def oscillator(waveform: str, frequency: float, elapsed_s: np.ndarray, rng: np.random.Generator | None = None) -> np.ndarray:
    phase = frequency * elapsed_s
    if waveform == "sine":
        return np.sin(2.0 * np.pi * phase)
    if waveform == "triangle":
        return 1.0 - 4.0 * np.abs(np.mod(phase + 0.25, 1.0) - 0.5)
    if waveform == "noise":
        rng = rng if rng is not None else np.random.default_rng()
        return rng.uniform(-1.0, 1.0, size=np.shape(elapsed_s))
    raise ValueError(f"Unsupported waveform: {waveform!r}")


def render_block(
    events: Iterable[ToneEvent],
    t_start: float,
    frames: int,
    sample_rate: int,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    out = np.zeros(max(0, int(frames)), dtype=np.float64)
    if out.size == 0:
        return out.astype(np.float32)
    t = t_start + np.arange(out.size, dtype=np.float64) / float(sample_rate)
    t_last = t[-1]
    for ev in events:
        if ev.end <= t_start or ev.start > t_last:
            continue
        active = (t >= ev.start) & (t < ev.end)
        if not np.any(active):
            continue
        tt = t[active]
        amp = ev.envelope.values(tt)
        if ev.master is not None:
            amp = amp * ev.master.values(tt)
        out[active] += oscillator(ev.waveform, ev.frequency, tt - ev.start, rng=rng) * amp
    return out.astype(np.float32)
