"""Breakpoint amplitude envelopes evaluated over absolute clock times."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

CURVES = ("step", "linear", "exponential")


@dataclass(frozen=True)
class Breakpoint:
    """Target ``value`` reached at ``time`` seconds.

    ``step`` jumps to the value at ``time``. ``linear`` and ``exponential``
    ramp from the previous breakpoint; a ramp with no previous breakpoint
    behaves like a step.
    """

    time: float
    value: float
    curve: str = "linear"

    def __post_init__(self) -> None:
        if self.curve not in CURVES:
            raise ValueError(f"Unknown envelope curve: {self.curve!r}")


@dataclass(frozen=True)
class Envelope:
    initial: float = 0.0
    points: tuple[Breakpoint, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        prev: Breakpoint | None = None
        for bp in self.points:
            if prev is not None and bp.time < prev.time:
                raise ValueError("Envelope breakpoints must be sorted by time.")
            if bp.curve == "exponential" and prev is not None and (prev.value <= 0 or bp.value <= 0):
                raise ValueError("Exponential envelope segments need positive endpoints.")
            prev = bp

    @classmethod
    def constant(cls, value: float) -> "Envelope":
        return cls(initial=float(value))

    def values(self, times: np.ndarray) -> np.ndarray:
        t = np.asarray(times, dtype=np.float64)
        out = np.full(t.shape, float(self.initial), dtype=np.float64)
        prev: Breakpoint | None = None
        for bp in self.points:
            if prev is not None and bp.curve != "step" and bp.time > prev.time:
                seg = (t >= prev.time) & (t < bp.time)
                frac = (t[seg] - prev.time) / (bp.time - prev.time)
                if bp.curve == "linear":
                    out[seg] = prev.value + (bp.value - prev.value) * frac
                else:
                    out[seg] = prev.value * np.power(bp.value / prev.value, frac)
            out[t >= bp.time] = bp.value
            prev = bp
        return out

    def value_at(self, time: float) -> float:
        return float(self.values(np.array([time]))[0])


def note_envelope(start: float, end: float, peak: float = 0.2, attack_s: float = 0.05) -> Envelope:
    """Silence until ``start``, linear attack to ``peak``, linear release to 0 at ``end``."""
    attack_end = min(start + attack_s, end)
    return Envelope(
        initial=0.0,
        points=(
            Breakpoint(start, 0.0, "step"),
            Breakpoint(attack_end, peak, "linear"),
            Breakpoint(end, 0.0, "linear"),
        ),
    )
