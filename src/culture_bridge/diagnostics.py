from __future__ import annotations

import logging
from typing import Callable

from culture_bridge.audio_output import AudioOutput
from culture_bridge.envelope import Breakpoint, Envelope
from culture_bridge.probe_result import EpistemicStatus
from culture_bridge.synthesis import ToneEvent

logger = logging.getLogger(__name__)

CUE_MASTER_LEVEL = 0.1
CUE_MASTER_FLOOR = 0.0001
CUE_MASTER_DECAY_S = 0.5


def _cue_master(t0: float) -> Envelope:
    return Envelope(
        initial=0.0,
        points=(
            Breakpoint(t0, CUE_MASTER_LEVEL, "step"),
            Breakpoint(t0 + CUE_MASTER_DECAY_S, CUE_MASTER_FLOOR, "exponential"),
        ),
    )


def status_tones(status: EpistemicStatus | str, t0: float) -> list[ToneEvent]:
    """Short cue announcing an analysis node's status.

    UNDERSTOOD is a clean 880 Hz beep, MISUNDERSTOOD a beating pair of
    detuned tones and REFUSED a noise burst that fades out.
    """
    status = EpistemicStatus(status)
    unity = Envelope.constant(1.0)

    if status is EpistemicStatus.UNDERSTOOD:
        master = _cue_master(t0)
        return [ToneEvent(880.0, t0, t0 + 0.1, unity, waveform="sine", master=master)]

    if status is EpistemicStatus.MISUNDERSTOOD:
        master = _cue_master(t0)
        return [
            ToneEvent(220.0, t0, t0 + 0.6, unity, waveform="sine", master=master),
            ToneEvent(223.0, t0, t0 + 0.6, unity, waveform="sine", master=master),
        ]

    # The noise burst bypasses the cue master, with its own short fade.
    burst = Envelope(
        initial=0.0,
        points=(Breakpoint(t0, 0.15, "step"), Breakpoint(t0 + 0.1, 0.0, "linear")),
    )
    return [ToneEvent(0.0, t0, t0 + 0.2, burst, waveform="noise")]


class DiagnosticPlayer:
    """Plays status cues on its own lazily opened output."""

    def __init__(self, output_factory: Callable[[], AudioOutput] = AudioOutput):
        self._output_factory = output_factory
        self._output: AudioOutput | None = None

    @property
    def output(self) -> AudioOutput:
        if self._output is None:
            self._output = self._output_factory()
        return self._output

    def play(self, status: EpistemicStatus | str) -> float:
        """Schedule the cue and return how long it sounds, in seconds."""
        output = self.output
        output.open()
        t0 = output.current_time
        tones = status_tones(status, t0)
        output.schedule(tones)
        logger.debug("Scheduled %s cue at t0=%.4f.", status, t0)
        return max(t.end for t in tones) - t0

    def close(self) -> None:
        if self._output is not None:
            self._output.close()
