from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Any, Callable, Sequence

from culture_bridge.audio_output import AudioOutput, PlaybackUnavailable
from culture_bridge.envelope import Envelope, note_envelope
from culture_bridge.pitch_math import midi_note_to_frequency
from culture_bridge.sketch import Note, sketch_span
from culture_bridge.synthesis import ToneEvent

logger = logging.getLogger(__name__)

DEFAULT_MASTER_GAIN = 0.15
DEFAULT_ATTACK_S = 0.05
DEFAULT_PEAK_LEVEL = 0.2
DEFAULT_GUARD_S = 0.1

TimerFactory = Callable[[float, Callable[[], None]], Any]

__all__ = ["PlaybackScheduler", "PlaybackUnavailable", "thread_timer"]


def thread_timer(delay_s: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    timer.start()
    return timer


class PlaybackScheduler:
    """Sonifies note sequences on one lazily created audio output.

    Every tone of a pass is placed relative to a single ``t0`` read from the
    output clock. While a pass is sounding the scheduler is busy and further
    :meth:`play` calls are ignored; a timer armed for the sketch span plus
    ``guard_s`` returns it to idle.
    """

    def __init__(
        self,
        output: AudioOutput | None = None,
        output_factory: Callable[[], AudioOutput] = AudioOutput,
        timer_factory: TimerFactory | None = None,
        master_gain: float = DEFAULT_MASTER_GAIN,
        attack_s: float = DEFAULT_ATTACK_S,
        peak_level: float = DEFAULT_PEAK_LEVEL,
        guard_s: float = DEFAULT_GUARD_S,
        waveform: str = "triangle",
    ):
        self._output = output
        self._output_factory = output_factory
        self._timer_factory = timer_factory or thread_timer
        self.master_gain = float(master_gain)
        self.attack_s = float(attack_s)
        self.peak_level = float(peak_level)
        self.guard_s = float(guard_s)
        self.waveform = waveform

        self._busy = False
        self._timer: Any = None
        self._pass_id = 0
        self.last_completion_time: float | None = None

    @property
    def output(self) -> AudioOutput:
        if self._output is None:
            self._output = self._output_factory()
        return self._output

    def is_busy(self) -> bool:
        return self._busy

    def _owner(self, pass_id: int) -> tuple[int, int]:
        return (id(self), pass_id)

    def _tone_for(self, note: Note, t0: float, master: Envelope, owner: tuple[int, int]) -> ToneEvent:
        start = t0 + note.start
        end = start + note.duration
        return ToneEvent(
            frequency=midi_note_to_frequency(note.pitch),
            start=start,
            end=end,
            envelope=note_envelope(start, end, peak=self.peak_level, attack_s=self.attack_s),
            waveform=self.waveform,
            master=master,
            owner=owner,
        )

    def play(self, notes: Sequence[Note], volume: float | None = None) -> None:
        """Schedule one playback pass.

        Does nothing while busy or for an empty sequence. Raises
        :class:`PlaybackUnavailable` when no audio output can be opened; the
        scheduler stays idle in that case.
        """
        notes = tuple(notes)
        if self._busy or not notes:
            return
        level = self.master_gain if volume is None else float(volume)
        if level < 0:
            raise ValueError("volume must be >= 0.")

        output = self.output
        output.open()

        t0 = output.current_time
        master = Envelope.constant(level)
        self._pass_id += 1
        owner = self._owner(self._pass_id)
        output.schedule([self._tone_for(note, t0, master, owner) for note in notes])

        total_s = sketch_span(notes)
        self._busy = True
        try:
            self._timer = self._timer_factory(total_s + self.guard_s, partial(self._on_complete, self._pass_id))
        except Exception:
            # Without a completion timer the pass could never return to idle.
            output.cancel(owner)
            self._pass_id += 1
            self._busy = False
            raise
        self.last_completion_time = t0 + total_s + self.guard_s
        logger.debug("Scheduled %d notes at t0=%.4f, idle at %.4f.", len(notes), t0, self.last_completion_time)

    def _on_complete(self, pass_id: int) -> None:
        # A timer from a cancelled pass must not unlock a newer one.
        if pass_id != self._pass_id:
            return
        self._busy = False
        self._timer = None

    def _stop_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is None:
            return
        stop = getattr(timer, "cancel", None) or getattr(timer, "stop", None)
        if stop is not None:
            stop()

    def cancel(self) -> None:
        """Silence the current pass and return to idle."""
        if not self._busy:
            return
        if self._output is not None:
            self._output.cancel(self._owner(self._pass_id))
        self._stop_timer()
        self._pass_id += 1
        self._busy = False

    def close(self) -> None:
        self.cancel()
        if self._output is not None:
            self._output.close()
