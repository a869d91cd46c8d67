from __future__ import annotations

import logging
import threading
from itertools import product
from typing import Any, Callable, Hashable, Iterable, Tuple

import numpy as np

from culture_bridge.synthesis import ToneEvent, render_block

logger = logging.getLogger(__name__)


class PlaybackUnavailable(RuntimeError):
    """The host offers no usable audio output."""


def _get_sd():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:
        # OSError: the PortAudio shared library itself is missing.
        raise PlaybackUnavailable(f"Audio backend unavailable: {exc}") from exc
    return sd


def list_output_devices() -> list[dict[str, Any]]:
    sd = _get_sd()
    devices = sd.query_devices()
    for idx, dev in enumerate(devices):
        if dev["max_output_channels"] > 0:
            print(f"[{idx}] {dev['name']} (OUT, {int(dev['default_samplerate'])} Hz)")
    return devices


def find_valid_output_settings(
    device: int | str | None,
    channels_candidates: list[int],
    samplerate_candidates: list[int],
    checker: Callable[..., Any] | None = None,
) -> Tuple[int, int] | None:
    """First ``(channels, samplerate)`` pair the output device accepts.

    Candidates keep their order; duplicates and non-positive values are
    skipped. ``checker`` defaults to ``sounddevice.check_output_settings``.
    """
    rejected: tuple[type[BaseException], ...] = (ValueError,)
    if checker is None:
        sd = _get_sd()
        checker = sd.check_output_settings
        rejected = (ValueError, sd.PortAudioError)
    seen: set[tuple[int, int]] = set()
    for channels, samplerate in product(channels_candidates, samplerate_candidates):
        combo = (int(channels), int(samplerate))
        if combo in seen or combo[0] <= 0 or combo[1] <= 0:
            continue
        seen.add(combo)
        try:
            checker(device=device, channels=combo[0], samplerate=combo[1])
        except rejected as exc:
            logger.debug("Output device %s rejects %d ch @ %d Hz: %s", device, combo[0], combo[1], exc)
            continue
        return combo
    return None


class AudioOutput:
    """Exclusive output stream with a sample-accurate clock.

    The mixed signal is mono and written to every channel.

    ``current_time`` counts frames handed to the device, so every tone
    scheduled against it shares one monotonic timeline. The stream is opened
    on first use and kept running until :meth:`close`.
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        device: int | str | None = None,
        blocksize: int = 512,
        channels: int = 1,
    ):
        self.sample_rate = int(sample_rate)
        self.device = device
        self.blocksize = int(blocksize)
        self.channels = max(1, int(channels))
        self._stream: Any = None
        self._frames_rendered = 0
        self._events: list[ToneEvent] = []
        self._lock = threading.Lock()

    @property
    def current_time(self) -> float:
        return self._frames_rendered / float(self.sample_rate)

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def pending_events(self) -> list[ToneEvent]:
        with self._lock:
            return list(self._events)

    def open(self) -> None:
        if self._stream is not None:
            return
        sd = _get_sd()
        try:
            stream = self._start_stream(sd)
        except (sd.PortAudioError, ValueError) as exc:
            fallback = find_valid_output_settings(
                self.device,
                [self.channels, 1, 2],
                [self.sample_rate, 48000, 44100],
            )
            if fallback is None or fallback == (self.channels, self.sample_rate):
                raise PlaybackUnavailable(f"Could not open audio output: {exc}") from exc
            logger.warning(
                "Output settings %d ch @ %d Hz rejected (%s); retrying with %d ch @ %d Hz.",
                self.channels,
                self.sample_rate,
                exc,
                fallback[0],
                fallback[1],
            )
            self.channels, self.sample_rate = fallback
            try:
                stream = self._start_stream(sd)
            except (sd.PortAudioError, ValueError) as retry_exc:
                raise PlaybackUnavailable(f"Could not open audio output: {retry_exc}") from retry_exc
        self._stream = stream
        logger.info("Opened audio output (device=%s, %d Hz).", self.device, self.sample_rate)

    def _start_stream(self, sd):
        stream = sd.OutputStream(
            device=self.device,
            channels=self.channels,
            samplerate=self.sample_rate,
            blocksize=self.blocksize,
            dtype="float32",
            callback=self.audio_output_callback,
        )
        stream.start()
        return stream

    def close(self) -> None:
        if self._stream is None:
            return
        self._stream.stop()
        self._stream.close()
        self._stream = None
        with self._lock:
            self._events.clear()
        logger.info("Audio output closed.")

    def schedule(self, events: Iterable[ToneEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def cancel(self, owner: Hashable) -> int:
        with self._lock:
            kept = [ev for ev in self._events if ev.owner != owner]
            dropped = len(self._events) - len(kept)
            self._events = kept
        return dropped

    def render_next_block(self, frames: int) -> np.ndarray:
        """Mix the next ``frames`` samples and advance the clock past them."""
        t_start = self.current_time
        with self._lock:
            self._events = [ev for ev in self._events if ev.end > t_start]
            events = list(self._events)
        try:
            return render_block(events, t_start, frames, self.sample_rate)
        finally:
            self._frames_rendered += frames

    def audio_output_callback(self, outdata: np.ndarray, frames: int, time, status) -> None:
        if status:
            logger.warning("Output stream status: %s", status)
        try:
            block = self.render_next_block(frames)
            outdata[:] = block.reshape(-1, 1)
        except Exception:
            # An exception escaping here would abort the PortAudio stream.
            logger.exception("Audio output callback failed; emitting silence.")
            outdata.fill(0)
