import unittest

from culture_bridge.audio_output import PlaybackUnavailable
from culture_bridge.playback import PlaybackScheduler
from culture_bridge.sketch import Note


class _FakeOutput:
    def __init__(self, current_time: float = 0.0, fail_open: bool = False) -> None:
        self.current_time = current_time
        self.fail_open = fail_open
        self.open_calls = 0
        self.passes: list[list] = []
        self.cancelled: list = []
        self.closed = False

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise PlaybackUnavailable("no audio device")

    def schedule(self, events) -> None:
        self.passes.append(list(events))

    def cancel(self, owner) -> int:
        self.cancelled.append(owner)
        return 0

    def close(self) -> None:
        self.closed = True


class _FakeTimer:
    def __init__(self, delay_s: float, callback) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class _TimerRecorder:
    def __init__(self) -> None:
        self.timers: list[_FakeTimer] = []

    def __call__(self, delay_s: float, callback) -> _FakeTimer:
        timer = _FakeTimer(delay_s, callback)
        self.timers.append(timer)
        return timer


TWO_NOTES = [
    Note(pitch=69, start=0.0, duration=1.0),
    Note(pitch=72, start=0.5, duration=1.0),
]


class TestPlaybackScheduler(unittest.TestCase):
    def _scheduler(self, output: _FakeOutput | None = None) -> tuple[PlaybackScheduler, _FakeOutput, _TimerRecorder]:
        output = output or _FakeOutput(current_time=3.0)
        timers = _TimerRecorder()
        created: list[_FakeOutput] = []

        def factory() -> _FakeOutput:
            created.append(output)
            return output

        scheduler = PlaybackScheduler(output_factory=factory, timer_factory=timers)  # type: ignore[arg-type]
        self._created = created
        return scheduler, output, timers

    def test_idle_before_play(self) -> None:
        scheduler, _output, _timers = self._scheduler()
        self.assertFalse(scheduler.is_busy())

    def test_play_schedules_one_tone_per_note_from_shared_t0(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.play(TWO_NOTES)

        self.assertEqual(len(output.passes), 1)
        tones = output.passes[0]
        self.assertEqual(len(tones), 2)
        self.assertAlmostEqual(tones[0].frequency, 440.0, delta=1e-6)
        self.assertAlmostEqual(tones[1].frequency, 440.0 * 2 ** (3 / 12), delta=1e-6)
        self.assertAlmostEqual(tones[0].start, 3.0, places=9)
        self.assertAlmostEqual(tones[0].end, 4.0, places=9)
        self.assertAlmostEqual(tones[1].start, 3.5, places=9)
        self.assertAlmostEqual(tones[1].end, 4.5, places=9)
        self.assertEqual({t.waveform for t in tones}, {"triangle"})

    def test_tones_share_one_master_gain(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        tones = output.passes[0]
        self.assertIs(tones[0].master, tones[1].master)
        self.assertAlmostEqual(tones[0].master.value_at(3.2), 0.15, places=9)

    def test_volume_overrides_master_gain(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.play(TWO_NOTES, volume=0.05)
        self.assertAlmostEqual(output.passes[0][0].master.value_at(3.0), 0.05, places=9)

    def test_negative_volume_rejected(self) -> None:
        scheduler, output, _timers = self._scheduler()
        with self.assertRaises(ValueError):
            scheduler.play(TWO_NOTES, volume=-0.1)
        self.assertFalse(scheduler.is_busy())
        self.assertEqual(output.passes, [])

    def test_note_envelope_attack_and_release(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        env = output.passes[0][1].envelope
        self.assertEqual(env.value_at(3.4), 0.0)
        self.assertAlmostEqual(env.value_at(3.55), 0.2, places=8)
        self.assertEqual(env.value_at(4.5), 0.0)

    def test_completion_transition_at_span_plus_guard(self) -> None:
        scheduler, _output, timers = self._scheduler()
        scheduler.play(TWO_NOTES)

        self.assertTrue(scheduler.is_busy())
        self.assertEqual(len(timers.timers), 1)
        self.assertAlmostEqual(timers.timers[0].delay_s, 1.6, places=9)
        self.assertAlmostEqual(scheduler.last_completion_time, 3.0 + 1.6, places=9)

        timers.timers[0].fire()
        self.assertFalse(scheduler.is_busy())

    def test_second_play_while_busy_is_ignored(self) -> None:
        scheduler, output, timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        scheduler.play(TWO_NOTES)
        scheduler.play([Note(pitch=60, start=0.0, duration=0.2)])

        self.assertEqual(len(output.passes), 1)
        self.assertEqual(len(timers.timers), 1)
        self.assertTrue(scheduler.is_busy())

    def test_play_again_after_completion(self) -> None:
        scheduler, output, timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        timers.timers[0].fire()
        output.current_time = 10.0
        scheduler.play(TWO_NOTES)

        self.assertEqual(len(output.passes), 2)
        self.assertAlmostEqual(output.passes[1][0].start, 10.0, places=9)
        # The output is created once and reused.
        self.assertEqual(len(self._created), 1)

    def test_empty_notes_is_noop(self) -> None:
        scheduler, output, timers = self._scheduler()
        scheduler.play([])

        self.assertFalse(scheduler.is_busy())
        self.assertEqual(output.passes, [])
        self.assertEqual(timers.timers, [])
        self.assertEqual(self._created, [])

    def test_unavailable_output_raises_and_stays_idle(self) -> None:
        scheduler, output, timers = self._scheduler(_FakeOutput(fail_open=True))
        with self.assertRaises(PlaybackUnavailable):
            scheduler.play(TWO_NOTES)

        self.assertFalse(scheduler.is_busy())
        self.assertEqual(output.passes, [])
        self.assertEqual(timers.timers, [])

    def test_failing_timer_leaves_scheduler_idle(self) -> None:
        output = _FakeOutput(current_time=1.0)

        def broken_timer(delay_s: float, callback) -> None:
            raise RuntimeError("no event loop")

        scheduler = PlaybackScheduler(output_factory=lambda: output, timer_factory=broken_timer)  # type: ignore[arg-type,return-value]
        with self.assertRaises(RuntimeError):
            scheduler.play(TWO_NOTES)

        self.assertFalse(scheduler.is_busy())
        self.assertEqual(output.cancelled, [output.passes[0][0].owner])

        timers = _TimerRecorder()
        scheduler._timer_factory = timers
        scheduler.play(TWO_NOTES)
        self.assertTrue(scheduler.is_busy())
        self.assertEqual(len(output.passes), 2)

    def test_cancel_returns_to_idle_and_drops_tones(self) -> None:
        scheduler, output, timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        owner = output.passes[0][0].owner
        scheduler.cancel()

        self.assertFalse(scheduler.is_busy())
        self.assertEqual(output.cancelled, [owner])
        self.assertTrue(timers.timers[0].cancelled)

    def test_stale_timer_does_not_unlock_newer_pass(self) -> None:
        scheduler, _output, timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        scheduler.cancel()
        scheduler.play(TWO_NOTES)

        timers.timers[0].fire()
        self.assertTrue(scheduler.is_busy())
        timers.timers[1].fire()
        self.assertFalse(scheduler.is_busy())

    def test_cancel_when_idle_is_noop(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.cancel()
        self.assertEqual(output.cancelled, [])

    def test_close_releases_output(self) -> None:
        scheduler, output, _timers = self._scheduler()
        scheduler.play(TWO_NOTES)
        scheduler.close()
        self.assertTrue(output.closed)
        self.assertFalse(scheduler.is_busy())

    def test_schedulers_own_separate_outputs(self) -> None:
        first = PlaybackScheduler(output_factory=_FakeOutput, timer_factory=_TimerRecorder())  # type: ignore[arg-type]
        second = PlaybackScheduler(output_factory=_FakeOutput, timer_factory=_TimerRecorder())  # type: ignore[arg-type]
        self.assertIsNot(first.output, second.output)
        self.assertIs(first.output, first.output)


if __name__ == "__main__":
    unittest.main()
