from __future__ import annotations

A4_MIDI_NOTE = 69
A4_FREQUENCY_HZ = 440.0
NOTE_NAMES: list[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


def midi_note_to_frequency(midi_note: int, a4_hz: float = A4_FREQUENCY_HZ) -> float:
    return float(a4_hz * (2.0 ** ((midi_note - A4_MIDI_NOTE) / 12.0)))


def midi_note_name(midi_note: int) -> str:
    """Scientific pitch name, e.g. 60 -> ``C4``, 69 -> ``A4``."""
    octave = (midi_note // 12) - 1
    return f"{NOTE_NAMES[midi_note % 12]}{octave}"
