import unittest
from unittest.mock import patch

from culture_bridge.piano_roll import (
    DEFAULT_COLOR,
    NOTE_HEIGHT,
    PITCH_SCALE,
    TIME_SCALE,
    display_range,
    layout_to_svg,
    render_piano_roll,
)
from culture_bridge.sketch import Note


class TestRenderPianoRoll(unittest.TestCase):
    def test_single_note_layout(self) -> None:
        layout = render_piano_roll([Note(pitch=60, start=0.0, duration=2.0)])

        self.assertFalse(layout.is_placeholder)
        self.assertEqual(len(layout.rects), 1)
        rect = layout.rects[0]
        self.assertEqual(rect.x, 0.0)
        self.assertAlmostEqual(rect.width, 2.0 * TIME_SCALE, places=8)
        self.assertEqual(layout.max_pitch, 62)
        self.assertEqual(layout.min_pitch, 58)
        self.assertAlmostEqual(rect.y, (62 - 60) * PITCH_SCALE, places=8)
        self.assertEqual(rect.height, NOTE_HEIGHT)
        self.assertAlmostEqual(layout.viewbox_width, 2.0 * TIME_SCALE, places=8)
        # Raw range is 4; the octave floor wins.
        self.assertEqual(layout.display_range, 12)
        self.assertAlmostEqual(layout.viewbox_height, 12 * PITCH_SCALE, places=8)
        self.assertEqual(layout.color, DEFAULT_COLOR)

    def test_wide_range_exceeds_floor(self) -> None:
        notes = [
            Note(pitch=48, start=0.0, duration=0.5),
            Note(pitch=72, start=0.5, duration=0.5),
        ]
        layout = render_piano_roll(notes, color="#7c3aed")
        self.assertEqual(layout.display_range, (72 + 2) - (48 - 2))
        self.assertEqual(layout.color, "#7c3aed")
        self.assertEqual(len(layout.grid_lines), layout.display_range)
        # Higher pitch sits nearer the top.
        self.assertLess(layout.rects[1].y, layout.rects[0].y)

    def test_display_range_properties_hold(self) -> None:
        cases = [
            [Note(pitch=60, start=0.0, duration=1.0)],
            [Note(pitch=0, start=0.0, duration=1.0), Note(pitch=127, start=1.0, duration=1.0)],
            [Note(pitch=64, start=0.0, duration=1.0), Note(pitch=67, start=0.0, duration=1.0)],
            [Note(pitch=30, start=0.0, duration=0.1), Note(pitch=50, start=0.2, duration=0.1)],
        ]
        for notes in cases:
            rows = display_range(notes)
            pitches = [n.pitch for n in notes]
            self.assertGreaterEqual(rows, 12)
            self.assertGreaterEqual(rows, max(pitches) - min(pitches) + 4)

    def test_custom_min_range(self) -> None:
        layout = render_piano_roll([Note(pitch=60, start=0.0, duration=1.0)], min_range=24)
        self.assertEqual(layout.display_range, 24)
        self.assertAlmostEqual(layout.viewbox_height, 24 * PITCH_SCALE, places=8)

    def test_relative_timing_is_preserved(self) -> None:
        notes = [
            Note(pitch=69, start=0.0, duration=1.0),
            Note(pitch=72, start=0.5, duration=1.0),
        ]
        layout = render_piano_roll(notes)
        self.assertAlmostEqual(layout.rects[1].x - layout.rects[0].x, 0.5 * TIME_SCALE, places=8)
        self.assertAlmostEqual(layout.viewbox_width, 1.5 * TIME_SCALE, places=8)
        self.assertAlmostEqual(layout.rects[0].y - layout.rects[1].y, 3 * PITCH_SCALE, places=8)

    def test_empty_input_returns_placeholder_without_min_max(self) -> None:
        with patch("culture_bridge.piano_roll.pitch_bounds") as bounds:
            layout = render_piano_roll([])
            bounds.assert_not_called()
        self.assertTrue(layout.is_placeholder)
        self.assertEqual(layout.rects, ())
        self.assertEqual(layout.grid_lines, ())
        self.assertEqual(layout.viewbox_width, 0.0)
        self.assertEqual(layout.viewbox_height, 0.0)

    def test_render_is_deterministic(self) -> None:
        notes = [
            Note(pitch=62, start=0.0, duration=0.4),
            Note(pitch=66, start=0.3, duration=0.7),
            Note(pitch=62, start=0.3, duration=0.2),
        ]
        first = render_piano_roll(notes)
        second = render_piano_roll(list(notes))
        self.assertEqual(first, second)
        self.assertEqual(layout_to_svg(first), layout_to_svg(second))

    def test_input_is_not_mutated(self) -> None:
        notes = [Note(pitch=62, start=0.0, duration=0.4)]
        snapshot = list(notes)
        render_piano_roll(notes)
        self.assertEqual(notes, snapshot)


class TestLayoutToSvg(unittest.TestCase):
    def test_svg_contains_rects_and_viewbox(self) -> None:
        layout = render_piano_roll([Note(pitch=60, start=0.0, duration=2.0)], color="#0891b2")
        svg = layout_to_svg(layout)
        self.assertTrue(svg.startswith("<svg"))
        self.assertIn('viewBox="0 0 200 120"', svg)
        self.assertIn('<rect x="0" y="20" width="200" height="8" fill="#0891b2"', svg)
        self.assertEqual(svg.count("<line"), 12)

    def test_color_attribute_is_quoted_safely(self) -> None:
        layout = render_piano_roll([Note(pitch=60, start=0.0, duration=1.0)], color='red" onload="x')
        svg = layout_to_svg(layout)
        self.assertIn('fill="red&quot; onload=&quot;x"', svg)
        self.assertNotIn('onload="x"', svg)

    def test_placeholder_svg_uses_token(self) -> None:
        svg = layout_to_svg(render_piano_roll([]), placeholder_text="无序列数据")
        self.assertIn("无序列数据", svg)
        self.assertNotIn("<rect", svg)


if __name__ == "__main__":
    unittest.main()
