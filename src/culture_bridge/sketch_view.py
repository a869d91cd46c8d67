import logging
from typing import Any, Callable, Optional

import pyqtgraph as pg
from PyQt5 import QtCore, QtWidgets

from culture_bridge.audio_output import PlaybackUnavailable
from culture_bridge.diagnostics import DiagnosticPlayer
from culture_bridge.piano_roll import PianoRollLayout, render_piano_roll
from culture_bridge.playback import PlaybackScheduler
from culture_bridge.probe_result import AnalysisNode, ProbeResult
from culture_bridge.sketch import Sketch
from culture_bridge.strings import get_strings

logger = logging.getLogger(__name__)

PROPOSITION_COLORS = ["#0891b2", "#7c3aed"]
GRID_PEN_RGBA = (255, 255, 255, 13)


def qt_timer(delay_s: float, callback: Callable[[], None]) -> QtCore.QTimer:
    """Single-shot timer on the Qt event loop, usable as a scheduler timer factory."""
    timer = QtCore.QTimer()
    timer.setSingleShot(True)
    timer.timeout.connect(callback)
    timer.start(max(0, int(round(delay_s * 1000))))
    return timer


def status_line(name: str, node: AnalysisNode, strings: dict[str, Any]) -> str:
    title = strings["analysis_titles"].get(name, name)
    label = strings["status_labels"].get(node.status.value, node.status.value)
    return f"{title} [{label}]: {node.title}"


class SketchView(QtWidgets.QWidget):
    """Piano roll of one sketch with a play button bound to its scheduler."""

    def __init__(
        self,
        sketch: Sketch,
        scheduler: PlaybackScheduler,
        color: Optional[str] = None,
        lang: str = "en",
        min_range: Optional[int] = None,
        poll_interval_ms: int = 50,
        parent: Optional[QtWidgets.QWidget] = None,
    ):
        super().__init__(parent)
        self.sketch = sketch
        self.scheduler = scheduler
        self.strings = get_strings(lang)
        self._playback_unavailable = False

        layout = QtWidgets.QVBoxLayout(self)
        if sketch.title:
            layout.addWidget(QtWidgets.QLabel(sketch.title))
        if sketch.description:
            description = QtWidgets.QLabel(sketch.description)
            description.setWordWrap(True)
            layout.addWidget(description)

        self.plot = pg.PlotWidget()
        self.plot.setBackground((0, 0, 0, 102))
        self.plot.invertY(True)
        self.plot.hideAxis("left")
        self.plot.hideAxis("bottom")
        self.plot.setMouseEnabled(x=False, y=False)
        self.plot.setFixedHeight(128)
        layout.addWidget(self.plot)

        self.placeholder = QtWidgets.QLabel(self.strings["no_sequence_data"])
        self.placeholder.setAlignment(QtCore.Qt.AlignCenter)
        layout.addWidget(self.placeholder)

        self.play_button = QtWidgets.QPushButton(self.strings["play_ref"])
        self.play_button.clicked.connect(self.on_play_clicked)
        layout.addWidget(self.play_button)

        self.draw_layout(render_piano_roll(sketch.notes, color=color, min_range=min_range))

        self.timer = QtCore.QTimer(self)
        self.timer.setInterval(poll_interval_ms)
        self.timer.timeout.connect(self.update_playback_state)
        self.timer.start()

    def draw_layout(self, layout: PianoRollLayout) -> None:
        if layout.is_placeholder:
            self.plot.hide()
            self.placeholder.show()
            self.play_button.setEnabled(False)
            return
        self.placeholder.hide()
        grid_pen = pg.mkPen(GRID_PEN_RGBA, width=0.5)
        for y in layout.grid_lines:
            self.plot.addItem(pg.InfiniteLine(pos=y, angle=0, pen=grid_pen))
        bars = pg.BarGraphItem(
            x0=[r.x for r in layout.rects],
            y0=[r.y for r in layout.rects],
            width=[r.width for r in layout.rects],
            height=[r.height for r in layout.rects],
            brush=layout.color,
            pen=None,
        )
        self.plot.addItem(bars)
        self.plot.setXRange(0, layout.viewbox_width, padding=0)
        self.plot.setYRange(0, layout.viewbox_height, padding=0)

    def on_play_clicked(self) -> None:
        try:
            self.scheduler.play(self.sketch.notes)
        except PlaybackUnavailable as exc:
            logger.warning("Playback unavailable: %s", exc)
            self._playback_unavailable = True
            self.play_button.setEnabled(False)
            self.play_button.setText(self.strings["playback_unavailable"])
            return
        self.update_playback_state()

    def update_playback_state(self) -> None:
        if self._playback_unavailable or self.sketch.is_empty:
            return
        busy = self.scheduler.is_busy()
        self.play_button.setEnabled(not busy)
        self.play_button.setText(self.strings["playing_ref"] if busy else self.strings["play_ref"])


class ProbeResultWindow(QtWidgets.QWidget):
    def __init__(
        self,
        result: ProbeResult,
        scheduler_factory: Callable[[], PlaybackScheduler],
        lang: str = "en",
        min_range: Optional[int] = None,
        poll_interval_ms: int = 50,
        diagnostic_player: Optional[DiagnosticPlayer] = None,
        parent: Optional[QtWidgets.QWidget] = None,
    ):
        super().__init__(parent)
        self.result = result
        self.strings = get_strings(lang)
        self.diagnostic_player = diagnostic_player or DiagnosticPlayer()

        layout = QtWidgets.QVBoxLayout(self)
        layout.addWidget(QtWidgets.QLabel(self.strings["dashboard_title"]))
        for name, node in result.analysis_nodes():
            row = QtWidgets.QHBoxLayout()
            label = QtWidgets.QLabel(status_line(name, node, self.strings))
            label.setToolTip(f"{node.description}\n\n{node.details}")
            cue = QtWidgets.QPushButton("♪")
            cue.setFixedWidth(32)
            cue.clicked.connect(lambda _checked=False, s=node.status: self.play_cue(s))
            row.addWidget(cue)
            row.addWidget(label, 1)
            layout.addLayout(row)

        if result.tasks:
            layout.addWidget(QtWidgets.QLabel(self.strings["task_title"]))
            for task in result.tasks:
                text = task.question
                if task.options:
                    text += "\n  - " + "\n  - ".join(task.options)
                task_label = QtWidgets.QLabel(text)
                task_label.setWordWrap(True)
                layout.addWidget(task_label)

        layout.addWidget(QtWidgets.QLabel(self.strings["proposition_title"]))
        # One scheduler per proposition, each owning its own output.
        self.sketch_views: list[SketchView] = []
        for i, sketch in enumerate(result.propositions):
            view = SketchView(
                sketch=sketch,
                scheduler=scheduler_factory(),
                color=PROPOSITION_COLORS[i % len(PROPOSITION_COLORS)],
                lang=lang,
                min_range=min_range,
                poll_interval_ms=poll_interval_ms,
            )
            self.sketch_views.append(view)
            layout.addWidget(view)

        safety = QtWidgets.QLabel(self.strings["safety_desc"])
        safety.setWordWrap(True)
        layout.addWidget(safety)

    def play_cue(self, status) -> None:
        try:
            self.diagnostic_player.play(status)
        except PlaybackUnavailable as exc:
            logger.warning("Diagnostic cue unavailable: %s", exc)

    def closeEvent(self, event) -> None:  # noqa: N802
        for view in self.sketch_views:
            view.scheduler.close()
        self.diagnostic_player.close()
        super().closeEvent(event)
