from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from culture_bridge.sketch import Note, Sketch, notes_from_sequence

ANALYSIS_KEYS: dict[str, str] = {
    "geographic_origin": "geographicOrigin",
    "tonal_structure": "tonalStructure",
    "ambiguity": "ambiguity",
    "cultural_refusal": "culturalRefusal",
}


class EpistemicStatus(str, Enum):
    UNDERSTOOD = "UNDERSTOOD"
    MISUNDERSTOOD = "MISUNDERSTOOD"
    REFUSED = "REFUSED"


@dataclass(frozen=True)
class AnalysisNode:
    title: str
    description: str
    status: EpistemicStatus
    details: str


@dataclass(frozen=True)
class ComposerTask:
    id: str
    question: str
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProbeResult:
    """Structured self-assessment returned for one epistemic probe.

    ``propositions`` are the melodic sketches; their notes are validated
    when the result is parsed, so downstream rendering and playback only
    ever see in-domain values.
    """

    id: str
    geographic_origin: AnalysisNode
    tonal_structure: AnalysisNode
    ambiguity: AnalysisNode
    cultural_refusal: AnalysisNode
    tasks: tuple[ComposerTask, ...] = ()
    propositions: tuple[Sketch, ...] = field(default_factory=tuple)

    def analysis_nodes(self) -> list[tuple[str, AnalysisNode]]:
        return [(name, getattr(self, name)) for name in ANALYSIS_KEYS]


def _require(obj: dict[str, Any], key: str, where: str) -> Any:
    if key not in obj:
        raise ValueError(f"{where} is missing field {key!r}.")
    return obj[key]


def _parse_analysis_node(raw: Any, where: str) -> AnalysisNode:
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be an object.")
    status_raw = _require(raw, "status", where)
    try:
        status = EpistemicStatus(status_raw)
    except ValueError:
        raise ValueError(f"{where} has unknown status {status_raw!r}.") from None
    return AnalysisNode(
        title=str(_require(raw, "title", where)),
        description=str(_require(raw, "description", where)),
        status=status,
        details=str(_require(raw, "details", where)),
    )


def _parse_task(raw: Any, idx: int) -> ComposerTask:
    where = f"Task {idx}"
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be an object.")
    options = _require(raw, "options", where)
    if not isinstance(options, list):
        raise ValueError(f"{where} options must be a list.")
    return ComposerTask(
        id=str(_require(raw, "id", where)),
        question=str(_require(raw, "question", where)),
        options=tuple(str(o) for o in options),
    )


def parse_sketch(raw: Any, idx: int = 0) -> Sketch:
    where = f"Proposition {idx}"
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be an object.")
    notes = _require(raw, "notes", where)
    if not isinstance(notes, list):
        raise ValueError(f"{where} notes must be a list.")
    return Sketch(
        notes=notes_from_sequence(notes),
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        musical_sketch_prompt=str(raw.get("musical_sketch_prompt", "")),
    )


def parse_probe_result(payload: Any) -> ProbeResult:
    if not isinstance(payload, dict):
        raise ValueError("Probe result root must be a JSON object.")
    nodes = {
        name: _parse_analysis_node(_require(payload, key, "Probe result"), key)
        for name, key in ANALYSIS_KEYS.items()
    }
    tasks = payload.get("tasks", [])
    propositions = payload.get("propositions", [])
    if not isinstance(tasks, list) or not isinstance(propositions, list):
        raise ValueError("Probe result tasks and propositions must be lists.")
    return ProbeResult(
        id=str(payload.get("id", "")),
        tasks=tuple(_parse_task(t, i) for i, t in enumerate(tasks)),
        propositions=tuple(parse_sketch(p, i) for i, p in enumerate(propositions)),
        **nodes,
    )


def load_probe_result_json(path: str | Path) -> ProbeResult:
    return parse_probe_result(json.loads(Path(path).read_text(encoding="utf-8")))


def load_notes_json(path: str | Path) -> tuple[Note, ...]:
    """Load a bare note list, or an object carrying a ``notes`` list."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("notes")
    if not isinstance(raw, list):
        raise ValueError("Notes JSON must be a list or an object with a 'notes' list.")
    return notes_from_sequence(raw)
