from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "render": {
        "time_scale": 100.0,
        "pitch_scale": 10.0,
        "note_height": 8.0,
        "min_range": 12,
        "color": "#22d3ee",
        "width": 480,
        "height": 128,
        "supersample_scale": 2,
    },
    "playback": {
        "sample_rate": 44100,
        "master_gain": 0.15,
        "attack_ms": 50.0,
        "peak_level": 0.2,
        "guard_ms": 100.0,
        "blocksize": 512,
    },
    "preview": {
        "lang": "en",
        "poll_interval_ms": 50,
    },
}


def get_default_config() -> dict[str, dict[str, Any]]:
    return {section: dict(values) for section, values in DEFAULT_CONFIG.items()}


def merge_config(base: dict[str, dict[str, Any]], overrides: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Overlay ``overrides`` onto ``base`` one section at a time.

    Each section of ``overrides`` must be an object; keys the defaults do not
    know are kept but logged, so typos in a profile are visible.
    """
    merged = {section: dict(values) for section, values in base.items()}
    for section, values in overrides.items():
        if not isinstance(values, dict):
            raise ValueError(f"Config section {section!r} must be a JSON object.")
        known = DEFAULT_CONFIG.get(section)
        if known is None:
            logger.warning("Unknown config section %r.", section)
        else:
            for key in values:
                if key not in known:
                    logger.warning("Unknown config key %s.%s.", section, key)
        merged.setdefault(section, {}).update(values)
    return merged


def load_config_file(path: str | Path) -> dict[str, dict[str, Any]]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON object.")
    return merge_config(get_default_config(), raw)


def resolve_setting(config: dict[str, dict[str, Any]], section: str, key: str, override: Any = None) -> Any:
    """Command-line value when given, otherwise the configured one."""
    if override is not None:
        return override
    return config.get(section, {}).get(key, DEFAULT_CONFIG[section][key])


def save_config_file(path: str | Path, config: dict[str, Any]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, sort_keys=True, ensure_ascii=False)
        fh.write("\n")
    return target
