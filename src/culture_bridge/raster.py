from __future__ import annotations

import math
from pathlib import Path

import numpy as np

from culture_bridge.piano_roll import PianoRollLayout

BACKGROUND_RGB = (12, 16, 24)
GRID_RGB = (255, 255, 255)
GRID_ALPHA = 0.05
NOTE_ALPHA = 0.85


def parse_hex_color(color: str) -> tuple[int, int, int]:
    text = color.strip().lstrip("#")
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    if len(text) != 6:
        raise ValueError(f"Unsupported color value: {color!r}")
    return int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16)


def _blend_region(
    img: np.ndarray,
    x0: int,
    y0: int,
    x1: int,
    y1: int,
    color: tuple[int, int, int],
    alpha: float,
) -> None:
    h, w, _ = img.shape
    x0, x1 = max(0, x0), min(w, x1)
    y0, y1 = max(0, y0), min(h, y1)
    if x1 <= x0 or y1 <= y0:
        return
    alpha = float(np.clip(alpha, 0.0, 1.0))
    if alpha <= 0:
        return
    base = img[y0:y1, x0:x1, :].astype(np.float32)
    over = np.array(color, dtype=np.float32)
    img[y0:y1, x0:x1, :] = np.clip(base * (1.0 - alpha) + over * alpha, 0, 255).astype(np.uint8)


def _rasterize_native(layout: PianoRollLayout, width: int, height: int) -> np.ndarray:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :, :] = np.array(BACKGROUND_RGB, dtype=np.uint8)
    if layout.is_placeholder or layout.viewbox_width <= 0 or layout.viewbox_height <= 0:
        return img

    # Non-uniform stretch into the frame, like preserveAspectRatio="none".
    sx = width / layout.viewbox_width
    sy = height / layout.viewbox_height

    for gy in layout.grid_lines:
        y = int(round(gy * sy))
        _blend_region(img, 0, y, width, y + 1, GRID_RGB, GRID_ALPHA)

    color = parse_hex_color(layout.color)
    for rect in layout.rects:
        x0 = int(math.floor(rect.x * sx))
        x1 = max(x0 + 1, int(math.ceil((rect.x + rect.width) * sx)))
        y0 = int(math.floor(rect.y * sy))
        y1 = max(y0 + 1, int(math.ceil((rect.y + rect.height) * sy)))
        _blend_region(img, x0, y0, x1, y1, color, NOTE_ALPHA)
    return img


def rasterize_layout(
    layout: PianoRollLayout,
    width: int = 480,
    height: int = 128,
    supersample_scale: int = 2,
) -> np.ndarray:
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be > 0.")
    s = max(1, int(supersample_scale))
    if s == 1:
        return _rasterize_native(layout, width, height)

    hi = _rasterize_native(layout, width * s, height * s)
    # Box-filter downsample for anti-aliased edges.
    lo = hi.reshape(height, s, width, s, 3).mean(axis=(1, 3))
    return np.clip(lo, 0, 255).astype(np.uint8)


def write_ppm(path: str | Path, img: np.ndarray) -> Path:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    h, w, _ = img.shape
    header = f"P6\n{w} {h}\n255\n".encode("ascii")
    output.write_bytes(header + img.tobytes())
    return output
