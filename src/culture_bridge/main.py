import argparse
import logging
import signal
import sys
import time
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from culture_bridge.configuration import (
    get_default_config,
    load_config_file,
    resolve_setting,
    save_config_file,
)
from culture_bridge.pitch_math import midi_note_name, midi_note_to_frequency

if TYPE_CHECKING:
    from culture_bridge.sketch import Sketch

STATUS_CHOICES = ("UNDERSTOOD", "MISUNDERSTOOD", "REFUSED")


def _load_sketch_from_source(
    notes_json_path: str | None,
    probe_json_path: str | None,
    index: int = 0,
) -> "Sketch":
    from culture_bridge.probe_result import load_notes_json, load_probe_result_json
    from culture_bridge.sketch import Sketch

    if bool(notes_json_path) == bool(probe_json_path):
        raise ValueError("Provide exactly one of notes_json_path or probe_json_path.")

    if notes_json_path:
        return Sketch(notes=load_notes_json(notes_json_path), title=Path(notes_json_path).stem)

    result = load_probe_result_json(probe_json_path)
    if not (0 <= index < len(result.propositions)):
        raise ValueError(f"Proposition index {index} out of range ({len(result.propositions)} available).")
    return result.propositions[index]


def render_sketch(
    notes_json_path: str | None,
    probe_json_path: str | None,
    index: int,
    output: str,
    color: str,
    min_range: int,
    width: int,
    height: int,
    supersample_scale: int,
    lang: str = "en",
    time_scale: float = 100.0,
    pitch_scale: float = 10.0,
    note_height: float = 8.0,
) -> int:
    from culture_bridge.piano_roll import layout_to_svg, render_piano_roll
    from culture_bridge.raster import rasterize_layout, write_ppm
    from culture_bridge.strings import get_strings

    try:
        sketch = _load_sketch_from_source(notes_json_path, probe_json_path, index)
    except ValueError as exc:
        print(f"Invalid sketch input: {exc}")
        return 2

    layout = render_piano_roll(
        sketch.notes,
        color=color,
        min_range=min_range,
        time_scale=time_scale,
        pitch_scale=pitch_scale,
        note_height=note_height,
    )
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".svg":
        placeholder = get_strings(lang)["no_sequence_data"]
        output_path.write_text(layout_to_svg(layout, placeholder_text=placeholder), encoding="utf-8")
    else:
        try:
            img = rasterize_layout(layout, width=width, height=height, supersample_scale=supersample_scale)
        except ValueError as exc:
            print(f"Cannot rasterize sketch: {exc}")
            return 2
        write_ppm(output_path, img)

    if layout.is_placeholder:
        print(f"Sketch has no notes; wrote placeholder to {output_path}")
    else:
        print(
            f"Rendered {len(layout.rects)} notes over {layout.display_range} pitch rows "
            f"({layout.viewbox_width:g} x {layout.viewbox_height:g}) to {output_path}"
        )
    return 0


def play_sketch(
    notes_json_path: str | None,
    probe_json_path: str | None,
    index: int,
    volume: float | None,
    sample_rate: int,
    device: int | str | None,
    blocksize: int,
    master_gain: float,
    attack_s: float,
    peak_level: float,
    guard_s: float,
) -> int:
    from culture_bridge.audio_output import AudioOutput, PlaybackUnavailable
    from culture_bridge.playback import PlaybackScheduler

    try:
        sketch = _load_sketch_from_source(notes_json_path, probe_json_path, index)
    except ValueError as exc:
        print(f"Invalid sketch input: {exc}")
        return 2
    if sketch.is_empty:
        print("Sketch has no notes; nothing to play.")
        return 0

    scheduler = PlaybackScheduler(
        output_factory=partial(AudioOutput, sample_rate=sample_rate, device=device, blocksize=blocksize),
        master_gain=master_gain,
        attack_s=attack_s,
        peak_level=peak_level,
        guard_s=guard_s,
    )
    try:
        scheduler.play(sketch.notes, volume=volume)
    except PlaybackUnavailable as exc:
        print(f"Playback unavailable: {exc}")
        return 3

    print(f"Playing {len(sketch.notes)} notes ({sketch.span:.2f}s)")
    try:
        while scheduler.is_busy():
            time.sleep(0.02)
    except KeyboardInterrupt:
        scheduler.cancel()
    finally:
        scheduler.close()
    return 0


def print_frequencies(pitches: list[int]) -> int:
    print("pitch,name,freq_hz")
    code = 0
    for pitch in pitches:
        if not (0 <= pitch <= 127):
            print(f"{pitch},,out_of_range")
            code = 2
            continue
        print(f"{pitch},{midi_note_name(pitch)},{midi_note_to_frequency(pitch):.6f}")
    return code


def print_output_devices() -> int:
    from culture_bridge.audio_output import PlaybackUnavailable, list_output_devices

    try:
        devices = list_output_devices()
    except PlaybackUnavailable as exc:
        print(f"Playback unavailable: {exc}")
        return 3
    if not any(dev["max_output_channels"] > 0 for dev in devices):
        print("No output devices found.")
        return 3
    return 0


def play_status_cue(status: str, sample_rate: int, device: int | str | None) -> int:
    from culture_bridge.audio_output import AudioOutput, PlaybackUnavailable
    from culture_bridge.diagnostics import DiagnosticPlayer

    player = DiagnosticPlayer(output_factory=partial(AudioOutput, sample_rate=sample_rate, device=device))
    try:
        duration_s = player.play(status)
    except PlaybackUnavailable as exc:
        print(f"Playback unavailable: {exc}")
        return 3
    try:
        time.sleep(duration_s + 0.1)
    finally:
        player.close()
    return 0


def launch_preview(
    probe_json_path: str,
    lang: str,
    poll_interval_ms: int,
    min_range: int,
    sample_rate: int,
    device: int | str | None,
    master_gain: float,
    attack_s: float,
    peak_level: float,
    guard_s: float,
) -> None:
    from PyQt5 import QtWidgets

    from culture_bridge.audio_output import AudioOutput
    from culture_bridge.diagnostics import DiagnosticPlayer
    from culture_bridge.playback import PlaybackScheduler
    from culture_bridge.probe_result import load_probe_result_json
    from culture_bridge.sketch_view import ProbeResultWindow, qt_timer

    result = load_probe_result_json(probe_json_path)
    output_factory = partial(AudioOutput, sample_rate=sample_rate, device=device)

    def scheduler_factory() -> PlaybackScheduler:
        return PlaybackScheduler(
            output_factory=output_factory,
            timer_factory=qt_timer,
            master_gain=master_gain,
            attack_s=attack_s,
            peak_level=peak_level,
            guard_s=guard_s,
        )

    app = QtWidgets.QApplication([])
    window = ProbeResultWindow(
        result=result,
        scheduler_factory=scheduler_factory,
        lang=lang,
        min_range=min_range,
        poll_interval_ms=poll_interval_ms,
        diagnostic_player=DiagnosticPlayer(output_factory=output_factory),
    )
    window.setWindowTitle(f"CultureBridge - {result.id or Path(probe_json_path).stem}")
    window.resize(720, 900)
    window.show()

    signal.signal(signal.SIGINT, signal.SIG_DFL)
    sys.exit(app.exec())


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, default=None, help="JSON config file merged over the defaults.")
    common.add_argument(
        "--save-config",
        type=str,
        default=None,
        help="Write the effective configuration to this path before running.",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return common


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--notes-json",
        type=str,
        help="JSON note list: [{pitch,start,duration}, ...] or {\"notes\": [...]}.",
    )
    source.add_argument("--probe-json", type=str, help="JSON probe result with propositions.")
    parser.add_argument(
        "--index",
        type=int,
        default=0,
        help="Proposition index when reading a probe result (default: 0).",
    )


def _add_playback_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--sample-rate", type=int, default=None, help="Output sample rate (default: 44100).")
    parser.add_argument(
        "--device", type=str, default=None, help="Output device index or name substring (see the devices command)."
    )
    parser.add_argument("--master-gain", type=float, default=None, help="Master level (default: 0.15).")
    parser.add_argument("--attack-ms", type=float, default=None, help="Note attack window (default: 50).")
    parser.add_argument("--guard-ms", type=float, default=None, help="Idle guard after the last note (default: 100).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CultureBridge melodic sketch renderer and sonifier")
    subparsers = parser.add_subparsers(dest="command")
    common = _common_parser()

    render = subparsers.add_parser("render", parents=[common], help="Render a sketch piano roll to SVG or PPM")
    _add_source_arguments(render)
    render.add_argument("--output", type=str, required=True, help="Output path (.svg, otherwise PPM).")
    render.add_argument("--color", type=str, default=None, help="Note color (default: #22d3ee).")
    render.add_argument("--min-range", type=int, default=None, help="Minimum pitch rows shown (default: 12).")
    render.add_argument("--width", type=int, default=None, help="PPM width in pixels (default: 480).")
    render.add_argument("--height", type=int, default=None, help="PPM height in pixels (default: 128).")
    render.add_argument("--supersample-scale", type=int, default=None, help="PPM antialiasing factor (default: 2).")
    render.add_argument("--lang", type=str, choices=("en", "zh"), default=None, help="Placeholder language.")

    play = subparsers.add_parser("play", parents=[common], help="Sonify a sketch on the audio output")
    _add_source_arguments(play)
    play.add_argument("--volume", type=float, default=None, help="Master level override for this pass.")
    _add_playback_arguments(play)

    freq = subparsers.add_parser("freq", parents=[common], help="Print equal-tempered frequencies for MIDI pitches")
    freq.add_argument(
        "--pitch",
        dest="pitches",
        type=int,
        action="append",
        required=True,
        help="MIDI pitch. Pass multiple --pitch values to convert several.",
    )

    subparsers.add_parser("devices", parents=[common], help="List audio output devices for --device")

    sonify = subparsers.add_parser("sonify", parents=[common], help="Play the diagnostic cue for a status")
    sonify.add_argument("--status", type=str.upper, choices=STATUS_CHOICES, required=True)
    sonify.add_argument("--sample-rate", type=int, default=None, help="Output sample rate (default: 44100).")
    sonify.add_argument(
        "--device", type=str, default=None, help="Output device index or name substring (see the devices command)."
    )

    preview = subparsers.add_parser("preview", parents=[common], help="Show a probe result in the Qt viewer")
    preview.add_argument("--probe-json", type=str, required=True, help="JSON probe result with propositions.")
    preview.add_argument("--lang", type=str, choices=("en", "zh"), default=None, help="Display language.")
    preview.add_argument("--min-range", type=int, default=None, help="Minimum pitch rows shown (default: 12).")
    preview.add_argument("--poll-interval-ms", type=int, default=None, help="Play-button refresh interval.")
    _add_playback_arguments(preview)
    return parser


def _validate_render_values(parser: argparse.ArgumentParser, output: str, values: dict[str, Any]) -> None:
    if values["min_range"] < 1:
        parser.error("render min_range must be >= 1.")
    for key in ("width", "height", "supersample_scale"):
        if values[key] <= 0:
            parser.error(f"render {key} must be > 0.")
    if Path(output).suffix.lower() != ".svg":
        from culture_bridge.raster import parse_hex_color

        try:
            parse_hex_color(str(values["color"]))
        except ValueError:
            parser.error(f"render color must be a hex value like #22d3ee for PPM output, got {values['color']!r}.")


def _validate_playback_settings(parser: argparse.ArgumentParser, settings: dict[str, Any]) -> None:
    for key in ("sample_rate", "blocksize"):
        if settings[key] <= 0:
            parser.error(f"playback {key} must be > 0.")
    for key in ("master_gain", "peak_level", "attack_ms", "guard_ms"):
        if settings[key] < 0:
            parser.error(f"playback {key} must be >= 0.")


def _validate_preview_values(parser: argparse.ArgumentParser, min_range: int, values: dict[str, Any]) -> None:
    if min_range < 1:
        parser.error("render min_range must be >= 1.")
    if values["poll_interval_ms"] <= 0:
        parser.error("preview poll_interval_ms must be > 0.")


def _device_arg(device: str | None) -> int | str | None:
    if device is not None and device.isdigit():
        return int(device)
    return device


def _load_config(parser: argparse.ArgumentParser, args: argparse.Namespace) -> dict[str, dict[str, Any]]:
    if args.config is None:
        return get_default_config()
    try:
        return load_config_file(args.config)
    except (OSError, ValueError) as exc:
        parser.error(f"Could not load --config {args.config}: {exc}")


def _playback_settings(config: dict[str, dict[str, Any]], args: argparse.Namespace) -> dict[str, Any]:
    return {
        "sample_rate": int(resolve_setting(config, "playback", "sample_rate", args.sample_rate)),
        "master_gain": float(resolve_setting(config, "playback", "master_gain", args.master_gain)),
        "attack_ms": float(resolve_setting(config, "playback", "attack_ms", args.attack_ms)),
        "guard_ms": float(resolve_setting(config, "playback", "guard_ms", args.guard_ms)),
        "peak_level": float(resolve_setting(config, "playback", "peak_level")),
        "blocksize": int(resolve_setting(config, "playback", "blocksize")),
    }


def _maybe_save_config(
    args: argparse.Namespace,
    config: dict[str, dict[str, Any]],
    sections: dict[str, dict[str, Any]],
) -> None:
    if args.save_config is None:
        return
    for section, values in sections.items():
        config[section].update(values)
    path = save_config_file(args.save_config, config)
    print(f"Saved config to {path}")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        raise SystemExit(2)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = _load_config(parser, args)

    if args.command == "render":
        if args.index < 0:
            parser.error("--index must be >= 0.")
        render_values = {
            "color": resolve_setting(config, "render", "color", args.color),
            "min_range": int(resolve_setting(config, "render", "min_range", args.min_range)),
            "width": int(resolve_setting(config, "render", "width", args.width)),
            "height": int(resolve_setting(config, "render", "height", args.height)),
            "supersample_scale": int(resolve_setting(config, "render", "supersample_scale", args.supersample_scale)),
        }
        _validate_render_values(parser, args.output, render_values)
        _maybe_save_config(args, config, {"render": render_values})
        raise SystemExit(
            render_sketch(
                notes_json_path=args.notes_json,
                probe_json_path=args.probe_json,
                index=args.index,
                output=args.output,
                lang=resolve_setting(config, "preview", "lang", args.lang),
                time_scale=float(resolve_setting(config, "render", "time_scale")),
                pitch_scale=float(resolve_setting(config, "render", "pitch_scale")),
                note_height=float(resolve_setting(config, "render", "note_height")),
                **render_values,
            )
        )

    if args.command == "play":
        if args.index < 0:
            parser.error("--index must be >= 0.")
        if args.volume is not None and args.volume < 0:
            parser.error("--volume must be >= 0.")
        settings = _playback_settings(config, args)
        _validate_playback_settings(parser, settings)
        _maybe_save_config(args, config, {"playback": settings})
        raise SystemExit(
            play_sketch(
                notes_json_path=args.notes_json,
                probe_json_path=args.probe_json,
                index=args.index,
                volume=args.volume,
                sample_rate=settings["sample_rate"],
                device=_device_arg(args.device),
                blocksize=settings["blocksize"],
                master_gain=settings["master_gain"],
                attack_s=settings["attack_ms"] / 1000.0,
                peak_level=settings["peak_level"],
                guard_s=settings["guard_ms"] / 1000.0,
            )
        )

    if args.command == "freq":
        raise SystemExit(print_frequencies(pitches=args.pitches))

    if args.command == "devices":
        raise SystemExit(print_output_devices())

    if args.command == "sonify":
        sample_rate = int(resolve_setting(config, "playback", "sample_rate", args.sample_rate))
        if sample_rate <= 0:
            parser.error("playback sample_rate must be > 0.")
        raise SystemExit(
            play_status_cue(
                status=args.status,
                sample_rate=sample_rate,
                device=_device_arg(args.device),
            )
        )

    if args.command == "preview":
        settings = _playback_settings(config, args)
        _validate_playback_settings(parser, settings)
        min_range = int(resolve_setting(config, "render", "min_range", args.min_range))
        preview_values = {
            "lang": resolve_setting(config, "preview", "lang", args.lang),
            "poll_interval_ms": int(resolve_setting(config, "preview", "poll_interval_ms", args.poll_interval_ms)),
        }
        _validate_preview_values(parser, min_range, preview_values)
        _maybe_save_config(args, config, {"playback": settings, "preview": preview_values})
        launch_preview(
            probe_json_path=args.probe_json,
            lang=preview_values["lang"],
            poll_interval_ms=preview_values["poll_interval_ms"],
            min_range=min_range,
            sample_rate=settings["sample_rate"],
            device=_device_arg(args.device),
            master_gain=settings["master_gain"],
            attack_s=settings["attack_ms"] / 1000.0,
            peak_level=settings["peak_level"],
            guard_s=settings["guard_ms"] / 1000.0,
        )
        return

    parser.error(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    main()
