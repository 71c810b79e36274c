from __future__ import annotations

import argparse
import asyncio
import logging
import os
from collections.abc import Iterable, Sequence

from rich.console import Console
from rich.table import Table

from .audio import write_wav
from .config import MixerSettings
from .errors import ImprovMixError, InvalidConfigError
from .logging_utils import DEBUG_ENV, configure_logging, get_log_path, log_exception
from .mixer import TrackMixer
from .output import list_output_devices

_LOGGER = logging.getLogger("improvmix.cli")
_CONSOLE = Console(stderr=True)


def _split_assignment(value: str, *, what: str) -> tuple[str, str]:
    track_id, sep, rest = value.partition("=")
    if not sep or not track_id or not rest:
        raise InvalidConfigError(f"Expected ID={what.upper()}, got {value!r}")
    return track_id, rest


def _parse_volumes(values: Iterable[str]) -> dict[str, float]:
    volumes: dict[str, float] = {}
    for value in values:
        track_id, raw = _split_assignment(value, what="volume")
        try:
            volumes[track_id] = float(raw)
        except ValueError as exc:
            raise InvalidConfigError(f"Volume for {track_id} is not a number: {raw!r}") from exc
    return volumes


async def _load_all(mixer: TrackMixer, tracks: Sequence[str]) -> list[str]:
    pairs = [_split_assignment(value, what="source") for value in tracks]
    with _CONSOLE.status(f"Loading {len(pairs)} track(s)"):
        buffers = await asyncio.gather(
            *(mixer.load_track(track_id, source) for track_id, source in pairs)
        )
    loaded: list[str] = []
    for (track_id, source), buffer in zip(pairs, buffers):
        if buffer is None:
            _CONSOLE.print(f"[yellow]Skipped {track_id}: could not load {source}[/yellow]")
            continue
        _CONSOLE.print(f"Loaded {track_id} ({buffer.duration:.2f}s)")
        loaded.append(track_id)
    return loaded


def _apply_levels(mixer: TrackMixer, args: argparse.Namespace) -> None:
    for track_id, volume in _parse_volumes(args.volume).items():
        mixer.set_track_volume(track_id, volume)
    for track_id in args.mute:
        mixer.set_track_muted(track_id, True)


async def _mix(args: argparse.Namespace) -> int:
    settings = MixerSettings.from_env().offline()
    if args.sample_rate is not None:
        settings = MixerSettings.parse({**settings.model_dump(), "sample_rate": args.sample_rate})
    mixer = TrackMixer(settings)
    try:
        await mixer.initialize()
        loaded = await _load_all(mixer, args.tracks)
        if not loaded:
            _CONSOLE.print("[red]No tracks loaded; nothing to mix.[/red]")
            return 1
        _apply_levels(mixer, args)
        context = mixer.context
        assert context is not None
        duration = args.duration
        if duration is None:
            duration = max(
                track.buffer.duration
                for track in (mixer.get_track(track_id) for track_id in loaded)
                if track is not None
            )
        mixer.play_all_tracks(loop=args.loop)
        path = write_wav(
            args.output,
            context.render_seconds(duration),
            sample_rate=context.sample_rate,
        )
        _CONSOLE.print(f"Wrote {duration:.2f}s mix to {path} (sr={context.sample_rate})")
        return 0
    finally:
        mixer.dispose()


async def _play(args: argparse.Namespace) -> int:
    settings = MixerSettings.from_env()
    if args.device is not None:
        settings = MixerSettings.parse({**settings.model_dump(), "device": args.device})
    mixer = TrackMixer(settings)
    try:
        await mixer.initialize()
        context = mixer.context
        if context is None or context.state != "running":
            _CONSOLE.print("[red]Audio output is unavailable; see the log for details.[/red]")
            return 1
        loaded = await _load_all(mixer, args.tracks)
        if not loaded:
            return 1
        _apply_levels(mixer, args)
        mixer.play_all_tracks(loop=args.loop)
        with _CONSOLE.status("♪ Playing"):
            if args.duration is not None:
                await asyncio.sleep(args.duration)
            else:
                while any(mixer.is_playing(track_id) for track_id in loaded):
                    await asyncio.sleep(0.1)
        return 0
    finally:
        mixer.dispose()


def _doctor() -> int:
    table = Table(title="Output devices")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Channels", justify="right")
    table.add_column("Rate", justify="right")
    try:
        devices = list_output_devices()
    except ImprovMixError as exc:
        _CONSOLE.print(f"[yellow]{exc}[/yellow]")
        devices = []
    for device in devices:
        marker = " (default)" if device.is_default else ""
        table.add_row(
            str(device.index),
            f"{device.name}{marker}",
            str(device.max_output_channels),
            f"{device.default_sample_rate:.0f}",
        )
    _CONSOLE.print(table)
    settings = MixerSettings.from_env()
    _CONSOLE.print(f"Settings: {settings.model_dump()}")
    _CONSOLE.print(f"Log file: {get_log_path()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="improvmix")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_track_args(command: argparse.ArgumentParser) -> None:
        command.add_argument("tracks", nargs="+", metavar="ID=SOURCE")
        command.add_argument("--loop", action="store_true")
        command.add_argument("--volume", action="append", default=[], metavar="ID=VOLUME")
        command.add_argument("--mute", action="append", default=[], metavar="ID")

    mix = sub.add_parser("mix", help="Render tracks in sync to a wav file.")
    add_track_args(mix)
    mix.add_argument("--output", type=str, default="mix.wav")
    mix.add_argument("--duration", type=float, default=None)
    mix.add_argument("--sample-rate", type=int, default=None)

    play = sub.add_parser("play", help="Play tracks in sync on the output device.")
    add_track_args(play)
    play.add_argument("--duration", type=float, default=None)
    play.add_argument("--device", type=str, default=None)

    sub.add_parser("doctor", help="List output devices and show settings.")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "mix":
            return asyncio.run(_mix(args))
        if args.command == "play":
            if args.loop and args.duration is None:
                raise InvalidConfigError("--loop needs --duration when playing")
            return asyncio.run(_play(args))
        if args.command == "doctor":
            return _doctor()

        parser.print_help()
        return 1
    except Exception as exc:
        debug = bool(os.environ.get(DEBUG_ENV))
        _LOGGER.warning("improvmix CLI failed: %s", exc, exc_info=debug)
        log_exception("improvmix CLI", exc)
        _CONSOLE.print(f"[red]improvmix failed:[/red] {type(exc).__name__}: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
