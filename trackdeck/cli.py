"""TrackDeck command-line interface.

Argparse-based CLI that initializes logging early and exposes playlist
inspection, timeline projection, dry-run simulation and headless playback.
Exposed via ``python -m trackdeck``.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

# Suppress pygame support prompt so JSON outputs remain clean.
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

from .logging_utils import setup_logging, get_default_log_path, LogMode
from .session import (
    ActionAfterTrack,
    ContinuationEngine,
    Group,
    ManualScheduler,
    PlaylistDocument,
    SessionEvent,
    Track,
)
from .session.engine import PlaybackStatus
from .session.timeline import MarkerPlacement, format_clock, format_duration, format_offset

log = logging.getLogger(__name__)


def _add_logging_args(parser: argparse.ArgumentParser, suppress_defaults: bool = False) -> None:
    # Subcommand copies must not overwrite values given before the subcommand.
    def default(value: str) -> str:
        return argparse.SUPPRESS if suppress_defaults else value

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=default("WARNING"),
        help="Set log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-mode",
        choices=[mode.value for mode in LogMode],
        default=default(LogMode.NORMAL.value),
        help="Logging preset: quiet keeps the console to warnings, trace adds audio poll lines at DEBUG",
    )
    parser.add_argument(
        "--log-file",
        default=default(str(get_default_log_path())),
        help="Path to log file (default: per-user TrackDeck directory)",
    )
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        default=default("plain"),
        help="Log format (plain or json)",
    )


def _build_logging_parent(suppress_defaults: bool = False) -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    _add_logging_args(parent, suppress_defaults)
    return parent


def _parse_when(value: Optional[str], now: float, roll_forward: bool = True) -> Optional[float]:
    """Parse ``HH:MM`` (today, or the next occurrence with *roll_forward*) or an ISO datetime."""
    if not value:
        return None
    if len(value) <= 5 and ":" in value:
        hours, minutes = (int(part) for part in value.split(":", 1))
        base = datetime.fromtimestamp(now)
        candidate = base.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if roll_forward and candidate.timestamp() < now:
            candidate += timedelta(days=1)
        return candidate.timestamp()
    return datetime.fromisoformat(value).timestamp()


def _collect_audio_paths(paths: list[str]) -> list[Path]:
    from .engine.audio_utils import is_audio_file

    collected: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            collected.extend(sorted(p for p in path.iterdir() if p.is_file() and is_audio_file(p)))
        else:
            collected.append(path)
    return collected


# ===== Commands =====

def cmd_new(args) -> int:
    doc = PlaylistDocument(name=args.name or Path(args.file).name.split(".")[0])
    probe = None
    if args.probe:
        from .engine.audio_utils import probe_audio_duration
        probe = probe_audio_duration
    for path in _collect_audio_paths(args.paths):
        duration = probe(str(path)) if probe else None
        doc.tree.add_item(Track.create(str(path), duration=duration))
    saved = doc.save(Path(args.file))
    print(f"Created {saved} with {doc.tree.track_count} track(s)")
    return 0


def cmd_validate(args) -> int:
    try:
        doc = PlaylistDocument.load(Path(args.file))
    except (FileNotFoundError, ValueError) as e:
        print(f"Invalid: {e}")
        return 1
    ok, msg = doc.validate()
    if not ok:
        print(f"Invalid: {msg}")
        return 1
    print(f"OK: {doc.name} ({doc.tree.track_count} tracks, {doc.tree.count_groups()} groups)")
    return 0


def cmd_settings(args) -> int:
    doc = PlaylistDocument.load(Path(args.file))
    settings = doc.settings
    if args.default_action:
        settings.default_action_after_track = ActionAfterTrack(args.default_action)
    if args.pause is not None:
        settings.default_pause_seconds = args.pause
    if args.interval is not None:
        settings.divider_interval_seconds = args.interval
    if args.planned_end is not None:
        settings.planned_end_time = None if args.planned_end == "none" else _parse_when(args.planned_end, time.time())
    ok, msg = settings.validate()
    if not ok:
        print(f"Invalid settings: {msg}")
        return 1
    doc.save()
    print(json.dumps(settings.to_dict(), indent=2))
    return 0


def cmd_tree(args) -> int:
    doc = PlaylistDocument.load(Path(args.file))
    rows = doc.tree.flatten_for_display()
    if args.json:
        print(json.dumps([
            {
                "id": row.item.id,
                "name": row.item.name,
                "level": row.level,
                "index": row.sequential_index,
                "group": isinstance(row.item, Group),
                "duration": (
                    doc.policy.group_duration_with_pauses(row.item.id)
                    if isinstance(row.item, Group) else row.item.duration
                ),
            }
            for row in rows
        ], indent=2))
        return 0
    for row in rows:
        indent = "  " * row.level
        if isinstance(row.item, Group):
            count = doc.tree.group_item_count(row.item.id)
            total = doc.policy.group_duration_with_pauses(row.item.id)
            print(f"{indent}[+] {row.item.name} ({count} tracks, {format_duration(total)})")
        else:
            marks = ""
            if doc.state.is_track_played(row.item.id):
                marks += " (played)"
            if doc.state.is_track_or_group_disabled(row.item.id):
                marks += " (disabled)"
            print(f"{indent}{row.sequential_index + 1:>3}. {row.item.name} [{format_duration(row.item.duration)}]{marks}")
    return 0


def cmd_timeline(args) -> int:
    doc = PlaylistDocument.load(Path(args.file))
    now = _parse_when(args.now, time.time(), roll_forward=False) if args.now else time.time()
    if args.interval is not None:
        doc.settings.divider_interval_seconds = args.interval
    if args.planned_end is not None:
        doc.settings.planned_end_time = _parse_when(args.planned_end, now)
    projection = doc.build_projector().project(now=now)

    if args.json:
        print(json.dumps(projection.to_dict(), indent=2))
        return 0

    names = {t.id: t.name for t in doc.tree.tracks}
    planned = projection.planned_end
    if planned and planned.placement is MarkerPlacement.BEFORE_LIST:
        print(f"---- planned end {format_clock(planned.target_time)} ----")
    for span in projection.spans:
        print(f"{format_clock(span.start_time)}  {names.get(span.track_id, span.track_id)}")
        divider = projection.divider_for(span.track_id)
        if divider:
            print(f"---- {divider.label} ----")
        if planned and planned.placement is not MarkerPlacement.BEFORE_LIST and planned.track_id == span.track_id:
            print(f"---- planned end {format_clock(planned.target_time)} ----")
    print(f"Remaining {format_offset(projection.total_seconds)}, ends at {format_clock(projection.projected_end_time)}")
    return 0


def cmd_simulate(args) -> int:
    from .engine.simulated import SimulatedAudioBackend

    doc = PlaylistDocument.load(Path(args.file))
    doc.state.reset()
    scheduler = ManualScheduler(start=time.time())
    audio = SimulatedAudioBackend(scheduler, default_duration=args.default_duration)
    engine = ContinuationEngine(doc.tree, doc.state, doc.policy, audio, scheduler)

    names = {t.id: t.name for t in doc.tree.tracks}
    log_entries: list[dict] = []

    def _record(event: SessionEvent) -> None:
        data = dict(event.data or {})
        log_entries.append({"time": scheduler.time(), "event": event.event_type.name, **data})

    engine.events.subscribe_all(_record)
    if not engine.start_session():
        print("Nothing to play")
        return 1

    for _ in range(10_000):
        if scheduler.pending_count():
            scheduler.advance(max(1.0, args.default_duration))
        elif engine.status is PlaybackStatus.LOADED and doc.state.current_track_id:
            # Indefinite pause: the simulated listener presses play right away
            engine.play()
        else:
            break

    if args.json:
        print(json.dumps(log_entries, indent=2))
        return 0
    for entry in log_entries:
        track = names.get(entry.get("track_id"), "")
        print(f"{format_clock(entry['time'])}  {entry['event']:<16} {track}")
    return 0 if doc.state.error is None else 1


def cmd_play(args) -> int:
    from PyQt6.QtCore import QCoreApplication, QTimer
    from .engine.qt_runtime import PlayerRuntime

    doc = PlaylistDocument.load(Path(args.file))
    doc.state.reset()
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    runtime = PlayerRuntime(doc)
    exit_code = {"value": 0}

    def _on_error(message: str) -> None:
        log.error("Playback error: %s", message)
        exit_code["value"] = 1
        app.quit()

    runtime.errorOccurred.connect(_on_error)
    runtime.sessionEnded.connect(app.quit)
    runtime.trackChanged.connect(
        lambda track_id: print(f"Now playing: {doc.tree.get_track(track_id).name}") if track_id else None
    )
    runtime.start()
    if not runtime.engine.start_session():
        print("Nothing to play")
        runtime.stop()
        return 1
    if args.auto_exit_after:
        QTimer.singleShot(int(args.auto_exit_after * 1000), app.quit)
    app.exec()
    runtime.stop()
    return exit_code["value"]


def build_parser() -> argparse.ArgumentParser:
    logging_parent = _build_logging_parent()
    sub_logging_parent = _build_logging_parent(suppress_defaults=True)
    parser = argparse.ArgumentParser(
        description="TrackDeck CLI",
        parents=[logging_parent],
    )
    sub = parser.add_subparsers(dest="command", required=False)

    def add_subparser(name: str, **kwargs: object) -> argparse.ArgumentParser:
        parents = list(kwargs.pop("parents", []))
        parents.insert(0, sub_logging_parent)
        return sub.add_parser(name, parents=parents, **kwargs)

    p_new = add_subparser("new", help="Create a playlist file from audio files or folders")
    p_new.add_argument("file", help="Output .playlist.json path")
    p_new.add_argument("paths", nargs="*", help="Audio files or folders")
    p_new.add_argument("--name", default=None, help="Playlist name (default: file name)")
    p_new.add_argument("--probe", action="store_true", help="Probe durations with pygame while creating")

    p_val = add_subparser("validate", help="Validate a playlist file")
    p_val.add_argument("file")

    p_set = add_subparser("settings", help="Update player settings stored in a playlist")
    p_set.add_argument("file")
    p_set.add_argument("--default-action", choices=[a.value for a in ActionAfterTrack])
    p_set.add_argument("--pause", type=float, default=None, help="Default pause in seconds")
    p_set.add_argument("--interval", type=float, default=None, help="Divider interval in seconds")
    p_set.add_argument("--planned-end", default=None, help="HH:MM, ISO datetime, or 'none'")

    p_tree = add_subparser("tree", help="Print the playlist tree")
    p_tree.add_argument("file")
    p_tree.add_argument("--json", action="store_true", help="Print rows as JSON")

    p_tl = add_subparser("timeline", help="Project remaining tracks onto the wall clock")
    p_tl.add_argument("file")
    p_tl.add_argument("--now", default=None, help="Anchor time (HH:MM or ISO); default: current time")
    p_tl.add_argument("--interval", type=float, default=None, help="Override divider interval in seconds")
    p_tl.add_argument("--planned-end", default=None, help="Override planned end (HH:MM or ISO)")
    p_tl.add_argument("--json", action="store_true", help="Print the projection as JSON")

    p_sim = add_subparser("simulate", help="Dry-run a whole session without audio")
    p_sim.add_argument("file")
    p_sim.add_argument("--default-duration", type=float, default=180.0,
                       help="Length assumed for tracks without a known duration")
    p_sim.add_argument("--json", action="store_true", help="Print the event log as JSON")

    p_play = add_subparser("play", help="Play a playlist headlessly through pygame")
    p_play.add_argument("file")
    p_play.add_argument("--auto-exit-after", type=float, default=None, help="Quit after N seconds")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_format=(args.log_format == "json"),
        log_mode=args.log_mode,
        add_console=True,
    )

    handlers = {
        "new": cmd_new,
        "validate": cmd_validate,
        "settings": cmd_settings,
        "tree": cmd_tree,
        "timeline": cmd_timeline,
        "simulate": cmd_simulate,
        "play": cmd_play,
    }
    if args.command is None:
        parser.print_help()
        return 0
    try:
        return handlers[args.command](args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Invalid: {e}")
        return 1
