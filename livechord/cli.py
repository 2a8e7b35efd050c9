"""livechord CLI entry point."""

import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import click

from livechord import __version__
from livechord.arrangement import Arrangement
from livechord.audio_sources import default_strategies
from livechord.chord_grid import ChordGrid
from livechord.config import PEAK_ORDERS, TIE_BREAKS, DetectionConfig
from livechord.errors import LiveChordError
from livechord.insertion import AutoInsertPolicy, DetectionEvent, SuggestionPolicy
from livechord.scheduler import DetectionScheduler, SchedulerState
from livechord.song_layout import SongLayout, format_clock, parse_clock
from livechord.transport import WallClockTransport


def _load_document(path: str) -> dict[str, Any]:
    """Read a song document: layout fields plus an optional ``chords`` grid export."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise click.BadParameter("song document must be a JSON object", param_hint="LAYOUT")
    return data


def _parse_time(value: str) -> float:
    """Accept plain seconds ("12.5") or a clock ("1:05")."""
    if ":" in value:
        return parse_clock(value)
    try:
        return float(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is neither seconds nor m:ss", param_hint="TIME") from None


def _fail(message: str) -> None:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="livechord")
@click.option("-v", "--verbose", count=True, help="Log more detail (-v info, -vv debug).")
def main(verbose: int) -> None:
    """livechord — live chord detection aligned to a song's bar grid."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ── resolve subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("layout", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.argument("time_value", metavar="TIME")
def resolve(layout: str, time_value: str) -> None:
    """
    Show which section and bar a playback time falls in.

    LAYOUT is a song JSON file; TIME is seconds or m:ss.

    \b
    Examples:
      livechord resolve song.json 10
      livechord resolve song.json 1:05
    """
    try:
        arrangement = Arrangement(SongLayout.from_dict(_load_document(layout)))
        seconds = _parse_time(time_value)
    except (LiveChordError, ValueError) as exc:
        _fail(str(exc))
        return

    position = arrangement.resolve(seconds)
    if position is None:
        click.echo(f"{format_clock(seconds)}  outside every section")
        return
    section = arrangement.layout.sections[position.section_index]
    click.echo(
        f"{format_clock(seconds)}  section {position.section_index + 1} ({section.name}), "
        f"bar {position.bar_index + 1}/{section.bar_count}"
    )


# ── listen subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("layout", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--media",
    default=None,
    metavar="PATH|URL",
    help="Song media to analyse. Without it, system audio and then the microphone are tried.",
)
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Where to write the song document with detected chords. Defaults to <layout>.chords.json.",
)
@click.option("--start", "start_at", default="0:00", show_default=True, metavar="TIME",
              help="Playback position to start from (seconds or m:ss).")
@click.option("--duration", type=float, default=None, metavar="SECS",
              help="Stop after this many seconds. Defaults to the end of the last section.")
@click.option("--auto-insert/--no-auto-insert", default=True, show_default=True,
              help="Write detections into the chord grid or only list them.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON file with detection options (e.g. peakThresholdDb).")
@click.option("--window", type=int, default=None, help="FFT window size in samples.  [default: 4096]")
@click.option("--threshold", type=float, default=None, metavar="DB",
              help="Peak threshold in dB.  [default: -50]")
@click.option("--interval", type=click.IntRange(50, 10000), default=None, metavar="MS",
              help="Detection tick interval.  [default: 1000]")
@click.option("--peak-order", type=click.Choice(sorted(PEAK_ORDERS)), default=None,
              help="Which peaks to keep when more than six are found.  [default: ascending]")
@click.option("--tie-break", type=click.Choice(sorted(TIE_BREAKS)), default=None,
              help="How equally good chord templates are resolved.  [default: first]")
@click.option("--min-confidence", type=click.FloatRange(0.0, 1.0), default=None, metavar="0-1",
              help="Drop detections whose weighted template score is lower.  [default: 0]")
def listen(
    layout: str,
    media: str | None,
    output: str | None,
    start_at: str,
    duration: float | None,
    auto_insert: bool,
    config_path: str | None,
    window: int | None,
    threshold: float | None,
    interval: int | None,
    peak_order: str | None,
    tie_break: str | None,
    min_confidence: float | None,
) -> None:
    """
    Listen along with a song and fill its chord grid.

    LAYOUT is a song JSON file with tempo, time_signature and sections.

    \b
    Examples:
      livechord listen song.json --media song.wav
      livechord listen song.json --media "https://youtu.be/dQw4w9WgXcQ" -o filled.json
      livechord -v listen song.json --no-auto-insert --duration 30
    """
    options: dict[str, Any] = {}
    if config_path is not None:
        options.update(_load_document(config_path))
    overrides = {
        "sample_window_size": window,
        "peak_threshold_db": threshold,
        "tick_interval_ms": interval,
        "peak_order": peak_order,
        "tie_break": tie_break,
        "min_confidence": min_confidence,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = DetectionConfig.from_mapping(options)
        document = _load_document(layout)
        song = SongLayout.from_dict(document)
        grid = ChordGrid.from_dict(document.get("chords", {}))
        start_seconds = _parse_time(start_at)
    except (LiveChordError, ValueError) as exc:
        _fail(str(exc))
        return

    if not song.sections:
        _fail("the song has no sections")
        return

    arrangement = Arrangement(song, grid)
    end_seconds = max(section.end_seconds for section in song.sections)
    run_for = duration if duration is not None else max(end_seconds - start_seconds, 0.0)
    resolved_output = output if output is not None else str(Path(layout).with_suffix(".chords.json"))

    click.echo(f"livechord v{__version__}")
    click.echo(f"  Layout : {layout}  ({len(song.sections)} sections, {song.total_bars} bars)")
    click.echo(f"  Tempo  : {song.tempo:g} BPM  |  Time: {song.time_signature}")
    click.echo(f"  Media  : {media or 'system audio / microphone'}")
    click.echo()

    def on_status(state: SchedulerState, message: str) -> None:
        if message:
            click.echo(f"  [{state.value}] {message}")

    def on_detection(event: DetectionEvent) -> None:
        sections = arrangement.layout.sections
        if event.position.section_index >= len(sections):
            return
        section = sections[event.position.section_index]
        click.echo(
            f"    {format_clock(event.playback_time):>6}  {event.chord:<5} "
            f"{section.name}, bar {event.position.bar_index + 1}  ({event.confidence:.0%})"
        )

    transport = WallClockTransport()
    transport.seek(start_seconds)
    scheduler = DetectionScheduler(
        strategies=default_strategies(media, sample_rate=config.sample_rate),
        transport=transport,
        position_provider=arrangement.resolve,
        config=config,
        on_status=on_status,
    )
    suggestions = SuggestionPolicy(history=8)
    scheduler.add_listener(on_detection)
    scheduler.add_listener(suggestions)
    if auto_insert:
        scheduler.add_listener(AutoInsertPolicy.for_arrangement(arrangement))

    scheduler.start()
    while scheduler.state in (SchedulerState.ACQUIRING, SchedulerState.DEGRADED):
        time.sleep(0.05)
    if scheduler.state is not SchedulerState.ACTIVE:
        _fail(f"detection unavailable: {scheduler.unavailable_reason}")
        return

    transport.play()
    try:
        time.sleep(run_for)
    except KeyboardInterrupt:
        click.echo()
        click.echo("  Interrupted.")
    finally:
        try:
            scheduler.stop()
        except LiveChordError as exc:
            click.echo(f"  WARNING: {exc}", err=True)

    document = {**arrangement.layout.to_dict(), "chords": grid.to_dict()}
    try:
        with open(resolved_output, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
    except OSError as exc:
        _fail(f"Could not write output file: {exc}")
        return

    click.echo()
    if not auto_insert and suggestions.suggestions:
        recent = " ".join(event.chord for event in suggestions.suggestions)
        click.echo(f"Last suggestions: {recent}")
    click.echo(f"Done!  Grid has {len(grid)} chord(s).")
    click.echo(f"Wrote '{resolved_output}'.")
