"""Main CLI entry point for the answer sheet scanner."""

import sys
from pathlib import Path

import click

from markscan.config import (
    DATABASE_PATH,
    MARKERS_FOLDER,
    SCANS_FOLDER,
    ConfigurationError,
    ensure_folders,
    validate_config,
)
from markscan.database import (
    DatabaseResultStore,
    get_quiz_statistics,
    get_recent_results,
    import_roster,
    init_db,
    load_answer_key,
    load_directory,
)
from markscan.grading import (
    Frame,
    LayoutError,
    ScanError,
    assess_frame,
    load_settings,
    reset_settings,
    save_settings,
)
from markscan.grading.quality import CORNER_NAMES

TIER_COLORS = {"excellent": "green", "good": "yellow", "poor": "red"}


def _load_settings_or_exit():
    try:
        return load_settings()
    except ConfigurationError as e:
        click.echo(f"Invalid scan settings: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--database", "database_url", envvar="MARKSCAN_DATABASE_URL", default=None,
              help="SQLAlchemy database URL (default: SQLite file in the data folder)")
@click.pass_context
def cli(ctx, database_url):
    """Answer sheet scanning CLI."""
    ctx.obj = {"database_url": database_url}


@cli.command()
@click.pass_obj
def init(obj):
    """Create the data folders and the database."""
    click.echo("Initializing markscan...")

    ensure_folders()
    try:
        issues = validate_config()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    for issue in issues:
        click.echo(f"  Warning: {issue}", err=True)

    init_db(obj["database_url"])
    click.echo(f"Database ready: {obj['database_url'] or DATABASE_PATH}")
    click.echo(f"Scans folder: {SCANS_FOLDER}")
    click.echo(f"Markers folder: {MARKERS_FOLDER}")


@cli.command("import-roster")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_roster_command(obj, path):
    """Import students and quizzes from a YAML file."""
    init_db(obj["database_url"])

    counts = import_roster(path)
    if counts is None:
        click.echo(f"Could not read {path}", err=True)
        sys.exit(1)

    click.echo(f"Imported {counts['students']} students and {counts['quizzes']} quizzes.")
    for reason in counts["skipped"]:
        click.echo(f"  Skipped: {reason}", err=True)


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def quality(image):
    """Check whether the alignment marks of a scanned sheet are visible."""
    settings = _load_settings_or_exit()
    frame = Frame.load(image)
    result = assess_frame(frame, settings.quality)

    tier = click.style(result.tier.value.upper(), fg=TIER_COLORS[result.tier.value], bold=True)
    click.echo(f"{image.name}: {tier} ({result.corners_detected}/4 corners, "
               f"confidence {result.confidence:.2f})")
    for name, ratio in zip(CORNER_NAMES, result.corner_ratios):
        click.echo(f"  {name:<13} {ratio:.2f}")
    if not result.has_alignment_marks:
        click.echo("Alignment marks not found. Reframe the sheet before capturing.", err=True)


def _open_session(obj, quiz_id, store, **kwargs):
    from markscan.grading.scanner import ScanSession

    init_db(obj["database_url"])
    settings = _load_settings_or_exit()

    try:
        answer_key = load_answer_key(quiz_id)
        return ScanSession(answer_key, load_directory(), settings=settings, store=store, **kwargs)
    except ScanError as e:
        click.echo(f"Error: {e}", err=True)
    except LayoutError as e:
        click.echo(f"Quiz '{quiz_id}' cannot be scanned: {e}", err=True)
    sys.exit(1)


def _echo_outcome(name, outcome, verbose=False):
    if outcome is None:
        click.echo(f"{name}: skipped, scanner busy", err=True)
        return

    if not outcome.ok:
        click.echo(f"{name}: {click.style('FAILED', fg='red')} {outcome.message}", err=True)
        return

    result = outcome.result
    answers = " ".join(a or "-" for a in result.answers)
    click.echo(f"{name}: {click.style('OK', fg='green')} {outcome.message}")
    click.echo(f"  Answers: {answers}")
    click.echo(f"  Correct: {result.correct_answers}  Wrong: {result.wrong_answers}  "
               f"Confidence: {result.confidence:.1f}  Method: {result.strategy}")

    if verbose:
        for line in outcome.extraction.trace:
            click.echo(f"    {line}")
        for line in outcome.score.trace:
            click.echo(f"    {line}")


@cli.command()
@click.option("--quiz", "-q", "quiz_id", required=True, help="Quiz ID")
@click.option("--dry-run", is_flag=True, help="Grade without saving results")
@click.option("--verbose", "-v", is_flag=True, help="Show extraction and scoring traces")
@click.argument("images", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def scan(obj, quiz_id, dry_run, verbose, images):
    """Grade one or more scanned answer sheets."""
    from markscan.grading.scanner import MemoryResultStore

    store = MemoryResultStore() if dry_run else DatabaseResultStore()
    # Files are independent captures, so no spacing between them
    session = _open_session(obj, quiz_id, store, min_capture_interval=0)

    for image in images:
        try:
            frame = Frame.load(image)
        except (OSError, ValueError) as e:
            click.echo(f"{image.name}: could not read image: {e}", err=True)
            continue
        _echo_outcome(image.name, session.capture(frame), verbose)

    click.echo(f"\nGraded {session.completed} of {len(images)} sheets, {session.errors} failed.")
    if dry_run:
        click.echo("Dry run: no results saved.")


@cli.command()
@click.option("--quiz", "-q", "quiz_id", required=True, help="Quiz ID")
@click.option("--folder", "-f", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Folder to watch (default: scans folder)")
@click.pass_obj
def watch(obj, quiz_id, folder):
    """Watch the scans folder and grade new sheets as they arrive."""
    from markscan.grading.scanner import ScanWatcher

    session = _open_session(obj, quiz_id, DatabaseResultStore())
    folder = folder or SCANS_FOLDER

    click.echo(f"Watching for scans in: {folder}")
    click.echo("Press Ctrl+C to stop.\n")

    def on_outcome(path, outcome):
        _echo_outcome(path.name, outcome)

    watcher = ScanWatcher(session, on_outcome=on_outcome)

    try:
        watcher.run_forever(folder)
    except KeyboardInterrupt:
        watcher.stop()
    click.echo("\nStopped watching.")


@cli.command()
@click.option("--quiz", "-q", "quiz_id", required=True, help="Quiz ID")
@click.option("--output", "-o", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Output folder (default: markers folder)")
@click.pass_obj
def markers(obj, quiz_id, output):
    """Generate one QR identity marker per student for a quiz."""
    from markscan.sheets import build_payloads, save_markers

    init_db(obj["database_url"])
    try:
        load_answer_key(quiz_id)
    except ScanError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    students = load_directory()
    if not students:
        click.echo("No students found. Run 'markscan import-roster' first.", err=True)
        sys.exit(1)

    paths = save_markers(build_payloads(students, quiz_id), output)
    click.echo(f"Generated {len(paths)} markers in {paths[0].parent}")


@cli.command()
@click.option("--quiz", "-q", "quiz_id", default=None, help="Only show this quiz")
@click.option("--limit", "-n", default=20, help="Number of results to show")
@click.pass_obj
def results(obj, quiz_id, limit):
    """Show recent scan results."""
    init_db(obj["database_url"])
    rows = get_recent_results(quiz_id, limit)

    if not rows:
        click.echo("No results yet.")
        return

    click.echo(f"{'Date':<17} {'Quiz':<12} {'Student':<24} {'Score':>7} {'%':>4}")
    click.echo("-" * 68)
    for r in rows:
        date = (r["scanned_at"] or "")[:16].replace("T", " ")
        click.echo(f"{date:<17} {r['quiz_id']:<12} {r['student_name'][:24]:<24} "
                   f"{r['score']:>7g} {r['percentage']:>4}")


def _echo_breakdown(title, rows, key):
    if not rows:
        return
    click.echo(f"\n{title}:")
    click.echo(f"  {key.capitalize():<16} {'Total':>5} {'Passed':>6} {'Failed':>6} {'Avg %':>6} {'Pass %':>6}")
    for row in rows:
        click.echo(f"  {row[key][:16]:<16} {row['total']:>5} {row['passed']:>6} {row['failed']:>6} "
                   f"{row['average_score']:>6} {row['pass_rate']:>6}")


@cli.command()
@click.option("--quiz", "-q", "quiz_id", default=None, help="Only this quiz (default: all quizzes)")
@click.pass_obj
def stats(obj, quiz_id):
    """Show average score, pass rate and breakdowns by level and subject."""
    init_db(obj["database_url"])

    if quiz_id:
        try:
            load_answer_key(quiz_id)
        except ScanError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    summary = get_quiz_statistics(quiz_id)
    if not summary["total_results"]:
        click.echo("No results yet.")
        return

    click.echo(f"Quiz: {quiz_id or 'all quizzes'}")
    click.echo(f"Results: {summary['total_results']}  Students: {summary['total_students']}")
    click.echo(f"Average score: {summary['average_score']}%")
    click.echo(f"Pass rate: {summary['pass_rate']}% ({summary['passed']} passed, {summary['failed']} failed)")

    click.echo("\nGrade distribution:")
    for grade, count in summary["grade_distribution"].items():
        bar = "#" * count
        click.echo(f"  {grade:<10} {count:>4} {bar}")

    _echo_breakdown("By level", summary["by_level"], "level")
    _echo_breakdown("By subject", summary["by_subject"], "subject")


@cli.group()
def settings():
    """Show or change scan settings."""
    pass


@settings.command("show")
def settings_show():
    """Print the current scan settings."""
    current = _load_settings_or_exit()
    for section, values in current.to_dict().items():
        click.echo(click.style(f"{section}:", bold=True))
        for key, value in values.items():
            click.echo(f"  {key}: {value}")


@settings.command("set")
@click.argument("key")
@click.argument("value")
def settings_set(key, value):
    """Change one setting, e.g. 'general.method hybrid'."""
    current = _load_settings_or_exit()
    try:
        updated = current.updated(key, value)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    path = save_settings(updated)
    click.echo(f"Set {key} = {value} ({path})")


@settings.command("reset")
def settings_reset():
    """Restore the default scan settings."""
    reset_settings()
    click.echo("Scan settings reset to defaults.")


if __name__ == "__main__":
    cli()
