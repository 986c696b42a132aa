"""
CLI for running and inspecting the ambient alarm engine
"""

import sys
from datetime import datetime

import click
from pydantic import ValidationError

from .config import AmbientAlarmConfig
from .errors import AmbientAlarmError
from .logging_utils import get_logger, setup_logging
from .service import AlarmService

logger = get_logger(__name__)


def _open_service(ctx, **kwargs) -> AlarmService:
    try:
        return AlarmService.from_config(ctx.obj['config'], **kwargs)
    except AmbientAlarmError as e:
        click.echo(f"Could not open engine: {e}")
        sys.exit(1)


def _parse_days(raw):
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(',') if part.strip()]
    except ValueError:
        raise click.BadParameter(f"expected comma-separated day numbers, got {raw!r}")


@click.group()
@click.option('--log-level', default=None, help='Log level (defaults to LOG_LEVEL)')
@click.option('--log-format', default=None, type=click.Choice(['text', 'json', 'simple']),
              help='Log format (defaults to LOG_FORMAT)')
@click.pass_context
def cli(ctx, log_level, log_format):
    """Ambient alarm CLI - schedule playlists and drive playback"""
    ctx.ensure_object(dict)
    config = AmbientAlarmConfig.from_env()
    setup_logging(
        log_level=log_level or config.log_level,
        log_format=log_format or config.log_format,
        log_file=config.log_file,
    )
    ctx.obj['config'] = config


@cli.command()
@click.option('--host', default=None, help='Bind address (defaults to AMBIENT_ALARM_HOST)')
@click.option('--port', type=int, default=None, help='Port (defaults to AMBIENT_ALARM_PORT)')
@click.option('--no-scheduler', is_flag=True, help='Serve the API without the poll loop')
@click.pass_context
def serve(ctx, host, port, no_scheduler):
    """Run the HTTP API and the scheduler"""
    import uvicorn

    from .api import create_app

    config = ctx.obj['config']
    service = _open_service(ctx)
    app = create_app(service, start_scheduler=not no_scheduler)
    uvicorn.run(app, host=host or config.host, port=port or config.port, log_config=None)


@cli.command()
@click.pass_context
def tasks(ctx):
    """List scheduled tasks"""
    service = _open_service(ctx)
    scheduled = service.list_scheduled_tasks()
    if not scheduled:
        click.echo("No scheduled tasks")
        return

    click.echo(f"{len(scheduled)} scheduled task(s):")
    for task in scheduled:
        days = f" {sorted(task.custom_days)}" if task.custom_days else ""
        flag = "" if task.is_enabled else " (disabled)"
        click.echo(f"  [{task.id}] {task.hour:02d}:{task.minute:02d} {task.name} - "
                   f"{task.repeat_mode.value}{days}, playlist '{task.playlist_name}', "
                   f"volume {task.volume}, priority {task.priority}{flag}")


@cli.command()
@click.option('--hour', type=click.IntRange(0, 23), required=True)
@click.option('--minute', type=click.IntRange(0, 59), required=True)
@click.option('--repeat-mode', type=click.Choice(['daily', 'weekday', 'weekend', 'custom', 'once']),
              default='daily', show_default=True)
@click.option('--days', help='Custom days, comma separated, 0=Sunday')
@click.option('--playlist', 'playlist_id', type=int, required=True, help='Playlist id')
@click.option('--duration', 'duration_minutes', type=int, help='Explicit duration in minutes')
@click.option('--exclude', 'excluding_id', type=int, help='Task id being edited')
@click.pass_context
def conflicts(ctx, hour, minute, repeat_mode, days, playlist_id, duration_minutes, excluding_id):
    """Check a candidate schedule against enabled tasks"""
    service = _open_service(ctx)
    try:
        found = service.check_conflicts({
            "hour": hour,
            "minute": minute,
            "repeat_mode": repeat_mode,
            "custom_days": _parse_days(days),
            "playlist_id": playlist_id,
            "duration_minutes": duration_minutes,
            "excluding_id": excluding_id,
        })
    except (AmbientAlarmError, ValidationError) as e:
        click.echo(f"Invalid schedule: {e}")
        sys.exit(1)

    if not found:
        click.echo("No conflicts")
        return

    click.echo(f"{len(found)} conflicting task(s):")
    for conflict in found:
        click.echo(f"  [{conflict.task_id}] {conflict.hour:02d}:{conflict.minute:02d} {conflict.name}")
    sys.exit(2)


@cli.command()
@click.argument('playlist_id', type=int)
@click.option('--volume', type=click.IntRange(0, 100), help='Target volume 0-100')
@click.option('--fade', 'fade_in', type=click.IntRange(0, 3600), default=0, help='Fade-in seconds')
@click.option('--first-only', is_flag=True, help='Play only the first entry')
@click.pass_context
def play(ctx, playlist_id, volume, fade_in, first_only):
    """Play a playlist in the foreground until it finishes"""
    service = _open_service(ctx)
    if volume is None:
        volume = ctx.obj['config'].default_volume

    click.echo(f"Playing playlist {playlist_id}...")
    try:
        outcome = service.orchestrator.play_playlist(
            playlist_id, volume, fade_in, auto_advance=not first_only
        )
    except AmbientAlarmError as e:
        click.echo(f"Playback failed: {e}")
        sys.exit(1)

    click.echo(f"Played {outcome.tracks_played}/{outcome.tracks_total} track(s) "
               f"in {outcome.elapsed_seconds:.0f}s")


@cli.command()
@click.option('--at', 'at', type=click.DateTime(), help='Evaluate as if the clock read this local time')
@click.pass_context
def tick(ctx, at):
    """Run a single scheduler tick in the foreground"""
    service = _open_service(ctx, synchronous=True)
    now = at or datetime.now()
    firings = service.scheduler.tick(now)

    if not firings:
        click.echo(f"No tasks due at {now:%Y-%m-%d %H:%M:%S}")
        return

    for firing in firings:
        click.echo(f"Fired task [{firing.task.id}] {firing.task.name} (history {firing.history_id})")


@cli.command()
@click.option('--task', 'task_id', type=int, help='Only this task')
@click.option('--limit', type=click.IntRange(1, 1000), default=20, show_default=True)
@click.pass_context
def history(ctx, task_id, limit):
    """Show recent task executions"""
    service = _open_service(ctx)
    records = service.execution_history(task_id=task_id, limit=limit)
    if not records:
        click.echo("No executions recorded")
        return

    for record in records:
        line = f"  {record.execution_time:%Y-%m-%d %H:%M:%S} task {record.task_id}: {record.status.value}"
        if record.duration is not None:
            line += f" ({record.duration}s)"
        if record.error:
            line += f" - {record.error}"
        click.echo(line)


@cli.command()
@click.pass_context
def status(ctx):
    """Show configuration and engine status"""
    config = ctx.obj['config']
    service = _open_service(ctx)
    scheduled = service.list_scheduled_tasks()
    enabled = sum(1 for task in scheduled if task.is_enabled)

    click.echo("Ambient Alarm Status:")
    click.echo(f"  Database: {config.database_url}")
    click.echo(f"  Audio backend: {config.audio_backend}")
    click.echo(f"  Poll interval: {config.poll_interval_s}s")
    click.echo(f"  Default volume: {config.default_volume}")
    click.echo(f"  Log level: {config.log_level}")
    click.echo(f"  Log format: {config.log_format}")
    click.echo(f"  Tasks: {len(scheduled)} ({enabled} enabled)")


if __name__ == '__main__':
    cli()
