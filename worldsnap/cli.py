"""
Operator commands, registered on ``flask``.

    flask --app worldsnap backup [zstd|zip] [--label NAME] [--no-wait]
"""

import click

from worldsnap.backup.coordinator import BackupInProgressError
from worldsnap.backup.formats import CompressType


def register_commands(app):
    """Attach the worldsnap commands to the app's CLI group."""

    @app.cli.command('backup')
    @click.argument(
        'compress_format',
        required=False,
        type=click.Choice(CompressType.names(), case_sensitive=False)
    )
    @click.option('--label', default='console', show_default=True, help='Label embedded in the backup filename.')
    @click.option('--wait/--no-wait', default=True, show_default=True, help='Wait for the archive to be written.')
    def backup_command(compress_format, label, wait):
        """Back up all data store units now."""
        service = app.extensions['worldsnap']
        compress_type = CompressType.from_name(compress_format) if compress_format else None

        try:
            future = service.run_backup(label, compress_type)
        except BackupInProgressError as e:
            raise click.ClickException(str(e))

        if not wait:
            click.echo("Backup started")
            return

        result = future.result()
        if result is None or result['status'] != 'success':
            error = result['error_message'] if result else 'see logs'
            raise click.ClickException(f"Backup failed: {error}")

        click.echo(f"Backup created: {result['filename']}")
        if result['deleted_artifacts']:
            click.echo(f"Deleted old backups: {', '.join(result['deleted_artifacts'])}")
