"""
Unit tests for scheduler (worldsnap/scheduler.py).

Tests APScheduler configuration and the interval backup job.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from worldsnap import scheduler as scheduler_module
from worldsnap.backup.coordinator import BackupInProgressError
from worldsnap.backup.host import LocalHost


def _service(backup_settings, units, **overrides):
    service = MagicMock()
    service.settings = backup_settings._replace(**overrides)
    service.host = LocalHost(units)
    return service


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None
        scheduler_module.backup_service = None

    @patch('worldsnap.scheduler.BackgroundScheduler')
    def test_init_scheduler(self, mock_scheduler_class, app, backup_settings, units):
        """Test scheduler initialization."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler
        service = _service(backup_settings, units, interval_enabled=True,
                           interval_initial_delay_minutes=2, interval_minutes=15)

        before = datetime.now(timezone.utc)
        result = scheduler_module.init_scheduler(app, service)

        assert result == mock_scheduler
        assert scheduler_module.scheduler == mock_scheduler
        assert scheduler_module.backup_service == service

        call_kwargs = mock_scheduler_class.call_args[1]
        assert 'executors' in call_kwargs
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True
        assert call_kwargs['timezone'] == 'UTC'

        mock_scheduler.add_job.assert_called_once()
        job_kwargs = mock_scheduler.add_job.call_args[1]
        assert job_kwargs['id'] == scheduler_module.INTERVAL_JOB_ID
        assert job_kwargs['func'] == scheduler_module.run_interval_backup

        trigger = job_kwargs['trigger']
        assert isinstance(trigger, IntervalTrigger)
        assert trigger.interval == timedelta(minutes=15)
        assert trigger.start_date >= before + timedelta(minutes=2)
        assert trigger.start_date <= datetime.now(timezone.utc) + timedelta(minutes=2)

    @patch('worldsnap.scheduler.BackgroundScheduler')
    def test_init_scheduler_interval_disabled(self, mock_scheduler_class, app, backup_settings, units):
        """Test no job is added when interval backups are off."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        scheduler_module.init_scheduler(app, _service(backup_settings, units, interval_enabled=False))

        mock_scheduler.add_job.assert_not_called()

    @patch('worldsnap.scheduler.BackgroundScheduler')
    def test_init_scheduler_only_once(self, mock_scheduler_class, app, backup_settings, units):
        """Test scheduler is only initialized once."""
        mock_scheduler_class.return_value = MagicMock()
        service = _service(backup_settings, units, interval_enabled=True)

        result1 = scheduler_module.init_scheduler(app, service)
        result2 = scheduler_module.init_scheduler(app, service)

        assert result1 == result2
        mock_scheduler_class.assert_called_once()


class TestSchedulerLifecycle:
    """Test scheduler start/stop operations."""

    def setup_method(self):
        """Set up before each test."""
        self.mock_scheduler = MagicMock()
        self.mock_scheduler.running = False
        self.mock_scheduler.state = 0
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None
        scheduler_module.backup_service = None

    def test_start_scheduler(self):
        """Test starting the scheduler."""
        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_called_once()

    def test_start_scheduler_not_initialized(self):
        """Test starting scheduler before initialization raises error."""
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError, match="not initialized"):
            scheduler_module.start_scheduler()

    def test_start_scheduler_already_running(self):
        """Test starting scheduler when already running."""
        self.mock_scheduler.running = True

        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_not_called()

    def test_stop_scheduler(self):
        """Test stopping the scheduler."""
        self.mock_scheduler.running = True

        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_called_once()

    def test_stop_scheduler_not_running(self):
        """Test stopping scheduler when not running."""
        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_not_called()

    def test_reset_scheduler(self):
        self.mock_scheduler.running = True

        scheduler_module.reset_scheduler()

        self.mock_scheduler.shutdown.assert_called_once()
        assert scheduler_module.scheduler is None
        assert not scheduler_module.is_scheduler_running()

    def test_get_scheduled_jobs(self):
        job = MagicMock()
        job.id = 'interval_backup'
        job.name = 'Interval Backup'
        job.next_run_time = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        job.trigger = 'interval[0:20:00]'
        self.mock_scheduler.get_jobs.return_value = [job]

        jobs = scheduler_module.get_scheduled_jobs()

        assert jobs == [{
            'id': 'interval_backup',
            'name': 'Interval Backup',
            'next_run': '2025-01-01T12:00:00+00:00',
            'trigger': 'interval[0:20:00]'
        }]

    def test_get_scheduled_jobs_not_initialized(self):
        scheduler_module.scheduler = None

        assert scheduler_module.get_scheduled_jobs() == []


class TestRunIntervalBackup:
    """Test the interval job body."""

    def teardown_method(self):
        scheduler_module.backup_service = None

    def test_skips_without_sessions(self, backup_settings, units):
        """Test the run is skipped while nobody is connected."""
        service = _service(backup_settings, units, interval_skip_if_no_sessions=True)
        scheduler_module.backup_service = service

        assert scheduler_module.run_interval_backup() is None
        service.run_backup.assert_not_called()

    def test_runs_with_sessions(self, backup_settings, units):
        service = _service(backup_settings, units, interval_skip_if_no_sessions=True)
        service.host.session_joined('steve')
        scheduler_module.backup_service = service

        result = scheduler_module.run_interval_backup()

        service.run_backup.assert_called_once_with('autobackup')
        assert result == service.run_backup.return_value

    def test_runs_without_sessions_when_not_skipping(self, backup_settings, units):
        service = _service(backup_settings, units, interval_skip_if_no_sessions=False)
        scheduler_module.backup_service = service

        scheduler_module.run_interval_backup()

        service.run_backup.assert_called_once_with('autobackup')

    def test_previous_backup_still_running(self, backup_settings, units):
        service = _service(backup_settings, units, interval_skip_if_no_sessions=False)
        service.run_backup.side_effect = BackupInProgressError("A backup is already in progress")
        scheduler_module.backup_service = service

        assert scheduler_module.run_interval_backup() is None

    def test_no_service(self):
        assert scheduler_module.run_interval_backup() is None


class TestSchedulerWiring:
    """Test create_app starts the scheduler only when configured."""

    def teardown_method(self):
        scheduler_module.reset_scheduler()

    @patch('worldsnap.scheduler.BackgroundScheduler')
    def test_create_app_starts_scheduler(self, mock_scheduler_class, app_config):
        from worldsnap import create_app

        mock_scheduler = MagicMock()
        mock_scheduler.running = False
        mock_scheduler_class.return_value = mock_scheduler
        app_config.update(SCHEDULER_ENABLED=True, INTERVAL_BACKUP_ENABLED=True)

        app = create_app('testing', app_config)
        try:
            mock_scheduler.start.assert_called_once()
            assert scheduler_module.backup_service is app.extensions['worldsnap']
        finally:
            app.extensions['worldsnap'].shutdown()

    def test_testing_config_has_no_scheduler(self, app):
        assert scheduler_module.scheduler is None
