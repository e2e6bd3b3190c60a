"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with max_instances=1 and coalescing
- Immediate first run
- Start/shutdown lifecycle
- Trigger now functionality
"""

import threading
import time
from unittest.mock import Mock

from fundmatch.scheduler import JOB_ID, SchedulerService


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_scheduler_initialization(self):
        mock_callable = Mock()
        shutdown_event = threading.Event()

        scheduler = SchedulerService(
            sweep_callable=mock_callable,
            interval_seconds=1800,
            shutdown_event=shutdown_event,
        )

        assert scheduler.interval_seconds == 1800
        assert scheduler.sweep_callable is mock_callable
        assert scheduler.shutdown_event is shutdown_event
        assert not scheduler.is_running()

    def test_scheduler_start_and_shutdown(self):
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            sweep_callable=Mock(),
            interval_seconds=1800,
            shutdown_event=shutdown_event,
        )

        scheduler.start()
        assert scheduler.is_running()
        time.sleep(0.1)

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_scheduler_job_defaults_prevent_overlap(self):
        scheduler = SchedulerService(sweep_callable=Mock(), interval_seconds=1800)

        assert scheduler.scheduler._job_defaults["max_instances"] == 1
        assert scheduler.scheduler._job_defaults["coalesce"] is True
        assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 1800

    def test_scheduler_immediate_first_run(self):
        ran = threading.Event()

        scheduler = SchedulerService(sweep_callable=ran.set, interval_seconds=1800)
        scheduler.start()

        assert ran.wait(timeout=5)
        scheduler.shutdown(wait=True)

    def test_scheduler_registers_named_job(self):
        scheduler = SchedulerService(sweep_callable=Mock(), interval_seconds=1800)
        scheduler.start()

        try:
            job = scheduler.scheduler.get_job(JOB_ID)
            assert job is not None
            assert job.max_instances == 1
            assert job.coalesce is True
            assert scheduler.get_next_run_time() is not None
        finally:
            scheduler.shutdown(wait=True)

    def test_next_run_time_none_before_start(self):
        scheduler = SchedulerService(sweep_callable=Mock(), interval_seconds=1800)

        assert scheduler.get_next_run_time() is None

    def test_trigger_now_runs_synchronously_and_returns_result(self):
        mock_callable = Mock(return_value="sweep-result")
        scheduler = SchedulerService(sweep_callable=mock_callable, interval_seconds=1800)

        assert scheduler.trigger_now() == "sweep-result"
        mock_callable.assert_called_once_with()

    def test_shutdown_without_start_sets_event(self):
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            sweep_callable=Mock(), interval_seconds=1800, shutdown_event=shutdown_event
        )

        scheduler.shutdown()

        assert shutdown_event.is_set()
