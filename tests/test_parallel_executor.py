"""
Tests for parallel region execution and buffered region logs
"""
import logging
import time
import pytest
from chaos_orchestrator.engine.parallel_executor import ParallelExecutor
from chaos_orchestrator.engine.region_log_buffer import RegionLogBuffer


class TestRegionLogBuffer:
    """Test per-region log buffering"""

    def test_flush_writes_block(self, caplog):
        buffer = RegionLogBuffer("us-east")
        buffer.info("injected latency")
        buffer.warning("error rate rising")

        with caplog.at_level(logging.DEBUG, logger="chaos_orchestrator.engine.region_log_buffer"):
            buffer.flush()

        messages = [r.getMessage() for r in caplog.records]
        assert messages == [
            "=== REGION us-east ===",
            "injected latency",
            "error rate rising",
            "=== END REGION us-east ===",
        ]
        assert caplog.records[2].levelno == logging.WARNING
        assert buffer.buffer == []

    def test_empty_flush_is_silent(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="chaos_orchestrator.engine.region_log_buffer"):
            RegionLogBuffer("eu-west").flush()
        assert caplog.records == []


class TestParallelExecutor:
    """Test concurrent region tasks"""

    def test_results_in_task_order(self):
        def slow(log):
            time.sleep(0.1)
            return "slow"

        outcomes = ParallelExecutor().execute({'a': slow, 'b': lambda log: "fast"})

        assert list(outcomes) == ['a', 'b']
        assert outcomes['a'] == ("slow", None)
        assert outcomes['b'] == ("fast", None)

    def test_exception_captured_per_region(self):
        def broken(log):
            raise RuntimeError("region down")

        outcomes = ParallelExecutor().execute({'a': broken, 'b': lambda log: 1})

        result, error = outcomes['a']
        assert result is None
        assert isinstance(error, RuntimeError)
        assert outcomes['b'] == (1, None)

    def test_first_failure_reported_once(self):
        reported = []

        outcomes = ParallelExecutor().execute(
            {'a': lambda log: "bad", 'b': lambda log: "bad", 'c': lambda log: "good"},
            is_failure=lambda result: result == "bad",
            on_first_failure=reported.append
        )

        assert len(reported) == 1
        assert reported[0] in ('a', 'b')
        assert outcomes['c'] == ("good", None)

    def test_empty_tasks(self):
        assert ParallelExecutor().execute({}) == {}

    @pytest.mark.parametrize("max_workers", [1, 2])
    def test_bounded_workers(self, max_workers):
        tasks = {str(i): (lambda log, i=i: i * 2) for i in range(4)}
        outcomes = ParallelExecutor(max_workers).execute(tasks)
        assert [result for result, _ in outcomes.values()] == [0, 2, 4, 6]
