"""
Unit tests for gtest_runner.util.bulkheads and gtest_runner.util.xthreading.
"""

from gtest_runner.errors import ShardIOError
from gtest_runner.util.bulkheads import (
    BulkheadCell, capture_crashes_to, capture_crashes_to_self,
    is_bulkhead_call, reraise_if_crashed,
)
from gtest_runner.util.xthreading import bg_call_later
import pytest
from unittest.mock import patch

_CRASH = ValueError('Simulated crash')


class _Worker(BulkheadCell):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0
    
    @capture_crashes_to_self
    def crash(self) -> None:
        self.calls += 1
        raise _CRASH


# ------------------------------------------------------------------------------
# TestCaptureCrashes

class TestCaptureCrashes:
    def test_capture_crashes_to_self_records_crash(self, capsys) -> None:
        worker = _Worker()
        assert worker.crash() is None
        assert _CRASH is worker.crash_reason
        assert 'Simulated crash' in capsys.readouterr().err
    
    def test_crashed_bulkhead_skips_further_calls(self) -> None:
        worker = _Worker()
        worker.crash()
        worker.crash()
        assert 1 == worker.calls
    
    def test_capture_crashes_to_records_crash_in_bulkhead(self) -> None:
        bulkhead = BulkheadCell()
        
        @capture_crashes_to(bulkhead)
        def compute() -> int:
            raise _CRASH
        
        assert compute() is None
        assert _CRASH is bulkhead.crash_reason
    
    def test_capture_crashes_to_returns_result_when_no_crash(self) -> None:
        bulkhead = BulkheadCell()
        
        @capture_crashes_to(bulkhead)
        def compute() -> int:
            return 7
        
        assert 7 == compute()
        assert bulkhead.crash_reason is None
    
    def test_crash_report_names_thread_and_includes_traceback(self, capsys) -> None:
        worker = _Worker()
        bg_call_later(worker.crash, name='test_bulkheads.crash').join()
        err = capsys.readouterr().err
        assert "Crash in thread 'test_bulkheads.crash':" in err
        assert 'Traceback (most recent call last):' in err
        assert 'ValueError: Simulated crash' in err
    
    def test_crash_is_recorded_before_it_is_reported(self) -> None:
        bulkhead = BulkheadCell()
        crash_reason_when_reported = []
        
        def record_crash_reason(e: BaseException, thread_name: str) -> None:
            crash_reason_when_reported.append(bulkhead.crash_reason)
        
        @capture_crashes_to(bulkhead)
        def crash() -> None:
            raise _CRASH
        
        with patch('gtest_runner.util.bulkheads._print_crash', side_effect=record_crash_reason):
            crash()
        assert [_CRASH] == crash_reason_when_reported
    
    def test_decorated_functions_are_marked(self) -> None:
        assert is_bulkhead_call(_Worker.crash)
        assert not is_bulkhead_call(lambda: None)


# ------------------------------------------------------------------------------
# TestReraiseIfCrashed

class TestReraiseIfCrashed:
    def test_does_nothing_if_not_crashed(self) -> None:
        reraise_if_crashed(BulkheadCell(), lambda e: ShardIOError(0, str(e)))
    
    def test_raises_created_error_chained_to_crash(self) -> None:
        with pytest.raises(ShardIOError) as exc_info:
            reraise_if_crashed(BulkheadCell(_CRASH), lambda e: ShardIOError(4, str(e)))
        assert 4 == exc_info.value.shard
        assert _CRASH is exc_info.value.__cause__


# ------------------------------------------------------------------------------
# TestBgCallLater

class TestBgCallLater:
    def test_runs_callable_on_background_thread(self) -> None:
        results = []
        bulkhead = BulkheadCell()
        
        @capture_crashes_to(bulkhead)
        def append(value: int) -> None:
            results.append(value)
        
        bg_call_later(append, args=(5,), name='test_bulkheads.append').join()
        assert [5] == results
    
    def test_passes_args(self) -> None:
        results = []
        
        @capture_crashes_to(BulkheadCell())
        def append(value: int) -> None:
            results.append(value)
        
        bg_call_later(append, args=(9,)).join()
        assert [9] == results
    
    def test_crash_on_background_thread_is_captured(self) -> None:
        worker = _Worker()
        bg_call_later(worker.crash).join()
        assert _CRASH is worker.crash_reason
    
    def test_rejects_callable_which_does_not_capture_crashes(self) -> None:
        with pytest.raises(AssertionError):
            bg_call_later(lambda: None)


# ------------------------------------------------------------------------------
