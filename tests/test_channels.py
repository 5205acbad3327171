"""
Unit tests for gtest_runner.util.channels.
"""

from gtest_runner.util.bulkheads import BulkheadCell, capture_crashes_to
from gtest_runner.util.channels import (
    Completion, CompletionSelector, CompletionSender,
)
from gtest_runner.util.pipes import create_selectable_pipe
from gtest_runner.util.xthreading import bg_call_later
import pytest
import time


def _create_senders(selector: CompletionSelector, count: int) -> list[CompletionSender]:
    senders = []
    for key in range(count):
        pipe = create_selectable_pipe()
        selector.register(key, pipe.readable_end)
        senders.append(CompletionSender(pipe.writable_end))
    return senders


class TestCompletionSelector:
    def test_poll_returns_nothing_before_any_completion(self) -> None:
        selector = CompletionSelector()
        senders = _create_senders(selector, 2)
        try:
            assert [] == selector.poll(timeout=0)
            assert [0, 1] == selector.pending_keys
        finally:
            for sender in senders:
                sender.close()
            selector.close()
    
    def test_poll_returns_only_completed_senders(self) -> None:
        selector = CompletionSelector()
        senders = _create_senders(selector, 3)
        try:
            senders[1].send(5)
            assert [Completion(1, 5)] == selector.poll(timeout=1.0)
            assert [0, 2] == selector.pending_keys
            
            # A completion is reported only once
            assert [] == selector.poll(timeout=0)
        finally:
            for sender in senders:
                sender.close()
            selector.close()
    
    def test_sender_closed_without_sending_is_abandoned(self) -> None:
        selector = CompletionSelector()
        [sender] = _create_senders(selector, 1)
        try:
            sender.close()
            [completion] = selector.poll(timeout=1.0)
            assert completion.abandoned
            assert completion.num_events is None
        finally:
            selector.close()
    
    def test_sender_can_send_only_once(self) -> None:
        selector = CompletionSelector()
        [sender] = _create_senders(selector, 1)
        try:
            sender.send(0)
            with pytest.raises(ValueError):
                sender.send(1)
            sender.close()  # no effect
            assert [Completion(0, 0)] == selector.poll(timeout=1.0)
        finally:
            selector.close()
    
    def test_poll_with_no_pending_senders_returns_immediately(self) -> None:
        selector = CompletionSelector()
        try:
            assert [] == selector.poll(timeout=None)
        finally:
            selector.close()
    
    def test_duplicate_key_is_rejected(self) -> None:
        selector = CompletionSelector()
        pipe = create_selectable_pipe()
        [sender] = _create_senders(selector, 1)
        try:
            with pytest.raises(ValueError):
                selector.register(0, pipe.readable_end)
        finally:
            sender.close()
            pipe.close()
            selector.close()
    
    def test_iterating_waits_for_every_completion(self) -> None:
        selector = CompletionSelector()
        senders = _create_senders(selector, 3)
        
        @capture_crashes_to(BulkheadCell())
        def send_all_slowly() -> None:
            for (i, sender) in reversed(list(enumerate(senders))):
                time.sleep(0.02)
                sender.send(i * 10)
        
        thread = bg_call_later(send_all_slowly, name='test_channels.send_all_slowly')
        try:
            completions = list(selector)
        finally:
            thread.join()
            selector.close()
        assert [Completion(2, 20), Completion(1, 10), Completion(0, 0)] == completions
        assert [] == selector.pending_keys
