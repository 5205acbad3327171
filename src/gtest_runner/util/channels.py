"""
Per-shard completion signals, and a selector that checks many of them
for readiness at once without blocking.

Each shard reader thread owns a CompletionSender. When the shard's output
stream has been fully forwarded, the sender writes the number of events the
shard forwarded and closes its pipe. The aggregator owns a CompletionSelector
over the readable ends of all such pipes.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from gtest_runner.util.pipes import ReadablePipeEnd, WritablePipeEnd
import selectors

_READ_CHUNK_SIZE = 64


@dataclass(frozen=True)
class Completion:
    """
    A completion signal received from one sender.
    
    `num_events` is None if the sender was closed without ever sending,
    which happens when the thread that owned it crashed.
    """
    key: int
    num_events: int | None
    
    @property
    def abandoned(self) -> bool:
        return self.num_events is None


class CompletionSender:
    """Sends a single completion signal over the writable end of a pipe."""
    
    def __init__(self, writable_end: WritablePipeEnd) -> None:
        self._writable_end = writable_end
    
    def send(self, num_events: int) -> None:
        """
        Signals completion, reporting how many events were forwarded
        before completing. May be called at most once.
        
        Raises:
        * ValueError -- if a completion was already sent or the sender was closed.
        """
        if self._writable_end.closed:
            raise ValueError('Completion already sent')
        try:
            self._writable_end.write_all(f'{num_events}\n'.encode('ascii'))
        finally:
            self._writable_end.close()
    
    def close(self) -> None:
        """
        Closes the sender. If no completion was sent,
        receivers will observe an abandoned completion.
        """
        self._writable_end.close()


class CompletionSelector:
    """
    Waits for completion signals from a fixed set of senders,
    each identified by an integer key (such as a shard index).
    """
    
    def __init__(self) -> None:
        self._selector = selectors.DefaultSelector()
        self._buffers = {}  # type: dict[int, bytearray]
        self._closed = False
    
    def register(self, key: int, readable_end: ReadablePipeEnd) -> None:
        if key in self._buffers:
            raise ValueError(f'Key {key} is already registered')
        self._selector.register(readable_end, selectors.EVENT_READ, data=key)
        self._buffers[key] = bytearray()
    
    @property
    def pending_keys(self) -> list[int]:
        """Keys whose completion has not yet been received."""
        return sorted(self._buffers.keys())
    
    def poll(self, timeout: float | None=0) -> list[Completion]:
        """
        Returns the completions that have become available,
        waiting up to `timeout` seconds for the first of them.
        
        A timeout of 0 checks readiness without blocking.
        A timeout of None blocks until at least one completion is available,
        unless no completions are pending, in which case it returns immediately.
        """
        if len(self._buffers) == 0:
            return []
        completions = []
        for (selector_key, _) in self._selector.select(timeout):
            completion = self._read_ready(selector_key)
            if completion is not None:
                completions.append(completion)
        return completions
    
    def __iter__(self) -> Iterator[Completion]:
        """Blocks until every pending completion has been received, yielding each."""
        while len(self._buffers) > 0:
            yield from self.poll(timeout=None)
    
    def close(self) -> None:
        """Unregisters and closes any readable ends still pending."""
        if self._closed:
            return
        self._closed = True
        for selector_key in list(self._selector.get_map().values()):
            self._unregister(selector_key)
        self._selector.close()
    
    def _read_ready(self, selector_key: selectors.SelectorKey) -> Completion | None:
        key = selector_key.data  # type: int
        readable_end = selector_key.fileobj  # type: ReadablePipeEnd  # type: ignore[assignment]
        buffer = self._buffers[key]
        
        chunk = readable_end.read(_READ_CHUNK_SIZE)
        if len(chunk) > 0:
            buffer.extend(chunk)
            if not buffer.endswith(b'\n'):
                # Partial message. Wait for the rest.
                return None
            num_events = int(buffer.decode('ascii').strip())  # type: int | None
        else:
            # Sender closed without sending
            num_events = None
        
        self._unregister(selector_key)
        return Completion(key, num_events)
    
    def _unregister(self, selector_key: selectors.SelectorKey) -> None:
        self._selector.unregister(selector_key.fileobj)
        del self._buffers[selector_key.data]
        selector_key.fileobj.close()  # type: ignore[union-attr]
