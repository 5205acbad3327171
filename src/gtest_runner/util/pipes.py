"""
One-way byte pipes whose readable end can be waited on with a selector.

Shard reader threads use these to announce their completion to the
aggregator, which waits on many of them at once.
"""

from gtest_runner.util.xos import is_windows
import os
import socket
from typing import Optional


def create_selectable_pipe() -> 'Pipe':
    """
    Similar to os.pipe(), but the returned ends can be registered with
    selectors.DefaultSelector on every platform.
    
    On Windows select() only accepts sockets, so a connected socket pair
    is used there instead of an OS pipe.
    """
    if is_windows():
        (read_socket, write_socket) = socket.socketpair()
        read_socket.shutdown(socket.SHUT_WR)
        write_socket.shutdown(socket.SHUT_RD)
        return Pipe(ReadablePipeEnd.for_socket(read_socket), WritablePipeEnd.for_socket(write_socket))
    else:
        (read_fd, write_fd) = os.pipe()
        return Pipe(ReadablePipeEnd(read_fd), WritablePipeEnd(write_fd))


class Pipe:
    def __init__(self, readable_end: 'ReadablePipeEnd', writable_end: 'WritablePipeEnd') -> None:
        self.readable_end = readable_end
        self.writable_end = writable_end
    
    def close(self) -> None:
        """Closes whichever ends of the pipe are still open."""
        self.readable_end.close()
        self.writable_end.close()


class _PipeEnd:
    def __init__(self, fd: int, sock: Optional[socket.socket]=None) -> None:
        self._fd = fd
        # Owns `fd` when set. Holding it prevents the socket from being
        # garbage collected, which would close `fd` underneath us.
        self._socket = sock
        self._closed = False
    
    @classmethod
    def for_socket(cls, sock: socket.socket):
        return cls(sock.fileno(), sock)
    
    def fileno(self) -> int:
        return self._fd
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._socket is not None:
            self._socket.close()
        else:
            os.close(self._fd)


class ReadablePipeEnd(_PipeEnd):
    def read(self, size: int) -> bytes:
        """
        Reads up to `size` bytes, blocking until at least one is available.
        
        Returns b'' once the writable end is closed and the pipe is drained.
        """
        if self._socket is not None:
            return self._socket.recv(size)
        return os.read(self._fd, size)


class WritablePipeEnd(_PipeEnd):
    def write(self, data: bytes | memoryview) -> int:
        if self._socket is not None:
            return self._socket.send(data)
        return os.write(self._fd, data)
    
    def write_all(self, data: bytes) -> None:
        remaining = memoryview(data)
        while len(remaining) > 0:
            remaining = remaining[self.write(remaining):]
