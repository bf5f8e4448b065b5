"""Readiness multiplexing over provider handles.

Brief:
  EventMultiplexer owns the descriptors contributed by all active provider
  handles of one NdnSd instance and blocks on them with an optional timeout.

  Not thread-safe: the descriptor map must only be touched from the thread
  driving NdnSd.run(). A multi-threaded caller would need to serialize add(),
  remove() and wait() behind a lock.

Inputs:
  - ProviderHandle instances.

Outputs:
  - Snapshots of handles whose descriptors are ready.
"""

from __future__ import annotations

import logging
import selectors
from typing import Dict, List, Optional

from .provider.base import ProviderHandle

logger = logging.getLogger(__name__)


class EventMultiplexer:
    """Map of descriptor -> provider handle backed by a selector."""

    def __init__(self, selector: Optional[selectors.BaseSelector] = None):
        self._selector = selector or selectors.DefaultSelector()
        self._handles: Dict[int, ProviderHandle] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, handle: ProviderHandle) -> bool:
        return self._fd_of(handle) is not None

    def _fd_of(self, handle: ProviderHandle) -> Optional[int]:
        for fd, known in self._handles.items():
            if known is handle:
                return fd
        return None

    def add(self, handle: ProviderHandle) -> int:
        """Brief: Start watching a handle's readiness descriptor.

        Inputs:
          - handle: Provider handle to watch.

        Outputs:
          - int: The registered descriptor.
        """

        fd = int(handle.fileno())
        previous = self._handles.get(fd)
        if previous is handle:
            return fd
        if previous is not None:
            # Descriptor number reused by the OS for a different handle.
            self._selector.unregister(fd)
        self._selector.register(fd, selectors.EVENT_READ, handle)
        self._handles[fd] = handle
        logger.debug("multiplexer: watching fd=%d (%d total)", fd, len(self._handles))
        return fd

    def remove(self, handle: ProviderHandle) -> None:
        """Brief: Stop watching a handle. Unknown handles are ignored.

        Inputs:
          - handle: Provider handle previously passed to add().

        Outputs:
          - None.
        """

        fd = self._fd_of(handle)
        if fd is None:
            return
        del self._handles[fd]
        try:
            self._selector.unregister(fd)
        except (KeyError, ValueError):  # pragma: nocover already gone
            pass
        logger.debug("multiplexer: released fd=%d (%d left)", fd, len(self._handles))

    def is_watching(self, fd: int, handle: ProviderHandle) -> bool:
        """Return True when ``fd`` is still registered for ``handle``."""
        return self._handles.get(fd) is handle

    def wait(self, timeout_ms: int = 0) -> List[tuple]:
        """Brief: Block until at least one descriptor is ready.

        Inputs:
          - timeout_ms: Milliseconds to wait; 0 blocks indefinitely.

        Outputs:
          - list[(fd, handle)]: Snapshot of ready descriptors taken when the
            wait returned. Empty on timeout or after close().

        Raises:
          - OSError: When the underlying wait primitive fails.
        """

        if self._closed:
            return []
        timeout = None if not timeout_ms else timeout_ms / 1000.0
        events = self._selector.select(timeout)
        return [(key.fd, key.data) for key, _mask in events]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._handles.clear()
        self._selector.close()
