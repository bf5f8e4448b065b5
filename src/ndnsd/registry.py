"""Bookkeeping for outstanding browse and resolve requests.

Brief:
  RequestRegistry allocates request ids and owns the live set of browse and
  resolve requests of one NdnSd instance. Browse and resolve requests use
  separate id spaces; in both, a new id is ``max(live ids) + 1`` starting at
  1, so an id may be handed out again once its request is gone.

  Not thread-safe: like EventMultiplexer, the registry is only touched from
  the thread calling NdnSd methods. Concurrent callers would need a lock
  around allocation plus insertion and around every removal.

Inputs:
  - Request objects built by NdnSd.

Outputs:
  - Request lookups by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .provider.base import ProviderHandle
from .record import BrowseConstraints, ServiceRecord


@dataclass
class BrowseRequest:
    """A live browse operation and the records it has discovered."""

    id: int
    handle: ProviderHandle
    constraints: BrowseConstraints
    on_announcement: Callable[..., Any]
    on_error: Optional[Callable[..., Any]] = None
    # instance id -> record, in discovery order
    discovered: Dict[str, ServiceRecord] = field(default_factory=dict)


@dataclass
class ResolveRequest:
    """A one-shot resolve operation for a discovered record."""

    id: int
    handle: ProviderHandle
    target: ServiceRecord
    browse_id: int
    on_resolved: Callable[..., Any]
    on_error: Optional[Callable[..., Any]] = None
    user_data: Any = None


def _next_id(live: Dict[int, Any]) -> int:
    return max(live) + 1 if live else 1


class RequestRegistry:
    """Owns live BrowseRequest/ResolveRequest objects keyed by id."""

    def __init__(self):
        self._browses: Dict[int, BrowseRequest] = {}
        self._resolves: Dict[int, ResolveRequest] = {}

    def next_browse_id(self) -> int:
        return _next_id(self._browses)

    def next_resolve_id(self) -> int:
        return _next_id(self._resolves)

    def add_browse(self, request: BrowseRequest) -> None:
        if request.id in self._browses:
            raise ValueError("browse request id %d is already live" % request.id)
        self._browses[request.id] = request

    def add_resolve(self, request: ResolveRequest) -> None:
        if request.id in self._resolves:
            raise ValueError("resolve request id %d is already live" % request.id)
        self._resolves[request.id] = request

    def browse(self, request_id: int) -> Optional[BrowseRequest]:
        return self._browses.get(request_id)

    def resolve(self, request_id: int) -> Optional[ResolveRequest]:
        return self._resolves.get(request_id)

    def pop_browse(self, request_id: int) -> Optional[BrowseRequest]:
        return self._browses.pop(request_id, None)

    def pop_resolve(self, request_id: int) -> Optional[ResolveRequest]:
        return self._resolves.pop(request_id, None)

    def browses(self) -> List[BrowseRequest]:
        """Snapshot of live browse requests, in id order."""
        return [self._browses[k] for k in sorted(self._browses)]

    def resolves(self) -> List[ResolveRequest]:
        """Snapshot of live resolve requests, in id order."""
        return [self._resolves[k] for k in sorted(self._resolves)]

    def find_discovered(self, record: ServiceRecord) -> Optional[BrowseRequest]:
        """Brief: Find the live browse request whose discovered set holds ``record``.

        Inputs:
          - record: ServiceRecord instance (matched by identity).

        Outputs:
          - BrowseRequest or None when no live request tracks the record.
        """

        for request in self.browses():
            if request.discovered.get(record.uuid) is record:
                return request
        return None

    def __len__(self) -> int:
        return len(self._browses) + len(self._resolves)
