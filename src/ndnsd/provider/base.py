"""Provider interface for asynchronous multicast name resolution.

Brief:
  A provider performs the actual DNS-SD work (browsing, resolving,
  registering). Every operation returns a ProviderHandle that exposes an
  OS-level readiness descriptor; once that descriptor is readable the caller
  pumps the handle with process_result(), which invokes the operation's
  callback synchronously on the calling thread.

  Callback signatures mirror DNS-SD:
    - browse:   (flags, interface_index, error_code, name, regtype, domain)
    - resolve:  (flags, interface_index, error_code, fullname, hosttarget,
                 port, txt)
    - register: (flags, error_code, name, regtype, domain)

Inputs:
  - Registration types built by ndnsd.record.make_regtype().

Outputs:
  - ProviderHandle instances; ProviderError on synchronous failure.
"""

from __future__ import annotations

import abc
from typing import Callable, Optional

FLAG_MORE_COMING = 0x1
FLAG_ADD = 0x2

INTERFACE_INDEX_ANY = 0
INTERFACE_INDEX_LOCAL_ONLY = -1

BrowseCallback = Callable[[int, int, int, str, str, str], None]
ResolveCallback = Callable[[int, int, int, str, str, int, bytes], None]
RegisterCallback = Callable[[int, int, str, str, str], None]


class ProviderHandle(abc.ABC):
    """An outstanding provider operation."""

    @abc.abstractmethod
    def fileno(self) -> int:
        """Return the readiness descriptor for this operation."""

    @abc.abstractmethod
    def process_result(self) -> None:
        """Brief: Deliver pending results through the operation callback.

        Inputs:
          - None.

        Outputs:
          - None.

        Raises:
          - ProviderError: When the provider connection is broken.
        """

    @abc.abstractmethod
    def close(self) -> None:
        """Release the operation; no callbacks fire afterwards."""


class Provider(abc.ABC):
    """Factory for provider operations.

    Start calls raise ndnsd.errors.ProviderError when the provider rejects the
    request synchronously.
    """

    @abc.abstractmethod
    def browse(
        self,
        interface_index: int,
        regtype: str,
        domain: Optional[str],
        callback: BrowseCallback,
    ) -> ProviderHandle:
        """Start browsing for instances of ``regtype``."""

    @abc.abstractmethod
    def resolve(
        self,
        interface_index: int,
        name: str,
        regtype: str,
        domain: str,
        callback: ResolveCallback,
    ) -> ProviderHandle:
        """Start resolving the instance ``name`` of ``regtype`` in ``domain``."""

    @abc.abstractmethod
    def register(
        self,
        interface_index: int,
        name: str,
        regtype: str,
        domain: Optional[str],
        port: int,
        txt: bytes,
        callback: RegisterCallback,
    ) -> ProviderHandle:
        """Start advertising ``name`` as an instance of ``regtype``."""

    def close(self) -> None:  # pragma: nocover default no-op
        """Release provider-wide resources."""
        return None
