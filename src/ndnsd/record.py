"""Service records and registration-type helpers.

Brief:
  A ServiceRecord describes one NDN service instance, either the local
  identity advertised by an NdnSd handle or a remote instance observed while
  browsing. Which fields are readable depends on how far the record has
  progressed through discovery/resolution (or registration).

Inputs:
  - Values reported by the provider or supplied to announce().

Outputs:
  - ServiceRecord instances and DNS-SD registration type strings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

SERVICE_TYPE = "_ndn"
SUBTYPE_MFD = "mfd"
SUBTYPE_NFD = "nfd"


class Proto(enum.IntEnum):
    """Transport an NDN service is reachable over."""

    UDP = 1
    TCP = 1 << 1


class Announcement(enum.Enum):
    """Kind of event delivered to browse/resolve callbacks."""

    ADDED = "added"
    REMOVED = "removed"
    RESOLVED = "resolved"


class ServiceState(enum.IntEnum):
    """Lifecycle of a record.

    Remote records move CREATED -> DISCOVERED -> RESOLVED; the local record
    moves CREATED -> REGISTERING -> REGISTERED.
    """

    CREATED = 0
    DISCOVERED = 1
    RESOLVED = 2
    REGISTERING = 3
    REGISTERED = 4


def make_regtype(protocol: Proto, subtype: str = "") -> str:
    """Brief: Build the DNS-SD registration type for a protocol and subtype.

    Inputs:
      - protocol: Proto.UDP or Proto.TCP.
      - subtype: Optional subtype label (for example ``mfd``).

    Outputs:
      - str: ``_ndn._udp.`` / ``_ndn._tcp.`` without a subtype, or
        ``_ndn._tcp,mfd`` with one.

    Example:
      >>> make_regtype(Proto.TCP, "mfd")
      '_ndn._tcp,mfd'
    """

    transport = "_udp" if protocol == Proto.UDP else "_tcp"
    regtype = f"{SERVICE_TYPE}.{transport}"
    if subtype:
        return f"{regtype},{subtype}"
    return regtype + "."


def parse_protocol(regtype: str) -> Optional[Proto]:
    """Brief: Extract the transport from a registration type reported by the provider.

    Inputs:
      - regtype: Registration type such as ``_ndn._udp.``.

    Outputs:
      - Proto or None when neither ``_udp`` nor ``_tcp`` is present.
    """

    labels = str(regtype or "").lower().replace(",", ".").split(".")
    if "_udp" in labels:
        return Proto.UDP
    if "_tcp" in labels:
        return Proto.TCP
    return None


@dataclass(frozen=True)
class BrowseConstraints:
    """Brief: What to browse for.

    Inputs:
      - protocol: Transport of the services to discover.
      - interface_index: Provider interface index (0 means any).
      - subtype: Optional subtype (``mfd``/``nfd`` or custom).
      - domain: Browse domain; empty means the provider default.
      - user_data: Opaque value passed back to callbacks.

    Outputs:
      - BrowseConstraints instance.
    """

    protocol: Proto = Proto.UDP
    interface_index: int = 0
    subtype: str = ""
    domain: str = ""
    user_data: Any = None


@dataclass(frozen=True)
class AdvertiseParameters(BrowseConstraints):
    """Brief: What to advertise.

    Inputs:
      - BrowseConstraints fields, plus:
      - port: Port the service listens on (non-zero).
      - prefix: NDN prefix served (non-empty).
      - certificate: Optional certificate bytes.

    Outputs:
      - AdvertiseParameters instance.
    """

    port: int = 0
    prefix: str = ""
    certificate: bytes = b""


class ServiceRecord:
    """One NDN service instance.

    Accessors return empty values until the record reaches the state that
    makes them meaningful: port/prefix/certificate once RESOLVED (remote) or
    REGISTERED (own), hostname/fullname once RESOLVED.

    Records are shared with callers through callbacks and must be treated as
    read-only by them; only the owning request updates the fields.
    """

    def __init__(
        self,
        uuid: str,
        protocol: Proto = Proto.UDP,
        interface_index: int = 0,
        subtype: str = "",
        domain: str = "",
    ):
        self._uuid = str(uuid)
        self._protocol = Proto(protocol)
        self._interface_index = int(interface_index)
        self._subtype = str(subtype or "")
        self._domain = str(domain or "")
        self._regtype = make_regtype(self._protocol, self._subtype)
        self._port = 0
        self._prefix = ""
        self._certificate = b""
        self._hostname = ""
        self._fullname = ""
        self._state = ServiceState.CREATED

    def __repr__(self) -> str:
        return "ServiceRecord(uuid=%r, protocol=%s, state=%s)" % (
            self._uuid,
            self._protocol.name,
            self._state.name,
        )

    def _has_payload(self) -> bool:
        return self._state in (ServiceState.RESOLVED, ServiceState.REGISTERED)

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def protocol(self) -> Proto:
        return self._protocol

    @property
    def interface_index(self) -> int:
        return self._interface_index

    @property
    def subtype(self) -> str:
        return self._subtype

    @property
    def regtype(self) -> str:
        return self._regtype

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def domain(self) -> str:
        if self._state > ServiceState.CREATED:
            return self._domain
        return ""

    @property
    def port(self) -> int:
        return self._port if self._has_payload() else 0

    @property
    def prefix(self) -> str:
        return self._prefix if self._has_payload() else ""

    @property
    def certificate(self) -> bytes:
        return self._certificate if self._has_payload() else b""

    @property
    def hostname(self) -> str:
        return self._hostname if self._state == ServiceState.RESOLVED else ""

    @property
    def fullname(self) -> str:
        return self._fullname if self._state == ServiceState.RESOLVED else ""
