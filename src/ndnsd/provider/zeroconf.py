"""DNS-SD provider backed by the pure-Python ``zeroconf`` package.

Brief:
  zeroconf runs its own engine thread and reports browse events through
  handler callbacks. This provider marshals those events (and the results of
  blocking resolve/register calls run on worker threads) onto a per-handle
  queue and signals readiness through a socketpair, so NdnSd can multiplex
  them like any other provider descriptor and deliver callbacks on the thread
  calling run().

Inputs:
  - Optional ZeroconfProviderConfig.

Outputs:
  - ZeroconfProvider.

Notes:
  - Only the ``local.`` domain is supported.
  - A registration type with a subtype (``_ndn._tcp,mfd``) is mapped onto the
    zeroconf subtype form ``mfd._sub._ndn._tcp.local.``. zeroconf advertises
    such an instance under the subtype pointer, so it is only visible to
    browsers that ask for the same subtype.
"""

from __future__ import annotations

import ipaddress
import logging
import queue
import socket
import threading
from typing import Any, Callable, List, Optional, Tuple

from ..config.config_schema import ZeroconfProviderConfig
from ..errors import (
    ERR_BAD_PARAM,
    ERR_NAME_CONFLICT,
    ERR_NO_ERROR,
    ERR_SERVICE_NOT_RUNNING,
    ERR_TIMEOUT,
    ERR_UNKNOWN,
    ERR_UNSUPPORTED,
    ProviderError,
)
from .base import (
    FLAG_ADD,
    FLAG_MORE_COMING,
    BrowseCallback,
    Provider,
    ProviderHandle,
    RegisterCallback,
    ResolveCallback,
)

logger = logging.getLogger(__name__)

MDNS_DOMAIN = "local."


def zeroconf_types(regtype: str, domain: Optional[str]) -> Tuple[str, str, str]:
    """Brief: Translate a DNS-SD registration type into zeroconf type names.

    Inputs:
      - regtype: Registration type such as ``_ndn._udp.`` or ``_ndn._tcp,mfd``.
      - domain: DNS-SD domain; None or empty means ``local.``.

    Outputs:
      - tuple: (zeroconf type to browse/register, base service type,
        registration type reported back in callbacks).

    Raises:
      - ProviderError: ERR_UNSUPPORTED for a non-local domain, ERR_BAD_PARAM
        for an empty registration type.

    Example:
      - ``zeroconf_types("_ndn._tcp,mfd", None)`` ->
        ``("mfd._sub._ndn._tcp.local.", "_ndn._tcp.local.", "_ndn._tcp.")``
    """

    d = (domain or "").strip().rstrip(".").lower()
    if d not in {"", "local"}:
        raise ProviderError(ERR_UNSUPPORTED, f"zeroconf only serves {MDNS_DOMAIN}, not {domain!r}")

    parts = [p.strip() for p in str(regtype or "").split(",")]
    base = parts[0].rstrip(".")
    if not base:
        raise ProviderError(ERR_BAD_PARAM, "empty registration type")
    base_type = f"{base}.{MDNS_DOMAIN}"
    subtypes = [p for p in parts[1:] if p]
    zc_type = f"{subtypes[0]}._sub.{base_type}" if subtypes else base_type
    return zc_type, base_type, f"{base}."


def instance_name(name: str, base_type: str) -> str:
    """Return the instance label of a zeroconf full service name."""

    suffix = "." + base_type
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name.split(".", 1)[0]


def _local_addresses(configured: List[str]) -> List[str]:
    if configured:
        return list(configured)
    found: List[str] = []
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None)
    except OSError as exc:
        logger.debug("zeroconf: cannot resolve local host name: %s", exc)
        infos = []
    for info in infos:
        addr = info[4][0]
        try:
            if ipaddress.ip_address(addr).is_loopback:
                continue
        except ValueError:
            continue
        if addr not in found:
            found.append(addr)
    return found or ["127.0.0.1"]


class _QueueHandle(ProviderHandle):
    """Brief: Handle delivering events queued by zeroconf threads.

    Inputs:
      - callback: Operation callback; its first argument is the flags word.

    Outputs:
      - Handle whose fileno() becomes readable when events are queued.
    """

    def __init__(self, callback: Callable[..., None]):
        self._callback = callback
        self._rsock, self._wsock = socket.socketpair()
        self._rsock.setblocking(False)
        self._wsock.setblocking(False)
        self._events: "queue.SimpleQueue[Tuple[Any, ...]]" = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        return self._rsock.fileno()

    def post(self, *event: Any) -> None:
        """Queue one callback argument tuple from any thread."""

        with self._lock:
            if self._closed:
                return
            self._events.put(event)
            try:
                self._wsock.send(b"\0")
            except BlockingIOError:
                # Socket buffer full: a wakeup is already pending.
                pass

    def _drain_wakeups(self) -> None:
        while True:
            try:
                data = self._rsock.recv(4096)
            except BlockingIOError:
                return
            except OSError as exc:
                raise ProviderError(ERR_SERVICE_NOT_RUNNING, f"provider socket failed: {exc}") from exc
            if not data:
                raise ProviderError(ERR_SERVICE_NOT_RUNNING, "provider socket closed")
            if len(data) < 4096:
                return

    def process_result(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._drain_wakeups()
            pending = []
            while True:
                try:
                    pending.append(self._events.get_nowait())
                except queue.Empty:
                    break

        for i, event in enumerate(pending):
            if self._closed:
                return
            flags = int(event[0])
            if i < len(pending) - 1:
                flags |= FLAG_MORE_COMING
            self._callback(flags, *event[1:])

    def _on_close(self) -> None:
        return None

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._rsock.close()
            self._wsock.close()
        self._on_close()


class _BrowseHandle(_QueueHandle):
    def __init__(
        self,
        zc: Any,
        browser_cls: Any,
        zc_type: str,
        base_type: str,
        reply_regtype: str,
        interface_index: int,
        callback: BrowseCallback,
    ):
        super().__init__(callback)
        self._base_type = base_type
        self._reply_regtype = reply_regtype
        self._interface_index = interface_index
        self._browser = None
        try:
            self._browser = browser_cls(zc, zc_type, handlers=[self._on_state_change])
        except Exception:
            self.close()
            raise

    # zeroconf invokes handlers with keyword arguments.
    def _on_state_change(self, zeroconf, service_type, name, state_change):  # type: ignore[no-untyped-def]
        kind = getattr(state_change, "name", "")
        if kind == "Added":
            flags = FLAG_ADD
        elif kind == "Removed":
            flags = 0
        else:
            return
        logger.debug("zeroconf: %s %s (%s)", kind, name, service_type)
        self.post(
            flags,
            self._interface_index,
            ERR_NO_ERROR,
            instance_name(name, self._base_type),
            self._reply_regtype,
            MDNS_DOMAIN,
        )

    def _on_close(self) -> None:
        if self._browser is not None:
            self._browser.cancel()


class _ResolveHandle(_QueueHandle):
    def __init__(
        self,
        zc: Any,
        base_type: str,
        name: str,
        interface_index: int,
        timeout_ms: int,
        callback: ResolveCallback,
    ):
        super().__init__(callback)
        self._zc = zc
        self._base_type = base_type
        self._fullname = f"{name}.{base_type}"
        self._interface_index = interface_index
        self._timeout_ms = timeout_ms
        self._thread = threading.Thread(
            target=self._run, name=f"ndnsd-resolve-{name}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            info = self._zc.get_service_info(
                self._base_type, self._fullname, timeout=self._timeout_ms
            )
        except Exception as exc:
            logger.warning("zeroconf: resolving %s failed: %s", self._fullname, exc)
            self.post(0, self._interface_index, ERR_UNKNOWN, self._fullname, "", 0, b"")
            return
        if info is None:
            self.post(0, self._interface_index, ERR_TIMEOUT, self._fullname, "", 0, b"")
            return
        self.post(
            0,
            self._interface_index,
            ERR_NO_ERROR,
            str(info.name),
            str(info.server or ""),
            int(info.port or 0),
            bytes(info.text or b""),
        )


class _RegisterHandle(_QueueHandle):
    def __init__(
        self,
        zc: Any,
        info: Any,
        name: str,
        reply_regtype: str,
        conflict_exc: type,
        callback: RegisterCallback,
    ):
        super().__init__(callback)
        self._zc = zc
        self._info = info
        self._name = name
        self._reply_regtype = reply_regtype
        self._conflict_exc = conflict_exc
        self._registered = False
        self._thread = threading.Thread(
            target=self._run, name=f"ndnsd-register-{name}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            self._zc.register_service(self._info, allow_name_change=False)
        except self._conflict_exc:
            self.post(0, ERR_NAME_CONFLICT, self._name, self._reply_regtype, MDNS_DOMAIN)
            return
        except Exception as exc:
            logger.warning("zeroconf: registering %s failed: %s", self._name, exc)
            self.post(0, ERR_UNKNOWN, self._name, self._reply_regtype, MDNS_DOMAIN)
            return

        with self._lock:
            withdraw = self._closed
            self._registered = not withdraw
        if withdraw:
            self._zc.unregister_service(self._info)
            return
        self.post(FLAG_ADD, ERR_NO_ERROR, self._name, self._reply_regtype, MDNS_DOMAIN)

    def _on_close(self) -> None:
        if self._registered:
            self._registered = False
            self._zc.unregister_service(self._info)


class ZeroconfProvider(Provider):
    """Brief: Provider running DNS-SD over zeroconf's multicast engine.

    Inputs:
      - config: Optional ZeroconfProviderConfig (interfaces, ip_version,
        unicast, resolve_timeout_ms, addresses).
      - zeroconf: Optional existing Zeroconf instance; it is not closed by
        close().

    Outputs:
      - ZeroconfProvider instance.

    Raises:
      - RuntimeError: When the ``zeroconf`` package is missing or the mDNS
        sockets cannot be bound.
    """

    def __init__(
        self,
        config: Optional[ZeroconfProviderConfig] = None,
        zeroconf: Any = None,
    ):
        try:
            from zeroconf import (
                BadTypeInNameException,
                IPVersion,
                InterfaceChoice,
                NonUniqueNameException,
                ServiceBrowser,
                ServiceInfo,
                Zeroconf,
            )
        except Exception as exc:
            raise RuntimeError(
                'ZeroconfProvider requires the "zeroconf" package. Install ndnsd[zeroconf].'
            ) from exc

        self._config = config or ZeroconfProviderConfig()
        self._ServiceBrowser = ServiceBrowser
        self._ServiceInfo = ServiceInfo
        self._NonUniqueNameException = NonUniqueNameException
        self._BadTypeInNameException = BadTypeInNameException

        if zeroconf is not None:
            self._zc = zeroconf
            self._owns_zc = False
            return

        interfaces_cfg = self._config.interfaces
        if interfaces_cfg == "default":
            interfaces: Any = InterfaceChoice.Default
        elif interfaces_cfg == "all":
            interfaces = InterfaceChoice.All
        else:
            interfaces = []
            for x in interfaces_cfg:
                try:
                    interfaces.append(str(ipaddress.ip_address(x)))
                except ValueError:
                    logger.warning("zeroconf: ignoring invalid interface address %r", x)

        ip_version = {
            "v4": IPVersion.V4Only,
            "v6": IPVersion.V6Only,
            "all": IPVersion.All,
        }.get(self._config.ip_version or "")

        logger.debug(
            "zeroconf: interfaces=%r ip_version=%r unicast=%r",
            interfaces_cfg,
            self._config.ip_version,
            self._config.unicast,
        )
        try:
            self._zc = Zeroconf(
                interfaces=interfaces,
                unicast=bool(self._config.unicast),
                ip_version=ip_version,
            )
        except OSError as exc:
            logger.error("zeroconf: failed to bind mDNS sockets: %s", exc, exc_info=True)
            raise RuntimeError(
                f"Zeroconf failed to initialize mDNS sockets: {exc}. "
                "Try setting provider.interfaces=default and/or provider.ip_version=v4."
            ) from exc
        self._owns_zc = True

    def browse(
        self,
        interface_index: int,
        regtype: str,
        domain: Optional[str],
        callback: BrowseCallback,
    ) -> ProviderHandle:
        zc_type, base_type, reply_regtype = zeroconf_types(regtype, domain)
        logger.debug("zeroconf: browsing %s", zc_type)
        try:
            return _BrowseHandle(
                self._zc,
                self._ServiceBrowser,
                zc_type,
                base_type,
                reply_regtype,
                interface_index,
                callback,
            )
        except OSError as exc:
            raise ProviderError(ERR_SERVICE_NOT_RUNNING, f"browse failed: {exc}") from exc

    def resolve(
        self,
        interface_index: int,
        name: str,
        regtype: str,
        domain: str,
        callback: ResolveCallback,
    ) -> ProviderHandle:
        _zc_type, base_type, _reply = zeroconf_types(regtype, domain)
        if not name:
            raise ProviderError(ERR_BAD_PARAM, "empty instance name")
        return _ResolveHandle(
            self._zc,
            base_type,
            name,
            interface_index,
            int(self._config.resolve_timeout_ms),
            callback,
        )

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
        zc_type, base_type, reply_regtype = zeroconf_types(regtype, domain)
        host = socket.gethostname().split(".", 1)[0] or "localhost"
        try:
            info = self._ServiceInfo(
                zc_type,
                f"{name}.{base_type}",
                port=int(port),
                properties=bytes(txt),
                server=f"{host}.{MDNS_DOMAIN}",
                parsed_addresses=_local_addresses(self._config.addresses),
            )
        except (TypeError, ValueError, self._BadTypeInNameException) as exc:
            raise ProviderError(ERR_BAD_PARAM, f"invalid service info: {exc}") from exc
        logger.debug("zeroconf: registering %s as %s", name, zc_type)
        return _RegisterHandle(
            self._zc,
            info,
            name,
            reply_regtype,
            self._NonUniqueNameException,
            callback,
        )

    def close(self) -> None:
        if self._owns_zc:
            self._owns_zc = False
            self._zc.close()
