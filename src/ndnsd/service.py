"""NDN service discovery handle.

Brief:
  NdnSd turns raw provider callbacks into a typed, cancel-able, multi-request
  API. One handle corresponds to one local identity (its instance id) and
  supports:
    - announce(): advertise the local identity with its prefix/certificate.
    - browse(): discover peers for a protocol/subtype; returns a request id.
    - resolve(): one-shot resolution of a discovered record.
    - cancel(): stop a browse request.
    - run(): wait on provider descriptors and dispatch callbacks.

  Everything happens on the thread calling run(); provider callbacks are
  delivered from inside the provider pump, which run() invokes.

Inputs:
  - A Provider implementation (defaults to the zeroconf provider).

Outputs:
  - Callbacks carrying ServiceRecord instances.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional

from . import errors
from .errors import ProviderError, error_message
from .multiplexer import EventMultiplexer
from .provider.base import FLAG_ADD, Provider, ProviderHandle
from .record import (
    AdvertiseParameters,
    Announcement,
    BrowseConstraints,
    Proto,
    ServiceRecord,
    ServiceState,
    make_regtype,
    parse_protocol,
)
from .registry import BrowseRequest, RequestRegistry, ResolveRequest
from .txt import TxtCapacityError, TxtCodec, TxtData, TxtDecodeError

logger = logging.getLogger(__name__)

# (request_id, announcement, record, user_data)
OnServiceAnnouncement = Callable[[int, Announcement, ServiceRecord, Any], None]
OnResolvedService = OnServiceAnnouncement
# (user_data)
OnServiceRegistered = Callable[[Any], None]
# (request_id, error_code, message, is_transient, user_data)
OnError = Callable[[int, int, str, bool, Any], None]


def _invoke(label: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Brief: Call a user callback, logging and swallowing anything it raises.

    Inputs:
      - label: Short callback description for the log line.
      - callback: User callback or None.
      - *args: Positional arguments for the callback.

    Outputs:
      - None.

    Notes:
      - Callbacks run inside the provider pump; an exception escaping here
        would unwind through provider code that does not expect it.
    """

    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("NdnSd: %s callback raised", label)


class NdnSd:
    """NDN service discovery handle for one local identity."""

    def __init__(
        self,
        uuid: str,
        provider: Optional[Provider] = None,
        txt_codec: Optional[TxtCodec] = None,
    ):
        self._owns_provider = provider is None
        if provider is None:
            from .provider.zeroconf import ZeroconfProvider

            provider = ZeroconfProvider()
        self._provider: Provider = provider
        self._codec = txt_codec or TxtCodec()
        self._record = ServiceRecord(uuid)

        # Owned exclusively by this instance and only touched from the thread
        # calling announce/browse/resolve/cancel/run.
        self._registry = RequestRegistry()
        self._mux = EventMultiplexer()

        self._register_handle: Optional[ProviderHandle] = None
        self._register_user_data: Any = None
        self._on_registered: Optional[OnServiceRegistered] = None
        self._on_register_error: Optional[OnError] = None
        self._announce_settled = False
        self._closed = False

    def __enter__(self) -> "NdnSd":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):  # pragma: nocover interpreter-driven cleanup
        try:
            self.close()
        except Exception:
            pass

    # -- accessors -----------------------------------------------------------

    @property
    def record(self) -> ServiceRecord:
        """The record describing this handle's own identity."""
        return self._record

    @property
    def uuid(self) -> str:
        return self._record.uuid

    @property
    def protocol(self) -> Proto:
        return self._record.protocol

    @property
    def interface_index(self) -> int:
        return self._record.interface_index

    @property
    def subtype(self) -> str:
        return self._record.subtype

    @property
    def domain(self) -> str:
        return self._record.domain

    @property
    def port(self) -> int:
        return self._record.port

    @property
    def prefix(self) -> str:
        return self._record.prefix

    @property
    def certificate(self) -> bytes:
        return self._record.certificate

    @property
    def hostname(self) -> str:
        return self._record.hostname

    @property
    def fullname(self) -> str:
        return self._record.fullname

    @property
    def state(self) -> ServiceState:
        return self._record.state

    @property
    def closed(self) -> bool:
        return self._closed

    # -- helpers -------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("NdnSd handle %r is closed" % self.uuid)

    def _release(self, handle: Optional[ProviderHandle]) -> None:
        if handle is None:
            return
        self._mux.remove(handle)
        try:
            handle.close()
        except OSError:
            logger.debug("NdnSd: releasing provider handle failed", exc_info=True)

    def _teardown_registration(self) -> None:
        handle = self._register_handle
        self._register_handle = None
        self._release(handle)
        self._record._state = ServiceState.CREATED

    # -- announce ------------------------------------------------------------

    def announce(
        self,
        parameters: AdvertiseParameters,
        on_registered: Optional[OnServiceRegistered],
        on_register_error: Optional[OnError] = None,
    ) -> None:
        """Brief: Advertise this handle's identity on the local network.

        Inputs:
          - parameters: AdvertiseParameters (protocol, interface, subtype,
            domain, port, prefix, certificate, user_data).
          - on_registered: Called as ``on_registered(user_data)`` once the
            provider confirms the registration.
          - on_register_error: Called as ``on_register_error(-1, code,
            message, is_transient, user_data)``.

        Outputs:
          - None. Exactly one of the two callbacks fires per accepted call.

        Notes:
          - Local validation failures (already registered, missing prefix or
            port, oversized TXT record) are reported immediately with code -1
            and ``is_transient=False``; the provider is not contacted.
        """

        self._check_open()
        user_data = parameters.user_data

        def _fail_locally(message: str) -> None:
            logger.warning("NdnSd %s: announce rejected: %s", self.uuid, message)
            _invoke(
                "register error",
                on_register_error,
                -1,
                errors.LOCAL_ERROR,
                message,
                False,
                user_data,
            )

        if self._record.state in (ServiceState.REGISTERING, ServiceState.REGISTERED):
            _fail_locally(errors.MSG_ALREADY_REGISTERED)
            return

        prefix = parameters.prefix or ""
        certificate = parameters.certificate or b""
        if isinstance(certificate, str):
            certificate = certificate.encode("utf-8")
        if not prefix or not parameters.port:
            _fail_locally(errors.MSG_PREFIX_PORT_REQUIRED)
            return

        prefix_bytes = prefix.encode("utf-8")
        if self._codec.is_over_capacity(len(prefix_bytes) + len(certificate)):
            _fail_locally(errors.MSG_TXT_CAPACITY)
            return
        try:
            txt = self._codec.encode(prefix_bytes, certificate)
        except TxtCapacityError:
            _fail_locally(errors.MSG_TXT_CAPACITY)
            return

        regtype = make_regtype(parameters.protocol, parameters.subtype)
        try:
            handle = self._provider.register(
                parameters.interface_index,
                self.uuid,
                regtype,
                parameters.domain or None,
                int(parameters.port),
                txt,
                self._on_register_reply,
            )
        except ProviderError as exc:
            logger.warning(
                "NdnSd %s: provider rejected registration of %s: %s",
                self.uuid,
                regtype,
                exc,
            )
            _invoke(
                "register error",
                on_register_error,
                -1,
                exc.error_code,
                error_message(exc.error_code),
                True,
                user_data,
            )
            return

        record = self._record
        record._protocol = Proto(parameters.protocol)
        record._interface_index = int(parameters.interface_index)
        record._subtype = parameters.subtype or ""
        record._regtype = regtype
        record._domain = parameters.domain or ""
        record._port = int(parameters.port)
        record._prefix = prefix
        record._certificate = bytes(certificate)
        record._state = ServiceState.REGISTERING

        self._register_handle = handle
        self._register_user_data = user_data
        self._on_registered = on_registered
        self._on_register_error = on_register_error
        self._announce_settled = False
        self._mux.add(handle)
        logger.debug("NdnSd %s: registering %s port=%d", self.uuid, regtype, parameters.port)

    def _on_register_reply(
        self, flags: int, error_code: int, name: str, regtype: str, domain: str
    ) -> None:
        if self._register_handle is None:
            return

        user_data = self._register_user_data
        if error_code == errors.ERR_NO_ERROR:
            if self._record.state == ServiceState.REGISTERED:
                logger.debug("NdnSd %s: registration re-confirmed", self.uuid)
                return
            if name and name != self.uuid:
                logger.warning(
                    "NdnSd %s: provider registered the service as %r", self.uuid, name
                )
            self._record._domain = domain or self._record._domain
            self._record._state = ServiceState.REGISTERED
            self._announce_settled = True
            logger.info(
                "NdnSd %s: registered %s in domain %s",
                self.uuid,
                regtype,
                self._record._domain,
            )
            _invoke("registered", self._on_registered, user_data)
            return

        settled = self._announce_settled
        on_error = self._on_register_error
        self._teardown_registration()
        if settled:
            logger.warning(
                "NdnSd %s: advertisement lost after registration: %s (%d)",
                self.uuid,
                error_message(error_code),
                error_code,
            )
            return
        logger.warning(
            "NdnSd %s: registration failed: %s (%d)",
            self.uuid,
            error_message(error_code),
            error_code,
        )
        _invoke(
            "register error",
            on_error,
            -1,
            error_code,
            error_message(error_code),
            True,
            user_data,
        )

    # -- browse --------------------------------------------------------------

    def browse(
        self,
        constraints: BrowseConstraints,
        on_announcement: OnServiceAnnouncement,
        on_browse_error: Optional[OnError] = None,
    ) -> int:
        """Brief: Start discovering NDN services matching ``constraints``.

        Inputs:
          - constraints: BrowseConstraints (protocol, interface, subtype,
            domain, user_data).
          - on_announcement: Called as ``on_announcement(request_id,
            Announcement.ADDED|REMOVED, record, user_data)``.
          - on_browse_error: Called as ``on_browse_error(request_id, code,
            message, is_transient, user_data)``.

        Outputs:
          - int: Request id for cancel(), or -1 when the provider rejected
            the request (the error callback has already fired).
        """

        self._check_open()
        regtype = make_regtype(constraints.protocol, constraints.subtype)
        request_id = self._registry.next_browse_id()
        callback = functools.partial(self._on_browse_reply, request_id)

        try:
            handle = self._provider.browse(
                constraints.interface_index,
                regtype,
                constraints.domain or None,
                callback,
            )
        except ProviderError as exc:
            logger.warning("NdnSd %s: browse for %s failed: %s", self.uuid, regtype, exc)
            _invoke(
                "browse error",
                on_browse_error,
                -1,
                exc.error_code,
                error_message(exc.error_code),
                True,
                constraints.user_data,
            )
            return -1

        request = BrowseRequest(
            id=request_id,
            handle=handle,
            constraints=constraints,
            on_announcement=on_announcement,
            on_error=on_browse_error,
        )
        self._registry.add_browse(request)
        self._mux.add(handle)
        logger.debug("NdnSd %s: browse #%d started for %s", self.uuid, request_id, regtype)
        return request_id

    def _on_browse_reply(
        self,
        request_id: int,
        flags: int,
        interface_index: int,
        error_code: int,
        name: str,
        regtype: str,
        domain: str,
    ) -> None:
        request = self._registry.browse(request_id)
        if request is None:
            logger.debug("NdnSd %s: event for finished browse #%d", self.uuid, request_id)
            return
        constraints = request.constraints

        if error_code != errors.ERR_NO_ERROR:
            _invoke(
                "browse error",
                request.on_error,
                request_id,
                error_code,
                error_message(error_code),
                True,
                constraints.user_data,
            )
            return

        if flags & FLAG_ADD:
            if name == self.uuid:
                return
            if name in request.discovered:
                logger.debug(
                    "NdnSd %s: browse #%d already tracks %r", self.uuid, request_id, name
                )
                return
            protocol = parse_protocol(regtype)
            if protocol is None:
                logger.warning(
                    "NdnSd %s: dropping %r with unparseable registration type %r",
                    self.uuid,
                    name,
                    regtype,
                )
                return

            record = ServiceRecord(
                name,
                protocol=protocol,
                interface_index=interface_index,
                subtype=constraints.subtype,
                domain=domain,
            )
            record._regtype = regtype
            record._state = ServiceState.DISCOVERED
            request.discovered[name] = record
            logger.debug(
                "NdnSd %s: browse #%d ADD %s %s %s", self.uuid, request_id, name, regtype, domain
            )
            _invoke(
                "announcement",
                request.on_announcement,
                request_id,
                Announcement.ADDED,
                record,
                constraints.user_data,
            )
            return

        record = request.discovered.pop(name, None)
        if record is None:
            return
        logger.debug("NdnSd %s: browse #%d REMOVE %s", self.uuid, request_id, name)
        _invoke(
            "announcement",
            request.on_announcement,
            request_id,
            Announcement.REMOVED,
            record,
            constraints.user_data,
        )

    def cancel(self, request_id: int) -> None:
        """Brief: Stop a browse request. Unknown ids are ignored.

        Inputs:
          - request_id: Id returned by browse().

        Outputs:
          - None. The request's descriptor is released before the next wait,
            so no further callbacks fire for it.
        """

        request = self._registry.pop_browse(request_id)
        if request is None:
            return
        self._release(request.handle)
        logger.debug("NdnSd %s: browse #%d canceled", self.uuid, request_id)

    # -- resolve -------------------------------------------------------------

    def resolve(
        self,
        record: ServiceRecord,
        on_resolved: OnResolvedService,
        on_resolve_error: Optional[OnError] = None,
        user_data: Any = None,
    ) -> None:
        """Brief: Resolve a discovered record's host, port, prefix and certificate.

        Inputs:
          - record: A record delivered by one of this handle's live browse
            requests.
          - on_resolved: Called once as ``on_resolved(browse_id,
            Announcement.RESOLVED, record, user_data)``.
          - on_resolve_error: Called as ``on_resolve_error(browse_id, code,
            message, is_transient, user_data)``.
          - user_data: Opaque value passed back to the callbacks.

        Outputs:
          - None.
        """

        self._check_open()
        browse_request = self._registry.find_discovered(record)
        if browse_request is None:
            logger.warning("NdnSd %s: resolve of unknown record %r", self.uuid, record)
            _invoke(
                "resolve error",
                on_resolve_error,
                -1,
                errors.LOCAL_ERROR,
                errors.MSG_UNKNOWN_INSTANCE,
                False,
                user_data,
            )
            return

        resolve_id = self._registry.next_resolve_id()
        callback = functools.partial(self._on_resolve_reply, resolve_id)
        try:
            handle = self._provider.resolve(
                record.interface_index,
                record.uuid,
                record.regtype,
                record._domain,
                callback,
            )
        except ProviderError as exc:
            logger.warning("NdnSd %s: resolve of %s failed: %s", self.uuid, record.uuid, exc)
            _invoke(
                "resolve error",
                on_resolve_error,
                browse_request.id,
                exc.error_code,
                error_message(exc.error_code),
                True,
                user_data,
            )
            return

        self._registry.add_resolve(
            ResolveRequest(
                id=resolve_id,
                handle=handle,
                target=record,
                browse_id=browse_request.id,
                on_resolved=on_resolved,
                on_error=on_resolve_error,
                user_data=user_data,
            )
        )
        self._mux.add(handle)

    def _on_resolve_reply(
        self,
        resolve_id: int,
        flags: int,
        interface_index: int,
        error_code: int,
        fullname: str,
        hosttarget: str,
        port: int,
        txt: bytes,
    ) -> None:
        # One-shot: the request is gone before any user code runs.
        request = self._registry.pop_resolve(resolve_id)
        if request is None:
            return
        self._release(request.handle)

        if error_code != errors.ERR_NO_ERROR:
            _invoke(
                "resolve error",
                request.on_error,
                request.browse_id,
                error_code,
                error_message(error_code),
                True,
                request.user_data,
            )
            return

        try:
            data = self._codec.decode(txt)
        except TxtDecodeError as exc:
            logger.warning("NdnSd %s: malformed TXT for %s: %s", self.uuid, fullname, exc)
            data = TxtData()

        if not data.prefix:
            _invoke(
                "resolve error",
                request.on_error,
                request.browse_id,
                errors.LOCAL_ERROR,
                errors.MSG_PREFIX_NOT_FOUND,
                False,
                request.user_data,
            )
            return

        target = request.target
        target._fullname = fullname or ""
        target._hostname = hosttarget or ""
        target._port = int(port)
        target._prefix = data.prefix
        target._certificate = data.certificate or b""
        target._state = ServiceState.RESOLVED
        logger.debug(
            "NdnSd %s: RESOLVE %s %s:%d prefix=%s",
            self.uuid,
            target.fullname,
            target.hostname,
            target.port,
            target.prefix,
        )
        _invoke(
            "resolved",
            request.on_resolved,
            request.browse_id,
            Announcement.RESOLVED,
            target,
            request.user_data,
        )

    # -- event loop ----------------------------------------------------------

    def run(self, timeout_ms: int = 0) -> int:
        """Brief: Wait for provider events and dispatch callbacks.

        Inputs:
          - timeout_ms: 0 to service events forever; otherwise the maximum
            time, in milliseconds, of a single wait cycle.

        Outputs:
          - int: 0 on success or timeout; the OS errno when the wait fails;
            the provider error code when pumping a handle fails.
        """

        self._check_open()
        while not self._closed:
            try:
                ready = self._mux.wait(timeout_ms)
            except OSError as exc:
                logger.error("NdnSd %s: wait failed: %s", self.uuid, exc)
                return exc.errno or errors.ERR_UNKNOWN

            for fd, handle in ready:
                # Callbacks earlier in this pass may have released the handle.
                if not self._mux.is_watching(fd, handle):
                    continue
                try:
                    handle.process_result()
                except ProviderError as exc:
                    logger.error(
                        "NdnSd %s: process result error on fd=%d: %s", self.uuid, fd, exc
                    )
                    return exc.error_code
                if self._closed:
                    break

            if timeout_ms:
                return 0
        # A callback closed this handle.
        return 0

    # -- teardown ------------------------------------------------------------

    def close(self) -> None:
        """Brief: Cancel every request and withdraw an active advertisement.

        Inputs:
          - None.

        Outputs:
          - None. No callbacks fire during or after close(); failures are
            logged and never raised.
        """

        if self._closed:
            return
        self._closed = True

        for request in self._registry.resolves():
            self._registry.pop_resolve(request.id)
            self._release_quietly(request.handle)
        for request in self._registry.browses():
            self._registry.pop_browse(request.id)
            self._release_quietly(request.handle)

        if self._record.state >= ServiceState.REGISTERING:
            handle = self._register_handle
            self._register_handle = None
            self._record._state = ServiceState.CREATED
            self._release_quietly(handle)
            logger.info("NdnSd %s: advertisement withdrawn", self.uuid)

        try:
            self._mux.close()
        except Exception:
            logger.debug("NdnSd: closing multiplexer failed", exc_info=True)
        if self._owns_provider:
            try:
                self._provider.close()
            except Exception:
                logger.debug("NdnSd: closing provider failed", exc_info=True)

    def _release_quietly(self, handle: Optional[ProviderHandle]) -> None:
        try:
            self._release(handle)
        except Exception:
            logger.debug("NdnSd: teardown of provider handle failed", exc_info=True)
