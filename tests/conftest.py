"""
Brief: Global pytest configuration and an in-memory DNS-SD provider double.

Inputs:
  - None

Outputs:
  - Fixtures: network, provider, make_sd, pump.
"""

import collections
import logging
import os
import signal
import socket
import sys

import pytest

# Ensure 'src' is on sys.path so 'ndnsd' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from ndnsd.errors import ERR_NAME_CONFLICT, ERR_NO_ERROR, ERR_NO_SUCH_NAME, ProviderError
from ndnsd.provider.base import FLAG_ADD, FLAG_MORE_COMING, Provider, ProviderHandle
from ndnsd.service import NdnSd


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


@pytest.fixture(autouse=True)
def restore_root_logging():
    """
    Brief: Undo init_logging() side effects between tests.

    Inputs:
      - None

    Outputs:
      - None: Drops handlers added during the test and restores the level
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


def _split_regtype(regtype):
    parts = [p.strip() for p in regtype.split(",")]
    return parts[0].rstrip("."), (parts[1] if len(parts) > 1 else "")


class LoopbackHandle(ProviderHandle):
    """
    Brief: Provider handle whose events are queued in memory.

    Inputs:
      - provider: Owning LoopbackProvider.
      - kind: "browse" | "resolve" | "register".
      - callback: Operation callback.

    Outputs:
      - Handle readable through a socketpair whenever events are queued.
    """

    def __init__(self, provider, kind, callback, **attrs):
        self.provider = provider
        self.kind = kind
        self.callback = callback
        self.attrs = attrs
        self.closed = False
        self.broken = False
        self.events = collections.deque()
        self._rsock, self._wsock = socket.socketpair()
        self._rsock.setblocking(False)

    def fileno(self):
        return self._rsock.fileno()

    def post(self, *event):
        if self.closed:
            return
        self.events.append(event)
        self._wsock.send(b"\0")

    def process_result(self):
        if self.broken:
            raise ProviderError(-65563, "connection to provider lost")
        try:
            self._rsock.recv(4096)
        except BlockingIOError:
            pass
        while self.events and not self.closed:
            event = self.events.popleft()
            flags = event[0] | (FLAG_MORE_COMING if self.events else 0)
            self.callback(flags, *event[1:])

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.events.clear()
        self._rsock.close()
        self._wsock.close()
        self.provider.network.detach(self)


class LoopbackNetwork:
    """
    Brief: Shared fake multicast segment connecting LoopbackProviders.

    Inputs:
      - None

    Outputs:
      - Object tracking adverts and live browse handles.
    """

    def __init__(self):
        # name -> dict(base, subtype, port, txt, host, handle)
        self.adverts = {}
        self.browsers = []
        self.handles = []
        self.resolve_replies = {}

    def _matches(self, browser, advert):
        # Same visibility as ZeroconfProvider: subtype adverts only reach
        # browsers asking for that subtype.
        return (browser.attrs["base"], browser.attrs["subtype"]) == (
            advert["base"],
            advert["subtype"],
        )

    def advertise(self, name, regtype, port=0, txt=b"", host="remote.local.", handle=None):
        base, subtype = _split_regtype(regtype)
        advert = dict(base=base, subtype=subtype, port=port, txt=txt, host=host, handle=handle)
        self.adverts[name] = advert
        for browser in list(self.browsers):
            if self._matches(browser, advert):
                browser.post(FLAG_ADD, browser.attrs["iface"], ERR_NO_ERROR, name, base + ".", "local.")

    def withdraw(self, name):
        advert = self.adverts.pop(name, None)
        if advert is None:
            return
        for browser in list(self.browsers):
            if self._matches(browser, advert):
                browser.post(0, browser.attrs["iface"], ERR_NO_ERROR, name, advert["base"] + ".", "local.")

    def detach(self, handle):
        if handle in self.browsers:
            self.browsers.remove(handle)
        if handle.kind == "register":
            name = handle.attrs["name"]
            advert = self.adverts.get(name)
            if advert is not None and advert["handle"] is handle:
                self.withdraw(name)

    def live_handles(self):
        return [h for h in self.handles if not h.closed]


class LoopbackProvider(Provider):
    """
    Brief: Provider double that talks to a LoopbackNetwork.

    Inputs:
      - network: Shared LoopbackNetwork.
      - host: Host name reported by resolves of this provider's adverts.

    Outputs:
      - Provider recording every start call in ``calls``.
    """

    def __init__(self, network, host="local-host.local."):
        self.network = network
        self.host = host
        self.calls = []
        # op name -> error code raised synchronously by the next start call
        self.reject = {}

    def _start(self, op, args):
        self.calls.append((op,) + tuple(args))
        code = self.reject.pop(op, None)
        if code is not None:
            raise ProviderError(code)

    def _handle(self, kind, callback, **attrs):
        handle = LoopbackHandle(self, kind, callback, **attrs)
        self.network.handles.append(handle)
        return handle

    def browse(self, interface_index, regtype, domain, callback):
        self._start("browse", (interface_index, regtype, domain))
        base, subtype = _split_regtype(regtype)
        handle = self._handle("browse", callback, base=base, subtype=subtype, iface=interface_index)
        self.network.browsers.append(handle)
        for name, advert in list(self.network.adverts.items()):
            if self.network._matches(handle, advert):
                handle.post(FLAG_ADD, interface_index, ERR_NO_ERROR, name, base + ".", "local.")
        return handle

    def resolve(self, interface_index, name, regtype, domain, callback):
        self._start("resolve", (interface_index, name, regtype, domain))
        handle = self._handle("resolve", callback, name=name)
        if name in self.network.resolve_replies:
            handle.post(0, interface_index, *self.network.resolve_replies[name])
            return handle
        advert = self.network.adverts.get(name)
        if advert is None:
            handle.post(0, interface_index, ERR_NO_SUCH_NAME, name, "", 0, b"")
        else:
            fullname = f"{name}.{advert['base']}.local."
            handle.post(
                0, interface_index, ERR_NO_ERROR, fullname, advert["host"], advert["port"], advert["txt"]
            )
        return handle

    def register(self, interface_index, name, regtype, domain, port, txt, callback):
        self._start("register", (interface_index, name, regtype, domain, port, txt))
        base, _subtype = _split_regtype(regtype)
        handle = self._handle("register", callback, name=name)
        if name in self.network.adverts:
            handle.post(0, ERR_NAME_CONFLICT, name, base + ".", "local.")
            return handle
        self.network.advertise(name, regtype, port=port, txt=txt, host=self.host, handle=handle)
        handle.post(FLAG_ADD, ERR_NO_ERROR, name, base + ".", "local.")
        return handle


@pytest.fixture
def network():
    """Shared fake multicast segment."""
    return LoopbackNetwork()


@pytest.fixture
def provider(network):
    """A LoopbackProvider attached to the shared network."""
    return LoopbackProvider(network)


@pytest.fixture
def make_sd(network):
    """
    Brief: Factory building NdnSd handles on the shared network.

    Inputs:
      - uuid: Instance id.
      - provider: Optional LoopbackProvider (a new one by default).

    Outputs:
      - NdnSd; every handle is closed at teardown.
    """
    created = []

    def _make(uuid, provider=None):
        sd = NdnSd(uuid, provider=provider or LoopbackProvider(network))
        created.append(sd)
        return sd

    yield _make
    for sd in created:
        sd.close()


@pytest.fixture
def pump():
    """
    Brief: Drive several handles until no events are pending.

    Inputs:
      - *sds: NdnSd handles.
      - rounds: Number of run() cycles per handle.

    Outputs:
      - None
    """

    def _pump(*sds, rounds=4):
        for _ in range(rounds):
            for sd in sds:
                if not sd.closed:
                    assert sd.run(5) == 0

    return _pump
