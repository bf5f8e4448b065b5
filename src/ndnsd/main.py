from __future__ import annotations

import argparse
import logging
import signal
import socket
import threading
import time
from typing import Any, Dict, List, Optional

from .config.config_parser import parse_config_file, read_certificate
from .config.logging_config import init_logging
from .errors import ProviderError
from .provider.base import Provider
from .record import AdvertiseParameters, Announcement, BrowseConstraints, ServiceRecord
from .service import NdnSd

logger = logging.getLogger("ndnsd.main")


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="Path to YAML config")
    common.add_argument("--uuid", default=None, help="Instance id (default: host name)")
    common.add_argument("--protocol", choices=["udp", "tcp"], default=None)
    common.add_argument("--subtype", default=None, help="Service subtype, e.g. mfd")
    common.add_argument("--log-level", default=None, help="debug, info, warn, error, crit")
    common.add_argument(
        "--timeout-ms",
        type=int,
        default=500,
        help="Longest single wait for provider events, in milliseconds",
    )
    common.add_argument(
        "--exit-after-ms",
        type=int,
        default=0,
        help="Stop after this many milliseconds (0 runs until interrupted)",
    )

    parser = argparse.ArgumentParser(
        prog="ndnsd", description="NDN service discovery over DNS-SD"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    announce = sub.add_parser("announce", parents=[common], help="Advertise this host")
    announce.add_argument("--port", type=int, default=None)
    announce.add_argument("--prefix", default=None, help="NDN prefix to advertise")
    announce.add_argument(
        "--cert-file", default=None, help="Certificate advertised in the TXT record"
    )

    browse = sub.add_parser("browse", parents=[common], help="Discover NDN services")
    browse.add_argument(
        "--resolve", action="store_true", help="Resolve every discovered service"
    )
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    service = {
        "uuid": args.uuid,
        "protocol": args.protocol,
        "subtype": args.subtype,
        "port": getattr(args, "port", None),
        "prefix": getattr(args, "prefix", None),
        "certificate_file": getattr(args, "cert_file", None),
    }
    return {"service": {k: v for k, v in service.items() if v is not None}}


def _describe(announcement: Announcement, record: ServiceRecord) -> str:
    line = f"{announcement.name} {record.uuid} {record.regtype} {record.domain}".rstrip()
    if announcement is Announcement.RESOLVED:
        line += f" {record.hostname}:{record.port} {record.prefix}"
    return line


def _pump(sd: NdnSd, stop: threading.Event, timeout_ms: int, exit_after_ms: int) -> int:
    """Brief: Call NdnSd.run() in bounded cycles until stop is set.

    Inputs:
      - sd: Handle to drive.
      - stop: Event set by signal handlers or callbacks.
      - timeout_ms: Wait bound of one cycle.
      - exit_after_ms: Overall deadline; 0 means none.

    Outputs:
      - int: First non-zero run() result, else 0.
    """

    deadline = time.monotonic() + exit_after_ms / 1000.0 if exit_after_ms > 0 else None
    cycle_ms = max(1, int(timeout_ms))
    while not stop.is_set():
        if deadline is not None and time.monotonic() >= deadline:
            break
        code = sd.run(cycle_ms)
        if code:
            return code
    return 0


def main(argv: Optional[List[str]] = None, provider: Optional[Provider] = None) -> int:
    """
    Entry point for the ``ndnsd`` command.

    Args:
        argv: Command-line arguments.
        provider: Optional provider instance; the zeroconf provider is created
            from the configuration when omitted.

    Returns:
        An exit code: 0 on a clean stop, 1 on configuration or announce
        failures, otherwise the non-zero result of NdnSd.run().

    Example use:
        ndnsd announce --prefix /example/host --port 6363 --protocol udp
        ndnsd browse --protocol udp --resolve
    """
    args = _build_parser().parse_args(argv)

    try:
        cfg = parse_config_file(args.config, overrides=_overrides(args))
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(cfg.logging, level=args.log_level)
    if args.config:
        logger.info("Loaded config from %s", args.config)

    service = cfg.service
    uuid = service.uuid or socket.gethostname().split(".", 1)[0]

    certificate = b""
    if args.command == "announce":
        try:
            certificate = read_certificate(service.certificate_file)
        except OSError as exc:
            logger.error("Cannot read certificate %s: %s", service.certificate_file, exc)
            return 1

    owns_provider = provider is None
    if provider is None:
        from .provider.zeroconf import ZeroconfProvider

        try:
            provider = ZeroconfProvider(cfg.provider)
        except RuntimeError as e:
            logger.error("Provider setup failed: %s", e)
            return 1

    stop = threading.Event()
    failure: List[int] = []

    def _request_stop(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info("Received %s, stopping", signal.Signals(signum).name)
        stop.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _request_stop)
        except ValueError:
            # Not on the main thread; rely on --exit-after-ms or callbacks.
            logger.debug("Could not install %s handler", sig.name)

    def _on_error(request_id, error_code, message, is_transient, _user_data):  # type: ignore[no-untyped-def]
        print(f"ERROR {request_id} {error_code} {message}", flush=True)
        if request_id == -1 and args.command == "announce":
            failure.append(1)
            stop.set()

    def _on_registered(_user_data):  # type: ignore[no-untyped-def]
        print(f"REGISTERED {uuid} {sd.record.regtype} {sd.domain}".rstrip(), flush=True)

    def _on_resolved(request_id, announcement, record, _user_data):  # type: ignore[no-untyped-def]
        print(_describe(announcement, record), flush=True)

    def _on_announcement(request_id, announcement, record, _user_data):  # type: ignore[no-untyped-def]
        print(_describe(announcement, record), flush=True)
        if args.resolve and announcement is Announcement.ADDED:
            sd.resolve(record, _on_resolved, _on_error)

    sd = NdnSd(uuid, provider=provider)
    try:
        if args.command == "announce":
            sd.announce(
                AdvertiseParameters(
                    protocol=service.proto,
                    interface_index=service.interface_index,
                    subtype=service.subtype,
                    domain=service.domain,
                    port=service.port,
                    prefix=service.prefix,
                    certificate=certificate,
                ),
                _on_registered,
                _on_error,
            )
        else:
            request_id = sd.browse(
                BrowseConstraints(
                    protocol=service.proto,
                    interface_index=service.interface_index,
                    subtype=service.subtype,
                    domain=service.domain,
                ),
                _on_announcement,
                _on_error,
            )
            if request_id < 0:
                return 1
        if failure:
            return failure[0]

        code = _pump(sd, stop, args.timeout_ms, args.exit_after_ms)
        if code:
            logger.error("Event loop stopped with error %d", code)
            return code
        return failure[0] if failure else 0
    finally:
        sd.close()
        if owns_provider:
            try:
                provider.close()
            except (OSError, ProviderError) as exc:
                logger.warning("Closing provider failed: %s", exc)
        for sig, handler in previous.items():
            signal.signal(sig, handler)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
