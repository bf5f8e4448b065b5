"""Error codes and messages for NDN service discovery.

Brief:
  Two classes of errors reach user callbacks:
    - local/validation errors, synthesized by the request manager with code
      ``LOCAL_ERROR`` and ``is_transient=False``; they never reach the provider.
    - provider errors, using the DNS-SD numeric codes below, translated through
      a fixed table and reported with ``is_transient=True``.

Inputs:
  - Numeric DNS-SD error codes.

Outputs:
  - Stable human-readable messages and the ProviderError exception.
"""

from __future__ import annotations

from typing import Dict

LOCAL_ERROR = -1

# DNS-SD error codes (dns_sd.h).
ERR_NO_ERROR = 0
ERR_UNKNOWN = -65537
ERR_NO_SUCH_NAME = -65538
ERR_NO_MEMORY = -65539
ERR_BAD_PARAM = -65540
ERR_BAD_REFERENCE = -65541
ERR_BAD_STATE = -65542
ERR_BAD_FLAGS = -65543
ERR_UNSUPPORTED = -65544
ERR_NOT_INITIALIZED = -65545
ERR_ALREADY_REGISTERED = -65547
ERR_NAME_CONFLICT = -65548
ERR_INVALID = -65549
ERR_FIREWALL = -65550
ERR_INCOMPATIBLE = -65551
ERR_BAD_INTERFACE_INDEX = -65552
ERR_REFUSED = -65553
ERR_NO_SUCH_RECORD = -65554
ERR_NO_AUTH = -65555
ERR_NO_SUCH_KEY = -65556
ERR_NAT_TRAVERSAL = -65557
ERR_DOUBLE_NAT = -65558
ERR_BAD_TIME = -65559
ERR_BAD_SIG = -65560
ERR_BAD_KEY = -65561
ERR_TRANSIENT = -65562
ERR_SERVICE_NOT_RUNNING = -65563
ERR_NAT_PORT_MAPPING_UNSUPPORTED = -65564
ERR_NAT_PORT_MAPPING_DISABLED = -65565
ERR_NO_ROUTER = -65566
ERR_POLLING_MODE = -65567
ERR_TIMEOUT = -65568

_ERROR_MESSAGES: Dict[int, str] = {
    ERR_NO_ERROR: "no error",
    ERR_UNKNOWN: "unknown error",
    ERR_NO_SUCH_NAME: "no such name",
    ERR_NO_MEMORY: "out of memory",
    ERR_BAD_PARAM: "bad parameter",
    ERR_BAD_REFERENCE: "bad reference",
    ERR_BAD_STATE: "internal error",
    ERR_BAD_FLAGS: "invalid values of flags",
    ERR_UNSUPPORTED: "operation not supported",
    ERR_NOT_INITIALIZED: "reference not initialized",
    ERR_ALREADY_REGISTERED: "attempt to register a service that is registered",
    ERR_NAME_CONFLICT: "attempt to register a service with an already used name",
    ERR_INVALID: "invalid parameter data",
    ERR_FIREWALL: "firewall",
    ERR_INCOMPATIBLE: "client library incompatible with daemon",
    ERR_BAD_INTERFACE_INDEX: "specified interface does not exist",
    ERR_REFUSED: "refused",
    ERR_NO_SUCH_RECORD: "no such record",
    ERR_NO_AUTH: "no auth",
    ERR_NO_SUCH_KEY: "no such key",
    ERR_NAT_TRAVERSAL: "NAT traversal",
    ERR_DOUBLE_NAT: "double NAT",
    ERR_BAD_TIME: "bad time",
    ERR_BAD_SIG: "bad signature",
    ERR_BAD_KEY: "bad key",
    ERR_TRANSIENT: "transient",
    ERR_SERVICE_NOT_RUNNING: "background daemon not running",
    ERR_NAT_PORT_MAPPING_UNSUPPORTED: "NAT doesn't support NAT-PMP or UPnP",
    ERR_NAT_PORT_MAPPING_DISABLED: (
        "NAT supports NAT-PMP or UPnP but it's disabled by the administrator"
    ),
    ERR_NO_ROUTER: (
        "no router currently configured (probably no network connectivity)"
    ),
    ERR_POLLING_MODE: "polling mode",
    ERR_TIMEOUT: "timeout",
}

# Messages for locally synthesized (non-transient) errors.
MSG_ALREADY_REGISTERED = "service is already registered"
MSG_PREFIX_PORT_REQUIRED = "service prefix and port must be specified"
MSG_TXT_CAPACITY = "maximum TXT record size exceeded"
MSG_UNKNOWN_INSTANCE = "service discovery instance is unknown"
MSG_PREFIX_NOT_FOUND = "prefix data was not found"


def error_message(error_code: int) -> str:
    """Brief: Translate a DNS-SD error code into a human-readable message.

    Inputs:
      - error_code: Numeric DNS-SD error code.

    Outputs:
      - str: Message from the fixed table, or "unknown error code".

    Example:
      >>> error_message(-65548)
      'attempt to register a service with an already used name'
    """

    return _ERROR_MESSAGES.get(int(error_code), "unknown error code")


class ProviderError(Exception):
    """Error returned by the multicast name-resolution provider.

    The error_code attribute holds the DNS-SD numeric code.
    """

    def __init__(self, error_code: int, message: str = ""):
        self.error_code = int(error_code)
        self.message = message or error_message(self.error_code)
        super().__init__(self.error_code, self.message)

    def __str__(self) -> str:
        return f"{self.message} ({self.error_code})"
