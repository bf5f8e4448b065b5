"""TXT record codec for advertised NDN services.

Brief:
  NDN services carry two pieces of metadata in their DNS-SD TXT record:
    - ``p``: the NDN name prefix served by the advertiser (mandatory).
    - ``c``: the advertiser's certificate (optional).

  The record is an RFC 6763 sequence of length-prefixed ``key=value``
  character-strings packed as TXT rdata with dnspython. Values that do not fit
  into a single character-string are split across consecutive strings
  carrying the same key; decoding concatenates repeated keys in order.

Inputs:
  - Prefix/certificate values or raw TXT bytes received from the provider.

Outputs:
  - Raw TXT bytes or a decoded TxtData.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import dns.exception
import dns.rdata
import dns.rdataclass
import dns.rdatatype
from dns.rdtypes.ANY.TXT import TXT

PREFIX_KEY = b"p"
CERTIFICATE_KEY = b"c"

# Fixed buffer exchanged with the provider.
TXT_CAPACITY = 1000

# Covers both key labels and their separators.
_KEY_ALLOWANCE = 4

_MAX_STRING = 255


class TxtCapacityError(ValueError):
    """Raised when encoded TXT data does not fit into the codec buffer."""


class TxtDecodeError(ValueError):
    """Raised when TXT bytes received from the provider are malformed."""


@dataclass(frozen=True)
class TxtData:
    """Brief: Decoded NDN TXT metadata.

    Inputs:
      - prefix: Service prefix, or None when the ``p`` key is absent.
      - certificate: Certificate bytes, or None when the ``c`` key is absent.

    Outputs:
      - TxtData instance.
    """

    prefix: Optional[str] = None
    certificate: Optional[bytes] = None


def _as_bytes(value: Union[str, bytes, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class TxtCodec:
    """Encode/decode the ``p``/``c`` TXT mapping within a fixed capacity."""

    def __init__(self, capacity: int = TXT_CAPACITY):
        self.capacity = int(capacity)

    def is_over_capacity(self, size: int) -> bool:
        """Brief: Check whether a payload of ``size`` bytes exceeds the buffer.

        Inputs:
          - size: Combined byte length of the prefix and certificate values.

        Outputs:
          - bool: True when ``size + 4 > capacity``.
        """

        return size + _KEY_ALLOWANCE > self.capacity

    def _strings(self, key: bytes, value: bytes) -> List[bytes]:
        chunk = _MAX_STRING - len(key) - 1
        if not value:
            return [key + b"="]
        return [
            key + b"=" + value[offset : offset + chunk]
            for offset in range(0, len(value), chunk)
        ]

    def encode(
        self,
        prefix: Union[str, bytes],
        certificate: Union[str, bytes, None] = None,
    ) -> bytes:
        """Brief: Pack prefix and optional certificate into TXT wire bytes.

        Inputs:
          - prefix: Service prefix (str or UTF-8 bytes).
          - certificate: Optional certificate bytes; omitted when empty.

        Outputs:
          - bytes: TXT record data.

        Raises:
          - TxtCapacityError: When the packed record exceeds the capacity.
        """

        prefix_b = _as_bytes(prefix)
        cert_b = _as_bytes(certificate)

        strings = self._strings(PREFIX_KEY, prefix_b)
        if cert_b:
            strings.extend(self._strings(CERTIFICATE_KEY, cert_b))

        try:
            data = TXT(dns.rdataclass.IN, dns.rdatatype.TXT, strings).to_wire()
        except ValueError as exc:
            raise TxtCapacityError(str(exc)) from exc

        if len(data) > self.capacity:
            raise TxtCapacityError(
                "TXT record of %d bytes exceeds capacity of %d bytes"
                % (len(data), self.capacity)
            )
        return data

    def decode(self, data: Optional[bytes]) -> TxtData:
        """Brief: Decode TXT wire bytes into prefix/certificate values.

        Inputs:
          - data: Raw TXT record bytes (may be empty or None).

        Outputs:
          - TxtData: Missing keys are reported as None. Unknown keys and
            entries without ``=`` are ignored.

        Raises:
          - TxtDecodeError: When the bytes are not a valid TXT record.
        """

        raw = bytes(data or b"")
        if not raw:
            return TxtData()

        try:
            rdata = dns.rdata.from_wire(
                dns.rdataclass.IN, dns.rdatatype.TXT, raw, 0, len(raw)
            )
        except (dns.exception.DNSException, ValueError) as exc:
            raise TxtDecodeError(str(exc)) from exc
        strings = rdata.strings

        values: Dict[bytes, bytes] = {}
        for item in strings:
            key, sep, value = bytes(item).partition(b"=")
            if not sep:
                continue
            # DNS-SD keys are case-insensitive.
            key = key.lower()
            values[key] = values.get(key, b"") + value

        prefix = values.get(PREFIX_KEY)
        certificate = values.get(CERTIFICATE_KEY)
        return TxtData(
            prefix=prefix.decode("utf-8", errors="replace")
            if prefix is not None
            else None,
            certificate=certificate,
        )
