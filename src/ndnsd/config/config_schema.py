"""Typed configuration models for ndnsd.

Brief:
  pydantic models validating the YAML configuration consumed by the ``ndnsd``
  CLI and the zeroconf provider:
    - ZeroconfProviderConfig: how the provider binds multicast sockets.
    - ServiceConfig: the identity and service to announce or browse for.
    - NdnSdConfig: root document (logging, provider, service).

Inputs:
  - Parsed YAML mappings.

Outputs:
  - Validated model instances.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, validator

from ..record import Proto


class ZeroconfProviderConfig(BaseModel):
    """Brief: Typed configuration for the zeroconf provider.

    Inputs:
      - interfaces: Which interfaces zeroconf binds to.
        Accepts: "default" | "all" | list[str] of interface IPs.
      - ip_version: Which IP versions zeroconf uses.
        Accepts: "v4" | "v6" | "all" or None for the library default.
      - unicast: bool passed to Zeroconf(unicast=...).
      - resolve_timeout_ms: Time allowed for one resolve before it is
        reported as a timeout.
      - addresses: Optional list of IPs announced for the local host. When
        empty, the host's non-loopback addresses are used.

    Outputs:
      - ZeroconfProviderConfig instance.
    """

    interfaces: Union[str, List[str]] = Field(default="default")
    ip_version: Optional[str] = Field(default=None)
    unicast: bool = False
    resolve_timeout_ms: int = Field(default=3000, ge=0)
    addresses: List[str] = Field(default_factory=list)

    @validator("interfaces", pre=True)
    def _normalize_interfaces(cls, v):  # type: ignore[no-untyped-def]
        """Brief: Normalize interfaces into "default", "all" or a list of IPs.

        Inputs:
          - v: "default" | "all" | IP string | list of IP strings.

        Outputs:
          - str | list[str]: Normalized value.
        """

        if v is None:
            return "default"
        if isinstance(v, str):
            s = v.strip().lower()
            if s in {"default", "all"}:
                return s
            return [s]
        if isinstance(v, (list, tuple)):
            return [str(item).strip() for item in v if item is not None and str(item).strip()]
        return v

    @validator("ip_version", pre=True)
    def _normalize_ip_version(cls, v):  # type: ignore[no-untyped-def]
        """Brief: Normalize ip_version aliases.

        Inputs:
          - v: "v4" | "v6" | "all" (case-insensitive, common aliases), or None.

        Outputs:
          - Optional[str]: "v4", "v6", "all" or None.

        Raises:
          - ValueError: For unrecognized values.
        """

        if v is None:
            return None
        s = str(v).strip().lower()
        if not s:
            return None
        if s in {"v4", "v4only", "ipv4", "4"}:
            return "v4"
        if s in {"v6", "v6only", "ipv6", "6"}:
            return "v6"
        if s in {"all", "both"}:
            return "all"
        raise ValueError("ip_version must be one of v4, v6, all")


class ServiceConfig(BaseModel):
    """Brief: Identity and service parameters.

    Inputs:
      - uuid: Instance id announced by this process (default: hostname-based).
      - protocol: "udp" or "tcp".
      - subtype: Optional subtype (``mfd``/``nfd``).
      - domain: Optional DNS-SD domain.
      - interface_index: Provider interface index (0 = any).
      - port: Port announced for the service.
      - prefix: NDN prefix announced for the service.
      - certificate_file: Optional path to the certificate advertised in TXT.

    Outputs:
      - ServiceConfig instance.
    """

    uuid: str = ""
    protocol: str = Field(default="udp")
    subtype: str = ""
    domain: str = ""
    interface_index: int = 0
    port: int = Field(default=0, ge=0, le=65535)
    prefix: str = ""
    certificate_file: Optional[str] = None

    @validator("protocol", pre=True)
    def _normalize_protocol(cls, v):  # type: ignore[no-untyped-def]
        s = str(v or "udp").strip().lower()
        if s not in {"udp", "tcp"}:
            raise ValueError("protocol must be udp or tcp")
        return s

    @property
    def proto(self) -> Proto:
        return Proto.TCP if self.protocol == "tcp" else Proto.UDP


class NdnSdConfig(BaseModel):
    """Root configuration document."""

    logging: Dict[str, Any] = Field(default_factory=dict)
    provider: ZeroconfProviderConfig = Field(default_factory=ZeroconfProviderConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
