"""ndnsd package"""

import importlib.metadata as importlib_metadata

from .errors import ProviderError, error_message
from .record import (
    SUBTYPE_MFD,
    SUBTYPE_NFD,
    AdvertiseParameters,
    Announcement,
    BrowseConstraints,
    Proto,
    ServiceRecord,
    ServiceState,
)
from .service import NdnSd

try:
    __version__ = importlib_metadata.version("ndnsd")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = "unknown"


def get_version() -> str:
    """Return the installed ndnsd version string."""
    return __version__


__all__ = [
    "AdvertiseParameters",
    "Announcement",
    "BrowseConstraints",
    "NdnSd",
    "Proto",
    "ProviderError",
    "SUBTYPE_MFD",
    "SUBTYPE_NFD",
    "ServiceRecord",
    "ServiceState",
    "error_message",
    "get_version",
]
