"""Multicast name-resolution providers."""

from .base import (
    FLAG_ADD,
    FLAG_MORE_COMING,
    INTERFACE_INDEX_ANY,
    INTERFACE_INDEX_LOCAL_ONLY,
    Provider,
    ProviderHandle,
)

__all__ = [
    "FLAG_ADD",
    "FLAG_MORE_COMING",
    "INTERFACE_INDEX_ANY",
    "INTERFACE_INDEX_LOCAL_ONLY",
    "Provider",
    "ProviderHandle",
]
