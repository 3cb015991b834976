"""Shared result types and helpers for the protocol services."""

from .types import (
    ChannelMessagesResult,
    ChannelResult,
    DirectoryResult,
    LookupResult,
    ReceiveResult,
    RegisterResult,
    SendResult,
)
from .utils import all_timed_out, pool_error, sign


__all__ = [
    "ChannelMessagesResult",
    "ChannelResult",
    "DirectoryResult",
    "LookupResult",
    "ReceiveResult",
    "RegisterResult",
    "SendResult",
    "all_timed_out",
    "pool_error",
    "sign",
]
