"""Unit tests for core.exceptions module."""

from __future__ import annotations

import asyncio

import pytest

from clawmesh.core.exceptions import (
    ClawmeshError,
    ConfigurationError,
    ConnectivityError,
    DecryptionError,
    IdentityError,
    MalformedRemoteDataError,
    NoConnectionError,
    PoolClosedError,
    ProtocolError,
    RelayTimeoutError,
)


class TestHierarchy:
    """Exception subclass relationships."""

    @pytest.mark.parametrize(
        ("exc", "parent"),
        [
            (ConfigurationError, ClawmeshError),
            (IdentityError, ClawmeshError),
            (ConnectivityError, ClawmeshError),
            (NoConnectionError, ConnectivityError),
            (RelayTimeoutError, ConnectivityError),
            (PoolClosedError, ConnectivityError),
            (ProtocolError, ClawmeshError),
            (MalformedRemoteDataError, ProtocolError),
            (DecryptionError, ProtocolError),
        ],
    )
    def test_subclass(self, exc: type[Exception], parent: type[Exception]) -> None:
        assert issubclass(exc, parent)

    def test_cancelled_error_is_not_caught(self) -> None:
        """CancelledError is outside the hierarchy."""
        assert not issubclass(asyncio.CancelledError, ClawmeshError)

    def test_message_preserved(self) -> None:
        with pytest.raises(ClawmeshError, match="no relay"):
            raise NoConnectionError("no relay")
