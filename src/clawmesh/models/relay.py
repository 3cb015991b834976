"""Relay URL normalization.

Relay URLs come from config files, ``relays.json``, the command line and
remote mapping records, so the same relay often arrives spelled several
ways. [normalize_relay_url()][clawmesh.models.relay.normalize_relay_url]
reduces them to one canonical form so pools and caches can deduplicate.
"""

from __future__ import annotations

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


_DEFAULT_PORTS = {"ws": 80, "wss": 443}


def normalize_relay_url(raw: str) -> str:
    """Validate a ``ws://`` or ``wss://`` URL and return its canonical form.

    Scheme and host are lowercased, default ports dropped, duplicate
    slashes collapsed and a trailing slash removed. Unlike public relay
    lists, local hosts are accepted so a private relay can be used.

    Raises:
        ValueError: If the URL is malformed, has another scheme, or carries
            a query string or fragment.

    Examples:
        ```python
        normalize_relay_url("WSS://Relay.Damus.io:443/")  # 'wss://relay.damus.io'
        normalize_relay_url("ws://localhost:7777")        # 'ws://localhost:7777'
        ```
    """
    if "\x00" in raw:
        raise ValueError("Relay URL contains null bytes")

    uri = uri_reference(raw.strip()).normalize()
    validator = (
        Validator()
        .require_presence_of("scheme", "host")
        .allow_schemes("ws", "wss")
        .check_validity_of("scheme", "host", "port", "path")
    )
    try:
        validator.validate(uri)
    except UnpermittedComponentError:
        raise ValueError(f"Relay URL must use ws:// or wss://: {raw}") from None
    except ValidationError as e:
        raise ValueError(f"Invalid relay URL {raw!r}: {e}") from None

    if uri.query:
        raise ValueError(f"Relay URL must not contain a query string: {raw}")
    if uri.fragment:
        raise ValueError(f"Relay URL must not contain a fragment: {raw}")

    path = uri.path or ""
    while "//" in path:
        path = path.replace("//", "/")
    path = path.rstrip("/")

    port = int(uri.port) if uri.port else None
    if port is not None and port != _DEFAULT_PORTS[uri.scheme]:
        return f"{uri.scheme}://{uri.host}:{port}{path}"
    return f"{uri.scheme}://{uri.host}{path}"
