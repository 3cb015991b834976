"""Listener service package.

Re-exports all public symbols::

    from clawmesh.services.listener import Listener, ListenerConfig
"""

from .configs import ListenerConfig
from .service import Listener


__all__ = [
    "Listener",
    "ListenerConfig",
]
