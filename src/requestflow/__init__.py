"""requestflow: resolve free-text content requests against a library and user contributions.

The engine is transport-agnostic. Enter ``requestflow.server.lifespan`` to
get an AppState, wrap it in a ``requestflow.router.Router`` and hand every
inbound command to ``Router.dispatch`` together with a ChannelProtocol.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION = "requestflow"
UNKNOWN_VERSION = "0.0.0+unknown"


def resolve_version(distribution: str = DISTRIBUTION) -> str:
    """Installed version of *distribution*, or UNKNOWN_VERSION for a bare checkout."""
    try:
        return version(distribution)
    except PackageNotFoundError:
        return UNKNOWN_VERSION


__version__ = resolve_version()
