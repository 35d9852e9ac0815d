"""
XA connection providers.

Provides the facade interface, the pooling provider that multiplexes branches
over facades, and an in-memory resource manager.
"""

from xapool.xa.exceptions import (
    BranchTimeoutError,
    NoActiveBranchError,
    ProviderCloseError,
    StateViolationError,
    TransientXaError,
    UnknownBranchError,
    XaError,
)
from xapool.xa.memory import (
    InMemoryConnection,
    InMemoryProviderFactory,
    InMemoryResourceManager,
    InMemoryXaConnectionProvider,
)
from xapool.xa.pooling import PoolingXaConnectionProvider
from xapool.xa.provider import (
    BranchState,
    ConnectionState,
    FacadeFactory,
    XaConnectionProvider,
)
from xapool.xa.xid import Xid

__all__ = [
    # Identifiers
    "Xid",
    # Interface
    "XaConnectionProvider",
    "FacadeFactory",
    "BranchState",
    "ConnectionState",
    # Pooling
    "PoolingXaConnectionProvider",
    # In-memory resource manager
    "InMemoryResourceManager",
    "InMemoryXaConnectionProvider",
    "InMemoryProviderFactory",
    "InMemoryConnection",
    # Errors
    "XaError",
    "StateViolationError",
    "NoActiveBranchError",
    "TransientXaError",
    "UnknownBranchError",
    "ProviderCloseError",
    "BranchTimeoutError",
]
