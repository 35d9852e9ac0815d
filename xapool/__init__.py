"""
xapool - pooled XA connection providers for two-phase commit.

Some databases implement XA such that one physical connection can only be
bound to a single transaction branch at a time. This package multiplexes many
branches over a reusable set of connections:
- Lazy creation of connection facades when the idle pool is empty
- FIFO reuse of facades once their branch is committed or rolled back
- Recovery of prepared branches through any idle facade
- An in-memory resource manager for tests and demos
"""

__version__ = "0.1.0"

from xapool.xa import (
    InMemoryProviderFactory,
    InMemoryResourceManager,
    InMemoryXaConnectionProvider,
    PoolingXaConnectionProvider,
    XaConnectionProvider,
    Xid,
)

__all__ = [
    "InMemoryProviderFactory",
    "InMemoryResourceManager",
    "InMemoryXaConnectionProvider",
    "PoolingXaConnectionProvider",
    "XaConnectionProvider",
    "Xid",
]
