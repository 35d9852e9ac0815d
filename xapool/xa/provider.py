"""
Connection provider interface for XA-capable data stores.

A provider wraps one physical connection (a "facade") that can take part in
at most one transaction branch at a time.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Collection, Optional

from xapool.xa.xid import Xid


class ConnectionState(Enum):
    """Physical connection state of a facade."""
    
    CLOSED = "CLOSED"
    OPEN = "OPEN"


class BranchState(Enum):
    """
    Branch state of a facade.
    
    State transitions:
    IDLE → ACTIVE (start) → PREPARED (end_and_prepare)
    ACTIVE/PREPARED → IDLE (commit, rollback, fail_and_rollback)
    """
    
    IDLE = "IDLE"  # Safe to reuse for any branch
    ACTIVE = "ACTIVE"  # Between start and end_and_prepare
    PREPARED = "PREPARED"  # Awaiting commit or rollback


class XaConnectionProvider(ABC):
    """
    Provider of one XA connection and its transaction branch lifecycle.
    
    Finalize operations (commit, rollback, fail_and_rollback) raise
    TransientXaError for failures the coordinator may retry.
    """
    
    @abstractmethod
    def open(self) -> None:
        """Open the underlying XA connection."""
    
    @abstractmethod
    def is_open(self) -> bool:
        """Check whether the underlying XA connection is open."""
    
    @abstractmethod
    def close(self) -> None:
        """Close the underlying XA connection."""
    
    @abstractmethod
    def start(self, xid: Xid) -> None:
        """Start a new branch and associate the connection with it."""
    
    @abstractmethod
    def end_and_prepare(self, xid: Xid) -> None:
        """End the branch started with ``xid`` and prepare it."""
    
    @abstractmethod
    def commit(self, xid: Xid, ignore_unknown: bool = False) -> None:
        """
        Commit a prepared branch.
        
        Args:
            xid: Branch to commit
            ignore_unknown: Treat a branch unknown to the resource manager
                as already committed
        """
    
    @abstractmethod
    def rollback(self, xid: Xid) -> None:
        """Roll back a prepared branch."""
    
    @abstractmethod
    def fail_and_rollback(self, xid: Xid) -> None:
        """End a branch with failure and roll it back."""
    
    @abstractmethod
    def recover(self) -> Collection[Xid]:
        """Return branches the resource manager holds as prepared."""
    
    @abstractmethod
    def get_connection(self) -> Optional[Any]:
        """Return the current data connection, if established."""
    
    @abstractmethod
    def is_connection_valid(self) -> bool:
        """Check whether the data connection is usable."""
    
    @abstractmethod
    def get_or_establish_connection(self) -> Any:
        """Return the data connection, establishing it if needed."""
    
    @abstractmethod
    def close_connection(self) -> None:
        """Close the data connection."""
    
    @abstractmethod
    def reestablish_connection(self) -> Any:
        """Close and re-establish the data connection."""
    
    def __enter__(self):
        self.open()
        return self
    
    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


# Zero-argument producer of fresh, unopened facades. Must be picklable.
FacadeFactory = Callable[[], XaConnectionProvider]
