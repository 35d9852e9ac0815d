"""
In-memory XA resource manager and connection provider.

Models a data store whose connections can hold one branch at a time, so the
pooling provider can be exercised without a database driver.
"""

import itertools
import time
from typing import Any, Callable, Collection, Dict, List, Optional, Set

from xapool.utils.logging import get_logger
from xapool.xa.exceptions import (
    BranchTimeoutError,
    StateViolationError,
    TransientXaError,
    UnknownBranchError,
)
from xapool.xa.provider import BranchState, ConnectionState, XaConnectionProvider
from xapool.xa.xid import Xid

logger = get_logger(__name__)

_facade_ids = itertools.count(1)


class InMemoryResourceManager:
    """
    Resource manager tracking branch outcomes in memory.
    
    Named instances live in a process-wide registry so that a factory
    re-created after a simulated restart reaches the same manager.
    
    Attributes:
        name: Registry name
        available: When False every finalize call fails transiently
        clock: Source of monotonic time in seconds for branch timeouts
    """
    
    _registry: Dict[str, "InMemoryResourceManager"] = {}
    
    def __init__(self, name: str = "default", clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.clock = clock
        self.available = True
        self._fail_next = 0
        self._active: Set[Xid] = set()
        self._prepared: Set[Xid] = set()
        self._deadlines: Dict[Xid, float] = {}
        self.committed: List[Xid] = []
        self.rolled_back: List[Xid] = []
    
    @classmethod
    def get(cls, name: str = "default") -> "InMemoryResourceManager":
        """Get (or create) the registered manager called ``name``."""
        if name not in cls._registry:
            cls._registry[name] = cls(name)
        return cls._registry[name]
    
    @classmethod
    def reset_registry(cls) -> None:
        """Forget all registered managers (mainly for testing)."""
        cls._registry.clear()
    
    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` finalize calls raise TransientXaError."""
        self._fail_next += count
    
    def start(self, xid: Xid, timeout_sec: Optional[int] = None) -> None:
        """
        Register a new active branch.
        
        Args:
            xid: Branch to start
            timeout_sec: Seconds the branch may stay active before it is
                rolled back; None for no limit
        """
        if xid in self._active or xid in self._prepared:
            raise StateViolationError(f"Duplicate XA branch: {xid}")
        self._active.add(xid)
        if timeout_sec:
            self._deadlines[xid] = self.clock() + timeout_sec
    
    def prepare(self, xid: Xid) -> None:
        if xid not in self._active:
            raise UnknownBranchError(xid)
        if self.is_timed_out(xid):
            self.abandon(xid)
            raise BranchTimeoutError(xid)
        self._active.discard(xid)
        self._deadlines.pop(xid, None)
        self._prepared.add(xid)
    
    def commit(self, xid: Xid, ignore_unknown: bool = False) -> None:
        self._check_available(xid)
        if xid not in self._prepared:
            if ignore_unknown:
                logger.info("Ignoring commit of unknown XA branch", xid=str(xid))
                return
            raise UnknownBranchError(xid)
        self._prepared.discard(xid)
        self.committed.append(xid)
    
    def rollback(self, xid: Xid) -> None:
        self._check_available(xid)
        if xid not in self._prepared and xid not in self._active:
            logger.debug("Ignoring rollback of unknown XA branch", xid=str(xid))
            return
        self._prepared.discard(xid)
        self._active.discard(xid)
        self._deadlines.pop(xid, None)
        self.rolled_back.append(xid)
    
    def abandon(self, xid: Xid) -> None:
        """Roll back an active branch whose connection gives it up."""
        if xid in self._active:
            self._active.discard(xid)
            self._deadlines.pop(xid, None)
            self.rolled_back.append(xid)
            logger.info("Abandoned active XA branch", xid=str(xid))
    
    def is_timed_out(self, xid: Xid) -> bool:
        deadline = self._deadlines.get(xid)
        return deadline is not None and self.clock() > deadline
    
    def expire_timed_out(self) -> List[Xid]:
        """
        Roll back every active branch past its deadline.
        
        Returns:
            Branches that were rolled back
        """
        expired = [xid for xid in self._active if self.is_timed_out(xid)]
        for xid in expired:
            self.abandon(xid)
        return sorted(expired, key=str)
    
    def recover(self) -> List[Xid]:
        return sorted(self._prepared, key=str)
    
    def is_prepared(self, xid: Xid) -> bool:
        return xid in self._prepared
    
    def _check_available(self, xid: Xid) -> None:
        if not self.available:
            raise TransientXaError(f"Resource manager {self.name} unavailable", xid=xid)
        if self._fail_next > 0:
            self._fail_next -= 1
            raise TransientXaError(f"Transient failure finalizing {xid}", xid=xid)


class InMemoryConnection:
    """Data connection handle handed out by InMemoryXaConnectionProvider."""
    
    def __init__(self, facade_id: int):
        self.facade_id = facade_id
        self.closed = False
    
    def close(self) -> None:
        self.closed = True
    
    def __repr__(self):
        return f"InMemoryConnection(facade={self.facade_id}, closed={self.closed})"


class InMemoryXaConnectionProvider(XaConnectionProvider):
    """
    One connection to an InMemoryResourceManager.
    
    Holds at most one branch: start is refused unless the facade is IDLE.
    """
    
    def __init__(
        self,
        resource_manager: InMemoryResourceManager,
        timeout_sec: Optional[int] = None,
    ):
        """
        Initialize in-memory provider.
        
        Args:
            resource_manager: Manager branches are recorded in
            timeout_sec: Seconds a started branch may stay active before
                the resource manager rolls it back
        """
        self.resource_manager = resource_manager
        self.timeout_sec = timeout_sec
        self.facade_id = next(_facade_ids)
        self.connection_state = ConnectionState.CLOSED
        self.branch_state = BranchState.IDLE
        self.xid: Optional[Xid] = None
        self._connection: Optional[InMemoryConnection] = None
    
    def open(self) -> None:
        if self.connection_state == ConnectionState.OPEN:
            raise StateViolationError(f"{self!r} already open")
        self.connection_state = ConnectionState.OPEN
    
    def is_open(self) -> bool:
        return self.connection_state == ConnectionState.OPEN
    
    def close(self) -> None:
        if self.branch_state == BranchState.ACTIVE:
            # an unfinished branch does not survive its connection
            self.resource_manager.abandon(self.xid)
            self._set_idle()
        self.close_connection()
        self.connection_state = ConnectionState.CLOSED
    
    def start(self, xid: Xid) -> None:
        self._check_open()
        if self.branch_state != BranchState.IDLE:
            raise StateViolationError(
                f"{self!r} is {self.branch_state.value}, cannot start {xid}"
            )
        self.resource_manager.start(xid, self.timeout_sec)
        self.xid = xid
        self.branch_state = BranchState.ACTIVE
    
    def end_and_prepare(self, xid: Xid) -> None:
        self._check_open()
        if self.branch_state != BranchState.ACTIVE or self.xid != xid:
            raise StateViolationError(f"{self!r} has no active branch {xid}")
        try:
            self.resource_manager.prepare(xid)
        except BranchTimeoutError:
            self._set_idle()
            raise
        self.branch_state = BranchState.PREPARED
    
    def commit(self, xid: Xid, ignore_unknown: bool = False) -> None:
        self._check_open()
        self._check_finalizable(xid)
        if self.branch_state == BranchState.ACTIVE:
            # an unprepared branch cannot commit; it must not outlive this call
            self.resource_manager.abandon(xid)
            self._set_idle()
            raise StateViolationError(f"Cannot commit unprepared branch {xid}; rolled back")
        try:
            self.resource_manager.commit(xid, ignore_unknown)
        finally:
            self._release(xid)
    
    def rollback(self, xid: Xid) -> None:
        self._check_open()
        self._check_finalizable(xid)
        try:
            self.resource_manager.rollback(xid)
        finally:
            self._release(xid)
    
    def fail_and_rollback(self, xid: Xid) -> None:
        self._check_open()
        self._check_finalizable(xid)
        try:
            self.resource_manager.rollback(xid)
        finally:
            self._release(xid)
    
    def recover(self) -> Collection[Xid]:
        self._check_open()
        return self.resource_manager.recover()
    
    def get_connection(self) -> Optional[InMemoryConnection]:
        return self._connection
    
    def is_connection_valid(self) -> bool:
        return self._connection is not None and not self._connection.closed
    
    def get_or_establish_connection(self) -> InMemoryConnection:
        self._check_open()
        if not self.is_connection_valid():
            self._connection = InMemoryConnection(self.facade_id)
        return self._connection
    
    def close_connection(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
    
    def reestablish_connection(self) -> InMemoryConnection:
        self.close_connection()
        return self.get_or_establish_connection()
    
    def _check_open(self) -> None:
        if self.connection_state != ConnectionState.OPEN:
            raise StateViolationError(f"{self!r} is closed")
    
    def _check_finalizable(self, xid: Xid) -> None:
        # an IDLE facade may finalize any branch of its resource manager
        if self.branch_state != BranchState.IDLE and self.xid != xid:
            raise StateViolationError(f"{self!r} is bound to {self.xid}, not {xid}")
    
    def _release(self, xid: Xid) -> None:
        if self.xid == xid:
            self._set_idle()
    
    def _set_idle(self) -> None:
        self.xid = None
        self.branch_state = BranchState.IDLE
    
    def __repr__(self):
        return (
            f"InMemoryXaConnectionProvider(id={self.facade_id}, "
            f"rm={self.resource_manager.name}, {self.branch_state.value})"
        )


class InMemoryProviderFactory:
    """
    Picklable factory of InMemoryXaConnectionProvider facades.
    
    Stores only the manager's name and the timeout, so a copy restored in a
    new process reaches the registered manager of the same name.
    """
    
    def __init__(self, resource_manager: str = "default", timeout_sec: Optional[int] = None):
        self.resource_manager = resource_manager
        self.timeout_sec = timeout_sec
    
    @classmethod
    def from_config(cls, config: Any) -> "InMemoryProviderFactory":
        """
        Build a factory from the ``xa`` section of a Config.
        
        Args:
            config: Config instance
        """
        return cls(
            resource_manager=config.get("xa.resource_manager", "default"),
            timeout_sec=config.get("xa.timeout_sec"),
        )
    
    def __call__(self) -> InMemoryXaConnectionProvider:
        return InMemoryXaConnectionProvider(
            InMemoryResourceManager.get(self.resource_manager),
            timeout_sec=self.timeout_sec,
        )
