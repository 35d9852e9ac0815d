"""
Pooling XA connection provider.

Some databases implement XA such that one connection is limited to a single
transaction branch. As a workaround, this provider hands out a different
facade for each started branch, remembers which facade holds which xid, and
returns facades to an idle pool once their branch is finalized.
"""

from collections import deque
from typing import Any, Callable, Collection, Deque, Dict, List, Optional

from xapool.utils.logging import get_logger
from xapool.xa.exceptions import (
    NoActiveBranchError,
    ProviderCloseError,
    StateViolationError,
)
from xapool.xa.provider import FacadeFactory, XaConnectionProvider
from xapool.xa.xid import Xid

logger = get_logger(__name__)

FinalizeAction = Callable[[XaConnectionProvider], None]


class PoolingXaConnectionProvider(XaConnectionProvider):
    """
    XaConnectionProvider multiplexing branches over pooled facades.
    
    Only the factory survives pickling; the idle pool, the xid mapping and
    the active facade are process-scoped and rebuilt empty by open().
    Prepared branches from a previous process are found through recover().
    
    Not thread-safe: calls are expected from a single coordinator.
    """
    
    def __init__(self, factory: FacadeFactory):
        """
        Initialize pooling provider.
        
        Args:
            factory: Producer of fresh, unopened facades
        """
        self._factory = factory
        self._reset_runtime_state()
    
    @classmethod
    def from_factory(cls, factory: FacadeFactory) -> "PoolingXaConnectionProvider":
        return cls(factory)
    
    def _reset_runtime_state(self) -> None:
        self._active: Optional[XaConnectionProvider] = None
        self._mapped_to_xids: Optional[Dict[Xid, XaConnectionProvider]] = None
        self._pooled: Optional[Deque[XaConnectionProvider]] = None
        self._created = 0
    
    def __getstate__(self) -> Dict[str, Any]:
        return {"_factory": self._factory}
    
    def __setstate__(self, state: Dict[str, Any]) -> None:
        self._factory = state["_factory"]
        self._reset_runtime_state()
    
    def open(self) -> None:
        """
        Open the provider with an empty pool and branch mapping.
        
        Facades left from a previous use are closed first; their prepared
        branches stay with the resource manager and are found by recover().
        
        Raises:
            StateViolationError: If a branch is active
            ProviderCloseError: If a leftover facade failed to close; the
                provider is opened regardless
        """
        if self._active is not None:
            raise StateViolationError("Cannot open provider while a branch is active")
        
        try:
            if self._pooled is not None:
                self.close()
        finally:
            self._pooled = deque()
            self._mapped_to_xids = {}
            self._created = 0
        
        logger.info("Pooling XA connection provider opened")
    
    def is_open(self) -> bool:
        return self._active is not None and self._active.is_open()
    
    def start(self, xid: Xid) -> None:
        """
        Start a branch on an idle facade, creating one if none is idle.
        
        Args:
            xid: Branch to start
        
        Raises:
            StateViolationError: If another branch is active or the
                provider was never opened
        """
        self._check_opened()
        if self._active is not None:
            raise StateViolationError(
                f"Cannot start {xid}: another branch is still active"
            )
        
        if self._pooled:
            facade = self._pooled.popleft()
        else:
            facade = self._create_facade()
        
        facade.start(xid)
        self._active = facade
        self._mapped_to_xids[xid] = facade
        
        logger.debug("Started XA branch", xid=str(xid), in_flight=len(self._mapped_to_xids))
    
    def end_and_prepare(self, xid: Xid) -> None:
        """
        End and prepare the active branch.
        
        Must be called after start() with the same xid. The active slot is
        released even if preparing fails.
        
        Raises:
            StateViolationError: If ``xid`` is not the active branch
        """
        self._check_opened()
        if self._active is None or self._mapped_to_xids.get(xid) is not self._active:
            raise StateViolationError(f"Branch {xid} is not the active branch")
        
        try:
            self._active.end_and_prepare(xid)
        finally:
            self._active = None
    
    def commit(self, xid: Xid, ignore_unknown: bool = False) -> None:
        self._run_for_xid(xid, lambda facade: facade.commit(xid, ignore_unknown))
    
    def rollback(self, xid: Xid) -> None:
        self._run_for_xid(xid, lambda facade: facade.rollback(xid))
    
    def fail_and_rollback(self, xid: Xid) -> None:
        self._run_for_xid(xid, lambda facade: facade.fail_and_rollback(xid))
    
    def recover(self) -> Collection[Xid]:
        return self._peek_pooled().recover()
    
    def close(self) -> None:
        """
        Close every facade known to this provider.
        
        All facades are attempted even if some fail.
        
        Raises:
            ProviderCloseError: If at least one facade failed to close
        """
        facades: List[XaConnectionProvider] = []
        if self._mapped_to_xids:
            facades.extend(self._mapped_to_xids.values())
        if self._pooled:
            facades.extend(self._pooled)
        if self._active is not None and self._active.is_open():
            facades.append(self._active)
        
        errors: List[Exception] = []
        closed = set()
        for facade in facades:
            if id(facade) in closed:
                continue
            closed.add(id(facade))
            try:
                facade.close()
            except Exception as e:
                logger.warning("Failed to close XA facade", facade=repr(facade), error=str(e))
                errors.append(e)
        
        logger.info("Pooling XA connection provider closed", facades=len(closed))
        self._reset_runtime_state()
        
        if errors:
            raise ProviderCloseError(errors) from errors[0]
    
    def get_connection(self) -> Optional[Any]:
        return self._require_active().get_connection()
    
    def is_connection_valid(self) -> bool:
        return self._require_active().is_connection_valid()
    
    def get_or_establish_connection(self) -> Any:
        return self._require_active().get_or_establish_connection()
    
    def close_connection(self) -> None:
        self._require_active().close_connection()
    
    def reestablish_connection(self) -> Any:
        return self._require_active().reestablish_connection()
    
    def get_stats(self) -> Dict[str, Any]:
        """
        Get pool statistics.
        
        Returns:
            Statistics dict
        """
        return {
            "idle": len(self._pooled) if self._pooled is not None else 0,
            "in_flight": len(self._mapped_to_xids) if self._mapped_to_xids is not None else 0,
            "created": self._created,
            "active": self._active is not None,
        }
    
    # The action MUST leave the facade IDLE (no start/end/prepare of a branch).
    def _run_for_xid(self, xid: Xid, action: FinalizeAction) -> None:
        self._check_opened()
        mapped = self._mapped_to_xids.pop(xid, None)
        if mapped is None:
            # a branch can be unknown to this process during recovery
            logger.debug("No XA resource found associated with xid", xid=str(xid))
            facade = self._peek_pooled()
        else:
            logger.debug("Found mapped XA resource for xid", xid=str(xid), facade=repr(mapped))
            if mapped is self._active:
                self._active = None
            facade = mapped
        
        try:
            action(facade)
        except Exception as e:
            logger.warning("XA finalize failed", xid=str(xid), facade=repr(facade), error=str(e))
            raise
        finally:
            if mapped is not None:
                self._pooled.append(mapped)
    
    # The returned facade MUST be left IDLE; it stays at the head of the pool.
    def _peek_pooled(self) -> XaConnectionProvider:
        self._check_opened()
        if self._pooled:
            return self._pooled[0]
        
        facade = self._create_facade()
        self._pooled.append(facade)
        return facade
    
    def _create_facade(self) -> XaConnectionProvider:
        facade = self._factory()
        facade.open()
        self._created += 1
        
        logger.info("Created XA facade", facade=repr(facade), created=self._created)
        return facade
    
    def _require_active(self) -> XaConnectionProvider:
        if self._active is None:
            raise NoActiveBranchError("No active XA branch")
        return self._active
    
    def _check_opened(self) -> None:
        if self._pooled is None or self._mapped_to_xids is None:
            raise StateViolationError("Pooling XA connection provider is not open")
