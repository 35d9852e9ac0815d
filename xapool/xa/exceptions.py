"""
Errors raised by XA connection providers.
"""

from typing import List, Optional

from xapool.xa.xid import Xid


class XaError(Exception):
    """Base class for xapool errors."""
    pass


class StateViolationError(XaError):
    """A provider was used out of order (caller misuse, not retryable)."""
    pass


class NoActiveBranchError(StateViolationError):
    """Connection access attempted while no branch is active."""
    pass


class TransientXaError(XaError):
    """
    Commit or rollback failed in a way the coordinator may retry.
    
    Attributes:
        xid: Branch the failed operation targeted, if known
    """
    
    def __init__(self, message: str, xid: Optional[Xid] = None):
        super().__init__(message)
        self.xid = xid


class UnknownBranchError(XaError):
    """The resource manager does not know the branch."""
    
    def __init__(self, xid: Xid):
        super().__init__(f"Unknown XA branch: {xid}")
        self.xid = xid


class ProviderCloseError(XaError):
    """
    One or more facades failed to close.
    
    Attributes:
        errors: Every failure encountered, in close order
    """
    
    def __init__(self, errors: List[Exception]):
        super().__init__(
            f"Failed to close {len(errors)} XA connection(s): "
            + "; ".join(str(e) for e in errors)
        )
        self.errors = errors


class BranchTimeoutError(XaError):
    """The branch outlived its timeout and was rolled back."""
    
    def __init__(self, xid: Xid):
        super().__init__(f"XA branch timed out and was rolled back: {xid}")
        self.xid = xid
