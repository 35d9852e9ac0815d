"""
XA transaction branch identifier.
"""

from dataclasses import dataclass

MAX_GTRID_LENGTH = 64
MAX_BQUAL_LENGTH = 64


@dataclass(frozen=True)
class Xid:
    """
    Identifier of one two-phase-commit transaction branch.
    
    Equality and hashing are value based, so an Xid rebuilt after a restart
    (e.g. from a resource manager's recover list) matches the original.
    
    Attributes:
        format_id: Format identifier of the transaction manager
        global_transaction_id: Global transaction id (gtrid), up to 64 bytes
        branch_qualifier: Branch qualifier (bqual), up to 64 bytes
    """
    format_id: int
    global_transaction_id: bytes
    branch_qualifier: bytes = b""
    
    def __post_init__(self):
        if self.format_id < 0:
            raise ValueError(f"format_id must be non-negative: {self.format_id}")
        if len(self.global_transaction_id) > MAX_GTRID_LENGTH:
            raise ValueError(
                f"global_transaction_id too long: "
                f"{len(self.global_transaction_id)} > {MAX_GTRID_LENGTH}"
            )
        if len(self.branch_qualifier) > MAX_BQUAL_LENGTH:
            raise ValueError(
                f"branch_qualifier too long: "
                f"{len(self.branch_qualifier)} > {MAX_BQUAL_LENGTH}"
            )
    
    def __str__(self):
        return (
            f"{self.format_id}:"
            f"{self.global_transaction_id.hex()}:"
            f"{self.branch_qualifier.hex()}"
        )
