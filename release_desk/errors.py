from __future__ import annotations


class ReleaseDeskError(Exception):
    """Base class for release desk failures."""


class SessionStateError(ReleaseDeskError):
    """Operation is not valid in the session's current state."""


class AllotmentNotFound(ReleaseDeskError):
    def __init__(self, allotment_id: int):
        super().__init__(f"allotment not found: {allotment_id}")
        self.allotment_id = allotment_id


class RosterIntegrityError(ReleaseDeskError):
    """A roster row breaks the share invariant for its allotment's budget kind."""


class LedgerError(ReleaseDeskError):
    """The ledger could not be read."""


class LedgerWriteError(LedgerError):
    """The ledger could not record a release."""
