"""
Ledger Error Taxonomy

Every error the core raises or surfaces belongs to one of four categories.
None of them is fatal to the process: each leaves the in-memory workspace
in a well-defined state the caller can continue from.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""
    pass


class ValidationError(LedgerError):
    """
    Bad user input to a mutation.

    The mutation is rejected and state is unchanged.
    `issues` holds the ValidationIssue objects that caused the rejection.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class NotFoundError(LedgerError):
    """Reference to a nonexistent project, transaction or workspace."""
    pass


class SyncError(LedgerError):
    """Remote fetch or save failed. Surfaced to the user, never crashes the client."""
    pass


class AuthError(LedgerError):
    """Bad workspace id or password."""
    pass
