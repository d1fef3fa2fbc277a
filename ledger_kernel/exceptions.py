"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- ValidationError              malformed / incomplete header or lines
    |
    +-- EntityNotFoundError          document, entry, invoice or PO missing
    |
    +-- InvalidStateError            operation against the wrong status
    |
    +-- PostingError
    |   +-- UnbalancedEntryError     sum(debit) != sum(credit)
    |   +-- MixedLineError           one line carries both debit and credit
    |   +-- NegativeStockError       posting would drive stock below zero
    |   +-- AccountRoleNotFoundError no active account for a configured role
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LinkagePartialFailure        post-commit cross-reference step failed

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_FAILED           | Missing header field, bad line, ...
                | ENTITY_NOT_FOUND            | Unknown document / entry / invoice id
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_STATE               | e.g. posting an already-posted document
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Debits != Credits beyond tolerance
                | MIXED_LINE                  | Line has both debit and credit
                | NEGATIVE_STOCK              | Issue / transfer exceeds stock on hand
                | ACCOUNT_ROLE_NOT_FOUND      | Role prefix matches no active account
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | ORM edit of a posted/cancelled record
----------------|-----------------------------|-----------------------------------------
Linkage         | LINKAGE_PARTIAL_FAILURE     | Core posting committed, follow-up failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Everything except LinkagePartialFailure is raised BEFORE the unit of work
   commits; the caller can correct its input and retry.

2. LinkagePartialFailure is raised AFTER the core posting committed. The
   document IS posted (or cancelled); only the follow-up step (derived GL
   entry, purchase-order receipt tracking, ...) needs reconciliation:

    try:
        app.warehouse.post(document_id)
    except LinkagePartialFailure as e:
        notify_accounting(e.document_id, e.step, e.reason)

3. Catch by type and read structured attributes, never parse messages:

    except NegativeStockError as e:
        return {"error": e.code, "item": e.item_id, "available": e.available}
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Input / lookup


class ValidationError(LedgerKernelError):
    """
    Header or lines are malformed or incomplete.

    ``field_errors`` is a list of ``{"field": ..., "message": ...}`` dicts so
    that a UI can attach each problem to the offending input.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field_errors: list[dict] | None = None):
        self.field_errors = field_errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", [{"field": field, "message": message}])


class EntityNotFoundError(LedgerKernelError):
    """Entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Lifecycle


class InvalidStateError(LedgerKernelError):
    """Operation attempted against an entity in the wrong status.

    Usually means the caller holds stale state (e.g. a second post of the
    same document). Safe to refresh and retry.
    """

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, status: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id} in status '{status}'"
        )


# Posting


class PostingError(LedgerKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits within tolerance."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, difference: Decimal, debits: Decimal, credits: Decimal):
        self.difference = difference
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced entry: debits={debits}, credits={credits}, "
            f"difference={difference}"
        )


class MixedLineError(PostingError):
    """A single journal line carries both a debit and a credit amount."""

    code: str = "MIXED_LINE"

    def __init__(self, line_index: int):
        self.line_index = line_index
        super().__init__(f"Line {line_index} has both debit and credit set")


class NegativeStockError(PostingError):
    """Posting would drive a stock position below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(
        self,
        item_id: str,
        location_id: str,
        available: Decimal,
        requested: Decimal,
    ):
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for item {item_id} at location {location_id}: "
            f"available={available}, requested={requested}"
        )


class AccountRoleNotFoundError(PostingError):
    """No active account matches the code prefix configured for a role."""

    code: str = "ACCOUNT_ROLE_NOT_FOUND"

    def __init__(self, role: str, prefix: str):
        self.role = role
        self.prefix = prefix
        super().__init__(
            f"No active account for role '{role}' (code prefix '{prefix}')"
        )


# Immutability


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Posted and cancelled documents, GL entries, invoices and their lines
    are immutable; correction goes through cancellation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Linkage


class LinkagePartialFailure(LedgerKernelError):
    """
    A cross-document step failed after the core posting committed.

    The core transition is NOT rolled back. ``step`` names the follow-up
    that failed so it can be reconciled manually.
    """

    code: str = "LINKAGE_PARTIAL_FAILURE"

    def __init__(
        self,
        document_type: str,
        document_id: str,
        step: str,
        reason: str,
    ):
        self.document_type = document_type
        self.document_id = document_id
        self.step = step
        self.reason = reason
        super().__init__(
            f"{document_type} {document_id} committed but linkage step "
            f"'{step}' failed: {reason}"
        )
