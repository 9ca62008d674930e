"""
Typed Exception Hierarchy for the Statement Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StatementKernelError:

    StatementKernelError (base)
    |
    +-- PolicyError
    |   +-- PolicyNotFoundError
    |
    +-- PeriodError
    |   +-- InvalidPeriodError
    |
    +-- ProviderError
    |   +-- ProviderUnavailableError
    |   +-- ProviderDataError
    |   +-- ExpenseUploadError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- StatementNotFoundError
    |   +-- StatementNotEditableError
    |   +-- LineItemNotFoundError
    |   +-- InvalidLineItemError
    |   +-- EmailLogNotFoundError
    |
    +-- ConcurrencyError
    |   +-- PersistenceConflictError
    |
    +-- BatchError
    |   +-- GenerationJobNotFoundError
    |   +-- GenerationIdempotencyError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Policy          | POLICY_NOT_FOUND            | Listing missing, or inactive and not requested
----------------|-----------------------------|-----------------------------------------
Period          | INVALID_PERIOD              | Start date after end date
----------------|-----------------------------|-----------------------------------------
Provider        | PROVIDER_UNAVAILABLE        | Booking/accounting source unreachable
                | PROVIDER_DATA_INVALID       | Provider answered with unusable data
                | EXPENSE_UPLOAD_INVALID      | Uploaded expense file unreadable
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION          | (status, action) not in the guard table
                | STATEMENT_NOT_FOUND         | Statement ID doesn't exist
                | STATEMENT_NOT_EDITABLE      | Edit attempted on a non-draft statement
                | LINE_ITEM_NOT_FOUND         | Draft edit names a missing line item
                | INVALID_LINE_ITEM           | Draft edit rejected (duplicate, out of period)
                | EMAIL_LOG_NOT_FOUND         | Delivery callback for unknown email log
----------------|-----------------------------|-----------------------------------------
Concurrency     | PERSISTENCE_CONFLICT        | Statement changed by another writer
----------------|-----------------------------|-----------------------------------------
Batch           | GENERATION_JOB_NOT_FOUND    | Job ID doesn't exist
                | GENERATION_IDEMPOTENCY      | Job idempotency key already used
----------------|-----------------------------|-----------------------------------------
Config          | INVALID_CONFIG              | Configuration value out of range

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS:

    try:
        builder.build(request, actor_id)
    except ProviderUnavailableError as e:
        # Read failure: safe to retry later
        schedule_retry(e.provider)
    except PersistenceConflictError as e:
        # Write failure: do NOT retry blindly
        alert(e.statement_id)

2. USE STRUCTURED DATA (not message parsing):

    except InvalidTransitionError as e:
        return {"error": e.code, "status": e.current_status, "action": e.action}

3. ANOMALIES ARE NOT ERRORS: duplicate/cleaning/cancellation findings are
   attached to the statement and never raised.
"""


class StatementKernelError(Exception):
    """
    Base exception for all statement kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STATEMENT_KERNEL_ERROR"


# Policy-related exceptions


class PolicyError(StatementKernelError):
    """Base exception for policy resolution errors."""

    code: str = "POLICY_ERROR"


class PolicyNotFoundError(PolicyError):
    """Listing does not exist, or is inactive and inactive listings were not requested."""

    code: str = "POLICY_NOT_FOUND"

    def __init__(self, listing_id: int, reason: str = "not_found"):
        self.listing_id = listing_id
        self.reason = reason
        super().__init__(f"No effective policy for listing {listing_id}: {reason}")


# Period-related exceptions


class PeriodError(StatementKernelError):
    """Base exception for statement period errors."""

    code: str = "PERIOD_ERROR"


class InvalidPeriodError(PeriodError):
    """Statement period start date is after its end date."""

    code: str = "INVALID_PERIOD"

    def __init__(self, start_date: str, end_date: str):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Invalid statement period: start {start_date} is after end {end_date}"
        )


# Provider-related exceptions


class ProviderError(StatementKernelError):
    """Base exception for external collaborator errors."""

    code: str = "PROVIDER_ERROR"


class ProviderUnavailableError(ProviderError):
    """
    A booking or accounting source could not be read.

    Read failures are safe to retry; the batch driver records them as
    retryable item failures.
    """

    code: str = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        self.detail = detail
        message = f"Provider unavailable: {provider}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ProviderDataError(ProviderError):
    """
    A provider answered but the call failed in a way retrying cannot fix
    (malformed export, rejected query).  Never retried.
    """

    code: str = "PROVIDER_DATA_INVALID"

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        self.detail = detail
        message = f"Provider returned unusable data: {provider}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ExpenseUploadError(ProviderError):
    """Uploaded expense file could not be parsed."""

    code: str = "EXPENSE_UPLOAD_INVALID"

    def __init__(self, filename: str, detail: str):
        self.filename = filename
        self.detail = detail
        super().__init__(f"Invalid expense upload {filename}: {detail}")


# Lifecycle-related exceptions


class LifecycleError(StatementKernelError):
    """Base exception for statement lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """The requested action is not allowed from the statement's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, statement_id: str, current_status: str, action: str):
        self.statement_id = statement_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} statement {statement_id} in status {current_status}"
        )


class StatementNotFoundError(LifecycleError):
    """Statement with given ID was not found."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement not found: {statement_id}")


class StatementNotEditableError(LifecycleError):
    """Line items and adjustments may only change while a statement is draft."""

    code: str = "STATEMENT_NOT_EDITABLE"

    def __init__(self, statement_id: str, current_status: str):
        self.statement_id = statement_id
        self.current_status = current_status
        super().__init__(
            f"Statement {statement_id} is {current_status}; only draft statements can be edited"
        )


class LineItemNotFoundError(LifecycleError):
    """Draft edit references a reservation or expense the statement lacks."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, statement_id: str, item_kind: str, item_id: str):
        self.statement_id = statement_id
        self.item_kind = item_kind
        self.item_id = item_id
        super().__init__(f"{item_kind.capitalize()} {item_id} is not on statement {statement_id}")


class InvalidLineItemError(LifecycleError):
    """Draft edit would add or remove a line item the statement cannot take."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, statement_id: str, item_id: str, reason: str):
        self.statement_id = statement_id
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Line item {item_id} rejected for statement {statement_id}: {reason}")


class EmailLogNotFoundError(LifecycleError):
    """Delivery callback references an unknown email log."""

    code: str = "EMAIL_LOG_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Email log not found: {reference}")


# Concurrency-related exceptions


class ConcurrencyError(StatementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class PersistenceConflictError(ConcurrencyError):
    """
    Concurrent write detected on a statement.

    Raised when the statement's version no longer matches the version the
    caller read, or when an insert collides with an existing idempotency
    key. Write failures are NOT safe to retry blindly.
    """

    code: str = "PERSISTENCE_CONFLICT"

    def __init__(self, statement_id: str, detail: str = ""):
        self.statement_id = statement_id
        self.detail = detail
        message = f"Concurrent modification of statement {statement_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Batch-related exceptions


class BatchError(StatementKernelError):
    """Base exception for batch generation errors."""

    code: str = "BATCH_ERROR"


class GenerationJobNotFoundError(BatchError):
    """Generation job with given ID was not found."""

    code: str = "GENERATION_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Generation job not found: {job_id}")


class GenerationIdempotencyError(BatchError):
    """A generation job with the same idempotency key already exists."""

    code: str = "GENERATION_IDEMPOTENCY"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Generation job already exists for key {idempotency_key}: {existing_job_id}"
        )


# Config-related exceptions


class ConfigError(StatementKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value is missing or out of range."""

    code: str = "INVALID_CONFIG"

    def __init__(self, field: str, detail: str):
        self.field = field
        self.detail = detail
        super().__init__(f"Invalid configuration for {field}: {detail}")
