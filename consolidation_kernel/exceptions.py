"""
Typed Exception Hierarchy for the Consolidation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A consolidation run is only diagnosable if its failure is precise. Callers
catch by type, report by ``code`` and read structured attributes; they never
parse message strings.

Example:
    try:
        orchestrator.start_run(group_id, period, options, initiated_by="ops")
    except RunInProgressError as e:
        schedule_retry(e.group_id, e.period_code)   # Structured data
        api_response(code=e.code)                   # Machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConsolidationError (base)
    |
    +-- ConfigurationError
    |   +-- GroupNotFoundError
    |   +-- GroupInactiveError
    |   +-- InvalidPercentageError
    |   +-- OwnershipMismatchError
    |
    +-- TrialBalanceImbalanceError
    |
    +-- ConflictError
    |   +-- RunInProgressError
    |   +-- RunAlreadyCompletedError
    |
    +-- DataCorruptionError
    +-- UnknownAccountError
    +-- CurrencyTranslationError
    +-- RunNotFoundError
    +-- InvalidRunStateError
    +-- StepExecutionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Malformed group/member/rule data
                | GROUP_NOT_FOUND             | Group ID doesn't exist
                | GROUP_INACTIVE              | Run requested for inactive group
                | INVALID_PERCENTAGE          | Percentage outside [0, 100]
                | OWNERSHIP_MISMATCH          | Full member ownership + NCI != 100
----------------|-----------------------------|-----------------------------------------
Balance         | TRIAL_BALANCE_IMBALANCE     | Consolidated debits != credits
----------------|-----------------------------|-----------------------------------------
Conflict        | RUN_IN_PROGRESS             | Pending/in-progress run for the key
                | RUN_ALREADY_COMPLETED       | Completed run exists, no regeneration
----------------|-----------------------------|-----------------------------------------
Storage         | DATA_CORRUPTION             | Stored run data fails to decode
                | RUN_NOT_FOUND               | Run ID doesn't exist
                | INVALID_RUN_STATE           | Transition not allowed from status
----------------|-----------------------------|-----------------------------------------
Accounts        | UNKNOWN_ACCOUNT             | Selector references missing account
----------------|-----------------------------|-----------------------------------------
Collaborators   | CURRENCY_TRANSLATION_FAILED | Translation service could not convert
                | STEP_EXECUTION_FAILED       | Unexpected error inside a run step

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConflictError means "retry later", never "retry immediately".
2. TrialBalanceImbalanceError is never corrected by a plug entry. The
   discrepancy attribute is the evidence.
3. UnknownAccountError is downgraded to a rule-level warning by the
   elimination matcher; it never fails a run on its own.
4. DataCorruptionError is surfaced as-is. Stored audit data is never
   replaced by defaults.
"""

from decimal import Decimal


class ConsolidationError(Exception):
    """
    Base exception for all consolidation errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "CONSOLIDATION_ERROR"


# Configuration


class ConfigurationError(ConsolidationError):
    """Group, member or rule configuration is malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, entity_references: tuple[str, ...] = ()):
        self.entity_references = entity_references
        super().__init__(message)


class GroupNotFoundError(ConfigurationError):
    """Consolidation group with given ID was not found."""

    code: str = "GROUP_NOT_FOUND"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Consolidation group not found: {group_id}", (group_id,))


class GroupInactiveError(ConfigurationError):
    """Inactive groups do not accept new runs."""

    code: str = "GROUP_INACTIVE"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(
            f"Consolidation group {group_id} is inactive and cannot be consolidated",
            (group_id,),
        )


class InvalidPercentageError(ConfigurationError):
    """A percentage fell outside [0, 100]."""

    code: str = "INVALID_PERCENTAGE"

    def __init__(self, field: str, value: Decimal, company_id: str | None = None):
        self.field = field
        self.value = value
        self.company_id = company_id
        where = f" for member {company_id}" if company_id else ""
        super().__init__(
            f"{field} must be between 0 and 100{where}, got {value}",
            (company_id,) if company_id else (),
        )


class OwnershipMismatchError(ConfigurationError):
    """FullConsolidation member whose ownership and NCI do not sum to 100."""

    code: str = "OWNERSHIP_MISMATCH"

    def __init__(
        self,
        company_id: str,
        ownership_percentage: Decimal,
        nci_percentage: Decimal,
    ):
        self.company_id = company_id
        self.ownership_percentage = ownership_percentage
        self.nci_percentage = nci_percentage
        super().__init__(
            f"Member {company_id}: ownership {ownership_percentage}% + "
            f"non-controlling interest {nci_percentage}% must equal 100%",
            (company_id,),
        )


# Balance


class TrialBalanceImbalanceError(ConsolidationError):
    """
    Consolidated debits do not equal credits.

    Indicates a defect in upstream data or logic. Never auto-corrected.
    """

    code: str = "TRIAL_BALANCE_IMBALANCE"

    def __init__(self, total_debits: Decimal, total_credits: Decimal, currency: str):
        self.total_debits = total_debits
        self.total_credits = total_credits
        self.discrepancy = total_debits - total_credits
        self.currency = currency
        super().__init__(
            f"Consolidated trial balance does not balance: debits {total_debits} "
            f"!= credits {total_credits} {currency} (discrepancy {self.discrepancy})"
        )


# Conflicts


class ConflictError(ConsolidationError):
    """Another run already owns the (group, period) key."""

    code: str = "CONFLICT"

    def __init__(self, message: str, group_id: str, period_code: str):
        self.group_id = group_id
        self.period_code = period_code
        super().__init__(message)


class RunInProgressError(ConflictError):
    """A pending or in-progress run exists for the same group and period."""

    code: str = "RUN_IN_PROGRESS"

    def __init__(self, group_id: str, period_code: str, existing_run_id: str):
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Consolidation run {existing_run_id} is already in progress for "
            f"group {group_id} period {period_code}",
            group_id,
            period_code,
        )


class RunAlreadyCompletedError(ConflictError):
    """A completed run exists and force_regeneration was not requested."""

    code: str = "RUN_ALREADY_COMPLETED"

    def __init__(self, group_id: str, period_code: str, existing_run_id: str):
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Completed consolidation run {existing_run_id} already exists for "
            f"group {group_id} period {period_code}; use force_regeneration to supersede",
            group_id,
            period_code,
        )


# Storage and lifecycle


class DataCorruptionError(ConsolidationError):
    """Stored run data could not be decoded."""

    code: str = "DATA_CORRUPTION"

    def __init__(self, field: str, reason: str, run_id: str | None = None):
        self.field = field
        self.reason = reason
        self.run_id = run_id
        where = f" for run {run_id}" if run_id else ""
        super().__init__(f"Corrupt stored data in '{field}'{where}: {reason}")


class RunNotFoundError(ConsolidationError):
    """Consolidation run with given ID was not found."""

    code: str = "RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Consolidation run not found: {run_id}")


class InvalidRunStateError(ConsolidationError):
    """The requested transition is not allowed from the run's status."""

    code: str = "INVALID_RUN_STATE"

    def __init__(self, run_id: str, status: str, action: str):
        self.run_id = run_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} run {run_id} in status {status}")


# Accounts


class UnknownAccountError(ConsolidationError):
    """Account ID is absent from the account catalog."""

    code: str = "UNKNOWN_ACCOUNT"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found in catalog: {account_id}")


# Collaborators


class CurrencyTranslationError(ConsolidationError):
    """The currency translation service could not convert an amount."""

    code: str = "CURRENCY_TRANSLATION_FAILED"

    def __init__(self, from_currency: str, to_currency: str, reason: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.reason = reason
        super().__init__(
            f"Cannot translate {from_currency} to {to_currency}: {reason}"
        )


class StepExecutionError(ConsolidationError):
    """An unexpected error raised inside a pipeline step."""

    code: str = "STEP_EXECUTION_FAILED"

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause_type = type(cause).__name__
        super().__init__(f"{self.cause_type}: {cause}")
