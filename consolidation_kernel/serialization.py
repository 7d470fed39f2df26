"""
Serialization -- versioned encode/decode contract for stored run data.

Responsibility:
    Converts run records and their structured sub-objects (steps, options,
    validation results, trial balances, selectors, trigger conditions) to and
    from plain JSON-compatible dicts.

Architecture position:
    Kernel -- pure functions, zero I/O. Used by run stores at the persistence
    boundary; engines and the orchestrator never see encoded data.

Invariants enforced:
    - Every top-level payload carries ``schema_version``. Unknown versions are
      rejected.
    - Decimals are encoded as strings, dates and datetimes as ISO 8601.
    - Decoding never substitutes defaults for missing or malformed fields; any
      failure raises DataCorruptionError naming the field.

Failure modes:
    - DataCorruptionError on any decode failure.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar, assert_never

from consolidation_kernel.domain.accounts import AccountType
from consolidation_kernel.domain.group import (
    EliminationRule,
    EliminationType,
    TriggerCondition,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import (
    ConsolidatedTrialBalance,
    ConsolidationRun,
    ConsolidationStep,
    NCIAllocation,
    RunOptions,
    RunStatus,
    StepStatus,
    StepType,
    TrialBalanceLine,
    TrialBalanceTotals,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)
from consolidation_kernel.domain.selectors import (
    AccountSelector,
    ByCategory,
    ById,
    ByRange,
)
from consolidation_kernel.exceptions import DataCorruptionError

SCHEMA_VERSION = 1
_SUPPORTED_VERSIONS = frozenset({1})

T = TypeVar("T")

_DECODE_ERRORS = (KeyError, TypeError, ValueError, InvalidOperation, AttributeError)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def wrap(payload: Any) -> dict[str, Any]:
    return {"schema_version": SCHEMA_VERSION, "data": payload}


def unwrap(
    envelope: Any,
    decode: Callable[[Any], T],
    field: str,
    run_id: str | None = None,
) -> T:
    """Check the envelope version and decode its payload.

    Raises:
        DataCorruptionError: Envelope missing, version unsupported, or the
            payload failed to decode.
    """
    if not isinstance(envelope, dict):
        raise DataCorruptionError(field, f"expected object, got {type(envelope).__name__}", run_id)
    version = envelope.get("schema_version")
    if version not in _SUPPORTED_VERSIONS:
        raise DataCorruptionError(field, f"unsupported schema_version {version!r}", run_id)
    if "data" not in envelope:
        raise DataCorruptionError(field, "missing 'data'", run_id)
    try:
        return decode(envelope["data"])
    except DataCorruptionError:
        raise
    except _DECODE_ERRORS as exc:
        raise DataCorruptionError(field, f"{type(exc).__name__}: {exc}", run_id) from exc


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _to_dec(value: Any) -> Decimal | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"decimal must be encoded as string, got {type(value).__name__}")
    return Decimal(value)


def _req_dec(value: Any) -> Decimal:
    result = _to_dec(value)
    if result is None:
        raise ValueError("required decimal is null")
    return result


def _dt(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _to_dt(value: Any) -> datetime | None:
    return None if value is None else datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Selectors and trigger conditions
# ---------------------------------------------------------------------------


def selector_to_dict(selector: AccountSelector) -> dict[str, str]:
    if isinstance(selector, ById):
        return {"type": "ById", "account_id": selector.account_id}
    if isinstance(selector, ByRange):
        return {
            "type": "ByRange",
            "from_account_number": selector.from_account_number,
            "to_account_number": selector.to_account_number,
        }
    if isinstance(selector, ByCategory):
        return {"type": "ByCategory", "category": selector.category}
    assert_never(selector)


def selector_from_dict(data: dict[str, Any]) -> AccountSelector:
    kind = data["type"]
    if kind == "ById":
        return ById(data["account_id"])
    if kind == "ByRange":
        return ByRange(data["from_account_number"], data["to_account_number"])
    if kind == "ByCategory":
        return ByCategory(data["category"])
    raise ValueError(f"unknown selector type {kind!r}")


def trigger_condition_to_dict(condition: TriggerCondition) -> dict[str, Any]:
    return {
        "description": condition.description,
        "source_accounts": [selector_to_dict(s) for s in condition.source_accounts],
        "minimum_amount": _dec(condition.minimum_amount),
    }


def trigger_condition_from_dict(data: dict[str, Any]) -> TriggerCondition:
    return TriggerCondition(
        description=data["description"],
        source_accounts=tuple(selector_from_dict(s) for s in data["source_accounts"]),
        minimum_amount=_to_dec(data["minimum_amount"]),
    )


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


def validation_result_to_dict(result: ValidationResult) -> dict[str, Any]:
    return {
        "issues": [
            {
                "severity": i.severity.value,
                "code": i.code,
                "message": i.message,
                "entity_reference": i.entity_reference,
            }
            for i in result.issues
        ]
    }


def validation_result_from_dict(data: dict[str, Any]) -> ValidationResult:
    return ValidationResult(
        issues=tuple(
            ValidationIssue(
                severity=ValidationSeverity(i["severity"]),
                code=i["code"],
                message=i["message"],
                entity_reference=i["entity_reference"],
            )
            for i in data["issues"]
        )
    )


# ---------------------------------------------------------------------------
# Steps and options
# ---------------------------------------------------------------------------


def steps_to_list(steps: tuple[ConsolidationStep, ...]) -> list[dict[str, Any]]:
    return [
        {
            "step_type": s.step_type.value,
            "order": s.order,
            "status": s.status.value,
            "started_at": _dt(s.started_at),
            "completed_at": _dt(s.completed_at),
            "duration_ms": s.duration_ms,
            "error_message": s.error_message,
            "details": s.details,
        }
        for s in steps
    ]


def steps_from_list(data: list[dict[str, Any]]) -> tuple[ConsolidationStep, ...]:
    steps = tuple(
        ConsolidationStep(
            step_type=StepType(s["step_type"]),
            order=int(s["order"]),
            status=StepStatus(s["status"]),
            started_at=_to_dt(s["started_at"]),
            completed_at=_to_dt(s["completed_at"]),
            duration_ms=s["duration_ms"],
            error_message=s["error_message"],
            details=s["details"],
        )
        for s in data
    )
    for position, step in enumerate(steps, start=1):
        if step.order != position or step.step_type.order != position:
            raise ValueError(f"step {step.step_type.value} stored out of order at {position}")
    if len(steps) != len(StepType):
        raise ValueError(f"expected {len(StepType)} steps, got {len(steps)}")
    return steps


def options_to_dict(options: RunOptions) -> dict[str, bool]:
    return {
        "skip_validation": options.skip_validation,
        "continue_on_warnings": options.continue_on_warnings,
        "include_equity_method_investments": options.include_equity_method_investments,
        "force_regeneration": options.force_regeneration,
    }


def options_from_dict(data: dict[str, Any]) -> RunOptions:
    return RunOptions(
        skip_validation=bool(data["skip_validation"]),
        continue_on_warnings=bool(data["continue_on_warnings"]),
        include_equity_method_investments=bool(data["include_equity_method_investments"]),
        force_regeneration=bool(data["force_regeneration"]),
    )


# ---------------------------------------------------------------------------
# Trial balance
# ---------------------------------------------------------------------------


def trial_balance_to_dict(tb: ConsolidatedTrialBalance) -> dict[str, Any]:
    return {
        "run_id": tb.run_id,
        "group_id": tb.group_id,
        "period": tb.period.code,
        "as_of_date": tb.as_of_date.isoformat(),
        "currency": tb.currency,
        "generated_at": tb.generated_at.isoformat(),
        "lines": [
            {
                "account_number": ln.account_number,
                "account_name": ln.account_name,
                "account_type": ln.account_type.value,
                "account_category": ln.account_category,
                "aggregated_balance": _dec(ln.aggregated_balance),
                "elimination_amount": _dec(ln.elimination_amount),
                "nci_amount": _dec(ln.nci_amount),
                "consolidated_balance": _dec(ln.consolidated_balance),
            }
            for ln in tb.lines
        ],
        "totals": {
            "total_debits": _dec(tb.totals.total_debits),
            "total_credits": _dec(tb.totals.total_credits),
            "total_eliminations": _dec(tb.totals.total_eliminations),
            "total_nci": _dec(tb.totals.total_nci),
        },
        "nci_allocations": [
            {
                "company_id": a.company_id,
                "nci_percentage": _dec(a.nci_percentage),
                "nci_amount": _dec(a.nci_amount),
                "goodwill_parent_share": _dec(a.goodwill_parent_share),
                "goodwill_nci_share": _dec(a.goodwill_nci_share),
            }
            for a in tb.nci_allocations
        ],
    }


def trial_balance_from_dict(data: dict[str, Any]) -> ConsolidatedTrialBalance:
    totals = data["totals"]
    return ConsolidatedTrialBalance(
        run_id=data["run_id"],
        group_id=data["group_id"],
        period=FiscalPeriodRef.parse(data["period"]),
        as_of_date=date.fromisoformat(data["as_of_date"]),
        currency=data["currency"],
        generated_at=datetime.fromisoformat(data["generated_at"]),
        lines=tuple(
            TrialBalanceLine(
                account_number=ln["account_number"],
                account_name=ln["account_name"],
                account_type=AccountType(ln["account_type"]),
                account_category=ln["account_category"],
                aggregated_balance=_req_dec(ln["aggregated_balance"]),
                elimination_amount=_req_dec(ln["elimination_amount"]),
                nci_amount=_to_dec(ln["nci_amount"]),
                consolidated_balance=_req_dec(ln["consolidated_balance"]),
            )
            for ln in data["lines"]
        ),
        totals=TrialBalanceTotals(
            total_debits=_req_dec(totals["total_debits"]),
            total_credits=_req_dec(totals["total_credits"]),
            total_eliminations=_req_dec(totals["total_eliminations"]),
            total_nci=_req_dec(totals["total_nci"]),
        ),
        nci_allocations=tuple(
            NCIAllocation(
                company_id=a["company_id"],
                nci_percentage=_req_dec(a["nci_percentage"]),
                nci_amount=_req_dec(a["nci_amount"]),
                goodwill_parent_share=_to_dec(a["goodwill_parent_share"]),
                goodwill_nci_share=_to_dec(a["goodwill_nci_share"]),
            )
            for a in data["nci_allocations"]
        ),
    )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def run_to_dict(run: ConsolidationRun) -> dict[str, Any]:
    """Encode a complete run as one versioned envelope."""
    return wrap({
        "id": run.id,
        "group_id": run.group_id,
        "period": run.period.code,
        "as_of_date": run.as_of_date.isoformat(),
        "status": run.status.value,
        "options": options_to_dict(run.options),
        "initiated_by": run.initiated_by,
        "initiated_at": run.initiated_at.isoformat(),
        "steps": steps_to_list(run.steps),
        "validation_result": (
            None if run.validation_result is None
            else validation_result_to_dict(run.validation_result)
        ),
        "trial_balance": (
            None if run.trial_balance is None
            else trial_balance_to_dict(run.trial_balance)
        ),
        "elimination_entry_ids": list(run.elimination_entry_ids),
        "manual_review_rule_ids": list(run.manual_review_rule_ids),
        "warnings": list(run.warnings),
        "started_at": _dt(run.started_at),
        "completed_at": _dt(run.completed_at),
        "total_duration_ms": run.total_duration_ms,
        "error_message": run.error_message,
        "error_code": run.error_code,
        "failed_step": run.failed_step.value if run.failed_step else None,
    })


def _run_from_payload(data: dict[str, Any]) -> ConsolidationRun:
    vr = data["validation_result"]
    tb = data["trial_balance"]
    failed_step = data["failed_step"]
    return ConsolidationRun(
        id=data["id"],
        group_id=data["group_id"],
        period=FiscalPeriodRef.parse(data["period"]),
        as_of_date=date.fromisoformat(data["as_of_date"]),
        status=RunStatus(data["status"]),
        options=options_from_dict(data["options"]),
        initiated_by=data["initiated_by"],
        initiated_at=datetime.fromisoformat(data["initiated_at"]),
        steps=steps_from_list(data["steps"]),
        validation_result=None if vr is None else validation_result_from_dict(vr),
        trial_balance=None if tb is None else trial_balance_from_dict(tb),
        elimination_entry_ids=tuple(data["elimination_entry_ids"]),
        manual_review_rule_ids=tuple(data["manual_review_rule_ids"]),
        warnings=tuple(data["warnings"]),
        started_at=_to_dt(data["started_at"]),
        completed_at=_to_dt(data["completed_at"]),
        total_duration_ms=data["total_duration_ms"],
        error_message=data["error_message"],
        error_code=data["error_code"],
        failed_step=None if failed_step is None else StepType(failed_step),
    )


def run_from_dict(envelope: Any) -> ConsolidationRun:
    run_id = None
    if isinstance(envelope, dict) and isinstance(envelope.get("data"), dict):
        run_id = envelope["data"].get("id")
    return unwrap(envelope, _run_from_payload, "run", run_id)


# ---------------------------------------------------------------------------
# Elimination rules
# ---------------------------------------------------------------------------


def rule_to_dict(rule: EliminationRule) -> dict[str, Any]:
    return wrap({
        "id": rule.id,
        "group_id": rule.group_id,
        "name": rule.name,
        "description": rule.description,
        "elimination_type": rule.elimination_type.value,
        "trigger_conditions": [trigger_condition_to_dict(c) for c in rule.trigger_conditions],
        "source_accounts": [selector_to_dict(s) for s in rule.source_accounts],
        "target_accounts": [selector_to_dict(s) for s in rule.target_accounts],
        "debit_account_id": rule.debit_account_id,
        "credit_account_id": rule.credit_account_id,
        "is_automatic": rule.is_automatic,
        "priority": rule.priority,
        "is_active": rule.is_active,
    })


def _rule_from_payload(data: dict[str, Any]) -> EliminationRule:
    return EliminationRule(
        id=data["id"],
        group_id=data["group_id"],
        name=data["name"],
        description=data["description"],
        elimination_type=EliminationType(data["elimination_type"]),
        trigger_conditions=tuple(
            trigger_condition_from_dict(c) for c in data["trigger_conditions"]
        ),
        source_accounts=tuple(selector_from_dict(s) for s in data["source_accounts"]),
        target_accounts=tuple(selector_from_dict(s) for s in data["target_accounts"]),
        debit_account_id=data["debit_account_id"],
        credit_account_id=data["credit_account_id"],
        is_automatic=bool(data["is_automatic"]),
        priority=int(data["priority"]),
        is_active=bool(data["is_active"]),
    )


def rule_from_dict(envelope: Any) -> EliminationRule:
    return unwrap(envelope, _rule_from_payload, "elimination_rule")
