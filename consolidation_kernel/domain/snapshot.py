"""Per-run snapshot of everything a consolidation run reads."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from consolidation_kernel.domain.accounts import AccountBalance, AccountCatalog
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    EliminationRule,
)


@dataclass(frozen=True)
class RunSnapshot:
    """
    Read-only inputs captured at the Validate step.

    Contract:
        Every later step reads the group, members, rules, account catalog and
        member balances from this object only, so concurrent edits to the
        configuration cannot change a run that is already in flight.

    ``members`` includes the parent company as an implicit 100%-owned member
    when the group does not list it explicitly.
    """

    group: ConsolidationGroup
    members: tuple[ConsolidationMember, ...]
    rules: tuple[EliminationRule, ...]
    catalog: AccountCatalog
    balances: Mapping[str, tuple[AccountBalance, ...]]
    taken_at: datetime

    @property
    def member_map(self) -> dict[str, ConsolidationMember]:
        return {m.company_id: m for m in self.members}
