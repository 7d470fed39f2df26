"""
Account selector resolver.

Responsibility:
    Resolve an AccountSelector to the concrete set of account ids it denotes
    in an AccountCatalog snapshot.

Architecture position:
    Engines -- pure, zero I/O.  Leaf of the engine dependency graph; used by
    the elimination matcher and the validator.

Invariants enforced:
    - ById fails loudly on an unknown account (UnknownAccountError).
    - ByRange is inclusive on both ends and compares account numbers as
      strings; an empty range is a valid, empty result.
    - ByCategory matches active accounts only, by exact category.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import assert_never

from consolidation_kernel.domain.accounts import AccountCatalog
from consolidation_kernel.domain.selectors import (
    AccountSelector,
    ByCategory,
    ById,
    ByRange,
)
from consolidation_kernel.exceptions import UnknownAccountError


def resolve(selector: AccountSelector, catalog: AccountCatalog) -> frozenset[str]:
    """Return the ids of the accounts selected by ``selector``.

    Raises:
        UnknownAccountError: ``ById`` names an account absent from the catalog.
    """
    match selector:
        case ById(account_id=account_id):
            if account_id not in catalog:
                raise UnknownAccountError(account_id)
            return frozenset({account_id})
        case ByRange(from_account_number=low, to_account_number=high):
            return frozenset(
                a.account_id for a in catalog if low <= a.account_number <= high
            )
        case ByCategory(category=category):
            return frozenset(
                a.account_id
                for a in catalog
                if a.is_active and a.category == category
            )
        case _:
            assert_never(selector)


def resolve_all(
    selectors: Iterable[AccountSelector], catalog: AccountCatalog,
) -> frozenset[str]:
    """Union of ``resolve`` over several selectors."""
    result: set[str] = set()
    for selector in selectors:
        result |= resolve(selector, catalog)
    return frozenset(result)
