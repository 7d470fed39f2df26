"""
consolidation_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure consolidation engines: the run
    orchestrator, the collaborator protocols it consumes, and reference
    adapters (in-memory and SQLAlchemy) for those protocols.  This is the
    only layer that reads the wall clock or touches a database session.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

        consolidation_services/ -> consolidation_engines/  (allowed)
        consolidation_services/ -> consolidation_kernel/   (allowed)
        consolidation_engines/  -> consolidation_services/ (FORBIDDEN)
        consolidation_kernel/   -> consolidation_services/ (FORBIDDEN)

Audit relevance:
    This package is the canonical import surface for external consumers.
"""

from consolidation_kernel.logging_config import get_logger

logger = get_logger("services")

from consolidation_services.interfaces import (  # noqa: E402
    AuditSink,
    BalanceProvider,
    CurrencyTranslationService,
    GroupCatalogProvider,
    RunStore,
)
from consolidation_services.memory import (  # noqa: E402
    FixedRateTranslationService,
    InMemoryBalances,
    InMemoryGroupCatalog,
    RecordingAuditSink,
)
from consolidation_services.run_orchestrator import (  # noqa: E402
    CancellationToken,
    ConsolidationRunOrchestrator,
    StepListener,
)
from consolidation_services.run_store import InMemoryRunStore  # noqa: E402

__all__ = [
    "AuditSink",
    "BalanceProvider",
    "CancellationToken",
    "ConsolidationRunOrchestrator",
    "CurrencyTranslationService",
    "FixedRateTranslationService",
    "GroupCatalogProvider",
    "InMemoryBalances",
    "InMemoryGroupCatalog",
    "InMemoryRunStore",
    "RecordingAuditSink",
    "RunStore",
    "StepListener",
]
