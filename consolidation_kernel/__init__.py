"""
Consolidation Kernel

Shared foundation for the group consolidation engine:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with run-scoped context
- Immutable domain types (groups, members, rules, runs)
- Exact Decimal money with explicit rounding
- Versioned serialization contract for persisted run data
"""

__version__ = "0.1.0"
