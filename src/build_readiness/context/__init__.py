"""Context building: turn stored work items into LLM-ready release context."""

from build_readiness.context.enrichment import (
    EnhancedRow,
    SeverityStats,
    enhance_rows,
    group_by_themes,
    identify_hot_items,
    severity_stats,
)

__all__ = [
    "EnhancedRow",
    "SeverityStats",
    "enhance_rows",
    "group_by_themes",
    "identify_hot_items",
    "severity_stats",
]
