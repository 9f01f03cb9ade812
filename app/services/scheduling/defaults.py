"""Optimizer defaults taken from application settings."""

from app.core.config import settings

from .types import ConstraintRules, OptimizationOptions, TagMatchMode


def rules_from_settings() -> ConstraintRules:
    return ConstraintRules(
        tag_match=TagMatchMode(settings.OPTIMIZER_TAG_MATCH),
        max_consecutive_days=settings.OPTIMIZER_MAX_CONSECUTIVE_DAYS,
        min_rest_hours=settings.OPTIMIZER_MIN_REST_HOURS,
    )


def options_from_settings(**overrides) -> OptimizationOptions:
    values = dict(
        apply_local_search=settings.OPTIMIZER_APPLY_LOCAL_SEARCH,
        max_local_search_iterations=settings.OPTIMIZER_MAX_LOCAL_SEARCH_ITERATIONS,
        timeout_ms=settings.OPTIMIZER_TIMEOUT_MS,
        rules=rules_from_settings(),
        note=settings.AUTO_ASSIGN_NOTE,
    )
    values.update({k: v for k, v in overrides.items() if v is not None})
    return OptimizationOptions(**values)
