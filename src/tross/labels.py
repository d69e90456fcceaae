"""Human-readable labels derived from snake_case identifiers."""

from __future__ import annotations


def title_case(value: str) -> str:
    parts = [p for p in str(value or "").replace("-", "_").split("_") if p]
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def pluralize_label(value: str) -> str:
    """English plural for a display label (Work Order -> Work Orders)."""
    if not value:
        return value
    lower = value.lower()
    if lower.endswith("y") and len(value) > 1 and lower[-2] not in "aeiou":
        return value[:-1] + "ies"
    if lower.endswith(("s", "x", "ch", "sh")):
        return value + "es"
    return value + "s"
