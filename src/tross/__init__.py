"""Tross kernel utilities."""

from .config_fingerprint import canonical_dumps, document_fingerprint
from .labels import pluralize_label, title_case

__all__ = [
    "canonical_dumps",
    "document_fingerprint",
    "pluralize_label",
    "title_case",
]
