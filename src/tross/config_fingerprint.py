"""Content fingerprints for loaded configuration documents."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_dumps(document: Any) -> str:
    """Serialize a parsed config document with sorted keys and no whitespace.

    Non-finite floats raise ``ValueError``.
    """
    return json.dumps(document, sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def document_fingerprint(document: Any) -> str:
    """Return ``sha256:<hex>`` over the canonical form of a document."""
    data = canonical_dumps(document).encode("utf-8")
    return f"sha256:{hashlib.sha256(data).hexdigest()}"
