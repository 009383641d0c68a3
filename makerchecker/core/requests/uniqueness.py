"""Duplicate detection for pending requests.

Two requests are duplicates when they propose the same kind of change to the
same target (subject or executable) and agree on every comparison field.
The comparison fields are the ``unique_by`` fields present in the new
payload, or the whole payload when none of them are present.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from makerchecker.common.logger import get_logger
from makerchecker.db.models.request import MakerCheckerRequest

from .store import RequestStore
from .variants import RequestVariant

logger = get_logger("uniqueness")

_MISSING = object()


def comparison_fields(
    payload: Dict[str, Any], unique_by: Optional[Iterable[str]] = None
) -> Dict[str, Any]:
    """Select the payload values a new request is compared on.

    Args:
        payload: Payload of the new request
        unique_by: Field names to restrict the comparison to

    Returns:
        Mapping of field name to value
    """
    if unique_by:
        selected = {key: payload[key] for key in unique_by if key in payload}
        if selected:
            return selected
    return dict(payload)


def fingerprint(variant: RequestVariant, fields: Dict[str, Any]) -> str:
    """Stable hash over the request target and its comparison fields."""
    document = {
        "type": variant.request_type.value,
        "subject_type": variant.subject_type,
        "subject_id": variant.subject_id,
        "executable": variant.executable,
        "fields": fields,
    }
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _payload_clause(key: str, value: Any):
    """SQL equality on one payload key, or None if it must be compared in Python."""
    element = MakerCheckerRequest.payload[key]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    return None


class UniquenessChecker:
    """Answers "is an equivalent request already pending?"."""

    def __init__(self, store: RequestStore):
        self.store = store

    def exists(self, variant: RequestVariant, fields: Dict[str, Any]) -> bool:
        """
        Check for a pending request matching ``variant`` on ``fields``.

        Scalar fields are filtered in SQL; ``None``, lists and mappings are
        compared on the rows that survive the SQL filter.

        Args:
            variant: The proposed change
            fields: Comparison fields (see ``comparison_fields``)

        Returns:
            True if an equivalent pending request exists
        """
        query = self.store.pending_candidates(variant)
        deferred = {}

        for key, value in fields.items():
            clause = _payload_clause(key, value)
            if clause is None:
                deferred[key] = value
            else:
                query = query.filter(clause)

        if not deferred:
            found = self.store.db.query(query.exists()).scalar()
        else:
            found = any(
                all((candidate.payload or {}).get(key, _MISSING) == value for key, value in deferred.items())
                for candidate in query.all()
            )

        if found:
            logger.debug(
                f"Pending {variant.request_type.value} request already exists "
                f"for fields {sorted(fields)}"
            )
        return bool(found)
