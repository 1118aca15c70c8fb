from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from .models import EntityCategory, SignalSet

logger = logging.getLogger(__name__)

_ENTITY_URN_PREFIX = "urn:entity:"
_TAG_URN_PREFIX = "urn:tag:"
_AUDIENCE_URN_PREFIX = "urn:audience:"
_SHORT_CODE_RE = re.compile(r"^E[0-9A-Za-z_-]+$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def is_valid_entity_id(value: object) -> bool:
    """Namespaced URN, short code (``E...``) or UUID."""
    if not isinstance(value, str) or not value.strip():
        return False
    value = value.strip()
    return (
        value.startswith(_ENTITY_URN_PREFIX)
        or bool(_SHORT_CODE_RE.match(value))
        or is_uuid(value)
    )


def is_valid_tag_id(value: object) -> bool:
    return isinstance(value, str) and value.strip().startswith(_TAG_URN_PREFIX)


def is_valid_audience_id(value: object) -> bool:
    return isinstance(value, str) and value.strip().startswith(_AUDIENCE_URN_PREFIX)


def _keep(values: Iterable[object], check, kind: str) -> list[str]:
    kept: list[str] = []
    for value in values:
        if not check(value):
            logger.debug("Dropping invalid %s signal id %r", kind, value)
            continue
        cleaned = value.strip()
        if cleaned not in kept:
            kept.append(cleaned)
    return kept


def clean_signals(signals: SignalSet) -> SignalSet:
    """Return a copy of ``signals`` holding only well-formed, unique ids."""
    return SignalSet(
        entity_ids=_keep(signals.entity_ids, is_valid_entity_id, "entity"),
        tag_ids=_keep(signals.tag_ids, is_valid_tag_id, "tag"),
        audience_ids=_keep(signals.audience_ids, is_valid_audience_id, "audience"),
    )


def split_signal_ids(ids: Iterable[str]) -> SignalSet:
    """Sort a flat list of resolved ids into entity and tag buckets."""
    entity_ids: list[str] = []
    tag_ids: list[str] = []
    for value in ids:
        if is_valid_tag_id(value):
            tag_ids.append(value)
        else:
            entity_ids.append(value)
    return clean_signals(SignalSet(entity_ids=entity_ids, tag_ids=tag_ids))


def is_compatible(signal_id: str, target: EntityCategory | None) -> bool:
    """Whether ``signal_id`` may be sent as a signal for ``target``.

    Only namespaced entity URNs carry their category, so only those can be
    rejected. Short codes and UUIDs are accepted for any target.
    """
    if target is None:
        return True
    if signal_id.startswith(_ENTITY_URN_PREFIX):
        parts = signal_id.split(":")
        return len(parts) > 2 and parts[2] == target.segment
    return True
