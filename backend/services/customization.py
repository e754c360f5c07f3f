"""
Customization sideband

Stripe line items cannot carry per-order free text, and the line items returned
with a completed session do not reliably expose product metadata. Customizations
therefore travel twice: on the inline line item's product metadata, and as flat
session metadata described by the schema below. Checkout encodes with
``encode_session_metadata``; the webhook decodes with ``decode_session_metadata``.
"""
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Sequence

from core.stripe_client import stripe_field
from models.catalog import ENGRAVING_MARKER

COUNT_KEY = "customizations_count"
FIELD_KEYS = {
    "target_name": "product",
    "text": "text",
    "logo_url": "logo",
}
# Stripe: at most 50 metadata keys per object, values up to 500 characters.
# Three keys per customization plus the session's own bookkeeping keys.
MAX_CUSTOMIZATIONS = 15
METADATA_VALUE_LIMIT = 500


def _key(index: int, field_name: str) -> str:
    return f"customization_{index}_{FIELD_KEYS[field_name]}"


def _bounded(value: Optional[str]) -> str:
    return (value or "")[:METADATA_VALUE_LIMIT]


@dataclass(frozen=True)
class CustomizationEntry:
    target_name: str
    text: Optional[str] = None
    logo_url: Optional[str] = None


def customization_line_name(target_name: str) -> str:
    return f"{ENGRAVING_MARKER} {target_name}"


def target_from_line_name(line_name: Optional[str]) -> Optional[str]:
    """'[Gravure] Mug' -> 'Mug'; None when the line is not a customization."""
    if not line_name or not line_name.startswith(ENGRAVING_MARKER):
        return None
    return line_name[len(ENGRAVING_MARKER):].strip()


def line_item_metadata(entry: CustomizationEntry) -> Dict[str, str]:
    metadata = {"target": _bounded(entry.target_name)}
    if entry.text:
        metadata["text"] = _bounded(entry.text)
    if entry.logo_url:
        metadata["logo_url"] = _bounded(entry.logo_url)
    return metadata


def encode_session_metadata(entries: Sequence[CustomizationEntry]) -> Dict[str, str]:
    if len(entries) > MAX_CUSTOMIZATIONS:
        raise ValueError(f"At most {MAX_CUSTOMIZATIONS} customizations fit in session metadata")

    metadata = {COUNT_KEY: str(len(entries))}
    for index, entry in enumerate(entries):
        metadata[_key(index, "target_name")] = _bounded(entry.target_name)
        metadata[_key(index, "text")] = _bounded(entry.text)
        metadata[_key(index, "logo_url")] = _bounded(entry.logo_url)
    return metadata


def decode_session_metadata(metadata: Any) -> List[CustomizationEntry]:
    """Inverse of encode_session_metadata; tolerant of missing or malformed keys."""
    try:
        count = int(stripe_field(metadata, COUNT_KEY, 0))
    except (TypeError, ValueError):
        return []

    entries = []
    for index in range(min(count, MAX_CUSTOMIZATIONS)):
        target_name = stripe_field(metadata, _key(index, "target_name"))
        if not target_name:
            continue
        entries.append(CustomizationEntry(
            target_name=target_name,
            text=stripe_field(metadata, _key(index, "text")) or None,
            logo_url=stripe_field(metadata, _key(index, "logo_url")) or None,
        ))
    return entries


class CustomizationLookup:
    """
    Decoded customizations keyed by target product name. Entries for the same
    target are handed out in encoding order, which is also line item order.
    """

    def __init__(self, entries: Sequence[CustomizationEntry]):
        self._by_target: Dict[str, Deque[CustomizationEntry]] = defaultdict(deque)
        for entry in entries:
            self._by_target[entry.target_name].append(entry)

    @classmethod
    def from_session_metadata(cls, metadata: Any) -> "CustomizationLookup":
        return cls(decode_session_metadata(metadata))

    def take(self, target_name: str) -> Optional[CustomizationEntry]:
        queue = self._by_target.get(target_name)
        if not queue:
            return None
        return queue.popleft()

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._by_target.values())
