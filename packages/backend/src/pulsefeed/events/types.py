"""Contract event types and channel labels.

Producers label each discovered contract with the channel it was found on.
The current labels are "basic" and "premium"; older producers wrote "calls"
and "nitro", which mean the same thing and are mapped on every read.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

BASIC = "basic"
PREMIUM = "premium"

# Legacy label -> current label
LEGACY_LABELS = {
    "calls": BASIC,
    "nitro": PREMIUM,
}

ALLOWED_LABELS = frozenset({BASIC, PREMIUM, *LEGACY_LABELS})


def normalize_channel(raw: Any) -> Optional[str]:
    """Map a stored channel label to its current form.

    Missing labels default to basic. Unknown labels return None so the
    caller can drop the record.
    """
    label = str(raw if raw is not None else BASIC).strip().lower() or BASIC
    if label not in ALLOWED_LABELS:
        return None
    return LEGACY_LABELS.get(label, label)


@dataclass(frozen=True)
class ContractEvent:
    """A discovered contract. Immutable once appended to the store."""

    address: str
    channel: str
    timestamp: int  # epoch ms

    def to_payload(self) -> str:
        """Serialize the way producers write events."""
        return json.dumps({
            "address": self.address,
            "channelName": self.channel,
            "timestamp": self.timestamp,
        })

    def as_row(self) -> list:
        return [self.address, self.channel, self.timestamp]


@dataclass
class EventSequence:
    """Primary query result: events newest-first, one per address."""

    events: list[ContractEvent] = field(default_factory=list)

    def to_json(self) -> list[list]:
        return [event.as_row() for event in self.events]


@dataclass
class LegacyMapping:
    """Fallback query result: address -> channel, no order, no timestamps."""

    mapping: dict[str, str] = field(default_factory=dict)

    def to_json(self) -> dict[str, str]:
        return dict(self.mapping)
