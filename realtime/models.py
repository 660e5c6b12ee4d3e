"""
Purpose: Data models for the realtime sync channel.
What it does:
- BroadcastRecord: the single row a broadcaster publishes (keyed by entity_id)
- Connectivity: the per-role connection signal shown to the user
Row (de)serialization for the store lives here too.

Rule: No store calls, no subscriptions. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from tracking.models import MovementStatus, Position


class Connectivity(str, Enum):
    """
    CONNECTING is the starting point (no ack / no publish outcome yet) so the
    UI can tell "no data yet" apart from "lost the channel".
    """
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class BroadcastRecord:
    """
    Latest known position + status of one broadcaster.
    """
    entity_id: str
    position: Position
    status: MovementStatus
    updated_at_ms: int

    def to_row(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "latitude": self.position.latitude,
            "longitude": self.position.longitude,
            "status": self.status.value,
            "updated_at": self.updated_at_ms,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> BroadcastRecord:
        """
        Raises ValueError on rows that do not look like a broadcast.
        """
        try:
            return cls(
                entity_id=str(row["entity_id"]),
                position=Position(float(row["latitude"]), float(row["longitude"])),
                status=MovementStatus(row["status"]),
                updated_at_ms=int(row["updated_at"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed broadcast row: {row!r}") from e

    def same_state_as(self, other: BroadcastRecord) -> bool:
        """True when only updated_at differs."""
        return (
            self.entity_id == other.entity_id
            and self.position == other.position
            and self.status == other.status
        )
