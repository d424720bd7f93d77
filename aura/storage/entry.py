"""
Log Entry Model

A single timestamped experiment event. This is both the on-disk JSON Lines
record and the document body posted to the remote store.
"""

from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from aura.common.timestamp import now_ms

Scalar = Union[str, int, float, bool, None]


class LogEntry(BaseModel):
    """
    Immutable experiment event.

    `timestamp` is capture time in epoch milliseconds, assigned once when the
    entry is created and never changed afterwards.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    experiment_id: str
    user_id: str
    condition: str
    event_name: str
    timestamp: int
    payload: dict[str, Scalar] = Field(default_factory=dict)

    @classmethod
    def capture(
        cls,
        experiment_id: str,
        user_id: str,
        condition: str,
        event_name: str,
        payload: dict[str, Scalar] | None = None,
    ) -> "LogEntry":
        """Create an entry stamped with the current wall-clock time."""
        return cls(
            experiment_id=experiment_id,
            user_id=user_id,
            condition=condition,
            event_name=event_name,
            timestamp=now_ms(),
            payload=dict(payload or {}),
        )

    def to_json_line(self) -> str:
        """Single-line JSON serialization (no trailing newline)."""
        return self.model_dump_json()

    @classmethod
    def from_json_line(cls, line: str) -> "LogEntry":
        """Decode one JSON Lines record. Raises pydantic.ValidationError."""
        return cls.model_validate_json(line)
