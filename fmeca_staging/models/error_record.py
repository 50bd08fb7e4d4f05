from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the staging error log.

One JSON Lines record per recoverable failure: a dropped direct edit, a failed
accept, a rejected AI proposal. ``row`` is the preview row index the failure
relates to, or -1 when the failure is not tied to a row.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        operation: edit / delete / accept / propose / stage
        row: Preview row index, -1 when unknown or not applicable
        error_type: UPPER_SNAKE_CASE classification (ROW_NOT_FOUND, PERSISTENCE_FAILED, ...)
        message: Human-readable detail
    """
    timestamp: str
    operation: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(operation: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            operation=operation,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
