"""Per-upload statistics over the records a batch produced."""

from dataclasses import dataclass
from typing import Iterable

from log_ingest.models import NormalizedRecord

# Fields of the structured server log format: t=time, s=severity,
# c=component, ctx=context (thread/connection), msg=message.
_PRESENCE_FIELDS = {
    "with_timestamp": "t",
    "with_level": "s",
    "with_component": "c",
    "with_context": "ctx",
    "with_message": "msg",
}


@dataclass
class UploadStats:
    total_entries: int = 0
    successfully_parsed: int = 0
    parse_errors: int = 0
    with_timestamp: int = 0
    with_level: int = 0
    with_component: int = 0
    with_context: int = 0
    with_message: int = 0

    def to_dict(self) -> dict:
        return {
            "totalEntries": self.total_entries,
            "successfullyParsed": self.successfully_parsed,
            "parseErrors": self.parse_errors,
            "withTimestamp": self.with_timestamp,
            "withLevel": self.with_level,
            "withComponent": self.with_component,
            "withContext": self.with_context,
            "withMessage": self.with_message,
        }


def compute_upload_stats(records: Iterable[NormalizedRecord]) -> UploadStats:
    """Consume records and count parse outcomes and field coverage."""
    stats = UploadStats()
    for record in records:
        stats.total_entries += 1
        if record.parse_error:
            stats.parse_errors += 1
            continue
        stats.successfully_parsed += 1
        for attr, key in _PRESENCE_FIELDS.items():
            if record.fields.get(key) is not None:
                setattr(stats, attr, getattr(stats, attr) + 1)
    return stats
