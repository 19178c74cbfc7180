"""Turns one raw log line into a normalized record."""

import json
import logging
from typing import Optional

from log_ingest.models import NormalizedRecord, ParseFailure, ParsedRecord, RecordContext
from log_ingest.sanitizer import sanitize
from log_ingest.timestamps import derive_log_timestamp, derive_query_start_time

logger = logging.getLogger(__name__)


def clean_line(line: str) -> str:
    """Trim and drop JSON-array punctuation around a single exported element."""
    cleaned = line.strip()
    if cleaned.startswith("["):
        cleaned = cleaned[1:]
    cleaned = cleaned.rstrip()
    if cleaned.endswith(","):
        cleaned = cleaned[:-1].rstrip()
    if cleaned.endswith("]"):
        cleaned = cleaned[:-1]
    return cleaned.strip()


def normalize(line: str, context: RecordContext) -> Optional[NormalizedRecord]:
    """Normalize *line*; ``None`` when it holds nothing but punctuation.

    Never raises: anything that is not a JSON object becomes a
    :class:`ParseFailure` carrying the raw line.
    """
    cleaned = clean_line(line)
    if not cleaned:
        return None

    try:
        doc = json.loads(cleaned)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.debug("Failed to parse JSON line %d of %s: %s",
                     context.line_number, context.source_file, exc)
        return ParseFailure(original_line=line, context=context)

    if not isinstance(doc, dict):
        logger.debug("Line %d of %s is JSON but not an object",
                     context.line_number, context.source_file)
        return ParseFailure(original_line=line, context=context)

    try:
        doc = sanitize(doc)
    except RecursionError:
        logger.debug("Line %d of %s is nested too deeply",
                     context.line_number, context.source_file)
        return ParseFailure(original_line=line, context=context)

    log_timestamp = derive_log_timestamp(doc)
    query_start_time = derive_query_start_time(doc, log_timestamp)

    return ParsedRecord(
        fields=doc,
        log_timestamp=log_timestamp,
        query_start_time=query_start_time,
        context=context,
    )
