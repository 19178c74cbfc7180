"""Structural clean-up of parsed log documents before storage.

The two passes are separate functions and must run in this order:

1. :func:`remove_incomplete_cluster_time` matches on the original
   ``$clusterTime`` / ``$timestamp`` names.
2. :func:`strip_reserved_prefix` renames those keys, after which the first
   pass can no longer recognise them.
"""

from typing import Any

RESERVED_PREFIX = "$"

CLUSTER_TIME_KEY = "$clusterTime"

# $clusterTime -> clusterTime -> $timestamp -> t (seconds)
CLUSTER_TIME_PATH = ("clusterTime", "$timestamp", "t")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def resolve_path(obj: Any, path: tuple) -> Any:
    """Follow *path* through nested dicts; ``None`` if any level is missing."""
    for key in path:
        if not isinstance(obj, dict) or key not in obj:
            return None
        obj = obj[key]
    return obj


def _has_complete_cluster_time(cluster_time: Any) -> bool:
    return is_number(resolve_path(cluster_time, CLUSTER_TIME_PATH))


def remove_incomplete_cluster_time(doc: dict) -> dict:
    """Drop ``$clusterTime`` at the root or under ``attr.command`` when partial.

    Mutates and returns *doc*. Complete cluster times are left untouched.
    """
    holders = [doc]
    command = resolve_path(doc, ("attr", "command"))
    if isinstance(command, dict):
        holders.append(command)

    for holder in holders:
        if CLUSTER_TIME_KEY in holder and not _has_complete_cluster_time(holder[CLUSTER_TIME_KEY]):
            del holder[CLUSTER_TIME_KEY]
    return doc


def strip_reserved_prefix(value: Any) -> Any:
    """Return a copy of *value* with leading ``$`` characters removed from every key.

    Walks nested objects and arrays depth-first. Values are not changed, and
    keys without the prefix keep their name, so a second pass is a no-op.
    """
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if isinstance(key, str) and key.startswith(RESERVED_PREFIX):
                key = key.lstrip(RESERVED_PREFIX)
            cleaned[key] = strip_reserved_prefix(item)
        return cleaned
    if isinstance(value, list):
        return [strip_reserved_prefix(item) for item in value]
    return value


def sanitize(doc: dict) -> dict:
    """Run both passes in their required order."""
    return strip_reserved_prefix(remove_incomplete_cluster_time(doc))
