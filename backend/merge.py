"""Reconcile the remote record list with the local one."""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def merge_records(
    authoritative: Sequence[Record],
    local: Sequence[Record],
    key: str = "id",
    sort_key: Optional[Callable[[Record], Any]] = None,
    reverse: bool = False,
) -> List[Record]:
    """Merge two record lists keyed by ``key``.

    The authoritative copy wins for shared ids; fields it leaves missing or
    None are taken from the local copy. Authoritative order comes first,
    local-only records follow in local order, unless ``sort_key`` is given.
    """
    local_by_key = {r[key]: r for r in local if r.get(key) is not None}
    merged: List[Record] = []
    seen = set()
    for rec in authoritative:
        rid = rec.get(key)
        if rid is None or rid in seen:
            continue
        seen.add(rid)
        base = dict(local_by_key.get(rid, {}))
        base.update({k: v for k, v in rec.items() if v is not None})
        merged.append(base)
    for rec in local:
        rid = rec.get(key)
        if rid is None or rid in seen:
            continue
        seen.add(rid)
        merged.append(dict(rec))
    if sort_key is not None:
        merged.sort(key=sort_key, reverse=reverse)
    return merged


def validate_records(raw: Sequence[Any], model: Type[BaseModel], source: str = "remote") -> List[Record]:
    """Keep only records that satisfy ``model``; log and drop the rest."""
    valid: List[Record] = []
    for item in raw:
        try:
            valid.append(model.model_validate(item).model_dump(mode="json", exclude_unset=True))
        except ValidationError as e:
            logger.warning(f"Dropping malformed {source} {model.__name__} record: {e.error_count()} error(s)")
    return valid


def load_with_fallback(
    fetch_remote: Callable[[], Any],
    local: Sequence[Record],
    fallback: Sequence[Record] = (),
    model: Optional[Type[BaseModel]] = None,
    key: str = "id",
    sort_key: Optional[Callable[[Record], Any]] = None,
    reverse: bool = False,
) -> List[Record]:
    """Remote merged over local, else local alone, else the built-in list.

    Never raises: an unreachable remote, a payload that is not a list, or a
    non-empty list with no valid record leaves the local records as the
    complete answer.
    """
    try:
        remote = fetch_remote()
    except Exception as e:
        logger.warning(f"Remote fetch failed, using local records: {e!r}")
        remote = None
    if remote is not None and not isinstance(remote, list):
        logger.warning(f"Remote returned {type(remote).__name__}, expected list; using local records")
        remote = None

    local_records = list(local)
    if model is not None:
        local_records = validate_records(local_records, model, source="local")

    if remote and model is not None:
        remote = validate_records(remote, model) or None
        if remote is None:
            logger.warning(f"Every remote {model.__name__} record was malformed; using local records")

    if remote is None:
        records = local_records or [dict(r) for r in fallback]
        if sort_key is not None:
            records = sorted(records, key=sort_key, reverse=reverse)
        return records

    return merge_records(remote, local_records, key=key, sort_key=sort_key, reverse=reverse)
