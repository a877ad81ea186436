#!/usr/bin/env python3
# CUI // SP-CTI
"""External commit ingestion task.

The engine never talks to the source-hosting API itself. A caller supplies
an awaitable ``fetch`` (the adapter owns timeouts, paging and retries);
``run_ingestion`` awaits it, normalizes the payloads, and submits one batch
through the session's serialized write path on a worker thread so the event
loop is never blocked by the session lock.

Cancelling the task while ``fetch`` is pending submits nothing.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Union

from assessment_engine.schemas.audit import ExternalEvent, SourceSystem

logger = logging.getLogger("assessment_engine.project.ingestion")

Fetch = Callable[[], Awaitable[Iterable[Dict[str, Any]]]]


def normalize_commit(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map a GitHub-style commit object to the external event shape.

    Payloads already in ``externalId`` / ``external_id`` form pass through.
    Missing fields come back empty so the ledger can reject the event.
    """
    if not isinstance(payload, dict):
        return {"external_id": "", "timestamp": "", "raw_payload": payload}
    if "externalId" in payload or "external_id" in payload:
        return payload

    commit = payload.get("commit") or {}
    author = commit.get("author") or {}
    committer = commit.get("committer") or {}
    login = (payload.get("author") or {}).get("login")
    message = str(commit.get("message") or "")
    return {
        "external_id": str(payload.get("sha") or ""),
        "timestamp": str(author.get("date") or committer.get("date") or ""),
        "author_name": str(author.get("name") or login or ""),
        "summary": message.splitlines()[0] if message else "",
        "raw_payload": payload,
    }


async def run_ingestion(
    session,
    fetch: Fetch,
    source_system: Union[SourceSystem, str] = SourceSystem.EXTERNAL_VCS,
) -> List:
    """Fetch external commits and append them as one batch.

    Returns:
        The per-event IngestResult list, or an empty list if the session
        rejected the batch.
    """
    payloads = await fetch()
    events: List[Union[ExternalEvent, Dict[str, Any]]] = [normalize_commit(p) for p in payloads]
    logger.info("Fetched %d external event(s) from %s",
                len(events), getattr(source_system, "value", source_system))

    result = await asyncio.to_thread(session.ingest_external, events, source_system)
    if not result.ok:
        logger.warning("Ingestion batch rejected: %s", result.error)
        return []
    return list(result.value)
