#!/usr/bin/env python3
# CUI // SP-CTI
"""Append-only, hash-chained audit ledger.

No update or delete operations exist; entries are immutable once appended.

Hash scheme (SHA-256):
    content_hash = sha256(canonical JSON of the entry, sorted keys, compact)
    chain_hash   = sha256(prev_chain_hash + content_hash)
    genesis      = "0" * 64

Every record stores all three values. An entry verifies when its recomputed
content hash, its prev_hash (equal to the previous record's stored
chain_hash) and its recomputed chain hash all match. The integrity score is
the share of entries that verify, so a single altered entry lowers the score
in proportion instead of zeroing it.
"""

import hashlib
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from assessment_engine.compat.datetime_utils import parse_timestamp, to_iso, utc_now
from assessment_engine.resilience.errors import (
    IngestionError,
    IntegrityViolation,
    LedgerAppendError,
    StaleTailError,
)
from assessment_engine.schemas.audit import (
    Actor,
    AuditEntryDraft,
    AuditLogEntry,
    DataClassification,
    ExternalEvent,
    IngestResult,
    LedgerRecord,
    SourceSystem,
    VcsCommitDetails,
    copy_details,
    details_from_dict,
)

logger = logging.getLogger("assessment_engine.audit.audit_ledger")

GENESIS_HASH = "0" * 64
VCS_COMMIT_EVENT = "VCS_COMMIT"

INGEST_APPENDED = "appended"
INGEST_DUPLICATE = "duplicate"
INGEST_REJECTED = "rejected"


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


MASKED_VALUE = "***MASKED***"
# Matched anywhere in a lowercased key
SENSITIVE_KEY_PARTS = ("password", "passwd", "secret", "token", "api_key", "apikey")
# Matched only as a whole word of the key ("github_pat", "privateKey"; not "path")
SENSITIVE_KEY_WORDS = frozenset({"key", "keys", "pat", "pwd"})

_KEY_WORD_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


def is_sensitive_key(key) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    if any(part in lowered for part in SENSITIVE_KEY_PARTS):
        return True
    return any(word.lower() in SENSITIVE_KEY_WORDS for word in _KEY_WORD_RE.findall(key))


def mask_sensitive(data):
    """Copy of ``data`` with the values of credential-like keys replaced.

    Walks nested dicts and lists; a sensitive key's whole value is masked,
    whatever its type.
    """
    if isinstance(data, dict):
        return {k: MASKED_VALUE if is_sensitive_key(k) else mask_sensitive(v)
                for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [mask_sensitive(v) for v in data]
    return data


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(entry: AuditLogEntry) -> str:
    return _sha256(canonical_json(entry.to_dict()))


def chain_hash(prev_hash: str, entry_hash: str) -> str:
    return _sha256(prev_hash + entry_hash)


def event_fingerprint(source_system: Union[SourceSystem, str], external_id: str,
                      timestamp: str) -> str:
    """Stable dedup key for an externally sourced event."""
    system = SourceSystem(source_system).value
    return _sha256(f"{system}|{external_id}|{timestamp}")


@dataclass
class LedgerFilter:
    """Query filter. Empty tuples mean "any"."""

    event_types: Tuple[str, ...] = ()
    actors: Tuple[Actor, ...] = ()
    source_systems: Tuple[SourceSystem, ...] = ()
    classifications: Tuple[DataClassification, ...] = ()
    since: Optional[str] = None
    until: Optional[str] = None
    text: Optional[str] = None
    limit: Optional[int] = None

    def matches(self, entry: AuditLogEntry) -> bool:
        if self.event_types and entry.event_type not in self.event_types:
            return False
        if self.actors and entry.actor not in {Actor(a) for a in self.actors}:
            return False
        if self.source_systems and entry.source_system not in {
                SourceSystem(s) for s in self.source_systems}:
            return False
        if self.classifications and entry.data_classification not in {
                DataClassification(c) for c in self.classifications}:
            return False
        recorded = parse_timestamp(entry.timestamp)
        since = parse_timestamp(self.since)
        until = parse_timestamp(self.until)
        if since and recorded and recorded < since:
            return False
        if until and recorded and recorded > until:
            return False
        if self.text:
            needle = self.text.lower()
            haystack = f"{entry.event_type} {entry.summary}".lower()
            if needle not in haystack:
                return False
        return True


@dataclass(frozen=True)
class ChainVerification:
    """Result of walking the hash chain."""

    total: int
    verified: int
    broken_entry_ids: Tuple[str, ...] = ()
    score: float = 100.0

    @property
    def intact(self) -> bool:
        return not self.broken_entry_ids

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "verified": self.verified,
            "broken_entry_ids": list(self.broken_entry_ids),
            "score": self.score,
            "intact": self.intact,
        }


class AuditLedger:
    """In-memory append-only ledger.

    Args:
        clock: Returns the current aware datetime; injectable for tests.
        default_classification: Applied when a draft leaves it unset.
        default_source_system: Applied when a draft leaves it unset.
        mask_sensitive_data: Mask credential-like keys in entry details
            before the entry is hashed.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        default_classification: DataClassification = DataClassification.INTERNAL,
        default_source_system: SourceSystem = SourceSystem.LOCAL,
        mask_sensitive_data: bool = True,
    ):
        self._clock = clock
        self.mask_sensitive_data = mask_sensitive_data
        self.default_classification = DataClassification(default_classification)
        self.default_source_system = SourceSystem(default_source_system)
        self._records: List[LedgerRecord] = []
        self._fingerprints = set()

    @classmethod
    def from_records(cls, records: Iterable[LedgerRecord], **kwargs) -> "AuditLedger":
        """Rebuild a ledger from persisted records, keeping their stored hashes."""
        ledger = cls(**kwargs)
        for record in records:
            ledger._records.append(record)
            details = record.entry.details
            if isinstance(details, VcsCommitDetails) and details.fingerprint:
                ledger._fingerprints.add(details.fingerprint)
        return ledger

    # -- read -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    @property
    def tail_hash(self) -> str:
        """Chain hash of the last record, or the genesis hash."""
        return self._records[-1].chain_hash if self._records else GENESIS_HASH

    def records(self) -> Tuple[LedgerRecord, ...]:
        return tuple(self._records)

    def entries(self) -> Tuple[AuditLogEntry, ...]:
        """All entries in append order."""
        return tuple(r.entry for r in self._records)

    def get(self, entry_id: str) -> Optional[AuditLogEntry]:
        for record in self._records:
            if record.entry.id == entry_id:
                return record.entry
        return None

    def query(self, ledger_filter: Optional[LedgerFilter] = None) -> Tuple[AuditLogEntry, ...]:
        """Matching entries, newest first."""
        ledger_filter = ledger_filter or LedgerFilter()
        matched = [r.entry for r in reversed(self._records) if ledger_filter.matches(r.entry)]
        if ledger_filter.limit is not None:
            matched = matched[:max(ledger_filter.limit, 0)]
        return tuple(matched)

    def has_fingerprint(self, fingerprint: str) -> bool:
        return fingerprint in self._fingerprints

    # -- append -----------------------------------------------------------

    def validate_draft(self, draft: AuditEntryDraft) -> None:
        """Raise LedgerAppendError if ``append`` would reject the draft."""
        if not isinstance(draft.event_type, str) or not draft.event_type.strip():
            raise LedgerAppendError("Ledger entry event_type is required", field="event_type")
        if not isinstance(draft.summary, str) or not draft.summary.strip():
            raise LedgerAppendError("Ledger entry summary is required", field="summary")
        if draft.occurred_at is None or (isinstance(draft.occurred_at, str)
                                         and not draft.occurred_at.strip()):
            raise LedgerAppendError("Ledger entry occurred_at is required", field="occurred_at")
        if parse_timestamp(draft.occurred_at) is None:
            raise LedgerAppendError(
                f"Ledger entry occurred_at '{draft.occurred_at}' is not an ISO 8601 timestamp",
                field="occurred_at",
            )
        for name, enum_cls in (("actor", Actor),
                               ("data_classification", DataClassification),
                               ("source_system", SourceSystem)):
            value = getattr(draft, name)
            if value is None and name != "actor":
                continue
            try:
                enum_cls(value)
            except ValueError:
                raise LedgerAppendError(f"Ledger entry {name} '{value}' is invalid", field=name)

    def append(self, draft: AuditEntryDraft, expected_tail: Optional[str] = None) -> str:
        """Append one entry and return its id.

        Args:
            draft: Caller-supplied content.
            expected_tail: If given, must equal ``tail_hash``; protects
                against appending on top of a history the caller never saw.

        Raises:
            LedgerAppendError: Malformed draft.
            StaleTailError: ``expected_tail`` is not the current tail.
        """
        self.validate_draft(draft)
        if expected_tail is not None and expected_tail != self.tail_hash:
            raise StaleTailError(
                "Ledger tail moved; append rejected",
                expected=expected_tail, actual=self.tail_hash,
            )

        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            timestamp=self._next_timestamp(),
            occurred_at=to_iso(parse_timestamp(draft.occurred_at)),
            event_type=draft.event_type.strip(),
            actor=Actor(draft.actor),
            summary=draft.summary.strip(),
            details=self._entry_details(draft.details),
            data_classification=DataClassification(
                draft.data_classification or self.default_classification),
            source_system=SourceSystem(draft.source_system or self.default_source_system),
        )
        prev = self.tail_hash
        entry_hash = content_hash(entry)
        self._records.append(LedgerRecord(entry=entry, content_hash=entry_hash,
                                          prev_hash=prev, chain_hash=chain_hash(prev, entry_hash)))
        if isinstance(entry.details, VcsCommitDetails) and entry.details.fingerprint:
            self._fingerprints.add(entry.details.fingerprint)
        logger.debug("Appended %s [%s] %s", entry.id, entry.event_type, entry.summary)
        return entry.id

    def _entry_details(self, details):
        if not self.mask_sensitive_data:
            return copy_details(details)
        return details_from_dict(mask_sensitive(details.to_dict()))

    def _next_timestamp(self) -> str:
        now = self._clock()
        if self._records:
            last = parse_timestamp(self._records[-1].entry.timestamp)
            if last is not None and last > parse_timestamp(now):
                now = last
        return to_iso(now)

    # -- external ingestion -----------------------------------------------

    def ingest_external(
        self,
        events: Sequence[Union[ExternalEvent, dict]],
        source_system: Union[SourceSystem, str] = SourceSystem.EXTERNAL_VCS,
        data_classification: Optional[DataClassification] = None,
    ) -> List[IngestResult]:
        """Append externally sourced commit events, skipping ones already seen.

        Each event is handled on its own: a malformed event is reported as
        ``rejected`` and logged, and the rest of the batch continues.
        """
        system = SourceSystem(source_system)
        results = []
        for raw in events:
            external_id = ""
            try:
                event = self._coerce_event(raw)
                external_id = event.external_id
                occurred = parse_timestamp(event.timestamp)
                if not external_id.strip():
                    raise IngestionError("External event has no external_id")
                if occurred is None:
                    raise IngestionError(
                        f"External event timestamp '{event.timestamp}' is not ISO 8601",
                        external_id=external_id,
                    )
                fingerprint = event_fingerprint(system, external_id, to_iso(occurred))
                if fingerprint in self._fingerprints:
                    results.append(IngestResult(external_id=external_id, status=INGEST_DUPLICATE))
                    continue
                author = event.author_name.strip() or "unknown"
                summary = event.summary.strip() or f"Commit {external_id}"
                entry_id = self.append(AuditEntryDraft(
                    event_type=VCS_COMMIT_EVENT,
                    actor=Actor.SYSTEM,
                    summary=f"{summary} ({author})",
                    occurred_at=to_iso(occurred),
                    details=VcsCommitDetails(external_id=external_id, author_name=author,
                                             fingerprint=fingerprint,
                                             raw_payload=event.raw_payload),
                    data_classification=data_classification,
                    source_system=system,
                ))
                results.append(IngestResult(external_id=external_id, status=INGEST_APPENDED,
                                            entry_id=entry_id))
            except (IngestionError, LedgerAppendError) as exc:
                logger.warning("Rejected external event %r from %s: %s",
                               external_id or "?", system.value, exc)
                results.append(IngestResult(external_id=external_id, status=INGEST_REJECTED,
                                            error=str(exc)))
        appended = sum(1 for r in results if r.status == INGEST_APPENDED)
        logger.info("Ingested %d/%d event(s) from %s", appended, len(results), system.value)
        return results

    @staticmethod
    def _coerce_event(raw) -> ExternalEvent:
        if isinstance(raw, ExternalEvent):
            event = raw
        elif isinstance(raw, dict):
            event = ExternalEvent.from_dict(raw)
        else:
            raise IngestionError(f"External event must be a mapping, got {type(raw).__name__}")
        if not isinstance(event.raw_payload, dict):
            raise IngestionError("External event raw_payload must be a mapping",
                                 external_id=event.external_id)
        try:
            canonical_json(event.raw_payload)
        except (TypeError, ValueError) as exc:
            raise IngestionError(f"External event raw_payload is not JSON: {exc}",
                                 external_id=event.external_id)
        return event

    # -- integrity --------------------------------------------------------

    def verify_chain(self) -> ChainVerification:
        """Check every record against its stored hashes."""
        broken = []
        prev = GENESIS_HASH
        for record in self._records:
            ok = (
                record.load_error is None
                and record.prev_hash == prev
                and content_hash(record.entry) == record.content_hash
                and chain_hash(record.prev_hash, record.content_hash) == record.chain_hash
            )
            if not ok:
                broken.append(record.entry.id)
            prev = record.chain_hash
        total = len(self._records)
        verified = total - len(broken)
        score = 100.0 if total == 0 else round(verified / total * 100, 2)
        if broken:
            logger.error("Ledger chain broken at %d of %d entries: %s",
                         len(broken), total, ", ".join(broken[:5]))
        return ChainVerification(total=total, verified=verified,
                                 broken_entry_ids=tuple(broken), score=score)

    def integrity_score(self) -> float:
        """Percentage (two decimals) of entries whose chain link verifies."""
        return self.verify_chain().score

    def assert_intact(self) -> None:
        """Raises IntegrityViolation if any entry fails verification."""
        result = self.verify_chain()
        if not result.intact:
            raise IntegrityViolation(
                f"Ledger integrity {result.score}%: {len(result.broken_entry_ids)} "
                f"of {result.total} entries fail verification",
                broken_entries=result.broken_entry_ids,
            )
