"""
Entity resolution for conversation and complaint records.

Collapses raw records that describe the same real-world actor (a client, a
maid or a contract) into one ResolvedEntity, in three passes:

1. Shared conversation IDs. ``conversationId`` may already be a comma-joined
   list of sub-IDs from upstream merges. Records sharing any sub-ID end up in
   one group; a record whose sub-IDs touch several groups joins them all.
2. Identifier priority. Each group is keyed by the first present of
   ``contract_<id>``, ``client_<id>``, ``maid_<id>``, ``conv_<first sub-id>``
   and groups sharing a key are merged.
3. Transitive sub-ID merge. Entities with a contract/client/maid ID are
   indexed by every sub-ID they own. Entities without one merge into the
   owner of any of their sub-IDs; otherwise, when phrase merging is enabled,
   into an anonymous entity with the same normalized key-phrase set; otherwise
   they stay keyed by their first sub-ID.

Merging is a pure function (``merge``): sub-IDs, issues and phrases are
unioned in first-seen order, boolean flags are OR-combined, the earliest
timestamp is kept and each identifier keeps its first non-empty value.

Invariant: the sub-ID sets of the returned entities partition the sub-IDs of
the input. A record with no conversation ID at all receives a synthesized
``anon-<hex>`` token so it survives as its own singleton entity.

No I/O happens here; callers fetch records and persist results.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from opsboard.services.dates import parse_timestamp


logger = logging.getLogger(__name__)

PHRASE_KEY_MAX_LENGTH = 200
ANONYMOUS_ID_PREFIX = 'anon-'


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class RawRecord:
    """
    One conversation or complaint row as received at ingestion.

    ``conversation_id`` may hold several comma-separated sub-IDs.
    """
    conversation_id: str = ''
    frustrated: bool = False
    confused: bool = False
    main_issues: Tuple[str, ...] = ()
    key_phrases: Tuple[str, ...] = ()
    timestamp: Optional[str] = None
    contract_id: Optional[str] = None
    client_id: Optional[str] = None
    maid_id: Optional[str] = None
    client_name: Optional[str] = None
    maid_name: Optional[str] = None
    contract_type: Optional[str] = None
    service: Optional[str] = None
    skill: Optional[str] = None


@dataclass(frozen=True)
class ResolvedEntity:
    """
    A real-world actor assembled from one or more RawRecords.

    ``merged_ids`` keeps insertion order so persisted comma-joined IDs are
    stable across runs.
    """
    merged_ids: Tuple[str, ...]
    frustrated: bool = False
    confused: bool = False
    main_issues: Tuple[str, ...] = ()
    key_phrases: Tuple[str, ...] = ()
    timestamp: Optional[str] = None
    contract_id: Optional[str] = None
    client_id: Optional[str] = None
    maid_id: Optional[str] = None
    client_name: Optional[str] = None
    maid_name: Optional[str] = None
    contract_type: Optional[str] = None
    service: Optional[str] = None
    skill: Optional[str] = None

    @property
    def has_identifier(self) -> bool:
        return bool(self.contract_id or self.client_id or self.maid_id)

    @property
    def entity_key(self) -> str:
        return entity_key_for(self.contract_id, self.client_id, self.maid_id, self.merged_ids)

    @property
    def merged_ids_str(self) -> str:
        return ','.join(self.merged_ids)


@dataclass
class ResolutionResult:
    """Entities plus bookkeeping from a resolution run."""
    entities: List[ResolvedEntity] = field(default_factory=list)
    input_count: int = 0
    after_conversation_pass: int = 0
    after_identifier_pass: int = 0
    flag_mismatches: int = 0
    synthesized_ids: int = 0


# =============================================================================
# KEYS AND NORMALIZATION
# =============================================================================

def split_conversation_ids(conversation_id: Optional[str]) -> List[str]:
    """Split a comma-joined conversation ID field into trimmed, unique sub-IDs."""
    if not conversation_id:
        return []
    seen: Dict[str, None] = {}
    for part in conversation_id.split(','):
        part = part.strip()
        if part:
            seen.setdefault(part, None)
    return list(seen)


def entity_key_for(
    contract_id: Optional[str],
    client_id: Optional[str],
    maid_id: Optional[str],
    sub_ids: Sequence[str],
) -> str:
    """Identifier priority: contract > client > maid > first conversation sub-ID."""
    if contract_id:
        return f"contract_{contract_id}"
    if client_id:
        return f"client_{client_id}"
    if maid_id:
        return f"maid_{maid_id}"
    return f"conv_{sub_ids[0]}"


def phrase_key(phrases: Iterable[str]) -> str:
    """Order-insensitive key for a set of key phrases."""
    normalized = sorted(p.strip().lower() for p in phrases if p and p.strip())
    return '|'.join(normalized)[:PHRASE_KEY_MAX_LENGTH]


def _union(first: Sequence[str], second: Sequence[str]) -> Tuple[str, ...]:
    merged: Dict[str, None] = dict.fromkeys(first)
    for item in second:
        merged.setdefault(item, None)
    return tuple(merged)


def _earliest(first: Optional[str], second: Optional[str]) -> Optional[str]:
    first_at = parse_timestamp(first)
    second_at = parse_timestamp(second)
    if first_at is None:
        return second if second_at is not None else first or second
    if second_at is None:
        return first
    return second if second_at < first_at else first


def entity_from_record(record: RawRecord, sub_ids: Sequence[str]) -> ResolvedEntity:
    return ResolvedEntity(
        merged_ids=tuple(sub_ids),
        frustrated=bool(record.frustrated),
        confused=bool(record.confused),
        main_issues=_union((), record.main_issues),
        key_phrases=_union((), record.key_phrases),
        timestamp=record.timestamp,
        contract_id=record.contract_id or None,
        client_id=record.client_id or None,
        maid_id=record.maid_id or None,
        client_name=record.client_name or None,
        maid_name=record.maid_name or None,
        contract_type=record.contract_type or None,
        service=record.service or None,
        skill=record.skill or None,
    )


# =============================================================================
# MERGE
# =============================================================================

def flags_disagree(a: ResolvedEntity, b: ResolvedEntity) -> bool:
    return a.frustrated != b.frustrated or a.confused != b.confused


def merge(a: ResolvedEntity, b: ResolvedEntity) -> ResolvedEntity:
    """
    Combine two entities into a new one.

    ``a`` takes precedence for every first-non-empty field. Flags never
    lose a positive value.
    """
    return ResolvedEntity(
        merged_ids=_union(a.merged_ids, b.merged_ids),
        frustrated=a.frustrated or b.frustrated,
        confused=a.confused or b.confused,
        main_issues=_union(a.main_issues, b.main_issues),
        key_phrases=_union(a.key_phrases, b.key_phrases),
        timestamp=_earliest(a.timestamp, b.timestamp),
        contract_id=a.contract_id or b.contract_id,
        client_id=a.client_id or b.client_id,
        maid_id=a.maid_id or b.maid_id,
        client_name=a.client_name or b.client_name,
        maid_name=a.maid_name or b.maid_name,
        contract_type=a.contract_type or b.contract_type,
        service=a.service or b.service,
        skill=a.skill or b.skill,
    )


class _Merger:
    """Counts and logs flag mismatches while merging."""

    def __init__(self) -> None:
        self.mismatches = 0

    def __call__(self, a: ResolvedEntity, b: ResolvedEntity) -> ResolvedEntity:
        if flags_disagree(a, b):
            self.mismatches += 1
            logger.info(
                f"Flag mismatch while merging {a.merged_ids_str} with {b.merged_ids_str}: "
                f"frustrated {a.frustrated}/{b.frustrated}, confused {a.confused}/{b.confused}"
            )
        return merge(a, b)


# =============================================================================
# PASSES
# =============================================================================

def _merge_by_conversation_id(
    records: Iterable[RawRecord],
    merger: _Merger,
) -> Tuple[List[ResolvedEntity], int]:
    groups: Dict[str, ResolvedEntity] = {}
    owner: Dict[str, str] = {}
    synthesized = 0

    for record in records:
        sub_ids = split_conversation_ids(record.conversation_id)
        if not sub_ids:
            sub_ids = [f"{ANONYMOUS_ID_PREFIX}{uuid.uuid4().hex}"]
            synthesized += 1
        incoming = entity_from_record(record, sub_ids)

        hit_keys: List[str] = []
        for sub_id in sub_ids:
            key = owner.get(sub_id)
            if key is not None and key not in hit_keys:
                hit_keys.append(key)

        if not hit_keys:
            key = sub_ids[0]
            groups[key] = incoming
        else:
            key = hit_keys[0]
            combined = groups[key]
            for other in hit_keys[1:]:
                combined = merger(combined, groups.pop(other))
            groups[key] = merger(combined, incoming)

        for sub_id in groups[key].merged_ids:
            owner[sub_id] = key

    return list(groups.values()), synthesized


def _merge_by_identifier(entities: Iterable[ResolvedEntity], merger: _Merger) -> List[ResolvedEntity]:
    by_key: Dict[str, ResolvedEntity] = {}
    for entity in entities:
        key = entity.entity_key
        by_key[key] = merger(by_key[key], entity) if key in by_key else entity
    return list(by_key.values())


def _merge_transitively(
    entities: Sequence[ResolvedEntity],
    merger: _Merger,
    merge_on_phrases: bool,
) -> List[ResolvedEntity]:
    by_key: Dict[str, ResolvedEntity] = {}
    owner: Dict[str, str] = {}

    def absorb(key: str, entity: ResolvedEntity) -> None:
        by_key[key] = merger(by_key[key], entity) if key in by_key else entity
        for sub_id in by_key[key].merged_ids:
            owner[sub_id] = key

    for entity in entities:
        if entity.has_identifier:
            absorb(entity.entity_key, entity)

    for entity in entities:
        if entity.has_identifier:
            continue
        key = next((owner[s] for s in entity.merged_ids if s in owner), None)
        if key is None and merge_on_phrases and entity.key_phrases:
            normalized = phrase_key(entity.key_phrases)
            if normalized:
                key = f"phrase_{normalized}"
        if key is None:
            key = entity.entity_key
        absorb(key, entity)

    return list(by_key.values())


def resolve_entities(records: Sequence[RawRecord], merge_on_phrases: bool = False) -> ResolutionResult:
    """
    Resolve raw records into entities.

    Args:
        records: Raw rows from a single upload or a re-read dataset.
        merge_on_phrases: Also merge anonymous entities whose normalized
            key-phrase sets are identical.

    Returns:
        ResolutionResult with the entities and per-pass counts.
    """
    merger = _Merger()

    by_conversation, synthesized = _merge_by_conversation_id(records, merger)
    logger.info(f"Merged by conversation ID: {len(records)} -> {len(by_conversation)}")

    by_identifier = _merge_by_identifier(by_conversation, merger)
    logger.info(f"Merged by identifier: {len(by_conversation)} -> {len(by_identifier)}")

    entities = _merge_transitively(by_identifier, merger, merge_on_phrases)
    logger.info(f"Merged by shared sub-ID: {len(by_identifier)} -> {len(entities)} entities")

    if merger.mismatches:
        logger.info(f"{merger.mismatches} merges combined records with different flags")

    return ResolutionResult(
        entities=entities,
        input_count=len(records),
        after_conversation_pass=len(by_conversation),
        after_identifier_pass=len(by_identifier),
        flag_mismatches=merger.mismatches,
        synthesized_ids=synthesized,
    )


def entity_to_record(entity: ResolvedEntity) -> RawRecord:
    """Re-expand a resolved entity into a raw record carrying its comma-joined IDs."""
    return RawRecord(
        conversation_id=entity.merged_ids_str,
        frustrated=entity.frustrated,
        confused=entity.confused,
        main_issues=entity.main_issues,
        key_phrases=entity.key_phrases,
        timestamp=entity.timestamp,
        contract_id=entity.contract_id,
        client_id=entity.client_id,
        maid_id=entity.maid_id,
        client_name=entity.client_name,
        maid_name=entity.maid_name,
        contract_type=entity.contract_type,
        service=entity.service,
        skill=entity.skill,
    )
