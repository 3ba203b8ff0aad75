"""
Chat analysis aggregation.

Turns one day of classified conversations into the dashboard snapshot stored
under ``chat-analysis/daily/<date>.json`` (and ``chat-analysis/latest.json``).

Pipeline:
    1. Resolve conversations into entities (entity_resolution), merging
       anonymous entities on identical key-phrase sets.
    2. Expand every entity back into one row per conversation sub-ID and
       deduplicate rows by sub-ID.
    3. Group rows into people by contract > client > maid > conversation key.
       Frustration and confusion percentages are computed over people.
    4. Rank issue drivers among flagged people.
    5. Merge rows sharing entity, start minute, service, skill and content into
       one conversation result for display.
    6. Compare with the previous day's snapshot and attach the trend window.

``aggregate_conversations`` is pure: history snapshots are passed in.
``build_chat_snapshot`` reads that history from the snapshot store first.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import InsightTrending, PersonType, TrendDirection
from opsboard.services.dates import parse_timestamp, shift_day, utc_now_iso
from opsboard.services.entity_resolution import (
    RawRecord,
    ResolvedEntity,
    entity_key_for,
    resolve_entities,
)
from opsboard.services.metrics import (
    Driver,
    Insight,
    main_issue,
    percentage,
    rank_drivers,
    trend_direction,
)


logger = logging.getLogger(__name__)

CHAT_PREFIX = 'chat-analysis'
CONTENT_HASH_LENGTH = 100

_NON_KEY_CHARACTERS = re.compile(r'[^a-zA-Z0-9_]')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Person:
    """One real-world actor behind a day's conversations."""
    person_id: str
    person_type: PersonType
    frustrated: bool = False
    confused: bool = False
    main_issues: List[str] = field(default_factory=list)
    conversation_ids: List[str] = field(default_factory=list)


@dataclass
class ExpansionResult:
    conversations: List[RawRecord]
    owners: Dict[str, str] = field(default_factory=dict)
    duplicates: int = 0
    flag_mismatches: int = 0


# =============================================================================
# EXPANSION AND GROUPING
# =============================================================================

def _richness(record: RawRecord) -> int:
    return len(record.main_issues) + len(record.key_phrases)


def _dedupe_into(existing: RawRecord, incoming: RawRecord) -> RawRecord:
    base = incoming if _richness(incoming) > _richness(existing) else existing
    return replace(
        base,
        frustrated=existing.frustrated or incoming.frustrated,
        confused=existing.confused or incoming.confused,
        main_issues=tuple(dict.fromkeys(existing.main_issues + incoming.main_issues)),
        key_phrases=tuple(dict.fromkeys(existing.key_phrases + incoming.key_phrases)),
    )


def expand_entities(entities: Sequence[ResolvedEntity]) -> ExpansionResult:
    """
    One row per conversation sub-ID, deduplicated by sub-ID.

    Rows for the same sub-ID combine their flags and tags and keep the richer
    row's remaining fields.
    """
    rows: Dict[str, RawRecord] = {}
    result = ExpansionResult(conversations=[])

    for entity in entities:
        for sub_id in entity.merged_ids:
            row = RawRecord(
                conversation_id=sub_id,
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
            existing = rows.get(sub_id)
            if existing is None:
                rows[sub_id] = row
                result.owners[sub_id] = entity.entity_key
                continue
            result.duplicates += 1
            if existing.frustrated != row.frustrated or existing.confused != row.confused:
                result.flag_mismatches += 1
                logger.info(f"Duplicate conversation {sub_id} carries different flags")
            rows[sub_id] = _dedupe_into(existing, row)

    result.conversations = list(rows.values())
    if result.duplicates:
        logger.info(
            f"Removed {result.duplicates} duplicate conversation rows "
            f"({result.flag_mismatches} with flag mismatches)"
        )
    return result


def person_type_for(record: RawRecord) -> PersonType:
    if record.contract_id or record.client_id:
        return PersonType.CLIENT
    if record.maid_id:
        return PersonType.MAID
    return PersonType.UNKNOWN


def group_people(
    conversations: Sequence[RawRecord],
    owners: Optional[Dict[str, str]] = None,
) -> List[Person]:
    """
    Group conversation rows into people, OR-combining their flags.

    ``owners`` maps a conversation ID to the key of the entity it was resolved
    into; rows without an owner are keyed by their own identifiers.
    """
    owners = owners or {}
    people: Dict[str, Person] = {}
    for conv in conversations:
        key = owners.get(conv.conversation_id) or entity_key_for(
            conv.contract_id, conv.client_id, conv.maid_id, [conv.conversation_id]
        )
        person = people.get(key)
        if person is None:
            person = people[key] = Person(person_id=key, person_type=person_type_for(conv))
        person.frustrated = person.frustrated or conv.frustrated
        person.confused = person.confused or conv.confused
        for issue in conv.main_issues:
            if issue not in person.main_issues:
                person.main_issues.append(issue)
        if conv.conversation_id not in person.conversation_ids:
            person.conversation_ids.append(conv.conversation_id)

    values = list(people.values())
    counts = {t: sum(1 for p in values if p.person_type == t) for t in PersonType}
    logger.info(
        f"Person identification: {counts[PersonType.CLIENT]} clients, "
        f"{counts[PersonType.MAID]} maids, {counts[PersonType.UNKNOWN]} unknown "
        f"({len(values)} total people)"
    )
    return values


# =============================================================================
# CONVERSATION RESULTS
# =============================================================================

def _normalized_join(values: Sequence[str]) -> str:
    return '|'.join(sorted(v.strip().lower() for v in values))


def content_key(record: RawRecord) -> str:
    """Key shared by rows that show the same content for the same entity."""
    entity = entity_key_for(record.contract_id, record.client_id, record.maid_id, [record.conversation_id])
    started = parse_timestamp(record.timestamp)
    minute = started.strftime('%Y-%m-%d_%H:%M') if started else ''
    content = f"{_normalized_join(record.main_issues)}_{_normalized_join(record.key_phrases)}"
    content = content[:CONTENT_HASH_LENGTH]
    raw_key = f"{entity}_{minute}_{record.service or ''}_{record.skill or ''}_{content}"
    return _NON_KEY_CHARACTERS.sub('_', raw_key)


def merge_conversation_results(conversations: Sequence[RawRecord]) -> List[Dict[str, Any]]:
    """One display row per content key; ``conversationId`` lists every merged ID."""
    merged: Dict[str, Tuple[RawRecord, List[str]]] = {}
    for conv in conversations:
        key = content_key(conv)
        if key not in merged:
            merged[key] = (conv, [conv.conversation_id])
            continue
        first, ids = merged[key]
        if conv.conversation_id not in ids:
            ids.append(conv.conversation_id)
        merged[key] = (
            replace(first, frustrated=first.frustrated or conv.frustrated,
                    confused=first.confused or conv.confused),
            ids,
        )

    results = []
    for conv, ids in merged.values():
        results.append({
            'conversationId': ','.join(ids),
            'frustrated': conv.frustrated,
            'confused': conv.confused,
            'mainIssues': list(conv.main_issues),
            'keyPhrases': list(conv.key_phrases),
            'analysisDate': conv.timestamp or utc_now_iso(),
            'service': conv.service,
            'skill': conv.skill,
        })
    logger.info(f"Content merge for results: {len(conversations)} -> {len(results)} entries")
    return results


# =============================================================================
# SNAPSHOT
# =============================================================================

def _driver_dict(driver: Driver) -> Dict[str, Any]:
    return {'issue': driver.issue, 'impact': driver.impact, 'frequency': driver.frequency}


def _insight_dict(insight: Insight) -> Dict[str, Any]:
    return {
        'title': insight.title,
        'description': insight.description,
        'impact': insight.impact,
        'trending': insight.trending.value,
    }


def _trend(current: int, previous: int) -> Dict[str, Any]:
    return {
        'current': current,
        'previous': previous,
        'direction': trend_direction(current, previous).value,
    }


def trend_point(day: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    metrics = snapshot.get('overallMetrics') or {}
    return {
        'date': day,
        'frustrationPercentage': metrics.get('frustrationPercentage', 0),
        'confusionPercentage': metrics.get('confusionPercentage', 0),
    }


def empty_chat_snapshot(analysis_date: str) -> Dict[str, Any]:
    """Placeholder served when no conversations have been analyzed."""
    placeholder = _insight_dict(Insight(
        title='No Data Available',
        description='No conversation data has been analyzed yet.',
        impact=0,
        trending=InsightTrending.STABLE,
    ))
    stable = {'current': 0, 'previous': 0, 'direction': TrendDirection.STABLE.value}
    return {
        'lastUpdated': utc_now_iso(),
        'analysisDate': analysis_date,
        'overallMetrics': {
            'frustratedCount': 0,
            'frustrationPercentage': 0,
            'confusedCount': 0,
            'confusionPercentage': 0,
            'totalConversations': 0,
            'analysedConversations': 0,
        },
        'trends': {'frustration': dict(stable), 'confusion': dict(stable)},
        'trendData': [],
        'insights': {
            'frustration': {'mainIssue': dict(placeholder), 'topDrivers': []},
            'confusion': {'mainIssue': dict(placeholder), 'topDrivers': []},
        },
        'conversationResults': [],
    }


def window_days(end_date: str, days: int) -> List[str]:
    """``days`` consecutive ISO dates ending at ``end_date``, oldest first."""
    return [shift_day(end_date, -offset) for offset in range(days - 1, -1, -1)]


def aggregate_conversations(
    records: Sequence[RawRecord],
    analysis_date: str,
    history: Optional[Dict[str, Dict[str, Any]]] = None,
    trend_days: int = 14,
    top_drivers: int = 4,
    merge_on_phrases: bool = True,
) -> Dict[str, Any]:
    """
    Build the daily chat snapshot.

    Args:
        records: The day's classified conversations.
        analysis_date: ``YYYY-MM-DD`` the snapshot is stored under.
        history: Stored snapshots keyed by date, covering the trend window
            and the previous day. Missing days are simply absent.
        trend_days: Length of the trend window ending at ``analysis_date``.
        top_drivers: Number of drivers exposed per metric.
        merge_on_phrases: Merge anonymous entities with identical phrase sets.
    """
    if not records:
        return empty_chat_snapshot(analysis_date)
    history = history or {}

    logger.info(f"Starting aggregation of {len(records)} conversations for {analysis_date}")
    resolution = resolve_entities(records, merge_on_phrases=merge_on_phrases)
    expansion = expand_entities(resolution.entities)
    people = group_people(expansion.conversations, expansion.owners)

    total = len(people)
    frustrated = [p for p in people if p.frustrated]
    confused = [p for p in people if p.confused]
    frustration_pct = percentage(len(frustrated), total)
    confusion_pct = percentage(len(confused), total)

    previous = history.get(shift_day(analysis_date, -1))
    previous_metrics = (previous or {}).get('overallMetrics') or {}
    previous_frustration = previous_metrics.get('frustrationPercentage')
    if previous_frustration is None:
        previous_frustration = frustration_pct
    previous_confusion = previous_metrics.get('confusionPercentage')
    if previous_confusion is None:
        previous_confusion = confusion_pct

    trend_data = []
    for day in window_days(analysis_date, trend_days):
        if day == analysis_date:
            trend_data.append({
                'date': day,
                'frustrationPercentage': frustration_pct,
                'confusionPercentage': confusion_pct,
            })
        elif day in history:
            trend_data.append(trend_point(day, history[day]))

    frustration_drivers = rank_drivers([p.main_issues for p in frustrated])
    confusion_drivers = rank_drivers([p.main_issues for p in confused])

    return {
        'lastUpdated': utc_now_iso(),
        'analysisDate': analysis_date,
        'overallMetrics': {
            'frustratedCount': len(frustrated),
            'frustrationPercentage': frustration_pct,
            'confusedCount': len(confused),
            'confusionPercentage': confusion_pct,
            'totalConversations': total,
            'analysedConversations': total,
        },
        'trends': {
            'frustration': _trend(frustration_pct, previous_frustration),
            'confusion': _trend(confusion_pct, previous_confusion),
        },
        'trendData': trend_data,
        'insights': {
            'frustration': {
                'mainIssue': _insight_dict(main_issue(frustration_drivers, 'frustration')),
                'topDrivers': [_driver_dict(d) for d in frustration_drivers[:top_drivers]],
            },
            'confusion': {
                'mainIssue': _insight_dict(main_issue(confusion_drivers, 'confusion')),
                'topDrivers': [_driver_dict(d) for d in confusion_drivers[:top_drivers]],
            },
        },
        'conversationResults': merge_conversation_results(expansion.conversations),
        'processing': {
            'inputRecords': resolution.input_count,
            'entities': len(resolution.entities),
            'people': total,
            'flagMismatches': resolution.flag_mismatches + expansion.flag_mismatches,
            'synthesizedIds': resolution.synthesized_ids,
        },
    }


# =============================================================================
# PERSISTENCE
# =============================================================================

async def load_history(store: SnapshotStore, end_date: str, days: int) -> Dict[str, Dict[str, Any]]:
    """Stored snapshots for the ``days`` before ``end_date`` (exclusive)."""
    history = {}
    for day in window_days(shift_day(end_date, -1), days):
        snapshot = await store.get_daily_snapshot(CHAT_PREFIX, day)
        if snapshot is not None:
            history[day] = snapshot
    return history


async def build_chat_snapshot(
    store: SnapshotStore,
    records: Sequence[RawRecord],
    analysis_date: str,
    trend_days: int = 14,
    top_drivers: int = 4,
) -> Dict[str, Any]:
    history = await load_history(store, analysis_date, trend_days) if records else {}
    return aggregate_conversations(
        records,
        analysis_date,
        history=history,
        trend_days=trend_days,
        top_drivers=top_drivers,
    )


async def save_chat_snapshot(store: SnapshotStore, snapshot: Dict[str, Any]) -> None:
    await store.save_daily_snapshot(CHAT_PREFIX, snapshot['analysisDate'], snapshot)
    logger.info(f"Saved chat analysis snapshot for {snapshot['analysisDate']}")


async def get_chat_snapshot(store: SnapshotStore, day: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if day:
        return await store.get_daily_snapshot(CHAT_PREFIX, day)
    return await store.get_latest_snapshot(CHAT_PREFIX)


async def list_chat_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{CHAT_PREFIX}/daily/")


async def get_chat_trend_data(store: SnapshotStore, end_date: str, days: int = 14) -> List[Dict[str, Any]]:
    """Trend points for stored snapshots in the window; missing days are omitted."""
    points = []
    for day in window_days(end_date, days):
        snapshot = await store.get_daily_snapshot(CHAT_PREFIX, day)
        if snapshot is not None:
            points.append(trend_point(day, snapshot))
    return points


async def clear_chat_data(store: SnapshotStore) -> int:
    return await store.clear_prefix(f"{CHAT_PREFIX}/")
