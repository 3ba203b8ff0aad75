"""
Agent delay / response time processing.

Two upload formats exist and are told apart once, when a request is parsed:

- legacy export, one row per conversation:
    {"agentFullName", "avgDelayDdHhMmSs" (DD:HH:MM:SS), "endedWithConsumerNoReply"}
  Rows are grouped per agent; the agent's delay is the mean of its rows
  rounded to whole seconds; agents are listed slowest first.

- agent response time report, one row per agent plus a "Total" row:
    {"REPORT_DATE", "AGENT_FULL_NAME", "AVG_ADJUSTED_RESPONSE_TIME" (HH:MM:SS)}
  The "Total" row is the daily average; agents are listed fastest first.

Durations are kept as seconds and formatted as HH:MM:SS for display.
Snapshots are written to ``delay-time/daily/<date>.json`` and
``delay-time/latest.json``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import DelayRecordFormat
from opsboard.services.dates import utc_now_iso
from opsboard.services.metrics import round_half_up


logger = logging.getLogger(__name__)

DELAY_PREFIX = 'delay-time'
TOTAL_AGENT_NAME = 'Total'

_LEGACY_FIELDS = ('agentFullName', 'avgDelayDdHhMmSs')
_RESPONSE_TIME_FIELDS = ('REPORT_DATE', 'AGENT_FULL_NAME', 'AVG_ADJUSTED_RESPONSE_TIME')


# =============================================================================
# Record variants
# =============================================================================

@dataclass(frozen=True)
class LegacyDelayRecord:
    agent_full_name: str
    avg_delay: str
    ended_with_consumer_no_reply: str = ''

    @property
    def no_reply(self) -> bool:
        return self.ended_with_consumer_no_reply.strip().lower() == 'yes'


@dataclass(frozen=True)
class AgentResponseTimeRecord:
    report_date: str
    agent_full_name: str
    avg_adjusted_response_time: str


DelayRecord = Union[LegacyDelayRecord, AgentResponseTimeRecord]


class UnknownDelayFormatError(ValueError):
    """Raised when upload rows match neither delay record format."""


def detect_format(row: Dict[str, Any]) -> Optional[DelayRecordFormat]:
    if all(name in row for name in _RESPONSE_TIME_FIELDS):
        return DelayRecordFormat.AGENT_RESPONSE_TIME
    if all(name in row for name in _LEGACY_FIELDS):
        return DelayRecordFormat.LEGACY
    return None


def classify_delay_records(rows: Sequence[Dict[str, Any]]) -> List[DelayRecord]:
    """
    Convert raw upload rows into typed records.

    The first row decides the format for the whole upload; later rows
    missing fields of that format get empty values.

    Raises:
        UnknownDelayFormatError: rows are empty or the first row matches no format.
    """
    if not rows:
        raise UnknownDelayFormatError('Records array cannot be empty')

    record_format = detect_format(rows[0])
    if record_format is None:
        raise UnknownDelayFormatError(
            'Records must have REPORT_DATE, AGENT_FULL_NAME, and AVG_ADJUSTED_RESPONSE_TIME fields'
        )

    if record_format == DelayRecordFormat.AGENT_RESPONSE_TIME:
        return [
            AgentResponseTimeRecord(
                report_date=str(row.get('REPORT_DATE') or ''),
                agent_full_name=str(row.get('AGENT_FULL_NAME') or ''),
                avg_adjusted_response_time=str(row.get('AVG_ADJUSTED_RESPONSE_TIME') or ''),
            )
            for row in rows
        ]
    return [
        LegacyDelayRecord(
            agent_full_name=str(row.get('agentFullName') or ''),
            avg_delay=str(row.get('avgDelayDdHhMmSs') or ''),
            ended_with_consumer_no_reply=str(row.get('endedWithConsumerNoReply') or ''),
        )
        for row in rows
    ]


def record_format_of(records: Sequence[DelayRecord]) -> DelayRecordFormat:
    if records and isinstance(records[0], AgentResponseTimeRecord):
        return DelayRecordFormat.AGENT_RESPONSE_TIME
    return DelayRecordFormat.LEGACY


# =============================================================================
# Durations
# =============================================================================

def parse_duration_to_seconds(value: str) -> float:
    """
    Seconds for ``DD:HH:MM:SS`` (4 fields) or ``HH:MM:SS`` (3 fields).

    Anything else, including non-numeric fields, parses to 0.
    """
    parts = (value or '').strip().split(':')
    try:
        numbers = [float(part) for part in parts]
    except ValueError:
        return 0
    if len(numbers) == 4:
        days, hours, minutes, seconds = numbers
        return days * 86400 + hours * 3600 + minutes * 60 + seconds
    if len(numbers) == 3:
        hours, minutes, seconds = numbers
        return hours * 3600 + minutes * 60 + seconds
    return 0


def format_seconds(seconds: float) -> str:
    """HH:MM:SS, hours not wrapped at 24."""
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _agent_stat(name: str, seconds: float, formatted: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    stat = {
        'agentName': name,
        'avgDelaySeconds': seconds,
        'avgDelayFormatted': formatted or format_seconds(seconds),
    }
    stat.update(extra)
    return stat


def _empty(analysis_date: str) -> Dict[str, Any]:
    return {'lastUpdated': utc_now_iso(), 'analysisDate': analysis_date, 'agentStats': []}


# =============================================================================
# Processing
# =============================================================================

def process_legacy_records(records: Sequence[LegacyDelayRecord], analysis_date: str) -> Dict[str, Any]:
    if not records:
        return _empty(analysis_date)

    df = pd.DataFrame([
        {
            'agent': record.agent_full_name,
            'delay': parse_duration_to_seconds(record.avg_delay),
            'no_reply': record.no_reply,
        }
        for record in records
    ])
    grouped = df.groupby('agent', sort=False).agg(
        delay=('delay', 'mean'),
        no_reply=('no_reply', 'sum'),
        conversations=('delay', 'size'),
    )

    agent_stats = [
        _agent_stat(
            agent,
            round_half_up(row['delay']),
            noReplyCount=int(row['no_reply']),
            conversations=int(row['conversations']),
        )
        for agent, row in grouped.iterrows()
    ]
    agent_stats.sort(key=lambda stat: stat['avgDelaySeconds'], reverse=True)

    logger.info(f"Processed {len(records)} legacy delay rows for {len(agent_stats)} agents")
    return {
        'lastUpdated': utc_now_iso(),
        'analysisDate': analysis_date,
        'agentStats': agent_stats,
    }


def process_agent_response_time_records(
    records: Sequence[AgentResponseTimeRecord],
    analysis_date: str,
) -> Dict[str, Any]:
    if not records:
        return _empty(analysis_date)

    result: Dict[str, Any] = {'lastUpdated': utc_now_iso(), 'analysisDate': analysis_date}

    total = next((r for r in records if r.agent_full_name == TOTAL_AGENT_NAME), None)
    if total is not None:
        result['dailyAverageDelaySeconds'] = parse_duration_to_seconds(total.avg_adjusted_response_time)
        result['dailyAverageDelayFormatted'] = total.avg_adjusted_response_time

    agent_stats = [
        _agent_stat(
            record.agent_full_name,
            parse_duration_to_seconds(record.avg_adjusted_response_time),
            record.avg_adjusted_response_time,
        )
        for record in records
        if record.agent_full_name != TOTAL_AGENT_NAME
    ]
    agent_stats.sort(key=lambda stat: stat['avgDelaySeconds'])
    result['agentStats'] = agent_stats

    logger.info(f"Processed response times for {len(agent_stats)} agents on {analysis_date}")
    return result


def default_analysis_date(records: Sequence[DelayRecord]) -> Optional[str]:
    """The first REPORT_DATE of a response time upload (date part only)."""
    if records and isinstance(records[0], AgentResponseTimeRecord):
        return records[0].report_date[:10] or None
    return None


def process_delay_records(records: Sequence[DelayRecord], analysis_date: str) -> Dict[str, Any]:
    if record_format_of(records) == DelayRecordFormat.AGENT_RESPONSE_TIME:
        return process_agent_response_time_records(records, analysis_date)
    return process_legacy_records(records, analysis_date)


# =============================================================================
# Persistence
# =============================================================================

async def save_delay_snapshot(store: SnapshotStore, snapshot: Dict[str, Any]) -> None:
    await store.save_daily_snapshot(DELAY_PREFIX, snapshot['analysisDate'], snapshot)


async def get_delay_snapshot(store: SnapshotStore, day: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if day:
        return await store.get_daily_snapshot(DELAY_PREFIX, day)
    return await store.get_latest_snapshot(DELAY_PREFIX)


async def list_delay_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{DELAY_PREFIX}/daily/")
