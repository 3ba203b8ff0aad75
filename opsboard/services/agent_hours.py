"""
Agent logged hours per day.

Rows come from the workforce export:
    {"FULL_NAME", "HOURS_LOGGED", "FIRST_LOGIN", "LAST_LOGOUT"}

Documents are written to ``agent-hours/<date>.json`` with totals and the
per-agent average.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.services.dates import utc_now_iso


logger = logging.getLogger(__name__)

AGENT_HOURS_PREFIX = 'agent-hours'


def agent_hours_path(day: str) -> str:
    return f"{AGENT_HOURS_PREFIX}/{day}.json"


def _hours(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def build_agent_hours(analysis_date: str, agents: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    rows = [
        {
            'FULL_NAME': str(agent.get('FULL_NAME') or ''),
            'HOURS_LOGGED': _hours(agent.get('HOURS_LOGGED')),
            'FIRST_LOGIN': str(agent.get('FIRST_LOGIN') or ''),
            'LAST_LOGOUT': str(agent.get('LAST_LOGOUT') or ''),
        }
        for agent in agents
    ]
    total_hours = sum(row['HOURS_LOGGED'] for row in rows)
    return {
        'lastUpdated': utc_now_iso(),
        'analysisDate': analysis_date,
        'totalAgents': len(rows),
        'totalHoursLogged': total_hours,
        'averageHoursPerAgent': total_hours / len(rows) if rows else 0,
        'agents': rows,
    }


async def store_agent_hours(store: SnapshotStore, document: Dict[str, Any]) -> str:
    """Write the day's document and return its pathname."""
    pathname = agent_hours_path(document['analysisDate'])
    await store.write_json(pathname, document)
    logger.info(
        f"Stored agent hours for {document['analysisDate']}: {document['totalAgents']} agents, "
        f"{document['totalHoursLogged']:.2f} hours"
    )
    return pathname


async def get_agent_hours(store: SnapshotStore, day: str) -> Optional[Dict[str, Any]]:
    return await store.read_json(agent_hours_path(day))


async def list_agent_hours_dates(store: SnapshotStore) -> List[str]:
    return await store.list_dates(f"{AGENT_HOURS_PREFIX}/")
