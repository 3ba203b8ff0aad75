"""
Net Promoter Score aggregation.

The raw document (``nps_data.json``) is keyed by day:

    {
        "Feb 9": {
            "date": "Feb 9",
            "scores": [
                {"nps_score": 10, "services": {"TOTAL": 12, "OEC": 4, ...}},
                ...
            ]
        }
    }

Each score entry carries how many respondents gave that score, overall
(``TOTAL``) and per service. Day keys are either ISO dates or ``"Mon D"``
strings, which take a configured default year.

Scores 9-10 are promoters, 0-6 detractors and 7-8 passives;
``npsScore = promoter% - detractor%``, rounded to 2 decimals.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.services.dates import is_iso_date
from opsboard.services.metrics import round_to


logger = logging.getLogger(__name__)

NPS_DATA_PATH = 'nps_data.json'
TOTAL_KEY = 'TOTAL'
PROMOTER_MIN_SCORE = 9
DETRACTOR_MAX_SCORE = 6


@dataclass
class NPSMetrics:
    total: int = 0
    promoters: int = 0
    detractors: int = 0
    passives: int = 0
    score_distribution: Dict[int, int] = field(default_factory=lambda: dict.fromkeys(range(11), 0))

    def add(self, score: int, count: int) -> None:
        self.total += count
        self.score_distribution[score] += count
        if score >= PROMOTER_MIN_SCORE:
            self.promoters += count
        elif score <= DETRACTOR_MAX_SCORE:
            self.detractors += count
        else:
            self.passives += count

    def _share(self, part: int) -> float:
        return part / self.total * 100 if self.total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        promoter_pct = self._share(self.promoters)
        detractor_pct = self._share(self.detractors)
        return {
            'total': self.total,
            'promoters': self.promoters,
            'detractors': self.detractors,
            'passives': self.passives,
            'npsScore': round_to(promoter_pct - detractor_pct),
            'promoterPercentage': round_to(promoter_pct),
            'detractorPercentage': round_to(detractor_pct),
            'passivePercentage': round_to(self._share(self.passives)),
            'scoreDistribution': {str(k): v for k, v in self.score_distribution.items()},
        }


def parse_nps_date(key: str, default_year: int) -> Optional[str]:
    """ISO date for a day key (``"2026-02-09"`` or ``"Feb 9"``); None when unparseable."""
    key = (key or '').strip()
    if is_iso_date(key):
        return key
    try:
        return datetime.strptime(f"{key} {default_year}", '%b %d %Y').date().isoformat()
    except ValueError:
        return None


def _count(entry: Dict[str, Any], service: str) -> int:
    value = (entry.get('services') or {}).get(service) or 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def nps_score_of(entry: Dict[str, Any]) -> Optional[int]:
    """The entry's score when it is a whole number from 0 to 10, else None."""
    score = entry.get('nps_score')
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return None
    if not float(score).is_integer() or not 0 <= score <= 10:
        return None
    return int(score)


def calculate_metrics(scores: Sequence[Dict[str, Any]], service: str = TOTAL_KEY) -> NPSMetrics:
    metrics = NPSMetrics()
    for entry in scores:
        score = nps_score_of(entry)
        if score is None:
            continue
        metrics.add(score, _count(entry, service))
    return metrics


def aggregate_nps(
    raw: Dict[str, Any],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    default_year: int = 2026,
) -> Dict[str, Any]:
    """
    Overall and per-service NPS for the days within ``[start_date, end_date]``.

    Services are listed by name and only when they have responses.
    """
    scores: List[Dict[str, Any]] = []
    services = set()
    for key, day in raw.items():
        iso = parse_nps_date(key, default_year)
        if iso is None:
            logger.warning(f"Skipping unparseable NPS date key {key!r}")
            continue
        if start_date and iso < start_date:
            continue
        if end_date and iso > end_date:
            continue
        for entry in (day or {}).get('scores') or []:
            scores.append(entry)
            services.update(name for name in (entry.get('services') or {}) if name != TOTAL_KEY)

    per_service = []
    for name in sorted(services):
        metrics = calculate_metrics(scores, name)
        if metrics.total > 0:
            per_service.append({'service': name, 'metrics': metrics.to_dict()})

    return {
        'overall': calculate_metrics(scores).to_dict(),
        'services': per_service,
        'dateRange': {
            'startDate': start_date or '',
            'endDate': end_date or start_date or '',
        },
    }


def nps_dates(raw: Dict[str, Any], default_year: int = 2026) -> List[str]:
    dates = {parse_nps_date(key, default_year) for key in raw}
    dates.discard(None)
    return sorted(dates)


async def store_nps_data(store: SnapshotStore, raw: Dict[str, Any]) -> int:
    await store.write_json(NPS_DATA_PATH, raw)
    logger.info(f"Saved NPS data for {len(raw)} dates")
    return len(raw)


async def load_nps_data(store: SnapshotStore) -> Optional[Dict[str, Any]]:
    return await store.read_json(NPS_DATA_PATH)
