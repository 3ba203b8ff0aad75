"""
P&L configuration loading and validation.

A configuration holds per-service unit costs and service fees plus the
monthly fixed costs. It is loaded with the priority:

    1. ``pnl-config.json`` in the blob store
    2. an optional remote URL (timeout, bounded retries with a fixed delay,
       no retry after a timeout)
    3. built-in defaults

Loading never fails: every value is validated individually and an invalid
value falls back to its default.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import ALL_SERVICE_KEYS, ConfigSource
from opsboard.services.dates import utc_now_iso


logger = logging.getLogger(__name__)

PNL_CONFIG_PATH = 'pnl-config.json'

DEFAULT_SERVICE_COSTS: Dict[str, float] = {
    'oec': 61.5,
    'owwa': 92,
    'ttl': 400,
    'tte': 400,
    'ttj': 220,
    'schengen': 0,
    'gcc': 220,
    'ethiopianPP': 1330,
    'filipinaPP': 0,
}

DEFAULT_SERVICE_FEES: Dict[str, float] = dict.fromkeys(ALL_SERVICE_KEYS, 0)

DEFAULT_MONTHLY_FIXED_COSTS: Dict[str, float] = {
    'laborCost': 55000,
    'llm': 3650,
    'proTransportation': 2070,
}


@dataclass
class PnLConfig:
    service_costs: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SERVICE_COSTS))
    service_fees: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SERVICE_FEES))
    monthly_fixed_costs: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_MONTHLY_FIXED_COSTS)
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serviceCosts': dict(self.service_costs),
            'serviceFees': dict(self.service_fees),
            'monthlyFixedCosts': dict(self.monthly_fixed_costs),
        }


@dataclass
class PnLConfigLoadResult:
    config: PnLConfig
    source: ConfigSource
    error: Optional[str] = None


# =============================================================================
# Validation
# =============================================================================

def validate_number(value: Any, default: float, minimum: float = 0) -> float:
    """``value`` as a finite number >= ``minimum``; ``default`` otherwise."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number) or number < minimum:
        return default
    return number


def _validate_mapping(raw: Any, defaults: Dict[str, float]) -> Dict[str, float]:
    result = dict(defaults)
    if not isinstance(raw, dict):
        return result
    for key in defaults:
        if key in raw:
            result[key] = validate_number(raw[key], defaults[key])
    return result


def parse_pnl_config(raw: Any) -> PnLConfig:
    """Validate a raw configuration document key by key."""
    raw = raw if isinstance(raw, dict) else {}
    return PnLConfig(
        service_costs=_validate_mapping(raw.get('serviceCosts'), DEFAULT_SERVICE_COSTS),
        service_fees=_validate_mapping(raw.get('serviceFees'), DEFAULT_SERVICE_FEES),
        monthly_fixed_costs=_validate_mapping(raw.get('monthlyFixedCosts'), DEFAULT_MONTHLY_FIXED_COSTS),
    )


# =============================================================================
# Remote fetch
# =============================================================================

async def fetch_remote_config(
    client: httpx.AsyncClient,
    url: str,
    timeout_seconds: float = 5.0,
    max_retries: int = 2,
    retry_delay_seconds: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PnLConfig:
    """
    Fetch and validate a remote configuration document.

    Makes up to ``1 + max_retries`` attempts with a fixed delay between them.
    A timeout ends the loop immediately.

    Raises:
        httpx.HTTPError or ValueError from the last failed attempt.
    """
    last_error: Optional[Exception] = None
    for attempt in range(max_retries + 1):
        try:
            response = await client.get(
                url, headers={'Accept': 'application/json'}, timeout=timeout_seconds
            )
            response.raise_for_status()
            return parse_pnl_config(response.json())
        except httpx.TimeoutException as e:
            logger.warning(f"Remote P&L config request timed out after {timeout_seconds}s")
            last_error = e
            break
        except (httpx.HTTPError, ValueError) as e:
            last_error = e
            if attempt < max_retries:
                logger.warning(f"Remote P&L config attempt {attempt + 1} failed, retrying: {e}")
                await sleep(retry_delay_seconds)
    raise last_error


# =============================================================================
# Persistence
# =============================================================================

async def load_stored_config(store: SnapshotStore) -> Optional[PnLConfig]:
    raw = await store.read_json(PNL_CONFIG_PATH)
    if raw is None:
        return None
    return parse_pnl_config(raw)


async def load_pnl_config(
    store: SnapshotStore,
    client: Optional[httpx.AsyncClient] = None,
    remote_url: Optional[str] = None,
    timeout_seconds: float = 5.0,
    max_retries: int = 2,
    retry_delay_seconds: float = 0.5,
) -> PnLConfigLoadResult:
    """Blob store first, then the remote URL, then defaults."""
    stored = await load_stored_config(store)
    if stored is not None:
        logger.info("Loaded P&L config from blob storage")
        return PnLConfigLoadResult(config=stored, source=ConfigSource.BLOB)

    if not remote_url or client is None:
        logger.info("Using default P&L config (no stored config, no remote URL)")
        return PnLConfigLoadResult(config=PnLConfig(), source=ConfigSource.DEFAULT)

    try:
        config = await fetch_remote_config(
            client,
            remote_url,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Using default P&L config, all sources failed: {e}")
        return PnLConfigLoadResult(config=PnLConfig(), source=ConfigSource.DEFAULT, error=str(e))

    logger.info(f"Loaded P&L config from {remote_url}")
    return PnLConfigLoadResult(config=config, source=ConfigSource.REMOTE)


async def save_pnl_config(store: SnapshotStore, raw: Any) -> PnLConfig:
    """Validate ``raw`` and store it; returns the validated config."""
    config = parse_pnl_config(raw)
    document = config.to_dict()
    document['lastUpdated'] = utc_now_iso()
    await store.write_json(PNL_CONFIG_PATH, document)
    logger.info("Saved P&L config to blob storage")
    return config


async def reset_pnl_config(store: SnapshotStore) -> bool:
    """Delete the stored config so loads fall back to remote or defaults."""
    return await store.delete(PNL_CONFIG_PATH)
