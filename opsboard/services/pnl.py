"""
Profit and loss computation.

Per service and per unit:
    price        = unitCost + serviceFee
    totalCost    = volume * unitCost
    totalRevenue = volume * (unitCost + serviceFee)
    grossProfit  = totalRevenue - totalCost

Monthly fixed costs are charged once per calendar month touched by the
reporting range; ``netProfit = totalGrossProfit - fixedCosts.total``.

Two entry points:
    - compute_pnl_from_sales: volumes come from deduplicated sales, each priced
      by the price list in force on its first sale date.
    - aggregate_pnl_documents: combines already-computed P&L documents (one
      per uploaded file). Volume, revenue, cost and gross profit are summed;
      the service fee is a per-order constant and keeps the first non-zero
      value seen.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from opsboard.core.storage import SnapshotStore
from opsboard.models.enums import ALL_SERVICE_KEYS, ConfigSource
from opsboard.services.complaints import aggregate_daily_complaints, load_complaints_dataset
from opsboard.services.dates import months_spanned
from opsboard.services.pnl_config import DEFAULT_MONTHLY_FIXED_COSTS, PnLConfig, PnLConfigLoadResult
from opsboard.services.sale_dedup import SERVICE_NAMES


logger = logging.getLogger(__name__)

PNL_SERVICE_NAMES: Dict[str, str] = dict(SERVICE_NAMES, oec='OEC', owwa='OWWA')

OLD_SERVICE_COSTS: Dict[str, float] = {
    'oec': 61.5,
    'owwa': 92,
    'ttl': 400,
    'tte': 400,
    'ttj': 320,
    'schengen': 0,
    'gcc': 220,
    'ethiopianPP': 1330,
    'filipinaPP': 0,
}
OLD_SERVICE_FEES: Dict[str, float] = dict.fromkeys(ALL_SERVICE_KEYS, 0)

NEW_SERVICE_COSTS: Dict[str, float] = dict(OLD_SERVICE_COSTS)
NEW_SERVICE_FEES: Dict[str, float] = dict(
    OLD_SERVICE_FEES, tte=100, ttj=100, schengen=100, ethiopianPP=120
)


# =============================================================================
# Pricing
# =============================================================================

@dataclass(frozen=True)
class PriceList:
    costs: Dict[str, float]
    fees: Dict[str, float]


PricingFn = Callable[[str], PriceList]


def date_aware_pricing(price_change_date: str) -> PricingFn:
    """Old price list before ``price_change_date``, new list from that day on."""
    old = PriceList(costs=OLD_SERVICE_COSTS, fees=OLD_SERVICE_FEES)
    new = PriceList(costs=NEW_SERVICE_COSTS, fees=NEW_SERVICE_FEES)

    def pricing(day: str) -> PriceList:
        return new if day[:10] >= price_change_date else old

    return pricing


def config_pricing(config: PnLConfig) -> PricingFn:
    """The same configured price list for every day."""
    prices = PriceList(costs=config.service_costs, fees=config.service_fees)
    return lambda day: prices


# =============================================================================
# Service P&L
# =============================================================================

@dataclass
class ServicePnL:
    name: str
    volume: float = 0
    price: float = 0
    service_fees: float = 0
    total_revenue: float = 0
    total_cost: float = 0
    gross_profit: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'volume': self.volume,
            'price': self.price,
            'serviceFees': self.service_fees,
            'totalRevenue': self.total_revenue,
            'totalCost': self.total_cost,
            'grossProfit': self.gross_profit,
        }


def service_pnl_from_volume(name: str, volume: float, unit_cost: float, service_fee: float) -> ServicePnL:
    total_cost = volume * unit_cost
    total_revenue = volume * (unit_cost + service_fee)
    return ServicePnL(
        name=name,
        volume=volume,
        price=unit_cost + service_fee,
        service_fees=service_fee,
        total_revenue=total_revenue,
        total_cost=total_cost,
        gross_profit=total_revenue - total_cost,
    )


def fixed_costs_for(monthly: Optional[Dict[str, float]] = None, months: int = 1) -> Dict[str, float]:
    monthly = monthly or DEFAULT_MONTHLY_FIXED_COSTS
    costs = {key: monthly.get(key, 0) * months for key in DEFAULT_MONTHLY_FIXED_COSTS}
    costs['total'] = sum(costs.values())
    return costs


def _summary(services: Dict[str, ServicePnL], fixed_costs: Dict[str, float]) -> Dict[str, Any]:
    total_gross_profit = sum(s.gross_profit for s in services.values())
    return {
        'totalRevenue': sum(s.total_revenue for s in services.values()),
        'totalCost': sum(s.total_cost for s in services.values()),
        'totalGrossProfit': total_gross_profit,
        'fixedCosts': fixed_costs,
        'netProfit': total_gross_profit - fixed_costs['total'],
    }


def compute_pnl_from_sales(
    sales: Iterable[Dict[str, Any]],
    pricing: PricingFn,
    monthly_fixed_costs: Optional[Dict[str, float]] = None,
    months: int = 1,
    source: str = 'daily-complaints-data',
) -> Dict[str, Any]:
    """
    P&L from deduplicated sale records.

    Each sale needs ``serviceKey`` and ``firstSaleDate``; it is priced by the
    price list returned by ``pricing`` for its first sale day.
    """
    services = {key: ServicePnL(name=PNL_SERVICE_NAMES[key]) for key in ALL_SERVICE_KEYS}
    for sale in sales:
        key = sale.get('serviceKey')
        if key not in services:
            continue
        prices = pricing(str(sale.get('firstSaleDate') or '')[:10])
        unit = service_pnl_from_volume(
            services[key].name, 1, prices.costs.get(key, 0), prices.fees.get(key, 0)
        )
        service = services[key]
        service.volume += unit.volume
        service.total_revenue += unit.total_revenue
        service.total_cost += unit.total_cost
        service.gross_profit += unit.gross_profit

    for service in services.values():
        if service.volume > 0:
            service.price = service.total_revenue / service.volume
            service.service_fees = service.gross_profit / service.volume

    return {
        'files': [source],
        'services': {key: service.to_dict() for key, service in services.items()},
        'summary': _summary(services, fixed_costs_for(monthly_fixed_costs, months)),
    }


def aggregate_pnl_documents(documents: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Combine per-file P&L documents.

    Fixed costs are monthly figures shared by every file, so the first
    document's values are used rather than a sum.
    """
    services = {key: ServicePnL(name=PNL_SERVICE_NAMES[key]) for key in ALL_SERVICE_KEYS}
    files: List[str] = []

    for index, document in enumerate(documents):
        files.append(document.get('fileName') or f"file-{index + 1}")
        for key, raw in (document.get('services') or {}).items():
            service = services.get(key)
            if service is None or not raw:
                continue
            service.volume += raw.get('volume', 0) or 0
            service.total_revenue += raw.get('totalRevenue', 0) or 0
            service.total_cost += raw.get('totalCost', 0) or 0
            service.gross_profit += raw.get('grossProfit', 0) or 0
            fee = raw.get('serviceFees', 0) or 0
            if service.service_fees == 0 and fee > 0:
                service.service_fees = fee

    for service in services.values():
        service.price = service.total_revenue / service.volume if service.volume > 0 else 0

    fixed_costs = fixed_costs_for()
    if documents:
        first = (documents[0].get('summary') or {}).get('fixedCosts')
        if first:
            fixed_costs = {key: first.get(key, 0) for key in DEFAULT_MONTHLY_FIXED_COSTS}
            fixed_costs['total'] = first.get('total', sum(fixed_costs.values()))

    logger.info(f"Aggregated {len(documents)} P&L documents")
    return {
        'files': files,
        'services': {key: service.to_dict() for key, service in services.items()},
        'summary': _summary(services, fixed_costs),
    }


# =============================================================================
# Report
# =============================================================================

def _sales_in_range(
    document: Dict[str, Any],
    start_day: Optional[str],
    end_day: Optional[str],
) -> List[Dict[str, Any]]:
    sales = []
    for service in (document.get('services') or {}).values():
        for sale in service.get('sales') or []:
            day = str(sale.get('firstSaleDate') or '')[:10]
            if start_day and day < start_day:
                continue
            if end_day and day > end_day:
                continue
            sales.append(sale)
    return sales


async def build_pnl_report(
    store: SnapshotStore,
    config: PnLConfigLoadResult,
    start_day: Optional[str] = None,
    end_day: Optional[str] = None,
    price_change_date: str = '2026-02-22',
) -> Optional[Dict[str, Any]]:
    """
    P&L for a date range, or None when no complaint data exists.

    Volumes come from the daily complaint uploads in range; without any, the
    deduplicated ``pnl-complaints.json`` sales whose first sale day falls in
    range are used. A loaded (non-default) config prices every sale;
    otherwise the date-aware price lists apply.
    """
    daily = await aggregate_daily_complaints(store, start_day, end_day)
    if daily is not None:
        source = 'daily-complaints-data'
        sales = [sale for service in daily['services'].values() for sale in service['sales']]
    else:
        document = await load_complaints_dataset(store)
        if document is None:
            return None
        source = 'pnl-complaints'
        sales = _sales_in_range(document, start_day, end_day)

    sale_days = sorted(filter(None, (str(sale.get('firstSaleDate') or '')[:10] for sale in sales)))
    range_start = start_day or (sale_days[0] if sale_days else None)
    range_end = end_day or start_day or (sale_days[-1] if sale_days else None)
    months = months_spanned(range_start, range_end) if range_start and range_end else 1

    if config.source == ConfigSource.DEFAULT:
        pricing = date_aware_pricing(price_change_date)
    else:
        pricing = config_pricing(config.config)

    report = compute_pnl_from_sales(
        sales,
        pricing,
        monthly_fixed_costs=config.config.monthly_fixed_costs,
        months=months,
        source=source,
    )
    report['dateRange'] = {'startDate': range_start, 'endDate': range_end}
    report['months'] = months
    report['configSource'] = config.source.value
    logger.info(
        f"Built P&L from {len(sales)} sales ({source}, {months} month(s), config {config.source.value})"
    )
    return report
