# utils/sales_analytics/metrics.py
"""
KPI Calculations for the Overview and the Leaderboard

Handles:
- Overview totals (revenue, target, completion %, average deal size)
- Best performer by deal conversion rate
- Critical alerts (high-risk deals by revenue at risk)
- Weekly revenue vs target with deal volume
- Per-rep leaderboard scoring and caller-selected sorting

All inputs are DataFrames already restricted by the date range and the
manager scope; the calculations never fall back to unscoped data.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .classifiers import high_risk_mask, won_mask
from .constants import (
    DEFAULT_LEADERBOARD_LIMIT,
    LEADERBOARD_CONVERSION_WEIGHT,
    LEADERBOARD_HIGH_RISK_VALUES,
    LEADERBOARD_SAFETY_WEIGHT,
    LEADERBOARD_SORT_FIELDS,
    LEADERBOARD_TARGET_WEIGHT,
    LEADERBOARD_WON_STAGES,
    OVERVIEW_WON_STAGES,
    SCORE_MAX,
    SCORE_MIN,
    TARGET_FLOOR,
)

logger = logging.getLogger(__name__)


# =============================================================================
# NUMERIC HELPERS
# =============================================================================

def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from -inf (0.5 -> 1, 2.5 -> 3), unlike round()."""
    factor = 10 ** ndigits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if ndigits == 0 else result


def clamp(value: float, low: float = SCORE_MIN, high: float = SCORE_MAX) -> float:
    return min(high, max(low, value))


def to_numeric(series: pd.Series) -> pd.Series:
    """Coerce a column (Decimal, str, None) to float with 0 for missing values."""
    return pd.to_numeric(series, errors='coerce').fillna(0).astype(float)


def percentage(numerator: float, denominator: float) -> float:
    """numerator / denominator * 100, or 0 when the denominator is not positive."""
    return float(numerator) / float(denominator) * 100 if denominator > 0 else 0.0


def sum_by(df: pd.DataFrame, key: str, value: str) -> Dict[int, float]:
    """Sum ``value`` per ``key`` as a plain dict."""
    if df.empty:
        return {}
    sums = df.assign(_v=to_numeric(df[value])).groupby(key)['_v'].sum()
    return {int(k): float(v) for k, v in sums.items()}


# =============================================================================
# OVERVIEW
# =============================================================================

class OverviewMetrics:
    """
    Overview totals and best performer.

    Usage:
        metrics = OverviewMetrics(revenue_df, targets_df, deals_df, reps_df)
        overview = metrics.calculate_overview(manager_id=None)
    """

    def __init__(
        self,
        revenue_df: pd.DataFrame,
        targets_df: pd.DataFrame,
        deals_df: pd.DataFrame,
        reps_df: pd.DataFrame
    ):
        self.revenue_df = revenue_df
        self.targets_df = targets_df
        self.deals_df = deals_df
        self.reps_df = reps_df

    def calculate_overview(self, manager_id: Optional[int] = None) -> Dict:
        """
        Calculate overview KPIs.

        Args:
            manager_id: When set, the best performer is chosen from this
                manager's direct reports only

        Returns:
            Dict with overallRevenue, bestPerformer and avgDealSize
        """
        amounts = to_numeric(self.revenue_df['revenue']) if not self.revenue_df.empty else pd.Series(dtype=float)
        total_revenue = float(amounts.sum())
        total_target = float(to_numeric(self.targets_df['target_value']).sum()) if not self.targets_df.empty else 0.0

        # Average revenue per recorded revenue event, not per deal
        avg_deal_size = float(amounts.mean()) if len(amounts) else 0.0

        return {
            'overallRevenue': {
                'total': total_revenue,
                'target': total_target,
                'completionPercentage': percentage(total_revenue, total_target),
            },
            'bestPerformer': self.find_best_performer(manager_id),
            'avgDealSize': avg_deal_size,
        }

    def find_best_performer(self, manager_id: Optional[int] = None) -> Optional[Dict]:
        """
        Rep with the highest deal conversion rate.

        Only reps that have a manager are eligible. Won deals match
        OVERVIEW_WON_STAGES. Ties keep the first rep in roster order.
        """
        reps = self.reps_df
        if reps.empty:
            return None

        eligible = reps[reps['sales_rep_manager_id'].notna()]
        if manager_id is not None:
            eligible = eligible[to_numeric(eligible['sales_rep_manager_id']) == manager_id]
        if eligible.empty:
            return None

        revenue_by_rep = sum_by(self.revenue_df, 'sales_rep', 'revenue')
        target_by_rep = sum_by(self.targets_df, 'sales_rep_id', 'target_value')

        deals = self.deals_df
        if deals.empty:
            total_by_rep, won_by_rep = {}, {}
        else:
            deals = deals.assign(_won=won_mask(deals['deal_stage'], OVERVIEW_WON_STAGES))
            grouped = deals.groupby('sales_rep_id')['_won']
            total_by_rep = {int(k): int(v) for k, v in grouped.size().items()}
            won_by_rep = {int(k): int(v) for k, v in grouped.sum().items()}

        best = None
        for row in eligible.itertuples(index=False):
            rep_id = int(row.sales_rep_id)
            total = total_by_rep.get(rep_id, 0)
            won = won_by_rep.get(rep_id, 0)
            revenue = revenue_by_rep.get(rep_id, 0.0)
            target = target_by_rep.get(rep_id, 0.0)
            candidate = {
                'sales_rep_id': rep_id,
                'sales_rep_name': row.sales_rep_name,
                'revenue': revenue,
                'target': target,
                'percentTarget': percentage(revenue, target),
                'conversionRate': percentage(won, total),
                'wonDeals': won,
                'totalDeals': total,
            }
            if best is None or candidate['conversionRate'] > best['conversionRate']:
                best = candidate

        logger.debug(f"Best performer: {best}")
        return best

    @staticmethod
    def build_critical_alerts(high_risk_deals_df: pd.DataFrame) -> List[Dict]:
        """High-risk deals ordered by revenue at risk (max_deal_potential), largest first."""
        if high_risk_deals_df.empty:
            return []

        df = high_risk_deals_df.assign(at_risk=to_numeric(high_risk_deals_df['max_deal_potential']))
        df = df.sort_values('at_risk', ascending=False, kind='mergesort')

        return [
            {
                'deal_id': int(row.deal_id),
                'customer_name': row.customer_name if isinstance(row.customer_name, str) else 'Unknown',
                'sales_rep_name': row.sales_rep_name if isinstance(row.sales_rep_name, str) else 'Unknown',
                'deal_stage': row.deal_stage,
                'revenueAtRisk': float(row.at_risk),
            }
            for row in df.itertuples(index=False)
        ]


# =============================================================================
# WEEKLY REVENUE TREND
# =============================================================================

def week_start_key(values: pd.Series) -> pd.Series:
    """ISO date of the Sunday that starts each value's week; NaN for unparseable values."""
    days = pd.to_datetime(values, errors='coerce').dt.normalize()
    sunday = days - pd.to_timedelta((days.dt.weekday + 1) % 7, unit='D')
    return sunday.dt.strftime('%Y-%m-%d')


def weekly_revenue_trend(revenue_df: pd.DataFrame, targets_df: pd.DataFrame) -> List[Dict]:
    """
    Revenue, target and deal volume per week (weeks start on Sunday).

    Revenue rows are bucketed by participation date, each row counting as one
    deal. A monthly target lands in the week holding its target_month date.
    Only weeks with revenue or a target are listed, oldest first.

    Returns:
        [{'week': 'YYYY-MM-DD', 'revenue': float, 'target': float, 'dealVolume': int}]
    """
    weeks: Dict[str, Dict] = {}

    def bucket(week: str) -> Dict:
        return weeks.setdefault(week, {'week': week, 'revenue': 0.0, 'target': 0.0, 'dealVolume': 0})

    if not revenue_df.empty:
        revenue = revenue_df.assign(
            week=week_start_key(revenue_df['participation_dt']),
            amount=to_numeric(revenue_df['revenue']),
        ).dropna(subset=['week'])
        grouped = revenue.groupby('week')['amount']
        for week, total in grouped.sum().items():
            bucket(week)['revenue'] = float(total)
        for week, count in grouped.size().items():
            bucket(week)['dealVolume'] = int(count)

    if not targets_df.empty:
        targets = targets_df.assign(
            week=week_start_key(targets_df['target_month']),
            amount=to_numeric(targets_df['target_value']),
        ).dropna(subset=['week'])
        for week, total in targets.groupby('week')['amount'].sum().items():
            bucket(week)['target'] = float(total)

    return [weeks[week] for week in sorted(weeks)]


# =============================================================================
# LEADERBOARD
# =============================================================================

class LeaderboardMetrics:
    """
    Per-rep leaderboard scoring.

    performance = round(target% x 0.5 + conversion% x 1.5 + (100 - risk%) x 0.2),
    clamped to [0, 100].

    Usage:
        board = LeaderboardMetrics(reps_df, revenue_df, targets_df, deals_df)
        rows = board.calculate_rep_metrics()
        rows = LeaderboardMetrics.sort_leaderboard(rows, 'revenue', ascending=False)
    """

    def __init__(
        self,
        reps_df: pd.DataFrame,
        revenue_df: pd.DataFrame,
        targets_df: pd.DataFrame,
        deals_df: pd.DataFrame
    ):
        self.reps_df = reps_df
        self.revenue_df = revenue_df
        self.targets_df = targets_df
        self.deals_df = deals_df

    def calculate_rep_metrics(self) -> List[Dict]:
        """One scored row per rep, in roster order."""
        if self.reps_df.empty:
            return []

        revenue_by_rep = sum_by(self.revenue_df, 'sales_rep', 'revenue')
        target_by_rep = sum_by(self.targets_df, 'sales_rep_id', 'target_value')
        deal_stats = self._deal_stats_by_rep()

        rows = []
        for rep in self.reps_df.itertuples(index=False):
            rep_id = int(rep.sales_rep_id)
            stats = deal_stats.get(rep_id, {})
            rows.append(self.score_rep(
                rep_id=rep_id,
                rep_name=rep.sales_rep_name,
                revenue=revenue_by_rep.get(rep_id, 0.0),
                target=target_by_rep.get(rep_id, 0.0),
                total_deals=stats.get('total', 0),
                won_deals=stats.get('won', 0),
                high_risk_deals=stats.get('high_risk', 0),
                deal_values=stats.get('values', []),
            ))
        return rows

    def _deal_stats_by_rep(self) -> Dict[int, Dict]:
        deals = self.deals_df
        if deals.empty:
            return {}

        deals = deals.assign(
            _won=won_mask(deals['deal_stage'], LEADERBOARD_WON_STAGES),
            _high_risk=high_risk_mask(deals['is_high_risk'], LEADERBOARD_HIGH_RISK_VALUES),
            _value=to_numeric(deals['max_deal_potential']),
        )

        stats = {}
        for rep_id, group in deals.groupby('sales_rep_id'):
            stats[int(rep_id)] = {
                'total': len(group),
                'won': int(group['_won'].sum()),
                'high_risk': int(group['_high_risk'].sum()),
                'values': group['_value'].tolist(),
            }
        return stats

    @staticmethod
    def score_rep(
        rep_id: int,
        rep_name: str,
        revenue: float,
        target: float,
        total_deals: int,
        won_deals: int,
        high_risk_deals: int,
        deal_values: Iterable[float] = ()
    ) -> Dict:
        """
        Score one rep.

        A zero target is floored to TARGET_FLOOR, so a rep without targets
        gets a target percentage near 0 instead of an undefined one.
        """
        target = target or TARGET_FLOOR
        target_percentage = percentage(revenue, target)
        conversion_rate = percentage(won_deals, total_deals)

        positive_values = [v for v in deal_values if v > 0]
        avg_deal_size = float(np.mean(positive_values)) if positive_values else 0.0

        risk_ratio = high_risk_deals / total_deals if total_deals > 0 else 0.0
        performance = round_half_up(
            target_percentage * LEADERBOARD_TARGET_WEIGHT
            + conversion_rate * LEADERBOARD_CONVERSION_WEIGHT
            + (100 - risk_ratio * 100) * LEADERBOARD_SAFETY_WEIGHT
        )

        return {
            'sales_rep_id': rep_id,
            'sales_rep_name': rep_name,
            'revenue': revenue,
            'target': target,
            'target_percentage': round_half_up(target_percentage, 2),
            'conversion_rate': round_half_up(conversion_rate, 2),
            'total_deals': total_deals,
            'avg_deal_size': round_half_up(avg_deal_size),
            'risk_ratio': risk_ratio,
            'performance': clamp(performance),
        }

    @staticmethod
    def resolve_sort_field(sort_by: Optional[str]) -> str:
        """The field a leaderboard is actually sorted by; unknown names become 'performance'."""
        if sort_by not in LEADERBOARD_SORT_FIELDS:
            logger.warning(f"Unknown leaderboard sort field {sort_by!r}, using 'performance'")
            return 'performance'
        return sort_by

    @staticmethod
    def sort_leaderboard(
        rows: List[Dict],
        sort_by: str = 'performance',
        ascending: bool = False,
        limit: Optional[int] = DEFAULT_LEADERBOARD_LIMIT
    ) -> List[Dict]:
        """
        Stable sort by any leaderboard field; ties keep insertion order.

        Args:
            rows: Leaderboard rows
            sort_by: Field name (unknown names fall back to 'performance')
            ascending: Sort direction
            limit: Keep the first N rows after sorting (None = all)
        """
        sort_by = LeaderboardMetrics.resolve_sort_field(sort_by)

        # Rows without a value go last in either direction
        present = [row for row in rows if row.get(sort_by) is not None]
        missing = [row for row in rows if row.get(sort_by) is None]
        ordered = sorted(present, key=lambda row: row[sort_by], reverse=not ascending) + missing
        if limit is not None and limit >= 0:
            ordered = ordered[:limit]
        return ordered
