# utils/sales_analytics/team_metrics.py
"""
Team Rollup Calculations

Two independent scoring strategies exist for the same conceptual rollup and
both are served to different views:

- team_score_variant_a (team-metrics): team = manager + direct reports,
  momentum from target percentage, risk from high-risk deal ratio,
  efficiency = deals per team member
- team_score_variant_b (team-overview): team = direct reports only,
  momentum from 30-day revenue trend, risk from high-risk deal percentage,
  efficiency = events per deal, capped weighted score

Their thresholds and weights differ on purpose and are kept apart.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .classifiers import high_risk_mask, won_mask
from .constants import (
    TARGET_FLOOR,
    TREND_WINDOW_DAYS,
    VARIANT_A_ACCELERATING_PCT,
    VARIANT_A_CONVERSION_WEIGHT,
    VARIANT_A_DECLINING_PCT,
    VARIANT_A_HIGH_RISK_RATIO,
    VARIANT_A_IMPROVING_PCT,
    VARIANT_A_MEDIUM_RISK_RATIO,
    VARIANT_A_TARGET_WEIGHT,
    VARIANT_B_ACCELERATING_GROWTH,
    VARIANT_B_CONVERSION_CAP,
    VARIANT_B_CONVERSION_POINTS,
    VARIANT_B_DECLINING_GROWTH,
    VARIANT_B_EFFICIENCY_CAP,
    VARIANT_B_EFFICIENCY_POINTS,
    VARIANT_B_HIGH_RISK_PCT,
    VARIANT_B_IMPROVING_GROWTH,
    VARIANT_B_MEDIUM_RISK_PCT,
    VARIANT_B_MOMENTUM_POINTS,
    VARIANT_B_TARGET_CAP,
    VARIANT_B_TARGET_POINTS,
)
from .metrics import clamp, percentage, round_half_up, to_numeric

logger = logging.getLogger(__name__)


@dataclass
class TeamSnapshot:
    """Raw per-team aggregates both strategies score from."""
    manager_id: int
    manager_name: str
    member_ids: List[int]
    revenue: float = 0.0
    target: float = 0.0
    total_deals: int = 0
    won_deals: int = 0
    high_risk_deals: int = 0
    deal_values: List[float] = field(default_factory=list)
    total_events: int = 0
    recent_revenue: float = 0.0
    previous_revenue: float = 0.0

    @property
    def size(self) -> int:
        return len(self.member_ids)


# =============================================================================
# SNAPSHOT BUILDING
# =============================================================================

def build_team_snapshot(
    manager_id: int,
    manager_name: str,
    member_ids: Iterable[int],
    revenue_df: pd.DataFrame,
    targets_df: pd.DataFrame,
    deals_df: pd.DataFrame,
    won_stages: Iterable[str],
    high_risk_values: Iterable[str],
    events_df: Optional[pd.DataFrame] = None,
    trend_df: Optional[pd.DataFrame] = None,
    as_of: Optional[date] = None
) -> TeamSnapshot:
    """
    Aggregate one team's rows out of frames that may hold several teams.

    Args:
        member_ids: Reps counted as the team
        won_stages / high_risk_values: Literal sets of the calling strategy
        events_df: Events, for events-per-deal efficiency
        trend_df: Unbounded-range revenue, for the 30-day momentum windows
        as_of: Reference date of the momentum windows
    """
    member_ids = [int(m) for m in member_ids]
    members = set(member_ids)

    revenue = _rows_for(revenue_df, 'sales_rep', members)
    targets = _rows_for(targets_df, 'sales_rep_id', members)
    deals = _rows_for(deals_df, 'sales_rep_id', members)

    snapshot = TeamSnapshot(
        manager_id=int(manager_id),
        manager_name=manager_name,
        member_ids=member_ids,
        revenue=float(to_numeric(revenue['revenue']).sum()) if not revenue.empty else 0.0,
        target=float(to_numeric(targets['target_value']).sum()) if not targets.empty else 0.0,
        total_deals=len(deals),
    )

    if not deals.empty:
        snapshot.won_deals = int(won_mask(deals['deal_stage'], won_stages).sum())
        snapshot.high_risk_deals = int(high_risk_mask(deals['is_high_risk'], high_risk_values).sum())
        snapshot.deal_values = to_numeric(deals['max_deal_potential']).tolist()

    if events_df is not None:
        snapshot.total_events = len(_rows_for(events_df, 'sales_rep_id', members))

    if trend_df is not None:
        recent, previous = split_trend_windows(_rows_for(trend_df, 'sales_rep', members), as_of)
        snapshot.recent_revenue = recent
        snapshot.previous_revenue = previous

    return snapshot


def _rows_for(df: pd.DataFrame, column: str, members: set) -> pd.DataFrame:
    if df is None or df.empty:
        return pd.DataFrame(columns=df.columns if df is not None else [])
    return df[to_numeric(df[column]).astype(int).isin(members)]


def trend_window_start(as_of: Optional[date] = None) -> date:
    """Earliest date the two momentum windows look at."""
    as_of = as_of or date.today()
    return as_of - timedelta(days=2 * TREND_WINDOW_DAYS)


def split_trend_windows(revenue_df: pd.DataFrame, as_of: Optional[date] = None) -> Tuple[float, float]:
    """
    Revenue in the recent window (last 30 days, open-ended) and the prior
    30 days before it.

    Returns:
        (recent_total, previous_total)
    """
    if revenue_df.empty:
        return 0.0, 0.0

    as_of = as_of or date.today()
    one_window_ago = pd.Timestamp(as_of - timedelta(days=TREND_WINDOW_DAYS))
    two_windows_ago = pd.Timestamp(as_of - timedelta(days=2 * TREND_WINDOW_DAYS))

    dates = pd.to_datetime(revenue_df['participation_dt'], errors='coerce').dt.normalize()
    amounts = to_numeric(revenue_df['revenue'])

    recent = amounts[dates >= one_window_ago].sum()
    previous = amounts[(dates >= two_windows_ago) & (dates < one_window_ago)].sum()
    return float(recent), float(previous)


# =============================================================================
# VARIANT A - target-based momentum (team-metrics)
# =============================================================================

def momentum_from_target(target_percentage: float) -> str:
    if target_percentage >= VARIANT_A_ACCELERATING_PCT:
        return 'Accelerating'
    if target_percentage >= VARIANT_A_IMPROVING_PCT:
        return 'Improving'
    if target_percentage < VARIANT_A_DECLINING_PCT:
        return 'Declining'
    return 'Stable'


def risk_level_from_ratio(high_risk_ratio: float) -> str:
    if high_risk_ratio > VARIANT_A_HIGH_RISK_RATIO:
        return 'High'
    if high_risk_ratio > VARIANT_A_MEDIUM_RISK_RATIO:
        return 'Medium'
    return 'Low'


def team_score_variant_a(team: TeamSnapshot) -> Dict:
    """
    Score a team for the team-metrics view.

    performance = clamp(target% x 0.6 + conversion% x 0.4, 0, 100)
    """
    target = team.target or TARGET_FLOOR
    target_percentage = percentage(team.revenue, target)
    conversion_rate = percentage(team.won_deals, team.total_deals)
    high_risk_ratio = team.high_risk_deals / team.total_deals if team.total_deals > 0 else 0.0

    # Positive deal values averaged over every deal, including zero-valued ones
    positive_total = sum(v for v in team.deal_values if v > 0)
    avg_deal_size = positive_total / team.total_deals if team.total_deals > 0 else 0.0

    performance_score = clamp(
        target_percentage * VARIANT_A_TARGET_WEIGHT + conversion_rate * VARIANT_A_CONVERSION_WEIGHT
    )

    return {
        'manager_id': team.manager_id,
        'team_name': team.manager_name,
        'team_size': team.size,
        'revenue': team.revenue,
        'target': target,
        'target_percentage': target_percentage,
        'conversion_rate': conversion_rate,
        'total_deals': team.total_deals,
        'efficiency': team.total_deals / team.size if team.size > 0 else 0.0,
        'momentum': momentum_from_target(target_percentage),
        'risk_level': risk_level_from_ratio(high_risk_ratio),
        'performance_score': performance_score,
        'avg_deal_size': avg_deal_size,
    }


# =============================================================================
# VARIANT B - trend-based momentum (team-overview)
# =============================================================================

def revenue_growth(recent: float, previous: float) -> Optional[float]:
    """Period-over-period growth %, None without prior-period revenue."""
    if previous <= 0:
        return None
    return (recent - previous) / previous * 100


def momentum_from_trend(recent: float, previous: float) -> str:
    growth = revenue_growth(recent, previous)
    if growth is None:
        return 'stable'
    if growth > VARIANT_B_ACCELERATING_GROWTH:
        return 'accelerating'
    if growth > VARIANT_B_IMPROVING_GROWTH:
        return 'improving'
    if growth < VARIANT_B_DECLINING_GROWTH:
        return 'declining'
    return 'stable'


def risk_level_from_percentage(high_risk_percentage: float) -> str:
    if high_risk_percentage > VARIANT_B_HIGH_RISK_PCT:
        return 'high'
    if high_risk_percentage > VARIANT_B_MEDIUM_RISK_PCT:
        return 'medium'
    return 'low'


def team_score_variant_b(team: TeamSnapshot) -> Dict:
    """
    Score a team for the team-overview view.

    Sub-scores are capped before weighting:
        target%     capped at 150 -> 30 points
        conversion% capped at 50  -> 25 points
        efficiency  capped at 20  -> 20 points
        momentum    accelerating 25, improving 15, stable 10, declining 0
    """
    target_percentage = percentage(team.revenue, team.target)
    conversion_rate = percentage(team.won_deals, team.total_deals)
    efficiency = team.total_events / team.total_deals if team.total_deals > 0 else 0.0
    momentum = momentum_from_trend(team.recent_revenue, team.previous_revenue)
    risk_percentage = percentage(team.high_risk_deals, team.total_deals)

    target_score = min(target_percentage, VARIANT_B_TARGET_CAP) / VARIANT_B_TARGET_CAP * VARIANT_B_TARGET_POINTS
    conversion_score = (
        min(conversion_rate, VARIANT_B_CONVERSION_CAP) / VARIANT_B_CONVERSION_CAP * VARIANT_B_CONVERSION_POINTS
    )
    efficiency_score = (
        min(efficiency, VARIANT_B_EFFICIENCY_CAP) / VARIANT_B_EFFICIENCY_CAP * VARIANT_B_EFFICIENCY_POINTS
    )
    momentum_score = VARIANT_B_MOMENTUM_POINTS[momentum]

    return {
        'manager_id': team.manager_id,
        'manager_name': team.manager_name,
        'team_count': team.size,
        'revenue': team.revenue,
        'target': team.target,
        'target_percentage': target_percentage,
        'conversion_rate': conversion_rate,
        'efficiency': efficiency,
        'momentum': momentum,
        'risk_level': risk_level_from_percentage(risk_percentage),
        'performance_score': round_half_up(target_score + conversion_score + efficiency_score + momentum_score),
    }


def summarize_team_overview(teams: List[Dict]) -> Dict:
    """Teams sorted by score (stable) plus member, revenue and average score totals."""
    ordered = sorted(teams, key=lambda t: t['performance_score'], reverse=True)
    avg_performance = (
        sum(t['performance_score'] for t in teams) / len(teams) if teams else 0
    )
    return {
        'teams': ordered,
        'totalMembers': sum(t['team_count'] for t in teams),
        'totalRevenue': sum(t['revenue'] for t in teams),
        'avgPerformance': round_half_up(avg_performance),
    }
