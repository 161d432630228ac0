# utils/sales_analytics/deal_funnel.py
"""
New-Deals Funnel

Seed deals are deals whose earliest historical entry is `prospecting`, with
that entry inside the date range and the rep scope. Each seed's full history
(not date-filtered) decides the furthest stage it reached. Counts are
cumulative: a deal that reached negotiation also counts toward prospecting,
qualified and proposal.

Also provides the new-deals KPI cards, the top/lost deal tables and the
monthly average deal value per stage.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .classifiers import FUNNEL_STAGES, LINEAR_FUNNEL_STAGES, FunnelStage
from .constants import FUNNEL_STAGE_LABELS, LOST_STAGES, TOP_DEALS_LIMIT
from .metrics import percentage, round_half_up, to_numeric

logger = logging.getLogger(__name__)


def _prepare_history(history_df: pd.DataFrame) -> pd.DataFrame:
    """Parse stages and dates, ordered by deal then activity date."""
    history = history_df.assign(
        stage=history_df['deal_stage'].map(FunnelStage.parse),
        activity_ts=pd.to_datetime(history_df['activity_date'], errors='coerce'),
        value=to_numeric(history_df['deal_value']),
    )
    return history.sort_values(['deal_id', 'activity_ts', 'historical_id'], kind='mergesort')


def _days_between(start: pd.Timestamp, end: pd.Timestamp) -> float:
    return (end - start).total_seconds() / 86400


class NewDealsFunnel:
    """
    Funnel computations over the full history of candidate deals.

    Usage:
        funnel = NewDealsFunnel(history_df, start_date, end_date, rep_ids)
        stages = funnel.calculate_waterfall()
        kpis = funnel.calculate_metrics(events_count)
    """

    def __init__(
        self,
        history_df: pd.DataFrame,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        rep_ids: Optional[Iterable[int]] = None
    ):
        self.start_date = start_date
        self.end_date = end_date
        self.rep_ids = None if rep_ids is None else set(int(r) for r in rep_ids)
        self.history = _prepare_history(history_df) if not history_df.empty else None
        self._seeds = None

    # =========================================================================
    # SEED DEALS
    # =========================================================================

    def _in_range(self, ts: pd.Timestamp) -> bool:
        if pd.isna(ts):
            return False
        day = ts.date()
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    @property
    def seeds(self) -> Dict[int, Dict]:
        """
        Seed deals keyed by deal id.

        Each entry holds the seed timestamp, the customer, the furthest stage
        reached, the closing outcome and the latest recorded value.
        """
        if self._seeds is not None:
            return self._seeds

        seeds = {}
        if self.history is not None:
            for deal_id, rows in self.history.groupby('deal_id', sort=True):
                first = rows.iloc[0]
                if first['stage'] is not FunnelStage.PROSPECTING or not self._in_range(first['activity_ts']):
                    continue
                if self.rep_ids is not None and (
                    pd.isna(first['sales_rep_id']) or int(first['sales_rep_id']) not in self.rep_ids
                ):
                    continue
                seeds[int(deal_id)] = self._summarize_deal(rows)

        logger.debug(f"Funnel seeds: {len(seeds)} deals")
        self._seeds = seeds
        return seeds

    @staticmethod
    def _summarize_deal(rows: pd.DataFrame) -> Dict:
        ranks = [stage.rank for stage in rows['stage'] if stage.rank is not None]
        max_rank = max(ranks) if ranks else 0

        # A deal closed more than once keeps its latest outcome
        terminal = [stage for stage in rows['stage'] if stage.is_terminal]
        outcome = terminal[-1] if terminal else None

        def first_ts(stage: FunnelStage) -> Optional[pd.Timestamp]:
            matched = rows.loc[rows['stage'] == stage, 'activity_ts']
            return matched.iloc[0] if not matched.empty else None

        return {
            'seeded_at': rows.iloc[0]['activity_ts'],
            'customer_id': rows.iloc[0]['customer_id'],
            'max_rank': max_rank,
            'outcome': outcome,
            'latest_value': float(rows.iloc[-1]['value']),
            'qualified_at': list(rows.loc[rows['stage'] == FunnelStage.QUALIFIED, 'activity_ts']),
            'won_at': first_ts(FunnelStage.CLOSED_WON),
        }

    def reached(self, stage: FunnelStage) -> List[int]:
        """Seed deal ids that reached ``stage`` (cumulative for linear stages)."""
        if stage.is_terminal:
            return [d for d, s in self.seeds.items() if s['outcome'] is stage]
        return [d for d, s in self.seeds.items() if s['max_rank'] >= stage.rank]

    # =========================================================================
    # WATERFALL
    # =========================================================================

    def calculate_waterfall(self) -> Dict:
        """
        Cumulative counts and values per funnel stage.

        Returns:
            Dict with 'stages' (fixed order, zero-filled), 'stageCounts',
            'stageValues' and 'totalDeals'
        """
        counts = {}
        stages = []
        for stage in FUNNEL_STAGES:
            deal_ids = self.reached(stage)
            counts[stage] = len(deal_ids)
            stages.append({
                'stage': stage.value,
                'label': FUNNEL_STAGE_LABELS[stage.value],
                'count': len(deal_ids),
                'value': sum(self.seeds[d]['latest_value'] for d in deal_ids),
            })

        for item, stage in zip(stages, FUNNEL_STAGES):
            item['conversionRate'] = self._stage_conversion(stage, counts)

        return {
            'stages': stages,
            'stageCounts': {item['stage']: item['count'] for item in stages},
            'stageValues': {item['stage']: item['value'] for item in stages},
            'totalDeals': len(self.seeds),
        }

    @staticmethod
    def _stage_conversion(stage: FunnelStage, counts: Dict[FunnelStage, int]) -> int:
        if stage is FunnelStage.PROSPECTING:
            return 100 if counts[stage] > 0 else 0
        if stage.is_terminal:
            previous = FunnelStage.NEGOTIATION
        else:
            previous = LINEAR_FUNNEL_STAGES[LINEAR_FUNNEL_STAGES.index(stage) - 1]
        return round_half_up(percentage(counts[stage], counts[previous]))

    # =========================================================================
    # KPI CARDS
    # =========================================================================

    def calculate_metrics(self, events_count: int = 0) -> Dict:
        """
        New-deals KPI cards.

        Args:
            events_count: Events logged by the scoped reps in the date range
        """
        seeds = self.seeds
        total = len(seeds)

        response_gaps = [
            _days_between(s['seeded_at'], ts)
            for s in seeds.values()
            for ts in s['qualified_at']
            if not pd.isna(ts) and ts >= s['seeded_at']
        ]
        lead_response = sum(response_gaps) / len(response_gaps) if response_gaps else 0.0

        won = len(self.reached(FunnelStage.CLOSED_WON))

        cycle_lengths = [
            _days_between(s['seeded_at'], s['won_at'])
            for s in seeds.values()
            if s['won_at'] is not None and not pd.isna(s['won_at']) and s['won_at'] >= s['seeded_at']
        ]
        cycle_length = sum(cycle_lengths) / len(cycle_lengths) if cycle_lengths else 0.0

        touchpoints = events_count / total if total else 0.0

        return {
            'leadResponseTime': round_half_up(lead_response, 1),
            'conversionRate': round_half_up(percentage(won, total), 1),
            'dealCycleLength': round_half_up(cycle_length),
            'touchpointsPerDeal': round_half_up(touchpoints),
            'totalDeals': total,
            'wonDeals': won,
        }


# =============================================================================
# DEAL TABLES
# =============================================================================

def _best_row_per_deal(rows: pd.DataFrame, limit: Optional[int]) -> pd.DataFrame:
    rows = rows.assign(value=to_numeric(rows['deal_value']))
    rows = rows.sort_values(['value', 'deal_id'], ascending=[False, True], kind='mergesort')
    rows = rows.drop_duplicates(subset=['deal_id'], keep='first')
    return rows.head(limit) if limit is not None else rows


def _table_rows(rows: pd.DataFrame, customer_names: Dict[int, str], rep_names: Dict[int, str]) -> List[Dict]:
    table = []
    for row in rows.itertuples(index=False):
        customer_id = None if pd.isna(row.customer_id) else int(row.customer_id)
        rep_id = None if pd.isna(row.sales_rep_id) else int(row.sales_rep_id)
        activity = pd.to_datetime(row.activity_date, errors='coerce')
        table.append({
            'deal_id': int(row.deal_id),
            'deal_stage': row.deal_stage,
            'deal_value': float(row.value),
            'activity_date': activity.date().isoformat() if not pd.isna(activity) else None,
            'customer_id': customer_id,
            'customer_name': customer_names.get(customer_id, 'Unknown'),
            'sales_rep_id': rep_id,
            'sales_rep_name': rep_names.get(rep_id, 'Unknown'),
        })
    return table


def build_deal_tables(
    history_df: pd.DataFrame,
    customer_names: Optional[Dict[int, str]] = None,
    rep_names: Optional[Dict[int, str]] = None,
    top_limit: int = TOP_DEALS_LIMIT
) -> Dict[str, List[Dict]]:
    """
    Top open/won deals and lost opportunities, one row per deal at its highest value.

    Args:
        history_df: deal_historical rows in range and scope
    """
    if history_df.empty:
        return {'topDeals': [], 'lostOpportunities': []}

    is_lost = history_df['deal_stage'].isin(LOST_STAGES)
    top = _best_row_per_deal(history_df[~is_lost], top_limit)
    lost = _best_row_per_deal(history_df[is_lost], None)

    return {
        'topDeals': _table_rows(top, customer_names or {}, rep_names or {}),
        'lostOpportunities': _table_rows(lost, customer_names or {}, rep_names or {}),
    }


# =============================================================================
# DEAL SIZE TREND
# =============================================================================

def _stage_name(value) -> Optional[str]:
    """Funnel stage value for known stages (won/lost folded in), else the trimmed raw stage."""
    stage = FunnelStage.parse(value)
    if stage is not FunnelStage.UNKNOWN:
        return stage.value
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def monthly_deal_size_by_stage(history_df: pd.DataFrame) -> Dict:
    """
    Average deal value per month and stage over deal_historical rows.

    Rows without a deal value (null or 0) stay out of the averages, though
    their stage is still listed. Every month carries every stage, zero-filled.

    Returns:
        {'stages': [stage, ...],
         'months': [{'month': 'YYYY-MM',
                     'stages': [{'stage', 'label', 'avgDealValue', 'dealCount'}]}]}
    """
    if history_df.empty:
        return {'stages': [], 'months': []}

    rows = history_df.assign(
        stage=history_df['deal_stage'].map(_stage_name),
        month=pd.to_datetime(history_df['activity_date'], errors='coerce').dt.strftime('%Y-%m'),
        value=to_numeric(history_df['deal_value']),
    ).dropna(subset=['stage', 'month'])

    known = [stage.value for stage in FUNNEL_STAGES]
    present = set(rows['stage'])
    stages = [s for s in known if s in present] + sorted(present - set(known))

    valued = rows[rows['value'] != 0]
    grouped = valued.groupby(['month', 'stage'])['value']
    averages = {key: float(v) for key, v in grouped.mean().items()}
    counts = {key: int(v) for key, v in grouped.size().items()}

    months = []
    for month in sorted(valued['month'].unique()):
        months.append({
            'month': month,
            'stages': [
                {
                    'stage': stage,
                    'label': FUNNEL_STAGE_LABELS.get(stage, stage),
                    'avgDealValue': averages.get((month, stage), 0.0),
                    'dealCount': counts.get((month, stage), 0),
                }
                for stage in stages
            ],
        })

    logger.debug(f"Deal size trend covers {len(months)} months and {len(stages)} stages")
    return {'stages': stages, 'months': months}
