# utils/sales_analytics/customer_metrics.py
"""
Customer-side Calculations

- Lifecycle composition: monthly share of customers per lifecycle stage
- Hero metrics: at-risk rate, decision-maker coverage, engagement, repeat revenue
- Top customers: revenue ranking with per-customer detail metrics
"""

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .classifiers import FunnelStage
from .constants import (
    AT_RISK_STAGE,
    DEFAULT_TOP_CUSTOMERS_LIMIT,
    LIFECYCLE_STAGE_ORDER,
    REPEAT_REVENUE_CATEGORY,
)
from .metrics import percentage, round_half_up, to_numeric

logger = logging.getLogger(__name__)


def order_stages(stages: Iterable[str]) -> List[str]:
    """Known lifecycle stages in their fixed order, then any other stage alphabetically."""
    present = set(s for s in stages if isinstance(s, str))
    known = [s for s in LIFECYCLE_STAGE_ORDER if s in present]
    unknown = sorted(present - set(LIFECYCLE_STAGE_ORDER))
    return known + unknown


def _month_key(values: pd.Series) -> pd.Series:
    return pd.to_datetime(values, errors='coerce').dt.strftime('%Y-%m')


def _is_truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 't', 'y')
    if value is None or pd.isna(value):
        return False
    return bool(value)


# =============================================================================
# LIFECYCLE COMPOSITION
# =============================================================================

def lifecycle_composition(stage_history_df: pd.DataFrame, revenue_df: pd.DataFrame) -> List[Dict]:
    """
    Build the month-ordered lifecycle composition.

    A customer with several transitions in one month is counted once, under
    its latest stage of that month, so each month's percentages sum to 100.

    Args:
        stage_history_df: customer_stage_historical rows in range
        revenue_df: Revenue rows in range for the same customers

    Returns:
        [{'month': 'YYYY-MM', 'totalCustomers': int,
          'stages': [{'stage', 'customerCount', 'totalRevenue', 'percentage'}]}]
    """
    if stage_history_df.empty:
        return []

    history = stage_history_df.assign(
        month=_month_key(stage_history_df['activity_date']),
        _ts=pd.to_datetime(stage_history_df['activity_date'], errors='coerce'),
    )
    history = history.dropna(subset=['customer_id', 'month', 'life_cycle_stage'])
    if history.empty:
        return []

    latest = (
        history.sort_values(['_ts', 'historical_id'], kind='mergesort')
        .drop_duplicates(subset=['customer_id', 'month'], keep='last')
    )

    revenue_by_customer_month = {}
    if not revenue_df.empty:
        revenue = revenue_df.assign(
            month=_month_key(revenue_df['participation_dt']),
            _amount=to_numeric(revenue_df['revenue']),
        )
        sums = revenue.groupby(['customer_id', 'month'])['_amount'].sum()
        revenue_by_customer_month = {(int(c), m): float(v) for (c, m), v in sums.items()}

    months = []
    for month in sorted(latest['month'].unique()):
        month_rows = latest[latest['month'] == month]
        total_customers = month_rows['customer_id'].nunique()

        stages = []
        for stage in order_stages(month_rows['life_cycle_stage'].unique()):
            customers = month_rows.loc[month_rows['life_cycle_stage'] == stage, 'customer_id'].unique()
            count = len(customers)
            stages.append({
                'stage': stage,
                'customerCount': count,
                'totalRevenue': sum(revenue_by_customer_month.get((int(c), month), 0.0) for c in customers),
                'percentage': round_half_up(percentage(count, total_customers), 2),
            })

        months.append({'month': month, 'totalCustomers': int(total_customers), 'stages': stages})

    logger.debug(f"Lifecycle composition covers {len(months)} months")
    return months


# =============================================================================
# HERO METRICS
# =============================================================================

class CustomerHeroMetrics:
    """
    Headline customer KPIs.

    Usage:
        hero = CustomerHeroMetrics(customers_df, contacts_df, revenue_df)
        data = hero.calculate()
    """

    def __init__(self, customers_df: pd.DataFrame, contacts_df: pd.DataFrame, revenue_df: pd.DataFrame):
        self.customers_df = customers_df
        self.contacts_df = contacts_df
        self.revenue_df = revenue_df

    def calculate(self) -> Dict:
        total_customers = len(self.customers_df)
        at_risk = 0
        if total_customers:
            at_risk = int((self.customers_df['customer_lifecycle_stage'] == AT_RISK_STAGE).sum())

        customers_with_dm = self._customers_with_dm()

        total_revenue = 0.0
        repeat_revenue = 0.0
        if not self.revenue_df.empty:
            amounts = to_numeric(self.revenue_df['revenue'])
            total_revenue = float(amounts.sum())
            repeat_revenue = float(amounts[self.revenue_df['revenue_category'] == REPEAT_REVENUE_CATEGORY].sum())

        return {
            'atRiskRate': round_half_up(percentage(at_risk, total_customers), 1),
            'atRiskCustomers': at_risk,
            'totalCustomers': total_customers,
            'customersWithDmRate': round_half_up(percentage(customers_with_dm, total_customers), 1),
            'customersWithDm': customers_with_dm,
            'healthEngagementScore': self.engagement_score(),
            'repeatRevenueRate': round_half_up(percentage(repeat_revenue, total_revenue), 1),
            'repeatRevenueAmount': repeat_revenue,
            'totalRevenueAmount': total_revenue,
        }

    def _customers_with_dm(self) -> int:
        if self.contacts_df.empty or self.customers_df.empty:
            return 0
        known = set(self.customers_df['customer_id'])
        dm_contacts = self.contacts_df[self.contacts_df['is_dm'].map(_is_truthy)]
        return int(dm_contacts.loc[dm_contacts['customer_id'].isin(known), 'customer_id'].nunique())

    def engagement_score(self) -> float:
        """Mean contact score over contacts with a score, 0 without any."""
        if self.contacts_df.empty:
            return 0.0
        scores = pd.to_numeric(self.contacts_df['contact_score'], errors='coerce').dropna()
        if scores.empty:
            return 0.0
        return round_half_up(float(scores.mean()), 1)


# =============================================================================
# TOP CUSTOMERS
# =============================================================================

def rank_top_customers(
    revenue_df: pd.DataFrame,
    customers_df: pd.DataFrame,
    deals_df: pd.DataFrame,
    limit: Optional[int] = DEFAULT_TOP_CUSTOMERS_LIMIT,
    offset: int = 0
) -> List[Dict]:
    """
    Rank customers by revenue, largest first (ties by customer id).

    Args:
        revenue_df: Scoped revenue rows in range
        customers_df: Customer attributes
        deals_df: Current deals, for the open deal count
        limit: Page size (None = all)
        offset: Rows skipped before the page
    """
    if revenue_df.empty:
        return []

    revenue = revenue_df.assign(amount=to_numeric(revenue_df['revenue']))
    revenue = revenue.assign(
        repeat_amount=revenue['amount'].where(revenue['revenue_category'] == REPEAT_REVENUE_CATEGORY, 0.0)
    )
    scoped_total = float(revenue['amount'].sum())

    per_customer = (
        revenue.groupby('customer_id')[['amount', 'repeat_amount']].sum()
        .reset_index()
        .sort_values(['amount', 'customer_id'], ascending=[False, True], kind='mergesort')
    )

    offset = max(offset or 0, 0)
    page = per_customer.iloc[offset:] if limit is None else per_customer.iloc[offset:offset + max(limit, 0)]

    attributes = {}
    if not customers_df.empty:
        attributes = {int(row.customer_id): row for row in customers_df.itertuples(index=False)}

    open_deals = {}
    if not deals_df.empty:
        is_open = ~deals_df['deal_stage'].map(lambda s: FunnelStage.parse(s).is_terminal).astype(bool)
        open_deals = {int(k): int(v) for k, v in deals_df[is_open].groupby('customer_id').size().items()}

    rows = []
    for position, row in enumerate(page.itertuples(index=False)):
        customer_id = int(row.customer_id)
        attrs = attributes.get(customer_id)
        rows.append({
            'rank': offset + position + 1,
            'customer_id': customer_id,
            'customer_name': attrs.customer_name if attrs is not None else f"Customer {customer_id}",
            'revenue': float(row.amount),
            'metrics': {
                'industry': attrs.customer_industry if attrs is not None else None,
                'lifecycleStage': attrs.customer_lifecycle_stage if attrs is not None else None,
                'revenueShare': round_half_up(percentage(row.amount, scoped_total), 2),
                'openDeals': open_deals.get(customer_id, 0),
                'repeatRevenue': float(row.repeat_amount),
            },
        })
    return rows
