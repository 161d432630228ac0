"""Tests for lifecycle composition, customer hero metrics and top customers."""

import pandas as pd
import pytest

from utils.sales_analytics.customer_metrics import (
    CustomerHeroMetrics,
    lifecycle_composition,
    order_stages,
    rank_top_customers,
)
from utils.sales_analytics.queries import (
    CONTACT_COLUMNS,
    CUSTOMER_COLUMNS,
    DEAL_COLUMNS,
    REVENUE_COLUMNS,
    STAGE_HISTORY_COLUMNS,
)


def history_frame(rows):
    return pd.DataFrame(
        [{'historical_id': i, 'customer_id': c, 'life_cycle_stage': s, 'activity_date': d}
         for i, (c, s, d) in enumerate(rows)],
        columns=STAGE_HISTORY_COLUMNS,
    )


def revenue_frame(rows):
    return pd.DataFrame(
        [{'revenue_id': i, 'revenue': amt, 'sales_rep': 1, 'customer_id': c,
          'participation_dt': d, 'revenue_category': cat}
         for i, (c, amt, d, cat) in enumerate(rows)],
        columns=REVENUE_COLUMNS,
    )


EMPTY_REVENUE = revenue_frame([])


class TestStageOrder:

    def test_known_stages_first_then_alphabetical(self):
        assert order_stages(['Zombie', 'At Risk', 'Acquisition', 'Dormant', 'Loyal']) == [
            'Acquisition', 'Loyal', 'At Risk', 'Dormant', 'Zombie',
        ]

    def test_ignores_missing_values(self):
        assert order_stages([None, 'Loyal', float('nan')]) == ['Loyal']


class TestLifecycleComposition:

    def test_months_ascending_with_fixed_stage_order(self):
        history = history_frame([
            (1, 'Loyal', '2024-02-03'),
            (2, 'At Risk', '2024-01-10'),
            (3, 'Acquisition', '2024-01-12'),
            (4, 'Newly Acquired', '2024-01-20'),
        ])
        months = lifecycle_composition(history, EMPTY_REVENUE)

        assert [m['month'] for m in months] == ['2024-01', '2024-02']
        assert [s['stage'] for s in months[0]['stages']] == ['Acquisition', 'Newly Acquired', 'At Risk']

    def test_customer_counted_once_per_month_under_latest_stage(self):
        history = history_frame([
            (1, 'Acquisition', '2024-01-03'),
            (1, 'Loyal', '2024-01-25'),
            (2, 'At Risk', '2024-01-10'),
        ])
        months = lifecycle_composition(history, EMPTY_REVENUE)
        stages = {s['stage']: s for s in months[0]['stages']}

        assert months[0]['totalCustomers'] == 2
        assert set(stages) == {'Loyal', 'At Risk'}
        assert stages['Loyal']['percentage'] == 50

    def test_percentages_sum_to_100(self):
        history = history_frame([
            (1, 'Acquisition', '2024-02-02'),
            (2, 'Dormant', '2024-02-14'),
            (3, 'Champion', '2024-02-20'),
            (4, 'Loyal', '2024-03-01'),
            (5, 'Loyal', '2024-03-02'),
            (6, 'At Risk', '2024-03-09'),
        ])
        for month in lifecycle_composition(history, EMPTY_REVENUE):
            assert sum(s['percentage'] for s in month['stages']) == pytest.approx(100, abs=0.05)

    def test_revenue_is_matched_by_customer_and_month(self):
        history = history_frame([(1, 'Loyal', '2024-01-25'), (2, 'Loyal', '2024-01-26')])
        revenue = revenue_frame([
            (1, 100.0, '2024-01-10', 'new'),
            (1, 50.0, '2024-02-10', 'new'),
            (2, 25.0, '2024-01-31', 'repeat'),
        ])
        months = lifecycle_composition(history, revenue)
        assert months[0]['stages'][0]['totalRevenue'] == 125

    def test_rows_without_customer_are_skipped(self):
        history = history_frame([(101, 'Loyal', '2024-01-05'), (None, 'Loyal', '2024-01-06')])
        revenue = revenue_frame([(101, 40.0, '2024-01-20', 'repeat')])
        months = lifecycle_composition(history, revenue)

        assert months[0]['totalCustomers'] == 1
        assert months[0]['stages'] == [
            {'stage': 'Loyal', 'customerCount': 1, 'totalRevenue': 40.0, 'percentage': 100.0},
        ]

    def test_empty(self):
        assert lifecycle_composition(history_frame([]), EMPTY_REVENUE) == []


class TestCustomerHeroMetrics:

    customers = pd.DataFrame(
        [(1, 'A', 'Tech', 'At Risk'), (2, 'B', 'Tech', 'Loyal'), (3, 'C', 'Retail', 'Loyal'), (4, 'D', 'Retail', 'Loyal')],
        columns=CUSTOMER_COLUMNS,
    )
    contacts = pd.DataFrame(
        [(1, 1, 80, 1), (2, 1, 60, 1), (3, 2, None, 0), (4, 3, 40, 'true')],
        columns=CONTACT_COLUMNS,
    )

    def test_rates(self):
        revenue = revenue_frame([(1, 300.0, '2024-01-01', 'repeat'), (2, 100.0, '2024-01-01', 'new')])
        hero = CustomerHeroMetrics(self.customers, self.contacts, revenue).calculate()

        assert hero['atRiskRate'] == 25
        assert hero['atRiskCustomers'] == 1
        assert hero['customersWithDm'] == 2
        assert hero['customersWithDmRate'] == 50
        assert hero['healthEngagementScore'] == 60
        assert hero['repeatRevenueRate'] == 75
        assert hero['repeatRevenueAmount'] == 300
        assert hero['totalRevenueAmount'] == 400

    def test_zero_denominators(self):
        empty_customers = pd.DataFrame(columns=CUSTOMER_COLUMNS)
        empty_contacts = pd.DataFrame(columns=CONTACT_COLUMNS)
        hero = CustomerHeroMetrics(empty_customers, empty_contacts, EMPTY_REVENUE).calculate()

        assert hero['atRiskRate'] == 0
        assert hero['customersWithDmRate'] == 0
        assert hero['healthEngagementScore'] == 0
        assert hero['repeatRevenueRate'] == 0
        assert hero['totalCustomers'] == 0


class TestTopCustomers:

    customers = pd.DataFrame(
        [(1, 'Acme', 'Tech', 'Loyal'), (2, 'Beta', 'Retail', 'At Risk'), (3, 'Gamma', 'Tech', 'Acquisition')],
        columns=CUSTOMER_COLUMNS,
    )
    revenue = revenue_frame([
        (1, 100.0, '2024-01-01', 'new'),
        (1, 50.0, '2024-01-02', 'repeat'),
        (2, 200.0, '2024-01-03', 'repeat'),
        (3, 150.0, '2024-01-04', 'new'),
    ])
    deals = pd.DataFrame(
        [(1, 'proposal', 2, None, 1, None, 10, None, 'No', None),
         (2, 'won', 2, None, 1, None, 10, None, 'No', None),
         (3, 'negotiation', 2, None, 1, None, 10, None, 'No', None)],
        columns=DEAL_COLUMNS,
    )

    def test_ranking_with_ties_by_customer_id(self):
        rows = rank_top_customers(self.revenue, self.customers, self.deals, limit=None)

        assert [r['customer_id'] for r in rows] == [2, 1, 3]
        assert [r['rank'] for r in rows] == [1, 2, 3]
        assert rows[0]['metrics'] == {
            'industry': 'Retail',
            'lifecycleStage': 'At Risk',
            'revenueShare': 40,
            'openDeals': 2,
            'repeatRevenue': 200,
        }

    def test_limit_and_offset(self):
        rows = rank_top_customers(self.revenue, self.customers, self.deals, limit=1, offset=1)
        assert len(rows) == 1
        assert rows[0]['rank'] == 2
        assert rows[0]['customer_name'] == 'Acme'

    def test_no_revenue(self):
        assert rank_top_customers(EMPTY_REVENUE, self.customers, self.deals) == []
