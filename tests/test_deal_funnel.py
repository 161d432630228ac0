"""Tests for the new-deals funnel, its KPI cards and the deal tables."""

from datetime import date

import pandas as pd
import pytest

from utils.sales_analytics.classifiers import FunnelStage
from utils.sales_analytics.deal_funnel import NewDealsFunnel, build_deal_tables, monthly_deal_size_by_stage
from utils.sales_analytics.queries import HISTORY_COLUMNS

Q1_START = date(2024, 1, 1)
Q1_END = date(2024, 3, 31)


def history_frame(rows):
    """rows: (deal_id, stage, value, activity_date, rep_id, customer_id)"""
    return pd.DataFrame(
        [{'historical_id': i, 'deal_id': d, 'deal_stage': s, 'deal_value': v,
          'activity_date': when, 'sales_rep_id': rep, 'customer_id': cust}
         for i, (d, s, v, when, rep, cust) in enumerate(rows, start=1)],
        columns=HISTORY_COLUMNS,
    )


HISTORY = history_frame([
    (2001, 'prospecting', 100, '2024-01-05', 2, 101),
    (2001, 'qualified', 150, '2024-02-01', 2, 101),
    (2001, 'proposal', 200, '2024-03-01', 2, 101),
    (2002, 'prospecting', 50, '2024-01-10', 3, 102),
    (2002, 'qualified', 60, '2024-01-20', 3, 102),
    (2002, 'negotiation', 80, '2024-02-10', 3, 102),
    (2002, 'won', 90, '2024-03-10', 3, 102),
    (2003, 'prospecting', 300, '2024-02-01', 5, 103),
    (2003, 'lost', 0, '2024-02-20', 5, 103),
    # First entry is not prospecting
    (2004, 'qualified', 500, '2024-01-15', 2, 101),
    (2004, 'prospecting', 400, '2024-01-20', 2, 101),
    # Seeded before the range
    (2005, 'prospecting', 60, '2023-12-20', 2, 104),
    (2005, 'qualified', 70, '2024-01-05', 2, 104),
])

STAGE_ORDER = ['prospecting', 'qualified', 'proposal', 'negotiation', 'closed_won', 'closed_lost']


class TestSeeds:

    def test_only_prospecting_first_entries_in_range_seed(self):
        funnel = NewDealsFunnel(HISTORY, Q1_START, Q1_END)
        assert sorted(funnel.seeds) == [2001, 2002, 2003]

    def test_rep_scope(self):
        funnel = NewDealsFunnel(HISTORY, Q1_START, Q1_END, rep_ids=[2, 3])
        assert sorted(funnel.seeds) == [2001, 2002]

    def test_end_date_is_inclusive(self):
        history = history_frame([(1, 'prospecting', 10, '2024-03-31 23:00:00', 1, 1)])
        assert list(NewDealsFunnel(history, Q1_START, Q1_END).seeds) == [1]

    def test_latest_outcome_wins(self):
        history = history_frame([
            (1, 'prospecting', 10, '2024-01-01', 1, 1),
            (1, 'lost', 10, '2024-01-10', 1, 1),
            (1, 'closed_won', 10, '2024-01-20', 1, 1),
        ])
        funnel = NewDealsFunnel(history, Q1_START, Q1_END)
        assert funnel.reached(FunnelStage.CLOSED_WON) == [1]
        assert funnel.reached(FunnelStage.CLOSED_LOST) == []


class TestWaterfall:

    def test_single_deal_stops_at_proposal(self):
        history = HISTORY[HISTORY['deal_id'] == 2001]
        result = NewDealsFunnel(history, Q1_START, Q1_END).calculate_waterfall()

        assert [s['count'] for s in result['stages']] == [1, 1, 1, 0, 0, 0]
        assert result['stageValues']['prospecting'] == 200

    def test_counts_values_and_conversion(self):
        result = NewDealsFunnel(HISTORY, Q1_START, Q1_END).calculate_waterfall()

        assert [s['stage'] for s in result['stages']] == STAGE_ORDER
        assert [s['count'] for s in result['stages']] == [3, 3, 3, 2, 1, 1]
        assert [s['value'] for s in result['stages']] == [290, 290, 290, 90, 90, 0]
        assert [s['conversionRate'] for s in result['stages']] == [100, 100, 100, 67, 50, 50]
        assert result['totalDeals'] == 3

    def test_linear_counts_never_increase(self):
        counts = NewDealsFunnel(HISTORY, Q1_START, Q1_END).calculate_waterfall()['stageCounts']
        assert counts['prospecting'] >= counts['qualified'] >= counts['proposal'] >= counts['negotiation']
        assert counts['closed_won'] + counts['closed_lost'] <= counts['prospecting']

    def test_no_seeds_gives_zero_filled_stages(self):
        result = NewDealsFunnel(history_frame([]), Q1_START, Q1_END).calculate_waterfall()

        assert [s['stage'] for s in result['stages']] == STAGE_ORDER
        assert all(s['count'] == 0 and s['value'] == 0 and s['conversionRate'] == 0 for s in result['stages'])
        assert result['totalDeals'] == 0


class TestFunnelMetrics:

    def test_kpis(self):
        metrics = NewDealsFunnel(HISTORY, Q1_START, Q1_END).calculate_metrics(events_count=5)

        assert metrics['leadResponseTime'] == pytest.approx(18.5)
        assert metrics['conversionRate'] == pytest.approx(33.3)
        assert metrics['dealCycleLength'] == 60
        assert metrics['touchpointsPerDeal'] == 2
        assert metrics['totalDeals'] == 3
        assert metrics['wonDeals'] == 1

    def test_touchpoints_are_averaged_per_deal_not_per_customer(self):
        history = history_frame([
            (3001, 'prospecting', 10, '2024-01-02', 2, 101),
            (3002, 'prospecting', 20, '2024-01-03', 2, 101),
            (3003, 'prospecting', 30, '2024-01-04', 2, 101),
            (3004, 'prospecting', 40, '2024-01-05', 3, 102),
        ])
        metrics = NewDealsFunnel(history, Q1_START, Q1_END).calculate_metrics(events_count=8)
        assert metrics['touchpointsPerDeal'] == 2

    def test_empty(self):
        metrics = NewDealsFunnel(history_frame([])).calculate_metrics(events_count=4)
        assert metrics == {
            'leadResponseTime': 0,
            'conversionRate': 0,
            'dealCycleLength': 0,
            'touchpointsPerDeal': 0,
            'totalDeals': 0,
            'wonDeals': 0,
        }


class TestDealTables:

    def test_one_row_per_deal_at_highest_value(self):
        tables = build_deal_tables(
            HISTORY,
            customer_names={101: 'Acme', 102: 'Beta'},
            rep_names={2: 'Bob', 3: 'Carol', 5: 'Eve'},
        )
        top = tables['topDeals']

        assert [r['deal_id'] for r in top] == [2004, 2003, 2001, 2002, 2005]
        assert top[0] == {
            'deal_id': 2004,
            'deal_stage': 'qualified',
            'deal_value': 500.0,
            'activity_date': '2024-01-15',
            'customer_id': 101,
            'customer_name': 'Acme',
            'sales_rep_id': 2,
            'sales_rep_name': 'Bob',
        }
        assert top[1]['customer_name'] == 'Unknown'

    def test_lost_opportunities(self):
        lost = build_deal_tables(HISTORY)['lostOpportunities']
        assert [r['deal_id'] for r in lost] == [2003]
        assert lost[0]['deal_stage'] == 'lost'

    def test_top_limit(self):
        assert len(build_deal_tables(HISTORY, top_limit=2)['topDeals']) == 2

    def test_empty(self):
        assert build_deal_tables(history_frame([])) == {'topDeals': [], 'lostOpportunities': []}


class TestDealSizeTrend:

    def test_every_month_lists_every_stage_in_funnel_order(self):
        result = monthly_deal_size_by_stage(HISTORY)

        assert result['stages'] == STAGE_ORDER
        assert [m['month'] for m in result['months']] == ['2023-12', '2024-01', '2024-02', '2024-03']
        for month in result['months']:
            assert [s['stage'] for s in month['stages']] == STAGE_ORDER

    def test_average_value_per_month_and_stage(self):
        january = monthly_deal_size_by_stage(HISTORY)['months'][1]
        stages = {s['stage']: s for s in january['stages']}

        assert stages['prospecting']['avgDealValue'] == pytest.approx(550 / 3)
        assert stages['prospecting']['dealCount'] == 3
        assert stages['qualified']['avgDealValue'] == pytest.approx(210)
        assert stages['proposal'] == {'stage': 'proposal', 'label': 'Proposal', 'avgDealValue': 0.0, 'dealCount': 0}

    def test_rows_without_value_are_not_averaged(self):
        march = monthly_deal_size_by_stage(HISTORY)['months'][3]
        stages = {s['stage']: s for s in march['stages']}

        assert stages['closed_won']['avgDealValue'] == 90
        assert stages['closed_lost']['dealCount'] == 0

    def test_unrecognised_stage_is_kept_by_name(self):
        history = history_frame([
            (1, 'Discovery ', 40, '2024-01-02', 2, 101),
            (1, 'prospecting', 60, '2024-01-09', 2, 101),
        ])
        result = monthly_deal_size_by_stage(history)

        assert result['stages'] == ['prospecting', 'Discovery']
        assert result['months'][0]['stages'][1]['label'] == 'Discovery'

    def test_empty(self):
        assert monthly_deal_size_by_stage(history_frame([])) == {'stages': [], 'months': []}
