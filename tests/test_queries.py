"""Tests for AnalyticsQueries against the seeded SQLite store."""

from datetime import date

import pytest

from utils.sales_analytics.filters import DashboardFilters
from utils.sales_analytics.queries import REVENUE_COLUMNS, AnalyticsQueries, QueryError


class BrokenEngine:
    """Engine stand-in whose every connection attempt fails."""

    def connect(self):
        raise RuntimeError("database is unreachable")


class TestRoster:

    def test_managers_are_active_roots(self, queries):
        assert queries.get_managers() == [
            {'sales_rep_id': 1, 'sales_rep_name': 'Alice'},
            {'sales_rep_id': 4, 'sales_rep_name': 'Dan'},
            {'sales_rep_id': 7, 'sales_rep_name': 'Gina'},
        ]

    def test_team_rep_ids(self, queries):
        assert queries.get_team_rep_ids(4) == [5, 6]
        assert queries.get_team_rep_ids(4, active_only=True) == [5]
        assert queries.get_team_rep_ids(7) == []

    def test_resolve_rep_scope(self, queries, q1_filters, team_alice, team_gina):
        assert queries.resolve_rep_scope(q1_filters) is None
        assert queries.resolve_rep_scope(team_alice) == [2, 3]
        assert queries.resolve_rep_scope(team_gina) == []

    def test_single_rep(self, queries):
        df = queries.get_sales_reps(rep_id=3)
        assert df['sales_rep_name'].tolist() == ['Carol']


class TestDateBounds:

    def test_end_day_is_included(self, queries):
        df = queries.get_revenue(date(2024, 3, 31), date(2024, 3, 31))
        assert df['revenue'].tolist() == [80.0]

    def test_timestamps_late_on_the_end_day_are_included(self, queries):
        df = queries.get_current_deals(created_start=date(2024, 3, 1), created_end=date(2024, 3, 31))
        assert df['deal_id'].tolist() == [1004]

    def test_q1_revenue_excludes_the_previous_year(self, queries):
        df = queries.get_revenue(date(2024, 1, 1), date(2024, 3, 31))
        assert df['revenue'].sum() == 730

    def test_open_ended_range(self, queries):
        assert len(queries.get_revenue()) == 6
        assert len(queries.get_revenue(start_date=date(2024, 2, 1))) == 3

    def test_explicit_exclusive_end(self, queries):
        df = queries.get_revenue(date(2024, 3, 1), end_exclusive=date(2024, 3, 31))
        assert df.empty


class TestRestrictions:

    def test_empty_rep_list_returns_empty_frame_without_querying(self):
        queries = AnalyticsQueries(engine=BrokenEngine())
        df = queries.get_revenue(date(2024, 1, 1), date(2024, 3, 31), rep_ids=[])

        assert df.empty
        assert list(df.columns) == REVENUE_COLUMNS

    def test_rep_restriction(self, queries):
        df = queries.get_revenue(rep_ids=[5])
        assert df['revenue_id'].tolist() == [4, 5]

    def test_high_risk_literals_are_exact(self, queries):
        df = queries.get_current_deals(high_risk_values=['Yes'])
        assert df['deal_id'].tolist() == [1002, 1003]

    def test_current_deals_carry_names(self, queries):
        row = queries.get_current_deals(rep_ids=[3]).iloc[0]
        assert row['customer_name'] == 'Beta'
        assert row['sales_rep_name'] == 'Carol'

    def test_team_customers_through_deals_and_revenue(self, queries):
        assert queries.get_team_customer_ids([2, 3]) == [101, 102, 104]
        assert queries.get_team_customer_ids([]) == []

    def test_deal_history_by_stage(self, queries):
        df = queries.get_deal_history(date(2024, 1, 1), date(2024, 3, 31), stages=['prospecting'])
        assert sorted(df['deal_id'].unique().tolist()) == [2001, 2002, 2003, 2004]

    def test_stage_history_and_available_stages(self, queries):
        df = queries.get_stage_history(date(2024, 1, 1), date(2024, 3, 31), customer_ids=[101])
        assert df['life_cycle_stage'].tolist() == ['Acquisition', 'Loyal']
        assert queries.get_available_stages() == ['Acquisition', 'At Risk', 'Champion', 'Dormant', 'Loyal']

    def test_events_in_range(self, queries):
        df = queries.get_events(start_date=date(2024, 1, 1), end_date=date(2024, 3, 31))
        assert df['event_id'].tolist() == [1, 2, 3, 4, 6]


class TestFailures:

    def test_store_failure_raises_query_error(self):
        queries = AnalyticsQueries(engine=BrokenEngine())
        with pytest.raises(QueryError):
            queries.get_revenue(date(2024, 1, 1), date(2024, 3, 31))

    def test_bad_sql_raises_query_error(self, queries):
        with pytest.raises(QueryError):
            queries._execute_query("SELECT * FROM no_such_table", {}, "broken")

    def test_manager_filter_value(self, queries):
        filters = DashboardFilters(sales_manager_id=1)
        assert queries.resolve_rep_scope(filters, active_only=True) == [2, 3]
