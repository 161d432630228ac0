# utils/sales_analytics/endpoints.py
"""
Aggregation Endpoints

One method per metric group. Each takes a DashboardFilters value and returns
the response envelope:

    {'success': True, 'data': {...}}
    {'success': False, 'error': 'message'}

Store failures are logged and returned as errors; they never propagate to the
caller. Every call is an independent read: no state is kept between requests.

handle_request() dispatches a raw request body (dict, JSON string or bytes)
by endpoint name:

    handle_request('leaderboard-metrics', '{"filters": {"salesManagerId": 3}}')
"""

import functools
import logging
from datetime import date
from typing import Any, Callable, Dict, Optional

from utils.config import config
from .constants import (
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_TOP_CUSTOMERS_LIMIT,
    FUNNEL_SEED_STAGE,
    OVERVIEW_HIGH_RISK_VALUES,
    TEAM_METRICS_HIGH_RISK_VALUES,
    TEAM_METRICS_WON_STAGES,
    TEAM_OVERVIEW_HIGH_RISK_VALUES,
    TEAM_OVERVIEW_WON_STAGES,
)
from .customer_metrics import CustomerHeroMetrics, lifecycle_composition, order_stages, rank_top_customers
from .deal_funnel import NewDealsFunnel, build_deal_tables, monthly_deal_size_by_stage
from .filters import DashboardFilters, load_request_body, parse_date
from .metrics import LeaderboardMetrics, OverviewMetrics, weekly_revenue_trend
from .queries import AnalyticsQueries
from .team_metrics import (
    build_team_snapshot,
    summarize_team_overview,
    team_score_variant_a,
    team_score_variant_b,
    trend_window_start,
)

logger = logging.getLogger(__name__)


def envelope(name: str):
    """Wrap an endpoint body in the {success, data | error} envelope."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self, filters: Optional[DashboardFilters] = None, *args, **kwargs) -> Dict[str, Any]:
            filters = filters or DashboardFilters()
            logger.info(f"{name}: {filters}")
            try:
                data = func(self, filters, *args, **kwargs)
            except Exception as e:
                logger.exception(f"{name} failed: {e}")
                return {'success': False, 'error': str(e)}
            return {'success': True, 'data': data}
        return wrapper
    return decorator


def _date_range(filters: DashboardFilters) -> Dict[str, Optional[str]]:
    return {
        'startDate': filters.start_date.isoformat() if filters.start_date else None,
        'endDate': filters.end_date.isoformat() if filters.end_date else None,
    }


class AnalyticsEndpoints:
    """
    Sales analytics aggregation endpoints.

    Usage:
        endpoints = AnalyticsEndpoints()
        result = endpoints.dashboard_overview(DashboardFilters(sales_manager_id=3))
        if result['success']:
            data = result['data']
    """

    def __init__(self, queries: AnalyticsQueries = None):
        self.queries = queries or AnalyticsQueries()

    # =========================================================================
    # OVERVIEW
    # =========================================================================

    @envelope('dashboard-overview')
    def dashboard_overview(self, filters: DashboardFilters) -> Dict:
        q = self.queries
        rep_ids = q.resolve_rep_scope(filters)

        revenue_df = q.get_revenue(filters.start_date, filters.end_date, rep_ids)
        targets_df = q.get_targets(filters.start_date, filters.end_date, rep_ids)
        deals_df = q.get_current_deals(rep_ids)
        reps_df = q.get_sales_reps(manager_id=filters.sales_manager_id)
        high_risk_df = q.get_current_deals(rep_ids, high_risk_values=OVERVIEW_HIGH_RISK_VALUES)

        metrics = OverviewMetrics(revenue_df, targets_df, deals_df, reps_df)
        data = metrics.calculate_overview(filters.sales_manager_id)
        data['criticalAlerts'] = OverviewMetrics.build_critical_alerts(high_risk_df)
        data['availableManagers'] = q.get_managers()
        return data

    @envelope('revenue-trend')
    def revenue_trend(self, filters: DashboardFilters) -> Dict:
        """Weekly revenue, target and deal volume for the overview trend chart."""
        q = self.queries
        rep_ids = q.resolve_rep_scope(filters)

        revenue_df = q.get_revenue(filters.start_date, filters.end_date, rep_ids)
        targets_df = q.get_targets(filters.start_date, filters.end_date, rep_ids)
        weeks = weekly_revenue_trend(revenue_df, targets_df)

        return {
            'weeks': weeks,
            'metadata': {
                'totalWeeks': len(weeks),
                'dateRange': _date_range(filters),
                'filterApplied': filters.has_manager,
            },
        }

    # =========================================================================
    # LEADERBOARD
    # =========================================================================

    @envelope('leaderboard-metrics')
    def leaderboard_metrics(
        self,
        filters: DashboardFilters,
        sort_by: str = 'performance',
        ascending: bool = False,
        limit: Optional[int] = None
    ) -> Dict:
        q = self.queries
        if limit is None:
            limit = config.get_app_setting('LEADERBOARD_LIMIT', DEFAULT_LEADERBOARD_LIMIT)

        reps_df = q.get_sales_reps(manager_id=filters.sales_manager_id, active_only=True)
        rep_ids = [int(r) for r in reps_df['sales_rep_id']] if filters.has_manager else None

        month_start, month_end = filters.month_window()
        revenue_df = q.get_revenue(filters.start_date, filters.end_date, rep_ids)
        targets_df = q.get_targets(month_start, month_end, rep_ids)
        deals_df = q.get_current_deals(rep_ids, created_start=filters.start_date, created_end=filters.end_date)

        sort_by = LeaderboardMetrics.resolve_sort_field(sort_by)
        board = LeaderboardMetrics(reps_df, revenue_df, targets_df, deals_df)
        rows = board.calculate_rep_metrics()
        leaderboard = LeaderboardMetrics.sort_leaderboard(rows, sort_by, ascending, limit)

        return {
            'leaderboard': leaderboard,
            'totalReps': len(rows),
            'sortBy': sort_by,
            'ascending': ascending,
        }

    # =========================================================================
    # TEAMS
    # =========================================================================

    def _root_managers(self, filters: DashboardFilters):
        return self.queries.get_sales_reps(
            active_only=True,
            roots_only=True,
            rep_id=filters.sales_manager_id,
        )

    @envelope('team-metrics')
    def team_metrics(self, filters: DashboardFilters) -> Dict:
        """Variant A: team = manager plus active direct reports."""
        q = self.queries
        managers_df = self._root_managers(filters)

        teams_members = {}
        for manager in managers_df.itertuples(index=False):
            manager_id = int(manager.sales_rep_id)
            teams_members[manager_id] = [manager_id] + q.get_team_rep_ids(manager_id, active_only=True)
        all_ids = sorted({rep for members in teams_members.values() for rep in members})

        revenue_df = q.get_revenue(filters.start_date, filters.end_date, all_ids)
        targets_df = q.get_targets(filters.start_date, filters.end_date, all_ids)
        deals_df = q.get_current_deals(all_ids)

        teams = []
        for manager in managers_df.itertuples(index=False):
            manager_id = int(manager.sales_rep_id)
            snapshot = build_team_snapshot(
                manager_id, manager.sales_rep_name, teams_members[manager_id],
                revenue_df, targets_df, deals_df,
                won_stages=TEAM_METRICS_WON_STAGES,
                high_risk_values=TEAM_METRICS_HIGH_RISK_VALUES,
            )
            teams.append(team_score_variant_a(snapshot))

        return {'teams': teams}

    @envelope('team-overview')
    def team_overview(self, filters: DashboardFilters, as_of: Optional[date] = None) -> Dict:
        """Variant B: team = active direct reports, momentum from the 30-day revenue trend."""
        q = self.queries
        managers_df = self._root_managers(filters)

        teams_members = {
            int(manager.sales_rep_id): q.get_team_rep_ids(int(manager.sales_rep_id), active_only=True)
            for manager in managers_df.itertuples(index=False)
        }
        all_ids = sorted({rep for members in teams_members.values() for rep in members})

        revenue_df = q.get_revenue(filters.start_date, filters.end_date, all_ids)
        targets_df = q.get_targets(filters.start_date, filters.end_date, all_ids)
        deals_df = q.get_current_deals(all_ids)
        events_df = q.get_events(all_ids)
        trend_df = q.get_revenue(start_date=trend_window_start(as_of), rep_ids=all_ids)

        teams = []
        for manager in managers_df.itertuples(index=False):
            manager_id = int(manager.sales_rep_id)
            snapshot = build_team_snapshot(
                manager_id, manager.sales_rep_name, teams_members[manager_id],
                revenue_df, targets_df, deals_df,
                won_stages=TEAM_OVERVIEW_WON_STAGES,
                high_risk_values=TEAM_OVERVIEW_HIGH_RISK_VALUES,
                events_df=events_df,
                trend_df=trend_df,
                as_of=as_of,
            )
            teams.append(team_score_variant_b(snapshot))

        return summarize_team_overview(teams)

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def _customer_scope(self, filters: DashboardFilters):
        """None when unfiltered, else customers associated with the manager's reps."""
        rep_ids = self.queries.resolve_rep_scope(filters)
        if rep_ids is None:
            return None
        return self.queries.get_team_customer_ids(rep_ids)

    @envelope('customer-lifecycle-chart')
    def customer_lifecycle_chart(self, filters: DashboardFilters) -> Dict:
        q = self.queries
        customer_ids = self._customer_scope(filters)

        history_df = q.get_stage_history(filters.start_date, filters.end_date, customer_ids)
        revenue_df = q.get_revenue(filters.start_date, filters.end_date, customer_ids=customer_ids)
        months = lifecycle_composition(history_df, revenue_df)

        return {
            'months': months,
            'availableManagers': q.get_managers(),
            'availableStages': order_stages(q.get_available_stages()),
            'metadata': {
                'totalMonths': len(months),
                'dateRange': _date_range(filters),
                'filterApplied': filters.has_manager,
            },
        }

    @envelope('customer-hero-metrics')
    def customer_hero_metrics(self, filters: DashboardFilters) -> Dict:
        q = self.queries
        customer_ids = self._customer_scope(filters)

        customers_df = q.get_customers(customer_ids)
        contacts_df = q.get_contacts(customer_ids)
        revenue_df = q.get_revenue(filters.start_date, filters.end_date, customer_ids=customer_ids)

        return CustomerHeroMetrics(customers_df, contacts_df, revenue_df).calculate()

    @envelope('top-customers')
    def top_customers(self, filters: DashboardFilters, limit: Optional[int] = None, offset: int = 0) -> Dict:
        q = self.queries
        if limit is None:
            limit = config.get_app_setting('TOP_CUSTOMERS_LIMIT', DEFAULT_TOP_CUSTOMERS_LIMIT)
        rep_ids = q.resolve_rep_scope(filters)

        revenue_df = q.get_revenue(filters.start_date, filters.end_date, rep_ids)
        customer_ids = sorted(int(c) for c in revenue_df['customer_id'].dropna().unique())
        customers_df = q.get_customers(customer_ids)
        deals_df = q.get_current_deals(rep_ids)

        rows = rank_top_customers(revenue_df, customers_df, deals_df, limit=limit, offset=offset)
        return {
            'customers': rows,
            'metadata': {
                'limit': limit,
                'offset': offset,
                'totalCustomers': len(customer_ids),
                'dateRange': _date_range(filters),
                'salesManagerId': filters.sales_manager_id,
            },
        }

    # =========================================================================
    # NEW DEALS
    # =========================================================================

    def _load_funnel(self, filters: DashboardFilters):
        """Funnel over the full history of deals with a prospecting entry in range and scope."""
        q = self.queries
        rep_ids = q.resolve_rep_scope(filters)
        candidates_df = q.get_deal_history(
            filters.start_date, filters.end_date, rep_ids, stages=[FUNNEL_SEED_STAGE]
        )
        deal_ids = sorted({int(d) for d in candidates_df['deal_id']})
        history_df = q.get_deal_history(deal_ids=deal_ids)
        return NewDealsFunnel(history_df, filters.start_date, filters.end_date, rep_ids), rep_ids

    @envelope('new-deals-waterfall')
    def new_deals_waterfall(self, filters: DashboardFilters) -> Dict:
        funnel, _ = self._load_funnel(filters)
        return funnel.calculate_waterfall()

    @envelope('new-deals-metrics')
    def new_deals_metrics(self, filters: DashboardFilters) -> Dict:
        funnel, rep_ids = self._load_funnel(filters)
        events_df = self.queries.get_events(rep_ids, filters.start_date, filters.end_date)
        return funnel.calculate_metrics(events_count=len(events_df))

    @envelope('new-deals-tables')
    def new_deals_tables(self, filters: DashboardFilters) -> Dict:
        q = self.queries
        rep_ids = q.resolve_rep_scope(filters)
        history_df = q.get_deal_history(filters.start_date, filters.end_date, rep_ids)

        customer_ids = sorted({int(c) for c in history_df['customer_id'].dropna()})
        customers_df = q.get_customers(customer_ids)
        reps_df = q.get_sales_reps()

        customer_names = {int(r.customer_id): r.customer_name for r in customers_df.itertuples(index=False)}
        rep_names = {int(r.sales_rep_id): r.sales_rep_name for r in reps_df.itertuples(index=False)}
        return build_deal_tables(history_df, customer_names, rep_names)

    @envelope('deal-size-trend')
    def deal_size_trend(self, filters: DashboardFilters) -> Dict:
        q = self.queries
        rep_ids = q.resolve_rep_scope(filters)
        history_df = q.get_deal_history(filters.start_date, filters.end_date, rep_ids)

        data = monthly_deal_size_by_stage(history_df)
        data['metadata'] = {
            'totalMonths': len(data['months']),
            'dateRange': _date_range(filters),
            'filterApplied': filters.has_manager,
        }
        return data


# =============================================================================
# REQUEST DISPATCH
# =============================================================================

def _parse_int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer parameter: {value!r}")
        return default


def _parse_ascending(body: Dict) -> bool:
    """
    Sort direction from "ascending" (a bool or "true"/"false"), else from
    "sortOrder" ("asc"/"desc"). Anything else means descending.
    """
    value = body.get('ascending')
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    if value is not None:
        logger.warning(f"Ignoring invalid ascending parameter: {value!r}")
    return str(body.get('sortOrder', 'desc')).lower() == 'asc'


ENDPOINTS: Dict[str, Callable[[AnalyticsEndpoints, DashboardFilters, Dict], Dict]] = {
    'dashboard-overview': lambda e, f, body: e.dashboard_overview(f),
    'revenue-trend': lambda e, f, body: e.revenue_trend(f),
    'leaderboard-metrics': lambda e, f, body: e.leaderboard_metrics(
        f,
        sort_by=body.get('sortBy') or 'performance',
        ascending=_parse_ascending(body),
        limit=_parse_int(body.get('limit'), None),
    ),
    'team-metrics': lambda e, f, body: e.team_metrics(f),
    'team-overview': lambda e, f, body: e.team_overview(f, as_of=parse_date(body.get('asOf'))),
    'customer-lifecycle-chart': lambda e, f, body: e.customer_lifecycle_chart(f),
    'customer-hero-metrics': lambda e, f, body: e.customer_hero_metrics(f),
    'top-customers': lambda e, f, body: e.top_customers(
        f,
        limit=_parse_int(body.get('limit'), None),
        offset=_parse_int(body.get('offset'), 0),
    ),
    'new-deals-waterfall': lambda e, f, body: e.new_deals_waterfall(f),
    'new-deals-metrics': lambda e, f, body: e.new_deals_metrics(f),
    'new-deals-tables': lambda e, f, body: e.new_deals_tables(f),
    'deal-size-trend': lambda e, f, body: e.deal_size_trend(f),
}


def handle_request(endpoint_name: str, raw_body: Any = None, endpoints: AnalyticsEndpoints = None) -> Dict[str, Any]:
    """
    Dispatch a raw request to an endpoint by name.

    Args:
        endpoint_name: One of ENDPOINTS
        raw_body: dict, JSON string or bytes; filters at top level or under "filters"
        endpoints: Endpoint instance to use (default: one on the shared engine)
    """
    handler = ENDPOINTS.get(endpoint_name)
    if handler is None:
        logger.warning(f"Unknown endpoint: {endpoint_name}")
        return {'success': False, 'error': f"Unknown endpoint: {endpoint_name}"}

    body = load_request_body(raw_body)
    filters = DashboardFilters.from_payload(body)
    return handler(endpoints or AnalyticsEndpoints(), filters, body)
