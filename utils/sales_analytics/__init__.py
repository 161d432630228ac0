# utils/sales_analytics/__init__.py
"""
Sales Analytics Module

Aggregation layer of the sales performance dashboard.

Components:
- filters: Immutable filter value, observable filter store, sidebar filters
- queries: Read-only SQL loading into DataFrames
- classifiers: Deal stage / risk flag mapping into enums
- metrics: Overview and leaderboard KPIs
- team_metrics: Team rollup strategies (variant A and variant B)
- customer_metrics: Lifecycle composition, hero metrics, top customers
- deal_funnel: New-deals waterfall, KPIs and tables
- endpoints: {success, data, error} endpoints and request dispatch
- charts: Altair visualizations

Usage:
    from utils.sales_analytics import (
        AnalyticsEndpoints,
        DashboardFilters,
        handle_request,
    )

    result = handle_request('dashboard-overview', {'salesManagerId': 3})
"""

from .filters import (
    DashboardFilters,
    FilterStore,
    SalesAnalyticsFilters,
    default_filters,
    get_filter_store,
)
from .queries import AnalyticsQueries, QueryError
from .classifiers import DealOutcome, FunnelStage, RiskFlag
from .metrics import LeaderboardMetrics, OverviewMetrics
from .team_metrics import TeamSnapshot, team_score_variant_a, team_score_variant_b
from .customer_metrics import CustomerHeroMetrics, lifecycle_composition, rank_top_customers
from .deal_funnel import NewDealsFunnel, build_deal_tables
from .endpoints import ENDPOINTS, AnalyticsEndpoints, handle_request
from .charts import SalesAnalyticsCharts

# Constants
from .constants import (
    COLORS,
    LIFECYCLE_STAGE_ORDER,
    CACHE_TTL_SECONDS,
    CHART_WIDTH,
    CHART_HEIGHT,
)

__all__ = [
    # Filters
    'DashboardFilters',
    'FilterStore',
    'SalesAnalyticsFilters',
    'default_filters',
    'get_filter_store',

    # Data
    'AnalyticsQueries',
    'QueryError',

    # Classifiers
    'DealOutcome',
    'FunnelStage',
    'RiskFlag',

    # Metrics
    'OverviewMetrics',
    'LeaderboardMetrics',
    'TeamSnapshot',
    'team_score_variant_a',
    'team_score_variant_b',
    'CustomerHeroMetrics',
    'lifecycle_composition',
    'rank_top_customers',
    'NewDealsFunnel',
    'build_deal_tables',

    # Endpoints
    'AnalyticsEndpoints',
    'ENDPOINTS',
    'handle_request',

    # Charts
    'SalesAnalyticsCharts',

    # Constants
    'COLORS',
    'LIFECYCLE_STAGE_ORDER',
    'CACHE_TTL_SECONDS',
    'CHART_WIDTH',
    'CHART_HEIGHT',
]

__version__ = '1.0.0'
