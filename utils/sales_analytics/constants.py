# utils/sales_analytics/constants.py
"""
Constants for Sales Analytics Module

Centralized configuration for:
- Stage and flag literals matched by each endpoint
- Scoring weights and thresholds
- Lifecycle and funnel ordering
- Color schemes and chart settings

The "won" / "high-risk" literal sets are intentionally kept per endpoint.
Each endpoint's published numbers depend on its own matching rule, so the
sets must not be merged into one shared constant.
"""

# =====================================================================
# DEAL STAGE LITERALS (per call site, case-sensitive)
# =====================================================================

# Overview "best performer": several spellings of a won deal
OVERVIEW_WON_STAGES = frozenset({'won', 'closed won', 'closed-won'})

# Leaderboard conversion rate
LEADERBOARD_WON_STAGES = frozenset({'closed_won'})

# Team rollup, variant A (team-metrics)
TEAM_METRICS_WON_STAGES = frozenset({'closed_won'})

# Team rollup, variant B (team-overview)
TEAM_OVERVIEW_WON_STAGES = frozenset({'won'})

# Lost stages excluded from the top deals table
LOST_STAGES = frozenset({'closed_lost', 'lost'})

# =====================================================================
# HIGH-RISK FLAG LITERALS (per call site, case-sensitive)
# =====================================================================

# Overview critical alerts
OVERVIEW_HIGH_RISK_VALUES = frozenset({'Yes'})

# Leaderboard matches lowercase only, while the stored flag is "Yes"/"No"
LEADERBOARD_HIGH_RISK_VALUES = frozenset({'yes'})

TEAM_METRICS_HIGH_RISK_VALUES = frozenset({'Yes'})
TEAM_OVERVIEW_HIGH_RISK_VALUES = frozenset({'Yes'})

NOT_HIGH_RISK_VALUES = frozenset({'No', 'no'})

# =====================================================================
# LEADERBOARD SCORING
# =====================================================================

LEADERBOARD_TARGET_WEIGHT = 0.5
LEADERBOARD_CONVERSION_WEIGHT = 1.5
LEADERBOARD_SAFETY_WEIGHT = 0.2

# Target floor: a rep with no target is scored against 1, not undefined
TARGET_FLOOR = 1

SCORE_MIN = 0
SCORE_MAX = 100

DEFAULT_LEADERBOARD_LIMIT = 10

LEADERBOARD_SORT_FIELDS = [
    'performance',
    'revenue',
    'target',
    'target_percentage',
    'conversion_rate',
    'total_deals',
    'avg_deal_size',
    'risk_ratio',
    'sales_rep_name',
    'sales_rep_id',
]

# =====================================================================
# TEAM ROLLUP - VARIANT A (target-based momentum)
# =====================================================================

VARIANT_A_TARGET_WEIGHT = 0.6
VARIANT_A_CONVERSION_WEIGHT = 0.4

# Momentum thresholds on target percentage
VARIANT_A_ACCELERATING_PCT = 110
VARIANT_A_IMPROVING_PCT = 90
VARIANT_A_DECLINING_PCT = 70

# Risk thresholds on high-risk deal ratio
VARIANT_A_HIGH_RISK_RATIO = 0.4
VARIANT_A_MEDIUM_RISK_RATIO = 0.2

# =====================================================================
# TEAM ROLLUP - VARIANT B (trend-based momentum)
# =====================================================================

TREND_WINDOW_DAYS = 30

# Momentum thresholds on period-over-period growth %
VARIANT_B_ACCELERATING_GROWTH = 20
VARIANT_B_IMPROVING_GROWTH = 5
VARIANT_B_DECLINING_GROWTH = -10

# Risk thresholds on high-risk deal percentage
VARIANT_B_HIGH_RISK_PCT = 30
VARIANT_B_MEDIUM_RISK_PCT = 15

# Sub-score caps and weights (points)
VARIANT_B_TARGET_CAP = 150
VARIANT_B_TARGET_POINTS = 30
VARIANT_B_CONVERSION_CAP = 50
VARIANT_B_CONVERSION_POINTS = 25
VARIANT_B_EFFICIENCY_CAP = 20
VARIANT_B_EFFICIENCY_POINTS = 20

VARIANT_B_MOMENTUM_POINTS = {
    'accelerating': 25,
    'improving': 15,
    'stable': 10,
    'declining': 0,
}

# =====================================================================
# CUSTOMER LIFECYCLE
# =====================================================================

# Fixed display order; unknown stages follow alphabetically
LIFECYCLE_STAGE_ORDER = ['Acquisition', 'Newly Acquired', 'Loyal', 'At Risk']

AT_RISK_STAGE = 'At Risk'

REPEAT_REVENUE_CATEGORY = 'repeat'

DEFAULT_TOP_CUSTOMERS_LIMIT = 10

# =====================================================================
# NEW DEALS FUNNEL
# =====================================================================

FUNNEL_SEED_STAGE = 'prospecting'

FUNNEL_STAGE_LABELS = {
    'prospecting': 'Prospecting',
    'qualified': 'Qualified',
    'proposal': 'Proposal',
    'negotiation': 'Negotiation',
    'closed_won': 'Closed won',
    'closed_lost': 'Closed lost',
}

TOP_DEALS_LIMIT = 10

# =====================================================================
# COLOR SCHEME
# =====================================================================

COLORS = {
    "revenue": "#FFA500",              # Orange
    "target": "#d62728",               # Red
    "achievement_good": "#28a745",     # Green (≥100%)
    "achievement_bad": "#dc3545",      # Red (<100%)
    "funnel": "#1f77b4",               # Blue
    "lost": "#7f7f7f",                 # Grey
    "volume": "#800080",               # Purple (deal volume line)
    "text_dark": "#333333",
    "text_light": "#666666",
    "grid": "#e0e0e0",
}

LIFECYCLE_COLORS = {
    'Acquisition': '#1f77b4',
    'Newly Acquired': '#17becf',
    'Loyal': '#2ca02c',
    'At Risk': '#d62728',
}

MOMENTUM_ICONS = {
    'accelerating': '🚀',
    'improving': '📈',
    'stable': '➖',
    'declining': '📉',
}

RISK_ICONS = {
    'low': '🟢',
    'medium': '🟡',
    'high': '🔴',
}

# =====================================================================
# CHART DIMENSIONS
# =====================================================================

CHART_WIDTH = 800
CHART_HEIGHT = 400

# =====================================================================
# CACHE SETTINGS
# =====================================================================

CACHE_TTL_SECONDS = 300
