# utils/sales_analytics/charts.py
"""
Altair Chart Builders for Sales Analytics

All visualization components:
- KPI summary cards (using st.metric)
- Leaderboard and team performance bars
- Weekly revenue vs target with a deal volume line
- Lifecycle composition stacked bars
- New-deals waterfall and average deal value per stage
- Top customers bars

Charts consume the endpoint `data` shapes verbatim.
"""

import logging
from typing import Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from .constants import (
    CHART_HEIGHT,
    CHART_WIDTH,
    COLORS,
    LIFECYCLE_COLORS,
    MOMENTUM_ICONS,
    RISK_ICONS,
)
from .customer_metrics import order_stages

logger = logging.getLogger(__name__)


def lifecycle_to_frame(months: List[Dict]) -> pd.DataFrame:
    """Flatten lifecycle months into one row per (month, stage)."""
    rows = [
        {
            'month': month['month'],
            'stage': stage['stage'],
            'customerCount': stage['customerCount'],
            'totalRevenue': stage['totalRevenue'],
            'percentage': stage['percentage'],
        }
        for month in months
        for stage in month['stages']
    ]
    return pd.DataFrame(rows, columns=['month', 'stage', 'customerCount', 'totalRevenue', 'percentage'])


def waterfall_to_frame(waterfall: Dict) -> pd.DataFrame:
    return pd.DataFrame(
        waterfall.get('stages', []),
        columns=['stage', 'label', 'count', 'value', 'conversionRate'],
    )


def revenue_trend_to_frame(weeks: List[Dict]) -> pd.DataFrame:
    return pd.DataFrame(weeks, columns=['week', 'revenue', 'target', 'dealVolume'])


def deal_size_to_frame(deal_size: Dict) -> pd.DataFrame:
    """Flatten deal size months into one row per (month, stage)."""
    rows = [
        {
            'month': month['month'],
            'stage': stage['stage'],
            'label': stage['label'],
            'avgDealValue': stage['avgDealValue'],
            'dealCount': stage['dealCount'],
        }
        for month in deal_size.get('months', [])
        for stage in month['stages']
    ]
    return pd.DataFrame(rows, columns=['month', 'stage', 'label', 'avgDealValue', 'dealCount'])


def _format_currency(value: Optional[float]) -> str:
    return f"${value or 0:,.0f}"


class SalesAnalyticsCharts:
    """
    Chart builders for the sales analytics dashboard.

    All methods are static - can be called without instantiation.

    Usage:
        SalesAnalyticsCharts.render_overview_cards(overview)
        chart = SalesAnalyticsCharts.build_lifecycle_chart(months)
        st.altair_chart(chart, use_container_width=True)
    """

    # =========================================================================
    # KPI CARDS (Using st.metric)
    # =========================================================================

    @staticmethod
    def render_overview_cards(overview: Dict):
        revenue = overview.get('overallRevenue', {})
        best = overview.get('bestPerformer')

        col1, col2, col3, col4 = st.columns(4)
        with col1:
            st.metric(
                label="💰 Total Revenue",
                value=_format_currency(revenue.get('total')),
                delta=f"{revenue.get('completionPercentage', 0):.1f}% of target",
                delta_color="off",
                help="Sum of revenue in the selected period",
            )
        with col2:
            st.metric(
                label="🎯 Target",
                value=_format_currency(revenue.get('target')),
                help="Sum of monthly targets in the selected period",
            )
        with col3:
            st.metric(
                label="📦 Avg Deal Size",
                value=_format_currency(overview.get('avgDealSize')),
                help="Average revenue amount per revenue record",
            )
        with col4:
            if best:
                st.metric(
                    label="🏅 Best Performer",
                    value=best['sales_rep_name'],
                    delta=f"{best['conversionRate']:.1f}% conversion",
                    delta_color="off",
                )
            else:
                st.metric(label="🏅 Best Performer", value="N/A")

    @staticmethod
    def render_customer_hero_cards(hero: Dict):
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            st.metric(
                label="⚠️ At-Risk Customers",
                value=f"{hero.get('atRiskRate', 0):.1f}%",
                delta=f"{hero.get('atRiskCustomers', 0)} of {hero.get('totalCustomers', 0)}",
                delta_color="off",
            )
        with col2:
            st.metric(
                label="🤝 With Decision Maker",
                value=f"{hero.get('customersWithDmRate', 0):.1f}%",
                delta=f"{hero.get('customersWithDm', 0)} customers",
                delta_color="off",
            )
        with col3:
            st.metric(
                label="💚 Engagement Score",
                value=f"{hero.get('healthEngagementScore', 0):.1f}",
                help="Average contact score",
            )
        with col4:
            st.metric(
                label="🔁 Repeat Revenue",
                value=f"{hero.get('repeatRevenueRate', 0):.1f}%",
                delta=_format_currency(hero.get('repeatRevenueAmount')),
                delta_color="off",
            )

    @staticmethod
    def render_new_deals_cards(kpis: Dict):
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            st.metric(label="⏱️ Lead Response", value=f"{kpis.get('leadResponseTime', 0)} days")
        with col2:
            st.metric(
                label="✅ Conversion",
                value=f"{kpis.get('conversionRate', 0)}%",
                delta=f"{kpis.get('wonDeals', 0)} of {kpis.get('totalDeals', 0)} deals",
                delta_color="off",
            )
        with col3:
            st.metric(label="🔄 Deal Cycle", value=f"{kpis.get('dealCycleLength', 0)} days")
        with col4:
            st.metric(label="📞 Touchpoints", value=kpis.get('touchpointsPerDeal', 0))

    # =========================================================================
    # OVERVIEW TREND
    # =========================================================================

    @staticmethod
    def build_revenue_trend_chart(weeks: List[Dict]):
        """Weekly revenue and target bars with deal volume as a line on its own axis."""
        df = revenue_trend_to_frame(weeks)
        if df.empty:
            return SalesAnalyticsCharts._empty_chart("No revenue or targets in range")

        long_df = df.melt(
            id_vars=['week'],
            value_vars=['revenue', 'target'],
            var_name='measure',
            value_name='amount',
        )
        color_scale = alt.Scale(domain=['revenue', 'target'], range=[COLORS['revenue'], COLORS['target']])
        weeks_order = df['week'].tolist()

        bars = alt.Chart(long_df).mark_bar(cornerRadiusTopLeft=2, cornerRadiusTopRight=2).encode(
            x=alt.X('week:N', sort=weeks_order, title='Week starting', axis=alt.Axis(labelAngle=-45)),
            xOffset='measure:N',
            y=alt.Y('amount:Q', title='Amount (USD)', axis=alt.Axis(format='~s')),
            color=alt.Color('measure:N', scale=color_scale, legend=alt.Legend(title='Metric', orient='bottom')),
            tooltip=[
                alt.Tooltip('week:N', title='Week'),
                alt.Tooltip('measure:N', title='Metric'),
                alt.Tooltip('amount:Q', title='Amount', format='$,.0f'),
            ]
        )

        line = alt.Chart(df).mark_line(
            color=COLORS['volume'],
            strokeWidth=2,
            point=alt.OverlayMarkDef(color=COLORS['volume'], size=40)
        ).encode(
            x=alt.X('week:N', sort=weeks_order),
            y=alt.Y('dealVolume:Q', title='Deal Volume'),
            tooltip=[
                alt.Tooltip('week:N', title='Week'),
                alt.Tooltip('dealVolume:Q', title='Deals'),
            ]
        )

        chart = alt.layer(bars, line).resolve_scale(y='independent')
        return chart.properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="📈 Weekly Revenue vs Target")

    # =========================================================================
    # LEADERBOARD & TEAMS
    # =========================================================================

    @staticmethod
    def build_leaderboard_chart(rows: List[Dict], metric: str = 'performance') -> alt.Chart:
        if not rows:
            return SalesAnalyticsCharts._empty_chart("No reps in scope")

        df = pd.DataFrame(rows)
        if metric not in df.columns:
            return SalesAnalyticsCharts._empty_chart(f"No {metric} data available")

        bars = alt.Chart(df).mark_bar(color=COLORS['revenue']).encode(
            x=alt.X(f'{metric}:Q', title=metric.replace('_', ' ').title()),
            y=alt.Y('sales_rep_name:N', sort='-x', title=''),
            tooltip=[
                alt.Tooltip('sales_rep_name:N', title='Rep'),
                alt.Tooltip('revenue:Q', title='Revenue', format=',.0f'),
                alt.Tooltip('target_percentage:Q', title='% of Target', format='.2f'),
                alt.Tooltip('conversion_rate:Q', title='Conversion %', format='.2f'),
                alt.Tooltip('performance:Q', title='Score'),
            ]
        )

        return bars.properties(width=CHART_WIDTH, height=max(len(df) * 28, 120), title="🏆 Leaderboard")

    @staticmethod
    def build_team_chart(teams: List[Dict], name_field: str = 'team_name') -> alt.Chart:
        """Revenue vs target per team (works for both rollup variants)."""
        if not teams:
            return SalesAnalyticsCharts._empty_chart("No teams in scope")

        df = pd.DataFrame(teams)
        long_df = df.melt(
            id_vars=[name_field],
            value_vars=['revenue', 'target'],
            var_name='measure',
            value_name='amount',
        )

        color_scale = alt.Scale(domain=['revenue', 'target'], range=[COLORS['revenue'], COLORS['target']])

        chart = alt.Chart(long_df).mark_bar().encode(
            x=alt.X(f'{name_field}:N', title='Team', axis=alt.Axis(labelAngle=0)),
            xOffset='measure:N',
            y=alt.Y('amount:Q', title='Amount (USD)', axis=alt.Axis(format='~s')),
            color=alt.Color('measure:N', scale=color_scale, legend=alt.Legend(orient='bottom')),
            tooltip=[
                alt.Tooltip(f'{name_field}:N', title='Team'),
                alt.Tooltip('measure:N', title='Measure'),
                alt.Tooltip('amount:Q', title='Amount', format=',.0f'),
            ]
        )
        return chart.properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="👥 Revenue vs Target by Team")

    @staticmethod
    def team_overview_table(teams: List[Dict]) -> pd.DataFrame:
        """Display frame for team-overview rows with momentum/risk icons."""
        if not teams:
            return pd.DataFrame()
        df = pd.DataFrame(teams)
        df['momentum'] = df['momentum'].map(lambda m: f"{MOMENTUM_ICONS.get(m, '')} {m}".strip())
        df['risk_level'] = df['risk_level'].map(lambda r: f"{RISK_ICONS.get(r, '')} {r}".strip())
        return df

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    @staticmethod
    def build_lifecycle_chart(months: List[Dict]) -> alt.Chart:
        """Stacked percentage bars per month in the fixed lifecycle stage order."""
        df = lifecycle_to_frame(months)
        if df.empty:
            return SalesAnalyticsCharts._empty_chart("No lifecycle activity in range")

        stages = order_stages(df['stage'].unique())
        df['stage_order'] = df['stage'].map({stage: i for i, stage in enumerate(stages)})
        palette = [LIFECYCLE_COLORS.get(stage, COLORS['lost']) for stage in stages]

        chart = alt.Chart(df).mark_bar().encode(
            x=alt.X('month:O', title='Month'),
            y=alt.Y('percentage:Q', title='% of Customers', stack='zero'),
            color=alt.Color(
                'stage:N',
                scale=alt.Scale(domain=stages, range=palette),
                sort=stages,
                legend=alt.Legend(orient='bottom', title='Stage'),
            ),
            order=alt.Order('stage_order:Q'),
            tooltip=[
                alt.Tooltip('month:O', title='Month'),
                alt.Tooltip('stage:N', title='Stage'),
                alt.Tooltip('customerCount:Q', title='Customers'),
                alt.Tooltip('percentage:Q', title='%', format='.1f'),
                alt.Tooltip('totalRevenue:Q', title='Revenue', format=',.0f'),
            ]
        )
        return chart.properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="🧭 Customer Lifecycle Composition")

    @staticmethod
    def build_top_customers_chart(rows: List[Dict]) -> alt.Chart:
        if not rows:
            return SalesAnalyticsCharts._empty_chart("No customer revenue in range")

        df = pd.DataFrame([
            {
                'customer': row['customer_name'],
                'revenue': row['revenue'],
                'share': row['metrics']['revenueShare'],
            }
            for row in rows
        ])

        bars = alt.Chart(df).mark_bar(color=COLORS['revenue']).encode(
            x=alt.X('customer:N', sort='-y', title='Customer'),
            y=alt.Y('revenue:Q', title='Revenue (USD)', axis=alt.Axis(format='~s')),
            tooltip=[
                alt.Tooltip('customer:N', title='Customer'),
                alt.Tooltip('revenue:Q', title='Revenue', format=',.0f'),
                alt.Tooltip('share:Q', title='% of Total', format='.2f'),
            ]
        )
        return bars.properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="🏆 Top Customers by Revenue")

    # =========================================================================
    # NEW DEALS
    # =========================================================================

    @staticmethod
    def build_waterfall_chart(waterfall: Dict) -> alt.Chart:
        """Cumulative deals reaching each funnel stage."""
        df = waterfall_to_frame(waterfall)
        if df.empty or df['count'].sum() == 0:
            return SalesAnalyticsCharts._empty_chart("No new deals in range")

        df['color'] = df['stage'].map(lambda s: COLORS['lost'] if s == 'closed_lost' else COLORS['funnel'])
        labels = df['label'].tolist()

        bars = alt.Chart(df).mark_bar().encode(
            x=alt.X('label:N', sort=labels, title='Stage', axis=alt.Axis(labelAngle=0)),
            y=alt.Y('count:Q', title='Deals'),
            color=alt.Color('color:N', scale=None),
            tooltip=[
                alt.Tooltip('label:N', title='Stage'),
                alt.Tooltip('count:Q', title='Deals'),
                alt.Tooltip('value:Q', title='Value', format=',.0f'),
                alt.Tooltip('conversionRate:Q', title='Conversion %'),
            ]
        )

        text = alt.Chart(df).mark_text(align='center', baseline='bottom', dy=-5, fontSize=11).encode(
            x=alt.X('label:N', sort=labels),
            y=alt.Y('count:Q'),
            text=alt.Text('count:Q'),
            color=alt.value(COLORS['text_dark'])
        )

        return alt.layer(bars, text).properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="🆕 New Deals Waterfall")

    @staticmethod
    def build_deal_size_chart(deal_size: Dict) -> alt.Chart:
        """One line per stage: average deal value by month."""
        df = deal_size_to_frame(deal_size)
        if df.empty:
            return SalesAnalyticsCharts._empty_chart("No valued deal activity in range")

        labels = list(dict.fromkeys(df['label']))

        chart = alt.Chart(df).mark_line(point=True).encode(
            x=alt.X('month:O', title='Month'),
            y=alt.Y('avgDealValue:Q', title='Avg Deal Value (USD)', axis=alt.Axis(format='~s')),
            color=alt.Color('label:N', sort=labels, legend=alt.Legend(orient='bottom', title='Stage')),
            tooltip=[
                alt.Tooltip('month:O', title='Month'),
                alt.Tooltip('label:N', title='Stage'),
                alt.Tooltip('avgDealValue:Q', title='Avg Value', format='$,.0f'),
                alt.Tooltip('dealCount:Q', title='Entries'),
            ]
        )
        return chart.properties(width=CHART_WIDTH, height=CHART_HEIGHT, title="💵 Average Deal Value by Stage")

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _empty_chart(message: str = "No data available") -> alt.Chart:
        """Create an empty chart with a message."""
        return alt.Chart(pd.DataFrame({'note': [message]})).mark_text(
            text=message,
            fontSize=16,
            color=COLORS['text_light']
        ).properties(
            width=CHART_WIDTH,
            height=200
        )
