# utils/sales_analytics/page_helpers.py
"""
Shared page plumbing for the dashboard views.

- init_page(): page config, database check, sidebar filters
- load_endpoint(): cached endpoint call for the filters this script run renders
"""

import logging
from typing import Any, Dict, Optional

import streamlit as st

from utils.config import config
from utils.db import check_db_connection
from .constants import CACHE_TTL_SECONDS
from .endpoints import handle_request
from .filters import DashboardFilters, SalesAnalyticsFilters, get_filter_store
from .queries import AnalyticsQueries

logger = logging.getLogger(__name__)

_CACHE_TTL = config.get_app_setting('CACHE_TTL_SECONDS', CACHE_TTL_SECONDS)


@st.cache_data(ttl=_CACHE_TTL, show_spinner=False)
def fetch_endpoint(endpoint_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """handle_request() cached per (endpoint, body)."""
    return handle_request(endpoint_name, body)


@st.cache_data(ttl=_CACHE_TTL, show_spinner=False)
def fetch_managers():
    return AnalyticsQueries().get_managers()


def init_page(title: str, icon: str) -> DashboardFilters:
    """
    Configure the page, stop on a dead database, render the sidebar filters.

    Returns:
        The filters snapshot every load_endpoint() call of this run should use
    """
    st.set_page_config(
        page_title=title,
        page_icon=icon,
        layout="wide",
        initial_sidebar_state="expanded"
    )

    db_connected, db_error = check_db_connection()
    if not db_connected:
        st.error(f"❌ Database connection failed: {db_error}")
        st.info("Please check your network connection or VPN")
        st.stop()

    filters_ui = SalesAnalyticsFilters(get_filter_store())
    filters = filters_ui.render_all_filters(fetch_managers())

    is_valid, error_msg = filters_ui.validate_filters(filters)
    if not is_valid:
        st.error(f"⚠️ {error_msg}")
        st.stop()

    st.title(f"{icon} {title}")
    st.caption(f"📊 {_filter_summary(filters)}")
    return filters


def load_endpoint(filters: DashboardFilters, endpoint_name: str, **params) -> Optional[Dict[str, Any]]:
    """
    Fetch one endpoint for a filters snapshot.

    Returns the `data` payload, or None after rendering the error when the
    endpoint failed.
    """
    body = {'filters': filters.to_payload(), **params}

    with st.spinner("Loading..."):
        result = fetch_endpoint(endpoint_name, body)

    if not result.get('success'):
        st.error(f"⚠️ {endpoint_name}: {result.get('error', 'Unknown error')}")
        return None
    return result['data']


def _filter_summary(filters: DashboardFilters) -> str:
    start = filters.start_date.isoformat() if filters.start_date else "…"
    end = filters.end_date.isoformat() if filters.end_date else "…"
    manager = f"manager #{filters.sales_manager_id}" if filters.has_manager else "all teams"
    return f"{start} → {end} | {manager}"
