# utils/sales_analytics/filters.py
"""
Dashboard Filter Model and Sidebar Filter Components

- DashboardFilters: immutable {start_date?, end_date?, sales_manager_id?}
  value threaded through every view and every aggregation request
- FilterStore: observable holder of the current filters; each change gets a
  new generation and is pushed to subscribers
- SalesAnalyticsFilters: Streamlit sidebar rendering bound to a FilterStore

Malformed filter input is tolerated: missing or unparseable fields fall back
to "unbounded" / "no manager" instead of being rejected.
"""

import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import streamlit as st

from utils.config import config

logger = logging.getLogger(__name__)

FilterListener = Callable[['DashboardFilters', int], None]


# =============================================================================
# PARSING HELPERS
# =============================================================================

def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or datetime) value; anything else yields None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.warning(f"Ignoring unparseable date filter: {value!r}")
            return None
    logger.warning(f"Ignoring date filter of type {type(value).__name__}")
    return None


def parse_manager_id(value: Any) -> Optional[int]:
    """Parse a manager id; falsy, boolean or non-integer values mean no manager filter."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    if isinstance(value, float) and value.is_integer():
        return int(value) or None
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip()) or None
        except ValueError:
            logger.warning(f"Ignoring non-integer salesManagerId: {value!r}")
            return None
    return None


def load_request_body(raw: Any) -> Dict[str, Any]:
    """
    Decode a request body into a dict.

    Accepts a dict, a JSON string or JSON bytes. Unparseable or non-object
    bodies are treated as an empty body.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            body = json.loads(raw)
        except ValueError:
            logger.warning("Unparseable JSON body - treating as empty filter")
            return {}
        return body if isinstance(body, dict) else {}
    return {}


# =============================================================================
# FILTER VALUE OBJECT
# =============================================================================

@dataclass(frozen=True)
class DashboardFilters:
    """
    Immutable dashboard filter.

    Attributes:
        start_date: Inclusive start of the date range (None = unbounded)
        end_date: Inclusive end of the date range (None = unbounded)
        sales_manager_id: Restrict to this manager's direct reports
    """
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sales_manager_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'DashboardFilters':
        """
        Build filters from a request payload.

        Filters may sit at the top level ({"startDate": ...}) or be nested
        under "filters" ({"filters": {"startDate": ...}}).
        """
        if not isinstance(payload, dict):
            return cls()
        nested = payload.get('filters')
        source = nested if isinstance(nested, dict) else payload
        return cls(
            start_date=parse_date(source.get('startDate')),
            end_date=parse_date(source.get('endDate')),
            sales_manager_id=parse_manager_id(source.get('salesManagerId')),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return {
            'startDate': self.start_date.isoformat() if self.start_date else None,
            'endDate': self.end_date.isoformat() if self.end_date else None,
            'salesManagerId': self.sales_manager_id,
        }

    def with_changes(self, **changes) -> 'DashboardFilters':
        return replace(self, **changes)

    @property
    def has_manager(self) -> bool:
        return self.sales_manager_id is not None

    @property
    def end_exclusive(self) -> Optional[date]:
        """Day after end_date; timestamp columns compare with `<` against it."""
        return self.end_date + timedelta(days=1) if self.end_date else None

    def month_window(self) -> Tuple[Optional[date], Optional[date]]:
        """Start and end bounds truncated to the first day of their month."""
        start = self.start_date.replace(day=1) if self.start_date else None
        end = self.end_date.replace(day=1) if self.end_date else None
        return start, end

    def __str__(self) -> str:
        return (
            f"DashboardFilters(start={self.start_date}, end={self.end_date}, "
            f"manager={self.sales_manager_id})"
        )


def default_filters() -> DashboardFilters:
    """Filters used when a view opens, taken from the app settings."""
    return DashboardFilters(
        start_date=parse_date(config.get_app_setting('DEFAULT_START_DATE')),
        end_date=parse_date(config.get_app_setting('DEFAULT_END_DATE')),
    )


# =============================================================================
# OBSERVABLE FILTER STORE
# =============================================================================

class FilterStore:
    """
    Holds the current DashboardFilters and notifies subscribers on change.

    Every effective change bumps ``generation`` and is pushed to the
    subscribers. In the app the sidebar widgets write here from their
    callbacks, before the script body runs; a filter change interrupts the
    running script, and the next run reads the store once and requests data
    for that snapshot only (last-filter-wins).

    Usage:
        store = FilterStore(default_filters())
        unsubscribe = store.subscribe(lambda f, gen: ...)

        gen = store.set_filters(store.filters.with_changes(sales_manager_id=3))
        result = endpoints.dashboard_overview(store.filters)
    """

    def __init__(self, initial: Optional[DashboardFilters] = None):
        self._filters = initial or DashboardFilters()
        self._generation = 0
        self._listeners: List[FilterListener] = []
        self._lock = threading.Lock()

    @property
    def filters(self) -> DashboardFilters:
        return self._filters

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_filters(self, filters: DashboardFilters) -> int:
        """
        Replace the current filters.

        Setting filters equal to the current ones is a no-op and keeps the
        generation, so duplicate requests for the same filter collapse.

        Returns:
            The generation for the (possibly unchanged) filters
        """
        with self._lock:
            if filters == self._filters:
                return self._generation
            self._filters = filters
            self._generation += 1
            generation = self._generation
            listeners = list(self._listeners)

        logger.debug(f"Filters changed (generation {generation}): {filters}")
        for listener in listeners:
            try:
                listener(filters, generation)
            except Exception as e:
                logger.error(f"Filter listener failed: {e}")
        return generation

    def update(self, **changes) -> int:
        return self.set_filters(self._filters.with_changes(**changes))


# =============================================================================
# SIDEBAR FILTER COMPONENTS
# =============================================================================

FILTER_STORE_KEY = 'sales_analytics_filter_store'

START_DATE_KEY = 'filter_start_date'
END_DATE_KEY = 'filter_end_date'
SALES_MANAGER_KEY = 'filter_sales_manager'
FILTER_WIDGET_KEYS = (START_DATE_KEY, END_DATE_KEY, SALES_MANAGER_KEY)

# Widgets whose value only makes sense for one set of filters (result paging)
FILTER_DEPENDENT_KEYS = ('top_customers_page',)


def clear_widget_state(session_state, keys) -> List[str]:
    """Drop widget values so those widgets re-render from their defaults. Returns the keys removed."""
    removed = [key for key in keys if key in session_state]
    for key in removed:
        del session_state[key]
    return removed


def filters_from_widgets(session_state, current: DashboardFilters) -> DashboardFilters:
    """Filters from the sidebar widget values; a widget not rendered yet keeps ``current``."""
    return DashboardFilters(
        start_date=parse_date(session_state.get(START_DATE_KEY, current.start_date)),
        end_date=parse_date(session_state.get(END_DATE_KEY, current.end_date)),
        sales_manager_id=parse_manager_id(session_state.get(SALES_MANAGER_KEY, current.sales_manager_id)),
    )


def reset_filters(store: FilterStore, session_state) -> int:
    """Restore the default filters and the sidebar widgets showing them."""
    clear_widget_state(session_state, FILTER_WIDGET_KEYS)
    logger.info("Filters reset to defaults")
    return store.set_filters(default_filters())


def get_filter_store() -> FilterStore:
    """Session-scoped FilterStore shared by every page."""
    if FILTER_STORE_KEY not in st.session_state:
        store = FilterStore(default_filters())
        store.subscribe(lambda filters, generation: clear_widget_state(st.session_state, FILTER_DEPENDENT_KEYS))
        st.session_state[FILTER_STORE_KEY] = store
    return st.session_state[FILTER_STORE_KEY]


class SalesAnalyticsFilters:
    """
    Sidebar filter UI bound to the session FilterStore.

    Usage:
        filters_ui = SalesAnalyticsFilters()
        filters = filters_ui.render_all_filters(managers)
    """

    def __init__(self, store: FilterStore = None):
        self.store = store or get_filter_store()

    def render_all_filters(self, managers: List[Dict[str, Any]] = None) -> DashboardFilters:
        """
        Render date range and manager selectors.

        Widget callbacks write into the store before the next script run, so
        the filters returned here are the snapshot this run loads data for.

        Args:
            managers: [{'sales_rep_id': int, 'sales_rep_name': str}, ...]

        Returns:
            The current DashboardFilters
        """
        current = self.store.filters

        with st.sidebar:
            st.header("🔍 Filters")

            self._render_date_range(current)
            self._render_manager_selector(managers or [], current.sales_manager_id)

            st.button(
                "🔄 Reset filters",
                use_container_width=True,
                on_click=reset_filters,
                args=(self.store, st.session_state),
            )

        return self.store.filters

    def _on_widget_change(self):
        self.store.set_filters(filters_from_widgets(st.session_state, self.store.filters))

    def _render_date_range(self, current: DashboardFilters):
        col1, col2 = st.columns(2)
        with col1:
            st.date_input("Start date", value=current.start_date, key=START_DATE_KEY, on_change=self._on_widget_change)
        with col2:
            st.date_input("End date", value=current.end_date, key=END_DATE_KEY, on_change=self._on_widget_change)

    def _render_manager_selector(self, managers: List[Dict[str, Any]], selected: Optional[int]):
        options = [None] + [m['sales_rep_id'] for m in managers]
        names = {m['sales_rep_id']: m['sales_rep_name'] for m in managers}
        index = options.index(selected) if selected in options else 0

        st.selectbox(
            "Sales manager",
            options=options,
            index=index,
            format_func=lambda rep_id: "All teams" if rep_id is None else names.get(rep_id, str(rep_id)),
            key=SALES_MANAGER_KEY,
            on_change=self._on_widget_change,
        )

    @staticmethod
    def validate_filters(filters: DashboardFilters) -> Tuple[bool, Optional[str]]:
        """Check the date range is ordered."""
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            return False, "Start date must be on or before end date"
        return True, None
