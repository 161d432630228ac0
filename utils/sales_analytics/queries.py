# utils/sales_analytics/queries.py
"""
SQL Queries and Data Loading for Sales Analytics

Handles all (read-only) database interactions:
- Rep roster and manager hierarchy (one level deep)
- Revenue and monthly targets
- Current deal snapshot and deal history
- Customers, contacts, events and customer stage history

Every loader takes explicit date bounds and an optional rep/customer id
restriction. An empty restriction list short-circuits to an empty
DataFrame: a manager with no reps must never fall back to all reps.

Date bounds are inclusive on the start and exclusive on the day after the
end date, so DATE and TIMESTAMP columns both include the whole end day.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
from sqlalchemy import bindparam, text

from utils.db import execute_query_df, get_db_engine
from .filters import DashboardFilters

logger = logging.getLogger(__name__)


class QueryError(Exception):
    """Raised when the data store rejects or fails a query."""


# =============================================================================
# RESULT COLUMNS (used to shape empty results)
# =============================================================================

REP_COLUMNS = ['sales_rep_id', 'sales_rep_name', 'sales_rep_manager_id', 'is_active']
REVENUE_COLUMNS = ['revenue_id', 'revenue', 'sales_rep', 'customer_id', 'participation_dt', 'revenue_category']
TARGET_COLUMNS = ['target_id', 'sales_rep_id', 'target_month', 'target_value']
DEAL_COLUMNS = [
    'deal_id', 'deal_stage', 'customer_id', 'customer_name', 'sales_rep_id', 'sales_rep_name',
    'max_deal_potential', 'participation_propensity', 'is_high_risk', 'created_at',
]
HISTORY_COLUMNS = ['historical_id', 'deal_id', 'deal_stage', 'deal_value', 'activity_date', 'sales_rep_id', 'customer_id']
CUSTOMER_COLUMNS = ['customer_id', 'customer_name', 'customer_industry', 'customer_lifecycle_stage']
CONTACT_COLUMNS = ['contact_id', 'customer_id', 'contact_score', 'is_dm']
EVENT_COLUMNS = ['event_id', 'event_type', 'event_timestamp', 'sales_rep_id', 'customer_id', 'contact_id']
STAGE_HISTORY_COLUMNS = ['historical_id', 'customer_id', 'life_cycle_stage', 'activity_date']


def empty_frame(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=list(columns))


def _plain(values: Iterable) -> List:
    """numpy scalars -> Python scalars, so every DBAPI driver can bind them."""
    return [v.item() if hasattr(v, 'item') else v for v in values]


class AnalyticsQueries:
    """
    Data loading class for the sales analytics endpoints.

    Usage:
        queries = AnalyticsQueries()                 # singleton engine
        queries = AnalyticsQueries(engine=engine)    # injected engine

        rep_ids = queries.resolve_rep_scope(filters)
        revenue_df = queries.get_revenue(filters.start_date, filters.end_date, rep_ids)
    """

    def __init__(self, engine=None):
        self._engine = engine

    @property
    def engine(self):
        """Lazy load database engine."""
        if self._engine is None:
            self._engine = get_db_engine()
        return self._engine

    # =========================================================================
    # REP ROSTER
    # =========================================================================

    def get_sales_reps(
        self,
        manager_id: Optional[int] = None,
        active_only: bool = False,
        roots_only: bool = False,
        rep_id: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Load sales reps ordered by id.

        Args:
            manager_id: Only direct reports of this manager
            active_only: Only reps with is_active set
            roots_only: Only reps without a manager (team roots)
            rep_id: Only this rep
        """
        query = """
            SELECT
                sales_rep_id,
                sales_rep_name,
                sales_rep_manager_id,
                is_active
            FROM sales_reps
            WHERE 1 = 1
        """
        params = {}

        if manager_id is not None:
            query += " AND sales_rep_manager_id = :manager_id"
            params['manager_id'] = manager_id
        if active_only:
            query += " AND is_active = :is_active"
            params['is_active'] = True
        if roots_only:
            query += " AND sales_rep_manager_id IS NULL"
        if rep_id is not None:
            query += " AND sales_rep_id = :rep_id"
            params['rep_id'] = rep_id

        query += " ORDER BY sales_rep_id"

        return self._execute_query(query, params, "sales_reps")

    def get_managers(self) -> List[Dict]:
        """Active root reps, used as the selectable manager filters."""
        df = self.get_sales_reps(active_only=True, roots_only=True)
        return [
            {'sales_rep_id': int(row.sales_rep_id), 'sales_rep_name': row.sales_rep_name}
            for row in df.itertuples(index=False)
        ]

    def get_team_rep_ids(self, manager_id: int, active_only: bool = False) -> List[int]:
        """Ids of reps whose manager is ``manager_id``."""
        df = self.get_sales_reps(manager_id=manager_id, active_only=active_only)
        ids = [int(v) for v in df['sales_rep_id']]
        logger.debug(f"Team rep IDs for manager {manager_id}: {ids}")
        return ids

    def resolve_rep_scope(self, filters: DashboardFilters, active_only: bool = False) -> Optional[List[int]]:
        """
        Resolve the manager filter into a rep id restriction.

        Returns:
            None when no manager filter is set (unrestricted), otherwise the
            list of the manager's direct reports (possibly empty)
        """
        if not filters.has_manager:
            return None
        rep_ids = self.get_team_rep_ids(filters.sales_manager_id, active_only=active_only)
        if not rep_ids:
            logger.warning(f"No reps found for manager {filters.sales_manager_id} - scoped results are empty")
        return rep_ids

    # =========================================================================
    # REVENUE & TARGETS
    # =========================================================================

    def get_revenue(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        rep_ids: Optional[Iterable[int]] = None,
        customer_ids: Optional[Iterable[int]] = None,
        end_exclusive: Optional[date] = None
    ) -> pd.DataFrame:
        """
        Load revenue rows by participation date.

        Args:
            start_date: Inclusive start (participation_dt)
            end_date: Inclusive end (participation_dt)
            rep_ids: Restrict to these reps (None = all)
            customer_ids: Restrict to these customers (None = all)
            end_exclusive: Exclusive end, used instead of end_date for rolling windows
        """
        query = """
            SELECT
                revenue_id,
                revenue,
                sales_rep,
                customer_id,
                participation_dt,
                revenue_category
            FROM revenue
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, REVENUE_COLUMNS, "revenue",
            date_column='participation_dt',
            start_date=start_date,
            end_date=end_date,
            end_exclusive=end_exclusive,
            id_filters={'sales_rep': rep_ids, 'customer_id': customer_ids},
            order_by='participation_dt'
        )

    def get_targets(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        rep_ids: Optional[Iterable[int]] = None
    ) -> pd.DataFrame:
        """Load monthly targets by target_month."""
        query = """
            SELECT
                target_id,
                sales_rep_id,
                target_month,
                target_value
            FROM targets
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, TARGET_COLUMNS, "targets",
            date_column='target_month',
            start_date=start_date,
            end_date=end_date,
            id_filters={'sales_rep_id': rep_ids},
            order_by='target_month'
        )

    # =========================================================================
    # DEALS
    # =========================================================================

    def get_current_deals(
        self,
        rep_ids: Optional[Iterable[int]] = None,
        created_start: Optional[date] = None,
        created_end: Optional[date] = None,
        high_risk_values: Optional[Iterable[str]] = None
    ) -> pd.DataFrame:
        """
        Load the current deal snapshot with rep and customer names.

        Args:
            rep_ids: Restrict to these reps (None = all)
            created_start: Inclusive start on created_at
            created_end: Inclusive end on created_at
            high_risk_values: Only deals whose is_high_risk is one of these literals
        """
        query = """
            SELECT
                d.deal_id,
                d.deal_stage,
                d.customer_id,
                c.customer_name,
                d.sales_rep_id,
                r.sales_rep_name,
                d.max_deal_potential,
                d.participation_propensity,
                d.is_high_risk,
                d.created_at
            FROM deals_current d
            LEFT JOIN sales_reps r ON r.sales_rep_id = d.sales_rep_id
            LEFT JOIN customers c ON c.customer_id = d.customer_id
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, DEAL_COLUMNS, "deals_current",
            date_column='d.created_at',
            start_date=created_start,
            end_date=created_end,
            id_filters={'d.sales_rep_id': rep_ids, 'd.is_high_risk': high_risk_values},
            order_by='d.deal_id'
        )

    def get_deal_history(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        rep_ids: Optional[Iterable[int]] = None,
        deal_ids: Optional[Iterable[int]] = None,
        stages: Optional[Iterable[str]] = None
    ) -> pd.DataFrame:
        """Load historical deal activity rows by activity_date."""
        query = """
            SELECT
                historical_id,
                deal_id,
                deal_stage,
                deal_value,
                activity_date,
                sales_rep_id,
                customer_id
            FROM deal_historical
            WHERE deal_stage IS NOT NULL
        """
        return self._load_filtered(
            query, HISTORY_COLUMNS, "deal_historical",
            date_column='activity_date',
            start_date=start_date,
            end_date=end_date,
            id_filters={'sales_rep_id': rep_ids, 'deal_id': deal_ids, 'deal_stage': stages},
            order_by='deal_id, activity_date, historical_id'
        )

    # =========================================================================
    # CUSTOMERS, CONTACTS, EVENTS
    # =========================================================================

    def get_customers(self, customer_ids: Optional[Iterable[int]] = None) -> pd.DataFrame:
        query = """
            SELECT
                customer_id,
                customer_name,
                customer_industry,
                customer_lifecycle_stage
            FROM customers
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, CUSTOMER_COLUMNS, "customers",
            id_filters={'customer_id': customer_ids},
            order_by='customer_id'
        )

    def get_team_customer_ids(self, rep_ids: Iterable[int]) -> List[int]:
        """
        Customers associated with the given reps through current deals or revenue.
        """
        rep_ids = list(rep_ids)
        if not rep_ids:
            return []

        query = """
            SELECT customer_id FROM deals_current WHERE sales_rep_id IN :deal_rep_ids
            UNION
            SELECT customer_id FROM revenue WHERE sales_rep IN :revenue_rep_ids
        """
        params = {'deal_rep_ids': _plain(rep_ids), 'revenue_rep_ids': _plain(rep_ids)}
        df = self._execute_query(query, params, "team_customers", expanding=('deal_rep_ids', 'revenue_rep_ids'))
        return sorted(int(v) for v in df['customer_id'].dropna())

    def get_contacts(self, customer_ids: Optional[Iterable[int]] = None) -> pd.DataFrame:
        query = """
            SELECT
                contact_id,
                customer_id,
                contact_score,
                is_dm
            FROM contacts
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, CONTACT_COLUMNS, "contacts",
            id_filters={'customer_id': customer_ids},
            order_by='contact_id'
        )

    def get_events(
        self,
        rep_ids: Optional[Iterable[int]] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> pd.DataFrame:
        query = """
            SELECT
                event_id,
                event_type,
                event_timestamp,
                sales_rep_id,
                customer_id,
                contact_id
            FROM events
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, EVENT_COLUMNS, "events",
            date_column='event_timestamp',
            start_date=start_date,
            end_date=end_date,
            id_filters={'sales_rep_id': rep_ids},
            order_by='event_id'
        )

    def get_stage_history(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        customer_ids: Optional[Iterable[int]] = None
    ) -> pd.DataFrame:
        """Load customer lifecycle stage transitions by activity_date."""
        query = """
            SELECT
                historical_id,
                customer_id,
                life_cycle_stage,
                activity_date
            FROM customer_stage_historical
            WHERE 1 = 1
        """
        return self._load_filtered(
            query, STAGE_HISTORY_COLUMNS, "customer_stage_historical",
            date_column='activity_date',
            start_date=start_date,
            end_date=end_date,
            id_filters={'customer_id': customer_ids},
            order_by='activity_date, historical_id'
        )

    def get_available_stages(self) -> List[str]:
        query = """
            SELECT DISTINCT life_cycle_stage
            FROM customer_stage_historical
            WHERE life_cycle_stage IS NOT NULL
        """
        df = self._execute_query(query, {}, "available_stages")
        return sorted(df['life_cycle_stage'].tolist())

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _load_filtered(
        self,
        query: str,
        columns: Sequence[str],
        query_name: str,
        date_column: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        end_exclusive: Optional[date] = None,
        id_filters: Optional[Dict[str, Optional[Iterable]]] = None,
        order_by: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Append date range and IN-list conditions to a base query and run it.

        An IN-list given as an empty collection returns an empty frame
        without touching the database.
        """
        params = {}
        expanding = []

        for column, values in (id_filters or {}).items():
            if values is None:
                continue
            values = _plain(values)
            if not values:
                logger.debug(f"{query_name}: empty {column} restriction, returning no rows")
                return empty_frame(columns)
            name = column.split('.')[-1] + '_list'
            query += f" AND {column} IN :{name}"
            params[name] = values
            expanding.append(name)

        if date_column:
            if start_date is not None:
                query += f" AND {date_column} >= :start_date"
                params['start_date'] = start_date.isoformat()
            if end_exclusive is None and end_date is not None:
                end_exclusive = DashboardFilters(end_date=end_date).end_exclusive
            if end_exclusive is not None:
                query += f" AND {date_column} < :end_exclusive"
                params['end_exclusive'] = end_exclusive.isoformat()

        if order_by:
            query += f" ORDER BY {order_by}"

        df = self._execute_query(query, params, query_name, expanding=expanding)
        if df.empty:
            return empty_frame(columns)
        return df

    def _execute_query(
        self,
        query: str,
        params: dict,
        query_name: str = "query",
        expanding: Iterable[str] = ()
    ) -> pd.DataFrame:
        """
        Execute SQL query and return DataFrame.

        Args:
            query: SQL query string
            params: Query parameters
            query_name: Name for logging
            expanding: Parameter names bound as IN-lists

        Returns:
            DataFrame with results

        Raises:
            QueryError: if the store fails the query
        """
        statement = text(query)
        expanding = list(expanding)
        if expanding:
            statement = statement.bindparams(*[bindparam(name, expanding=True) for name in expanding])

        try:
            logger.debug(f"Executing {query_name}")
            df = execute_query_df(statement, params, engine=self.engine)
            logger.debug(f"{query_name} returned {len(df)} rows")
            return df
        except Exception as e:
            logger.error(f"Error executing {query_name}: {e}")
            raise QueryError(f"Error executing {query_name}: {e}") from e
