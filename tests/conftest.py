"""Test fixtures for the sales analytics layer.

Provides:
- In-memory SQLite engine with the dashboard tables
- A small seeded dataset (2 populated teams, 1 empty team, Q1 2024 activity)
- AnalyticsQueries / AnalyticsEndpoints bound to that engine
- Q1 2024 filter values

Seeded hierarchy:
    1 Alice (manager) -> 2 Bob, 3 Carol
    4 Dan (manager)   -> 5 Eve, 6 Frank (inactive)
    7 Gina (manager, no reports)
"""

from datetime import date

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from utils.sales_analytics.endpoints import AnalyticsEndpoints
from utils.sales_analytics.filters import DashboardFilters
from utils.sales_analytics.queries import AnalyticsQueries


SCHEMA = [
    """
    CREATE TABLE sales_reps (
        sales_rep_id INTEGER PRIMARY KEY,
        sales_rep_name TEXT,
        sales_rep_manager_id INTEGER NULL,
        is_active INTEGER,
        hire_date TEXT,
        termination_date TEXT
    )
    """,
    """
    CREATE TABLE customers (
        customer_id INTEGER PRIMARY KEY,
        customer_name TEXT,
        customer_industry TEXT,
        customer_lifecycle_stage TEXT,
        decision_maker TEXT,
        assignment_dt TEXT,
        first_participation_date TEXT
    )
    """,
    """
    CREATE TABLE deals_current (
        deal_id INTEGER PRIMARY KEY,
        deal_stage TEXT,
        customer_id INTEGER,
        sales_rep_id INTEGER,
        max_deal_potential REAL,
        participation_propensity REAL,
        is_high_risk TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE deal_historical (
        historical_id INTEGER PRIMARY KEY,
        deal_id INTEGER,
        deal_stage TEXT,
        deal_value REAL,
        activity_date TEXT,
        activity_type TEXT,
        sales_rep_id INTEGER,
        customer_id INTEGER
    )
    """,
    """
    CREATE TABLE revenue (
        revenue_id INTEGER PRIMARY KEY,
        revenue REAL,
        participation_dt TEXT,
        sales_rep INTEGER,
        customer_id INTEGER,
        revenue_category TEXT
    )
    """,
    """
    CREATE TABLE targets (
        target_id INTEGER PRIMARY KEY,
        sales_rep_id INTEGER,
        target_month TEXT,
        target_value REAL
    )
    """,
    """
    CREATE TABLE contacts (
        contact_id INTEGER PRIMARY KEY,
        customer_id INTEGER,
        contact_name TEXT,
        contact_score REAL,
        is_dm INTEGER,
        active_status TEXT,
        registration_dt TEXT
    )
    """,
    """
    CREATE TABLE events (
        event_id INTEGER PRIMARY KEY,
        event_type TEXT,
        event_timestamp TEXT,
        sales_rep_id INTEGER,
        customer_id INTEGER,
        contact_id INTEGER,
        event_summary TEXT
    )
    """,
    """
    CREATE TABLE customer_stage_historical (
        historical_id INTEGER PRIMARY KEY,
        customer_id INTEGER,
        life_cycle_stage TEXT,
        activity_date TEXT,
        activity_type TEXT
    )
    """,
]

SEED = {
    'sales_reps': [
        (1, 'Alice', None, 1, '2020-01-01', None),
        (2, 'Bob', 1, 1, '2021-03-01', None),
        (3, 'Carol', 1, 1, '2021-06-01', None),
        (4, 'Dan', None, 1, '2020-02-01', None),
        (5, 'Eve', 4, 1, '2022-01-01', None),
        (6, 'Frank', 4, 0, '2022-01-01', '2023-06-30'),
        (7, 'Gina', None, 1, '2023-01-01', None),
    ],
    'customers': [
        (101, 'Acme', 'Tech', 'Loyal', 'Yes', '2022-01-01', '2022-02-01'),
        (102, 'Beta', 'Retail', 'At Risk', 'No', '2022-01-01', '2022-03-01'),
        (103, 'Gamma', 'Tech', 'Acquisition', 'Yes', '2023-01-01', '2024-02-01'),
        (104, 'Delta', 'Finance', 'Newly Acquired', 'No', '2023-06-01', '2024-03-01'),
    ],
    'revenue': [
        (1, 100.0, '2024-01-10', 2, 101, 'new'),
        (2, 50.0, '2024-01-20', 2, 101, 'repeat'),
        (3, 200.0, '2024-02-05', 3, 102, 'repeat'),
        (4, 300.0, '2024-02-15', 5, 103, 'new'),
        (5, 80.0, '2024-03-31', 5, 104, 'repeat'),
        (6, 40.0, '2023-12-31', 2, 101, 'new'),
    ],
    'targets': [
        (1, 2, '2024-01-01', 100.0),
        (2, 3, '2024-02-01', 200.0),
        (3, 5, '2024-01-01', 300.0),
        (4, 5, '2024-03-01', 100.0),
    ],
    'deals_current': [
        (1001, 'closed_won', 101, 2, 500.0, 0.9, 'No', '2024-01-05 10:00:00'),
        (1002, 'won', 101, 2, 300.0, 0.8, 'Yes', '2024-01-15 09:00:00'),
        (1003, 'negotiation', 102, 3, 1000.0, 0.5, 'Yes', '2024-02-10 12:00:00'),
        (1004, 'closed_won', 103, 5, 700.0, 0.7, 'No', '2024-03-31 18:30:00'),
        (1005, 'prospecting', 104, 5, 0.0, 0.2, 'No', '2024-04-02 08:00:00'),
        (1006, 'closed lost', 104, 3, 200.0, 0.1, 'yes', '2024-02-20 10:00:00'),
    ],
    'deal_historical': [
        # 2001: prospecting -> qualified -> proposal
        (1, 2001, 'prospecting', 100.0, '2024-01-05', 'created', 2, 101),
        (2, 2001, 'qualified', 150.0, '2024-02-01', 'update', 2, 101),
        (3, 2001, 'proposal', 200.0, '2024-03-01', 'update', 2, 101),
        # 2002: prospecting -> qualified -> negotiation -> won
        (4, 2002, 'prospecting', 50.0, '2024-01-10', 'created', 3, 102),
        (5, 2002, 'qualified', 60.0, '2024-01-20', 'update', 3, 102),
        (6, 2002, 'negotiation', 80.0, '2024-02-10', 'update', 3, 102),
        (7, 2002, 'won', 90.0, '2024-03-10', 'closed', 3, 102),
        # 2003: prospecting -> lost
        (8, 2003, 'prospecting', 300.0, '2024-02-01', 'created', 5, 103),
        (9, 2003, 'lost', 0.0, '2024-02-20', 'closed', 5, 103),
        # 2004: first entry is not prospecting
        (10, 2004, 'qualified', 500.0, '2024-01-15', 'created', 2, 101),
        (11, 2004, 'prospecting', 400.0, '2024-01-20', 'update', 2, 101),
        # 2005: prospecting before the range
        (12, 2005, 'prospecting', 60.0, '2023-12-20', 'created', 2, 101),
        (13, 2005, 'qualified', 70.0, '2024-01-05', 'update', 2, 101),
        # 2006: prospecting after the range
        (14, 2006, 'prospecting', 90.0, '2024-04-10', 'created', 5, 104),
    ],
    'contacts': [
        (1, 101, 'Ann', 80.0, 1, 'active', '2022-01-01'),
        (2, 101, 'Ben', 60.0, 0, 'active', '2022-01-01'),
        (3, 102, 'Cid', 40.0, 0, 'active', '2022-01-01'),
        (4, 103, 'Dee', None, 1, 'active', '2023-01-01'),
        (5, 104, 'Eli', 90.0, 0, 'active', '2023-06-01'),
    ],
    'events': [
        (1, 'call', '2024-01-06 10:00:00', 2, 101, 1, None),
        (2, 'email', '2024-01-16 11:00:00', 2, 101, 2, None),
        (3, 'meeting', '2024-02-11 09:00:00', 3, 102, 3, None),
        (4, 'call', '2024-03-31 20:00:00', 5, 103, 4, None),
        (5, 'call', '2024-04-05 10:00:00', 5, 104, 5, None),
        (6, 'demo', '2024-01-08 14:00:00', 3, 103, 4, None),
    ],
    'customer_stage_historical': [
        (1, 101, 'Acquisition', '2024-01-03', 'change'),
        (2, 101, 'Loyal', '2024-01-25', 'change'),
        (3, 102, 'At Risk', '2024-01-10', 'change'),
        (4, 103, 'Acquisition', '2024-02-02', 'change'),
        (5, 104, 'Dormant', '2024-02-14', 'change'),
        (6, 102, 'Champion', '2024-02-20', 'change'),
        (7, 101, 'Loyal', '2023-12-15', 'change'),
    ],
}


def _seed(conn, table: str, rows):
    width = len(rows[0])
    placeholders = ', '.join(f':p{i}' for i in range(width))
    statement = text(f"INSERT INTO {table} VALUES ({placeholders})")
    conn.execute(statement, [{f'p{i}': value for i, value in enumerate(row)} for row in rows])


@pytest.fixture(scope="session")
def engine():
    """In-memory SQLite database shared across connections."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
        for table, rows in SEED.items():
            _seed(conn, table, rows)

    yield engine
    engine.dispose()


@pytest.fixture
def queries(engine) -> AnalyticsQueries:
    return AnalyticsQueries(engine=engine)


@pytest.fixture
def endpoints(queries) -> AnalyticsEndpoints:
    return AnalyticsEndpoints(queries)


@pytest.fixture
def q1_filters() -> DashboardFilters:
    return DashboardFilters(start_date=date(2024, 1, 1), end_date=date(2024, 3, 31))


@pytest.fixture
def team_alice(q1_filters) -> DashboardFilters:
    return q1_filters.with_changes(sales_manager_id=1)


@pytest.fixture
def team_gina(q1_filters) -> DashboardFilters:
    """Manager whose team is empty."""
    return q1_filters.with_changes(sales_manager_id=7)
