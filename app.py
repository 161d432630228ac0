# app.py
"""
Sales Analytics Dashboard - Main Entry Point

Version: 1.0.0
"""

import streamlit as st
from utils.config import config
from utils.db import check_db_connection, get_connection_pool_status
import logging

# Configure logging
logging.basicConfig(
    level=config.get_app_setting('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ==================== PAGE CONFIGURATION ====================

APP_NAME = "Sales Analytics"
APP_ICON = "📊"
APP_VERSION = "1.0.0"

st.set_page_config(
    page_title=APP_NAME,
    page_icon=APP_ICON,
    layout="wide",
    initial_sidebar_state="expanded"
)

# ==================== CUSTOM CSS ====================

st.markdown("""
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        margin-bottom: 0.5rem;
        color: #1f77b4;
    }

    .sub-header {
        font-size: 1.1rem;
        color: #666;
        margin-bottom: 2rem;
    }

    .info-card {
        background: #f8f9fa;
        padding: 1.5rem;
        border-radius: 0.5rem;
        border-left: 4px solid #1f77b4;
        margin-bottom: 1rem;
    }

    .footer {
        text-align: center;
        color: #888;
        padding: 1rem;
        margin-top: 3rem;
        border-top: 1px solid #eee;
        font-size: 0.9rem;
    }
</style>
""", unsafe_allow_html=True)

DASHBOARDS = [
    ("📊 Overview", "Revenue against target, best performer, average deal size and critical alerts."),
    ("🏆 Leaderboard", "Per-rep scoring on target attainment, conversion and deal risk."),
    ("👥 Teams", "Team rollups by manager with momentum and risk levels."),
    ("🧑‍💼 Customers", "Lifecycle composition, customer health and top customers."),
    ("🆕 New Deals", "Prospecting-seeded funnel, deal velocity and top/lost deals."),
]

# ==================== MAIN ====================

def main():
    """Main application entry point"""
    st.markdown(f'<p class="main-header">{APP_ICON} {APP_NAME}</p>', unsafe_allow_html=True)
    st.markdown('<p class="sub-header">Sales performance, team and customer analytics</p>', unsafe_allow_html=True)

    db_ok, db_error = check_db_connection()
    if not db_ok:
        st.error(f"⚠️ {db_error}")
        st.info("Set DATABASE_URL (or DB_HOST / DB_USER / DB_PASSWORD / DB_NAME) in .env or Streamlit secrets.")
        return

    st.markdown("### 📊 Available Dashboards")
    for title, description in DASHBOARDS:
        st.markdown(f"""
        <div class="info-card">
            <strong>{title}</strong><br>
            <span style="color: #666;">{description}</span>
        </div>
        """, unsafe_allow_html=True)

    if config.is_feature_enabled('debug_mode'):
        with st.expander("🔧 System Status"):
            pool_status = get_connection_pool_status()

            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("DB Status", pool_status.get("status", "OK"))
            with col2:
                st.metric("Connections Used", pool_status.get("checked_out", 0))
            with col3:
                st.metric("Available", pool_status.get("checked_in", 0))

    st.markdown(f"""
    <div class="footer">
        <strong>{APP_NAME}</strong> v{APP_VERSION}
    </div>
    """, unsafe_allow_html=True)


if __name__ == "__main__":
    main()
