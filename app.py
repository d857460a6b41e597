"""Main Streamlit application entry point."""

import logging

import streamlit as st
from apscheduler.schedulers.background import BackgroundScheduler

from ytsync.database import StorageUnavailableError, init_db
from ytsync.config import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Page configuration
st.set_page_config(
    page_title="YouTube Analytics",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Initialize database on app start
try:
    init_db()
except StorageUnavailableError as e:
    logging.getLogger(__name__).error("Database initialization failed: %s", e)
    st.warning("Storage is unavailable right now; stored analytics cannot be shown.")

# Initialize session state
if "user_id" not in st.session_state:
    st.session_state.user_id = None
if "channel_title" not in st.session_state:
    st.session_state.channel_title = None


@st.cache_resource
def start_background_scheduler():
    """Start APScheduler for background jobs, once per server process."""
    from jobs.sync_analytics import run_sync
    from jobs.refresh_tokens import run_token_refresh

    scheduler = BackgroundScheduler()

    # Re-sync analytics every few hours
    scheduler.add_job(run_sync, "interval", hours=config.SYNC_INTERVAL_HOURS, id="sync_analytics")

    # Access tokens live an hour; refresh ahead of expiry
    scheduler.add_job(
        run_token_refresh,
        "interval",
        minutes=max(1, config.TOKEN_REFRESH_LEAD_MINUTES // 2),
        id="refresh_tokens",
    )

    scheduler.start()
    return scheduler


# Main page content
st.title("📊 YouTube Analytics Dashboard")

# Check configuration
missing = config.validate()
if missing:
    st.error(f"⚠️ Missing configuration: {', '.join(missing)}")
    st.info("Set the required environment variables and restart.")
    st.stop()

start_background_scheduler()

# Show login status
if st.session_state.user_id:
    st.success(f"✅ Connected: {st.session_state.channel_title or st.session_state.user_id}")
    st.info("Open the **Dashboard** to see your channel analytics.")
else:
    st.warning("Connect your YouTube channel to get started.")
    st.info("Use the **Connect** page in the sidebar.")

# Quick guide section
st.markdown("---")
st.subheader("Getting started")

col1, col2, col3 = st.columns(3)

with col1:
    st.markdown("### 1️⃣ Connect")
    st.write("Sign in with Google to link your YouTube channel.")

with col2:
    st.markdown("### 2️⃣ Dashboard")
    st.write("Follow views, engagement and subscriber growth.")

with col3:
    st.markdown("### 3️⃣ Auto sync")
    st.write(f"Analytics are re-synced every {config.SYNC_INTERVAL_HOURS} hours.")
