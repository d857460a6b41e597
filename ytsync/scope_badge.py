"""OAuth scope badge display helper."""
import streamlit as st

SCOPES = {
    "youtube.readonly": {
        "label": "youtube.readonly",
        "description": "Channel profile and statistics",
    },
    "yt-analytics.readonly": {
        "label": "yt-analytics.readonly",
        "description": "Daily channel analytics reports",
    },
    "youtube.upload": {
        "label": "youtube.upload",
        "description": "Video uploads from the studio",
    },
}


def show_scope_badge(scope_key: str) -> None:
    """Display a scope badge caption."""
    scope = SCOPES.get(scope_key)
    if scope:
        st.caption(f"🔑 Scope: `{scope['label']}` -- {scope['description']}")
