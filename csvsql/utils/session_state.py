from __future__ import annotations

from collections.abc import MutableMapping
from copy import deepcopy
from typing import Any

from csvsql.services.session import AnalysisSession

SessionStore = MutableMapping[str, Any]

ANALYSIS_SESSION_KEY = "analysis_session"

SESSION_DEFAULTS: dict[str, Any] = {
    "self_test_steps": None,
    "last_upload_id": None,
    "busy": False,
}


def _get_store(store: SessionStore | None) -> SessionStore:
    if store is not None:
        return store
    try:
        import streamlit as st  # type: ignore
    except (
        ModuleNotFoundError
    ) as error:  # pragma: no cover - Streamlit only available in app runtime
        raise RuntimeError("Streamlit session state is unavailable outside the app.") from error
    return st.session_state


def ensure_session_defaults(
    store: SessionStore | None = None,
    *,
    defaults: dict[str, Any] | None = None,
) -> SessionStore:
    """Populate default keys without overwriting existing values."""
    state = _get_store(store)
    baseline = defaults or SESSION_DEFAULTS
    for key, value in baseline.items():
        if key not in state:
            state[key] = deepcopy(value)
    return state


def update_session_state(store: SessionStore | None = None, **updates: object) -> SessionStore:
    """Update session state with provided values after defaults are ensured."""
    state = ensure_session_defaults(store)
    for key, value in updates.items():
        state[key] = value
    return state


def get_analysis_session(store: SessionStore | None = None) -> AnalysisSession:
    """Return the per-user analysis session, creating it on first access."""
    state = ensure_session_defaults(store)
    session = state.get(ANALYSIS_SESSION_KEY)
    if not isinstance(session, AnalysisSession):
        session = AnalysisSession()
        state[ANALYSIS_SESSION_KEY] = session
    return session


def reset_analysis_session(store: SessionStore | None = None) -> AnalysisSession:
    """Drop the dataset, result and self-test report in favour of a fresh session."""
    state = ensure_session_defaults(store)
    for key, value in SESSION_DEFAULTS.items():
        state[key] = deepcopy(value)
    session = AnalysisSession()
    state[ANALYSIS_SESSION_KEY] = session
    return session
