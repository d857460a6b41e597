"""Onboarding tutorial progress, kept in an injectable mapping."""

from collections.abc import MutableMapping
from typing import Optional

from pydantic import BaseModel


class TutorialStep(BaseModel):
    title: str
    content: str
    action: Optional[str] = None


TUTORIAL_STEPS: dict[str, list[TutorialStep]] = {
    "dashboard": [
        TutorialStep(
            title="Welcome to your dashboard",
            content="See how your channel performed over the last 7 and 30 days at a glance.",
        ),
        TutorialStep(
            title="Growth",
            content="Each card compares the last week with the rest of the month.",
        ),
        TutorialStep(
            title="Sync",
            content="Press Sync to pull the latest numbers from YouTube.",
            action="Try it",
        ),
    ],
    "youtube": [
        TutorialStep(
            title="Connect YouTube",
            content="Sign in with the Google account that owns your channel.",
        ),
        TutorialStep(
            title="Permissions",
            content="ytsync reads channel statistics and analytics. It never posts on your behalf.",
        ),
    ],
    "settings": [
        TutorialStep(
            title="Connection status",
            content="Check when your access token expires and refresh it manually.",
        ),
        TutorialStep(
            title="Disconnect",
            content="Disconnecting removes your tokens. You can also delete stored analytics.",
        ),
    ],
}


class TutorialStore:
    """
    Tutorial state machine over any mutable mapping.

    In the app the mapping is Streamlit's session state; anything with
    dict semantics works, which keeps the logic testable on its own.
    """

    KEY = "tutorial"

    def __init__(self, storage: MutableMapping, steps: Optional[dict[str, list[TutorialStep]]] = None):
        self._storage = storage
        self._steps = steps if steps is not None else TUTORIAL_STEPS
        if self.KEY not in storage:
            storage[self.KEY] = {
                "enabled": True,
                "active_page": None,
                "current_step": 0,
                "completed_pages": [],
                "dismissed_globally": False,
            }

    @property
    def state(self) -> dict:
        return self._storage[self.KEY]

    def _update(self, **changes):
        # Replace rather than mutate so mapping-backed stores see the write.
        self._storage[self.KEY] = {**self.state, **changes}

    @property
    def enabled(self) -> bool:
        return self.state["enabled"]

    @property
    def active_page(self) -> Optional[str]:
        return self.state["active_page"]

    @property
    def current_step(self) -> int:
        return self.state["current_step"]

    @property
    def completed_pages(self) -> list[str]:
        return list(self.state["completed_pages"])

    def start(self, page: str):
        if page not in self._steps:
            raise ValueError(f"Unknown tutorial page: {page}")
        self._update(active_page=page, current_step=0)

    def next_step(self):
        if self.active_page is None:
            return
        if self.current_step + 1 >= len(self._steps[self.active_page]):
            self.complete()
        else:
            self._update(current_step=self.current_step + 1)

    def prev_step(self):
        self._update(current_step=max(0, self.current_step - 1))

    def _finish_active(self):
        page = self.active_page
        if page is None:
            return
        completed = self.completed_pages
        if page not in completed:
            completed.append(page)
        self._update(active_page=None, current_step=0, completed_pages=completed)

    def skip(self):
        self._finish_active()

    def complete(self):
        self._finish_active()

    def dismiss(self):
        self._update(enabled=False, active_page=None, current_step=0, dismissed_globally=True)

    def enable(self):
        self._update(enabled=True, dismissed_globally=False)

    def reset(self, page: Optional[str] = None):
        if page:
            self._update(completed_pages=[p for p in self.completed_pages if p != page])
        else:
            self._update(completed_pages=[], current_step=0, active_page=None)

    def should_show(self, page: str) -> bool:
        """True when the page's tutorial has not been completed and tutorials are on."""
        return self.enabled and page in self._steps and page not in self.state["completed_pages"]

    def current(self) -> Optional[TutorialStep]:
        if self.active_page is None:
            return None
        steps = self._steps[self.active_page]
        if self.current_step >= len(steps):
            return None
        return steps[self.current_step]

    def progress(self) -> tuple[int, int]:
        """(1-based step, total steps) of the active tutorial, (0, 0) when idle."""
        if self.active_page is None:
            return 0, 0
        return self.current_step + 1, len(self._steps[self.active_page])
