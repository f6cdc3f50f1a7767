from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from enum import Enum
from threading import Lock

from cinerecap.core.schemas import GeneratedRecap, MovieInfo

logger = logging.getLogger(__name__)

FALLBACK_ERROR_MESSAGE = "Failed to generate recap."


class RecapStatus(str, Enum):
    IDLE = "IDLE"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class InvalidTransition(RuntimeError):
    pass


class RecapView:
    """Render state for one session's recap panel.

    IDLE -> GENERATING -> COMPLETED | ERROR, and back to IDLE on reset.
    Submitting from ERROR is the retry path.
    """

    def __init__(self) -> None:
        self.status = RecapStatus.IDLE
        self.error: str | None = None
        self.movie: MovieInfo | None = None
        self.recap: GeneratedRecap | None = None

    def _require(self, action: str, *allowed: RecapStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransition(f"Cannot {action} while {self.status.value}")

    def submit(self, movie: MovieInfo) -> None:
        self._require("submit", RecapStatus.IDLE, RecapStatus.ERROR)
        self.status = RecapStatus.GENERATING
        self.error = None
        self.recap = None
        self.movie = movie

    def succeed(self, recap: GeneratedRecap) -> None:
        self._require("complete", RecapStatus.GENERATING)
        self.status = RecapStatus.COMPLETED
        self.recap = recap

    def fail(self, message: str | None) -> None:
        self._require("fail", RecapStatus.GENERATING)
        self.status = RecapStatus.ERROR
        self.error = message or FALLBACK_ERROR_MESSAGE

    def reset(self) -> None:
        self._require("reset", RecapStatus.COMPLETED, RecapStatus.ERROR)
        self.status = RecapStatus.IDLE
        self.error = None
        self.recap = None


def run_recap(
    view: RecapView,
    movie: MovieInfo,
    generate: Callable[[MovieInfo], GeneratedRecap],
) -> RecapView:
    """Drive one submission through the view. Errors end in ERROR, never retried."""

    view.submit(movie)
    return finish_recap(view, generate)


def finish_recap(
    view: RecapView,
    generate: Callable[[MovieInfo], GeneratedRecap],
) -> RecapView:
    if view.status is not RecapStatus.GENERATING or view.movie is None:
        raise InvalidTransition(f"Cannot generate while {view.status.value}")

    movie = view.movie
    try:
        recap = generate(movie)
    except Exception as e:
        logger.warning("Recap for %r failed: %s", movie.title, e)
        view.fail(str(e))
        return view

    view.succeed(recap)
    return view


class ViewRegistry:
    """In-process map of session key -> RecapView.

    Holds at most ``max_views`` views; the least recently used idle ones are
    dropped first.
    """

    def __init__(self, *, max_views: int = 4096) -> None:
        self._lock = Lock()
        self._max_views = max_views
        self._views: OrderedDict[str, RecapView] = OrderedDict()

    def _touch(self, key: str) -> RecapView:
        view = self._views.get(key)
        if view is None:
            view = RecapView()
            self._views[key] = view
        self._views.move_to_end(key)
        self._evict_if_needed(keep=key)
        return view

    def _evict_if_needed(self, *, keep: str) -> None:
        excess = len(self._views) - self._max_views
        if excess <= 0:
            return
        # Views with a request in flight are never dropped.
        stale = [
            k
            for k, v in self._views.items()
            if k != keep and v.status is not RecapStatus.GENERATING
        ][:excess]
        for k in stale:
            del self._views[k]

    def get(self, key: str) -> RecapView:
        with self._lock:
            return self._touch(key)

    def submit(self, key: str, movie: MovieInfo) -> RecapView:
        # Claiming GENERATING under the lock keeps one request in flight per session.
        with self._lock:
            view = self._touch(key)
            view.submit(movie)
            return view

    def discard(self, key: str) -> None:
        with self._lock:
            self._views.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._views)
