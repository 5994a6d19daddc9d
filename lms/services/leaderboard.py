"""Peer leaderboards.

The peer pool is everyone on the rosters of the caller's classes.  With
``scope="subject"`` the pool switches to the classes that the matching
courses are assigned to, and only those courses count toward points.

Roster entries are keyed by whatever id the class was built with, so
they go through ``map_roster_ids_to_user_ids`` before anything else.
Peers who opted out are hidden from everyone but themselves; the caller
is always on their own board.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from lms.core.errors import NotFoundError, ValidationError
from lms.models.user import User
from lms.services.chunking import gather_bounded, unique
from lms.services.degrade import attempt
from lms.services.gamification import GamificationCalculator, timeframe_start, top_badge
from lms.services.lookups import (
    courses_for_classes,
    enrolled_class_ids,
    get_user,
    map_roster_ids_to_user_ids,
)
from lms.store.base import DocumentStore, join

logger = logging.getLogger(__name__)

COMPONENT = "leaderboard"
SCOPES = ("class", "subject")
MAX_ENTRIES = 50


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: str
    name: str
    points: int
    top_badge: str


class LeaderboardBuilder:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._gamification = GamificationCalculator(store, clock=self._clock)

    async def _peer_pool(
        self, class_ids: list[str], scope: str, subject: str | None
    ) -> tuple[list[str], list[str] | None]:
        """Classes whose rosters form the pool, and the course filter (if any)."""
        if scope != "subject" or not subject:
            return class_ids, None
        wanted = subject.strip().casefold()
        courses = await courses_for_classes(self._store, class_ids)
        targets = [c for c in courses if c.title.casefold() == wanted]
        pool = unique(cid for c in targets for cid in c.assigned_classes)
        return (pool or class_ids), [c.id for c in targets]

    async def _roster_ids(self, class_id: str) -> list[str]:
        docs = await self._store.list_documents(join("classes", class_id, "roster"))
        return [d.id for d in docs]

    async def _entry(
        self,
        peer_id: str,
        caller: User,
        start: datetime | None,
        course_filter: list[str] | None,
    ) -> LeaderboardEntry | None:
        user = caller if peer_id == caller.id else await get_user(self._store, peer_id)
        if user is None:
            return None
        if not user.leaderboard_opt_in and user.id != caller.id:
            return None
        points = await self._gamification.compute_points(
            user.id, start=start, course_filter_ids=course_filter
        )
        badges = await self._gamification.compute_badges(user.id)
        return LeaderboardEntry(
            user_id=user.id, name=user.name, points=points, top_badge=top_badge(badges)
        )

    async def build(
        self,
        user_id: str,
        scope: str = "class",
        timeframe: str = "all",
        subject: str | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank the caller's peers by points, highest first, at most 50.

        Raises ValidationError for an unknown scope or timeframe and
        NotFoundError for an unknown caller.  Failures while scoring one
        peer drop that peer and are logged.
        """
        if scope not in SCOPES:
            raise ValidationError(f"scope must be one of {', '.join(SCOPES)} (got {scope!r})")
        start = timeframe_start(timeframe, self._clock())
        caller = await get_user(self._store, user_id)
        if caller is None:
            raise NotFoundError("user", user_id)

        class_ids = await enrolled_class_ids(self._store, caller.id)
        pool, course_filter = await self._peer_pool(class_ids, scope, subject)

        rosters = await gather_bounded(
            pool,
            lambda cid: attempt(COMPONENT, "roster", lambda: self._roster_ids(cid), []),
        )
        roster_ids = unique(rid for r in rosters for rid in r.value)
        mapped = await attempt(
            COMPONENT,
            "resolve_peers",
            lambda: map_roster_ids_to_user_ids(self._store, roster_ids),
            [],
        )
        peer_ids = unique([*mapped.value, caller.id])

        results = await gather_bounded(
            peer_ids,
            lambda pid: attempt(
                COMPONENT, "peer", lambda: self._entry(pid, caller, start, course_filter), None
            ),
        )
        entries = [r.value for r in results if r.value is not None]
        entries.sort(key=lambda e: e.points, reverse=True)
        logger.debug(
            "Leaderboard user=%s scope=%s timeframe=%s peers=%d entries=%d",
            caller.id,
            scope,
            timeframe,
            len(peer_ids),
            len(entries),
        )
        return entries[:MAX_ENTRIES]

    async def set_opt_in(self, user_id: str, opt_in: bool) -> None:
        if await get_user(self._store, user_id) is None:
            raise NotFoundError("user", user_id)
        await self._store.set(join("users", user_id), {"leaderboardOptIn": opt_in}, merge=True)
        logger.info("Leaderboard opt-in user=%s opt_in=%s", user_id, opt_in)
