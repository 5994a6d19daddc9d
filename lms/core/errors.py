"""Domain error taxonomy.

Components raise these; routers translate them into HTTP responses.

  NotFoundError             missing user/class/quiz/assignment   -> 404
  AttemptLimitReachedError  attempt ceiling reached              -> 403
  ClassArchivedError        roster change on an archived class   -> 403
  ValidationError           malformed input, before any write    -> 400
  TransientStoreError       store retries exhausted / unreachable -> 503

Enrollment and attempt recording let every one of these propagate.  The
aggregators (gamification, analytics, leaderboard) catch sub-query
failures themselves and degrade; see lms.services.degrade.
"""

from __future__ import annotations


class NotFoundError(LookupError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class AttemptLimitReachedError(Exception):
    def __init__(self, used: int, allowed: int) -> None:
        super().__init__(f"attempt limit reached ({used}/{allowed})")
        self.used = used
        self.allowed = allowed
        self.left = 0


class ClassArchivedError(Exception):
    def __init__(self, class_id: str) -> None:
        super().__init__(f"class is archived: {class_id}")
        self.class_id = class_id


class ValidationError(ValueError):
    pass


class TransientStoreError(Exception):
    """The store could not complete the operation; the caller may retry."""
