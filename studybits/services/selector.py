"""
Randomised, exhaustible selection of (course, unit) combinations.

A user's learning relationships are expanded into combinations once, shuffled
with Fisher-Yates, and then drawn one at a time. Each combination is handed
out at most once per cycle; an exhausted selector stays exhausted until
`reset()` is called.

All mutable selection state lives in a `SelectorState` owned by one
`CourseUnitSelector`, so selectors for different users or requests never
share anything.
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from studybits import firestore_dao as dao
from studybits.errors import TransientNetwork
from studybits.firestore_models import WHOLE_COURSE, Combination

logger = logging.getLogger(__name__)


class SelectorStatus(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    EXHAUSTED = "exhausted"


@dataclass
class SelectorState:
    status: SelectorStatus = SelectorStatus.UNINITIALIZED
    remaining: List[Combination] = field(default_factory=list)
    used: Set[Combination] = field(default_factory=set)


@dataclass
class RecommendationResult:
    """Outcome of `fetch_api_response`.

    `found` is False only when every combination was tried without a usable
    answer, which is different from a successful call.
    """

    found: bool
    combination: Optional[Combination] = None
    similar_courses: List[Any] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @classmethod
    def no_results(cls):
        return cls(found=False, message="No valid results found for any course unit combination.")


def build_combinations(relationships):
    """Expand learning relationship dicts into combinations.

    A relationship with `useUnits` off contributes one whole-course
    combination; otherwise one per studied unit. Relationships whose
    `studyingUnits` is not a list are skipped.
    """
    combinations = []
    seen = set()
    for rel in relationships:
        course_id = rel.get("id")
        units = rel.get("studyingUnits")
        if not course_id or not isinstance(units, list):
            logger.error("Invalid learning relationship for course %s", course_id)
            continue
        unit_ids = [u for u in units if isinstance(u, str) and u] if rel.get("useUnits") else [WHOLE_COURSE]
        for unit_id in unit_ids:
            combination = Combination(course_id, unit_id)
            if combination not in seen:
                seen.add(combination)
                combinations.append(combination)
    return combinations


def shuffle_in_place(items, rng):
    """Fisher-Yates shuffle: every permutation is equally likely."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


def new_state(combinations, rng):
    """Build a shuffled state. An empty pool stays UNINITIALIZED."""
    remaining = list(combinations)
    if not remaining:
        return SelectorState()
    shuffle_in_place(remaining, rng)
    return SelectorState(status=SelectorStatus.INITIALIZED, remaining=remaining)


def draw(state):
    """Pop the next combination from `state`, or None when nothing is left."""
    if state.status is not SelectorStatus.INITIALIZED:
        return None
    if not state.remaining:
        state.status = SelectorStatus.EXHAUSTED
        return None
    combination = state.remaining.pop()
    state.used.add(combination)
    if not state.remaining:
        state.status = SelectorStatus.EXHAUSTED
    return combination


class CourseUnitSelector:
    """Drives "find similar content" requests across a user's studied material."""

    def __init__(self, user_id, client=None, rng=None):
        self.user_id = user_id
        self.client = client
        self.rng = rng or random.Random()
        self.state = SelectorState()

    @property
    def status(self):
        return self.state.status

    @property
    def used_combinations(self):
        return set(self.state.used)

    @property
    def remaining_count(self):
        return len(self.state.remaining)

    def initialize(self):
        """Build the pool from the user's learning relationships.

        A no-op once initialised or exhausted; use `reset()` to start a new
        cycle. Returns whether at least one combination is available.
        """
        if self.state.status is not SelectorStatus.UNINITIALIZED:
            return self.state.status is SelectorStatus.INITIALIZED
        try:
            relationships = dao.get_learning_relationships(self.user_id)
        except Exception:
            logger.exception("Could not load learning relationships for %s", self.user_id)
            return False
        if not relationships:
            logger.warning("No courses found for %s", self.user_id)
            return False

        self.state = new_state(build_combinations(relationships), self.rng)
        if self.state.status is SelectorStatus.UNINITIALIZED:
            logger.warning("No valid combinations found for %s", self.user_id)
            return False
        return True

    def reset(self):
        self.state = SelectorState()

    def get_next_combination(self):
        combination = draw(self.state)
        if combination is not None:
            logger.debug("Selected combination %s", combination)
        return combination

    def fetch_api_response(self):
        """Query the recommendation service one combination at a time.

        Returns the first non-empty answer together with the combination that
        produced it. Failed or empty calls move on to the next combination.
        """
        if self.client is None:
            raise ValueError("CourseUnitSelector needs a recommendation client to fetch responses")
        if self.state.status is SelectorStatus.UNINITIALIZED:
            self.initialize()

        combination = self.get_next_combination()
        while combination is not None:
            try:
                body = self.client.find_similar_courses(combination)
            except TransientNetwork as e:
                logger.warning("Recommendation error for %s: %s", combination, e)
            else:
                similar = body.get("similar_courses")
                if isinstance(similar, list) and similar:
                    return RecommendationResult(
                        found=True,
                        combination=combination,
                        similar_courses=similar,
                        raw=body,
                    )
                logger.info("No results for combination %s", combination)
            combination = self.get_next_combination()

        logger.warning("No valid results found for any combination of %s", self.user_id)
        return RecommendationResult.no_results()
