import random
from collections import Counter

import pytest

from studybits.errors import TransientNetwork
from studybits.firestore_models import Combination
from studybits.services.selector import (
    CourseUnitSelector,
    SelectorStatus,
    build_combinations,
    draw,
    new_state,
    shuffle_in_place,
)


class ScriptedClient:
    """Plays back one response (or exception) per call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def find_similar_courses(self, combination):
        self.calls.append(combination)
        response = self.responses.pop(0) if self.responses else {}
        if isinstance(response, Exception):
            raise response
        return response


def _seed_learning(fake_db):
    fake_db.put("learning/u1/courses/courseA", {"studyingUnits": ["unit1", "unit2"], "useUnits": True})
    fake_db.put("learning/u1/courses/courseB", {"studyingUnits": ["ignored"], "useUnits": False})


EXPECTED = {
    Combination("courseA", "unit1"),
    Combination("courseA", "unit2"),
    Combination("courseB", ""),
}


def test_build_combinations_collapses_whole_course():
    relationships = [
        {"id": "courseA", "studyingUnits": ["unit1", "unit2", "unit1"], "useUnits": True},
        {"id": "courseB", "studyingUnits": [], "useUnits": False},
        {"id": "courseC", "studyingUnits": "unit9", "useUnits": True},
        {"id": "courseD", "studyingUnits": [], "useUnits": True},
    ]

    combinations = build_combinations(relationships)

    assert set(combinations) == EXPECTED
    assert len(combinations) == 3


def test_initialize_builds_pool_from_learning(fake_db, rng):
    _seed_learning(fake_db)
    selector = CourseUnitSelector("u1", rng=rng)

    assert selector.initialize() is True
    assert selector.status is SelectorStatus.INITIALIZED
    assert selector.remaining_count == 3


def test_each_combination_drawn_exactly_once(fake_db, rng):
    _seed_learning(fake_db)
    selector = CourseUnitSelector("u1", rng=rng)
    selector.initialize()

    drawn = [selector.get_next_combination() for _ in range(3)]

    assert set(drawn) == EXPECTED
    assert selector.get_next_combination() is None
    assert selector.status is SelectorStatus.EXHAUSTED
    assert selector.used_combinations == EXPECTED


def test_initialize_is_noop_until_reset(fake_db, rng):
    _seed_learning(fake_db)
    selector = CourseUnitSelector("u1", rng=rng)
    selector.initialize()
    selector.get_next_combination()

    selector.initialize()
    assert selector.remaining_count == 2

    selector.reset()
    assert selector.status is SelectorStatus.UNINITIALIZED
    assert selector.initialize() is True
    assert selector.remaining_count == 3


def test_exhausted_selector_does_not_reinitialize(fake_db, rng):
    _seed_learning(fake_db)
    selector = CourseUnitSelector("u1", rng=rng)
    selector.initialize()
    while selector.get_next_combination() is not None:
        pass

    assert selector.initialize() is False
    assert selector.get_next_combination() is None


def test_no_relationships_stays_uninitialized(fake_db, rng):
    selector = CourseUnitSelector("nobody", client=ScriptedClient(), rng=rng)

    assert selector.initialize() is False
    assert selector.status is SelectorStatus.UNINITIALIZED
    assert selector.get_next_combination() is None
    result = selector.fetch_api_response()
    assert result.found is False
    assert selector.client.calls == []


def test_first_draw_is_not_biased():
    combinations = [Combination(f"c{i}", "") for i in range(4)]
    rng = random.Random(7)
    firsts = Counter()
    trials = 4000

    for _ in range(trials):
        state = new_state(combinations, rng)
        firsts[draw(state)] += 1

    assert set(firsts) == set(combinations)
    for count in firsts.values():
        assert count / trials < 0.32


def test_shuffle_reaches_every_permutation_evenly():
    rng = random.Random(11)
    seen = Counter()
    trials = 6000
    for _ in range(trials):
        items = [1, 2, 3]
        shuffle_in_place(items, rng)
        seen[tuple(items)] += 1

    assert len(seen) == 6
    for count in seen.values():
        assert abs(count / trials - 1 / 6) < 0.03


def test_fetch_returns_third_result_after_two_failures(fake_db, rng):
    _seed_learning(fake_db)
    client = ScriptedClient(
        TransientNetwork("boom"),
        TransientNetwork("boom again"),
        {"similar_courses": [{"id": "q42"}]},
    )
    selector = CourseUnitSelector("u1", client=client, rng=rng)

    result = selector.fetch_api_response()

    assert result.found is True
    assert result.similar_courses == [{"id": "q42"}]
    assert result.combination == client.calls[2]
    assert len(client.calls) == 3
    assert len(set(client.calls)) == 3


def test_fetch_skips_empty_results(fake_db, rng):
    _seed_learning(fake_db)
    client = ScriptedClient({"similar_courses": []}, {"unexpected": True}, {"similar_courses": ["x"]})
    selector = CourseUnitSelector("u1", client=client, rng=rng)

    result = selector.fetch_api_response()

    assert result.found is True
    assert result.raw == {"similar_courses": ["x"]}


def test_fetch_reports_no_results_when_all_fail(fake_db, rng):
    _seed_learning(fake_db)
    client = ScriptedClient(TransientNetwork("a"), {"similar_courses": []}, TransientNetwork("c"))
    selector = CourseUnitSelector("u1", client=client, rng=rng)

    result = selector.fetch_api_response()

    assert result.found is False
    assert result.combination is None
    assert "No valid results" in result.message
    assert len(client.calls) == 3
    assert selector.fetch_api_response().found is False
    assert len(client.calls) == 3


def test_fetch_continues_from_remaining_pool(fake_db, rng):
    _seed_learning(fake_db)
    client = ScriptedClient({"similar_courses": [1]}, {"similar_courses": [2]})
    selector = CourseUnitSelector("u1", client=client, rng=rng)

    first = selector.fetch_api_response()
    second = selector.fetch_api_response()

    assert first.combination != second.combination
    assert selector.remaining_count == 1


def test_fetch_without_client_is_an_error(fake_db, rng):
    with pytest.raises(ValueError):
        CourseUnitSelector("u1", rng=rng).fetch_api_response()


def test_selectors_do_not_share_state(fake_db):
    _seed_learning(fake_db)
    first = CourseUnitSelector("u1", rng=random.Random(1))
    second = CourseUnitSelector("u1", rng=random.Random(2))
    first.initialize()
    second.initialize()

    first.get_next_combination()

    assert first.remaining_count == 2
    assert second.remaining_count == 3
