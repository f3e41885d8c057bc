from pathlib import Path

from studybits.local_store import LocalStore


def test_get_set_remove(store):
    assert store.get_item("missing") is None
    store.set_item("k", "v1")
    store.set_item("k", "v2")
    assert store.get_item("k") == "v2"
    assert store.remove_item("k") is True
    assert store.remove_item("k") is False
    assert store.get_item("k") is None


def test_json_values_and_corruption(store):
    store.set_json("course_a", {"name": "A", "lastModified": 3})
    assert store.get_json("course_a") == {"name": "A", "lastModified": 3}

    store.set_item("course_b", "{broken")
    assert store.get_json("course_b") is None


def test_index_reads_tolerate_bad_shapes(store):
    assert store.get_index("userCourses") == []
    store.set_item("userCourses", '{"a": 1}')
    assert store.get_index("userCourses") == []
    store.set_item("userCourses", '["a", 3, "b"]')
    assert store.get_index("userCourses") == ["a", "b"]


def test_set_index_deduplicates_in_order(store):
    store.set_index("learningCourses", ["b", "a", "b", "c"])
    assert store.get_index("learningCourses") == ["b", "a", "c"]


def test_keys_filters_by_prefix(store):
    store.set_item("course_x", "{}")
    store.set_item("course_a", "{}")
    store.set_item("userCourses", "[]")
    assert store.keys("course_") == ["course_a", "course_x"]


def test_persists_across_instances(tmp_path: Path):
    path = tmp_path / "nested" / "cache.db"
    first = LocalStore(path)
    first.set_index("userCourses", ["c1"])
    first.close()

    second = LocalStore(str(path))
    assert second.get_index("userCourses") == ["c1"]
    second.close()
