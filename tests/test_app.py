from studybits import Config, StudyBits, create_app
from studybits.services.course_cache import CourseCache
from studybits.services.selector import CourseUnitSelector


def _config(**overrides):
    config = Config.as_dict()
    config.update(STUDYBITS_CACHE_PATH=":memory:", RECOMMENDATION_API_URL="http://svc", **overrides)
    return config


def test_create_app_wires_components():
    app = create_app(_config(FETCH_MAX_WORKERS=2), init_remote=False)

    assert isinstance(app, StudyBits)
    assert isinstance(app.cache, CourseCache)
    assert app.cache.max_workers == 2
    assert app.recommendations.base_url == "http://svc"

    selector = app.selector_for("u1")
    assert isinstance(selector, CourseUnitSelector)
    assert selector.client is app.recommendations
    app.close()


def test_config_exposes_uppercase_settings():
    settings = Config.as_dict()

    assert "RECOMMENDATION_TIMEOUT" in settings
    assert "ORPHAN_OWNER_ID" in settings
    assert "as_dict" not in settings


def test_delete_owned_course_uses_configured_orphan_owner(fake_db):
    fake_db.put("courses/c1", {"key": "c1", "dependency": 1, "creator": "u1"})
    fake_db.put("channels/u1", {"courses": ["c1"]})
    app = create_app(_config(ORPHAN_OWNER_ID="caretaker"), init_remote=False)

    app.delete_owned_course("c1", "u1")

    assert fake_db.data("courses/c1")["creator"] == "caretaker"
    app.close()
