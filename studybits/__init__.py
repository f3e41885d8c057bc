from studybits.config import Config


class StudyBits:
    """Wired-up cache, local store and recommendation client for one device/user session."""

    def __init__(self, store, cache, recommendations, config):
        self.store = store
        self.cache = cache
        self.recommendations = recommendations
        self.config = config

    def selector_for(self, user_id, rng=None):
        from studybits.services.selector import CourseUnitSelector
        return CourseUnitSelector(user_id, client=self.recommendations, rng=rng)

    def delete_owned_course(self, course_id, user_id):
        return self.cache.delete_owned_course(course_id, user_id, self.config.get('ORPHAN_OWNER_ID', Config.ORPHAN_OWNER_ID))

    def close(self):
        self.store.close()


def create_app(config_class=Config, init_remote=True):
    config = config_class if isinstance(config_class, dict) else config_class.as_dict()

    if init_remote:
        from studybits.firebase_init import init_firebase
        init_firebase(config)

    from studybits.local_store import LocalStore
    from studybits.services.course_cache import CourseCache
    from studybits.services.recommendation import RecommendationClient

    store = LocalStore(config.get('STUDYBITS_CACHE_PATH', ':memory:'))
    cache = CourseCache.from_config(store, config)
    recommendations = RecommendationClient.from_config(config)
    return StudyBits(store, cache, recommendations, config)
