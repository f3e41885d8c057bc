"""
Local mirror of remote course documents.

Course snapshots live in the local store under ``course_<id>``. Two named
indexes record why a snapshot is kept:

  - ``userCourses``      courses the user owns (teaches) through their channel
  - ``learningCourses``  courses the user is learning

A snapshot exists only while its id is in at least one index. Ids outside
both indexes are never written, and every index rebuild sweeps out
snapshots that nothing lists any more. Snapshots are refreshed only when
the remote ``lastModified`` is strictly newer, so a sync never downgrades
a cached entry.
"""

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from studybits import firestore_dao as dao
from studybits.errors import Inconsistent, NotFound
from studybits.firestore_models import Course

logger = logging.getLogger(__name__)

OWNED_INDEX = 'userCourses'
LEARNING_INDEX = 'learningCourses'
CACHE_PREFIX = 'course_'
LOCK_STRIPES = 64


class IndexKind(enum.Enum):
    OWNED = OWNED_INDEX
    LEARNING = LEARNING_INDEX

    @property
    def index_key(self):
        return self.value


def cache_key(course_id):
    return f'{CACHE_PREFIX}{course_id}'


def is_retryable_error(exception: BaseException) -> bool:
    return not isinstance(exception, (NotFound, ValueError, TypeError))


class CourseCache:
    """Read-mostly access to course data backed by a LocalStore."""

    def __init__(self, store, max_workers=4, retry_attempts=3, retry_wait=None):
        self.store = store
        self.max_workers = max(1, max_workers)
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._decrement_dependency = retry(
            stop=stop_after_attempt(max(1, retry_attempts)),
            wait=retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=8),
            retry=retry_if_exception(is_retryable_error),
            reraise=True,
        )(self._apply_decrement)

    @classmethod
    def from_config(cls, store, app_config):
        return cls(
            store,
            max_workers=int(app_config.get('FETCH_MAX_WORKERS', 4)),
            retry_attempts=int(app_config.get('DEPENDENCY_RETRY_ATTEMPTS', 3)),
        )

    def _apply_decrement(self, course_id):
        dao.increment_course_dependency(course_id, -1)

    def _lock_for(self, course_id):
        return self._locks[hash(course_id) % len(self._locks)]

    # -- local reads / writes ----------------------------------------------

    def load_cached(self, course_id):
        """Return the cached Course, or None. Never touches the network."""
        data = self.store.get_json(cache_key(course_id))
        if not isinstance(data, dict):
            return None
        return Course.from_dict(data, course_id)

    def _write(self, course):
        self.store.set_json(cache_key(course.key), course.to_dict())

    def get_index(self, kind):
        return self.store.get_index(kind.index_key)

    def _add_to_index(self, kind, course_id):
        ids = self.get_index(kind)
        if course_id not in ids:
            ids.append(course_id)
            self.store.set_index(kind.index_key, ids)
        return ids

    def _remove_from_index(self, kind, course_id):
        ids = self.get_index(kind)
        if course_id in ids:
            ids = [cid for cid in ids if cid != course_id]
            self.store.set_index(kind.index_key, ids)
            logger.info("Removed course %s from %s", course_id, kind.index_key)
        return ids

    # -- remote fetches ------------------------------------------------------

    def _fetch_remote(self, course_id):
        """Fetch a course from the remote store. Raises NotFound."""
        data = dao.require_course(course_id)
        return Course.from_dict(data, data.get('id') or course_id)

    def sync_course(self, course_id):
        """Refresh the cached snapshot when the remote copy is newer.

        Returns True when the local entry was written. A missing remote
        document or a failed read is logged and leaves the cache untouched.
        A course that neither index lists is never cached.
        """
        with self._lock_for(course_id):
            try:
                remote = self._fetch_remote(course_id)
            except NotFound as e:
                logger.warning("Cannot sync course: %s", e)
                return False
            except Exception:
                logger.exception("Error syncing course %s", course_id)
                return False

            if not self.is_indexed(course_id):
                logger.debug("Course %s is in no index; not caching it", course_id)
                self._evict(course_id)
                return False

            cached = self.load_cached(course_id)
            if cached is not None and remote.last_modified <= cached.last_modified:
                logger.debug("Course %s is up to date", course_id)
                return False

            self._write(remote)
            logger.info("Updated cached course %s", course_id)
            return True

    def save_course(self, course_id):
        """Fetch a course and store it if an index lists it. Returns the Course or None."""
        try:
            course = self._fetch_remote(course_id)
        except NotFound as e:
            logger.warning("Cannot save course: %s", e)
            return None
        except Exception:
            logger.exception("Error saving course %s locally", course_id)
            return None
        with self._lock_for(course_id):
            if self.is_indexed(course_id):
                self._write(course)
        return course

    def get_course(self, course_id):
        """Cached course if present, otherwise fetched.

        Courses that are in neither index (search results, shared links)
        are returned without being cached.
        """
        cached = self.load_cached(course_id)
        if cached is not None:
            return cached
        return self.save_course(course_id)

    # -- indexes -------------------------------------------------------------

    def _remote_ids(self, user_id, kind):
        if kind is IndexKind.OWNED:
            channel = dao.get_channel(user_id)
            if channel is None:
                logger.info("No channel found for %s", user_id)
                return []
            return [cid for cid in channel.get('courses') or [] if isinstance(cid, str)]
        return dao.get_learning_course_ids(user_id)

    def fetch_and_index_by_relationship(self, user_id, kind):
        """Cache every course the user owns or learns and persist the index.

        Uncached courses are fetched concurrently. A course that cannot be
        fetched is left out of the index; the others are still indexed.
        The index is written once, after all fetches have finished.
        Returns the set of indexed course ids.
        """
        try:
            remote_ids = list(dict.fromkeys(self._remote_ids(user_id, kind)))
        except Exception:
            logger.exception("Error listing %s for %s", kind.index_key, user_id)
            return set(self.get_index(kind))

        missing = [cid for cid in remote_ids if self.load_cached(cid) is None]
        failed = set()
        if missing:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(missing))) as executor:
                futures = {executor.submit(self._fetch_remote, cid): cid for cid in missing}
                for future in as_completed(futures):
                    cid = futures[future]
                    try:
                        course = future.result()
                    except NotFound:
                        logger.warning("%s", Inconsistent(kind.index_key, cid))
                        failed.add(cid)
                        continue
                    except Exception:
                        logger.exception("Error fetching course %s", cid)
                        failed.add(cid)
                        continue
                    with self._lock_for(cid):
                        self._write(course)

        indexed = [cid for cid in remote_ids if cid not in failed]
        self._replace_index(kind, indexed)
        return set(indexed)

    def _replace_index(self, kind, ids):
        self.store.set_index(kind.index_key, ids)
        logger.info("Saved %s index with %d courses", kind.index_key, len(ids))
        self.sweep_unreferenced()

    def sync_owned_index(self, user_id):
        """Rebuild the owned index from the channel without fetching courses."""
        return self._sync_index(user_id, IndexKind.OWNED)

    def sync_learning_index(self, user_id):
        """Rebuild the learning index from learning relationships without fetching courses."""
        return self._sync_index(user_id, IndexKind.LEARNING)

    def _sync_index(self, user_id, kind):
        try:
            ids = list(dict.fromkeys(self._remote_ids(user_id, kind)))
        except Exception:
            logger.exception("Error syncing %s for %s", kind.index_key, user_id)
            return self.get_index(kind)
        self._replace_index(kind, ids)
        return ids

    # -- eviction ------------------------------------------------------------

    def is_indexed(self, course_id):
        return course_id in self.get_index(IndexKind.OWNED) or course_id in self.get_index(IndexKind.LEARNING)

    def evict_if_unreferenced(self, course_id):
        """Delete the cached course unless an index still lists it. Returns True if evicted."""
        if self.is_indexed(course_id):
            return False
        with self._lock_for(course_id):
            return self._evict(course_id)

    def _evict(self, course_id):
        removed = self.store.remove_item(cache_key(course_id))
        if removed:
            logger.info("Deleted course %s from local storage", course_id)
        return removed

    def sweep_unreferenced(self):
        """Evict every cached course that neither index lists. Returns the evicted ids."""
        referenced = set(self.get_index(IndexKind.OWNED)) | set(self.get_index(IndexKind.LEARNING))
        evicted = []
        for key in self.store.keys(CACHE_PREFIX):
            course_id = key[len(CACHE_PREFIX):]
            if course_id not in referenced and self.evict_if_unreferenced(course_id):
                evicted.append(course_id)
        return evicted

    # -- relationship changes ------------------------------------------------

    def add_to_learning(self, course_id, user_id):
        """Start learning a course. Returns the updated learning index.

        Raises NotFound, before anything is written, when the course does
        not exist. The dependency count only grows when a new relationship
        is created.
        """
        course = Course.from_dict(dao.require_course(course_id), course_id)
        if dao.get_learning_relationship(user_id, course_id) is None:
            dao.create_learning_relationship(user_id, course_id)
            dao.increment_course_dependency(course_id, 1)
            course.dependency += 1

        ids = self._add_to_index(IndexKind.LEARNING, course_id)
        with self._lock_for(course_id):
            self._write(course)
        return ids

    def remove_from_learning(self, course_id, user_id):
        """Stop learning a course.

        The relationship is deleted before the dependency count is lowered,
        and the count is only lowered when this call deleted it, so repeating
        the call never decrements twice. Returns False when the remote delete
        failed; the local index is then left alone.
        """
        try:
            existed = dao.delete_learning_relationship(user_id, course_id)
        except Exception:
            logger.exception("Error deleting learning relationship %s/%s", user_id, course_id)
            return False

        if existed:
            try:
                self._decrement_dependency(course_id)
            except NotFound:
                logger.warning("Course %s no longer exists; dependency not decremented", course_id)
            except Exception:
                logger.exception("Dependency decrement failed for course %s", course_id)
        else:
            logger.info("Learning relationship %s/%s already removed", user_id, course_id)

        self._remove_from_index(IndexKind.LEARNING, course_id)
        self.evict_if_unreferenced(course_id)
        return True

    def remove_from_owned(self, course_id, user_id):
        """Drop a course from the user's channel and owned index. Learner counts are untouched."""
        try:
            dao.remove_course_from_channel(user_id, course_id)
        except Exception:
            logger.exception("Error removing course %s from channel %s", course_id, user_id)
            return False
        self._remove_from_index(IndexKind.OWNED, course_id)
        self.evict_if_unreferenced(course_id)
        return True

    # -- authoring -----------------------------------------------------------

    def create_course(self, user_id, fields):
        """Create a course owned by `user_id`, list it on the channel and cache it."""
        data = dict(fields)
        data['creator'] = user_id
        course_id = dao.create_course(data)
        dao.add_course_to_channel(user_id, course_id)

        data['key'] = course_id
        self._add_to_index(IndexKind.OWNED, course_id)
        self._write(Course.from_dict(data, course_id))
        return course_id

    def update_course(self, course_id, fields):
        """Write-through update: remote first, then the cached snapshot if there is one."""
        data = dict(fields)
        dao.update_course(course_id, data)

        with self._lock_for(course_id):
            cached = self.load_cached(course_id)
            if cached is None:
                return
            merged = cached.to_dict()
            merged.update(data)
            self._write(Course.from_dict(merged, course_id))

    def delete_owned_course(self, course_id, user_id, orphan_owner):
        """Delete a course its owner no longer wants.

        A course that learners still depend on is handed to `orphan_owner`
        instead of being deleted.
        """
        remote = dao.get_course(course_id)
        if remote is not None and Course.from_dict(remote, course_id).is_referenced_by_learners():
            dao.reassign_course_owner(course_id, orphan_owner)
            logger.info("Course %s still has learners; reassigned to %s", course_id, orphan_owner)
        elif remote is not None:
            for unit in dao.get_units_for_course(course_id):
                dao.delete_unit(course_id, unit['id'])
            dao.delete_course(course_id)
            logger.info("Deleted course %s", course_id)
        return self.remove_from_owned(course_id, user_id)
