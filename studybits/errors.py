"""Exception types shared by the cache, selector and data-access layers."""


class StudyBitsError(Exception):
    """Base class for library errors."""


class NotFound(StudyBitsError):
    """A remote document does not exist."""

    def __init__(self, collection, doc_id):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class TransientNetwork(StudyBitsError):
    """A remote call failed; the caller may move on or try again later."""


class Inconsistent(StudyBitsError):
    """A local index references a course that exists neither locally nor remotely."""

    def __init__(self, index_key, course_id):
        super().__init__(f"{index_key} references missing course {course_id}")
        self.index_key = index_key
        self.course_id = course_id


class InvalidDocument(StudyBitsError):
    """A document about to be written violates its invariants."""
