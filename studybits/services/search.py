import logging

from studybits import firestore_dao as dao

logger = logging.getLogger(__name__)

NAME_MATCH_SCORE = 2
DESCRIPTION_MATCH_SCORE = 1


def score_course(course, term):
    """Score a course dict against a lower-cased search term."""
    score = 0
    if term in (course.get('name') or '').lower():
        score += NAME_MATCH_SCORE
    if term in (course.get('description') or '').lower():
        score += DESCRIPTION_MATCH_SCORE
    return score


def search_courses(query, limit=10):
    """Return ids of courses matching `query`, best match first.

    Courses with equal scores keep the order the collection scan returned.
    Errors are logged and produce an empty result.
    """
    term = (query or '').strip().lower()
    if not term:
        return []
    try:
        courses = dao.list_courses()
    except Exception:
        logger.exception("Error searching courses for %r", query)
        return []

    scored = []
    for course in courses:
        score = score_course(course, term)
        if score > 0:
            scored.append((score, course.get('key') or course['id']))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [course_id for _, course_id in scored[:limit]]


def trim_text(text, max_length):
    """Shorten text to at most `max_length` characters, cutting at a word boundary."""
    if not text:
        return ''
    if len(text) <= max_length:
        return text
    trimmed = text[:max(0, max_length - 2)]
    last_space = trimmed.rfind(' ')
    if last_space != -1:
        trimmed = trimmed[:last_space]
    return trimmed + '...'
