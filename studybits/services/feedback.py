"""
Learner feedback on questions: likes, dislikes, views and course subscriptions.

A learner holds at most one reaction per question. Counters on the question
and its course move together with the learner's liked/disliked lists, so a
counter is only decremented for a reaction the learner actually recorded.
"""

import logging

from studybits import firestore_dao as dao

logger = logging.getLogger(__name__)


def react_to_question(uid, course_id, question_id, is_like):
    """Like (`is_like=True`) or dislike a question.

    Switching from a like to a dislike (or back) removes the earlier
    reaction first; repeating the current reaction changes nothing.
    Returns the learner's reaction afterwards.
    """
    current = dao.get_question_reaction(uid, course_id, question_id)
    if current is is_like:
        return current
    if current is not None:
        dao.remove_question_reaction(uid, course_id, question_id, current)
    dao.add_question_reaction(uid, course_id, question_id, is_like)
    logger.info("%s %s question %s", uid, "liked" if is_like else "disliked", question_id)
    return is_like


def clear_reaction(uid, course_id, question_id):
    """Remove the learner's reaction, if any. Returns whether one was removed."""
    current = dao.get_question_reaction(uid, course_id, question_id)
    if current is None:
        return False
    dao.remove_question_reaction(uid, course_id, question_id, current)
    return True


def toggle_reaction(uid, course_id, question_id, is_like):
    """Tapping the active reaction again clears it. Returns the reaction afterwards."""
    if dao.get_question_reaction(uid, course_id, question_id) is is_like:
        clear_reaction(uid, course_id, question_id)
        return None
    return react_to_question(uid, course_id, question_id, is_like)


def record_view(course_id, question_id):
    dao.increment_question_views(course_id, question_id)


def toggle_subscription(uid, course_id):
    """Flip the learner's subscription to a course. Returns the new state."""
    subscribed = not dao.is_subscribed(uid, course_id)
    dao.set_course_subscription(uid, course_id, subscribed)
    return subscribed
