import logging

from studybits import firestore_dao as dao
from studybits.firestore_models import LeaderboardEntry

logger = logging.getLogger(__name__)


def is_correct_selection(question, selected_keys):
    """A selection is correct when it picks exactly the answers marked correct.

    Questions stored without any correct answer can never be answered
    correctly.
    """
    correct = question.correct_answer_keys()
    return bool(correct) and set(selected_keys) == correct


def record_answer(uid, question, selected_keys):
    """Check a learner's selection and award a point when it is correct.

    Returns whether the selection was correct.
    """
    correct = is_correct_selection(question, selected_keys)
    if correct:
        dao.increment_user_accuracy(uid)
    return correct


def fetch_leaderboard(limit=None):
    """Return learners ordered by points, highest first.

    Learners without a channel display name are left out.
    """
    entries = []
    for learner in dao.get_learners_by_accuracy(limit):
        channel = dao.get_channel(learner['id'])
        name = (channel or {}).get('displayName')
        if not name:
            continue
        entries.append(LeaderboardEntry(name=name, points=int(learner.get('accuracy') or 0)))
    return entries
