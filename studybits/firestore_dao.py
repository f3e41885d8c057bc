"""
Firestore Data Access Object (DAO) layer.

Every remote read and write goes through this module. Functions return plain
dicts (with an 'id' field) or None when the document does not exist; the
cache and selector layers turn those into models.
"""

import logging

from google.api_core import exceptions as gexc
from google.cloud.firestore_v1 import ArrayRemove, ArrayUnion, Increment

from studybits.errors import NotFound
from studybits.firebase_init import get_db
from studybits.firestore_models import LearningRelationship, Question, now_ms

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _doc_to_dict(doc_snapshot):
    """Convert a Firestore DocumentSnapshot to a dict with 'id' field."""
    if not doc_snapshot.exists:
        return None
    d = doc_snapshot.to_dict() or {}
    d['id'] = doc_snapshot.id
    return d


def _query_to_list(query_ref):
    """Run a query and return a list of dicts."""
    return [_doc_to_dict(doc) for doc in query_ref.stream()]


def _update_existing(doc_ref, data, collection, doc_id):
    """Update a document that must already exist. Raises NotFound otherwise."""
    try:
        doc_ref.update(data)
    except gexc.NotFound:
        raise NotFound(collection, doc_id)


# ========================================================================
# Channels  (collection: channels, document id == owner uid)
# ========================================================================

def get_channel(uid):
    """Get a channel by owner UID. Returns dict or None."""
    doc = get_db().collection('channels').document(uid).get()
    return _doc_to_dict(doc)


def create_or_update_channel(uid, display_name, profile_pic_url='', banner_url=''):
    """Create or overwrite the channel profile fields, keeping its course list."""
    get_db().collection('channels').document(uid).set({
        'displayName': display_name,
        'bannerURL': banner_url,
        'profilePicURL': profile_pic_url,
    }, merge=True)


def add_course_to_channel(uid, course_id):
    get_db().collection('channels').document(uid).set(
        {'courses': ArrayUnion([course_id])}, merge=True
    )


def remove_course_from_channel(uid, course_id):
    get_db().collection('channels').document(uid).set(
        {'courses': ArrayRemove([course_id])}, merge=True
    )


# ========================================================================
# Courses  (collection: courses)
# ========================================================================

def get_course(course_id):
    """Get a course by ID. Returns dict or None."""
    doc = get_db().collection('courses').document(course_id).get()
    return _doc_to_dict(doc)


def require_course(course_id):
    """Get a course by ID. Raises NotFound when it does not exist."""
    course = get_course(course_id)
    if course is None:
        raise NotFound('courses', course_id)
    return course


def list_courses(limit=None):
    """Scan the courses collection, optionally capped at `limit` documents."""
    q = get_db().collection('courses')
    if limit is not None:
        q = q.limit(limit)
    return _query_to_list(q)


def create_course(data):
    """Create a new course. Returns the generated doc ID.

    The document key is copied into the `key` field so cached snapshots
    carry their own id.
    """
    data.setdefault('lastModified', now_ms())
    data.setdefault('dependency', 0)
    data['numQuestions'] = 0
    _, doc_ref = get_db().collection('courses').add(data)
    doc_ref.update({'key': doc_ref.id})
    return doc_ref.id


def update_course(course_id, data):
    """Update fields on an existing course and bump its version."""
    data.setdefault('lastModified', now_ms())
    get_db().collection('courses').document(course_id).update(data)


def delete_course(course_id):
    get_db().collection('courses').document(course_id).delete()


def reassign_course_owner(course_id, new_owner):
    update_course(course_id, {'creator': new_owner})


def increment_course_dependency(course_id, amount=1):
    """Atomically add `amount` to the course's learner dependency count.

    Raises NotFound when the course no longer exists.
    """
    _update_existing(
        get_db().collection('courses').document(course_id),
        {'dependency': Increment(amount)},
        'courses', course_id,
    )


# ========================================================================
# Learning relationships  (collection: learning/<uid>/courses)
# ========================================================================

def _learning_courses(uid):
    return get_db().collection('learning').document(uid).collection('courses')


def get_learning_relationships(uid):
    """Get every learning relationship document for a user."""
    return _query_to_list(_learning_courses(uid))


def get_learning_course_ids(uid):
    return [doc.id for doc in _learning_courses(uid).stream()]


def get_learning_relationship(uid, course_id):
    """Get one learning relationship. Returns dict or None."""
    doc = _learning_courses(uid).document(course_id).get()
    return _doc_to_dict(doc)


def create_learning_relationship(uid, course_id):
    """Start studying a whole course with no unit selection."""
    _learning_courses(uid).document(course_id).set({
        'studyingUnits': [],
        'useUnits': False,
    })


def delete_learning_relationship(uid, course_id):
    """Delete a learning relationship. Returns whether it existed beforehand."""
    ref = _learning_courses(uid).document(course_id)
    if not ref.get().exists:
        return False
    ref.delete()
    return True


def set_use_units(uid, course_id, use_units):
    _learning_courses(uid).document(course_id).set({'useUnits': bool(use_units)}, merge=True)


def set_studying_units(uid, course_id, unit_ids):
    _learning_courses(uid).document(course_id).set({'studyingUnits': list(unit_ids)}, merge=True)


def toggle_studying_unit(uid, course_id, current_units, unit_id):
    """Add or remove `unit_id` from the studied units. Returns the new list."""
    new_units = list(current_units)
    if unit_id in new_units:
        new_units.remove(unit_id)
    else:
        new_units.append(unit_id)
    set_studying_units(uid, course_id, new_units)
    return new_units


def fetch_course_interaction(uid, course_id, learning_index):
    """Return (is_studied, use_units, studying_units) for a course.

    `learning_index` is the locally stored list of learning course ids; the
    remote relationship is only read when the course is listed there.
    """
    is_studied = course_id in learning_index
    use_units = False
    studying_units = []
    if is_studied:
        relationship = get_learning_relationship(uid, course_id)
        if relationship:
            use_units = relationship.get('useUnits') is True
            studying_units = list(relationship.get('studyingUnits') or [])
    return is_studied, use_units, studying_units


# ========================================================================
# Accuracy / leaderboard  (collection: learning, field: accuracy)
# ========================================================================

def increment_user_accuracy(uid, amount=1):
    get_db().collection('learning').document(uid).set(
        {'accuracy': Increment(amount)}, merge=True
    )


def get_learners_by_accuracy(limit=None):
    """Get learning documents ordered by accuracy, highest first."""
    q = get_db().collection('learning').order_by('accuracy', direction='DESCENDING')
    if limit is not None:
        q = q.limit(limit)
    return _query_to_list(q)


# ========================================================================
# Units  (collection: courses/<course_id>/units)
# ========================================================================

def _units(course_id):
    return get_db().collection('courses').document(course_id).collection('units')


def get_unit(course_id, unit_id):
    """Get a unit. Returns dict or None."""
    doc = _units(course_id).document(unit_id).get()
    return _doc_to_dict(doc)


def get_units_for_course(course_id):
    """Get all units of a course ordered by 'order'; equal orders keep scan order."""
    units = _query_to_list(_units(course_id))
    return sorted(units, key=lambda u: u.get('order') or 0)


def add_unit(course_id, unit):
    """Store a unit under its own key. Returns the key."""
    data = unit.to_dict()
    data.setdefault('questions', [])
    _units(course_id).document(unit.key).set(data)
    return unit.key


def update_unit(course_id, unit_key, name, description, order):
    _units(course_id).document(unit_key).set({
        'key': unit_key,
        'name': name,
        'description': description,
        'order': order,
    }, merge=True)


def delete_unit(course_id, unit_key):
    """Delete a unit together with the questions it lists."""
    delete_questions_for_unit(course_id, unit_key)
    _units(course_id).document(unit_key).delete()


# ========================================================================
# Questions  (collection: questions)
# ========================================================================

def get_question(question_id):
    """Get a question by ID. Returns dict or None."""
    doc = get_db().collection('questions').document(question_id).get()
    return _doc_to_dict(doc)


def get_questions_for_unit(course_id, unit_id):
    """Get the questions listed by a unit, in unit order. Missing documents are skipped."""
    unit = get_unit(course_id, unit_id)
    if unit is None:
        return []
    questions = []
    for question_id in unit.get('questions') or []:
        question = get_question(question_id)
        if question is None:
            logger.warning("Unit %s/%s lists missing question %s", course_id, unit_id, question_id)
            continue
        question['course'] = course_id
        question['unit'] = unit_id
        questions.append(question)
    return questions


def add_question_to_unit(course_id, unit_id, question):
    """Validate and store a question, link it to its unit and count it on the course.

    Returns the new question ID.
    """
    question.validate()
    unit_ref = _units(course_id).document(unit_id)
    if not unit_ref.get().exists:
        raise NotFound('units', unit_id)

    data = question.to_dict()
    data['course'] = course_id
    data['unit'] = unit_id
    _, question_ref = get_db().collection('questions').add(data)

    unit_ref.update({'questions': ArrayUnion([question_ref.id])})
    get_db().collection('courses').document(course_id).update({
        'numQuestions': Increment(1),
        'lastModified': now_ms(),
    })
    return question_ref.id


def update_question(question_id, question):
    question.validate()
    get_db().collection('questions').document(question_id).update(question.to_dict())


def delete_question_from_unit(course_id, unit_id, question_id):
    unit_ref = _units(course_id).document(unit_id)
    unit = _doc_to_dict(unit_ref.get())
    if unit is None:
        raise NotFound('units', unit_id)

    remaining = [qid for qid in unit.get('questions') or [] if qid != question_id]
    unit_ref.update({'questions': remaining})
    get_db().collection('questions').document(question_id).delete()

    course = get_course(course_id)
    if course and (course.get('numQuestions') or 0) > 0:
        get_db().collection('courses').document(course_id).update({
            'numQuestions': Increment(-1),
            'lastModified': now_ms(),
        })


def delete_questions_for_unit(course_id, unit_id):
    unit = get_unit(course_id, unit_id)
    if unit is None:
        return 0
    question_ids = unit.get('questions') or []
    for question_id in question_ids:
        get_db().collection('questions').document(question_id).delete()
    return len(question_ids)


def delete_questions_for_course(course_id):
    """Delete every question of every unit in a course. Returns the number deleted."""
    deleted = 0
    for unit in get_units_for_course(course_id):
        deleted += delete_questions_for_unit(course_id, unit['id'])
    return deleted


def question_from_doc(data):
    """Build a Question model from a DAO dict."""
    return Question.from_dict(data, data.get('id'))


# ========================================================================
# Question feedback and subscriptions
#   counters:  questions/<id>.{likes,dislikes,views}, courses/<id>.{likes,dislikes,views}
#   per learner: learning/<uid>/courses/<course_id>.{likedQuestions,dislikedQuestions,subscribedCourses}
# ========================================================================

_REACTION_FIELDS = {
    True: ('likes', 'likedQuestions'),
    False: ('dislikes', 'dislikedQuestions'),
}


def _relationship_ref(uid, course_id):
    return _learning_courses(uid).document(course_id), 'learning', f'{uid}/courses/{course_id}'


def get_question_counts(question_id):
    """Return likes, dislikes and views of a question. Zeros when it does not exist."""
    data = get_question(question_id)
    question = Question.from_dict(data or {}, question_id)
    return {'likes': question.likes, 'dislikes': question.dislikes, 'views': question.views}


def get_question_reaction(uid, course_id, question_id):
    """True if the learner liked the question, False if disliked, None otherwise."""
    data = get_learning_relationship(uid, course_id)
    if data is None:
        return None
    return LearningRelationship.from_dict(data, course_id).reaction_to(question_id)


def add_question_reaction(uid, course_id, question_id, is_like):
    """Record a like or dislike for the learner and count it on the question and course.

    The learner's relationship is written first, so a learner who does not
    study the course (NotFound) leaves every counter untouched.
    """
    counter, listed = _REACTION_FIELDS[is_like]
    ref, collection, doc_id = _relationship_ref(uid, course_id)
    _update_existing(ref, {listed: ArrayUnion([question_id])}, collection, doc_id)
    _update_existing(get_db().collection('questions').document(question_id),
                     {counter: Increment(1)}, 'questions', question_id)
    _update_existing(get_db().collection('courses').document(course_id),
                     {counter: Increment(1)}, 'courses', course_id)


def remove_question_reaction(uid, course_id, question_id, is_like):
    counter, listed = _REACTION_FIELDS[is_like]
    ref, collection, doc_id = _relationship_ref(uid, course_id)
    _update_existing(ref, {listed: ArrayRemove([question_id])}, collection, doc_id)
    _update_existing(get_db().collection('questions').document(question_id),
                     {counter: Increment(-1)}, 'questions', question_id)
    _update_existing(get_db().collection('courses').document(course_id),
                     {counter: Increment(-1)}, 'courses', course_id)


def increment_question_views(course_id, question_id):
    _update_existing(get_db().collection('questions').document(question_id),
                     {'views': Increment(1)}, 'questions', question_id)
    _update_existing(get_db().collection('courses').document(course_id),
                     {'views': Increment(1)}, 'courses', course_id)


def is_subscribed(uid, course_id):
    data = get_learning_relationship(uid, course_id)
    if data is None:
        return False
    return LearningRelationship.from_dict(data, course_id).is_subscribed


def set_course_subscription(uid, course_id, subscribed):
    """Subscribe to or unsubscribe from course updates. Requires a learning relationship."""
    ref, collection, doc_id = _relationship_ref(uid, course_id)
    change = ArrayUnion([course_id]) if subscribed else ArrayRemove([course_id])
    _update_existing(ref, {'subscribedCourses': change}, collection, doc_id)
