"""
Firestore document models using Python dataclasses.

Each model mirrors one remote document shape and includes:
  - A `to_dict()` instance method producing the stored (camelCase) fields
  - A `from_dict(data, doc_id)` classmethod for deserialization
  - Sensible defaults for every field, so partially written documents load

Cached course snapshots go through the same `to_dict()` / `from_dict()` pair,
which keeps every value JSON serialisable (timestamps are integer epoch
milliseconds, as written by the mobile clients).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from studybits.errors import InvalidDocument


WHOLE_COURSE = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_ms() -> int:
    return int(time.time() * 1000)


def _as_int(value, default: int = 0) -> int:
    """Coerce a stored number to int. Firestore may hand back floats."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return default
    return default


def _as_str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


# ===========================================================================
# 1. Course
# ===========================================================================

@dataclass
class Course:
    key: str = ""
    name: str = ""
    description: str = ""
    pic_url: str = ""
    creator: str = ""
    last_modified: int = 0
    dependency: int = 0
    num_questions: int = 0
    likes: int = 0
    dislikes: int = 0
    views: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "picUrl": self.pic_url,
            "creator": self.creator,
            "lastModified": self.last_modified,
            "dependency": self.dependency,
            "numQuestions": self.num_questions,
            "likes": self.likes,
            "dislikes": self.dislikes,
            "views": self.views,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Course:
        return cls(
            key=data.get("key") or doc_id or "",
            name=data.get("name") or "",
            description=data.get("description") or "",
            pic_url=data.get("picUrl") or "",
            creator=data.get("creator") or "",
            last_modified=_as_int(data.get("lastModified")),
            # Older clients decremented without a floor.
            dependency=max(0, _as_int(data.get("dependency"))),
            num_questions=_as_int(data.get("numQuestions")),
            likes=_as_int(data.get("likes")),
            dislikes=_as_int(data.get("dislikes")),
            views=_as_int(data.get("views")),
        )

    def is_referenced_by_learners(self) -> bool:
        return self.dependency > 0


# ===========================================================================
# 2. Unit
# ===========================================================================

@dataclass
class Unit:
    key: str = ""
    name: str = ""
    description: str = ""
    order: int = 0
    questions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "questions": list(self.questions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Unit:
        return cls(
            key=data.get("key") or doc_id or "",
            name=data.get("name") or "",
            description=data.get("description") or "",
            order=_as_int(data.get("order")),
            questions=_as_str_list(data.get("questions")),
        )


def sort_units(units: List[Unit]) -> List[Unit]:
    """Order units for display. `sorted` is stable, so equal orders keep insertion order."""
    return sorted(units, key=lambda unit: unit.order)


# ===========================================================================
# 3. Hint / Answer / Question
# ===========================================================================

@dataclass
class Hint:
    key: str = ""
    title: str = ""
    content: str = ""
    image: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "content": self.content,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Hint:
        return cls(
            key=data.get("key") or "",
            title=data.get("title") or "",
            content=data.get("content") or "",
            image=data.get("image") or "",
        )

    def is_valid(self) -> bool:
        return bool(self.title and self.content) or bool(self.image)


@dataclass
class Answer:
    key: str = ""
    content: str = ""
    answer: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "content": self.content,
            "answer": self.answer,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Answer:
        return cls(
            key=data.get("key") or "",
            content=data.get("content") or "",
            answer=data.get("answer") is True,
        )


@dataclass
class Question:
    id: Optional[str] = None
    question: str = ""
    hints: List[Hint] = field(default_factory=list)
    answers: List[Answer] = field(default_factory=list)
    course: str = ""
    unit: str = ""
    likes: int = 0
    dislikes: int = 0
    views: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "hints": [hint.to_dict() for hint in self.hints],
            "answers": [answer.to_dict() for answer in self.answers],
            "course": self.course,
            "unit": self.unit,
            "likes": self.likes,
            "dislikes": self.dislikes,
            "views": self.views,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Question:
        hints = data.get("hints") if isinstance(data.get("hints"), list) else []
        answers = data.get("answers") if isinstance(data.get("answers"), list) else []
        return cls(
            id=doc_id,
            question=data.get("question") or "",
            hints=[Hint.from_dict(h) for h in hints if isinstance(h, dict)],
            answers=[Answer.from_dict(a) for a in answers if isinstance(a, dict)],
            course=data.get("course") or "",
            unit=data.get("unit") or "",
            likes=_as_int(data.get("likes")),
            dislikes=_as_int(data.get("dislikes")),
            views=_as_int(data.get("views")),
        )

    def has_correct_answer(self) -> bool:
        return any(answer.answer for answer in self.answers)

    def correct_answer_keys(self) -> set:
        return {answer.key for answer in self.answers if answer.answer}

    def validate(self) -> None:
        """Raise InvalidDocument unless the question is safe to store.

        Reads never call this; documents written by older clients may be
        malformed and are still loaded as-is.
        """
        if not self.question.strip():
            raise InvalidDocument("question text is empty")
        if not self.answers:
            raise InvalidDocument("question has no answers")
        if not self.has_correct_answer():
            raise InvalidDocument("question has no correct answer")
        for index, hint in enumerate(self.hints):
            if not hint.is_valid():
                raise InvalidDocument(f"hint {index} needs a title and content, or an image")


# ===========================================================================
# 4. Channel
# ===========================================================================

@dataclass
class Channel:
    id: Optional[str] = None
    display_name: str = ""
    banner_url: str = ""
    profile_pic_url: str = ""
    courses: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayName": self.display_name,
            "bannerURL": self.banner_url,
            "profilePicURL": self.profile_pic_url,
            "courses": list(self.courses),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Channel:
        return cls(
            id=doc_id,
            display_name=data.get("displayName") or "",
            banner_url=data.get("bannerURL") or "",
            profile_pic_url=data.get("profilePicURL") or "",
            courses=_as_str_list(data.get("courses")),
        )


# ===========================================================================
# 5. LearningRelationship  (learning/<uid>/courses/<course_id>)
# ===========================================================================

@dataclass
class LearningRelationship:
    course_id: str = ""
    studying_units: List[str] = field(default_factory=list)
    use_units: bool = False
    liked_questions: List[str] = field(default_factory=list)
    disliked_questions: List[str] = field(default_factory=list)
    subscribed_courses: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studyingUnits": list(self.studying_units),
            "useUnits": self.use_units,
            "likedQuestions": list(self.liked_questions),
            "dislikedQuestions": list(self.disliked_questions),
            "subscribedCourses": list(self.subscribed_courses),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> LearningRelationship:
        return cls(
            course_id=doc_id or data.get("course") or "",
            studying_units=_as_str_list(data.get("studyingUnits")),
            use_units=data.get("useUnits") is True,
            liked_questions=_as_str_list(data.get("likedQuestions")),
            disliked_questions=_as_str_list(data.get("dislikedQuestions")),
            subscribed_courses=_as_str_list(data.get("subscribedCourses")),
        )

    def reaction_to(self, question_id: str) -> Optional[bool]:
        """True if the learner liked the question, False if disliked, None if neither."""
        if question_id in self.liked_questions:
            return True
        if question_id in self.disliked_questions:
            return False
        return None

    @property
    def is_subscribed(self) -> bool:
        return self.course_id in self.subscribed_courses


# ===========================================================================
# 6. Combination / LeaderboardEntry (not stored)
# ===========================================================================

@dataclass(frozen=True)
class Combination:
    course_id: str
    unit_id: str = WHOLE_COURSE

    @property
    def is_whole_course(self) -> bool:
        return self.unit_id == WHOLE_COURSE

    def to_payload(self) -> Dict[str, str]:
        return {"course_id": self.course_id, "unit_id": self.unit_id}

    def __str__(self) -> str:
        return f"{self.course_id}:{self.unit_id}"


@dataclass
class LeaderboardEntry:
    name: str
    points: int

