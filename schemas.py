"""
Database Schemas for the Exams API

Exam documents live in the MongoDB collection "exams". Questions are embedded
in each exam's ``exam`` list and addressed by their position in it.
"""

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from typing import Annotated, Any, Dict, List, Optional

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

EXAM_KEY_FIELDS = ("division", "level", "term", "subject", "year")
MIN_CHOICES = 2


class Question(BaseModel):
    """Multiple-choice question embedded in an exam"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    question: NonEmptyStr = Field(..., description="Question text")
    choices: List[NonEmptyStr] = Field(..., min_length=MIN_CHOICES, description="Answer choices, at least two")
    image: Optional[str] = Field(None, description="Relative URL of an uploaded image")


class ExamKey(BaseModel):
    """The five metadata fields identifying an exam"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    division: NonEmptyStr = Field(..., description="Division, e.g. A")
    level: NonEmptyStr = Field(..., description="Level or grade")
    term: NonEmptyStr = Field(..., description="Term, e.g. T1")
    subject: NonEmptyStr = Field(..., description="Subject name, e.g. Math")
    year: NonEmptyStr = Field(..., description="Exam year")

    def key_filter(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in EXAM_KEY_FIELDS}


class Exam(ExamKey):
    """Exam document (collection: exams)"""
    exam: List[Question] = Field(..., min_length=1, description="Ordered list of questions")


class ExamUpdate(BaseModel):
    """Partial exam replacement; only the fields sent are written"""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    division: Optional[NonEmptyStr] = None
    level: Optional[NonEmptyStr] = None
    term: Optional[NonEmptyStr] = None
    subject: Optional[NonEmptyStr] = None
    year: Optional[NonEmptyStr] = None
    exam: Optional[List[Question]] = Field(None, min_length=1)


class AddQuestion(ExamKey):
    question: NonEmptyStr
    choices: List[NonEmptyStr] = Field(..., min_length=MIN_CHOICES)
    image: Optional[str] = None

    def to_question(self) -> Question:
        return Question(question=self.question, choices=self.choices, image=self.image)


class RemoveQuestion(ExamKey):
    index: int = Field(..., description="Zero-based position of the question to remove")


def is_blank(value: Any) -> bool:
    """True for values that count as missing: None, blank strings, empty lists."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def missing_fields(payload: Dict[str, Any], fields) -> List[str]:
    return [name for name in fields if is_blank(payload.get(name))]


def parse_index(value: Any) -> Optional[int]:
    """Coerce a question index sent as a number or digit string; None if invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def to_str_id(doc):
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def describe_validation_error(exc) -> str:
    """Flatten a pydantic ValidationError into ``loc: msg`` pairs."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)
