"""Models for the word catalog and quizzes."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vocasync.models.sync_models import QuizResultRecord, WordId


@dataclass(frozen=True)
class WordCatalogEntry:
    """A word with its meaning as served by the catalog endpoint."""
    id: WordId
    word: str
    meaning: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "word": self.word, "meaning": self.meaning}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordCatalogEntry":
        return cls(id=data["id"], word=data["word"], meaning=data["meaning"])


@dataclass
class CacheEnvelope:
    """Cached catalog plus the time it was fetched (epoch seconds)."""
    payload: List[WordCatalogEntry]
    fetched_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        """A payload is stale once ``ttl`` seconds have passed since the fetch."""
        return now - self.fetched_at < ttl


@dataclass
class QuizQuestion:
    """A multiple choice question, remote or locally generated."""
    question_id: WordId
    correct_word: str
    choices: List[str]
    correct_meaning: Optional[str] = None

    @property
    def answer(self) -> str:
        """The choice that counts as correct."""
        return self.correct_meaning if self.correct_meaning is not None else self.correct_word

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "questionId": self.question_id,
            "correctWord": self.correct_word,
            "choices": list(self.choices),
        }
        if self.correct_meaning is not None:
            data["correctMeaning"] = self.correct_meaning
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            question_id=data["questionId"],
            correct_word=data["correctWord"],
            choices=list(data["choices"]),
            correct_meaning=data.get("correctMeaning"),
        )


@dataclass
class QuizGrade:
    """Score of a submitted quiz and the per-question results to sync."""
    score: int
    total: int
    results: List[QuizResultRecord] = field(default_factory=list)
