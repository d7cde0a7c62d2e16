"""Models for queued sync records."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

WordId = Union[int, str]


class RecordKind(Enum):
    """Kinds of records that are queued locally and pushed to the server."""
    PROGRESS = "progress"
    QUIZ_RESULT = "quiz_result"

    @property
    def queue_name(self) -> str:
        """Name of the persisted queue holding this kind of record."""
        return _QUEUE_NAMES[self.value]


_QUEUE_NAMES = {
    "progress": "unsync_progress",
    "quiz_result": "unsync_quiz_results",
}


@dataclass
class ProgressRecord:
    """Words heard during one listening session."""
    user_id: str
    word_ids: List[WordId]  # listening order, no duplicates
    duration: int  # seconds

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "word_ids": list(self.word_ids) if isinstance(self.word_ids, (list, tuple)) else self.word_ids,
            "duration": self.duration,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProgressRecord":
        return cls(
            user_id=payload.get("user_id"),
            word_ids=payload.get("word_ids"),
            duration=payload.get("duration"),
        )


@dataclass
class QuizResultRecord:
    """Outcome of one answered quiz question."""
    user_id: str
    question_id: int
    is_correct: int  # 1: correct, 0: wrong

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "question_id": self.question_id,
            "is_correct": self.is_correct,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "QuizResultRecord":
        return cls(
            user_id=payload.get("user_id"),
            question_id=payload.get("question_id"),
            is_correct=payload.get("is_correct"),
        )


SyncRecord = Union[ProgressRecord, QuizResultRecord]

RECORD_TYPES = {
    RecordKind.PROGRESS: ProgressRecord,
    RecordKind.QUIZ_RESULT: QuizResultRecord,
}


@dataclass
class QueueEntry:
    """Snapshot of a stored record together with its sync state."""
    id: int
    kind: RecordKind
    captured_at: int  # epoch millis, the entry's identity key
    record: SyncRecord
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None
    rejected: bool = False  # failed validation, never sent automatically


@dataclass
class SyncOutcome:
    """Result of recording a single record and trying to send it."""
    synced: bool
    saved_locally: bool
    message: str
    entry: Optional[QueueEntry] = None
    data: Any = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.synced


@dataclass
class BatchError:
    """A record from a batch that was not acknowledged by the server."""
    index: int
    record: Any
    message: str


@dataclass
class BatchReport:
    """Tally of a batch submission."""
    successful: int = 0
    failed: int = 0
    errors: List[BatchError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def message(self) -> str:
        return f"{self.successful} sent, {self.failed} failed"
