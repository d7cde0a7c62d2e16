"""Service for getting and grading quizzes."""
import logging
import random
from typing import List, Mapping, Optional, Sequence

from vocasync import monitoring
from vocasync.config import WRONG_CHOICES_PER_QUESTION, settings
from vocasync.errors import FallbackUnavailableError, StorageError, ValidationError, VocaSyncError
from vocasync.models.quiz_models import QuizGrade, QuizQuestion, WordCatalogEntry
from vocasync.models.sync_models import QuizResultRecord, WordId
from vocasync.services.api_client import ApiClient
from vocasync.services.word_service import WordCatalogCache

logger = logging.getLogger(__name__)


def generate_local_quiz(
    words: Sequence[WordCatalogEntry],
    recent_word_ids: Sequence[WordId],
    count: int = 5,
    rng: Optional[random.Random] = None,
) -> List[QuizQuestion]:
    """Build a quiz from the catalog for recently studied words.

    Picks up to ``count`` studied words at random. Each question offers the
    correct meaning plus three distinct wrong meanings taken from the rest of
    the catalog, in random order.
    """
    if count < 1:
        raise ValidationError("count must be a positive integer")
    rng = rng or random.Random()

    # Ids arrive as ints from the catalog and as strings from query strings
    recent = {str(word_id) for word_id in recent_word_ids}
    studied = [word for word in words if str(word.id) in recent]
    if not studied:
        raise FallbackUnavailableError("None of the studied words are in the local catalog")

    selected = rng.sample(studied, min(count, len(studied)))

    quiz = []
    for word in selected:
        wrong_pool = []
        for other in words:
            if other.id != word.id and other.meaning != word.meaning and other.meaning not in wrong_pool:
                wrong_pool.append(other.meaning)
        if len(wrong_pool) < WRONG_CHOICES_PER_QUESTION:
            raise FallbackUnavailableError(
                f"Local catalog has too few distinct meanings to quiz '{word.word}'"
            )

        choices = [word.meaning] + rng.sample(wrong_pool, WRONG_CHOICES_PER_QUESTION)
        rng.shuffle(choices)
        quiz.append(QuizQuestion(
            question_id=word.id,
            correct_word=word.word,
            choices=choices,
            correct_meaning=word.meaning,
        ))
    return quiz


class QuizService:
    """Service for getting quizzes, with a local fallback, and grading them."""

    def __init__(
        self,
        api: ApiClient,
        catalog: WordCatalogCache,
        rng: Optional[random.Random] = None,
    ):
        self.api = api
        self.catalog = catalog
        self.rng = rng or random.Random()

    async def get_quiz_with_fallback(
        self,
        recent_word_ids: Sequence[WordId],
        count: Optional[int] = None,
    ) -> List[QuizQuestion]:
        """Get a quiz from the server, or build one from the cached catalog."""
        if count is None:
            count = settings.quiz.question_count
        try:
            return await self.api.fetch_quiz(recent_word_ids, count)
        except VocaSyncError as server_error:
            logger.warning(f"Could not get quiz from server, generating locally: {server_error}")

        try:
            envelope = await self.catalog.peek()
        except StorageError as e:
            raise FallbackUnavailableError("Local word data is unreadable") from e
        if envelope is None or not envelope.payload:
            raise FallbackUnavailableError("No local word data to build a quiz from")

        quiz = generate_local_quiz(envelope.payload, recent_word_ids, count, self.rng)
        monitoring.fallback_quizzes.inc()
        logger.info("Generated local quiz with %d questions", len(quiz))
        return quiz

    @staticmethod
    def grade(
        questions: Sequence[QuizQuestion],
        answers: Mapping[WordId, str],
        user_id: str,
    ) -> QuizGrade:
        """Score the selected choices and build one result record per question."""
        results = []
        score = 0
        for question in questions:
            is_correct = answers.get(question.question_id) == question.answer
            score += int(is_correct)
            results.append(QuizResultRecord(
                user_id=user_id,
                question_id=_numeric_id(question.question_id),
                is_correct=1 if is_correct else 0,
            ))
        return QuizGrade(score=score, total=len(questions), results=results)


def _numeric_id(question_id: WordId) -> WordId:
    if isinstance(question_id, str) and question_id.isdigit():
        return int(question_id)
    return question_id
