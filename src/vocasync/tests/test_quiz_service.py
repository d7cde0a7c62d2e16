"""Tests for quiz fetching, local generation and grading."""
import random

import httpx
import pytest

from conftest import FakeClock, FakeServer, offline
from vocasync.errors import FallbackUnavailableError, ValidationError
from vocasync.models.quiz_models import QuizQuestion, WordCatalogEntry
from vocasync.services.api_client import ApiClient
from vocasync.services.quiz_service import QuizService, generate_local_quiz
from vocasync.services.storage_service import KeyValueStore
from vocasync.services.word_service import WordCatalogCache


@pytest.fixture
def quiz_service(kv: KeyValueStore, api: ApiClient, clock: FakeClock) -> QuizService:
    """Create a quiz service with a seeded random source."""
    return QuizService(api, WordCatalogCache(kv, api, clock=clock), rng=random.Random(7))


@pytest.mark.parametrize("seed", range(20))
def test_generate_local_quiz_shape(catalog, seed: int) -> None:
    """Every question has four distinct choices including the correct meaning."""
    recent = [1, 3, 5, 7, 9]

    quiz = generate_local_quiz(catalog, recent, count=4, rng=random.Random(seed))

    assert len(quiz) == 4
    assert len({q.question_id for q in quiz}) == 4
    for question in quiz:
        assert question.question_id in recent
        assert len(question.choices) == 4
        assert len(set(question.choices)) == 4
        assert question.correct_meaning in question.choices
        assert question.correct_word == f"word{question.question_id}"


def test_generate_local_quiz_is_deterministic_with_seed(catalog) -> None:
    first = generate_local_quiz(catalog, [2, 4, 6], count=3, rng=random.Random(42))
    second = generate_local_quiz(catalog, [2, 4, 6], count=3, rng=random.Random(42))
    assert first == second


def test_generate_local_quiz_clamps_count(catalog) -> None:
    quiz = generate_local_quiz(catalog, [2, 4], count=5, rng=random.Random(1))
    assert sorted(q.question_id for q in quiz) == [2, 4]


def test_generate_local_quiz_matches_string_ids(catalog) -> None:
    quiz = generate_local_quiz(catalog, ["3"], count=1, rng=random.Random(1))
    assert quiz[0].question_id == 3


def test_generate_local_quiz_without_studied_words(catalog) -> None:
    with pytest.raises(FallbackUnavailableError):
        generate_local_quiz(catalog, [100, 200], count=3)


def test_generate_local_quiz_with_too_small_catalog() -> None:
    words = [WordCatalogEntry(id=i, word=f"w{i}", meaning=f"m{i}") for i in range(3)]
    with pytest.raises(FallbackUnavailableError):
        generate_local_quiz(words, [0], count=1)


def test_generate_local_quiz_rejects_bad_count(catalog) -> None:
    with pytest.raises(ValidationError):
        generate_local_quiz(catalog, [1], count=0)


@pytest.mark.asyncio
async def test_remote_quiz_is_preferred(quiz_service: QuizService, server: FakeServer) -> None:
    server.quiz = [{"questionId": 1, "correctWord": "word1", "choices": ["a", "b", "c", "d"]}]

    quiz = await quiz_service.get_quiz_with_fallback([1], count=1)

    assert quiz == [QuizQuestion(question_id=1, correct_word="word1", choices=["a", "b", "c", "d"])]
    assert server.calls("/words.php") == []


@pytest.mark.asyncio
async def test_fallback_uses_cached_catalog(quiz_service: QuizService, server: FakeServer) -> None:
    """When the quiz endpoint is down the cached catalog is used, even if stale."""
    await quiz_service.catalog.get_words_with_cache()
    quiz_service.catalog.clock.advance(10 * 3600)
    server.fail = offline

    quiz = await quiz_service.get_quiz_with_fallback([2, 4, 6, 8], count=3)

    assert len(quiz) == 3
    assert all(q.question_id in (2, 4, 6, 8) for q in quiz)
    assert len(server.calls("/words.php")) == 1


@pytest.mark.asyncio
async def test_fallback_on_shape_error(quiz_service: QuizService, server: FakeServer) -> None:
    await quiz_service.catalog.get_words_with_cache()
    server.quiz = [{"questionId": 1, "correctWord": "word1", "choices": ["only one"]}]

    quiz = await quiz_service.get_quiz_with_fallback([1], count=1)
    assert quiz[0].correct_meaning == "meaning1"


@pytest.mark.asyncio
async def test_fallback_without_cache(quiz_service: QuizService, server: FakeServer) -> None:
    server.fail = lambda request: httpx.Response(500)

    with pytest.raises(FallbackUnavailableError):
        await quiz_service.get_quiz_with_fallback([1, 2])


@pytest.mark.asyncio
async def test_fallback_with_corrupt_cache(
    quiz_service: QuizService, server: FakeServer, kv: KeyValueStore
) -> None:
    await kv.set("words", "garbage")
    server.fail = offline

    with pytest.raises(FallbackUnavailableError):
        await quiz_service.get_quiz_with_fallback([1, 2])


@pytest.mark.asyncio
async def test_fallback_without_studied_words(quiz_service: QuizService, server: FakeServer) -> None:
    await quiz_service.catalog.get_words_with_cache()

    with pytest.raises(FallbackUnavailableError):
        await quiz_service.get_quiz_with_fallback([])


def test_grade(catalog) -> None:
    """Answers are compared with the correct meaning."""
    questions = generate_local_quiz(catalog, [1, 2, 3], count=3, rng=random.Random(3))
    answers = {
        questions[0].question_id: questions[0].correct_meaning,
        questions[1].question_id: next(c for c in questions[1].choices if c != questions[1].correct_meaning),
    }

    grade = QuizService.grade(questions, answers, "u1")

    assert grade.score == 1
    assert grade.total == 3
    assert [r.is_correct for r in grade.results] == [1, 0, 0]
    assert all(r.user_id == "u1" for r in grade.results)
    assert [r.question_id for r in grade.results] == [q.question_id for q in questions]


def test_grade_remote_questions_by_word() -> None:
    questions = [QuizQuestion(question_id="12", correct_word="apple", choices=["apple", "pear", "plum", "fig"])]

    grade = QuizService.grade(questions, {"12": "apple"}, "u1")

    assert grade.score == 1
    assert grade.results[0].question_id == 12
