"""Client for the remote learning API."""
import logging
import numbers
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from vocasync import monitoring
from vocasync.config import CHOICES_PER_QUESTION, settings
from vocasync.errors import (
    RequestTimeoutError,
    ResponseShapeError,
    ServerError,
    UnreachableError,
    ValidationError,
)
from vocasync.models.quiz_models import QuizQuestion, WordCatalogEntry
from vocasync.models.sync_models import ProgressRecord, QuizResultRecord, WordId

logger = logging.getLogger(__name__)

PROGRESS_ENDPOINT = "/progress.php"
QUIZ_RESULT_ENDPOINT = "/quiz_result.php"
QUIZ_ENDPOINT = "/quiz.php"
WORDS_ENDPOINT = "/words.php"


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_word_id(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value)
    return isinstance(value, int) and not isinstance(value, bool)


def _payload(record: Union[ProgressRecord, QuizResultRecord, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(record, (ProgressRecord, QuizResultRecord)):
        return record.to_payload()
    if isinstance(record, Mapping):
        return dict(record)
    raise ValidationError(f"Unsupported record type: {type(record).__name__}")


def validate_progress(payload: Mapping[str, Any]) -> None:
    """Raise ValidationError unless the payload is a sendable progress record."""
    if not payload.get("user_id"):
        raise ValidationError("user_id is required")
    word_ids = payload.get("word_ids")
    if not isinstance(word_ids, (list, tuple)) or not word_ids:
        raise ValidationError("word_ids must be a non-empty list")
    if not all(_is_word_id(word_id) for word_id in word_ids):
        raise ValidationError("word_ids must contain only word identifiers")
    duration = payload.get("duration")
    if not _is_number(duration) or duration <= 0:
        raise ValidationError("duration must be a positive number")


def validate_quiz_result(payload: Mapping[str, Any]) -> None:
    """Raise ValidationError unless the payload is a sendable quiz result."""
    if not payload.get("user_id"):
        raise ValidationError("user_id is required")
    if not _is_number(payload.get("question_id")):
        raise ValidationError("question_id must be a number")
    is_correct = payload.get("is_correct")
    if isinstance(is_correct, bool) or is_correct not in (0, 1):
        raise ValidationError("is_correct must be 0 or 1")


def parse_quiz(data: Any) -> List[QuizQuestion]:
    """Check the quiz response shape and convert it to questions."""
    if not isinstance(data, list):
        raise ResponseShapeError("Quiz response is not a list")
    questions = []
    for item in data:
        if not isinstance(item, dict):
            raise ResponseShapeError("Quiz question is not an object")
        if item.get("questionId") in (None, "") or not item.get("correctWord"):
            raise ResponseShapeError("Quiz question is missing questionId or correctWord")
        choices = item.get("choices")
        if not isinstance(choices, list):
            raise ResponseShapeError("Quiz question choices are not a list")
        if len(choices) != CHOICES_PER_QUESTION:
            raise ResponseShapeError(
                f"Quiz question must have exactly {CHOICES_PER_QUESTION} choices, got {len(choices)}"
            )
        questions.append(QuizQuestion.from_dict(item))
    return questions


def parse_words(data: Any) -> List[WordCatalogEntry]:
    """Check the catalog response shape and convert it to entries keyed by id."""
    if not isinstance(data, list):
        raise ResponseShapeError("Words response is not a list")
    catalog: Dict[WordId, WordCatalogEntry] = {}
    for item in data:
        if not isinstance(item, dict) or not {"id", "word", "meaning"} <= item.keys():
            raise ResponseShapeError("Word entry must have id, word and meaning")
        entry = WordCatalogEntry.from_dict(item)
        catalog.setdefault(entry.id, entry)
    return list(catalog.values())


class ApiClient:
    """Thin async client for the four API endpoints.

    Inputs are validated before any request is made. Every transport failure
    is translated to RequestTimeoutError, UnreachableError or ServerError so
    callers can decide whether a retry makes sense.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        read_timeout: Optional[float] = None,
        write_timeout: Optional[float] = None,
        quiz_result_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api.base_url).rstrip("/")
        self.read_timeout = read_timeout or settings.api.read_timeout
        self.write_timeout = write_timeout or settings.api.write_timeout
        self.quiz_result_timeout = quiz_result_timeout or settings.api.quiz_result_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit_progress(self, record: Union[ProgressRecord, Mapping[str, Any]]) -> Any:
        """Send a listening progress record. Returns the server acknowledgement."""
        payload = _payload(record)
        validate_progress(payload)
        response = await self._request(
            "POST", PROGRESS_ENDPOINT, timeout=self.write_timeout, json=payload
        )
        logger.info("Progress sent for user %s (%d words)", payload["user_id"], len(payload["word_ids"]))
        return self._body(response)

    async def submit_quiz_result(self, record: Union[QuizResultRecord, Mapping[str, Any]]) -> Any:
        """Send the result of one quiz question. Returns the server acknowledgement."""
        payload = _payload(record)
        validate_quiz_result(payload)
        response = await self._request(
            "POST", QUIZ_RESULT_ENDPOINT, timeout=self.quiz_result_timeout, json=payload
        )
        logger.info("Quiz result sent for user %s (question %s)", payload["user_id"], payload["question_id"])
        return self._body(response)

    async def fetch_quiz(self, recent_word_ids: Sequence[WordId], count: int = 5) -> List[QuizQuestion]:
        """Get quiz questions for recently studied words."""
        if not recent_word_ids:
            raise ValidationError("No studied words to build a quiz from")
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ValidationError("count must be a positive integer")

        params = {
            "lastWords": ",".join(str(word_id) for word_id in recent_word_ids),
            "count": count,
        }
        response = await self._request("GET", QUIZ_ENDPOINT, timeout=self.read_timeout, params=params)
        return self._parsed(QUIZ_ENDPOINT, response, parse_quiz)

    async def fetch_words(self) -> List[WordCatalogEntry]:
        """Get the full word catalog."""
        response = await self._request("GET", WORDS_ENDPOINT, timeout=self.read_timeout)
        return self._parsed(WORDS_ENDPOINT, response, parse_words)

    async def _request(self, method: str, endpoint: str, timeout: float, **kwargs: Any) -> httpx.Response:
        start = time.perf_counter()
        try:
            response = await self._client.request(method, endpoint, timeout=timeout, **kwargs)
        except httpx.TimeoutException as e:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="timeout").inc()
            logger.error(f"Request to {endpoint} timed out after {timeout}s: {e}")
            raise RequestTimeoutError(f"Request to {endpoint} timed out") from e
        except httpx.TransportError as e:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="unreachable").inc()
            logger.error(f"Could not reach {endpoint}: {e}")
            raise UnreachableError(f"Could not connect to the server ({endpoint})") from e
        except httpx.DecodingError as e:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="shape").inc()
            logger.error(f"Could not decode response from {endpoint}: {e}")
            raise ResponseShapeError(f"Unreadable response from {endpoint}") from e
        except httpx.HTTPError as e:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="unreachable").inc()
            logger.error(f"Request to {endpoint} failed: {e}")
            raise UnreachableError(f"Request to the server failed ({endpoint})") from e
        finally:
            monitoring.request_duration.labels(endpoint=endpoint).observe(time.perf_counter() - start)

        if response.status_code != 200:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="server").inc()
            message = self._error_message(response)
            logger.error("Server answered %d for %s: %s", response.status_code, endpoint, message)
            raise ServerError(response.status_code, message)
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return None

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _parsed(endpoint: str, response: httpx.Response, parser) -> Any:
        try:
            data = response.json()
        except ValueError as e:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="shape").inc()
            raise ResponseShapeError(f"{endpoint} returned invalid JSON") from e
        try:
            return parser(data)
        except ResponseShapeError:
            monitoring.api_errors.labels(endpoint=endpoint, error_type="shape").inc()
            logger.error("Unexpected response shape from %s", endpoint)
            raise
