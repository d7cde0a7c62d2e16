"""Main application object wiring the sync services together."""
import logging
import random
from typing import Dict, List, Mapping, Optional, Sequence

import httpx
from sqlalchemy.orm import sessionmaker

from vocasync.config import settings
from vocasync.models.base import SessionLocal, init_db
from vocasync.models.quiz_models import QuizGrade, QuizQuestion, WordCatalogEntry
from vocasync.models.sync_models import BatchReport, RecordKind, SyncOutcome, WordId
from vocasync.monitoring import start_monitoring
from vocasync.services.api_client import ApiClient
from vocasync.services.listening_service import ListeningSession
from vocasync.services.quiz_service import QuizService
from vocasync.services.scheduler_service import SchedulerService
from vocasync.services.storage_service import KeyValueStore, QueueStore
from vocasync.services.sync_service import SyncService
from vocasync.services.user_service import UserService
from vocasync.services.word_service import WordCatalogCache


class VocaSync:
    """Main application class.

    Owns the HTTP client, the local stores and every service, and exposes the
    operations the learning screens trigger.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
        rng: Optional[random.Random] = None,
        flush_interval: Optional[float] = None,
    ):
        """Initialize the application."""
        self.session_factory = session_factory
        self.api = ApiClient(base_url=base_url, transport=transport)
        self.queue_store = QueueStore(session_factory or SessionLocal)
        self.kv = KeyValueStore(session_factory or SessionLocal)
        self.sync_service = SyncService(self.queue_store, self.api)
        self.catalog = WordCatalogCache(self.kv, self.api)
        self.quiz_service = QuizService(self.api, self.catalog, rng)
        self.user_service = UserService(self.kv)
        self.scheduler = SchedulerService(self.sync_service, flush_interval)
        self.running = False
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        if self.session_factory is None:
            init_db()
            self.logger.info("Database initialized")

        if settings.monitoring.enabled:
            start_monitoring(settings.monitoring.port)
            self.logger.info("Metrics exposed on port %d", settings.monitoring.port)

        # Same as an app resume: retry whatever is still pending
        if settings.sync.flush_on_start:
            synced = await self.flush()
            self.logger.info("Startup flush synced %s", synced)

        await self.scheduler.start()
        self.logger.info("Scheduler service started")

        self.running = True

    async def stop(self) -> None:
        """Stop the application."""
        if not self.running:
            return

        try:
            await self.scheduler.stop()
            self.logger.info("Scheduler service stopped")
        finally:
            await self.api.aclose()
            self.running = False
            self.logger.info("HTTP client closed")

    async def new_listening_session(self) -> ListeningSession:
        """Create a listening session over the catalog with stored preferences."""
        words = await self.catalog.get_words_with_cache()
        preferences = await self.user_service.get_preferences()
        return ListeningSession(words, preferences)

    async def finish_listening(self, session: ListeningSession) -> SyncOutcome:
        """Stop a session and record its progress."""
        session.stop()
        user_id = await self.user_service.get_or_create_user_id()
        return await self.sync_service.record_and_sync(
            RecordKind.PROGRESS, session.to_progress_record(user_id)
        )

    async def get_words(self) -> List[WordCatalogEntry]:
        return await self.catalog.get_words_with_cache()

    async def get_quiz(self, recent_word_ids: Sequence[WordId], count: Optional[int] = None) -> List[QuizQuestion]:
        return await self.quiz_service.get_quiz_with_fallback(recent_word_ids, count)

    async def submit_quiz(
        self,
        questions: Sequence[QuizQuestion],
        answers: Mapping[WordId, str],
    ) -> tuple[QuizGrade, BatchReport]:
        """Grade a quiz and send one result per question."""
        user_id = await self.user_service.get_or_create_user_id()
        grade = self.quiz_service.grade(questions, answers, user_id)
        report = await self.sync_service.submit_quiz_results_batch(grade.results)
        return grade, report

    async def flush(self) -> Dict[str, int]:
        """Retry every pending record now."""
        return await self.sync_service.flush_all()

    async def status(self) -> Dict[str, int]:
        """Get pending record counts by kind."""
        return await self.sync_service.pending_counts()
