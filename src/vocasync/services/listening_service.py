"""Capture of hands-free listening sessions."""
import asyncio
import inspect
import logging
import math
import time
from typing import Any, Callable, List, Optional, Sequence

from vocasync.errors import ValidationError
from vocasync.models.quiz_models import WordCatalogEntry
from vocasync.models.sync_models import ProgressRecord, WordId
from vocasync.models.user_models import LearnerPreferences

logger = logging.getLogger(__name__)

Speak = Callable[[str], Any]


class ListeningSession:
    """Loops through words, speaking each one, and remembers what was heard.

    The speech engine is supplied by the caller as ``speak(text)``; it may be a
    plain function or a coroutine function.
    """

    def __init__(
        self,
        words: Sequence[WordCatalogEntry],
        preferences: Optional[LearnerPreferences] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not words:
            raise ValidationError("A listening session needs at least one word")
        self.words = list(words)
        self.preferences = preferences or LearnerPreferences()
        self.clock = clock
        self.index = 0
        self.started_at: Optional[float] = None
        self.stopped_at: Optional[float] = None
        self._heard: List[WordId] = []

    @property
    def heard_word_ids(self) -> List[WordId]:
        """Ids of words played so far, in first-heard order."""
        return list(self._heard)

    @property
    def current_word(self) -> WordCatalogEntry:
        return self.words[self.index]

    @property
    def is_playing(self) -> bool:
        return self.started_at is not None and self.stopped_at is None

    def start(self) -> None:
        self.started_at = self.clock()
        self.stopped_at = None

    def stop(self) -> None:
        if self.is_playing:
            self.stopped_at = self.clock()

    async def play_current(self, speak: Speak) -> str:
        """Speak the current word with its meaning and mark it heard."""
        if self.started_at is None:
            self.start()
        word = self.current_word
        if word.id not in self._heard:
            self._heard.append(word.id)

        text = f"{word.word}. {word.meaning}"
        result = speak(text)
        if inspect.isawaitable(result):
            await result
        return text

    def advance(self) -> WordCatalogEntry:
        """Move to the next word, wrapping around at the end."""
        self.index = (self.index + 1) % len(self.words)
        return self.current_word

    async def run(self, speak: Speak, stop_event: asyncio.Event) -> None:
        """Play words every ``loop_interval`` seconds until ``stop_event`` is set."""
        self.start()
        try:
            await self.play_current(speak)
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.preferences.loop_interval)
                except asyncio.TimeoutError:
                    self.advance()
                    await self.play_current(speak)
        finally:
            self.stop()

    def duration_seconds(self) -> int:
        """Whole seconds between start and stop (or now), at least 1."""
        if self.started_at is None:
            return 0
        end = self.stopped_at if self.stopped_at is not None else self.clock()
        return max(1, math.floor(end - self.started_at))

    def to_progress_record(self, user_id: str) -> ProgressRecord:
        """Build the progress record for this session."""
        if not self._heard:
            raise ValidationError("No words were heard in this session")
        record = ProgressRecord(
            user_id=user_id,
            word_ids=self.heard_word_ids,
            duration=self.duration_seconds(),
        )
        logger.debug("Listening session captured %d words in %ds", len(record.word_ids), record.duration)
        return record
