"""User service for the device user id and learner preferences."""
import logging
import uuid
from typing import Any

from vocasync.config import PREFERENCES_KEY, USER_ID_KEY
from vocasync.errors import ValidationError
from vocasync.models.user_models import (
    LOOP_INTERVALS,
    MAX_SPEECH_RATE,
    MIN_SPEECH_RATE,
    OUTPUT_CHANNELS,
    LearnerPreferences,
)
from vocasync.services.storage_service import KeyValueStore

# Configure logging
logger = logging.getLogger(__name__)


class UserService:
    """Service for managing the device user and their preferences."""

    def __init__(self, kv: KeyValueStore):
        """Initialize the service with a key-value store."""
        self.kv = kv

    async def get_or_create_user_id(self) -> str:
        """Get the device user id, creating one on first use."""
        user_id = await self.kv.get(USER_ID_KEY)
        if user_id:
            return user_id

        user_id = f"user_{uuid.uuid4().hex}"
        await self.kv.set(USER_ID_KEY, user_id)
        logger.info("Created device user id %s", user_id)
        return user_id

    async def get_preferences(self) -> LearnerPreferences:
        """Get stored preferences, falling back to defaults for missing values."""
        stored = await self.kv.get(PREFERENCES_KEY)
        if not isinstance(stored, dict):
            return LearnerPreferences()
        return LearnerPreferences.from_dict(stored)

    async def update_preferences(self, **changes: Any) -> LearnerPreferences:
        """Update and persist preferences.

        Args:
            **changes: Any of speech_rate, output_channel, loop_interval.
        """
        preferences = await self.get_preferences()
        for key, value in changes.items():
            if not hasattr(preferences, key):
                raise ValidationError(f"Unknown preference: {key}")
            setattr(preferences, key, value)

        self.validate_preferences(preferences)
        await self.kv.set(PREFERENCES_KEY, preferences.to_dict())
        return preferences

    async def reset_preferences(self) -> LearnerPreferences:
        """Restore default preferences."""
        preferences = LearnerPreferences()
        await self.kv.set(PREFERENCES_KEY, preferences.to_dict())
        return preferences

    @staticmethod
    def validate_preferences(preferences: LearnerPreferences) -> None:
        """Raise ValidationError for values the player cannot use."""
        rate = preferences.speech_rate
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or \
           not MIN_SPEECH_RATE <= rate <= MAX_SPEECH_RATE:
            raise ValidationError(
                f"speech_rate must be between {MIN_SPEECH_RATE} and {MAX_SPEECH_RATE}"
            )

        if preferences.output_channel not in OUTPUT_CHANNELS:
            raise ValidationError(f"output_channel must be one of {', '.join(OUTPUT_CHANNELS)}")

        if preferences.loop_interval not in LOOP_INTERVALS:
            raise ValidationError(f"loop_interval must be one of {LOOP_INTERVALS}")
