"""Models for per-device learner data."""
from dataclasses import dataclass
from typing import Any, Dict

OUTPUT_CHANNELS = ("left", "both", "right")
LOOP_INTERVALS = (5, 10, 15, 20, 30, 60)  # seconds
MIN_SPEECH_RATE = 0.1
MAX_SPEECH_RATE = 1.0


@dataclass
class LearnerPreferences:
    """Playback preferences handed to a listening session."""
    speech_rate: float = 0.5
    output_channel: str = "both"
    loop_interval: int = 10

    def to_dict(self) -> Dict[str, Any]:
        # Same keys the mobile client stores
        return {
            "speechRate": self.speech_rate,
            "outputChannel": self.output_channel,
            "loopInterval": self.loop_interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnerPreferences":
        defaults = cls()
        return cls(
            speech_rate=data.get("speechRate", defaults.speech_rate),
            output_channel=data.get("outputChannel", defaults.output_channel),
            loop_interval=data.get("loopInterval", defaults.loop_interval),
        )
