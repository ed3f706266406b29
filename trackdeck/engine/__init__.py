"""Audio and runtime adapters for the session scheduler."""

from .simulated import SimulatedAudioBackend
from .duration_worker import DurationJob, DurationWorker

__all__ = [
    'SimulatedAudioBackend',
    'DurationJob',
    'DurationWorker',
]
