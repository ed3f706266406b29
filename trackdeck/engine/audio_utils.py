"""Audio utility helpers for duration probing and normalization."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Optional

import pygame

_log = logging.getLogger(__name__)
_probe_lock = Lock()

AUDIO_EXTENSIONS = (".mp3", ".ogg", ".wav", ".flac", ".opus", ".m4a")


def ensure_mixer() -> bool:
    """Initialize pygame mixer lazily.

    Returns True when mixer is ready, False otherwise. Initialization errors are logged.
    """
    try:
        if not pygame.mixer.get_init():
            pygame.mixer.pre_init(44100, -16, 2, 512)
            pygame.mixer.init()
        return True
    except pygame.error as exc:  # pragma: no cover - depends on host audio stack
        _log.warning("pygame mixer init failed: %s", exc)
        return False


@lru_cache(maxsize=512)
def probe_audio_duration(path: str | Path) -> Optional[float]:
    """Return audio duration in seconds using pygame's Sound metadata.

    Args:
        path: Path to audio file.

    Returns:
        Duration in seconds, or None if detection fails.
    """
    target = Path(path)
    if not target.exists():
        _log.debug("Audio probe skipped (missing file): %s", target)
        return None

    with _probe_lock:
        if not ensure_mixer():
            return None
        try:
            sound = pygame.mixer.Sound(str(target))
            try:
                length = float(sound.get_length())
            finally:
                del sound
            if length > 0:
                return length
        except pygame.error as exc:
            _log.warning("Failed to probe audio duration for %s: %s", target, exc)
    return None


def is_audio_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in AUDIO_EXTENSIONS


def normalize_volume(value: float) -> float:
    """Clamp and normalize arbitrary numeric volume inputs to 0..1."""
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0
