"""Playlist documents - JSON persistence of tree, player settings and session state.

A document bundles everything one playlist needs into a single
``.playlist.json`` file::

    {
      "version": "1.0",
      "metadata": {"name": ..., "description": ..., "created": ..., "modified": ...},
      "settings": {...PlayerSettings...},
      "items": [...tracks and groups...],
      "session": {...SessionState...}
    }
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..platform_paths import ensure_dir, get_playlists_dir
from .items import ItemTree
from .policy import PlayerSettings, PolicyResolver
from .reorder import PlaylistEditor
from .state import SessionState
from .timeline import TimelineProjector

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.0"
DOCUMENT_SUFFIX = ".playlist.json"


class PlaylistDocument:
    """Playlist tree with its settings and session state."""

    def __init__(
        self,
        name: str = "Untitled",
        tree: Optional[ItemTree] = None,
        settings: Optional[PlayerSettings] = None,
        description: str = "",
    ):
        self.tree = tree if tree is not None else ItemTree()
        self.settings = settings or PlayerSettings()
        self.state = SessionState(self.tree)
        self.policy = PolicyResolver(self.tree, self.settings)
        now = datetime.now().isoformat()
        self.metadata: Dict[str, Any] = {
            "name": name,
            "description": description,
            "created": now,
            "modified": now,
        }
        self.path: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.metadata["name"]

    def build_editor(self) -> PlaylistEditor:
        return PlaylistEditor(self.tree, self.state)

    def build_projector(self, clock: Callable[[], float] = time.time) -> TimelineProjector:
        return TimelineProjector(self.tree, self.state, self.policy, clock=clock)

    def validate(self) -> tuple[bool, str]:
        ok, msg = self.settings.validate()
        if not ok:
            return ok, msg
        for item in self.tree.items:
            ok, msg = item.validate()
            if not ok:
                return ok, msg
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": DOCUMENT_VERSION,
            "metadata": dict(self.metadata),
            "settings": self.settings.to_dict(),
            "items": self.tree.to_list(),
            "session": self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PlaylistDocument:
        """Build a document from plain data.

        Raises:
            ValueError: If the structure or any value is invalid
        """
        validate_document(data)
        settings = PlayerSettings.from_dict(data["settings"])
        ok, msg = settings.validate()
        if not ok:
            raise ValueError(f"Invalid settings: {msg}")
        try:
            tree = ItemTree.from_list(data["items"])
        except KeyError as e:
            raise ValueError(f"Playlist item missing required key: {e}") from e
        doc = cls(name=data["metadata"]["name"], tree=tree, settings=settings)
        doc.metadata.update(data["metadata"])
        doc.state.load_dict(data.get("session") or {})
        return doc

    def save(self, filepath: Optional[Path] = None) -> Path:
        """Save to *filepath* (or the path it was loaded from).

        Raises:
            ValueError: If no path is known
        """
        if filepath is None:
            if self.path is None:
                raise ValueError("No filepath provided and no current file set")
            filepath = self.path
        filepath = Path(filepath)
        if not filepath.name.endswith(DOCUMENT_SUFFIX):
            filepath = filepath.with_name(filepath.name.split(".")[0] + DOCUMENT_SUFFIX)

        self.metadata["modified"] = datetime.now().isoformat()
        ensure_dir(filepath.parent)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        self.path = filepath
        logger.info(f"Saved playlist: {self.name} to {filepath.name}")
        return filepath

    @classmethod
    def load(cls, filepath: Path) -> PlaylistDocument:
        """Load a playlist file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is invalid JSON
            ValueError: If the document structure is invalid
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Playlist file not found: {filepath}")
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        doc = cls.from_dict(data)
        doc.path = filepath
        logger.info(f"Loaded playlist: {doc.name} from {filepath.name} ({doc.tree.track_count} tracks)")
        return doc


def validate_document(data: Dict[str, Any]) -> None:
    """Check the top-level document layout.

    Raises:
        ValueError: If the structure is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("Playlist document must be a JSON object")
    for key in ("version", "metadata", "settings", "items"):
        if key not in data:
            raise ValueError(f"Playlist missing required key: {key}")
    if not isinstance(data["metadata"], dict) or "name" not in data["metadata"]:
        raise ValueError("Playlist metadata missing required key: name")
    if not isinstance(data["settings"], dict):
        raise ValueError("Playlist settings must be a dictionary")
    if not isinstance(data["items"], list):
        raise ValueError("Playlist items must be a list")
    if "session" in data and data["session"] is not None and not isinstance(data["session"], dict):
        raise ValueError("Playlist session must be a dictionary")


def list_playlists(directory: Optional[Path] = None) -> List[Path]:
    """Playlist files in *directory* (default: the per-user playlists folder)."""
    directory = Path(directory) if directory is not None else get_playlists_dir()
    if not directory.exists():
        return []
    return sorted(directory.glob(f"*{DOCUMENT_SUFFIX}"))
