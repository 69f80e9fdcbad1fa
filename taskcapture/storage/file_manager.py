"""File management for recording previews, saved recordings and metadata."""

import os
import json
import logging
import random
import string
from pathlib import Path
from urllib.parse import unquote, urlparse
from datetime import datetime
from dataclasses import asdict

from ..capture.formats import file_extension
from ..models.session import SessionInfo

logger = logging.getLogger(__name__)


class FileManager:
    """Manages file storage and organization for recordings and metadata."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.previews_dir = self.data_dir / "previews"
        self.sessions_dir = self.data_dir / "sessions"
        self.logs_dir = self.data_dir / "logs"

        # Create directory structure
        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.previews_dir, self.sessions_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    @staticmethod
    def new_session_id() -> str:
        """Timestamp-based session ID with a random suffix."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        return f"{timestamp}_{random_suffix}"

    def save_preview(self, data: bytes, mime_type: str, session_id: str) -> str:
        """Write a playable local copy of a recording.

        Returns:
            file:// URI of the preview
        """
        preview_path = self.previews_dir / f"{session_id}.{file_extension(mime_type)}"
        with open(preview_path, 'wb') as f:
            f.write(data)

        logger.info(f"Preview saved: {preview_path} ({len(data)} bytes)")
        return preview_path.absolute().as_uri()

    def remove_preview(self, preview_uri: str) -> bool:
        """Delete a preview created by :meth:`save_preview`."""
        if not preview_uri or not preview_uri.startswith("file:"):
            return False

        preview_path = Path(unquote(urlparse(preview_uri).path))
        if preview_path.parent != self.previews_dir.absolute():
            logger.warning(f"Refusing to remove file outside previews dir: {preview_path}")
            return False
        try:
            preview_path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Preview removed: {preview_path}")
        return True

    def save_recording(self, data: bytes, session_id: str, mime_type: str,
                       filename: str = None) -> str:
        """Save recording data into the session directory.

        Returns:
            Full path to saved recording
        """
        extension = file_extension(mime_type)
        if filename is None:
            filename = f"recording_{session_id}.{extension}"
        if not filename.endswith(f".{extension}"):
            filename += f".{extension}"

        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)
        recording_path = session_path / filename

        try:
            with open(recording_path, 'wb') as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Error saving recording: {e}")
            raise

        logger.info(f"Recording saved: {recording_path} ({len(data)} bytes)")
        return str(recording_path)

    def save_submission(self, data: bytes, object_path: str) -> Path:
        """Store a submitted recording under ``submissions/<object_path>``."""
        root = Path(os.path.normpath(self.data_dir.absolute() / "submissions"))
        target = Path(os.path.normpath(root / object_path))
        if root not in target.parents:
            raise ValueError(f"Invalid submission path: {object_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'wb') as f:
            f.write(data)

        logger.info(f"Submission stored: {target} ({len(data)} bytes)")
        return target

    def save_session_info(self, session_info: SessionInfo) -> str:
        """Save session information to JSON file.

        Returns:
            Path to saved session info file
        """
        session_path = self.sessions_dir / session_info.session_id
        session_path.mkdir(exist_ok=True)

        info_file = session_path / "session_info.json"

        # Convert datetime to string for JSON serialization
        info_dict = asdict(session_info)
        info_dict['start_time'] = session_info.start_time.isoformat()

        try:
            with open(info_file, 'w') as f:
                json.dump(info_dict, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving session info: {e}")
            raise

        logger.info(f"Session info saved: {info_file}")
        return str(info_file)
