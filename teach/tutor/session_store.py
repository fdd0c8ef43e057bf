"""
Transcript persistence for tutoring sessions.

Enables save/resume functionality so learners can interrupt and continue sessions.
Transcripts are stored as JSON files in ~/.teach/sessions/
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Optional

from loguru import logger

from teach.core.errors import TranscriptError
from teach.tutor.transcript import Transcript


class TranscriptStore:
    """
    Manages transcript persistence.

    Transcripts are stored as JSON files with naming: {session_id}.json
    Only the most recent session is typically used for resume.
    """

    def __init__(self, session_dir: Optional[Path] = None, expiry_hours: int = 24):
        if session_dir is None:
            from config import get_settings
            session_dir = get_settings().session_dir
        self.session_dir = Path(session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.expiry_hours = expiry_hours

    def save(self, transcript: Transcript) -> Path:
        """Save a transcript to disk."""
        filepath = self.session_dir / f"{transcript.session_id}.json"
        filepath.write_text(transcript.to_json(), encoding="utf-8")
        logger.debug(f"Saved transcript {transcript.session_id} to {filepath}")
        return filepath

    def load(self, session_id: str) -> Optional[Transcript]:
        """Load a specific transcript by session ID."""
        filepath = self.session_dir / f"{session_id}.json"
        if not filepath.exists():
            return None
        return self._read(filepath)

    def get_latest(self) -> Optional[Transcript]:
        """Get the most recently active, non-expired transcript."""
        transcripts = self.list_sessions()
        return transcripts[0] if transcripts else None

    def delete(self, session_id: str) -> bool:
        """Delete a transcript file."""
        filepath = self.session_dir / f"{session_id}.json"
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def is_expired(self, transcript: Transcript) -> bool:
        """Check if a transcript's last activity is older than the expiry window."""
        last_active = _last_activity(transcript)
        return datetime.now(UTC) - last_active > timedelta(hours=self.expiry_hours)

    def cleanup_expired(self) -> int:
        """Remove all expired or unreadable transcript files."""
        removed = 0
        for filepath in self.session_dir.glob("*.json"):
            transcript = self._read(filepath)
            if transcript is None or self.is_expired(transcript):
                filepath.unlink()
                removed += 1
        return removed

    def list_sessions(self) -> list[Transcript]:
        """List all non-expired transcripts, most recent first."""
        transcripts = []
        for filepath in self.session_dir.glob("*.json"):
            transcript = self._read(filepath)
            if transcript is not None and not self.is_expired(transcript):
                transcripts.append(transcript)

        return sorted(transcripts, key=_last_activity, reverse=True)

    def _read(self, filepath: Path) -> Optional[Transcript]:
        try:
            return Transcript.from_json(filepath.read_text(encoding="utf-8"))
        except (OSError, TranscriptError) as e:
            logger.warning(f"Skipping unreadable transcript {filepath.name}: {e}")
            return None


def _last_activity(transcript: Transcript) -> datetime:
    moments = [transcript.started_at]
    if transcript.records:
        moments.append(transcript.records[-1].timestamp)
    if transcript.ended_at is not None:
        moments.append(transcript.ended_at)
    return max(_as_utc(m) for m in moments)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment
