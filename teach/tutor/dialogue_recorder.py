"""
Dialogue Recorder: SQL audit log for tutoring transcripts.

Records every transcript record for:
- Audit of what the learner was shown and how answers were judged
- Learning analytics across sessions
- Replaying a session from the database instead of a JSON file
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from teach.core.models import SessionSummary
from teach.tutor.transcript import Transcript, TranscriptRecord

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS tutoring_sessions (
        session_id TEXT PRIMARY KEY,
        topic_id TEXT NOT NULL,
        topic_label TEXT,
        started_at TEXT NOT NULL,
        ended_at TEXT,
        mastered TEXT,
        unmastered TEXT,
        stalled TEXT,
        total_exchanges INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transcript_records (
        session_id TEXT NOT NULL,
        seq INTEGER NOT NULL,
        concept_id TEXT NOT NULL,
        role TEXT NOT NULL,
        text TEXT NOT NULL,
        verdict TEXT,
        applies_transfer INTEGER,
        feedback TEXT,
        feedback_kind TEXT,
        timestamp TEXT NOT NULL,
        PRIMARY KEY (session_id, seq)
    )
    """,
]


class DialogueRecorder:
    """
    Persists transcripts to a SQL database.

    Tracks:
    - Session header (topic, start/end, mastered, unmastered and stalled concepts)
    - Every record in order, with verdicts and oracle feedback
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if database_url is None:
                from config import get_settings
                database_url = get_settings().database_url
            _ensure_sqlite_parent(database_url)
            engine = create_engine(database_url)
        self.engine = engine
        self.ensure_schema()

    def ensure_schema(self) -> None:
        """Create the audit tables if they do not exist."""
        with self.engine.begin() as conn:
            for statement in SCHEMA:
                conn.execute(text(statement))

    def record(self, transcript: Transcript, summary: Optional[SessionSummary] = None) -> bool:
        """
        Write a transcript, replacing any earlier copy of the same session.

        Returns:
            True if successful
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text("DELETE FROM transcript_records WHERE session_id = :id"),
                    {"id": transcript.session_id},
                )
                conn.execute(
                    text("DELETE FROM tutoring_sessions WHERE session_id = :id"),
                    {"id": transcript.session_id},
                )
                conn.execute(
                    text("""
                        INSERT INTO tutoring_sessions
                            (session_id, topic_id, topic_label, started_at, ended_at,
                             mastered, unmastered, stalled, total_exchanges)
                        VALUES
                            (:session_id, :topic_id, :topic_label, :started_at, :ended_at,
                             :mastered, :unmastered, :stalled, :total_exchanges)
                    """),
                    {
                        "session_id": transcript.session_id,
                        "topic_id": transcript.topic_id,
                        "topic_label": transcript.topic_label,
                        "started_at": transcript.started_at.isoformat(),
                        "ended_at": transcript.ended_at.isoformat() if transcript.ended_at else None,
                        "mastered": json.dumps(sorted(summary.mastered)) if summary else None,
                        "unmastered": json.dumps(sorted(summary.unmastered)) if summary else None,
                        "stalled": json.dumps(sorted(summary.stalled)) if summary else None,
                        "total_exchanges": sum(1 for r in transcript.records if r.role == "tutor"),
                    },
                )
                if transcript.records:
                    conn.execute(
                        text("""
                            INSERT INTO transcript_records
                                (session_id, seq, concept_id, role, text, verdict,
                                 applies_transfer, feedback, feedback_kind, timestamp)
                            VALUES
                                (:session_id, :seq, :concept_id, :role, :text, :verdict,
                                 :applies_transfer, :feedback, :feedback_kind, :timestamp)
                        """),
                        [
                            _record_row(transcript.session_id, seq, record)
                            for seq, record in enumerate(transcript.records)
                        ],
                    )
            logger.debug(f"Recorded {len(transcript.records)} records for {transcript.session_id}")
            return True

        except SQLAlchemyError as e:
            logger.error(f"Failed to record transcript {transcript.session_id}: {e}")
            return False

    def get_transcript(self, session_id: str) -> Optional[Transcript]:
        """Rebuild a transcript from the audit log."""
        try:
            with self.engine.connect() as conn:
                header = conn.execute(
                    text("""
                        SELECT session_id, topic_id, topic_label, started_at, ended_at
                        FROM tutoring_sessions
                        WHERE session_id = :id
                    """),
                    {"id": session_id},
                ).fetchone()
                if header is None:
                    return None

                rows = conn.execute(
                    text("""
                        SELECT concept_id, role, text, verdict, applies_transfer,
                               feedback, feedback_kind, timestamp
                        FROM transcript_records
                        WHERE session_id = :id
                        ORDER BY seq
                    """),
                    {"id": session_id},
                ).fetchall()

        except SQLAlchemyError as e:
            logger.error(f"Failed to load transcript {session_id}: {e}")
            return None

        return Transcript(
            session_id=header[0],
            topic_id=header[1],
            topic_label=header[2] or "",
            started_at=header[3],
            ended_at=header[4],
            records=[
                TranscriptRecord(
                    concept_id=row[0],
                    role=row[1],
                    text=row[2],
                    verdict=row[3],
                    applies_transfer=None if row[4] is None else bool(row[4]),
                    feedback=row[5],
                    feedback_kind=row[6],
                    timestamp=row[7],
                )
                for row in rows
            ],
        )

    def get_summary(self, session_id: str) -> Optional[SessionSummary]:
        """Summary recorded with a session, or None if it was recorded without one."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    text("""
                        SELECT mastered, unmastered, stalled, total_exchanges
                        FROM tutoring_sessions
                        WHERE session_id = :id
                    """),
                    {"id": session_id},
                ).fetchone()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load summary for {session_id}: {e}")
            return None

        if row is None or row[0] is None:
            return None
        return SessionSummary(
            mastered=frozenset(json.loads(row[0])),
            unmastered=frozenset(json.loads(row[1] or "[]")),
            stalled=frozenset(json.loads(row[2] or "[]")),
            total_exchanges=row[3],
        )

    def get_session_stats(self) -> dict:
        """
        Aggregate statistics across recorded sessions.

        Returns:
            Statistics dictionary
        """
        try:
            with self.engine.connect() as conn:
                sessions = conn.execute(
                    text("""
                        SELECT COUNT(*), AVG(total_exchanges)
                        FROM tutoring_sessions
                    """)
                ).fetchone()
                verdicts = conn.execute(
                    text("""
                        SELECT verdict, COUNT(*)
                        FROM transcript_records
                        WHERE role = 'learner'
                        GROUP BY verdict
                    """)
                ).fetchall()

        except SQLAlchemyError as e:
            logger.error(f"Failed to get session stats: {e}")
            return {"total_sessions": 0}

        if not sessions or sessions[0] == 0:
            return {"total_sessions": 0}

        return {
            "total_sessions": sessions[0],
            "avg_exchanges": float(sessions[1]) if sessions[1] else 0.0,
            "verdict_breakdown": {row[0]: row[1] for row in verdicts},
        }


def _record_row(session_id: str, seq: int, record: TranscriptRecord) -> dict:
    return {
        "session_id": session_id,
        "seq": seq,
        "concept_id": record.concept_id,
        "role": record.role,
        "text": record.text,
        "verdict": record.verdict.value if record.verdict else None,
        "applies_transfer": None if record.applies_transfer is None else int(record.applies_transfer),
        "feedback": record.feedback,
        "feedback_kind": record.feedback_kind,
        "timestamp": record.timestamp.isoformat(),
    }


def _ensure_sqlite_parent(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
