"""
Tutor: session orchestration for Socratic concept acquisition.

Components:
- controller: SessionController state machine (start / next_turn / end / import)
- oracle: TutorOracle contract and the offline ScriptedOracle
- transcript: Serializable transcript records, export and parsing
- session_store: JSON transcript persistence for save/resume
- dialogue_recorder: SQL audit log of transcripts
"""

from .controller import SessionController
from .oracle import ScriptedOracle, TutorOracle
from .session_store import TranscriptStore
from .transcript import Transcript, TranscriptRecord, export_transcript

__all__ = [
    "SessionController",
    "ScriptedOracle",
    "TutorOracle",
    "TranscriptStore",
    "Transcript",
    "TranscriptRecord",
    "export_transcript",
]
