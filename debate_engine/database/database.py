"""SQLite store for debates, utterances, interventions and interruptions."""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from ..exceptions import DebateNotFoundError
from ..models import DebateRecord, Intervention, Interruption, Utterance
from ..types import (
    DebatePhase,
    DebateStatus,
    InterruptStatus,
    InterventionType,
    Speaker,
)
from .schema import SchemaManager

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class DebateStore:
    """Implements every repository protocol the orchestrator uses.

    A new connection is opened per operation, so the store can be shared by
    the web layer and the debate tasks running beside it.
    """

    def __init__(self, db_path: str | Path = "debates.db"):
        self.db_path = Path(db_path)
        self.schema_manager = SchemaManager()
        self._init_database()

    def _init_database(self) -> None:
        if not self.schema_manager.validate_schema_files():
            raise RuntimeError("Database schema validation failed - missing schema files")

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            self.schema_manager.initialize_database_schema(conn.cursor())
            conn.commit()
        logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    def _update_debate(self, debate_id: str, assignments: str, params: tuple[Any, ...]) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(f"UPDATE debates SET {assignments} WHERE id = ?", (*params, debate_id))
            if cursor.rowcount == 0:
                raise DebateNotFoundError(debate_id)
            conn.commit()

    # Debates

    def create_debate(
        self,
        proposition: str,
        proposition_context: dict[str, Any] | None = None,
        flow_mode: str = "auto",
        debate_id: str | None = None,
    ) -> DebateRecord:
        debate_id = debate_id or str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO debates (id, proposition, proposition_context, flow_mode)
                VALUES (?, ?, ?, ?)
                """,
                (debate_id, proposition, json.dumps(proposition_context or {}), flow_mode),
            )
            conn.commit()
        logger.info(f"Created debate {debate_id}")
        return DebateRecord(
            id=debate_id, proposition=proposition, proposition_context=dict(proposition_context or {})
        )

    def find_by_id(self, debate_id: str) -> DebateRecord | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM debates WHERE id = ?", (debate_id,)).fetchone()
        return self._row_to_debate(row) if row else None

    def get_flow_mode(self, debate_id: str) -> str:
        with self._get_connection() as conn:
            row = conn.execute("SELECT flow_mode FROM debates WHERE id = ?", (debate_id,)).fetchone()
        if not row:
            raise DebateNotFoundError(debate_id)
        return row["flow_mode"]

    def list_debates(self, limit: int | None = None, offset: int = 0) -> list[DebateRecord]:
        query = "SELECT * FROM debates ORDER BY created_at DESC"
        params: list[Any] = []
        if limit:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_debate(row) for row in rows]

    def update_proposition(
        self, debate_id: str, proposition: str, proposition_context: dict[str, Any]
    ) -> None:
        self._update_debate(
            debate_id,
            "proposition = ?, proposition_context = ?",
            (proposition, json.dumps(proposition_context)),
        )

    def mark_started(self, debate_id: str) -> None:
        self._update_debate(
            debate_id, "status = ?, started_at = ?", (DebateStatus.LIVE.value, _now())
        )

    def update_status(
        self,
        debate_id: str,
        status: DebateStatus,
        current_phase: DebatePhase | None = None,
        current_speaker: Speaker | None = None,
    ) -> None:
        assignments = ["status = ?"]
        params: list[Any] = [status.value]
        if current_phase is not None:
            assignments.append("current_phase = ?")
            params.append(current_phase.value)
        if current_speaker is not None:
            assignments.append("current_speaker = ?")
            params.append(current_speaker.value)
        self._update_debate(debate_id, ", ".join(assignments), tuple(params))

    def set_awaiting_continue(self, debate_id: str, awaiting: bool) -> None:
        self._update_debate(debate_id, "is_awaiting_continue = ?", (int(awaiting),))

    def save_transcript(self, debate_id: str, transcript: dict[str, Any]) -> None:
        self._update_debate(debate_id, "transcript = ?", (json.dumps(transcript),))

    def complete(self, debate_id: str) -> None:
        self._update_debate(
            debate_id,
            "status = ?, completed_at = ?, is_awaiting_continue = 0",
            (DebateStatus.COMPLETED.value, _now()),
        )
        logger.info(f"Debate {debate_id} marked complete")

    def delete_debate(self, debate_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM debates WHERE id = ?", (debate_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        if deleted:
            logger.info(f"Deleted debate {debate_id}")
        return deleted

    @staticmethod
    def _row_to_debate(row: sqlite3.Row) -> DebateRecord:
        return DebateRecord(
            id=row["id"],
            proposition=row["proposition"],
            status=DebateStatus(row["status"]),
            proposition_context=json.loads(row["proposition_context"] or "{}"),
            current_phase=DebatePhase(row["current_phase"]),
            current_speaker=Speaker(row["current_speaker"]),
            is_awaiting_continue=bool(row["is_awaiting_continue"]),
            started_at=_parse_datetime(row["started_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
            transcript=json.loads(row["transcript"]) if row["transcript"] else None,
        )

    # Utterances

    def create_utterance(self, utterance: Utterance) -> Utterance:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO utterances (debate_id, phase, speaker, content, timestamp_ms, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    utterance.debate_id,
                    utterance.phase.value,
                    utterance.speaker.value,
                    utterance.content,
                    utterance.timestamp_ms,
                    json.dumps(utterance.metadata),
                ),
            )
            conn.commit()
            utterance_id = cursor.lastrowid
        if utterance_id is None:
            raise RuntimeError("Failed to get utterance ID from database")

        return Utterance(
            debate_id=utterance.debate_id,
            phase=utterance.phase,
            speaker=utterance.speaker,
            content=utterance.content,
            timestamp_ms=utterance.timestamp_ms,
            metadata=dict(utterance.metadata),
            id=utterance_id,
        )

    def find_utterances(self, debate_id: str) -> list[Utterance]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM utterances WHERE debate_id = ? ORDER BY timestamp_ms, id",
                (debate_id,),
            ).fetchall()
        return [
            Utterance(
                debate_id=row["debate_id"],
                phase=DebatePhase(row["phase"]),
                speaker=Speaker(row["speaker"]),
                content=row["content"],
                timestamp_ms=row["timestamp_ms"],
                metadata=json.loads(row["metadata"] or "{}"),
                id=row["id"],
            )
            for row in rows
        ]

    # Interventions

    def create_intervention(self, intervention: Intervention) -> Intervention:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO interventions (
                    debate_id, intervention_type, content, directed_to, timestamp_ms
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    intervention.debate_id,
                    intervention.intervention_type.value,
                    intervention.content,
                    intervention.directed_to.value if intervention.directed_to else None,
                    intervention.timestamp_ms,
                ),
            )
            conn.commit()
            intervention.id = cursor.lastrowid
        return intervention

    def add_intervention_response(
        self, intervention_id: int, response: str, timestamp_ms: int
    ) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE interventions SET response = ?, response_timestamp_ms = ? WHERE id = ?",
                (response, timestamp_ms, intervention_id),
            )
            conn.commit()

    def find_interventions(self, debate_id: str) -> list[Intervention]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM interventions WHERE debate_id = ? ORDER BY timestamp_ms, id",
                (debate_id,),
            ).fetchall()
        return [
            Intervention(
                debate_id=row["debate_id"],
                content=row["content"],
                timestamp_ms=row["timestamp_ms"],
                intervention_type=InterventionType(row["intervention_type"]),
                directed_to=Speaker(row["directed_to"]) if row["directed_to"] else None,
                response=row["response"],
                response_timestamp_ms=row["response_timestamp_ms"],
                id=row["id"],
            )
            for row in rows
        ]

    # Interruptions

    def create_interruption(
        self,
        debate_id: str,
        scheduled_at_ms: int,
        interrupter: Speaker,
        interrupted_speaker: Speaker,
        trigger_phrase: str | None = None,
        relevance_score: float | None = None,
        contradiction_score: float | None = None,
    ) -> Interruption:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO interruptions (
                    debate_id, scheduled_at_ms, interrupter, interrupted_speaker,
                    trigger_phrase, relevance_score, contradiction_score
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    debate_id,
                    scheduled_at_ms,
                    interrupter.value,
                    interrupted_speaker.value,
                    trigger_phrase,
                    relevance_score,
                    contradiction_score,
                ),
            )
            conn.commit()
            interruption_id = cursor.lastrowid
        if interruption_id is None:
            raise RuntimeError("Failed to get interruption ID from database")

        return Interruption(
            id=interruption_id,
            debate_id=debate_id,
            scheduled_at_ms=scheduled_at_ms,
            interrupter=interrupter,
            interrupted_speaker=interrupted_speaker,
            trigger_phrase=trigger_phrase,
            relevance_score=relevance_score,
            contradiction_score=contradiction_score,
        )

    def fire_interruption(
        self, interruption_id: int, content: str, at_token: int, fired_at_ms: int
    ) -> Interruption | None:
        """Mark a scheduled interruption fired; None if it is not scheduled."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE interruptions
                SET status = ?, interjection_content = ?, interrupted_at_token = ?, fired_at_ms = ?
                WHERE id = ? AND status = ?
                """,
                (
                    InterruptStatus.FIRED.value,
                    content,
                    at_token,
                    fired_at_ms,
                    interruption_id,
                    InterruptStatus.SCHEDULED.value,
                ),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return self.find_interruption(interruption_id)

    def cancel_interruption(self, interruption_id: int, reason: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE interruptions SET status = ?, cancellation_reason = ?
                WHERE id = ? AND status = ?
                """,
                (
                    InterruptStatus.CANCELLED.value,
                    reason,
                    interruption_id,
                    InterruptStatus.SCHEDULED.value,
                ),
            )
            conn.commit()

    def find_interruption(self, interruption_id: int) -> Interruption | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM interruptions WHERE id = ?", (interruption_id,)
            ).fetchone()
        return self._row_to_interruption(row) if row else None

    def find_interruptions(self, debate_id: str) -> list[Interruption]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM interruptions WHERE debate_id = ? ORDER BY scheduled_at_ms, id",
                (debate_id,),
            ).fetchall()
        return [self._row_to_interruption(row) for row in rows]

    @staticmethod
    def _row_to_interruption(row: sqlite3.Row) -> Interruption:
        return Interruption(
            id=row["id"],
            debate_id=row["debate_id"],
            scheduled_at_ms=row["scheduled_at_ms"],
            interrupter=Speaker(row["interrupter"]),
            interrupted_speaker=Speaker(row["interrupted_speaker"]),
            status=InterruptStatus(row["status"]),
            trigger_phrase=row["trigger_phrase"],
            relevance_score=row["relevance_score"],
            contradiction_score=row["contradiction_score"],
            interjection_content=row["interjection_content"],
            interrupted_at_token=row["interrupted_at_token"],
            fired_at_ms=row["fired_at_ms"],
            cancellation_reason=row["cancellation_reason"],
        )


def get_database_path(configured: str | None = None) -> Path:
    """Resolve the database path from configuration."""
    return Path(configured or "debates.db")
