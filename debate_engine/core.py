"""Core debate orchestrator: drives a debate through its phases and turns."""

from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from typing import Any
import asyncio
import logging
import time

from config.settings import LivelySettings, OrchestratorConfig
from .agents import SystemAgent
from .exceptions import AgentCallError, DebateNotFoundError, InvalidPropositionError
from .interfaces import (
    Broadcaster,
    CitationProvider,
    DebateStoreProtocol,
    PersonaProvider,
    PropositionAgent,
    SchemaValidator,
    SpeakerAgent,
    TurnPlanProvider,
)
from .interruption import EvaluationContext, InterruptEvent, InterruptionEngine
from .models import AgentContext, Intervention, NormalizedProposition, Turn, Utterance
from .state_machine import DebateStateMachine
from .transcript import DebateTranscript, build_transcript
from .types import (
    DEBATE_PHASES,
    DebatePhase,
    DebateStatus,
    InterventionType,
    PhaseCompleteEventData,
    PhaseStartEventData,
    Speaker,
    UtteranceEventData,
    get_next_phase,
)

logger = logging.getLogger(__name__)

INTERJECTION_PROMPT_TYPE = "interjection"

_AGENT_ROLES = {
    Speaker.PRO: "pro_advocate",
    Speaker.CON: "con_advocate",
    Speaker.MODERATOR: "moderator",
}

_FORWARDED_INTERRUPT_EVENTS = ("interrupt_scheduled", "interrupt_fired", "interrupt_cancelled")


class DebateOrchestrator:
    """Runs one debate from proposition to transcript.

    Execution is cooperative: pause, stop and step-mode continue are plain
    flags checked at phase boundaries, turn boundaries and inside every
    wait loop, so each takes effect within one polling interval.
    """

    def __init__(
        self,
        debate_id: str,
        agents: dict[Speaker, SpeakerAgent],
        proposition_agent: PropositionAgent,
        turn_plans: TurnPlanProvider,
        store: DebateStoreProtocol,
        broadcaster: Broadcaster | None = None,
        validator: SchemaValidator | None = None,
        config: OrchestratorConfig | None = None,
        lively: LivelySettings | None = None,
        interruption_engine: InterruptionEngine | None = None,
        citation_provider: CitationProvider | None = None,
        persona_provider: PersonaProvider | None = None,
        word_limit: int = 200,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.debate_id = debate_id
        self.agents: dict[Speaker, SpeakerAgent] = {Speaker.SYSTEM: SystemAgent(), **agents}
        self.proposition_agent = proposition_agent
        self.turn_plans = turn_plans
        self.store = store
        self.broadcaster = broadcaster
        self.validator = validator
        self.config = config or OrchestratorConfig()
        self.lively = lively or LivelySettings()
        self.interruption_engine = interruption_engine
        self.citation_provider = citation_provider
        self.persona_provider = persona_provider
        self.word_limit = word_limit

        self._clock = clock
        self._sleep = sleep
        self.state_machine = DebateStateMachine(debate_id, store, clock=clock)

        self.proposition: str | None = None
        self.proposition_context: dict[str, Any] = {}
        self._start_time: float | None = None
        self._frozen_elapsed_ms: int | None = None
        self._last_timestamp_ms = 0
        self._executing_phase: DebatePhase | None = None
        self._is_paused = False
        self._is_stopped = False

        if interruption_engine is not None:
            interruption_engine.subscribe(self._forward_interrupt_event)

    @property
    def is_paused(self) -> bool:
        return self._is_paused

    @property
    def is_stopped(self) -> bool:
        return self._is_stopped

    def get_elapsed_ms(self) -> int:
        """Milliseconds since the debate started; frozen once stopped or completed."""
        if self._frozen_elapsed_ms is not None:
            return self._frozen_elapsed_ms
        if self._start_time is None:
            return 0
        return int((self._clock() - self._start_time) * 1000)

    def _next_timestamp_ms(self) -> int:
        # Never earlier than the previous utterance.
        self._last_timestamp_ms = max(self._last_timestamp_ms, self.get_elapsed_ms())
        return self._last_timestamp_ms

    def _broadcast(self, event_type: str, payload: dict[str, Any]) -> None:
        if not self.config.broadcast_events or self.broadcaster is None:
            return
        try:
            self.broadcaster.broadcast(self.debate_id, event_type, payload)
        except Exception as e:
            logger.warning(f"Broadcast of {event_type} for {self.debate_id} failed: {e}")

    async def start_debate(
        self, raw_proposition: str, proposition_context: dict[str, Any] | None = None
    ) -> DebateTranscript:
        """Run the whole debate and return its final transcript."""
        logger.info(f"Starting debate {self.debate_id}: {raw_proposition!r}")

        try:
            self._start_time = self._clock()

            normalized = await self.normalize_proposition(raw_proposition, proposition_context)
            self.proposition = normalized.normalized_question
            self.proposition_context = normalized.context
            self.store.update_proposition(self.debate_id, self.proposition, self.proposition_context)

            # A pause requested while the proposition was being normalized holds the opening.
            if self._is_paused and not self._is_stopped:
                await self._wait_for_resume()
            if self._is_stopped:
                return self._save_partial_transcript()

            self.state_machine.initialize()
            self.store.mark_started(self.debate_id)

            await self.execute_all_phases(self.proposition)

            if self._is_paused and not self._is_stopped:
                await self._wait_for_resume()
            if self._is_stopped:
                return self._save_partial_transcript()

            transcript = await self.complete_debate()
            logger.info(f"Debate {self.debate_id} completed successfully")
            return transcript

        except Exception as e:
            if self._is_stopped:
                logger.info(
                    f"Debate {self.debate_id} stopped while a call was failing: {type(e).__name__}: {e}"
                )
                return self._save_partial_transcript()
            logger.error(f"Debate {self.debate_id} failed: {type(e).__name__}: {e}")
            self.state_machine.error(str(e) or type(e).__name__)
            raise

    def _save_partial_transcript(self) -> DebateTranscript:
        transcript = self.build_final_transcript()
        self.store.save_transcript(self.debate_id, dict(transcript))
        logger.info(f"Debate {self.debate_id} stopped; partial transcript saved")
        return transcript

    async def normalize_proposition(
        self, raw_proposition: str, context: dict[str, Any] | None = None
    ) -> NormalizedProposition:
        normalized = await self.proposition_agent.normalize_proposition(raw_proposition, context)
        validation = await self.proposition_agent.validate_proposition(normalized.normalized_question)
        if not validation.valid:
            logger.warning(f"Rejected proposition {raw_proposition!r}: {validation.reason}")
            raise InvalidPropositionError(raw_proposition, validation.reason or "Unknown reason")

        logger.info(f"Proposition normalized: {normalized.normalized_question!r}")
        return normalized

    async def execute_all_phases(self, proposition: str) -> None:
        for phase in DEBATE_PHASES:
            if not await self._checkpoint(f"before {phase.value}"):
                return

            logger.info(f"Debate {self.debate_id}: executing phase {phase.value}")
            await self.execute_phase(phase, proposition)

            if self._is_stopped:
                logger.info(f"Debate {self.debate_id} stopped after {phase.value}")
                return

            next_phase = get_next_phase(phase)
            if next_phase is not None:
                # A pause during the last turn must end before the phase can advance.
                if not await self._checkpoint(f"before transition to {next_phase.value}"):
                    return
                self.state_machine.transition(next_phase)

    async def execute_phase(self, phase: DebatePhase, proposition: str) -> None:
        plan = self.turn_plans.get_phase_execution_plan(phase)
        self._executing_phase = phase

        start_data: PhaseStartEventData = {
            "phase": phase.value,
            "phase_name": plan.metadata.name,
            "turn_count": len(plan.turns),
            "expected_duration_ms": plan.metadata.expected_duration_ms,
        }
        self._broadcast("phase_start", dict(start_data))

        turns_executed = 0
        for turn in plan.turns:
            if not await self._checkpoint(f"during {phase.value}, turn {turn.turn_number}"):
                return
            await self.execute_turn(turn, proposition)
            turns_executed += 1

        if self._is_stopped:
            return

        complete_data: PhaseCompleteEventData = {
            "phase": phase.value,
            "phase_name": plan.metadata.name,
            "turns_executed": turns_executed,
        }
        self._broadcast("phase_complete", dict(complete_data))
        logger.info(f"Debate {self.debate_id}: phase {phase.value} complete ({turns_executed} turns)")

    async def execute_turn(self, turn: Turn, proposition: str) -> None:
        phase = self._executing_phase or self.state_machine.current_phase
        logger.debug(f"Debate {self.debate_id}: {turn.speaker.value} {turn.prompt_type} (turn {turn.turn_number})")

        self.state_machine.set_speaker(turn.speaker)
        started = self._clock()
        context = await self.build_agent_context(turn.speaker, proposition, phase)
        content = await self.call_agent(turn.speaker, turn.prompt_type, context)

        utterance = Utterance(
            debate_id=self.debate_id,
            phase=phase,
            speaker=turn.speaker,
            content=content,
            timestamp_ms=self._next_timestamp_ms(),
            metadata={
                "promptType": turn.prompt_type,
                "turnNumber": turn.turn_number,
                "generationTimeMs": int((self._clock() - started) * 1000),
                "model": self.agents[turn.speaker].model_name or "unknown",
            },
        )
        recorded = await self.record_utterance(utterance)

        if recorded is not None and turn.speaker in (Speaker.PRO, Speaker.CON):
            await self._maybe_interrupt(recorded, proposition)

    async def call_agent(self, speaker: Speaker, prompt_type: str, context: AgentContext) -> str:
        """Generate a turn, retrying with a fixed delay between attempts."""
        agent = self.agents.get(speaker)
        if agent is None:
            raise AgentCallError(speaker, prompt_type, 0, LookupError(f"No agent for {speaker.value}"))

        # Provider requests carry agent_timeout_ms themselves; rate limit waits are not timed.
        last_error: BaseException | None = None
        for attempt in range(1, self.config.max_retries + 1):
            try:
                return await agent.generate(prompt_type, context)
            except Exception as e:
                last_error = e
                if self._is_stopped:
                    logger.info(
                        f"Debate {self.debate_id} stopped; not retrying {speaker.value} ({prompt_type})"
                    )
                    break
                if attempt == self.config.max_retries:
                    break
                logger.warning(
                    f"Agent call for {speaker.value} ({prompt_type}) failed on attempt "
                    f"{attempt}/{self.config.max_retries}: {type(e).__name__}: {e}; retrying"
                )
                await self._sleep(self.config.retry_delay_ms / 1000)

        assert last_error is not None
        if not self._is_stopped:
            logger.error(f"Agent call for {speaker.value} ({prompt_type}) failed after all retries")
        raise AgentCallError(speaker, prompt_type, attempt, last_error) from last_error

    async def build_agent_context(
        self, speaker: Speaker, proposition: str, phase: DebatePhase | None = None
    ) -> AgentContext:
        utterances = self.store.find_utterances(self.debate_id)
        window = self.config.history_window
        recent = utterances[-window:] if window else []

        citations: list[str] = []
        if self.citation_provider is not None and speaker in (Speaker.PRO, Speaker.CON):
            try:
                citations = await self.citation_provider.retrieve(proposition, utterances[-3:])
            except Exception as e:
                logger.error(f"Citation retrieval failed for {self.debate_id}: {e}")

        persona = self.persona_provider.get_persona(speaker) if self.persona_provider else None

        return AgentContext(
            debate_id=self.debate_id,
            current_phase=phase or self.state_machine.current_phase,
            speaker=speaker,
            proposition=proposition,
            previous_utterances=recent,
            proposition_context=self.proposition_context,
            persona=persona,
            citations=citations,
            word_limit=self.word_limit,
        )

    async def record_utterance(self, utterance: Utterance) -> Utterance | None:
        """Validate, persist and broadcast an utterance.

        Returns the stored utterance, or None when the debate was stopped
        before it could be recorded.
        """
        if self._is_stopped:
            logger.info(f"Debate {self.debate_id} stopped; discarding {utterance.speaker.value} utterance")
            return None

        if self.config.validate_utterances and self.validator is not None:
            validation = self.validator.validate_utterance(utterance)
            if not validation.valid:
                logger.warning(f"Utterance validation failed for {self.debate_id}: {validation.errors}")
                utterance = replace(
                    utterance, metadata={**utterance.metadata, "warnings": list(validation.errors)}
                )

        persisted = self.store.create_utterance(utterance)
        logger.info(
            f"Debate {self.debate_id}: recorded utterance {persisted.id} "
            f"({persisted.speaker.value}, {persisted.phase.value}, {persisted.timestamp_ms}ms)"
        )

        event: UtteranceEventData = {
            "id": persisted.id or 0,
            "timestamp_ms": persisted.timestamp_ms,
            "phase": persisted.phase.value,
            "speaker": persisted.speaker.value,
            "content": persisted.content,
            "metadata": persisted.metadata,
        }
        self._broadcast("utterance", dict(event))

        if self.config.flow_mode == "step":
            await self._wait_for_continue(persisted.phase, persisted.speaker)
        return persisted

    async def _wait_for_continue(self, phase: DebatePhase, speaker: Speaker) -> None:
        logger.info(f"Debate {self.debate_id}: step mode, waiting for continue")
        self.store.set_awaiting_continue(self.debate_id, True)
        self._broadcast(
            "awaiting_continue",
            {
                "debate_id": self.debate_id,
                "current_phase": phase.value,
                "current_speaker": speaker.value,
                "timestamp": datetime.now().isoformat(),
            },
        )

        interval_s = self.config.step_poll_interval_ms / 1000
        while not self._is_stopped:
            debate = self.store.find_by_id(self.debate_id)
            if debate is None or debate.status in (DebateStatus.COMPLETED, DebateStatus.ERROR):
                break
            if not debate.is_awaiting_continue:
                logger.info(f"Debate {self.debate_id}: continue received")
                break
            await self._sleep(interval_s)

    def signal_continue(self) -> None:
        """Release a step-mode wait."""
        self.store.set_awaiting_continue(self.debate_id, False)

    async def _checkpoint(self, where: str) -> bool:
        """Honour pause and stop; returns False if the debate must stop."""
        if self._is_stopped:
            logger.info(f"Debate {self.debate_id} stopped {where}")
            return False
        if self._is_paused:
            logger.info(f"Debate {self.debate_id} paused {where}, waiting")
            await self._wait_for_resume()
            if self._is_stopped:
                logger.info(f"Debate {self.debate_id} stopped while paused {where}")
                return False
        return True

    async def _wait_for_resume(self) -> None:
        interval_s = self.config.pause_poll_interval_ms / 1000
        while self._is_paused and not self._is_stopped:
            await self._sleep(interval_s)

    def pause(self) -> None:
        if self._is_stopped or self._is_paused:
            logger.warning(f"Ignoring pause for debate {self.debate_id} (stopped={self._is_stopped})")
            return
        logger.info(f"Pausing debate {self.debate_id}")
        self.state_machine.pause()
        self._is_paused = True
        self._broadcast(
            "debate_paused",
            {"debate_id": self.debate_id, "paused_at": datetime.now().isoformat()},
        )

    def resume(self) -> None:
        if self._is_stopped or not self._is_paused:
            logger.warning(f"Ignoring resume for debate {self.debate_id} (stopped={self._is_stopped})")
            return
        logger.info(f"Resuming debate {self.debate_id}")
        self.state_machine.resume()
        self._is_paused = False
        self._broadcast(
            "debate_resumed",
            {"debate_id": self.debate_id, "resumed_at": datetime.now().isoformat()},
        )

    def stop(self, reason: str | None = None) -> None:
        """Stop the debate; nothing is recorded after this returns."""
        if self._is_stopped:
            return
        logger.info(f"Stopping debate {self.debate_id}: {reason or 'User stopped debate'}")
        self._is_stopped = True
        self._frozen_elapsed_ms = self.get_elapsed_ms()

        if self.interruption_engine is not None:
            self.interruption_engine.cancel_pending_interrupt("Debate stopped")

        self.store.update_status(self.debate_id, DebateStatus.COMPLETED)
        self._broadcast(
            "debate_stopped",
            {
                "debate_id": self.debate_id,
                "stopped_at": datetime.now().isoformat(),
                "reason": reason or "User stopped debate",
                "total_duration_ms": self._frozen_elapsed_ms,
            },
        )

    async def handle_intervention(self, intervention: Intervention) -> Intervention:
        """Answer a user intervention from the targeted speaker (Moderator by default)."""
        logger.info(
            f"Debate {self.debate_id}: {intervention.intervention_type.value} intervention "
            f"for {(intervention.directed_to or Speaker.MODERATOR).value}"
        )

        if intervention.intervention_type == InterventionType.PAUSE_REQUEST and not self._is_paused:
            self.pause()

        speaker = intervention.directed_to or Speaker.MODERATOR
        agent = self.agents.get(speaker) or self.agents[Speaker.MODERATOR]
        created = self.store.create_intervention(intervention)
        if created.id is None:
            raise RuntimeError("Intervention was not assigned an id")

        context = await self.build_agent_context(speaker, self.proposition or "")
        response = await agent.respond_to_intervention(intervention.content, context)

        response_ts = self._next_timestamp_ms()
        self.store.add_intervention_response(created.id, response, response_ts)
        created.response = response
        created.response_timestamp_ms = response_ts

        self._broadcast(
            "intervention_response",
            {
                "intervention_id": created.id,
                "speaker": speaker.value,
                "response": response,
                "timestamp_ms": response_ts,
            },
        )
        return created

    async def complete_debate(self) -> DebateTranscript:
        self.state_machine.complete()
        self._frozen_elapsed_ms = self.get_elapsed_ms()

        transcript = self.build_final_transcript()
        self.store.save_transcript(self.debate_id, dict(transcript))
        self.store.complete(self.debate_id)

        self._broadcast(
            "debate_complete",
            {
                "debate_id": self.debate_id,
                "completed_at": datetime.now().isoformat(),
                "total_duration_ms": self._frozen_elapsed_ms,
            },
        )
        return transcript

    def build_final_transcript(self) -> DebateTranscript:
        debate = self.store.find_by_id(self.debate_id)
        if debate is None:
            raise DebateNotFoundError(self.debate_id)

        return build_transcript(
            debate,
            self.store.find_utterances(self.debate_id),
            self.store.find_interventions(self.debate_id),
            total_duration_ms=self.get_elapsed_ms(),
            agent_models={
                role: self.agents[speaker].model_name
                for speaker, role in _AGENT_ROLES.items()
                if speaker in self.agents
            },
        )

    async def _maybe_interrupt(self, utterance: Utterance, proposition: str) -> None:
        engine = self.interruption_engine
        if engine is None or not self.lively.enabled or self._is_stopped:
            return
        if engine.has_pending_interrupt():
            return

        context = EvaluationContext(
            debate_id=self.debate_id,
            topic=proposition,
            current_speaker=utterance.speaker,
            other_participants=[s for s in _AGENT_ROLES if s != utterance.speaker],
            recent_content=utterance.content,
            debate_elapsed_ms=utterance.timestamp_ms,
        )
        candidate = await engine.evaluate_for_interrupt(context)
        if candidate is None or self._is_stopped:
            return

        engine.schedule_interrupt(candidate, self.get_elapsed_ms(), utterance.speaker)
        fired = await engine.fire_interrupt(
            context, at_token=len(utterance.content.split()), fired_at_ms=self.get_elapsed_ms()
        )
        if fired is None:
            return

        interjector = fired.candidate.speaker
        await self.record_utterance(
            Utterance(
                debate_id=self.debate_id,
                phase=utterance.phase,
                speaker=interjector,
                content=fired.interjection,
                timestamp_ms=self._next_timestamp_ms(),
                metadata={
                    "promptType": INTERJECTION_PROMPT_TYPE,
                    "interruptionId": fired.interruption.id,
                    "interruptedSpeaker": utterance.speaker.value,
                    "triggerPhrase": fired.candidate.trigger_phrase,
                    "model": self.agents[interjector].model_name if interjector in self.agents else "unknown",
                },
            )
        )

    def _forward_interrupt_event(self, event: InterruptEvent) -> None:
        if event.event_type not in _FORWARDED_INTERRUPT_EVENTS:
            return
        self._broadcast(
            event.event_type,
            {
                "interruption_id": event.interruption_id,
                "interrupter": event.candidate.speaker.value,
                "trigger_phrase": event.candidate.trigger_phrase,
                "combined_score": event.candidate.combined_score,
                "scheduled_at_ms": event.scheduled_at_ms,
                "interjection": event.interjection,
                "reason": event.reason,
            },
        )
