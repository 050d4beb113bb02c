"""Live debate registry for the web API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException

from config.settings import AppConfig, ModelConfig
from debate_engine.agents import (
    ConfiguredPersonaProvider,
    LLMPropositionAgent,
    LLMSpeakerAgent,
)
from debate_engine.core import DebateOrchestrator
from debate_engine.database import DebateStore
from debate_engine.interfaces import PropositionAgent, SpeakerAgent
from debate_engine.interruption import InterruptionEngine, create_interruption_engine
from debate_engine.models import DebateRecord, Intervention, Utterance
from debate_engine.transcript import DebateTranscript
from debate_engine.types import DebateStatus, Speaker
from debate_engine.validation import UtteranceSchemaValidator
from formats import format_registry
from models.manager import ModelManager
from models.rate_limiter import RateLimiter
from web.broadcaster import ConnectionBroadcaster
from web.debate_setup_request import DebateSetupRequest, InterventionRequest

logger = logging.getLogger(__name__)

_MODEL_IDS = {
    Speaker.PRO: "pro",
    Speaker.CON: "con",
    Speaker.MODERATOR: "moderator",
}


@dataclass
class ActiveDebate:
    """In-process handle for a debate created through the API."""

    id: str
    proposition: str
    proposition_context: dict[str, Any] | None
    orchestrator: DebateOrchestrator
    model_manager: ModelManager
    task: asyncio.Task[DebateTranscript | None] | None = None
    error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()


class DebateManager:
    """Creates debates, runs them as background tasks and relays controls."""

    def __init__(
        self,
        config: AppConfig,
        store: DebateStore,
        broadcaster: ConnectionBroadcaster,
        rate_limiter: RateLimiter,
    ):
        self.config = config
        self.store = store
        self.broadcaster = broadcaster
        self.rate_limiter = rate_limiter
        self.active_debates: dict[str, ActiveDebate] = {}

    def _create_model_manager(self, models: dict[str, ModelConfig]) -> ModelManager:
        model_manager = ModelManager(
            self.config.system,
            self.rate_limiter,
            request_timeout_ms=self.config.orchestrator.agent_timeout_ms,
        )
        for model_id, model_config in models.items():
            model_manager.register_model(model_id, model_config)
        return model_manager

    def _create_agents(
        self, model_manager: ModelManager, models: dict[str, ModelConfig]
    ) -> tuple[dict[Speaker, SpeakerAgent], PropositionAgent]:
        """Build speaker agents bound to the debate's registered models."""
        agents: dict[Speaker, SpeakerAgent] = {
            speaker: LLMSpeakerAgent(
                speaker,
                model_manager.client_for(model_id),
                temperature=models[model_id].temperature,
                max_tokens=models[model_id].max_tokens,
            )
            for speaker, model_id in _MODEL_IDS.items()
        }
        proposition_agent = LLMPropositionAgent(model_manager.client_for("moderator"))
        return agents, proposition_agent

    def _create_interruption_engine(
        self, debate_id: str, model_manager: ModelManager, setup: DebateSetupRequest
    ) -> InterruptionEngine | None:
        lively = setup.lively or self.config.lively
        if not lively.enabled:
            return None
        return create_interruption_engine(
            debate_id, lively, model_manager.client_for(lively.evaluation_model), self.store
        )

    async def create_debate(self, setup: DebateSetupRequest) -> DebateRecord:
        """Create a new debate session."""
        if setup.format not in format_registry.list_formats():
            available_formats = ", ".join(format_registry.list_formats())
            raise HTTPException(
                status_code=400,
                detail=f"Invalid debate format: {setup.format}. Available formats: {available_formats}",
            )

        models = setup.models or self.config.models
        flow_mode = setup.flow_mode or self.config.orchestrator.flow_mode
        try:
            model_manager = self._create_model_manager(models)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        record = self.store.create_debate(
            setup.proposition, setup.proposition_context, flow_mode=flow_mode
        )
        agents, proposition_agent = self._create_agents(model_manager, models)

        orchestrator = DebateOrchestrator(
            record.id,
            agents,
            proposition_agent,
            format_registry.get_format(setup.format),
            self.store,
            broadcaster=self.broadcaster,
            validator=UtteranceSchemaValidator(),
            config=self.config.orchestrator.model_copy(update={"flow_mode": flow_mode}),
            lively=setup.lively or self.config.lively,
            interruption_engine=self._create_interruption_engine(record.id, model_manager, setup),
            persona_provider=ConfiguredPersonaProvider(
                {speaker: models[model_id].persona for speaker, model_id in _MODEL_IDS.items()}
            ),
            word_limit=setup.word_limit,
        )

        self.active_debates[record.id] = ActiveDebate(
            id=record.id,
            proposition=setup.proposition,
            proposition_context=setup.proposition_context,
            orchestrator=orchestrator,
            model_manager=model_manager,
        )
        logger.info(f"Created debate {record.id}: {setup.proposition}")
        return record

    def _get_active(self, debate_id: str) -> ActiveDebate:
        if debate_id not in self.active_debates:
            raise HTTPException(status_code=404, detail="Debate not found")
        return self.active_debates[debate_id]

    def _get_running(self, debate_id: str) -> ActiveDebate:
        debate = self._get_active(debate_id)
        if not debate.is_running:
            raise HTTPException(status_code=409, detail="Debate is not running")
        return debate

    async def start_debate(self, debate_id: str) -> None:
        """Start a debate session in the background."""
        debate = self._get_active(debate_id)
        if debate.task is not None:
            raise HTTPException(status_code=409, detail="Debate already started")

        debate.task = asyncio.create_task(self._run_debate(debate))
        self.broadcaster.broadcast(
            debate_id, "debate_started", {"debate_id": debate_id, "proposition": debate.proposition}
        )

    async def _run_debate(self, debate: ActiveDebate) -> DebateTranscript | None:
        try:
            return await debate.orchestrator.start_debate(
                debate.proposition, debate.proposition_context
            )
        except asyncio.CancelledError:
            logger.info(f"Debate task {debate.id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Error running debate {debate.id}: {e}")
            debate.error = str(e)
            self.broadcaster.broadcast(
                debate.id, "debate_error", {"debate_id": debate.id, "error": str(e)}
            )
            return None

    def pause_debate(self, debate_id: str) -> None:
        debate = self._get_running(debate_id)
        if debate.orchestrator.is_paused:
            raise HTTPException(status_code=409, detail="Debate already paused")
        debate.orchestrator.pause()

    def resume_debate(self, debate_id: str) -> None:
        debate = self._get_running(debate_id)
        if not debate.orchestrator.is_paused:
            raise HTTPException(status_code=409, detail="Debate is not paused")
        debate.orchestrator.resume()

    def stop_debate(self, debate_id: str, reason: str | None = None) -> None:
        debate = self._get_running(debate_id)
        debate.orchestrator.stop(reason)

    def continue_debate(self, debate_id: str) -> None:
        debate = self._get_running(debate_id)
        record = self.store.find_by_id(debate_id)
        if record is None or not record.is_awaiting_continue:
            raise HTTPException(status_code=409, detail="Debate is not awaiting continue")
        debate.orchestrator.signal_continue()

    async def intervene(self, debate_id: str, request: InterventionRequest) -> Intervention:
        debate = self._get_active(debate_id)
        if debate.task is None:
            raise HTTPException(status_code=409, detail="Debate has not started")
        if debate.orchestrator.is_stopped:
            raise HTTPException(status_code=409, detail="Debate has been stopped")

        intervention = Intervention(
            debate_id=debate_id,
            content=request.content,
            timestamp_ms=debate.orchestrator.get_elapsed_ms(),
            intervention_type=request.intervention_type,
            directed_to=request.directed_to,
        )
        try:
            return await debate.orchestrator.handle_intervention(intervention)
        except Exception as e:
            logger.error(f"Intervention failed for {debate_id}: {e}")
            raise HTTPException(status_code=502, detail=f"Intervention failed: {e}")

    def get_debate(self, debate_id: str) -> DebateRecord:
        record = self.store.find_by_id(debate_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Debate not found")
        return record

    def list_debates(self, limit: int | None = None, offset: int = 0) -> list[DebateRecord]:
        return self.store.list_debates(limit=limit, offset=offset)

    def delete_debate(self, debate_id: str) -> None:
        """Delete a debate that is not running, with everything recorded for it."""
        debate = self.active_debates.get(debate_id)
        if debate is not None and debate.is_running:
            raise HTTPException(status_code=409, detail="Stop the debate before deleting it")
        if not self.store.delete_debate(debate_id):
            raise HTTPException(status_code=404, detail="Debate not found")

        self.active_debates.pop(debate_id, None)
        self.broadcaster.forget(debate_id)
        logger.info(f"Deleted debate {debate_id}")

    def get_utterances(self, debate_id: str) -> list[Utterance]:
        self.get_debate(debate_id)
        return self.store.find_utterances(debate_id)

    def get_transcript(self, debate_id: str) -> dict[str, Any]:
        record = self.get_debate(debate_id)
        if record.transcript is not None:
            return record.transcript
        if debate_id in self.active_debates and record.status != DebateStatus.CREATED:
            return dict(self.active_debates[debate_id].orchestrator.build_final_transcript())
        raise HTTPException(status_code=404, detail="Transcript not available")

    async def shutdown(self) -> None:
        """Stop every running debate and wait for its task to finish."""
        for debate in list(self.active_debates.values()):
            if not debate.is_running:
                continue
            debate.orchestrator.stop("Server shutting down")
            assert debate.task is not None
            debate.task.cancel()
            try:
                await debate.task
            except asyncio.CancelledError:
                logger.info(f"Debate task {debate.id} cancelled during shutdown")
            except Exception as e:
                logger.warning(f"Debate {debate.id} ended with error during shutdown: {e}")
