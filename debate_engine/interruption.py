"""Live interjection detection, scheduling and firing for lively debates."""

import json
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from config.settings import LivelySettings

from .exceptions import InterruptionPendingError
from .interfaces import GenerationClient, InterruptionRepository
from .models import InterruptCandidate, Interruption
from .types import Speaker

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000

DETECTION_SYSTEM_PROMPT = (
    "You are analyzing debate content for interruption opportunities. Respond only in JSON."
)

DETECTION_PROMPT = """You are analyzing a live debate for potential interruption opportunities.

Current speaker: {current_speaker}
Current content being said:
\"\"\"
{content}
\"\"\"

Other participants who could interrupt: {other_participants}

Analyze if there's a strong opportunity for one of the other participants to interject.
Look for:
1. Factual errors or misrepresentations that could be challenged
2. Logical fallacies that could be pointed out
3. Strong claims that invite immediate rebuttal
4. Dismissive statements that warrant defense
5. Key points that directly contradict known arguments

Respond in JSON format:
{{
  "shouldInterrupt": true/false,
  "interrupter": "pro_advocate" | "con_advocate" | "moderator" | null,
  "relevanceScore": 0.0-1.0,
  "contradictionScore": 0.0-1.0,
  "triggerPhrase": "the specific phrase that triggered this",
  "reason": "brief explanation of why interrupt is warranted"
}}

Only recommend interrupt if relevanceScore >= 0.6 and there's genuine substance to challenge."""

INTERJECTION_PROMPT = """You are {speaker} in a lively debate. You need to make a brief interjection (1-2 sentences only).

The debate topic: {topic}
Your position: {position}

You are interrupting because: {reason}
Trigger phrase you're responding to: "{trigger_phrase}"

Generate a punchy, direct interjection that:
- Is 1-2 sentences maximum (under 40 words)
- Directly challenges the specific point
- Sounds natural as an interruption
- Maintains your persona and position

Your interjection (remember: 1-2 sentences only):"""

_SPEAKER_ALIASES = {
    "pro_advocate": Speaker.PRO,
    "pro": Speaker.PRO,
    "con_advocate": Speaker.CON,
    "con": Speaker.CON,
    "moderator": Speaker.MODERATOR,
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class EvaluationContext:
    """What the engine needs to judge and voice an interjection."""

    debate_id: str
    topic: str
    current_speaker: Speaker
    other_participants: list[Speaker]
    recent_content: str
    debate_elapsed_ms: int = 0
    pro_position: str | None = None
    con_position: str | None = None


@dataclass(frozen=True)
class InterruptEvent:
    """Notification delivered to engine subscribers."""

    event_type: str
    candidate: InterruptCandidate
    interruption_id: int | None = None
    scheduled_at_ms: int | None = None
    interjection: str | None = None
    reason: str | None = None


@dataclass
class FiredInterrupt:
    interjection: str
    interruption: Interruption
    candidate: InterruptCandidate


InterruptListener: TypeAlias = Callable[[InterruptEvent], None]


def parse_interrupter(value: object) -> Speaker | None:
    """Map a free-form interrupter label onto a speaker, or None if unknown."""
    if not isinstance(value, str):
        return None
    return _SPEAKER_ALIASES.get(value.strip().lower())


def _score(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


class InterruptionEngine:
    """Evaluates turn content for interjections and manages the pending slot.

    At most one candidate is pending per debate. Cooldowns and the
    per-minute cap only count interjections that actually fired.
    """

    def __init__(
        self,
        debate_id: str,
        settings: LivelySettings,
        client: GenerationClient,
        repository: InterruptionRepository,
        clock: Callable[[], float] | None = None,
    ):
        self.debate_id = debate_id
        self.settings = settings
        self._client = client
        self._repository = repository
        self._clock = clock or (lambda: time.time() * 1000)

        self._pending_candidate: InterruptCandidate | None = None
        self._pending_interruption_id: int | None = None
        self._last_interrupt_ms: dict[Speaker, float] = {}
        self._interrupts_this_minute = 0
        self._minute_start_ms = self._clock()
        self._is_evaluating = False
        self._listeners: list[InterruptListener] = []

        logger.info(
            f"Interruption engine ready for debate {debate_id} "
            f"(aggression {settings.aggression_level})"
        )

    @property
    def pending_candidate(self) -> InterruptCandidate | None:
        return self._pending_candidate

    def has_pending_interrupt(self) -> bool:
        return self._pending_candidate is not None

    def subscribe(self, listener: InterruptListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: InterruptEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Interrupt listener failed on {event.event_type}: {e}")

    async def evaluate_for_interrupt(self, context: EvaluationContext) -> InterruptCandidate | None:
        """Ask the judgment model whether someone should interject.

        Returns None when an evaluation is already running, the per-minute
        cap is reached, the judgment cannot be used, the adjusted relevance
        is under the threshold, or the chosen interrupter is cooling down.
        """
        if self._is_evaluating:
            return None

        self._is_evaluating = True
        try:
            self._check_minute_reset()
            if self._interrupts_this_minute >= self.settings.max_interrupts_per_minute:
                logger.debug(f"Debate {self.debate_id}: interrupt cap reached for this minute")
                return None

            prompt = DETECTION_PROMPT.format(
                current_speaker=context.current_speaker.display_name,
                content=context.recent_content,
                other_participants=", ".join(s.display_name for s in context.other_participants),
            )
            result = await self._client.complete(
                [
                    {"role": "system", "content": DETECTION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=200,
            )

            judgment = self._parse_judgment(result.content)
            if judgment is None:
                return None

            interrupter, relevance, contradiction, trigger_phrase, reason = judgment
            adjusted = self.apply_aggression_multiplier(relevance)
            if adjusted < self.settings.relevance_threshold:
                logger.debug(
                    f"Debate {self.debate_id}: relevance {adjusted:.2f} below "
                    f"threshold {self.settings.relevance_threshold}"
                )
                return None

            if not self.can_speaker_interrupt(interrupter):
                logger.debug(f"Debate {self.debate_id}: {interrupter.value} is on cooldown")
                return None

            candidate = InterruptCandidate(
                speaker=interrupter,
                relevance_score=relevance,
                contradiction_score=contradiction,
                combined_score=adjusted + contradiction * self.settings.contradiction_boost,
                trigger_phrase=trigger_phrase,
                reason=reason,
            )
            logger.info(
                f"Debate {self.debate_id}: {interrupter.value} may interrupt "
                f"{context.current_speaker.value} (score {candidate.combined_score:.2f})"
            )
            self._emit(InterruptEvent("candidate_detected", candidate))
            return candidate

        except Exception as e:
            logger.error(f"Debate {self.debate_id}: interrupt evaluation failed: {e}")
            return None
        finally:
            self._is_evaluating = False

    def schedule_interrupt(
        self,
        candidate: InterruptCandidate,
        scheduled_at_ms: int,
        interrupted_speaker: Speaker,
    ) -> int:
        """Persist ``candidate`` as the pending interruption and return its id."""
        if self._pending_interruption_id is not None:
            raise InterruptionPendingError(self.debate_id, self._pending_interruption_id)

        interruption = self._repository.create_interruption(
            self.debate_id,
            scheduled_at_ms,
            candidate.speaker,
            interrupted_speaker,
            trigger_phrase=candidate.trigger_phrase,
            relevance_score=candidate.relevance_score,
            contradiction_score=candidate.contradiction_score,
        )
        self._pending_candidate = candidate
        self._pending_interruption_id = interruption.id

        logger.info(
            f"Debate {self.debate_id}: interruption {interruption.id} scheduled "
            f"for {candidate.speaker.value} at {scheduled_at_ms}ms"
        )
        self._emit(
            InterruptEvent(
                "interrupt_scheduled",
                candidate,
                interruption_id=interruption.id,
                scheduled_at_ms=scheduled_at_ms,
            )
        )
        return interruption.id

    async def fire_interrupt(
        self, context: EvaluationContext, at_token: int, fired_at_ms: int
    ) -> FiredInterrupt | None:
        """Generate and persist the pending interjection.

        A generation or persistence failure cancels the pending interruption
        instead of raising.
        """
        if self._pending_candidate is None or self._pending_interruption_id is None:
            logger.warning(f"Debate {self.debate_id}: no pending interrupt to fire")
            return None

        candidate = self._pending_candidate
        interruption_id = self._pending_interruption_id

        try:
            interjection = await self._generate_interjection(candidate, context)
            interruption = self._repository.fire_interruption(
                interruption_id, interjection, at_token, fired_at_ms
            )
            if interruption is None:
                raise RuntimeError(f"Interruption {interruption_id} could not be marked fired")
        except Exception as e:
            logger.error(f"Debate {self.debate_id}: firing interruption {interruption_id} failed: {e}")
            self.cancel_pending_interrupt("Generation failed")
            return None

        self._last_interrupt_ms[candidate.speaker] = self._clock()
        self._interrupts_this_minute += 1
        self._pending_candidate = None
        self._pending_interruption_id = None

        logger.info(
            f"Debate {self.debate_id}: interruption {interruption_id} fired by "
            f"{candidate.speaker.value} ({len(interjection)} chars)"
        )
        self._emit(
            InterruptEvent(
                "interrupt_fired",
                candidate,
                interruption_id=interruption_id,
                interjection=interjection,
            )
        )
        return FiredInterrupt(interjection=interjection, interruption=interruption, candidate=candidate)

    def cancel_pending_interrupt(self, reason: str) -> None:
        if self._pending_candidate is None or self._pending_interruption_id is None:
            return

        candidate = self._pending_candidate
        interruption_id = self._pending_interruption_id
        self._pending_candidate = None
        self._pending_interruption_id = None

        self._repository.cancel_interruption(interruption_id, reason)
        logger.info(f"Debate {self.debate_id}: interruption {interruption_id} cancelled ({reason})")
        self._emit(
            InterruptEvent(
                "interrupt_cancelled", candidate, interruption_id=interruption_id, reason=reason
            )
        )

    def can_speaker_interrupt(self, speaker: Speaker) -> bool:
        return self.get_cooldown_remaining(speaker) == 0

    def get_cooldown_remaining(self, speaker: Speaker) -> int:
        last = self._last_interrupt_ms.get(speaker)
        if last is None:
            return 0
        remaining = self.settings.interrupt_cooldown_ms - (self._clock() - last)
        return max(0, int(remaining))

    def get_interrupts_this_minute(self) -> int:
        self._check_minute_reset()
        return self._interrupts_this_minute

    def apply_aggression_multiplier(self, score: float) -> float:
        return min(1.0, score * self.settings.aggression_multiplier)

    def reset(self) -> None:
        """Forget all cooldowns, counters and the pending slot."""
        self._pending_candidate = None
        self._pending_interruption_id = None
        self._last_interrupt_ms.clear()
        self._interrupts_this_minute = 0
        self._minute_start_ms = self._clock()
        self._is_evaluating = False

    def _check_minute_reset(self) -> None:
        now = self._clock()
        if now - self._minute_start_ms >= MINUTE_MS:
            self._interrupts_this_minute = 0
            self._minute_start_ms = now

    def _parse_judgment(self, content: str) -> tuple[Speaker, float, float, str, str] | None:
        match = _JSON_OBJECT.search(content)
        if not match:
            logger.warning(f"Debate {self.debate_id}: no JSON in interrupt judgment")
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Debate {self.debate_id}: unparseable interrupt judgment: {e}")
            return None
        if not isinstance(parsed, dict) or not parsed.get("shouldInterrupt"):
            return None

        interrupter = parse_interrupter(parsed.get("interrupter"))
        if interrupter is None:
            logger.warning(
                f"Debate {self.debate_id}: unknown interrupter {parsed.get('interrupter')!r}"
            )
            return None

        return (
            interrupter,
            _score(parsed.get("relevanceScore")),
            _score(parsed.get("contradictionScore")),
            str(parsed.get("triggerPhrase") or ""),
            str(parsed.get("reason") or ""),
        )

    async def _generate_interjection(
        self, candidate: InterruptCandidate, context: EvaluationContext
    ) -> str:
        if candidate.speaker == Speaker.PRO:
            position = context.pro_position or "in favor of the proposition"
        elif candidate.speaker == Speaker.CON:
            position = context.con_position or "against the proposition"
        else:
            position = "neutral moderator"

        prompt = INTERJECTION_PROMPT.format(
            speaker=candidate.speaker.display_name,
            topic=context.topic,
            position=position,
            reason=candidate.reason or candidate.trigger_phrase,
            trigger_phrase=candidate.trigger_phrase,
        )
        result = await self._client.complete(
            [{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=self.settings.interjection_max_tokens,
        )

        interjection = result.content.strip()
        if len(interjection) >= 2 and interjection[0] == interjection[-1] and interjection[0] in "\"'":
            interjection = interjection[1:-1].strip()
        if not interjection:
            raise ValueError("Empty interjection")
        return interjection


def create_interruption_engine(
    debate_id: str,
    settings: LivelySettings,
    client: GenerationClient,
    repository: InterruptionRepository,
) -> InterruptionEngine:
    return InterruptionEngine(debate_id, settings, client, repository)
