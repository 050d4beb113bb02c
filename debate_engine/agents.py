"""LLM-backed speaker and proposition agents."""

import json
import logging
import re

from .interfaces import GenerationClient
from .models import AgentContext, NormalizedProposition, PropositionValidation, Utterance
from .types import Speaker

logger = logging.getLogger(__name__)

# Rough estimate: 1 token ≈ 0.75 words
TOKENS_PER_WORD = 1.33

PROMPT_INSTRUCTIONS: dict[str, str] = {
    "moderator_introduction": (
        "Welcome the audience, introduce the question being debated and the two advocates. "
        "Stay neutral and do not argue either side."
    ),
    "opening_statement": "Present your opening arguments clearly and persuasively.",
    "constructive_argument": (
        "Develop a new line of argument for your side, supported by evidence and reasoning."
    ),
    "cross_examination_question": (
        "Ask your opponent one or two pointed questions that expose weaknesses in their case."
    ),
    "cross_examination_response": (
        "Answer the questions you were just asked directly, then defend your position."
    ),
    "rebuttal": "Address the opponent's arguments and strengthen your position.",
    "closing_statement": "Summarize your case and make your final persuasive appeal.",
    "moderator_synthesis": (
        "Summarize the strongest points made by each side, identify where they truly disagree, "
        "and note what evidence would resolve it. Do not declare a winner."
    ),
}

_ROLE_GUIDANCE = {
    Speaker.PRO: "You ARE the Pro Advocate. You support the proposition and believe it is correct.",
    Speaker.CON: "You ARE the Con Advocate. You oppose the proposition and believe it is wrong.",
    Speaker.MODERATOR: "You ARE the Moderator. You are neutral and keep the debate fair and focused.",
}

SYSTEM_MESSAGES = {
    "moderator_introduction": "The debate is starting.",
    "moderator_synthesis": "The debate has concluded.",
}


def _base_system_prompt(context: AgentContext) -> str:
    return f"""You are participating in a live debate about: "{context.proposition}"

WORD LIMIT: {context.word_limit} words per response

GENERAL RULES:
1. Stay focused on the proposition
2. Respect the word limit
3. Provide evidence and reasoning
4. Address the other side's arguments
5. Maintain a respectful tone

RESPONSE FORMAT:
- Speak directly as your assigned role without any labels, prefixes, or announcements
- Use plain text without markdown formatting (avoid **bold**, *italics*, # headers, bullet points)
- Write in natural conversational style as if speaking live to an audience"""


def _history_line(utterance: Utterance, speaker: Speaker) -> dict[str, str]:
    if utterance.speaker == speaker:
        return {"role": "assistant", "content": utterance.content}
    return {"role": "user", "content": f"{utterance.speaker.display_name}: {utterance.content}"}


def clean_model_response(response: str) -> str:
    """Strip echoed role labels and markdown from a model response."""
    cleaned = response.strip()

    label_patterns = [
        r"^(?:pro|con)\s+advocate[\:\-\s]+",
        r"^moderator[\:\-\s]+",
        r"^(?:opening|rebuttal|closing)\s+(?:statement|argument)[\:\-\s]*",
        r"^\[.*?\]:\s*",
    ]
    for pattern in label_patterns:
        cleaned = re.sub(pattern, "", cleaned, flags=re.IGNORECASE).strip()

    cleaned = re.sub(r"^#{1,6}\s+", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"\*\*([^*]+)\*\*", r"\1", cleaned)
    cleaned = re.sub(r"\*([^*]+)\*", r"\1", cleaned)
    cleaned = re.sub(r"^\*+\s*", "", cleaned, flags=re.MULTILINE)

    if response.strip() and not cleaned.strip():
        logger.warning(f"Response was cleaned to empty. Original: {response!r}")
    return cleaned.strip()


class LLMSpeakerAgent:
    """Speaks for one debate role through a generation client."""

    def __init__(
        self,
        speaker: Speaker,
        client: GenerationClient,
        temperature: float = 0.7,
        max_tokens: int = 400,
    ):
        self.speaker = speaker
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model_name(self) -> str:
        return self._client.model_name

    def build_messages(self, instruction: str, context: AgentContext) -> list[dict[str, str]]:
        system_prompt = f"{_base_system_prompt(context)}\n\nYOUR ROLE: {_ROLE_GUIDANCE[self.speaker]}"
        if context.persona:
            system_prompt += f"\nYOUR PERSONA: {context.persona}"
        if context.proposition_context:
            background = json.dumps(context.proposition_context, ensure_ascii=False)
            system_prompt += f"\nBACKGROUND: {background}"

        messages = [{"role": "system", "content": system_prompt}]
        for utterance in context.previous_utterances:
            messages.append(_history_line(utterance, self.speaker))

        turn_prompt = f"Now speak as the {self.speaker.display_name}. {instruction}"
        if context.citations:
            sources = "\n".join(f"- {c}" for c in context.citations)
            turn_prompt += f"\n\nYou may draw on these sources:\n{sources}"
        turn_prompt += f"\nStay under {context.word_limit} words."
        messages.append({"role": "user", "content": turn_prompt})
        return messages

    def _token_budget(self, context: AgentContext) -> int:
        return min(self._max_tokens, int(context.word_limit * TOKENS_PER_WORD))

    async def generate(self, prompt_type: str, context: AgentContext) -> str:
        instruction = PROMPT_INSTRUCTIONS.get(prompt_type)
        if instruction is None:
            logger.warning(f"Unknown prompt type '{prompt_type}' for {self.speaker.value}, using generic instruction")
            instruction = "Participate according to the debate format."

        result = await self._client.complete(
            self.build_messages(instruction, context),
            temperature=self._temperature,
            max_tokens=self._token_budget(context),
        )
        content = clean_model_response(result.content)
        if not content:
            raise ValueError(f"{self.speaker.display_name} returned an empty response")
        return content

    async def respond_to_intervention(self, content: str, context: AgentContext) -> str:
        instruction = (
            f'An audience member has interjected: "{content}". '
            "Respond to it directly and briefly, from your role."
        )
        result = await self._client.complete(
            self.build_messages(instruction, context),
            temperature=self._temperature,
            max_tokens=self._token_budget(context),
        )
        return clean_model_response(result.content)


class SystemAgent:
    """The System speaker; emits fixed notices without calling a model."""

    @property
    def model_name(self) -> str:
        return "system"

    async def generate(self, prompt_type: str, context: AgentContext) -> str:
        return SYSTEM_MESSAGES.get(prompt_type, f"System notice: {prompt_type.replace('_', ' ')}.")

    async def respond_to_intervention(self, content: str, context: AgentContext) -> str:
        return "Your message has been received."


NORMALIZE_PROMPT = """Rewrite the following proposition as a single neutral, debatable yes/no question.

Proposition: {proposition}
{extra}
Respond in JSON format:
{{
  "normalizedQuestion": "the question",
  "context": {{"category": "short topic category", "keyTerms": ["term", "..."]}}
}}"""

VALIDATE_PROMPT = """Decide whether the following question can be debated by two sides with reasonable arguments.
Reject questions that are purely factual, nonsensical, or harmful.

Question: {question}

Respond in JSON format:
{{"valid": true/false, "reason": "brief explanation"}}"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _extract_json(content: str) -> dict | None:
    match = _JSON_OBJECT.search(content)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class LLMPropositionAgent:
    """Normalizes and vets propositions through a generation client."""

    def __init__(self, client: GenerationClient):
        self._client = client

    async def normalize_proposition(
        self, raw_proposition: str, context: dict | None = None
    ) -> NormalizedProposition:
        extra = f"Additional context: {json.dumps(context)}\n" if context else ""
        result = await self._client.complete(
            [{"role": "user", "content": NORMALIZE_PROMPT.format(proposition=raw_proposition, extra=extra)}],
            temperature=0.2,
            max_tokens=300,
        )

        parsed = _extract_json(result.content)
        question = parsed.get("normalizedQuestion") if parsed else None
        if not isinstance(question, str) or not question.strip():
            # Fall back to the raw text; validation still gets the final say.
            logger.warning(f"Could not parse normalized proposition, using raw text: {raw_proposition!r}")
            return NormalizedProposition(normalized_question=raw_proposition.strip(), context=dict(context or {}))

        merged = dict(context or {})
        if isinstance(parsed.get("context"), dict):
            merged.update(parsed["context"])
        return NormalizedProposition(normalized_question=question.strip(), context=merged)

    async def validate_proposition(self, question: str) -> PropositionValidation:
        result = await self._client.complete(
            [{"role": "user", "content": VALIDATE_PROMPT.format(question=question)}],
            temperature=0.0,
            max_tokens=150,
        )
        parsed = _extract_json(result.content)
        if parsed is None or "valid" not in parsed:
            return PropositionValidation(valid=False, reason="Could not assess proposition")
        return PropositionValidation(valid=bool(parsed["valid"]), reason=parsed.get("reason"))


class ConfiguredPersonaProvider:
    """Personas taken from the per-speaker model configuration."""

    def __init__(self, personas: dict[Speaker, str | None]):
        self._personas = personas

    def get_persona(self, speaker: Speaker) -> str | None:
        return self._personas.get(speaker)
