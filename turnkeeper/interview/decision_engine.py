"""
Dialogue policy client: decides the interviewer's next utterance.
"""
import asyncio
import logging
from typing import Dict, List, Tuple, Optional

from pydantic import ValidationError

from .errors import PolicyInvalidInputError, PolicyUnavailableError
from .models import InterviewContext, Turn
from .prompts import InterviewPrompts, PromptFormatter
from .schemas import PolicyRequest, PolicyResponse
from ..config import SILENCE_MARKER, OPENING_MARKER, LLM_TEMPERATURE, MAX_OUTPUT_TOKENS
from ..infrastructure.llm import VertexRestClient, LLMRequestError

logger = logging.getLogger("policy_client")


class PromptEngine:
    """Turns a policy request into a system instruction and chat messages."""

    def build_messages(self, request: PolicyRequest) -> Tuple[str, List[Dict[str, str]]]:
        """
        Build the model conversation for a request.

        Args:
            request: Validated policy request

        Returns:
            Tuple of (system_instruction, messages) where messages alternate
            between "user" and "model" roles and end with a "user" entry
        """
        ctx = request.context
        stage = InterviewPrompts.interview_stage(request.human_turn_count())
        system_instruction = InterviewPrompts.system_prompt(
            role=ctx.role,
            level=ctx.level,
            interview_type=ctx.type,
            tech_stack=ctx.tech_stack,
            candidate_name=ctx.candidate_name,
            guiding_questions=ctx.guiding_questions,
            stage=stage,
        )

        if request.input == SILENCE_MARKER:
            system_instruction += "\n\n" + InterviewPrompts.silence_instructions()
            user_text = InterviewPrompts.silence_user_message()
        elif request.input == OPENING_MARKER:
            system_instruction += "\n\n" + InterviewPrompts.opening_instructions()
            user_text = InterviewPrompts.opening_user_message()
        else:
            user_text = request.input

        messages: List[Dict[str, str]] = []
        for turn in request.history:
            role = "model" if turn.speaker == "system" else "user"
            self._add_message(messages, role, turn.text)
        self._add_message(messages, "user", user_text)

        # Gemini expects the conversation to open with a user turn
        if messages[0]["role"] != "user":
            messages.insert(0, {"role": "user", "text": InterviewPrompts.opening_user_message()})

        logger.debug(f"Built prompt: stage={stage}, {len(messages)} messages")
        return system_instruction, messages

    @staticmethod
    def _add_message(messages: List[Dict[str, str]], role: str, text: str) -> None:
        text = text.strip()
        if not text:
            return
        if messages and messages[-1]["role"] == role:
            messages[-1]["text"] = f"{messages[-1]['text']}\n{text}"
        else:
            messages.append({"role": role, "text": text})


class DialoguePolicyClient:
    """
    Stateless request/response boundary to the reasoning service.

    All conversational memory lives in the transcript passed to each call.
    """

    def __init__(self, llm_client: VertexRestClient,
                 prompt_engine: Optional[PromptEngine] = None,
                 temperature: float = LLM_TEMPERATURE,
                 max_output_tokens: int = MAX_OUTPUT_TOKENS):
        self.llm_client = llm_client
        self.prompt_engine = prompt_engine or PromptEngine()
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def next_utterance(self, context: InterviewContext, transcript: List[Turn], new_input: str) -> str:
        """
        Ask the reasoning service for the interviewer's next utterance.

        Args:
            context: Interview context (role, level, type, tech stack, questions)
            transcript: Ordered turns so far
            new_input: Human text, or the silence/opening marker

        Returns:
            Cleaned utterance ready to be spoken

        Raises:
            PolicyInvalidInputError: If the input is empty or rejected by the service
            PolicyUnavailableError: On network/service faults or an empty reply
        """
        try:
            request = PolicyRequest.build(context, transcript, new_input)
        except ValidationError as e:
            raise PolicyInvalidInputError(f"Invalid policy request: {e.errors()[0]['msg']}") from e

        system_instruction, messages = self.prompt_engine.build_messages(request)

        try:
            raw_response = await asyncio.to_thread(
                self.llm_client.generate_chat,
                messages,
                system_instruction,
                self.temperature,
                self.max_output_tokens,
            )
        except LLMRequestError as e:
            if e.status_code == 400:
                raise PolicyInvalidInputError(str(e)) from e
            raise PolicyUnavailableError(str(e)) from e
        except Exception as e:
            raise PolicyUnavailableError(f"Policy request failed: {e}") from e

        logger.info(f"Raw LLM response: {raw_response!r}")

        try:
            response = PolicyResponse(utterance=PromptFormatter.clean_for_speech(raw_response))
        except ValidationError as e:
            raise PolicyUnavailableError("Policy service returned an empty utterance") from e
        return response.utterance
