"""
Interview prompt templates and generation.

This module contains all the prompt templates used by the dialogue policy,
keeping them separate from the request/response logic for easier editing.
"""

import re
from typing import List

from ..config import EARLY_STAGE_TURNS, MID_STAGE_TURNS


class InterviewPrompts:
    """Collection of all interviewer prompts."""

    @staticmethod
    def interview_stage(human_turns: int) -> str:
        """Stage of the interview given the number of answers so far."""
        if human_turns < EARLY_STAGE_TURNS:
            return "early"
        if human_turns < MID_STAGE_TURNS:
            return "mid"
        return "late"

    @staticmethod
    def stage_description(stage: str) -> str:
        return {
            "early": "Early (Introduction/Background) - Focus on getting to know them",
            "mid": "Mid (Technical/Behavioral) - Dive deeper into their skills and experience",
            "late": "Late (Advanced/Wrap-up) - Ask challenging questions and wrap up",
        }[stage]

    @staticmethod
    def system_prompt(
        role: str,
        level: str,
        interview_type: str,
        tech_stack: List[str],
        candidate_name: str,
        guiding_questions: List[str],
        stage: str
    ) -> str:
        """Main interviewer system prompt."""
        tech = ", ".join(tech_stack) if tech_stack else "not specified"
        questions = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(guiding_questions)) or "(none provided)"

        return f"""
You are an experienced interviewer conducting a {interview_type} interview for a {role} position requiring {level} experience level.
The tech stack includes: {tech}.

Interview flow rules:
1. Always respond as the interviewer, never as the candidate
2. Ask ONE question at a time and wait for the response
3. Keep responses conversational and natural for voice (25-35 words)
4. Build on what the candidate just said and reference it specifically
5. The candidate's name is {candidate_name}
6. If they mention specific technologies, projects, or experiences, dive deeper
7. Be encouraging and professional, acknowledge good points before moving on

Current interview stage: {InterviewPrompts.stage_description(stage)}

Questions to guide the conversation (adapt them to the candidate's answers):
{questions}

Response guidelines:
- Do not use special characters like *, / or markdown formatting
- Use natural transitions like "That's interesting..." or "I'd love to hear more about..."
- Address the candidate by name occasionally
        """.strip()

    @staticmethod
    def silence_instructions() -> str:
        """Extra instructions when the candidate went quiet."""
        return """
Special situation: the candidate paused for several seconds without answering. Please:
- Gently encourage them ("Take your time" or "No rush")
- Rephrase the current question or ask a simpler follow-up
- Keep the conversation flowing and show patience
        """.strip()

    @staticmethod
    def opening_instructions() -> str:
        """Extra instructions for the first utterance of the interview."""
        return """
Special situation: the interview is starting now. Greet the candidate by name,
briefly say what kind of interview this is, and ask them to introduce themselves.
        """.strip()

    @staticmethod
    def silence_user_message() -> str:
        return "(The candidate has been silent. Please continue the conversation.)"

    @staticmethod
    def opening_user_message() -> str:
        return "(The candidate has joined and is ready to start the interview.)"


class PromptFormatter:
    """Helper class for formatting model output for speech."""

    _STRIP_CHARS = re.compile(r"[*/\[\]]")
    _NEWLINES = re.compile(r"\s*\n+\s*")

    @staticmethod
    def clean_for_speech(text: str) -> str:
        """Remove markdown-ish characters and collapse newlines."""
        cleaned = PromptFormatter._STRIP_CHARS.sub("", text or "")
        cleaned = PromptFormatter._NEWLINES.sub(" ", cleaned)
        return cleaned.strip()
