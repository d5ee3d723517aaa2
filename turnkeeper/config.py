"""
Turnkeeper Configuration System
===============================

This file contains ALL configuration for the turnkeeper interview system.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass, field
from typing import Optional, List


# =============================================================================
# USER SETTINGS - Edit these to customize the interviewer
# =============================================================================

# REQUIRED: Set your Google Cloud project
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Interview settings
MAX_HUMAN_TURNS = 8
SILENCE_THRESHOLD_MS = 2500
SILENCE_ARM_POLICY = "immediate"  # immediate | on_activity
WORKDIR = "./_interviews"

# Default interview context
INTERVIEW_ROLE = "Software Engineer"
INTERVIEW_LEVEL = "Mid-Level"
INTERVIEW_TYPE = "Technical"
INTERVIEW_TECH_STACK = ["Python"]
CANDIDATE_NAME = "Candidate"

# Speech settings
ENABLE_TTS = True
TTS_VOICE = "en-US-Neural2-F"
TTS_RATE = 1.0
TTS_PITCH = 1.0
TTS_VOLUME = 1.0
LANGUAGE_CODE = "en-US"

# Logging
LOG_FILE = "./_interviews/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Engine fault handling
MAX_RETRIES_PER_STATE = 3
FAULT_BACKOFF_SECONDS = 0.5
USE_POLICY_GREETING = True
GREETING_TEMPLATE = (
    "Hello {name}, thanks for joining. This is a {type} interview for the "
    "{level} {role} position. To start, please introduce yourself."
)

# Reserved policy inputs (never produced by speech-to-text)
SILENCE_MARKER = "[SILENCE_DETECTED]"
OPENING_MARKER = "[INTERVIEW_START]"

# Audio capture
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 100
MIC_GAIN = 1.0

# Playback
PLAYER_COMMANDS = (("afplay",), ("aplay", "-q"))

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.0-flash-001"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 120
LLM_TEMPERATURE = 0.6

# Interview stage boundaries (human turns answered so far)
EARLY_STAGE_TURNS = 3
MID_STAGE_TURNS = 6


# =============================================================================
# ENGINE CONFIG
# =============================================================================

@dataclass
class EngineConfig:
    """Tunables for the turn-taking engine."""
    max_human_turns: int = MAX_HUMAN_TURNS
    silence_threshold_ms: int = SILENCE_THRESHOLD_MS
    max_retries_per_state: int = MAX_RETRIES_PER_STATE
    fault_backoff_seconds: float = FAULT_BACKOFF_SECONDS
    use_policy_greeting: bool = USE_POLICY_GREETING
    greeting_template: str = GREETING_TEMPLATE

    def __post_init__(self):
        if self.max_human_turns < 1:
            raise ValueError("max_human_turns must be at least 1")
        if self.silence_threshold_ms <= 0:
            raise ValueError("silence_threshold_ms must be positive")
        if self.max_retries_per_state < 0:
            raise ValueError("max_retries_per_state cannot be negative")
        if self.fault_backoff_seconds < 0:
            raise ValueError("fault_backoff_seconds cannot be negative")


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: str
    google_application_credentials: Optional[str] = None
    max_human_turns: int = MAX_HUMAN_TURNS
    silence_threshold_ms: int = SILENCE_THRESHOLD_MS
    silence_arm_policy: str = SILENCE_ARM_POLICY
    workdir: str = WORKDIR
    role: str = INTERVIEW_ROLE
    level: str = INTERVIEW_LEVEL
    interview_type: str = INTERVIEW_TYPE
    tech_stack: List[str] = field(default_factory=lambda: list(INTERVIEW_TECH_STACK))
    candidate_name: str = CANDIDATE_NAME
    enable_tts: bool = ENABLE_TTS
    tts_voice: str = TTS_VOICE
    tts_rate: float = TTS_RATE
    tts_pitch: float = TTS_PITCH
    tts_volume: float = TTS_VOLUME
    language_code: str = LANGUAGE_CODE
    vertex_location: str = VERTEX_LOCATION
    model_name: str = MODEL_NAME
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    def engine_config(self) -> EngineConfig:
        """Build the engine tunables from this configuration."""
        return EngineConfig(
            max_human_turns=self.max_human_turns,
            silence_threshold_ms=self.silence_threshold_ms,
        )


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def get_config() -> Config:
    """Load configuration."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    max_turns = _int_from_env("TURNKEEPER_MAX_HUMAN_TURNS", MAX_HUMAN_TURNS)
    if max_turns < 1:
        raise ValueError("TURNKEEPER_MAX_HUMAN_TURNS must be at least 1")

    silence_ms = _int_from_env("TURNKEEPER_SILENCE_THRESHOLD_MS", SILENCE_THRESHOLD_MS)
    if silence_ms <= 0:
        raise ValueError("TURNKEEPER_SILENCE_THRESHOLD_MS must be positive")

    arm_policy = os.getenv("TURNKEEPER_SILENCE_ARM_POLICY") or SILENCE_ARM_POLICY
    if arm_policy not in ("immediate", "on_activity"):
        raise ValueError("TURNKEEPER_SILENCE_ARM_POLICY must be 'immediate' or 'on_activity'")

    workdir = os.getenv("TURNKEEPER_WORKDIR") or WORKDIR

    return Config(
        google_cloud_project=project,
        google_application_credentials=credentials,
        max_human_turns=max_turns,
        silence_threshold_ms=silence_ms,
        silence_arm_policy=arm_policy,
        workdir=workdir,
        log_file=os.path.join(workdir, "interview.log"),
    )
