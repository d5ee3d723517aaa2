#!/usr/bin/env python3
"""
Main entry point for the turnkeeper interview system.
Allows running the package with: python -m turnkeeper
"""
import asyncio
import signal
import sys
from typing import List

from .config import get_config, Config
from .infrastructure.data import TranscriptStore
from .infrastructure.llm import VertexRestClient
from .interview.decision_engine import DialoguePolicyClient
from .interview.engine import TurnTakingEngine
from .interview.events import InterviewEventBus, EventLogger, InterviewMetrics
from .interview.models import InterviewContext, Session, Speaker, VoiceOptions
from .interview.schemas import SilenceArmPolicy
from .interview.services import SpeechCapturePort, SpeechRenderPort
from .utils import setup_logging


def _flag_value(argv: List[str], name: str):
    prefix = f"--{name}="
    for arg in argv:
        if arg.startswith(prefix):
            return arg[len(prefix):]
    return None


def _int_flag(argv: List[str], name: str, default: int) -> int:
    value = _flag_value(argv, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"❌ Invalid value for --{name}: {value!r}")
        sys.exit(1)


def apply_cli_overrides(config: Config, argv: List[str]) -> Config:
    """Apply --flag=value overrides on top of the loaded configuration."""
    config.role = _flag_value(argv, "role") or config.role
    config.level = _flag_value(argv, "level") or config.level
    config.interview_type = _flag_value(argv, "type") or config.interview_type
    config.candidate_name = _flag_value(argv, "name") or config.candidate_name
    tech = _flag_value(argv, "tech")
    if tech:
        config.tech_stack = [t.strip() for t in tech.split(",") if t.strip()]
    config.max_human_turns = _int_flag(argv, "turns", config.max_human_turns)
    config.silence_threshold_ms = _int_flag(argv, "silence-ms", config.silence_threshold_ms)
    if "--arm-on-activity" in argv:
        config.silence_arm_policy = SilenceArmPolicy.ON_ACTIVITY.value

    # TTS configuration with explicit flags taking precedence
    if "--text" in argv or "--no-tts" in argv:
        config.enable_tts = False
    elif "--tts" in argv or "--speech" in argv:
        config.enable_tts = True
    return config


def build_engine(config: Config, text_mode: bool) -> TurnTakingEngine:
    """Wire the engine to Google speech backends, or to the keyboard and console in text mode."""
    from .infrastructure.audio.speech import (
        GoogleStreamingSpeechStream, KeyboardSpeechStream, GoogleTTSBackend, ConsoleRenderBackend
    )

    if text_mode:
        stream = KeyboardSpeechStream()
        # Typed answers arrive whole; wait for them rather than timing out
        arm_policy = SilenceArmPolicy.ON_ACTIVITY
    else:
        stream = GoogleStreamingSpeechStream(language_code=config.language_code)
        arm_policy = SilenceArmPolicy(config.silence_arm_policy)

    if config.enable_tts:
        backend = GoogleTTSBackend(voice=config.tts_voice, language_code=config.language_code)
    else:
        backend = ConsoleRenderBackend()

    llm_client = VertexRestClient(
        project=config.google_cloud_project,
        location=config.vertex_location,
        model=config.model_name,
        credentials_json=config.google_application_credentials,
    )

    session = Session(context=InterviewContext(
        role=config.role,
        level=config.level,
        interview_type=config.interview_type,
        tech_stack=list(config.tech_stack),
        candidate_name=config.candidate_name,
    ))

    event_bus = InterviewEventBus()
    event_bus.subscribe_all(EventLogger().handle_event)

    return TurnTakingEngine(
        session=session,
        capture=SpeechCapturePort(stream, arm_policy),
        render=SpeechRenderPort(backend),
        policy=DialoguePolicyClient(llm_client),
        store=TranscriptStore(config.workdir),
        config=config.engine_config(),
        event_bus=event_bus,
        voice_options=VoiceOptions(rate=config.tts_rate, pitch=config.tts_pitch, volume=config.tts_volume),
    )


async def run_interview(engine: TurnTakingEngine, text_mode: bool, log_file: str) -> None:
    metrics = InterviewMetrics()
    engine.event_bus.subscribe_all(metrics.handle_event)

    def show_utterance(speaker: Speaker, text: str) -> None:
        if speaker == Speaker.HUMAN and not text_mode:
            print(f"   🗣️  You: {text}")

    def show_fault(kind: str, message: str) -> None:
        print(f"   ⚠️  {kind}: {message}")

    engine.on_utterance(show_utterance)
    engine.on_fault(show_fault)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(engine.end()))
    except NotImplementedError:
        pass  # Windows: KeyboardInterrupt cancels the run instead

    print(f"\n🎙️  Starting interview - up to {engine.config.max_human_turns} answers")
    print(f"📝 Detailed logs: {log_file}")
    print("   (Press Ctrl-C to end the interview)")
    print("=" * 50)

    result = await engine.run()

    print("\n" + "=" * 50)
    if result.degraded:
        print("⚠️  INTERVIEW ENDED EARLY")
    else:
        print("🎯 INTERVIEW COMPLETE")
    print("=" * 50)
    print(f"🛑 Reason: {result.end_reason}")
    print(f"💬 Turns: {len(result.turns)} ({result.human_turns} answers)")
    if result.finalization_error:
        print(f"❌ Transcript not saved: {result.finalization_error}")
    else:
        print(f"📁 Transcript saved to: {engine.store.record_path(result.session_id)}")
    print(f"📈 Session metrics: {metrics.get_metrics()}")


def main():
    """Command-line interface for the turn-taking engine."""

    # Load configuration from environment
    try:
        config = apply_cli_overrides(get_config(), sys.argv[1:])
        engine_config = config.engine_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    text_mode = "--text" in sys.argv
    log_file = setup_logging(config.log_file, config.log_level)

    if config.enable_tts:
        print("🔊 TTS Mode: the interviewer will speak aloud")
        print("   (Use --text or --no-tts to disable speech)")
    else:
        print("📝 Text Mode: the interviewer's questions will be printed")
    if text_mode:
        print("⌨️  Type your answers; an empty line counts as silence")
    print(f"🤫 Silence threshold: {engine_config.silence_threshold_ms} ms")

    engine = build_engine(config, text_mode)
    try:
        asyncio.run(run_interview(engine, text_mode, log_file))
    except KeyboardInterrupt:
        print("\n👋 Interview interrupted")


if __name__ == "__main__":
    main()
