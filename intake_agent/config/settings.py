"""
Environment-driven settings for the intake relay.

Every buffering size, timer duration, policy knob and prompt text used by a call
is carried on a RelaySettings instance and passed down explicitly, so tests can
build a session with any configuration without touching the process environment.
"""

import logging
import os
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field

from intake_agent.config.constants import (
    AUDIO_ENCODING_LINEAR16,
    AUDIO_ENCODING_MULAW,
    DEFAULT_AGENT_URL,
    FALSE_STRINGS,
    LOGGER_NAME,
    TRUE_STRINGS,
    TWILIO_FRAME_BYTES,
)

logger = logging.getLogger(LOGGER_NAME)

PROMPT_MAX_CHARS = 380
PROMPT_MIN_CHARS = 40

FALLBACK_PROMPT = (
    "You are the intake specialist. Determine existing client vs accident. "
    "If existing: ask full name, best phone, and attorney; then say you will transfer. "
    "If accident: collect full name, phone, email, what happened, when, and city/state; "
    "confirm all; then say you will transfer. Be warm, concise, and stop speaking if the caller talks."
)

_NON_ASCII = re.compile(r"[\x00-\x1f\x7f-\uffff]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_ascii(text: Optional[str]) -> str:
    """Replace control and non-ASCII characters with spaces and collapse whitespace."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", _NON_ASCII.sub(" ", str(text))).strip()


def compact_prompt(text: str, max_chars: int = PROMPT_MAX_CHARS) -> str:
    """Trim a prompt to max_chars, falling back to the built-in prompt when too short."""
    trimmed = (text or "")[:max_chars]
    if len(trimmed) >= PROMPT_MIN_CHARS:
        return trimmed
    return FALLBACK_PROMPT


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer; using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number; using {default}")
        return default


def env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment variable ("1/true/yes/on" or "0/false/no/off")."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in TRUE_STRINGS:
        return True
    if value in FALSE_STRINGS:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: not a boolean; using {default}")
    return default


class AudioProfile(BaseModel):
    """Codec and framing for one leg of the relay."""

    encoding: Literal["mulaw", "linear16"] = AUDIO_ENCODING_MULAW
    sample_rate: int = Field(8000, gt=0)
    frame_bytes: int = Field(TWILIO_FRAME_BYTES, gt=0)
    burst_frames: int = Field(4, ge=1)
    preroll_max_frames: int = Field(6, ge=1)

    @property
    def burst_bytes(self) -> int:
        return self.frame_bytes * self.burst_frames


# 20ms @ 8kHz mu-law, forwarded in ~80ms bursts with ~0.5s of pre-roll
TWILIO_MULAW_PROFILE = AudioProfile()

# 20ms @ 16kHz PCM16, forwarded frame by frame with ~4s of pre-roll
LINEAR16_16K_PROFILE = AudioProfile(
    encoding=AUDIO_ENCODING_LINEAR16,
    sample_rate=16000,
    frame_bytes=640,
    burst_frames=1,
    preroll_max_frames=200,
)

AUDIO_PROFILES = {
    "mulaw8k": TWILIO_MULAW_PROFILE,
    "linear16_16k": LINEAR16_16K_PROFILE,
}


def audio_profile_from_env() -> AudioProfile:
    """
    Select the codec profile (AUDIO_PROFILE) and apply the framing overrides.

    BUFFER_FRAMES and PREBUF_MAX_CHUNKS default to the selected profile's values.

    Raises:
        ValueError: If AUDIO_PROFILE names no known profile
    """
    name = os.getenv("AUDIO_PROFILE", "mulaw8k").strip().lower()
    if name not in AUDIO_PROFILES:
        raise ValueError(f"Unknown AUDIO_PROFILE {name!r}; expected one of {sorted(AUDIO_PROFILES)}")
    base = AUDIO_PROFILES[name]
    return base.model_copy(
        update={
            "burst_frames": max(1, _env_int("BUFFER_FRAMES", base.burst_frames)),
            "preroll_max_frames": max(1, _env_int("PREBUF_MAX_CHUNKS", base.preroll_max_frames)),
        }
    )


class RelaySettings(BaseModel):
    """Per-process configuration injected into every call session."""

    # Agent session
    deepgram_api_key: Optional[str] = None
    agent_url: str = DEFAULT_AGENT_URL
    keepalive_interval_s: float = Field(25.0, gt=0)
    connect_timeout_s: float = Field(10.0, gt=0)
    audio: AudioProfile = TWILIO_MULAW_PROFILE

    # Playback and barge-in
    barge_enable: bool = True
    barge_mute_ms: int = Field(400, ge=0)
    clear_throttle_ms: int = Field(600, ge=0)
    playback_mask_ms: int = Field(150, ge=0)
    audio_meter_ms: int = Field(2000, ge=0)

    # Shadow extraction
    shadow_log_mode: Literal["off", "fields", "summary", "verbose"] = "summary"

    # Persona and models
    firm_name: str = "Benji Personal Injury"
    agent_name: str = "Alexis"
    agent_instructions: str = ""
    agent_greeting: str = ""
    stt_model: str = "nova-2"
    tts_voice: str = "aura-2-thalia-en"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.15

    # Dialog timing and policy
    reprompt_ms: int = Field(6000, ge=0)
    hard_nudge_ms: int = Field(0, ge=0)
    max_reprompts_per_state: int = Field(1, ge=0)
    max_total_reprompts: int = Field(6, ge=0)
    max_unclear_confirmations: int = Field(2, ge=0)
    max_correction_attempts: int = Field(1, ge=0)
    max_failed_attempts: int = Field(2, ge=0)
    no_input_policy: Literal["skip", "transfer", "hangup"] = "transfer"
    quiet_wait_ms: int = Field(700, ge=0)
    say_dedupe_ms: int = Field(1200, ge=0)

    # Call control
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    transfer_number: Optional[str] = None

    # Telephony webhook
    audio_stream_route: str = "/audio-stream"
    audio_stream_domain: Optional[str] = None

    @property
    def shadow_enabled(self) -> bool:
        return self.shadow_log_mode != "off"

    @property
    def default_prompt(self) -> str:
        return (
            f"You are {self.agent_name} for {self.firm_name}. First ask: existing client or accident? "
            "Ask exactly one question per turn and wait for the reply. Existing: get name, best phone, "
            "attorney; then say youll transfer. Accident: get name, phone, email, what happened, when, "
            "city/state; confirm, then say youll transfer. Stop if the caller talks."
        )

    @property
    def prompt(self) -> str:
        """System prompt sent to the agent, sanitized and compacted."""
        return compact_prompt(sanitize_ascii(self.agent_instructions or self.default_prompt))

    @property
    def greeting(self) -> str:
        """Opening line spoken by the agent; it also asks the first intake question."""
        return sanitize_ascii(
            self.agent_greeting
            or f"Thank you for calling {self.firm_name}. Were you in an accident, or are you an existing client?"
        )

    @classmethod
    def from_env(cls) -> "RelaySettings":
        """Build settings from environment variables (call dotenv.load_dotenv() first)."""
        use_env_instructions = not env_flag("DISABLE_ENV_INSTRUCTIONS", False)
        audio = audio_profile_from_env()
        return cls(
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY"),
            agent_url=os.getenv("DG_AGENT_URL", DEFAULT_AGENT_URL),
            keepalive_interval_s=_env_float("KEEPALIVE_INTERVAL_S", 25.0),
            audio=audio,
            barge_enable=env_flag("BARGE_ENABLE", True),
            barge_mute_ms=_env_int("BARGE_MUTE_MS", 400),
            clear_throttle_ms=_env_int("CLEAR_THROTTLE_MS", 600),
            playback_mask_ms=_env_int("PLAYBACK_MASK_MS", 150),
            audio_meter_ms=_env_int("AGENT_AUDIO_METER_MS", 2000),
            shadow_log_mode=os.getenv("SHADOW_LOG_MODE", "summary").strip().lower(),
            firm_name=os.getenv("FIRM_NAME", "Benji Personal Injury"),
            agent_name=os.getenv("AGENT_NAME", "Alexis"),
            agent_instructions=os.getenv("AGENT_INSTRUCTIONS", "") if use_env_instructions else "",
            agent_greeting=os.getenv("AGENT_GREETING", ""),
            stt_model=os.getenv("DG_STT_MODEL", "nova-2").strip(),
            tts_voice=os.getenv("DG_TTS_VOICE", "aura-2-thalia-en").strip(),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini").strip(),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.15),
            reprompt_ms=_env_int("REPROMPT_MS", 6000),
            hard_nudge_ms=_env_int("HARD_NUDGE_MS", 0),
            max_reprompts_per_state=_env_int("MAX_REPROMPTS_PER_STATE", 1),
            max_total_reprompts=_env_int("MAX_TOTAL_REPROMPTS", 6),
            max_unclear_confirmations=_env_int("MAX_UNCLEAR_CONFIRMATIONS", 2),
            max_correction_attempts=_env_int("MAX_CORRECTION_ATTEMPTS", 1),
            max_failed_attempts=_env_int("MAX_FAILED_ATTEMPTS", 2),
            no_input_policy=os.getenv("NO_INPUT_POLICY", "transfer").strip().lower(),
            quiet_wait_ms=_env_int("QUIET_WAIT_MS", 700),
            say_dedupe_ms=_env_int("SAY_DEDUPE_MS", 1200),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
            transfer_number=os.getenv("TRANSFER_NUMBER") or None,
            audio_stream_route=os.getenv("AUDIO_STREAM_ROUTE", "/audio-stream"),
            audio_stream_domain=os.getenv("AUDIO_STREAM_DOMAIN") or None,
        )
