"""
Session relay: one telephony leg, one agent session, one intake dialog.

The relay owns every per-call component and moves data between them:

    caller audio  -> FrameBuffer -> (PrerollQueue until SettingsApplied) -> agent
    agent audio   -> PlaybackController -> Twilio media + mark
    agent events  -> barge-in / transcripts -> ShadowExtractor -> IntakeController

Closing is idempotent and happens on a stop event, on either leg closing, or on a
failed agent connect. The synchronous part of close (timers, dialog, forwarding)
runs before the first await so nothing leaks out after the session is marked
closed. Post-call normalization then runs in its own task.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from intake_agent.bot.agent_client import AgentSessionClient
from intake_agent.bot.audio_buffer import FrameBuffer, PrerollQueue
from intake_agent.bot.playback import PlaybackController
from intake_agent.bot.telephony import TwilioMediaLeg
from intake_agent.config.constants import (
    AGENT_EVT_AGENT_AUDIO_DONE,
    AGENT_EVT_AGENT_ERROR,
    AGENT_EVT_ERROR,
    AGENT_EVT_SETTINGS_APPLIED,
    AGENT_EVT_USER_STARTED_SPEAKING,
    AGENT_EVT_WARNING,
    AGENT_EVT_WELCOME,
    AGENT_TRANSCRIPT_EVENTS,
    LOGGER_NAME,
    ROLE_USER,
)
from intake_agent.config.settings import RelaySettings
from intake_agent.intake.controller import IntakeController
from intake_agent.intake.dispatcher import PromptDispatcher
from intake_agent.intake.shadow import TranscriptDeduplicator, ShadowExtractor
from intake_agent.models.message_schemas import AgentEvent
from intake_agent.models.session import CallSession, SessionRegistry
from intake_agent.services.call_control import TwilioCallControl
from intake_agent.services.normalizer import IntakeNormalizer, NormalizationResult, ShadowIntakeNormalizer

logger = logging.getLogger(LOGGER_NAME)

AgentFactory = Callable[..., AgentSessionClient]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionRelay:
    """
    Per-call orchestrator.

    Args:
        session: Identifiers and handles of the call
        telephony: Outbound side of the Twilio media stream
        settings: Relay configuration
        registry: Process-wide session counters
        call_control: Transfer/hangup collaborator for the intake controller
        normalizer: Post-call normalization collaborator
        agent_factory: Builds the agent client; defaults to AgentSessionClient
    """

    def __init__(
        self,
        session: CallSession,
        telephony: TwilioMediaLeg,
        settings: RelaySettings,
        registry: Optional[SessionRegistry] = None,
        call_control: Optional[TwilioCallControl] = None,
        normalizer: Optional[IntakeNormalizer] = None,
        agent_factory: Optional[AgentFactory] = None,
    ):
        self.session = session
        self.telephony = telephony
        self.settings = settings
        self.registry = registry or SessionRegistry()
        self.normalizer = normalizer or ShadowIntakeNormalizer()

        profile = settings.audio
        self.buffer = FrameBuffer(profile.burst_bytes)
        self.preroll = PrerollQueue(profile.preroll_max_frames)
        self.playback = PlaybackController(
            barge_enable=settings.barge_enable,
            barge_mute_ms=settings.barge_mute_ms,
            clear_throttle_ms=settings.clear_throttle_ms,
            playback_mask_ms=settings.playback_mask_ms,
        )
        self.shadow = ShadowExtractor(settings.shadow_log_mode)
        self._agent_lines = TranscriptDeduplicator()
        self.transcripts: List[str] = []

        factory = agent_factory or AgentSessionClient
        self.agent = factory(
            settings,
            on_audio=self.on_agent_audio,
            on_event=self.on_agent_event,
            on_close=self.on_agent_closed,
        )
        self.session.agent = self.agent
        self.session.telephony = telephony

        self.dispatcher = PromptDispatcher(
            self.agent.inject_agent_message,
            self.playback.when_quiet,
            quiet_wait_ms=settings.quiet_wait_ms,
            dedupe_ms=settings.say_dedupe_ms,
        )
        self.intake = IntakeController(session.call_id, self.dispatcher, settings, call_control)

        self.agent_ready = False
        self.frames_forwarded = 0
        self.started_at: Optional[str] = None
        self.ended_at: Optional[str] = None
        self.finalize_task: Optional[asyncio.Task] = None
        self._meter_task: Optional[asyncio.Task] = None
        self._forward_lock = asyncio.Lock()
        self._registered = False

    @property
    def closed(self) -> bool:
        return self.session.closed

    async def start(self) -> bool:
        """
        Open the agent session and start metering.

        Returns:
            bool: True if the agent session is open; on failure the call is torn down
        """
        self.started_at = _now_iso()
        self.registry.opened()
        self._registered = True
        logger.info(f"Opening session for call {self.session.call_id}, stream {self.session.stream_id}")

        if not await self.agent.connect():
            await self.close("agent connect failed")
            return False
        if self.closed:
            return False

        if self.settings.audio_meter_ms > 0:
            self._meter_task = asyncio.create_task(self._meter_loop())
        return True

    # Telephony -> agent

    async def on_telephony_audio(self, chunk: bytes) -> None:
        """Regroup caller audio into bursts and forward them, holding them in pre-roll until ready."""
        if self.closed:
            return
        async with self._forward_lock:
            for frame in self.buffer.push(chunk):
                if self.closed:
                    return
                if not self.agent_ready:
                    self.preroll.push(frame)
                    continue
                if await self.agent.send_audio(frame):
                    self.frames_forwarded += 1

    async def _flush_preroll(self) -> None:
        async with self._forward_lock:
            frames = self.preroll.drain()
            self.agent_ready = True
            logger.info(f"Agent ready; flushing {len(frames)} pre-roll frames")
            for frame in frames:
                if self.closed:
                    return
                if await self.agent.send_audio(frame):
                    self.frames_forwarded += 1

    # Agent -> telephony

    async def on_agent_audio(self, chunk: bytes) -> None:
        if self.closed:
            return
        if self.playback.admit_agent_audio(chunk):
            await self.telephony.send_audio(chunk)

    async def on_agent_event(self, event: AgentEvent) -> None:
        if self.closed:
            return
        event_type = event.type

        if event_type == AGENT_EVT_WELCOME:
            logger.info(f"Agent welcome for call {self.session.call_id}")
        elif event_type == AGENT_EVT_SETTINGS_APPLIED:
            if not self.agent_ready:
                await self._flush_preroll()
                self.intake.start()
        elif event_type == AGENT_EVT_USER_STARTED_SPEAKING:
            if self.playback.on_user_started_speaking():
                await self.telephony.send_clear()
        elif event_type in AGENT_TRANSCRIPT_EVENTS:
            self._on_transcript(event)
        elif event_type == AGENT_EVT_AGENT_AUDIO_DONE:
            logger.debug("Agent finished speaking")
        elif event_type == AGENT_EVT_WARNING:
            logger.warning(f"Agent warning: {event.model_dump(exclude_none=True)}")
        elif event_type in (AGENT_EVT_AGENT_ERROR, AGENT_EVT_ERROR):
            logger.error(f"Agent error: {event.model_dump(exclude_none=True)}")
        else:
            logger.debug(f"Unhandled agent event: {event_type}")

    def _on_transcript(self, event: AgentEvent) -> None:
        role = event.speaker_role
        text = event.utterance
        if not text:
            return
        if role == ROLE_USER:
            if not self.shadow.on_utterance(role, text):
                return
            self.transcripts.append(f"User: {text}")
            logger.info(f"User: {text}")
            self.intake.handle_user_text(text)
        elif self._agent_lines.accept(text):
            self.transcripts.append(f"Agent: {text}")
            logger.info(f"Agent: {text}")

    async def on_agent_closed(self) -> None:
        await self.close("agent session closed")

    async def _meter_loop(self) -> None:
        interval = self.settings.audio_meter_ms / 1000.0
        while not self.closed:
            await asyncio.sleep(interval)
            sent_bytes, chunks = self.playback.take_meter()
            if chunks:
                logger.debug(
                    f"Agent audio: {sent_bytes} bytes in {chunks} chunks "
                    f"({self.playback.dropped_chunks} dropped during barge-in so far)"
                )

    def checkpoint(self) -> Dict[str, object]:
        """Mid-call snapshot of the normalized intake built from the shadow record."""
        return self.normalizer.checkpoint(list(self.transcripts), self.shadow.record)

    async def close(self, reason: str = "") -> None:
        """Tear down both legs exactly once; later calls return immediately."""
        if not self.session.mark_closed():
            return
        self.ended_at = _now_iso()
        logger.info(f"Closing session for call {self.session.call_id}: {reason}")

        self.intake.close()
        self.buffer.clear()
        self.preroll.drain()
        if self._meter_task and not self._meter_task.done():
            self._meter_task.cancel()
        if self._registered:
            self.registry.closed()
            self._registered = False

        self.shadow.log_final()
        self.finalize_task = asyncio.create_task(self._finalize())

        await self.agent.close()
        await self.telephony.close()
        logger.info(f"Session closed for call {self.session.call_id}")

    async def _finalize(self) -> Optional[NormalizationResult]:
        try:
            result = await self.normalizer.normalize(
                list(self.transcripts),
                self.shadow.record,
                call_started_at=self.started_at,
                call_ended_at=self.ended_at,
            )
        except Exception as e:
            logger.error(f"Post-call normalization failed for call {self.session.call_id}: {e}", exc_info=True)
            return None
        if not result.ok:
            logger.warning(f"Post-call intake for call {self.session.call_id} has errors: {result.errors}")
        return result


async def open_session(
    session: CallSession,
    telephony: TwilioMediaLeg,
    settings: RelaySettings,
    registry: Optional[SessionRegistry] = None,
    call_control: Optional[TwilioCallControl] = None,
    normalizer: Optional[IntakeNormalizer] = None,
    agent_factory: Optional[AgentFactory] = None,
) -> Optional[SessionRelay]:
    """
    Create a relay for a started telephony stream and open its agent session.

    Returns:
        Optional[SessionRelay]: The running relay, or None if the agent session could
            not be opened (both legs are closed in that case)
    """
    relay = SessionRelay(
        session,
        telephony,
        settings,
        registry=registry,
        call_control=call_control,
        normalizer=normalizer,
        agent_factory=agent_factory,
    )
    if not await relay.start():
        return None
    return relay
