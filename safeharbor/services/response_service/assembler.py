"""Response Assembler - runs every turn through the safety pipeline.

Stage order is fixed:

    new-conversation -> crisis -> feedback-loop -> location -> deception
    -> generation -> grounding -> hallucination -> final-verification

Crisis and feedback-loop stages may short-circuit, after which only final
verification runs. Each stage reads and writes named TurnContext fields.
A stage that raises is logged and rolled back to the response it started
with; the user never sees an internal error.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from safeharbor.shared.errors import EnhancementError, GenerationError
from safeharbor.shared.models import (
    FlagSeverity,
    HallucinationFlag,
    SeverityLevel,
    TurnInput,
    TurnMetadata,
    TurnOutput,
)
from safeharbor.shared.storage import InMemoryKeyValueStore, KeyValueStore
from safeharbor.shared.utils import Clock, SystemClock
from safeharbor.shared.utils.pii import hash_text_for_audit
from safeharbor.services.conversation_service import (
    ConversationConfig,
    ConversationState,
    FeedbackLoopDetector,
    NewConversationDetector,
)
from safeharbor.services.crisis_engine import CrisisEscalation
from safeharbor.services.hallucination_service import HallucinationCorrector, HallucinationDetector
from safeharbor.services.memory_service import (
    AttentionScorer,
    MemoryBank,
    MemoryConfig,
    MemoryGrounder,
    MemoryRole,
    ScoredMemory,
)
from safeharbor.services.safety_service import Classification, CrisisClassifier
from .config import (
    CRISIS_FALLBACK_RESPONSE,
    SAFE_FALLBACK_RESPONSE,
    SYSTEM_PROMPT,
    PipelineConfig,
)
from .generator import ReflectiveResponseGenerator, ResponseGenerator
from .sessions import SessionRegistry, SessionState
from .verification import FinalVerifier

logger = logging.getLogger(__name__)


@dataclass
class TurnContext:
    """Mutable state of one turn as it moves through the stages."""
    turn: TurnInput
    session: SessionState
    now: datetime
    history: List[str]
    response: str = ""
    classification: Optional[Classification] = None
    short_circuited: bool = False
    generated: bool = False
    crisis_flag: bool = False
    concern_type: Optional[str] = None
    fallback_used: bool = False
    stage_failures: int = 0
    retrieved: List[ScoredMemory] = field(default_factory=list)
    flags: List[HallucinationFlag] = field(default_factory=list)
    systems_engaged: List[str] = field(default_factory=list)
    annotations: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.turn.text

    @property
    def severity(self) -> SeverityLevel:
        return self.classification.severity if self.classification else SeverityLevel.LOW


@dataclass
class PipelineServices:
    """Collaborators shared by every session."""
    classifier: CrisisClassifier
    escalation: CrisisEscalation
    new_conversation: NewConversationDetector
    detector: HallucinationDetector
    corrector: HallucinationCorrector
    verifier: FinalVerifier
    generator: ResponseGenerator
    config: PipelineConfig
    conversation_config: ConversationConfig
    memory_config: MemoryConfig
    clock: Clock


Stage = Callable[[TurnContext, PipelineServices], Awaitable[None]]


async def new_conversation_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    reason = svc.new_conversation.detect(ctx.text, ctx.session.conversation, ctx.now)
    if reason is None:
        return
    # Classified here so a crisis turn never wipes the crisis record it adds to
    ctx.classification = svc.classifier.classify(ctx.text)
    if ctx.classification.is_crisis:
        logger.warning(
            "NEW_CONVERSATION_DEFERRED",
            extra={
                "session_id_hash": ctx.session.session_id_hash,
                "reason": reason,
                "severity": ctx.classification.severity.value,
            }
        )
        return
    # A retraction bundled with the reset is recorded before the crisis window closes
    if svc.escalation.check_deception(ctx.session.crisis, ctx.text) is not None:
        ctx.annotations.append("deception-flagged")
    await ctx.session.start_new_conversation(ctx.now, svc.conversation_config)
    ctx.history = []
    ctx.annotations.append("new-conversation")
    logger.info(
        "NEW_CONVERSATION_STARTED",
        extra={"session_id_hash": ctx.session.session_id_hash, "reason": reason}
    )


async def crisis_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    classification = ctx.classification or svc.classifier.classify(ctx.text)
    ctx.classification = classification
    crisis_state = ctx.session.crisis

    if classification.is_crisis:
        # Flag first so a failure below still ends in a crisis fallback
        ctx.crisis_flag = True
        ctx.short_circuited = True
        ctx.concern_type = classification.crisis_type.value
        method = "fail-safe" if classification.fail_safe else f"rule-engine/{classification.pattern_version}"
        outcome = await svc.escalation.handle_crisis(
            crisis_state,
            ctx.text,
            classification.severity,
            classification.crisis_type,
            ctx.session.session_id_hash,
            detection_method=method,
            user_agent=ctx.turn.user_agent,
        )
        ctx.response = outcome.response
        if outcome.persistent:
            ctx.annotations.append("persistent-crisis")
        if outcome.asked_location:
            ctx.annotations.append("location-requested")
        return

    refusal = svc.escalation.check_refusal(crisis_state, ctx.text)
    if refusal is not None:
        ctx.response = refusal
        ctx.short_circuited = True
        if crisis_state.last_crisis_type is not None:
            ctx.concern_type = crisis_state.last_crisis_type.value
        ctx.annotations.append("resource-refusal")


async def feedback_loop_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    result = ctx.session.loop_detector.check_feedback_loop(ctx.text, ctx.history)
    if result:
        ctx.response = result.recovery_response
        ctx.short_circuited = True
        ctx.annotations.append(f"feedback-loop:{result.reason}")


async def location_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    if svc.escalation.record_location(ctx.session.crisis, ctx.text) is not None:
        ctx.annotations.append("location-recorded")


async def deception_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    if svc.escalation.check_deception(ctx.session.crisis, ctx.text) is not None:
        ctx.annotations.append("deception-flagged")


async def _generate(ctx: TurnContext, svc: PipelineServices) -> str:
    if not svc.generator.validate_prompt(ctx.text):
        raise GenerationError("Invalid prompt")
    try:
        text = await asyncio.wait_for(
            svc.generator.generate(ctx.text, list(ctx.history), SYSTEM_PROMPT),
            timeout=svc.config.generation_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise GenerationError(
            f"Generation timed out after {svc.config.generation_timeout_seconds}s"
        ) from e
    except GenerationError:
        raise
    except Exception as e:
        raise GenerationError(f"Generator failed: {e}") from e

    if not text or not text.strip():
        raise GenerationError("Generator returned an empty response")
    return text.strip()


async def generation_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    try:
        ctx.response = await _generate(ctx, svc)
        ctx.generated = True
    except GenerationError as e:
        logger.error(
            "GENERATION_FAILED",
            extra={
                "session_id_hash": ctx.session.session_id_hash,
                "error": str(e),
                "error_type": type(e.__cause__ or e).__name__,
            }
        )
        crisis = ctx.severity.at_least(SeverityLevel.MEDIUM)
        ctx.response = CRISIS_FALLBACK_RESPONSE if crisis else SAFE_FALLBACK_RESPONSE
        ctx.fallback_used = True
        ctx.annotations.append("generation-fallback")


async def grounding_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    if not ctx.generated:
        return
    try:
        scorer = AttentionScorer(ctx.session.memory_bank, clock=svc.clock)
        ctx.retrieved = scorer.retrieve(ctx.text)
        result = ctx.session.grounder.ground(ctx.response, len(ctx.history), ctx.retrieved)
    except Exception as e:
        raise EnhancementError(f"Memory grounding failed: {e}") from e
    if result.applied:
        ctx.response = result.text
        ctx.annotations.append("memory-grounded")


async def hallucination_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    try:
        flags = svc.detector.detect(ctx.response, ctx.text, ctx.history, ctx.session.memory_bank)
        correction = svc.corrector.correct(ctx.response, flags)
    except Exception as e:
        raise EnhancementError(f"Hallucination check failed: {e}") from e
    ctx.flags.extend(flags)
    if correction.changed:
        ctx.response = correction.text
        ctx.annotations.append("hallucination-corrected")


async def final_verification_stage(ctx: TurnContext, svc: PipelineServices) -> None:
    result = svc.verifier.verify(ctx.response, ctx.text, ctx.severity)
    ctx.response = result.text
    ctx.annotations.extend(result.actions)


# (name, stage, runs after a short-circuit)
STAGES: Tuple[Tuple[str, Stage, bool], ...] = (
    ("new-conversation", new_conversation_stage, False),
    ("crisis", crisis_stage, False),
    ("feedback-loop", feedback_loop_stage, False),
    ("location", location_stage, False),
    ("deception", deception_stage, False),
    ("generation", generation_stage, False),
    ("grounding", grounding_stage, False),
    ("hallucination", hallucination_stage, False),
    ("final-verification", final_verification_stage, True),
)


class ResponseAssembler:
    """Runs turns through the stage pipeline.

    Args:
        generator: Baseline response generator
        store: Durable store for memory snapshots
        escalation: Crisis escalation (owns notification and location)
        classifier: Crisis classifier
        config: Pipeline settings
        memory_config: Memory Bank settings
        conversation_config: Loop and new-conversation thresholds
        clock: Time source shared by every component
        stages: Stage list, defaults to STAGES
    """

    def __init__(
        self,
        generator: Optional[ResponseGenerator] = None,
        store: Optional[KeyValueStore] = None,
        escalation: Optional[CrisisEscalation] = None,
        classifier: Optional[CrisisClassifier] = None,
        config: Optional[PipelineConfig] = None,
        memory_config: Optional[MemoryConfig] = None,
        conversation_config: Optional[ConversationConfig] = None,
        clock: Optional[Clock] = None,
        stages: Tuple[Tuple[str, Stage, bool], ...] = STAGES,
    ):
        self.clock = clock or SystemClock()
        config = config or PipelineConfig()
        conversation_config = conversation_config or ConversationConfig()
        self.store = store or InMemoryKeyValueStore()
        self.rng = random.Random(config.random_seed)
        self.stages = stages
        self.services = PipelineServices(
            classifier=classifier or CrisisClassifier(),
            escalation=escalation or CrisisEscalation(clock=self.clock),
            new_conversation=NewConversationDetector(conversation_config),
            detector=HallucinationDetector(),
            corrector=HallucinationCorrector(),
            verifier=FinalVerifier(),
            generator=generator or ReflectiveResponseGenerator(),
            config=config,
            conversation_config=conversation_config,
            memory_config=memory_config or MemoryConfig(),
            clock=self.clock,
        )
        self.sessions = SessionRegistry(self._new_session, clock=self.clock)

        logger.info(
            "RESPONSE_ASSEMBLER_INITIALIZED",
            extra={
                "stages": [name for name, _, _ in stages],
                "generator": type(self.services.generator).__name__,
            }
        )

    def _new_session(self, session_id_hash: str) -> SessionState:
        svc = self.services
        conversation = ConversationState.create(svc.conversation_config)
        return SessionState(
            session_id_hash=session_id_hash,
            conversation=conversation,
            loop_detector=FeedbackLoopDetector(conversation, svc.conversation_config, self.rng),
            crisis=svc.escalation.new_state(),
            memory_bank=MemoryBank(
                self.store, namespace=session_id_hash, config=svc.memory_config, clock=self.clock
            ),
            grounder=MemoryGrounder(svc.memory_config, self.rng),
        )

    def live_banks(self) -> List[MemoryBank]:
        """Drop idle sessions, then return the Memory Banks still held."""
        config = self.services.config
        self.sessions.evict_idle(config.session_idle_seconds, config.crisis_session_idle_seconds)
        return self.sessions.banks()

    async def process_turn(self, turn: TurnInput) -> TurnOutput:
        """Assemble the response for one user message.

        Args:
            turn: User message, session id and recent history

        Returns:
            TurnOutput; always well-formed, crisis turns always carry 988

        Raises:
            SessionBusyError: A turn for this session is already in flight

        Logs:
            - TURN_STAGE_FAILED: A stage raised and was rolled back
            - TURN_COMPLETED: Summary of the turn
        """
        started = time.perf_counter()
        async with self.sessions.turn(turn.session_id) as session:
            ctx = TurnContext(
                turn=turn,
                session=session,
                now=self.clock.now(),
                history=list(turn.history) or list(session.conversation.user_message_history),
            )
            await self._run_stages(ctx)
            await self._record(ctx)

            metadata = TurnMetadata(
                confidence=self._confidence(ctx),
                systems_engaged=list(ctx.systems_engaged),
                processing_time_ms=(time.perf_counter() - started) * 1000,
                flags=list(ctx.flags),
                annotations=list(ctx.annotations),
            )

        logger.info(
            "TURN_COMPLETED",
            extra={
                "session_id_hash": session.session_id_hash,
                "crisis_flag": ctx.crisis_flag,
                "severity": ctx.severity.value,
                "systems_engaged": metadata.systems_engaged,
                "flag_count": len(ctx.flags),
                "processing_time_ms": round(metadata.processing_time_ms, 2),
            }
        )
        return TurnOutput(
            text=ctx.response,
            crisis_flag=ctx.crisis_flag,
            concern_type=ctx.concern_type,
            metadata=metadata,
        )

    async def reset_session(self, session_id: str) -> None:
        """Start a new conversation for a session on request.

        Raises:
            SessionBusyError: A turn for this session is in flight
        """
        async with self.sessions.turn(session_id) as session:
            await session.start_new_conversation(self.clock.now(), self.services.conversation_config)
            logger.info(
                "NEW_CONVERSATION_STARTED",
                extra={"session_id_hash": session.session_id_hash, "reason": "explicit_request"}
            )

    async def _run_stages(self, ctx: TurnContext) -> None:
        for name, stage, after_short_circuit in self.stages:
            if ctx.short_circuited and not after_short_circuit:
                continue
            before = ctx.response
            ctx.systems_engaged.append(name)
            try:
                await stage(ctx, self.services)
            except Exception as e:
                ctx.response = before
                ctx.stage_failures += 1
                log = logger.critical if name in ("crisis", "final-verification") else logger.error
                log(
                    "TURN_STAGE_FAILED",
                    extra={
                        "stage": name,
                        "session_id_hash": ctx.session.session_id_hash,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        if not ctx.response.strip():
            # Only reachable if final verification itself failed
            crisis = ctx.crisis_flag or ctx.severity.at_least(SeverityLevel.MEDIUM)
            ctx.response = CRISIS_FALLBACK_RESPONSE if crisis else SAFE_FALLBACK_RESPONSE
            ctx.fallback_used = True

    async def _record(self, ctx: TurnContext) -> None:
        """Write the turn to memory and conversation tracking. Failures are logged only."""
        session = ctx.session
        try:
            session.conversation.record_user_message(ctx.text, ctx.now)
            # Crisis templates repeat on purpose and are not loop evidence
            if not ctx.crisis_flag:
                session.loop_detector.track_response(ctx.response)
            await session.memory_bank.add_memory(ctx.text, MemoryRole.PATIENT)
            await session.memory_bank.add_memory(ctx.response, MemoryRole.ASSISTANT)
        except Exception as e:
            logger.error(
                "TURN_RECORD_FAILED",
                extra={
                    "session_id_hash": session.session_id_hash,
                    "text_hash": hash_text_for_audit(ctx.text)[:16],
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

    def _confidence(self, ctx: TurnContext) -> float:
        cfg = self.services.config
        high_flags = sum(1 for f in ctx.flags if f.severity == FlagSeverity.HIGH)
        confidence = (
            1.0
            - cfg.high_flag_penalty * high_flags
            - (cfg.fallback_penalty if ctx.fallback_used else 0.0)
            - cfg.stage_failure_penalty * ctx.stage_failures
        )
        return max(0.0, confidence)
