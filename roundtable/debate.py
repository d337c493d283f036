"""Debate orchestration: session lifecycle, sequential turns, early stop, synthesis."""

import asyncio
import copy
import dataclasses
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone

from config.config_loader import AppConfig
from roundtable.consensus import AgreementMatcher, ConsensusAnalyzer, KeywordAgreementMatcher
from roundtable.cost import SYNTHESIS_KEY, CostAccumulator, rates_from_config
from roundtable.errors import (
    CompletionFailure,
    InvalidConfiguration,
    InvalidState,
    NotFound,
    SynthesisFailure,
)
from roundtable.events import (
    AgreementDetected,
    CostUpdated,
    DebateCompleted,
    DebateEvent,
    DebateFailed,
    DebateStarted,
    ModelChunk,
    ModelCompleted,
    ModelStarted,
    SynthesisCompleted,
    SynthesisStarted,
)
from roundtable.interjections import InterjectionQueue
from roundtable.models import (
    DebateStatus,
    DebateStyle,
    Interjection,
    InterjectionType,
    Message,
    Participant,
    PositionComparison,
    Session,
)
from roundtable.prompts import build_turn_context, system_prompt
from roundtable.providers.base import AIProvider, Completion, ProviderError, TextDelta
from roundtable.scheduler import Turn, TurnScheduler, validate_participants
from roundtable.synthesis import choose_synthesizer, synthesize
from roundtable.templates import InMemoryTemplateStore, TemplateStore, coerce_style, resolve_template, validate_rounds

logger = logging.getLogger(__name__)

FATAL_ERROR = "FATAL_ERROR"


@dataclass
class _SessionState:
    session: Session
    queue: InterjectionQueue
    scheduler: TurnScheduler
    costs: CostAccumulator
    early_stop: bool
    min_rounds: int
    synthesizer: str
    cancel_requested: bool = False


class DebateStream:
    """Async-iterable event stream of one session. Iterating it runs the debate; iterate once."""

    def __init__(self, controller: "DebateController", session_id: str) -> None:
        self.session_id = session_id
        self._controller = controller
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[DebateEvent]:
        if self._consumed:
            raise InvalidState(f"Event stream for session {self.session_id} was already consumed")
        self._consumed = True
        return self._controller._run(self.session_id)


class DebateController:
    """Owns debate sessions and drives each one through its lifecycle.

    Public methods other than iterating a DebateStream are synchronous and safe
    to call from other tasks while a turn is in flight.
    """

    def __init__(
        self,
        config: AppConfig,
        providers: dict[str, AIProvider],
        template_store: TemplateStore | None = None,
        matcher: AgreementMatcher | None = None,
        retry_delay_sec: float = 1.0,
    ) -> None:
        self._config = config
        self._providers = dict(providers)
        self._rates = rates_from_config(config.models)
        self._analyzer = ConsensusAnalyzer(
            matcher or KeywordAgreementMatcher(claim_ratio=config.defaults.agreement_claim_ratio)
        )
        self._retry_delay_sec = retry_delay_sec
        self._sessions: dict[str, _SessionState] = {}
        self.templates = template_store or InMemoryTemplateStore()

    @property
    def models(self) -> list[str]:
        """Model keys with a usable provider."""
        return sorted(self._providers)

    @property
    def display_names(self) -> dict[str, str]:
        return {key: cfg.display_name for key, cfg in self._config.models.items() if cfg.display_name}

    # --- session creation ---

    def _display_name(self, participant: Participant) -> Participant:
        if participant.display_name:
            return participant
        model_cfg = self._config.models.get(participant.model)
        display = model_cfg.display_name if model_cfg and model_cfg.display_name else participant.name
        return dataclasses.replace(participant, display_name=display)

    def start(
        self,
        question: str,
        participants: list[Participant],
        style: DebateStyle | str = DebateStyle.COOPERATIVE,
        max_rounds: int | None = None,
        *,
        instruction_overrides: dict[str, str] | None = None,
        template_id: str | None = None,
        early_stop: bool | None = None,
        min_rounds: int | None = None,
        synthesizer: str | None = None,
    ) -> DebateStream:
        """Validate the request, register a session in `starting`, and return its event stream.

        Raises:
            InvalidConfiguration: Before any session exists, on an empty question,
                fewer than two or duplicate participants, an unknown model or style,
                or rounds outside 1-20.
        """
        defaults = self._config.defaults
        if not question or not question.strip():
            raise InvalidConfiguration("Question must not be empty")
        validate_participants(participants)
        unknown = sorted({p.model for p in participants if p.model not in self._providers})
        if unknown:
            raise InvalidConfiguration(f"No provider available for model(s): {', '.join(unknown)}")
        style = coerce_style(style)
        max_rounds = defaults.rounds if max_rounds is None else max_rounds
        validate_rounds(max_rounds)
        min_rounds = defaults.min_rounds if min_rounds is None else min_rounds
        if min_rounds < 1:
            raise InvalidConfiguration(f"min_rounds must be >= 1, got {min_rounds}")
        overrides = dict(instruction_overrides or {})
        names = {p.name for p in participants}
        stray = sorted(set(overrides) - names)
        if stray:
            raise InvalidConfiguration(f"Instruction overrides for unknown participant(s): {', '.join(stray)}")

        session_id = f"debate_{uuid.uuid4().hex[:12]}"
        resolved = [self._display_name(p) for p in participants]
        queue = InterjectionQueue(session_id, horizon=defaults.interjection_horizon)
        session = Session(
            id=session_id,
            question=question.strip(),
            style=style,
            participants=resolved,
            max_rounds=max_rounds,
            created_at=datetime.now(timezone.utc),
            status=DebateStatus.STARTING,
            instruction_overrides=overrides,
            template_id=template_id,
        )
        self._sessions[session_id] = _SessionState(
            session=session,
            queue=queue,
            scheduler=TurnScheduler(resolved, queue),
            costs=CostAccumulator(self._rates),
            early_stop=defaults.early_stop if early_stop is None else early_stop,
            min_rounds=min_rounds,
            synthesizer=synthesizer or defaults.synthesizer,
        )
        logger.info(
            "Session %s registered: %d participants, %s style, up to %d rounds",
            session_id, len(resolved), style.value, max_rounds,
        )
        return DebateStream(self, session_id)

    def start_from_template(
        self,
        question: str,
        template_id: str,
        *,
        style: DebateStyle | str | None = None,
        max_rounds: int | None = None,
        early_stop: bool | None = None,
        min_rounds: int | None = None,
        synthesizer: str | None = None,
    ) -> DebateStream:
        template = self.templates.get_template(template_id)
        resolved = resolve_template(template, self.display_names)
        stream = self.start(
            question,
            resolved.participants,
            style if style is not None else resolved.style,
            max_rounds if max_rounds is not None else resolved.max_rounds,
            instruction_overrides=resolved.instruction_overrides,
            template_id=template.id,
            early_stop=early_stop,
            min_rounds=min_rounds,
            synthesizer=synthesizer,
        )
        self.templates.record_use(template.id)
        return stream

    # --- control surface ---

    def _state(self, session_id: str) -> _SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            raise NotFound(f"Session not found: {session_id}")
        return state

    def cancel(self, session_id: str) -> None:
        """Request a stop at the next checkpoint; the in-flight turn still completes."""
        state = self._state(session_id)
        if state.session.status not in (DebateStatus.STARTING, DebateStatus.DEBATING):
            raise InvalidState(f"Cannot cancel session {session_id} in status {state.session.status.value}")
        state.cancel_requested = True
        logger.info("Cancellation requested for session %s", session_id)

    def interject(
        self,
        session_id: str,
        content: str,
        interjection_type: InterjectionType | str = InterjectionType.COMMENT,
        target_message_id: str | None = None,
    ) -> Interjection:
        state = self._state(session_id)
        session = state.session
        if session.status not in (DebateStatus.DEBATING, DebateStatus.SYNTHESIZING):
            raise InvalidState(f"Cannot interject in session {session_id} with status {session.status.value}")
        if not content or not content.strip():
            raise InvalidConfiguration("Interjection content must not be empty")
        try:
            interjection_type = InterjectionType(interjection_type)
        except ValueError as exc:
            raise InvalidConfiguration(f"Unknown interjection type: {interjection_type}") from exc
        if target_message_id is not None and not any(m.id == target_message_id for m in session.messages):
            raise InvalidConfiguration(f"Unknown target message: {target_message_id}")
        interjection = state.queue.enqueue(
            content.strip(), interjection_type, len(session.messages) - 1, target_message_id
        )
        return copy.deepcopy(interjection)

    def pending_interjections(self, session_id: str) -> list[Interjection]:
        return copy.deepcopy(self._state(session_id).queue.pending())

    def get_session(self, session_id: str) -> Session:
        return copy.deepcopy(self._state(session_id).session)

    def list_sessions(self) -> list[Session]:
        sessions = [copy.deepcopy(s.session) for s in self._sessions.values()]
        return sorted(sessions, key=lambda s: s.created_at)

    def total_cost(self, session_id: str) -> float:
        return self._state(session_id).costs.total_cost()

    def compare_positions(self, session_id: str, participant_a: str, participant_b: str) -> PositionComparison:
        session = self._state(session_id).session
        names = {p.name for p in session.participants}
        for name in (participant_a, participant_b):
            if name not in names:
                raise InvalidConfiguration(f"Unknown participant in session {session_id}: {name}")
        return self._analyzer.compare_positions(list(session.messages), participant_a, participant_b)

    def delete_session(self, session_id: str) -> None:
        """Remove a terminal session together with its interjections."""
        state = self._state(session_id)
        if not state.session.status.is_terminal:
            raise InvalidState(f"Cannot delete session {session_id} while {state.session.status.value}")
        del self._sessions[session_id]
        logger.info("Deleted session %s (%d interjections)", session_id, len(state.queue))

    # --- lifecycle ---

    def _finish(self, state: _SessionState, status: DebateStatus, error: str | None = None) -> None:
        state.session.status = status
        state.session.error = error
        state.session.ended_at = datetime.now(timezone.utc)

    async def _run(self, session_id: str) -> AsyncIterator[DebateEvent]:
        state = self._state(session_id)
        session = state.session
        if session.status is not DebateStatus.STARTING:
            raise InvalidState(f"Session {session_id} already ran (status {session.status.value})")
        try:
            yield DebateStarted(session_id)
            session.status = DebateStatus.DEBATING

            while not state.cancel_requested:
                if state.scheduler.round_limit_reached(len(session.messages), session.max_rounds):
                    break
                turn = state.scheduler.next_turn(len(session.messages))
                async with aclosing(self._play_turn(state, turn)) as events:
                    async for event in events:
                        yield event
                if state.cancel_requested and len(session.messages) == turn.turn_number:
                    # Turn aborted after cancel; no message to analyze
                    break

                if self._analyzer.sustained_agreement(session.messages):
                    previous, latest = session.messages[-2], session.messages[-1]
                    yield AgreementDetected(
                        session_id,
                        participants=(previous.participant, latest.participant),
                        reason=f"{previous.participant} and {latest.participant} agreed on consecutive turns",
                    )
                    floor_met = state.scheduler.completed_rounds(len(session.messages)) >= state.min_rounds
                    if state.early_stop and floor_met:
                        logger.info("Session %s: sustained agreement, stopping early", session_id)
                        break

            if state.cancel_requested:
                self._finish(state, DebateStatus.USER_ENDED)
                logger.info("Session %s ended by user after %d turns", session_id, len(session.messages))
                yield DebateCompleted(session_id, DebateStatus.USER_ENDED, None, state.costs.snapshot())
                return

            session.status = DebateStatus.SYNTHESIZING
            synthesizer_key = choose_synthesizer(state.synthesizer, self._providers, session.participants)
            yield SynthesisStarted(session_id, synthesizer_key)

            result = await synthesize(
                question=session.question,
                messages=list(session.messages),
                participants=session.participants,
                synthesizer=self._providers[synthesizer_key],
                prompts=self._config.prompts,
                pending=state.queue.pending(),
            )
            session.consensus = result.consensus
            yield SynthesisCompleted(session_id, result.consensus)

            session.cost = state.costs.add(
                SYNTHESIS_KEY, synthesizer_key, result.usage.input_tokens, result.usage.output_tokens
            )
            yield CostUpdated(session_id, session.cost)

            self._finish(state, DebateStatus.COMPLETE)
            logger.info(
                "Session %s complete: %d turns, %d rounds, $%.4f",
                session_id, len(session.messages), session.round_count, session.cost.total_cost,
            )
            yield DebateCompleted(session_id, DebateStatus.COMPLETE, result.consensus, session.cost)

        except (CompletionFailure, SynthesisFailure) as exc:
            logger.error("Session %s failed: %s", session_id, exc)
            self._finish(state, DebateStatus.ERROR, str(exc))
            yield DebateFailed(session_id, exc.code, str(exc))
        except Exception as exc:
            logger.exception("Session %s hit an unexpected error", session_id)
            self._finish(state, DebateStatus.ERROR, str(exc))
            yield DebateFailed(session_id, FATAL_ERROR, str(exc))
        finally:
            if not session.status.is_terminal:
                # Consumer closed the stream before a terminal event
                if session.status in (DebateStatus.STARTING, DebateStatus.DEBATING):
                    self._finish(state, DebateStatus.USER_ENDED)
                    logger.info("Session %s: stream closed by consumer, ended by user", session_id)
                else:
                    self._finish(state, DebateStatus.ERROR, "Stream closed during synthesis")
                    logger.warning("Session %s: stream closed during synthesis", session_id)

    async def _play_turn(self, state: _SessionState, turn: Turn) -> AsyncIterator[DebateEvent]:
        """Run one turn with retries, then finalize its message and cost.

        Every attempt re-emits model_start for the same turn number.

        Raises:
            CompletionFailure: Once max_retries retries are exhausted.
        """
        session = state.session
        participant = turn.participant
        provider = self._providers[participant.model]
        system = system_prompt(self._config.prompts, participant, session.style, session.instruction_overrides)
        context = build_turn_context(
            self._config.prompts,
            session.question,
            participant,
            list(session.messages),
            session.participants,
            turn.interjections,
        )
        max_attempts = self._config.defaults.max_retries + 1

        attempt = 0
        while True:
            attempt += 1
            yield ModelStarted(
                session.id,
                participant=participant.name,
                model_id=participant.model,
                display_name=participant.display_name,
                turn_number=turn.turn_number,
                round_number=turn.round_number,
            )
            completion = Completion()
            try:
                async with aclosing(provider.stream(system, context)) as chunks:
                    async for chunk in chunks:
                        completion = completion.fold(chunk)
                        if isinstance(chunk, TextDelta) and chunk.text:
                            yield ModelChunk(
                                session.id,
                                participant=participant.name,
                                model_id=participant.model,
                                turn_number=turn.turn_number,
                                content=chunk.text,
                            )
                if not completion.text.strip():
                    raise ProviderError(provider.name(), "Empty response content")
                break
            except Exception as exc:
                error = exc if isinstance(exc, ProviderError) else ProviderError(
                    provider.name(), f"Unexpected error: {exc}"
                )
                if state.cancel_requested:
                    logger.info(
                        "%s failed on turn %d after cancel was requested, not retrying: %s",
                        participant.name, turn.turn_number, error,
                    )
                    return
                if attempt >= max_attempts:
                    raise CompletionFailure(participant.name, turn.turn_number, attempt, str(error)) from exc
                logger.warning(
                    "%s failed on turn %d (attempt %d/%d): %s",
                    participant.name, turn.turn_number, attempt, max_attempts, error,
                )
                await asyncio.sleep(self._retry_delay_sec * attempt)

        content = completion.text
        message = Message(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            participant=participant.name,
            model=participant.model,
            turn_number=turn.turn_number,
            round_number=turn.round_number,
            role=participant.role,
            content=content,
            usage=completion.token_usage(system, context),
            created_at=datetime.now(timezone.utc),
            is_agreement=self._analyzer.is_agreement(participant.name, content, session.messages),
        )
        session.messages.append(message)
        logger.info(
            "Turn %d (round %d) by %s: %d chars%s",
            message.turn_number, message.round_number, participant.name, len(content),
            ", agrees" if message.is_agreement else "",
        )
        session.cost = state.costs.add(
            participant.name, participant.model, message.usage.input_tokens, message.usage.output_tokens
        )
        yield ModelCompleted(session.id, message)
        yield CostUpdated(session.id, session.cost)
