"""
game_engine.py
==============
Turn orchestration and session lifecycle for the crime-scene partner game.

Contains:
  TurnOrchestrator : runs one chat turn end to end: guards, intent, state
                     transition, context, model call, tag reconciliation,
                     memory upkeep and persistence.
  SessionService   : start / resume / fetch / delete sessions and judge the
                     final accusation.

Both are consumed by the Flask API (app.py) and the terminal runner (cli.py);
neither knows about HTTP.

Public API summary:
    engine = TurnOrchestrator(cases, store, model)
    engine.handle_turn(session_id, case_id, message)   → TurnResult

    sessions = SessionService(cases, store)
    sessions.start_session(case_id, user_id, new_game) → (SessionRecord, is_new)
    sessions.latest_session_id(case_id, user_id)       → str | None
    sessions.get_session(session_id)                   → SessionRecord
    sessions.delete_session(session_id)                → datetime
    sessions.accuse(session_id, suspect_id, evidence_id) → Verdict

The logger name for this module is ``crime_scene.game_engine``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from agents import PARTNER_PREAMBLE
from case_repository import CaseRepository
from config import GAME_CONFIG, GameConfig
from context_builder import render
from db import utcnow
from errors import NotFoundError, PersistenceError, UpstreamModelError, ValidationError
from guards import (
    RateLimiter,
    SessionLocks,
    find_leaked_record,
    is_repeated_message,
    is_spoiler_request,
    validate_message,
)
from intent import resolve
from models import (
    ChatMessage,
    DisclosureRecord,
    ImmutableRecords,
    Intent,
    ModelRequest,
    ParsedReply,
    Progress,
    SessionRecord,
    TransitionResult,
    TurnResult,
    Verdict,
)
from scoring import judge_accusation
from session_store import SessionStore
from tags import parse_reply
from transitions import apply, inspect

logger = logging.getLogger("crime_scene.game_engine")


REPEAT_NUDGE = (
    "Partner, you keep sending me the same thing 😅 "
    "Give me something new: an object to check or a place to go."
)
SPOILER_REPLY = (
    "Boss, I don't even know what's evidence yet! 🤷 Tell me where to look, "
    "like 'check the desk' or 'examine the window'. Point me somewhere!"
)
LEAK_REPLY = (
    "Wait, something's off with the signal… 📡 Let me refocus. "
    "What specific thing should I check at the scene?"
)
OPENING_PROMPT = (
    "Your partner just joined the case. Greet them in one or two short texts, "
    "describe where you are standing using the location change note, and ask "
    "what to check first."
)


def _new_ids(before: List[str], after: List[str]) -> List[str]:
    seen = set(before)
    return [item for item in after if item not in seen]


class TurnOrchestrator:
    """
    Runs one player turn.

    The orchestrator is the only component that writes session progress.
    Turns on the same session are serialised through ``locks``; a turn on a
    stale snapshot fails the store's version check instead of overwriting.

    Attributes:
        cases:        Case content repository.
        store:        Session store.
        model:        Language-model collaborator (``complete`` / ``summarize``).
        config:       Gameplay limits.
        rate_limiter: Per-session cooldown.
        locks:        Per-session single flight.
        preamble:     Fixed persona text sent as the system preamble.
    """

    def __init__(
        self,
        cases: CaseRepository,
        store: SessionStore,
        model,
        config: GameConfig = GAME_CONFIG,
        rate_limiter: Optional[RateLimiter] = None,
        locks: Optional[SessionLocks] = None,
        preamble: str = PARTNER_PREAMBLE,
    ) -> None:
        self.cases        = cases
        self.store        = store
        self.model        = model
        self.config       = config
        self.rate_limiter = rate_limiter or RateLimiter(config.cooldown_seconds)
        self.locks        = locks or SessionLocks()
        self.preamble     = preamble

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle_turn(self, session_id: str, case_id: str, message: object) -> TurnResult:
        """
        Process one chat message and return the partner's reply.

        Turn flow:
          1. Validate the message and apply the per-session cooldown.
          2. Under the session lock, load progress and check it belongs to
             ``case_id`` and is not solved.
          3. Repeated or spoiler-fishing messages get a canned reply without
             a model call and without touching progress.
          4. Resolve intent, apply the state transition, render context.
          5. Call the model, strip and reconcile its control tags, and
             replace the reply if it leaks a locked record.
          6. Update chat history, memory and counters; persist.

        Args:
            session_id: Target session.
            case_id:    Case the client believes the session belongs to.
            message:    Raw player text. ``GAME_CONFIG.opening_message`` asks
                        for the partner's opening line instead.

        Returns:
            TurnResult with the visible reply and the ids unlocked this turn.

        Raises:
            ValidationError:     Bad input, case mismatch or a closed case.
            RateLimitError:      Cooldown not elapsed.
            NotFoundError:       Unknown session or case.
            UpstreamModelError:  The model failed or replied with nothing usable.
        """
        if not session_id or not case_id:
            raise ValidationError("sessionId and caseId are required.")
        text = validate_message(message, self.config)
        self.rate_limiter.check(session_id)
        with self.locks.hold(session_id):
            return self._run_turn(session_id, case_id, text)

    # ------------------------------------------------------------------
    # Turn body
    # ------------------------------------------------------------------

    def _run_turn(self, session_id: str, case_id: str, text: str) -> TurnResult:
        record = self.store.get_session(session_id)
        if record is None:
            raise NotFoundError(f"session {session_id} not found", public_message="Session not found")
        if record.case_id != case_id:
            raise ValidationError(
                f"session {session_id} belongs to case {record.case_id}, not {case_id}",
                public_message="Session does not belong to this case.",
            )
        if record.is_solved:
            raise ValidationError("This case is already closed. Start a new game to play again.")

        progress = record.progress
        opening  = text == self.config.opening_message

        if not opening:
            if is_repeated_message(text, progress.user_messages(), self.config.repeat_limit):
                logger.info("Session %s: repeated message, nudging without a model call", session_id)
                return TurnResult(REPEAT_NUDGE, current_location=progress.current_location, model_called=False)
            if is_spoiler_request(text):
                logger.warning("Session %s: spoiler request deflected", session_id)
                return TurnResult(SPOILER_REPLY, current_location=progress.current_location, model_called=False)

        initial = self.cases.get_initial_data(case_id)
        records = self.cases.get_immutable_records(case_id)

        if opening:
            intent     = Intent("chat")
            transition = self._opening_transition(progress, records)
            user_text  = OPENING_PROMPT
        else:
            intent     = resolve(text, records.location_graph, progress)
            transition = apply(intent, progress, records)
            user_text  = text
            transition.progress = self._with_stuck_counter(transition.progress, transition.made_progress)

        logger.info(
            "Session %s turn %d: intent=%s target=%s outcome=%s",
            session_id, progress.turn_count + 1, intent.action, intent.target_id, transition.outcome,
        )

        newly_revealed = transition.revealed_evidence + transition.revealed_suspect_info
        context = render(transition.progress, newly_revealed, records, initial, transition)
        request = ModelRequest(
            system_preamble=self.preamble,
            context_block=context,
            recent_history=progress.short_term_memory,
            long_term_summary=progress.long_term_summary,
            user_message=user_text,
        )

        try:
            raw = self.model.complete(request)
        except Exception as exc:
            logger.error("Model call failed for session %s: %s", session_id, exc, exc_info=True)
            raise UpstreamModelError(str(exc)) from exc

        reply = _parse_or_fail(raw, session_id)
        reconciled = self._reconcile(reply, intent, transition, records)

        reply_text = reply.text
        unlocked = reconciled.progress.evidence_ids() + reconciled.progress.suspect_info_ids()
        leaked = find_leaked_record(reply_text, records.evidence_truth + records.suspect_truth, unlocked)
        if leaked is not None:
            logger.warning("Session %s: reply mentioned locked record %s, replaced", session_id, leaked)
            reply_text = LEAK_REPLY
            reconciled = transition

        final = self._append_turn(session_id, reconciled.progress, text, reply_text, opening)

        try:
            self.store.save_progress(session_id, final)
        except (PersistenceError, NotFoundError) as exc:
            logger.error("Failed to save progress for session %s: %s", session_id, exc, exc_info=True)

        return TurnResult(
            response_text=reply_text,
            unlocked_evidence_ids=_new_ids(progress.evidence_ids(), final.evidence_ids()),
            unlocked_suspect_info_ids=_new_ids(progress.suspect_info_ids(), final.suspect_info_ids()),
            current_location=final.current_location,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _opening_transition(progress: Progress, records: ImmutableRecords) -> TransitionResult:
        location = records.location(progress.current_location)
        return TransitionResult(
            progress=progress.model_copy(),
            outcome="noop",
            location_change_note=location.scene_description if location else None,
        )

    @staticmethod
    def _with_stuck_counter(progress: Progress, made_progress: bool) -> Progress:
        stuck = 0 if made_progress else progress.stuck_counter + 1
        return progress.model_copy(update={"stuck_counter": stuck})

    def _reconcile(
        self,
        reply: ParsedReply,
        intent: Intent,
        transition: TransitionResult,
        records: ImmutableRecords,
    ) -> TransitionResult:
        """
        Fold the model's control tags into the engine's result.

        A declared target is only honoured when keyword resolution found no
        inspect/move and the id is an interactable of the current location;
        it is then applied as an inspect. Declared evidence ids are accepted
        when they exist and are triggered by an object in the current
        location. Anything else is logged and dropped.
        """
        result   = transition
        location = records.location(result.progress.current_location)
        here     = {item.id for item in location.interactables} if location else set()

        if reply.target_id and intent.action not in ("inspect", "move"):
            if reply.target_id in here:
                follow = inspect(reply.target_id, result.progress, records)
                follow.progress = follow.progress.model_copy(update={
                    "stuck_counter": 0 if follow.made_progress else result.progress.stuck_counter,
                })
                follow.location_change_note = result.location_change_note
                result = follow
            else:
                logger.warning("Ignoring model target %r: not here", reply.target_id)

        accepted: List[DisclosureRecord] = []
        logged = set(result.progress.evidence_ids())
        for evidence_id in reply.declared_evidence_ids:
            if evidence_id in logged:
                continue
            evidence = records.evidence(evidence_id)
            if evidence is None or evidence.trigger_object_id not in here:
                logger.warning("Ignoring model-declared evidence %r", evidence_id)
                continue
            accepted.append(evidence)
            logged.add(evidence_id)

        if accepted:
            unlocked = [
                rec.unlocks_location_id for rec in accepted
                if rec.unlocks_location_id and rec.unlocks_location_id not in result.progress.known_locations
            ]
            result = TransitionResult(
                progress=result.progress.model_copy(update={
                    "evidence_log": result.progress.evidence_log + accepted,
                    "known_locations": result.progress.known_locations + list(dict.fromkeys(unlocked)),
                    "stuck_counter": 0,
                }),
                outcome="revealed",
                revealed_evidence=result.revealed_evidence + accepted,
                revealed_suspect_info=result.revealed_suspect_info,
                location_change_note=result.location_change_note,
                unlocked_location_ids=result.unlocked_location_ids + unlocked,
                target_name=result.target_name,
            )
        return result

    def _append_turn(
        self,
        session_id: str,
        progress: Progress,
        user_text: str,
        reply_text: str,
        opening: bool,
    ) -> Progress:
        entries: List[ChatMessage] = []
        if not opening:
            entries.append(ChatMessage(role="user", content=user_text))
        entries.append(ChatMessage(role="assistant", content=reply_text))

        window     = self.config.short_term_window
        history    = progress.chat_history + entries
        turn_count = progress.turn_count + (0 if opening else 1)
        updated = progress.model_copy(update={
            "chat_history": history,
            "short_term_memory": (progress.short_term_memory + entries)[-window:],
            "turn_count": turn_count,
        })

        every = self.config.summary_every_turns
        if not opening and every > 0 and turn_count % every == 0:
            updated = self._refresh_summary(session_id, updated)
        return updated

    def _refresh_summary(self, session_id: str, progress: Progress) -> Progress:
        cutoff    = max(len(progress.chat_history) - self.config.short_term_window, 0)
        discarded = progress.chat_history[progress.summarized_through:cutoff]
        if not discarded:
            return progress
        try:
            summary = self.model.summarize(progress.long_term_summary, discarded)
        except Exception as exc:
            logger.warning("Summary refresh failed for session %s, keeping previous: %s", session_id, exc)
            return progress
        logger.info("Session %s: long-term summary refreshed over %d messages", session_id, len(discarded))
        return progress.model_copy(update={
            "long_term_summary": summary,
            "summarized_through": cutoff,
        })


def _parse_or_fail(raw: str, session_id: str) -> ParsedReply:
    """Parse a raw reply; an empty visible text counts as a model failure."""
    reply = parse_reply(raw if isinstance(raw, str) else "")
    if not reply.text:
        logger.error("Model reply for session %s had no visible text", session_id)
        raise UpstreamModelError("model reply had no visible text after stripping tags")
    return reply


class SessionService:
    """
    Session lifecycle around the orchestrator.

    Shares ``locks`` with the TurnOrchestrator so an accusation never races
    a chat turn on the same session.
    """

    def __init__(
        self,
        cases: CaseRepository,
        store: SessionStore,
        rate_limiter: Optional[RateLimiter] = None,
        locks: Optional[SessionLocks] = None,
    ) -> None:
        self.cases        = cases
        self.store        = store
        self.rate_limiter = rate_limiter
        self.locks        = locks or SessionLocks()

    def start_session(
        self,
        case_id: str,
        user_id: Optional[str] = None,
        new_game: bool = False,
    ) -> Tuple[SessionRecord, bool]:
        """
        Resume the latest unsolved session for this case, or create one.

        With ``new_game`` the unsolved session being resumed is deleted first
        so the player starts from the beginning.

        Returns:
            (record, is_new)

        Raises:
            ValidationError: ``case_id`` missing.
            NotFoundError:   Unknown case.
        """
        if not case_id:
            raise ValidationError("caseId is required.")
        initial = self.cases.get_initial_data(case_id)
        records = self.cases.get_immutable_records(case_id)

        # find-then-create runs under one lock per (case, player)
        with self.locks.hold(f"start:{case_id}:{user_id or ''}"):
            existing = self.store.find_latest_session(case_id, user_id)
            if existing is not None and new_game:
                logger.info("New game requested: discarding session %s", existing.session_id)
                self._discard(existing.session_id)
                existing = None
            if existing is not None:
                logger.info("Resuming session %s for case %s", existing.session_id, case_id)
                return existing, False

            record = self.store.create_session(case_id, initial.start_location_id, records.location_graph, user_id)
        return record, True

    def latest_session_id(self, case_id: str, user_id: Optional[str] = None) -> Optional[str]:
        if not case_id:
            raise ValidationError("caseId is required.")
        record = self.store.find_latest_session(case_id, user_id)
        return record.session_id if record is not None else None

    def get_session(self, session_id: str) -> SessionRecord:
        record = self.store.get_session(_checked_session_id(session_id))
        if record is None:
            raise NotFoundError(f"session {session_id} not found", public_message="Session not found")
        return record

    def delete_session(self, session_id: str) -> datetime:
        """
        Delete a session and return when it happened.

        Raises:
            ValidationError: ``session_id`` is not a UUID.
            NotFoundError:   No such session (including one already deleted).
        """
        session_id = _checked_session_id(session_id)
        with self.locks.hold(session_id):
            if self._discard(session_id) == 0:
                raise NotFoundError(f"session {session_id} not found", public_message="Session not found")
        return utcnow()

    def accuse(self, session_id: str, suspect_id: str, evidence_id: str) -> Verdict:
        """
        Judge the player's final accusation and close the session.

        Only evidence the player has already found may be cited. Any verdict,
        winning or not, closes the case.

        Raises:
            ValidationError: Missing ids, unknown suspect, evidence not found
                             yet, or the case is already closed.
            NotFoundError:   Unknown session.
        """
        if not suspect_id or not evidence_id:
            raise ValidationError("suspectId and evidenceId are required.")
        session_id = _checked_session_id(session_id)
        with self.locks.hold(session_id):
            record = self.get_session(session_id)
            if record.is_solved:
                raise ValidationError("This case is already closed.")
            initial = self.cases.get_initial_data(record.case_id)
            if suspect_id not in {s.id for s in initial.suspects}:
                raise ValidationError(f"Unknown suspect {suspect_id!r}.")
            if evidence_id not in record.progress.evidence_ids():
                raise ValidationError("You can only cite evidence you have found.")

            records = self.cases.get_immutable_records(record.case_id)
            verdict = judge_accusation(suspect_id, evidence_id, records.correct_accusation)
            self.store.mark_solved(session_id, {
                "suspectId": suspect_id,
                "evidenceId": evidence_id,
                "outcome": verdict.outcome,
            })
        logger.info("Session %s accusation judged: %s", session_id, verdict.outcome)
        return verdict

    def _discard(self, session_id: str) -> int:
        deleted = self.store.delete_session(session_id)
        if self.rate_limiter is not None:
            self.rate_limiter.forget(session_id)
        return deleted


def _checked_session_id(session_id: str) -> str:
    try:
        return str(uuid.UUID(str(session_id)))
    except ValueError as exc:
        raise ValidationError(f"Invalid session id {session_id!r}.", public_message="Invalid session id.") from exc
