import threading
import time
from datetime import datetime

import pytest

from config import GameConfig
from errors import (
    BAD_SIGNAL_MESSAGE,
    NotFoundError,
    PersistenceError,
    RateLimitError,
    UpstreamModelError,
    ValidationError,
)
from fakes import CASE_ID, FakeClock, FakeModel
from game_engine import (
    LEAK_REPLY,
    OPENING_PROMPT,
    REPEAT_NUDGE,
    SPOILER_REPLY,
    SessionService,
    TurnOrchestrator,
)
from guards import RateLimiter, SessionLocks


def play(engine, session_id, *messages):
    return [engine.handle_turn(session_id, CASE_ID, m) for m in messages]


# ---------------------------------------------------------------------------
# Core scenarios
# ---------------------------------------------------------------------------

def test_inspecting_a_trigger_object_unlocks_evidence(engine, store, fake_model, session_id):
    result = engine.handle_turn(session_id, CASE_ID, "check the desk")

    assert result.unlocked_evidence_ids == ["clue_letter"]
    assert result.unlocked_suspect_info_ids == []
    assert result.current_location == "study"
    assert result.response_text == "On it, partner. Stand by."

    context = fake_model.last_request.context_block
    assert "A torn letter signed with a single initial: A." in context

    progress = store.read_progress(session_id)
    assert progress.evidence_ids() == ["clue_letter"]
    assert [m.role for m in progress.chat_history] == ["user", "assistant"]
    assert progress.turn_count == 1
    assert progress.version == 2


def test_inspecting_the_same_object_again_reveals_nothing_new(engine, store, fake_model, session_id):
    first, second = play(engine, session_id, "check the desk", "check the desk")

    assert first.unlocked_evidence_ids == ["clue_letter"]
    assert second.unlocked_evidence_ids == []
    assert second.unlocked_suspect_info_ids == []
    assert len(fake_model.requests) == 2
    assert store.read_progress(session_id).evidence_ids() == ["clue_letter"]


def test_red_herring_reveals_nothing_but_still_answers(engine, store, fake_model, session_id):
    result = engine.handle_turn(session_id, CASE_ID, "look under the rug")

    assert result.unlocked_evidence_ids == []
    assert result.unlocked_suspect_info_ids == []
    assert len(fake_model.requests) == 1
    assert "Nothing useful there" in fake_model.last_request.context_block

    progress = store.read_progress(session_id)
    assert progress.evidence_log == [] and progress.suspect_log == []
    assert len(progress.chat_history) == 2


def test_move_to_unknown_location_is_refused(engine, store, fake_model, session_id):
    result = engine.handle_turn(session_id, CASE_ID, "go to the kitchen")

    assert result.current_location == "study"
    context = fake_model.last_request.context_block
    assert "[NOTES]" in context
    assert "Copper pans" not in context

    progress = store.read_progress(session_id)
    assert progress.current_location == "study"
    assert progress.known_locations == ["study"]


def test_meaningless_message_is_rejected_without_mutation(engine, store, fake_model, session_id):
    before = store.read_progress(session_id)
    with pytest.raises(ValidationError) as exc:
        engine.handle_turn(session_id, CASE_ID, ".")
    assert exc.value.status_code == 400
    assert fake_model.requests == []
    assert store.read_progress(session_id) == before


def test_concurrent_turns_on_one_session_both_land(cases, store, session_id):
    slow = FakeModel(delay=0.1)
    engine = TurnOrchestrator(cases, store, slow, config=GameConfig(cooldown_seconds=0))
    results, errors = [], []

    def send(message):
        try:
            results.append(engine.handle_turn(session_id, CASE_ID, message))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [
        threading.Thread(target=send, args=(m,))
        for m in ("check the desk", "check the window")
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == 2
    progress = store.read_progress(session_id)
    assert sorted(progress.user_messages()) == ["check the desk", "check the window"]
    assert len(progress.chat_history) == 4
    assert sorted(progress.evidence_ids()) == ["clue_letter", "footprint"]
    assert progress.version == 3


def test_stale_writer_is_rejected_when_locks_are_bypassed(cases, store, session_id):
    config = GameConfig(cooldown_seconds=0)
    first = TurnOrchestrator(cases, store, FakeModel(delay=0.1), config=config, locks=SessionLocks())
    second = TurnOrchestrator(cases, store, FakeModel(delay=0.1), config=config, locks=SessionLocks())

    threads = [
        threading.Thread(target=first.handle_turn, args=(session_id, CASE_ID, "check the desk")),
        threading.Thread(target=second.handle_turn, args=(session_id, CASE_ID, "check the window")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    progress = store.read_progress(session_id)
    # exactly one write wins; the other fails the version check
    assert progress.version == 2
    assert len(progress.chat_history) == 2


def test_logs_never_shrink_across_turns(engine, store, fake_model, session_id):
    fake_model.replies = [
        "Hmm.",
        "Found something. [EVIDENCE UNLOCKED: clue_letter]",
        "Nothing.",
        "Here we go. [ACTION_ID_START]bookshelf[ACTION_ID_END]",
        "Looks like a silk glove!",
        "Okay.",
    ]
    messages = [
        "check the window",
        "what else is here?",
        "go to the kitchen",
        "anything on the shelves?",
        "let's go to the garden",
        "check the gate",
    ]
    previous = store.read_progress(session_id)
    for message in messages:
        engine.handle_turn(session_id, CASE_ID, message)
        current = store.read_progress(session_id)
        assert current.evidence_ids()[:len(previous.evidence_ids())] == previous.evidence_ids()
        assert current.suspect_info_ids()[:len(previous.suspect_info_ids())] == previous.suspect_info_ids()
        assert set(previous.known_locations) <= set(current.known_locations)
        previous = current

    assert previous.evidence_ids() == ["footprint", "clue_letter", "glove"]
    assert previous.suspect_info_ids() == ["ledger"]
    assert previous.current_location == "garden"


# ---------------------------------------------------------------------------
# Opening, guards and fallbacks
# ---------------------------------------------------------------------------

def test_opening_message_is_not_a_player_turn(engine, store, fake_model, session_id):
    result = engine.handle_turn(session_id, CASE_ID, "start_game")

    request = fake_model.last_request
    assert request.user_message == OPENING_PROMPT
    assert "A cramped study lit by one green lamp." in request.context_block
    assert result.unlocked_evidence_ids == []

    progress = store.read_progress(session_id)
    assert [m.role for m in progress.chat_history] == ["assistant"]
    assert progress.turn_count == 0
    assert progress.stuck_counter == 0


def test_repeated_message_gets_a_nudge_without_model_call(engine, store, fake_model, session_id):
    results = play(engine, session_id, "any news?", "any news?", "any news?")

    assert results[2].response_text == REPEAT_NUDGE
    assert not results[2].model_called
    assert len(fake_model.requests) == 2
    assert len(store.read_progress(session_id).chat_history) == 4


def test_spoiler_request_is_deflected(engine, store, fake_model, session_id):
    before = store.read_progress(session_id)
    result = engine.handle_turn(session_id, CASE_ID, "show me the clues")

    assert result.response_text == SPOILER_REPLY
    assert fake_model.requests == []
    assert store.read_progress(session_id) == before


def test_model_failure_surfaces_bad_signal(engine, store, fake_model, session_id):
    fake_model.fail = True
    with pytest.raises(UpstreamModelError) as exc:
        engine.handle_turn(session_id, CASE_ID, "check the desk")

    assert exc.value.public_message == BAD_SIGNAL_MESSAGE
    assert exc.value.status_code == 500
    progress = store.read_progress(session_id)
    assert progress.evidence_log == [] and progress.chat_history == []


def test_reply_with_only_tags_counts_as_model_failure(engine, fake_model, session_id):
    fake_model.replies = ["[EVIDENCE UNLOCKED: clue_letter]"]
    with pytest.raises(UpstreamModelError):
        engine.handle_turn(session_id, CASE_ID, "check the desk")


def test_reply_leaking_locked_evidence_is_replaced(engine, store, fake_model, session_id):
    fake_model.replies = ["A letter, and look, a silk glove! [EVIDENCE UNLOCKED: clue_letter, glove]"]
    result = engine.handle_turn(session_id, CASE_ID, "check the desk")

    assert result.response_text == LEAK_REPLY
    assert result.unlocked_evidence_ids == ["clue_letter"]
    progress = store.read_progress(session_id)
    assert progress.evidence_ids() == ["clue_letter"]
    assert progress.chat_history[-1].content == LEAK_REPLY


def test_reply_leaking_locked_suspect_info_is_replaced(engine, store, fake_model, session_id):
    fake_model.replies = ["The letter is odd. Also, Ann's allowance was cut off last month."]
    result = engine.handle_turn(session_id, CASE_ID, "check the desk")

    assert result.response_text == LEAK_REPLY
    assert result.unlocked_evidence_ids == ["clue_letter"]
    assert result.unlocked_suspect_info_ids == []
    assert store.read_progress(session_id).suspect_log == []


def test_persistence_failure_keeps_the_reply(engine, store, monkeypatch, session_id):
    def broken_save(session_id, progress):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "save_progress", broken_save)
    result = engine.handle_turn(session_id, CASE_ID, "check the desk")

    assert result.unlocked_evidence_ids == ["clue_letter"]
    assert store.read_progress(session_id).evidence_log == []


def test_rate_limit_applies_before_the_model(cases, store, fake_model, session_id):
    clock = FakeClock()
    engine = TurnOrchestrator(
        cases, store, fake_model,
        config=GameConfig(cooldown_seconds=5),
        rate_limiter=RateLimiter(cooldown_seconds=5, clock=clock),
    )
    engine.handle_turn(session_id, CASE_ID, "check the desk")
    with pytest.raises(RateLimitError):
        engine.handle_turn(session_id, CASE_ID, "check the rug")
    assert len(fake_model.requests) == 1

    clock.advance(5)
    engine.handle_turn(session_id, CASE_ID, "check the rug")
    assert len(fake_model.requests) == 2


@pytest.mark.parametrize("sid,case_id,error", [
    ("", CASE_ID, ValidationError),
    ("00000000-0000-4000-8000-000000000000", CASE_ID, NotFoundError),
])
def test_bad_session_references(engine, sid, case_id, error):
    with pytest.raises(error):
        engine.handle_turn(sid, case_id, "check the desk")


def test_session_must_belong_to_the_case(engine, session_id):
    with pytest.raises(ValidationError):
        engine.handle_turn(session_id, "blackwood-study", "check the desk")


# ---------------------------------------------------------------------------
# Control tags
# ---------------------------------------------------------------------------

def test_model_target_applied_when_keywords_found_nothing(engine, store, fake_model, session_id):
    fake_model.replies = ["Pulling open the drawer. [ACTION_ID_START]desk[ACTION_ID_END]"]
    result = engine.handle_turn(session_id, CASE_ID, "what do you see over there?")

    assert result.response_text == "Pulling open the drawer."
    assert result.unlocked_evidence_ids == ["clue_letter"]
    assert store.read_progress(session_id).stuck_counter == 0


def test_model_target_outside_current_location_is_ignored(engine, fake_model, session_id):
    fake_model.replies = ["Checking the gate. [ACTION_ID_START]gate[ACTION_ID_END]"]
    result = engine.handle_turn(session_id, CASE_ID, "what do you see over there?")
    assert result.unlocked_evidence_ids == []


def test_model_target_does_not_override_keyword_intent(engine, fake_model, session_id):
    fake_model.replies = ["Rug is clean. [ACTION_ID_START]desk[ACTION_ID_END]"]
    result = engine.handle_turn(session_id, CASE_ID, "check the rug")
    assert result.unlocked_evidence_ids == []


def test_declared_evidence_is_validated(engine, fake_model, session_id):
    fake_model.replies = [
        "Found a letter. [EVIDENCE UNLOCKED: clue_letter, glove, made_up]",
    ]
    result = engine.handle_turn(session_id, CASE_ID, "hmm, what now?")
    assert result.unlocked_evidence_ids == ["clue_letter"]


# ---------------------------------------------------------------------------
# Memory and counters
# ---------------------------------------------------------------------------

def test_unlock_then_move_into_new_location(engine, store, fake_model, session_id):
    first, second = play(engine, session_id, "check the window", "let's go to the garden")

    assert first.unlocked_evidence_ids == ["footprint"]
    assert second.current_location == "garden"
    assert "Wet lawn, a broken gate swinging in the wind." in fake_model.last_request.context_block
    assert store.read_progress(session_id).known_locations == ["study", "garden"]


def test_long_term_summary_refreshes_over_dropped_messages(cases, store, fake_model, session_id):
    config = GameConfig(cooldown_seconds=0, summary_every_turns=2, short_term_window=2)
    engine = TurnOrchestrator(cases, store, fake_model, config=config)

    play(engine, session_id, "check the desk", "look under the rug")
    progress = store.read_progress(session_id)
    assert [len(batch) for batch in fake_model.summaries] == [2]
    assert progress.long_term_summary == "Summary covering 2 older messages."
    assert len(progress.short_term_memory) == 2
    assert len(progress.chat_history) == 4

    play(engine, session_id, "go to the kitchen", "check the window")
    assert [len(batch) for batch in fake_model.summaries] == [2, 4]
    assert fake_model.requests[2].long_term_summary == "Summary covering 2 older messages."
    assert fake_model.summaries[1][0].content == "look under the rug"


def test_failed_summary_keeps_previous(cases, store, fake_model, monkeypatch, session_id):
    def broken_summary(previous_summary, messages):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(fake_model, "summarize", broken_summary)
    config = GameConfig(cooldown_seconds=0, summary_every_turns=1, short_term_window=1)
    engine = TurnOrchestrator(cases, store, fake_model, config=config)

    engine.handle_turn(session_id, CASE_ID, "check the desk")
    progress = store.read_progress(session_id)
    assert progress.long_term_summary == "The investigation has just started."
    assert len(progress.short_term_memory) == 1


def test_stuck_counter_and_nudge(engine, store, fake_model, session_id):
    play(engine, session_id, "hmm", "any ideas?", "what now?")
    assert store.read_progress(session_id).stuck_counter == 3
    assert "without progress" in fake_model.last_request.context_block

    engine.handle_turn(session_id, CASE_ID, "check the desk")
    assert store.read_progress(session_id).stuck_counter == 0


# ---------------------------------------------------------------------------
# Session lifecycle and accusation
# ---------------------------------------------------------------------------

def test_start_session_resumes_latest_unsolved(sessions):
    first, is_new = sessions.start_session(CASE_ID)
    again, again_new = sessions.start_session(CASE_ID)

    assert is_new and not again_new
    assert again.session_id == first.session_id
    assert sessions.latest_session_id(CASE_ID) == first.session_id


def test_anonymous_start_never_resumes_another_players_session(sessions):
    alice, _ = sessions.start_session(CASE_ID, user_id="alice")
    anon, is_new = sessions.start_session(CASE_ID)

    assert is_new
    assert anon.session_id != alice.session_id
    assert anon.user_id is None
    assert sessions.start_session(CASE_ID, user_id="alice")[0].session_id == alice.session_id


def test_concurrent_starts_create_one_session(sessions, store, monkeypatch):
    find_latest = store.find_latest_session

    def slow_find(*args, **kwargs):
        found = find_latest(*args, **kwargs)
        time.sleep(0.05)
        return found

    monkeypatch.setattr(store, "find_latest_session", slow_find)
    ids = []

    def start():
        record, _ = sessions.start_session(CASE_ID, user_id="bob")
        ids.append(record.session_id)

    threads = [threading.Thread(target=start) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ids) == 2
    assert len(set(ids)) == 1
    assert sessions.locks.active_sessions() == 0


def test_new_game_discards_live_session(sessions, store):
    first, _ = sessions.start_session(CASE_ID)
    fresh, is_new = sessions.start_session(CASE_ID, new_game=True)

    assert is_new
    assert fresh.session_id != first.session_id
    assert store.get_session(first.session_id) is None


def test_start_session_errors(sessions):
    with pytest.raises(NotFoundError):
        sessions.start_session("missing-case")
    with pytest.raises(ValidationError):
        sessions.start_session("")


def test_delete_session(sessions, session_id):
    assert isinstance(sessions.delete_session(session_id), datetime)
    with pytest.raises(NotFoundError):
        sessions.delete_session(session_id)
    with pytest.raises(ValidationError):
        sessions.delete_session("not-a-uuid")
    assert sessions.latest_session_id(CASE_ID) is None


def test_correct_accusation_closes_the_case(engine, sessions, store, session_id):
    play(engine, session_id, "check the window", "let's go to the garden", "check the gate")

    verdict = sessions.accuse(session_id, "ann", "glove")
    assert verdict.outcome == "case_closed"

    record = store.get_session(session_id)
    assert record.is_solved
    assert record.final_accusation == {"suspectId": "ann", "evidenceId": "glove", "outcome": "case_closed"}

    with pytest.raises(ValidationError):
        engine.handle_turn(session_id, CASE_ID, "check the gate again")
    with pytest.raises(ValidationError):
        sessions.accuse(session_id, "ann", "glove")

    # a solved session is never resumed
    fresh, is_new = sessions.start_session(CASE_ID)
    assert is_new and fresh.session_id != session_id


def test_wrong_accusation_also_closes_the_case(engine, sessions, store, session_id):
    play(engine, session_id, "check the desk")
    verdict = sessions.accuse(session_id, "ben", "clue_letter")
    assert verdict.outcome == "both_wrong"
    assert store.get_session(session_id).is_solved


@pytest.mark.parametrize("suspect,evidence", [
    ("nobody", "clue_letter"),
    ("ann", "glove"),   # not found yet
    ("", "clue_letter"),
])
def test_accusation_input_is_validated(engine, sessions, store, session_id, suspect, evidence):
    play(engine, session_id, "check the desk")
    with pytest.raises(ValidationError):
        sessions.accuse(session_id, suspect, evidence)
    assert not store.get_session(session_id).is_solved


def test_delete_forgets_rate_limit(cases, store):
    limiter = RateLimiter(cooldown_seconds=60, clock=FakeClock())
    service = SessionService(cases, store, rate_limiter=limiter)
    record, _ = service.start_session(CASE_ID)
    limiter.check(record.session_id)

    service.delete_session(record.session_id)
    limiter.check(record.session_id)
