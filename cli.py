"""
cli.py
======
Command-line interface for the crime-scene partner game.

Plays a case in the terminal against the same TurnOrchestrator the HTTP API
uses, with a local database. All game logic is delegated to game_engine;
this module only handles I/O.

Usage:
    python cli.py [case_id]

Commands during play:
    /status                          : location, turn count, clue counts
    /evidence                        : list evidence and suspect info found so far
    /accuse <suspect_id> <evidence_id> : make the final accusation
    /new                             : discard this session and start over
    /quit                            : exit (progress is saved)
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from agents import AgnoPartnerModel
from case_data import SAMPLE_CASE, SAMPLE_CASES
from case_repository import CaseRepository, load_case_files, seed_cases
from config import GAME_CONFIG, Settings
from db import Database
from errors import GameError
from game_engine import SessionService, TurnOrchestrator
from guards import RateLimiter, SessionLocks
from session_store import SessionStore


def _print_briefing(initial) -> None:
    print("\n" + "=" * 60)
    print(f"   CASE #{initial.case_number}: {initial.title.upper()}")
    print("=" * 60)
    print(f"\n{initial.synopsis}")
    for victim in initial.victims:
        print(f"\nVICTIM     : {victim.name}" + (f", {victim.occupation}" if victim.occupation else ""))
    print("\nSUSPECTS   :")
    for suspect in initial.suspects:
        print(f"  {suspect.id} – {suspect.name} ({suspect.relation_to_victim})")
    print("\nCommands: /status, /evidence, /accuse <suspect_id> <evidence_id>, /new, /quit")
    print("-" * 60)


def run_cli(case_id: str = SAMPLE_CASE.id) -> None:
    """
    Main CLI game loop.

    Checks GROQ_API_KEY, prepares the database, resumes the latest unsolved
    session for ``case_id`` (or starts one), then relays player input to the
    partner until the player accuses or quits.
    """
    settings = Settings.from_env()
    if not settings.groq_configured:
        print("Error: GROQ_API_KEY environment variable is not set.")
        print("  export GROQ_API_KEY='your-key-here'")
        return

    database = Database(settings.database_url)
    database.create_all()
    seed_cases(database, SAMPLE_CASES)
    if settings.cases_dir:
        seed_cases(database, load_case_files(settings.cases_dir))

    cases    = CaseRepository(database)
    store    = SessionStore(database)
    locks    = SessionLocks()
    # One player at a keyboard; no cooldown needed.
    limiter  = RateLimiter(cooldown_seconds=0)
    engine   = TurnOrchestrator(cases, store, AgnoPartnerModel(), GAME_CONFIG, limiter, locks)
    sessions = SessionService(cases, store, rate_limiter=limiter, locks=locks)

    try:
        initial = cases.get_initial_data(case_id)
    except GameError as exc:
        print(f"Error: {exc.public_message}")
        return

    _print_briefing(initial)
    record, is_new = sessions.start_session(case_id)
    session_id = record.session_id
    evidence_names = {shell.id: shell.name for shell in initial.evidence_shells}

    def partner_says(message: str) -> None:
        try:
            result = engine.handle_turn(session_id, case_id, message)
        except GameError as exc:
            print(f"\n[!] {exc.public_message}")
            return
        print(f"\n[Partner]: {result.response_text}")
        for evidence_id in result.unlocked_evidence_ids:
            print(f"  🔎 New evidence: {evidence_names.get(evidence_id, evidence_id)}")
        for info_id in result.unlocked_suspect_info_ids:
            print(f"  🗂  New suspect info logged ({info_id})")

    if is_new:
        partner_says(GAME_CONFIG.opening_message)
    else:
        print(f"\nResuming your investigation (turn {record.progress.turn_count}).")

    while True:
        try:
            user_input = input("\n[You]: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nProgress saved. See you at the scene.")
            break

        if not user_input:
            continue

        lower = user_input.lower()

        # ---- Command: quit ----
        if lower in {"/quit", "quit", "exit"}:
            print("Progress saved. See you at the scene.")
            break

        # ---- Command: status ----
        if lower == "/status":
            progress = store.read_progress(session_id)
            print(f"  Location     : {progress.current_location}")
            print(f"  Known places : {progress.known_locations}")
            print(f"  Turns        : {progress.turn_count}")
            print(f"  Evidence     : {len(progress.evidence_log)}/{len(initial.evidence_shells)}")
            continue

        # ---- Command: evidence ----
        if lower == "/evidence":
            progress = store.read_progress(session_id)
            if not progress.evidence_log and not progress.suspect_log:
                print("  Nothing logged yet.")
            for rec in progress.evidence_log:
                print(f"  [{rec.id}] {rec.name}: {rec.description}")
            for rec in progress.suspect_log:
                print(f"  [suspect info] {rec.name}: {rec.description}")
            continue

        # ---- Command: new game ----
        if lower == "/new":
            record, _ = sessions.start_session(case_id, new_game=True)
            session_id = record.session_id
            print("Starting over.")
            partner_says(GAME_CONFIG.opening_message)
            continue

        # ---- Command: accuse ----
        if lower == "/accuse" or lower.startswith("/accuse "):
            parts = user_input.split()[1:]
            if len(parts) != 2:
                print("Usage: /accuse <suspect_id> <evidence_id>")
                print(f"Suspects : {[s.id for s in initial.suspects]}")
                print(f"Evidence : {store.read_progress(session_id).evidence_ids()}")
                continue
            try:
                verdict = sessions.accuse(session_id, parts[0], parts[1])
            except GameError as exc:
                print(f"[!] {exc.public_message}")
                continue
            print(f"\n{'🎉' if verdict.solved else '❌'} {verdict.title}")
            print(verdict.message)
            break

        # ---- Normal chat turn ----
        partner_says(user_input)


if __name__ == "__main__":
    load_dotenv()
    # Configure logging at the entry point so all crime_scene.* loggers emit
    # at WARNING; the chat itself goes to stdout.
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_cli(sys.argv[1] if len(sys.argv) > 1 else SAMPLE_CASE.id)
