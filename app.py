"""
app.py
======
Flask HTTP surface for the crime-scene partner game.

Run with:
    python app.py

Routes (JSON over REST, camelCase keys):
    GET    /api/health
    GET    /api/cases
    GET    /api/cases/<case_id>
    POST   /api/sessions                      {caseId, userId?, newGame?}
    GET    /api/sessions/latest?caseId=
    GET    /api/sessions/<session_id>
    DELETE /api/sessions/<session_id>
    POST   /api/sessions/<session_id>/accuse  {suspectId, evidenceId}
    POST   /api/chat                          {sessionId, caseId, message}

Every route is a thin adapter: parse the body, call the SessionService or the
TurnOrchestrator, serialise the result. GameError subclasses become
``{"error": ...}`` responses in a single handler.
"""

from __future__ import annotations

import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

from agents import AgnoPartnerModel
from case_data import SAMPLE_CASES
from case_repository import CaseRepository, load_case_files, seed_cases
from config import GAME_CONFIG, GameConfig, Settings
from db import Database
from errors import GameError, RateLimitError
from game_engine import SessionService, TurnOrchestrator
from guards import RateLimiter, SessionLocks
from session_store import SessionStore

logger = logging.getLogger("crime_scene.app")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(
    settings: Optional[Settings] = None,
    model=None,
    database: Optional[Database] = None,
    config: GameConfig = GAME_CONFIG,
    rate_limiter: Optional[RateLimiter] = None,
) -> Flask:
    """
    Build the Flask app and wire every component.

    Args:
        settings:     Deployment settings; read from the environment if omitted.
        model:        Language-model collaborator; defaults to AgnoPartnerModel.
        database:     Database handle; built from ``settings.database_url``.
        config:       Gameplay limits.
        rate_limiter: Per-session cooldown; built from ``config`` if omitted.

    Returns:
        A ready Flask app. Tables exist and cases are seeded.
    """
    settings = settings or Settings.from_env()
    database = database or Database(settings.database_url)
    database.create_all()

    if settings.seed_sample_cases:
        seed_cases(database, SAMPLE_CASES)
    if settings.cases_dir:
        seed_cases(database, load_case_files(settings.cases_dir))

    cases        = CaseRepository(database)
    store        = SessionStore(database)
    locks        = SessionLocks()
    rate_limiter = rate_limiter or RateLimiter(config.cooldown_seconds)
    engine = TurnOrchestrator(
        cases, store, model or AgnoPartnerModel(),
        config=config, rate_limiter=rate_limiter, locks=locks,
    )
    sessions = SessionService(cases, store, rate_limiter=rate_limiter, locks=locks)

    app = Flask(__name__)
    CORS(app, origins=list(settings.cors_origins))
    app.extensions["crime_scene"] = {
        "database": database,
        "engine": engine,
        "sessions": sessions,
    }

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @app.errorhandler(GameError)
    def handle_game_error(exc: GameError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc)
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc)
        payload = {"error": exc.public_message}
        headers = {}
        if isinstance(exc, RateLimitError):
            retry_after = max(1, int(round(exc.retry_after)))
            payload["retryAfter"] = retry_after
            headers["Retry-After"] = str(retry_after)
        return jsonify(payload), exc.status_code, headers

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        code = getattr(exc, "code", None)
        if isinstance(code, int) and code < 500:
            return jsonify({"error": getattr(exc, "description", "Request failed.")}), code
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=exc)
        return jsonify({"error": "Internal server error."}), 500

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"ok": True, "env": {"GROQ_API_KEY": settings.groq_configured}})

    @app.route("/api/cases", methods=["GET"])
    def list_cases():
        return jsonify([summary.to_json_dict() for summary in cases.get_summaries()])

    @app.route("/api/cases/<case_id>", methods=["GET"])
    def get_case(case_id):
        """Public case data only; truth records and the answer stay server-side."""
        return jsonify(cases.get_initial_data(case_id).to_json_dict())

    @app.route("/api/sessions", methods=["POST"])
    def start_session():
        data = _body()
        record, is_new = sessions.start_session(
            data.get("caseId"),
            user_id=data.get("userId"),
            new_game=bool(data.get("newGame")),
        )
        return jsonify({
            "sessionId": record.session_id,
            "progress": record.progress.to_json_dict(),
            "isNew": is_new,
        })

    @app.route("/api/sessions/latest", methods=["GET"])
    def latest_session():
        latest = sessions.latest_session_id(request.args.get("caseId"), request.args.get("userId"))
        return jsonify({"latestSessionId": latest})

    @app.route("/api/sessions/<session_id>", methods=["GET"])
    def get_session(session_id):
        record = sessions.get_session(session_id)
        return jsonify({
            "sessionId": record.session_id,
            "caseId": record.case_id,
            "progress": record.progress.to_json_dict(),
            "isSolved": record.is_solved,
            "finalAccusation": record.final_accusation,
        })

    @app.route("/api/sessions/<session_id>", methods=["DELETE"])
    def delete_session(session_id):
        deleted_at = sessions.delete_session(session_id)
        return jsonify({"deleted": True, "deletedAt": deleted_at.isoformat()})

    @app.route("/api/sessions/<session_id>/accuse", methods=["POST"])
    def accuse(session_id):
        data = _body()
        verdict = sessions.accuse(session_id, data.get("suspectId"), data.get("evidenceId"))
        return jsonify(verdict.to_json_dict())

    @app.route("/api/chat", methods=["POST"])
    def chat():
        data = _body()
        result = engine.handle_turn(data.get("sessionId"), data.get("caseId"), data.get("message"))
        return jsonify(result.to_json_dict())

    logger.info(
        "App ready (database=%s, groq_configured=%s)",
        settings.database_url.split("://", 1)[0], settings.groq_configured,
    )
    return app


if __name__ == "__main__":
    # Load .env before Settings reads the environment.
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    settings = Settings.from_env()
    if not settings.groq_configured:
        logger.warning("GROQ_API_KEY is not set; chat turns will fail until it is.")
    create_app(settings).run(host="0.0.0.0", port=settings.port)
