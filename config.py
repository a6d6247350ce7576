"""
config.py
=========
Central configuration module for the crime-scene partner game.

All tunable constants, model identifiers, turn-pipeline limits and the small
keyword vocabularies used by the intent resolver live here so they can be
adjusted without touching business logic.

Usage:
    from config import MODEL_CONFIG, GAME_CONFIG, MOVE_CUES, TALK_CUES
    settings = Settings.from_env()
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple


# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelConfig:
    """
    Groq model identifiers used across the system.

    Attributes:
        partner_model:  Large, high-quality model that voices the partner
                        detective. In-character texting plus strict adherence
                        to the disclosure rules needs the stronger model.
        utility_model:  Smaller, faster model for rolling-summary rewrites.
    """
    partner_model: str = "llama-3.3-70b-versatile"
    utility_model: str = "llama-3.1-8b-instant"


# ---------------------------------------------------------------------------
# Turn pipeline parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GameConfig:
    """
    Limits applied by the turn orchestrator and its guards.

    Attributes:
        min_message_chars:   Shortest stripped message worth a model call.
        max_message_chars:   Longest message accepted from the player.
        cooldown_seconds:    Minimum gap between two accepted turns of the
                             same session.
        short_term_window:   Number of most-recent chat messages kept verbatim
                             in short-term memory (and sent to the model).
        summary_every_turns: Every N user turns the discarded tail of the
                             chat history is folded into the long-term summary.
        repeat_limit:        A message identical to this many previous user
                             turns in a row is answered with the nudge text.
        context_max_chars:   Soft ceiling for the rendered context block.
        default_long_term_summary: Placeholder summary for a fresh session.
        opening_message:     Reserved message that asks the partner to open
                             the case instead of answering the player.
    """
    min_message_chars:   int   = 2
    max_message_chars:   int   = 500
    cooldown_seconds:    float = 5.0
    short_term_window:   int   = 10
    summary_every_turns: int   = 10
    repeat_limit:        int   = 2
    context_max_chars:   int   = 6000

    default_long_term_summary: str = "The investigation has just started."
    opening_message:           str = "start_game"


# ---------------------------------------------------------------------------
# Deployment settings
# ---------------------------------------------------------------------------

def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """
    Environment / deployment settings.

    Attributes:
        database_url:      SQLAlchemy URL of the case and session database.
        groq_configured:   True when GROQ_API_KEY is present.
        seed_sample_cases: Upsert the bundled sample case at startup.
        cases_dir:         Optional directory of JSON case files to import.
        cors_origins:      Origins allowed by flask-cors ("*" by default).
        port:              Port for the development server.
    """
    database_url:      str = "sqlite:///crime_scene.db"
    groq_configured:   bool = False
    seed_sample_cases: bool = True
    cases_dir:         Optional[str] = None
    cors_origins:      Tuple[str, ...] = ("*",)
    port:              int = 3004

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            groq_configured=bool(os.getenv("GROQ_API_KEY")),
            seed_sample_cases=_env_flag("SEED_SAMPLE_CASES", True),
            cases_dir=os.getenv("CASES_DIR") or None,
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            port=int(os.getenv("PORT", str(cls.port))),
        )


# ---------------------------------------------------------------------------
# Singleton instances (import-ready)
# ---------------------------------------------------------------------------

MODEL_CONFIG = ModelConfig()
GAME_CONFIG  = GameConfig()


# ---------------------------------------------------------------------------
# Intent cue vocabularies
# ---------------------------------------------------------------------------

MOVE_CUES: FrozenSet[str] = frozenset({
    # English phrases
    "go to", "move to", "head to", "walk to", "let's go", "lets go",
    "go back to", "return to", "head over", "get over to",
    # Single movement words
    "enter", "leave",
    # Turkish movement words
    "git", "gidelim", "gidin", "geç", "geçelim", "gir", "girelim",
})
"""
Phrases that mark a message as a request to change location.

Only when one of these is present does the resolver scan location keywords,
so that "the kitchen knife" inspected in the study does not teleport the
partner to the kitchen.
"""

TALK_CUES: FrozenSet[str] = frozenset({
    "talk", "interrogate", "question", "interview", "ask",
    "konuş", "konuşalım", "sorgula", "sor",
})
"""
Words that mark a message as a request to interrogate someone.

Suspect interrogation is reserved for a later mechanic; a talk intent is an
identity transition today.
"""

SPOILER_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\b(all|list|show|give|tell)\s+(me\s+)?(the\s+)?(evidence|clues|items)\b", re.IGNORECASE),
    re.compile(r"\b(what|which)\s+(is|are)\s+(the\s+)?(evidence|clues)\b", re.IGNORECASE),
    re.compile(r"\btümü?n?\s+(delil|kanıt|ipuç)", re.IGNORECASE),
    re.compile(r"\b(ne|hangi)\s+(delil|kanıt)", re.IGNORECASE),
)
"""
Broad "just tell me everything" requests. These are answered with a fixed
in-character line and never reach the model.
"""
