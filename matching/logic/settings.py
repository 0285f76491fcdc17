"""
Matching Settings

Reads configuration from the environment (and a local .env file) once at
startup. The resulting MatchingSettings object is passed explicitly to
the cache, feature flag resolver and service; nothing reads os.environ
after startup.
"""

import logging
import os
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .constants import (
    MatchingFlag,
    FLAG_DESCRIPTIONS,
    MATCH_CACHE_TTL_SECONDS,
    PROGRAMS_CACHE_TTL_SECONDS,
)

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1")


class FlagConfig(BaseModel):
    enabled: bool = False
    rollout_percentage: int = Field(default=100, ge=0, le=100)
    description: str = ""

    class Config:
        frozen = True


class MatchingSettings(BaseModel):
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    match_cache_ttl: int = MATCH_CACHE_TTL_SECONDS
    programs_cache_ttl: int = PROGRAMS_CACHE_TTL_SECONDS
    log_level: str = "INFO"
    prefilter_candidates: bool = False
    flags: Dict[MatchingFlag, FlagConfig] = Field(default_factory=dict)

    class Config:
        frozen = True


def _parse_rollout(raw: Optional[str], flag: MatchingFlag) -> int:
    """Missing or invalid rollout means 100%; values are clamped to 0-100."""
    if raw is None or raw.strip() == "":
        return 100
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid rollout '{raw}' for {flag.value}, defaulting to 100%")
        return 100
    return max(0, min(100, value))


def _parse_int(raw: Optional[str], default: int, name: str) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer '{raw}' for {name}, using {default}")
        return default


def load_flag_configs(env: Mapping[str, str]) -> Dict[MatchingFlag, FlagConfig]:
    """Parse `FLAG=true|1` and optional `FLAG_ROLLOUT=0..100` for every known flag."""
    flags: Dict[MatchingFlag, FlagConfig] = {}
    for flag in MatchingFlag:
        enabled = env.get(flag.value, "").strip().lower() in TRUTHY
        flags[flag] = FlagConfig(
            enabled=enabled,
            rollout_percentage=_parse_rollout(env.get(f"{flag.value}_ROLLOUT"), flag),
            description=FLAG_DESCRIPTIONS[flag],
        )
    return flags


def load_settings(env: Optional[Mapping[str, str]] = None) -> MatchingSettings:
    """
    Build settings from a mapping, or from os.environ after loading .env.

    Args:
        env: Explicit environment (tests); None reads the process environment
    """
    if env is None:
        load_dotenv()
        env = os.environ

    settings = MatchingSettings(
        database_url=env.get("DATABASE_URL") or None,
        redis_url=env.get("REDIS_URL") or None,
        match_cache_ttl=_parse_int(env.get("MATCH_CACHE_TTL"), MATCH_CACHE_TTL_SECONDS, "MATCH_CACHE_TTL"),
        programs_cache_ttl=_parse_int(env.get("PROGRAMS_CACHE_TTL"), PROGRAMS_CACHE_TTL_SECONDS, "PROGRAMS_CACHE_TTL"),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        prefilter_candidates=(env.get("MATCHING_PREFILTER_CANDIDATES") or "").strip().lower() in TRUTHY,
        flags=load_flag_configs(env),
    )

    enabled = [f.value for f, cfg in settings.flags.items() if cfg.enabled]
    logger.info(f"Matching settings loaded (flags enabled: {enabled or 'none'})")
    return settings
