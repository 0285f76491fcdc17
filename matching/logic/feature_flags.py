"""
Feature Flag Resolver

Decides which V10 refinements apply for a given user. Flags are either
binary or percentage rollouts; a user's bucket is a stable hash of
(flag, user id) so the same user always lands on the same side.

MATCHING_V10_FULL enables every refinement. While it is enabled it also
decides every individual flag: a user inside FULL's rollout gets all
refinements, a user outside it gets none, whatever the individual flags say.
"""

import hashlib
from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field

from .constants import MatchingFlag, VARIANT_FLAGS
from .contracts import AlgorithmVariant
from .settings import FlagConfig


class FlagContext(BaseModel):
    """Per-evaluation context. Force lists exist for tests and admin previews."""
    user_id: Optional[str] = None
    force_enable: Set[str] = Field(default_factory=set)
    force_disable: Set[str] = Field(default_factory=set)


def rollout_bucket(flag_name: str, user_id: str) -> int:
    """Stable bucket in 0..99 for (flag, user)."""
    digest = hashlib.sha256(f"{flag_name}:{user_id}".encode("utf-8")).hexdigest()
    return int(digest, 16) % 100


class FeatureFlagResolver:
    """Pure function of the flag configuration and the evaluation context."""

    def __init__(self, flags: Dict[MatchingFlag, FlagConfig]):
        self.flags = dict(flags)

    def _config(self, flag: Union[MatchingFlag, str]) -> Optional[FlagConfig]:
        try:
            return self.flags.get(MatchingFlag(flag))
        except ValueError:
            return None

    def is_enabled(self, flag: Union[MatchingFlag, str], context: Optional[FlagContext] = None) -> bool:
        """Unknown flags are off. Never raises."""
        config = self._config(flag)
        if config is None:
            return False
        name = MatchingFlag(flag).value

        if context is not None:
            if name in context.force_disable:
                return False
            if name in context.force_enable:
                return True

        if name != MatchingFlag.FULL.value:
            full = self.flags.get(MatchingFlag.FULL)
            if full is not None and full.enabled:
                return self._in_rollout(MatchingFlag.FULL.value, full, context)

        if not config.enabled:
            return False
        return self._in_rollout(name, config, context)

    def _in_rollout(self, name: str, config: FlagConfig, context: Optional[FlagContext]) -> bool:
        if config.rollout_percentage >= 100:
            return True
        if config.rollout_percentage <= 0:
            return False

        # Percentage rollout needs a user to bucket
        if context is None or not context.user_id:
            return False
        return rollout_bucket(name, context.user_id) < config.rollout_percentage

    def is_full_enabled(self, context: Optional[FlagContext] = None) -> bool:
        return self.is_enabled(MatchingFlag.FULL, context)

    def enabled_variant_flags(self, context: Optional[FlagContext] = None) -> List[MatchingFlag]:
        if self.is_full_enabled(context):
            return list(VARIANT_FLAGS)
        return [flag for flag in VARIANT_FLAGS if self.is_enabled(flag, context)]

    def is_any_variant_enabled(self, context: Optional[FlagContext] = None) -> bool:
        return bool(self.enabled_variant_flags(context))

    def resolve_variant(self, user_id: Optional[str] = None, context: Optional[FlagContext] = None) -> AlgorithmVariant:
        """Map the enabled flags for this user onto an AlgorithmVariant."""
        if context is None:
            context = FlagContext(user_id=user_id)
        enabled = set(self.enabled_variant_flags(context))
        return AlgorithmVariant(
            fit_quality=MatchingFlag.FIT_QUALITY in enabled,
            selectivity=MatchingFlag.SELECTIVITY in enabled,
            anti_gaming=MatchingFlag.ANTI_GAMING in enabled,
            confidence=MatchingFlag.CONFIDENCE in enabled,
            categorization=MatchingFlag.CATEGORIZATION in enabled,
        )

    def describe(self) -> Dict[str, dict]:
        """Flag configuration for the health endpoint."""
        return {flag.value: config.model_dump() for flag, config in self.flags.items()}
