"""
AbuseGuard — bounds how often an identifier may hit a sensitive operation.

Counters live in the KeyValueStore under
``abuse:{purpose}:{rule}:{identifier}`` and expire with their window, so a
cache flush or restart simply resets them. The guard is advisory; it is not
the only line of defence for any flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

from errors import RateLimitError
from infrastructure.cache.store import KeyValueStore
from services.policy import Purpose, RateRule
from shared.logging import get_logger, mask_destination

log = get_logger(__name__)


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after: int = 0
    count: int = 0


class AbuseGuard:
    def __init__(
        self,
        store: KeyValueStore,
        rules: Mapping[str, Sequence[RateRule]],
    ) -> None:
        self._store = store
        self._rules = rules

    @staticmethod
    def _key(purpose: str, rule: RateRule, identifier: str) -> str:
        return f"abuse:{purpose}:{rule.name}:{identifier}"

    async def admit(self, identifier: str, purpose: Union[Purpose, str]) -> Admission:
        """Count one call for (identifier, purpose) if every rule still has room.

        All of the scope's counters move together: a denied call leaves every
        counter untouched, and ``retry_after`` is the longest remaining window
        among the exhausted rules.
        """
        scope = purpose.value if isinstance(purpose, Purpose) else purpose
        rules = self._rules.get(scope)
        if rules is None:
            raise KeyError(f"no rate rules configured for {scope!r}")

        state = await self._store.incr_within_limits(
            [
                (self._key(scope, rule, identifier), rule.limit, rule.window_seconds)
                for rule in rules
            ]
        )
        if state.allowed:
            return Admission(allowed=True, count=state.count)

        retry_after = (
            state.ttl if state.ttl > 0 else max(r.window_seconds for r in rules)
        )
        log.warning(
            "abuse_guard_denied",
            identifier=mask_destination(identifier),
            purpose=scope,
            count=state.count,
            retry_after=retry_after,
        )
        return Admission(allowed=False, retry_after=retry_after, count=state.count)

    async def require(self, identifier: str, purpose: Union[Purpose, str]) -> Admission:
        """Like admit(), but raises RateLimitError on denial."""
        admission = await self.admit(identifier, purpose)
        if not admission.allowed:
            raise RateLimitError(
                f"Too many requests. Please try again in {admission.retry_after} seconds.",
                retry_after=admission.retry_after,
            )
        return admission
