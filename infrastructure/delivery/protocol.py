"""DeliveryProvider protocol — services depend on this, not the concrete providers."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class DeliveryResult:
    accepted: bool
    reason: Optional[str] = None
    provider_ref: Optional[str] = None


class DeliveryProvider(Protocol):
    async def send(
        self, destination: str, purpose: str, code: str
    ) -> DeliveryResult: ...
