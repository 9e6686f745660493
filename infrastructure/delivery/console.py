"""Development DeliveryProvider that logs codes instead of sending them.

Never enable in production: the code is written to the log at DEBUG level
under a non-redacted key.
"""

from collections import deque

from infrastructure.delivery.protocol import DeliveryResult
from shared.logging import get_logger, mask_destination

log = get_logger(__name__)


class ConsoleDeliveryProvider:
    def __init__(self) -> None:
        # Most recent sends, newest last
        self.sent: deque[tuple[str, str, str]] = deque(maxlen=100)

    async def send(self, destination: str, purpose: str, code: str) -> DeliveryResult:
        self.sent.append((destination, purpose, code))
        log.debug(
            "otp_console_delivery",
            destination=mask_destination(destination),
            purpose=purpose,
            dev_code=code,
        )
        return DeliveryResult(accepted=True, provider_ref="console")
