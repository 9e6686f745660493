"""Routes a code to the SMS or email provider based on the destination shape."""

from infrastructure.delivery.protocol import DeliveryProvider, DeliveryResult


class RoutingDeliveryProvider:
    def __init__(self, sms: DeliveryProvider, email: DeliveryProvider) -> None:
        self._sms = sms
        self._email = email

    async def send(self, destination: str, purpose: str, code: str) -> DeliveryResult:
        provider = self._email if "@" in destination else self._sms
        return await provider.send(destination, purpose, code)
