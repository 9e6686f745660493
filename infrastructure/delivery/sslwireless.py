"""SSL Wireless SMS implementation of DeliveryProvider.

API reference: https://docs.sslwireless.com/sms/sms-api/ (v3, JSON).
The gateway expects MSISDNs as ``8801XXXXXXXXX`` (no leading ``+``).
"""

from config import SmsSettings
from infrastructure.delivery.messages import render_code_message
from infrastructure.delivery.protocol import DeliveryResult
from infrastructure.http_client import HttpClient
from shared.generators import generate_token_id
from shared.logging import get_logger, mask_destination

log = get_logger(__name__)


class SslWirelessSmsProvider:
    def __init__(
        self,
        settings: SmsSettings,
        http_client: HttpClient,
        code_ttl_seconds: int = 300,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._code_ttl_seconds = code_ttl_seconds

    async def send(self, destination: str, purpose: str, code: str) -> DeliveryResult:
        if not self._settings.sslwireless_api_token or not self._settings.sslwireless_sid:
            log.error("sms_send_failed", reason="credentials_not_configured")
            return DeliveryResult(accepted=False, reason="not_configured")

        if "@" in destination:
            return DeliveryResult(accepted=False, reason="unsupported_destination")

        csms_id = generate_token_id()[:20]
        payload = {
            "api_token": self._settings.sslwireless_api_token,
            "sid": self._settings.sslwireless_sid,
            "msisdn": destination.lstrip("+"),
            "sms": render_code_message(
                purpose, code, self._settings.sms_brand_name, self._code_ttl_seconds
            ),
            "csms_id": csms_id,
        }

        try:
            response = await self._http.post(
                self._settings.sslwireless_api_url,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except Exception as e:
            log.error(
                "sms_send_error",
                destination=mask_destination(destination),
                purpose=purpose,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryResult(accepted=False, reason="transport_error")

        body: dict = {}
        try:
            body = response.json()
        except ValueError:
            pass

        if response.status_code == 200 and str(body.get("status", "")).upper() == "SUCCESS":
            log.info(
                "sms_sent_success",
                destination=mask_destination(destination),
                purpose=purpose,
                csms_id=csms_id,
            )
            return DeliveryResult(accepted=True, provider_ref=csms_id)

        log.error(
            "sms_sent_failed",
            destination=mask_destination(destination),
            purpose=purpose,
            status_code=response.status_code,
            error_message=body.get("error_message"),
        )
        return DeliveryResult(
            accepted=False, reason=body.get("error_message") or "gateway_rejected"
        )
