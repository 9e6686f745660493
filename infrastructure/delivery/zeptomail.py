"""ZeptoMail implementation of DeliveryProvider for email destinations."""

from config import EmailSettings
from infrastructure.delivery.messages import render_code_message
from infrastructure.delivery.protocol import DeliveryResult
from infrastructure.http_client import HttpClient
from shared.logging import get_logger, mask_destination

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"

_SUBJECTS = {
    "phone_verification": "Your verification code",
    "password_reset": "Reset your password",
    "login": "Your login code",
    "guest_checkout": "Confirm your checkout",
}


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        brand: str = "identity-core",
        code_ttl_seconds: int = 300,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._brand = brand
        self._code_ttl_seconds = code_ttl_seconds

    async def send(self, destination: str, purpose: str, code: str) -> DeliveryResult:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", reason="token_not_configured")
            return DeliveryResult(accepted=False, reason="not_configured")

        text_body = render_code_message(
            purpose, code, self._brand, self._code_ttl_seconds
        )
        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": destination, "name": destination}}],
            "subject": _SUBJECTS.get(purpose, "Your verification code"),
            "htmlbody": f"<p>{text_body}</p>",
            "textbody": text_body,
        }

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"

        headers = {"Authorization": token, "Content-Type": "application/json"}

        try:
            response = await self._http.post(_ZEPTO_API_URL, json=payload, headers=headers)
        except Exception as e:
            log.error(
                "email_send_error",
                destination=mask_destination(destination),
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryResult(accepted=False, reason="transport_error")

        if response.status_code in (200, 201, 202):
            log.info(
                "email_sent_success",
                destination=mask_destination(destination),
                purpose=purpose,
            )
            return DeliveryResult(accepted=True)
        log.error(
            "email_sent_failed",
            destination=mask_destination(destination),
            purpose=purpose,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return DeliveryResult(accepted=False, reason=f"http_{response.status_code}")
