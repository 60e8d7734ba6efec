"""Cloudflare Workers AI implementation of AltTextProvider.

Calls the REST inference endpoint for the LLaVA image-to-text model. Any
transport error, non-2xx status, or unsuccessful envelope is raised as
``UpstreamError`` so the route answers 503 without leaking details.
"""

from infrastructure.http_client import HttpClient
from errors import UpstreamError
from shared.logging import get_logger

log = get_logger(__name__)

_API_BASE = "https://api.cloudflare.com/client/v4/accounts"

ALT_TEXT_PROMPT = (
    "Describe this image in detail for use as alt text. Focus on the main subjects, "
    "actions, and important visual elements that would help someone understand the "
    "image content. Be concise but descriptive."
)
MAX_TOKENS = 150
MAX_ALT_TEXT_LENGTH = 300
FALLBACK_DESCRIPTION = "Unable to generate description"


def clean_alt_text(text: str) -> str:
    """Trim and cap the model output at 300 characters (297 + ellipsis)."""
    text = text.strip()
    if len(text) > MAX_ALT_TEXT_LENGTH:
        return f"{text[:MAX_ALT_TEXT_LENGTH - 3]}..."
    return text


class CloudflareAltTextProvider:
    def __init__(
        self, account_id: str, api_token: str, model: str, http_client: HttpClient
    ) -> None:
        self._account_id = account_id
        self._api_token = api_token
        self.model = model
        self._http = http_client

    @property
    def _url(self) -> str:
        return f"{_API_BASE}/{self._account_id}/ai/run/{self.model}"

    async def describe(self, image: bytes) -> str:
        try:
            response = await self._http.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_token}"},
                json={
                    "image": list(image),
                    "prompt": ALT_TEXT_PROMPT,
                    "max_tokens": MAX_TOKENS,
                },
            )
        except Exception as e:
            log.error(
                "ai_request_failed", error=str(e), error_type=type(e).__name__
            )
            raise UpstreamError("AI request failed", details={"error": str(e)}) from e

        if response.status_code != 200:
            log.error(
                "ai_api_error",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise UpstreamError(
                "AI service returned an error",
                details={"status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("AI service returned invalid JSON") from e

        if not payload.get("success", True):
            log.error("ai_api_unsuccessful", errors=payload.get("errors", []))
            raise UpstreamError("AI service reported failure")

        result = payload.get("result") or {}
        text = result.get("description") or result.get("text") or FALLBACK_DESCRIPTION
        return clean_alt_text(str(text))
