"""ntfy delivery client."""

import logging
from logging import Logger, LoggerAdapter

import httpx

from alertntfy.adapters.interfaces import NotificationRelay
from alertntfy.config import NtfyConfig
from alertntfy.domain.errors import DeliveryError
from alertntfy.utils.redaction import redact_headers, redact_text

logger = logging.getLogger(__name__)


class NtfyClient(NotificationRelay):
    """Single-attempt HTTP client for the ntfy publish API."""

    def __init__(self, config: NtfyConfig, client: httpx.Client | None = None) -> None:
        self.config = config
        self.client = client or httpx.Client(timeout=config.timeout)

    def _auth(self) -> tuple[httpx.BasicAuth | None, dict[str, str]]:
        auth = self.config.auth
        if auth is None:
            return None, {}
        if auth.valid:
            return httpx.BasicAuth(auth.username, auth.password), {}
        if auth.token:
            return None, {"Authorization": f"Bearer {auth.token}"}
        return None, {}

    def send(
        self,
        method: str,
        url: str,
        body: str | None = None,
        headers: dict[str, str] | None = None,
        log: Logger | LoggerAdapter | None = None,
    ) -> None:
        log = log or logger
        basic_auth, auth_headers = self._auth()
        # Header values go out as raw UTF-8.
        request_headers = {name: value.encode("utf-8") for name, value in {**(headers or {}), **auth_headers}.items()}
        request = self.client.build_request(
            method,
            url,
            content=body.encode("utf-8") if body is not None else None,
            headers=request_headers,
        )

        log.debug(
            "Sending alert to ntfy method=%s url=%s headers=%s body=%r",
            method,
            url,
            redact_headers(request.headers),
            body if method == "POST" else "",
        )
        try:
            response = self.client.send(request, auth=basic_auth)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"http request: {exc}") from exc

        try:
            log.debug(
                "Received response from ntfy status_code=%s body=%r",
                response.status_code,
                redact_text(response.text),
            )
            if not 200 <= response.status_code < 300:
                raise DeliveryError(
                    f"http {response.status_code}, {response.reason_phrase}",
                    status_code=response.status_code,
                )
        finally:
            response.close()

    def close(self) -> None:
        self.client.close()
