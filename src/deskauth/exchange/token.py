"""Authorization-code-for-token exchange with the identity provider."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from deskauth.exceptions import UpstreamParseError
from deskauth.exchange.transport import FailureMessages, post_for_json
from deskauth.models import ProviderTokenResponse

logger = logging.getLogger(__name__)

TOKEN_MESSAGES = FailureMessages(
    transport="Token request failed",
    status="Token exchange failed",
    parse="Failed to parse token response",
)


class TokenExchanger:
    """Redeem an authorization code at the provider's token endpoint.

    The ``redirect_uri`` posted here is the fixed, pre-registered URI; the
    provider rejects the exchange unless it matches the one used to obtain
    the code.

    Args:
        token_url: The provider's token endpoint.
        redirect_uri: The registered redirect URI.
        timeout: Request timeout in seconds.
    """

    def __init__(self, token_url: str, redirect_uri: str, timeout: float = 30.0) -> None:
        self.token_url = token_url
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def exchange(
        self,
        code: str,
        code_verifier: str,
        client_id: str,
        client_secret: str,
    ) -> ProviderTokenResponse:
        """Exchange *code* (bound to *code_verifier*) for an access token.

        Returns:
            The parsed :class:`~deskauth.models.ProviderTokenResponse`.

        Raises:
            UpstreamTransportError: ``Token request failed: <detail>``.
            UpstreamStatusError: ``Token exchange failed: <body>``.
            UpstreamParseError: ``Failed to parse token response: <detail>``,
                including a 2xx reply without ``access_token``.
        """
        data: dict[str, str] = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "code_verifier": code_verifier,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        payload = post_for_json(
            self.token_url, TOKEN_MESSAGES, timeout=self.timeout, data=data
        )
        try:
            token = ProviderTokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamParseError(f"{TOKEN_MESSAGES.parse}: {exc}") from exc

        logger.info("Received %s token from provider", token.token_type)
        return token
