"""CallbackDataSource — external record authorization over an HTTP callback.

The user is sent to the record provider's authorization page with a
signed ``state`` token in the URL.  When the provider (or the page acting
for it) is done, it calls back into ``POST /api/v1/fast-path/callback``
with the same token and the extracted data.  The token binds the callback
to exactly one (user, session, question) attempt and expires with it.

Token format: ``<base64url(json claims)>.<hex hmac-sha256>``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Any
from urllib.parse import urlencode

from screening_flow.constants import FAST_PATH_TIMEOUT_SECONDS
from screening_flow.fast_path import AuthorizationChannel
from screening_flow.interfaces import ExternalDataSource
from screening_flow.models.fast_path import FastPathContext

logger = logging.getLogger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class CallbackDataSource(ExternalDataSource):
    """Routes provider callbacks to the waiting :class:`AuthorizationChannel`.

    Args:
        connect_url: provider authorization page; ``state`` is appended
        secret: HMAC key for state tokens (random per process when None)
        ttl: token lifetime in seconds
    """

    def __init__(
        self,
        connect_url: str,
        secret: str | None = None,
        *,
        ttl: float = FAST_PATH_TIMEOUT_SECONDS,
    ) -> None:
        if secret is None:
            logger.warning("No fast-path secret configured; using a per-process random key")
            secret = secrets.token_hex(32)
        self._connect_url = connect_url
        self._secret = secret.encode("utf-8")
        self._ttl = ttl
        # nonce -> channel, plus the reverse index used by release()
        self._channels: dict[str, AuthorizationChannel] = {}
        self._nonces: dict[tuple[str, str, str], str] = {}

    # ------------------------------------------------------------------
    # State tokens
    # ------------------------------------------------------------------

    def issue_state(self, context: FastPathContext, nonce: str) -> str:
        claims = {
            "u": context.user_id,
            "s": context.session_id,
            "q": context.question_id,
            "n": nonce,
            "exp": int(time.time() + self._ttl),
        }
        body = _b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
        return f"{body}.{self._sign(body)}"

    def verify_state(self, token: str) -> dict[str, Any]:
        """Return the token's claims.

        Raises:
            ValueError: malformed, forged or expired token
        """
        if not isinstance(token, str) or not token.isascii():
            raise ValueError("Invalid fast-path state token")
        body, _, signature = token.partition(".")
        if not body or not signature or not hmac.compare_digest(
            signature.encode("ascii"), self._sign(body).encode("ascii"),
        ):
            raise ValueError("Invalid fast-path state token")
        try:
            claims = json.loads(_b64decode(body))
        except (ValueError, UnicodeDecodeError):
            raise ValueError("Invalid fast-path state token") from None
        if not isinstance(claims, dict) or not isinstance(claims.get("exp"), int):
            raise ValueError("Invalid fast-path state token")
        if claims["exp"] < time.time():
            raise ValueError("Invalid fast-path state token (expired)")
        return claims

    def _sign(self, body: str) -> str:
        return hmac.new(self._secret, body.encode("ascii"), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # ExternalDataSource
    # ------------------------------------------------------------------

    async def request_authorization(
        self, context: FastPathContext, channel: AuthorizationChannel
    ) -> str:
        nonce = secrets.token_urlsafe(16)
        token = self.issue_state(context, nonce)
        self._channels[nonce] = channel
        self._nonces[(context.user_id, context.session_id, context.question_id)] = nonce

        sep = "&" if "?" in self._connect_url else "?"
        return f"{self._connect_url}{sep}{urlencode({'state': token})}"

    async def release(self, context: FastPathContext) -> None:
        nonce = self._nonces.pop((context.user_id, context.session_id, context.question_id), None)
        if nonce is not None:
            self._channels.pop(nonce, None)

    # ------------------------------------------------------------------
    # Callback entry points
    # ------------------------------------------------------------------

    def _channel_for(self, token: str) -> AuthorizationChannel:
        claims = self.verify_state(token)
        channel = self._channels.get(claims.get("n", ""))
        if channel is None:
            raise ValueError(f"Fast path not found for session {claims.get('s')}")
        return channel

    def deliver(self, token: str, message: Any) -> bool:
        """Post the provider's message to the attempt bound to ``token``."""
        return self._channel_for(token).post_message(message)

    def notify_closed(self, token: str) -> bool:
        return self._channel_for(token).notify_closed()
