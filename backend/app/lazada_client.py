"""
Lazada Open Platform Client
Signs and sends REST calls to the Lazada API and the token endpoints.
Every call adds app_key, a millisecond timestamp, sign_method and the
HMAC-SHA256 signature; application-level errors in the response body are
raised, never returned.
"""

import hashlib
import hmac
import logging
import time
from typing import Any, Optional
from urllib.parse import urlencode
import httpx
from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

SIGN_METHOD = "sha256"
TOKEN_CREATE_PATH = "/auth/token/create"
TOKEN_REFRESH_PATH = "/auth/token/refresh"


class LazadaError(Exception):
    """Base class for failures talking to Lazada."""
    pass


class LazadaAPIError(LazadaError):
    """The API answered, but with a non-zero application code."""

    def __init__(self, message: str, code: Optional[str] = None, request_id: Optional[str] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_id = request_id
        self.body = body


class LazadaTransportError(LazadaError):
    """Network failure, non-2xx status, or a body that isn't JSON."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def generate_signature(api_path: str, params: dict[str, Any], app_secret: str) -> str:
    """
    Lazada request signature: the API path followed by every parameter as
    key+value in key order, HMAC-SHA256 keyed with the app secret, upper-case hex.
    Values are signed in the same string form they are sent in.
    """
    pieces = "".join(f"{key}{_stringify(params[key])}" for key in sorted(params))
    digest = hmac.new(
        app_secret.encode("utf-8"),
        f"{api_path}{pieces}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest().upper()


def is_success_code(code: Any) -> bool:
    return code is not None and str(code) == "0"


class LazadaClient:
    """
    Thin async wrapper around the Lazada REST API.
    A fresh httpx.AsyncClient is opened per call; pass `transport` to route
    calls elsewhere (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        app_key: str,
        app_secret: str,
        api_url: str,
        auth_url: str,
        timeout: float = 30.0,
        oauth_url: str = "https://auth.lazada.com/oauth/authorize",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_key = app_key
        self.app_secret = app_secret
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.oauth_url = oauth_url
        self.timeout = timeout
        self._transport = transport

    def _timestamp(self) -> str:
        return str(int(time.time() * 1000))

    def signed_params(self, api_path: str, params: dict[str, Any], access_token: Optional[str] = None) -> dict[str, str]:
        """Return the full, signed parameter set for one call, all values as strings."""
        signed = {key: _stringify(val) for key, val in params.items() if val is not None}
        signed["app_key"] = self.app_key
        signed["timestamp"] = self._timestamp()
        signed["sign_method"] = SIGN_METHOD
        if access_token:
            signed["access_token"] = access_token
        signed["sign"] = generate_signature(api_path, signed, self.app_secret)
        return signed

    async def _send(self, base_url: str, api_path: str, params: dict[str, str], method: str) -> dict:
        url = f"{base_url}{api_path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                if method == "GET":
                    response = await client.get(url, params=params)
                else:
                    response = await client.post(url, data=params)
        except httpx.HTTPError as e:
            logger.error(f"Lazada call {api_path} failed before a response: {e}")
            raise LazadaTransportError(f"Request to {api_path} failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Lazada call {api_path} returned HTTP {response.status_code}")
            raise LazadaTransportError(
                f"Lazada returned HTTP {response.status_code} for {api_path}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise LazadaTransportError(
                f"Lazada returned a non-JSON body for {api_path}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(body, dict) or not is_success_code(body.get("code")):
            code = body.get("code") if isinstance(body, dict) else None
            message = (body.get("message") if isinstance(body, dict) else None) or f"Lazada error code {code}"
            request_id = body.get("request_id") if isinstance(body, dict) else None
            logger.warning(f"Lazada call {api_path} rejected: code={code} message={message} request_id={request_id}")
            raise LazadaAPIError(
                message,
                code=str(code) if code is not None else None,
                request_id=request_id,
                body=body,
            )
        return body

    async def request(
        self,
        api_path: str,
        access_token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        method: str = "GET",
    ) -> dict:
        """Signed call against the REST API. Returns the parsed body on code 0."""
        method = method.upper()
        signed = self.signed_params(api_path, params or {}, access_token)
        logger.info(f"Lazada {method} {api_path} params={sorted(k for k in (params or {}))}")
        return await self._send(self.api_url, api_path, signed, method)

    async def exchange_code(self, code: str) -> dict:
        """Trade an OAuth authorization code for an access/refresh token pair."""
        signed = self.signed_params(TOKEN_CREATE_PATH, {"code": code})
        return await self._send(self.auth_url, TOKEN_CREATE_PATH, signed, "POST")

    async def refresh_access_token(self, refresh_token: str) -> dict:
        signed = self.signed_params(TOKEN_REFRESH_PATH, {"refresh_token": refresh_token})
        return await self._send(self.auth_url, TOKEN_REFRESH_PATH, signed, "POST")

    def authorization_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        """Seller consent page; Lazada redirects back with ?code=..."""
        query = {
            "response_type": "code",
            "force_auth": "true",
            "redirect_uri": redirect_uri,
            "client_id": self.app_key,
        }
        if state:
            query["state"] = state
        return f"{self.oauth_url}?{urlencode(query)}"


def create_lazada_client(settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> LazadaClient:
    """Factory function to create a client from app settings."""
    settings = settings or get_settings()
    return LazadaClient(
        app_key=settings.lazada_app_key,
        app_secret=settings.lazada_app_secret,
        api_url=settings.lazada_api_url,
        auth_url=settings.lazada_auth_url,
        timeout=settings.lazada_timeout_seconds,
        oauth_url=settings.lazada_oauth_url,
        transport=transport,
    )


def get_lazada_client() -> LazadaClient:
    """FastAPI dependency; overridden in tests."""
    return create_lazada_client()
