# cloud/gcp/auth.py

import time
import threading
from dataclasses import dataclass

import requests
from jose import jwk, jwt
from jose.exceptions import JOSEError

from cloud.errors import AuthError, TokenExchangeError, OperationCancelledError
from cloud.logging_config import LogConfig

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
COMPUTE_SCOPE = "https://www.googleapis.com/auth/compute"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600


@dataclass(frozen=True)
class Credentials:
    """Service account identity used to mint access tokens."""

    client_email: str = ""
    private_key: str = ""
    token_url: str = TOKEN_ENDPOINT
    project_id: str = ""
    private_key_id: str = ""
    type: str = "service_account"


class JWTSigner:
    """Signs claim sets with RS256 using a PEM encoded RSA private key."""

    algorithm = "RS256"

    def __init__(self, private_key_pem: str):
        try:
            self._key = jwk.construct(private_key_pem, self.algorithm)
        except (JOSEError, ValueError, TypeError) as e:
            raise AuthError(f"failed to parse private key: {e}") from e
        self._private_key_pem = private_key_pem

    def sign_claims(self, claims: dict, headers: dict | None = None) -> str:
        try:
            return jwt.encode(
                claims,
                self._private_key_pem,
                algorithm=self.algorithm,
                headers=headers,
            )
        except (JOSEError, ValueError, TypeError) as e:
            raise AuthError(f"failed to sign token: {e}") from e


class TokenManager:
    """
    Mints and caches OAuth2 bearer tokens via the JWT-bearer grant.

    At most one refresh is in flight at a time: callers racing an expired
    cache wait on the lock and then pick up the token the winner fetched.
    """

    def __init__(
        self,
        credentials: Credentials,
        session: requests.Session | None = None,
        log_config: LogConfig | None = None,
        request_timeout: float = 30.0,
    ):
        self.credentials = credentials
        self.signer = JWTSigner(credentials.private_key)
        self.session = session or requests.Session()
        self.request_timeout = request_timeout
        self.logger = (log_config or LogConfig()).get_logger("gcp-auth")

        self._lock = threading.Lock()
        # (access_token, expires_at) replaced as a whole so readers never see a torn pair
        self._cached: tuple[str, float] | None = None

    def _valid_token(self) -> str | None:
        cached = self._cached
        if cached is not None and time.time() < cached[1]:
            return cached[0]
        return None

    def get_token(self, cancel: threading.Event | None = None) -> str:
        """
        Return a valid access token, refreshing it if needed.

        Args:
            cancel: Optional event; if set before the exchange, the call is abandoned

        Returns:
            Bearer access token string
        """
        token = self._valid_token()
        if token is not None:
            return token

        with self._lock:
            token = self._valid_token()
            if token is not None:
                return token

            if cancel is not None and cancel.is_set():
                raise OperationCancelledError("token refresh cancelled")

            return self._fetch_token()

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes it."""
        self._cached = None

    def _fetch_token(self) -> str:
        now = int(time.time())
        claims = {
            "iss": self.credentials.client_email,
            "scope": COMPUTE_SCOPE,
            "aud": self.credentials.token_url,
            "iat": now,
            "exp": now + TOKEN_LIFETIME_SECONDS,
        }
        headers = None
        if self.credentials.private_key_id:
            headers = {"kid": self.credentials.private_key_id}

        assertion = self.signer.sign_claims(claims, headers=headers)

        self.logger.debug(f"Requesting access token from {self.credentials.token_url}")
        try:
            resp = self.session.post(
                self.credentials.token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TokenExchangeError(f"token request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise TokenExchangeError(
                f"token request failed with status {resp.status_code}"
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise TokenExchangeError(f"failed to decode token response: {e}") from e

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise TokenExchangeError("received empty access token")

        try:
            expires_in = int(body.get("expires_in", 0))
        except (TypeError, ValueError) as e:
            raise TokenExchangeError(f"invalid expires_in: {body.get('expires_in')!r}") from e

        self._cached = (access_token, time.time() + expires_in)
        self.logger.debug(f"Access token refreshed, expires in {expires_in}s")
        return access_token
