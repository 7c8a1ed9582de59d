# MIT License
# Copyright (c) 2025 Gordon Trevorrow
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""Service principal credentials, RS256 assertions and OAuth2 token exchange.

The same assertion builder serves two authorities:
  - Google OAuth2 JWT-bearer grant (service account -> access token)
  - GitHub App installation tokens (app JWT -> installation token)
Only the claim set and the endpoint differ.
"""

import base64
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from urllib.parse import quote

import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from psc_errors import (
    ConfigurationError,
    CredentialNotFoundError,
    SigningError,
    TransportError,
    UnexpectedResponseError,
)
from psc_secrets import mask_secret

LOG = logging.getLogger("psc.auth")

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GITHUB_API_URL = "https://api.github.com"
ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
RS256 = "RS256"

# service account assertion lifetime (Google caps it at one hour)
SERVICE_ACCOUNT_ASSERTION_TTL = 3600
# GitHub rejects app JWTs valid for more than 10 minutes; backdate for clock skew
APP_JWT_BACKDATE = 60
APP_JWT_TTL = 540

INLINE_JSON_ENV = "PSC_SERVICE_ACCOUNT_JSON"
JSON_PATH_ENV = "PSC_SERVICE_ACCOUNT_JSON_PATH"
ADC_ENV = "GOOGLE_APPLICATION_CREDENTIALS"


# ---------- Credentials ----------

@dataclass(frozen=True)
class Credential:
    principal_id: str
    signing_key: str = field(repr=False)
    source: str
    key_id: Optional[str] = None
    key_algorithm: str = RS256


def _credential_from_service_account(parsed: Any, source: str) -> Credential:
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"Service account credentials from {source} must be a JSON object")
    if not parsed.get("client_email") or not parsed.get("private_key"):
        raise ConfigurationError(f"Service account credentials from {source} are missing client_email or private_key")
    return Credential(
        principal_id=str(parsed["client_email"]),
        signing_key=str(parsed["private_key"]),
        source=source,
        key_id=parsed.get("private_key_id") or None,
    )


def _read_service_account_file(path: str) -> Credential:
    resolved = os.path.abspath(os.path.expanduser(path))
    if not os.path.exists(resolved):
        raise ConfigurationError(f"Service account file does not exist: {resolved}")
    if not os.path.isfile(resolved):
        raise ConfigurationError(f"Service account path is not a file: {resolved}")
    try:
        with open(resolved, "r", encoding="utf-8") as f:
            raw = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read service account file {resolved}: {e}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse service account JSON {resolved}: {e.msg}")
    return _credential_from_service_account(parsed, resolved)


def load_service_account_credential(explicit_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Credential:
    """Resolve the service account by fixed priority.

    Order: inline JSON env var, explicit path, path env var, ADC env var.
    The first populated source is used; if it is broken we fail rather than
    moving on to the next one.
    """
    env = os.environ if environ is None else environ

    raw_json = env.get(INLINE_JSON_ENV)
    if raw_json:
        try:
            parsed = json.loads(raw_json)
        except json.JSONDecodeError:
            raise ConfigurationError(f"{INLINE_JSON_ENV} is not valid JSON")
        return _credential_from_service_account(parsed, INLINE_JSON_ENV)

    for path, label in ((explicit_path, "--credentials"), (env.get(JSON_PATH_ENV), JSON_PATH_ENV), (env.get(ADC_ENV), ADC_ENV)):
        if path:
            LOG.debug("Loading service account from %s (%s)", path, label)
            return _read_service_account_file(path)

    raise CredentialNotFoundError(
        f"Service account credentials not found. Set {INLINE_JSON_ENV}, pass --credentials, "
        f"or set {JSON_PATH_ENV} or {ADC_ENV}."
    )


def load_app_credential(app_id: str, pem_path: str) -> Credential:
    resolved = os.path.abspath(os.path.expanduser(pem_path))
    if not os.path.isfile(resolved):
        raise ConfigurationError(f"GitHub App private key not found: {resolved}")
    try:
        with open(resolved, "r", encoding="utf-8") as f:
            pem = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read GitHub App private key {resolved}: {e}")
    return Credential(principal_id=str(app_id), signing_key=pem, source=resolved)


# ---------- JWT assertions ----------

def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + pad)


def canonical_json(obj: Mapping[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_segment(segment: str) -> Dict[str, Any]:
    return json.loads(b64url_decode(segment))


@dataclass(frozen=True)
class SignedAssertion:
    header: Mapping[str, Any]
    claims: Mapping[str, Any]
    signature: bytes = field(repr=False)

    @property
    def signing_input(self) -> str:
        return f"{b64url(canonical_json(self.header))}.{b64url(canonical_json(self.claims))}"

    @property
    def compact(self) -> str:
        return f"{self.signing_input}.{b64url(self.signature)}"

    def __str__(self) -> str:
        return self.compact


def _load_rsa_key(signing_key: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(signing_key.encode("utf-8"), password=None, backend=default_backend())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"Unable to load private key: {e}")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(f"RS256 requires an RSA private key, got {type(key).__name__}")
    return key


def build_assertion(header: Mapping[str, Any], claims: Mapping[str, Any], signing_key: str) -> SignedAssertion:
    alg = header.get("alg", RS256)
    if alg != RS256:
        raise SigningError(f"Unsupported JWT algorithm: {alg}")
    header = dict(header)
    header["alg"] = RS256
    key = _load_rsa_key(signing_key)
    unsigned = SignedAssertion(header=header, claims=dict(claims), signature=b"")
    signature = key.sign(unsigned.signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return SignedAssertion(header=header, claims=dict(claims), signature=signature)


ClaimsFactory = Callable[[Credential, int], Dict[str, Any]]


def issue_assertion(credential: Credential, claims_factory: ClaimsFactory, now: Optional[int] = None) -> SignedAssertion:
    if credential.key_algorithm != RS256:
        raise SigningError(f"Unsupported key algorithm: {credential.key_algorithm}")
    now = int(datetime.now(timezone.utc).timestamp()) if now is None else now
    header: Dict[str, Any] = {"alg": RS256, "typ": "JWT"}
    if credential.key_id:
        header["kid"] = credential.key_id
    return build_assertion(header, claims_factory(credential, now), credential.signing_key)


def service_account_claims(scopes: Sequence[str], subject: Optional[str] = None, audience: str = GOOGLE_TOKEN_URL) -> ClaimsFactory:
    def factory(credential: Credential, now: int) -> Dict[str, Any]:
        claims = {
            "iss": credential.principal_id,
            "scope": " ".join(scopes),
            "aud": audience,
            "iat": now,
            "exp": now + SERVICE_ACCOUNT_ASSERTION_TTL,
        }
        if subject:
            claims["sub"] = subject
        return claims
    return factory


def app_claims(credential: Credential, now: int) -> Dict[str, Any]:
    app_id = credential.principal_id
    return {
        "iat": now - APP_JWT_BACKDATE,
        "exp": now + APP_JWT_TTL,
        "iss": int(app_id) if app_id.isdigit() else app_id,
    }


# ---------- Token exchange ----------

@dataclass(frozen=True)
class AccessToken:
    value: str = field(repr=False)
    token_type: str
    expires_in_seconds: Optional[int]
    issued_at: datetime

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_in_seconds is None:
            return None
        return self.issued_at + timedelta(seconds=self.expires_in_seconds)

    def masked(self) -> str:
        return mask_secret(self.value, 10, 6)


@dataclass(frozen=True)
class InstallationToken:
    value: str = field(repr=False)
    expires_at: Optional[str]
    repositories_count: Optional[int]

    def masked(self) -> str:
        return mask_secret(self.value, 6, 4)


def _response_json(resp: requests.Response) -> Dict[str, Any]:
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _raise_for_status(resp: requests.Response, action: str) -> None:
    if not 200 <= resp.status_code < 300:
        raise TransportError(action, resp.status_code, resp.text)


def exchange_jwt_bearer(assertion: SignedAssertion, token_url: str = GOOGLE_TOKEN_URL, session: Optional[requests.Session] = None) -> AccessToken:
    http = session or requests
    data = {
        "grant_type": JWT_BEARER_GRANT,
        "assertion": assertion.compact,
    }
    headers = {"Content-Type": "application/x-www-form-urlencoded"}
    LOG.info("Exchanging service account assertion at %s", token_url)
    resp = http.post(token_url, headers=headers, data=data)
    _raise_for_status(resp, "token exchange")
    tok = _response_json(resp)
    if not tok.get("access_token"):
        raise UnexpectedResponseError("token exchange", resp.status_code, "token exchange produced no access_token")
    expires_in = tok.get("expires_in")
    return AccessToken(
        value=tok["access_token"],
        token_type=tok.get("token_type", "Bearer"),
        expires_in_seconds=int(expires_in) if expires_in is not None else None,
        issued_at=datetime.now(timezone.utc),
    )


def issue_installation_token(app_assertion: SignedAssertion, installation_id: str, session: Optional[requests.Session] = None) -> InstallationToken:
    http = session or requests
    url = f"{GITHUB_API_URL}/app/installations/{quote(str(installation_id), safe='')}/access_tokens"
    headers = {
        "Authorization": f"Bearer {app_assertion.compact}",
        "Accept": "application/vnd.github+json",
    }
    LOG.info("Requesting installation token for installation %s", installation_id)
    resp = http.post(url, headers=headers)
    _raise_for_status(resp, "installation token issuance")
    body = _response_json(resp)
    if not body.get("token"):
        raise UnexpectedResponseError("installation token issuance", resp.status_code, "installation token response has no token")
    repositories = body.get("repositories")
    return InstallationToken(
        value=body["token"],
        expires_at=body.get("expires_at"),
        repositories_count=len(repositories) if isinstance(repositories, list) else None,
    )


def authorize_service_account(
    credential: Credential,
    scopes: Sequence[str] = (ANDROID_PUBLISHER_SCOPE,),
    subject: Optional[str] = None,
    now: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> AccessToken:
    assertion = issue_assertion(credential, service_account_claims(scopes, subject), now=now)
    return exchange_jwt_bearer(assertion, session=session)
