import json
import logging
from unittest import mock

import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

import psc_auth

CREDENTIAL_ENV_VARS = (
    psc_auth.INLINE_JSON_ENV,
    psc_auth.JSON_PATH_ENV,
    psc_auth.ADC_ENV,
    "PSC_PACKAGE_NAME",
    "PSC_IMPERSONATE_SUBJECT",
    "PSC_CONFIG_FILE",
    "PSC_LOG_LEVEL",
    "PSC_GH_APP_ID",
    "PSC_GH_INSTALLATION_ID",
    "PSC_GH_PRIVATE_KEY_PATH",
)


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048, backend=default_backend())


@pytest.fixture(scope="session")
def rsa_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def service_account_info(rsa_pem) -> dict:
    return {
        "type": "service_account",
        "client_email": "publisher@example-project.iam.gserviceaccount.com",
        "private_key": rsa_pem,
        "private_key_id": "kid-123",
    }


@pytest.fixture
def service_account_file(tmp_path, service_account_info) -> str:
    path = tmp_path / "sa.json"
    path.write_text(json.dumps(service_account_info), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # Helper intent: no test should pick up credentials or options from the
    # developer's real environment.
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def fake_response(status_code=200, body=None, text=None):
    """Minimal stand-in for requests.Response."""
    resp = mock.Mock()
    resp.status_code = status_code
    if body is None:
        resp.content = b"" if text is None else text.encode("utf-8")
        resp.json.side_effect = ValueError("no json")
    else:
        resp.content = json.dumps(body).encode("utf-8")
        resp.json.return_value = body
    resp.text = text if text is not None else (json.dumps(body) if body is not None else "")
    return resp


@pytest.fixture
def make_response():
    return fake_response


@pytest.fixture(autouse=True)
def reset_psc_logger():
    # Helper intent: CLI entry points attach a stderr handler bound to the
    # stream captured for that test; drop it so later tests do not write to a
    # closed capture.
    yield
    for name in ("psc", "psc.test-secrets"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
