"""
Shared fixtures: an RSA key pair for signing, service account files,
and canned HTTP responses standing in for requests.Response.
"""

import json

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from cloud.gcp.auth import Credentials


class FakeResponse:
    """Just enough of requests.Response for the code under test."""

    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture(scope="session")
def rsa_key_pair():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def private_key_pem(rsa_key_pair):
    return rsa_key_pair[0]


@pytest.fixture
def credentials(private_key_pem):
    return Credentials(
        client_email="test@example.com",
        private_key=private_key_pem,
        token_url="https://oauth2.example.test/token",
        project_id="test-project",
    )


def write_service_account(path, private_key_pem, project_id="test-project"):
    data = {
        "type": "service_account",
        "private_key_id": "mock-key-id",
        "private_key": private_key_pem,
        "client_email": "test@test-project.iam.gserviceaccount.com",
        "client_id": "123456789",
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    if project_id:
        data["project_id"] = project_id
    path.write_text(json.dumps(data))
    return str(path)


@pytest.fixture
def service_account_file(tmp_path, private_key_pem):
    return write_service_account(tmp_path / "sa.json", private_key_pem)


@pytest.fixture
def service_account_file_no_project(tmp_path, private_key_pem):
    return write_service_account(tmp_path / "sa-no-project.json", private_key_pem, project_id=None)
