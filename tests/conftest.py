"""
Shared pytest configuration and fixtures.

This module provides fixtures used across the unit and integration suites:
configuration objects, patient records, a mocked linkage transport and a
factory for canned HTTP responses.
"""

import json
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import MagicMock, Mock

import pytest

from pseudonym_handler.config.schema import Config
from pseudonym_handler.identity.validator import create_patient
from pseudonym_handler.models.patient import PatientRecord, PatientRecordSet
from pseudonym_handler.transport.http_client import LinkageTransport


SERVER_URL = "http://broker.test"


@pytest.fixture
def project_root() -> Path:
    """
    Return the project root directory.

    Returns:
        Path: Absolute path to the project root directory.
    """
    return Path(__file__).parent.parent


@pytest.fixture
def config() -> Config:
    """Return a configuration pointing at a test broker."""
    return Config(
        endpoints={"server_url": SERVER_URL, "linkage_api_version": "3.0"},
        transport={"max_retries": 0},
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a complete configuration file and return its path."""
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({
        "endpoints": {"server_url": SERVER_URL, "linkage_api_version": "3.0"},
        "transport": {"verify_tls": False, "timeout_connect": 5, "timeout_read": 15},
        "logging": {"level": "DEBUG", "log_file": str(tmp_path / "logs" / "test.log")},
        "batch": {"concurrent_connections": 4},
    }))
    return config_path


@pytest.fixture
def patient() -> PatientRecord:
    """A single valid patient in state CREATED."""
    return create_patient("p1", "Ada", "Lovelace", date(1815, 12, 10), mdat="diagnosis-a")


@pytest.fixture
def records() -> PatientRecordSet:
    """Three valid patients in state CREATED."""
    return PatientRecordSet([
        create_patient("p1", "Ada", "Lovelace", date(1815, 12, 10), mdat="mdat-1"),
        create_patient("p2", "Alan", "Turing", date(1912, 6, 23), mdat="mdat-2"),
        create_patient("p3", "Grace", "Hopper", date(1906, 12, 9), mdat="mdat-3"),
    ])


@pytest.fixture
def make_response() -> Callable[..., Mock]:
    """Factory for requests.Response stand-ins.

    Example:
        response = make_response(201, [{"idString": "A1B2C3D4"}])
    """
    def _make(status_code: int, body: Any = None, text: Optional[str] = None) -> Mock:
        response = Mock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        if text is None:
            text = "" if body is None else json.dumps(body)
        response.text = text

        def _json():
            return json.loads(text)

        response.json = Mock(side_effect=_json)
        return response

    return _make


@pytest.fixture
def mock_transport() -> MagicMock:
    """LinkageTransport double with real URL joining and API version 3.0."""
    transport = MagicMock(spec=LinkageTransport)
    transport.server_url = SERVER_URL
    transport.api_version = "3.0"
    transport.url.side_effect = lambda path: f"{SERVER_URL}/{path.lstrip('/')}"
    return transport


def token_url(token_id: str) -> str:
    """Token URL as issued by the test broker."""
    return f"{SERVER_URL}/patients?tokenId={token_id}"


@pytest.fixture
def make_token_url() -> Callable[[str], str]:
    return token_url
