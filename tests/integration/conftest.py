"""Integration test fixtures and configuration.

This module wires the real client stack (workflow, engines, transport and a
requests session) to the Flask mock linkage service in-process. A requests
transport adapter hands every prepared request to the Flask test client, so
no sockets or background servers are involved.
"""

from typing import Callable, Iterator
from urllib.parse import urlsplit

import pytest
import requests
from flask import Flask
from flask.testing import FlaskClient
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from pseudonym_handler.config.schema import Config
from pseudonym_handler.linkage.workflows import PseudonymizationWorkflow
from pseudonym_handler.mock_server.app import app, initialize_app
from pseudonym_handler.mock_server.config import MockServerConfig
from pseudonym_handler.mock_server.linkage_endpoint import reset_state
from pseudonym_handler.transport.http_client import LinkageTransport

BROKER_URL = "http://broker.test"


class FlaskClientAdapter(BaseAdapter):
    """Requests adapter that answers from a Flask app.

    Every request gets its own test client so concurrent redemptions do not
    share client state.
    """

    def __init__(self, flask_app: Flask) -> None:
        super().__init__()
        self.flask_app = flask_app

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        url = urlsplit(request.url)
        headers = {
            name: value for name, value in request.headers.items()
            if name.lower() != "content-length"
        }
        flask_response = self.flask_app.test_client().open(
            url.path,
            base_url=f"{url.scheme}://{url.netloc}",
            query_string=url.query,
            method=request.method,
            headers=headers,
            data=request.body,
        )

        response = requests.Response()
        response.status_code = flask_response.status_code
        response.headers = CaseInsensitiveDict(flask_response.headers.items())
        response._content = flask_response.get_data()
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response

    def close(self) -> None:
        pass


@pytest.fixture
def mock_service(tmp_path) -> Iterator[Callable[..., FlaskClient]]:
    """Start the mock linkage service with config overrides; returns its test client."""
    def _start(**overrides) -> FlaskClient:
        overrides.setdefault("log_path", str(tmp_path / "mock-linkage.log"))
        initialize_app(MockServerConfig(**overrides), handle_signals=False)
        reset_state()
        return app.test_client()

    yield _start
    reset_state()


@pytest.fixture
def make_workflow(config: Config, mock_service) -> Iterator[Callable[..., PseudonymizationWorkflow]]:
    """Build a workflow whose transport talks to the in-process mock service.

    Example:
        workflow = make_workflow(concurrent_connections=8, use_callback=True)
    """
    workflows: list[PseudonymizationWorkflow] = []

    def _make(
        concurrent_connections: int = 1,
        api_version: str = "3.0",
        **mock_overrides,
    ) -> PseudonymizationWorkflow:
        client = mock_service(**mock_overrides)
        session = requests.Session()
        session.mount(BROKER_URL, FlaskClientAdapter(client.application))

        config.batch.concurrent_connections = concurrent_connections
        config.endpoints.linkage_api_version = api_version
        workflow = PseudonymizationWorkflow(config, transport=LinkageTransport(config, session=session))
        workflows.append(workflow)
        return workflow

    yield _make
    for workflow in workflows:
        workflow.close()
        workflow.transport.session.close()
