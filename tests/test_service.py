"""Tests for dynamo_connector.service module."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from dynamo_connector.errors import FetchError, GraphNotTrustedError
from dynamo_connector.service import DynamoService, fetch_health
from dynamo_connector.types import GraphTarget


def make_response(status_code=200, body=None, text=None):
    """Build a mock requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if body is not None:
        response.json = MagicMock(return_value=body)
        response.content = b"{...}"
        response.text = text or "{...}"
    else:
        response.json = MagicMock(side_effect=ValueError("no json"))
        response.content = (text or "").encode()
        response.text = text or ""
    return response


@pytest.fixture
def mock_request():
    with patch("dynamo_connector.service.requests.request") as mock:
        mock.return_value = make_response(200, {"ok": True})
        yield mock


class TestRequests:
    """Tests for the request envelope of each operation."""

    @pytest.mark.asyncio
    async def test_folder(self, mock_request):
        service = DynamoService("http://localhost:55103/", timeout=5.0)

        result = await service.folder("C:/graphs")

        assert result == {"ok": True}
        mock_request.assert_called_once_with(
            "POST",
            "http://localhost:55103/folder",
            json={"path": "C:/graphs"},
            timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_info_sends_target(self, mock_request):
        service = DynamoService("http://localhost:55103")
        target = GraphTarget("PathGraphTarget", {"path": "C:/graphs/wall.dyn"})

        await service.info(target)

        args, kwargs = mock_request.call_args
        assert args == ("POST", "http://localhost:55103/graph/info")
        assert kwargs["json"] == {
            "target": {"type": "PathGraphTarget", "path": "C:/graphs/wall.dyn"}
        }

    @pytest.mark.asyncio
    async def test_current_uses_current_graph_target(self, mock_request):
        await DynamoService("http://localhost:55103").current()

        _, kwargs = mock_request.call_args
        assert kwargs["json"] == {"target": {"type": "CurrentGraphTarget"}}

    @pytest.mark.asyncio
    async def test_run_sends_target_and_inputs(self, mock_request):
        await DynamoService("http://localhost:55103").run(
            GraphTarget.current(), {"width": 10}
        )

        args, kwargs = mock_request.call_args
        assert args[1] == "http://localhost:55103/graph/run"
        assert kwargs["json"] == {
            "target": {"type": "CurrentGraphTarget"},
            "inputs": {"width": 10},
        }

    @pytest.mark.asyncio
    async def test_trust(self, mock_request):
        await DynamoService("http://localhost:55103").trust("C:/graphs")

        args, kwargs = mock_request.call_args
        assert args[1] == "http://localhost:55103/trust"
        assert kwargs["json"] == {"path": "C:/graphs"}

    @pytest.mark.asyncio
    async def test_server_info(self, mock_request):
        await DynamoService("http://localhost:55103").server_info()

        args, kwargs = mock_request.call_args
        assert args == ("GET", "http://localhost:55103/server")
        assert kwargs["json"] is None

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, mock_request):
        mock_request.return_value = make_response(204)

        assert await DynamoService("http://localhost:55103").trust("C:/graphs") is None


class TestErrors:
    """Tests for failure mapping."""

    @pytest.mark.asyncio
    async def test_transport_failure(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("Connection refused")

        with pytest.raises(FetchError) as exc_info:
            await DynamoService("http://localhost:55103").folder("C:/")

        assert exc_info.value.status is None
        assert exc_info.value.operation == "folder"
        assert exc_info.value.is_connectivity_failure

    @pytest.mark.asyncio
    async def test_timeout(self, mock_request):
        mock_request.side_effect = requests.Timeout("read timed out")

        with pytest.raises(FetchError) as exc_info:
            await DynamoService("http://localhost:55103").run(GraphTarget.current(), {})

        assert exc_info.value.is_connectivity_failure

    @pytest.mark.asyncio
    async def test_error_message_from_body(self, mock_request):
        mock_request.return_value = make_response(404, {"message": "Folder not found"})

        with pytest.raises(FetchError) as exc_info:
            await DynamoService("http://localhost:55103").folder("C:/missing")

        assert exc_info.value.status == 404
        assert exc_info.value.message == "Folder not found"

    @pytest.mark.asyncio
    async def test_error_message_from_text(self, mock_request):
        mock_request.return_value = make_response(502, text="Bad Gateway")

        with pytest.raises(FetchError) as exc_info:
            await DynamoService("http://localhost:55103").server_info()

        assert exc_info.value.message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_graph_not_trusted(self, mock_request):
        mock_request.return_value = make_response(500, {"message": "Graph is not trusted."})

        with pytest.raises(GraphNotTrustedError) as exc_info:
            await DynamoService("http://localhost:55103").current()

        assert exc_info.value.operation == "info"

    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_request):
        response = make_response(200, text="<html>")
        mock_request.return_value = response

        with pytest.raises(FetchError, match="Invalid JSON"):
            await DynamoService("http://localhost:55103").server_info()


class TestHealth:
    """Tests for the liveness call."""

    def test_fetch_health(self, mock_request, health_body):
        mock_request.return_value = make_response(200, health_body)

        assert fetch_health("http://localhost:55100", timeout=0.5) == health_body
        mock_request.assert_called_once_with(
            "GET", "http://localhost:55100/health", json=None, timeout=0.5
        )

    @pytest.mark.asyncio
    async def test_health_at_port(self, mock_request, health_body):
        mock_request.return_value = make_response(200, health_body)

        assert await DynamoService.health_at(55107) == health_body
        assert mock_request.call_args[0][1] == "http://localhost:55107/health"

    @pytest.mark.asyncio
    async def test_instance_health(self, mock_request, health_body):
        mock_request.return_value = make_response(200, health_body)

        assert await DynamoService("http://localhost:55101").health() == health_body
