"""
Unit tests for the cohort_chat RAG tool.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from voicebridge.core.errors import ToolExecutionError
from voicebridge.tools.cohort_chat import COHORT_CHAT_TOOL_NAME, CohortChatClient


ARGS = {
    "baseUrl": "http://rag.local/",
    "cohortKey": "mba 2025",
    "sessionId": "rag-session-1",
    "question": "What is the fee?",
}


def mock_http_client(response=None, error=None):
    """Patch target for httpx.AsyncClient returning ``response`` from post()."""
    mock_instance = AsyncMock()
    if error is not None:
        mock_instance.post.side_effect = error
    else:
        mock_instance.post.return_value = response
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=False)
    return mock_instance


def make_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_data
    return response


class TestCohortChatClient:
    """Tests for CohortChatClient."""

    def test_as_tool(self):
        tool = CohortChatClient().as_tool()
        assert tool.name == COHORT_CHAT_TOOL_NAME
        assert tool.parameters["required"] == ["question"]

    @pytest.mark.asyncio
    async def test_ask_posts_to_cohort_endpoint(self):
        client = CohortChatClient(api_key="secret", timeout=5.0)
        mock_instance = mock_http_client(make_response(json_data={"answer": "The fee is 100."}, text="{}"))

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_instance
            result = await client.ask(dict(ARGS))

        assert result == {"response": "The fee is 100."}
        mock_client.assert_called_once_with(timeout=5.0)
        url = mock_instance.post.call_args.args[0]
        kwargs = mock_instance.post.call_args.kwargs
        assert url == "http://rag.local/api/chat/cohort/mba%202025"
        assert kwargs["json"] == {"question": "What is the fee?", "sessionId": "rag-session-1", "mode": "voice"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_ask_falls_back_to_response_field(self):
        mock_instance = mock_http_client(make_response(json_data={"response": "From response"}))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            result = await CohortChatClient().ask(dict(ARGS))
        assert result == {"response": "From response"}

    @pytest.mark.asyncio
    async def test_ask_empty_answer(self):
        mock_instance = mock_http_client(make_response(json_data={}))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            result = await CohortChatClient().ask(dict(ARGS))
        assert result == {"response": ""}

    @pytest.mark.asyncio
    async def test_ask_uses_default_base_url(self):
        mock_instance = mock_http_client(make_response(json_data={"answer": "ok"}))
        args = {k: v for k, v in ARGS.items() if k != "baseUrl"}
        with patch("httpx.AsyncClient", return_value=mock_instance):
            await CohortChatClient(default_base_url="http://env-rag").ask(args)
        assert mock_instance.post.call_args.args[0].startswith("http://env-rag/api/chat/cohort/")

    @pytest.mark.asyncio
    async def test_ask_without_api_key_sends_no_auth(self):
        mock_instance = mock_http_client(make_response(json_data={"answer": "ok"}))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            await CohortChatClient().ask(dict(ARGS))
        assert "Authorization" not in mock_instance.post.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing,message", [
        ("baseUrl", "Missing baseUrl"),
        ("cohortKey", "Missing cohortKey"),
        ("sessionId", "Missing sessionId"),
        ("question", "Missing question"),
    ])
    async def test_ask_missing_argument(self, missing, message):
        args = {k: v for k, v in ARGS.items() if k != missing}
        with pytest.raises(ToolExecutionError, match=message):
            await CohortChatClient().ask(args)

    @pytest.mark.asyncio
    async def test_ask_http_error_status(self):
        mock_instance = mock_http_client(make_response(status_code=500, text="boom"))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            with pytest.raises(ToolExecutionError, match=r"RAG chat failed \(500\): boom"):
                await CohortChatClient().ask(dict(ARGS))

    @pytest.mark.asyncio
    async def test_ask_non_json_body(self):
        mock_instance = mock_http_client(make_response(status_code=200, text="<html>"))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            with pytest.raises(ToolExecutionError, match="non-JSON"):
                await CohortChatClient().ask(dict(ARGS))

    @pytest.mark.asyncio
    async def test_ask_unreachable_backend(self):
        mock_instance = mock_http_client(error=httpx.ConnectError("connection refused"))
        with patch("httpx.AsyncClient", return_value=mock_instance):
            with pytest.raises(ToolExecutionError, match="RAG backend unreachable"):
                await CohortChatClient().ask(dict(ARGS))
