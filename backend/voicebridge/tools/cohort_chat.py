"""
Cohort Chat Tool - lets the live model ask the cohort RAG chatbot.

Calls the RAG backend: POST {baseUrl}/api/chat/cohort/{cohortKey}
with {"question", "sessionId", "mode": "voice"} and relays its answer.
"""

import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..core.errors import ToolExecutionError
from ..core.latency import LatencyTracker
from .registry import ToolDefinition

logger = logging.getLogger(__name__)

COHORT_CHAT_TOOL_NAME = "cohort_chat"

COHORT_CHAT_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "question": {"type": "string", "description": "User question to ask the cohort RAG chatbot"},
        "baseUrl": {"type": "string", "description": "RAG API base URL (or set RAG_BASE_URL in env)"},
        "cohortKey": {"type": "string", "description": "Cohort key"},
        "sessionId": {"type": "string", "description": "RAG session id returned by the RAG backend's createSession"},
    },
    "required": ["question"],
}


class CohortChatClient:
    """
    HTTP client for the RAG backend's cohort chat endpoint.
    """

    def __init__(
        self,
        default_base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        latency: Optional[LatencyTracker] = None,
    ):
        """
        Initialize the cohort chat client.

        Args:
            default_base_url: Base URL used when the call carries none
            api_key: Optional bearer token for the RAG backend
            timeout: Request timeout in seconds
            latency: Latency tracker for per-call timing
        """
        self.default_base_url = default_base_url
        self.api_key = api_key
        self.timeout = timeout
        self.latency = latency or LatencyTracker(enabled=False)

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def ask(self, args: Dict[str, Any]) -> Dict[str, str]:
        """
        Ask the RAG backend a question.

        Args:
            args: Tool arguments (question, cohortKey, sessionId, optional baseUrl)

        Returns:
            {"response": answer}; answer is empty when the backend had nothing

        Raises:
            ToolExecutionError: missing arguments, unreachable backend,
                non-2xx status or a non-JSON body
        """
        base_url = str(args.get("baseUrl") or self.default_base_url or "").rstrip("/")
        cohort_key = str(args.get("cohortKey") or "")
        rag_session_id = str(args.get("sessionId") or "")
        question = str(args.get("question") or "")

        if not base_url:
            raise ToolExecutionError("Missing baseUrl. Set RAG_BASE_URL in .env or provide baseUrl in request")
        if not cohort_key:
            raise ToolExecutionError("Missing cohortKey")
        if not rag_session_id:
            raise ToolExecutionError("Missing sessionId")
        if not question:
            raise ToolExecutionError("Missing question")

        url = f"{base_url}/api/chat/cohort/{quote(cohort_key, safe='')}"
        payload = {"question": question, "sessionId": rag_session_id, "mode": "voice"}
        log_context = {"route": COHORT_CHAT_TOOL_NAME, "cohort_key": cohort_key, "rag_session_id": rag_session_id}

        self.latency.log(rag_session_id, "rag_tool_http_start", question_len=len(question))
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=self._get_headers())
        except httpx.HTTPError as e:
            logger.error(
                f"RAG backend unreachable: {e}",
                extra={"extra_fields": {**log_context, "base_url": base_url}}
            )
            raise ToolExecutionError(f"RAG backend unreachable: {e}. URL: {url}") from e

        duration_ms = (time.time() - start_time) * 1000
        self.latency.log(
            rag_session_id, "rag_tool_http_done",
            ms=round(duration_ms, 2), status=resp.status_code, bytes=len(resp.text),
        )

        if resp.status_code >= 400:
            logger.error(
                f"RAG chat failed ({resp.status_code})",
                extra={"extra_fields": {**log_context, "status": resp.status_code}}
            )
            raise ToolExecutionError(f"RAG chat failed ({resp.status_code}): {resp.text}")

        try:
            data = resp.json()
        except ValueError as e:
            logger.error("RAG chat returned non-JSON", extra={"extra_fields": log_context})
            raise ToolExecutionError(f"RAG chat returned non-JSON: {resp.text}") from e

        answer = ""
        if isinstance(data, dict):
            answer = data.get("answer") or data.get("response") or ""

        logger.info(
            "RAG chat answered",
            extra={"extra_fields": {**log_context, "duration_ms": round(duration_ms, 2), "answer_len": len(answer)}}
        )
        return {"response": answer}

    def as_tool(self) -> ToolDefinition:
        return ToolDefinition(
            name=COHORT_CHAT_TOOL_NAME,
            description=(
                "Ask the cohort RAG chatbot a question. Always use this for programme/cohort "
                "questions. Returns { response: string }."
            ),
            parameters=COHORT_CHAT_PARAMETERS,
            handler=self.ask,
        )
