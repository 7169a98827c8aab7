"""
Explanation service client: prose answers for searches and CMA methodology excerpts.

Both calls are non-essential. Failures come back as FetchStatus.FAILED results
instead of exceptions so the caller can degrade the explanation and still answer.
"""
import logging
from typing import Any, Optional

import requests

from ..config import ExplainConfig, get_config
from ..models.listing import Listing
from ..models.retrieval import ExplainResult, FetchStatus, MethodologyResult


logger = logging.getLogger(__name__)


class ExplainClient:
    """Client for the explanation/RAG service (`/ai/explain`, `/cma/search`)."""

    def __init__(
        self,
        config: Optional[ExplainConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or get_config().explain
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _post(self, path: str, body: dict[str, Any]) -> Optional[dict[str, Any]]:
        """POST JSON and return the decoded object, or None on any failure."""
        try:
            response = self.session.post(
                f"{self.config.base_url}{path}",
                json=body,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning(f"Explanation service {path} unreachable: {type(e).__name__}")
            return None

        if not response.ok:
            logger.warning(f"Explanation service {path} returned HTTP {response.status_code}")
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Explanation service {path} returned invalid JSON")
            return None
        return payload if isinstance(payload, dict) else None

    def search_methodology(self, query: Optional[str] = None) -> MethodologyResult:
        """
        Fetch CMA playbook excerpts.

        Returns:
            MethodologyResult with FOUND, EMPTY (nothing ingested) or FAILED
        """
        payload = self._post(
            "/cma/search",
            {
                "query": query or self.config.methodology_query,
                "top_k": self.config.methodology_top_k,
                "kind": "playbook",
            },
        )
        if payload is None:
            return MethodologyResult(status=FetchStatus.FAILED)

        chunks = payload.get("chunks")
        texts = []
        if isinstance(chunks, list):
            for chunk in chunks:
                content = chunk.get("content") if isinstance(chunk, dict) else chunk
                if isinstance(content, str) and content.strip():
                    texts.append(content)

        if not texts:
            return MethodologyResult(status=FetchStatus.EMPTY)
        return MethodologyResult(status=FetchStatus.FOUND, chunks=texts)

    def explain_search(
        self,
        query: str,
        role: Optional[str],
        listings: list[Listing],
        retrieval_notes: list[str],
        retrieval_attempt: str,
    ) -> ExplainResult:
        """Ask the service to narrate a set of search results."""
        payload = self._post(
            "/ai/explain",
            {
                "query": query,
                "role": role,
                "listings": [listing.model_dump(mode="json") for listing in listings],
                "retrieval_notes": retrieval_notes,
                "retrieval_attempt": retrieval_attempt,
            },
        )
        if payload is None:
            return ExplainResult(status=FetchStatus.FAILED)

        answer = payload.get("answer")
        reasoning = payload.get("reasoning")
        return ExplainResult(
            status=FetchStatus.FOUND if answer else FetchStatus.EMPTY,
            answer=str(answer or ""),
            reasoning=[str(r) for r in reasoning] if isinstance(reasoning, list) else [],
        )
