"""
OpenRouter chat-completions integration.

Two uses of the same endpoint:
- Deep research: a long-running, web-searching completion with citations
- Content extraction: a short completion that filters scraped page text
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from core.errors import UpstreamError, classify_error, classify_status
from core.reliability import RetryConfig, execute_with_retry
from models.config import ExtractionSettings, ResearchSettings
from models.results import ChatCompletion, Citation, ResearchResponse, ResearchUsage

logger = logging.getLogger(__name__)

# The research model searches with at most this many results per request
MAX_REQUEST_SEARCH_RESULTS = 30


async def _post_json(
    url: str,
    payload: Dict[str, Any],
    api_key: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Execute a JSON POST request and return the decoded body."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.post(url, headers=headers, json=payload)
    if response.is_error:
        raise UpstreamError(classify_status(response.status_code, response.text))
    return response.json()


class ResearchClient:
    """Deep research through a web-searching model."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        settings: ResearchSettings = ResearchSettings(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("OPENROUTER_API_KEY is required for research")
        self.api_key = api_key
        self.settings = settings
        self._transport = transport
        self.retry = RetryConfig(name="Research", max_attempts=settings.max_attempts)

    def build_payload(
        self,
        question: str,
        system_prompt: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
        max_search_results: Optional[int] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": question})

        search_results = max_search_results or self.settings.max_search_results
        return {
            "model": self.settings.model,
            "messages": messages,
            "temperature": temperature,
            "reasoning_effort": reasoning_effort or self.settings.reasoning_effort,
            "max_completion_tokens": max_tokens or self.settings.max_tokens,
            "search_parameters": {
                "mode": "on",
                "max_search_results": min(search_results, MAX_REQUEST_SEARCH_RESULTS),
                "return_citations": True,
                "sources": [{"type": "web"}],
            },
        }

    async def research(self, question: str, **options: Any) -> ResearchResponse:
        """
        Ask the research model a question.

        Keyword options are passed to ``build_payload``.

        Raises:
            UpstreamError: once retries are exhausted or the reply is malformed
        """
        payload = self.build_payload(question, **options)
        url = f"{self.settings.base_url}/chat/completions"

        async def attempt() -> ChatCompletion:
            data = await _post_json(
                url, payload, self.api_key, self.settings.timeout, self._transport
            )
            return ChatCompletion.model_validate(data)

        completion = await execute_with_retry(attempt, self.retry)
        return _to_research_response(completion)


def _to_research_response(completion: ChatCompletion) -> ResearchResponse:
    choice = completion.choices[0]
    usage = None
    if completion.usage is not None:
        usage = ResearchUsage(
            prompt_tokens=completion.usage.prompt_tokens,
            completion_tokens=completion.usage.completion_tokens,
            total_tokens=completion.usage.total_tokens,
            sources_used=completion.usage.num_sources_used,
        )
    citations = [
        Citation(
            url=a.url_citation.url,
            title=a.url_citation.title,
            start_index=a.url_citation.start_index,
            end_index=a.url_citation.end_index,
        )
        for a in choice.message.annotations
        if a.url_citation is not None
    ]
    return ResearchResponse(
        id=completion.id,
        model=completion.model,
        created=completion.created,
        content=choice.message.content or "",
        finish_reason=choice.finish_reason,
        usage=usage,
        citations=citations,
    )


# ══════════════════════════════════════════════════════════════════════════════
# Content Extraction
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class ExtractionResult:
    content: str
    processed: bool
    error: Optional[str] = None


class ExtractionClient:
    """Single-shot completion used to filter scraped content."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = ResearchSettings.base_url,
        settings: ExtractionSettings = ExtractionSettings(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.settings = settings
        self._transport = transport

    async def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        data = await _post_json(
            f"{self.base_url}/chat/completions",
            {
                "model": self.settings.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens or self.settings.max_tokens,
            },
            self.api_key,
            self.settings.timeout,
            self._transport,
        )
        completion = ChatCompletion.model_validate(data)
        return completion.choices[0].message.content or ""


def build_extraction_prompt(content: str, instruction: Optional[str]) -> str:
    if instruction:
        return (
            f"Extract and clean the following content. Focus on: {instruction}"
            f"\n\nContent:\n{content}"
        )
    return (
        "Clean and extract the main content from the following text, removing "
        f"navigation, ads, and irrelevant elements:\n\n{content}"
    )


async def process_content_with_llm(
    content: str,
    instruction: Optional[str],
    max_tokens: Optional[int],
    client: Optional[ExtractionClient],
) -> ExtractionResult:
    """
    Run ``content`` through the extraction model.

    Never raises: on any failure the original content comes back with
    ``processed=False`` and the reason in ``error``.
    """
    if client is None or not content or not content.strip():
        return ExtractionResult(content=content, processed=False)

    try:
        result = await client.complete(
            build_extraction_prompt(content, instruction), max_tokens
        )
    except Exception as e:
        error = classify_error(e)
        logger.warning(f"LLM extraction failed: {error}")
        return ExtractionResult(content=content, processed=False, error=error.message)

    if not result:
        return ExtractionResult(
            content=content, processed=False, error="No content in response"
        )
    return ExtractionResult(content=result, processed=True)
