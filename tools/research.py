"""Deep research tool."""

import logging
from typing import Optional

from api.openrouter import ResearchClient
from core.errors import classify_error
from tools import Progress, ToolResponse, error_response, report

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert research consultant with unlimited reasoning capacity and access to comprehensive information sources. Your task is to provide evidence-based, multi-perspective analysis on ANY topic (technical or non-technical).

RESEARCH METHODOLOGY:
1. SOURCE DIVERSITY: Official documentation, academic papers, engineering blogs, case studies, industry reports, expert opinions
2. CURRENT + HISTORICAL: Latest developments AND foundational context - show evolution of thinking
3. MULTIPLE PERSPECTIVES: Present different schools of thought, competing approaches, and their proponents
4. EVIDENCE-BASED: Every claim backed by citations - who said it, where, when, and why they're credible
5. CHALLENGE ASSUMPTIONS: Question common wisdom, identify where conventional thinking is outdated
6. PRACTICAL + THEORETICAL: Balance academic rigor with real-world applicability
7. CONTRARIAN VIEWS: Include minority opinions that may be valuable - don't just report consensus

Reason deeply about:
- What the core question is really asking (beyond surface level)
- How different domains approach similar problems
- What recent developments have changed the landscape
- Where expert consensus exists and where it doesn't
- What trade-offs exist between competing approaches
- How theory translates to practice

FINAL ANSWER FORMAT (high info density, comprehensive but concise):
- CURRENT STATE: [What's the status quo? What do we know?]
- KEY INSIGHTS: [Most important findings - backed by evidence]
- PERSPECTIVES: [Different approaches/schools of thought with pros/cons]
- TRADE-OFFS: [Honest analysis of competing priorities]
- PRACTICAL IMPLICATIONS: [How this applies in real scenarios]
- WHAT'S CHANGING: [Recent developments and future directions]
- CONSENSUS VS DEBATE: [Where experts agree and where they don't]

Max 2000 words final answer. Dense with insights, light on filler. Use examples, data, and citations. Structure with clear sections. NO platitudes, NO stating the obvious, NO repeating back what was asked."""


def format_citations(response) -> str:
    if not response.citations:
        return ""
    seen = set()
    lines = ["", "", "## Sources", ""]
    for citation in response.citations:
        if citation.url in seen:
            continue
        seen.add(citation.url)
        lines.append(f"- [{citation.title or citation.url}]({citation.url})")
    return "\n".join(lines)


async def deep_research(
    question: str,
    client: ResearchClient,
    progress: Optional[Progress] = None,
) -> ToolResponse:
    """Run one research request; may take many minutes."""
    await report(progress, f'Starting deep research: "{question[:100]}..."')

    try:
        response = await client.research(question, system_prompt=SYSTEM_PROMPT)
    except Exception as e:
        return error_response(
            "deep_research",
            classify_error(e),
            {"model": client.settings.model},
        )

    metadata = {
        "id": response.id,
        "model": response.model,
        "created": response.created,
        "finish_reason": response.finish_reason,
        "citations": len(response.citations),
    }
    if response.usage is not None:
        metadata["total_tokens"] = response.usage.total_tokens
        metadata["sources_used"] = response.usage.sources_used
        await report(progress, f"Research completed: {response.usage.total_tokens:,} tokens")

    return ToolResponse(content=response.content + format_citations(response), metadata=metadata)
