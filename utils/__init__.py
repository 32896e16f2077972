"""
Text helpers for tool output.

All utilities are stateless and lightweight.
"""

import logging
import re

from bs4 import BeautifulSoup

__all__ = [
    "html_to_text",
    "remove_meta_tags",
    "truncate",
    "format_number",
]

logger = logging.getLogger(__name__)

_NOISE_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "aside"]
_BLOCK_TAGS = ["p", "div", "section", "article", "pre", "blockquote", "tr", "table"]
_BLANK_RUNS = re.compile(r"\n{3,}")


def html_to_text(content: str) -> str:
    """
    Reduce an HTML page to readable text.

    Content without markup is returned unchanged. Headings become ``#``
    lines, list items ``-`` bullets and links ``[text](href)``.
    """
    if not content or "<" not in content:
        return content

    soup = BeautifulSoup(content, "html.parser")

    # Remove script and style elements
    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    for link in soup.find_all("a", href=True):
        text = link.get_text(" ", strip=True)
        link.replace_with(f"[{text}]({link['href']})" if text else "")
    for level in (1, 2, 3):
        for heading in soup.find_all(f"h{level}"):
            heading.replace_with(f"\n{'#' * level} {heading.get_text(' ', strip=True)}\n")
    for item in soup.find_all("li"):
        item.replace_with(f"\n- {item.get_text(' ', strip=True)}")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")

    text = soup.get_text()

    # Break into lines and remove leading and trailing space on each
    lines = (line.strip() for line in text.splitlines())
    text = "\n".join(lines)
    return _BLANK_RUNS.sub("\n\n", text).strip()


def remove_meta_tags(content: str) -> str:
    """Drop ``Meta:`` lines some pages leak into their text."""
    if not content:
        return content
    kept = [
        line
        for line in content.split("\n")
        if not line.strip().startswith(("- Meta:", "Meta:"))
    ]
    return "\n".join(kept)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, ending in an ellipsis when cut."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."


def format_number(value: int) -> str:
    return f"{value:,}"
