"""
Tag synthesis: deterministic vocabulary matching plus an LLM-written
tagged summary.

The deterministic pass inserts a run of ``#tag`` tokens for every
vocabulary entry that occurs as a whole word in the document. The semantic
pass asks the model for a short summary carrying further vocabulary tags,
and the result is assembled into a tagged block in front of the
deterministic-pass content. The original content always survives verbatim.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Protocol

from .document import ParsedDocument, TaggedBlock, is_tagged, split_frontmatter
from .errors import NoModelSelected
from .types import utc_now_iso

logger = logging.getLogger(__name__)


class GenerateClient(Protocol):
    """What the synthesis engine needs from an LLM client."""

    async def generate(self, model: str, prompt: str) -> str:
        ...


TAGGING_PROMPT = """\
You are an expert at analyzing and tagging markdown documents. Your task is to create a brief tagged summary of the document content.

Available tags: {tags}

Instructions:
1. Create a brief 1-2 sentence summary of the content
2. Add relevant tags from the provided list that WEREN'T already matched by word (don't repeat tags)
3. Only use tags from the provided list
4. Each tag MUST start with a # symbol
5. Keep the summary concise and focused

Content to analyze (with existing tags):
{content}

Provide a tagged summary:"""


def normalize_tag(tag: str) -> str:
    """Strip leading '#'s and surrounding whitespace."""
    return tag.strip().lstrip("#")


def match_vocabulary(content: str, vocabulary: Sequence[str]) -> list[str]:
    """
    Find vocabulary tags that occur as whole words in the content.

    Matching is case-insensitive and ignores a leading '#' on the
    vocabulary entry. Each tag is reported once, as ``#tag``, in
    vocabulary order.
    """
    matched: dict[str, str] = {}
    for tag in vocabulary:
        clean = normalize_tag(tag)
        key = clean.lower()
        if not key or key in matched:
            continue
        if re.search(rf"\b{re.escape(key)}\b", content, re.IGNORECASE):
            matched[key] = f"#{clean}"
    return list(matched.values())


def add_deterministic_tags(content: str, vocabulary: Sequence[str]) -> str:
    """Insert matched vocabulary tags after any frontmatter.

    Returns the content unchanged when nothing matches.
    """
    tags = match_vocabulary(content, vocabulary)
    if not tags:
        return content
    frontmatter, rest = split_frontmatter(content)
    return ParsedDocument(body=rest, frontmatter=frontmatter, hashtags=tags).serialize()


def build_tagging_prompt(content: str, vocabulary: Sequence[str]) -> str:
    """Prompt for the semantic pass."""
    return TAGGING_PROMPT.format(tags=", ".join(vocabulary), content=content)


def assemble_tagged_content(
    processed: str,
    summary: str,
    timestamp: str | None = None,
) -> str:
    """Put a tagged block carrying the summary in front of the content."""
    block = TaggedBlock(timestamp or utc_now_iso(), summary)
    return ParsedDocument(body=processed, tagged_block=block).serialize()


async def synthesize(
    content: str,
    vocabulary: Sequence[str],
    *,
    model: str | None,
    llm: GenerateClient,
) -> str:
    """
    Compute the tagged form of a document.

    Already-tagged content is returned unchanged without calling the model.

    Raises:
        NoModelSelected: If no model is configured
        NetworkError: If the LLM call fails (raised by the client)
    """
    if not model:
        raise NoModelSelected()

    if is_tagged(content):
        logger.debug("Content already tagged, skipping synthesis")
        return content

    processed = add_deterministic_tags(content, vocabulary)

    prompt = build_tagging_prompt(processed, vocabulary)
    summary = (await llm.generate(model, prompt)).strip()
    if not summary:
        logger.info("Empty model response; keeping deterministic tags only")
        return processed

    return assemble_tagged_content(processed, summary)
