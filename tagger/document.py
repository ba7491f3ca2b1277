"""
Structural model of a tagged document.

A document is parsed once into its parts::

    [preamble] [tagged block] [frontmatter] [hashtag run] body

and serialized back after the parts are changed. The body is carried
verbatim; only the block and the hashtag run are ever added or removed.

On-disk form of the tagged block::

    ---
    LLM-tagged: 2025-01-31T09:15:02.417Z
    ---

    <summary>

    ---

    <rest of document>
"""

import re
from dataclasses import dataclass, field
from typing import Optional

MARKER_KEY = "LLM-tagged"

# Presence of this literal anywhere means the document is tagged.
TAGGED_MARKER = f"---\n{MARKER_KEY}:"

# Full block: header, one-line summary, trailing divider and blank lines.
# Summaries are written on a single line, so a summary that runs onto a
# second line means the divider was edited away.
_TAGGED_BLOCK_RE = re.compile(
    r"---\n" + re.escape(MARKER_KEY) + r":[ \t]*(?P<timestamp>[^\n]*)\n---\n\n"
    r"(?P<summary>[^\n]*)\n\n---\n\n*"
)

# Header alone, for blocks whose summary divider was edited away.
_TAGGED_HEADER_RE = re.compile(
    r"---\n" + re.escape(MARKER_KEY) + r":[ \t]*(?P<timestamp>[^\n]*)\n---\n\n*"
)

_FRONTMATTER_RE = re.compile(r"^---\n[\s\S]*?\n---\n")

# One or more #word tokens separated by whitespace, plus trailing whitespace.
_HASHTAG_RUN_RE = re.compile(r"^(#[\w/-]+)(?:\s+#[\w/-]+)*(?:\s+|$)")
_HASHTAG_RE = re.compile(r"#[\w/-]+")


def _one_line(text: str) -> str:
    """Join the non-blank lines of text with single spaces."""
    return " ".join(line.strip() for line in text.splitlines() if line.strip())


@dataclass
class TaggedBlock:
    """Header timestamp plus the LLM-written summary."""
    timestamp: str
    summary: str

    def render(self) -> str:
        return (
            f"---\n{MARKER_KEY}: {self.timestamp}\n---\n\n"
            f"{_one_line(self.summary)}\n\n---\n\n"
        )


@dataclass
class ParsedDocument:
    """
    A document split into the parts the tagger reads and writes.

    Attributes:
        body: Remaining content, verbatim
        frontmatter: Leading ``---`` block including its closing newline
        hashtags: Leading ``#word`` tokens (after frontmatter, if any)
        tagged_block: Block written by the tagger, if present
        preamble: Text before the tagged block (normally empty)
    """
    body: str
    frontmatter: Optional[str] = None
    hashtags: list[str] = field(default_factory=list)
    tagged_block: Optional[TaggedBlock] = None
    preamble: str = ""

    def serialize(self) -> str:
        parts = [self.preamble]
        if self.tagged_block is not None:
            parts.append(self.tagged_block.render())
        if self.frontmatter:
            parts.append(self.frontmatter)
        if self.hashtags:
            parts.append(" ".join(self.hashtags) + " ")
        parts.append(self.body)
        return "".join(parts)


def is_tagged(content: str) -> bool:
    """True if the content carries the tagged-block marker."""
    return TAGGED_MARKER in content


def split_frontmatter(content: str) -> tuple[Optional[str], str]:
    """Split off a leading frontmatter block.

    Returns (frontmatter, rest); frontmatter is None when absent.
    """
    m = _FRONTMATTER_RE.match(content)
    if m is None:
        return None, content
    return m.group(0), content[m.end():]


def split_hashtag_run(text: str) -> tuple[list[str], str]:
    """Split a leading run of #word tokens from text.

    Returns (tags, rest) with whitespace after the run dropped.
    """
    m = _HASHTAG_RUN_RE.match(text)
    if m is None:
        return [], text
    return _HASHTAG_RE.findall(m.group(0)), text[m.end():]


def _extract_tagged_block(content: str) -> tuple[str, Optional[TaggedBlock], str]:
    """Return (preamble, block, rest). Block is None when not present."""
    if not is_tagged(content):
        return "", None, content

    m = _TAGGED_BLOCK_RE.search(content)
    if m is None:
        m = _TAGGED_HEADER_RE.search(content)
        if m is None:
            return "", None, content
        block = TaggedBlock(m.group("timestamp").strip(), "")
    else:
        block = TaggedBlock(m.group("timestamp").strip(), m.group("summary"))
    return content[:m.start()], block, content[m.end():]


def parse_document(content: str) -> ParsedDocument:
    """Parse content into its structural parts.

    The hashtag run is taken from the start of the content as it reads with
    the tagged block removed: it may sit above the block, after frontmatter,
    or continue from one into the other.
    """
    preamble, block, rest = _extract_tagged_block(content)
    hashtags: list[str] = []
    if preamble:
        hashtags, preamble = split_hashtag_run(preamble)
    frontmatter, rest = split_frontmatter(rest)
    if not preamble:
        more, rest = split_hashtag_run(rest)
        hashtags += more
    return ParsedDocument(
        body=rest,
        frontmatter=frontmatter,
        hashtags=hashtags,
        tagged_block=block,
        preamble=preamble,
    )
