"""
Reversible untagging.

Removes the tagged block written by synthesis and a leading run of hashtag
tokens. Both removals are always attempted since either can exist without
the other. Synchronous and side-effect free; safe on any content.
"""

from .document import parse_document


def untag(content: str) -> tuple[str, bool]:
    """
    Strip the tagged block and leading hashtag run.

    Returns:
        (new_content, was_modified). Content with neither part is
        returned unchanged with was_modified False.
    """
    doc = parse_document(content)
    if doc.tagged_block is None and not doc.hashtags:
        return content, False

    doc.tagged_block = None
    doc.hashtags = []
    new_content = doc.serialize()
    return new_content, new_content != content
