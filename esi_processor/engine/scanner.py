"""Text scanner for ESI include and remove tags.

The scanner works on raw text rather than a parsed tree so that everything
outside the ESI tags is returned byte for byte, whatever the markup quality
of the page and its fragments.
"""

import html
import re

from esi_processor.engine.models import IncludeTag


INCLUDE_OPEN = re.compile(r"<esi:include(?=[\s/>])")
INCLUDE_CLOSE = "</esi:include>"

REMOVE_BLOCK = re.compile(r"<esi:remove(?:\s[^>]*)?>.*?</esi:remove\s*>", re.DOTALL)

# a bare attribute value runs up to ">", so src=/nav/> keeps its slash
UNQUOTED_VALUE_TAIL = re.compile(r"""=\s*[^\s"'=>]+$""")


def _attribute_patterns(name: str) -> tuple[re.Pattern[str], ...]:
    prefix = rf"(?<![\w:-]){name}\s*=\s*"
    return (
        re.compile(prefix + r'"([^"]*)"'),
        re.compile(prefix + r"'([^']*)'"),
        re.compile(prefix + r"""([^\s"'>]+)"""),
    )


_ATTRIBUTES = {
    "src": _attribute_patterns("src"),
    "alt": _attribute_patterns("alt"),
}


def extract_attribute(opening_tag: str, name: str) -> str | None:
    """Read an attribute value from an opening tag.

    Double-quoted values win over single-quoted ones, which win over bare
    tokens. Entities in the value are decoded.

    Args:
        opening_tag: Markup of the opening tag without its ``>`` or ``/>``.
        name: ``src`` or ``alt``.

    Returns:
        The decoded value, or None if the attribute is absent.
    """
    patterns = _ATTRIBUTES.get(name) or _attribute_patterns(name)
    for pattern in patterns:
        match = pattern.search(opening_tag)
        if match is not None:
            return html.unescape(match.group(1))
    return None


def _find_open_tag_end(text: str, start: int) -> int | None:
    """Return the offset just past the ``>`` ending an opening tag.

    A ``>`` inside a quoted attribute value does not end the tag.
    """
    quote: str | None = None
    expecting_value = False
    for index in range(start, len(text)):
        char = text[index]
        if quote is not None:
            if char == quote:
                quote = None
            continue
        if char == ">":
            return index + 1
        if char in "\"'" and expecting_value:
            quote = char
            expecting_value = False
        elif char == "=":
            expecting_value = True
        elif not char.isspace():
            expecting_value = False
    return None


def find_include_tags(text: str) -> list[IncludeTag]:
    """Find every well-formed include tag, left to right.

    Both ``<esi:include ... />`` and ``<esi:include ...>...</esi:include>``
    are recognised; the nearest ``</esi:include>`` closes an explicit tag.
    An opening tag that is never closed is skipped and stays in the text.

    Args:
        text: Markup to scan.

    Returns:
        Tags in document order.
    """
    tags: list[IncludeTag] = []
    position = 0

    while True:
        match = INCLUDE_OPEN.search(text, position)
        if match is None:
            return tags

        start = match.start()
        open_end = _find_open_tag_end(text, match.end())
        if open_end is None:
            return tags

        # src=http://host/></esi:include> ends in "/" without being self-closed
        self_closing = text[open_end - 2] == "/" and not text.startswith(
            INCLUDE_CLOSE, open_end
        )
        if self_closing:
            end = open_end
            attributes = text[match.end() : open_end - 2]
            if UNQUOTED_VALUE_TAIL.search(attributes):
                attributes = text[match.end() : open_end - 1]
        else:
            close = text.find(INCLUDE_CLOSE, open_end)
            if close == -1:
                position = open_end
                continue
            end = close + len(INCLUDE_CLOSE)
            attributes = text[match.end() : open_end - 1]

        tags.append(
            IncludeTag(
                raw_text=text[start:end],
                start=start,
                end=end,
                src=extract_attribute(attributes, "src"),
                alt=extract_attribute(attributes, "alt"),
                self_closing=self_closing,
            )
        )
        position = end


def has_include_tag(text: str) -> bool:
    """Check whether the text holds at least one well-formed include."""
    if INCLUDE_OPEN.search(text) is None:
        return False
    return bool(find_include_tags(text))


def remove_blocks(text: str) -> str:
    """Drop ``<esi:remove>...</esi:remove>`` blocks and their content."""
    if "<esi:remove" not in text:
        return text
    return REMOVE_BLOCK.sub("", text)


def strip_include_tags(text: str, tags: list[IncludeTag]) -> str:
    """Replace the given tags with nothing.

    Args:
        text: Text the tags were found in.
        tags: Tags from ``find_include_tags(text)``.

    Returns:
        Text without those tags.
    """
    pieces: list[str] = []
    position = 0
    for tag in tags:
        pieces.append(text[position : tag.start])
        position = tag.end
    pieces.append(text[position:])
    return "".join(pieces)
