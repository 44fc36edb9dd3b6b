"""Parser for prompt references embedded in prompt bodies.

Syntax:
    {{ref:farewell}}              production label (the default selector)
    {{ref:farewell@staging}}      any other label
    {{ref:farewell@3}}            explicit version (selector is all digits)
    \\{{ref:farewell}}             escaped: rendered literally, never resolved

Names may contain letters, digits, '_', '.', '-' and '/' (folders) and must
not start with punctuation. Whitespace around the name, '@' and selector is
ignored.

A reference that opens with '{{ref:' but does not match the grammar is
returned with `error` set instead of aborting the parse, so one bad
reference cannot break an otherwise valid document.
"""

import re
from typing import Iterator, List

from prompt_resolution.lib.prompts.models import PRODUCTION_LABEL, Reference

OPEN = "{{ref:"
CLOSE = "}}"
ESCAPE = "\\"

_OPENER = re.compile(r"(?<!\\)\{\{ref:")
_ESCAPED_OPENER = re.compile(r"\\(\{\{ref:)")
_REFERENCE = re.compile(
    r"\s*(?P<name>[A-Za-z0-9_][A-Za-z0-9_./\-]*)\s*"
    r"(?:@\s*(?P<selector>[A-Za-z0-9_.\-]+)\s*)?"
)


def parse(body: str) -> Iterator[Reference]:
    """Yield the references in `body`, left to right.

    Spans are character offsets into `body`; `body[ref.start:ref.end]` is
    exactly `ref.raw`.
    """
    if not body:
        return

    pos = 0
    while True:
        opener = _OPENER.search(body, pos)
        if opener is None:
            return

        start = opener.start()
        close = body.find(CLOSE, opener.end())
        next_opener = _OPENER.search(body, opener.end())

        if close == -1 or (next_opener is not None and next_opener.start() < close):
            end = opener.end()
            yield Reference(
                raw=body[start:end],
                start=start,
                end=end,
                error="unterminated reference",
            )
            pos = end
            continue

        end = close + len(CLOSE)
        yield _build_reference(body[opener.end():close], body[start:end], start, end)
        pos = end


def _build_reference(inner: str, raw: str, start: int, end: int) -> Reference:
    match = _REFERENCE.fullmatch(inner)
    if match is None:
        return Reference(
            raw=raw,
            start=start,
            end=end,
            error=f"invalid reference syntax: {inner.strip()!r}",
        )

    selector = match.group("selector")
    if selector is None:
        parsed = PRODUCTION_LABEL
    elif selector.isdigit():
        parsed = int(selector)
    else:
        parsed = selector

    return Reference(
        raw=raw,
        start=start,
        end=end,
        name=match.group("name"),
        selector=parsed,
    )


def parse_all(body: str) -> List[Reference]:
    """Eager form of parse()."""
    return list(parse(body))


def render_literal(text: str) -> str:
    """Turn escaped openers in literal text back into plain '{{ref:'."""
    return _ESCAPED_OPENER.sub(r"\1", text)
