"""Reader for the ``key=value`` descriptor format (the java.util.Properties text syntax)."""

from typing import Iterator

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_SEPARATORS = "=:"
_WHITESPACE = " \t\f"


def _logical_lines(text: str) -> Iterator[str]:
    pending = ""
    for raw in text.splitlines():
        line = raw.lstrip(_WHITESPACE)
        if not pending and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            # an odd number of backslashes continues the line
            pending += line[:-1]
            continue
        yield pending + line
        pending = ""
    if pending:
        yield pending


def _unescape(text: str) -> str:
    out = []
    chars = iter(range(len(text)))
    for i in chars:
        ch = text[i]
        if ch != "\\" or i + 1 == len(text):
            out.append(ch)
            continue
        nxt = text[i + 1]
        next(chars)
        if nxt == "u" and i + 5 < len(text):
            try:
                out.append(chr(int(text[i + 2 : i + 6], 16)))
            except ValueError:
                out.append(nxt)
                continue
            for _ in range(4):
                next(chars)
        else:
            out.append(_ESCAPES.get(nxt, nxt))
    return "".join(out)


def _split(line: str) -> tuple[str, str]:
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in _SEPARATORS or ch in _WHITESPACE:
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(_WHITESPACE)
    if rest[:1] in tuple(_SEPARATORS):
        rest = rest[1:].lstrip(_WHITESPACE)
    return key, rest


def parse_properties(text: str) -> list[tuple[str, str]]:
    """Parses properties text into ``(key, value)`` pairs in file order, keeping duplicate keys."""
    entries = []
    for line in _logical_lines(text):
        key, value = _split(line)
        entries.append((_unescape(key), _unescape(value)))
    return entries
