"""Front matter parsing and in-place merging for text artifacts.

Artifacts look like::

    ---
    name: writer
    tools: Read, Write
    ---

    Body text

Values are kept as plain strings, each on the line of its key; list-valued keys
are comma separated. Merging rewrites only the keys it is given and leaves
every other line of the block (unknown keys, comments, ordering) untouched so
the files stay hand-editable.
"""

from typing import Dict, List, Optional, Tuple
import re


DELIMITER = "---"

_DOCUMENT = re.compile(r"^---\n(?:(.*?)\n)?---\n?(.*)$", re.DOTALL)
_BLOCK = re.compile(r"^---\n(?:(.*?)\n)?---", re.DOTALL)
_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")


def _normalize(content: str) -> str:
    return content.replace("\r\n", "\n")


def _is_continuation(line: str) -> bool:
    return bool(line) and (line[0].isspace() or line.startswith("-"))


def parse_front_matter(content: str) -> Tuple[Dict[str, str], str]:
    """Split an artifact into its front matter and body.

    A missing or malformed delimiter pair yields an empty front matter and the
    whole content as body.

    Args:
        content: Raw artifact text

    Returns:
        Tuple of (front matter mapping, stripped body)
    """
    content = _normalize(content)
    match = _DOCUMENT.match(content)
    if not match:
        return {}, content.strip()

    front_matter: Dict[str, str] = {}
    last_key = None
    for line in (match.group(1) or "").split("\n"):
        if _is_continuation(line) and last_key is not None:
            # YAML style block list under the previous key
            item = line.strip().lstrip("-").strip()
            if item:
                previous = front_matter[last_key]
                front_matter[last_key] = f"{previous}, {item}" if previous else item
            continue
        key, sep, value = line.partition(":")
        if sep and key.strip():
            last_key = key.strip()
            front_matter[last_key] = value.strip()

    return front_matter, match.group(2).strip()


def parse_list(value: Optional[str]) -> List[str]:
    """Parse a comma separated front matter value."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def format_list(items: List[str]) -> Optional[str]:
    """Format a list for front matter, None when there is nothing to write."""
    return ", ".join(items) if items else None


def _entry(key: str, value: str) -> str:
    # Values must stay on their key's line
    return f"{key}: {_LINE_BREAKS.sub(' ', str(value).strip())}"


def _block(lines: List[str]) -> str:
    return f"{DELIMITER}\n" + "".join(f"{line}\n" for line in lines) + DELIMITER


def render_document(front_matter: Dict[str, str], body: str) -> str:
    """Render a new artifact from front matter and body."""
    lines = [_entry(key, value) for key, value in front_matter.items() if value is not None]
    return _block(lines) + f"\n\n{body.strip()}\n"


def update_front_matter(content: str, updates: Dict[str, Optional[str]]) -> str:
    """Merge keys into the front matter of an existing artifact.

    Known keys are rewritten on their own line, missing keys are appended and
    keys mapped to None are removed. Everything else is preserved verbatim.

    Args:
        content: Existing artifact text
        updates: Keys to write (None removes the key)

    Returns:
        Updated artifact text
    """
    content = _normalize(content)
    match = _BLOCK.match(content)
    if not match:
        additions = {key: value for key, value in updates.items() if value is not None}
        if not additions:
            return content
        lines = [_entry(key, value) for key, value in additions.items()]
        return _block(lines) + "\n\n" + content

    lines = (match.group(1) or "").split("\n")
    if lines == [""]:
        lines = []

    for key, value in updates.items():
        pattern = re.compile(rf"^{re.escape(key)}\s*:")
        index = next((i for i, line in enumerate(lines) if pattern.match(line)), None)

        if index is None:
            if value is not None:
                lines.append(_entry(key, value))
            continue

        # Drop block list items that belonged to the old value
        end = index + 1
        while end < len(lines) and _is_continuation(lines[end]):
            end += 1

        replacement = [] if value is None else [_entry(key, value)]
        lines[index:end] = replacement

    return _block(lines) + content[match.end():]


def replace_body(content: str, body: str) -> str:
    """Replace the body of an artifact, keeping its front matter block."""
    content = _normalize(content)
    match = _BLOCK.match(content)
    if not match:
        return f"{body.strip()}\n"
    return content[:match.end()] + f"\n\n{body.strip()}\n"
