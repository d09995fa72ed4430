from __future__ import annotations

import re
from typing import List, Tuple

_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")


def has_repo_section(conf_text: str, name: str) -> bool:
    for line in conf_text.splitlines():
        m = _SECTION_RE.match(line)
        if m and m.group(1).strip() == name:
            return True
    return False


def render_repo_stanza(name: str, directory: str, *, sig_level: str = "Optional TrustAll") -> str:
    return f"[{name}]\nSigLevel = {sig_level}\nServer = file://{directory}\n"


def insert_repo_stanza(
    conf_text: str,
    name: str,
    directory: str,
    *,
    sig_level: str = "Optional TrustAll",
    prepend: bool = True,
) -> Tuple[str, bool]:
    """Return (new_text, changed).

    The stanza goes ahead of the first repository section when prepend is set
    ([options] is not a repository), otherwise at the end. Text that already
    has a [name] section is returned unchanged.
    """

    if has_repo_section(conf_text, name):
        return conf_text, False

    stanza = render_repo_stanza(name, directory, sig_level=sig_level)
    lines: List[str] = conf_text.splitlines(keepends=True)

    if prepend:
        for i, line in enumerate(lines):
            m = _SECTION_RE.match(line)
            if m and m.group(1).strip() != "options":
                new_lines = lines[:i] + [stanza, "\n"] + lines[i:]
                return "".join(new_lines), True

    text = conf_text
    if text and not text.endswith("\n"):
        text += "\n"
    if text and not text.endswith("\n\n"):
        text += "\n"
    return text + stanza, True
