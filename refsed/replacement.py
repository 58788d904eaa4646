"""
The replacement module compiles replacement specifications into replacers that `re.sub` accepts.

A replacement specification is either a callable, which is used as is, or a template string. Template
strings support these placeholders:

- `$&`: the matched text.
- `$'`: the text following the match.
- `` $` ``: the text preceding the match.
- `$+`: the last capture group that participated in the match, or the matched text if none did.
- `$1`, `$2`, ...: the numbered capture group.
- `${name}`: the second capture group.

The placeholders are not combined. The first placeholder kind present in the order above decides
what the replacer returns:

- `$&`, `$'`, `` $` ``, and `$+` return their value alone and discard the rest of the template.
- Numbered placeholders are substituted into the template. A placeholder that refers to a group the
  pattern does not have, or that did not participate in the match, is left in the text as is, so
  that a mismatch between the template and the pattern never silently erases text.
- Named placeholders are all substituted with the second capture group, whatever their name. If the
  match has no second group, the template is returned as is.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

CompiledReplacer = Callable[[re.Match[str]], str]
ReplacementSpec = str | CompiledReplacer

NUMBERED_PLACEHOLDER_REGEX = re.compile(r"\$(\d+)")
NAMED_PLACEHOLDER_REGEX = re.compile(r"\$\{[^}]+\}")


def has_placeholders(template: str) -> bool:
    return (
        NUMBERED_PLACEHOLDER_REGEX.search(template) is not None
        or "${" in template
        or any(p in template for p in ["$&", "$'", "$`", "$+"])
    )


def compile_replacement(spec: ReplacementSpec) -> CompiledReplacer:
    if callable(spec):
        return spec

    template = spec
    if not has_placeholders(template):
        return lambda _: template

    if "$&" in template:
        return lambda m: m.group(0)
    if "$'" in template:
        return lambda m: m.string[m.end() :]
    if "$`" in template:
        return lambda m: m.string[: m.start()]
    if "$+" in template:
        return _last_group

    if NUMBERED_PLACEHOLDER_REGEX.search(template) is not None:

        def numbered(m: re.Match[str]) -> str:
            groups = m.groups()

            def sub(p: re.Match[str]) -> str:
                idx = int(p.group(1))
                if 1 <= idx <= len(groups) and groups[idx - 1] is not None:
                    return groups[idx - 1]  # type: ignore[return-value]
                return p.group(0)

            return NUMBERED_PLACEHOLDER_REGEX.sub(sub, template)

        return numbered

    if NAMED_PLACEHOLDER_REGEX.search(template) is not None:

        def named(m: re.Match[str]) -> str:
            groups = m.groups()
            if len(groups) < 2 or groups[1] is None:
                return template
            second: str = groups[1]
            return NAMED_PLACEHOLDER_REGEX.sub(lambda _: second, template)

        return named

    # An unterminated `${` counts as a placeholder but substitutes nothing.
    return lambda _: template


def _last_group(m: re.Match[str]) -> str:
    for g in reversed(m.groups()):
        if g is not None:
            return g
    return m.group(0)
