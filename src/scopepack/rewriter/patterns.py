"""
scopepack - namespace pattern rewriter.

File: src/scopepack/rewriter/patterns.py

Purpose
- Move PHP namespaces under a prefix by text substitution, one mapping entry
  at a time, without parsing the language.

What should be included in this file
- The three pattern families (declaration, reference, metadata entry).
- The boundary-aware idempotence guard.
- A compiled ``RewritePlan`` so a whole tree reuses one set of patterns.

Functional requirements
- Entries apply longest original first, so ``Acme\\Lib`` is handled before
  ``Acme`` and never ends up as a half-prefixed hybrid.
- A namespace occurrence only matches at a boundary (not preceded by an
  identifier character or separator), so already-prefixed text is never
  matched again.
- Metadata keys that encode a prefix length keep that length in sync.
- Every name of a comma-separated or grouped ``use`` import is checked; a
  group whose shared root is shorter than an entry is split per member.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from scopepack.constants import NAMESPACE_SEPARATOR
from scopepack.domain.models import NamespaceMappingTable, RewriteMode, clean_namespace

_SEP: Final[str] = NAMESPACE_SEPARATOR
_ESCAPED_SEP: Final[str] = NAMESPACE_SEPARATOR * 2

# Characters that may directly precede a qualified name in code.
_QUALIFIED_INTRODUCERS: Final[str] = r"\s(,!?|&\[=:;@{}<>"

# A whole ``use`` statement up to its terminator. A trait ``use`` with an
# adaptation block stops at the opening brace.
_USE_STATEMENT: Final[re.Pattern[str]] = re.compile(
    r"(?m)^(?P<lead>[ \t]*use\s+(?:(?:function|const)\s+)?)"
    r"(?P<body>[^;{}]*(?:\{[^;{}]*\}[^;{}]*)?)(?=\s*[;{])"
)
_GROUP_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"(?s)^(?P<space>\s*)\\?(?P<root>[\w\\]*\w)\\\s*\{(?P<members>[^{}]*)\}\s*$"
)
_IMPORT_ITEM: Final[re.Pattern[str]] = re.compile(
    r"(?s)^(?P<lead>\s*(?:(?:function|const)\s+)?)\\?(?P<name>[\w\\]*\w)(?P<rest>.*)$"
)

_Replacement = str | Callable[[re.Match[str]], str]


@dataclass(frozen=True, slots=True)
class _EntryPatterns:
    original: str
    prefixed: str
    guard: re.Pattern[str]
    nested_guard: re.Pattern[str] | None
    substitutions: tuple[tuple[re.Pattern[str], _Replacement], ...]
    metadata_keys: tuple[tuple[re.Pattern[str], str], ...]

    def already_applied(self, content: str) -> bool:
        for match in self.guard.finditer(content):
            if self.nested_guard is not None and self.nested_guard.match(content, match.start()):
                continue
            return True
        return False


class RewritePlan:
    """Compiled patterns for one (prefix, table, mode) triple."""

    __slots__ = ("_entries", "_mode")

    def __init__(self, prefix: str, table: NamespaceMappingTable, mode: RewriteMode) -> None:
        self._mode = RewriteMode(mode)
        cleaned_prefix = clean_namespace(prefix)
        if not cleaned_prefix:
            self._entries: tuple[_EntryPatterns, ...] = ()
            return

        ordered = [
            (original, f"{cleaned_prefix}{_SEP}{original}")
            for original, _ in table.entries_longest_first()
        ]
        self._entries = tuple(
            _compile_entry(original, prefixed, ordered, self._mode)
            for original, prefixed in ordered
        )

    @property
    def mode(self) -> RewriteMode:
        return self._mode

    def __bool__(self) -> bool:
        return bool(self._entries)

    def apply(self, content: str) -> str:
        for entry in self._entries:
            if entry.already_applied(content):
                continue
            for pattern, replacement in entry.substitutions:
                content = pattern.sub(replacement, content)
            for pattern, prefixed_key in entry.metadata_keys:
                content = pattern.sub(_metadata_replacer(prefixed_key), content)
        return content


def rewrite(
    content: str,
    prefix: str,
    table: NamespaceMappingTable,
    mode: RewriteMode,
) -> str:
    """Rewrite every namespace in ``table`` under ``prefix`` with the patterns for ``mode``."""

    return RewritePlan(prefix, table, mode).apply(content)


def _compile_entry(
    original: str,
    prefixed: str,
    ordered: list[tuple[str, str]],
    mode: RewriteMode,
) -> _EntryPatterns:
    nested = [
        longer_prefixed
        for longer_original, longer_prefixed in ordered
        if longer_original.startswith(original + _SEP)
    ]

    if mode is RewriteMode.METADATA_ENTRY:
        guard_forms = [re.escape(prefixed) + re.escape(_SEP)]
        escaped_prefixed = prefixed.replace(_SEP, _ESCAPED_SEP)
        guard_forms.append(re.escape(escaped_prefixed) + re.escape(_ESCAPED_SEP))
        nested_forms = [re.escape(item) for item in nested]
        nested_forms += [re.escape(item.replace(_SEP, _ESCAPED_SEP)) for item in nested]
    else:
        guard_forms = [re.escape(prefixed) + re.escape(_SEP)]
        nested_forms = [re.escape(item) for item in nested]

    guard = re.compile(r"(?<![\w\\])(?:" + "|".join(guard_forms) + ")")
    nested_guard = (
        re.compile(r"(?:" + "|".join(nested_forms) + r")(?![\w])") if nested_forms else None
    )

    substitutions: tuple[tuple[re.Pattern[str], _Replacement], ...] = ()
    metadata_keys: tuple[tuple[re.Pattern[str], str], ...] = ()
    if mode is RewriteMode.METADATA_ENTRY:
        metadata_keys = _metadata_patterns(original, prefixed)
    else:
        substitutions = _statement_patterns(original, prefixed, mode)

    return _EntryPatterns(
        original=original,
        prefixed=prefixed,
        guard=guard,
        nested_guard=nested_guard,
        substitutions=substitutions,
        metadata_keys=metadata_keys,
    )


def _statement_patterns(
    original: str,
    prefixed: str,
    mode: RewriteMode,
) -> tuple[tuple[re.Pattern[str], _Replacement], ...]:
    name = re.escape(original)
    replacement = _literal(prefixed)

    patterns: list[tuple[re.Pattern[str], _Replacement]] = [
        (_USE_STATEMENT, _import_replacer(original, prefixed))
    ]
    if mode is RewriteMode.REFERENCE:
        return tuple(patterns)

    declaration = re.compile(
        r"(?m)^(?P<lead>(?:<\?php\s+)?[ \t]*namespace\s+)\\?" + name + r"(?=\\|\s*[;{])"
    )
    # new, instanceof, extends, implements, type hints and bare qualified paths.
    qualified = re.compile(
        r"(?m)(?:(?<=[" + _QUALIFIED_INTRODUCERS + r"])|^)(?P<lead>\\?)" + name + r"(?=\\)"
    )
    patterns.insert(0, (declaration, r"\g<lead>" + replacement))
    patterns.append((qualified, r"\g<lead>" + replacement))
    return tuple(patterns)


def _import_replacer(original: str, prefixed: str) -> Callable[[re.Match[str]], str]:
    """Prefix every imported name of one ``use`` statement that falls under ``original``."""

    def prefix_name(name: str) -> str | None:
        if name == original or name.startswith(original + _SEP):
            return prefixed + name[len(original) :]
        return None

    def rewrite_item(item: str) -> str:
        parts = _IMPORT_ITEM.match(item)
        if parts is None:
            return item
        renamed = prefix_name(parts.group("name"))
        if renamed is None:
            return item
        return parts.group("lead") + renamed + parts.group("rest")

    def replace(match: re.Match[str]) -> str:
        lead = match.group("lead")
        body = match.group("body")
        group = _GROUP_IMPORT.match(body)
        if group is None:
            if "{" in body:
                return match.group(0)
            return lead + ",".join(rewrite_item(item) for item in body.split(","))

        root = group.group("root")
        renamed = prefix_name(root)
        if renamed is not None:
            return lead + group.group("space") + renamed + body[group.end("root") :]
        if not original.startswith(root + _SEP):
            return match.group(0)

        # The shared root is shorter than the entry, so the group is split into
        # one statement per member.
        members = [
            _qualify_member(root, member)
            for member in group.group("members").split(",")
            if member.strip()
        ]
        rewritten = [rewrite_item(member) for member in members]
        if rewritten == members:
            return match.group(0)
        indent = lead[: len(lead) - len(lead.lstrip())]
        statement = indent + " ".join(lead.split()) + " "
        return ";\n".join(statement + member for member in rewritten)

    return replace


def _qualify_member(root: str, member: str) -> str:
    parts = _IMPORT_ITEM.match(member)
    if parts is None:
        return member.strip()
    kind = parts.group("lead").strip()
    qualified = f"{root}{_SEP}{parts.group('name')}{parts.group('rest').rstrip()}"
    return f"{kind} {qualified}" if kind else qualified


def _metadata_patterns(original: str, prefixed: str) -> tuple[tuple[re.Pattern[str], str], ...]:
    escaped_original = original.replace(_SEP, _ESCAPED_SEP)
    escaped_prefixed = prefixed.replace(_SEP, _ESCAPED_SEP)

    # Escaped keys are rewritten before single-separator keys.
    forms = [(escaped_original, escaped_prefixed, _ESCAPED_SEP), (original, prefixed, _SEP)]

    compiled: list[tuple[re.Pattern[str], str]] = []
    for key, prefixed_key, separator in forms:
        pattern = re.compile(
            r"(?P<quote>['\"])"
            + re.escape(key)
            + r"(?P<rest>(?:"
            + re.escape(separator)
            + r"[^'\"\n]*)?)(?P=quote)(?P<arrow>\s*(?:=>|:)\s*)(?P<length>\d+(?![\w.]))?"
        )
        compiled.append((pattern, prefixed_key))
    return tuple(compiled)


def _metadata_replacer(prefixed_key: str) -> Callable[[re.Match[str]], str]:
    def replace(match: re.Match[str]) -> str:
        quote = match.group("quote")
        rest = match.group("rest")
        new_key = prefixed_key + rest
        rendered = f"{quote}{new_key}{quote}{match.group('arrow')}"
        length = match.group("length")
        if length is None:
            return rendered
        old_key = match.string[match.start() + 1 : match.end("rest")]
        if int(length) == _unescaped_length(old_key):
            return rendered + str(_unescaped_length(new_key))
        return rendered + length

    return replace


def _unescaped_length(key: str) -> int:
    return len(key.replace(_ESCAPED_SEP, _SEP))


def _literal(text: str) -> str:
    return text.replace("\\", r"\\")


__all__ = ["RewritePlan", "rewrite"]
