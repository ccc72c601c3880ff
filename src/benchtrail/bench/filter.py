"""Benchmark name filters, matched the way `go test -bench` matches them.

The testing package splits a pattern on unbracketed "|" into alternatives and
each alternative on unbracketed "/" into one regexp per name level, so
`BenchmarkParse/small` has two levels. A benchmark reports a result when, for
some alternative, every level regexp matches somewhere in the name element at
the same depth. Names with fewer levels than the alternative are only entered
to reach their sub-benchmarks.
"""

import re
from collections.abc import Iterable

from ..errors import InvalidArgument

# Python accepts these, Go's RE2 syntax does not
_UNSUPPORTED_GROUPS = (
    ("(?=", "lookahead"),
    ("(?!", "lookahead"),
    ("(?<=", "lookbehind"),
    ("(?<!", "lookbehind"),
    ("(?P=", "backreference"),
    ("(?>", "atomic group"),
    ("(?(", "conditional group"),
    ("(?#", "comment group"),
)
_REPEATS = "*+?"

# Same set as Go's regexp.QuoteMeta
_META = re.compile(r"([\\.+*?()|\[\]{}^$])")


def quote_meta(text: str) -> str:
    return _META.sub(r"\\\1", text)


def split_unbracketed(pattern: str, separator: str) -> list[str]:
    """Split on `separator` outside of [...] and (...), skipping escaped characters."""
    parts: list[str] = []
    start = 0
    brackets = 0
    parens = 0
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if char == "[":
            brackets += 1
        elif char == "]":
            brackets = max(brackets - 1, 0)
        elif char == "(" and brackets == 0:
            parens += 1
        elif char == ")" and brackets == 0:
            parens -= 1
        elif char == separator and brackets == 0 and parens == 0:
            parts.append(pattern[start:i])
            start = i + 1
        i += 1
    parts.append(pattern[start:])
    return parts


def unsupported_construct(pattern: str) -> str | None:
    """Name the first construct in `pattern` that Go would reject, if any."""
    in_class = False
    i = 0
    while i < len(pattern):
        char = pattern[i]
        following = pattern[i + 1 : i + 2]
        if char == "\\":
            if not in_class and following.isdigit() and following != "0":
                return "backreference"
            i += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
            # "]" right after "[" or "[^" is a literal
            if following == "^":
                i += 1
            if pattern[i + 1 : i + 2] == "]":
                i += 1
        elif char == "(":
            for prefix, construct in _UNSUPPORTED_GROUPS:
                if pattern.startswith(prefix, i):
                    return construct
        elif char in _REPEATS and following == "+":
            return "possessive quantifier"
        i += 1
    return None


class BenchFilter:
    """A compiled `-bench` pattern."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern or "."
        self.alternatives = tuple(
            tuple(re.compile(level) for level in split_unbracketed(alternative, "/"))
            for alternative in split_unbracketed(self.pattern, "|")
        )

    def __repr__(self) -> str:
        return f"BenchFilter({self.pattern!r})"

    def search(self, name: str) -> bool:
        """True if `go test -bench=<pattern>` would report a result for `name`."""
        elements = name.split("/")
        return any(
            len(elements) >= len(levels)
            and all(level.search(element) for level, element in zip(levels, elements))
            for levels in self.alternatives
        )


def compile_bench_filter(bench_filter: str) -> BenchFilter:
    """Compile a `-bench` pattern, rejecting what go itself would reject.

    Raises:
        InvalidArgument: The pattern does not compile, or uses a construct
            Python supports and Go does not.
    """
    if construct := unsupported_construct(bench_filter):
        raise InvalidArgument(f"invalid regexp: {bench_filter}: {construct} is not supported")
    try:
        return BenchFilter(bench_filter)
    except re.error as exc:
        raise InvalidArgument(f"invalid regexp: {bench_filter}: {exc}") from exc


def exact_names_filters(names: Iterable[str]) -> list[str]:
    """Return `-bench` patterns that together select `names`, one per name depth.

    Every level is an alternation of the wanted elements at that depth, so a
    pattern for A/x and C/y also selects A/y and C/x. Callers drop the extras.
    """
    by_depth: dict[int, list[list[str]]] = {}
    for name in names:
        elements = name.split("/")
        by_depth.setdefault(len(elements), []).append(elements)

    filters = []
    for depth in sorted(by_depth):
        levels = []
        for i in range(depth):
            wanted = dict.fromkeys(quote_meta(elements[i]) for elements in by_depth[depth])
            levels.append("^(" + "|".join(wanted) + ")$")
        filters.append("/".join(levels))
    return filters


__all__ = [
    "BenchFilter",
    "compile_bench_filter",
    "exact_names_filters",
    "quote_meta",
    "split_unbracketed",
    "unsupported_construct",
]
