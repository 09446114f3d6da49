"""Wildcard-aware comparison of expected (golden) lines against captured output.

Expected lines come in three kinds:

* ``literal``: equal to the actual line, or, in implicit regex mode, the
  literal read as a regular expression fully matches it. Equality is always
  tried first; a literal that is not a valid regular expression only matches
  by equality.
* ``pattern``: in explicit regex mode, a line starting with the configured
  prefix (``re:`` by default) is a regular expression and nothing else is.
* ``fast_forward``: a line of the form ``>> anything >>``. It skips actual
  lines until the following expected line matches. ``>> 3 >>`` skips exactly
  three lines, also when it is the last expected line. An uncounted marker
  as the last expected line accepts whatever output remains.

Matching walks both sequences once and never backtracks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Literal, Optional, Sequence, Tuple, Union

from ..config import FAST_FORWARD_MARKER, Settings
from ..errors import MismatchError
from ..schemas import MatchOutcome

LineKind = Literal["literal", "pattern", "fast_forward"]
RegexMode = Literal["implicit", "explicit"]

_LINE_BREAK = re.compile("\r\n|[\n\x0b\x0c\r\x85\u2028\u2029]")


@lru_cache(maxsize=2048)
def _compile(pattern: str) -> Optional["re.Pattern[str]"]:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def split_lines(text: str) -> List[str]:
    if not text:
        return []
    lines = _LINE_BREAK.split(text)
    while lines and lines[-1] == "":
        lines.pop()
    return lines


def is_fast_forward(line: str) -> bool:
    stripped = line.strip()
    marker = FAST_FORWARD_MARKER
    return (
        len(stripped) >= 2 * len(marker)
        and stripped.startswith(marker)
        and stripped.endswith(marker)
    )


def _skip_count(line: str) -> Optional[int]:
    marker = FAST_FORWARD_MARKER
    inner = line.strip()[len(marker) : -len(marker)].strip()
    if inner.isdigit():
        return int(inner)
    return None


@dataclass(frozen=True)
class GoldenLine:
    kind: LineKind
    text: str
    raw: str
    skip_count: Optional[int] = None
    regex_fallback: bool = False

    def matches(self, actual: str) -> bool:
        if self.kind == "fast_forward":
            return False
        if self.kind == "literal":
            if self.text == actual:
                return True
            if not self.regex_fallback:
                return False
        compiled = _compile(self.text)
        if compiled is None:
            return self.text == actual
        return compiled.fullmatch(actual) is not None


@dataclass(frozen=True)
class GoldenDocument:
    lines: Tuple[GoldenLine, ...]

    def __len__(self) -> int:
        return len(self.lines)

    @classmethod
    def from_lines(
        cls,
        lines: Sequence[str],
        *,
        regex_mode: RegexMode = "implicit",
        regex_prefix: str = "re:",
    ) -> "GoldenDocument":
        return cls(tuple(classify_line(line, regex_mode, regex_prefix) for line in lines))


def classify_line(
    line: str, regex_mode: RegexMode = "implicit", regex_prefix: str = "re:"
) -> GoldenLine:
    if is_fast_forward(line):
        return GoldenLine("fast_forward", line, line, skip_count=_skip_count(line))
    if regex_mode == "explicit":
        if regex_prefix and line.startswith(regex_prefix):
            return GoldenLine("pattern", line[len(regex_prefix) :], line)
        return GoldenLine("literal", line, line)
    return GoldenLine("literal", line, line, regex_fallback=True)


def parse_golden(text: str, settings: Optional[Settings] = None) -> GoldenDocument:
    settings = settings or Settings()
    return GoldenDocument.from_lines(
        split_lines(text),
        regex_mode=settings.regex_mode,
        regex_prefix=settings.regex_prefix,
    )


ExpectedLines = Union[GoldenDocument, Sequence[str]]


def _as_document(expected: ExpectedLines) -> GoldenDocument:
    if isinstance(expected, GoldenDocument):
        return expected
    return GoldenDocument.from_lines(list(expected))


def match_lines(expected: ExpectedLines, actual: Sequence[str]) -> MatchOutcome:
    lines = _as_document(expected).lines
    n_expected = len(lines)
    n_actual = len(actual)
    e = 0
    a = 0
    while e < n_expected:
        line = lines[e]
        if line.kind == "fast_forward":
            # A trailing counted marker must consume exactly the remaining lines;
            # any surplus is reported as extra output after the loop.
            if line.skip_count is None and e == n_expected - 1:
                return MatchOutcome.matched()
            if line.skip_count is not None:
                remaining = n_actual - a
                if line.skip_count > remaining:
                    return MatchOutcome.mismatched(
                        "FAST_FORWARD_OVERRUN",
                        f"fast-forward({line.skip_count}) at expected line #{e} "
                        f"needs {line.skip_count} actual lines, only {remaining} remain",
                        expected_index=e,
                        actual_index=n_actual,
                        expected_text=line.raw,
                    )
                a += line.skip_count
                e += 1
                continue
            anchor = lines[e + 1]
            if anchor.kind == "fast_forward":
                e += 1
                continue
            start = a
            while a < n_actual and not anchor.matches(actual[a]):
                a += 1
            if a == n_actual:
                return MatchOutcome.mismatched(
                    "ANCHOR_NOT_FOUND",
                    f"fast-forward from actual line #{start} never reached "
                    f"expected line #{e + 1}",
                    expected_index=e + 1,
                    actual_index=n_actual,
                    expected_text=anchor.raw,
                )
            e += 1
            continue
        if a >= n_actual:
            return MatchOutcome.mismatched(
                "OUTPUT_ENDED_EARLY",
                f"output ended early: {n_expected - e} expected line(s) left unmatched",
                expected_index=e,
                actual_index=n_actual,
                expected_text=line.raw,
            )
        if not line.matches(actual[a]):
            return MatchOutcome.mismatched(
                "LINE_MISMATCH",
                f"expected line #{e} does not match actual line #{a}",
                expected_index=e,
                actual_index=a,
                expected_text=line.raw,
                actual_text=actual[a],
            )
        e += 1
        a += 1
    if a < n_actual:
        return MatchOutcome.mismatched(
            "UNEXPECTED_EXTRA_OUTPUT",
            f"unexpected extra output: {n_actual - a} actual line(s) after the last expected line",
            actual_index=a,
            actual_text=actual[a],
        )
    return MatchOutcome.matched()


def match_text(
    expected_text: str, actual_text: str, settings: Optional[Settings] = None
) -> MatchOutcome:
    return match_lines(parse_golden(expected_text, settings), split_lines(actual_text))


def assert_lines_match(
    expected: ExpectedLines, actual: Sequence[str], resource_key: str = ""
) -> None:
    outcome = match_lines(expected, actual)
    if not outcome.ok:
        raise MismatchError(outcome, resource_key)
