from .lines import (
    GoldenDocument,
    GoldenLine,
    assert_lines_match,
    classify_line,
    is_fast_forward,
    match_lines,
    match_text,
    parse_golden,
    split_lines,
)

__all__ = [
    "GoldenDocument",
    "GoldenLine",
    "assert_lines_match",
    "classify_line",
    "is_fast_forward",
    "match_lines",
    "match_text",
    "parse_golden",
    "split_lines",
]
