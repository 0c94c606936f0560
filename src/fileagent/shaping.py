"""
Result Shaper - Bounding tool output for the context window.

Every tool result passes through shape() before the controller sees it.
Shaping is pure and deterministic: the same raw output and limits always
produce the same ShapedOutput.

Rules, by output kind:
- SEARCH: keep the first grep_truncate_threshold lines.
- LISTING: keep a head and a tail of the list.
- FILE_READ: above read_truncate_threshold lines, emit evenly spaced line
  ranges across the whole file, each labeled with its line numbers.
- TEXT: no line rules.

Retained lines longer than line_char_limit are clipped. Finally, anything
still over tool_output_limit characters degrades to head+tail.
The dispatcher applies the same head+tail cut, via cap(), when a whole
batch is over batch_output_limit.

A truncated result always ends with exactly one omission marker line.
The marker is also how an already-shaped text is recognized, which makes
shaping idempotent.
"""

import dataclasses
import re

from fileagent.config import ShapingLimits
from fileagent.types import ErrorInfo, OutputKind, SamplingStrategy, ShapedOutput

RETRIEVAL_HINTS: dict[OutputKind, str] = {
    OutputKind.SEARCH: "narrow the pattern, path or glob, or set head_limit",
    OutputKind.FILE_READ: "read specific ranges with offset/limit",
    OutputKind.LISTING: "narrow the path or pattern",
    OutputKind.TEXT: "redirect the output to a file and read it in ranges",
}

# Smallest share of a batch budget any single result is cut down to.
MIN_RESULT_CHARS = 1000

_MARKER_RE = re.compile(
    r"\[\.\.\. output shaped \((?P<strategy>head_tail|interval)\); "
    r"[^\n]*?; original size (?P<size>\d+) chars; [^\n]* \.\.\.\]\Z"
)


def omission_marker(
    strategy: SamplingStrategy,
    summary: str,
    original_size: int,
    kind: OutputKind,
) -> str:
    """Render the single-line marker that ends every truncated output."""
    return (
        f"[... output shaped ({strategy.value}); {summary}; "
        f"original size {original_size} chars; {RETRIEVAL_HINTS[kind]} ...]"
    )


def parse_marker(text: str) -> tuple[SamplingStrategy, int] | None:
    """
    Recognize a trailing omission marker.

    Returns (strategy, original_size) or None if the text does not end
    with a marker.
    """
    match = _MARKER_RE.search(text)
    if match is None:
        return None
    return SamplingStrategy(match.group("strategy")), int(match.group("size"))


def has_omission_marker(text: str) -> bool:
    return parse_marker(text) is not None


def clip_line(line: str, limit: int) -> tuple[str, bool]:
    """
    Clip a single line to the character limit.

    Returns (line, was_clipped).
    """
    if len(line) <= limit:
        return line, False
    return f"{line[:limit]}... [+{len(line) - limit} chars]", True


def _clip_all(lines: list[str], limit: int) -> tuple[list[str], int]:
    clipped_lines: list[str] = []
    clipped = 0
    for line in lines:
        text, was_clipped = clip_line(line, limit)
        clipped_lines.append(text)
        clipped += was_clipped
    return clipped_lines, clipped


def _clip_summary(clipped: int, limit: int) -> str:
    return f"{clipped} long line(s) clipped to {limit} chars"


def _shape_search(lines: list[str], limits: ShapingLimits) -> tuple[list[str], list[str]]:
    threshold = limits.grep_truncate_threshold
    summary: list[str] = []
    if len(lines) > threshold:
        omitted = len(lines) - threshold
        summary.append(f"showing first {threshold} of {len(lines)} lines, {omitted} lines omitted")
        lines = lines[:threshold]
    lines, clipped = _clip_all(lines, limits.line_char_limit)
    if clipped:
        summary.append(_clip_summary(clipped, limits.line_char_limit))
    return lines, summary


def _shape_listing(lines: list[str], limits: ShapingLimits) -> tuple[list[str], list[str]]:
    threshold = limits.listing_truncate_threshold
    summary: list[str] = []
    if len(lines) > threshold:
        head = min(limits.listing_head_lines, threshold)
        tail = min(limits.listing_tail_lines, threshold - head)
        omitted = len(lines) - head - tail
        summary.append(
            f"showing first {head} and last {tail} of {len(lines)} lines, {omitted} lines omitted"
        )
        lines = (
            lines[:head]
            + [f"[... {omitted} lines omitted ...]"]
            + (lines[len(lines) - tail:] if tail else [])
        )
    lines, clipped = _clip_all(lines, limits.line_char_limit)
    if clipped:
        summary.append(_clip_summary(clipped, limits.line_char_limit))
    return lines, summary


def interval_ranges(total: int, ranges: int, size: int) -> list[tuple[int, int]]:
    """
    Evenly spaced [start, end) line ranges covering a file of total lines.

    The first range starts at line 0 and the last one ends at total.
    """
    span = max(total - size, 0)
    starts = sorted({round(i * span / (ranges - 1)) for i in range(ranges)})
    return [(start, min(start + size, total)) for start in starts]


def _shape_file_read(lines: list[str], limits: ShapingLimits) -> tuple[list[str], list[str], bool]:
    threshold = limits.read_truncate_threshold
    summary: list[str] = []
    sampled = len(lines) > threshold
    if sampled:
        total = len(lines)
        ranges = limits.read_sample_ranges
        size = max(1, min(limits.read_sample_lines, threshold // (ranges + 1)))
        output: list[str] = []
        shown = 0
        prev_end = 0
        for start, end in interval_ranges(total, ranges, size):
            start = max(start, prev_end)
            if start >= end:
                continue
            if start > prev_end:
                output.append(f"[... lines {prev_end + 1}-{start} omitted ...]")
            output.append(f"--- lines {start + 1}-{end} of {total} ---")
            output.extend(lines[start:end])
            shown += end - start
            prev_end = end
        summary.append(
            f"sampled {shown} of {total} lines in {ranges} ranges, {total - shown} lines omitted"
        )
        lines = output
    lines, clipped = _clip_all(lines, limits.line_char_limit)
    if clipped:
        summary.append(_clip_summary(clipped, limits.line_char_limit))
    return lines, summary, sampled


def _cap_head_tail(
    body: str,
    summary: list[str],
    original_size: int,
    kind: OutputKind,
    limit: int,
) -> str:
    """Cut the middle out of body so the final text fits in limit characters."""
    gap = "\n[... {} chars omitted ...]\n"

    # Size the budget with the widest numbers the marker can contain
    worst_summary = summary + [f"{len(body)} chars omitted by the output cap"]
    worst_marker = omission_marker(
        SamplingStrategy.HEAD_TAIL, "; ".join(worst_summary), original_size, kind
    )
    budget = limit - len(worst_marker) - len(gap.format(len(body))) - 1
    head_len = budget * 2 // 3
    tail_len = budget - head_len
    omitted = len(body) - head_len - tail_len

    final_summary = summary + [f"{omitted} chars omitted by the output cap"]
    marker = omission_marker(
        SamplingStrategy.HEAD_TAIL, "; ".join(final_summary), original_size, kind
    )
    tail = body[len(body) - tail_len:] if tail_len else ""
    return body[:head_len] + gap.format(omitted) + tail + "\n" + marker


def shape(
    raw: str | ShapedOutput,
    kind: OutputKind = OutputKind.TEXT,
    limits: ShapingLimits | None = None,
) -> ShapedOutput:
    """
    Shape raw tool output into a bounded ShapedOutput.

    Untruncated output is returned byte-identical. Shaping an already
    shaped output (or its text) with the same limits returns it unchanged.
    """
    limits = limits or ShapingLimits()
    original_size: int | None = None

    if isinstance(raw, ShapedOutput):
        if raw.truncated and len(raw.text) <= limits.tool_output_limit:
            return raw
        original_size = raw.original_size
        raw = raw.text

    parsed = parse_marker(raw)
    if parsed is not None and len(raw) <= limits.tool_output_limit:
        strategy, size = parsed
        return ShapedOutput(text=raw, truncated=True, original_size=size, sampling_strategy=strategy)

    if original_size is None:
        original_size = len(raw)

    lines = raw.splitlines()
    strategy = SamplingStrategy.HEAD_TAIL
    if kind == OutputKind.SEARCH:
        lines, summary = _shape_search(lines, limits)
    elif kind == OutputKind.LISTING:
        lines, summary = _shape_listing(lines, limits)
    elif kind == OutputKind.FILE_READ:
        lines, summary, sampled = _shape_file_read(lines, limits)
        if sampled:
            strategy = SamplingStrategy.INTERVAL
    else:
        summary = []

    if not summary:
        if len(raw) <= limits.tool_output_limit:
            return ShapedOutput(text=raw, truncated=False, original_size=original_size)
        body = raw
    else:
        body = "\n".join(lines)
        text = body + "\n" + omission_marker(strategy, "; ".join(summary), original_size, kind)
        if len(text) <= limits.tool_output_limit:
            return ShapedOutput(
                text=text,
                truncated=True,
                original_size=original_size,
                sampling_strategy=strategy,
            )

    text = _cap_head_tail(body, summary, original_size, kind, limits.tool_output_limit)
    return ShapedOutput(
        text=text,
        truncated=True,
        original_size=original_size,
        sampling_strategy=SamplingStrategy.HEAD_TAIL,
    )


def bound_error(
    error: ErrorInfo,
    limits: ShapingLimits | None = None,
    limit: int | None = None,
) -> ErrorInfo:
    """
    Fit an error into the same budget as any other tool result.

    Identifying fields are clipped to a line each and the message is cut
    head+tail so that error.render() stays within limit (tool_output_limit
    by default).
    """
    limits = limits or ShapingLimits()
    limit = max(limit or limits.tool_output_limit, MIN_RESULT_CHARS)
    field_limit = min(limits.line_char_limit, limit // 10)

    def clip(value: str | None) -> str | None:
        return clip_line(value, field_limit)[0] if value else value

    bounded = dataclasses.replace(
        error,
        message="",
        tool_name=clip(error.tool_name),
        resource_key=clip(error.resource_key),
        step=clip(error.step),
    )
    budget = limit - len(bounded.render())
    message = error.message
    if len(message) > budget:
        message = _cap_head_tail(message, [], len(message), OutputKind.TEXT, budget)
    return dataclasses.replace(bounded, message=message)


def cap(output: ShapedOutput, limit: int, kind: OutputKind = OutputKind.TEXT) -> ShapedOutput:
    """Cut an already shaped output down to limit characters, head+tail."""
    limit = max(limit, MIN_RESULT_CHARS)
    if len(output.text) <= limit:
        return output
    text = _cap_head_tail(output.text, [], output.original_size, kind, limit)
    return ShapedOutput(
        text=text,
        truncated=True,
        original_size=output.original_size,
        sampling_strategy=SamplingStrategy.HEAD_TAIL,
    )


def batch_allowances(sizes: list[int], total: int) -> list[int]:
    """
    Split a batch budget between results.

    Results smaller than an equal share keep their full size and the rest
    is shared equally between the larger ones. No allowance drops below
    MIN_RESULT_CHARS, so a very large batch can exceed total.
    """
    allowances = [0] * len(sizes)
    remaining = total
    left = len(sizes)
    for index in sorted(range(len(sizes)), key=lambda i: (sizes[i], i)):
        share = max(remaining // left, MIN_RESULT_CHARS)
        allowances[index] = min(sizes[index], share)
        remaining = max(remaining - allowances[index], 0)
        left -= 1
    return allowances
