"""Progressive reveal helpers for text blocks.

A presentation layer that animates text character by character can cut a
block at any length. These helpers move the cut so it never shows half of
an emphasis marker.
"""

import re


def safe_reveal_cutoff(text: str, target_length: int) -> int:
    """
    Adjust a reveal length so it does not split a run of asterisks.

    The run touching the cut is included only when it opens emphasis
    (followed by a non-space character), is one to three asterisks long,
    and a closing run of the same length already exists in the visible
    text. Otherwise the cut moves back to the start of the run.

    Args:
        text: Full text of the block
        target_length: Desired number of visible characters

    Returns:
        The adjusted number of visible characters
    """
    if target_length >= len(text):
        return len(text)

    cutoff = max(target_length, 0)

    run_start = cutoff
    while run_start > 0 and text[run_start - 1] == "*":
        run_start -= 1

    run_end = cutoff
    while run_end < len(text) and text[run_end] == "*":
        run_end += 1

    run_length = run_end - run_start
    if run_length == 0:
        return cutoff

    is_opening = run_end < len(text) and not text[run_end].isspace()
    has_closing = False
    if is_opening and 1 <= run_length <= 3:
        closed = re.compile(r"\*{%d}(.+?)\*{%d}" % (run_length, run_length))
        has_closing = closed.search(text[:run_end]) is not None

    return run_end if has_closing else run_start


def reveal_prefix(text: str, target_length: int) -> str:
    """Return the visible part of ``text`` for a reveal of ``target_length``."""
    return text[: safe_reveal_cutoff(text, target_length)]
