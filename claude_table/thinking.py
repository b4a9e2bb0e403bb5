"""Separate inline ``<thinking>...</thinking>`` spans from visible text."""

from __future__ import annotations

from dataclasses import dataclass

OPEN_TAG = "<thinking>"
CLOSE_TAG = "</thinking>"
_TAGS = (OPEN_TAG, CLOSE_TAG)


@dataclass(frozen=True)
class SplitResult:
    visible_text: str
    thinking_text: str
    inside_thinking: bool
    carryover: str


class ThinkingTagSplitter:
    """Incremental, case-insensitive tag scanner.

    Fragments must be fed strictly in stream order: a tag cut in half by a
    chunk boundary is held back in ``carryover`` and completed by the next
    fragment.
    """

    def __init__(self):
        self.inside_thinking = False
        self.carryover = ""

    def split(self, fragment: str) -> SplitResult:
        buf = self.carryover + fragment
        self.carryover = ""
        lowered = buf.lower()
        visible: list[str] = []
        thinking: list[str] = []

        def emit(text: str) -> None:
            if text:
                (thinking if self.inside_thinking else visible).append(text)

        i = 0
        while i < len(buf):
            j = lowered.find("<", i)
            if j == -1:
                emit(buf[i:])
                break
            emit(buf[i:j])
            if lowered.startswith(OPEN_TAG, j):
                self.inside_thinking = True
                i = j + len(OPEN_TAG)
            elif lowered.startswith(CLOSE_TAG, j):
                self.inside_thinking = False
                i = j + len(CLOSE_TAG)
            elif _is_partial_tag(lowered[j:]):
                self.carryover = buf[j:]
                break
            else:
                emit("<")
                i = j + 1

        return SplitResult(
            visible_text="".join(visible),
            thinking_text="".join(thinking),
            inside_thinking=self.inside_thinking,
            carryover=self.carryover,
        )

    def flush(self) -> SplitResult:
        """Release a held-back partial tag at end of stream as plain content."""
        pending, self.carryover = self.carryover, ""
        if self.inside_thinking:
            return SplitResult("", pending, True, "")
        return SplitResult(pending, "", False, "")


def _is_partial_tag(tail: str) -> bool:
    return any(len(tail) < len(tag) and tag.startswith(tail) for tag in _TAGS)
