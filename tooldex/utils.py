import time


class Stopwatch:
    """Elapsed wall time in whole milliseconds, from the monotonic clock."""

    __slots__ = ("_started",)

    def __init__(self):
        self._started = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started) * 1000)


def clip(text: str, width: int) -> str:
    """Collapse whitespace and cut to `width` characters on a word boundary."""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    head = text[: width - 1]
    if " " in head:
        head = head.rsplit(" ", 1)[0]
    return head + "…"
