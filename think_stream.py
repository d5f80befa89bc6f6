# think_stream.py
"""Split a streamed assistant message into its thinking trace and its answer.

The model emits its reasoning in-band, wrapped in ``<think>...</think>``.
Only the first tagged region of a message is recognized.
"""
from dataclasses import dataclass, replace
from enum import Enum

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"


class Phase(Enum):
    THINKING = "thinking"
    ANSWER = "answer"


@dataclass(frozen=True)
class StreamingState:
    thinking: str = ""
    content: str = ""
    is_thinking: bool = True

    @property
    def phase(self):
        return Phase.THINKING if self.is_thinking else Phase.ANSWER

    def to_dict(self):
        return {
            "thinking": self.thinking,
            "content": self.content,
            "is_thinking": self.is_thinking,
        }


INITIAL_STATE = StreamingState()


def find_region(text, open_tag=OPEN_TAG, close_tag=CLOSE_TAG):
    """Return (open_at, close_at) for the first tagged region, -1 when missing."""
    open_at = text.find(open_tag)
    if open_at == -1:
        return -1, -1
    return open_at, text.find(close_tag, open_at + len(open_tag))


def _split(text, open_at, close_at, open_tag, close_tag):
    thinking = text[open_at + len(open_tag):close_at].strip()
    content = (text[:open_at] + text[close_at + len(close_tag):]).strip()
    return thinking, content


def update_state(state, buffer, open_tag=OPEN_TAG, close_tag=CLOSE_TAG):
    """Evaluate the whole cumulative buffer against the previous state."""
    open_at, close_at = find_region(buffer, open_tag, close_tag)
    if close_at != -1:
        thinking, content = _split(buffer, open_at, close_at, open_tag, close_tag)
        return StreamingState(thinking=thinking, content=content, is_thinking=False)
    if state.phase is Phase.ANSWER:
        # the latch never reopens; whatever arrives is answer text
        return replace(state, content=buffer.strip())
    if open_at != -1:
        return StreamingState(
            thinking=buffer[open_at + len(open_tag):].strip(),
            content="",
            is_thinking=True,
        )
    return replace(state, thinking=buffer.strip())


def parse_message(text, open_tag=OPEN_TAG, close_tag=CLOSE_TAG):
    """Parse a completed message; untagged text is all answer."""
    open_at, close_at = find_region(text, open_tag, close_tag)
    if close_at != -1:
        thinking, content = _split(text, open_at, close_at, open_tag, close_tag)
        return StreamingState(thinking=thinking, content=content, is_thinking=False)
    return StreamingState(thinking="", content=text.strip(), is_thinking=False)


class ThinkScanner:
    """Incremental form of :func:`update_state`.

    The buffer only grows while a message streams, so the tag positions found
    so far stay valid and each ``feed`` only searches the newly arrived text
    (plus a ``len(tag) - 1`` tail, so a tag split across chunks is still
    found). Appending to the buffer and slicing out the trimmed segments still
    copy the whole message on every chunk; only the tag search is incremental.
    The returned states are equal to what ``update_state`` gives for the same
    cumulative buffer.
    """

    def __init__(self, open_tag=OPEN_TAG, close_tag=CLOSE_TAG):
        if not open_tag or not close_tag:
            raise ValueError("delimiter tags must be non-empty")
        self.open_tag = open_tag
        self.close_tag = close_tag
        self.reset()

    def reset(self):
        self._text = ""
        self._open_at = -1
        self._close_at = -1
        self._open_scan = 0
        self._close_scan = 0
        self._thinking = None
        self._state = INITIAL_STATE

    @property
    def text(self):
        return self._text

    @property
    def state(self):
        return self._state

    @property
    def phase(self):
        return self._state.phase

    @property
    def saw_open_tag(self):
        return self._open_at != -1

    def feed(self, chunk):
        if chunk:
            self._text += chunk
            self._scan()
        self._state = self._evaluate()
        return self._state

    def _scan(self):
        text = self.text
        if self._open_at == -1:
            found = text.find(self.open_tag, self._open_scan)
            if found == -1:
                self._open_scan = max(0, len(text) - len(self.open_tag) + 1)
                return
            self._open_at = found
            self._close_scan = found + len(self.open_tag)
        if self._close_at == -1:
            found = text.find(self.close_tag, self._close_scan)
            if found == -1:
                self._close_scan = max(
                    self._open_at + len(self.open_tag),
                    len(text) - len(self.close_tag) + 1,
                )
                return
            self._close_at = found

    def _evaluate(self):
        text = self.text
        if self._close_at != -1:
            if self._thinking is None:
                start = self._open_at + len(self.open_tag)
                self._thinking = text[start:self._close_at].strip()
            tail = text[self._close_at + len(self.close_tag):]
            return StreamingState(
                thinking=self._thinking,
                content=(text[:self._open_at] + tail).strip(),
                is_thinking=False,
            )
        if self._open_at != -1:
            return StreamingState(
                thinking=text[self._open_at + len(self.open_tag):].strip(),
                content="",
                is_thinking=True,
            )
        return replace(self._state, thinking=text.strip())
