# chat_render.py
"""HTML fragments for the chat transcript.

Assistant text is markdown; it goes through Python-Markdown with raw HTML
disabled, so whatever the model emits is displayed, never interpreted.
User text is shown as-is.
"""
import time

import markdown
from markupsafe import Markup

from think_stream import parse_message

CHEVRON = Markup(
    '<svg class="chevron" fill="none" stroke="currentColor" viewBox="0 0 24 24">'
    '<path stroke-linecap="round" stroke-linejoin="round" stroke-width="2" d="M19 9l-7 7-7-7"/>'
    "</svg>"
)


class EscapeHtmlExtension(markdown.Extension):
    def extendMarkdown(self, md):
        md.registerExtension(self)
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")


def render_markdown(text):
    md = markdown.Markdown(extensions=["fenced_code", "sane_lists", EscapeHtmlExtension()])
    return Markup(md.convert(text))


def format_thinking_time(seconds):
    if seconds < 60:
        return f"{seconds} seconds"
    minutes, remaining = divmod(seconds, 60)
    plural = "s" if minutes > 1 else ""
    if remaining:
        return f"{minutes} minute{plural} {remaining} seconds"
    return f"{minutes} minute{plural}"


class ThinkingClock:
    """Measures how long the model spent inside its thinking region."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self.reset()

    def reset(self):
        self._started = None
        self._stopped = None

    def observe(self, state, saw_open_tag):
        if saw_open_tag and self._started is None:
            self._started = self._clock()
        if self._started is not None and self._stopped is None and not state.is_thinking:
            self._stopped = self._clock()

    def elapsed(self):
        if self._started is None:
            return None
        end = self._stopped if self._stopped is not None else self._clock()
        return int(end - self._started)


def render_thinking(thinking, label, is_open=True):
    return Markup(
        '<details class="thinking"{open}>'
        "<summary>{chevron}<span>{label}</span></summary>"
        '<div class="thinking-body markdown">{body}</div>'
        "</details>"
    ).format(
        open=Markup(" open") if is_open else "",
        chevron=CHEVRON,
        label=label,
        body=render_markdown(thinking),
    )


def render_assistant(state, is_open=True, streaming=False, thinking_seconds=None):
    parts = []
    if state.thinking:
        label = "Thinking" if streaming and not state.content else "Thoughts"
        if thinking_seconds is not None:
            label = f"{label} ({format_thinking_time(thinking_seconds)})"
        parts.append(render_thinking(state.thinking, label, is_open))
    if state.content:
        parts.append(
            Markup('<div class="answer markdown">{}</div>').format(
                render_markdown(state.content)
            )
        )
    classes = "msg assistant streaming" if streaming else "msg assistant"
    return Markup('<div class="{}">{}</div>').format(classes, Markup("").join(parts))


def render_user(text):
    return Markup('<div class="msg user"><div class="bubble">{}</div></div>').format(text)


def render_message(message, is_open=True):
    role = message.get("role")
    content = message.get("content", "")
    if role == "user":
        return render_user(content)
    if role == "assistant":
        return render_assistant(parse_message(content), is_open=is_open)
    return Markup("")


def render_transcript(messages, is_open=True):
    return Markup("").join(render_message(message, is_open) for message in messages)
