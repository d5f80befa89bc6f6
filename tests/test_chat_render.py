"""Tests for chat_render: transcript fragments and the thinking clock."""

from __future__ import annotations

import pytest
from markupsafe import Markup

from chat_render import (
    ThinkingClock,
    format_thinking_time,
    render_assistant,
    render_markdown,
    render_message,
    render_transcript,
    render_user,
)
from think_stream import INITIAL_STATE, StreamingState


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


# ── Markdown ──────────────────────────────────────────────────


class TestRenderMarkdown:
    def test_returns_markup(self):
        assert isinstance(render_markdown("hi"), Markup)

    def test_paragraph(self):
        assert render_markdown("Hello!") == "<p>Hello!</p>"

    def test_lists(self):
        html = render_markdown("- one\n- two\n\n1. first\n2. second")
        assert "<ul>" in html and "<li>one</li>" in html
        assert "<ol>" in html and "<li>first</li>" in html

    def test_fenced_code_block(self):
        html = render_markdown("```python\nprint('x')\n```")
        assert '<pre><code class="language-python">' in html
        assert "print(&#x27;x&#x27;)" in html or "print('x')" in html

    def test_inline_code(self):
        assert "<code>x = 1</code>" in render_markdown("Use `x = 1` here")

    def test_raw_html_is_escaped(self):
        html = render_markdown("<script>alert(1)</script>")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_inline_html_is_escaped(self):
        html = render_markdown("a <b>bold</b> claim")
        assert "<b>" not in html
        assert "&lt;b&gt;" in html


# ── Assistant / user fragments ────────────────────────────────


class TestRenderAssistant:
    def test_thinking_and_answer(self):
        state = StreamingState(thinking="reasoning", content="Hello!", is_thinking=False)
        html = render_assistant(state)
        assert '<details class="thinking" open>' in html
        assert "<p>reasoning</p>" in html
        assert '<div class="answer markdown"><p>Hello!</p></div>' in html
        assert html.index("reasoning") < html.index("Hello!")

    def test_no_panel_without_thinking(self):
        html = render_assistant(StreamingState(content="Only answer", is_thinking=False))
        assert "<details" not in html
        assert "Only answer" in html

    def test_no_answer_without_content(self):
        html = render_assistant(StreamingState(thinking="hmm"), streaming=True)
        assert "<details" in html
        assert "answer" not in html.replace("msg assistant", "")

    def test_empty_state(self):
        assert render_assistant(INITIAL_STATE) == '<div class="msg assistant"></div>'

    def test_closed_panel(self):
        html = render_assistant(StreamingState(thinking="hmm"), is_open=False)
        assert '<details class="thinking">' in html

    def test_label_while_thinking(self):
        html = render_assistant(StreamingState(thinking="hmm"), streaming=True)
        assert "<span>Thinking</span>" in html
        assert "msg assistant streaming" in html

    def test_label_once_answering(self):
        state = StreamingState(thinking="hmm", content="ok", is_thinking=False)
        assert "<span>Thoughts</span>" in render_assistant(state, streaming=True)
        assert "<span>Thoughts</span>" in render_assistant(state)

    def test_label_with_elapsed_time(self):
        state = StreamingState(thinking="hmm", content="ok", is_thinking=False)
        html = render_assistant(state, thinking_seconds=75)
        assert "<span>Thoughts (1 minute 15 seconds)</span>" in html


class TestRenderUser:
    def test_plain_text(self):
        assert render_user("Hi") == '<div class="msg user"><div class="bubble">Hi</div></div>'

    def test_no_markdown(self):
        html = render_user("**not bold**")
        assert "<strong>" not in html
        assert "**not bold**" in html

    def test_escaped(self):
        html = render_user("<think>x</think>")
        assert "&lt;think&gt;x&lt;/think&gt;" in html


class TestRenderMessage:
    def test_completed_assistant_is_parsed(self):
        html = render_message(
            {"role": "assistant", "content": "<think>step one</think>Final answer."}
        )
        assert "<span>Thoughts</span>" in html
        assert "<p>step one</p>" in html
        assert "<p>Final answer.</p>" in html
        assert "&lt;think&gt;" not in html

    def test_completed_untagged_is_answer(self):
        html = render_message({"role": "assistant", "content": "plain"})
        assert "<details" not in html
        assert "<p>plain</p>" in html

    def test_system_hidden(self):
        assert render_message({"role": "system", "content": "secret"}) == ""

    def test_transcript_order(self):
        html = render_transcript(
            [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "<think>r</think>Hello!"},
                {"role": "user", "content": "Bye"},
            ]
        )
        assert html.index("Hi") < html.index("Hello!") < html.index("Bye")

    def test_transcript_open_state(self):
        messages = [{"role": "assistant", "content": "<think>r</think>a"}]
        assert " open>" not in render_transcript(messages, is_open=False)
        assert " open>" in render_transcript(messages, is_open=True)


# ── Timing ────────────────────────────────────────────────────


class TestFormatThinkingTime:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0 seconds"),
            (59, "59 seconds"),
            (60, "1 minute"),
            (61, "1 minute 1 seconds"),
            (120, "2 minutes"),
            (135, "2 minutes 15 seconds"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_thinking_time(seconds) == expected


class TestThinkingClock:
    def test_not_started_without_open_tag(self):
        clock = ThinkingClock(clock=FakeClock())
        clock.observe(StreamingState(thinking="x"), saw_open_tag=False)
        assert clock.elapsed() is None

    def test_runs_while_thinking(self):
        fake = FakeClock()
        clock = ThinkingClock(clock=fake)
        clock.observe(StreamingState(thinking="x"), saw_open_tag=True)
        fake.now += 12.7
        assert clock.elapsed() == 12

    def test_stops_when_region_closes(self):
        fake = FakeClock()
        clock = ThinkingClock(clock=fake)
        clock.observe(StreamingState(thinking="x"), saw_open_tag=True)
        fake.now += 5
        clock.observe(StreamingState(thinking="x", is_thinking=False), saw_open_tag=True)
        fake.now += 30
        assert clock.elapsed() == 5

    def test_reset(self):
        clock = ThinkingClock(clock=FakeClock())
        clock.observe(StreamingState(thinking="x"), saw_open_tag=True)
        clock.reset()
        assert clock.elapsed() is None
