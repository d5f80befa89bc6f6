# chat_relay.py
import functools
import logging
import os

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

# LM Studio serves an OpenAI-compatible API; the key is required by the client
# but ignored by the local server.
BASE_URL = os.getenv("SANDY_BASE_URL", "http://127.0.0.1:1234/v1")
MODEL_NAME = os.getenv("SANDY_MODEL", "lmstudio-community/deepseek-r1-distill-qwen-7b")
API_KEY = os.getenv("SANDY_API_KEY", "lm-studio")

SYSTEM_PROMPT = "You are a helpful assistant."


class RelayError(Exception):
    """The upstream inference server could not be reached or broke the stream."""


@functools.lru_cache(maxsize=None)
def get_client():
    return OpenAI(base_url=BASE_URL, api_key=API_KEY, max_retries=0, timeout=None)


def build_messages(messages):
    augmented = [{"role": "system", "content": SYSTEM_PROMPT}]
    for message in messages:
        augmented.append(
            {"role": message.get("role", ""), "content": message.get("content", "")}
        )
    return augmented


class RelayStream:
    """Iterator over the text deltas of one streamed completion.

    ``close()`` releases the upstream connection, also when iteration never
    started or stopped early.
    """

    def __init__(self, response):
        self.response = response
        self.count = 0
        self._deltas = self._relay()

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._deltas)

    def close(self):
        self._deltas.close()
        self.response.close()

    def _relay(self):
        try:
            for chunk in self.response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if not content:
                    continue
                self.count += 1
                yield content
        except openai.APIError as exc:
            logger.warning("Upstream stream broke after %d chunks: %s", self.count, exc)
            raise RelayError(str(exc)) from exc
        finally:
            self.response.close()
        logger.info("Upstream stream finished after %d chunks", self.count)


def open_stream(messages, client=None):
    """Start a streamed completion and return a ``RelayStream`` over its text deltas.

    The request is sent before this returns, so an unreachable server raises
    ``RelayError`` here rather than on the first ``next()``.
    """
    client = client or get_client()
    augmented = build_messages(messages)
    logger.info("Relaying %d messages to %s (%s)", len(augmented), BASE_URL, MODEL_NAME)
    try:
        response = client.chat.completions.create(
            model=MODEL_NAME,
            messages=augmented,
            stream=True,
        )
    except openai.APIError as exc:
        logger.warning("Upstream request failed: %s", exc)
        raise RelayError(str(exc)) from exc
    return RelayStream(response)
