"""Shared test configuration and fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env from project root for all tests
root = Path(__file__).parent.parent.resolve()
load_dotenv(root / ".env")


class FakeBackend:
    """Scripted generation backend.

    Each call to stream() plays the next script; the last script repeats.  A
    script item is either a text fragment to yield or an exception to raise.
    """

    def __init__(self, *scripts: list):
        self.scripts = list(scripts) or [[]]
        self.prompts: list[str] = []
        self.closed: list[bool] = []

    def stream(self, prompt: str):
        self.prompts.append(prompt)
        script = self.scripts[min(len(self.prompts), len(self.scripts)) - 1]
        call_index = len(self.closed)
        self.closed.append(False)
        return self._play(script, call_index)

    def _play(self, script: list, call_index: int):
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed[call_index] = True


@pytest.fixture
def fake_backend():
    """Factory fixture: ``fake_backend(["a\\tb\\n", ...], [...])`` builds a FakeBackend."""
    return FakeBackend


def split_at(text: str, *positions: int) -> list[str]:
    """Split *text* at the given ascending positions."""
    bounds = [0, *positions, len(text)]
    return [text[start:end] for start, end in zip(bounds, bounds[1:])]


@pytest.fixture
def splitter():
    """Expose split_at() to tests without making tests/ a package."""
    return split_at
