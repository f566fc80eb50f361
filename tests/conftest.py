import io
from typing import Iterable, List

import pytest
from rich.console import Console

from tangent.chain import ROLE_ASSISTANT, ROLE_USER, Conversation
from tangent.context import Context
from tangent.models import Profile
from tangent.storage import Storage


class CapturingContext(Context):
    """Context writing into in-memory buffers."""

    def __init__(self, verbose: bool = False) -> None:
        self.out = io.StringIO()
        self.err = io.StringIO()
        super().__init__(
            console=Console(file=self.out, width=120, color_system=None, highlight=False),
            err_console=Console(file=self.err, width=120, color_system=None, highlight=False),
            verbose=verbose,
        )

    @property
    def output(self) -> str:
        return self.out.getvalue()

    @property
    def errors(self) -> str:
        return self.err.getvalue()


def scripted_input(lines: Iterable[str]):
    """read_line replacement returning lines in order, then EOF."""
    it = iter(lines)
    prompts: List[str] = []

    def read_line(prompt: str) -> str:
        prompts.append(prompt)
        try:
            return next(it)
        except StopIteration:
            raise EOFError()

    read_line.prompts = prompts
    return read_line


@pytest.fixture
def tangent_home(tmp_path, monkeypatch):
    """Isolated tangent home directory without API keys from the environment."""
    home = tmp_path / "tangent-home"
    monkeypatch.setenv("TANGENT_HOME", str(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return home


@pytest.fixture
def ctx():
    return CapturingContext()


@pytest.fixture
def profile():
    return Profile(user_name="tester")


@pytest.fixture
def conv(profile):
    return Conversation(profile=profile, system="Be brief.")


@pytest.fixture
def two_turns(conv):
    """Conversation with one user question and one assistant answer."""
    conv.append(ROLE_USER, "What is a monad?")
    conv.append(ROLE_ASSISTANT, "A monoid in the category of endofunctors.")
    return conv


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "history", search_dirs=[])
