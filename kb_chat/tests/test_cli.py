import io

import pytest
from rich.console import Console

from kb_chat.cli import ChatConsole, Command, parse_command
from kb_chat.domain.exceptions import NetworkError


@pytest.mark.parametrize(
    "line,expected",
    [
        ("", Command("empty")),
        ("   ", Command("empty")),
        ("/exit", Command("exit")),
        ("/QUIT", Command("exit")),
        ("/clear", Command("clear")),
        ("/Help", Command("help")),
        ("/stream Explain SOLID", Command("stream", "Explain SOLID")),
        ("/STREAM   spaced out  ", Command("stream", "spaced out")),
        ("/stream   ", Command("send", "/stream")),
        ("  What is DI?  ", Command("send", "What is DI?")),
        ("/streaming is a word", Command("send", "/streaming is a word")),
    ],
)
def test_parse_command(line, expected):
    assert parse_command(line) == expected


class FakeOrchestrator:
    def __init__(self):
        self.sent = []
        self.streamed = []
        self.cleared = 0

    def send_message(self, text):
        self.sent.append(text)
        if text == "fail":
            raise NetworkError(code="NETWORK_ERROR", message="provider [down]")
        return f"reply to {text}"

    def stream_message(self, text):
        self.streamed.append(text)
        return (fragment for fragment in ["SOLID ", "is ", "five principles."])

    def clear_history(self):
        self.cleared += 1


def _run(lines):
    out = io.StringIO()
    feed = iter(lines)

    def read_line():
        try:
            return next(feed)
        except StopIteration:
            raise EOFError

    orch = FakeOrchestrator()
    ChatConsole(orch, console=Console(file=out, width=100, color_system=None), read_line=read_line).run()
    return orch, out.getvalue()


def test_console_loop_dispatches_commands():
    orch, output = _run(["What is DI?", "/stream Explain SOLID", "/clear", "/help", "/exit", "never read"])
    assert orch.sent == ["What is DI?"]
    assert orch.streamed == ["Explain SOLID"]
    assert orch.cleared == 1
    assert "reply to What is DI?" in output
    assert "SOLID is five principles." in output
    assert "Conversation history cleared" in output
    assert "/stream [question]" in output
    assert "Goodbye" in output


def test_console_reports_errors_and_continues():
    orch, output = _run(["fail", "again"])
    assert orch.sent == ["fail", "again"]
    assert "Error: provider [down]" in output
    assert "reply to again" in output


def test_console_exits_on_eof():
    orch, output = _run([])
    assert orch.sent == []
    assert "Goodbye" in output
