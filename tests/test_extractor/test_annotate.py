"""Tests for namespace instrumentation.

Besides checking the generated text, most tests execute it with
``ArtifactNotifier.from_env`` patched to return a recorder, so they see
exactly the notifications a runtime would send.
"""

from __future__ import annotations

from typing import Any

import pytest

from cellsync.extractor.annotate import SourceSyntaxError, annotate
from cellsync.resilience.errors import ConfigurationError
from cellsync.runtime.notifier import ArtifactNotifier


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []
        self.surface_id: str | None = None
        self.generation: int | None = None
        self.address: tuple[str, int] | None = None

    def emit(self, content: str, kind: str = "code", line: int = -1) -> None:
        self.calls.append((content, kind, line))


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> _Recorder:
    rec = _Recorder()

    def _from_env(
        cls: type[ArtifactNotifier],
        surface_id: str,
        generation: int | None = None,
        address: tuple[str, int] | None = None,
    ) -> _Recorder:
        rec.surface_id = surface_id
        rec.generation = generation
        rec.address = address
        return rec

    monkeypatch.setattr(ArtifactNotifier, "from_env", classmethod(_from_env))
    return rec


def _run(
    source: str,
    namespace: str,
    generation: int | None = None,
    address: tuple[str, int] | None = None,
) -> dict[str, Any]:
    scope: dict[str, Any] = {"__name__": "__annotated__"}
    if generation is not None:
        scope["__cellsync_generation__"] = generation
    if address is not None:
        scope["__cellsync_notify__"] = address
    exec(annotate(source, namespace), scope)
    return scope


# ── generated text ───────────────────────────────────────


class TestText:
    def test_function_namespace(self) -> None:
        text = annotate("def f():\n  x=1\n", "f")

        assert "_CsNotifier.from_env('ns=f'" in text
        assert "_cs_emit('f', 'heading2', -1)" in text
        assert "def _cs_namespace():" in text
        assert "    _cs_emit('x=1', 'code', 2)\n    x=1\n" in text
        assert text.endswith("_cs_namespace()\n")
        compile(text, "<annotated>", "exec")

    def test_module_namespace_heading(self) -> None:
        text = annotate("x = 1\n", "*mod*")
        assert "_cs_emit('mod', 'heading1', -1)" in text
        assert "_CsNotifier.from_env('ns=*mod*'" in text
        assert "_cs_namespace" not in text

    def test_generation_read_from_globals(self) -> None:
        text = annotate("x = 1\n", "*mod*")
        assert "globals().get('__cellsync_generation__')" in text

    def test_docstring_only_body_compiles(self) -> None:
        text = annotate('def e():\n    """Only doc."""\n', "e")
        assert "_cs_emit('Only doc.', 'markdown', 2)" in text
        compile(text, "<annotated>", "exec")


class TestErrors:
    def test_unknown_namespace(self) -> None:
        with pytest.raises(ConfigurationError, match="unknown namespace"):
            annotate("x = 1\n", "missing")

    def test_reserved_name(self) -> None:
        with pytest.raises(ConfigurationError):
            annotate("x = 1\n", "a.b")

    def test_syntax_error(self) -> None:
        with pytest.raises(SourceSyntaxError):
            annotate("def (:\n", "*mod*")


# ── executed ─────────────────────────────────────────────


class TestExecuted:
    def test_surface_and_generation(self, recorder: _Recorder) -> None:
        _run("x = 1\n", "*mod*", generation=4)
        assert recorder.surface_id == "ns=*mod*"
        assert recorder.generation == 4

    def test_generation_absent(self, recorder: _Recorder) -> None:
        _run("x = 1\n", "*mod*")
        assert recorder.generation is None
        assert recorder.address is None

    def test_session_address_from_preamble(self, recorder: _Recorder) -> None:
        _run("x = 1\n", "*mod*", generation=2, address=("127.0.0.1", 7001))
        assert recorder.address == ("127.0.0.1", 7001)

    def test_only_taken_branch_notifies(self, recorder: _Recorder) -> None:
        source = (
            "x = 3\n"
            "if x > 5:\n"
            '    y = "big"\n'
            "else:\n"
            '    y = "small"\n'
        )
        scope = _run(source, "*mod*")

        assert scope["y"] == "small"
        assert recorder.calls == [
            ("mod", "heading1", -1),
            ("x = 3", "code", 1),
            ('y = "small"', "code", 5),
        ]

    def test_comment_becomes_markdown(self, recorder: _Recorder) -> None:
        _run("# Setup\nx = 1\n", "*mod*")
        assert recorder.calls[1:] == [
            ("Setup", "markdown", -1),
            ("x = 1", "code", 2),
        ]

    def test_loop_body_notifies_each_iteration(
        self, recorder: _Recorder
    ) -> None:
        source = (
            "def countdown(n=3):\n"
            "    out = []\n"
            "    while n > 0:\n"
            "        out.append(n)\n"
            "        n -= 1\n"
            "    return out\n"
        )
        _run(source, "countdown")

        lines = [line for _, _, line in recorder.calls]
        assert recorder.calls[0] == ("countdown", "heading2", -1)
        assert recorder.calls[1] == ("n = 3", "code", 1)
        assert lines.count(4) == 3
        assert lines.count(5) == 3
        assert recorder.calls[-1] == ("return out", "code", 6)

    def test_for_target_reported_on_for_line(
        self, recorder: _Recorder
    ) -> None:
        source = 'for k, v in {"a": 1, "b": 2}.items():\n    pass\n'
        _run(source, "*mod*")
        assert recorder.calls[1:] == [
            ("k, v = ('a', 1)", "code", 1),
            ("pass", "code", 2),
            ("k, v = ('b', 2)", "code", 1),
            ("pass", "code", 2),
        ]

    def test_multiline_statement_dedented(self, recorder: _Recorder) -> None:
        source = (
            "def build():\n"
            "    data = {\n"
            '        "a": 1,\n'
            "    }\n"
            "    return data\n"
        )
        _run(source, "build")
        assert recorder.calls[1] == ('data = {\n    "a": 1,\n}', "code", 2)

    def test_exception_handler_branch(self, recorder: _Recorder) -> None:
        source = (
            "try:\n"
            '    raise ValueError("x")\n'
            "except ValueError:\n"
            "    caught = True\n"
        )
        scope = _run(source, "*mod*")
        assert scope["caught"] is True
        assert recorder.calls[1:] == [
            ('raise ValueError("x")', "code", 2),
            ("caught = True", "code", 4),
        ]

    def test_class_body_runs_at_top_level(self, recorder: _Recorder) -> None:
        source = (
            "class Config:\n"
            '    """Settings holder."""\n'
            "    debug = False\n"
            "    level = 2 if debug else 1\n"
        )
        scope = _run(source, "Config")
        assert scope["level"] == 1
        assert recorder.calls == [
            ("Config", "heading2", -1),
            ("Settings holder.", "markdown", 2),
            ("debug = False", "code", 3),
            ("level = 2 if debug else 1", "code", 4),
        ]

    def test_nested_method_namespace(self, recorder: _Recorder) -> None:
        source = (
            "class Greeter:\n"
            "    def hello(self, name='world'):\n"
            "        message = 'hello ' + name\n"
            "        return message\n"
        )
        _run(source, "Greeter/hello")
        assert recorder.surface_id == "ns=Greeter/hello"
        assert recorder.calls[1:] == [
            ("name = 'world'", "code", 2),
            ("message = 'hello ' + name", "code", 3),
            ("return message", "code", 4),
        ]
