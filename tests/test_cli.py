"""Tests for CLI argument parsing and error reporting."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from cellsync import __version__
from cellsync.cli import _build_parser, main


class TestArgParser:
    def test_version_flag(self) -> None:
        args = _build_parser().parse_args(["--version"])
        assert args.version is True

    def test_extractor_defaults(self) -> None:
        args = _build_parser().parse_args(["extractor"])
        assert args.command == "extractor"
        assert args.host is None
        assert args.port is None
        assert args.verbose is False

    def test_annotate_positionals(self) -> None:
        args = _build_parser().parse_args(
            ["annotate", "mod.py", "Greeter/hello", "--port", "7000"]
        )
        assert args.file == "mod.py"
        assert args.namespace == "Greeter/hello"
        assert args.port == 7000

    def test_notify_defaults(self) -> None:
        args = _build_parser().parse_args(["notify", "x = 1", "ns=f"])
        assert args.content == "x = 1"
        assert args.surface == "ns=f"
        assert args.kind == "code"
        assert args.line == -1

    def test_notify_options(self) -> None:
        args = _build_parser().parse_args(
            ["notify", "f", "ns=f", "--kind", "heading2", "--line", "3"]
        )
        assert args.kind == "heading2"
        assert args.line == 3

    def test_no_command(self) -> None:
        args = _build_parser().parse_args([])
        assert args.command is None


class TestMain:
    def test_version(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr("sys.argv", ["cellsync", "--version"])
        main()
        assert capsys.readouterr().out.strip() == f"cellsync {__version__}"

    def test_missing_source_file(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        missing = tmp_path / "nope.py"
        monkeypatch.setattr("sys.argv", ["cellsync", "regions", str(missing)])
        with pytest.raises(SystemExit) as info:
            main()
        assert info.value.code == 1
        assert "does not exist" in capsys.readouterr().err

    def test_unreachable_session_reports_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(
            "sys.argv",
            ["cellsync", "notify", "x", "ns=f", "--port", "1"],
        )
        with pytest.raises(SystemExit) as info:
            main()
        assert info.value.code == 1
        assert "Error: Lost connection to peer" in capsys.readouterr().err

    def test_hung_extractor_reports_timeout(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        source = tmp_path / "mod.py"
        source.write_text("x = 1\n")
        monkeypatch.setenv("CELLSYNC_RPC_CALL_TIMEOUT_SECONDS", "0.2")
        # Accepts connections at the TCP level but never replies
        with socket.create_server(("127.0.0.1", 0)) as silent:
            port = silent.getsockname()[1]
            monkeypatch.setattr(
                "sys.argv",
                ["cellsync", "regions", str(source), "--port", str(port)],
            )
            with pytest.raises(SystemExit) as info:
                main()
        assert info.value.code == 1
        assert "Error: Peer did not answer in time" in capsys.readouterr().err
