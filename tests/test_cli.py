"""Tests for the command-line entry point."""

import io
import sys
from contextlib import redirect_stdout
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rackpower_ups.__main__ import main


def _run(*argv: str) -> str:
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        assert main(list(argv)) == 0
    return buffer.getvalue().strip()


def test_lookup_by_address() -> None:
    assert _run("lookup", "20025") == "20025 AC output voltage ph_A"
    assert _run("lookup", "0x4E74") == "20084 UPS series"


def test_lookup_by_name() -> None:
    assert _run("lookup", "ac output voltag ph_A") == "20025 AC output voltage ph_A"
