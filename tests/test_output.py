"""Tests for roundtable/output.py."""

from datetime import datetime, timezone
from io import StringIO
from pathlib import Path

import pytest
from rich.console import Console

from roundtable.events import DebateFailed, ModelChunk, ModelStarted
from roundtable.models import Consensus, DebateStatus, DebateStyle, Session
from roundtable.output import EventPrinter, _slug, save_to_file

from tests.conftest import make_message


def test_slug_basic():
    assert _slug("Should we use YAML or JSON?") == "should-we-use-yaml-or-json"


def test_slug_max_len():
    long_text = "a" * 100
    assert len(_slug(long_text)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result
    assert ")" not in result


@pytest.fixture
def sample_session(participants) -> Session:
    session = Session(
        id="debate_abc123",
        question="Should we use YAML or JSON for config?",
        style=DebateStyle.COOPERATIVE,
        participants=participants,
        max_rounds=3,
        created_at=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        status=DebateStatus.COMPLETE,
        template_id="template_code_review",
    )
    session.messages = [
        make_message("claude", "YAML reads better.", 0),
        make_message("openai", "I agree, YAML it is.", 1, is_agreement=True),
    ]
    session.consensus = Consensus(
        summary="Use YAML.",
        agreed_points=("YAML is readable",),
        disagreements=("Comment support matters less than claimed",),
        confidence="high",
        synthesizer="claude",
    )
    return session


def test_save_to_file_creates_file(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, tmp_path / "output")
    assert saved.exists()
    assert saved.suffix == ".md"


def test_save_to_file_creates_output_dir(tmp_path: Path, sample_session: Session):
    output_dir = tmp_path / "nested" / "output"
    assert not output_dir.exists()
    save_to_file(sample_session, output_dir)
    assert output_dir.exists()


def test_save_to_file_content(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, tmp_path)
    content = saved.read_text(encoding="utf-8")
    assert content.startswith("# Roundtable Debate: Should we use YAML")
    assert "## Round 1" in content
    assert "### openai (strategic-architect) - agrees" in content
    assert "## Consensus (by claude, confidence high)" in content
    assert "### Agreed Points\n\n- YAML is readable" in content
    assert "### Unresolved Disagreements" in content


def test_save_to_file_headers(tmp_path: Path, sample_session: Session):
    content = save_to_file(sample_session, tmp_path).read_text(encoding="utf-8")
    assert "**Status:** complete" in content
    assert "**Rounds:** 1 of 3" in content
    assert "**Template:** template_code_review" in content


def test_save_to_file_without_consensus(tmp_path: Path, sample_session: Session):
    sample_session.consensus = None
    sample_session.status = DebateStatus.ERROR
    sample_session.error = "claude failed on turn 2"
    content = save_to_file(sample_session, tmp_path).read_text(encoding="utf-8")
    assert "## Consensus" not in content
    assert "**Error:** claude failed on turn 2" in content


def test_save_to_file_filename_has_slug(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, tmp_path)
    assert "yaml" in saved.name


def test_save_to_file_slug_override(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, tmp_path, slug_override="inbox-item")
    assert saved.name.endswith("_inbox-item.md")


def _printer() -> tuple[EventPrinter, StringIO]:
    buffer = StringIO()
    return EventPrinter(Console(file=buffer, width=100, color_system=None)), buffer


def test_printer_streams_chunks():
    printer, buffer = _printer()
    printer(ModelStarted("s", "claude", "claude", "Claude Opus", 0, 1))
    printer(ModelChunk("s", "claude", "claude", 0, "Use "))
    printer(ModelChunk("s", "claude", "claude", 0, "[bold]REST[/bold]"))
    output = buffer.getvalue()
    assert "Claude Opus" in output
    assert "Use" in output
    assert "[bold]REST[/bold]" in output


def test_printer_flags_retries():
    printer, buffer = _printer()
    printer(ModelStarted("s", "claude", "claude", "Claude Opus", 0, 1))
    printer(ModelStarted("s", "claude", "claude", "Claude Opus", 0, 1))
    assert "Retrying turn" in buffer.getvalue()


def test_printer_shows_errors():
    printer, buffer = _printer()
    printer(DebateFailed("s", "COMPLETION_FAILURE", "claude failed"))
    assert "COMPLETION_FAILURE" in buffer.getvalue()
