from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ROOT  # noqa: F401

from ndn_certifier import cli
from ndn_certifier.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_parser_accepts_optional_path() -> None:
    parser = cli.build_parser()
    assert parser.parse_args([]).path is None
    assert parser.parse_args(["/var/lib/certifier/logs.json"]).path == Path("/var/lib/certifier/logs.json")


def test_exits_with_one_when_state_directory_cannot_be_created(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    assert cli.main([str(blocker / "logs.json")]) == 1


def test_serves_until_stopped_and_flushes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    state_path = tmp_path / "state" / "logs.json"
    seen = []

    async def fake_run_forever(self, stop):
        seen.append(self.next_index)

    monkeypatch.setattr(cli.CycleOrchestrator, "run_forever", fake_run_forever)
    assert cli.main([str(state_path)]) == 0
    assert seen == [0]
    assert state_path.exists()
