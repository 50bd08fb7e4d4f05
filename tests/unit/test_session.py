from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from fmeca_staging.logging.error_log import ErrorLogBuffer
from fmeca_staging.models.config_models import StagingConfig
from fmeca_staging.models.dataset import Dataset
from fmeca_staging.services.errors import AlreadyStagedError, PersistenceError
from fmeca_staging.services.session import (
    ERROR_REPLY_PREFIX,
    ProposalResult,
    StagingSession,
)


class FakeService:
    """ProposalService stand-in returning a canned result."""

    def __init__(self, result: ProposalResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[Dataset, str]] = []

    async def propose(self, original: Dataset, instruction: str) -> ProposalResult:
        self.calls.append((original, instruction))
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def _session(tmp_path) -> StagingSession:
    original = Dataset.from_rows([
        {"Asset Type": "Pump", "Component": "Impeller", "FLOC": "P1", "Severity": "3"},
        {"Asset Type": "Pump", "Component": "Seal", "FLOC": "P1", "Severity": "2"},
    ])
    return StagingSession(original, error_log=ErrorLogBuffer(tmp_path / "logs"))


def _candidate(session: StagingSession, **changes: Any) -> list[dict[str, Any]]:
    rows = [dict(r) for r in session.original.rows]
    rows[0].update(changes)
    return rows


def test_edit_mode_stages_candidate_and_summarizes(tmp_path):
    s = _session(tmp_path)
    service = FakeService(ProposalResult("Raised severity.", _candidate(s, Severity="5")))

    reply = asyncio.run(s.ask(service, "raise impeller severity"))

    assert reply.error is False
    assert reply.text == "Raised severity."
    assert reply.summary == "0 added, 1 modified, 0 deleted"
    assert s.has_staged_changes is True
    assert s.original.rows[0]["Severity"] == "3"
    assert s.preview().rows[0]["Severity"] == "5"
    # the service works on a copy of the original
    assert service.calls[0][0] is not s.original


def test_ask_mode_never_stages(tmp_path):
    s = _session(tmp_path)
    service = FakeService(ProposalResult("There are 2 rows.", _candidate(s, Severity="5")))
    reply = asyncio.run(s.ask(service, "how many rows?", mode="ask"))
    assert reply.text == "There are 2 rows."
    assert reply.changeset is None
    assert s.has_staged_changes is False


def test_answer_without_candidate_does_not_stage(tmp_path):
    s = _session(tmp_path)
    reply = asyncio.run(s.ask(FakeService(ProposalResult("No change needed.")), "check"))
    assert reply.changeset is None
    assert s.has_staged_changes is False


def test_new_instruction_refused_while_staged(tmp_path):
    s = _session(tmp_path)
    service = FakeService(ProposalResult("ok", _candidate(s, Severity="5")))
    asyncio.run(s.ask(service, "first"))
    with pytest.raises(AlreadyStagedError):
        asyncio.run(s.ask(service, "second"))
    assert len(service.calls) == 1


def test_invalid_mode_and_empty_instruction(tmp_path):
    s = _session(tmp_path)
    service = FakeService(ProposalResult("ok"))
    with pytest.raises(ValueError):
        asyncio.run(s.ask(service, "x", mode="chat"))
    with pytest.raises(ValueError):
        asyncio.run(s.ask(service, "   "))


def test_service_failure_becomes_error_reply(tmp_path):
    s = _session(tmp_path)
    reply = asyncio.run(s.ask(FakeService(error=RuntimeError("rate limited")), "do it"))
    assert reply.error is True
    assert reply.text == ERROR_REPLY_PREFIX + "rate limited"
    assert s.has_staged_changes is False
    assert [r.error_type for r in s.error_log.records] == ["PROPOSAL_FAILED"]


def test_malformed_candidate_is_discarded(tmp_path):
    s = _session(tmp_path)
    reply = asyncio.run(s.ask(FakeService(ProposalResult("here", {"rows": []})), "do it"))
    assert reply.error is True
    assert reply.text.startswith(ERROR_REPLY_PREFIX)
    assert s.has_staged_changes is False
    assert s.error_log.records[0].error_type == "MALFORMED_CANDIDATE"


def test_edit_handlers_route_through_store(tmp_path):
    s = _session(tmp_path)
    assert s.edit_cell(0, "Severity", "4") is True
    assert s.original.rows[0]["Severity"] == "4"
    assert s.delete_row(1) is True
    assert len(s.original.rows) == 1


def test_dropped_edit_is_logged_and_reported(tmp_path):
    s = _session(tmp_path)
    assert s.edit_cell(9, "Severity", "4") is False
    assert s.delete_row(9) is False
    recs = s.error_log.records
    assert [(r.operation, r.row, r.error_type) for r in recs] == [
        ("edit", 9, "ROW_NOT_FOUND"),
        ("delete", 9, "ROW_NOT_FOUND"),
    ]


def test_accept_persists_and_commits(tmp_path):
    s = _session(tmp_path)
    s.apply_proposal(ProposalResult("ok", _candidate(s, Severity="5")))
    saved: list[Dataset] = []
    committed = asyncio.run(s.accept(saved.append))
    assert committed is not None
    assert s.original.rows[0]["Severity"] == "5"
    assert s.has_staged_changes is False


def test_failed_accept_is_recorded_and_reraised(tmp_path):
    s = _session(tmp_path)
    s.apply_proposal(ProposalResult("ok", _candidate(s, Severity="5")))

    def failing(_ds: Dataset) -> None:
        raise OSError("disk full")

    with pytest.raises(PersistenceError):
        asyncio.run(s.accept(failing))
    assert s.has_staged_changes is True
    assert s.error_log.records[-1].error_type == "PERSISTENCE_FAILED"

    path = s.error_log.flush()
    line = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
    assert line["operation"] == "accept"
    assert line["row"] == -1


def test_revert_then_new_instruction_allowed(tmp_path):
    s = _session(tmp_path)
    service = FakeService(ProposalResult("ok", _candidate(s, Severity="5")))
    asyncio.run(s.ask(service, "first"))
    s.revert()
    assert s.preview() == s.original
    reply = asyncio.run(s.ask(service, "second"))
    assert reply.changeset is not None


def test_load_refused_while_staged(tmp_path):
    s = _session(tmp_path)
    s.apply_proposal(ProposalResult("ok", _candidate(s, Severity="5")))
    with pytest.raises(AlreadyStagedError):
        s.load(Dataset())


def test_from_config_uses_key_fields_and_policy(tmp_path):
    cfg = StagingConfig(key_fields=["FLOC"], new_column_policy="reject", error_log_directory=tmp_path)
    s = StagingSession.from_config(Dataset.from_rows([{"FLOC": "A", "Severity": "1"}]), cfg)
    assert s.store.identity.key_of({"FLOC": "A", "Component": "x"}) == ("A",)
    assert s.store.new_column_policy == "reject"
    assert s.error_log.directory == tmp_path
    reply = s.apply_proposal(ProposalResult("ok", [{"FLOC": "A", "Severity": "1", "Owner": "x"}]))
    assert reply.error is True
