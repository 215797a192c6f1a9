from __future__ import annotations

import json
from typing import Any

import pytest

from conftest import CONTRACT, WALLET
from pipelines import analysis_run
from reflectgains.core.errors import CollaboratorUnavailable, InvalidAddress, NoTransactionsFound
from reflectgains.domain import FixedPoint
from reflectgains.repositories import InMemoryPriceCache


class StubService:
    def __init__(self, report: Any = None, error: Exception | None = None) -> None:
        self.report = report
        self.error = error
        self.calls: list[tuple[tuple, dict]] = []
        self.closed = False

    def analyze(self, *args: Any, **kwargs: Any):
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.report

    def close(self) -> None:
        self.closed = True


def test_dry_run_writes_summary(tmp_path, test_settings, make_report):
    stub = StubService(make_report())
    caches: list[Any] = []

    def factory(cache, settings):
        caches.append(cache)
        return stub

    summary_path = tmp_path / "out" / "summary.json"
    args = analysis_run._parse_args(
        [
            "--contract",
            "pye",
            "--wallet",
            WALLET,
            "--balance",
            "3300",
            "--top-coin",
            "0",
            "--dry-run",
            "--summary-path",
            str(summary_path),
        ]
    )

    payload = analysis_run.run_analysis(args, test_settings, service_factory=factory)

    assert isinstance(caches[0], InMemoryPriceCache)
    assert stub.closed
    call_args, call_kwargs = stub.calls[0]
    assert call_args == ("pye", WALLET)
    assert call_kwargs["balance"] == FixedPoint(3300, 0)
    assert call_kwargs["top_coin_index"] == 0
    assert call_kwargs["balance_source"] == "chain"

    assert payload["contract"] == CONTRACT
    assert payload["cost_basis"]["total_spent_usd"] == "50"
    written = json.loads(summary_path.read_text(encoding="utf-8"))
    assert written == payload


def test_service_is_closed_on_failure(test_settings):
    stub = StubService(error=NoTransactionsFound(WALLET, CONTRACT))
    args = analysis_run._parse_args(["--contract", CONTRACT, "--wallet", WALLET, "--dry-run"])

    with pytest.raises(NoTransactionsFound):
        analysis_run.run_analysis(args, test_settings, service_factory=lambda cache, settings: stub)
    assert stub.closed


@pytest.mark.parametrize(
    "error, code",
    [
        (None, 0),
        (NoTransactionsFound(WALLET, CONTRACT), 1),
        (CollaboratorUnavailable("covalent", "timeout"), 2),
        (InvalidAddress("wallet", "0x1234"), 3),
    ],
)
def test_main_exit_codes(monkeypatch, test_settings, error, code):
    def fake_run(args, settings):
        if error is not None:
            raise error
        return {}

    monkeypatch.setattr(analysis_run, "get_settings", lambda: test_settings)
    monkeypatch.setattr(analysis_run, "run_analysis", fake_run)

    assert analysis_run.main(["--contract", CONTRACT, "--wallet", WALLET]) == code


def test_balance_source_is_validated():
    with pytest.raises(SystemExit):
        analysis_run._parse_args(
            ["--contract", CONTRACT, "--wallet", WALLET, "--balance-source", "abacus"]
        )


def test_oversized_balance_is_rejected():
    with pytest.raises(SystemExit):
        analysis_run._parse_args(["--contract", CONTRACT, "--wallet", WALLET, "--balance", "1e5000"])
