from unittest.mock import MagicMock

import httpx
import pytest

from conftest import CONTRACT, PAIR, WALLET, tokens, transaction_payload, usd
from reflectgains.core.errors import CollaboratorUnavailable, InvalidAddress, NoTransactionsFound
from reflectgains.domain import FixedPoint
from reflectgains.services.analysis_service import AnalysisService, Collaborators

QUOTES = {"0x1": 10, "0x2": 40}


def _transfer(tx_hash: str, amount: int) -> dict:
    return {
        "hash": tx_hash,
        "blockNumber": "7000000",
        "timeStamp": "1620000000",
        "from": PAIR,
        "to": WALLET,
        "value": str(amount * 10**18),
        "tokenSymbol": "PYE",
        "tokenDecimal": "18",
    }


@pytest.fixture
def collaborators():
    transfers = MagicMock()
    transfers.name = "bscscan"
    transfers.get_token_transfers.return_value = [_transfer("0x1", 1000), _transfer("0x2", 2000)]

    details = MagicMock()
    details.get_transaction.side_effect = lambda tx_hash: transaction_payload(
        value_quote=QUOTES[tx_hash]
    )

    prices = MagicMock()
    prices.get_current_rate.return_value = 0.03
    prices.list_top_coins.return_value = [
        {"name": "Bitcoin", "code": "BTC", "cap": 600_000_000_000},
        {"name": "Ethereum", "code": "ETH", "cap": 300_000_000_000},
    ]

    token_info = MagicMock()
    token_info.get_token.return_value = {"name": "Pye", "symbol": "PYE", "price": "0.01"}

    chain = MagicMock()
    chain.decimals.return_value = 18
    chain.circulating_supply.return_value = 1_000_000 * 10**18
    chain.balance_of.return_value = 3300 * 10**18

    return {
        "transfers": transfers,
        "details": details,
        "prices": prices,
        "tokens": token_info,
        "chain": chain,
    }


@pytest.fixture
def service(test_settings, price_cache, collaborators):
    return AnalysisService(price_cache, settings=test_settings, **collaborators)


def test_analyze_end_to_end(service, collaborators, price_cache):
    report = service.analyze("PYE", WALLET.upper().replace("0X", "0x"))

    assert report.contract == CONTRACT
    assert report.wallet == WALLET
    collaborators["tokens"].get_token.assert_called_once_with(CONTRACT)
    collaborators["transfers"].get_token_transfers.assert_called_once_with(WALLET, CONTRACT)

    assert report.snapshot.current_price_usd == usd("0.03")
    assert report.cost_basis.net_balance == tokens(3000)
    assert report.cost_basis.total_spent_usd == usd("50")
    assert report.balance == tokens(3300)
    assert report.balance_usd == usd("99")
    assert report.gains == tokens(300)
    assert report.gains_usd == usd("9")
    assert report.market_cap_usd == usd("30000")
    assert report.ownership_per_ten_thousand == FixedPoint(33, 0)
    assert report.earnings_percent == FixedPoint(9800, 2)
    assert report.comparison.rank == 2
    assert report.comparison.coin.code == "ETH"
    assert report.comparison.potential_usd == usd("990000000")
    assert report.display_suffix == "K"
    assert report.unpriced_transactions == []
    assert [tx.usd_value for tx in report.transactions] == [usd("10"), usd("40")]
    assert price_cache.get("txn-0x2") == "40"


def test_balance_override_skips_chain_read(service, collaborators):
    report = service.analyze(CONTRACT, WALLET, balance=FixedPoint.from_string("1500"))

    collaborators["chain"].balance_of.assert_not_called()
    assert report.balance == tokens(1500)
    assert report.balance.scale == 18
    assert report.gains == tokens(-1500)


def test_balance_from_covalent_is_rescaled(service, collaborators):
    collaborators["details"].get_token_balance.return_value = (3300 * 10**9, 9)

    report = service.analyze(CONTRACT, WALLET, balance_source="covalent")

    assert report.balance == tokens(3300)
    assert report.balance.scale == 18


def test_top_coin_index_is_clamped(service):
    report = service.analyze(CONTRACT, WALLET, top_coin_index=99)
    assert report.comparison.rank == 2

    report = service.analyze(CONTRACT, WALLET, top_coin_index=0)
    assert report.comparison.coin.code == "BTC"
    assert report.comparison.potential_usd == usd("1980000000")


def test_no_top_coins_means_no_comparison(service, collaborators):
    collaborators["prices"].list_top_coins.return_value = []

    assert service.analyze(CONTRACT, WALLET).comparison is None


def test_unpriced_transaction_counts_as_zero(service, collaborators):
    def detail(tx_hash):
        if tx_hash == "0x1":
            raise httpx.ReadTimeout("slow")
        return transaction_payload(value_quote=40)

    collaborators["details"].get_transaction.side_effect = detail

    report = service.analyze(CONTRACT, WALLET)

    assert report.unpriced_transactions == ["0x1"]
    assert report.cost_basis.total_spent_usd == usd("40")
    assert report.transactions[0].usd_value.is_zero()


def test_no_transactions(service, collaborators):
    collaborators["transfers"].get_token_transfers.return_value = []

    with pytest.raises(NoTransactionsFound) as excinfo:
        service.analyze(CONTRACT, WALLET)
    assert excinfo.value.contract == CONTRACT
    assert str(excinfo.value) == "No transactions found"


def test_transfer_source_failure_is_unavailable(service, collaborators):
    collaborators["transfers"].get_token_transfers.side_effect = httpx.ConnectError("down")

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        service.analyze(CONTRACT, WALLET)
    assert excinfo.value.collaborator == "bscscan"


def test_token_info_failure_is_unavailable(service, collaborators):
    collaborators["tokens"].get_token.side_effect = httpx.ConnectError("down")

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        service.token_snapshot(CONTRACT)
    assert excinfo.value.collaborator == "token-info"


def test_live_quote_failure_falls_back_to_dex_price(service, collaborators):
    collaborators["prices"].get_current_rate.side_effect = httpx.ConnectError("down")

    snapshot = service.token_snapshot(CONTRACT)

    assert snapshot.current_price_usd == usd("0.01")


def test_balance_failure_is_unavailable(service, collaborators):
    collaborators["chain"].balance_of.side_effect = OSError("rpc unreachable")

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        service.analyze(CONTRACT, WALLET)
    assert excinfo.value.collaborator == "balance"


def test_top_coins_failure_is_unavailable(service, collaborators):
    collaborators["prices"].list_top_coins.side_effect = httpx.HTTPStatusError(
        "boom", request=httpx.Request("POST", "https://lcw.test"), response=httpx.Response(500)
    )

    with pytest.raises(CollaboratorUnavailable):
        service.top_coins()


def test_close_leaves_injected_clients_open(service, collaborators):
    service.close()
    collaborators["transfers"].close.assert_not_called()
    collaborators["prices"].close.assert_not_called()


def test_close_closes_clients_the_service_created(test_settings, price_cache, collaborators):
    service = AnalysisService(price_cache, settings=test_settings, chain=collaborators["chain"])
    service.close()

    assert service.transfers.client.is_closed
    assert service.details.client.is_closed
    assert service.prices.client.is_closed
    assert service.tokens.client.is_closed


def test_shared_collaborators_are_used(test_settings, price_cache, collaborators):
    shared = Collaborators(**collaborators)
    service = AnalysisService(price_cache, settings=test_settings, collaborators=shared)

    assert service.prices is collaborators["prices"]
    assert service.chain is collaborators["chain"]
    service.analyze(CONTRACT, WALLET)
    service.close()
    collaborators["prices"].close.assert_not_called()


@pytest.mark.parametrize(
    "contract, wallet, field",
    [
        (CONTRACT, "not-a-wallet", "wallet"),
        (CONTRACT, "0x1234", "wallet"),
        ("unknown-token", WALLET, "contract"),
    ],
)
def test_invalid_addresses_are_rejected_before_any_lookup(service, collaborators, contract, wallet, field):
    with pytest.raises(InvalidAddress) as excinfo:
        service.analyze(contract, wallet)

    assert excinfo.value.field == field
    collaborators["tokens"].get_token.assert_not_called()
    collaborators["transfers"].get_token_transfers.assert_not_called()


def test_invalid_contract_for_token_snapshot(service, collaborators):
    with pytest.raises(InvalidAddress):
        service.token_snapshot("0xnothex")
    collaborators["tokens"].get_token.assert_not_called()
