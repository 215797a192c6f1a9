"""On-chain ERC-20 reads through web3."""

from __future__ import annotations

from loguru import logger
from web3 import Web3

from reflectgains.core.config import settings

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
]


class ChainReader:
    """Read balances, decimals and supply from token contracts."""

    def __init__(self, rpc_url: str | None = None, *, dead_address: str | None = None, w3: Web3 | None = None) -> None:
        self.rpc_url = rpc_url or str(settings.rpc_url)
        self.dead_address = dead_address or settings.dead_address
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": settings.http_timeout_seconds}))

    def _contract(self, contract: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract), abi=ERC20_ABI)

    def balance_of(self, contract: str, wallet: str) -> int:
        return int(self._contract(contract).functions.balanceOf(Web3.to_checksum_address(wallet)).call())

    def decimals(self, contract: str) -> int:
        return int(self._contract(contract).functions.decimals().call())

    def circulating_supply(self, contract: str) -> int:
        """Total supply minus whatever has been sent to the burn address."""

        token = self._contract(contract)
        total = int(token.functions.totalSupply().call())
        burned = int(token.functions.balanceOf(Web3.to_checksum_address(self.dead_address)).call())
        logger.debug("Supply of {}: total={} burned={}", contract, total, burned)
        return total - burned
