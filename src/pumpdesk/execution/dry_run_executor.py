from dataclasses import dataclass
from datetime import datetime
from logging import Logger
from typing import List, Union
from pumpdesk.core.types import SignedTransaction
from pumpdesk.utils.logger import TradingLogger
from .errors import SubmitError


@dataclass
class SimulatedDelivery:
    timestamp: datetime
    channel: str  # 'bundle' or 'broadcast'
    wallet: str
    signature: str


class DryRunExecutor:
    """Stands in for the bundle relay and the broadcaster without touching the network.

    Transactions are still built and signed for real; delivery is simulated and
    reports each transaction's local signature.
    """

    def __init__(self, logger: Union[TradingLogger, Logger], accept_bundles: bool = True, balance_sol: float = 1.0):
        self.logger = logger
        self.accept_bundles = accept_bundles
        self.balance_sol = balance_sol  # reported for every wallet
        self.deliveries: List[SimulatedDelivery] = []

    async def send_bundle(self, txs: List[SignedTransaction]) -> str:
        if not self.accept_bundles:
            raise SubmitError("dry run: bundle relay disabled")
        now = datetime.now()
        for tx in txs:
            self.deliveries.append(SimulatedDelivery(now, "bundle", tx.wallet, tx.signature))
        self.logger.info(f"DRY RUN bundle of {len(txs)} transactions")
        return "dry-run"

    async def broadcast(self, tx: SignedTransaction) -> str:
        self.deliveries.append(SimulatedDelivery(datetime.now(), "broadcast", tx.wallet, tx.signature))
        self.logger.info(f"DRY RUN broadcast for {tx.wallet}: {tx.signature}")
        return tx.signature

    async def get_balance(self, wallet: str) -> float:
        return self.balance_sol

    async def close(self):
        pass
