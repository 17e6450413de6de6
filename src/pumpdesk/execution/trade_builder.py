import math
from logging import Logger
from typing import Dict, List, Union
from solders.transaction import VersionedTransaction
from pumpdesk.core.types import (
    AmountSpec, ExactNative, ExactToken, PercentOfHoldings,
    SignedTransaction, TradeAction, TradeIntent
)
from pumpdesk.utils.logger import TradingLogger
from .constants import LAMPORTS_PER_SOL, PUMP_POOL
from .errors import BuildError, BuildErrorKind, ConfigError
from .quote_client import PumpPortalClient
from .signer import WalletSigner

# Floor used by the quote service when no priority fee is given
MIN_PRIORITY_FEE_SOL = 0.00001


def validate_trade(token_id: str,
                   action: TradeAction,
                   amount: AmountSpec,
                   slippage_percent: float,
                   priority_fee_lamports: int = 0) -> None:
    """Check trade parameters locally. Raises ConfigError."""
    if not token_id:
        raise ConfigError("token id required")
    if not isinstance(action, TradeAction):
        raise ConfigError(f"unknown action: {action!r}")

    if not isinstance(slippage_percent, (int, float)) or not math.isfinite(slippage_percent):
        raise ConfigError(f"slippage must be a number, got {slippage_percent!r}")
    if not 0 < slippage_percent <= 100:
        raise ConfigError(f"slippage must be in (0, 100], got {slippage_percent}")

    if priority_fee_lamports is None or priority_fee_lamports < 0:
        raise ConfigError(f"priority fee must be >= 0, got {priority_fee_lamports}")

    if isinstance(amount, PercentOfHoldings):
        if action is not TradeAction.SELL:
            raise ConfigError("percent-of-holdings amounts are only valid for sells")
        if not 0 < amount.pct <= 100:
            raise ConfigError(f"percent must be in (0, 100], got {amount.pct}")
    elif isinstance(amount, (ExactNative, ExactToken)):
        if not math.isfinite(amount.amount) or amount.amount <= 0:
            raise ConfigError(f"amount must be > 0, got {amount.amount}")
    else:
        raise ConfigError(f"unsupported amount spec: {amount!r}")


def build_request_body(intent: TradeIntent) -> Dict:
    """Translate a trade intent into a trade-local request body"""
    amount = intent.amount
    if isinstance(amount, PercentOfHoldings):
        body_amount = f"{amount.pct:g}%"
    else:
        body_amount = amount.amount

    priority_fee_sol = intent.priority_fee_lamports / LAMPORTS_PER_SOL or MIN_PRIORITY_FEE_SOL

    return {
        "publicKey": intent.wallet,
        "action": intent.action.value,
        "mint": intent.token_id,
        "denominatedInSol": "true" if isinstance(amount, ExactNative) else "false",
        "amount": body_amount,
        "slippage": intent.slippage_percent,
        "priorityFee": priority_fee_sol,
        "pool": PUMP_POOL,
    }


class TradeRequestBuilder:
    """Single parameterized builder for every buy / sell / sell-all request"""

    def __init__(self, quote_client: PumpPortalClient, logger: Union[TradingLogger, Logger]):
        self.quote_client = quote_client
        self.logger = logger

    def make_intent(self,
                    signer: WalletSigner,
                    token_id: str,
                    action: TradeAction,
                    amount: AmountSpec,
                    slippage_percent: float,
                    priority_fee_lamports: int = 0) -> TradeIntent:
        validate_trade(token_id, action, amount, slippage_percent, priority_fee_lamports)
        return TradeIntent(
            wallet=signer.public_key,
            action=action,
            token_id=token_id,
            amount=amount,
            slippage_percent=slippage_percent,
            priority_fee_lamports=int(priority_fee_lamports)
        )

    async def build_and_sign(self,
                             signer: WalletSigner,
                             token_id: str,
                             action: TradeAction,
                             amount: AmountSpec,
                             slippage_percent: float,
                             priority_fee_lamports: int = 0) -> SignedTransaction:
        """Build one transaction through the quote service and sign it locally

        Raises:
            ConfigError: parameters rejected before any network call
            BuildError: upstream rejected the request or returned unusable bytes
        """
        intent = self.make_intent(signer, token_id, action, amount, slippage_percent, priority_fee_lamports)
        self.logger.debug(f"Building {intent.action.value} for {intent.wallet} on {intent.token_id}")

        raw = await self.quote_client.request_transaction(build_request_body(intent))
        return self.sign_raw(signer, raw)

    async def build_and_sign_batch(self,
                                   signers: List[WalletSigner],
                                   token_id: str,
                                   action: TradeAction,
                                   amount: AmountSpec,
                                   slippage_percent: float,
                                   priority_fee_lamports: int = 0) -> List[Union[SignedTransaction, BuildError]]:
        """Build every wallet's transaction in one quote call

        Returns one entry per signer, either the signed transaction or the
        BuildError for that wallet. A failed batch call fails every wallet.
        """
        intents = [
            self.make_intent(s, token_id, action, amount, slippage_percent, priority_fee_lamports)
            for s in signers
        ]
        if not intents:
            return []

        try:
            raws = await self.quote_client.request_transactions([build_request_body(i) for i in intents])
        except BuildError as e:
            self.logger.error(f"Batch build failed for {len(signers)} wallets: {e}")
            return [e for _ in signers]

        results: List[Union[SignedTransaction, BuildError]] = []
        for signer, raw in zip(signers, raws):
            try:
                results.append(self.sign_raw(signer, raw))
            except BuildError as e:
                results.append(e)
        return results

    def sign_raw(self, signer: WalletSigner, raw: bytes) -> SignedTransaction:
        """Parse unsigned bytes and sign them with the wallet"""
        try:
            unsigned = VersionedTransaction.from_bytes(raw)
        except Exception as e:
            raise BuildError(BuildErrorKind.MALFORMED_RESPONSE, f"not a transaction: {e}") from e

        try:
            return signer.sign(unsigned)
        except Exception as e:
            raise BuildError(
                BuildErrorKind.MALFORMED_RESPONSE,
                f"transaction not signable by {signer.public_key}: {e}"
            ) from e
