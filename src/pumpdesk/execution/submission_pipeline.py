import asyncio
from logging import Logger
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union
from pumpdesk.core.types import (
    AmountSpec, DeliveryMode, OutcomeStatus, SignedTransaction,
    SubmissionResult, TradeAction, WalletOutcome
)
from pumpdesk.utils.logger import TradingLogger
from .constants import DEFAULT_MAX_RETRIES, RETRY_BACKOFF_SECONDS
from .errors import BuildError, ConfigError
from .trade_builder import TradeRequestBuilder, validate_trade
from .signer import WalletSigner


def _reason(error: BaseException) -> str:
    return str(error) or type(error).__name__


class SubmissionPipeline:
    """Multi-wallet submission.

    Two protocols share one builder, relay and broadcaster:

    * bundle_then_fallback: build every wallet's transaction, submit them as one
      ordered bundle and, if the relay fails, broadcast them one by one.
    * fast_retry: per wallet, build and broadcast with linear backoff retries.

    Wallets are processed one after another; a failing wallet never aborts the
    others. The pipeline holds no state between calls.
    """

    def __init__(self,
                 builder: TradeRequestBuilder,
                 relay,
                 broadcaster,
                 logger: Union[TradingLogger, Logger],
                 backoff_seconds: float = RETRY_BACKOFF_SECONDS,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.builder = builder
        self.relay = relay
        self.broadcaster = broadcaster
        self.logger = logger
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    async def bundle_then_fallback(self,
                                   signers: List[WalletSigner],
                                   token_id: str,
                                   action: TradeAction,
                                   amount: AmountSpec,
                                   slippage_percent: float,
                                   priority_fee_lamports: int = 0,
                                   batch_quote: bool = False) -> SubmissionResult:
        """Deliver one transaction per wallet, atomically when the relay allows it

        Returns a SubmissionResult with one outcome per signer, in signer order.
        Raises ConfigError if the trade parameters are invalid.
        """
        validate_trade(token_id, action, amount, slippage_percent, priority_fee_lamports)

        outcomes: List[Optional[WalletOutcome]] = [None] * len(signers)
        built: Dict[int, SignedTransaction] = {}

        # Build phase, isolated per wallet
        if batch_quote:
            results = await self.builder.build_and_sign_batch(
                signers, token_id, action, amount, slippage_percent, priority_fee_lamports
            )
            for i, item in enumerate(results):
                if isinstance(item, BuildError):
                    outcomes[i] = WalletOutcome(signers[i].public_key, OutcomeStatus.BUILD_ERROR, error=_reason(item))
                else:
                    built[i] = item
        else:
            for i, signer in enumerate(signers):
                try:
                    built[i] = await self.builder.build_and_sign(
                        signer, token_id, action, amount, slippage_percent, priority_fee_lamports
                    )
                except Exception as e:
                    self.logger.error(f"Build failed for {signer.public_key}: {_reason(e)}")
                    outcomes[i] = WalletOutcome(signer.public_key, OutcomeStatus.BUILD_ERROR, error=_reason(e))

        if not built:
            self.logger.error(f"No {action.value} transactions built for {token_id} ({len(signers)} wallets)")
            return SubmissionResult(DeliveryMode.NONE, outcomes)

        order = sorted(built)
        bundle = [built[i] for i in order]

        # Atomic group delivery
        try:
            self.logger.info(f"Submitting bundle of {len(bundle)} {action.value} transactions for {token_id}")
            await self.relay.send_bundle(bundle)
            for i in order:
                outcomes[i] = WalletOutcome(built[i].wallet, OutcomeStatus.BUNDLE_SUBMITTED)
            return SubmissionResult(DeliveryMode.BUNDLE, outcomes)
        except Exception as e:
            self.logger.warning(f"Bundle relay failed, falling back to independent broadcast: {_reason(e)}")

        # Independent delivery
        for i in order:
            tx = built[i]
            try:
                signature = await self.broadcaster.broadcast(tx)
                outcomes[i] = WalletOutcome(tx.wallet, OutcomeStatus.SIGNATURE, signature=signature)
            except Exception as e:
                self.logger.error(f"Fallback broadcast failed for {tx.wallet}: {_reason(e)}")
                outcomes[i] = WalletOutcome(tx.wallet, OutcomeStatus.SUBMIT_ERROR, error=_reason(e))

        result = SubmissionResult(DeliveryMode.FALLBACK, outcomes)
        self.logger.info(f"Fallback delivered {result.success_count}/{len(signers)} transactions for {token_id}")
        return result

    async def fast_retry(self,
                         signers: List[WalletSigner],
                         token_id: str,
                         action: TradeAction,
                         amount: AmountSpec,
                         slippage_percent: float,
                         priority_fee_lamports: int = 0,
                         max_retries: int = DEFAULT_MAX_RETRIES) -> SubmissionResult:
        """Build and broadcast per wallet, retrying each wallet up to max_retries times

        Returns a SubmissionResult with one outcome per signer, in signer order.
        Raises ConfigError if the trade parameters are invalid.
        """
        validate_trade(token_id, action, amount, slippage_percent, priority_fee_lamports)
        return await self.fast_retry_each(
            [(signer, amount) for signer in signers], token_id, action,
            slippage_percent, priority_fee_lamports, max_retries
        )

    async def fast_retry_each(self,
                              orders: List[Tuple[WalletSigner, AmountSpec]],
                              token_id: str,
                              action: TradeAction,
                              slippage_percent: float,
                              priority_fee_lamports: int = 0,
                              max_retries: int = DEFAULT_MAX_RETRIES,
                              delay: Optional[Callable[[], float]] = None) -> SubmissionResult:
        """Fast-retry with its own amount for every wallet

        delay, when given, returns the pause in seconds taken before each wallet.
        Every order is validated before anything is sent.
        """
        for _, amount in orders:
            validate_trade(token_id, action, amount, slippage_percent, priority_fee_lamports)
        if max_retries < 1:
            raise ConfigError(f"max_retries must be >= 1, got {max_retries}")

        self.logger.info(f"Fast {action.value}: {len(orders)} wallets on {token_id}")

        outcomes = []
        for signer, amount in orders:
            if delay is not None:
                await self.sleep(delay())
            outcomes.append(await self._submit_with_retry(
                signer, token_id, action, amount, slippage_percent, priority_fee_lamports, max_retries
            ))

        result = SubmissionResult(DeliveryMode.INDEPENDENT, outcomes)
        if result.all_failed:
            self.logger.error(f"Fast {action.value} failed for every wallet on {token_id}")
        else:
            self.logger.info(f"Fast {action.value} sent {result.success_count}/{len(orders)} on {token_id}")
        return result

    async def _submit_with_retry(self,
                                 signer: WalletSigner,
                                 token_id: str,
                                 action: TradeAction,
                                 amount: AmountSpec,
                                 slippage_percent: float,
                                 priority_fee_lamports: int,
                                 max_retries: int) -> WalletOutcome:
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_retries + 1):
            try:
                tx = await self.builder.build_and_sign(
                    signer, token_id, action, amount, slippage_percent, priority_fee_lamports
                )
                signature = await self.broadcaster.broadcast(tx)
                return WalletOutcome(signer.public_key, OutcomeStatus.SIGNATURE, signature=signature, attempt=attempt)
            except Exception as e:
                last_error = e
                self.logger.error(f"Attempt {attempt}/{max_retries} failed for {signer.public_key}: {_reason(e)}")
                if attempt < max_retries:
                    await self.sleep(self.backoff_seconds * attempt)

        return WalletOutcome(
            signer.public_key,
            OutcomeStatus.FAILED,
            error=_reason(last_error) if last_error else "All retries failed",
            attempt=max_retries
        )
