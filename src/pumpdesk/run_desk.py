import argparse
import asyncio
import json
import signal
from pumpdesk.core.trading_desk import TradingDesk
from pumpdesk.execution.errors import PumpDeskError
from pumpdesk.utils.config import Config
from pumpdesk.utils.logger import TradingLogger


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Open a multi-wallet position and manage its exits")
    parser.add_argument("mint", help="token mint address")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--amount", type=float, default=None, help="SOL per wallet")
    parser.add_argument("--preset", choices=["conservative", "balanced", "aggressive"])
    parser.add_argument("--auto", action="store_true", help="pick the preset from the token's market cap")
    parser.add_argument("--smart", action="store_true", help="random per-wallet amounts and delays from the smart_buy settings")
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


async def run_desk(args, logger: TradingLogger):
    config = Config(args.config)
    if args.dry_run:
        config.execution.dry_run = True
    if args.preset:
        config.apply_preset(args.preset)
    desk = TradingDesk.from_env(config, logger=logger)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        position = await desk.open_position(
            args.mint,
            amount_sol=args.amount,
            auto_configure=args.auto,
            smart_buy=config.smart_buy if args.smart else None
        )
        desk.start_monitoring()
        logger.info(f"Monitoring {position.id}, Ctrl+C to stop")

        # Keep running until the position closes or a shutdown signal arrives
        while position.is_open and not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.info(f"{position.id} pnl={position.pnl_percent:.2f}% ({position.pnl_sol:+.4f} SOL)")
    finally:
        await desk.close()
        print(json.dumps(desk.status(), indent=2, default=str))
        if desk.journal is not None:
            print(json.dumps(desk.journal.summary(), indent=2, default=str))


def main(argv=None):
    args = parse_args(argv)
    logger = TradingLogger("trading_desk", console_output=True)
    try:
        asyncio.run(run_desk(args, logger))
    except PumpDeskError as e:
        logger.error(f"Fatal error: {e}")
        raise SystemExit(1)
    finally:
        logger.info("Trading desk shutdown complete")


if __name__ == "__main__":
    main()
