"""CLI entry: cross-venue arbitrage loop or copy-trade follower.

Usage:
    python -m btc15arb                       # cross-spread, dry run
    python -m btc15arb --strategy arb        # directional arb
    python -m btc15arb --strategy monitor    # 계산/표시만
    python -m btc15arb --strategy follow --user 0x... --copy-percent 10
    python -m btc15arb --live                # 실제 주문
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal, InvalidOperation

from btc15arb.config import STRATEGIES, BotConfig, ConfigError
from btc15arb.discovery.data_client import DataApiClient
from btc15arb.discovery.gamma_client import GammaClient
from btc15arb.discovery.resolver import PolymarketResolver, PredictFunResolver
from btc15arb.execution.engine import ExecutionEngine
from btc15arb.execution.polymarket_client import PolymarketTradingClient
from btc15arb.execution.predictfun_client import PredictFunClient, load_signer
from btc15arb.execution.sizing import floors_from_limits
from btc15arb.models.quote import Venue
from btc15arb.monitoring.dashboard import DashboardRenderer
from btc15arb.monitoring.telegram import TelegramAlerter
from btc15arb.monitoring.trade_journal import TradeJournal
from btc15arb.pipeline import ArbPipeline
from btc15arb.risk.guard import RiskGuard
from btc15arb.strategy.copy_trade import CopyTrader, is_valid_address
from btc15arb.websocket.feed import FixedDelayReconnect
from btc15arb.websocket.polymarket_ws import PolymarketFeed
from btc15arb.websocket.predictfun_ws import PredictFunFeed
from btc15arb.websocket.quote_book import QuoteBook

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid decimal value: {value!r}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """커맨드라인 인자 파싱."""
    parser = argparse.ArgumentParser(
        prog="btc15arb",
        description="BTC 15m Up/Down cross-venue arbitrage (Polymarket x predict.fun)",
    )
    parser.add_argument(
        "--strategy", type=str, default=None,
        choices=[*STRATEGIES.keys(), "follow"],
        help="spread (default), arb, monitor, or follow (copy trade)",
    )
    parser.add_argument(
        "--live", action="store_true", default=False,
        help="Enable live trading (default: dry run)",
    )
    parser.add_argument(
        "--min-profit", type=_decimal_arg, default=None,
        help="Override minimum profit in cents",
    )
    parser.add_argument(
        "--user", type=str, default=None,
        help="Wallet address to follow (follow strategy)",
    )
    parser.add_argument(
        "--copy-percent", type=_decimal_arg, default=None,
        help="Copy size as %% of the followed trade (default: 10)",
    )
    parser.add_argument(
        "--no-dashboard", action="store_true", default=False,
        help="Log to console instead of drawing the status board",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BotConfig:
    config = BotConfig.from_env()
    strategy = args.strategy or config.strategy
    if strategy == "follow":
        config.strategy = "follow"
    else:
        config.apply_strategy(strategy)
    if args.live:
        config.dry_run = False
    if args.min_profit is not None:
        config.min_profit_cents = args.min_profit
    if args.user:
        config.follow_user = args.user
    if args.copy_percent is not None:
        config.copy_percent = args.copy_percent
    if args.no_dashboard or strategy == "follow":
        config.dashboard = False
    return config


def setup_logging(config: BotConfig) -> None:
    """대시보드 모드면 파일로, 아니면 콘솔로."""
    if config.dashboard:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, filename=config.log_file)
    else:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def _build_alerter(config: BotConfig) -> TelegramAlerter:
    return TelegramAlerter(
        bot_token=config.telegram_bot_token or None,
        chat_id=config.telegram_chat_id or None,
    )


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    def _handle_signal():
        print("\n⚡ Shutting down gracefully...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            pass  # Windows


def _build_polymarket_client(config: BotConfig, gamma: GammaClient) -> PolymarketTradingClient:
    if config.dry_run or not config.polymarket_private_key:
        return PolymarketTradingClient(gamma=gamma, timeout=config.request_timeout)
    return PolymarketTradingClient.from_credentials(
        config.polymarket_private_key,
        config.polymarket_funder,
        gamma=gamma,
        timeout=config.request_timeout,
    )


async def _log_balances(clients: dict) -> None:
    """시작 시 실제 잔고 확인 (라이브 모드)."""
    for venue, client in clients.items():
        balance = await client.get_balance()
        if balance is None:
            logger.warning("[%s] Balance unavailable", venue.value)
        else:
            logger.info("[%s] Balance: $%.2f", venue.value, balance)


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


async def arb_loop(config: BotConfig) -> None:
    """크로스 venue 파이프라인 실행."""
    alerter = _build_alerter(config)
    gamma = GammaClient(timeout=config.request_timeout)
    signer = load_signer(config.predictfun_signer) if config.predictfun_signer else None
    pf_client = PredictFunClient(
        api_key=config.predictfun_api_key,
        auth_token=config.predictfun_auth_token,
        signer=signer,
        timeout=config.request_timeout,
    )
    pm_client = _build_polymarket_client(config, gamma)

    try:
        if not config.dry_run:
            if not await pf_client.authenticate():
                raise ConfigError("predict.fun authentication failed")
            await _log_balances({Venue.POLYMARKET: pm_client, Venue.PREDICTFUN: pf_client})

        book = QuoteBook()
        policy = FixedDelayReconnect(config.reconnect_delay)
        feeds = {
            Venue.POLYMARKET: PolymarketFeed(book, policy=policy),
            Venue.PREDICTFUN: PredictFunFeed(book, api_key=config.predictfun_api_key, policy=policy),
        }
        resolvers = {
            Venue.POLYMARKET: PolymarketResolver(gamma),
            Venue.PREDICTFUN: PredictFunResolver(pf_client),
        }
        guard = RiskGuard(
            balances={
                Venue.POLYMARKET: config.pm_balance,
                Venue.PREDICTFUN: config.pf_balance,
            },
            max_trades=config.max_trades,
            cooldown_secs=config.cooldown_secs,
            max_position_per_side=config.max_position_per_side,
            low_balance_threshold=config.low_balance_threshold,
        )
        engine = ExecutionEngine(
            clients={Venue.POLYMARKET: pm_client, Venue.PREDICTFUN: pf_client},
            guard=guard,
            window_provider=lambda venue: resolvers[venue].current,
            floors=floors_from_limits(
                config.pm_min_shares, config.pf_min_shares, config.min_order_value,
            ),
            dry_run=config.dry_run,
            timeout=config.request_timeout,
            alerter=alerter,
            journal=TradeJournal(config.journal_dir),
        )
        dashboard = DashboardRenderer() if config.dashboard else None
        pipeline = ArbPipeline(
            config, book, feeds, resolvers, engine, guard,
            alerter=alerter, dashboard=dashboard,
        )

        if dashboard is not None:
            print(dashboard.render_startup({
                "dry_run": config.dry_run,
                "strategy": config.strategy,
                "min_profit_cents": config.min_profit_cents,
                "max_trades": config.max_trades,
                "pm_balance": config.pm_balance,
                "pf_balance": config.pf_balance,
                "telegram": alerter.enabled,
            }))

        mode = "DRY RUN" if config.dry_run else "LIVE"
        await alerter.alert_error(
            f"btc15arb started ({mode}, {config.strategy})", level="info",
        )

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        await pipeline.run(stop_event)
    finally:
        await gamma.close()
        await pf_client.close()
    print("Goodbye! 🤙")


async def follow_loop(config: BotConfig) -> None:
    """Copy trade 폴링 루프."""
    alerter = _build_alerter(config)
    gamma = GammaClient(timeout=config.request_timeout)
    data_client = DataApiClient(timeout=config.request_timeout)
    trading = _build_polymarket_client(config, gamma)
    trader = CopyTrader(
        data_client,
        trading,
        user=config.follow_user,
        copy_percent=config.copy_percent,
        poll_interval=config.follow_poll_interval,
        dry_run=config.dry_run,
        gamma=gamma,
        alerter=alerter,
        journal=TradeJournal(config.journal_dir, prefix="copy"),
    )

    mode = "DRY RUN" if config.dry_run else "LIVE"
    print(f"Following {config.follow_user} at {config.copy_percent}% ({mode})")
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    try:
        await trader.run(stop_event)
    finally:
        await gamma.close()
        await data_client.close()
    print("Goodbye! 🤙")


def cli_main(argv: list[str] | None = None) -> None:
    """CLI entry point. 치명적 시작 실패 시 exit code 1."""
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config)

    try:
        config.validate_live()
        if config.strategy == "follow":
            if not is_valid_address(config.follow_user):
                raise ConfigError(f"Invalid user address: {config.follow_user!r}")
            asyncio.run(follow_loop(config))
        else:
            asyncio.run(arb_loop(config))
    except ConfigError as exc:
        logger.error("Fatal: %s", exc)
        print(f"❌ {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
