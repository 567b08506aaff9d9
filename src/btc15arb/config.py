"""Bot configuration: trading thresholds, budgets, credentials from env."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal

from btc15arb.models.quote import Venue

# ---------------------------------------------------------------------------
# Strategy presets
# ---------------------------------------------------------------------------

STRATEGIES: dict = {
    "spread": {
        "description": "Cross-spread: Up(X) + Down(Y) < $1.00 - 양쪽 레그 매수",
        "kinds": ("cross_spread",),
        "min_profit_cents": "2",
        "max_trades": 10,
        "cooldown_secs": 5.0,
    },
    "arb": {
        "description": "Directional arb: bid_A(O) > ask_B(O) - 싼 쪽 단일 레그 매수",
        "kinds": ("directional_arb",),
        "min_profit_cents": "1",
        "max_trades": 10,
        "cooldown_secs": 2.0,
    },
    "monitor": {
        "description": "모니터링 전용 - 계산/표시만, 주문 없음",
        "kinds": ("cross_spread", "directional_arb"),
        "min_profit_cents": "1",
        "max_trades": 0,
        "cooldown_secs": 5.0,
    },
}


class ConfigError(Exception):
    """필수 설정 누락: 시작 단계에서만 발생 (fatal)."""


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() not in ("false", "0", "no")


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.environ.get(name, default))


# ---------------------------------------------------------------------------
# BotConfig: 환경변수 기반 설정
# ---------------------------------------------------------------------------


@dataclass
class BotConfig:
    """봇 전체 설정. 환경변수 또는 기본값."""

    dry_run: bool = True
    strategy: str = "spread"

    # 기회 / 실행
    min_profit_cents: Decimal = Decimal("2")
    min_order_value: Decimal = Decimal("1")
    pm_min_shares: int = 5
    pf_min_shares: int = 1
    max_trades: int = 10
    cooldown_secs: float = 5.0

    # 라운드 예산 (USD)
    pm_balance: Decimal = Decimal("53")
    pf_balance: Decimal = Decimal("108")
    max_position_per_side: Decimal = Decimal("500")
    low_balance_threshold: Decimal = Decimal("20")

    # 타이밍
    refresh_interval: float = 15.0
    reconnect_delay: float = 5.0
    request_timeout: float = 10.0

    # 출력
    dashboard: bool = True
    log_file: str = "btc15arb.log"
    journal_dir: str = "data"

    # 자격 증명
    polymarket_private_key: str = field(default="", repr=False)
    polymarket_funder: str = ""
    predictfun_api_key: str = field(default="", repr=False)
    predictfun_auth_token: str = field(default="", repr=False)
    predictfun_signer: str = ""
    telegram_bot_token: str = field(default="", repr=False)
    telegram_chat_id: str = ""

    # Copy trade
    follow_user: str = ""
    copy_percent: Decimal = Decimal("10")
    follow_poll_interval: float = 2.0

    def __post_init__(self):
        # 최소 리프레시 간격 강제 (5초)
        if self.refresh_interval < 5:
            self.refresh_interval = 5.0
        if self.cooldown_secs < 0:
            self.cooldown_secs = 0.0

    @classmethod
    def from_env(cls) -> BotConfig:
        """환경변수에서 설정 로드. 없으면 안전한 기본값 (dry run)."""
        return cls(
            dry_run=_env_bool("BTC15ARB_DRY_RUN", "true"),
            strategy=os.environ.get("BTC15ARB_STRATEGY", "spread"),
            min_profit_cents=_env_decimal("BTC15ARB_MIN_PROFIT_CENTS", "2"),
            min_order_value=_env_decimal("BTC15ARB_MIN_ORDER_VALUE", "1"),
            max_trades=int(os.environ.get("BTC15ARB_MAX_TRADES", "10")),
            cooldown_secs=float(os.environ.get("BTC15ARB_COOLDOWN_SECS", "5")),
            pm_balance=_env_decimal("BTC15ARB_PM_BALANCE", "53"),
            pf_balance=_env_decimal("BTC15ARB_PF_BALANCE", "108"),
            max_position_per_side=_env_decimal("BTC15ARB_MAX_POSITION", "500"),
            low_balance_threshold=_env_decimal("BTC15ARB_LOW_BALANCE", "20"),
            refresh_interval=float(os.environ.get("BTC15ARB_REFRESH_INTERVAL", "15")),
            reconnect_delay=float(os.environ.get("BTC15ARB_RECONNECT_DELAY", "5")),
            request_timeout=float(os.environ.get("BTC15ARB_REQUEST_TIMEOUT", "10")),
            log_file=os.environ.get("BTC15ARB_LOG_FILE", "btc15arb.log"),
            journal_dir=os.environ.get("BTC15ARB_JOURNAL_DIR", "data"),
            polymarket_private_key=os.environ.get("POLYMARKET_PRIVATE_KEY", ""),
            polymarket_funder=os.environ.get("POLYMARKET_FUNDER_ADDRESS", ""),
            predictfun_api_key=os.environ.get("PREDICTFUN_API_KEY", ""),
            predictfun_auth_token=os.environ.get("PREDICTFUN_AUTH_TOKEN", ""),
            predictfun_signer=os.environ.get("PREDICTFUN_SIGNER", ""),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
            telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID", ""),
            follow_user=os.environ.get("BTC15ARB_FOLLOW_USER", ""),
            copy_percent=_env_decimal("BTC15ARB_COPY_PERCENT", "10"),
            follow_poll_interval=float(os.environ.get("BTC15ARB_FOLLOW_POLL", "2")),
        )

    def apply_strategy(self, name: str) -> None:
        """전략 프리셋 적용 (min profit, max trades, cooldown)."""
        preset = STRATEGIES.get(name)
        if preset is None:
            raise ConfigError(f"Unknown strategy: {name}")
        self.strategy = name
        self.min_profit_cents = Decimal(preset["min_profit_cents"])
        self.max_trades = preset["max_trades"]
        self.cooldown_secs = preset["cooldown_secs"]

    @property
    def opportunity_kinds(self) -> tuple[str, ...]:
        return STRATEGIES.get(self.strategy, STRATEGIES["spread"])["kinds"]

    @property
    def trading_enabled(self) -> bool:
        return self.strategy != "monitor"

    def venue_balance(self, venue: Venue) -> Decimal:
        return self.pm_balance if venue is Venue.POLYMARKET else self.pf_balance

    def validate_live(self) -> None:
        """라이브 모드 필수 자격 증명 확인. 누락 시 ConfigError."""
        if self.dry_run:
            return
        missing = []
        if not self.polymarket_private_key:
            missing.append("POLYMARKET_PRIVATE_KEY")
        if not self.polymarket_funder:
            missing.append("POLYMARKET_FUNDER_ADDRESS")
        if self.strategy != "follow":
            if not self.predictfun_api_key:
                missing.append("PREDICTFUN_API_KEY")
            if not self.predictfun_signer:
                missing.append("PREDICTFUN_SIGNER")
        if missing:
            raise ConfigError(
                "Missing required env vars for live trading: " + ", ".join(missing)
            )
