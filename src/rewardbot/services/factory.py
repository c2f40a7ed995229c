from __future__ import annotations

import logging
from dataclasses import dataclass, field

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from rewardbot.adapters.jupiter import JupiterConversionVenue
from rewardbot.adapters.live_venue import LiveVenueAdapter
from rewardbot.adapters.simulation_venue import SimulationVenue
from rewardbot.adapters.solana_chain import (
    SolanaSettlementRouter,
    SolanaSigner,
    SolanaTreasury,
    load_keypair,
    parse_pubkey,
)
from rewardbot.adapters.venue import TradingVenueAdapter
from rewardbot.config import Settings, VenueKind
from rewardbot.domain.errors import ConfigurationError
from rewardbot.services.cycle_orchestrator import CycleOrchestrator
from rewardbot.services.state_store import CycleStateStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    orchestrator: CycleOrchestrator
    resources: list[object] = field(default_factory=list)

    async def aclose(self) -> None:
        for resource in self.resources:
            close = getattr(resource, "close", None)
            if not callable(close):
                continue
            try:
                await close()
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Failed to close resource",
                    extra={"extra": {"resource": type(resource).__name__}},
                    exc_info=True,
                )


def build_trading_venue(settings: Settings) -> TradingVenueAdapter:
    if settings.exchange is VenueKind.PAPER:
        return SimulationVenue()

    api_key = settings.exchange_api_key.get_secret_value() if settings.exchange_api_key else ""
    api_secret = (
        settings.exchange_api_secret.get_secret_value() if settings.exchange_api_secret else ""
    )
    missing = [
        name
        for name, value in (
            ("EXCHANGE_API_BASE", settings.exchange_api_base.strip()),
            ("EXCHANGE_API_KEY", api_key),
            ("EXCHANGE_API_SECRET", api_secret),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"live venue {settings.exchange.value} requires: {', '.join(missing)}"
        )
    return LiveVenueAdapter(
        base_url=settings.exchange_api_base.strip(),
        api_key=api_key,
        api_secret=api_secret,
        candle_interval=settings.candle_interval,
        timeout=settings.http_timeout_seconds,
    )


def build_runtime(settings: Settings) -> Runtime:
    """Validate identity/credential configuration and wire the cycle collaborators."""
    if not settings.rpc_url.strip():
        raise ConfigurationError("RPC_URL is required")
    if settings.wallet_private_key is None:
        raise ConfigurationError("DEV_WALLET_PRIVATE_KEY is required")

    keypair = load_keypair(settings.wallet_private_key.get_secret_value())
    account = str(keypair.pubkey())
    configured_pub = (settings.wallet_public_key or "").strip()
    if configured_pub and configured_pub != account:
        raise ConfigurationError("DEV_WALLET_PUBLIC_KEY does not match DEV_WALLET_PRIVATE_KEY")

    settlement_mint = parse_pubkey(settings.usdc_mint, setting="USDC_MINT")
    if settings.exchange_deposit_address.strip():
        parse_pubkey(settings.exchange_deposit_address, setting="EXCHANGE_DEPOSIT_ADDRESS")

    venue = build_trading_venue(settings)

    rpc = AsyncClient(
        settings.rpc_url.strip(), commitment=Confirmed, timeout=settings.http_timeout_seconds
    )
    signer = SolanaSigner(rpc, keypair, confirm_timeout_seconds=settings.confirm_timeout_seconds)
    treasury = SolanaTreasury(rpc, settlement_mint=settlement_mint)
    conversion = JupiterConversionVenue(
        signer,
        settlement_mint=settings.usdc_mint.strip(),
        settlement_decimals=settings.settlement_decimals,
        slippage_bps=settings.swap_slippage_bps,
        base_url=settings.jupiter_base_url,
        timeout=settings.http_timeout_seconds,
    )
    router = SolanaSettlementRouter(
        signer,
        settlement_mint=settlement_mint,
        settlement_decimals=settings.settlement_decimals,
    )

    orchestrator = CycleOrchestrator(
        config=settings.cycle_config(account),
        treasury=treasury,
        conversion=conversion,
        router=router,
        venue=venue,
        state_store=CycleStateStore(settings.state_file),
    )
    logger.info(
        "runtime_built",
        extra={
            "extra": {
                "account": account,
                "venue": venue.name,
                "routing_enabled": orchestrator.config.routing_enabled,
                "state_file": settings.state_file,
            }
        },
    )
    return Runtime(orchestrator=orchestrator, resources=[treasury, conversion, venue])
