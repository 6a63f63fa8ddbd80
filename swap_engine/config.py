from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="SWAP_", extra="allow")

    # Solana
    sol_rpc_url: str = "https://api.mainnet-beta.solana.com"
    sol_executor_private_key: str | None = None  # base58 secret key
    rpc_timeout_sec: float = 30.0
    send_max_retries: int = 3

    # Jupiter
    jupiter_quote_url: str = "https://quote-api.jup.ag/v6/quote"
    jupiter_swap_instructions_url: str = "https://quote-api.jup.ag/v6/swap-instructions"
    priority_fee_lamports: int = 500_000  # 0.0005 SOL
    http_timeout_sec: float = 15.0

    # Jito block engine
    jito_enabled: bool = False
    jito_block_engine_url: str = "https://tokyo.mainnet.block-engine.jito.wtf"
    jito_simulate_bundles: bool = False
    tip_amount_sol: float = 0.0005
    bundle_poll_interval_sec: float = 0.5
    bundle_poll_timeout_sec: float = 50.0

    # Protocol fee
    fee_address: str | None = None
    fee_percentage: float = 0.01

    # Concurrency
    serialize_swaps: bool = True  # one in-flight swap per signing identity

    # Webhook intake
    webhook_secret: str | None = None
    webhook_api_key: str | None = None
    dexscreener_search_url: str = "https://api.dexscreener.com/latest/dex/search"

    # Logging
    log_level: str = "INFO"

    # --- Validators to coerce empty strings in optional envs to None ---
    @field_validator(
        "sol_executor_private_key",
        "fee_address",
        "webhook_secret",
        "webhook_api_key",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("fee_percentage")
    @classmethod
    def _fee_in_range(cls, v: float) -> float:
        if not 0 <= v < 1:
            raise ValueError("fee_percentage must be within [0, 1)")
        return v

    @property
    def tip_lamports(self) -> int:
        return int(Decimal(str(self.tip_amount_sol)) * LAMPORTS_PER_SOL)
