from solders.pubkey import Pubkey

# Constants
WSOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")

# Collaborator endpoints (overridable through the environment, see utils/config.py)
DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_JITO_BUNDLE_URL = "https://mainnet.block-engine.jito.wtf/api/v1/bundles"
DEFAULT_PUMPFUN_TRADE_LOCAL_URL = "https://pumpportal.fun/api/trade-local"
DEFAULT_DEXSCREENER_URL = "https://api.dexscreener.com/latest/dex/tokens"

LAMPORTS_PER_SOL = 1_000_000_000
PUMP_POOL = "pump"

# Slippage for full exits
DEFAULT_SELL_ALL_SLIPPAGE = 30.0

DEFAULT_MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 1.0
MONITOR_TICK_SECONDS = 2.0
