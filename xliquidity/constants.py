"""
Aggregator Protocol Constants

Ledger constants plus the logging settings read from ``.env``. The ledger
constants are fixed; only the ``LOG_*`` values can be changed per deployment.
"""
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT (.env)
# =============================================================================
_env = dotenv_values(".env")


def _env_str(key: str, default: str) -> str:
    value = _env.get(key)
    return default if value is None or not value.strip() else value.strip()


def _env_flag(key: str, default: bool) -> bool:
    value = _env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().casefold() in ("true", "1", "yes", "on")


LOG_LEVEL = _env_str("LOG_LEVEL", "INFO")
LOG_FORMAT = _env_str("LOG_FORMAT", "%(asctime)s - %(levelname)s - %(name)s - %(message)s")
LOG_DATE_FORMAT = _env_str("LOG_DATE_FORMAT", "%Y-%m-%dT%H:%M:%S")
LOG_CONSOLE_HIGHLIGHTING = _env_flag("LOG_CONSOLE_HIGHLIGHTING", True)
LOG_FILE_OUTPUT = _env_flag("LOG_FILE_OUTPUT", False)

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW ARE PART OF THE LEDGER SEMANTICS. CHANGING THEM CHANGES
# SWAP OUTPUTS, SHARE MINTING AND FEE SPLITS, AND TWO NODES RUNNING DIFFERENT VALUES
# WILL DISAGREE ON EVERY POOL BALANCE.

# ==================================================================================
# ARITHMETIC
# ==================================================================================
BPS_DENOMINATOR = 10_000  # 10000 bps = 100%
MAX_FEE_BPS = 10_000
PRECISION = 1_000_000  # fixed-point scale for prices under integer arithmetic


# ==================================================================================
# PROTOCOL DEFAULTS
# ==================================================================================
DEFAULT_PROTOCOL_FEE_BPS = 30  # 0.30% protocol slice
DEFAULT_ADMIN = 'deployer'
DEFAULT_CUSTODY_ACCOUNT = 'aggregator.custody'


# ==================================================================================
# QUERY LIMITS
# ==================================================================================
# get_pools_range returns at most this many pools per call
POOLS_PAGE_SIZE = 5


# ==================================================================================
# POOL HEALTH
# ==================================================================================
# A pool is balanced while its larger reserve is within this factor of the smaller
MAX_BALANCE_RATIO = 100
# Minimum outstanding LP shares for a pool to count as adequately funded
MIN_HEALTHY_LIQUIDITY = 1_000


# ==================================================================================
# CROSS-CHAIN SWAPS
# ==================================================================================
# 144 blocks ~ one day of Bitcoin blocks
DEFAULT_SWAP_EXPIRY_BLOCKS = 144
MAX_SWAP_EXPIRY_BLOCKS = 52_560  # ~ one year


