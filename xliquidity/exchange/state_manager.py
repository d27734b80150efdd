"""
Aggregator State Manager  (host surface)

Bridges a transactional host (block producer, simulator, test harness) and
the AggregatorEngine. The host feeds it blocks of AggregatorTransactions;
every transaction either commits completely or fails with a numeric error
code and leaves no trace.

Responsibilities:
  - Block-boundary lifecycle (begin_block, finalize_block)
  - Deterministic transaction dispatch
  - Conversion of ledger exceptions into failed ExecResults
  - Read-only query dispatch for API layers
  - State root over the ledger tables
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import AggregatorError, InvalidAmount
from ..logger import get_logger
from ..tokens.capability import TokenRegistry
from .engine import AggregatorEngine
from .transactions import AggregatorTransaction, OpType

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Transaction execution result
# ---------------------------------------------------------------------------

class ExecResult:
    """Result of executing a single transaction or query."""

    __slots__ = ("success", "data", "error", "code", "tx_hash")

    def __init__(
        self,
        success: bool = True,
        data: Optional[Dict[str, Any]] = None,
        error: str = "",
        code: int = 0,
        tx_hash: str = "",
    ):
        self.success = success
        self.data = data or {}
        self.error = error
        self.code = code
        self.tx_hash = tx_hash

    @classmethod
    def failure(cls, exc: AggregatorError, tx_hash: str = "") -> "ExecResult":
        return cls(success=False, error=str(exc), code=exc.code, tx_hash=tx_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "code": self.code,
            "tx_hash": self.tx_hash,
        }

    def __repr__(self) -> str:
        if self.success:
            return f"<ExecResult ok data={self.data}>"
        return f"<ExecResult failed code={self.code} error={self.error!r}>"


def _int_param(params: Dict[str, Any], key: str) -> int:
    """Ledger quantities and ids must arrive as exact integers."""
    value = params[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{key} must be an integer, got {value!r}")
    return value


def _as_data(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_as_data(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# State Manager
# ---------------------------------------------------------------------------

class AggregatorStateManager:
    """
    Usage in block production / simulation:

        mgr = AggregatorStateManager(engine)
        mgr.begin_block(block_height)
        for tx in txs:
            result = mgr.process_transaction(tx)
        state_root = mgr.finalize_block()
    """

    QUERIES = (
        "get_pool",
        "find_pool_id",
        "get_pools_range",
        "get_liquidity_shares",
        "quote_swap_output",
        "price_impact",
        "get_protocol_info",
        "get_pool_stats",
        "get_pool_health",
        "get_pool_analytics",
        "get_cross_chain_swap",
        "get_pool_fees",
        "get_protocol_fees",
    )

    def __init__(self, engine: AggregatorEngine) -> None:
        self.engine = engine

        # --- Block-level tracking ---
        self._block_txs: List[AggregatorTransaction] = []
        self._block_results: List[ExecResult] = []

        # --- Counters ---
        self._total_txs = 0
        self._total_failed = 0

    @classmethod
    def from_config(cls, config, tokens: TokenRegistry) -> "AggregatorStateManager":
        return cls(AggregatorEngine.from_config(config, tokens))

    # =====================================================================
    #  Block lifecycle
    # =====================================================================

    def begin_block(self, block_height: int) -> None:
        """Advance logical time and reset per-block accumulators."""
        self.engine.begin_block(block_height)
        self._block_txs = []
        self._block_results = []

    def finalize_block(self) -> str:
        """
        Called after all transactions in a block are processed.

        Returns:
            The ledger state root for this block.
        """
        state_root = self.compute_state_root()
        failed = sum(1 for r in self._block_results if not r.success)
        logger.debug(
            "Block %d finalized: %d txs (%d failed), state_root=%s",
            self.engine.block_height,
            len(self._block_txs),
            failed,
            state_root[:16],
        )
        return state_root

    @property
    def block_results(self) -> List[ExecResult]:
        return list(self._block_results)

    # =====================================================================
    #  Transaction processing
    # =====================================================================

    def process_transaction(self, tx: AggregatorTransaction) -> ExecResult:
        """
        Execute a single transaction atomically.

        Ledger failures come back as a failed ExecResult carrying the error
        code; the ledger is left exactly as it was before the call.
        """
        tx_hash = tx.tx_hash()
        try:
            tx.validate_basic()
            result = self._execute_op(tx)
        except AggregatorError as e:
            logger.info("%s from %s failed [%d %s]: %s",
                        getattr(tx.op_type, "name", tx.op_type), tx.sender, e.code, e.kind, e)
            result = ExecResult.failure(e)
        except (KeyError, TypeError, ValueError) as e:
            result = ExecResult.failure(InvalidAmount(f"Malformed params: {e}"))

        result.tx_hash = tx_hash
        self._total_txs += 1
        if not result.success:
            self._total_failed += 1
        self._block_txs.append(tx)
        self._block_results.append(result)
        return result

    def _execute_op(self, tx: AggregatorTransaction) -> ExecResult:
        """Dispatch to the appropriate handler."""
        handlers: Dict[OpType, Callable[[AggregatorTransaction], ExecResult]] = {
            OpType.CREATE_POOL: self._op_create_pool,
            OpType.ADD_LIQUIDITY: self._op_add_liquidity,
            OpType.REMOVE_LIQUIDITY: self._op_remove_liquidity,
            OpType.SWAP: self._op_swap,
            OpType.INITIATE_CROSS_CHAIN: self._op_initiate_cross_chain,
            OpType.COMPLETE_CROSS_CHAIN: self._op_complete_cross_chain,
            OpType.CANCEL_CROSS_CHAIN: self._op_cancel_cross_chain,
            OpType.SET_PROTOCOL_FEE: self._op_set_protocol_fee,
            OpType.SET_FEE_RECIPIENT: self._op_set_fee_recipient,
            OpType.SET_PAUSED: self._op_set_paused,
            OpType.DEACTIVATE_POOL: self._op_deactivate_pool,
            OpType.EMERGENCY_WITHDRAW: self._op_emergency_withdraw,
            OpType.TRANSFER_ADMIN: self._op_transfer_admin,
        }
        handler = handlers.get(tx.op_type)
        if handler is None:
            raise InvalidAmount(f"Unknown op type: {tx.op_type}")
        return handler(tx)

    # =====================================================================
    #  Operation handlers
    # =====================================================================

    def _op_create_pool(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        pool_id = self.engine.create_pool(
            tx.sender,
            str(p["token_a"]),
            str(p["token_b"]),
            _int_param(p, "initial_a"),
            _int_param(p, "initial_b"),
            _int_param(p, "fee_rate_bps"),
        )
        return ExecResult(data={"pool_id": pool_id})

    def _op_add_liquidity(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        result = self.engine.add_liquidity(
            tx.sender, _int_param(p, "pool_id"), _int_param(p, "amount_a"),
            _int_param(p, "amount_b"), _int_param(p, "min_shares"),
        )
        return ExecResult(data=result.to_dict())

    def _op_remove_liquidity(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        result = self.engine.remove_liquidity(
            tx.sender, _int_param(p, "pool_id"), _int_param(p, "shares"),
            _int_param(p, "min_a"), _int_param(p, "min_b"),
        )
        return ExecResult(data=result.to_dict())

    def _op_swap(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        result = self.engine.swap(
            tx.sender, _int_param(p, "pool_id"), str(p["token_in"]), str(p["token_out"]),
            _int_param(p, "amount_in"), _int_param(p, "min_out"),
        )
        return ExecResult(data=result.to_dict())

    def _op_initiate_cross_chain(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        swap_id = self.engine.initiate_cross_chain_swap(
            tx.sender,
            str(p["source_token"]),
            str(p["target_token_address"]),
            str(p["target_chain"]),
            _int_param(p, "amount"),
            str(p["target_address"]),
            _int_param(p, "expires_in_blocks"),
        )
        return ExecResult(data={"swap_id": swap_id})

    def _op_complete_cross_chain(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        swap_id = _int_param(p, "swap_id")
        self.engine.complete_cross_chain_swap(
            tx.sender, swap_id, _int_param(p, "target_amount"), p.get("proof"),
        )
        return ExecResult(data={"swap_id": swap_id})

    def _op_cancel_cross_chain(self, tx: AggregatorTransaction) -> ExecResult:
        swap_id = _int_param(tx.params, "swap_id")
        self.engine.cancel_cross_chain_swap(tx.sender, swap_id)
        return ExecResult(data={"swap_id": swap_id})

    def _op_set_protocol_fee(self, tx: AggregatorTransaction) -> ExecResult:
        self.engine.set_protocol_fee(tx.sender, _int_param(tx.params, "fee_bps"))
        return ExecResult()

    def _op_set_fee_recipient(self, tx: AggregatorTransaction) -> ExecResult:
        self.engine.set_fee_recipient(tx.sender, str(tx.params["recipient"]))
        return ExecResult()

    def _op_set_paused(self, tx: AggregatorTransaction) -> ExecResult:
        paused = tx.params["paused"]
        if not isinstance(paused, bool):
            raise InvalidAmount(f"paused must be a boolean, got {paused!r}")
        self.engine.set_paused(tx.sender, paused)
        return ExecResult()

    def _op_deactivate_pool(self, tx: AggregatorTransaction) -> ExecResult:
        self.engine.deactivate_pool(tx.sender, _int_param(tx.params, "pool_id"))
        return ExecResult()

    def _op_emergency_withdraw(self, tx: AggregatorTransaction) -> ExecResult:
        p = tx.params
        self.engine.emergency_withdraw(
            tx.sender, str(p["token"]), _int_param(p, "amount"), str(p["recipient"]),
        )
        return ExecResult()

    def _op_transfer_admin(self, tx: AggregatorTransaction) -> ExecResult:
        self.engine.transfer_admin(tx.sender, str(tx.params["new_admin"]))
        return ExecResult()

    # =====================================================================
    #  Query interface (read-only, never pause-gated)
    # =====================================================================

    def query(self, name: str, **params: Any) -> ExecResult:
        if name not in self.QUERIES:
            return ExecResult.failure(InvalidAmount(f"Unknown query: {name}"))
        try:
            value = getattr(self.engine, name)(**params)
        except AggregatorError as e:
            return ExecResult.failure(e)
        except TypeError as e:
            return ExecResult.failure(InvalidAmount(f"Malformed query params: {e}"))
        return ExecResult(data={"result": _as_data(value)})

    # =====================================================================
    #  State root
    # =====================================================================

    def compute_state_root(self) -> str:
        """
        Deterministic hash of every ledger table plus the block height.

        Returns:
            64-char hex string (blake2b-256)
        """
        hasher = hashlib.blake2b(digest_size=32)
        state = self.engine.store.to_dict()
        for section in sorted(state):
            section_hash = hashlib.blake2b(
                f"{section}:{json.dumps(state[section], sort_keys=True, default=str)}".encode(),
                digest_size=16,
            ).digest()
            hasher.update(section_hash)
        hasher.update(self.engine.block_height.to_bytes(8, "big"))
        return hasher.hexdigest()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pools": self.engine.pools.pool_count,
            "cross_chain_swaps": len(self.engine.store.swaps),
            "pending_cross_chain_swaps": len(self.engine.bridge.pending_swaps()),
            "total_txs": self._total_txs,
            "failed_txs": self._total_failed,
            "block_height": self.engine.block_height,
        }
