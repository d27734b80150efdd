"""
Aggregator Engine  (atomic ledger core)

Single owner of every ledger table: pools, LP positions, fee accumulators,
cross-chain swaps and the protocol config record. All mutation goes through
the public methods below, each of which runs inside a transaction boundary:

  1. open an undo log on the LedgerStore
  2. validate and compute effects
  3. move tokens through their transfer capability (journalled)
  4. apply state changes, touching each record before its first write

Any exception puts the touched records back, reverses journalled transfers in
reverse order, and propagates. Callers never observe partial state.

Logical time is a block-height counter advanced by the host; nothing here
reads the wall clock.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..bridge.escrow import CrossChainBridge
from ..bridge.relayer import AdminRelayer, AllowlistRelayer, RelayerAuthority
from ..bridge.types import CrossChainSwap
from ..constants import (
    DEFAULT_ADMIN,
    DEFAULT_CUSTODY_ACCOUNT,
    DEFAULT_PROTOCOL_FEE_BPS,
    DEFAULT_SWAP_EXPIRY_BLOCKS,
    MAX_SWAP_EXPIRY_BLOCKS,
)
from ..exceptions import (
    AggregatorError,
    ConfigurationError,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidToken,
    SlippageTooHigh,
    Unauthorized,
)
from ..logger import get_logger, set_log_level
from ..tokens.capability import TokenCapability, TokenRegistry
from .amm import PoolRegistry, PoolState, SwapResult
from .fees import FeeAccumulator, FeeLedger, ProtocolFeeAccumulator, split_swap_fees
from .liquidity import (
    AddLiquidityResult,
    PositionBook,
    RemoveLiquidityResult,
    initial_shares,
    plan_add_liquidity,
    plan_remove_liquidity,
)
from .protocol import ProtocolConfig, validate_fee_bps

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

_ABSENT = object()


@dataclass
class LedgerStore:
    """
    Key -> record tables owned by one engine.

    While an operation is open (``begin``), ``touch`` keeps the pre-image of
    each record before its first write; ``rollback`` puts back only those
    records and the config.
    """
    config: ProtocolConfig = field(default_factory=ProtocolConfig)
    pools: Dict[int, PoolState] = field(default_factory=dict)
    pair_index: Dict[str, int] = field(default_factory=dict)
    positions: Dict[Tuple[int, str], int] = field(default_factory=dict)
    pool_fees: Dict[int, FeeAccumulator] = field(default_factory=dict)
    protocol_fees: Dict[str, ProtocolFeeAccumulator] = field(default_factory=dict)
    swaps: Dict[int, CrossChainSwap] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._undo: Optional[Dict[Tuple[str, Any], Any]] = None
        self._config_undo: Optional[ProtocolConfig] = None

    def begin(self) -> None:
        self._undo = {}
        self._config_undo = copy.copy(self.config)

    def touch(self, table: str, key: Any) -> None:
        """Record ``table[key]`` as it was before this operation's first write to it."""
        if self._undo is None or (table, key) in self._undo:
            return
        record = getattr(self, table).get(key, _ABSENT)
        # Records hold only scalar fields, so a shallow copy is a full pre-image
        self._undo[(table, key)] = record if record is _ABSENT else copy.copy(record)

    def commit(self) -> None:
        self._undo = None
        self._config_undo = None

    def rollback(self) -> int:
        """Put touched records back in place. Returns how many were restored."""
        undo = self._undo or {}
        for (table, key), record in undo.items():
            rows = getattr(self, table)
            if record is _ABSENT:
                rows.pop(key, None)
            else:
                rows[key] = record
        if self._config_undo is not None:
            for f in fields(self.config):
                setattr(self.config, f.name, getattr(self._config_undo, f.name))
        self.commit()
        return len(undo)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "pools": {pid: p.to_dict() for pid, p in sorted(self.pools.items())},
            "positions": [
                {"pool_id": pid, "provider": provider, "shares": shares}
                for (pid, provider), shares in sorted(self.positions.items())
            ],
            "pool_fees": {pid: a.to_dict() for pid, a in sorted(self.pool_fees.items())},
            "protocol_fees": {t: a.to_dict() for t, a in sorted(self.protocol_fees.items())},
            "swaps": {sid: s.to_dict() for sid, s in sorted(self.swaps.items())},
        }


@dataclass(frozen=True)
class _JournalEntry:
    token: TokenCapability
    amount: int
    sender: str
    recipient: str


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class AggregatorEngine:
    """
    AMM ledger with an attached cross-chain escrow.

    Usage:

        tokens = TokenRegistry()
        tokens.register(InMemoryToken("token-a"))
        tokens.register(InMemoryToken("token-b"))

        engine = AggregatorEngine(tokens, admin="deployer")
        engine.begin_block(1)
        pool_id = engine.create_pool("alice", "token-a", "token-b", 100, 200, 300)
        result = engine.swap("bob", pool_id, "token-a", "token-b", 10, 1)
    """

    def __init__(
        self,
        tokens: TokenRegistry,
        admin: str = DEFAULT_ADMIN,
        protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS,
        fee_recipient: Optional[str] = None,
        custody_account: str = DEFAULT_CUSTODY_ACCOUNT,
        refund_on_cancel: bool = False,
        max_expiry_blocks: int = MAX_SWAP_EXPIRY_BLOCKS,
        relayer: Optional[RelayerAuthority] = None,
        paused: bool = False,
    ) -> None:
        if not admin:
            raise ConfigurationError("An admin identity is required")
        self.tokens = tokens
        self.custody_account = custody_account
        self.refund_on_cancel = refund_on_cancel
        self.block_height = 0

        self.store = LedgerStore(
            config=ProtocolConfig(
                admin=admin,
                protocol_fee_bps=protocol_fee_bps,
                fee_recipient=fee_recipient or admin,
                paused=paused,
            )
        )
        self.pools = PoolRegistry(self.store)
        self.positions = PositionBook(self.store)
        self.fees = FeeLedger(self.store)
        self.bridge = CrossChainBridge(
            self.store,
            relayer or AdminRelayer(lambda: self.store.config.admin),
            max_expiry_blocks=max_expiry_blocks,
        )

        self._journal: Optional[List[_JournalEntry]] = None

    @classmethod
    def from_config(cls, config, tokens: TokenRegistry) -> "AggregatorEngine":
        """Build an engine from a validated ``AggregatorConfig``."""
        config.validate()
        set_log_level(config.logging.log_level)
        relayer = AllowlistRelayer(config.bridge.relayers) if config.bridge.relayers else None
        engine = cls(
            tokens,
            admin=config.protocol.admin,
            protocol_fee_bps=config.protocol.protocol_fee_bps,
            fee_recipient=config.protocol.effective_fee_recipient,
            custody_account=config.protocol.custody_account,
            refund_on_cancel=config.bridge.refund_on_cancel,
            max_expiry_blocks=config.bridge.max_expiry_blocks,
            relayer=relayer,
            paused=config.protocol.paused,
        )
        logger.info(
            "Engine configured: admin=%s fee=%d bps custody=%s refund_on_cancel=%s",
            config.protocol.admin,
            config.protocol.protocol_fee_bps,
            config.protocol.custody_account,
            config.bridge.refund_on_cancel,
        )
        return engine

    @property
    def config(self) -> ProtocolConfig:
        return self.store.config

    # =====================================================================
    #  Logical time
    # =====================================================================

    def begin_block(self, height: int) -> None:
        if height < self.block_height:
            raise InvalidAmount(f"Block height {height} < current {self.block_height}")
        self.block_height = height

    def advance_blocks(self, count: int = 1) -> int:
        if count < 0:
            raise InvalidAmount("Cannot advance a negative number of blocks")
        self.block_height += count
        return self.block_height

    # =====================================================================
    #  Transaction boundary
    # =====================================================================

    @contextmanager
    def _atomic(self, op: str) -> Iterator[None]:
        if self._journal is not None:
            # Nested call joins the enclosing boundary.
            yield
            return

        self.store.begin()
        self._journal = []
        try:
            yield
        except Exception as e:
            journal = self._journal
            restored = self.store.rollback()
            self._compensate(journal)
            logger.warning("%s rolled back (%d records, %d transfers): %s",
                           op, restored, len(journal), e)
            raise
        else:
            self.store.commit()
        finally:
            self._journal = None

    def _transfer(
        self,
        token_id: str,
        amount: int,
        sender: str,
        recipient: str,
        memo: Optional[str] = None,
    ) -> None:
        """Move tokens through the token's own capability, journalled for rollback."""
        if amount == 0:
            return
        if self._journal is None:
            raise RuntimeError("Token transfer outside a transaction boundary")
        token = self.tokens.get_or_raise(token_id)
        token.transfer(amount, sender, recipient, memo)
        self._journal.append(_JournalEntry(token, amount, sender, recipient))

    def _compensate(self, journal: List[_JournalEntry]) -> None:
        for entry in reversed(journal):
            try:
                entry.token.transfer(entry.amount, entry.recipient, entry.sender, "rollback")
            except AggregatorError as e:
                logger.error(
                    "Compensating transfer of %d %s from %s to %s failed: %s",
                    entry.amount, entry.token.token_id, entry.recipient, entry.sender, e,
                )

    # =====================================================================
    #  Pool registry
    # =====================================================================

    def create_pool(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        initial_a: int,
        initial_b: int,
        fee_rate_bps: int,
    ) -> int:
        with self._atomic("create_pool"):
            self.config.require_not_paused()
            self.tokens.get_or_raise(token_a)
            self.tokens.get_or_raise(token_b)
            self.pools.validate_new_pool(token_a, token_b, initial_a, initial_b, fee_rate_bps)
            shares = initial_shares(initial_a, initial_b)
            pool_id = self.config.allocate_pool_id()

            self._transfer(token_a, initial_a, sender, self.custody_account, f"pool #{pool_id}")
            self._transfer(token_b, initial_b, sender, self.custody_account, f"pool #{pool_id}")

            pool = self.pools.create_pool(
                pool_id, token_a, token_b, initial_a, initial_b, shares,
                fee_rate_bps, self.block_height,
            )
            self.positions.credit(pool_id, sender, shares)

        logger.info(
            "Created pool #%d %s/%s: reserves=(%d, %d) shares=%d fee=%d bps",
            pool.id, pool.token_a, pool.token_b,
            pool.reserve_a, pool.reserve_b, shares, fee_rate_bps,
        )
        return pool_id

    def get_pool(self, pool_id: int) -> Optional[PoolState]:
        pool = self.pools.get_pool(pool_id)
        return replace(pool) if pool is not None else None

    def find_pool_id(self, token_a: str, token_b: str) -> Optional[int]:
        return self.pools.find_pool_id(token_a, token_b)

    def get_pools_range(self, start: int, end: int) -> List[PoolState]:
        return [replace(p) for p in self.pools.pools_range(start, end)]

    # =====================================================================
    #  Swap engine
    # =====================================================================

    def _quoted_pool(self, pool_id: int) -> PoolState:
        pool = self.pools.get_pool(pool_id)
        if pool is None:
            raise InsufficientLiquidity(f"pool #{pool_id} does not exist")
        return pool

    def quote_swap_output(self, pool_id: int, token_in: str, amount_in: int) -> int:
        return self._quoted_pool(pool_id).quote(token_in, amount_in).amount_out

    def price_impact(self, pool_id: int, token_in: str, amount_in: int) -> int:
        return self._quoted_pool(pool_id).quote(token_in, amount_in).price_impact

    def swap(
        self,
        sender: str,
        pool_id: int,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
    ) -> SwapResult:
        with self._atomic("swap"):
            self.config.require_not_paused()
            pool = self.pools.get_or_raise(pool_id)
            pool.require_active()
            if amount_in <= 0:
                raise InvalidAmount("Swap amount must be positive")
            if token_in == token_out or not (pool.has_token(token_in) and pool.has_token(token_out)):
                raise InvalidToken(f"{token_in}->{token_out} does not match pool #{pool_id}")

            quote = pool.quote(token_in, amount_in)
            if quote.amount_out < min_amount_out:
                raise SlippageTooHigh(f"Output {quote.amount_out} < minimum {min_amount_out}")
            if quote.amount_out >= quote.reserve_out:
                raise InsufficientLiquidity("Swap would drain pool")
            if quote.amount_out == 0:
                raise InvalidAmount("Swap output rounds to zero")

            pool_fee, protocol_fee = split_swap_fees(
                amount_in, quote.effective_in, self.config.protocol_fee_bps
            )
            memo = f"swap pool #{pool_id}"
            self._transfer(token_in, amount_in, sender, self.custody_account, memo)
            self._transfer(token_in, protocol_fee, self.custody_account, self.config.fee_recipient, "protocol fee")
            self._transfer(token_out, quote.amount_out, self.custody_account, sender, memo)

            token_in_is_a = pool.is_token_a(token_in)
            pool.apply_swap(token_in, amount_in - protocol_fee, quote.amount_out, amount_in)
            self.fees.record_swap(
                pool_id, token_in_is_a, token_in, pool_fee, protocol_fee, self.block_height
            )

        logger.info(
            "Swap on pool #%d: %d %s -> %d %s (lp fee=%d, protocol fee=%d, impact=%d bps)",
            pool_id, amount_in, token_in, quote.amount_out, token_out,
            pool_fee, protocol_fee, quote.price_impact,
        )
        return SwapResult(
            amount_in=amount_in,
            amount_out=quote.amount_out,
            protocol_fee=protocol_fee,
            pool_fee=pool_fee,
            price_impact=quote.price_impact,
        )

    # =====================================================================
    #  Liquidity accounting
    # =====================================================================

    def add_liquidity(
        self,
        sender: str,
        pool_id: int,
        amount_a_desired: int,
        amount_b_desired: int,
        min_shares_out: int,
    ) -> AddLiquidityResult:
        with self._atomic("add_liquidity"):
            self.config.require_not_paused()
            pool = self.pools.get_or_raise(pool_id)
            pool.require_active()
            result = plan_add_liquidity(pool, amount_a_desired, amount_b_desired, min_shares_out)

            memo = f"add liquidity pool #{pool_id}"
            self._transfer(pool.token_a, result.amount_a, sender, self.custody_account, memo)
            self._transfer(pool.token_b, result.amount_b, sender, self.custody_account, memo)

            pool.deposit(result.amount_a, result.amount_b, result.shares_minted)
            self.positions.credit(pool_id, sender, result.shares_minted)

        logger.info(
            "Liquidity added to pool #%d by %s: (%d, %d) -> %d shares",
            pool_id, sender, result.amount_a, result.amount_b, result.shares_minted,
        )
        return result

    def remove_liquidity(
        self,
        sender: str,
        pool_id: int,
        share_amount: int,
        min_amount_a: int,
        min_amount_b: int,
    ) -> RemoveLiquidityResult:
        with self._atomic("remove_liquidity"):
            self.config.require_not_paused()
            pool = self.pools.get_or_raise(pool_id)
            pool.require_active()
            result = plan_remove_liquidity(
                pool,
                self.positions.shares_of(pool_id, sender),
                share_amount,
                min_amount_a,
                min_amount_b,
            )

            memo = f"remove liquidity pool #{pool_id}"
            self._transfer(pool.token_a, result.amount_a, self.custody_account, sender, memo)
            self._transfer(pool.token_b, result.amount_b, self.custody_account, sender, memo)

            self.positions.debit(pool_id, sender, share_amount)
            pool.withdraw(result.amount_a, result.amount_b, share_amount)

        logger.info(
            "Liquidity removed from pool #%d by %s: %d shares -> (%d, %d)",
            pool_id, sender, share_amount, result.amount_a, result.amount_b,
        )
        return result

    def get_liquidity_shares(self, pool_id: int, provider: str) -> int:
        return self.positions.shares_of(pool_id, provider)

    # =====================================================================
    #  Fee ledger
    # =====================================================================

    def get_pool_fees(self, pool_id: int) -> FeeAccumulator:
        return self.fees.get_pool_fees(pool_id)

    def get_protocol_fees(self, token: str) -> ProtocolFeeAccumulator:
        return self.fees.get_protocol_fees(token)

    # =====================================================================
    #  Cross-chain bridge
    # =====================================================================

    def initiate_cross_chain_swap(
        self,
        sender: str,
        source_token: str,
        target_token_address: str,
        target_chain: str,
        amount: int,
        target_address: str,
        expires_in_blocks: int = DEFAULT_SWAP_EXPIRY_BLOCKS,
    ) -> int:
        with self._atomic("initiate_cross_chain_swap"):
            self.config.require_not_paused()
            self.tokens.get_or_raise(source_token)
            self.bridge.validate_initiation(
                target_token_address, target_chain, amount, target_address, expires_in_blocks
            )
            swap_id = self.config.allocate_swap_id()

            self._transfer(source_token, amount, sender, self.custody_account, f"escrow swap #{swap_id}")

            swap = self.bridge.open_swap(
                swap_id, sender, source_token, target_token_address, target_chain,
                amount, target_address, expires_in_blocks, self.block_height,
            )

        logger.info(
            "Cross-chain swap #%d opened by %s: %d %s -> %s on %s, expires at block %d",
            swap_id, sender, amount, source_token, target_address,
            target_chain, swap.expires_at_block,
        )
        return swap_id

    def complete_cross_chain_swap(
        self,
        sender: str,
        swap_id: int,
        target_amount: int,
        proof: Optional[str] = None,
    ) -> bool:
        with self._atomic("complete_cross_chain_swap"):
            self.config.require_not_paused()
            swap = self.bridge.mark_completed(sender, swap_id, target_amount, proof, self.block_height)

        logger.info(
            "Cross-chain swap #%d completed at block %d: delivered %d on %s",
            swap_id, self.block_height, swap.target_amount, swap.target_chain,
        )
        return True

    def cancel_cross_chain_swap(self, sender: str, swap_id: int) -> bool:
        with self._atomic("cancel_cross_chain_swap"):
            self.config.require_not_paused()
            swap = self.bridge.mark_failed(sender, swap_id, self.config.admin, self.block_height)
            if self.refund_on_cancel:
                self._transfer(
                    swap.source_token, swap.source_amount, self.custody_account,
                    swap.initiator, f"refund swap #{swap_id}",
                )
                swap.refunded = True

        if swap.refunded:
            logger.info("Cross-chain swap #%d cancelled, %d %s refunded to %s",
                        swap_id, swap.source_amount, swap.source_token, swap.initiator)
        else:
            logger.info("Cross-chain swap #%d cancelled, %d %s held in custody",
                        swap_id, swap.source_amount, swap.source_token)
        return True

    def get_cross_chain_swap(self, swap_id: int) -> Optional[CrossChainSwap]:
        swap = self.bridge.get_swap(swap_id)
        return replace(swap) if swap is not None else None

    # =====================================================================
    #  Admin
    # =====================================================================

    def set_protocol_fee(self, sender: str, fee_bps: int) -> bool:
        with self._atomic("set_protocol_fee"):
            self.config.require_admin(sender)
            old = self.config.protocol_fee_bps
            self.config.protocol_fee_bps = validate_fee_bps(fee_bps)
        logger.info("Protocol fee changed: %d -> %d bps", old, fee_bps)
        return True

    def set_fee_recipient(self, sender: str, recipient: str) -> bool:
        with self._atomic("set_fee_recipient"):
            self.config.require_admin(sender)
            if not recipient or recipient == self.custody_account:
                raise InvalidAmount(f"Invalid fee recipient {recipient!r}")
            self.config.fee_recipient = recipient
        logger.info("Fee recipient set to %s", recipient)
        return True

    def set_paused(self, sender: str, paused: bool) -> bool:
        with self._atomic("set_paused"):
            self.config.require_admin(sender)
            self.config.paused = bool(paused)
        if paused:
            logger.warning("Protocol PAUSED by %s", sender)
        else:
            logger.info("Protocol unpaused by %s", sender)
        return True

    def deactivate_pool(self, sender: str, pool_id: int) -> bool:
        with self._atomic("deactivate_pool"):
            self.config.require_admin(sender)
            pool = self.pools.get_or_raise(pool_id)
            pool.active = False
        logger.warning("pool #%d deactivated by %s", pool_id, sender)
        return True

    def emergency_withdraw(self, sender: str, token: str, amount: int, recipient: str) -> bool:
        with self._atomic("emergency_withdraw"):
            self.config.require_admin(sender)
            if not self.config.paused:
                raise Unauthorized("Emergency withdrawal requires the protocol to be paused")
            if amount <= 0:
                raise InvalidAmount("Withdrawal amount must be positive")
            self._transfer(token, amount, self.custody_account, recipient, "emergency withdraw")
        logger.warning("Emergency withdrawal: %d %s to %s by %s", amount, token, recipient, sender)
        return True

    def transfer_admin(self, sender: str, new_admin: str) -> bool:
        with self._atomic("transfer_admin"):
            self.config.require_admin(sender)
            if not new_admin or new_admin == self.custody_account:
                raise InvalidAmount(f"Invalid admin identity {new_admin!r}")
            self.config.admin = new_admin
        logger.warning("Admin transferred: %s -> %s", sender, new_admin)
        return True

    def set_relayer_authority(self, sender: str, relayer: Optional[RelayerAuthority]) -> bool:
        """Replace the relayer authority; ``None`` restores admin-only completion."""
        self.config.require_admin(sender)
        if relayer is None:
            relayer = AdminRelayer(lambda: self.store.config.admin)
        elif not isinstance(relayer, RelayerAuthority):
            raise ConfigurationError(f"{relayer!r} is not a relayer authority")
        self.bridge.relayer = relayer
        logger.info("Relayer authority set to %r", relayer)
        return True

    # =====================================================================
    #  Read-only queries
    # =====================================================================

    def get_protocol_info(self) -> Dict[str, Any]:
        return {
            "admin": self.config.admin,
            "protocol_fee": self.config.protocol_fee_bps,
            "fee_recipient": self.config.fee_recipient,
            "paused": self.config.paused,
            "pool_count": self.pools.pool_count,
            "cross_chain_swap_count": len(self.store.swaps),
            "next_pool_id": self.config.next_pool_id,
            "next_swap_id": self.config.next_swap_id,
            "block_height": self.block_height,
            "custody_account": self.custody_account,
            "refund_on_cancel": self.refund_on_cancel,
        }

    def get_pool_stats(self, pool_id: int) -> Dict[str, Any]:
        pool = self.pools.get_or_raise(pool_id)
        return {
            "pool_id": pool.id,
            "token_a": pool.token_a,
            "token_b": pool.token_b,
            "reserve_a": pool.reserve_a,
            "reserve_b": pool.reserve_b,
            "total_shares": pool.total_shares,
            "fee_rate_bps": pool.fee_rate_bps,
            "price_a": pool.price_a,
            "price_b": pool.price_b,
            "total_volume_a": pool.total_volume_a,
            "total_volume_b": pool.total_volume_b,
            "swap_count": pool.swap_count,
            "active": pool.active,
        }

    def get_pool_health(self, pool_id: int) -> Dict[str, Any]:
        pool = self.pools.get_or_raise(pool_id)
        return {
            "pool_id": pool.id,
            "active": pool.active,
            "is_balanced": pool.is_balanced,
            "min_liquidity_met": pool.min_liquidity_met,
            "total_shares": pool.total_shares,
            "invariant": pool.invariant,
        }

    def get_pool_analytics(self, pool_id: int) -> Dict[str, Any]:
        stats = self.get_pool_stats(pool_id)
        health = self.get_pool_health(pool_id)
        return {
            "stats": stats,
            "health": health,
            "fees": self.get_pool_fees(pool_id).to_dict(),
            "providers": len(self.positions.providers(pool_id)),
        }

    def to_dict(self) -> Dict[str, Any]:
        state = self.store.to_dict()
        state["block_height"] = self.block_height
        return state
