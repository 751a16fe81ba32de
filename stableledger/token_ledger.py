"""
token_ledger.py - Double-entry token ledger and token facades

The TokenLedger holds balances of every token in the system (collateral
assets and the pegged token) and is the custody collaborator of the engine:
the engine pulls tokens from users into its own wallet and pushes them back
out through transfer_from() and transfer().

Key responsibilities:
    - Executes batches of moves atomically (all moves succeed or all fail)
    - Issues and retires supply through SYSTEM_WALLET, so the sum over all
      wallets of every token is always zero
    - Tracks ERC20-style allowances
    - Snapshots and restores its full state for callers that roll back

Token facades:
    - Token: ERC20-style view of one symbol
    - PeggedToken: Token whose mint/burn capability belongs to one authority
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Any
import logging
import threading

from .core import (
    Address, SYSTEM_WALLET, ZERO_ADDRESS,
    TokenNotRegistered, TransferRuleViolation,
    NotAuthority, ZeroAddress, ZeroAmount, BurnAmountExceedsBalance,
    require_quantity, synchronized,
)


logger = logging.getLogger(__name__)


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of one token between two wallets.

    Attributes:
        quantity: Amount in the token's smallest denomination (positive int)
        symbol: Token being transferred
        source: Wallet debited
        dest: Wallet credited
        memo: Free-form label for the audit log
    """
    quantity: int
    symbol: str
    source: Address
    dest: Address
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Move symbol cannot be empty")
        require_quantity(self.quantity, "Move quantity")
        if self.quantity == 0:
            raise ValueError("Move quantity cannot be zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.symbol}: {self.source}→{self.dest})"


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[['TokenLedger', Move], None]


@dataclass(frozen=True, slots=True)
class TokenUnit:
    """
    Definition of a token registered in the ledger.

    Attributes:
        symbol: Short identifier (e.g., "WETH")
        name: Human-readable name
        decimals: Decimal places of the smallest denomination
        transfer_rule: Optional hook run for every move of this token during validation
    """
    symbol: str
    name: str
    decimals: int = 18
    transfer_rule: Optional[TransferRule] = None


class ExecuteResult(Enum):
    """
    Outcome of executing a batch of moves.

    APPLIED: All moves were validated and applied.
    REJECTED: Validation failed; nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class TransferRecord:
    """Executed, immutable batch of moves in the audit log."""
    moves: Tuple[Move, ...]
    sequence_number: int
    execution_time: datetime


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Complete copy of a TokenLedger's mutable state."""
    balances: Tuple[Tuple[Address, Tuple[Tuple[str, int], ...]], ...]
    allowances: Tuple[Tuple[Tuple[Address, Address, str], int], ...]
    log_length: int
    next_sequence: int


# ============================================================================
# TOKEN LEDGER
# ============================================================================

class TokenLedger:
    """
    Double-entry token ledger with allowances and an audit trail.

    Wallets need no registration: any identity holds a zero balance until it
    receives tokens. Tokens must be registered before use.

    Thread Safety:
        Every mutation and every read spanning several wallets holds `lock`,
        a re-entrant lock. Engines using this ledger as custody hold the same
        lock for a whole transaction, so no other thread can move tokens
        between an engine's snapshot and its commit or rollback.

    Example:
        ledger = TokenLedger("chain")
        ledger.register_token(TokenUnit("WETH", "Wrapped Ether"))
        ledger.issue("WETH", "alice", 10 * 10**18)
        ledger.transfer("WETH", "alice", "bob", 10**18)
    """

    def __init__(self, name: str, initial_time: Optional[datetime] = None):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting logical time (default: 1970-01-01)
        """
        self.name = name
        self.balances: Dict[Address, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.units: Dict[str, TokenUnit] = {}
        self.allowances: Dict[Tuple[Address, Address, str], int] = {}
        self.transaction_log: List[TransferRecord] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._next_sequence: int = 0
        self.lock = threading.RLock()

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_unit(self, symbol: str) -> TokenUnit:
        if symbol not in self.units:
            raise TokenNotRegistered(f"Token {symbol} not registered")
        return self.units[symbol]

    def balance_of(self, wallet: Address, symbol: str) -> int:
        """
        Balance of a token in a wallet (0 if the wallet never held it).

        Raises:
            TokenNotRegistered: If the token is not registered
        """
        self.get_unit(symbol)
        if wallet not in self.balances:
            return 0
        return self.balances[wallet].get(symbol, 0)

    def allowance(self, owner: Address, spender: Address, symbol: str) -> int:
        return self.allowances.get((owner, spender, symbol), 0)

    @synchronized
    def total_supply(self, symbol: str) -> int:
        """
        Circulating supply: sum of balances outside SYSTEM_WALLET.

        Wallets are sorted before summation for a deterministic order.
        """
        self.get_unit(symbol)
        return sum(
            self.balances[w].get(symbol, 0)
            for w in sorted(self.balances)
            if w != SYSTEM_WALLET
        )

    @synchronized
    def list_wallets(self) -> Set[Address]:
        return set(self.balances)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    @synchronized
    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every token's balances sum to zero across all wallets.

        Issuance debits SYSTEM_WALLET, so a non-zero sum means value was
        created or destroyed outside of execute().

        Returns:
            Dict with keys:
            - 'valid': bool - True if all tokens net to zero
            - 'supplies': Dict[str, int] - Circulating supply per token
            - 'discrepancies': List[Dict] - Tokens whose balances do not net to zero
        """
        supplies = {}
        discrepancies = []
        for symbol in self.units:
            supplies[symbol] = self.total_supply(symbol)
            net = sum(self.balances[w].get(symbol, 0) for w in sorted(self.balances))
            if net != 0:
                discrepancies.append({'unit': symbol, 'net': net})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @synchronized
    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    @synchronized
    def register_token(self, unit: TokenUnit) -> None:
        """
        Register a token.

        Raises:
            ValueError: If the symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Token {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
        logger.debug("Registered token %s (%s)%s", unit.symbol, unit.name, rule_str)

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    @synchronized
    def execute(self, moves: Sequence[Move]) -> ExecuteResult:
        """
        Execute a batch of moves atomically.

        Validation covers token registration, transfer rules, the zero
        address and non-negative balances (SYSTEM_WALLET excepted). Transfer
        rules run before any balance changes, so a rule observes the ledger
        as it was before the batch.

        Args:
            moves: Moves to apply together

        Returns:
            ExecuteResult.APPLIED if successful (an empty batch is a no-op)
            ExecuteResult.REJECTED if validation failed
        """
        moves = tuple(moves)
        if not moves:
            return ExecuteResult.APPLIED

        valid, reason = self._validate(moves)
        if not valid:
            logger.debug("%s REJECTED: %s", self.name, reason)
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        for move in moves:
            self.balances[move.source][move.symbol] -= move.quantity
            self.balances[move.dest][move.symbol] += move.quantity
        self.transaction_log.append(TransferRecord(
            moves=moves,
            sequence_number=sequence,
            execution_time=self._current_time,
        ))
        logger.debug("%s APPLIED #%d: %s", self.name, sequence, list(moves))
        return ExecuteResult.APPLIED

    def _validate(self, moves: Tuple[Move, ...]) -> Tuple[bool, str]:
        """
        Validate a batch against all constraints.

        Returns:
            Tuple of (success: bool, reason: str)
        """
        for move in moves:
            if move.symbol not in self.units:
                return False, f"token not registered: {move.symbol}"
            if move.dest == ZERO_ADDRESS:
                return False, f"cannot transfer {move.symbol} to the zero address"

        for move in moves:
            unit = self.units[move.symbol]
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[Address, str], int] = defaultdict(int)
        for move in moves:
            net[(move.source, move.symbol)] -= move.quantity
            net[(move.dest, move.symbol)] += move.quantity

        for (wallet, symbol), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balance_of(wallet, symbol) + delta
            if proposed < 0:
                return False, f"{wallet} {symbol}: balance {proposed} < 0"

        return True, ""

    @synchronized
    def transfer(self, symbol: str, sender: Address, recipient: Address, amount: int) -> bool:
        """
        Move tokens out of the sender's own wallet.

        A zero amount, or a transfer to oneself, succeeds without a move.
        """
        require_quantity(amount)
        if amount == 0 or sender == recipient:
            self.get_unit(symbol)
            return recipient != ZERO_ADDRESS and self.balance_of(sender, symbol) >= amount
        result = self.execute([Move(amount, symbol, sender, recipient, "transfer")])
        return result == ExecuteResult.APPLIED

    @synchronized
    def transfer_from(
        self,
        symbol: str,
        spender: Address,
        owner: Address,
        recipient: Address,
        amount: int,
    ) -> bool:
        """
        Move tokens on behalf of owner, consuming spender's allowance.

        Returns False (and leaves the allowance untouched) if the allowance is
        insufficient or the move is rejected.
        """
        require_quantity(amount)
        self.get_unit(symbol)
        allowed = self.allowance(owner, spender, symbol)
        if allowed < amount:
            logger.debug(
                "%s REJECTED: %s allowance %s->%s is %d < %d",
                self.name, symbol, owner, spender, allowed, amount,
            )
            return False
        if not self.transfer(symbol, owner, recipient, amount):
            return False
        self.allowances[(owner, spender, symbol)] = allowed - amount
        return True

    @synchronized
    def approve(self, owner: Address, spender: Address, symbol: str, amount: int) -> bool:
        """Set spender's allowance over owner's tokens (overwrites)."""
        require_quantity(amount)
        self.get_unit(symbol)
        if spender == ZERO_ADDRESS:
            return False
        self.allowances[(owner, spender, symbol)] = amount
        return True

    def issue(self, symbol: str, to: Address, amount: int) -> bool:
        """Create supply by moving it out of SYSTEM_WALLET."""
        require_quantity(amount)
        if amount == 0:
            return True
        result = self.execute([Move(amount, symbol, SYSTEM_WALLET, to, "issue")])
        return result == ExecuteResult.APPLIED

    def retire(self, symbol: str, holder: Address, amount: int) -> bool:
        """Destroy supply by moving it back into SYSTEM_WALLET."""
        require_quantity(amount)
        if amount == 0:
            return True
        result = self.execute([Move(amount, symbol, holder, SYSTEM_WALLET, "retire")])
        return result == ExecuteResult.APPLIED

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    @synchronized
    def snapshot(self) -> LedgerSnapshot:
        """Capture balances, allowances and the audit log position."""
        return LedgerSnapshot(
            balances=tuple(
                (wallet, tuple(bals.items()))
                for wallet, bals in self.balances.items()
            ),
            allowances=tuple(self.allowances.items()),
            log_length=len(self.transaction_log),
            next_sequence=self._next_sequence,
        )

    @synchronized
    def restore(self, snapshot: LedgerSnapshot) -> None:
        """
        Return to a previous snapshot.

        Transactions logged after the snapshot are discarded. Registered
        tokens and the clock are left as they are.
        """
        self.balances = defaultdict(lambda: defaultdict(int))
        for wallet, bals in snapshot.balances:
            self.balances[wallet] = defaultdict(int, bals)
        self.allowances = dict(snapshot.allowances)
        del self.transaction_log[snapshot.log_length:]
        self._next_sequence = snapshot.next_sequence

    @synchronized
    def clone(self) -> TokenLedger:
        """
        Create a fully independent copy of this ledger.

        Returns:
            A new TokenLedger with identical state
        """
        cloned = TokenLedger(self.name, self._current_time)
        cloned.units = dict(self.units)
        cloned.restore(self.snapshot())
        cloned.transaction_log = list(self.transaction_log)
        return cloned

    def __repr__(self) -> str:
        return f"TokenLedger({self.name}, {len(self.units)} tokens, {len(self.transaction_log)} txs)"


# ============================================================================
# TOKEN FACADES
# ============================================================================

class Token:
    """
    ERC20-style view of one token in a TokenLedger.

    Every caller identity is passed explicitly; there is no implicit sender.
    """

    def __init__(self, ledger: TokenLedger, symbol: str):
        self.ledger = ledger
        self.symbol = symbol
        ledger.get_unit(symbol)

    @classmethod
    def create(
        cls,
        ledger: TokenLedger,
        symbol: str,
        name: str,
        decimals: int = 18,
        transfer_rule: Optional[TransferRule] = None,
    ) -> Token:
        """Register a new token and return its facade."""
        ledger.register_token(TokenUnit(symbol, name, decimals, transfer_rule))
        return cls(ledger, symbol)

    @property
    def name(self) -> str:
        return self.ledger.get_unit(self.symbol).name

    @property
    def decimals(self) -> int:
        return self.ledger.get_unit(self.symbol).decimals

    def balance_of(self, account: Address) -> int:
        return self.ledger.balance_of(account, self.symbol)

    def total_supply(self) -> int:
        return self.ledger.total_supply(self.symbol)

    def allowance(self, owner: Address, spender: Address) -> int:
        return self.ledger.allowance(owner, spender, self.symbol)

    def approve(self, owner: Address, spender: Address, amount: int) -> bool:
        return self.ledger.approve(owner, spender, self.symbol, amount)

    def transfer(self, sender: Address, recipient: Address, amount: int) -> bool:
        return self.ledger.transfer(self.symbol, sender, recipient, amount)

    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> bool:
        return self.ledger.transfer_from(self.symbol, spender, owner, recipient, amount)

    def faucet(self, to: Address, amount: int) -> bool:
        """Issue tokens freely (collateral tokens in tests and simulations)."""
        return self.ledger.issue(self.symbol, to, amount)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.symbol}, supply={self.total_supply()})"


class PeggedToken(Token):
    """
    The USD-pegged token. Only the current authority may mint or burn.

    The authority is a capability granted at construction and handed over
    with transfer_authority() (typically to the engine after deployment).
    Burning only ever destroys the authority's own balance.

    Example:
        dsc = PeggedToken.deploy(ledger, authority="deployer")
        dsc.transfer_authority("deployer", engine_address)
    """

    def __init__(self, ledger: TokenLedger, symbol: str, authority: Address):
        super().__init__(ledger, symbol)
        self._authority = authority

    @classmethod
    def deploy(
        cls,
        ledger: TokenLedger,
        authority: Address,
        symbol: str = "DSC",
        name: str = "Decentralized Stable Coin",
    ) -> PeggedToken:
        """Register the pegged token in a ledger and return it."""
        ledger.register_token(TokenUnit(symbol, name, 18))
        return cls(ledger, symbol, authority)

    @property
    def authority(self) -> Address:
        return self._authority

    def _require_authority(self, caller: Address) -> None:
        if caller != self._authority:
            raise NotAuthority(f"{caller} is not the {self.symbol} authority")

    def transfer_authority(self, caller: Address, new_authority: Address) -> None:
        self._require_authority(caller)
        if new_authority == ZERO_ADDRESS:
            raise ZeroAddress("authority cannot be the zero address")
        self._authority = new_authority

    def mint(self, caller: Address, to: Address, amount: int) -> bool:
        """
        Mint new tokens to an account.

        Raises:
            NotAuthority: If caller is not the authority
            ZeroAddress: If to is the zero address
            ZeroAmount: If amount <= 0
        """
        self._require_authority(caller)
        if to == ZERO_ADDRESS:
            raise ZeroAddress(f"cannot mint {self.symbol} to the zero address")
        if amount <= 0:
            raise ZeroAmount(f"mint amount must be more than zero, got {amount}")
        return self.ledger.issue(self.symbol, to, amount)

    def burn(self, caller: Address, amount: int) -> None:
        """
        Burn tokens from the authority's own balance.

        Raises:
            NotAuthority: If caller is not the authority
            ZeroAmount: If amount <= 0
            BurnAmountExceedsBalance: If the authority holds less than amount
        """
        self._require_authority(caller)
        if amount <= 0:
            raise ZeroAmount(f"burn amount must be more than zero, got {amount}")
        balance = self.balance_of(caller)
        if balance < amount:
            raise BurnAmountExceedsBalance(f"burn {amount} exceeds balance {balance}")
        self.ledger.retire(self.symbol, caller, amount)

    def __repr__(self) -> str:
        return f"PeggedToken({self.symbol}, authority={self._authority}, supply={self.total_supply()})"
