"""
Capped, ownable fungible token.

Provides the balance ledger that claim settlement moves funds through:
- transfer with balance checks
- owner-only minting bounded by a supply cap
- burning
- ownership transfer
- Transfer events

Amounts are raw integers in the smallest unit (tokens × 10**decimals).
All state changes hold the token lock. transaction() extends that lock over
a block of operations and restores state if the block raises.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from capsulecoin.core.canonical import (
    ZERO_ADDRESS,
    normalize_address,
    require_uint256,
)
from capsulecoin.core.exceptions import (
    CapExceeded,
    InsufficientBalance,
    OwnershipError,
    ValidationError,
)
from capsulecoin.core.time import utc_timestamp

logger = logging.getLogger(__name__)

DEFAULT_NAME       = "Capsule Coin"
DEFAULT_SYMBOL     = "CAPS"
DEFAULT_DECIMALS   = 18
DEFAULT_CAP_TOKENS = 2_500_000_000


@dataclass(frozen=True)
class TransferEvent:
    """A Transfer(from, to, value) log entry. Mints come from ZERO_ADDRESS."""
    from_address: str
    to_address:   str
    value:        int
    timestamp:    str = field(default_factory=utc_timestamp)


class CapsuleToken:
    """
    Capped ownable token.

    Security considerations:
    - Zero address rejected as recipient
    - Balance underflow prevented on transfer and burn
    - Supply can never exceed cap
    """

    def __init__(
        self,
        owner:    str,
        cap:      Optional[int] = None,
        name:     str = DEFAULT_NAME,
        symbol:   str = DEFAULT_SYMBOL,
        decimals: int = DEFAULT_DECIMALS,
    ) -> None:
        if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 77:
            raise ValidationError("decimals must be an integer in [0, 77]", {"decimals": decimals})
        if cap is None:
            cap = DEFAULT_CAP_TOKENS * 10**decimals
        require_uint256(cap, "cap")
        if cap == 0:
            raise ValidationError("cap must be positive")

        self.name     = name
        self.symbol   = symbol
        self._decimals = decimals
        self._cap      = cap
        self._owner    = normalize_address(owner, "owner")

        self._lock:         threading.RLock  = threading.RLock()
        self._balances:     Dict[str, int]   = {}
        self._total_supply: int              = 0
        self._events:       List[TransferEvent] = []

    @classmethod
    def deploy(cls, vault: str, **kwargs) -> "CapsuleToken":
        """
        Create the token and allocate the entire cap to vault.

        vault also becomes the owner, so the supply starts at the cap and any
        further mint fails with CapExceeded until tokens are burned.
        """
        token = cls(owner=vault, **kwargs)
        token.mint(vault, vault, token.cap)
        logger.info(
            "Token deployed",
            extra={
                "event": "token.deploy",
                "symbol": token.symbol,
                "vault": token.owner,
                "supply": token.total_supply,
            },
        )
        return token

    # ==================== View Functions ====================

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def cap(self) -> int:
        return self._cap

    @property
    def owner(self) -> str:
        with self._lock:
            return self._owner

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    @property
    def events(self) -> List[TransferEvent]:
        with self._lock:
            return list(self._events)

    def balance_of(self, account: str) -> int:
        """
        Get the token balance of an account.

        Args:
            account: Address to check

        Returns:
            Raw token balance
        """
        key = normalize_address(account, "account")
        with self._lock:
            return self._balances.get(key, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens
            recipient: Address receiving tokens
            amount: Raw amount to transfer

        Returns:
            True if successful

        Raises:
            InsufficientBalance: sender holds less than amount
            ValidationError: zero-address recipient or bad amount
        """
        sender_norm = normalize_address(sender, "sender")
        recipient_norm = normalize_address(recipient, "recipient")
        self._validate_recipient(recipient_norm)
        require_uint256(amount, "amount")

        with self._lock:
            sender_balance = self._balances.get(sender_norm, 0)
            if sender_balance < amount:
                raise InsufficientBalance(
                    "transfer amount exceeds balance",
                    {"amount": amount, "balance": sender_balance},
                )

            self._balances[sender_norm] = sender_balance - amount
            self._balances[recipient_norm] = self._balances.get(recipient_norm, 0) + amount
            self._events.append(TransferEvent(sender_norm, recipient_norm, amount))

        logger.debug(
            "Token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            },
        )
        return True

    def mint(self, caller: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            OwnershipError: caller is not the owner
            CapExceeded: total supply would exceed cap
        """
        to_norm = normalize_address(to, "recipient")
        self._validate_recipient(to_norm)
        require_uint256(amount, "amount")

        with self._lock:
            self._require_owner(caller)
            new_supply = self._total_supply + amount
            if new_supply > self._cap:
                raise CapExceeded(
                    "mint would exceed cap",
                    {"new_supply": new_supply, "cap": self._cap},
                )

            self._total_supply = new_supply
            self._balances[to_norm] = self._balances.get(to_norm, 0) + amount
            self._events.append(TransferEvent(ZERO_ADDRESS, to_norm, amount))

        logger.info(
            "Token mint",
            extra={
                "event": "token.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": new_supply,
            },
        )
        return True

    def burn(self, holder: str, amount: int) -> bool:
        """
        Burn tokens from holder's balance.

        Raises:
            InsufficientBalance: holder holds less than amount
        """
        holder_norm = normalize_address(holder, "holder")
        require_uint256(amount, "amount")

        with self._lock:
            balance = self._balances.get(holder_norm, 0)
            if balance < amount:
                raise InsufficientBalance(
                    "burn amount exceeds balance",
                    {"amount": amount, "balance": balance},
                )
            self._balances[holder_norm] = balance - amount
            self._total_supply -= amount
            self._events.append(TransferEvent(holder_norm, ZERO_ADDRESS, amount))
            new_supply = self._total_supply

        logger.info(
            "Token burn",
            extra={
                "event": "token.burn",
                "token": self.symbol,
                "from": holder_norm[:10],
                "amount": amount,
                "new_supply": new_supply,
            },
        )
        return True

    def transfer_ownership(self, caller: str, new_owner: str) -> bool:
        """Hand minting rights to new_owner (owner only)."""
        new_owner_norm = normalize_address(new_owner, "new owner")
        self._validate_recipient(new_owner_norm)
        with self._lock:
            self._require_owner(caller)
            previous = self._owner
            self._owner = new_owner_norm

        logger.info(
            "Ownership transferred",
            extra={
                "event": "token.ownership",
                "token": self.symbol,
                "previous": previous[:10],
                "owner": new_owner_norm[:10],
            },
        )
        return True

    # ==================== Atomic Blocks ====================

    @contextmanager
    def transaction(self) -> Iterator["CapsuleToken"]:
        """
        Run a block of token operations as one unit.

        Holds the token lock for the whole block. If the block raises,
        balances, supply, owner and events are restored before the
        exception propagates.
        """
        with self._lock:
            balances = dict(self._balances)
            supply   = self._total_supply
            owner    = self._owner
            n_events = len(self._events)
            try:
                yield self
            except BaseException:
                self._balances     = balances
                self._total_supply = supply
                self._owner        = owner
                del self._events[n_events:]
                raise

    # ==================== Internal Helpers ====================

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller, "caller") != self._owner:
            raise OwnershipError(
                "caller is not the owner", {"caller": caller}
            )

    @staticmethod
    def _validate_recipient(address: str) -> None:
        if address == ZERO_ADDRESS:
            raise ValidationError("zero address not allowed as recipient")

    def to_dict(self) -> Dict:
        """Serialize token state. Amounts are decimal strings."""
        with self._lock:
            return {
                "name": self.name,
                "symbol": self.symbol,
                "decimals": self._decimals,
                "cap": str(self._cap),
                "owner": self._owner,
                "total_supply": str(self._total_supply),
                "balances": {a: str(b) for a, b in self._balances.items()},
            }

    def __repr__(self) -> str:
        return (
            f"CapsuleToken(symbol={self.symbol!r}, "
            f"supply={self.total_supply}, cap={self.cap})"
        )
