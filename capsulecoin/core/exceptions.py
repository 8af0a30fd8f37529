"""
Capsule Coin Exception Hierarchy

All exceptions inherit from CapsuleError for easy catching.
Settlement rejections carry the SettlementState they map to.
"""

from typing import Optional


class CapsuleError(Exception):
    """Base exception for all Capsule Coin errors"""
    
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(CapsuleError):
    """Raised when an address, amount or other input is malformed"""
    pass


class ConfigError(CapsuleError):
    """Raised when configuration cannot be loaded or is invalid"""
    pass


class KeyNotFoundError(CapsuleError):
    """Raised when no signing key matches the requested address"""
    pass


class SignatureError(CapsuleError):
    """Raised when a signature cannot be processed"""
    pass


class MalformedSignature(SignatureError):
    """Signature bytes are structurally invalid (length, v, r or s out of range)"""
    state = "REJECTED_MALFORMED_SIGNATURE"


class LedgerError(CapsuleError):
    """Raised when replay ledger operations fail"""
    pass


class AlreadyConsumed(LedgerError):
    """Raised when an (issuer, nonce) key is consumed twice"""
    pass


class TokenError(CapsuleError):
    """Raised when a token ledger operation fails"""
    state: Optional[str] = None


class InsufficientBalance(TokenError):
    """Sender balance is below the requested amount"""
    state = "REJECTED_INSUFFICIENT_BALANCE"


class OwnershipError(TokenError):
    """Caller is not the token owner"""
    pass


class CapExceeded(TokenError):
    """Minting would push total supply above the cap"""
    pass


class SettlementError(CapsuleError):
    """Raised when a claim cannot be settled"""
    state: Optional[str] = None


class BadProof(SettlementError):
    """Signature does not recover to the issuer for the supplied fields"""
    state = "REJECTED_BAD_PROOF"


class TooEarly(SettlementError):
    """Current block height is below the claim's valid-from block"""
    state = "REJECTED_TOO_EARLY"


class AlreadyUsed(SettlementError):
    """The claim's nonce was already consumed for this issuer"""
    state = "REJECTED_ALREADY_USED"
