"""
Error taxonomy for the field classification cascade.

Only StoreWriteError and ConfigError are expected to reach callers; the
others are raised inside a tier and handled by the orchestrator:

- SignalUnavailable: a matcher or model is not loaded (no vote)
- OracleTransportError: network/timeout on an oracle call (tier miss)
- AmbiguousTaxonomyResponse: oracle returned a token outside the taxonomy
- ValidationRejected: learned association failed validation (not persisted)
- GuardBlocked: boolean type on free-text field with no safe re-derivation
"""

from typing import Optional


class FieldCascadeError(Exception):
    """Base class for all classifier errors."""
    pass


class SignalUnavailable(FieldCascadeError):
    """Raised when an embedding or zero-shot signal cannot vote."""
    pass


class OracleTransportError(FieldCascadeError):
    """Raised when an oracle call fails on transport or times out."""
    pass


class AmbiguousTaxonomyResponse(FieldCascadeError):
    """Raised when the oracle answers with a token outside the taxonomy."""

    def __init__(self, token: str):
        super().__init__(f"Oracle returned out-of-taxonomy token: {token!r}")
        self.token = token


class ValidationRejected(FieldCascadeError):
    """Raised when a learned association fails validate_before_learning."""

    def __init__(self, field_type: str, reason: str):
        super().__init__(f"Refusing to learn '{field_type}': {reason}")
        self.field_type = field_type
        self.reason = reason


class GuardBlocked(FieldCascadeError):
    """Raised when the guard falls back to the inert type."""

    def __init__(self, blocked_type: str, fallback_type: Optional[str] = None):
        super().__init__(f"Blocked boolean type '{blocked_type}' on free-text field")
        self.blocked_type = blocked_type
        self.fallback_type = fallback_type


class StoreWriteError(FieldCascadeError):
    """Raised when a persisted store cannot be written to disk."""
    pass


class ConfigError(FieldCascadeError):
    """Raised when a config file cannot be loaded."""
    pass
