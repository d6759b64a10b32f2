"""Exception types for the settlement engine.

Every rejection is raised before any state is committed. Each class names the
exact rule that was violated; ``code`` is the stable identifier used by the
invariant registry and in logs.
"""

from __future__ import annotations


class MarketError(Exception):
    """Base class for all engine errors."""

    code = "market"


# -- Validation ----------------------------------------------------------------

class MarketValidationError(MarketError):
    """An update was rejected before any state change."""

    code = "validation"


class MarketOperatorNotAllowedError(MarketValidationError):
    """Sender is neither the account, an operator, a signer nor an extension."""

    code = "unauthorized"


class MarketProtectedError(MarketValidationError):
    """Account has a pending liquidation order."""

    code = "protected"


class MarketSettleOnlyError(MarketValidationError):
    code = "settle_only"


class MarketClosedError(MarketValidationError):
    code = "closed"


class MarketNotSingleSidedError(MarketValidationError):
    code = "single_sided"


class MarketExceedsPendingIdLimitError(MarketValidationError):
    code = "pending"


class MarketStalePriceError(MarketValidationError):
    code = "stale"


class MarketMakerOverLimitError(MarketValidationError):
    code = "maker_limit"


class MarketEfficiencyUnderLimitError(MarketValidationError):
    code = "efficiency"


class MarketInsufficientLiquidityError(MarketValidationError):
    code = "liquidity"


class MarketInsufficientCollateralError(MarketValidationError):
    code = "collateral"


class MarketInsufficientMarginError(MarketValidationError):
    code = "margin"


class MarketInvalidIntentFeeError(MarketValidationError):
    """Intent fee above 100%."""

    code = "intent_fee"


class MarketInvalidReferrerError(MarketValidationError):
    code = "referrer"


class MarketIntentPriceDeviationError(MarketValidationError):
    code = "price_deviation"


# -- State ---------------------------------------------------------------------

class MarketStateError(MarketError):
    code = "state"


class MarketOverCloseError(MarketStateError):
    """Order closes more than the settled plus pending position."""

    code = "over_close"


class MarketInvalidProtectionError(MarketStateError):
    """Liquidation attempted on an account that meets maintenance."""

    code = "invalid_protection"


class MarketInvalidFillError(MarketStateError):
    """Intent and fill do not belong together (domain, account or intent mismatch)."""

    code = "invalid_fill"


class MarketInvariantError(MarketStateError):
    """Raised when a post-state violates one or more ledger invariants."""

    code = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


# -- Authorization (verifier) --------------------------------------------------

class VerifierError(MarketError):
    code = "verifier"


class VerifierInvalidSignatureError(VerifierError):
    code = "invalid_signature"


class VerifierInvalidDomainError(VerifierError):
    code = "invalid_domain"


class VerifierInvalidExpiryError(VerifierError):
    code = "invalid_expiry"


class VerifierInvalidNonceError(VerifierError):
    code = "invalid_nonce"


class VerifierInvalidGroupError(VerifierError):
    code = "invalid_group"


class VerifierInvalidSignerError(VerifierError):
    code = "invalid_signer"
