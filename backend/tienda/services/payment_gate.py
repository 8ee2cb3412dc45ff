# Overview: Payment verification gate; decides whether a sale or purchase may settle.

from __future__ import annotations

from ..domain import METHOD_CASH, PAYMENT_METHODS
from ..errors import MissingPaymentProof, ValidationError

# Methods whose funds cannot be confirmed at the counter
PROOF_REQUIRED_METHODS = frozenset(m for m in PAYMENT_METHODS if m != METHOD_CASH)


def can_approve(payment_method: str, has_proof_artifact: bool) -> bool:
    if payment_method not in PAYMENT_METHODS:
        return False
    if payment_method == METHOD_CASH:
        return True
    return bool(has_proof_artifact)


def require_payment_proof(payment_method: str, artifact_ref: str | None) -> None:
    """
    Raise before any mutation when the method needs evidence that is absent.

    Unknown methods are a ValidationError, not a missing proof.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {payment_method}")
    if not can_approve(payment_method, bool(artifact_ref)):
        raise MissingPaymentProof(payment_method)
