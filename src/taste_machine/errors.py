"""Error taxonomy for the rating engine.

Validation failures and infrastructure failures are exceptions.  "Not
enough candidates" is not: the selector returns a ``PoolExhausted`` value
(see ``taste_machine.engine.selector``) so the fallback is visible in the
return type.
"""

from __future__ import annotations


class TasteMachineError(Exception):
    """Base class for all engine errors."""


class ValidationFailed(TasteMachineError):
    """Malformed client input.  Rejected before anything is recorded."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class InvalidVote(ValidationFailed):
    """Self-matchup, winner outside the pair, or unknown vote weight."""


class InvalidSlider(ValidationFailed):
    """Slider score outside the accepted range."""


class NftNotFound(TasteMachineError):
    def __init__(self, nft_id: str) -> None:
        self.nft_id = nft_id
        super().__init__(f"NFT {nft_id} is not registered")


class TransientStoreError(TasteMachineError):
    """Timeout or connection failure that survived every retry attempt."""


class RecomputeError(TasteMachineError):
    """Recomputing a single NFT's aesthetic score failed."""

    def __init__(self, nft_id: str, message: str) -> None:
        self.nft_id = nft_id
        super().__init__(f"{nft_id}: {message}")


class DuplicateSuppressed(TasteMachineError):
    """Every candidate pair is still in cooldown.

    Internal to the selector, which resolves it by relaxing the cooldown
    for the current call; never surfaced to callers.
    """

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"no fresh pair after {attempts} attempts")
