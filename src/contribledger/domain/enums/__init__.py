from contribledger.domain.enums.chain import Chain, ChainFamily
from contribledger.domain.enums.outcome import ClaimCode, ContributionSource

__all__ = [
    "Chain",
    "ChainFamily",
    "ClaimCode",
    "ContributionSource",
]
