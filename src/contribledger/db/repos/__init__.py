from contribledger.db.repos.contribution_repo import ContributionRepo
from contribledger.db.repos.scan_state_repo import ScanStateRepo
from contribledger.db.repos.wallet_repo import WalletRepo

__all__ = [
    "ContributionRepo",
    "ScanStateRepo",
    "WalletRepo",
]
