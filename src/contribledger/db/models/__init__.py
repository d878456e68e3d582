from contribledger.db.models.contribution import Contribution
from contribledger.db.models.scan_state import ScanCursor, ScanLease
from contribledger.db.models.wallet import Wallet

__all__ = [
    "Contribution",
    "ScanCursor",
    "ScanLease",
    "Wallet",
]
