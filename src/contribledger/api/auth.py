import hmac

from fastapi import Depends, Header

from contribledger.api.deps import get_settings
from contribledger.config import Settings
from contribledger.exceptions import Unauthorized


async def require_cron_secret(
    x_cron_secret: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Shared-secret check for trigger endpoints. An unset secret rejects everything."""
    expected = settings.cron_secret
    if not expected or not x_cron_secret:
        raise Unauthorized("Missing or empty x-cron-secret")
    if not hmac.compare_digest(x_cron_secret.encode(), expected.encode()):
        raise Unauthorized("Bad x-cron-secret")
