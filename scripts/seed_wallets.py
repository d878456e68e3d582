"""Seed monitored wallets from a JSON file.

Usage:
    PYTHONPATH=src python scripts/seed_wallets.py wallets.json

The file holds a list of {"chain": "...", "address": "...", "label": "...", "symbol": "..."}.
Chains accept slugs or aliases ("eth", "ethereum", "bitcoin", ...).

Idempotent: wallets already present for (chain, address) are skipped.
Production wallets are maintained by the admin app; this is for local setups.
"""

import asyncio
import json
import logging
import sys

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s - %(message)s")
logger = logging.getLogger("seed_wallets")
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


async def main(path: str) -> None:
    from contribledger.config import settings
    from contribledger.db.session import build_engine, build_session_factory

    with open(path) as f:
        entries = json.load(f)

    print(f"Database: {settings.db_host}:{settings.db_port}/{settings.db_name}\n")
    engine = build_engine(settings.database_url, echo=False)
    session_factory = build_session_factory(engine)

    async with session_factory() as session:
        try:
            await seed(session, entries)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Seeding failed")
            sys.exit(1)

    await engine.dispose()


async def seed(session, entries: list[dict]) -> None:
    from contribledger.db.repos import WalletRepo
    from contribledger.domain.chains import resolve_chain

    repo = WalletRepo(session)
    created = skipped = 0

    for w in entries:
        spec = resolve_chain(w["chain"])
        if await repo.get_by_chain_and_address(spec.chain, w["address"]) is not None:
            print(f"  [skipped] {spec.slug:<5s} {w['address']}")
            skipped += 1
            continue
        wallet = await repo.create(chain=spec.chain, address=w["address"], symbol=w.get("symbol"), label=w.get("label"))
        print(f"  [created] {spec.slug:<5s} {wallet.address}  {wallet.label or ''}")
        created += 1

    print(f"\nDone. {created} wallets created, {skipped} skipped.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(main(sys.argv[1]))
