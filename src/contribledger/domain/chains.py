"""Static per-chain parameters and chain identifier / transaction hash normalization."""

import re

import base58
from pydantic import BaseModel, ConfigDict

from contribledger.domain.enums import Chain, ChainFamily
from contribledger.exceptions import InvalidPayload, UnsupportedChain

_RE_HEX64 = re.compile(r"^(0x)?([0-9a-fA-F]{64})$")
_RE_0X_HEX64 = re.compile(r"^0x([0-9a-fA-F]{64})$")
_RE_BARE_HEX64 = re.compile(r"^([0-9a-fA-F]{64})$")
_RE_BASE58 = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{43,88}$")

SOLANA_SIGNATURE_BYTES = 64


class ChainSpec(BaseModel):
    """Fixed characteristics of one chain."""

    model_config = ConfigDict(frozen=True)

    chain: Chain
    family: ChainFamily
    symbol: str
    decimals: int
    # One ledger row per (tx_hash, wallet_id) instead of per tx_hash
    per_wallet: bool
    min_confirmations: int
    avg_block_seconds: float
    default_lookback: int = 200

    @property
    def slug(self) -> str:
        return self.chain.value


CHAIN_SPECS: dict[Chain, ChainSpec] = {
    spec.chain: spec
    for spec in [
        ChainSpec(chain=Chain.ETH, family=ChainFamily.EVM, symbol="ETH", decimals=18, per_wallet=False,
                  min_confirmations=12, avg_block_seconds=12),
        ChainSpec(chain=Chain.ARB, family=ChainFamily.EVM, symbol="ETH", decimals=18, per_wallet=False,
                  min_confirmations=2, avg_block_seconds=0.25, default_lookback=2000),
        ChainSpec(chain=Chain.OP, family=ChainFamily.EVM, symbol="ETH", decimals=18, per_wallet=False,
                  min_confirmations=2, avg_block_seconds=2, default_lookback=1000),
        ChainSpec(chain=Chain.POL, family=ChainFamily.EVM, symbol="POL", decimals=18, per_wallet=False,
                  min_confirmations=32, avg_block_seconds=2, default_lookback=1000),
        ChainSpec(chain=Chain.AVAX, family=ChainFamily.EVM, symbol="AVAX", decimals=18, per_wallet=False,
                  min_confirmations=2, avg_block_seconds=2, default_lookback=1000),
        ChainSpec(chain=Chain.BSC, family=ChainFamily.EVM, symbol="BNB", decimals=18, per_wallet=False,
                  min_confirmations=3, avg_block_seconds=3, default_lookback=1000),
        ChainSpec(chain=Chain.BTC, family=ChainFamily.UTXO, symbol="BTC", decimals=8, per_wallet=True,
                  min_confirmations=2, avg_block_seconds=600, default_lookback=6),
        ChainSpec(chain=Chain.LTC, family=ChainFamily.UTXO, symbol="LTC", decimals=8, per_wallet=True,
                  min_confirmations=6, avg_block_seconds=150, default_lookback=24),
        ChainSpec(chain=Chain.DOGE, family=ChainFamily.UTXO, symbol="DOGE", decimals=8, per_wallet=True,
                  min_confirmations=6, avg_block_seconds=60, default_lookback=60),
        ChainSpec(chain=Chain.TRX, family=ChainFamily.TRON, symbol="TRX", decimals=6, per_wallet=True,
                  min_confirmations=19, avg_block_seconds=3, default_lookback=1000),
        ChainSpec(chain=Chain.ATOM, family=ChainFamily.COSMOS, symbol="ATOM", decimals=6, per_wallet=True,
                  min_confirmations=3, avg_block_seconds=6, default_lookback=500),
        ChainSpec(chain=Chain.XLM, family=ChainFamily.STELLAR, symbol="XLM", decimals=7, per_wallet=True,
                  min_confirmations=0, avg_block_seconds=5.5, default_lookback=500),
        ChainSpec(chain=Chain.DOT, family=ChainFamily.SUBSTRATE, symbol="DOT", decimals=10, per_wallet=True,
                  min_confirmations=0, avg_block_seconds=6, default_lookback=300),
        # Tips are the finalized slot and the last validated ledger, so no extra depth is needed
        ChainSpec(chain=Chain.SOL, family=ChainFamily.SOLANA, symbol="SOL", decimals=9, per_wallet=True,
                  min_confirmations=0, avg_block_seconds=0.4, default_lookback=150),
        ChainSpec(chain=Chain.XRP, family=ChainFamily.XRPL, symbol="XRP", decimals=6, per_wallet=False,
                  min_confirmations=0, avg_block_seconds=3.5, default_lookback=100),
    ]
}

CHAIN_ALIASES: dict[str, Chain] = {
    "ethereum": Chain.ETH,
    "arbitrum": Chain.ARB,
    "optimism": Chain.OP,
    "polygon": Chain.POL,
    "matic": Chain.POL,
    "avalanche": Chain.AVAX,
    "bnb": Chain.BSC,
    "bitcoin": Chain.BTC,
    "litecoin": Chain.LTC,
    "dogecoin": Chain.DOGE,
    "tron": Chain.TRX,
    "cosmos": Chain.ATOM,
    "stellar": Chain.XLM,
    "polkadot": Chain.DOT,
    "solana": Chain.SOL,
    "ripple": Chain.XRP,
    "xrpl": Chain.XRP,
}


def resolve_chain(raw: str | Chain | None) -> ChainSpec:
    """Map a user-supplied chain identifier (slug or alias, any case) to its ChainSpec."""
    if isinstance(raw, Chain):
        return CHAIN_SPECS[raw]
    key = (raw or "").strip().lower()
    chain = CHAIN_ALIASES.get(key)
    if chain is None:
        try:
            chain = Chain(key)
        except ValueError:
            raise UnsupportedChain(f"Unsupported chain: {raw!r}") from None
    return CHAIN_SPECS[chain]


def normalize_tx_hash(spec: ChainSpec, raw: str | None) -> str:
    """Validate a transaction identifier against the chain's format and return its canonical form.

    EVM: 64 hex, optional 0x -> 0x + lower.  UTXO/Tron: 64 hex, optional 0x -> lower, no prefix.
    Cosmos and XRPL: bare 64 hex -> upper.  Stellar: bare 64 hex -> lower.  Substrate: 0x + 64 hex -> lower.
    Solana: base58 signature of 64 bytes, case-sensitive, returned as given.
    """
    value = (raw or "").strip()
    family = spec.family

    if family == ChainFamily.EVM:
        m = _RE_HEX64.match(value)
        if m:
            return "0x" + m.group(2).lower()
    elif family in (ChainFamily.UTXO, ChainFamily.TRON):
        m = _RE_HEX64.match(value)
        if m:
            return m.group(2).lower()
    elif family in (ChainFamily.COSMOS, ChainFamily.XRPL):
        m = _RE_BARE_HEX64.match(value)
        if m:
            return m.group(1).upper()
    elif family == ChainFamily.STELLAR:
        m = _RE_BARE_HEX64.match(value)
        if m:
            return m.group(1).lower()
    elif family == ChainFamily.SUBSTRATE:
        m = _RE_0X_HEX64.match(value)
        if m:
            return "0x" + m.group(1).lower()
    elif family == ChainFamily.SOLANA:
        if _RE_BASE58.match(value) and len(base58.b58decode(value)) == SOLANA_SIGNATURE_BYTES:
            return value

    raise InvalidPayload("Invalid transaction hash format.")


def natural_key(chain: Chain, tx_hash: str, wallet_id: object | None = None) -> str:
    """Ledger uniqueness key: chain:tx_hash for per-transaction chains, chain:tx_hash:wallet for per-wallet."""
    if CHAIN_SPECS[chain].per_wallet and wallet_id is not None:
        return f"{chain.value}:{tx_hash}:{wallet_id}"
    return f"{chain.value}:{tx_hash}"
