from enum import Enum


class Chain(str, Enum):
    """Supported chains. Values are the short slugs used in routes and ledger keys."""

    ETH = "eth"
    ARB = "arb"
    OP = "op"
    POL = "pol"
    AVAX = "avax"
    BSC = "bsc"
    BTC = "btc"
    LTC = "ltc"
    DOGE = "doge"
    TRX = "trx"
    ATOM = "atom"
    XLM = "xlm"
    DOT = "dot"
    SOL = "sol"
    XRP = "xrp"


class ChainFamily(str, Enum):
    """Wire protocol family. One ChainAdapter implementation per family."""

    EVM = "evm"
    UTXO = "utxo"
    COSMOS = "cosmos"
    SUBSTRATE = "substrate"
    STELLAR = "stellar"
    TRON = "tron"
    SOLANA = "solana"
    XRPL = "xrpl"
