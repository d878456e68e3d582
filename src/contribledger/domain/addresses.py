"""AddressCodec: per-chain address canonicalization and comparison."""

import logging
import re

import base58

from contribledger.domain.chains import CHAIN_SPECS
from contribledger.domain.enums import Chain, ChainFamily
from contribledger.exceptions import UndecodableAddress

logger = logging.getLogger(__name__)

_RE_EVM = re.compile(r"^(0x)?([0-9a-fA-F]{40})$")
_RE_TRON_HEX = re.compile(r"^(0x)?(41[0-9a-fA-F]{40})$")
_RE_STELLAR = re.compile(r"^G[A-Z2-7]{55}$")
_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

# Checksum residues: BIP-173 bech32 and BIP-350 bech32m
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3

TRON_PREFIX = 0x41
XRPL_ACCOUNT_PREFIX = 0x00
SOLANA_PUBKEY_BYTES = 32

# Base58Check version bytes accepted per UTXO chain (P2PKH, P2SH)
UTXO_VERSION_BYTES: dict[Chain, set[int]] = {
    Chain.BTC: {0x00, 0x05},
    Chain.LTC: {0x30, 0x32, 0x05},
    Chain.DOGE: {0x1E, 0x16},
}

# Segwit human-readable parts per UTXO chain
UTXO_BECH32_HRPS: dict[Chain, tuple[str, ...]] = {
    Chain.BTC: ("bc",),
    Chain.LTC: ("ltc",),
    Chain.DOGE: (),
}

COSMOS_HRP = "cosmos"


def _bech32_polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for i, gen in enumerate(_BECH32_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _bech32_ok(addr: str, hrps: tuple[str, ...], segwit: bool = False) -> bool:
    """HRP, charset and checksum. Segwit v0 programs use bech32, v1 and later bech32m."""
    if addr != addr.lower() and addr != addr.upper():
        return False  # mixed case is invalid bech32
    lowered = addr.lower()
    if not 14 <= len(lowered) <= 90 or "1" not in lowered:
        return False
    hrp, _, data = lowered.rpartition("1")
    if hrp not in hrps or len(data) < 6 or any(c not in _BECH32_CHARSET for c in data):
        return False

    values = [_BECH32_CHARSET.index(c) for c in data]
    expanded = [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]
    residue = _bech32_polymod(expanded + values)
    if not segwit:
        return residue == BECH32_CONST
    version = values[0]
    if version > 16:
        return False
    return residue == (BECH32_CONST if version == 0 else BECH32M_CONST)


def _b58check_payload(raw: str) -> bytes:
    try:
        return base58.b58decode_check(raw)
    except ValueError as e:
        raise UndecodableAddress(f"Bad Base58Check address: {raw!r}") from e


def _canonical_evm(raw: str) -> str:
    m = _RE_EVM.match(raw)
    if not m:
        raise UndecodableAddress(f"Not an EVM address: {raw!r}")
    return "0x" + m.group(2).lower()


def tron_hex_to_base58(hex_addr: str) -> str:
    """Convert a 41-prefixed hex Tron address (as returned by TronGrid) to its T... form."""
    m = _RE_TRON_HEX.match(hex_addr.strip())
    if not m:
        raise UndecodableAddress(f"Not a Tron hex address: {hex_addr!r}")
    return base58.b58encode_check(bytes.fromhex(m.group(2))).decode()


def _canonical_tron(raw: str) -> str:
    if _RE_TRON_HEX.match(raw):
        return tron_hex_to_base58(raw)
    payload = _b58check_payload(raw)
    if len(payload) != 21 or payload[0] != TRON_PREFIX:
        raise UndecodableAddress(f"Tron address has wrong prefix/length: {raw!r}")
    # Re-derive rather than trusting the submitted string
    return base58.b58encode_check(payload).decode()


def _canonical_utxo(chain: Chain, raw: str) -> str:
    if _bech32_ok(raw, UTXO_BECH32_HRPS[chain], segwit=True):
        return raw.lower()
    payload = _b58check_payload(raw)
    if len(payload) != 21 or payload[0] not in UTXO_VERSION_BYTES[chain]:
        raise UndecodableAddress(f"{chain.value} address has wrong version/length: {raw!r}")
    return base58.b58encode_check(payload).decode()


def _canonical_cosmos(raw: str) -> str:
    if not _bech32_ok(raw, (COSMOS_HRP,)):
        raise UndecodableAddress(f"Not a cosmos address: {raw!r}")
    return raw.lower()


def _canonical_stellar(raw: str) -> str:
    if not _RE_STELLAR.match(raw):
        raise UndecodableAddress(f"Not a Stellar account id: {raw!r}")
    return raw


def _canonical_ss58(raw: str) -> str:
    try:
        decoded = base58.b58decode(raw)
    except ValueError as e:
        raise UndecodableAddress(f"Not an SS58 address: {raw!r}") from e
    # 1- or 2-byte network prefix + 32-byte account id + 2-byte checksum
    if len(decoded) not in (35, 36):
        raise UndecodableAddress(f"SS58 address has wrong length: {raw!r}")
    return raw


def _canonical_solana(raw: str) -> str:
    try:
        decoded = base58.b58decode(raw)
    except ValueError as e:
        raise UndecodableAddress(f"Not a Solana address: {raw!r}") from e
    if len(decoded) != SOLANA_PUBKEY_BYTES:
        raise UndecodableAddress(f"Solana address has wrong length: {raw!r}")
    return raw


def _canonical_xrpl(raw: str) -> str:
    """Classic r-address: Base58Check over the Ripple alphabet, account id prefix 0x00."""
    try:
        payload = base58.b58decode_check(raw, alphabet=base58.RIPPLE_ALPHABET)
    except ValueError as e:
        raise UndecodableAddress(f"Bad XRPL address: {raw!r}") from e
    if len(payload) != 21 or payload[0] != XRPL_ACCOUNT_PREFIX:
        raise UndecodableAddress(f"XRPL address has wrong prefix/length: {raw!r}")
    return base58.b58encode_check(payload, alphabet=base58.RIPPLE_ALPHABET).decode()


def canonicalize(chain: Chain, raw: str | None) -> str:
    """Return the canonical form of an address on a chain, raising UndecodableAddress."""
    value = (raw or "").strip()
    if not value:
        raise UndecodableAddress("Empty address")

    family = CHAIN_SPECS[chain].family
    if family == ChainFamily.EVM:
        return _canonical_evm(value)
    if family == ChainFamily.TRON:
        return _canonical_tron(value)
    if family == ChainFamily.UTXO:
        return _canonical_utxo(chain, value)
    if family == ChainFamily.COSMOS:
        return _canonical_cosmos(value)
    if family == ChainFamily.STELLAR:
        return _canonical_stellar(value)
    if family == ChainFamily.SUBSTRATE:
        return _canonical_ss58(value)
    if family == ChainFamily.SOLANA:
        return _canonical_solana(value)
    if family == ChainFamily.XRPL:
        return _canonical_xrpl(value)
    raise UndecodableAddress(f"No codec for chain {chain.value}")


def try_canonicalize(chain: Chain, raw: str | None) -> str | None:
    try:
        return canonicalize(chain, raw)
    except UndecodableAddress:
        logger.debug("Skipping undecodable %s address %r", chain.value, raw)
        return None


def equals(chain: Chain, a: str | None, b: str | None) -> bool:
    """Compare two addresses by canonical form. False if either side does not decode."""
    ca = try_canonicalize(chain, a)
    cb = try_canonicalize(chain, b)
    return ca is not None and ca == cb
