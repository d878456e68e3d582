import uuid

import pytest

from contribledger.domain.chains import CHAIN_SPECS, natural_key, normalize_tx_hash, resolve_chain
from contribledger.domain.enums import Chain, ChainFamily
from contribledger.exceptions import InvalidPayload, UnsupportedChain

HEX64 = "ab" * 32
SOL_SIGNATURE = "4ERs49G2G9aDXZ986XHvFySoCNYLpC7VsrYUJ88BbxssCk1Bz3MTgAHLbopbz9hoQgtVSzVPnqyKGTqnwmWJKP7n"
SOL_PUBKEY = "7DYCAhqwQSKqqL1h8V1XmY1BTcMWxrASQYKNMy87jeg3"


class TestResolveChain:
    def test_slug(self):
        assert resolve_chain("eth").chain == Chain.ETH

    def test_alias_and_case(self):
        assert resolve_chain(" Polygon ").chain == Chain.POL
        assert resolve_chain("ARBITRUM").chain == Chain.ARB
        assert resolve_chain("bitcoin").chain == Chain.BTC
        assert resolve_chain("Solana").chain == Chain.SOL
        assert resolve_chain("ripple").chain == Chain.XRP
        assert resolve_chain("xrpl").chain == Chain.XRP

    def test_enum_passthrough(self):
        assert resolve_chain(Chain.DOT).family == ChainFamily.SUBSTRATE

    @pytest.mark.parametrize("raw", ["bch", "ada", "", None])
    def test_unsupported(self, raw):
        with pytest.raises(UnsupportedChain):
            resolve_chain(raw)

    def test_every_chain_has_a_spec(self):
        assert set(CHAIN_SPECS) == set(Chain)


class TestNormalizeTxHash:
    def test_evm_adds_prefix_and_lowercases(self):
        spec = CHAIN_SPECS[Chain.ETH]
        assert normalize_tx_hash(spec, HEX64.upper()) == "0x" + HEX64
        assert normalize_tx_hash(spec, "0x" + HEX64.upper()) == "0x" + HEX64

    def test_utxo_strips_prefix(self):
        spec = CHAIN_SPECS[Chain.BTC]
        assert normalize_tx_hash(spec, "0x" + HEX64.upper()) == HEX64
        assert normalize_tx_hash(spec, f"  {HEX64}  ") == HEX64

    def test_cosmos_uppercases(self):
        assert normalize_tx_hash(CHAIN_SPECS[Chain.ATOM], HEX64) == HEX64.upper()

    def test_cosmos_rejects_prefix(self):
        with pytest.raises(InvalidPayload):
            normalize_tx_hash(CHAIN_SPECS[Chain.ATOM], "0x" + HEX64)

    def test_substrate_requires_prefix(self):
        spec = CHAIN_SPECS[Chain.DOT]
        assert normalize_tx_hash(spec, "0x" + HEX64.upper()) == "0x" + HEX64
        with pytest.raises(InvalidPayload):
            normalize_tx_hash(spec, HEX64)

    def test_xrpl_uppercases_bare_hex(self):
        spec = CHAIN_SPECS[Chain.XRP]
        assert normalize_tx_hash(spec, HEX64) == HEX64.upper()
        with pytest.raises(InvalidPayload):
            normalize_tx_hash(spec, "0x" + HEX64)

    def test_solana_signature_kept_as_given(self):
        spec = CHAIN_SPECS[Chain.SOL]
        assert normalize_tx_hash(spec, f" {SOL_SIGNATURE} ") == SOL_SIGNATURE

    @pytest.mark.parametrize("raw", [HEX64, SOL_SIGNATURE.lower(), SOL_PUBKEY, SOL_SIGNATURE + "0"])
    def test_solana_rejects_non_signatures(self, raw):
        with pytest.raises(InvalidPayload):
            normalize_tx_hash(CHAIN_SPECS[Chain.SOL], raw)

    @pytest.mark.parametrize("raw", ["", None, "0x1234", "zz" * 32, HEX64 + "00"])
    def test_malformed(self, raw):
        with pytest.raises(InvalidPayload):
            normalize_tx_hash(CHAIN_SPECS[Chain.ETH], raw)


class TestNaturalKey:
    def test_per_transaction_chain_ignores_wallet(self):
        assert natural_key(Chain.ETH, "0xabc", uuid.uuid4()) == "eth:0xabc"

    def test_per_wallet_chain_includes_wallet(self):
        wallet_id = uuid.uuid4()
        assert natural_key(Chain.BTC, "abc", wallet_id) == f"btc:abc:{wallet_id}"


class TestFinalizedTipChains:
    def test_solana_and_xrpl_need_no_extra_depth(self):
        assert CHAIN_SPECS[Chain.SOL].family == ChainFamily.SOLANA
        assert CHAIN_SPECS[Chain.SOL].decimals == 9
        assert CHAIN_SPECS[Chain.SOL].per_wallet
        assert CHAIN_SPECS[Chain.XRP].family == ChainFamily.XRPL
        assert CHAIN_SPECS[Chain.XRP].decimals == 6
        assert not CHAIN_SPECS[Chain.XRP].per_wallet
        assert CHAIN_SPECS[Chain.SOL].min_confirmations == 0
        assert CHAIN_SPECS[Chain.XRP].min_confirmations == 0
