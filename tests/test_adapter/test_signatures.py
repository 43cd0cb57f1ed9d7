"""
Tests for the payer-side signing helpers and signature parsing.
"""
import re

import pytest
from eth_account import Account

from x402_facilitator.adapters.evm.schemas import EVMECDSASignature
from x402_facilitator.adapters.evm.signatures import (
    build_payment_payload,
    generate_nonce,
    sign_erc3009_authorization,
)


def test_signed_payload_shape(payer_private_key, pay_to):
    exact = sign_erc3009_authorization(
        private_key=payer_private_key,
        recipient=pay_to,
        value=250_000,
        valid_after=0,
        valid_before=1_900_000_000,
    )

    assert re.fullmatch(r"0x[0-9a-f]{130}", exact.signature)
    assert exact.authorization.from_ == Account.from_key(payer_private_key).address
    assert exact.authorization.value == "250000"
    assert re.fullmatch(r"0x[0-9a-f]{64}", exact.authorization.nonce)

    sig = EVMECDSASignature.from_hex(exact.signature)
    assert sig.v in (27, 28)
    assert sig.to_packed_hex() == exact.signature


def test_random_nonces_differ():
    assert generate_nonce() != generate_nonce()


def test_rejects_empty_validity_window(payer_private_key, pay_to):
    with pytest.raises(ValueError):
        sign_erc3009_authorization(
            private_key=payer_private_key,
            recipient=pay_to,
            value=1,
            valid_after=100,
            valid_before=100,
        )


def test_payment_payload_envelope(payer_private_key, pay_to):
    exact = sign_erc3009_authorization(
        private_key=payer_private_key,
        recipient=pay_to,
        value=1,
        valid_after=0,
        valid_before=10,
    )
    payload = build_payment_payload(exact)
    assert payload.x402Version == 2
    assert payload.scheme == "exact"
    assert payload.network == "eip155:1"
    assert payload.signature == exact.signature


def test_signature_components_split():
    packed = "0x" + "11" * 32 + "22" * 32 + "1c"
    sig = EVMECDSASignature.from_hex(packed)
    assert sig.r == "0x" + "11" * 32
    assert sig.s == "0x" + "22" * 32
    assert sig.v == 28
    assert sig.r_bytes == bytes([0x11]) * 32
    assert sig.vrs == (28, int("11" * 32, 16), int("22" * 32, 16))


@pytest.mark.parametrize(
    "packed",
    ["0x" + "11" * 64 + "00", "0x" + "11" * 64, "11" * 65, "0x" + "11" * 64 + "1b\n", None],
)
def test_signature_parse_failures_are_value_errors(packed):
    with pytest.raises(ValueError):
        EVMECDSASignature.from_hex(packed)
