import base58
import pytest
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from pumpdesk.execution.errors import ConfigError
from pumpdesk.execution.signer import WalletSigner

from fakes import unsigned_tx_bytes


def test_from_base58_loads_public_key():
    keypair = Keypair()
    signer = WalletSigner.from_base58(base58.b58encode(bytes(keypair)).decode())
    assert signer.public_key == str(keypair.pubkey())


def test_invalid_secret_is_config_error_without_leaking_it():
    secret = "not-a-real-secret-key"
    with pytest.raises(ConfigError) as exc:
        WalletSigner.from_base58(secret)
    assert secret not in str(exc.value)


def test_repr_shows_only_public_key():
    keypair = Keypair()
    signer = WalletSigner(keypair)
    text = repr(signer)
    assert signer.public_key in text
    assert base58.b58encode(bytes(keypair)).decode() not in text


def test_sign_produces_verifiable_signature(signer):
    unsigned = VersionedTransaction.from_bytes(unsigned_tx_bytes(Pubkey.from_string(signer.public_key)))

    signed = signer.sign(unsigned)

    tx = VersionedTransaction.from_bytes(signed.raw)
    assert str(tx.signatures[0]) == signed.signature
    assert signed.wallet == signer.public_key
    assert tx.signatures[0].verify(tx.message.account_keys[0], to_bytes_versioned(tx.message))


def test_sign_rejects_transaction_for_another_wallet(signers):
    other = Pubkey.from_string(signers[1].public_key)
    unsigned = VersionedTransaction.from_bytes(unsigned_tx_bytes(other))
    with pytest.raises(Exception):
        signers[0].sign(unsigned)


def test_signers_compare_by_public_key():
    keypair = Keypair()
    assert WalletSigner(keypair) == WalletSigner(keypair)
    assert len({WalletSigner(keypair), WalletSigner(keypair)}) == 1
