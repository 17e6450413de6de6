import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction
from pumpdesk.core.types import SignedTransaction
from .errors import ConfigError


class WalletSigner:
    """Holds one signing capability. Signing is its only operation."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair
        self.public_key = str(keypair.pubkey())

    @classmethod
    def from_base58(cls, secret_key: str) -> "WalletSigner":
        """Load a signer from a base58 encoded 64-byte secret key"""
        try:
            return cls(Keypair.from_bytes(base58.b58decode(secret_key)))
        except Exception as e:
            raise ConfigError(f"Invalid wallet secret key: {type(e).__name__}") from None

    def sign(self, unsigned: VersionedTransaction) -> SignedTransaction:
        """Sign a prebuilt transaction. The wallet must be its fee payer."""
        signed = VersionedTransaction(unsigned.message, [self._keypair])
        return SignedTransaction(
            wallet=self.public_key,
            raw=bytes(signed),
            signature=str(signed.signatures[0])
        )

    def __eq__(self, other) -> bool:
        return isinstance(other, WalletSigner) and other.public_key == self.public_key

    def __hash__(self) -> int:
        return hash(self.public_key)

    def __repr__(self) -> str:
        return f"WalletSigner({self.public_key})"
