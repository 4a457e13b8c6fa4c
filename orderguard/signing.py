"""
OrderGuard Cryptographic Signing

Asymmetric sign/verify for client envelopes.

Uses RSA-PSS (MGF1-SHA512, maximum salt length) over SHA-512.
Keys are exchanged as DER bytes: SubjectPublicKeyInfo for public
keys and unencrypted PKCS#8 for private keys.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .config import MIN_RSA_KEY_SIZE, RSA_KEY_SIZE
from .errors import InvalidKeyMaterial, KeyGenerationFailure
from .util import key_fingerprint

ALGORITHM = "RSA-PSS-SHA512"
PUBLIC_EXPONENT = 65537


def _pss() -> padding.PSS:
    return padding.PSS(
        mgf=padding.MGF1(hashes.SHA512()),
        salt_length=padding.PSS.MAX_LENGTH,
    )


@dataclass(frozen=True)
class KeyPair:
    """RSA key pair as DER bytes."""
    public_key: bytes
    private_key: bytes = field(repr=False)
    key_size: int
    algorithm: str = ALGORITHM

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.public_key)


@lru_cache(maxsize=1024)
def _load_public_key(der: bytes) -> rsa.RSAPublicKey:
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyMaterial(f"Failed to load public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise InvalidKeyMaterial("Provided public key is not RSA")
    return key


def _load_private_key(der: bytes) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyMaterial(f"Failed to load private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidKeyMaterial("Provided private key is not RSA")
    return key


class SignatureEngine:
    """
    RSA-PSS signing service.

    Holds no key material itself; callers pass the key bytes for each
    operation. Loaded public keys are cached by their DER bytes.
    """

    def __init__(self, key_size: int = RSA_KEY_SIZE, min_key_size: int = MIN_RSA_KEY_SIZE):
        self.key_size = key_size
        self.min_key_size = min_key_size

    def generate_key_pair(self, key_size: Optional[int] = None) -> KeyPair:
        """
        Generate a new RSA key pair.

        Args:
            key_size: Modulus size in bits (default: engine key size)

        Returns:
            KeyPair with DER-encoded public and private keys

        Raises:
            KeyGenerationFailure: If the size is below the minimum or
                generation fails
        """
        size = key_size or self.key_size
        if size < self.min_key_size:
            raise KeyGenerationFailure(
                f"RSA key size {size} is below the minimum of {self.min_key_size} bits"
            )

        try:
            private = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=size)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationFailure(f"RSA key generation failed: {e}") from e

        return KeyPair(
            public_key=private.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ),
            private_key=private.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ),
            key_size=size,
        )

    def load_public_key(self, public_key: bytes) -> rsa.RSAPublicKey:
        """
        Load and check a public key.

        Raises:
            InvalidKeyMaterial: If the bytes are not an RSA public key of
                at least the minimum size
        """
        key = _load_public_key(bytes(public_key))
        if key.key_size < self.min_key_size:
            raise InvalidKeyMaterial(
                f"RSA key size {key.key_size} is below the minimum of {self.min_key_size} bits"
            )
        return key

    def sign(self, payload: bytes, private_key: bytes) -> bytes:
        """
        Sign payload bytes.

        Raises:
            InvalidKeyMaterial: If the private key cannot be loaded
        """
        key = _load_private_key(bytes(private_key))
        return key.sign(payload, _pss(), hashes.SHA512())

    def verify(self, payload: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify a signature over payload bytes.

        Returns:
            True if the signature is valid, False otherwise. Malformed
            keys or signatures are reported as False, never raised.
        """
        try:
            key = self.load_public_key(public_key)
            key.verify(bytes(signature), bytes(payload), _pss(), hashes.SHA512())
            return True
        except (InvalidSignature, InvalidKeyMaterial, ValueError, TypeError):
            return False


# Convenience functions

def generate_signing_key(key_size: int = RSA_KEY_SIZE) -> Tuple[bytes, bytes]:
    """
    Generate an RSA key pair.

    Returns:
        Tuple of (private_key_der, public_key_der)
    """
    pair = SignatureEngine().generate_key_pair(key_size)
    return pair.private_key, pair.public_key


def sign_data(data: bytes, private_key: bytes) -> bytes:
    """Sign data with an RSA private key."""
    return SignatureEngine().sign(data, private_key)


def verify_signature(data: bytes, signature: bytes, public_key: bytes) -> bool:
    """Verify an RSA-PSS signature."""
    return SignatureEngine().verify(data, signature, public_key)
