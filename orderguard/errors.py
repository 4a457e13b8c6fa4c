"""
OrderGuard error taxonomy.

Every failure below is scoped to the operation that raised it. The
protocol layer resolves them at the request boundary; none of them is
allowed to terminate the server.

Signature invalidity is deliberately absent: a signature that does not
verify is an expected outcome, reported as ``False``.
"""


class OrderGuardError(Exception):
    """Base class for all OrderGuard errors."""


class KeyGenerationFailure(OrderGuardError):
    """Asymmetric key pair or symmetric master key could not be generated."""


class InvalidKeyMaterial(OrderGuardError, KeyError):
    """Key bytes could not be loaded as the expected key type."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return Exception.__str__(self)


class RegistrationRejected(OrderGuardError):
    """The registry signalled that no client id could be assigned."""


class UnknownClient(OrderGuardError, LookupError):
    """A client id does not resolve to a registered public key."""

    def __init__(self, client_id: int):
        self.client_id = client_id
        super().__init__(f"Unknown client id: {client_id}")


class EncryptionFailure(OrderGuardError):
    """An order could not be encrypted under the master key."""


class DecryptionFailure(OrderGuardError):
    """A stored ciphertext could not be decrypted or authenticated."""


class MalformedPayload(OrderGuardError):
    """An envelope or order could not be parsed from its wire form."""
