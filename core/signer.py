"""
Request Signer

HMAC over canonical request bytes. The hash algorithm, how the secret is
encoded and how the digest is rendered are exchange parameters, so one
Signer class covers every scheme:

    Exchange   Algorithm   Secret     Output
    binance    sha256      raw        hex
    gdax       sha256      base64     base64
    gemini     sha384      raw        hex

Signers are stateless; sign() is a pure function of (secret, message).
"""

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Union

_KEY_ENCODINGS = ("raw", "base64")
_OUTPUT_ENCODINGS = ("hex", "base64")


@dataclass(frozen=True)
class Signer:
    """
    HMAC signer with exchange-specific encodings.

    Attributes:
        algorithm: hashlib algorithm name ("sha256", "sha384", "sha512")
        key_encoding: "raw" uses the secret's UTF-8 bytes, "base64" decodes it first
        output_encoding: "hex" or "base64" rendering of the digest

    Example:
        >>> Signer("sha256").sign("key", "The quick brown fox jumps over the lazy dog")
        'f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8'
    """

    algorithm: str = "sha256"
    key_encoding: str = "raw"
    output_encoding: str = "hex"

    def __post_init__(self) -> None:
        if self.algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: '{self.algorithm}'")
        if self.key_encoding not in _KEY_ENCODINGS:
            raise ValueError(f"key_encoding must be one of {_KEY_ENCODINGS}, got '{self.key_encoding}'")
        if self.output_encoding not in _OUTPUT_ENCODINGS:
            raise ValueError(f"output_encoding must be one of {_OUTPUT_ENCODINGS}, got '{self.output_encoding}'")

    def _key(self, secret: str) -> bytes:
        if self.key_encoding == "raw":
            return secret.encode("utf-8")
        try:
            return base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Secret is not valid base64") from e

    def sign(self, secret: str, message: Union[str, bytes]) -> str:
        """
        Compute the signature of a message.

        Args:
            secret: Credential secret, in the signer's key encoding
            message: Canonical request string or bytes

        Returns:
            Signature rendered in the signer's output encoding

        Raises:
            ValueError: If the secret cannot be decoded
        """
        if isinstance(message, str):
            message = message.encode("utf-8")
        digest = hmac.new(self._key(secret), message, self.algorithm).digest()
        if self.output_encoding == "hex":
            return digest.hex()
        return base64.b64encode(digest).decode("ascii")


HMAC_SHA256_HEX = Signer("sha256", "raw", "hex")
HMAC_SHA256_B64_KEY_B64 = Signer("sha256", "base64", "base64")
HMAC_SHA384_HEX = Signer("sha384", "raw", "hex")
