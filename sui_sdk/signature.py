# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Serialized user signatures, `flag || signature || public key`, and the intent
message every Sui signature commits to.
"""

from __future__ import annotations

import base64
import hashlib
import unittest
from typing import Dict, Tuple

from typing_extensions import Protocol

from .account_address import AccountAddress
from .bcs import Serializer, encoder

SIGNATURE_LENGTH: int = 64


class InvalidSerializedSignatureError(Exception):
    """
    A serialized signature had an unknown scheme flag or the wrong length.
    """

    def __init__(self):
        # Call the base class constructor with the parameters it needs
        super().__init__("invalid serialized signature")


class SignatureScheme:
    ED25519: int = 0x00
    SECP256K1: int = 0x01
    SECP256R1: int = 0x02

    PUBLIC_KEY_LENGTHS: Dict[int, int] = {
        ED25519: 32,
        SECP256K1: 33,
        SECP256R1: 33,
    }

    LABELS: Dict[int, str] = {
        ED25519: "ED25519",
        SECP256K1: "Secp256k1",
        SECP256R1: "Secp256r1",
    }

    @staticmethod
    def public_key_length(scheme: int) -> int:
        if scheme not in SignatureScheme.PUBLIC_KEY_LENGTHS:
            raise InvalidSerializedSignatureError()
        return SignatureScheme.PUBLIC_KEY_LENGTHS[scheme]

    @staticmethod
    def label(scheme: int) -> str:
        return SignatureScheme.LABELS[scheme]


def serialize_signature(scheme: int, signature: bytes, public_key: bytes) -> bytes:
    if len(signature) != SIGNATURE_LENGTH:
        raise InvalidSerializedSignatureError()
    if len(public_key) != SignatureScheme.public_key_length(scheme):
        raise InvalidSerializedSignatureError()
    return bytes([scheme]) + signature + public_key


def parse_serialized_signature(serialized: bytes) -> Tuple[int, bytes, bytes]:
    """Splits a serialized signature into its scheme flag, signature and public key."""
    if len(serialized) < 1 + SIGNATURE_LENGTH:
        raise InvalidSerializedSignatureError()
    scheme = serialized[0]
    expected = 1 + SIGNATURE_LENGTH + SignatureScheme.public_key_length(scheme)
    if len(serialized) != expected:
        raise InvalidSerializedSignatureError()
    return (
        scheme,
        bytes(serialized[1 : 1 + SIGNATURE_LENGTH]),
        bytes(serialized[1 + SIGNATURE_LENGTH :]),
    )


class UserSignature:
    """A single-key signature ready to be submitted with a transaction."""

    scheme: int
    signature: bytes
    public_key: bytes

    def __init__(self, scheme: int, signature: bytes, public_key: bytes):
        self.scheme = scheme
        self.signature = signature
        self.public_key = public_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UserSignature):
            return NotImplemented
        return (
            self.scheme == other.scheme
            and self.signature == other.signature
            and self.public_key == other.public_key
        )

    def __str__(self) -> str:
        return self.to_base64()

    @staticmethod
    def from_serialized(serialized: bytes) -> UserSignature:
        return UserSignature(*parse_serialized_signature(serialized))

    def serialized(self) -> bytes:
        return serialize_signature(self.scheme, self.signature, self.public_key)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialized()).decode()

    def to_dict(self) -> Dict[str, str]:
        return {
            "scheme": SignatureScheme.label(self.scheme),
            "signature": base64.b64encode(self.signature).decode(),
            "publicKey": base64.b64encode(self.public_key).decode(),
        }

    def address(self) -> AccountAddress:
        return AccountAddress.from_key(self.scheme, self.public_key)


class IntentScope:
    TRANSACTION_DATA: int = 0
    TRANSACTION_EFFECTS: int = 1
    CHECKPOINT_SUMMARY: int = 2
    PERSONAL_MESSAGE: int = 3


INTENT_VERSION: int = 0
INTENT_APP_ID: int = 0


def intent_message(scope: int, payload: bytes) -> bytes:
    return bytes([scope, INTENT_VERSION, INTENT_APP_ID]) + payload


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def transaction_digest(transaction_bytes: bytes) -> bytes:
    """The 32 bytes that get signed for a BCS encoded TransactionData."""
    return blake2b_256(intent_message(IntentScope.TRANSACTION_DATA, transaction_bytes))


def personal_message_digest(message: bytes) -> bytes:
    if len(message) == 0:
        raise Exception("personal message: empty message")
    payload = encoder(message, Serializer.to_bytes)
    return blake2b_256(intent_message(IntentScope.PERSONAL_MESSAGE, payload))


class Signer(Protocol):
    def sign(self, transaction_bytes: bytes) -> bytes:
        """Returns the serialized signature over the transaction intent digest."""
        ...

    def address(self) -> AccountAddress:
        ...


class Test(unittest.TestCase):
    def test_round_trip_all_schemes(self):
        for scheme, length in [(0x00, 32), (0x01, 33), (0x02, 33)]:
            serialized = bytes([scheme]) + bytes([7] * 64) + bytes([9] * length)
            parsed = parse_serialized_signature(serialized)
            self.assertEqual(parsed, (scheme, bytes([7] * 64), bytes([9] * length)))
            self.assertEqual(serialize_signature(*parsed), serialized)
            self.assertEqual(
                UserSignature.from_serialized(serialized).serialized(), serialized
            )

    def test_invalid_serialized_signatures(self):
        cases = [
            b"",
            bytes(64),
            bytes([0x00]) + bytes(64) + bytes(33),
            bytes([0x01]) + bytes(64) + bytes(32),
            bytes([0x05]) + bytes(64) + bytes(32),
        ]
        for case in cases:
            with self.assertRaises(InvalidSerializedSignatureError) as context:
                parse_serialized_signature(case)
            self.assertEqual(str(context.exception), "invalid serialized signature")

    def test_to_dict(self):
        signature = UserSignature(0x00, bytes(64), bytes(32))
        self.assertEqual(
            signature.to_dict(),
            {
                "scheme": "ED25519",
                "signature": base64.b64encode(bytes(64)).decode(),
                "publicKey": base64.b64encode(bytes(32)).decode(),
            },
        )

    def test_intent_message(self):
        self.assertEqual(
            intent_message(IntentScope.TRANSACTION_DATA, b"\xaa"), b"\x00\x00\x00\xaa"
        )
        self.assertEqual(
            transaction_digest(b"\xaa"),
            hashlib.blake2b(b"\x00\x00\x00\xaa", digest_size=32).digest(),
        )

    def test_personal_message_digest(self):
        expected = hashlib.blake2b(b"\x03\x00\x00\x02hi", digest_size=32).digest()
        self.assertEqual(personal_message_digest(b"hi"), expected)
        with self.assertRaises(Exception):
            personal_message_digest(b"")


if __name__ == "__main__":
    unittest.main()
