# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Secp256k1 keys, scheme flag 0x01. Messages are hashed with SHA-256, signatures are
the 64 byte `r || s` form with a low s, and public keys travel compressed.
"""

from __future__ import annotations

import base64
import hashlib
import unittest
from typing import cast

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey, util

from . import asymmetric_crypto
from .account_address import AccountAddress
from .bcs import Deserializer, Serializer
from .signature import SignatureScheme, transaction_digest

ORDER: int = SECP256k1.generator.order()


def is_low_s(signature: bytes) -> bool:
    _, s = util.sigdecode_string(signature, ORDER)
    return s <= ORDER // 2


class PrivateKey(asymmetric_crypto.PrivateKey):
    LENGTH: int = 32
    SCHEME: int = SignatureScheme.SECP256K1

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.to_crypto_bytes() == other.to_crypto_bytes()

    def __str__(self):
        return self.hex()

    @staticmethod
    def from_bytes(secret: bytes) -> PrivateKey:
        if len(secret) != PrivateKey.LENGTH:
            raise Exception("Length mismatch")
        return PrivateKey(SigningKey.from_string(secret, SECP256k1, hashlib.sha256))

    @staticmethod
    def from_str(value: str) -> PrivateKey:
        if value[0:2] == "0x":
            value = value[2:]
        return PrivateKey.from_bytes(bytes.fromhex(value))

    @staticmethod
    def random() -> PrivateKey:
        return PrivateKey(SigningKey.generate(curve=SECP256k1, hashfunc=hashlib.sha256))

    def hex(self) -> str:
        return f"0x{self.to_crypto_bytes().hex()}"

    def to_crypto_bytes(self) -> bytes:
        return self.key.to_string()

    def public_key(self) -> PublicKey:
        return PublicKey(self.key.verifying_key)

    def sign(self, data: bytes) -> Signature:
        """Deterministically signs sha256(data), RFC 6979."""
        sig = self.key.sign_deterministic(data, hashfunc=hashlib.sha256)
        if not is_low_s(sig):
            # Both s and -s verify; only the low one is accepted on chain
            r, s = util.sigdecode_string(sig, ORDER)
            sig = util.sigencode_string(r, ORDER - s, ORDER)
        return Signature(sig)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> PrivateKey:
        return PrivateKey.from_bytes(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.to_crypto_bytes())


class PublicKey(asymmetric_crypto.PublicKey):
    LENGTH: int = 33
    SCHEME: int = SignatureScheme.SECP256K1

    key: VerifyingKey

    def __init__(self, key: VerifyingKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.to_crypto_bytes() == other.to_crypto_bytes()

    def __str__(self) -> str:
        return self.to_base64()

    @staticmethod
    def from_crypto_bytes(key: bytes) -> PublicKey:
        """Accepts compressed (33 byte) or uncompressed (64 or 65 byte) points."""
        if len(key) not in (PublicKey.LENGTH, 64, 65):
            raise Exception("Length mismatch")
        return PublicKey(VerifyingKey.from_string(key, SECP256k1, hashlib.sha256))

    @staticmethod
    def from_str(value: str) -> PublicKey:
        if value[0:2] == "0x":
            value = value[2:]
        return PublicKey.from_crypto_bytes(bytes.fromhex(value))

    @staticmethod
    def from_base64(value: str) -> PublicKey:
        flagged = base64.b64decode(value)
        if flagged[0] != PublicKey.SCHEME:
            raise Exception(f"Not a Secp256k1 public key, flag {flagged[0]}")
        return PublicKey.from_crypto_bytes(flagged[1:])

    def to_base64(self) -> str:
        return base64.b64encode(bytes([self.SCHEME]) + self.to_crypto_bytes()).decode()

    def hex(self) -> str:
        return f"0x{self.to_crypto_bytes().hex()}"

    def to_crypto_bytes(self) -> bytes:
        return self.key.to_string("compressed")

    def address(self) -> AccountAddress:
        return AccountAddress.from_key(self.SCHEME, self.to_crypto_bytes())

    def verify(self, data: bytes, signature: asymmetric_crypto.Signature) -> bool:
        """Rejects high s signatures even though they are mathematically valid."""
        signature = cast(Signature, signature)
        if not is_low_s(signature.data()):
            return False
        try:
            return self.key.verify(signature.data(), data)
        except BadSignatureError:
            return False

    @staticmethod
    def deserialize(deserializer: Deserializer) -> PublicKey:
        return PublicKey.from_crypto_bytes(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.to_crypto_bytes())


class Signature(asymmetric_crypto.Signature):
    LENGTH: int = 64

    signature: bytes

    def __init__(self, signature: bytes):
        if len(signature) != Signature.LENGTH:
            raise Exception("Length mismatch")
        self.signature = signature

    def __eq__(self, other: object):
        if not isinstance(other, Signature):
            return NotImplemented
        return self.signature == other.signature

    def __str__(self) -> str:
        return f"0x{self.signature.hex()}"

    @staticmethod
    def from_str(value: str) -> Signature:
        if value[0:2] == "0x":
            value = value[2:]
        return Signature(bytes.fromhex(value))

    def data(self) -> bytes:
        return self.signature

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Signature:
        return Signature(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.signature)


class Test(unittest.TestCase):
    def test_deterministic_low_s(self):
        private_key = PrivateKey.from_str(
            "0x306fa009600e27c09d2659145ce1785249360dd5fb992da01a578fe67ed607f4"
        )
        digest = transaction_digest(b"\x00\x01\x02")
        first = private_key.sign(digest)
        self.assertEqual(first, private_key.sign(digest))
        self.assertTrue(is_low_s(first.data()))
        self.assertTrue(private_key.public_key().verify(digest, first))

    def test_high_s_rejected(self):
        private_key = PrivateKey.random()
        signature = private_key.sign(b"message")
        r, s = util.sigdecode_string(signature.data(), ORDER)
        high = Signature(util.sigencode_string(r, ORDER - s, ORDER))

        self.assertFalse(is_low_s(high.data()))
        self.assertFalse(private_key.public_key().verify(b"message", high))

    def test_wrong_message_or_key(self):
        private_key = PrivateKey.random()
        signature = private_key.sign(b"message")
        self.assertFalse(private_key.public_key().verify(b"other", signature))
        self.assertFalse(PrivateKey.random().public_key().verify(b"message", signature))

    def test_public_key_encodings(self):
        public_key = PrivateKey.random().public_key()
        compressed = public_key.to_crypto_bytes()
        self.assertEqual(len(compressed), 33)
        self.assertIn(compressed[0], (2, 3))

        uncompressed = public_key.key.to_string("uncompressed")
        self.assertEqual(PublicKey.from_crypto_bytes(uncompressed), public_key)
        self.assertEqual(PublicKey.from_str(public_key.hex()), public_key)
        self.assertEqual(PublicKey.from_base64(public_key.to_base64()), public_key)
        self.assertEqual(
            public_key.address(), AccountAddress.from_key(0x01, compressed)
        )

    def test_serialization(self):
        private_key = PrivateKey.random()
        signature = private_key.sign(b"payload")

        for value, deserialize in [
            (private_key, PrivateKey.deserialize),
            (private_key.public_key(), PublicKey.deserialize),
            (signature, Signature.deserialize),
        ]:
            ser = Serializer()
            value.serialize(ser)
            self.assertEqual(deserialize(Deserializer(ser.output())), value)

        self.assertEqual(Signature.from_str(str(signature)), signature)
        self.assertEqual(PrivateKey.from_str(private_key.hex()), private_key)


if __name__ == "__main__":
    unittest.main()
