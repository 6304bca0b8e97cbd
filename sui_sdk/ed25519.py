# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ed25519 keys, scheme flag 0x00. Sui signs the 32 byte intent digest directly.
"""

from __future__ import annotations

import base64
import unittest
from typing import cast

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from . import asymmetric_crypto
from .account_address import AccountAddress
from .bcs import Deserializer, Serializer
from .signature import SignatureScheme, transaction_digest


class PrivateKey(asymmetric_crypto.PrivateKey):
    LENGTH: int = 32
    SCHEME: int = SignatureScheme.ED25519

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self):
        return self.hex()

    @staticmethod
    def from_bytes(seed: bytes) -> PrivateKey:
        if len(seed) != PrivateKey.LENGTH:
            raise Exception("Length mismatch")
        return PrivateKey(SigningKey(seed))

    @staticmethod
    def from_str(value: str) -> PrivateKey:
        """Parses the hex encoded 32 byte seed, with or without a '0x' prefix."""
        if value[0:2] == "0x":
            value = value[2:]
        return PrivateKey.from_bytes(bytes.fromhex(value))

    @staticmethod
    def random() -> PrivateKey:
        return PrivateKey(SigningKey.generate())

    def hex(self) -> str:
        return f"0x{self.to_crypto_bytes().hex()}"

    def to_crypto_bytes(self) -> bytes:
        return self.key.encode()

    def public_key(self) -> PublicKey:
        return PublicKey(self.key.verify_key)

    def sign(self, data: bytes) -> Signature:
        return Signature(self.key.sign(data).signature)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> PrivateKey:
        return PrivateKey.from_bytes(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.to_crypto_bytes())


class PublicKey(asymmetric_crypto.PublicKey):
    LENGTH: int = 32
    SCHEME: int = SignatureScheme.ED25519

    key: VerifyKey

    def __init__(self, key: VerifyKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self) -> str:
        return self.to_base64()

    @staticmethod
    def from_crypto_bytes(key: bytes) -> PublicKey:
        if len(key) != PublicKey.LENGTH:
            raise Exception("Length mismatch")
        return PublicKey(VerifyKey(key))

    @staticmethod
    def from_base64(value: str) -> PublicKey:
        """Parses the `flag || key` base64 form printed by Sui tooling."""
        flagged = base64.b64decode(value)
        if flagged[0] != PublicKey.SCHEME:
            raise Exception(f"Not an Ed25519 public key, flag {flagged[0]}")
        return PublicKey.from_crypto_bytes(flagged[1:])

    def to_base64(self) -> str:
        return base64.b64encode(bytes([self.SCHEME]) + self.to_crypto_bytes()).decode()

    def to_crypto_bytes(self) -> bytes:
        return self.key.encode()

    def address(self) -> AccountAddress:
        return AccountAddress.from_key(self.SCHEME, self.to_crypto_bytes())

    def verify(self, data: bytes, signature: asymmetric_crypto.Signature) -> bool:
        signature = cast(Signature, signature)
        try:
            self.key.verify(data, signature.data())
        except BadSignatureError:
            return False
        return True

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

    def data(self) -> bytes:
        return self.signature

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Signature:
        return Signature(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.signature)


class Test(unittest.TestCase):
    def test_rfc8032_vector(self):
        # RFC 8032, section 7.1, test 1
        private_key = PrivateKey.from_str(
            "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
        )
        public_key = private_key.public_key()
        self.assertEqual(
            public_key.to_crypto_bytes().hex(),
            "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a",
        )
        signature = private_key.sign(b"")
        self.assertEqual(
            str(signature),
            "0xe5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e06522490155"
            "5fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b",
        )
        self.assertTrue(public_key.verify(b"", signature))

    def test_sign_intent_digest(self):
        private_key = PrivateKey.random()
        public_key = private_key.public_key()
        digest = transaction_digest(b"\x00\x01\x02")

        signature = private_key.sign(digest)
        self.assertTrue(public_key.verify(digest, signature))
        self.assertFalse(public_key.verify(transaction_digest(b"\x03"), signature))
        other = PrivateKey.random().public_key()
        self.assertFalse(other.verify(digest, signature))

    def test_flagged_base64(self):
        public_key = PrivateKey.random().public_key()
        encoded = public_key.to_base64()
        self.assertEqual(base64.b64decode(encoded)[0], SignatureScheme.ED25519)
        self.assertEqual(PublicKey.from_base64(encoded), public_key)

        flagged = bytes([SignatureScheme.SECP256K1]) + public_key.to_crypto_bytes()
        with self.assertRaises(Exception):
            PublicKey.from_base64(base64.b64encode(flagged).decode())

    def test_address(self):
        public_key = PrivateKey.random().public_key()
        self.assertEqual(
            public_key.address(),
            AccountAddress.from_key(0x00, public_key.to_crypto_bytes()),
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

        self.assertEqual(PrivateKey.from_str(private_key.hex()), private_key)
        with self.assertRaises(Exception):
            Signature(bytes(63))


if __name__ == "__main__":
    unittest.main()
