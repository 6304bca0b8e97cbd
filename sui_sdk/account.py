# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import base64
import json
import tempfile
import unittest
from typing import Dict, Type

from . import asymmetric_crypto, ed25519, secp256k1_ecdsa
from .account_address import AccountAddress
from .signature import (
    SignatureScheme,
    UserSignature,
    personal_message_digest,
    serialize_signature,
    transaction_digest,
)

PRIVATE_KEYS: Dict[int, Type] = {
    SignatureScheme.ED25519: ed25519.PrivateKey,
    SignatureScheme.SECP256K1: secp256k1_ecdsa.PrivateKey,
}


def private_key_class(scheme: int) -> Type:
    if scheme not in PRIVATE_KEYS:
        raise Exception(f"Unsupported signature scheme: {scheme}")
    return PRIVATE_KEYS[scheme]


class Account:
    """Represents an account as well as the private, public key-pair for the Sui blockchain."""

    account_address: AccountAddress
    private_key: asymmetric_crypto.PrivateKey

    def __init__(
        self,
        account_address: AccountAddress,
        private_key: asymmetric_crypto.PrivateKey,
    ):
        self.account_address = account_address
        self.private_key = private_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return (
            self.account_address == other.account_address
            and self.private_key == other.private_key
        )

    @staticmethod
    def from_private_key(private_key: asymmetric_crypto.PrivateKey) -> Account:
        public_key = private_key.public_key()
        account_address = AccountAddress.from_key(
            private_key.SCHEME, public_key.to_crypto_bytes()
        )
        return Account(account_address, private_key)

    @staticmethod
    def generate(scheme: int = SignatureScheme.ED25519) -> Account:
        return Account.from_private_key(private_key_class(scheme).random())

    @staticmethod
    def load_key(key: str, scheme: int = SignatureScheme.ED25519) -> Account:
        return Account.from_private_key(private_key_class(scheme).from_str(key))

    @staticmethod
    def load(path: str) -> Account:
        with open(path) as file:
            data = json.load(file)
        scheme = data.get("scheme", SignatureScheme.ED25519)
        return Account(
            AccountAddress.from_str(data["account_address"]),
            private_key_class(scheme).from_str(data["private_key"]),
        )

    @staticmethod
    def from_keystore_entry(entry: str) -> Account:
        """Loads a `sui.keystore` entry, base64 of `flag || private key`."""
        data = base64.b64decode(entry)
        return Account.from_private_key(private_key_class(data[0]).from_bytes(data[1:]))

    def keystore_entry(self) -> str:
        data = bytes([self.scheme()]) + self.private_key.to_crypto_bytes()
        return base64.b64encode(data).decode()

    def store(self, path: str):
        data = {
            "account_address": str(self.account_address),
            "private_key": self.private_key.hex(),
            "scheme": self.scheme(),
        }
        with open(path, "w") as file:
            json.dump(data, file)

    def address(self) -> AccountAddress:
        """Returns the address associated with the given account"""

        return self.account_address

    def scheme(self) -> int:
        return self.private_key.SCHEME

    def public_key(self) -> asymmetric_crypto.PublicKey:
        """Returns the public key for the associated account"""

        return self.private_key.public_key()

    def _envelope(self, digest: bytes) -> bytes:
        signature = self.private_key.sign(digest)
        return serialize_signature(
            self.scheme(),
            signature.data(),
            self.public_key().to_crypto_bytes(),
        )

    def sign(self, transaction_bytes: bytes) -> bytes:
        """
        Signs the intent digest of a BCS encoded TransactionData and returns the
        serialized signature, `flag || signature || public key`.
        """
        return self._envelope(transaction_digest(transaction_bytes))

    def sign_personal_message(self, message: bytes) -> bytes:
        return self._envelope(personal_message_digest(message))


class Test(unittest.TestCase):
    def test_load_and_store(self):
        for scheme in (SignatureScheme.ED25519, SignatureScheme.SECP256K1):
            (file, path) = tempfile.mkstemp()
            start = Account.generate(scheme)
            start.store(path)
            load = Account.load(path)

            self.assertEqual(start, load)
            self.assertEqual(load.scheme(), scheme)

    def test_address_derivation(self):
        account = Account.load_key(
            "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
        )
        expected = AccountAddress.from_key(
            SignatureScheme.ED25519,
            bytes.fromhex(
                "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
            ),
        )
        self.assertEqual(account.address(), expected)

    def test_sign_transaction_ed25519(self):
        account = Account.generate()
        transaction_bytes = b"\x00\x00\x01\x02\x03"
        serialized = account.sign(transaction_bytes)
        self.assertEqual(len(serialized), 1 + 64 + 32)

        parsed = UserSignature.from_serialized(serialized)
        self.assertEqual(parsed.scheme, SignatureScheme.ED25519)
        self.assertEqual(parsed.address(), account.address())
        self.assertTrue(
            account.public_key().verify(
                transaction_digest(transaction_bytes),
                ed25519.Signature(parsed.signature),
            )
        )

    def test_sign_transaction_secp256k1(self):
        account = Account.generate(SignatureScheme.SECP256K1)
        transaction_bytes = b"\x00\x00\x01\x02\x03"
        serialized = account.sign(transaction_bytes)
        self.assertEqual(len(serialized), 1 + 64 + 33)

        parsed = UserSignature.from_serialized(serialized)
        self.assertEqual(parsed.scheme, SignatureScheme.SECP256K1)
        self.assertEqual(parsed.address(), account.address())
        self.assertTrue(
            account.public_key().verify(
                transaction_digest(transaction_bytes),
                secp256k1_ecdsa.Signature(parsed.signature),
            )
        )
        self.assertEqual(serialized, account.sign(transaction_bytes))

    def test_sign_personal_message(self):
        account = Account.generate()
        serialized = account.sign_personal_message(b"hello")
        parsed = UserSignature.from_serialized(serialized)
        self.assertTrue(
            account.public_key().verify(
                personal_message_digest(b"hello"),
                ed25519.Signature(parsed.signature),
            )
        )
        with self.assertRaises(Exception):
            account.sign_personal_message(b"")

    def test_keystore_entry(self):
        for scheme in (SignatureScheme.ED25519, SignatureScheme.SECP256K1):
            account = Account.generate(scheme)
            entry = account.keystore_entry()
            self.assertEqual(len(base64.b64decode(entry)), 33)
            self.assertEqual(Account.from_keystore_entry(entry), account)

    def test_unsupported_scheme(self):
        with self.assertRaises(Exception):
            Account.generate(SignatureScheme.SECP256R1)


if __name__ == "__main__":
    unittest.main()
