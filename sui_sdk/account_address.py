# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import hashlib
import unittest

from .bcs import Deserializer, Serializer


class InvalidAddressError(Exception):
    """
    There was an error parsing an address or object id.
    """


class AccountAddress:
    """
    A 32 byte Sui address. Object ids and package ids share this representation.
    """

    address: bytes
    LENGTH: int = 32

    def __init__(self, address: bytes):
        self.address = address

        if len(address) != AccountAddress.LENGTH:
            raise InvalidAddressError("Expected address of length 32")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAddress):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __str__(self):
        """
        Represent an address in its canonical form: 0x followed by 64 lowercase hex
        characters, left padded with zeroes, e.g.

        0x0000000000000000000000000000000000000000000000000000000000000002
        """
        return f"0x{self.address.hex()}"

    def __repr__(self):
        return self.__str__()

    def short_str(self) -> str:
        """Returns the address with leading zeroes stripped, e.g. 0x2."""
        return f"0x{self.address.hex().lstrip('0') or '0'}"

    @staticmethod
    def normalize(address: str) -> str:
        """
        Converts any accepted hex representation of an address into the canonical
        66 character form.

        Parameters:
        - address (str): A hex string with or without a leading 0x, 1 to 64 hex
          characters long.

        Returns:
        - str: 0x + 64 lowercase hex characters.
        """
        addr = address.strip().lower()

        # Strip 0x prefix if present.
        if addr[0:2] == "0x":
            addr = addr[2:]

        if len(addr) < 1:
            raise InvalidAddressError(
                f"Hex string is too short, must be 1 to 64 chars long: {address!r}"
            )

        if len(addr) > AccountAddress.LENGTH * 2:
            raise InvalidAddressError(
                f"Hex string is too long, must be 1 to 64 chars long: {address!r}"
            )

        if any(char not in "0123456789abcdef" for char in addr):
            raise InvalidAddressError(f"Invalid hex characters in address: {address!r}")

        return "0x" + addr.rjust(AccountAddress.LENGTH * 2, "0")

    @staticmethod
    def from_str(address: str) -> AccountAddress:
        """
        Creates an instance of AccountAddress from a hex string. Short forms such as
        0x2, padded forms and forms without the 0x prefix are all accepted.
        """
        return AccountAddress(bytes.fromhex(AccountAddress.normalize(address)[2:]))

    @staticmethod
    def from_key(flag: int, public_key: bytes) -> AccountAddress:
        """
        Derives the address for a public key: blake2b-256 over the signature scheme
        flag followed by the raw public key bytes.
        """
        hasher = hashlib.blake2b(digest_size=32)
        hasher.update(bytes([flag]))
        hasher.update(public_key)
        return AccountAddress(hasher.digest())

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AccountAddress:
        return AccountAddress(deserializer.fixed_bytes(AccountAddress.LENGTH))

    def serialize(self, serializer: Serializer):
        serializer.fixed_bytes(self.address)


class Test(unittest.TestCase):
    def test_normalize(self):
        expected = "0x" + "0" * 63 + "2"
        self.assertEqual(AccountAddress.normalize("0x2"), expected)
        self.assertEqual(AccountAddress.normalize("2"), expected)
        self.assertEqual(AccountAddress.normalize("0x02"), expected)
        self.assertEqual(AccountAddress.normalize(" 0X2 "), expected)
        self.assertEqual(len(AccountAddress.normalize("0xabc")), 66)

    def test_parse_normalize_round_trip(self):
        for value in ["0x0", "f", "0x10", "ABCDEF", "0x" + "ca84" * 16]:
            address = AccountAddress.from_str(value)
            self.assertEqual(
                AccountAddress.from_str(AccountAddress.normalize(value)), address
            )
            self.assertEqual(str(address), AccountAddress.normalize(value))

    def test_invalid(self):
        for value in ["", "0x", "0x" + "1" * 65, "0xzz", "hello"]:
            with self.assertRaises(InvalidAddressError):
                AccountAddress.from_str(value)
        with self.assertRaises(InvalidAddressError):
            AccountAddress(b"\x01" * 31)

    def test_short_str(self):
        self.assertEqual(AccountAddress.from_str("0x0").short_str(), "0x0")
        self.assertEqual(AccountAddress.from_str("0x00a2").short_str(), "0xa2")

    def test_serialization(self):
        address = AccountAddress.from_str("0x2")
        ser = Serializer()
        address.serialize(ser)
        self.assertEqual(ser.output(), b"\x00" * 31 + b"\x02")
        self.assertEqual(
            AccountAddress.deserialize(Deserializer(ser.output())), address
        )

    def test_from_key(self):
        public_key = bytes(range(32))
        hasher = hashlib.blake2b(digest_size=32)
        hasher.update(b"\x00" + public_key)
        expected = AccountAddress(hasher.digest())
        self.assertEqual(AccountAddress.from_key(0, public_key), expected)
        self.assertNotEqual(AccountAddress.from_key(1, public_key), expected)

    def test_hashable(self):
        values = {AccountAddress.from_str("0x1"), AccountAddress.from_str("0x01")}
        self.assertEqual(len(values), 1)


if __name__ == "__main__":
    unittest.main()
