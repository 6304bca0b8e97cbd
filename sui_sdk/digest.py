# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import unittest

import base58

from .bcs import Deserializer, Serializer


class InvalidDigestError(Exception):
    """
    There was an error parsing an object or transaction digest.
    """


class Digest:
    """A 32 byte digest, base58 in text and length-prefixed in BCS."""

    digest: bytes
    LENGTH: int = 32

    def __init__(self, digest: bytes):
        if len(digest) != Digest.LENGTH:
            raise InvalidDigestError(
                f"Expected digest of length {Digest.LENGTH}, found {len(digest)}"
            )
        self.digest = digest

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Digest):
            return NotImplemented
        return self.digest == other.digest

    def __hash__(self) -> int:
        return hash(self.digest)

    def __str__(self) -> str:
        return base58.b58encode(self.digest).decode()

    def __repr__(self) -> str:
        return self.__str__()

    @staticmethod
    def from_str(value: str) -> Digest:
        try:
            decoded = base58.b58decode(value.strip())
        except ValueError as e:
            raise InvalidDigestError(f"Invalid base58 digest: {value!r}") from e
        return Digest(decoded)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Digest:
        digest = deserializer.to_bytes()
        if len(digest) != Digest.LENGTH:
            raise InvalidDigestError("Length mismatch")
        return Digest(digest)

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.digest)


class Test(unittest.TestCase):
    def test_text_round_trip(self):
        digest = Digest(bytes([1] * 32))
        self.assertEqual(Digest.from_str(str(digest)), digest)

    def test_zero_digest_text(self):
        self.assertEqual(str(Digest(bytes(32))), "1" * 32)

    def test_serialization(self):
        digest = Digest(bytes([1] * 32))
        ser = Serializer()
        digest.serialize(ser)
        self.assertEqual(ser.output(), b"\x20" + bytes([1] * 32))
        self.assertEqual(Digest.deserialize(Deserializer(ser.output())), digest)

    def test_invalid(self):
        with self.assertRaises(InvalidDigestError):
            Digest.from_str(base58.b58encode(bytes(31)).decode())
        with self.assertRaises(InvalidDigestError):
            Digest.from_str("0OIl")
        with self.assertRaises(InvalidDigestError):
            Digest(bytes(33))


if __name__ == "__main__":
    unittest.main()
