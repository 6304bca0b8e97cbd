# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import re
import typing
import unittest
from typing import List, Optional

from .account_address import AccountAddress, InvalidAddressError
from .bcs import Deserializer, Serializer


class InvalidTypeTagError(Exception):
    """
    A type argument string could not be parsed into a TypeTag.
    """


class TypeTag:
    """TypeTag represents a type in Move."""

    BOOL: int = 0
    U8: int = 1
    U64: int = 2
    U128: int = 3
    ACCOUNT_ADDRESS: int = 4
    SIGNER: int = 5
    VECTOR: int = 6
    STRUCT: int = 7
    U16: int = 8
    U32: int = 9
    U256: int = 10

    PRIMITIVES: typing.Dict[str, int] = {
        "bool": BOOL,
        "u8": U8,
        "u16": U16,
        "u32": U32,
        "u64": U64,
        "u128": U128,
        "u256": U256,
        "address": ACCOUNT_ADDRESS,
        "signer": SIGNER,
    }

    variant: int
    # A TypeTag for vectors, a StructTag for structs, None for primitives.
    value: typing.Any

    def __init__(self, variant: int, value: typing.Any = None):
        self.variant = variant
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeTag):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self):
        if self.variant == TypeTag.VECTOR:
            return f"vector<{self.value}>"
        if self.variant == TypeTag.STRUCT:
            return self.value.__str__()
        for name, variant in TypeTag.PRIMITIVES.items():
            if variant == self.variant:
                return name
        raise InvalidTypeTagError(f"Unknown variant: {self.variant}")

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def vector(element: TypeTag) -> TypeTag:
        return TypeTag(TypeTag.VECTOR, element)

    @staticmethod
    def struct(value: StructTag) -> TypeTag:
        return TypeTag(TypeTag.STRUCT, value)

    @staticmethod
    def from_str(type_tag: str) -> TypeTag:
        """
        Parses a Move type such as `u64`, `vector<address>` or
        `0x2::coin::Coin<0x2::sui::SUI>`.
        """
        parser = _TypeTagParser(type_tag)
        result = parser.type_tag()
        parser.finish()
        return result

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TypeTag:
        variant = deserializer.uleb128()
        if variant == TypeTag.VECTOR:
            return TypeTag(variant, TypeTag.deserialize(deserializer))
        elif variant == TypeTag.STRUCT:
            return TypeTag(variant, StructTag.deserialize(deserializer))
        elif variant in TypeTag.PRIMITIVES.values():
            return TypeTag(variant)
        raise InvalidTypeTagError(f"Unknown variant: {variant}")

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.value is not None:
            serializer.struct(self.value)


class StructTag:
    address: AccountAddress
    module: str
    name: str
    type_args: List[TypeTag]

    def __init__(self, address, module, name, type_args=None):
        self.address = address
        self.module = module
        self.name = name
        self.type_args = type_args or []

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructTag):
            return NotImplemented
        return (
            self.address == other.address
            and self.module == other.module
            and self.name == other.name
            and self.type_args == other.type_args
        )

    def __str__(self) -> str:
        value = f"{self.address}::{self.module}::{self.name}"
        if len(self.type_args) > 0:
            value += f"<{self.type_args[0]}"
            for type_arg in self.type_args[1:]:
                value += f", {type_arg}"
            value += ">"
        return value

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def from_str(type_tag: str) -> StructTag:
        parser = _TypeTagParser(type_tag)
        result = parser.struct_tag(parser.next())
        parser.finish()
        return result

    @staticmethod
    def deserialize(deserializer: Deserializer) -> StructTag:
        address = deserializer.struct(AccountAddress)
        module = deserializer.str()
        name = deserializer.str()
        type_args = deserializer.sequence(TypeTag.deserialize)
        return StructTag(address, module, name, type_args)

    def serialize(self, serializer: Serializer):
        self.address.serialize(serializer)
        serializer.str(self.module)
        serializer.str(self.name)
        serializer.sequence(self.type_args, Serializer.struct)


_TOKEN = re.compile(r"\s*(::|<|>|,|[A-Za-z0-9_]+)")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class _TypeTagParser:
    """Recursive descent over the tokens of a type string."""

    def __init__(self, source: str):
        self.source = source
        self.tokens: List[str] = []

        position = 0
        while position < len(source):
            if source[position:].strip() == "":
                break
            match = _TOKEN.match(source, position)
            if match is None:
                raise InvalidTypeTagError(
                    f"Unexpected character at {position} in {source!r}"
                )
            self.tokens.append(match.group(1))
            position = match.end()
        self.index = 0

    def peek(self) -> Optional[str]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def next(self) -> str:
        token = self.peek()
        if token is None:
            raise InvalidTypeTagError(f"Unexpected end of input: {self.source!r}")
        self.index += 1
        return token

    def expect(self, expected: str):
        token = self.next()
        if token != expected:
            raise InvalidTypeTagError(
                f"Expected {expected!r}, found {token!r} in {self.source!r}"
            )

    def identifier(self) -> str:
        token = self.next()
        if not _IDENTIFIER.fullmatch(token):
            raise InvalidTypeTagError(
                f"Invalid identifier {token!r} in {self.source!r}"
            )
        return token

    def finish(self):
        if self.peek() is not None:
            raise InvalidTypeTagError(
                f"Unexpected trailing token {self.peek()!r} in {self.source!r}"
            )

    def type_tag(self) -> TypeTag:
        token = self.next()
        if token in TypeTag.PRIMITIVES:
            return TypeTag(TypeTag.PRIMITIVES[token])
        if token == "vector":
            self.expect("<")
            element = self.type_tag()
            self.expect(">")
            return TypeTag.vector(element)
        return TypeTag.struct(self.struct_tag(token))

    def struct_tag(self, address_token: str) -> StructTag:
        if address_token in ("::", "<", ">", ","):
            raise InvalidTypeTagError(
                f"Expected an address, found {address_token!r} in {self.source!r}"
            )
        try:
            address = AccountAddress.from_str(address_token)
        except InvalidAddressError as e:
            raise InvalidTypeTagError(
                f"Invalid address {address_token!r} in {self.source!r}"
            ) from e

        self.expect("::")
        module = self.identifier()
        self.expect("::")
        name = self.identifier()

        type_args = []
        if self.peek() == "<":
            self.next()
            type_args.append(self.type_tag())
            while self.peek() == ",":
                self.next()
                type_args.append(self.type_tag())
            self.expect(">")
        return StructTag(address, module, name, type_args)


class Test(unittest.TestCase):
    def test_primitives(self):
        for name, variant in TypeTag.PRIMITIVES.items():
            tag = TypeTag.from_str(name)
            self.assertEqual(tag, TypeTag(variant))
            self.assertEqual(str(tag), name)

    def test_variant_indices(self):
        expected = {
            "bool": 0,
            "u8": 1,
            "u64": 2,
            "u128": 3,
            "address": 4,
            "signer": 5,
            "u16": 8,
            "u32": 9,
            "u256": 10,
        }
        for name, index in expected.items():
            ser = Serializer()
            TypeTag.from_str(name).serialize(ser)
            self.assertEqual(ser.output(), bytes([index]))

    def test_nested(self):
        tag = TypeTag.from_str(
            " 0x2::coin::Coin < vector<0x0000000000000000000000000000000000000000000000000000000000000002::sui::SUI> , u8 >"
        )
        sui = StructTag(AccountAddress.from_str("0x2"), "sui", "SUI")
        expected = TypeTag.struct(
            StructTag(
                AccountAddress.from_str("0x2"),
                "coin",
                "Coin",
                [TypeTag.vector(TypeTag.struct(sui)), TypeTag(TypeTag.U8)],
            )
        )
        self.assertEqual(tag, expected)
        self.assertEqual(TypeTag.from_str(str(tag)), tag)

    def test_canonical_str(self):
        tag = TypeTag.from_str("0x2::coin::Coin<0x2::sui::SUI>")
        two = AccountAddress.normalize("0x2")
        self.assertEqual(str(tag), f"{two}::coin::Coin<{two}::sui::SUI>")
        self.assertEqual(
            str(TypeTag.from_str("vector<vector<u8>>")), "vector<vector<u8>>"
        )

    def test_serialization(self):
        tag = TypeTag.from_str("vector<0x1::string::String>")
        ser = Serializer()
        tag.serialize(ser)
        out = ser.output()
        self.assertEqual(out[:2], bytes([TypeTag.VECTOR, TypeTag.STRUCT]))
        self.assertEqual(out[2:34], AccountAddress.from_str("0x1").address)
        self.assertEqual(out[34:], b"\x06string\x06String\x00")
        self.assertEqual(TypeTag.deserialize(Deserializer(out)), tag)

    def test_struct_from_str(self):
        tag = StructTag.from_str(
            "0x2::transfer::Receiving<0x2::coin::Coin<0x2::sui::SUI>>"
        )
        self.assertEqual(tag.module, "transfer")
        self.assertEqual(tag.name, "Receiving")
        self.assertEqual(len(tag.type_args), 1)

    def test_invalid(self):
        cases = [
            "",
            "u9",
            "vector<u8",
            "vector<u8>>",
            "vector<>",
            "0x2::coin",
            "0x2::coin::Coin<>",
            "0x2::coin::Coin<u8,>",
            "0xzz::coin::Coin",
            "0x" + "1" * 65 + "::a::B",
            "0x2::1coin::Coin",
            "u8 u8",
            "u8$",
        ]
        for case in cases:
            with self.assertRaises(InvalidTypeTagError, msg=case):
                TypeTag.from_str(case)

    def test_unknown_variant(self):
        with self.assertRaises(InvalidTypeTagError):
            TypeTag.deserialize(Deserializer(b"\x0b"))


if __name__ == "__main__":
    unittest.main()
