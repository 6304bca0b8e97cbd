# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
This is a simple BCS serializer and deserializer. Learn more at https://github.com/diem/bcs
"""

from __future__ import annotations

import io
import typing
import unittest
from typing import Dict, List, Optional

from typing_extensions import Protocol

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1
MAX_U256 = 2**256 - 1


class Deserializable(Protocol):
    """
    Types that can be decoded from BCS by a Deserializer.
    """

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Deserializable:
        ...


class Serializable(Protocol):
    """
    Types that can be encoded into BCS by a Serializer.
    """

    def serialize(self, serializer: Serializer):
        ...


class Deserializer:
    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def finish(self):
        """Fails if any input is left over once a value has been fully decoded."""
        if self.remaining() != 0:
            raise Exception(f"Unexpected trailing bytes: {self.remaining()}")

    def bool(self) -> bool:
        value = int.from_bytes(self._read(1), byteorder="little", signed=False)
        if value == 0:
            return False
        elif value == 1:
            return True
        else:
            raise Exception(f"Unexpected boolean value: {value}")

    def to_bytes(self) -> bytes:
        return self._read(self.uleb128())

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def map(
        self,
        key_decoder: typing.Callable[[Deserializer], typing.Any],
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> Dict[typing.Any, typing.Any]:
        length = self.uleb128()
        values: Dict = {}
        while len(values) < length:
            key = key_decoder(self)
            value = value_decoder(self)
            values[key] = value
        return values

    def option(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> Optional[typing.Any]:
        tag = self.u8()
        if tag == 0:
            return None
        elif tag == 1:
            return value_decoder(self)
        raise Exception(f"Unexpected option tag: {tag}")

    def sequence(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Any]:
        length = self.uleb128()
        values: List = []
        while len(values) < length:
            values.append(value_decoder(self))
        return values

    def str(self) -> str:
        data = self.to_bytes()
        try:
            return data.decode()
        except UnicodeDecodeError as e:
            raise Exception(f"Invalid utf-8 string: {e}") from e

    def struct(self, struct: typing.Any) -> typing.Any:
        return struct.deserialize(self)

    def u8(self) -> int:
        return self._read_int(1)

    def u16(self) -> int:
        return self._read_int(2)

    def u32(self) -> int:
        return self._read_int(4)

    def u64(self) -> int:
        return self._read_int(8)

    def u128(self) -> int:
        return self._read_int(16)

    def u256(self) -> int:
        return self._read_int(32)

    def uleb128(self) -> int:
        value = 0
        shift = 0

        while True:
            byte = self._read_int(1)
            value |= (byte & 0x7F) << shift
            if value > MAX_U32:
                raise Exception("Unexpectedly large uleb128 value")
            if byte & 0x80 == 0:
                break
            shift += 7

        # A zero final group after the first byte is an overlong encoding
        if shift > 0 and byte == 0:
            raise Exception("Non-canonical uleb128 value")
        return value

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            error = (
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
            raise Exception(error)
        return value

    def _read_int(self, length: int) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=False)


class Serializer:
    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self._write_int(int(value), 1)

    def to_bytes(self, value: bytes):
        self.uleb128(len(value))
        self._output.write(value)

    def fixed_bytes(self, value):
        self._output.write(value)

    def map(
        self,
        values: typing.Dict[typing.Any, typing.Any],
        key_encoder: typing.Callable[[Serializer, typing.Any], None],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        encoded_values = []
        for key, value in values.items():
            encoded_values.append(
                (encoder(key, key_encoder), encoder(value, value_encoder))
            )
        encoded_values.sort(key=lambda item: item[0])

        self.uleb128(len(encoded_values))
        for key, value in encoded_values:
            self.fixed_bytes(key)
            self.fixed_bytes(value)

    def option(
        self,
        value: Optional[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        if value is None:
            self.u8(0)
        else:
            self.u8(1)
            value_encoder(self, value)

    @staticmethod
    def option_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, value: self.option(value, value_encoder)

    @staticmethod
    def sequence_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, values: self.sequence(values, value_encoder)

    def sequence(
        self,
        values: typing.List[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.uleb128(len(values))
        for value in values:
            self.fixed_bytes(encoder(value, value_encoder))

    def str(self, value: str):
        self.to_bytes(value.encode())

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        self._write_checked(value, MAX_U8, 1, "u8")

    def u16(self, value: int):
        self._write_checked(value, MAX_U16, 2, "u16")

    def u32(self, value: int):
        self._write_checked(value, MAX_U32, 4, "u32")

    def u64(self, value: int):
        self._write_checked(value, MAX_U64, 8, "u64")

    def u128(self, value: int):
        self._write_checked(value, MAX_U128, 16, "u128")

    def u256(self, value: int):
        self._write_checked(value, MAX_U256, 32, "u256")

    def uleb128(self, value: int):
        if value < 0 or value > MAX_U32:
            raise Exception(f"Cannot encode {value} into uleb128")

        while value >= 0x80:
            # Write 7 (lowest) bits of data and set the 8th bit to 1.
            byte = value & 0x7F
            self.u8(byte | 0x80)
            value >>= 7

        # Write the remaining bits of data and set the highest bit to 0.
        self.u8(value & 0x7F)

    def _write_checked(self, value: int, maximum: int, length: int, name: str):
        if value < 0 or value > maximum:
            raise Exception(f"Cannot encode {value} into {name}")

        self._write_int(value, length)

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


def encoder(
    value: typing.Any, encoder: typing.Callable[[Serializer, typing.Any], None]
) -> bytes:
    ser = Serializer()
    encoder(ser, value)
    return ser.output()


def decode(
    data: bytes, decoder: typing.Callable[[Deserializer], typing.Any]
) -> typing.Any:
    """Decodes exactly one value from data, rejecting any trailing bytes."""
    der = Deserializer(data)
    value = decoder(der)
    der.finish()
    return value


class Test(unittest.TestCase):
    def test_bool_true(self):
        in_value = True

        ser = Serializer()
        ser.bool(in_value)
        der = Deserializer(ser.output())
        out_value = der.bool()

        self.assertEqual(in_value, out_value)

    def test_bool_false(self):
        in_value = False

        ser = Serializer()
        ser.bool(in_value)
        der = Deserializer(ser.output())
        out_value = der.bool()

        self.assertEqual(in_value, out_value)

    def test_bool_error(self):
        ser = Serializer()
        ser.u8(32)
        der = Deserializer(ser.output())
        with self.assertRaises(Exception):
            der.bool()

    def test_bytes(self):
        in_value = b"1234567890"

        ser = Serializer()
        ser.to_bytes(in_value)
        der = Deserializer(ser.output())
        out_value = der.to_bytes()

        self.assertEqual(in_value, out_value)

    def test_map(self):
        in_value = {"a": 12345, "b": 99234, "c": 23829}

        ser = Serializer()
        ser.map(in_value, Serializer.str, Serializer.u32)
        der = Deserializer(ser.output())
        out_value = der.map(Deserializer.str, Deserializer.u32)

        self.assertEqual(in_value, out_value)

    def test_option(self):
        ser = Serializer()
        ser.option(1, Serializer.u8)
        ser.option(None, Serializer.u8)
        self.assertEqual(ser.output(), b"\x01\x01\x00")

        der = Deserializer(ser.output())
        self.assertEqual(der.option(Deserializer.u8), 1)
        self.assertIsNone(der.option(Deserializer.u8))

    def test_option_bad_tag(self):
        der = Deserializer(b"\x02\x01")
        with self.assertRaises(Exception):
            der.option(Deserializer.u8)

    def test_nested_option_sequence(self):
        value = [[1, None, 3], [4, None, 6]]
        inner = Serializer.sequence_serializer(
            Serializer.option_serializer(Serializer.u8)
        )
        ser = Serializer()
        ser.option(value, Serializer.sequence_serializer(inner))
        self.assertEqual(ser.output(), bytes.fromhex("0102030101000103030104000106"))

    def test_sequence(self):
        in_value = ["a", "abc", "def", "ghi"]

        ser = Serializer()
        ser.sequence(in_value, Serializer.str)
        der = Deserializer(ser.output())
        out_value = der.sequence(Deserializer.str)

        self.assertEqual(in_value, out_value)

    def test_sequence_serializer(self):
        in_value = ["a", "abc", "def", "ghi"]

        ser = Serializer()
        seq_ser = Serializer.sequence_serializer(Serializer.str)
        seq_ser(ser, in_value)
        der = Deserializer(ser.output())
        out_value = der.sequence(Deserializer.str)

        self.assertEqual(in_value, out_value)

    def test_str(self):
        in_value = "1234567890"

        ser = Serializer()
        ser.str(in_value)
        der = Deserializer(ser.output())
        out_value = der.str()

        self.assertEqual(in_value, out_value)

    def test_str_prefix_counts_utf8_bytes(self):
        in_value = "héllo"

        ser = Serializer()
        ser.str(in_value)
        output = ser.output()

        self.assertEqual(output[0], len(in_value.encode()))
        self.assertEqual(decode(output, Deserializer.str), in_value)

    def test_integers(self):
        cases = [
            (Serializer.u8, Deserializer.u8, MAX_U8, 1),
            (Serializer.u16, Deserializer.u16, MAX_U16, 2),
            (Serializer.u32, Deserializer.u32, MAX_U32, 4),
            (Serializer.u64, Deserializer.u64, MAX_U64, 8),
            (Serializer.u128, Deserializer.u128, MAX_U128, 16),
            (Serializer.u256, Deserializer.u256, MAX_U256, 32),
        ]
        for ser_fn, der_fn, maximum, width in cases:
            for in_value in [0, 1, maximum]:
                output = encoder(in_value, ser_fn)
                self.assertEqual(len(output), width)
                self.assertEqual(decode(output, der_fn), in_value)
            with self.assertRaises(Exception):
                encoder(maximum + 1, ser_fn)
            with self.assertRaises(Exception):
                encoder(-1, ser_fn)
            with self.assertRaises(Exception):
                der_fn(Deserializer(b"\x01" * (width - 1)))

    def test_little_endian(self):
        self.assertEqual(encoder(1, Serializer.u16), b"\x01\x00")
        self.assertEqual(encoder(0x01020304, Serializer.u32), b"\x04\x03\x02\x01")

    def test_uleb128(self):
        in_value = 1111111115

        ser = Serializer()
        ser.uleb128(in_value)
        der = Deserializer(ser.output())
        out_value = der.uleb128()

        self.assertEqual(in_value, out_value)
        self.assertEqual(encoder(300, Serializer.uleb128), b"\xac\x02")

    def test_uleb128_too_large(self):
        with self.assertRaises(Exception):
            Deserializer(b"\xff\xff\xff\xff\xff\x01").uleb128()

    def test_uleb128_non_canonical(self):
        for data in (b"\x80\x00", b"\xac\x82\x00", b"\xff\x80\x00"):
            with self.assertRaises(Exception):
                Deserializer(data).uleb128()
        self.assertEqual(Deserializer(b"\x00").uleb128(), 0)
        self.assertEqual(Deserializer(b"\x80\x01").uleb128(), 128)

    def test_str_invalid_utf8(self):
        with self.assertRaises(Exception) as cm:
            decode(b"\x02\xff\xfe", Deserializer.str)
        self.assertNotIsInstance(cm.exception, UnicodeDecodeError)

    def test_trailing_bytes(self):
        with self.assertRaises(Exception):
            decode(b"\x01\x00", Deserializer.u8)


if __name__ == "__main__":
    unittest.main()
