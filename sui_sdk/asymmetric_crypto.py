# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing_extensions import Protocol

from .bcs import Deserializable, Serializable


class PrivateKey(Deserializable, Serializable, Protocol):
    # Signature scheme flag, see signature.SignatureScheme
    SCHEME: int

    def hex(self) -> str:
        ...

    def to_crypto_bytes(self) -> bytes:
        ...

    def public_key(self) -> PublicKey:
        ...

    def sign(self, data: bytes) -> Signature:
        ...


class PublicKey(Deserializable, Serializable, Protocol):
    SCHEME: int

    def to_crypto_bytes(self) -> bytes:
        """
        The raw key as it appears in serialized signatures and in address derivation.
        """
        ...

    def verify(self, data: bytes, signature: Signature) -> bool:
        ...


class Signature(Deserializable, Serializable, Protocol):
    def data(self) -> bytes:
        ...
