# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Contracts for the services a transaction build depends on. Object metadata and Move
function signatures come from a Resolver, gas from a GasResolver. Any transport may
implement them; the network implementation lives in rpc_resolver.
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import List, Optional

from typing_extensions import Protocol

from .account_address import AccountAddress
from .bcs import MAX_U64
from .transactions import ObjectRef, TransactionExpiration


class GasResolutionError(Exception):
    """
    A gas price, budget or payment could not be determined.
    """


class InsufficientBalanceError(GasResolutionError):
    """
    The gas owner does not hold enough gas coins to cover the budget.
    """

    def __init__(self, required: int, available: int):
        # Call the base class constructor with the parameters it needs
        super().__init__(
            "insufficient balance to satisfy requested amount: "
            f"required {required}, available {available}"
        )
        self.required = required
        self.available = available


class OwnerKind:
    UNKNOWN: int = 0
    ADDRESS: int = 1
    OBJECT: int = 2
    SHARED: int = 3
    IMMUTABLE: int = 4
    CONSENSUS_ADDRESS: int = 5


class ReferenceKind:
    UNKNOWN: int = 0
    IMMUTABLE: int = 1
    MUTABLE: int = 2


@dataclass
class ObjectMetadata:
    object_id: str
    version: int
    digest: str
    owner_kind: int = OwnerKind.UNKNOWN
    # Initial shared version for shared objects, start version for consensus
    # address owned objects.
    owner_version: Optional[int] = None

    def object_ref(self) -> ObjectRef:
        return ObjectRef.from_str(self.object_id, self.version, self.digest)


@dataclass
class MoveParameter:
    reference: int
    type_name: str


@dataclass
class MoveFunction:
    parameters: List[MoveParameter]


@dataclass
class PackageMetadata:
    storage_id: str
    original_id: str
    version: int


@dataclass
class GasBudgetInput:
    sender: AccountAddress
    gas_owner: AccountAddress
    gas_price: int
    # BCS encoded TransactionKind
    kind: bytes
    expiration: TransactionExpiration


class Resolver(Protocol):
    async def resolve_objects(self, object_ids: List[str]) -> List[ObjectMetadata]:
        """
        Returns one record per requested id, in request order.
        """
        ...

    async def resolve_move_function(
        self, package: str, module: str, function: str
    ) -> MoveFunction:
        ...


class PackageResolver(Protocol):
    async def resolve_package(self, package_id: str) -> PackageMetadata:
        ...


class GasResolver(Protocol):
    async def resolve_gas_price(self) -> int:
        ...

    async def resolve_gas_budget(self, budget_input: GasBudgetInput) -> int:
        ...

    async def resolve_gas_payment(
        self, owner: AccountAddress, budget: int
    ) -> List[ObjectRef]:
        """
        Returns a non-empty list of gas coins whose balances cover the budget.
        """
        ...


def saturating_add(a: int, b: int) -> int:
    return min(a + b, MAX_U64)


def add_gas_budget_buffer(base: int) -> int:
    """Pads a simulated gas cost by 10%, never by less than 1000 MIST."""
    return saturating_add(base, max(base // 10, 1000))


def gas_budget_from_usage(
    computation_cost: int,
    storage_cost: int,
    storage_rebate: int,
    non_refundable_storage_fee: int,
) -> int:
    """
    Converts the gas summary of a dry run into a budget:
    computation + storage - rebate + non refundable fee, clamped to the u64 range,
    plus the safety buffer.
    """
    total = saturating_add(computation_cost, storage_cost)
    total = max(total - storage_rebate, 0)
    total = saturating_add(total, non_refundable_storage_fee)
    return add_gas_budget_buffer(total)


class Test(unittest.TestCase):
    def test_buffer_floor(self):
        self.assertEqual(add_gas_budget_buffer(0), 1000)
        self.assertEqual(add_gas_budget_buffer(9_999), 10_999)

    def test_buffer_percentage(self):
        self.assertEqual(add_gas_budget_buffer(1_000_000), 1_100_000)

    def test_buffer_saturates(self):
        self.assertEqual(add_gas_budget_buffer(MAX_U64), MAX_U64)
        self.assertEqual(add_gas_budget_buffer(MAX_U64 - 10), MAX_U64)

    def test_budget_from_usage(self):
        self.assertEqual(
            gas_budget_from_usage(1_000_000, 2_000_000, 500_000, 0), 2_750_000
        )
        self.assertEqual(gas_budget_from_usage(100, 100, 10_000, 0), 1000)
        self.assertEqual(gas_budget_from_usage(MAX_U64, MAX_U64, 0, 0), MAX_U64)
        self.assertEqual(gas_budget_from_usage(10_000, 0, 0, 50), 11_055)

    def test_insufficient_balance_message(self):
        error = InsufficientBalanceError(10, 4)
        self.assertIsInstance(error, GasResolutionError)
        self.assertEqual(
            str(error),
            "insufficient balance to satisfy requested amount: "
            "required 10, available 4",
        )

    def test_object_metadata_ref(self):
        metadata = ObjectMetadata("0x1", 3, "11111111111111111111111111111111")
        ref = metadata.object_ref()
        self.assertEqual(ref.object_id, AccountAddress.from_str("0x1"))
        self.assertEqual(ref.version, 3)


if __name__ == "__main__":
    unittest.main()
