# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Resolver, GasResolver and PackageResolver backed by a full node's JSON-RPC API.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import unittest
from typing import Any, Dict, List, Optional, Tuple

from . import bcs, ed25519
from .account import Account
from .account_address import AccountAddress
from .async_client import ObjectNotFound, RpcClient, _mock_client
from .bcs import Serializer
from .digest import Digest
from .resolver import (
    GasBudgetInput,
    GasResolutionError,
    InsufficientBalanceError,
    MoveFunction,
    MoveParameter,
    ObjectMetadata,
    OwnerKind,
    PackageMetadata,
    ReferenceKind,
    gas_budget_from_usage,
    saturating_add,
)
from .signature import UserSignature, transaction_digest
from .transaction_builder import TransactionBuilder
from .transactions import (
    GasData,
    ObjectArg,
    ObjectRef,
    TransactionData,
    TransactionDataV1,
    TransactionKind,
)


def owner_from_json(owner: Any) -> Tuple[int, Optional[int]]:
    """Maps the owner field of an object response onto (OwnerKind, owner version)."""
    if owner == "Immutable":
        return (OwnerKind.IMMUTABLE, None)
    if not isinstance(owner, dict):
        return (OwnerKind.UNKNOWN, None)
    if "AddressOwner" in owner:
        return (OwnerKind.ADDRESS, None)
    if "ObjectOwner" in owner:
        return (OwnerKind.OBJECT, None)
    if "Shared" in owner:
        return (OwnerKind.SHARED, int(owner["Shared"]["initial_shared_version"]))
    if "ConsensusAddressOwner" in owner:
        return (
            OwnerKind.CONSENSUS_ADDRESS,
            int(owner["ConsensusAddressOwner"]["start_version"]),
        )
    return (OwnerKind.UNKNOWN, None)


def object_metadata_from_json(data: Dict[str, Any]) -> ObjectMetadata:
    owner_kind, owner_version = owner_from_json(data.get("owner"))
    return ObjectMetadata(
        AccountAddress.normalize(data["objectId"]),
        int(data["version"]),
        data["digest"],
        owner_kind,
        owner_version,
    )


def type_name_from_json(signature: Any) -> str:
    """Renders a normalized Move type as `address::module::Name<...>`."""
    if isinstance(signature, str):
        return signature.lower()
    if "Struct" in signature:
        struct = signature["Struct"]
        name = f"{struct['address']}::{struct['module']}::{struct['name']}"
        type_arguments = struct.get("typeArguments", [])
        if len(type_arguments) > 0:
            inner = ", ".join(type_name_from_json(arg) for arg in type_arguments)
            name = f"{name}<{inner}>"
        return name
    if "Vector" in signature:
        return f"vector<{type_name_from_json(signature['Vector'])}>"
    if "TypeParameter" in signature:
        return f"T{signature['TypeParameter']}"
    if "Reference" in signature:
        return type_name_from_json(signature["Reference"])
    if "MutableReference" in signature:
        return type_name_from_json(signature["MutableReference"])
    return str(signature)


def parameter_from_json(signature: Any) -> MoveParameter:
    if isinstance(signature, dict) and "MutableReference" in signature:
        return MoveParameter(
            ReferenceKind.MUTABLE, type_name_from_json(signature["MutableReference"])
        )
    if isinstance(signature, dict) and "Reference" in signature:
        return MoveParameter(
            ReferenceKind.IMMUTABLE, type_name_from_json(signature["Reference"])
        )
    return MoveParameter(ReferenceKind.UNKNOWN, type_name_from_json(signature))


class RpcResolver:
    """
    Resolves objects, Move function signatures, packages and gas through an RpcClient.

    Immutable and shared object metadata, function signatures and packages are cached
    for the lifetime of the resolver; address owned objects are always fetched since
    their versions change with every use.
    """

    client: RpcClient
    _objects: Dict[str, ObjectMetadata]
    _functions: Dict[str, MoveFunction]
    _packages: Dict[str, PackageMetadata]
    _lock: asyncio.Lock

    def __init__(self, client: RpcClient):
        self.client = client
        self._objects = {}
        self._functions = {}
        self._packages = {}
        self._lock = asyncio.Lock()

    async def resolve_objects(self, object_ids: List[str]) -> List[ObjectMetadata]:
        normalized = [AccountAddress.normalize(object_id) for object_id in object_ids]
        async with self._lock:
            cached = dict(self._objects)

        pending: List[str] = []
        for object_id in normalized:
            if object_id not in cached and object_id not in pending:
                pending.append(object_id)

        fetched: Dict[str, ObjectMetadata] = {}
        if len(pending) > 0:
            logging.debug(f"Fetching {len(pending)} objects")
            responses = await self.client.multi_get_objects(pending)
            if len(responses) != len(pending):
                raise Exception(
                    f"Node returned {len(responses)} objects for {len(pending)} ids"
                )
            for object_id, response in zip(pending, responses):
                if response.get("data") is None:
                    raise ObjectNotFound(
                        f"{response.get('error')} - {object_id}", object_id
                    )
                fetched[object_id] = object_metadata_from_json(response["data"])

        async with self._lock:
            for object_id, metadata in fetched.items():
                if metadata.owner_kind in (OwnerKind.IMMUTABLE, OwnerKind.SHARED):
                    self._objects[object_id] = metadata

        return [cached.get(object_id) or fetched[object_id] for object_id in normalized]

    async def resolve_move_function(
        self, package: str, module: str, function: str
    ) -> MoveFunction:
        key = f"{AccountAddress.normalize(package)}::{module}::{function}"
        async with self._lock:
            if key in self._functions:
                return self._functions[key]

        response = await self.client.get_normalized_move_function(
            package, module, function
        )
        move_function = MoveFunction(
            [parameter_from_json(parameter) for parameter in response["parameters"]]
        )

        async with self._lock:
            self._functions[key] = move_function
        return move_function

    async def resolve_package(self, package_id: str) -> PackageMetadata:
        """
        The storage id, original id and version of a published package. The original
        id is the package that first defined its types, the package itself when it
        has never been upgraded.
        """
        package_id = AccountAddress.normalize(package_id)
        async with self._lock:
            if package_id in self._packages:
                return self._packages[package_id]

        data = await self.client.get_object(package_id, {"showBcs": True})
        package = data.get("bcs") or {}
        if package.get("dataType") != "package":
            raise Exception(f"{package_id} is not a package")

        original_id = package_id
        type_origins = package.get("typeOriginTable", [])
        if len(type_origins) > 0:
            original_id = AccountAddress.normalize(type_origins[0]["package"])

        metadata = PackageMetadata(package_id, original_id, int(data["version"]))
        async with self._lock:
            self._packages[package_id] = metadata
        return metadata

    async def resolve_gas_price(self) -> int:
        return await self.client.reference_gas_price()

    async def resolve_gas_budget(self, budget_input: GasBudgetInput) -> int:
        """
        Dry runs the transaction kind at the configured maximum budget, without gas
        coins, and derives a budget from the reported gas usage.
        """
        kind = bcs.decode(budget_input.kind, TransactionKind.deserialize)
        data = TransactionData(
            TransactionDataV1(
                kind,
                budget_input.sender,
                GasData(
                    [],
                    budget_input.gas_owner,
                    budget_input.gas_price,
                    self.client.client_config.max_gas_budget,
                ),
                budget_input.expiration,
            )
        )
        response = await self.client.dry_run_transaction_block(
            bcs.encoder(data, Serializer.struct)
        )

        effects = response.get("effects", {})
        status = effects.get("status", {})
        if status.get("status") != "success":
            raise GasResolutionError(
                f"dry run failed: {status.get('error', 'unknown execution error')}"
            )
        gas_used = effects.get("gasUsed")
        if gas_used is None:
            raise GasResolutionError("dry run response missing gas usage")

        budget = gas_budget_from_usage(
            int(gas_used["computationCost"]),
            int(gas_used["storageCost"]),
            int(gas_used["storageRebate"]),
            int(gas_used.get("nonRefundableStorageFee", 0)),
        )
        logging.debug(f"Estimated gas budget {budget}")
        return budget

    async def resolve_gas_payment(
        self, owner: AccountAddress, budget: int
    ) -> List[ObjectRef]:
        """Takes gas coins in the order the node lists them until they cover budget."""
        if budget == 0:
            raise GasResolutionError("gas budget must be greater than zero")

        payment: List[ObjectRef] = []
        total = 0
        cursor = None
        while True:
            page = await self.client.get_coins(owner, cursor=cursor)
            for coin in page["data"]:
                payment.append(
                    ObjectRef.from_str(
                        coin["coinObjectId"], int(coin["version"]), coin["digest"]
                    )
                )
                total = saturating_add(total, int(coin["balance"]))
                if total >= budget:
                    return payment
            if not page.get("hasNextPage") or page.get("nextCursor") is None:
                break
            cursor = page["nextCursor"]

        raise InsufficientBalanceError(budget, total)


class Test(unittest.IsolatedAsyncioTestCase):
    DIGEST = str(Digest(bytes([1] * 32)))

    def coin(self, object_id: str, balance: int) -> Dict[str, Any]:
        return {
            "coinObjectId": object_id,
            "version": "2",
            "digest": self.DIGEST,
            "balance": str(balance),
        }

    @staticmethod
    def struct(address: str, module: str, name: str) -> Dict[str, Any]:
        return {
            "Struct": {
                "address": address,
                "module": module,
                "name": name,
                "typeArguments": [],
            }
        }

    def test_owner_from_json(self):
        self.assertEqual(owner_from_json("Immutable"), (OwnerKind.IMMUTABLE, None))
        self.assertEqual(
            owner_from_json({"AddressOwner": "0x1"}), (OwnerKind.ADDRESS, None)
        )
        self.assertEqual(
            owner_from_json({"ObjectOwner": "0x1"}), (OwnerKind.OBJECT, None)
        )
        self.assertEqual(
            owner_from_json({"Shared": {"initial_shared_version": 4}}),
            (OwnerKind.SHARED, 4),
        )
        self.assertEqual(
            owner_from_json(
                {"ConsensusAddressOwner": {"start_version": "9", "owner": "0x1"}}
            ),
            (OwnerKind.CONSENSUS_ADDRESS, 9),
        )
        self.assertEqual(owner_from_json(None), (OwnerKind.UNKNOWN, None))

    def test_parameter_from_json(self):
        self.assertEqual(
            parameter_from_json(
                {"MutableReference": self.struct("0x2", "coin", "Coin")}
            ),
            MoveParameter(ReferenceKind.MUTABLE, "0x2::coin::Coin"),
        )
        self.assertEqual(
            parameter_from_json({"Reference": self.struct("0x2", "clock", "Clock")}),
            MoveParameter(ReferenceKind.IMMUTABLE, "0x2::clock::Clock"),
        )
        self.assertEqual(
            parameter_from_json("U64"), MoveParameter(ReferenceKind.UNKNOWN, "u64")
        )
        receiving = {
            "Struct": {
                "address": "0x2",
                "module": "transfer",
                "name": "Receiving",
                "typeArguments": [{"TypeParameter": 0}],
            }
        }
        self.assertEqual(
            parameter_from_json(receiving).type_name, "0x2::transfer::Receiving<T0>"
        )
        self.assertEqual(
            parameter_from_json({"Vector": "U8"}).type_name, "vector<u8>"
        )

    async def test_resolve_objects_caches_shared(self):
        calls = []

        def handler(method, params):
            calls.append(params[0])
            return [
                {
                    "data": {
                        "objectId": object_id,
                        "version": "5",
                        "digest": self.DIGEST,
                        "owner": {"Shared": {"initial_shared_version": "3"}}
                        if object_id == AccountAddress.normalize("0x5")
                        else {"AddressOwner": "0xa"},
                    }
                }
                for object_id in params[0]
            ]

        client = _mock_client(handler)
        resolver = RpcResolver(client)
        first = await resolver.resolve_objects(["0x5", "0x6", "0x5"])
        self.assertEqual([meta.owner_kind for meta in first], [3, 1, 3])
        self.assertEqual(first[0].owner_version, 3)

        await resolver.resolve_objects(["0x5", "0x6"])
        self.assertEqual(
            calls,
            [
                [AccountAddress.normalize("0x5"), AccountAddress.normalize("0x6")],
                [AccountAddress.normalize("0x6")],
            ],
        )
        await client.close()

    async def test_resolve_objects_not_found(self):
        def handler(method, params):
            return [{"error": {"code": "notExists", "object_id": params[0][0]}}]

        client = _mock_client(handler)
        with self.assertRaises(ObjectNotFound):
            await RpcResolver(client).resolve_objects(["0x5"])
        await client.close()

    async def test_resolve_move_function_cached(self):
        calls = []

        def handler(method, params):
            calls.append(params)
            return {"parameters": [{"Reference": self.struct("0x2", "clock", "Clock")}]}

        client = _mock_client(handler)
        resolver = RpcResolver(client)
        function = await resolver.resolve_move_function("0x2", "clock", "now")
        again = await resolver.resolve_move_function("0x02", "clock", "now")
        self.assertEqual(function, again)
        self.assertEqual(len(calls), 1)
        await client.close()

    async def test_resolve_package(self):
        upgraded = AccountAddress.normalize("0xb")
        original = AccountAddress.normalize("0xa")

        def handler(method, params):
            self.assertEqual(params[1], {"showBcs": True})
            return {
                "data": {
                    "objectId": upgraded,
                    "version": "2",
                    "bcs": {
                        "dataType": "package",
                        "id": upgraded,
                        "typeOriginTable": [
                            {"module_name": "m", "datatype_name": "S", "package": "0xa"}
                        ],
                    },
                }
            }

        client = _mock_client(handler)
        package = await RpcResolver(client).resolve_package("0xb")
        self.assertEqual(package, PackageMetadata(upgraded, original, 2))
        await client.close()

    async def test_gas_payment_first_fit_across_pages(self):
        cursors = []

        def handler(method, params):
            cursors.append(params[2])
            if params[2] is None:
                return {
                    "data": [self.coin("0x11", 300), self.coin("0x12", 300)],
                    "nextCursor": "page2",
                    "hasNextPage": True,
                }
            return {
                "data": [self.coin("0x13", 500), self.coin("0x14", 500)],
                "nextCursor": None,
                "hasNextPage": False,
            }

        client = _mock_client(handler)
        resolver = RpcResolver(client)
        payment = await resolver.resolve_gas_payment(
            AccountAddress.from_str("0xa"), 1000
        )
        self.assertEqual(
            [str(ref.object_id) for ref in payment],
            [AccountAddress.normalize(i) for i in ("0x11", "0x12", "0x13")],
        )
        self.assertEqual(cursors, [None, "page2"])
        await client.close()

    async def test_gas_payment_insufficient_balance(self):
        def handler(method, params):
            return {
                "data": [self.coin("0x11", 400)],
                "nextCursor": None,
                "hasNextPage": False,
            }

        client = _mock_client(handler)
        resolver = RpcResolver(client)
        with self.assertRaises(InsufficientBalanceError) as context:
            await resolver.resolve_gas_payment(AccountAddress.from_str("0xa"), 1000)
        self.assertEqual(
            str(context.exception),
            "insufficient balance to satisfy requested amount: "
            "required 1000, available 400",
        )
        with self.assertRaises(GasResolutionError):
            await resolver.resolve_gas_payment(AccountAddress.from_str("0xa"), 0)
        await client.close()

    async def test_gas_budget_from_dry_run(self):
        sent = []

        def handler(method, params):
            sent.append(base64.b64decode(params[0]))
            return {
                "effects": {
                    "status": {"status": "success"},
                    "gasUsed": {
                        "computationCost": "1000000",
                        "storageCost": "2000000",
                        "storageRebate": "500000",
                        "nonRefundableStorageFee": "10000",
                    },
                }
            }

        client = _mock_client(handler)
        builder = TransactionBuilder()
        builder.split_coins(builder.gas(), [builder.pure_u64(1)])
        kind_bytes = (await builder.build()).kind_bytes
        sender = AccountAddress.from_str("0xa")
        budget = await RpcResolver(client).resolve_gas_budget(
            GasBudgetInput(sender, sender, 1000, kind_bytes, builder.expiration)
        )
        # 2510000 plus a 10% buffer
        self.assertEqual(budget, 2761000)

        dry_run = bcs.decode(sent[0], TransactionData.deserialize).value
        self.assertEqual(dry_run.gas_data.payment, [])
        self.assertEqual(dry_run.gas_data.budget, 50_000_000_000)
        self.assertEqual(dry_run.gas_data.price, 1000)
        await client.close()

    async def test_gas_budget_dry_run_failure(self):
        def handler(method, params):
            return {
                "effects": {
                    "status": {"status": "failure", "error": "InsufficientGas"},
                    "gasUsed": {},
                }
            }

        client = _mock_client(handler)
        builder = TransactionBuilder()
        builder.split_coins(builder.gas(), [builder.pure_u64(1)])
        kind_bytes = (await builder.build()).kind_bytes
        sender = AccountAddress.from_str("0xa")
        with self.assertRaises(GasResolutionError) as context:
            await RpcResolver(client).resolve_gas_budget(
                GasBudgetInput(sender, sender, 1000, kind_bytes, builder.expiration)
            )
        self.assertIn("InsufficientGas", str(context.exception))
        await client.close()

    async def test_sign_and_execute(self):
        account = Account.generate()
        counter = AccountAddress.normalize("0x5")
        executed = []

        def handler(method, params):
            if method == "sui_multiGetObjects":
                return [
                    {
                        "data": {
                            "objectId": counter,
                            "version": "7",
                            "digest": self.DIGEST,
                            "owner": {"Shared": {"initial_shared_version": 3}},
                        }
                    }
                ]
            if method == "sui_getNormalizedMoveFunction":
                return {
                    "parameters": [
                        {"MutableReference": self.struct("0x2", "counter", "Counter")},
                        {"MutableReference": self.struct("0x2", "tx_context", "TxContext")},
                    ]
                }
            if method == "suix_getReferenceGasPrice":
                return "1000"
            if method == "sui_dryRunTransactionBlock":
                return {
                    "effects": {
                        "status": {"status": "success"},
                        "gasUsed": {
                            "computationCost": "1000",
                            "storageCost": "0",
                            "storageRebate": "0",
                            "nonRefundableStorageFee": "0",
                        },
                    }
                }
            if method == "suix_getCoins":
                self.assertEqual(params[0], str(account.address()))
                return {
                    "data": [self.coin("0x11", 10_000)],
                    "nextCursor": None,
                    "hasNextPage": False,
                }
            if method == "sui_executeTransactionBlock":
                executed.append(params)
                return {"digest": "abc"}
            raise AssertionError(method)

        client = _mock_client(handler)
        builder = TransactionBuilder()
        builder.move_call("0x2::counter::increment", [builder.object("0x5")])
        response = await client.sign_and_execute_transaction(builder, account)
        self.assertEqual(response["digest"], "abc")
        self.assertIsNone(builder.sender)

        transaction_bytes = base64.b64decode(executed[0][0])
        data = bcs.decode(transaction_bytes, TransactionData.deserialize).value
        self.assertEqual(data.sender, account.address())
        self.assertEqual(data.gas_data.budget, 2000)
        self.assertEqual(data.gas_data.price, 1000)
        self.assertEqual(len(data.gas_data.payment), 1)
        shared = data.kind.value.inputs[0].value
        self.assertEqual(shared.variant, ObjectArg.SHARED)
        self.assertTrue(shared.value.mutable)
        self.assertEqual(shared.value.initial_shared_version, 3)

        signature = UserSignature.from_serialized(base64.b64decode(executed[0][1][0]))
        self.assertEqual(signature.address(), account.address())
        self.assertTrue(
            account.public_key().verify(
                transaction_digest(transaction_bytes),
                ed25519.Signature(signature.signature),
            )
        )
        await client.close()


if __name__ == "__main__":
    unittest.main()
