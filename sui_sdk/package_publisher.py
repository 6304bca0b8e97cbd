# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

import base64
import os
import tempfile
import unittest
from typing import Any, Dict, List, Tuple

import tomli

from . import bcs
from .account import Account
from .account_address import AccountAddress
from .async_client import RpcClient, _mock_client
from .digest import Digest
from .rpc_resolver import RpcResolver
from .signature import blake2b_256
from .transaction_builder import TransactionBuilder
from .transactions import MoveCall, Publish, TransactionData, TransferObjects, Upgrade

# Every package links against the Move standard library and the Sui framework
DEFAULT_DEPENDENCIES: List[AccountAddress] = [
    AccountAddress.from_str("0x1"),
    AccountAddress.from_str("0x2"),
]


class UpgradePolicy:
    COMPATIBLE: int = 0
    ADDITIVE: int = 128
    DEP_ONLY: int = 192


def compute_package_digest(
    modules: List[bytes], dependencies: List[AccountAddress]
) -> bytes:
    """
    The digest an UpgradeTicket commits to: blake2b-256 over the sorted module
    digests and dependency ids.
    """
    components = [blake2b_256(module) for module in modules]
    components.extend(dependency.address for dependency in dependencies)
    return blake2b_256(b"".join(sorted(components)))


def load_package(package_dir: str) -> Tuple[str, List[bytes]]:
    """Reads the package name from Move.toml and its compiled bytecode modules."""
    with open(os.path.join(package_dir, "Move.toml"), "rb") as f:
        data = tomli.load(f)
    package = data["package"]["name"]

    module_directory = os.path.join(package_dir, "build", package, "bytecode_modules")
    modules = []
    for module_path in sorted(os.listdir(module_directory)):
        module_path = os.path.join(module_directory, module_path)
        if not os.path.isfile(module_path) or not module_path.endswith(".mv"):
            continue
        with open(module_path, "rb") as f:
            modules.append(f.read())
    return (package, modules)


class PackagePublisher:
    """A wrapper around publishing and upgrading packages."""

    client: RpcClient
    resolver: RpcResolver

    def __init__(self, client: RpcClient):
        self.client = client
        self.resolver = RpcResolver(client)

    @staticmethod
    def publish_transaction(
        sender: AccountAddress,
        modules: List[bytes],
        dependencies: List[AccountAddress],
    ) -> TransactionBuilder:
        builder = TransactionBuilder()
        builder.set_sender(sender)
        upgrade_cap = builder.publish(modules, dependencies)
        builder.transfer_objects([upgrade_cap.arg()], sender)
        return builder

    async def publish_package(
        self,
        sender: Account,
        modules: List[bytes],
        dependencies: List[AccountAddress] = DEFAULT_DEPENDENCIES,
    ) -> Dict[str, Any]:
        """Publishes the modules and transfers the UpgradeCap to the sender."""
        builder = PackagePublisher.publish_transaction(
            sender.address(), modules, dependencies
        )
        return await self.client.sign_and_execute_transaction(builder, sender)

    async def publish_package_in_path(
        self,
        sender: Account,
        package_dir: str,
        dependencies: List[AccountAddress] = DEFAULT_DEPENDENCIES,
    ) -> Dict[str, Any]:
        _, modules = load_package(package_dir)
        return await self.publish_package(sender, modules, dependencies)

    async def upgrade_transaction(
        self,
        sender: AccountAddress,
        package_id: str,
        upgrade_cap: str,
        modules: List[bytes],
        dependencies: List[AccountAddress],
        policy: int = UpgradePolicy.COMPATIBLE,
    ) -> TransactionBuilder:
        package = await self.resolver.resolve_package(package_id)
        digest = compute_package_digest(modules, dependencies)

        builder = TransactionBuilder()
        builder.set_sender(sender)
        cap = builder.object(upgrade_cap)
        ticket = builder.move_call(
            "0x2::package::authorize_upgrade",
            [
                cap,
                builder.pure_u8(policy),
                builder.pure(digest, bcs.Serializer.to_bytes),
            ],
        )
        receipt = builder.upgrade(
            modules, dependencies, package.storage_id, ticket.arg()
        )
        builder.move_call("0x2::package::commit_upgrade", [cap, receipt.arg()])
        return builder

    async def upgrade_package(
        self,
        sender: Account,
        package_id: str,
        upgrade_cap: str,
        modules: List[bytes],
        dependencies: List[AccountAddress] = DEFAULT_DEPENDENCIES,
        policy: int = UpgradePolicy.COMPATIBLE,
    ) -> Dict[str, Any]:
        """
        Authorizes an upgrade with the UpgradeCap, upgrades the package and commits the
        receipt, all in one transaction.
        """
        builder = await self.upgrade_transaction(
            sender.address(), package_id, upgrade_cap, modules, dependencies, policy
        )
        return await self.client.sign_and_execute_transaction(builder, sender)


class Test(unittest.IsolatedAsyncioTestCase):
    DIGEST = str(Digest(bytes([1] * 32)))

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

    def test_compute_package_digest(self):
        modules = [b"\x02", b"\x01"]
        dependencies = [AccountAddress.from_str("0x2")]
        components = sorted(
            [
                blake2b_256(b"\x02"),
                blake2b_256(b"\x01"),
                AccountAddress.from_str("0x2").address,
            ]
        )
        self.assertEqual(
            compute_package_digest(modules, dependencies),
            blake2b_256(b"".join(components)),
        )
        self.assertEqual(
            compute_package_digest(list(reversed(modules)), dependencies),
            compute_package_digest(modules, dependencies),
        )

    def test_load_package(self):
        with tempfile.TemporaryDirectory() as package_dir:
            with open(os.path.join(package_dir, "Move.toml"), "w") as f:
                f.write('[package]\nname = "counter"\nedition = "2024.beta"\n')
            module_directory = os.path.join(
                package_dir, "build", "counter", "bytecode_modules"
            )
            os.makedirs(os.path.join(module_directory, "dependencies"))
            for name, content in (("b.mv", b"\x0b"), ("a.mv", b"\x0a")):
                with open(os.path.join(module_directory, name), "wb") as f:
                    f.write(content)
            with open(os.path.join(module_directory, "notes.txt"), "wb") as f:
                f.write(b"skip")

            self.assertEqual(load_package(package_dir), ("counter", [b"\x0a", b"\x0b"]))

    async def test_publish_transaction(self):
        sender = AccountAddress.from_str("0xa")
        builder = PackagePublisher.publish_transaction(
            sender, [b"\x01"], DEFAULT_DEPENDENCIES
        )
        result = await builder.build()
        commands = result.programmable.commands
        self.assertIsInstance(commands[0].value, Publish)
        self.assertEqual(commands[0].value.dependencies, DEFAULT_DEPENDENCIES)
        self.assertIsInstance(commands[1].value, TransferObjects)
        self.assertEqual(result.programmable.inputs[0].value, sender.address)

    async def test_upgrade_transaction(self):
        package_id = AccountAddress.normalize("0xb")
        cap_id = AccountAddress.normalize("0xc")

        def handler(method, params):
            if method == "sui_getObject":
                return {
                    "data": {
                        "objectId": package_id,
                        "version": "1",
                        "bcs": {"dataType": "package", "typeOriginTable": []},
                    }
                }
            if method == "sui_getNormalizedMoveFunction":
                cap = {"MutableReference": self.struct("0x2", "package", "UpgradeCap")}
                if params[2] == "authorize_upgrade":
                    return {"parameters": [cap, "U8", {"Vector": "U8"}]}
                return {
                    "parameters": [cap, self.struct("0x2", "package", "UpgradeReceipt")]
                }
            if method == "sui_multiGetObjects":
                return [
                    {
                        "data": {
                            "objectId": cap_id,
                            "version": "4",
                            "digest": self.DIGEST,
                            "owner": {"AddressOwner": "0xa"},
                        }
                    }
                ]
            raise AssertionError(method)

        client = _mock_client(handler)
        publisher = PackagePublisher(client)
        builder = await publisher.upgrade_transaction(
            AccountAddress.from_str("0xa"),
            "0xb",
            "0xc",
            [b"\x01"],
            DEFAULT_DEPENDENCIES,
        )
        result = await builder.build(publisher.resolver)
        commands = [command.value for command in result.programmable.commands]
        self.assertIsInstance(commands[0], MoveCall)
        self.assertEqual(commands[0].function, "authorize_upgrade")
        self.assertIsInstance(commands[1], Upgrade)
        self.assertEqual(str(commands[1].package), package_id)
        self.assertIsInstance(commands[2], MoveCall)
        self.assertEqual(commands[2].function, "commit_upgrade")

        digest_input = result.programmable.inputs[2].value
        self.assertEqual(
            digest_input,
            bcs.encoder(
                compute_package_digest([b"\x01"], DEFAULT_DEPENDENCIES),
                bcs.Serializer.to_bytes,
            ),
        )
        await client.close()

    async def test_publish_package(self):
        sender = Account.generate()
        executed = []

        def handler(method, params):
            if method == "suix_getReferenceGasPrice":
                return "1000"
            if method == "sui_dryRunTransactionBlock":
                return {
                    "effects": {
                        "status": {"status": "success"},
                        "gasUsed": {
                            "computationCost": "20000",
                            "storageCost": "10000",
                            "storageRebate": "0",
                            "nonRefundableStorageFee": "0",
                        },
                    }
                }
            if method == "suix_getCoins":
                return {
                    "data": [
                        {
                            "coinObjectId": "0x11",
                            "version": "2",
                            "digest": self.DIGEST,
                            "balance": "1000000",
                        }
                    ],
                    "nextCursor": None,
                    "hasNextPage": False,
                }
            if method == "sui_executeTransactionBlock":
                executed.append(params)
                return {"digest": "abc"}
            raise AssertionError(method)

        client = _mock_client(handler)
        response = await PackagePublisher(client).publish_package(sender, [b"\x01"])
        self.assertEqual(response["digest"], "abc")
        data = bcs.decode(
            base64.b64decode(executed[0][0]), TransactionData.deserialize
        ).value
        self.assertEqual(data.sender, sender.address())
        self.assertEqual(data.gas_data.budget, 33000)
        await client.close()


if __name__ == "__main__":
    unittest.main()
