# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
This translates Sui transactions to and from BCS for signing and submitting to the
network.
"""

from __future__ import annotations

import unittest
from typing import Any, List, Optional, Tuple

from .account_address import AccountAddress
from .bcs import Deserializer, Serializer
from .digest import Digest
from .type_tag import StructTag, TypeTag


class MissingMoveCallTargetError(Exception):
    """
    A move call target was not of the form package::module::function.
    """


def parse_move_call_target(target: str) -> Tuple[AccountAddress, str, str]:
    """Splits `0x2::coin::split` into its package, module and function."""
    split = target.strip().split("::")
    if len(split) != 3 or any(part.strip() == "" for part in split):
        raise MissingMoveCallTargetError(
            f"Move call target must be package::module::function: {target!r}"
        )
    return AccountAddress.from_str(split[0]), split[1].strip(), split[2].strip()


class ObjectRef:
    object_id: AccountAddress
    version: int
    digest: Digest

    def __init__(self, object_id: AccountAddress, version: int, digest: Digest):
        self.object_id = object_id
        self.version = version
        self.digest = digest

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectRef):
            return NotImplemented
        return (
            self.object_id == other.object_id
            and self.version == other.version
            and self.digest == other.digest
        )

    def __str__(self):
        return f"ObjectRef({self.object_id}, {self.version}, {self.digest})"

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def from_str(object_id: str, version: int, digest: str) -> ObjectRef:
        return ObjectRef(
            AccountAddress.from_str(object_id), int(version), Digest.from_str(digest)
        )

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ObjectRef:
        object_id = AccountAddress.deserialize(deserializer)
        version = deserializer.u64()
        digest = Digest.deserialize(deserializer)
        return ObjectRef(object_id, version, digest)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.object_id)
        serializer.u64(self.version)
        serializer.struct(self.digest)


class SharedObjectRef:
    object_id: AccountAddress
    initial_shared_version: int
    mutable: bool

    def __init__(
        self, object_id: AccountAddress, initial_shared_version: int, mutable: bool
    ):
        self.object_id = object_id
        self.initial_shared_version = initial_shared_version
        self.mutable = mutable

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SharedObjectRef):
            return NotImplemented
        return (
            self.object_id == other.object_id
            and self.initial_shared_version == other.initial_shared_version
            and self.mutable == other.mutable
        )

    def __str__(self):
        return (
            f"SharedObjectRef({self.object_id}, {self.initial_shared_version}, "
            f"mutable={self.mutable})"
        )

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> SharedObjectRef:
        object_id = AccountAddress.deserialize(deserializer)
        initial_shared_version = deserializer.u64()
        mutable = deserializer.bool()
        return SharedObjectRef(object_id, initial_shared_version, mutable)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.object_id)
        serializer.u64(self.initial_shared_version)
        serializer.bool(self.mutable)


class ObjectArg:
    IMM_OR_OWNED: int = 0
    SHARED: int = 1
    RECEIVING: int = 2

    variant: int
    value: Any

    def __init__(self, variant: int, value: Any):
        if variant == ObjectArg.SHARED:
            if not isinstance(value, SharedObjectRef):
                raise Exception("Shared object args take a SharedObjectRef")
        elif variant in (ObjectArg.IMM_OR_OWNED, ObjectArg.RECEIVING):
            if not isinstance(value, ObjectRef):
                raise Exception("Owned and receiving object args take an ObjectRef")
        else:
            raise Exception("Invalid variant")

        self.variant = variant
        self.value = value

    @staticmethod
    def imm_or_owned(object_ref: ObjectRef) -> ObjectArg:
        return ObjectArg(ObjectArg.IMM_OR_OWNED, object_ref)

    @staticmethod
    def shared(object_ref: SharedObjectRef) -> ObjectArg:
        return ObjectArg(ObjectArg.SHARED, object_ref)

    @staticmethod
    def receiving(object_ref: ObjectRef) -> ObjectArg:
        return ObjectArg(ObjectArg.RECEIVING, object_ref)

    def object_id(self) -> AccountAddress:
        return self.value.object_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectArg):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self):
        return f"[{self.variant}] {self.value}"

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ObjectArg:
        variant = deserializer.uleb128()
        if variant == ObjectArg.SHARED:
            value: Any = SharedObjectRef.deserialize(deserializer)
        elif variant in (ObjectArg.IMM_OR_OWNED, ObjectArg.RECEIVING):
            value = ObjectRef.deserialize(deserializer)
        else:
            raise Exception(f"Invalid ObjectArg variant {variant}")
        return ObjectArg(variant, value)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.value)


class CallArg:
    """A fully resolved transaction input."""

    PURE: int = 0
    OBJECT: int = 1

    variant: int
    # Pre-encoded BCS bytes for pure inputs, an ObjectArg for objects.
    value: Any

    def __init__(self, variant: int, value: Any):
        if variant == CallArg.PURE:
            if not isinstance(value, bytes):
                raise Exception("Pure inputs take encoded bytes")
        elif variant == CallArg.OBJECT:
            if not isinstance(value, ObjectArg):
                raise Exception("Object inputs take an ObjectArg")
        else:
            raise Exception("Invalid variant")

        self.variant = variant
        self.value = value

    @staticmethod
    def pure(value: bytes) -> CallArg:
        return CallArg(CallArg.PURE, value)

    @staticmethod
    def object(value: ObjectArg) -> CallArg:
        return CallArg(CallArg.OBJECT, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallArg):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self):
        if self.variant == CallArg.PURE:
            return f"Pure(0x{self.value.hex()})"
        return f"Object({self.value})"

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> CallArg:
        variant = deserializer.uleb128()
        if variant == CallArg.PURE:
            return CallArg(variant, deserializer.to_bytes())
        elif variant == CallArg.OBJECT:
            return CallArg(variant, ObjectArg.deserialize(deserializer))
        raise Exception(f"Invalid CallArg variant {variant}")

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.variant == CallArg.PURE:
            serializer.to_bytes(self.value)
        else:
            serializer.struct(self.value)


class Argument:
    """A reference to a value used by a command."""

    GAS_COIN: int = 0
    INPUT: int = 1
    RESULT: int = 2
    NESTED_RESULT: int = 3

    variant: int
    # None for the gas coin, an index for inputs and results, an (index, index)
    # tuple for nested results.
    value: Any

    def __init__(self, variant: int, value: Any = None):
        if variant < 0 or variant > Argument.NESTED_RESULT:
            raise Exception("Invalid variant")

        self.variant = variant
        self.value = value

    @staticmethod
    def gas_coin() -> Argument:
        return Argument(Argument.GAS_COIN)

    @staticmethod
    def input(index: int) -> Argument:
        return Argument(Argument.INPUT, index)

    @staticmethod
    def result(index: int) -> Argument:
        return Argument(Argument.RESULT, index)

    @staticmethod
    def nested_result(index: int, result_index: int) -> Argument:
        return Argument(Argument.NESTED_RESULT, (index, result_index))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Argument):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.variant, self.value))

    def __str__(self):
        if self.variant == Argument.GAS_COIN:
            return "GasCoin"
        elif self.variant == Argument.INPUT:
            return f"Input({self.value})"
        elif self.variant == Argument.RESULT:
            return f"Result({self.value})"
        return f"NestedResult({self.value[0]}, {self.value[1]})"

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Argument:
        variant = deserializer.uleb128()
        if variant == Argument.GAS_COIN:
            value: Any = None
        elif variant in (Argument.INPUT, Argument.RESULT):
            value = deserializer.u16()
        elif variant == Argument.NESTED_RESULT:
            value = (deserializer.u16(), deserializer.u16())
        else:
            raise Exception(f"Invalid Argument variant {variant}")
        return Argument(variant, value)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.variant in (Argument.INPUT, Argument.RESULT):
            serializer.u16(self.value)
        elif self.variant == Argument.NESTED_RESULT:
            serializer.u16(self.value[0])
            serializer.u16(self.value[1])


#
# Commands
#


class MoveCall:
    package: AccountAddress
    module: str
    function: str
    type_arguments: List[TypeTag]
    arguments: List[Argument]

    def __init__(
        self,
        package: AccountAddress,
        module: str,
        function: str,
        type_arguments: List[TypeTag],
        arguments: List[Argument],
    ):
        self.package = package
        self.module = module
        self.function = function
        self.type_arguments = type_arguments
        self.arguments = arguments

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MoveCall):
            return NotImplemented
        return (
            self.package == other.package
            and self.module == other.module
            and self.function == other.function
            and self.type_arguments == other.type_arguments
            and self.arguments == other.arguments
        )

    def __str__(self):
        return (
            f"MoveCall({self.package}::{self.module}::{self.function}"
            f"<{self.type_arguments}>({self.arguments}))"
        )

    def variant(self) -> int:
        return Command.MOVE_CALL

    def result_arity(self) -> Optional[int]:
        # Depends on the callee, only known after simulation.
        return None

    def all_arguments(self) -> List[Argument]:
        return list(self.arguments)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> MoveCall:
        package = AccountAddress.deserialize(deserializer)
        module = deserializer.str()
        function = deserializer.str()
        type_arguments = deserializer.sequence(TypeTag.deserialize)
        arguments = deserializer.sequence(Argument.deserialize)
        return MoveCall(package, module, function, type_arguments, arguments)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.package)
        serializer.str(self.module)
        serializer.str(self.function)
        serializer.sequence(self.type_arguments, Serializer.struct)
        serializer.sequence(self.arguments, Serializer.struct)


class TransferObjects:
    objects: List[Argument]
    address: Argument

    def __init__(self, objects: List[Argument], address: Argument):
        self.objects = objects
        self.address = address

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransferObjects):
            return NotImplemented
        return self.objects == other.objects and self.address == other.address

    def __str__(self):
        return f"TransferObjects({self.objects}, {self.address})"

    def variant(self) -> int:
        return Command.TRANSFER_OBJECTS

    def result_arity(self) -> Optional[int]:
        return 0

    def all_arguments(self) -> List[Argument]:
        return self.objects + [self.address]

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransferObjects:
        objects = deserializer.sequence(Argument.deserialize)
        address = Argument.deserialize(deserializer)
        return TransferObjects(objects, address)

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.objects, Serializer.struct)
        serializer.struct(self.address)


class SplitCoins:
    coin: Argument
    amounts: List[Argument]

    def __init__(self, coin: Argument, amounts: List[Argument]):
        self.coin = coin
        self.amounts = amounts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SplitCoins):
            return NotImplemented
        return self.coin == other.coin and self.amounts == other.amounts

    def __str__(self):
        return f"SplitCoins({self.coin}, {self.amounts})"

    def variant(self) -> int:
        return Command.SPLIT_COINS

    def result_arity(self) -> Optional[int]:
        return len(self.amounts)

    def all_arguments(self) -> List[Argument]:
        return [self.coin] + self.amounts

    @staticmethod
    def deserialize(deserializer: Deserializer) -> SplitCoins:
        coin = Argument.deserialize(deserializer)
        amounts = deserializer.sequence(Argument.deserialize)
        return SplitCoins(coin, amounts)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.coin)
        serializer.sequence(self.amounts, Serializer.struct)


class MergeCoins:
    destination: Argument
    sources: List[Argument]

    def __init__(self, destination: Argument, sources: List[Argument]):
        self.destination = destination
        self.sources = sources

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MergeCoins):
            return NotImplemented
        return self.destination == other.destination and self.sources == other.sources

    def __str__(self):
        return f"MergeCoins({self.destination}, {self.sources})"

    def variant(self) -> int:
        return Command.MERGE_COINS

    def result_arity(self) -> Optional[int]:
        return 0

    def all_arguments(self) -> List[Argument]:
        return [self.destination] + self.sources

    @staticmethod
    def deserialize(deserializer: Deserializer) -> MergeCoins:
        destination = Argument.deserialize(deserializer)
        sources = deserializer.sequence(Argument.deserialize)
        return MergeCoins(destination, sources)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.destination)
        serializer.sequence(self.sources, Serializer.struct)


class Publish:
    modules: List[bytes]
    dependencies: List[AccountAddress]

    def __init__(self, modules: List[bytes], dependencies: List[AccountAddress]):
        self.modules = modules
        self.dependencies = dependencies

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Publish):
            return NotImplemented
        return self.modules == other.modules and self.dependencies == other.dependencies

    def __str__(self):
        return f"Publish({len(self.modules)} modules, {self.dependencies})"

    def variant(self) -> int:
        return Command.PUBLISH

    def result_arity(self) -> Optional[int]:
        return 1

    def all_arguments(self) -> List[Argument]:
        return []

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Publish:
        modules = deserializer.sequence(Deserializer.to_bytes)
        dependencies = deserializer.sequence(AccountAddress.deserialize)
        return Publish(modules, dependencies)

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.modules, Serializer.to_bytes)
        serializer.sequence(self.dependencies, Serializer.struct)


class MakeMoveVec:
    type_tag: Optional[TypeTag]
    elements: List[Argument]

    def __init__(self, type_tag: Optional[TypeTag], elements: List[Argument]):
        self.type_tag = type_tag
        self.elements = elements

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MakeMoveVec):
            return NotImplemented
        return self.type_tag == other.type_tag and self.elements == other.elements

    def __str__(self):
        return f"MakeMoveVec({self.type_tag}, {self.elements})"

    def variant(self) -> int:
        return Command.MAKE_MOVE_VEC

    def result_arity(self) -> Optional[int]:
        return 1

    def all_arguments(self) -> List[Argument]:
        return list(self.elements)

    @staticmethod
    def deserialize(deserializer: Deserializer) -> MakeMoveVec:
        type_tag = deserializer.option(TypeTag.deserialize)
        elements = deserializer.sequence(Argument.deserialize)
        return MakeMoveVec(type_tag, elements)

    def serialize(self, serializer: Serializer):
        serializer.option(self.type_tag, Serializer.struct)
        serializer.sequence(self.elements, Serializer.struct)


class Upgrade:
    modules: List[bytes]
    dependencies: List[AccountAddress]
    package: AccountAddress
    ticket: Argument

    def __init__(
        self,
        modules: List[bytes],
        dependencies: List[AccountAddress],
        package: AccountAddress,
        ticket: Argument,
    ):
        self.modules = modules
        self.dependencies = dependencies
        self.package = package
        self.ticket = ticket

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Upgrade):
            return NotImplemented
        return (
            self.modules == other.modules
            and self.dependencies == other.dependencies
            and self.package == other.package
            and self.ticket == other.ticket
        )

    def __str__(self):
        return (
            f"Upgrade({len(self.modules)} modules, {self.dependencies}, "
            f"{self.package}, {self.ticket})"
        )

    def variant(self) -> int:
        return Command.UPGRADE

    def result_arity(self) -> Optional[int]:
        return 1

    def all_arguments(self) -> List[Argument]:
        return [self.ticket]

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Upgrade:
        modules = deserializer.sequence(Deserializer.to_bytes)
        dependencies = deserializer.sequence(AccountAddress.deserialize)
        package = AccountAddress.deserialize(deserializer)
        ticket = Argument.deserialize(deserializer)
        return Upgrade(modules, dependencies, package, ticket)

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.modules, Serializer.to_bytes)
        serializer.sequence(self.dependencies, Serializer.struct)
        serializer.struct(self.package)
        serializer.struct(self.ticket)


class Command:
    MOVE_CALL: int = 0
    TRANSFER_OBJECTS: int = 1
    SPLIT_COINS: int = 2
    MERGE_COINS: int = 3
    PUBLISH: int = 4
    MAKE_MOVE_VEC: int = 5
    UPGRADE: int = 6

    value: Any

    def __init__(self, value: Any):
        if isinstance(value, MoveCall):
            self.variant = Command.MOVE_CALL
        elif isinstance(value, TransferObjects):
            self.variant = Command.TRANSFER_OBJECTS
        elif isinstance(value, SplitCoins):
            self.variant = Command.SPLIT_COINS
        elif isinstance(value, MergeCoins):
            self.variant = Command.MERGE_COINS
        elif isinstance(value, Publish):
            self.variant = Command.PUBLISH
        elif isinstance(value, MakeMoveVec):
            self.variant = Command.MAKE_MOVE_VEC
        elif isinstance(value, Upgrade):
            self.variant = Command.UPGRADE
        else:
            raise Exception("Invalid type")
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Command):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self) -> str:
        return self.value.__str__()

    def __repr__(self):
        return self.__str__()

    def result_arity(self) -> Optional[int]:
        return self.value.result_arity()

    def arguments(self) -> List[Argument]:
        return self.value.all_arguments()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Command:
        variant = deserializer.uleb128()

        if variant == Command.MOVE_CALL:
            command: Any = MoveCall.deserialize(deserializer)
        elif variant == Command.TRANSFER_OBJECTS:
            command = TransferObjects.deserialize(deserializer)
        elif variant == Command.SPLIT_COINS:
            command = SplitCoins.deserialize(deserializer)
        elif variant == Command.MERGE_COINS:
            command = MergeCoins.deserialize(deserializer)
        elif variant == Command.PUBLISH:
            command = Publish.deserialize(deserializer)
        elif variant == Command.MAKE_MOVE_VEC:
            command = MakeMoveVec.deserialize(deserializer)
        elif variant == Command.UPGRADE:
            command = Upgrade.deserialize(deserializer)
        else:
            raise Exception(f"Invalid Command variant {variant}")

        return Command(command)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        self.value.serialize(serializer)


#
# Transaction data
#


class ProgrammableTransaction:
    inputs: List[CallArg]
    commands: List[Command]

    def __init__(self, inputs: List[CallArg], commands: List[Command]):
        self.inputs = inputs
        self.commands = commands

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgrammableTransaction):
            return NotImplemented
        return self.inputs == other.inputs and self.commands == other.commands

    def __str__(self):
        inputs = "".join(f"\n        {value}," for value in self.inputs)
        commands = "".join(f"\n        {value}," for value in self.commands)
        return f"""ProgrammableTransaction {{
    inputs: [{inputs}
    ],
    commands: [{commands}
    ],
}}"""

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ProgrammableTransaction:
        inputs = deserializer.sequence(CallArg.deserialize)
        commands = deserializer.sequence(Command.deserialize)
        return ProgrammableTransaction(inputs, commands)

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.inputs, Serializer.struct)
        serializer.sequence(self.commands, Serializer.struct)


class TransactionKind:
    PROGRAMMABLE_TRANSACTION: int = 0
    CHANGE_EPOCH: int = 1
    GENESIS: int = 2
    CONSENSUS_COMMIT_PROLOGUE: int = 3

    value: ProgrammableTransaction

    def __init__(self, value: ProgrammableTransaction):
        if not isinstance(value, ProgrammableTransaction):
            raise Exception("Invalid type")
        self.variant = TransactionKind.PROGRAMMABLE_TRANSACTION
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionKind):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self) -> str:
        return self.value.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionKind:
        variant = deserializer.uleb128()
        if variant == TransactionKind.PROGRAMMABLE_TRANSACTION:
            return TransactionKind(ProgrammableTransaction.deserialize(deserializer))
        # System transactions are produced by validators, never by clients.
        raise Exception(f"Unsupported TransactionKind variant {variant}")

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.value)


class TransactionExpiration:
    NONE: int = 0
    EPOCH: int = 1

    variant: int
    epoch: Optional[int]

    def __init__(self, variant: int, epoch: Optional[int] = None):
        if variant == TransactionExpiration.EPOCH and epoch is None:
            raise Exception("Epoch expiration requires an epoch")
        if variant not in (TransactionExpiration.NONE, TransactionExpiration.EPOCH):
            raise Exception("Invalid variant")
        self.variant = variant
        self.epoch = epoch if variant == TransactionExpiration.EPOCH else None

    @staticmethod
    def none() -> TransactionExpiration:
        return TransactionExpiration(TransactionExpiration.NONE)

    @staticmethod
    def at_epoch(epoch: int) -> TransactionExpiration:
        return TransactionExpiration(TransactionExpiration.EPOCH, epoch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionExpiration):
            return NotImplemented
        return self.variant == other.variant and self.epoch == other.epoch

    def __str__(self):
        if self.variant == TransactionExpiration.NONE:
            return "None"
        return f"Epoch({self.epoch})"

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionExpiration:
        variant = deserializer.uleb128()
        if variant == TransactionExpiration.NONE:
            return TransactionExpiration.none()
        elif variant == TransactionExpiration.EPOCH:
            return TransactionExpiration.at_epoch(deserializer.u64())
        raise Exception(f"Invalid TransactionExpiration variant {variant}")

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.variant == TransactionExpiration.EPOCH:
            serializer.u64(self.epoch)


class GasData:
    payment: List[ObjectRef]
    owner: AccountAddress
    price: int
    budget: int

    def __init__(
        self, payment: List[ObjectRef], owner: AccountAddress, price: int, budget: int
    ):
        self.payment = payment
        self.owner = owner
        self.price = price
        self.budget = budget

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GasData):
            return NotImplemented
        return (
            self.payment == other.payment
            and self.owner == other.owner
            and self.price == other.price
            and self.budget == other.budget
        )

    def __str__(self):
        return (
            f"GasData(payment={self.payment}, owner={self.owner}, "
            f"price={self.price}, budget={self.budget})"
        )

    @staticmethod
    def deserialize(deserializer: Deserializer) -> GasData:
        payment = deserializer.sequence(ObjectRef.deserialize)
        owner = AccountAddress.deserialize(deserializer)
        price = deserializer.u64()
        budget = deserializer.u64()
        return GasData(payment, owner, price, budget)

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.payment, Serializer.struct)
        serializer.struct(self.owner)
        serializer.u64(self.price)
        serializer.u64(self.budget)


class TransactionDataV1:
    """The transaction that is signed: kind, sender, gas and expiration."""

    kind: TransactionKind
    sender: AccountAddress
    gas_data: GasData
    expiration: TransactionExpiration

    def __init__(
        self,
        kind: TransactionKind,
        sender: AccountAddress,
        gas_data: GasData,
        expiration: TransactionExpiration,
    ):
        self.kind = kind
        self.sender = sender
        self.gas_data = gas_data
        self.expiration = expiration

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionDataV1):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.sender == other.sender
            and self.gas_data == other.gas_data
            and self.expiration == other.expiration
        )

    def __str__(self):
        return f"""TransactionDataV1 {{
    sender: {self.sender},
    gas_data: {self.gas_data},
    expiration: {self.expiration},
    kind: {self.kind},
}}"""

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionDataV1:
        return TransactionDataV1(
            TransactionKind.deserialize(deserializer),
            AccountAddress.deserialize(deserializer),
            GasData.deserialize(deserializer),
            TransactionExpiration.deserialize(deserializer),
        )

    def serialize(self, serializer: Serializer):
        serializer.struct(self.kind)
        serializer.struct(self.sender)
        serializer.struct(self.gas_data)
        serializer.struct(self.expiration)


class TransactionData:
    V1: int = 0

    value: TransactionDataV1

    def __init__(self, value: TransactionDataV1):
        if not isinstance(value, TransactionDataV1):
            raise Exception("Invalid type")
        self.variant = TransactionData.V1
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionData):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self) -> str:
        return self.value.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TransactionData:
        variant = deserializer.uleb128()
        if variant != TransactionData.V1:
            raise Exception(f"Unsupported TransactionData variant {variant}")
        return TransactionData(TransactionDataV1.deserialize(deserializer))

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.value)


class Test(unittest.TestCase):
    def object_ref(self, object_id: str) -> ObjectRef:
        return ObjectRef(
            AccountAddress.from_str(object_id), 123, Digest(bytes([1] * 32))
        )

    def test_object_ref_layout(self):
        ser = Serializer()
        self.object_ref("0x1").serialize(ser)
        out = ser.output()
        self.assertEqual(len(out), 32 + 8 + 1 + 32)
        self.assertEqual(out[32:40], (123).to_bytes(8, "little"))
        self.assertEqual(out[40], 32)
        self.assertEqual(
            ObjectRef.deserialize(Deserializer(out)), self.object_ref("0x1")
        )

    def test_object_ref_from_str(self):
        digest = str(Digest(bytes([1] * 32)))
        self.assertEqual(ObjectRef.from_str("0x1", 123, digest), self.object_ref("0x1"))

    def test_object_arg_variants(self):
        shared = SharedObjectRef(AccountAddress.from_str("0x2"), 5, True)
        cases = [
            (ObjectArg.imm_or_owned(self.object_ref("0x1")), 0),
            (ObjectArg.shared(shared), 1),
            (ObjectArg.receiving(self.object_ref("0x1")), 2),
        ]
        for arg, variant in cases:
            ser = Serializer()
            arg.serialize(ser)
            self.assertEqual(ser.output()[0], variant)
            self.assertEqual(ObjectArg.deserialize(Deserializer(ser.output())), arg)

        with self.assertRaises(Exception):
            ObjectArg.shared(self.object_ref("0x1"))

    def test_argument_encoding(self):
        cases = [
            (Argument.gas_coin(), b"\x00"),
            (Argument.input(1), b"\x01\x01\x00"),
            (Argument.result(258), b"\x02\x02\x01"),
            (Argument.nested_result(1, 2), b"\x03\x01\x00\x02\x00"),
        ]
        for argument, expected in cases:
            ser = Serializer()
            argument.serialize(ser)
            self.assertEqual(ser.output(), expected)
            self.assertEqual(Argument.deserialize(Deserializer(expected)), argument)

    def test_command_variants(self):
        address = AccountAddress.from_str("0x2")
        commands = [
            (MoveCall(address, "m", "f", [], []), 0, None),
            (TransferObjects([], Argument.input(0)), 1, 0),
            (SplitCoins(Argument.gas_coin(), [Argument.input(0)]), 2, 1),
            (MergeCoins(Argument.gas_coin(), []), 3, 0),
            (Publish([b"\x01"], []), 4, 1),
            (MakeMoveVec(None, []), 5, 1),
            (Upgrade([], [], address, Argument.result(0)), 6, 1),
        ]
        for value, variant, arity in commands:
            command = Command(value)
            self.assertEqual(command.variant, variant)
            self.assertEqual(command.result_arity(), arity)
            ser = Serializer()
            command.serialize(ser)
            self.assertEqual(ser.output()[0], variant)
            self.assertEqual(Command.deserialize(Deserializer(ser.output())), command)

    def test_publish_empty_dependencies(self):
        ser = Serializer()
        Publish([b"\xaa\xbb"], []).serialize(ser)
        self.assertEqual(ser.output(), b"\x01\x02\xaa\xbb\x00")

    def test_split_coins_zero_amounts(self):
        self.assertEqual(SplitCoins(Argument.gas_coin(), []).result_arity(), 0)

    def test_expiration(self):
        ser = Serializer()
        TransactionExpiration.none().serialize(ser)
        TransactionExpiration.at_epoch(7).serialize(ser)
        self.assertEqual(ser.output(), b"\x00\x01" + (7).to_bytes(8, "little"))

    def test_transaction_data(self):
        kind = TransactionKind(
            ProgrammableTransaction(
                [CallArg.pure(b"\x01")],
                [Command(TransferObjects([Argument.gas_coin()], Argument.input(0)))],
            )
        )
        sender = AccountAddress.from_str("0xa")
        gas_data = GasData([self.object_ref("0x1")], sender, 1000, 5000)
        data = TransactionData(
            TransactionDataV1(kind, sender, gas_data, TransactionExpiration.none())
        )

        ser = Serializer()
        data.serialize(ser)
        out = ser.output()

        kind_ser = Serializer()
        kind.serialize(kind_ser)
        self.assertEqual(out[0], 0)
        self.assertEqual(out[1 : 1 + len(kind_ser.output())], kind_ser.output())
        self.assertEqual(out[-1], 0)
        self.assertEqual(TransactionData.deserialize(Deserializer(out)), data)

    def test_unsupported_kind(self):
        with self.assertRaises(Exception):
            TransactionKind.deserialize(Deserializer(b"\x01"))

    def test_parse_move_call_target(self):
        package, module, function = parse_move_call_target("0x2::coin::split")
        self.assertEqual(package, AccountAddress.from_str("0x2"))
        self.assertEqual(module, "coin")
        self.assertEqual(function, "split")

        for target in ["", "0x2::coin", "0x2::coin::", "0x2::a::b::c"]:
            with self.assertRaises(MissingMoveCallTargetError):
                parse_move_call_target(target)

    def test_struct_tag_type_argument(self):
        call = MoveCall(
            AccountAddress.from_str("0x2"),
            "coin",
            "zero",
            [TypeTag.struct(StructTag.from_str("0x2::sui::SUI"))],
            [],
        )
        ser = Serializer()
        call.serialize(ser)
        self.assertEqual(MoveCall.deserialize(Deserializer(ser.output())), call)


if __name__ == "__main__":
    unittest.main()
