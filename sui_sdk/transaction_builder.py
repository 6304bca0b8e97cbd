# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
A fluent builder for programmable transactions. Inputs and commands are accumulated
synchronously; build() resolves object inputs and gas and produces the BCS bytes to
sign.
"""

from __future__ import annotations

import base64
import logging
import typing
import unittest
from typing import Any, List, Optional, Union

from . import bcs
from .account_address import AccountAddress
from .bcs import MAX_U16, MAX_U64, Serializer
from .digest import Digest
from .input_resolution import (
    ResolverUnavailableError,
    StubResolver,
    UnresolvedObject,
    resolve_inputs,
)
from .resolver import (
    GasBudgetInput,
    GasResolutionError,
    GasResolver,
    MoveFunction,
    MoveParameter,
    ObjectMetadata,
    OwnerKind,
    ReferenceKind,
    Resolver,
)
from .transactions import (
    Argument,
    CallArg,
    Command,
    GasData,
    MakeMoveVec,
    MergeCoins,
    MissingMoveCallTargetError,
    MoveCall,
    ObjectArg,
    ObjectRef,
    ProgrammableTransaction,
    Publish,
    SharedObjectRef,
    SplitCoins,
    TransactionData,
    TransactionDataV1,
    TransactionExpiration,
    TransactionKind,
    TransferObjects,
    Upgrade,
    parse_move_call_target,
)
from .type_tag import TypeTag


class IndexOverflowError(Exception):
    """
    A transaction may hold at most 65536 inputs and 65536 commands.
    """


class InvalidArgumentError(Exception):
    """
    A command references an input or result that does not exist.
    """


class Result:
    """The result of a command, usable as an argument to later commands."""

    index: Optional[int]

    def __init__(self, index: Optional[int]):
        self.index = index

    def arg(self) -> Optional[Argument]:
        if self.index is None:
            return None
        return Argument.result(self.index)

    def at(self, result_index: int) -> Optional[Argument]:
        if self.index is None:
            return None
        return Argument.nested_result(self.index, result_index)

    def arguments(self, count: int) -> List[Optional[Argument]]:
        return [self.at(index) for index in range(count)]


class BuildResult:
    kind_bytes: bytes
    # Only present once sender and gas are fully known.
    transaction_bytes: Optional[bytes]
    programmable: ProgrammableTransaction
    resolved_inputs: List[CallArg]
    transaction_data: Optional[TransactionData]

    def __init__(
        self,
        kind_bytes: bytes,
        programmable: ProgrammableTransaction,
        transaction_data: Optional[TransactionData] = None,
        transaction_bytes: Optional[bytes] = None,
    ):
        self.kind_bytes = kind_bytes
        self.programmable = programmable
        self.resolved_inputs = programmable.inputs
        self.transaction_data = transaction_data
        self.transaction_bytes = transaction_bytes

    def kind_base64(self) -> str:
        return base64.b64encode(self.kind_bytes).decode()

    def transaction_base64(self) -> Optional[str]:
        if self.transaction_bytes is None:
            return None
        return base64.b64encode(self.transaction_bytes).decode()


ArgumentLike = Optional[Argument]
AddressLike = Union[str, AccountAddress]
TypeTagLike = Union[str, TypeTag]


class TransactionBuilder:
    """
    Accumulates the inputs and commands of a programmable transaction.

    The first failure of any method is kept and every later call becomes a no-op, so
    calls can be chained without checking each one. err() exposes the stored error and
    build() raises it.
    """

    inputs: List[Any]
    commands: List[Command]
    sender: Optional[AccountAddress]
    expiration: TransactionExpiration
    gas_budget: Optional[int]
    gas_price: Optional[int]
    gas_owner: Optional[AccountAddress]
    gas_payment: List[ObjectRef]
    error: Optional[Exception]

    def __init__(self):
        self.inputs = []
        self.commands = []
        self.sender = None
        self.expiration = TransactionExpiration.none()
        self.gas_budget = None
        self.gas_price = None
        self.gas_owner = None
        self.gas_payment = []
        self.error = None

    def err(self) -> Optional[Exception]:
        return self.error

    def _set_error(self, error: Exception):
        if self.error is None:
            self.error = error

    #
    # Transaction metadata
    #

    def set_sender(self, sender: AddressLike) -> TransactionBuilder:
        address = self._address(sender)
        if address is not None:
            self.sender = address
        return self

    def set_expiration(
        self, expiration: Union[int, TransactionExpiration]
    ) -> TransactionBuilder:
        if self.error is not None:
            return self
        if isinstance(expiration, TransactionExpiration):
            self.expiration = expiration
        else:
            self.expiration = TransactionExpiration.at_epoch(expiration)
        return self

    def set_gas_budget(self, budget: int) -> TransactionBuilder:
        if self.error is None:
            self.gas_budget = self._checked_u64(budget, "gas budget")
        return self

    def set_gas_price(self, price: int) -> TransactionBuilder:
        if self.error is None:
            self.gas_price = self._checked_u64(price, "gas price")
        return self

    def set_gas_owner(self, owner: AddressLike) -> TransactionBuilder:
        address = self._address(owner)
        if address is not None:
            self.gas_owner = address
        return self

    def set_gas_payment(self, payment: List[ObjectRef]) -> TransactionBuilder:
        if self.error is None:
            self.gas_payment = list(payment)
        return self

    def _address(self, value: AddressLike) -> Optional[AccountAddress]:
        if self.error is not None:
            return None
        if isinstance(value, AccountAddress):
            return value
        try:
            return AccountAddress.from_str(value)
        except Exception as e:
            self._set_error(e)
            return None

    def _checked_u64(self, value: int, name: str) -> Optional[int]:
        if value < 0 or value > MAX_U64:
            error = InvalidArgumentError(f"{name} does not fit in u64: {value}")
            self._set_error(error)
            return None
        return value

    #
    # Inputs
    #

    def gas(self) -> Argument:
        return Argument.gas_coin()

    def _add_input(self, value: Any) -> ArgumentLike:
        if self.error is not None:
            return None
        if len(self.inputs) > MAX_U16:
            self._set_error(
                IndexOverflowError(f"transaction index exceeds {MAX_U16}")
            )
            return None
        self.inputs.append(value)
        return Argument.input(len(self.inputs) - 1)

    def pure_bytes(self, value: bytes) -> ArgumentLike:
        """Adds an input that is already BCS encoded for its Move type."""
        return self._add_input(CallArg.pure(bytes(value)))

    def pure(
        self,
        value: Any,
        encoder: typing.Callable[[Serializer, Any], None],
    ) -> ArgumentLike:
        """
        Encodes value with a Serializer method, e.g.
        `builder.pure([1, 2], Serializer.sequence_serializer(Serializer.u64))`.
        """
        if self.error is not None:
            return None
        try:
            encoded = bcs.encoder(value, encoder)
        except Exception as e:
            self._set_error(e)
            return None
        return self.pure_bytes(encoded)

    def pure_bool(self, value: bool) -> ArgumentLike:
        return self.pure(value, Serializer.bool)

    def pure_u8(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u8)

    def pure_u16(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u16)

    def pure_u32(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u32)

    def pure_u64(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u64)

    def pure_u128(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u128)

    def pure_u256(self, value: int) -> ArgumentLike:
        return self.pure(value, Serializer.u256)

    def pure_string(self, value: str) -> ArgumentLike:
        return self.pure(value, Serializer.str)

    def pure_address(self, value: AddressLike) -> ArgumentLike:
        address = self._address(value)
        if address is None:
            return None
        return self.pure(address, Serializer.struct)

    def object(self, object_id: AddressLike) -> ArgumentLike:
        """
        Adds an object known only by its id. Its version, digest and ownership are
        looked up when the transaction is built.
        """
        if self.error is not None:
            return None
        try:
            unresolved = UnresolvedObject(str(object_id))
        except Exception as e:
            self._set_error(e)
            return None
        return self._add_input(unresolved)

    def object_ref(self, object_ref: ObjectRef) -> ArgumentLike:
        return self._add_input(CallArg.object(ObjectArg.imm_or_owned(object_ref)))

    def shared_object(self, object_ref: SharedObjectRef) -> ArgumentLike:
        return self._add_input(CallArg.object(ObjectArg.shared(object_ref)))

    def receiving_object(self, object_ref: ObjectRef) -> ArgumentLike:
        return self._add_input(CallArg.object(ObjectArg.receiving(object_ref)))

    #
    # Commands
    #

    def _add_command(self, value: Any, arguments: List[ArgumentLike]) -> Result:
        if self.error is not None:
            return Result(None)
        for argument in arguments:
            if not isinstance(argument, Argument):
                self._set_error(
                    InvalidArgumentError(f"Expected an Argument, found {argument!r}")
                )
                return Result(None)
        if len(self.commands) > MAX_U16:
            self._set_error(
                IndexOverflowError(f"transaction index exceeds {MAX_U16}")
            )
            return Result(None)
        self.commands.append(Command(value))
        return Result(len(self.commands) - 1)

    def _type_tag(self, type_tag: TypeTagLike) -> Optional[TypeTag]:
        if isinstance(type_tag, TypeTag):
            return type_tag
        try:
            return TypeTag.from_str(type_tag)
        except Exception as e:
            self._set_error(e)
            return None

    def split_coins(
        self, coin: ArgumentLike, amounts: List[ArgumentLike]
    ) -> List[ArgumentLike]:
        """Returns one nested result per amount, the newly created coins."""
        result = self._add_command(
            SplitCoins(coin, list(amounts)), [coin] + list(amounts)
        )
        return result.arguments(len(amounts))

    def merge_coins(self, destination: ArgumentLike, sources: List[ArgumentLike]):
        self._add_command(
            MergeCoins(destination, list(sources)), [destination] + list(sources)
        )

    def transfer_objects(
        self,
        objects: List[ArgumentLike],
        address: Union[ArgumentLike, AddressLike],
    ):
        if self.error is not None:
            return
        if not isinstance(address, Argument) and address is not None:
            address = self.pure_address(address)
        self._add_command(
            TransferObjects(list(objects), address), list(objects) + [address]
        )

    def move_call(
        self,
        target: Optional[str] = None,
        arguments: Optional[List[ArgumentLike]] = None,
        type_arguments: Optional[List[TypeTagLike]] = None,
        package: Optional[AddressLike] = None,
        module: Optional[str] = None,
        function: Optional[str] = None,
    ) -> Result:
        """
        Calls a Move function, named either by target, e.g. `0x2::coin::split`, or by
        package, module and function.
        """
        if self.error is not None:
            return Result(None)

        arguments = list(arguments or [])
        try:
            if target:
                package_address, module, function = parse_move_call_target(target)
            elif package and module and function:
                package_address = (
                    package
                    if isinstance(package, AccountAddress)
                    else AccountAddress.from_str(package)
                )
            else:
                raise MissingMoveCallTargetError(
                    "move call target or package/module/function required"
                )
        except Exception as e:
            self._set_error(e)
            return Result(None)

        type_tags = []
        for type_argument in type_arguments or []:
            type_tag = self._type_tag(type_argument)
            if type_tag is None:
                return Result(None)
            type_tags.append(type_tag)

        call = MoveCall(package_address, module, function, type_tags, arguments)
        return self._add_command(call, arguments)

    def make_move_vec(
        self, elements: List[ArgumentLike], type_tag: Optional[TypeTagLike] = None
    ) -> Result:
        if self.error is not None:
            return Result(None)
        element_type = None
        if type_tag is not None:
            element_type = self._type_tag(type_tag)
            if element_type is None:
                return Result(None)
        return self._add_command(MakeMoveVec(element_type, list(elements)), elements)

    def _addresses(self, values: List[AddressLike]) -> Optional[List[AccountAddress]]:
        addresses = []
        for value in values:
            address = self._address(value)
            if address is None:
                return None
            addresses.append(address)
        return addresses

    def publish(
        self, modules: List[bytes], dependencies: List[AddressLike]
    ) -> Result:
        """Publishes a package, the result is its UpgradeCap."""
        addresses = self._addresses(dependencies)
        if addresses is None:
            return Result(None)
        return self._add_command(Publish(list(modules), addresses), [])

    def upgrade(
        self,
        modules: List[bytes],
        dependencies: List[AddressLike],
        package: AddressLike,
        ticket: ArgumentLike,
    ) -> Result:
        """Upgrades a package with an UpgradeTicket, the result is an UpgradeReceipt."""
        addresses = self._addresses(dependencies)
        package_address = self._address(package)
        if addresses is None or package_address is None:
            return Result(None)
        return self._add_command(
            Upgrade(list(modules), addresses, package_address, ticket), [ticket]
        )

    #
    # Build
    #

    async def build(
        self,
        resolver: Optional[Resolver] = None,
        gas_resolver: Optional[GasResolver] = None,
    ) -> BuildResult:
        """
        Resolves object inputs and missing gas fields, then serializes the transaction.

        :param resolver: Looks up objects added by id and Move function signatures.
        :param gas_resolver: Supplies any gas price, budget or payment not set on the
            builder. Only consulted when the sender is known.
        :return: The kind bytes, and the full transaction bytes when sender and gas
            are known.
        """
        if self.error is not None:
            raise self.error

        logging.debug(
            f"Building transaction with {len(self.inputs)} inputs and "
            f"{len(self.commands)} commands"
        )
        inputs = await resolve_inputs(self.inputs, self.commands, resolver)
        programmable = ProgrammableTransaction(inputs, list(self.commands))
        validate_arguments(programmable)

        kind = TransactionKind(programmable)
        kind_bytes = bcs.encoder(kind, Serializer.struct)

        owner = self.gas_owner or self.sender
        price = self.gas_price
        budget = self.gas_budget
        payment = list(self.gas_payment)

        complete = (
            self.sender is not None
            and price is not None
            and budget is not None
            and len(payment) > 0
        )
        if not complete and gas_resolver is not None and self.sender is not None:
            if price is None:
                logging.debug("Resolving gas price")
                price = await gas_resolver.resolve_gas_price()
            if budget is None:
                logging.debug("Resolving gas budget")
                budget = await gas_resolver.resolve_gas_budget(
                    GasBudgetInput(
                        self.sender, owner, price, kind_bytes, self.expiration
                    )
                )
            if len(payment) == 0:
                logging.debug(f"Resolving gas payment of {budget} for {owner}")
                payment = list(await gas_resolver.resolve_gas_payment(owner, budget))

        if self.sender is None or price is None or budget is None or len(payment) == 0:
            return BuildResult(kind_bytes, programmable)

        data = TransactionData(
            TransactionDataV1(
                kind,
                self.sender,
                GasData(payment, owner, price, budget),
                self.expiration,
            )
        )
        return BuildResult(
            kind_bytes, programmable, data, bcs.encoder(data, Serializer.struct)
        )

    @staticmethod
    def from_kind_bytes(kind_bytes: bytes) -> TransactionBuilder:
        """Rebuilds a builder from BCS encoded TransactionKind bytes."""
        kind = bcs.decode(kind_bytes, TransactionKind.deserialize)
        builder = TransactionBuilder()
        builder.inputs = list(kind.value.inputs)
        builder.commands = list(kind.value.commands)
        return builder

    @staticmethod
    def from_transaction_bytes(transaction_bytes: bytes) -> TransactionBuilder:
        """Rebuilds a builder, including sender and gas, from TransactionData bytes."""
        data = bcs.decode(transaction_bytes, TransactionData.deserialize).value
        builder = TransactionBuilder()
        builder.inputs = list(data.kind.value.inputs)
        builder.commands = list(data.kind.value.commands)
        builder.sender = data.sender
        builder.expiration = data.expiration
        builder.gas_owner = data.gas_data.owner
        builder.gas_price = data.gas_data.price
        builder.gas_budget = data.gas_data.budget
        builder.gas_payment = list(data.gas_data.payment)
        return builder


def validate_arguments(programmable: ProgrammableTransaction):
    """
    Checks that every argument refers to an existing input or to the result of an
    earlier command, and that nested results stay within a known result arity.
    """
    for index, command in enumerate(programmable.commands):
        for argument in command.arguments():
            if argument.variant == Argument.INPUT:
                if argument.value >= len(programmable.inputs):
                    raise InvalidArgumentError(
                        f"Command {index} references missing {argument}"
                    )
            elif argument.variant == Argument.RESULT:
                if argument.value >= index:
                    raise InvalidArgumentError(
                        f"Command {index} references later or own {argument}"
                    )
            elif argument.variant == Argument.NESTED_RESULT:
                result, nested = argument.value
                if result >= index:
                    raise InvalidArgumentError(
                        f"Command {index} references later or own {argument}"
                    )
                arity = programmable.commands[result].result_arity()
                if arity is not None and nested >= arity:
                    raise InvalidArgumentError(
                        f"Command {index} references {argument}, "
                        f"command {result} has {arity} results"
                    )


class StubGasResolver:
    """In memory GasResolver that records the order of its calls."""

    def __init__(self, price: int, budget: int, payment: List[ObjectRef]):
        self.price = price
        self.budget = budget
        self.payment = payment
        self.calls: List[str] = []
        self.budget_input: Optional[GasBudgetInput] = None
        self.payment_args: Optional[tuple] = None

    async def resolve_gas_price(self) -> int:
        self.calls.append("price")
        return self.price

    async def resolve_gas_budget(self, budget_input: GasBudgetInput) -> int:
        self.calls.append("budget")
        self.budget_input = budget_input
        return self.budget

    async def resolve_gas_payment(
        self, owner: AccountAddress, budget: int
    ) -> List[ObjectRef]:
        self.calls.append("payment")
        self.payment_args = (owner, budget)
        return self.payment


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


class Test(unittest.IsolatedAsyncioTestCase):
    DIGEST = Digest(bytes([1] * 32))

    def object_ref(self, object_id: str) -> ObjectRef:
        return ObjectRef(AccountAddress.from_str(object_id), 123, self.DIGEST)

    async def test_pure_primitives(self):
        tx = TransactionBuilder()
        tx.pure_u8(1)
        tx.pure_u16(1)
        tx.pure_u32(1)
        tx.pure_u64(1)
        tx.pure_u128(1)
        tx.pure_u256(1)
        tx.pure_bool(True)
        tx.pure_string("foo")
        tx.pure_address("0x2")
        tx.pure(AccountAddress.from_str("0x2"), Serializer.struct)
        tx.pure(bytes([1, 2, 3]), Serializer.to_bytes)
        tx.pure(1, Serializer.option_serializer(Serializer.u8))
        tx.pure(None, Serializer.option_serializer(Serializer.u8))
        tx.pure(
            [[1, None, 3], [4, None, 6]],
            Serializer.option_serializer(
                Serializer.sequence_serializer(
                    Serializer.sequence_serializer(
                        Serializer.option_serializer(Serializer.u8)
                    )
                )
            ),
        )

        result = await tx.build()
        expected = [
            "AQ==",
            "AQA=",
            "AQAAAA==",
            "AQAAAAAAAAA=",
            "AQAAAAAAAAAAAAAAAAAAAA==",
            "AQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=",
            "AQ==",
            "A2Zvbw==",
            "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAI=",
            "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAI=",
            "AwECAw==",
            "AQE=",
            "AA==",
            "AQIDAQEAAQMDAQQAAQY=",
        ]
        self.assertEqual([b64(arg.value) for arg in result.resolved_inputs], expected)
        self.assertIsNone(result.transaction_bytes)

    async def test_object_input_kinds(self):
        tx = TransactionBuilder()
        tx.move_call(
            target="0x2::foo::bar",
            arguments=[
                tx.receiving_object(self.object_ref("0x1")),
                tx.shared_object(
                    SharedObjectRef(AccountAddress.from_str("0x2"), 123, True)
                ),
                tx.object_ref(self.object_ref("0x3")),
                tx.pure_address("0x2"),
            ],
        )
        result = await tx.build()
        self.assertEqual(
            result.kind_base64(),
            "AAQBAgAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAABewAAAAAAAAAgAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAACewAAAAAAAAABAQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA3sAAAAAAAAAIAEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBACAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAgEAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAIDZm9vA2JhcgAEAQAAAQEAAQIAAQMA",
        )

    async def test_split_coins_from_gas(self):
        tx = TransactionBuilder()
        coins = tx.split_coins(tx.gas(), [tx.pure_u64(1000)])
        self.assertEqual(coins, [Argument.nested_result(0, 0)])
        result = await tx.build()
        self.assertEqual(result.kind_base64(), "AAEACOgDAAAAAAAAAQIAAQEAAA==")

    async def test_transfer_objects(self):
        tx = TransactionBuilder()
        tx.transfer_objects(
            [
                tx.object_ref(self.object_ref("0x1")),
                tx.object_ref(self.object_ref("0x2")),
            ],
            tx.pure_address("0x2"),
        )
        result = await tx.build()
        self.assertEqual(
            result.kind_base64(),
            "AAMBAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAABewAAAAAAAAAgAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAACewAAAAAAAAAgAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEAIAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAACAQECAQAAAQEAAQIA",
        )

    async def test_transfer_objects_to_address_string(self):
        tx = TransactionBuilder()
        tx.transfer_objects([tx.object_ref(self.object_ref("0x1"))], "0x2")
        result = await tx.build()
        command = result.programmable.commands[0].value
        self.assertEqual(command.address, Argument.input(1))
        self.assertEqual(result.resolved_inputs[1].value, b"\x00" * 31 + b"\x02")

    async def test_make_move_vec(self):
        tx = TransactionBuilder()
        tx.make_move_vec([tx.pure_u8(1), tx.pure_u8(2)])
        result = await tx.build()
        self.assertEqual(result.kind_base64(), "AAIAAQEAAQIBBQACAQAAAQEA")

        tx = TransactionBuilder()
        tx.make_move_vec([tx.pure_u8(1), tx.pure_u8(2)], "u8")
        result = await tx.build()
        self.assertEqual(result.kind_base64(), "AAIAAQEAAQIBBQEBAgEAAAEBAA==")

    async def test_shared_object_mutability_inference(self):
        resolver = StubResolver(
            {"0x1": ObjectMetadata("0x1", 5, str(self.DIGEST), OwnerKind.SHARED, 1)},
            {"foo::bar": MoveFunction([MoveParameter(ReferenceKind.MUTABLE, "T")])},
        )
        tx = TransactionBuilder()
        tx.move_call(target="0x2::foo::bar", arguments=[tx.object("0x1")])
        result = await tx.build(resolver)

        expected = CallArg.object(
            ObjectArg.shared(SharedObjectRef(AccountAddress.from_str("0x1"), 1, True))
        )
        self.assertEqual(result.resolved_inputs, [expected])
        decoded = bcs.decode(result.kind_bytes, TransactionKind.deserialize)
        self.assertEqual(decoded.value.inputs, [expected])
        # Resolution never rewrites the builder.
        self.assertEqual(tx.inputs, [UnresolvedObject("0x1")])

    async def test_round_trip(self):
        tx = TransactionBuilder()
        coins = tx.split_coins(tx.gas(), [tx.pure_u64(1), tx.pure_u64(2)])
        tx.merge_coins(coins[0], [coins[1]])
        vec = tx.make_move_vec([tx.pure_u8(1)], "u8")
        call = tx.move_call(
            target="0x2::foo::bar",
            type_arguments=["0x2::sui::SUI"],
            arguments=[vec.arg(), tx.pure_string("x")],
        )
        tx.transfer_objects([call.at(0)], "0xa")
        cap = tx.publish([b"\x01\x02"], ["0x1", "0x2"])
        tx.upgrade([b"\x03"], [], "0x5", cap.arg())
        first = await tx.build()

        decoded = bcs.decode(first.kind_bytes, TransactionKind.deserialize).value
        self.assertEqual(len(decoded.inputs), len(tx.inputs))
        self.assertEqual(decoded.commands, tx.commands)

        second = await TransactionBuilder.from_kind_bytes(first.kind_bytes).build()
        self.assertEqual(first.kind_bytes, second.kind_bytes)

    async def test_gas_resolution_order(self):
        payment = ObjectRef(AccountAddress.from_str("0x2"), 12, Digest(bytes([3] * 32)))
        gas_resolver = StubGasResolver(7, 42, [payment])
        tx = TransactionBuilder()
        tx.set_sender("0x1")
        tx.move_call(target="0x2::foo::bar")
        result = await tx.build(gas_resolver=gas_resolver)

        self.assertEqual(gas_resolver.calls, ["price", "budget", "payment"])
        sender = AccountAddress.from_str("0x1")
        self.assertEqual(gas_resolver.payment_args, (sender, 42))
        budget_input = gas_resolver.budget_input
        self.assertEqual(budget_input.sender, AccountAddress.from_str("0x1"))
        self.assertEqual(budget_input.gas_owner, AccountAddress.from_str("0x1"))
        self.assertEqual(budget_input.gas_price, 7)
        self.assertEqual(budget_input.kind, result.kind_bytes)
        self.assertEqual(budget_input.expiration, TransactionExpiration.none())

        data = bcs.decode(result.transaction_bytes, TransactionData.deserialize).value
        self.assertEqual(data.gas_data.price, 7)
        self.assertEqual(data.gas_data.budget, 42)
        self.assertEqual(data.gas_data.payment, [payment])
        self.assertEqual(data.sender, AccountAddress.from_str("0x1"))
        self.assertEqual(result.transaction_data.value, data)
        # Resolved gas is not written back to the builder.
        self.assertIsNone(tx.gas_price)

    async def test_gas_owner_pays(self):
        gas_resolver = StubGasResolver(7, 42, [self.object_ref("0x9")])
        tx = TransactionBuilder().set_sender("0x1").set_gas_owner("0x3")
        result = await tx.build(gas_resolver=gas_resolver)
        owner = AccountAddress.from_str("0x3")
        self.assertEqual(gas_resolver.budget_input.gas_owner, owner)
        self.assertEqual(gas_resolver.payment_args[0], owner)
        data = bcs.decode(result.transaction_bytes, TransactionData.deserialize).value
        self.assertEqual(data.gas_data.owner, AccountAddress.from_str("0x3"))

    async def test_caller_gas_values_win(self):
        gas_resolver = StubGasResolver(7, 42, [self.object_ref("0x9")])
        tx = TransactionBuilder()
        tx.set_sender("0x1").set_gas_price(1000).set_gas_budget(5000)
        result = await tx.build(gas_resolver=gas_resolver)
        self.assertEqual(gas_resolver.calls, ["payment"])
        self.assertEqual(gas_resolver.payment_args[1], 5000)
        data = bcs.decode(result.transaction_bytes, TransactionData.deserialize).value
        self.assertEqual((data.gas_data.price, data.gas_data.budget), (1000, 5000))

        gas_resolver = StubGasResolver(7, 42, [])
        tx.set_gas_payment([self.object_ref("0x8")])
        await tx.build(gas_resolver=gas_resolver)
        self.assertEqual(gas_resolver.calls, [])

    async def test_expiration_passed_to_budget(self):
        gas_resolver = StubGasResolver(7, 42, [self.object_ref("0x9")])
        tx = TransactionBuilder().set_sender("0x1").set_expiration(10)
        result = await tx.build(gas_resolver=gas_resolver)
        expiration = TransactionExpiration.at_epoch(10)
        self.assertEqual(gas_resolver.budget_input.expiration, expiration)
        data = bcs.decode(result.transaction_bytes, TransactionData.deserialize).value
        self.assertEqual(data.expiration, expiration)

    async def test_kind_only_without_sender(self):
        gas_resolver = StubGasResolver(7, 42, [self.object_ref("0x9")])
        tx = TransactionBuilder()
        tx.split_coins(tx.gas(), [tx.pure_u64(1)])
        result = await tx.build(gas_resolver=gas_resolver)
        self.assertEqual(gas_resolver.calls, [])
        self.assertIsNone(result.transaction_bytes)
        self.assertIsNone(result.transaction_base64())

    async def test_kind_only_with_empty_payment(self):
        gas_resolver = StubGasResolver(7, 42, [])
        tx = TransactionBuilder().set_sender("0x1")
        result = await tx.build(gas_resolver=gas_resolver)
        self.assertIsNone(result.transaction_bytes)

    async def test_kind_only_without_gas_resolver(self):
        tx = TransactionBuilder().set_sender("0x1").set_gas_price(1)
        result = await tx.build()
        self.assertIsNone(result.transaction_bytes)

    async def test_full_transaction_without_gas_resolver(self):
        tx = TransactionBuilder()
        tx.set_sender("0x1").set_gas_price(1).set_gas_budget(2)
        tx.set_gas_payment([self.object_ref("0x9")])
        result = await tx.build()
        rebuilt = TransactionBuilder.from_transaction_bytes(result.transaction_bytes)
        rebuilt_result = await rebuilt.build()
        self.assertEqual(rebuilt_result.transaction_bytes, result.transaction_bytes)

    async def test_gas_errors_propagate(self):
        class FailingGasResolver(StubGasResolver):
            async def resolve_gas_budget(self, budget_input):
                raise GasResolutionError("dry run failed")

        tx = TransactionBuilder().set_sender("0x1")
        with self.assertRaises(GasResolutionError):
            await tx.build(gas_resolver=FailingGasResolver(1, 1, []))

    async def test_rebuild_is_idempotent(self):
        gas_resolver = StubGasResolver(7, 42, [self.object_ref("0x9")])
        tx = TransactionBuilder().set_sender("0x1")
        tx.split_coins(tx.gas(), [tx.pure_u64(5)])
        first = await tx.build(gas_resolver=gas_resolver)
        second = await tx.build(gas_resolver=gas_resolver)
        self.assertEqual(first.transaction_bytes, second.transaction_bytes)

    async def test_first_error_is_kept(self):
        tx = TransactionBuilder()
        tx.set_sender("not an address")
        first = tx.err()
        self.assertIsNotNone(first)
        self.assertIsNone(tx.pure_u8(1))
        tx.move_call()
        self.assertIsNone(tx.move_call(target="0x2::a::b").arg())
        self.assertEqual(tx.split_coins(tx.gas(), [None, None]), [None, None])
        self.assertIs(tx.err(), first)
        self.assertEqual(tx.inputs, [])
        self.assertEqual(tx.commands, [])
        with self.assertRaises(Exception) as context:
            await tx.build()
        self.assertIs(context.exception, first)

    async def test_invalid_inputs_set_error(self):
        tx = TransactionBuilder()
        tx.pure_u8(256)
        self.assertIsNotNone(tx.err())

        tx = TransactionBuilder()
        tx.move_call()
        self.assertIsInstance(tx.err(), MissingMoveCallTargetError)

        tx = TransactionBuilder()
        tx.move_call(target="0x2::foo::bar", type_arguments=["vector<"])
        self.assertIsNotNone(tx.err())

        tx = TransactionBuilder()
        tx.merge_coins(tx.gas(), ["coin"])
        self.assertIsInstance(tx.err(), InvalidArgumentError)

    async def test_move_call_by_parts(self):
        tx = TransactionBuilder()
        tx.move_call(
            package="0x2",
            module="coin",
            function="zero",
            type_arguments=["0x2::sui::SUI"],
        )
        call = tx.commands[0].value
        self.assertEqual(call.package, AccountAddress.from_str("0x2"))
        self.assertEqual((call.module, call.function), ("coin", "zero"))
        self.assertEqual(call.type_arguments, [TypeTag.from_str("0x2::sui::SUI")])

    async def test_input_overflow(self):
        tx = TransactionBuilder()
        for _ in range(MAX_U16 + 1):
            tx.pure_bytes(b"\x01")
        self.assertIsNone(tx.err())
        result = await tx.build()
        self.assertEqual(len(result.resolved_inputs), MAX_U16 + 1)

        self.assertIsNone(tx.pure_bytes(b"\x01"))
        self.assertIsInstance(tx.err(), IndexOverflowError)
        with self.assertRaises(IndexOverflowError):
            await tx.build()

    async def test_command_overflow(self):
        tx = TransactionBuilder()
        for _ in range(MAX_U16 + 1):
            tx.split_coins(tx.gas(), [])
        self.assertIsNone(tx.err())
        result = await tx.build()
        self.assertEqual(len(result.programmable.commands), MAX_U16 + 1)

        tx.split_coins(tx.gas(), [])
        self.assertIsInstance(tx.err(), IndexOverflowError)
        self.assertEqual(len(tx.commands), MAX_U16 + 1)
        with self.assertRaises(IndexOverflowError):
            await tx.build()

    def test_non_canonical_kind_bytes(self):
        # ProgrammableTransaction with an overlong zero length for its inputs
        with self.assertRaises(Exception):
            TransactionBuilder.from_kind_bytes(b"\x00\x80\x00\x00")
        self.assertEqual(
            TransactionBuilder.from_kind_bytes(b"\x00\x00\x00").commands, []
        )

    async def test_invalid_argument_references(self):
        tx = TransactionBuilder()
        tx.transfer_objects([Argument.input(3)], tx.pure_address("0x1"))
        with self.assertRaises(InvalidArgumentError):
            await tx.build()

        tx = TransactionBuilder()
        tx.transfer_objects([Argument.result(0)], tx.pure_address("0x1"))
        with self.assertRaises(InvalidArgumentError):
            await tx.build()

        tx = TransactionBuilder()
        tx.split_coins(tx.gas(), [])
        await tx.build()
        tx.transfer_objects([Argument.nested_result(0, 0)], tx.pure_address("0x1"))
        with self.assertRaises(InvalidArgumentError):
            await tx.build()

    async def test_move_call_results_unchecked(self):
        tx = TransactionBuilder()
        call = tx.move_call(target="0x2::foo::bar")
        tx.transfer_objects(call.arguments(3), "0x1")
        result = await tx.build()
        self.assertEqual(len(result.programmable.commands), 2)

    async def test_publish_empty_dependencies(self):
        tx = TransactionBuilder()
        tx.publish([b"\x01"], [])
        result = await tx.build()
        # kind, inputs, commands, Publish, modules, module, dependencies
        self.assertEqual(result.kind_bytes, b"\x00\x00\x01\x04\x01\x01\x01\x00")

    async def test_abstract_inputs_need_resolver(self):
        tx = TransactionBuilder()
        tx.transfer_objects([tx.object("0x5")], "0x1")
        with self.assertRaises(ResolverUnavailableError):
            await tx.build()


if __name__ == "__main__":
    unittest.main()
