# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Turns the inputs of a programmable transaction into concrete CallArgs. Objects that
were added by id alone are looked up through a Resolver and coerced into owned,
receiving or shared arguments depending on how the commands use them.
"""

from __future__ import annotations

import logging
import unittest
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .account_address import AccountAddress, InvalidAddressError
from .digest import Digest
from .resolver import (
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
    MakeMoveVec,
    MergeCoins,
    MoveCall,
    ObjectArg,
    ObjectRef,
    SharedObjectRef,
    SplitCoins,
    TransferObjects,
)

TX_CONTEXT_TYPE = ("0x2", "tx_context", "TxContext")
RECEIVING_TYPE = ("0x2", "transfer", "Receiving")


class UnresolvedInputError(Exception):
    """
    An object input could not be resolved into a concrete reference.
    """


class SignatureMismatchError(Exception):
    """
    A move call passes more arguments than the function declares.
    """


class SharedVersionMissingError(Exception):
    """
    A shared object was returned without its initial shared version.
    """


class ResolverUnavailableError(Exception):
    """
    Object inputs need resolving but no resolver was provided.
    """


class UnresolvedObject:
    """An object input known only by its id."""

    object_id: str

    def __init__(self, object_id: str):
        self.object_id = AccountAddress.normalize(object_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnresolvedObject):
            return NotImplemented
        return self.object_id == other.object_id

    def __str__(self):
        return f"UnresolvedObject({self.object_id})"

    def __repr__(self):
        return self.__str__()


@dataclass
class InputUsage:
    mutable: bool = False
    receiving: bool = False


def _matches_type(type_name: str, expected: tuple) -> bool:
    head = type_name.strip().split("<", 1)[0]
    parts = [part.strip() for part in head.split("::")]
    if len(parts) != 3:
        return False
    try:
        address = AccountAddress.normalize(parts[0])
    except InvalidAddressError:
        return False
    return (address, parts[1], parts[2]) == (
        AccountAddress.normalize(expected[0]),
        expected[1],
        expected[2],
    )


def is_tx_context_type(type_name: str) -> bool:
    return _matches_type(type_name, TX_CONTEXT_TYPE)


def is_receiving_type(type_name: str) -> bool:
    """True for 0x2::transfer::Receiving and any instantiation of it."""
    return _matches_type(type_name, RECEIVING_TYPE)


def trim_tx_context(parameters: List[MoveParameter]) -> List[MoveParameter]:
    if len(parameters) > 0 and is_tx_context_type(parameters[-1].type_name):
        return parameters[:-1]
    return parameters


def _input_indices(arguments: List[Argument]) -> List[int]:
    return [arg.value for arg in arguments if arg.variant == Argument.INPUT]


async def analyze_usage(
    inputs: List[Any], commands: List[Command], resolver: Optional[Resolver]
) -> Dict[int, InputUsage]:
    """
    Records, per input index, whether any command needs the input mutably or as a
    receiving object. Move call signatures are fetched only for calls that take an
    object known by id alone.
    """
    usage: Dict[int, InputUsage] = {}

    def mark(index: int, mutable: bool = False, receiving: bool = False):
        entry = usage.setdefault(index, InputUsage())
        entry.mutable = entry.mutable or mutable
        entry.receiving = entry.receiving or receiving

    for command in commands:
        value = command.value
        if isinstance(value, SplitCoins):
            mutated = [value.coin] + value.amounts
        elif isinstance(value, MergeCoins):
            mutated = [value.destination] + value.sources
        elif isinstance(value, TransferObjects):
            mutated = value.objects
        elif isinstance(value, MakeMoveVec):
            mutated = value.elements
        else:
            mutated = []
        for index in _input_indices(mutated):
            mark(index, mutable=True)

        if not isinstance(value, MoveCall):
            continue

        abstract = [
            index
            for index in _input_indices(value.arguments)
            if index < len(inputs) and isinstance(inputs[index], UnresolvedObject)
        ]
        if len(abstract) == 0:
            continue
        if resolver is None:
            raise ResolverUnavailableError("resolver required to resolve object inputs")

        logging.debug(
            f"Fetching signature of {value.package}::{value.module}::{value.function}"
        )
        function: MoveFunction = await resolver.resolve_move_function(
            str(value.package), value.module, value.function
        )
        parameters = trim_tx_context(function.parameters)
        if len(parameters) < len(value.arguments):
            raise SignatureMismatchError(
                f"{value.package}::{value.module}::{value.function} takes "
                f"{len(parameters)} arguments, {len(value.arguments)} provided"
            )

        for parameter, argument in zip(parameters, value.arguments):
            if argument.variant != Argument.INPUT:
                continue
            mark(
                argument.value,
                mutable=parameter.reference != ReferenceKind.IMMUTABLE,
                receiving=is_receiving_type(parameter.type_name),
            )

    return usage


def build_object_arg(metadata: ObjectMetadata, usage: InputUsage) -> ObjectArg:
    if metadata.owner_kind in (OwnerKind.SHARED, OwnerKind.CONSENSUS_ADDRESS):
        if metadata.owner_version is None:
            raise SharedVersionMissingError(
                "shared object missing initial shared version"
            )
        return ObjectArg.shared(
            SharedObjectRef(
                AccountAddress.from_str(metadata.object_id),
                metadata.owner_version,
                usage.mutable,
            )
        )
    if usage.receiving:
        return ObjectArg.receiving(metadata.object_ref())
    return ObjectArg.imm_or_owned(metadata.object_ref())


def _overlay_mutable(call_arg: CallArg, usage: InputUsage) -> CallArg:
    if (
        call_arg.variant != CallArg.OBJECT
        or call_arg.value.variant != ObjectArg.SHARED
        or not usage.mutable
        or call_arg.value.value.mutable
    ):
        return call_arg
    shared = call_arg.value.value
    return CallArg.object(
        ObjectArg.shared(
            SharedObjectRef(shared.object_id, shared.initial_shared_version, True)
        )
    )


async def resolve_inputs(
    inputs: List[Any], commands: List[Command], resolver: Optional[Resolver]
) -> List[CallArg]:
    """
    Returns a new list of concrete inputs. The lists passed in are left untouched so
    that a failed resolution leaves no partial state behind.
    """
    object_ids: List[str] = []
    seen = set()
    for value in inputs:
        if isinstance(value, UnresolvedObject) and value.object_id not in seen:
            seen.add(value.object_id)
            object_ids.append(value.object_id)

    if len(object_ids) > 0 and resolver is None:
        raise ResolverUnavailableError("resolver required to resolve object inputs")

    usage = await analyze_usage(inputs, commands, resolver)

    metadata: Dict[str, ObjectMetadata] = {}
    if len(object_ids) > 0:
        logging.debug(f"Resolving {len(object_ids)} object inputs")
        results = await resolver.resolve_objects(object_ids)  # type: ignore
        if len(results) != len(object_ids):
            raise UnresolvedInputError(
                f"Requested {len(object_ids)} objects, resolver returned {len(results)}"
            )
        metadata = dict(zip(object_ids, results))

    resolved: List[CallArg] = []
    for index, value in enumerate(inputs):
        input_usage = usage.get(index, InputUsage())
        if isinstance(value, CallArg):
            resolved.append(_overlay_mutable(value, input_usage))
        elif isinstance(value, UnresolvedObject):
            object_arg = build_object_arg(metadata[value.object_id], input_usage)
            resolved.append(CallArg.object(object_arg))
        else:
            raise UnresolvedInputError(f"Input {index} is not resolvable: {value}")
    return resolved


class StubResolver:
    """In memory Resolver that records every call made to it."""

    def __init__(
        self,
        objects: Dict[str, ObjectMetadata],
        functions: Optional[Dict[str, MoveFunction]] = None,
    ):
        self.objects = {AccountAddress.normalize(k): v for k, v in objects.items()}
        self.functions = functions or {}
        self.calls: List[Any] = []

    async def resolve_objects(self, object_ids: List[str]) -> List[ObjectMetadata]:
        self.calls.append(("objects", list(object_ids)))
        return [self.objects[object_id] for object_id in object_ids]

    async def resolve_move_function(
        self, package: str, module: str, function: str
    ) -> MoveFunction:
        self.calls.append(("function", f"{package}::{module}::{function}"))
        return self.functions[f"{module}::{function}"]


class Test(unittest.IsolatedAsyncioTestCase):
    DIGEST = str(Digest(bytes([1] * 32)))

    def owned(self, object_id: str) -> ObjectMetadata:
        return ObjectMetadata(object_id, 7, self.DIGEST, OwnerKind.ADDRESS)

    def shared(self, object_id: str, version: Optional[int] = 1) -> ObjectMetadata:
        return ObjectMetadata(object_id, 9, self.DIGEST, OwnerKind.SHARED, version)

    def call(self, function: str, *arguments: Argument) -> Command:
        package = AccountAddress.from_str("0x2")
        return Command(MoveCall(package, "foo", function, [], list(arguments)))

    def function(self, *parameters: MoveParameter) -> MoveFunction:
        return MoveFunction(list(parameters))

    async def test_shared_mutable_inference(self):
        resolver = StubResolver(
            {"0x1": self.shared("0x1")},
            {"foo::bar": self.function(MoveParameter(ReferenceKind.MUTABLE, "T"))},
        )
        resolved = await resolve_inputs(
            [UnresolvedObject("0x1")], [self.call("bar", Argument.input(0))], resolver
        )
        expected = SharedObjectRef(AccountAddress.from_str("0x1"), 1, True)
        self.assertEqual(resolved, [CallArg.object(ObjectArg.shared(expected))])

        two = AccountAddress.normalize("0x2")
        self.assertEqual(resolver.calls[0], ("function", f"{two}::foo::bar"))
        self.assertEqual(resolver.calls[1][0], "objects")

    async def test_immutable_reference_stays_immutable(self):
        resolver = StubResolver(
            {"0x1": self.shared("0x1")},
            {"foo::bar": self.function(MoveParameter(ReferenceKind.IMMUTABLE, "T"))},
        )
        resolved = await resolve_inputs(
            [UnresolvedObject("0x1")], [self.call("bar", Argument.input(0))], resolver
        )
        self.assertFalse(resolved[0].value.value.mutable)

    async def test_mutability_is_union_of_uses(self):
        resolver = StubResolver(
            {"0x1": self.shared("0x1")},
            {
                "foo::read": self.function(
                    MoveParameter(ReferenceKind.IMMUTABLE, "T")
                ),
                "foo::write": self.function(MoveParameter(ReferenceKind.MUTABLE, "T")),
            },
        )
        commands = [
            self.call("read", Argument.input(0)),
            self.call("write", Argument.input(0)),
        ]
        resolved = await resolve_inputs([UnresolvedObject("0x1")], commands, resolver)
        self.assertTrue(resolved[0].value.value.mutable)

    async def test_unreferenced_abstract_input(self):
        resolver = StubResolver({"0x1": self.owned("0x1"), "0x2": self.shared("0x2")})
        resolved = await resolve_inputs(
            [UnresolvedObject("0x1"), UnresolvedObject("0x2")], [], resolver
        )
        self.assertEqual(resolved[0].value.variant, ObjectArg.IMM_OR_OWNED)
        self.assertEqual(resolved[1].value.variant, ObjectArg.SHARED)
        self.assertFalse(resolved[1].value.value.mutable)

        ids = [AccountAddress.normalize("0x1"), AccountAddress.normalize("0x2")]
        self.assertEqual(resolver.calls, [("objects", ids)])

    async def test_receiving_inference(self):
        long_two = AccountAddress.normalize("0x2")
        for type_name in [
            "0x2::transfer::Receiving",
            f"{long_two}::transfer::Receiving<0x2::coin::Coin<0x2::sui::SUI>>",
        ]:
            resolver = StubResolver(
                {"0x1": self.owned("0x1")},
                {
                    "foo::bar": self.function(
                        MoveParameter(ReferenceKind.UNKNOWN, type_name)
                    )
                },
            )
            resolved = await resolve_inputs(
                [UnresolvedObject("0x1")],
                [self.call("bar", Argument.input(0))],
                resolver,
            )
            self.assertEqual(resolved[0].value.variant, ObjectArg.RECEIVING)

    def test_receiving_type_match(self):
        self.assertTrue(is_receiving_type("0x2::transfer::Receiving<T>"))
        self.assertFalse(is_receiving_type("0x3::transfer::Receiving"))
        self.assertFalse(is_receiving_type("0x2::transfer::ReceivingTicket"))
        self.assertFalse(is_receiving_type("u64"))

    async def test_tx_context_trimmed(self):
        resolver = StubResolver(
            {"0x1": self.owned("0x1")},
            {
                "foo::bar": self.function(
                    MoveParameter(ReferenceKind.IMMUTABLE, "0x2::foo::Obj"),
                    MoveParameter(ReferenceKind.MUTABLE, "0x2::tx_context::TxContext"),
                )
            },
        )
        resolved = await resolve_inputs(
            [UnresolvedObject("0x1")], [self.call("bar", Argument.input(0))], resolver
        )
        self.assertEqual(resolved[0].value.variant, ObjectArg.IMM_OR_OWNED)

        with self.assertRaises(SignatureMismatchError):
            await resolve_inputs(
                [UnresolvedObject("0x1"), CallArg.pure(b"\x01")],
                [self.call("bar", Argument.input(0), Argument.input(1))],
                resolver,
            )

    async def test_signature_only_fetched_for_abstract_inputs(self):
        resolver = StubResolver({"0x1": self.owned("0x1")})
        await resolve_inputs(
            [UnresolvedObject("0x1"), CallArg.pure(b"\x01")],
            [self.call("bar", Argument.input(1))],
            resolver,
        )
        self.assertEqual([call[0] for call in resolver.calls], ["objects"])

    async def test_concrete_shared_overlay(self):
        shared = SharedObjectRef(AccountAddress.from_str("0x5"), 3, False)
        inputs = [CallArg.object(ObjectArg.shared(shared)), CallArg.pure(b"\x01")]
        command = Command(SplitCoins(Argument.input(0), [Argument.input(1)]))
        resolved = await resolve_inputs(inputs, [command], None)
        self.assertTrue(resolved[0].value.value.mutable)
        # The caller's inputs are never mutated.
        self.assertFalse(inputs[0].value.value.mutable)

    async def test_concrete_mutable_never_downgraded(self):
        shared = SharedObjectRef(AccountAddress.from_str("0x5"), 3, True)
        resolved = await resolve_inputs(
            [CallArg.object(ObjectArg.shared(shared))], [], None
        )
        self.assertTrue(resolved[0].value.value.mutable)

    async def test_dedupes_object_ids(self):
        resolver = StubResolver({"0x1": self.owned("0x1")})
        resolved = await resolve_inputs(
            [UnresolvedObject("0x1"), UnresolvedObject("0x01")], [], resolver
        )
        ids = [AccountAddress.normalize("0x1")]
        self.assertEqual(resolver.calls, [("objects", ids)])
        self.assertEqual(resolved[0], resolved[1])

    def test_consensus_address_owner(self):
        metadata = ObjectMetadata(
            "0x1", 4, self.DIGEST, OwnerKind.CONSENSUS_ADDRESS, 2
        )
        arg = build_object_arg(metadata, InputUsage(mutable=True))
        expected = SharedObjectRef(AccountAddress.from_str("0x1"), 2, True)
        self.assertEqual(arg, ObjectArg.shared(expected))

    async def test_shared_version_missing(self):
        resolver = StubResolver({"0x1": self.shared("0x1", None)})
        with self.assertRaises(SharedVersionMissingError):
            await resolve_inputs([UnresolvedObject("0x1")], [], resolver)

    async def test_resolver_required(self):
        with self.assertRaises(ResolverUnavailableError):
            await resolve_inputs([UnresolvedObject("0x1")], [], None)

    async def test_length_mismatch(self):
        class ShortResolver(StubResolver):
            async def resolve_objects(self, object_ids):
                return []

        with self.assertRaises(UnresolvedInputError):
            await resolve_inputs([UnresolvedObject("0x1")], [], ShortResolver({}))

    async def test_owned_object_ref(self):
        resolver = StubResolver({"0x1": self.owned("0x1")})
        resolved = await resolve_inputs([UnresolvedObject("0x1")], [], resolver)
        expected = ObjectRef(AccountAddress.from_str("0x1"), 7, Digest(bytes([1] * 32)))
        self.assertEqual(resolved[0].value.value, expected)


if __name__ == "__main__":
    unittest.main()
