# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

import asyncio
import base64
import copy
import json
import logging
import unittest
from typing import Any, Dict, List, Optional

import httpx

from .account import Account
from .account_address import AccountAddress
from .metadata import Metadata
from .signature import Signer
from .transaction_builder import TransactionBuilder

DEFAULT_OBJECT_OPTIONS = {"showOwner": True, "showType": True}
DEFAULT_EXECUTE_OPTIONS = {"showEffects": True}


class ClientConfig:
    """Common configuration for clients, particularly for submitting transactions"""

    # Budget used when dry running a transaction to estimate its gas.
    max_gas_budget: int = 50_000_000_000
    coin_page_size: int = 50
    gas_coin_type: str = "0x2::sui::SUI"
    transaction_wait_in_seconds: int = 20
    http2: bool = False


class RpcClient:
    """A wrapper around the Sui full node JSON-RPC API"""

    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str
    _request_id: int

    def __init__(self, base_url: str, client_config: ClientConfig = ClientConfig()):
        self.base_url = base_url
        # Default limits
        limits = httpx.Limits()
        # Default timeouts but do not set a pool timeout, since the idea is that jobs will wait as
        # long as progress is being made.
        timeout = httpx.Timeout(60.0, pool=None)
        # Default headers
        headers = {
            Metadata.SUI_HEADER: Metadata.get_sui_header_val(),
            Metadata.SUI_VERSION_HEADER: Metadata.get_sui_version_header_val(),
        }
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
        )
        self.client_config = client_config
        self._request_id = 0

    async def close(self):
        await self.client.aclose()

    #
    # Reads
    #

    async def reference_gas_price(self) -> int:
        """The reference gas price, in MIST per gas unit, of the current epoch."""
        return int(await self._call("suix_getReferenceGasPrice", []))

    async def get_object(
        self, object_id: str, options: Optional[Dict[str, bool]] = None
    ) -> Dict[str, Any]:
        """
        Fetch the latest version of an object.

        :param object_id: Object id, with or without a '0x' prefix.
        :param options: Which parts of the object to include, defaults to owner and type.
        :return: The `data` field of the object response.
        """
        object_id = AccountAddress.normalize(object_id)
        response = await self._call(
            "sui_getObject", [object_id, options or DEFAULT_OBJECT_OPTIONS]
        )
        if "data" not in response or response["data"] is None:
            raise ObjectNotFound(f"{response.get('error')} - {object_id}", object_id)
        return response["data"]

    async def multi_get_objects(
        self, object_ids: List[str], options: Optional[Dict[str, bool]] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch several objects in one request. The response holds one entry per
        requested id, in request order, each with either `data` or `error`.
        """
        return await self._call(
            "sui_multiGetObjects",
            [
                [AccountAddress.normalize(object_id) for object_id in object_ids],
                options or DEFAULT_OBJECT_OPTIONS,
            ],
        )

    async def get_normalized_move_function(
        self, package: str, module: str, function: str
    ) -> Dict[str, Any]:
        return await self._call(
            "sui_getNormalizedMoveFunction",
            [AccountAddress.normalize(package), module, function],
        )

    async def get_coins(
        self,
        owner: AccountAddress,
        coin_type: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Retrieves one page of the coins of a given type held by an address.

        :param owner: Address that owns the coins.
        :param coin_type: Fully qualified coin type, defaults to the gas coin type.
        :param cursor: The `nextCursor` of the previous page, if any.
        :param limit: Page size, defaults to the configured page size.
        :return: A page with `data`, `nextCursor` and `hasNextPage`.
        """
        return await self._call(
            "suix_getCoins",
            [
                str(owner),
                coin_type or self.client_config.gas_coin_type,
                cursor,
                limit or self.client_config.coin_page_size,
            ],
        )

    async def get_transaction_block(
        self, digest: str, options: Optional[Dict[str, bool]] = None
    ) -> Dict[str, Any]:
        return await self._call(
            "sui_getTransactionBlock", [digest, options or DEFAULT_EXECUTE_OPTIONS]
        )

    #
    # Transactions
    #

    async def dry_run_transaction_block(
        self, transaction_bytes: bytes
    ) -> Dict[str, Any]:
        """Simulates BCS encoded TransactionData without signatures."""
        return await self._call(
            "sui_dryRunTransactionBlock",
            [base64.b64encode(transaction_bytes).decode()],
        )

    async def execute_transaction_block(
        self,
        transaction_bytes: bytes,
        signatures: List[bytes],
        options: Optional[Dict[str, bool]] = None,
        request_type: str = "WaitForLocalExecution",
    ) -> Dict[str, Any]:
        """
        Submits BCS encoded TransactionData with its serialized signatures.

        :return: The transaction block response, including its `digest`.
        """
        return await self._call(
            "sui_executeTransactionBlock",
            [
                base64.b64encode(transaction_bytes).decode(),
                [base64.b64encode(signature).decode() for signature in signatures],
                options or DEFAULT_EXECUTE_OPTIONS,
                request_type,
            ],
        )

    async def transaction_pending(self, digest: str) -> bool:
        try:
            await self.get_transaction_block(digest)
        except RpcError as e:
            # Unknown until the transaction has been checkpointed or locally executed
            logging.debug(f"Transaction {digest} not yet known: {e}")
            return True
        return False

    async def wait_for_transaction(self, digest: str) -> Dict[str, Any]:
        """
        Waits up to the duration specified in client_config for a transaction to be
        known, then checks that it succeeded.
        """

        count = 0
        while await self.transaction_pending(digest):
            assert (
                count < self.client_config.transaction_wait_in_seconds
            ), f"transaction {digest} timed out"
            logging.info(f"Waiting for transaction {digest}")
            await asyncio.sleep(1)
            count += 1

        response = await self.get_transaction_block(digest)
        status = response.get("effects", {}).get("status", {})
        assert status.get("status") == "success", f"{status} - {digest}"
        return response

    async def sign_and_execute_transaction(
        self,
        builder: TransactionBuilder,
        signer: Signer,
        options: Optional[Dict[str, bool]] = None,
    ) -> Dict[str, Any]:
        """
        Resolves the builder against this node, signs the transaction bytes and
        submits them. The signer is the sender when the builder has none; the builder
        itself is left unchanged.
        """
        # rpc_resolver builds on this module
        from .rpc_resolver import RpcResolver

        if builder.sender is None:
            builder = copy.copy(builder).set_sender(signer.address())
        resolver = RpcResolver(self)
        result = await builder.build(resolver=resolver, gas_resolver=resolver)
        if result.transaction_bytes is None:
            raise Exception("Transaction is missing sender or gas data")
        signature = signer.sign(result.transaction_bytes)
        return await self.execute_transaction_block(
            result.transaction_bytes, [signature], options
        )

    async def _call(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        request = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        logging.debug(f"{method} {params}")
        response = await self.client.post(
            self.base_url,
            headers={"Content-Type": "application/json"},
            json=request,
        )
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        data = response.json()
        if "error" in data:
            error = data["error"]
            raise RpcError(f"{error.get('message')} - {method}", error.get("code"))
        return data["result"]


class ApiError(Exception):
    """The API returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.status_code = status_code


class RpcError(Exception):
    """The node answered with a JSON-RPC error object"""

    code: Optional[int]

    def __init__(self, message: str, code: Optional[int]):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.code = code


class ObjectNotFound(Exception):
    """The object does not exist or has been deleted"""

    object_id: str

    def __init__(self, message: str, object_id: str):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.object_id = object_id


def _mock_client(handler, client_config: ClientConfig = ClientConfig()) -> RpcClient:
    """An RpcClient whose requests are answered by handler(method, params)."""

    def respond(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        result = handler(body["method"], body["params"])
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "result": result}
        )

    client = RpcClient("http://localhost:9000", client_config)
    client.client = httpx.AsyncClient(transport=httpx.MockTransport(respond))
    return client


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_reference_gas_price(self):
        calls = []

        def handler(method, params):
            calls.append((method, params))
            return "750"

        client = _mock_client(handler)
        self.assertEqual(await client.reference_gas_price(), 750)
        self.assertEqual(calls, [("suix_getReferenceGasPrice", [])])
        await client.close()

    async def test_http_error(self):
        client = _mock_client(lambda method, params: httpx.Response(503, text="down"))
        with self.assertRaises(ApiError) as context:
            await client.reference_gas_price()
        self.assertEqual(context.exception.status_code, 503)
        await client.close()

    async def test_rpc_error(self):
        def handler(method, params):
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {"code": -32602, "message": "Invalid params"},
                },
            )

        client = _mock_client(handler)
        with self.assertRaises(RpcError) as context:
            await client.get_transaction_block("abc")
        self.assertEqual(context.exception.code, -32602)
        self.assertTrue(await client.transaction_pending("abc"))
        await client.close()

    async def test_get_object(self):
        def handler(method, params):
            self.assertEqual(method, "sui_getObject")
            if params[0] == AccountAddress.normalize("0x5"):
                return {"data": {"objectId": params[0], "version": "3"}}
            return {"error": {"code": "notExists", "object_id": params[0]}}

        client = _mock_client(handler)
        data = await client.get_object("0x5")
        self.assertEqual(data["version"], "3")
        with self.assertRaises(ObjectNotFound) as context:
            await client.get_object("0x6")
        self.assertEqual(context.exception.object_id, AccountAddress.normalize("0x6"))
        await client.close()

    async def test_get_coins_defaults(self):
        calls = []

        def handler(method, params):
            calls.append((method, params))
            return {"data": [], "nextCursor": None, "hasNextPage": False}

        client = _mock_client(handler)
        owner = AccountAddress.from_str("0xa")
        await client.get_coins(owner)
        self.assertEqual(
            calls, [("suix_getCoins", [str(owner), "0x2::sui::SUI", None, 50])]
        )
        await client.close()

    async def test_execute_encodes_base64(self):
        calls = []

        def handler(method, params):
            calls.append((method, params))
            return {"digest": "abc"}

        client = _mock_client(handler)
        response = await client.execute_transaction_block(b"\x01\x02", [b"\x03"])
        self.assertEqual(response["digest"], "abc")
        self.assertEqual(
            calls[0][1],
            ["AQI=", ["Aw=="], {"showEffects": True}, "WaitForLocalExecution"],
        )
        await client.close()

    async def test_wait_for_transaction(self):
        attempts = []

        def handler(method, params):
            attempts.append(method)
            if len(attempts) == 1:
                return httpx.Response(
                    200,
                    json={
                        "jsonrpc": "2.0",
                        "id": 1,
                        "error": {"code": -32602, "message": "Could not find"},
                    },
                )
            return {"digest": params[0], "effects": {"status": {"status": "success"}}}

        client = _mock_client(handler)
        response = await client.wait_for_transaction("abc")
        self.assertEqual(response["digest"], "abc")
        self.assertEqual(len(attempts), 3)
        await client.close()

    async def test_sign_requires_complete_transaction(self):
        def handler(method, params):
            if method == "suix_getReferenceGasPrice":
                return "1000"
            raise AssertionError(method)

        client = _mock_client(handler)
        builder = TransactionBuilder()
        builder.set_gas_budget(0)
        builder.split_coins(builder.gas(), [builder.pure_u64(1)])
        with self.assertRaises(Exception):
            await client.sign_and_execute_transaction(builder, Account.generate())
        await client.close()


if __name__ == "__main__":
    unittest.main()
