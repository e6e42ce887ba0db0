"""Ledger contract access (agent/task registry on chain)."""

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from ..errors import LedgerTxFailed, LedgerUnavailable
from ..logging_config import get_logger
from ..models import Topic

logger = get_logger(__name__)


def _fn(name: str, inputs: list, outputs: list | None = None, view: bool = False) -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs or []],
        "stateMutability": "view" if view else "nonpayable",
    }


def _event(name: str, inputs: list) -> dict:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": i} for n, t, i in inputs],
    }


# The subset of the registry contract the pipeline talks to.
CONTRACT_ABI = [
    _fn(
        "agents",
        [("", "address")],
        [
            ("agentAddress", "address"),
            ("metadata", "string"),
            ("isActive", "bool"),
            ("reputation", "uint256"),
        ],
        view=True,
    ),
    _fn(
        "tasks",
        [("", "uint256")],
        [
            ("creator", "address"),
            ("assignedAgent", "address"),
            ("taskType", "bytes32"),
            ("taskData", "string"),
            ("payment", "uint256"),
            ("status", "uint8"),
            ("signature", "bytes"),
        ],
        view=True,
    ),
    _fn("assignTask", [("_taskId", "uint256")]),
    _fn("completeTask", [("_taskId", "uint256"), ("_signature", "bytes")]),
    _fn(
        "registerAgentForOtherUser",
        [("_user", "address"), ("_agentAddress", "address"), ("_paymentAllowance", "uint256")],
    ),
    _event("AgentRegistered", [("agentAddress", "address", True), ("metadata", "string", False)]),
    _event(
        "TaskCreated",
        [("taskId", "uint256", True), ("creator", "address", True), ("taskType", "bytes32", False)],
    ),
    _event("TaskAssigned", [("taskId", "uint256", True), ("agent", "address", True)]),
    _event("TaskCompleted", [("taskId", "uint256", True), ("signature", "bytes", False)]),
]

EVENT_TOPICS = {
    "AgentRegistered": Topic.AGENT_REGISTERED,
    "TaskCreated": Topic.TASK_CREATED,
    "TaskAssigned": Topic.TASK_ASSIGNED,
    "TaskCompleted": Topic.TASK_COMPLETED,
}


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    block_number: int | None = None


@dataclass(frozen=True)
class LedgerAgent:
    address: str
    metadata_ref: str
    is_active: bool
    reputation: int


@dataclass(frozen=True)
class LedgerTask:
    ledger_id: int
    creator: str
    assigned_agent: str | None
    task_type: str
    task_data: str
    payment: int
    status: int
    signature: str | None


@dataclass(frozen=True)
class LedgerEvent:
    topic: Topic
    payload: dict
    block_number: int
    log_index: int


class ILedger(Protocol):
    """Read/write interface to the ledger contract."""

    async def block_number(self) -> int:
        ...

    async def get_agent(self, address: str) -> LedgerAgent | None:
        ...

    async def get_task(self, ledger_id: int) -> LedgerTask | None:
        ...

    async def assign_task(self, ledger_id: int) -> TxReceipt:
        ...

    async def complete_task(self, ledger_id: int, signature: str) -> TxReceipt:
        ...

    async def register_agent_for_other_user(
        self, user: str, agent: str, allowance: int
    ) -> TxReceipt:
        ...

    async def fetch_events(self, from_block: int) -> tuple[list[LedgerEvent], int]:
        """Events from `from_block` to head, and the next block to poll."""
        ...


def decode_bytes32(value: bytes) -> str:
    return bytes(value).rstrip(b"\x00").decode("utf-8", errors="replace")


def _address_or_none(value: str) -> str | None:
    return None if int(value, 16) == 0 else value


class Web3Ledger:
    """ILedger over a JSON-RPC node.

    web3's HTTP provider is blocking, so every call runs in a worker thread.
    Writes are signed with the relayer key and awaited to a receipt.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str | None = None,
        *,
        receipt_timeout: float = 120.0,
        request_timeout: float = 30.0,
        web3: Web3 | None = None,
    ):
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=CONTRACT_ABI
        )
        self._account = self._w3.eth.account.from_key(private_key) if private_key else None
        self._receipt_timeout = receipt_timeout

    @property
    def address(self) -> str | None:
        return self._account.address if self._account else None

    async def _call(self, fn, *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"Ledger call failed: {e}") from e

    async def block_number(self) -> int:
        return await self._call(lambda: self._w3.eth.block_number)

    async def get_agent(self, address: str) -> LedgerAgent | None:
        row = await self._call(
            self._contract.functions.agents(Web3.to_checksum_address(address)).call
        )
        agent_address, metadata, is_active, reputation = row
        if _address_or_none(agent_address) is None:
            return None
        return LedgerAgent(agent_address, metadata, bool(is_active), int(reputation))

    async def get_task(self, ledger_id: int) -> LedgerTask | None:
        row = await self._call(self._contract.functions.tasks(int(ledger_id)).call)
        creator, assigned, task_type, task_data, payment, status, signature = row
        if _address_or_none(creator) is None:
            return None
        return LedgerTask(
            ledger_id=int(ledger_id),
            creator=creator,
            assigned_agent=_address_or_none(assigned),
            task_type=decode_bytes32(task_type),
            task_data=task_data,
            payment=int(payment),
            status=int(status),
            signature=Web3.to_hex(signature) if signature else None,
        )

    async def assign_task(self, ledger_id: int) -> TxReceipt:
        return await self._transact(self._contract.functions.assignTask(int(ledger_id)))

    async def complete_task(self, ledger_id: int, signature: str) -> TxReceipt:
        return await self._transact(
            self._contract.functions.completeTask(int(ledger_id), Web3.to_bytes(hexstr=signature))
        )

    async def register_agent_for_other_user(
        self, user: str, agent: str, allowance: int
    ) -> TxReceipt:
        return await self._transact(
            self._contract.functions.registerAgentForOtherUser(
                Web3.to_checksum_address(user),
                Web3.to_checksum_address(agent),
                int(allowance),
            )
        )

    async def _transact(self, call) -> TxReceipt:
        if self._account is None:
            raise LedgerUnavailable("No signing key configured for ledger writes")
        account = self._account

        def send():
            tx = call.build_transaction(
                {
                    "from": account.address,
                    "nonce": self._w3.eth.get_transaction_count(account.address),
                }
            )
            signed = account.sign_transaction(tx)
            return self._w3.eth.send_raw_transaction(signed.raw_transaction)

        try:
            raw_hash = await asyncio.to_thread(send)
        except ContractLogicError as e:
            raise LedgerTxFailed(f"Transaction reverted: {e}") from e
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"Transaction submission failed: {e}") from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info("Submitted %s", tx_hash, extra={"tx_hash": tx_hash})

        try:
            receipt = await asyncio.to_thread(
                self._w3.eth.wait_for_transaction_receipt,
                raw_hash,
                timeout=self._receipt_timeout,
            )
        except TimeExhausted as e:
            raise LedgerTxFailed(f"Transaction {tx_hash} not confirmed", tx_hash) from e
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerTxFailed(f"Lost track of transaction {tx_hash}: {e}", tx_hash) from e

        if receipt["status"] != 1:
            raise LedgerTxFailed(f"Transaction {tx_hash} reverted", tx_hash)
        logger.info("Transaction confirmed: %s", tx_hash, extra={"tx_hash": tx_hash})
        return TxReceipt(tx_hash=tx_hash, block_number=receipt["blockNumber"])

    async def fetch_events(self, from_block: int) -> tuple[list[LedgerEvent], int]:
        latest = await self.block_number()
        if from_block > latest:
            return [], from_block

        events: list[LedgerEvent] = []
        for name, topic in EVENT_TOPICS.items():
            event_type = getattr(self._contract.events, name)
            logs = await self._call(
                event_type().get_logs, from_block=from_block, to_block=latest
            )
            for log in logs:
                events.append(
                    LedgerEvent(
                        topic=topic,
                        payload=_normalise(name, log["args"]),
                        block_number=log["blockNumber"],
                        log_index=log["logIndex"],
                    )
                )

        events.sort(key=lambda event: (event.block_number, event.log_index))
        return events, latest + 1


def _normalise(name: str, args) -> dict:
    if name == "AgentRegistered":
        return {"address": args["agentAddress"], "metadataRef": args["metadata"]}
    if name == "TaskCreated":
        return {
            "taskId": int(args["taskId"]),
            "creator": args["creator"],
            "taskType": decode_bytes32(args["taskType"]),
        }
    if name == "TaskAssigned":
        return {"taskId": int(args["taskId"]), "agent": args["agent"]}
    return {"taskId": int(args["taskId"]), "signature": Web3.to_hex(args["signature"])}
