"""Signs, stores, verifies and finalizes attestations for validated tasks."""

import asyncio
import time
from dataclasses import replace
from typing import Any

from ..collaborators import IContentStore
from ..errors import (
    CollaboratorUnavailable,
    InvalidTransition,
    LedgerTxFailed,
    LedgerUnavailable,
)
from ..ledger import ILedger
from ..logging_config import get_logger
from ..models import REQUIRED_PROOF_FIELDS, Proof, Task, TaskStatus
from ..signature import ISignatureVerifier, Signer
from ..tasks import TaskRegistry
from ..validation import ValidationService

logger = get_logger(__name__)


class AttestationPipeline:
    """Turns validated tasks into verifiable, optionally on-chain, proofs."""

    def __init__(
        self,
        registry: TaskRegistry,
        signer: Signer,
        verifier: ISignatureVerifier,
        content_store: IContentStore,
        ledger: ILedger | None = None,
        ledger_timeout: float = 120.0,
        validation: ValidationService | None = None,
    ):
        self._registry = registry
        self._signer = signer
        self._verifier = verifier
        self._content_store = content_store
        self._ledger = ledger
        self._ledger_timeout = ledger_timeout
        self._validation = validation

    @property
    def validator_identity(self) -> str:
        return self._signer.address

    @property
    def verifier(self) -> ISignatureVerifier:
        return self._verifier

    async def generate(self, task_id: str, result: Any = None) -> Proof:
        """Sign and store an attestation for a validated task."""
        task = await self._registry.get(task_id)
        if task.status != TaskStatus.VALIDATED:
            raise InvalidTransition(
                task.id, task.status.value, TaskStatus.PROOF_GENERATED.value
            )

        unsigned = Proof(
            task_id=task.id,
            task_type=task.task_type,
            task_data=task.task_data,
            result=task.result if result is None else result,
            timestamp=int(time.time() * 1000),
            operator_id=self._signer.address,
            signature="",
        )
        proof = replace(unsigned, signature=self._signer.sign(unsigned.payload()))

        try:
            storage_ref = await self._content_store.store(
                {**proof.payload(), "signature": proof.signature}
            )
        except CollaboratorUnavailable as e:
            await self._registry.note_error(task.id, e.code, e.message)
            raise
        proof = proof.with_storage_ref(storage_ref)

        await self._registry.apply_proof(task.id, proof)
        logger.info(
            "Proof for task %s stored as %s", task.id, storage_ref,
            extra={"task_id": task.id},
        )
        return proof

    async def verify(self, task_id: str, proof: Proof | dict) -> bool:
        """Check a proof's shape and operator signature.

        Marks the task `proof_verified` on success, otherwise
        `proof_verification_failed`.
        """
        task = await self._registry.get(task_id)
        if task.status != TaskStatus.PROOF_GENERATED:
            raise InvalidTransition(
                task.id, task.status.value, TaskStatus.PROOF_VERIFIED.value
            )

        data = proof.to_dict() if isinstance(proof, Proof) else dict(proof or {})
        reason = self._check(task, data)
        if reason:
            logger.warning(
                "Proof for task %s rejected: %s", task.id, reason,
                extra={"task_id": task.id},
            )
            await self._registry.mark_proof_failed(task.id, reason)
            return False

        await self._registry.mark_proof_verified(task.id)
        return True

    def _check(self, task: Task, data: dict) -> str | None:
        missing = [name for name in REQUIRED_PROOF_FIELDS if data.get(name) in (None, "")]
        if missing:
            return f"invalid proof format: missing {', '.join(missing)}"
        if str(data.get("taskId")) != task.id:
            return f"proof is for task {data.get('taskId')}"
        try:
            parsed = Proof.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            return f"invalid proof format: {e}"
        if not isinstance(parsed.operator_id, str) or not isinstance(parsed.signature, str):
            return "invalid proof format: operatorId and signature must be strings"
        if not self._verifier.verify(parsed.operator_id, parsed.payload(), parsed.signature):
            return "operator signature invalid"
        return None

    async def finalize(self, task_id: str) -> Task:
        """Complete the task on the ledger and record the confirmed transaction.

        Without a confirmed receipt the task stays `proof_verified` and the
        failure is noted on it.
        """
        task = await self._registry.get(task_id)
        if task.status != TaskStatus.PROOF_VERIFIED:
            raise InvalidTransition(task.id, task.status.value, TaskStatus.FINALIZED.value)
        if self._ledger is None:
            raise LedgerUnavailable("No ledger configured")
        if task.ledger_id is None:
            raise InvalidTransition(
                task.id,
                task.status.value,
                TaskStatus.FINALIZED.value,
                "task is not recorded on the ledger",
            )

        try:
            receipt = await asyncio.wait_for(
                self._ledger.complete_task(task.ledger_id, task.signature or ""),
                timeout=self._ledger_timeout,
            )
        except asyncio.TimeoutError:
            error = LedgerTxFailed(
                f"completeTask for task {task.id} not confirmed within {self._ledger_timeout}s"
            )
            await self._registry.note_error(task.id, error.code, error.message)
            raise error
        except (LedgerTxFailed, LedgerUnavailable) as e:
            await self._registry.note_error(task.id, e.code, e.message)
            raise

        logger.info(
            "Task %s finalized in %s", task.id, receipt.tx_hash,
            extra={"task_id": task.id, "tx_hash": receipt.tx_hash},
        )
        return await self._registry.mark_finalized(
            task.id, receipt.tx_hash, receipt.block_number
        )

    async def process(self, task_id: str) -> Task:
        """Validate a completed task, then generate and verify its proof."""
        if self._validation is None:
            raise RuntimeError("AttestationPipeline built without a ValidationService")
        await self._validation.validate(task_id)
        proof = await self.generate(task_id)
        await self.verify(task_id, proof)
        return await self._registry.get(task_id)
