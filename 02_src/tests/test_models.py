"""Tests for data models and errors."""

from decimal import Decimal

from avs.errors import Conflict, InvalidTransition, LedgerTxFailed, OracleUnavailable
from avs.models import Agent, Proof, Task, TaskStatus, ValidationResult


class TestAgent:
    def test_supported_task_types(self):
        assert Agent(address="0x1", metadata={"skillList": ["a"]}).supported_task_types == ["a"]
        assert Agent(address="0x1", metadata={"taskTypes": ["b"]}).supported_task_types == ["b"]
        assert Agent(address="0x1").supported_task_types is None

    def test_callback_url(self):
        assert Agent(address="0x1", metadata={"callEndpointUrl": "http://a"}).callback_url == "http://a"
        assert Agent(address="0x1", metadata={"endpoint": "http://b"}).callback_url == "http://b"
        assert Agent(address="0x1").callback_url is None


class TestTask:
    def test_stored_form_keeps_decimal_precision(self):
        task = Task(id="1", creator="0xc", task_type="price", task_data=None, payment=Decimal("0.1"))

        data = task.to_dict()
        assert data["payment"] == "0.1"
        assert Task.from_dict(data).payment == Decimal("0.1")

    def test_nested_records_restored(self):
        task = Task(
            id="1",
            creator="0xc",
            task_type="price",
            task_data=None,
            status=TaskStatus.PROOF_GENERATED,
            validation=ValidationResult(True, {"resultType": "price"}),
            proof=Proof("1", "price", None, {"price": "1"}, 5, "0xv", "0xs", "ref"),
        )

        restored = Task.from_dict(task.to_dict())
        assert restored.status == TaskStatus.PROOF_GENERATED
        assert restored.validation.details == {"resultType": "price"}
        assert restored.proof == task.proof


class TestProof:
    def test_payload_excludes_signature(self):
        proof = Proof("1", "price", {"s": 1}, "ok", 5, "0xv", "0xs", "ref")

        assert "signature" not in proof.payload()
        assert proof.to_dict()["signature"] == "0xs"
        assert proof.to_dict()["storageRef"] == "ref"

    def test_with_storage_ref_returns_copy(self):
        proof = Proof("1", "price", None, None, 5, "0xv", "0xs")
        stored = proof.with_storage_ref("ref")

        assert proof.storage_ref is None
        assert stored.storage_ref == "ref"


class TestErrors:
    def test_status_codes(self):
        assert InvalidTransition("1", "created", "validated").status_code == 409
        assert Conflict("1").status_code == 409
        assert OracleUnavailable("down").status_code == 503
        assert LedgerTxFailed("reverted").status_code == 502

    def test_to_dict(self):
        error = InvalidTransition("1", "created", "validated", "no result")

        body = error.to_dict()
        assert body["error"] == "invalid_transition"
        assert body["detail"] == {"task_id": "1", "current": "created", "target": "validated"}
        assert "no result" in body["message"]

    def test_collaborator_named_in_detail(self):
        assert OracleUnavailable("down").detail["collaborator"] == "oracle"
