"""Tests for signing and signer recovery."""

from eth_account import Account

from avs.signature import SignatureVerifier, Signer, canonical_message, result_message


class TestCanonicalMessage:
    """Tests for the shared message encoding."""

    def test_key_order_does_not_matter(self):
        assert canonical_message({"b": 1, "a": 2}) == canonical_message({"a": 2, "b": 1})

    def test_compact_utf8(self):
        assert canonical_message({"a": "é", "b": [1, 2]}) == '{"a":"é","b":[1,2]}'.encode("utf-8")

    def test_str_and_bytes(self):
        assert canonical_message("hello") == b"hello"
        assert canonical_message(b"\x00\x01") == b"\x00\x01"


class TestSignatureVerifier:
    """Tests for verify()."""

    def test_signature_recovers_signer(self, agent_signer, verifier):
        message = result_message("42", {"symbol": "ETHUSDT", "price": "1000"})
        signature = agent_signer.sign(message)

        assert verifier.recover(message, signature) == agent_signer.address
        assert verifier.verify(agent_signer.address, message, signature) is True

    def test_identity_is_case_insensitive(self, agent_signer, verifier):
        signature = agent_signer.sign("hello")

        assert verifier.verify(agent_signer.address.lower(), "hello", signature) is True
        assert verifier.verify(agent_signer.address.upper().replace("0X", "0x"), "hello", signature) is True

    def test_other_identity_rejected(self, agent_signer, verifier):
        other = Account.create().address
        signature = agent_signer.sign("hello")

        assert verifier.verify(other, "hello", signature) is False

    def test_altered_message_rejected(self, agent_signer, verifier):
        signature = agent_signer.sign(result_message("1", {"price": "1000"}))

        assert verifier.verify(agent_signer.address, result_message("1", {"price": "1001"}), signature) is False
        assert verifier.verify(agent_signer.address, result_message("2", {"price": "1000"}), signature) is False

    def test_flipped_signature_bits_rejected(self, agent_signer, verifier):
        """Flipping any single byte of r or s must break verification."""
        message = {"taskId": "1", "result": "ok"}
        signature = bytes.fromhex(agent_signer.sign(message)[2:])

        for index in (0, 16, 31, 32, 48, 63):
            tampered = bytearray(signature)
            tampered[index] ^= 0x01
            assert verifier.verify(agent_signer.address, message, "0x" + tampered.hex()) is False

    def test_malformed_signature_never_raises(self, agent_signer, verifier):
        for signature in ("", "0x", "0x1234", "not-hex", "0x" + "00" * 65):
            assert verifier.verify(agent_signer.address, "hello", signature) is False
        assert verifier.recover("hello", "garbage") is None

    def test_empty_identity_rejected(self, agent_signer, verifier):
        signature = agent_signer.sign("hello")
        assert verifier.verify("", "hello", signature) is False


class TestSigner:
    """Tests for Signer."""

    def test_address_matches_key(self):
        account = Account.create()
        assert Signer(account.key).address == account.address

    def test_signature_format(self, agent_signer):
        signature = agent_signer.sign({"a": 1})
        assert signature.startswith("0x")
        assert len(signature) == 2 + 65 * 2
