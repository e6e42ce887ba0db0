"""EIP-191 signing and signer recovery.

Canonical encoding, shared by every signer and verifier in the pipeline:

* ``bytes`` are signed verbatim;
* ``str`` is signed as its UTF-8 bytes;
* anything else is serialised as UTF-8 JSON with sorted keys, no
  insignificant whitespace and non-ASCII characters kept as-is.

The resulting bytes are wrapped with the ``"\\x19Ethereum Signed Message"``
prefix (``encode_defunct``) before hashing, so wallets can produce the same
signature with ``personal_sign``.
"""

import json
from typing import Any, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct

from ..logging_config import get_logger

logger = get_logger(__name__)


def canonical_message(message: Any) -> bytes:
    """Encode a message the way every signer in the pipeline must."""
    if isinstance(message, bytes):
        return message
    if isinstance(message, str):
        return message.encode("utf-8")
    return json.dumps(
        message,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def result_message(task_id: str, result: Any) -> dict:
    """The message an agent signs when it reports a task result."""
    return {"taskId": str(task_id), "result": result}


class ISignatureVerifier(Protocol):
    """Checks that a message was signed by a claimed identity."""

    def verify(self, identity_claim: str, message: Any, signature: str) -> bool:
        ...


class SignatureVerifier:
    """Recovers the signer of a message and compares it to a claim."""

    def recover(self, message: Any, signature: str | bytes) -> str | None:
        """Recover the signing address, or None if the signature is malformed."""
        try:
            signable = encode_defunct(primitive=canonical_message(message))
            return Account.recover_message(signable, signature=signature)
        except Exception as e:  # eth_account raises several unrelated types
            logger.debug("Signature recovery failed: %s", e)
            return None

    def verify(self, identity_claim: str, message: Any, signature: str) -> bool:
        """True iff `signature` over `message` recovers to `identity_claim`."""
        if not identity_claim or not signature:
            return False
        recovered = self.recover(message, signature)
        if recovered is None:
            return False
        return recovered.lower() == identity_claim.lower()


class Signer:
    """Holds a private key and signs canonical messages."""

    def __init__(self, private_key: str | bytes):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, message: Any) -> str:
        """Sign a message; returns the 65-byte signature as 0x-hex."""
        signable = encode_defunct(primitive=canonical_message(message))
        signed = self._account.sign_message(signable)
        return "0x" + bytes(signed.signature).hex()
