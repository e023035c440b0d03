import hashlib
import json
import secrets
import time
from typing import Any, Dict
from ..crypto.keys import sign, public_key_from_private
from ..crypto.addresses import address_from_pubkey

# Seconds a signed request stays acceptable
MAX_REQUEST_AGE = 300


def signing_hash(body: Dict[str, Any]) -> bytes:
    """
    Digest signed by the caller.

    Covers every field of the request body except `signature`, serialized as
    compact JSON with sorted keys so client and node hash the same bytes.
    """
    unsigned = {k: v for k, v in body.items() if k != "signature"}
    payload = json.dumps(unsigned, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).digest()


def sign_request(body: Dict[str, Any], priv_key_bytes: bytes, prefix: str = "stk") -> Dict[str, Any]:
    """Returns a copy of `body` with sender, pub_key, timestamp, nonce and signature set."""
    pub = public_key_from_private(priv_key_bytes)
    signed = dict(body)
    signed["sender"] = address_from_pubkey(pub, prefix=prefix)
    signed["pub_key"] = pub.hex()
    signed["timestamp"] = int(time.time())
    signed["nonce"] = secrets.token_hex(8)
    signed["signature"] = sign(signing_hash(signed), priv_key_bytes).hex()
    return signed
