"""
AES-256-GCM field encryption for transaction rows.

Stored format is ``base64(IV + ciphertext + tag)``, the layout Web Crypto's
AES-GCM decrypt expects, so the app can read rows written here.
"""

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12

# Field name -> Python type to restore on decrypt
ENCRYPTED_FIELDS = {
    "amount": float,
    "description": str,
    "notes": str,
}


def encrypt_field(value: str, base64_key: str) -> str:
    key = base64.b64decode(base64_key)
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, value.encode("utf-8"), None)
    return base64.b64encode(iv + sealed).decode("ascii")


def decrypt_field(token: str, base64_key: str) -> str:
    key = base64.b64decode(base64_key)
    raw = base64.b64decode(token)
    iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
    return AESGCM(key).decrypt(iv, sealed, None).decode("utf-8")


def encrypt_transaction_fields(row: dict, base64_key: str) -> dict:
    """Copy of ``row`` with the financial fields encrypted; None stays None."""
    result = dict(row)
    for field in ENCRYPTED_FIELDS:
        value = result.get(field)
        if value is None:
            continue
        result[field] = encrypt_field(str(value), base64_key)
    return result


def decrypt_transaction_fields(row: dict, base64_key: str) -> dict:
    result = dict(row)
    for field, cast in ENCRYPTED_FIELDS.items():
        value = result.get(field)
        if value is None:
            continue
        result[field] = cast(decrypt_field(value, base64_key))
    return result
