"""
Chiffrement des fichiers sensibles (PII / PCI).

AES-256-CBC + padding PKCS7, une paire (clé 32 octets, IV 16 octets) par fichier,
réutilisée pour le média et pour la transcription.

⚠️ Pas de tag d'intégrité : une altération du chiffré n'est pas détectée.
"""

import base64
import secrets
from typing import Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_BYTES = 32
IV_BYTES = 16


def generate_key_material() -> Tuple[bytes, bytes]:
    """Nouvelle paire (key, iv) tirée d'une source aléatoire cryptographique."""
    return secrets.token_bytes(KEY_BYTES), secrets.token_bytes(IV_BYTES)


def _check(key: bytes, iv: bytes) -> None:
    if len(key) != KEY_BYTES:
        raise ValueError(f"key must be {KEY_BYTES} bytes")
    if len(iv) != IV_BYTES:
        raise ValueError(f"iv must be {IV_BYTES} bytes")


def encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    _check(key, iv)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    _check(key, iv)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(data) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


# ---------- Texte (transcriptions) : chiffré puis base64 ----------

def encrypt_text(key: bytes, iv: bytes, text: str) -> str:
    return base64.b64encode(encrypt(key, iv, text.encode("utf-8"))).decode("ascii")


def decrypt_text(key: bytes, iv: bytes, payload: str) -> str:
    return decrypt(key, iv, base64.b64decode(payload)).decode("utf-8")


# ---------- Persistance de la paire sur le record ----------

def encode_key_material(key: bytes, iv: bytes) -> Tuple[str, str]:
    return base64.b64encode(key).decode("ascii"), base64.b64encode(iv).decode("ascii")


def decode_key_material(key_b64: str, iv_b64: str) -> Tuple[bytes, bytes]:
    return base64.b64decode(key_b64), base64.b64decode(iv_b64)
