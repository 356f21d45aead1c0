"""
Codec de identificadores de certificado.

- Formato de visualización: `P-000123` (prefijo + número con ceros a la izquierda).
- Token público de verificación: cifrado AES-SIV del número en decimal,
  codificado en base64 URL-safe sin padding. AES-SIV es determinístico
  (mismo número → mismo token) y autenticado, así que un token alterado
  no descifra a otro número válido.

Rotar CERTIFICATE_TOKEN_KEY invalida todos los tokens emitidos.
"""

import base64
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESSIV
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from vaxcert.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_PLACEHOLDER_KEY = "your-certificate-token-key-here"
_HKDF_INFO = b"vaxcert-certificate-token"
_AAD = [b"certificate_no"]

# Tope de la columna certificates.certificate_no (INTEGER de 32 bits)
MAX_CERTIFICATE_NO = 2**31 - 1


# ── Visualización ────────────────────────────────────

def format_display(certificate_no: int) -> str:
    """`123` → `P-000123`. Números de más de 6 dígitos no se truncan."""
    width = settings.CERTIFICATE_DISPLAY_WIDTH
    return f"{settings.CERTIFICATE_DISPLAY_PREFIX}{certificate_no:0{width}d}"


def parse_display(value: str) -> int:
    """
    Inverso de `format_display`. Acepta también el número sin prefijo.
    Lanza ValueError si el valor no es un número de certificado.
    """
    cleaned = value.strip()
    prefix = settings.CERTIFICATE_DISPLAY_PREFIX
    if cleaned.upper().startswith(prefix.upper()):
        cleaned = cleaned[len(prefix):]
    if not (cleaned.isascii() and cleaned.isdigit()):
        raise ValueError(f"Número de certificado inválido: {value!r}")
    number = int(cleaned)
    if number > MAX_CERTIFICATE_NO:
        raise ValueError(f"Número de certificado fuera de rango: {value!r}")
    return number


# ── Token público ────────────────────────────────────
_cipher: AESSIV | None = None


def _get_cipher() -> AESSIV:
    global _cipher
    if _cipher is None:
        secret = settings.CERTIFICATE_TOKEN_KEY
        if secret == _PLACEHOLDER_KEY:
            raise RuntimeError(
                "CERTIFICATE_TOKEN_KEY no configurada. Genera una con: "
                "python scripts/generate_keys.py y ponla en .env"
            )
        # AES-SIV necesita 64 bytes (AES-256-SIV); se derivan del secreto configurado
        key = HKDF(
            algorithm=hashes.SHA256(),
            length=64,
            salt=None,
            info=_HKDF_INFO,
        ).derive(secret.encode())
        _cipher = AESSIV(key)
    return _cipher


def reset_cipher() -> None:
    """Descarta el cifrador cacheado (tras cambiar la clave en runtime)."""
    global _cipher
    _cipher = None


def encode_token(certificate_no: int) -> str:
    """Cifra el número de certificado en un token URL-safe."""
    if certificate_no < 0:
        raise ValueError("El número de certificado no puede ser negativo")
    ciphertext = _get_cipher().encrypt(str(certificate_no).encode(), _AAD)
    return base64.urlsafe_b64encode(ciphertext).rstrip(b"=").decode()


def decode_token(token: str) -> int | None:
    """
    Descifra un token público. Retorna None si el token está mal formado,
    fue alterado o se emitió con otra clave; nunca lanza por input inválido.
    """
    if not token:
        return None
    padded = token + "=" * (-len(token) % 4)
    try:
        ciphertext = base64.urlsafe_b64decode(padded.encode())
        plaintext = _get_cipher().decrypt(ciphertext, _AAD).decode()
    except (binascii.Error, ValueError, InvalidTag, UnicodeDecodeError):
        return None
    if not plaintext.isdigit():
        return None
    number = int(plaintext)
    if number > MAX_CERTIFICATE_NO:
        return None
    return number
