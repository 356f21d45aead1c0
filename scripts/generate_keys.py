"""
Script para generar las claves RSA (RS256) para JWT y la clave de tokens
de verificación de certificados.
Ejecutar una vez antes de iniciar la aplicación:

    python scripts/generate_keys.py
"""

import secrets
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_rsa_keys():
    keys_dir = Path(__file__).parent.parent / "keys"
    keys_dir.mkdir(exist_ok=True)

    private_key_path = keys_dir / "private.pem"
    public_key_path = keys_dir / "public.pem"

    if private_key_path.exists():
        print(f"⚠️  Las claves ya existen en {keys_dir}")
        response = input("¿Desea regenerarlas? (s/N): ").strip().lower()
        if response != "s":
            print("Cancelado.")
            return

    # Generar clave privada RSA 2048
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    private_key_path.write_bytes(private_pem)
    print(f"✅ Clave privada generada: {private_key_path}")

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    public_key_path.write_bytes(public_pem)
    print(f"✅ Clave pública generada: {public_key_path}")

    # Secreto para los tokens de verificación (QR). Cambiarlo invalida los QR emitidos.
    token_key = secrets.token_urlsafe(48)
    print(f"\n🔑 Clave de tokens para .env (CERTIFICATE_TOKEN_KEY):\n   {token_key}")

    print("\n📌 Agrega las claves a tu .env:")
    print("   JWT_PRIVATE_KEY_PATH=./keys/private.pem")
    print("   JWT_PUBLIC_KEY_PATH=./keys/public.pem")
    print(f"   CERTIFICATE_TOKEN_KEY={token_key}")


if __name__ == "__main__":
    generate_rsa_keys()
