# Fichier: kyc_service/storage.py
"""
Stockage objet des images (S3 ou MinIO), chiffrées en AES-256 avant envoi.
"""
import logging
import os
from datetime import datetime, timezone

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings
from kyc_service.errors import StorageError

# Le "sel" doit rester fixe : il conditionne la clé dérivée
SALT = b"kyc_salt_for_image_encryption"


# ───────────────────────────────────────────────
# 1) Chiffrement AES-256 en mémoire
# ───────────────────────────────────────────────
def derive_encryption_key(password: str) -> bytes:
    """Dérive une clé AES-256 stable à partir du mot de passe de l'environnement."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=SALT,
        iterations=100000,
        backend=default_backend(),
    )
    return kdf.derive(password.encode())


def encrypt_file_aes256(file_data: bytes, key: bytes) -> bytes:
    """Retourne IV + données chiffrées (AES-256 CFB)."""
    iv = os.urandom(16)
    cipher = Cipher(algorithms.AES(key), modes.CFB(iv), backend=default_backend())
    encryptor = cipher.encryptor()
    return iv + encryptor.update(file_data) + encryptor.finalize()


def decrypt_file_aes256(encrypted: bytes, key: bytes) -> bytes:
    iv, payload = encrypted[:16], encrypted[16:]
    cipher = Cipher(algorithms.AES(key), modes.CFB(iv), backend=default_backend())
    decryptor = cipher.decryptor()
    return decryptor.update(payload) + decryptor.finalize()


# ───────────────────────────────────────────────
# 2) Clés d'objets
# ───────────────────────────────────────────────
def _timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def document_object_key(user_id: str, document_type: str, side: str) -> str:
    return f"{user_id}/{document_type}/{side}/document-{_timestamp()}.jpg"


def selfie_object_key(user_id: str, step: str) -> str:
    return f"{user_id}/selfie/{step}/selfie-{_timestamp()}.jpg"


# ───────────────────────────────────────────────
# 3) Client S3 / MinIO
# ───────────────────────────────────────────────
class ObjectStore:

    def __init__(self, client=None, bucket: str = None, encryption_password: str = None):
        encryption_password = encryption_password or settings.STORAGE_ENCRYPTION_KEY
        if not encryption_password:
            raise ValueError("ERREUR: La variable d'environnement STORAGE_ENCRYPTION_KEY n'est pas définie.")
        self._key = derive_encryption_key(encryption_password)
        self.bucket = bucket or settings.S3_BUCKET_NAME

        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.AWS_REGION,
                config=Config(
                    signature_version="s3v4",
                    retries={"max_attempts": settings.VISION_MAX_ATTEMPTS, "mode": "standard"},
                ),
            )
        self._client = client
        self._bucket_checked = False

    def _ensure_bucket(self):
        if self._bucket_checked:
            return
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except ClientError:
            logging.info(f"Bucket '{self.bucket}' introuvable, création.")
            self._client.create_bucket(Bucket=self.bucket)
        self._bucket_checked = True

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        encrypted = encrypt_file_aes256(data, self._key)
        try:
            self._ensure_bucket()
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=encrypted,
                ContentType=content_type,
                Metadata={"encrypted": "true", "algorithm": "AES-256"},
            )
        except (ClientError, BotoCoreError) as e:
            logging.error(f"Échec de l'upload de '{key}' : {e}")
            raise StorageError("Failed to store the image", details={"key": key, "originalError": str(e)}) from e
        logging.info(f"Image chiffrée stockée : {key}")
        return key
