import logging
import shutil
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings
from app.core.errors import StorageError

logger = logging.getLogger(__name__)

_StoreErrors = (BotoCoreError, ClientError)


def make_s3_client(settings: Settings):
    cfg = BotoConfig(
        signature_version="s3v4",
        s3={"addressing_style": "virtual"},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT,
        region_name=settings.S3_REGION,
        aws_access_key_id=settings.S3_KEY,
        aws_secret_access_key=settings.S3_SECRET,
        config=cfg,
        use_ssl=settings.S3_ENDPOINT.startswith("https"),
    )


def presign_get_url(s3, *, bucket: str, key: str, ttl: int) -> str:
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=ttl,
    )


class ObjectStore:
    """
    Accès au bucket : put / get / copy / delete + URLs GET signées.
    Toute erreur S3 remonte en StorageError (fatale pour la tâche en cours).
    """

    def __init__(self, client, *, bucket: str, presign_ttl: int = 3600):
        self.client = client
        self.bucket = bucket
        self.presign_ttl = presign_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStore":
        return cls(
            make_s3_client(settings),
            bucket=settings.S3_BUCKET or "",
            presign_ttl=settings.PRESIGN_TTL_SECONDS,
        )

    def put(self, key: str, body: Union[bytes, str], *, content_type: Optional[str] = None) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)
        except _StoreErrors as e:
            raise StorageError(f"Object store put failed for {key}: {e}") from e
        logger.info("[s3] put key=%s bytes=%d", key, len(body))

    def get(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except _StoreErrors as e:
            raise StorageError(f"Object store get failed for {key}: {e}") from e

    def download_to(self, key: str, path: Union[str, Path]) -> None:
        """Copie l'objet dans un fichier local sans le charger entièrement en mémoire."""
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            with open(path, "wb") as out:
                shutil.copyfileobj(obj["Body"], out, length=1024 * 1024)
        except _StoreErrors as e:
            raise StorageError(f"Object store download failed for {key}: {e}") from e

    def copy(self, src_key: str, dst_key: str) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": src_key},
                Key=dst_key,
            )
        except _StoreErrors as e:
            raise StorageError(f"Object store copy failed {src_key} -> {dst_key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except _StoreErrors as e:
            raise StorageError(f"Object store delete failed for {key}: {e}") from e

    def relocate(self, src_key: str, dst_key: str) -> None:
        """Déplacement = copie puis suppression de la source (pas de double copie vivante)."""
        self.copy(src_key, dst_key)
        self.delete(src_key)
        logger.info("[s3] moved %s -> %s", src_key, dst_key)

    def signed_url(self, key: str, *, ttl: Optional[int] = None) -> str:
        try:
            return presign_get_url(self.client, bucket=self.bucket, key=key, ttl=ttl or self.presign_ttl)
        except _StoreErrors as e:
            raise StorageError(f"Cannot sign URL for {key}: {e}") from e
