from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from report_workflow.errors import DependencyFailure

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _clean_segment(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip())
    return cleaned or "object"


@dataclass(frozen=True)
class ObjectStorageConfig:
    backend: str
    bucket: str
    root: str
    prefix: str
    endpoint: str
    region: str
    access_key: str
    secret_key: str
    force_path_style: bool


class ObjectStorageBackend:
    """Blob store for report attachments.

    ``delete_object`` returns False when the object is already gone; callers
    treat that the same as a successful delete. ``get_object`` raises
    ``FileNotFoundError`` for a missing object.
    """

    backend_name = "base"

    def put_object(
        self,
        *,
        report_id: str,
        object_id: str,
        filename: str,
        content_bytes: bytes,
        content_type: str | None = None,
    ) -> str:
        raise NotImplementedError

    def get_object(self, *, storage_uri: str) -> bytes:
        raise NotImplementedError

    def delete_object(self, *, storage_uri: str) -> bool:
        raise NotImplementedError

    def _build_key(self, *, prefix: str, report_id: str, object_id: str, filename: str) -> str:
        base = f"reports/{_clean_segment(report_id)}/{_clean_segment(object_id)}/{_clean_segment(filename)}"
        if prefix:
            return f"{prefix}/{base}"
        return base


class LocalObjectStorage(ObjectStorageBackend):
    backend_name = "local"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        self._bucket = config.bucket
        self._root = Path(config.root)
        self._prefix = config.prefix.strip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    def put_object(
        self,
        *,
        report_id: str,
        object_id: str,
        filename: str,
        content_bytes: bytes,
        content_type: str | None = None,
    ) -> str:
        key = self._build_key(prefix=self._prefix, report_id=report_id, object_id=object_id, filename=filename)
        path = self._path_for_key(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content_bytes)
            self._write_meta(
                path,
                {
                    "content_type": content_type or "application/octet-stream",
                    "created_at": _now_iso(),
                },
            )
        except OSError as exc:
            logger.warning("blob_store_failure op=put key=%s error=%s", key, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment upload failed") from exc
        return self._uri_for_key(key)

    def get_object(self, *, storage_uri: str) -> bytes:
        path = self._path_for_uri(storage_uri)
        if not path.exists():
            raise FileNotFoundError(storage_uri)
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("blob_store_failure op=get uri=%s error=%s", storage_uri, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment download failed") from exc

    def delete_object(self, *, storage_uri: str) -> bool:
        path = self._path_for_uri(storage_uri)
        if not path.exists():
            return False
        try:
            path.unlink()
            meta = self._meta_path(path)
            if meta.exists():
                meta.unlink()
        except OSError as exc:
            logger.warning("blob_store_failure op=delete uri=%s error=%s", storage_uri, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment removal failed") from exc
        return True

    def _uri_for_key(self, key: str) -> str:
        return f"object://{self.backend_name}/{self._bucket}/{key}"

    def _path_for_key(self, key: str) -> Path:
        return self._root / self._bucket / key

    def _path_for_uri(self, storage_uri: str) -> Path:
        parsed = _parse_storage_uri(storage_uri)
        if parsed["backend"] != self.backend_name:
            raise ValueError("storage backend mismatch")
        return self._root / parsed["bucket"] / parsed["key"]

    def _meta_path(self, path: Path) -> Path:
        return Path(f"{path}.meta.json")

    def _write_meta(self, path: Path, meta: dict[str, Any]) -> None:
        meta_path = self._meta_path(path)
        meta_path.write_text(json.dumps(meta, ensure_ascii=True, sort_keys=True), encoding="utf-8")


class S3ObjectStorage(ObjectStorageBackend):
    backend_name = "s3"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        try:
            import boto3  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("boto3 is required for s3 object storage backend") from exc
        self._bucket = config.bucket
        self._prefix = config.prefix.strip("/")
        session = boto3.session.Session(
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region or None,
        )
        self._client = session.client(
            "s3",
            endpoint_url=config.endpoint or None,
            config=boto3.session.Config(s3={"addressing_style": "path" if config.force_path_style else "auto"}),
        )

    def put_object(
        self,
        *,
        report_id: str,
        object_id: str,
        filename: str,
        content_bytes: bytes,
        content_type: str | None = None,
    ) -> str:
        key = self._build_key(prefix=self._prefix, report_id=report_id, object_id=object_id, filename=filename)
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content_bytes,
                ContentType=content_type or "application/octet-stream",
            )
        except Exception as exc:
            logger.warning("blob_store_failure op=put key=%s error=%s", key, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment upload failed") from exc
        return self._uri_for_key(key)

    def get_object(self, *, storage_uri: str) -> bytes:
        parsed = _parse_storage_uri(storage_uri)
        try:
            response = self._client.get_object(Bucket=parsed["bucket"], Key=parsed["key"])
            return response["Body"].read()
        except Exception as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                raise FileNotFoundError(storage_uri) from exc
            logger.warning("blob_store_failure op=get uri=%s error=%s", storage_uri, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment download failed") from exc

    def delete_object(self, *, storage_uri: str) -> bool:
        parsed = _parse_storage_uri(storage_uri)
        try:
            self._client.delete_object(Bucket=parsed["bucket"], Key=parsed["key"])
        except Exception as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                return False
            logger.warning("blob_store_failure op=delete uri=%s error=%s", storage_uri, type(exc).__name__)
            raise DependencyFailure(dependency="blob_store", message="attachment removal failed") from exc
        return True

    def _uri_for_key(self, key: str) -> str:
        return f"object://{self.backend_name}/{self._bucket}/{key}"


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def _parse_storage_uri(uri: str) -> dict[str, str]:
    if not uri.startswith("object://"):
        raise ValueError("invalid storage uri")
    raw = uri[len("object://") :]
    parts = raw.split("/", 2)
    if len(parts) != 3:
        raise ValueError("invalid storage uri")
    return {"backend": parts[0], "bucket": parts[1], "key": parts[2]}


def create_object_storage_from_env(environ: Mapping[str, str] | None = None) -> ObjectStorageBackend:
    env = os.environ if environ is None else environ
    backend = env.get("REPORT_OBJECT_STORAGE_BACKEND", "local").strip().lower() or "local"
    config = ObjectStorageConfig(
        backend=backend,
        bucket=env.get("OBJECT_STORAGE_BUCKET", "attachments").strip() or "attachments",
        root=env.get("OBJECT_STORAGE_ROOT", "/tmp/report-attachments").strip() or "/tmp/report-attachments",
        prefix=env.get("OBJECT_STORAGE_PREFIX", "").strip(),
        endpoint=env.get("OBJECT_STORAGE_ENDPOINT", "").strip(),
        region=env.get("OBJECT_STORAGE_REGION", "").strip(),
        access_key=env.get("OBJECT_STORAGE_ACCESS_KEY", "").strip(),
        secret_key=env.get("OBJECT_STORAGE_SECRET_KEY", "").strip(),
        force_path_style=env.get("OBJECT_STORAGE_FORCE_PATH_STYLE", "true").strip().lower()
        not in {"0", "false", "no", "off"},
    )
    if config.backend == "s3":
        return S3ObjectStorage(config=config)
    return LocalObjectStorage(config=config)
