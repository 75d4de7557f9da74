"""Artifact storage for parsed ledgers and reconciliation reports.

A sync run writes its artifacts under ``<root>/<sync_run_id>/<name>.json``.
Activities exchange DataReferences (path plus SHA256) instead of payloads, and
every read re-hashes the file so a stale or edited artifact is caught before
it reaches the reconciliation.
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Type, TypeVar

from pydantic import BaseModel

from models.refs import DataReference


DEFAULT_ARTIFACT_ROOT = Path(__file__).resolve().parents[1] / "artifacts"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def artifact_path(root: Path, sync_run_id: str, name: str) -> Path:
    """Path of an artifact within a sync run's directory."""
    return Path(root) / sync_run_id / f"{name}.json"


def put_json(obj: Any, path: Path, ensure_parent: bool = True) -> DataReference:
    """Write ``obj`` as JSON and return its reference.

    Pydantic models are dumped in JSON mode (Decimals and dates become
    strings); other objects fall back to ``str`` for unknown types.
    """
    path = Path(path)
    if ensure_parent:
        path.parent.mkdir(parents=True, exist_ok=True)

    payload = obj.model_dump(mode="json", by_alias=True) if isinstance(obj, BaseModel) else obj
    data = json.dumps(payload, indent=2, default=str).encode("utf-8")
    path.write_bytes(data)

    return DataReference(
        storage_uri=str(path.absolute()),
        content_hash=_sha256(data),
        size_bytes=len(data),
        stored_at=datetime.utcnow(),
    )


def _read_verified(ref: DataReference, validate_hash: bool) -> bytes:
    path = Path(ref.storage_uri)
    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {ref.storage_uri}")
    data = path.read_bytes()
    if validate_hash:
        digest = _sha256(data)
        if digest != ref.content_hash:
            raise ValueError(f"Artifact {path.name} changed since it was stored ({digest} != {ref.content_hash})")
    return data


def get_json(ref: DataReference, validate_hash: bool = True) -> Any:
    """Read a JSON artifact.

    Raises:
        FileNotFoundError: The artifact file is gone
        ValueError: The content no longer matches the stored hash
    """
    return json.loads(_read_verified(ref, validate_hash).decode("utf-8"))


def get_model(ref: DataReference, model: Type[ModelT], validate_hash: bool = True) -> ModelT:
    """Read a JSON artifact and validate it into ``model``."""
    return model.model_validate(get_json(ref, validate_hash))
