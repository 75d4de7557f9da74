"""Sync configuration.

Collects the per-stage config models into one settings object. Defaults live
with each stage; any of them can be overridden through ``RECON_*`` environment
variables, read from the process environment or a ``.env`` file at the
repository root.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from budget.rules import CROSS_CHECK_TOLERANCE
from inference.models import InferenceConfig
from location_resolver.db import DEFAULT_DB_PATH
from location_resolver.models import MatchingConfig
from reconciliation.models import ReportConfig
from storage.artifacts import DEFAULT_ARTIFACT_ROOT


ENV_PATH = Path(__file__).resolve().parents[1] / ".env"

TASK_QUEUE_DEFAULT = "ledger-sync"


class SyncSettings(BaseModel):
    """Settings for one sync run."""
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    cross_check_tolerance: Decimal = CROSS_CHECK_TOLERANCE
    production_id: str = "default"
    alias_db_path: Path = DEFAULT_DB_PATH
    alias_json_path: Optional[Path] = None
    artifact_root: Path = DEFAULT_ARTIFACT_ROOT
    task_queue: str = TASK_QUEUE_DEFAULT
    log_json: bool = False
    log_level: str = "INFO"


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env: Optional[Mapping[str, str]] = None, env_file: Optional[Path] = ENV_PATH) -> SyncSettings:
    """Build settings from defaults plus environment overrides.

    Args:
        env: Environment to read; defaults to ``os.environ`` after loading
            ``env_file``
        env_file: Optional dotenv file (ignored when ``env`` is given)

    Raises:
        ValueError: If an override cannot be parsed
    """
    if env is None:
        if env_file is not None and Path(env_file).exists():
            load_dotenv(env_file)
        env = os.environ

    def get(name: str) -> Optional[str]:
        value = env.get(name)
        return value if value not in (None, "") else None

    matching = {}
    if get("RECON_FUZZY_THRESHOLD"):
        matching["fuzzy_threshold"] = float(get("RECON_FUZZY_THRESHOLD"))
    if get("RECON_ALIAS_SIMILARITY_THRESHOLD"):
        matching["alias_similarity_threshold"] = float(get("RECON_ALIAS_SIMILARITY_THRESHOLD"))

    inference = {}
    if get("RECON_MAX_RANGE_DAYS"):
        inference["max_range_days"] = int(get("RECON_MAX_RANGE_DAYS"))
    if get("RECON_VENDOR_MEDIUM_RATIO"):
        inference["vendor_medium_ratio"] = float(get("RECON_VENDOR_MEDIUM_RATIO"))
    if get("RECON_VENDOR_LOW_RATIO"):
        inference["vendor_low_ratio"] = float(get("RECON_VENDOR_LOW_RATIO"))

    settings = {
        "matching": MatchingConfig(**matching),
        "inference": InferenceConfig(**inference),
    }
    if get("RECON_CROSS_CHECK_TOLERANCE"):
        settings["cross_check_tolerance"] = Decimal(get("RECON_CROSS_CHECK_TOLERANCE"))
    if get("RECON_PRODUCTION_ID"):
        settings["production_id"] = get("RECON_PRODUCTION_ID")
    if get("RECON_ALIAS_DB"):
        settings["alias_db_path"] = Path(get("RECON_ALIAS_DB"))
    if get("RECON_ALIAS_JSON"):
        settings["alias_json_path"] = Path(get("RECON_ALIAS_JSON"))
    if get("RECON_ARTIFACT_ROOT"):
        settings["artifact_root"] = Path(get("RECON_ARTIFACT_ROOT"))
    if get("TEMPORAL_TASK_QUEUE"):
        settings["task_queue"] = get("TEMPORAL_TASK_QUEUE")
    if get("RECON_LOG_JSON"):
        settings["log_json"] = _flag(get("RECON_LOG_JSON"))
    if get("RECON_LOG_LEVEL"):
        settings["log_level"] = get("RECON_LOG_LEVEL").upper()

    return SyncSettings(**settings)
