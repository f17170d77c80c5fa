"""
Dossier Configuration

All settings come from environment variables so tests and deployments can
point the stores at their own directories.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from .dossier_model import DEFAULT_TASK_DUE_DAYS, DEFAULT_TASK_TITLE_PREFIX

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
REPO_ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = Path("data/dossier")
DEFAULT_CATALOG_FILE = REPO_ROOT / "config" / "dossier_templates.yaml"


@dataclass(frozen=True)
class DossierSettings:
    """Runtime settings for the stores, the reconciler and the API."""
    data_dir: Path = DEFAULT_DATA_DIR
    catalog_file: Path = DEFAULT_CATALOG_FILE
    task_due_days: int = DEFAULT_TASK_DUE_DAYS
    task_title_prefix: str = DEFAULT_TASK_TITLE_PREFIX
    log_level: str = "INFO"

    def __post_init__(self):
        if self.task_due_days <= 0:
            raise ValueError(f"task_due_days must be positive, got {self.task_due_days}")

    @property
    def documents_file(self) -> Path:
        return self.data_dir / "documents.json"

    @property
    def links_file(self) -> Path:
        return self.data_dir / "document_links.json"

    @property
    def tasks_file(self) -> Path:
        return self.data_dir / "tasks.json"

    @property
    def audit_file(self) -> Path:
        return self.data_dir / "audit.jsonl"

    @classmethod
    def from_env(cls) -> "DossierSettings":
        return cls(
            data_dir=Path(os.getenv("DOSSIER_DATA_DIR", str(DEFAULT_DATA_DIR))),
            catalog_file=Path(os.getenv("DOSSIER_CATALOG_FILE", str(DEFAULT_CATALOG_FILE))),
            task_due_days=int(os.getenv("DOSSIER_TASK_DUE_DAYS", str(DEFAULT_TASK_DUE_DAYS))),
            task_title_prefix=os.getenv("DOSSIER_TASK_TITLE_PREFIX", DEFAULT_TASK_TITLE_PREFIX),
            log_level=os.getenv("DOSSIER_LOG_LEVEL", "INFO").upper(),
        )
