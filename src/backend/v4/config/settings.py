"""
Configuration settings for the cost report validation service.
Handles environment setup and loading of the YAML cost rulebook.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv(override=False)

# settings.py is at: src/backend/v4/config/settings.py
# parents: config -> v4 -> backend -> src -> repo_root
REPO_ROOT = Path(__file__).resolve().parents[4]

DEFAULT_RULEBOOK_PATH = Path("data") / "cost_rulebooks" / "cost_report_rules.yaml"


class RulebookError(Exception):
    """Rulebook missing or not parseable."""

    def __init__(self, message: str, *, path: Path, missing: bool = False):
        super().__init__(message)
        self.path = path
        self.missing = missing


class CostReportConfig:
    """Environment-driven settings."""

    def __init__(self):
        self.rulebook_path = self.resolve_path(
            os.environ.get("COST_RULEBOOK_PATH") or str(DEFAULT_RULEBOOK_PATH)
        )
        self.logging_level = os.environ.get("COST_REPORT_LOGGING_LEVEL", "INFO")
        self.cors_origins = [
            o.strip()
            for o in os.environ.get("COST_REPORT_CORS_ORIGINS", "*").split(",")
            if o.strip()
        ]

    @staticmethod
    def resolve_path(path: str | Path) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = (REPO_ROOT / p).resolve()
        return p


def load_rulebook(path: Path) -> dict[str, Any]:
    """Load and parse the cost rulebook YAML file."""
    if not path.exists():
        raise RulebookError(f"Rulebook file not found: {path}", path=path, missing=True)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("Failed to load rulebook %s: %s", path, e)
        raise RulebookError(f"Failed to parse rulebook YAML: {e}", path=path) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RulebookError("Rulebook YAML must parse to a mapping", path=path)
    return data


config = CostReportConfig()
