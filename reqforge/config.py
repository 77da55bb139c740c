"""Centralized config loading — read once at import time."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env from project root (parent of reqforge/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_config = yaml.safe_load(CONFIG_PATH.read_text())

# Prompt versioning can be pinned per deployment without editing the YAML.
if os.getenv("PROMPT_VERSION"):
    _config["prompt_version"] = os.environ["PROMPT_VERSION"]
if os.getenv("PROMPT_MODE"):
    _config["prompt_mode"] = os.environ["PROMPT_MODE"]


def get_config() -> dict:
    """Return the loaded config dictionary."""
    return _config
