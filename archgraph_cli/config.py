"""Configuration paths and analysis defaults for ArchGraph."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

BASE_DIR = Path(os.environ.get("ARCHGRAPH_HOME", str(Path.home() / ".archgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_INCLUDE: List[str] = [
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.rs",
    "**/*.py",
    "**/package.json",
    "**/Cargo.toml",
    "**/pyproject.toml",
]

DEFAULT_EXCLUDE: List[str] = [
    "**/node_modules/**",
    "**/target/**",
    "**/.git/**",
    "**/dist/**",
    "**/__pycache__/**",
    "**/venv/**",
    "**/.venv/**",
    "**/build/**",
    "**/*.min.js",
    "**/*.bundle.js",
]

DEFAULT_MAX_DEPTH = 20

# Security pipeline defaults (overridable via the [security] section)
SECURITY_DEFAULTS: Dict[str, Any] = {
    "enable_ast_filtering": True,
    "enable_ai_validation": True,
    "ast_confidence_to_filter": 0.85,
    "ai_confidence_to_filter": 0.80,
    "max_vulns_for_ai_validation": 50,
    "batch_size": 5,
    "rate_limit_ms": 200,
    "timeout": 60.0,
    "temperature": 0.2,
    "max_tokens": 4000,
}

# Architecture defaults (overridable via the [architecture] section)
ARCHITECTURE_DEFAULTS: Dict[str, Any] = {
    "min_confidence": 30,
    "max_flow_depth": 20,
    "ai_batch_size": 10,
    "classifier_ai_weight": 0.6,
    "detector_ai_weight": 0.4,
    "timeout": 60.0,
}

from .config_manager import load_config, load_section  # noqa: E402

_toml_config = load_config()

# LLM provider configuration, loaded from ~/.archgraph/config.toml (set via `archgraph config set-llm`)
LLM_PROVIDER = _toml_config.get("provider", "ollama")
LLM_API_KEY = _toml_config.get("api_key", "")
LLM_MODEL = _toml_config.get("model", "qwen2.5-coder:7b")
LLM_ENDPOINT = _toml_config.get("endpoint", "http://127.0.0.1:11434/api/generate")


def analysis_settings() -> Dict[str, Any]:
    """Scanner settings merged from defaults and the ``[analysis]`` section."""
    section = load_section("analysis")
    return {
        "include": list(section.get("include", DEFAULT_INCLUDE)),
        "exclude": list(section.get("exclude", DEFAULT_EXCLUDE)),
        "max_depth": int(section.get("max_depth", DEFAULT_MAX_DEPTH)),
    }


def security_settings() -> Dict[str, Any]:
    settings = dict(SECURITY_DEFAULTS)
    settings.update(load_section("security"))
    return settings


def architecture_settings() -> Dict[str, Any]:
    settings = dict(ARCHITECTURE_DEFAULTS)
    settings.update(load_section("architecture"))
    return settings
