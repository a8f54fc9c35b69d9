"""Configuration manager for ArchGraph CLI using TOML files."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Any, Dict

import toml

from .config import BASE_DIR, CONFIG_FILE

logger = logging.getLogger(__name__)


# Default configurations for each provider
DEFAULT_CONFIGS = {
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key": "",
    },
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "api_key": "",
    },
    "gemini": {
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "google/gemini-2.0-flash-exp:free",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}

SECTIONS = ("llm", "analysis", "security", "architecture")


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Returns:
        Provider settings. Falls back to Ollama defaults if the file
        or the section doesn't exist.
    """
    llm = load_full_config().get("llm")
    if not llm:
        return DEFAULT_CONFIGS["ollama"].copy()
    return dict(llm)


def load_section(name: str) -> Dict[str, Any]:
    """Return one config section as a dict (empty when absent)."""
    section = load_full_config().get(name, {})
    return dict(section) if isinstance(section, dict) else {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration to TOML file.

    Preserves the ``[analysis]``, ``[security]`` and ``[architecture]`` sections.

    Args:
        provider: Provider name (ollama, groq, openai, anthropic, gemini, openrouter)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (for Ollama)

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()

    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint

    return _save_full_config(config)


def clear_llm_config() -> bool:
    """Remove ``[llm]`` section from config, resetting to Ollama defaults."""
    config = load_full_config()
    config.pop("llm", None)
    return _save_full_config(config)


def save_section(name: str, values: Dict[str, Any]) -> bool:
    """Replace one non-LLM section, keeping the others intact."""
    if name not in SECTIONS:
        raise ValueError(f"Unknown config section: {name}")
    config = load_full_config()
    config[name] = dict(values)
    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Get default configuration for a specific provider.

    Args:
        provider: Provider name

    Returns:
        Default configuration dictionary
    """
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["ollama"]).copy()


def validate_ollama_connection(endpoint: str = "http://127.0.0.1:11434", timeout: float = 5.0) -> bool:
    """Check if Ollama is running and accessible.

    Args:
        endpoint: Ollama base URL (a ``/api/generate`` suffix is stripped)
        timeout: Probe timeout in seconds

    Returns:
        True if Ollama is accessible, False otherwise
    """
    base = endpoint.rstrip("/")
    for suffix in ("/api/generate", "/api/chat"):
        if base.endswith(suffix):
            base = base[: -len(suffix)]
    try:
        req = urllib.request.Request(f"{base}/api/tags", method="GET")
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status == 200
    except (urllib.error.URLError, TimeoutError, OSError):
        return False
