"""Pytest configuration and fixtures for ArchGraph CLI tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest


@pytest.fixture(autouse=True)
def _mock_local_llm(monkeypatch):
    """Automatically mock LocalLLM in all tests to avoid network connections.

    The default provider probes localhost:11434 and a real request can block
    for the full timeout. The mock reports itself unavailable, so every
    AI-assisted stage falls back to its heuristic result.
    """

    class _MockLocalLLM:
        def __init__(self, **kwargs):
            self.provider_name = kwargs.get("provider", "mock")
            self.model = kwargs.get("model", "mock-model")
            self.timeout = kwargs.get("timeout", 60.0)

        def is_available(self) -> bool:
            return False

        def generate(self, prompt, system=None, **kwargs):
            return None

    monkeypatch.setattr("archgraph_cli.llm.LocalLLM", _MockLocalLLM)
    monkeypatch.setattr("archgraph_cli.cli.LocalLLM", _MockLocalLLM)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Point the TOML config at a throwaway directory."""
    base_dir = tmp_path / "archgraph-home"
    config_file = base_dir / "config.toml"
    monkeypatch.setattr("archgraph_cli.config.BASE_DIR", base_dir)
    monkeypatch.setattr("archgraph_cli.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("archgraph_cli.config_manager.BASE_DIR", base_dir)
    monkeypatch.setattr("archgraph_cli.config_manager.CONFIG_FILE", config_file)
    return config_file


class ScriptedLLM:
    """Stand-in LLM client that answers from a list of canned responses."""

    def __init__(self, responses: Optional[List[Optional[str]]] = None, available: bool = True):
        self.responses = list(responses or [])
        self.available = available
        self.prompts: List[str] = []

    def is_available(self) -> bool:
        return self.available

    def generate(self, prompt, system=None, **kwargs):
        self.prompts.append(prompt)
        if not self.responses:
            return None
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLM]:
    """Factory for LLM doubles with canned responses."""
    return ScriptedLLM


@pytest.fixture
def verdict_json() -> Callable[..., str]:
    """Render an AI validation answer the way a model would."""

    def render(verdict: str, confidence: float = 0.9, reasoning: str = "checked") -> str:
        body = json.dumps({"verdict": verdict, "confidence": confidence, "reasoning": reasoning})
        return f"Here is my assessment:\n{body}\n"

    return render


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: content}`` under a fresh project root."""

    def write(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return write


@pytest.fixture
def mvc_project_path() -> Path:
    """Get path to the sample controller/service/model project."""
    return Path(__file__).parent / "fixtures" / "mvc_project"


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python code for extractor tests."""
    return '''"""Sample module."""
import os
from .models import User, Account as Acct

MAX_RETRIES = 3
_cache = {}


def load_user(user_id: int, strict: bool = False) -> User:
    """Load a user."""
    if strict and user_id < 0:
        raise ValueError("bad id")
    return fetch(user_id)


async def refresh():
    await load_user(1)


class Repository(Base, Mixin):
    """Stores users."""

    def __init__(self, db):
        self.db = db
        self._items = []

    @staticmethod
    def build():
        return Repository(None)

    def _helper(self):
        def inner():
            return 1
        return inner()
'''


@pytest.fixture
def sample_typescript_code() -> str:
    """Sample TypeScript code for extractor tests."""
    return """import React, { useState, useEffect as useEff } from 'react';
import * as path from 'path';
import './styles.css';
const fs = require('fs');

export const API_URL: string = 'http://localhost';

/** Greets a user. */
export async function greet(name: string, title?: string): Promise<string> {
  const message = format(name);
  return await send(message);
}

export const add = (a: number, b: number): number => a + b;

export default class Widget extends Base implements Renderable, Disposable {
  private count: number = 0;
  static readonly label = 'w';

  constructor(private readonly el: HTMLElement) {
    super();
  }

  async render(): Promise<void> {
    if (this.count > 0 && this.el) {
      this.update();
    }
  }
}

export interface Renderable {
  render(): Promise<void>;
}
"""


@pytest.fixture
def sample_rust_code() -> str:
    """Sample Rust code for extractor tests."""
    return """use std::collections::HashMap;
use crate::models::{User, Account};
mod utils;

pub const LIMIT: usize = 10;

/// A keyed store.
#[derive(Debug)]
pub struct Store {
    pub name: String,
    items: Vec<u32>,
}

pub async fn open(path: &str, size: Option<usize>) -> Store {
    helper(path).await
}

fn helper(path: &str) -> Store {
    Store::new(path)
}
"""
