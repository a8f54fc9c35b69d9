"""Source tree walker: glob filtering, language/layer tagging and per-file extraction."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import pathspec

from .config import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, DEFAULT_MAX_DEPTH
from .extract_python import PythonExtractor
from .extract_rust import RustExtractor
from .extract_typescript import TypeScriptExtractor
from .extractor import LanguageExtractor, detect_language
from .models import FileInfo

logger = logging.getLogger(__name__)

_TYPESCRIPT = TypeScriptExtractor()

EXTRACTORS: Dict[str, LanguageExtractor] = {
    "typescript": _TYPESCRIPT,
    "javascript": _TYPESCRIPT,
    "python": PythonExtractor(),
    "rust": RustExtractor(),
}


class InvalidRootPathError(ValueError):
    """The analysis root does not exist or is not a directory."""


def get_extractor(language: str) -> Optional[LanguageExtractor]:
    return EXTRACTORS.get(language)


def validate_root(root: Path | str) -> Path:
    """Resolve ``root`` or raise before any analysis work starts."""
    path = Path(root).expanduser()
    if not path.exists():
        raise InvalidRootPathError(f"Path does not exist: {path}")
    if not path.is_dir():
        raise InvalidRootPathError(f"Path is not a directory: {path}")
    return path.resolve()


def detect_layer(relative_path: str) -> str:
    """Deployment layer from the path prefix."""
    if relative_path.startswith("src-tauri/"):
        return "backend"
    if relative_path.startswith("src/"):
        return "frontend"
    if relative_path.startswith("sidecar/"):
        return "sidecar"
    return "data"


def compile_globs(patterns: Iterable[str]) -> pathspec.PathSpec:
    """Gitignore-style matcher for include/exclude globs (``**`` spans directories)."""
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


@dataclass
class ScanResult:
    """Everything one scan produced; contents are kept for this run only."""

    root: Path
    files: List[FileInfo] = field(default_factory=list)
    contents: Dict[str, str] = field(default_factory=dict)
    skipped_files: List[str] = field(default_factory=list)


class FileScanner:
    """Walk a source tree and extract one ``FileInfo`` per matched file."""

    def __init__(
        self,
        root: Path | str,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.root = validate_root(root)
        self.include = list(include or DEFAULT_INCLUDE)
        self.exclude = list(exclude or DEFAULT_EXCLUDE)
        self.max_depth = max_depth
        self._include_spec = compile_globs(self.include)
        self._exclude_spec = compile_globs(self.exclude)

    def iter_paths(self) -> Iterator[str]:
        """Yield matched POSIX paths relative to the root, in sorted order."""
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            depth = 0 if not rel_dir else rel_dir.count("/") + 1

            kept = []
            for name in sorted(dirnames):
                child = f"{rel_dir}/{name}" if rel_dir else name
                if depth + 1 > self.max_depth or self._exclude_spec.match_file(child + "/"):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self._include_spec.match_file(rel_path) and not self._exclude_spec.match_file(rel_path):
                    yield rel_path

    def scan(self) -> ScanResult:
        result = ScanResult(root=self.root)
        for rel_path in self.iter_paths():
            info = self.scan_file(rel_path, result)
            if info is not None:
                result.files.append(info)
        logger.info("Scanned %d files (%d skipped) under %s", len(result.files), len(result.skipped_files), self.root)
        return result

    def scan_file(self, rel_path: str, result: ScanResult) -> Optional[FileInfo]:
        """Read and extract one file; failures are logged and counted, never raised."""
        abs_path = self.root / rel_path
        try:
            content = abs_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read %s: %s", rel_path, exc)
            result.skipped_files.append(rel_path)
            return None

        name = abs_path.name
        language = detect_language(name)
        info = FileInfo(
            path=rel_path,
            name=name,
            extension=abs_path.suffix,
            language=language,
            layer=detect_layer(rel_path),
            size=len(content.encode("utf-8")),
            line_count=content.count("\n") + 1 if content else 0,
        )

        extractor = get_extractor(language)
        if extractor is not None:
            try:
                extractor.extract(info, content)
            except Exception as exc:  # extraction is best-effort per file
                logger.warning("Failed to parse %s: %s", rel_path, exc)
                result.skipped_files.append(rel_path)
                return None

        result.contents[rel_path] = content
        return info
