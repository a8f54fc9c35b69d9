"""Structural heuristics shared by the per-language extractors.

Nothing here is a real parser. Class and function bodies are delimited by
brace counting (TypeScript, JavaScript, Rust) or indentation comparison
(Python), and everything else is recovered with tagged regular patterns.
Recall is bounded but extraction stays linear in file size and needs no
grammar per language.

All line numbers produced by the extractors are 1-based and absolute
within the file.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import (
    ClassInfo,
    ExportInfo,
    FileInfo,
    FunctionInfo,
    ImportInfo,
    VariableInfo,
    VariableUsage,
)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".rs": "rust",
    ".py": "python",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".html": "html",
    ".css": "css",
    ".toml": "toml",
}

_COMPLEXITY_PATTERNS = [
    re.compile(r"\bif\b"),
    re.compile(r"\belse\s+if\b"),
    re.compile(r"\bwhile\b"),
    re.compile(r"\bfor\b"),
    re.compile(r"\bcase\b"),
    re.compile(r"\bcatch\b"),
    re.compile(r"\?\?"),
    re.compile(r"\|\|"),
    re.compile(r"&&"),
    re.compile(r"\?[^:]"),
]

_IDENTIFIER = re.compile(r"\b([a-zA-Z_]\w*)\b")

USAGE_KEYWORDS = frozenset({
    # JS/TS
    "const", "let", "var", "function", "class", "return", "if", "else", "while",
    "for", "break", "continue", "switch", "case", "default", "try", "catch",
    "finally", "throw", "new", "this", "super", "import", "export", "from",
    "async", "await", "yield", "typeof", "instanceof", "in", "of", "true",
    "false", "null", "undefined", "void", "delete", "interface", "type",
    # Rust
    "fn", "pub", "mod", "use", "struct", "enum", "impl", "trait", "match",
    "loop", "mut", "ref", "move", "self", "Self", "dyn", "where",
    # Python
    "def", "and", "or", "not", "is", "None", "True", "False", "pass",
    "with", "as", "assert", "lambda", "global", "nonlocal", "raise", "except",
})


def detect_language(path: str) -> str:
    """Map a file name to a language tag (``unknown`` when unmapped)."""
    lowered = path.lower()
    dot = lowered.rfind(".")
    if dot == -1:
        return "unknown"
    return LANGUAGE_MAP.get(lowered[dot:], "unknown")


def line_at(content: str, index: int) -> int:
    """1-based line number of character offset ``index``."""
    return content.count("\n", 0, max(0, index)) + 1


def position_at_line(content: str, line_number: int) -> int:
    """Offset of the first character after the first ``line_number`` lines."""
    if line_number <= 0:
        return 0
    pos = -1
    for _ in range(line_number):
        pos = content.find("\n", pos + 1)
        if pos == -1:
            return len(content)
    return pos + 1


def find_block_end(content: str, start: int) -> int:
    """Line of the brace closing the first block opened at or after ``start``."""
    depth = 0
    started = False
    line_number = line_at(content, start)
    for index in range(start, len(content)):
        char = content[index]
        if char == "\n":
            line_number += 1
        elif char == "{":
            depth += 1
            started = True
        elif char == "}":
            depth -= 1
            if started and depth == 0:
                return line_number
    return line_number


def find_arrow_function_end(content: str, start: int) -> int:
    """Last line of an arrow function whose declaration begins at ``start``.

    Block bodies end at their closing brace; expression bodies end at the
    first ``;``, ``,`` or newline outside any bracket.
    """
    arrow = content.find("=>", start)
    if arrow == -1:
        return line_at(content, start)
    if content[arrow + 2 :].lstrip().startswith("{"):
        return find_block_end(content, arrow + 2)

    depth = 0
    line_number = line_at(content, arrow)
    for index in range(arrow + 2, len(content)):
        char = content[index]
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char in ";,\n" and depth <= 0:
            return line_number
        if char == "\n":
            line_number += 1
    return line_number


def leading_indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def find_python_block_end(content: str, start: int) -> int:
    """Last non-blank line of the indented block whose header is at ``start``."""
    lines = content.split("\n")
    start_line = line_at(content, start) - 1
    start_indent = leading_indent(lines[start_line])
    last = start_line
    for index in range(start_line + 1, len(lines)):
        line = lines[index]
        if not line.strip():
            continue
        if leading_indent(line) <= start_indent:
            break
        last = index
    return last + 1


def block_text(content: str, start: int, end_line: int) -> str:
    """Source from ``start`` through the end of ``end_line``."""
    return content[start : position_at_line(content, end_line)]


def split_parameters(params: str) -> List[str]:
    """Split a parameter list on top-level commas."""
    result: List[str] = []
    current = ""
    depth = 0
    for char in params:
        if char in "(<[{":
            depth += 1
        elif char in ")>]}":
            depth -= 1
        elif char == "," and depth == 0:
            result.append(current)
            current = ""
            continue
        current += char
    if current:
        result.append(current)
    return result


def sanitize_value(value: str) -> str:
    """Truncate long initial values for storage."""
    if len(value) > 100:
        return value[:97] + "..."
    return value


def calculate_complexity(body: str) -> int:
    """Cyclomatic complexity: one plus the number of decision points."""
    complexity = 1
    for pattern in _COMPLEXITY_PATTERNS:
        complexity += len(pattern.findall(body))
    return complexity


def extract_variable_usages(body: str, base_line: int = 1) -> List[VariableUsage]:
    """Every identifier occurrence in ``body``, tagged read or write.

    ``base_line`` is the file line of the first character of ``body``.
    """
    usages: List[VariableUsage] = []
    for match in _IDENTIFIER.finditer(body):
        name = match.group(1)
        if name in USAGE_KEYWORDS:
            continue
        after = body[match.end() : match.end() + 3].strip()
        is_write = after.startswith("=") and not after.startswith("==") and not after.startswith("=>")
        usages.append(
            VariableUsage(
                name=name,
                line=base_line + body.count("\n", 0, match.start()),
                operation="write" if is_write else "read",
            )
        )
    return usages


def brace_depth(content: str, start: int, end: int) -> int:
    """Net ``{`` minus ``}`` between two offsets."""
    segment = content[start:end]
    return segment.count("{") - segment.count("}")


def clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ===================================================================
# Abstract extractor interface
# ===================================================================

class LanguageExtractor(ABC):
    """Pattern-table extractor for one language family."""

    language = "unknown"

    def extract(self, info: FileInfo, content: str) -> FileInfo:
        """Fill ``info`` with the symbols recovered from ``content``."""
        info.imports = self.extract_imports(content)
        info.exports = self.extract_exports(content)
        info.classes = self.extract_classes(content)
        info.functions = self.extract_functions(content)
        info.variables = self.extract_variables(content)
        return info

    @abstractmethod
    def extract_imports(self, content: str) -> List[ImportInfo]:
        ...

    @abstractmethod
    def extract_exports(self, content: str) -> List[ExportInfo]:
        ...

    @abstractmethod
    def extract_classes(self, content: str) -> List[ClassInfo]:
        ...

    @abstractmethod
    def extract_functions(self, content: str) -> List[FunctionInfo]:
        ...

    @abstractmethod
    def extract_variables(self, content: str) -> List[VariableInfo]:
        ...
