"""Rust extractor: ``use``/``mod`` imports, structs, enums, traits and functions."""

from __future__ import annotations

import re
from typing import List, Optional

from .extractor import (
    LanguageExtractor,
    block_text,
    calculate_complexity,
    clean,
    extract_variable_usages,
    find_block_end,
    line_at,
    sanitize_value,
    split_parameters,
)
from .models import (
    AttributeInfo,
    CallInfo,
    ClassInfo,
    ExportInfo,
    FunctionInfo,
    ImportInfo,
    ParameterInfo,
    VariableInfo,
)

_PUB = r"(?:pub(?:\s*\([^)]+\))?\s+)?"

USE_RE = re.compile(r"\buse\s+((?:crate|super|self|[\w:]+)(?:::\{[^}]+\}|::\w+|::\*)?)\s*;")
MOD_RE = re.compile(r"\bmod\s+(\w+)\s*;")
PUB_RE = re.compile(r"\bpub(?:\s*\([^)]+\))?\s+(?:async\s+)?(?:unsafe\s+)?(fn|struct|enum|trait|type|const|static|mod)\s+(\w+)")
STRUCT_RE = re.compile(_PUB + r"\bstruct\s+(\w+)(?:<[^>]+>)?")
ENUM_RE = re.compile(_PUB + r"\benum\s+(\w+)(?:<[^>]+>)?")
TRAIT_RE = re.compile(_PUB + r"(?:unsafe\s+)?\btrait\s+(\w+)(?:<[^>]+>)?(?:\s*:\s*([\w\s+:<>]+?))?\s*(?:where|\{)")
FN_RE = re.compile(
    _PUB + r"(?:const\s+)?(async\s+)?(?:unsafe\s+)?(?:extern\s+\"\w+\"\s+)?\bfn\s+(\w+)\s*(?:<[^>(]+>)?\s*"
    r"\(([^)]*)\)(?:\s*->\s*([^{;]+))?"
)
CONST_RE = re.compile(_PUB + r"\b(const|static(?:\s+mut)?)\s+(\w+)\s*:\s*([^=]+?)\s*=\s*([^;]+)")
FIELD_RE = re.compile(r"^[ \t]*(pub(?:\s*\([^)]+\))?\s+)?(\w+)\s*:\s*([^,}\n]+)", re.MULTILINE)
PARAM_RE = re.compile(r"(?:mut\s+)?(\w+)\s*:\s*(.+)", re.DOTALL)
CALL_RE = re.compile(r"(?<![\w.])(?:(\w+)::)?(\w+(?:::\w+)*)\s*\(")
ATTRIBUTE_RE = re.compile(r"#\[([^\]]+)\]")

CALL_KEYWORDS = frozenset({"if", "while", "for", "match", "loop", "fn", "let", "const", "return", "Some", "Ok", "Err"})
_SELF_PARAMS = ("self", "&self", "&mut self", "mut self")


class RustExtractor(LanguageExtractor):
    language = "rust"

    def extract_imports(self, content: str) -> List[ImportInfo]:
        imports: List[ImportInfo] = []
        for match in USE_RE.finditer(content):
            full_path = match.group(1)
            grouped = re.search(r"\{([^}]+)\}", full_path)
            if grouped:
                items = [s.strip() for s in grouped.group(1).split(",") if s.strip()]
                module = full_path[: grouped.start()].rstrip(":")
            else:
                items = [full_path.split("::")[-1]]
                module = "::".join(full_path.split("::")[:-1]) or full_path
            imports.append(
                ImportInfo(
                    module=module,
                    items=items,
                    is_wildcard="*" in full_path,
                    line=line_at(content, match.start()),
                )
            )
        for match in MOD_RE.finditer(content):
            imports.append(ImportInfo(module=match.group(1), items=[match.group(1)], line=line_at(content, match.start())))
        imports.sort(key=lambda imp: imp.line)
        return imports

    def extract_exports(self, content: str) -> List[ExportInfo]:
        exports: List[ExportInfo] = []
        for match in PUB_RE.finditer(content):
            keyword = match.group(1)
            if keyword == "fn":
                kind = "function"
            elif keyword in ("struct", "enum", "trait"):
                kind = "class"
            else:
                kind = "variable"
            exports.append(ExportInfo(name=match.group(2), type=kind, line=line_at(content, match.start())))
        return exports

    def extract_classes(self, content: str) -> List[ClassInfo]:
        classes: List[ClassInfo] = []
        for match in STRUCT_RE.finditer(content):
            end_line, body = self._item_body(content, match)
            classes.append(
                ClassInfo(
                    name=match.group(1),
                    type="struct",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=_visibility(match),
                    decorators=self._attributes(content, match.start()),
                    attributes=self._fields(body, line_at(content, match.start())),
                    documentation=self._documentation(content, match.start()),
                )
            )
        for match in ENUM_RE.finditer(content):
            end_line, _ = self._item_body(content, match)
            classes.append(
                ClassInfo(
                    name=match.group(1),
                    type="enum",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=_visibility(match),
                    decorators=self._attributes(content, match.start()),
                    documentation=self._documentation(content, match.start()),
                )
            )
        for match in TRAIT_RE.finditer(content):
            supertraits = [t.strip() for t in (match.group(2) or "").split("+") if t.strip()]
            classes.append(
                ClassInfo(
                    name=match.group(1),
                    type="trait",
                    line=line_at(content, match.start()),
                    end_line=find_block_end(content, match.start()),
                    visibility=_visibility(match),
                    implements=supertraits,
                    documentation=self._documentation(content, match.start()),
                )
            )
        classes.sort(key=lambda cls: cls.line)
        return classes

    def extract_functions(self, content: str) -> List[FunctionInfo]:
        functions: List[FunctionInfo] = []
        for match in FN_RE.finditer(content):
            end_line, body = self._item_body(content, match, from_end=True)
            body_line = line_at(content, match.end())
            functions.append(
                FunctionInfo(
                    name=match.group(2),
                    type="function",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=_visibility(match),
                    is_async=bool(match.group(1)),
                    parameters=self._parameters(match.group(3)),
                    return_type=clean(match.group(4)),
                    decorators=self._attributes(content, match.start()),
                    documentation=self._documentation(content, match.start()),
                    calls=self._calls(body, body_line),
                    variable_usages=extract_variable_usages(body, body_line),
                    complexity=calculate_complexity(body),
                )
            )
        return functions

    def extract_variables(self, content: str) -> List[VariableInfo]:
        variables: List[VariableInfo] = []
        for match in CONST_RE.finditer(content):
            keyword = match.group(1)
            is_const = keyword == "const"
            variables.append(
                VariableInfo(
                    name=match.group(2),
                    type="constant" if is_const else "variable",
                    data_type=clean(match.group(3)),
                    line=line_at(content, match.start()),
                    visibility=_visibility(match),
                    is_const=is_const,
                    is_mutable="mut" in keyword,
                    scope="global" if keyword.startswith("static") else "module",
                    initial_value=sanitize_value(match.group(4).strip()),
                )
            )
        return variables

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _item_body(content: str, match: re.Match, from_end: bool = False):
        """End line and body text of an item; unit items and declarations end on ``;``."""
        search_from = match.end() if from_end else match.start()
        brace = content.find("{", search_from)
        semi = content.find(";", search_from)
        if semi != -1 and (brace == -1 or semi < brace):
            line = line_at(content, semi)
            return line, ""
        end_line = find_block_end(content, search_from)
        return end_line, block_text(content, search_from, end_line)

    @staticmethod
    def _fields(body: str, base_line: int) -> List[AttributeInfo]:
        attributes: List[AttributeInfo] = []
        open_brace = body.find("{")
        if open_brace == -1:
            return attributes
        for match in FIELD_RE.finditer(body, open_brace + 1):
            attributes.append(
                AttributeInfo(
                    name=match.group(2),
                    type=match.group(3).strip(),
                    visibility="public" if match.group(1) else "private",
                    line=base_line + body.count("\n", 0, match.start(2)),
                )
            )
        return attributes

    @staticmethod
    def _parameters(params: Optional[str]) -> List[ParameterInfo]:
        result: List[ParameterInfo] = []
        for part in split_parameters(params or ""):
            trimmed = part.strip()
            if not trimmed or trimmed in _SELF_PARAMS or trimmed.startswith(("&'", "self:")):
                continue
            match = PARAM_RE.match(trimmed)
            if match:
                data_type = match.group(2).strip()
                result.append(
                    ParameterInfo(name=match.group(1), type=data_type, is_optional=data_type.startswith("Option<"))
                )
        return result

    @staticmethod
    def _calls(body: str, base_line: int) -> List[CallInfo]:
        calls: List[CallInfo] = []
        for match in CALL_RE.finditer(body):
            name = match.group(2)
            if name in CALL_KEYWORDS:
                continue
            if body[max(0, match.start() - 3) : match.start()].endswith("fn "):
                continue
            line_end = body.find("\n", match.end())
            tail = body[match.end() : line_end if line_end != -1 else len(body)]
            calls.append(
                CallInfo(
                    target=f"{match.group(1)}::{name}" if match.group(1) else name,
                    line=base_line + body.count("\n", 0, match.start()),
                    is_await=".await" in tail,
                )
            )
        return calls

    @staticmethod
    def _attributes(content: str, position: int) -> List[str]:
        attributes: List[str] = []
        preceding = content[max(0, position - 500) : position].split("\n")[:-1]
        for line in reversed(preceding):
            stripped = line.strip()
            if stripped.startswith("#["):
                attributes[0:0] = ATTRIBUTE_RE.findall(stripped)
            elif stripped and not stripped.startswith("//"):
                break
        return attributes

    @staticmethod
    def _documentation(content: str, position: int) -> Optional[str]:
        preceding = content[max(0, position - 1000) : position].split("\n")[:-1]
        doc_lines: List[str] = []
        for line in reversed(preceding):
            stripped = line.strip()
            if stripped.startswith("///"):
                doc_lines.insert(0, re.sub(r"^\s*///\s?", "", line))
            elif stripped and not stripped.startswith("#["):
                break
        return "\n".join(doc_lines) if doc_lines else None


def _visibility(match: re.Match) -> str:
    return "public" if match.group(0).lstrip().startswith("pub") else "private"
