"""Python extractor: indentation-delimited blocks and regex pattern tables."""

from __future__ import annotations

import re
from typing import List, Optional

from .extractor import (
    LanguageExtractor,
    block_text,
    calculate_complexity,
    clean,
    extract_variable_usages,
    find_python_block_end,
    leading_indent,
    line_at,
    position_at_line,
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

FROM_IMPORT_RE = re.compile(r"^[ \t]*from\s+([\w.]+)\s+import\s+\(?([^#\n)]+)", re.MULTILINE)
IMPORT_RE = re.compile(r"^[ \t]*import\s+([\w., ]+)", re.MULTILINE)
ALL_RE = re.compile(r"__all__\s*=\s*[\[(]([^\])]+)[\])]")
CLASS_RE = re.compile(r"^([ \t]*)class\s+(\w+)(?:\(([^)]*)\))?\s*:", re.MULTILINE)
DEF_RE = re.compile(
    r"^([ \t]*)(async\s+)?def\s+(\w+)\s*\(([^)]*)\)(?:\s*->\s*([^:]+))?:",
    re.MULTILINE,
)
ATTRIBUTE_RE = re.compile(r"self\.(\w+)\s*(?::\s*([^=\n]+))?\s*=(?!=)")
MODULE_VAR_RE = re.compile(r"^(\w+)(?:\s*:\s*([^=]+))?\s*=(?!=)\s*(.+)$")
DECORATOR_RE = re.compile(r"^\s*@(\w+(?:\.\w+)*)")
DOCSTRING_RE = re.compile(r"\s*\n\s*[rRuU]?(?:'''|\"\"\")(.*?)(?:'''|\"\"\")", re.DOTALL)
PARAM_RE = re.compile(r"(?:\*\*?)?(\w+)(?:\s*:\s*([^=]+))?(?:\s*=\s*(.+))?", re.DOTALL)
CALL_RE = re.compile(r"(?<![\w.])(?:(await)\s+)?(\w+(?:\.\w+)*)\s*\(")

CALL_KEYWORDS = frozenset({
    "if", "elif", "while", "for", "with", "def", "class", "return", "raise",
    "except", "and", "or", "not", "in", "is", "lambda", "assert", "yield", "del",
    "print", "super",
})
_DECLARATION_WORDS = ("def ", "class ")


class PythonExtractor(LanguageExtractor):
    language = "python"

    # -- imports / exports ---------------------------------------------

    def extract_imports(self, content: str) -> List[ImportInfo]:
        imports: List[ImportInfo] = []
        for match in FROM_IMPORT_RE.finditer(content):
            items = [s.strip().split(" as ")[0].strip() for s in match.group(2).split(",")]
            items = [item for item in items if item and item != "\\"]
            imports.append(
                ImportInfo(
                    module=match.group(1),
                    items=items,
                    is_wildcard="*" in items,
                    line=line_at(content, match.start()),
                )
            )
        for match in IMPORT_RE.finditer(content):
            line = line_at(content, match.start())
            for module in match.group(1).split(","):
                module = module.strip().split(" as ")[0].strip()
                if module:
                    imports.append(ImportInfo(module=module, items=[module], is_default=True, line=line))
        imports.sort(key=lambda imp: imp.line)
        return imports

    def extract_exports(self, content: str) -> List[ExportInfo]:
        match = ALL_RE.search(content)
        if not match:
            return []
        line = line_at(content, match.start())
        return [
            ExportInfo(name=name, type="variable", line=line)
            for name in re.findall(r"['\"](\w+)['\"]", match.group(1))
        ]

    # -- classes --------------------------------------------------------

    def extract_classes(self, content: str) -> List[ClassInfo]:
        classes: List[ClassInfo] = []
        for match in CLASS_RE.finditer(content):
            name = match.group(2)
            end_line = find_python_block_end(content, match.start())
            body_end = position_at_line(content, end_line)
            bases = [b.strip() for b in (match.group(3) or "").split(",") if b.strip()]
            bases = [b for b in bases if not b.startswith("metaclass")]
            extends = bases[0] if bases and bases[0] != "object" else None

            classes.append(
                ClassInfo(
                    name=name,
                    type="class",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility="private" if name.startswith("_") else "public",
                    extends=extends,
                    implements=bases[1:],
                    decorators=self._decorators(content, match.start()),
                    attributes=self._attributes(content, match.end(), body_end),
                    methods=self._methods(content, match, body_end, name),
                    documentation=self._docstring(content, match.end()),
                )
            )
        return classes

    def _attributes(self, content: str, start: int, end: int) -> List[AttributeInfo]:
        attributes: List[AttributeInfo] = []
        seen = set()
        for match in ATTRIBUTE_RE.finditer(content, start, end):
            name = match.group(1)
            if name in seen:
                continue
            seen.add(name)
            attributes.append(
                AttributeInfo(
                    name=name,
                    type=clean(match.group(2)),
                    visibility="private" if name.startswith("_") else "public",
                    line=line_at(content, match.start()),
                )
            )
        return attributes

    def _methods(self, content: str, class_match: re.Match, end: int, class_name: str) -> List[FunctionInfo]:
        class_indent = len(class_match.group(1))
        member_indent: Optional[int] = None
        methods: List[FunctionInfo] = []
        for match in DEF_RE.finditer(content, class_match.end(), end):
            indent = len(match.group(1))
            if indent <= class_indent:
                continue
            if member_indent is None:
                member_indent = self._body_indent(content, class_match.end(), class_indent)
            # Nested functions inside methods are not methods
            if indent != member_indent:
                continue
            name = match.group(3)
            func = self._function(content, match, "method")
            func.type = "constructor" if name == "__init__" else "method"
            func.visibility = "private" if name.startswith("_") and not name.startswith("__") else "public"
            func.is_static = "staticmethod" in func.decorators or "classmethod" in func.decorators
            func.parent_class = class_name
            methods.append(func)
        return methods

    @staticmethod
    def _body_indent(content: str, start: int, class_indent: int) -> int:
        for line in content[start:].split("\n")[1:]:
            if line.strip() and not line.strip().startswith("#"):
                return max(leading_indent(line), class_indent + 1)
        return class_indent + 1

    # -- functions ------------------------------------------------------

    def extract_functions(self, content: str) -> List[FunctionInfo]:
        return [
            self._function(content, match, "function")
            for match in DEF_RE.finditer(content)
            if not match.group(1)
        ]

    def _function(self, content: str, match: re.Match, kind: str) -> FunctionInfo:
        name = match.group(3)
        start = match.start() + len(match.group(1))
        end_line = find_python_block_end(content, start)
        body = block_text(content, match.end(), end_line)
        body_line = line_at(content, match.end())
        return FunctionInfo(
            name=name,
            type=kind,
            line=line_at(content, start),
            end_line=end_line,
            visibility="private" if name.startswith("_") else "public",
            is_async=bool(match.group(2)),
            is_generator=re.search(r"\byield\b", body) is not None,
            parameters=self._parameters(match.group(4)),
            return_type=clean(match.group(5)),
            decorators=self._decorators(content, start),
            documentation=self._docstring(content, match.end()),
            calls=self._calls(body, body_line),
            variable_usages=extract_variable_usages(body, body_line),
            complexity=calculate_complexity(body),
        )

    @staticmethod
    def _parameters(params: str) -> List[ParameterInfo]:
        result: List[ParameterInfo] = []
        for part in split_parameters(params or ""):
            trimmed = part.strip()
            if not trimmed or trimmed in ("self", "cls", "*", "/"):
                continue
            match = PARAM_RE.match(trimmed)
            if not match:
                continue
            default = clean(match.group(3))
            result.append(
                ParameterInfo(
                    name=match.group(1),
                    type=clean(match.group(2)),
                    default_value=default,
                    is_optional=default is not None,
                    is_rest=trimmed.startswith("*"),
                )
            )
        return result

    @staticmethod
    def _calls(body: str, base_line: int) -> List[CallInfo]:
        calls: List[CallInfo] = []
        for match in CALL_RE.finditer(body):
            target = match.group(2)
            if target in CALL_KEYWORDS:
                continue
            prefix = body[max(0, match.start() - 6) : match.start()]
            if prefix.endswith(_DECLARATION_WORDS):
                continue
            calls.append(
                CallInfo(
                    target=target,
                    line=base_line + body.count("\n", 0, match.start()),
                    is_await=bool(match.group(1)),
                )
            )
        return calls

    # -- variables ------------------------------------------------------

    def extract_variables(self, content: str) -> List[VariableInfo]:
        variables: List[VariableInfo] = []
        in_string = False
        for index, line in enumerate(content.split("\n")):
            # Skip module-level triple-quoted text
            if line.count('"""') % 2 == 1 or line.count("'''") % 2 == 1:
                in_string = not in_string
                continue
            if in_string or not line or line[0].isspace():
                continue
            if line.startswith(("def ", "class ", "import ", "from ", "async ", "@", "#")):
                continue
            match = MODULE_VAR_RE.match(line)
            if not match:
                continue
            name = match.group(1)
            is_const = name == name.upper()
            variables.append(
                VariableInfo(
                    name=name,
                    type="constant" if is_const else "variable",
                    data_type=clean(match.group(2)),
                    line=index + 1,
                    visibility="private" if name.startswith("_") else "public",
                    is_const=is_const,
                    is_mutable=not is_const,
                    scope="module",
                    initial_value=sanitize_value(match.group(3).strip()),
                )
            )
        return variables

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _decorators(content: str, position: int) -> List[str]:
        decorators: List[str] = []
        preceding = content[max(0, position - 500) : position].split("\n")[:-1]
        for line in reversed(preceding):
            match = DECORATOR_RE.match(line)
            if match:
                decorators.insert(0, match.group(1))
            elif line.strip() and not line.strip().startswith("#"):
                break
        return decorators

    @staticmethod
    def _docstring(content: str, header_end: int) -> Optional[str]:
        match = DOCSTRING_RE.match(content, header_end)
        return match.group(1).strip() if match else None
