"""TypeScript / JavaScript extractor: brace-delimited blocks and regex pattern tables."""

from __future__ import annotations

import re
from typing import List, Optional

from .extractor import (
    LanguageExtractor,
    block_text,
    brace_depth,
    calculate_complexity,
    clean,
    extract_variable_usages,
    find_arrow_function_end,
    find_block_end,
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

ES_IMPORT_RE = re.compile(
    r"import\s+(?:type\s+)?(?:(\*\s+as\s+\w+)|(?:\{([^}]+)\})|(\w+))?\s*"
    r"(?:,\s*(?:\{([^}]+)\}|(\w+)))?\s*from\s+['\"]([^'\"]+)['\"]"
)
SIDE_EFFECT_IMPORT_RE = re.compile(r"^\s*import\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
REQUIRE_RE = re.compile(r"(?:const|let|var)\s+(?:\{([^}]+)\}|(\w+))\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)")

NAMED_EXPORT_RE = re.compile(r"export\s+(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?(const|let|var|function|class|interface|type|enum)\s+(\w+)")
DEFAULT_EXPORT_RE = re.compile(r"export\s+default\s+(?:class\s+|function\s+|async\s+function\s+)?(\w+)?")
BRACE_EXPORT_RE = re.compile(r"export\s+(?:type\s+)?\{([^}]+)\}(?:\s*from\s+['\"]([^'\"]+)['\"])?")

CLASS_RE = re.compile(
    r"(?:export\s+)?(?:default\s+)?(?:abstract\s+)?\bclass\s+(\w+)(?:<[^>{]+>)?"
    r"(?:\s+extends\s+([\w.]+)(?:<[^>{]+>)?)?(?:\s+implements\s+([\w,\s.]+?))?\s*\{"
)
INTERFACE_RE = re.compile(r"(?:export\s+)?\binterface\s+(\w+)(?:<[^>{]+>)?(?:\s+extends\s+([\w,\s.]+?))?\s*\{")
ENUM_RE = re.compile(r"(?:export\s+)?(?:const\s+)?\benum\s+(\w+)\s*\{")
TYPE_ALIAS_RE = re.compile(r"(?:export\s+)?\btype\s+(\w+)(?:<[^>=]+>)?\s*=(?!=)")

FUNCTION_RE = re.compile(
    r"(?:export\s+)?(?:default\s+)?(?:(async)\s+)?\bfunction\s*(\*?)\s*(\w+)\s*(?:<[^>(]+>)?\s*"
    r"\(([^)]*)\)(?:\s*:\s*([^{]+))?"
)
ARROW_RE = re.compile(
    r"(?:export\s+)?\b(?:const|let)\s+(\w+)\s*(?::\s*[^=;]+)?=\s*(async\s*)?"
    r"(?:\(([^)]*)\)|(\w+))\s*(?::\s*([^=;{]+?))?\s*=>"
)
VARIABLE_RE = re.compile(r"(?:export\s+)?\b(const|let|var)\s+(\w+)(?:\s*:\s*([^=;\n]+))?\s*=(?!=)\s*([^;\n]+)")

PROPERTY_RE = re.compile(
    r"^[ \t]*(?:(private|public|protected)\s+)?(?:(static)\s+)?(?:(readonly)\s+)?"
    r"#?(\w+)[?!]?(?:\s*:\s*([^=;\n]+))?(?:\s*=\s*([^;\n]+))?;",
    re.MULTILINE,
)
METHOD_RE = re.compile(
    r"^[ \t]*(?:@\w+(?:\([^)]*\))?\s*)*(?:(private|public|protected)\s+)?(?:(static)\s+)?(?:(async)\s+)?"
    r"(?:(get|set)\s+)?(\*?)\s*#?(\w+)\s*(?:<[^>(]+>)?\s*\(([^)]*)\)(?:\s*:\s*([^{;]+))?\s*\{",
    re.MULTILINE,
)
PARAM_RE = re.compile(r"(?:\.\.\.)?(\w+)\s*(\?)?(?:\s*:\s*([^=]+))?(?:\s*=\s*(.+))?", re.DOTALL)
CALL_RE = re.compile(r"(?<![\w.$])(?:(await)\s+)?(\w+(?:\.\w+)*)\s*\(")
DECORATOR_RE = re.compile(r"^\s*@(\w+)")
JSDOC_RE = re.compile(r"/\*\*((?:[^*]|\*(?!/))*)\*/\s*$")

KEYWORDS = frozenset({
    "if", "else", "while", "for", "switch", "catch", "function", "return", "throw",
    "new", "typeof", "await", "super", "import", "do", "try", "with", "void", "delete",
    "in", "of", "yield",
})


class TypeScriptExtractor(LanguageExtractor):
    language = "typescript"

    # -- imports / exports ---------------------------------------------

    def extract_imports(self, content: str) -> List[ImportInfo]:
        imports: List[ImportInfo] = []
        for match in ES_IMPORT_RE.finditer(content):
            named = [s.strip().split(" as ")[0].strip() for s in (match.group(2) or match.group(4) or "").split(",")]
            named = [n for n in named if n]
            default = match.group(3) or match.group(5) or ""
            imports.append(
                ImportInfo(
                    module=match.group(6),
                    items=[default] + named if default else named,
                    is_default=bool(default),
                    is_wildcard=bool(match.group(1)),
                    line=line_at(content, match.start()),
                )
            )
        for match in SIDE_EFFECT_IMPORT_RE.finditer(content):
            imports.append(ImportInfo(module=match.group(1), line=line_at(content, match.start())))
        for match in REQUIRE_RE.finditer(content):
            items = [s.strip() for s in match.group(1).split(",")] if match.group(1) else [match.group(2)]
            imports.append(
                ImportInfo(
                    module=match.group(3),
                    items=items,
                    is_default=bool(match.group(2)),
                    line=line_at(content, match.start()),
                )
            )
        imports.sort(key=lambda imp: imp.line)
        return imports

    def extract_exports(self, content: str) -> List[ExportInfo]:
        exports: List[ExportInfo] = []
        for match in NAMED_EXPORT_RE.finditer(content):
            keyword = match.group(1)
            if keyword in ("const", "let", "var"):
                kind = "variable"
            elif keyword in ("function", "class"):
                kind = keyword
            else:
                kind = "type"
            exports.append(ExportInfo(name=match.group(2), type=kind, line=line_at(content, match.start())))

        default = DEFAULT_EXPORT_RE.search(content)
        if default:
            exports.append(
                ExportInfo(name=default.group(1) or "default", type="default", line=line_at(content, default.start()))
            )

        for match in BRACE_EXPORT_RE.finditer(content):
            line = line_at(content, match.start())
            kind = "reexport" if match.group(2) else "variable"
            for item in match.group(1).split(","):
                name = item.strip().split(" as ")[0].strip()
                if name:
                    exports.append(ExportInfo(name=name, type=kind, line=line))
        return exports

    # -- classes --------------------------------------------------------

    def extract_classes(self, content: str) -> List[ClassInfo]:
        classes: List[ClassInfo] = []
        for match in CLASS_RE.finditer(content):
            name = match.group(1)
            end_line = find_block_end(content, match.start())
            open_brace = match.end() - 1
            body_end = position_at_line(content, end_line)
            classes.append(
                ClassInfo(
                    name=name,
                    type="class",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=self._visibility(content, match),
                    extends=match.group(2),
                    implements=_split_names(match.group(3)),
                    decorators=self._decorators(content, match.start()),
                    attributes=self._properties(content, open_brace, body_end),
                    methods=self._methods(content, open_brace, body_end, name),
                    documentation=self._documentation(content, match.start()),
                )
            )

        for match in INTERFACE_RE.finditer(content):
            classes.append(
                ClassInfo(
                    name=match.group(1),
                    type="interface",
                    line=line_at(content, match.start()),
                    end_line=find_block_end(content, match.start()),
                    visibility="public",
                    implements=_split_names(match.group(2)),
                    documentation=self._documentation(content, match.start()),
                )
            )

        for match in ENUM_RE.finditer(content):
            classes.append(
                ClassInfo(
                    name=match.group(1),
                    type="enum",
                    line=line_at(content, match.start()),
                    end_line=find_block_end(content, match.start()),
                    visibility=self._visibility(content, match),
                    documentation=self._documentation(content, match.start()),
                )
            )

        for match in TYPE_ALIAS_RE.finditer(content):
            line = line_at(content, match.start())
            classes.append(
                ClassInfo(name=match.group(1), type="type_alias", line=line, end_line=line, visibility="public")
            )

        classes.sort(key=lambda cls: cls.line)
        return classes

    def _properties(self, content: str, open_brace: int, end: int) -> List[AttributeInfo]:
        attributes: List[AttributeInfo] = []
        for match in PROPERTY_RE.finditer(content, open_brace + 1, end):
            name = match.group(4)
            if name in KEYWORDS or name in ("return", "break", "continue"):
                continue
            # Only direct members of the class body
            if brace_depth(content, open_brace, match.start()) != 1:
                continue
            attributes.append(
                AttributeInfo(
                    name=name,
                    type=clean(match.group(5)),
                    visibility=match.group(1) or "public",
                    is_static=bool(match.group(2)),
                    is_readonly=bool(match.group(3)),
                    default_value=clean(match.group(6)),
                    line=line_at(content, match.start()),
                )
            )
        return attributes

    def _methods(self, content: str, open_brace: int, end: int, class_name: str) -> List[FunctionInfo]:
        methods: List[FunctionInfo] = []
        for match in METHOD_RE.finditer(content, open_brace + 1, end):
            name = match.group(6)
            if name in KEYWORDS:
                continue
            if brace_depth(content, open_brace, match.start()) != 1:
                continue
            start = match.start()
            end_line = find_block_end(content, start)
            body = block_text(content, match.end() - 1, end_line)
            body_line = line_at(content, match.end() - 1)
            methods.append(
                FunctionInfo(
                    name=name,
                    type="constructor" if name == "constructor" else "method",
                    line=line_at(content, match.start(6)),
                    end_line=end_line,
                    visibility=match.group(1) or "public",
                    is_async=bool(match.group(3)),
                    is_static=bool(match.group(2)),
                    is_generator=match.group(5) == "*",
                    parameters=self._parameters(match.group(7)),
                    return_type=clean(match.group(8)),
                    decorators=re.findall(r"@(\w+)", match.group(0)),
                    documentation=self._documentation(content, start),
                    calls=self._calls(body, body_line),
                    variable_usages=extract_variable_usages(body, body_line),
                    complexity=calculate_complexity(body),
                    parent_class=class_name,
                )
            )
        return methods

    # -- functions ------------------------------------------------------

    def extract_functions(self, content: str) -> List[FunctionInfo]:
        functions: List[FunctionInfo] = []
        for match in FUNCTION_RE.finditer(content):
            end_line = find_block_end(content, match.start())
            body = block_text(content, match.end(), end_line)
            body_line = line_at(content, match.end())
            functions.append(
                FunctionInfo(
                    name=match.group(3),
                    type="function",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=self._visibility(content, match),
                    is_async=bool(match.group(1)),
                    is_generator=match.group(2) == "*",
                    parameters=self._parameters(match.group(4)),
                    return_type=clean(match.group(5)),
                    decorators=self._decorators(content, match.start()),
                    documentation=self._documentation(content, match.start()),
                    calls=self._calls(body, body_line),
                    variable_usages=extract_variable_usages(body, body_line),
                    complexity=calculate_complexity(body),
                )
            )

        for match in ARROW_RE.finditer(content):
            end_line = find_arrow_function_end(content, match.start())
            body = block_text(content, match.end(), end_line)
            body_line = line_at(content, match.end())
            params = match.group(3) if match.group(3) is not None else match.group(4)
            functions.append(
                FunctionInfo(
                    name=match.group(1),
                    type="arrow",
                    line=line_at(content, match.start()),
                    end_line=end_line,
                    visibility=self._visibility(content, match),
                    is_async=bool(match.group(2)),
                    parameters=self._parameters(params),
                    return_type=clean(match.group(5)),
                    documentation=self._documentation(content, match.start()),
                    calls=self._calls(body, body_line),
                    variable_usages=extract_variable_usages(body, body_line),
                    complexity=calculate_complexity(body),
                )
            )
        functions.sort(key=lambda fn: fn.line)
        return functions

    # -- variables ------------------------------------------------------

    def extract_variables(self, content: str) -> List[VariableInfo]:
        variables: List[VariableInfo] = []
        depth = 0
        last = 0
        for match in VARIABLE_RE.finditer(content):
            depth += brace_depth(content, last, match.start())
            last = match.start()
            if depth > 0:
                continue
            value = match.group(4).strip()
            # Arrow functions are extracted as functions
            if "=>" in value or value.startswith(("function", "async function", "require(")):
                continue
            keyword = match.group(1)
            variables.append(
                VariableInfo(
                    name=match.group(2),
                    type="constant" if keyword == "const" else "variable",
                    data_type=clean(match.group(3)),
                    line=line_at(content, match.start()),
                    visibility=self._visibility(content, match),
                    is_const=keyword == "const",
                    is_mutable=keyword != "const",
                    scope="module",
                    initial_value=sanitize_value(value),
                )
            )
        return variables

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _visibility(content: str, match: re.Match) -> str:
        window = content[max(0, match.start() - 20) : match.start()] + match.group(0)[:20]
        return "public" if "export" in window else "private"

    @staticmethod
    def _parameters(params: Optional[str]) -> List[ParameterInfo]:
        result: List[ParameterInfo] = []
        for part in split_parameters(params or ""):
            trimmed = part.strip()
            if not trimmed or trimmed.startswith(("{", "[")):
                continue
            trimmed = re.sub(r"^(?:(?:private|public|protected|readonly)\s+)+", "", trimmed)
            match = PARAM_RE.match(trimmed)
            if not match:
                continue
            default = clean(match.group(4))
            result.append(
                ParameterInfo(
                    name=match.group(1),
                    type=clean(match.group(3)),
                    default_value=default,
                    is_optional=bool(match.group(2)) or default is not None,
                    is_rest=trimmed.startswith("..."),
                )
            )
        return result

    @staticmethod
    def _calls(body: str, base_line: int) -> List[CallInfo]:
        calls: List[CallInfo] = []
        for match in CALL_RE.finditer(body):
            target = match.group(2)
            if target in KEYWORDS:
                continue
            if body[max(0, match.start() - 9) : match.start()].endswith("function "):
                continue
            calls.append(
                CallInfo(
                    target=target,
                    line=base_line + body.count("\n", 0, match.start()),
                    is_await=bool(match.group(1)),
                )
            )
        return calls

    @staticmethod
    def _decorators(content: str, position: int) -> List[str]:
        decorators: List[str] = []
        preceding = content[max(0, position - 500) : position].split("\n")[:-1]
        for line in reversed(preceding):
            match = DECORATOR_RE.match(line)
            if match:
                decorators.insert(0, match.group(1))
            elif line.strip() and not line.strip().startswith(("//", "*", "/*")):
                break
        return decorators

    @staticmethod
    def _documentation(content: str, position: int) -> Optional[str]:
        preceding = content[max(0, position - 1000) : position]
        match = JSDOC_RE.search(preceding)
        if not match:
            return None
        text = re.sub(r"^\s*\*\s?", "", match.group(1), flags=re.MULTILINE)
        return text.strip() or None


def _split_names(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]
