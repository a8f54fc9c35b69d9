"""Tests for the heuristic per-language extractors."""

import pytest

from archgraph_cli.extract_python import PythonExtractor
from archgraph_cli.extract_rust import RustExtractor
from archgraph_cli.extract_typescript import TypeScriptExtractor
from archgraph_cli.extractor import (
    calculate_complexity,
    detect_language,
    find_block_end,
    find_python_block_end,
    split_parameters,
)
from archgraph_cli.models import FileInfo


def _extract(extractor, path: str, content: str) -> FileInfo:
    info = FileInfo(path=path, name=path.split("/")[-1], extension="." + path.split(".")[-1], language=extractor.language, layer="data")
    return extractor.extract(info, content)


class TestHelpers:
    """Tests for the shared structural heuristics."""

    @pytest.mark.parametrize(
        "path, language",
        [
            ("src/app.ts", "typescript"),
            ("src/App.TSX", "typescript"),
            ("lib/index.mjs", "javascript"),
            ("src-tauri/src/main.rs", "rust"),
            ("tool.py", "python"),
            ("Cargo.toml", "toml"),
            ("Makefile", "unknown"),
            ("notes.txt", "unknown"),
        ],
    )
    def test_detect_language(self, path, language):
        assert detect_language(path) == language

    def test_block_end_is_matching_brace(self):
        content = "function a() {\n  if (x) {\n    y();\n  }\n}\nfunction b() {}\n"
        assert find_block_end(content, 0) == 5

    def test_python_block_end_skips_blank_lines(self):
        content = "def a():\n    x = 1\n\n    return x\n\ndef b():\n    pass\n"
        assert find_python_block_end(content, 0) == 4

    def test_split_parameters_respects_nesting(self):
        parts = split_parameters("a: Map<string, number>, b = f(1, 2), c")
        assert [p.strip() for p in parts] == ["a: Map<string, number>", "b = f(1, 2)", "c"]

    def test_complexity_counts_decision_points(self):
        assert calculate_complexity("return 1") == 1
        assert calculate_complexity("if (a && b) { for (;;) {} }") == 4


class TestPythonExtractor:
    """Tests for the indentation-based Python extractor."""

    @pytest.fixture
    def info(self, sample_python_code: str) -> FileInfo:
        return _extract(PythonExtractor(), "pkg/service.py", sample_python_code)

    def test_imports(self, info: FileInfo):
        modules = [imp.module for imp in info.imports]
        assert modules == ["os", ".models"]
        assert info.imports[1].items == ["User", "Account"]

    def test_top_level_functions_only(self, info: FileInfo):
        names = [fn.name for fn in info.functions]
        assert names == ["load_user", "refresh"]

    def test_function_details(self, info: FileInfo):
        load_user = info.functions[0]
        assert load_user.return_type == "User"
        assert load_user.documentation == "Load a user."
        assert [p.name for p in load_user.parameters] == ["user_id", "strict"]
        assert load_user.parameters[1].is_optional
        assert load_user.parameters[1].default_value == "False"
        assert load_user.complexity == 2
        assert {call.target for call in load_user.calls} == {"ValueError", "fetch"}

    def test_async_function_awaits(self, info: FileInfo):
        refresh = info.functions[1]
        assert refresh.is_async
        assert refresh.calls[0].target == "load_user"
        assert refresh.calls[0].is_await

    def test_class_and_methods(self, info: FileInfo):
        assert len(info.classes) == 1
        repo = info.classes[0]
        assert repo.extends == "Base"
        assert repo.implements == ["Mixin"]
        assert repo.documentation == "Stores users."
        assert [m.name for m in repo.methods] == ["__init__", "build", "_helper"]
        assert repo.methods[0].type == "constructor"
        assert repo.methods[1].is_static
        assert repo.methods[1].decorators == ["staticmethod"]
        assert repo.methods[2].visibility == "private"
        assert all(m.parent_class == "Repository" for m in repo.methods)
        assert [a.name for a in repo.attributes] == ["db", "_items"]

    def test_module_variables(self, info: FileInfo):
        variables = {v.name: v for v in info.variables}
        assert set(variables) == {"MAX_RETRIES", "_cache"}
        assert variables["MAX_RETRIES"].is_const
        assert variables["_cache"].visibility == "private"

    def test_line_ranges_are_ordered(self, info: FileInfo):
        for fn in info.functions + [m for c in info.classes for m in c.methods]:
            assert 1 <= fn.line <= fn.end_line

    def test_all_exports(self):
        info = _extract(PythonExtractor(), "m.py", "__all__ = ['a', \"b\"]\n")
        assert [e.name for e in info.exports] == ["a", "b"]


class TestTypeScriptExtractor:
    """Tests for the brace-based TypeScript/JavaScript extractor."""

    @pytest.fixture
    def info(self, sample_typescript_code: str) -> FileInfo:
        return _extract(TypeScriptExtractor(), "src/widget.ts", sample_typescript_code)

    def test_imports(self, info: FileInfo):
        modules = [imp.module for imp in info.imports]
        assert modules == ["react", "path", "./styles.css", "fs"]
        react = info.imports[0]
        assert react.is_default
        assert react.items == ["React", "useState", "useEffect"]
        assert info.imports[1].is_wildcard

    def test_exports(self, info: FileInfo):
        by_name = {e.name: e.type for e in info.exports}
        assert by_name["API_URL"] == "variable"
        assert by_name["greet"] == "function"
        assert by_name["Renderable"] == "type"
        assert by_name["Widget"] == "default"

    def test_functions(self, info: FileInfo):
        functions = {fn.name: fn for fn in info.functions}
        greet = functions["greet"]
        assert greet.is_async
        assert greet.return_type == "Promise<string>"
        assert greet.documentation == "Greets a user."
        assert [p.name for p in greet.parameters] == ["name", "title"]
        assert greet.parameters[1].is_optional
        assert any(call.target == "send" and call.is_await for call in greet.calls)

        add = functions["add"]
        assert add.type == "arrow"
        assert add.return_type == "number"

    def test_class(self, info: FileInfo):
        classes = {c.name: c for c in info.classes}
        widget = classes["Widget"]
        assert widget.extends == "Base"
        assert widget.implements == ["Renderable", "Disposable"]
        attributes = {a.name: a for a in widget.attributes}
        assert attributes["count"].visibility == "private"
        assert attributes["count"].default_value == "0"
        assert attributes["label"].is_static and attributes["label"].is_readonly

        methods = {m.name: m for m in widget.methods}
        assert set(methods) == {"constructor", "render"}
        assert methods["constructor"].type == "constructor"
        assert [p.name for p in methods["constructor"].parameters] == ["el"]
        assert methods["render"].is_async
        assert methods["render"].complexity == 3
        assert classes["Renderable"].type == "interface"

    def test_module_variables_skip_functions(self, info: FileInfo):
        assert [v.name for v in info.variables] == ["API_URL"]
        assert info.variables[0].data_type == "string"


class TestRustExtractor:
    """Tests for the brace-based Rust extractor."""

    @pytest.fixture
    def info(self, sample_rust_code: str) -> FileInfo:
        return _extract(RustExtractor(), "src/store.rs", sample_rust_code)

    def test_use_and_mod(self, info: FileInfo):
        modules = [imp.module for imp in info.imports]
        assert modules == ["std::collections", "crate::models", "utils"]
        assert info.imports[1].items == ["User", "Account"]

    def test_struct_fields(self, info: FileInfo):
        store = info.classes[0]
        assert store.name == "Store"
        assert store.type == "struct"
        assert store.documentation == "A keyed store."
        assert store.decorators == ["derive(Debug)"]
        assert [(a.name, a.visibility) for a in store.attributes] == [("name", "public"), ("items", "private")]

    def test_functions(self, info: FileInfo):
        functions = {fn.name: fn for fn in info.functions}
        assert functions["open"].is_async
        assert functions["open"].visibility == "public"
        assert functions["open"].parameters[1].is_optional
        assert functions["open"].calls[0].is_await
        assert functions["helper"].visibility == "private"
        assert functions["helper"].calls[0].target == "Store::new"

    def test_constants(self, info: FileInfo):
        assert [(v.name, v.is_const) for v in info.variables] == [("LIMIT", True)]
