"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from archgraph_cli import __version__
from archgraph_cli.cli import app

runner = CliRunner()


class TestVersion:
    """Tests for the global --version flag."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"ArchGraph CLI v{__version__}" in result.stdout


class TestAnalyzeCommand:
    """Tests for 'archgraph analyze'."""

    def test_analyze_project(self, mvc_project_path: Path, temp_dir: Path):
        """Analyze the fixture and export both formats."""
        json_out = temp_dir / "graph.json"
        dot_out = temp_dir / "graph.dot"
        result = runner.invoke(app, ["analyze", str(mvc_project_path), "--json", str(json_out), "--dot", str(dot_out)])

        assert result.exit_code == 0
        assert "mvc_project" in result.stdout
        assert "No structural issues found." in result.stdout

        data = json.loads(json_out.read_text())
        assert data["stats"]["total_files"] == 3
        assert dot_out.read_text().startswith('digraph "mvc_project"')

    def test_analyze_with_include(self, make_project, temp_dir: Path):
        root = make_project({"a.py": "def run():\n    pass\n", "b.ts": "export const x = 1;\n"})
        json_out = temp_dir / "out.json"
        result = runner.invoke(app, ["analyze", str(root), "--include", "**/*.py", "--json", str(json_out)])

        assert result.exit_code == 0
        assert json.loads(json_out.read_text())["stats"]["by_language"] == {"python": 1}

    def test_analyze_nonexistent_path(self):
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])

        assert result.exit_code == 1
        assert "/nonexistent/path" in result.stdout


class TestSecurityCommand:
    """Tests for 'archgraph security'."""

    def test_security_without_ai(self, make_project, temp_dir: Path):
        root = make_project({
            "app.js": 'function get(req, res) {\n  db.execute("SELECT * FROM t WHERE id=" + req.query.id);\n}\n',
            "safe.js": 'function get(req, res) {\n  db.execute("SELECT * FROM t WHERE id=?", [req.query.id]);\n}\n',
        })
        json_out = temp_dir / "security.json"
        result = runner.invoke(app, ["security", str(root), "--no-ai", "--json", str(json_out)])

        assert result.exit_code == 0
        assert "Security Pipeline" in result.stdout
        assert "AI validation skipped" in result.stdout

        data = json.loads(json_out.read_text())
        assert data["pipeline"]["original_count"] == 2
        assert data["pipeline"]["after_ast_filter"] == 1
        assert data["ai_used"] is False

    def test_no_ast_keeps_everything(self, make_project, temp_dir: Path):
        root = make_project({
            "safe.js": 'function get(req, res) {\n  db.execute("SELECT * FROM t WHERE id=?", [req.query.id]);\n}\n',
        })
        json_out = temp_dir / "security.json"
        result = runner.invoke(app, ["security", str(root), "--no-ai", "--no-ast", "--json", str(json_out)])

        assert result.exit_code == 0
        assert json.loads(json_out.read_text())["pipeline"]["after_ast_filter"] == 1

    def test_clean_project(self, make_project):
        root = make_project({"util.py": "def add(a, b):\n    return a + b\n"})
        result = runner.invoke(app, ["security", str(root)])

        assert result.exit_code == 0
        assert "No vulnerabilities found." in result.stdout


class TestArchitectureCommand:
    """Tests for 'archgraph architecture'."""

    def test_architecture(self, mvc_project_path: Path, temp_dir: Path):
        json_out = temp_dir / "architecture.json"
        result = runner.invoke(app, ["architecture", str(mvc_project_path), "--json", str(json_out)])

        assert result.exit_code == 0
        assert "MVC" in result.stdout

        data = json.loads(json_out.read_text())
        assert data["patterns"][0]["pattern"] == "MVC"
        assert data["classification"]["stats"]["total_files"] == 3
        assert data["flows"]["metrics"]["total_flows"] == 1

    def test_ai_flag_with_unavailable_llm(self, mvc_project_path: Path):
        result = runner.invoke(app, ["architecture", str(mvc_project_path), "--ai"])

        assert result.exit_code == 0
        assert "MVC" in result.stdout

    def test_no_pattern(self, make_project):
        root = make_project({"main.py": "print('hi')\n"})
        result = runner.invoke(app, ["architecture", str(root)])

        assert result.exit_code == 0
        assert "No architecture pattern detected." in result.stdout


class TestConfigCommands:
    """Tests for 'archgraph config'."""

    def test_set_and_show_llm(self):
        result = runner.invoke(app, ["config", "set-llm", "groq", "--api-key", "gsk_abcdefghijkl"])
        assert result.exit_code == 0
        assert "groq" in result.stdout

        result = runner.invoke(app, ["config", "show-llm"])
        assert result.exit_code == 0
        assert "groq" in result.stdout
        assert "gsk_abcdefghijkl" not in result.stdout

    def test_unknown_provider(self):
        result = runner.invoke(app, ["config", "set-llm", "skynet"])
        assert result.exit_code == 1

    def test_unset_llm(self):
        runner.invoke(app, ["config", "set-llm", "openai", "--api-key", "sk-test-key-123"])
        result = runner.invoke(app, ["config", "unset-llm", "--yes"])

        assert result.exit_code == 0
        assert "removed" in result.stdout

    def test_unset_without_config(self):
        result = runner.invoke(app, ["config", "unset-llm", "--yes"])

        assert result.exit_code == 0
        assert "Nothing to unset" in result.stdout

    def test_show_settings(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "[security]" in result.stdout
        assert "ast_confidence_to_filter = 0.85" in result.stdout
