"""Detection tables and small helpers shared by the security stages.

Tables are ordered tuples of ``(tag, matcher)`` pairs evaluated in
priority order; the first matching entry wins where a single answer is
needed.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import List, NamedTuple, Optional, Tuple

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3, "info": 4}
CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}

# Attacker-controlled input origins: (substring, source kind)
TAINT_SOURCES: Tuple[Tuple[str, str], ...] = (
    ("ctx.request.body", "request.body"),
    ("req.body", "request.body"),
    ("req.query", "request.query"),
    ("req.params", "request.params"),
    ("req.headers", "request.headers"),
    ("request.body", "request.body"),
    ("request.query", "request.query"),
    ("request.params", "request.params"),
    ("request.headers", "request.headers"),
    ("ctx.query", "request.query"),
    ("ctx.params", "request.params"),
    ("process.argv", "process.argv"),
    ("process.env", "env"),
    ("Bun.argv", "process.argv"),
    ("Bun.env", "env"),
    ("Deno.args", "process.argv"),
    ("Deno.env", "env"),
    ("request.args", "request.query"),
    ("request.form", "request.body"),
    ("request.json", "request.body"),
    ("request.data", "request.body"),
    ("request.files", "request.body"),
    ("sys.argv", "process.argv"),
    ("os.environ", "env"),
    ("input()", "stdin"),
    ("std::env::args", "process.argv"),
    ("std::env::var", "env"),
    ("std::io::stdin", "stdin"),
    ("r.URL.Query()", "request.query"),
    ("r.FormValue", "request.body"),
    ("os.Args", "process.argv"),
    ("os.Getenv", "env"),
)


class Sink(NamedTuple):
    name: str
    sink_type: str
    pattern: "re.Pattern[str]"


def _call(name: str, method: bool = True) -> "re.Pattern[str]":
    """Call-site matcher; ``method`` also accepts a ``receiver.`` prefix."""
    prefix = r"(?:(?<=\.)|(?<![\w$.]))" if method else r"(?<![\w$.])"
    return re.compile(prefix + re.escape(name) + r"\s*\(")


def _assign(name: str) -> "re.Pattern[str]":
    return re.compile(r"\." + re.escape(name) + r"\s*\+?=(?!=)")


# Dangerous operations, most specific first
DANGEROUS_SINKS: Tuple[Sink, ...] = (
    Sink("prisma.$queryRaw", "sql_query", re.compile(r"prisma\.\$queryRaw")),
    Sink("prisma.$executeRaw", "sql_query", re.compile(r"prisma\.\$executeRaw")),
    Sink("sequelize.query", "sql_query", _call("sequelize.query", method=False)),
    Sink("knex.raw", "sql_query", _call("knex.raw", method=False)),
    Sink("sqlx::query", "sql_query", re.compile(r"sqlx::query(?:_as)?!?\s*\(")),
    Sink("execute", "sql_query", _call("execute")),
    Sink("executemany", "sql_query", _call("executemany")),
    Sink("query", "sql_query", _call("query")),
    Sink("raw", "sql_query", re.compile(r"\.raw\s*\(")),
    Sink("rawQuery", "sql_query", _call("rawQuery")),
    Sink("child_process.exec", "command_exec", _call("child_process.exec", method=False)),
    Sink("subprocess", "command_exec", re.compile(r"\bsubprocess\.(?:run|Popen|call|check_call|check_output)\s*\(")),
    Sink("os.system", "command_exec", _call("os.system", method=False)),
    Sink("os.popen", "command_exec", _call("os.popen", method=False)),
    Sink("execSync", "command_exec", _call("execSync")),
    Sink("spawnSync", "command_exec", _call("spawnSync")),
    Sink("spawn", "command_exec", _call("spawn")),
    Sink("exec", "command_exec", _call("exec", method=False)),
    Sink("Bun.spawn", "command_exec", _call("Bun.spawn", method=False)),
    Sink("std::process::Command", "command_exec", re.compile(r"\bCommand::new\s*\(")),
    Sink("readFileSync", "file_operation", _call("readFileSync")),
    Sink("writeFileSync", "file_operation", _call("writeFileSync")),
    Sink("readFile", "file_operation", _call("readFile")),
    Sink("writeFile", "file_operation", _call("writeFile")),
    Sink("fs.unlink", "file_operation", re.compile(r"\bfs\.(?:unlink|rmdir|rm)(?:Sync)?\s*\(")),
    Sink("open", "file_operation", _call("open", method=False)),
    Sink("os.remove", "file_operation", _call("os.remove", method=False)),
    Sink("shutil.rmtree", "file_operation", _call("shutil.rmtree", method=False)),
    Sink("innerHTML", "html_injection", _assign("innerHTML")),
    Sink("outerHTML", "html_injection", _assign("outerHTML")),
    Sink("insertAdjacentHTML", "html_injection", _call("insertAdjacentHTML")),
    Sink("document.write", "html_injection", _call("document.write", method=False)),
    Sink("dangerouslySetInnerHTML", "html_injection", re.compile(r"dangerouslySetInnerHTML")),
    Sink("v-html", "html_injection", re.compile(r"\bv-html\s*=")),
    Sink("render_template_string", "html_injection", _call("render_template_string")),
    Sink("Markup", "html_injection", _call("Markup", method=False)),
    Sink("fetch", "url_fetch", _call("fetch", method=False)),
    Sink("axios", "url_fetch", re.compile(r"(?<![\w$.])axios(?:\.(?:get|post|put|delete|request))?\s*\(")),
    Sink("http.request", "url_fetch", re.compile(r"\bhttps?\.(?:request|get)\s*\(")),
    Sink("urllib.request", "url_fetch", re.compile(r"\burllib\.request\.urlopen\s*\(")),
    Sink("requests", "url_fetch", re.compile(r"\brequests\.(?:get|post|put|delete|request)\s*\(")),
    Sink("httpx", "url_fetch", re.compile(r"\bhttpx\.(?:get|post|put|delete|request)\s*\(")),
    Sink("reqwest::get", "url_fetch", re.compile(r"\breqwest::get\s*\(")),
    Sink("new Function", "eval", re.compile(r"\bnew\s+Function\s*\(")),
    Sink("eval", "eval", _call("eval", method=False)),
    Sink("setTimeout", "eval", re.compile(r"(?<![\w$.])set(?:Timeout|Interval)\s*\(\s*['\"`]")),
    Sink("compile", "eval", _call("compile", method=False)),
    Sink("pickle.loads", "deserialization", re.compile(r"\b(?:c?pickle|marshal)\.loads?\s*\(")),
    Sink("yaml.load", "deserialization", re.compile(r"\byaml\.(?:unsafe_)?load\s*\((?![^)]*SafeLoader)")),
    Sink("unserialize", "deserialization", _call("unserialize", method=False)),
    Sink("ObjectInputStream", "deserialization", re.compile(r"\bObjectInputStream\b")),
)


class SinkRule(NamedTuple):
    category: str
    title: str
    cwe: str
    owasp: str
    remediation: str
    always: bool  # reported even without taint or dynamic construction nearby


SINK_RULES = {
    "sql_query": SinkRule(
        "injection", "SQL Injection", "CWE-89", "A03:2021 Injection",
        "Use parameterized queries or prepared statements. Never concatenate user input into SQL.",
        False,
    ),
    "command_exec": SinkRule(
        "command_injection", "Command Injection", "CWE-78", "A03:2021 Injection",
        "Avoid executing shell commands with user input. If necessary, use allow-lists and strict validation.",
        True,
    ),
    "file_operation": SinkRule(
        "path_traversal", "Path Traversal", "CWE-22", "A01:2021 Broken Access Control",
        "Validate file paths and ensure the resolved path stays within the allowed directory.",
        False,
    ),
    "html_injection": SinkRule(
        "xss", "Cross-Site Scripting", "CWE-79", "A03:2021 Injection",
        "Use text content instead of HTML, or sanitize HTML with a vetted library.",
        True,
    ),
    "url_fetch": SinkRule(
        "ssrf", "Server-Side Request Forgery", "CWE-918", "A10:2021 SSRF",
        "Validate outbound URLs against an allow-list and block internal address ranges.",
        False,
    ),
    "eval": SinkRule(
        "injection", "Code Injection", "CWE-94", "A03:2021 Injection",
        "Avoid dynamic code execution. Parse data with a dedicated parser instead.",
        True,
    ),
    "deserialization": SinkRule(
        "deserialization", "Insecure Deserialization", "CWE-502", "A08:2021 Software and Data Integrity Failures",
        "Only deserialize trusted data, or switch to a data-only format such as JSON.",
        True,
    ),
}

# Known sanitizers: (function name, sanitization category)
SANITIZATION_METHODS: Tuple[Tuple[str, str], ...] = (
    ("DOMPurify.sanitize", "html"),
    ("bleach.clean", "html"),
    ("shlex.quote", "command"),
    ("path.normalize", "path"),
    ("path.resolve", "path"),
    ("escapeHtml", "html"),
    ("htmlEscape", "html"),
    ("html_escape", "html"),
    ("escapeId", "sql"),
    ("escape", "sql"),
    ("prepare", "sql"),
    ("parameterize", "sql"),
    ("sanitize_sql", "sql"),
    ("sanitize", "html"),
    ("xss", "html"),
    ("encodeURIComponent", "url"),
    ("encodeURI", "url"),
    ("url_encode", "url"),
    ("quote_plus", "url"),
    ("realpath", "path"),
    ("basename", "path"),
    ("shellescape", "command"),
    ("validate", "general"),
    ("parseInt", "general"),
    ("Number", "general"),
    ("int", "general"),
)

SANITIZER_CALLS: Tuple[Tuple[str, str, "re.Pattern[str]"], ...] = tuple(
    (name, category, re.compile(r"(?:(?<=\.)|(?<![\w$.]))" + re.escape(name) + r"\s*\(\s*([\w$.]*)"))
    for name, category in SANITIZATION_METHODS
)


class SecretPattern(NamedTuple):
    name: str
    pattern: "re.Pattern[str]"
    severity: str


SECRET_PATTERNS: Tuple[SecretPattern, ...] = (
    SecretPattern("AWS Access Key", re.compile(r"(?:AKIA|ABIA|ACCA)[A-Z0-9]{16}"), "critical"),
    SecretPattern("GitHub Token", re.compile(r"gh[pousr]_[A-Za-z0-9_]{36,}"), "critical"),
    SecretPattern("GitLab Token", re.compile(r"glpat-[A-Za-z0-9_-]{20,}"), "critical"),
    SecretPattern("Slack Token", re.compile(r"xox[baprs]-[0-9A-Za-z-]{10,}"), "high"),
    SecretPattern("Stripe Key", re.compile(r"sk_live_[0-9a-zA-Z]{24,}"), "critical"),
    SecretPattern("Anthropic API Key", re.compile(r"sk-ant-[a-zA-Z0-9_-]{40,}"), "critical"),
    SecretPattern("OpenAI API Key", re.compile(r"sk-[a-zA-Z0-9]{48}"), "critical"),
    SecretPattern("Google API Key", re.compile(r"AIza[0-9A-Za-z_-]{35}"), "high"),
    SecretPattern("NPM Token", re.compile(r"npm_[A-Za-z0-9]{36}"), "high"),
    SecretPattern("Private Key", re.compile(r"-----BEGIN (?:RSA |DSA |EC |OPENSSH |PGP )?PRIVATE KEY-----"), "critical"),
    SecretPattern("JWT Token", re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"), "high"),
    SecretPattern("Connection String", re.compile(r"(?:mongodb(?:\+srv)?|postgres(?:ql)?|mysql|redis|amqp)://[^:\s'\"]+:[^@\s'\"]+@[^\s'\"]+"), "critical"),
    SecretPattern("Generic API Key", re.compile(r"api[_-]?key['\"\s]*[:=]\s*['\"]([a-zA-Z0-9_\-]{20,})['\"]", re.IGNORECASE), "high"),
    SecretPattern("Generic Secret", re.compile(r"(?:client|app|auth)?_?secret(?:_key)?['\"\s]*[:=]\s*['\"]([a-zA-Z0-9_\-]{16,})['\"]", re.IGNORECASE), "high"),
    SecretPattern("Hardcoded Password", re.compile(r"password['\"\s]*[:=]\s*['\"]([^'\"]{8,})['\"]", re.IGNORECASE), "high"),
)

PLACEHOLDER_MARKERS = (
    "xxx", "yyy", "zzz", "your_", "your-", "example", "changeme", "placeholder",
    "dummy", "<", ">", "${", "{{", "process.env",
)


class RulePattern(NamedTuple):
    category: str
    title: str
    severity: str
    cwe: str
    pattern: "re.Pattern[str]"


# Line-level rules that are not source-to-sink shaped
RULE_PATTERNS: Tuple[RulePattern, ...] = (
    RulePattern("crypto", "Weak hash: MD5", "medium", "CWE-327", re.compile(r"\bhashlib\.md5\b|createHash\s*\(\s*['\"]md5['\"]|\bMd5::", re.IGNORECASE)),
    RulePattern("crypto", "Weak hash: SHA1", "medium", "CWE-327", re.compile(r"\bhashlib\.sha1\b|createHash\s*\(\s*['\"]sha1['\"]", re.IGNORECASE)),
    RulePattern("crypto", "Weak cipher", "high", "CWE-327", re.compile(r"createCipheriv?\s*\([^)]*['\"](?:des|rc4|blowfish)", re.IGNORECASE)),
    RulePattern("crypto", "Insecure randomness for secrets", "high", "CWE-338", re.compile(r"(?:token|secret|password|key)\w*\s*=.*(?:Math\.random\s*\(|random\.random\s*\()", re.IGNORECASE)),
    RulePattern("auth", "TLS certificate check disabled", "high", "CWE-295", re.compile(r"rejectUnauthorized\s*:\s*false|verify\s*=\s*False")),
    RulePattern("auth", "JWT signature verification disabled", "critical", "CWE-347", re.compile(r"jwt\.decode\s*\([^)]*verify(?:_signature)?['\"]?\s*[:=]\s*False", re.IGNORECASE)),
    RulePattern("misconfig", "Debug mode enabled", "medium", "CWE-489", re.compile(r"\bDEBUG\s*[:=]\s*(?:true|True|1)\b")),
    RulePattern("misconfig", "CORS wildcard origin", "medium", "CWE-942", re.compile(r"Access-Control-Allow-Origin['\"]?\s*[:,]\s*['\"]\*|allow_origins\s*=\s*\[\s*['\"]\*")),
    RulePattern("information_disclosure", "Sensitive value logged", "medium", "CWE-532", re.compile(r"(?:console\.\w+|logger?\.\w+|print)\s*\([^)]*\b(?:password|secret|token|api_key)\b", re.IGNORECASE)),
)

_TEST_FILE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?:^|/)tests?/",
        r"(?:^|/)__tests__/",
        r"(?:^|/)specs?/",
        r"(?:^|/)testing/",
        r"(?:^|/)mocks?/",
        r"(?:^|/)fixtures?/",
        r"\.(?:test|spec)\.[jt]sx?$",
        r"_(?:test|spec)\.[jt]sx?$",
        r"(?:^|/)test_[^/]+\.py$",
        r"_test\.(?:py|rs|go)$",
    )
)

_LOGGING_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"console\.(?:log|error|warn|info|debug)\s*\(",
        r"\blogger?\.(?:log|error|warn|warning|info|debug|critical|exception)\s*\(",
        r"\blogging\.(?:log|error|warn|warning|info|debug|critical|exception)\s*\(",
        r"(?<![\w.])print\s*\(",
        r"\b(?:e?println|e?print|log::\w+|tracing::\w+)!\s*\(",
        r"\bfmt\.Print",
    )
)

PARAMETERIZED_RE = re.compile(r"\?\s*['\"`]?\s*[,)]|\$\d+|:\w+|@\w+|%s")
DYNAMIC_STRING_RE = re.compile(r"['\"`]\s*\+|\+\s*['\"`]|\$\{|(?<![\w])f['\"]|\.format\s*\(|['\"]\s*%\s*[\w(]|format!\s*\(")
_BOUND_ARGS_RE = re.compile(r"['\"`]\s*,|['\"`]\s*\)\s*\.bind\s*\(")
_ASSIGNMENT_RE = re.compile(r"^\s*(?:(?:const|let|var|final)\s+|let\s+mut\s+)?(?:\{([^}]*)\}|(\w+))\s*(?::\s*[^=]+)?=(?![=>])\s*(.+)$")


def is_test_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in _TEST_FILE_PATTERNS)


def is_logging_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in _LOGGING_PATTERNS)


def is_parameterized_query(line: str) -> bool:
    """True if the SQL on ``line`` uses placeholders with values bound separately.

    A placeholder inside a string that is itself formatted (``%``, ``.format``,
    f-strings, concatenation) is not a bind.
    """
    if DYNAMIC_STRING_RE.search(line):
        return False
    return PARAMETERIZED_RE.search(line) is not None and _BOUND_ARGS_RE.search(line) is not None


def is_comment_line(lines: List[str], line_number: int, hash_comments: bool = False) -> bool:
    """True if 1-based ``line_number`` is a comment line or sits inside a block comment.

    ``#`` starts a comment only when ``hash_comments`` is set (Python); in Rust
    and TypeScript it opens attributes and private fields.
    """
    if line_number < 1 or line_number > len(lines):
        return False
    stripped = lines[line_number - 1].strip()
    if stripped.startswith(("//", "/*", "* ", "*/")) or stripped == "*":
        return True
    if hash_comments and stripped.startswith("#"):
        return True
    in_block = False
    in_docstring = False
    for index in range(line_number - 1):
        text = lines[index]
        if "/*" in text and "*/" not in text[text.index("/*"):]:
            in_block = True
        elif "*/" in text:
            in_block = False
        if (text.count('"""') + text.count("'''")) % 2 == 1:
            in_docstring = not in_docstring
    return in_block or in_docstring


def find_taint_source(text: str) -> Optional[str]:
    for needle, source in TAINT_SOURCES:
        if needle in text:
            return source
    return None


def tainted_assignment(line: str) -> List[Tuple[str, str]]:
    """``(variable, source)`` pairs for a line assigning from a taint source."""
    match = _ASSIGNMENT_RE.match(line)
    if not match:
        return []
    source = find_taint_source(match.group(3))
    if source is None:
        return []
    if match.group(1) is not None:
        names = [part.split(":")[-1].strip() for part in match.group(1).split(",")]
        return [(name, source) for name in names if re.fullmatch(r"\w+", name)]
    return [(match.group(2), source)]


def mentions(line: str, name: str) -> bool:
    return re.search(r"(?<![\w$])" + re.escape(name) + r"(?![\w$])", line) is not None


def shannon_entropy(value: str) -> float:
    if not value:
        return 0.0
    length = len(value)
    return -sum((count / length) * math.log2(count / length) for count in Counter(value).values())


def is_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def redact_secret(line: str) -> str:
    return re.sub(r"(['\"`])([^'\"`]{4})[^'\"`]+([^'\"`]{2})(['\"`])", r"\1\2****\3\4", line.strip())[:200]


def reduce_severity(severity: str) -> str:
    return {"critical": "high", "high": "medium", "medium": "low"}.get(severity, "info")


def severity_rank(severity: str) -> int:
    """Lower is more severe."""
    return SEVERITY_ORDER.get(severity, len(SEVERITY_ORDER))


def line_window(lines: List[str], line_number: int, before: int, after: int = 0) -> List[str]:
    start = max(0, line_number - 1 - before)
    return lines[start : min(len(lines), line_number + after)]
