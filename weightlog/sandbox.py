"""Run model-generated parseWeightLog source in a separate, restricted Python interpreter."""

from __future__ import annotations

import ast
import json
import logging
import subprocess
import sys
import tempfile
from typing import Any

logger = logging.getLogger(__name__)

MAX_PARSER_SOURCE_LENGTH = 8000
PARSER_FUNCTION = "parseWeightLog"

# Only these stdlib modules may be imported by generated code; it sees their
# public, non-module attributes only.
ALLOWED_MODULES = frozenset({
    "calendar",
    "collections",
    "datetime",
    "decimal",
    "functools",
    "itertools",
    "json",
    "math",
    "re",
    "statistics",
    "string",
})

CPU_LIMIT_SECONDS = 10
MEMORY_LIMIT_BYTES = 512 * 1024 * 1024


class SandboxError(Exception):
    """Generated code was rejected or failed to run."""


# Executed with `python -I -S -c`. Reads {"source", "text", "allowed", "function"} from stdin,
# writes a single JSON line {"ok": true, "result": [...]} or {"ok": false, "error": "..."} to stdout.
_RUNNER = r'''
import builtins
import json
import sys
import types

_SAFE_NAMES = (
    "abs", "all", "any", "bool", "callable", "chr", "dict", "divmod", "enumerate", "filter",
    "float", "format", "frozenset", "int", "isinstance", "issubclass", "iter", "len", "list",
    "map", "max", "min", "next", "object", "ord", "pow", "range", "repr", "reversed", "round",
    "set", "slice", "sorted", "str", "sum", "tuple", "zip", "True", "False", "None",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError", "AttributeError",
    "ArithmeticError", "ZeroDivisionError", "LookupError", "StopIteration", "OverflowError",
    "__build_class__",
)


def _public_view(module):
    view = types.SimpleNamespace()
    for name in dir(module):
        if name.startswith("_"):
            continue
        value = getattr(module, name)
        if isinstance(value, types.ModuleType):
            continue
        setattr(view, name, value)
    return view


def _reply(out, **payload):
    out.write(json.dumps(payload, default=str))
    out.write("\n")
    out.flush()


def main():
    request = json.loads(sys.stdin.read())
    allowed = frozenset(request["allowed"])
    real_import = builtins.__import__
    views = {}

    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        top = name.split(".")[0]
        if level or top not in allowed:
            raise ImportError("import of %r is not allowed" % name)
        if top not in views:
            views[top] = _public_view(real_import(top))
        return views[top]

    safe = {name: getattr(builtins, name) for name in _SAFE_NAMES}
    safe["__import__"] = guarded_import
    scope = {"__builtins__": safe, "__name__": "generated_parser"}

    out = sys.stdout
    sys.stdout = sys.stderr
    try:
        exec(compile(request["source"], "<generated parser>", "exec"), scope)
        fn = scope.get(request["function"])
        if not callable(fn):
            _reply(out, ok=False, error="Parser must define function %s(file_text)." % request["function"])
            return
        result = fn(request["text"])
    except BaseException as exc:
        _reply(out, ok=False, error="%s: %s" % (type(exc).__name__, exc))
        return
    if not isinstance(result, (list, tuple)):
        _reply(out, ok=False, error="Generated parser must return a list of entries, got %s." % type(result).__name__)
        return
    _reply(out, ok=True, result=list(result))


main()
'''


def validate_parser_source(source: str) -> None:
    """
    Reject oversized source, syntax errors, private or dunder attribute access,
    and imports outside ALLOWED_MODULES. Raises SandboxError; nothing is executed.
    """
    if len(source) > MAX_PARSER_SOURCE_LENGTH:
        raise SandboxError(
            f"AI parser response was unexpectedly long ({len(source)} characters, limit {MAX_PARSER_SOURCE_LENGTH})."
        )
    try:
        tree = ast.parse(source, filename="<generated parser>")
    except SyntaxError as e:
        raise SandboxError(f"Generated parser is not valid Python: {e.msg} (line {e.lineno}).") from e
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise SandboxError(f"Generated parser may not access private attribute {node.attr!r}.")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise SandboxError(f"Generated parser may not reference {node.id!r}.")
        if isinstance(node, ast.Import):
            names = [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom):
            names = [node.module or ""] if not node.level else ["." * node.level]
        else:
            continue
        for name in names:
            if name.split(".")[0] not in ALLOWED_MODULES:
                raise SandboxError(f"Generated parser may not import {name!r}.")


def _limit_child_resources() -> None:
    import resource

    resource.setrlimit(resource.RLIMIT_CPU, (CPU_LIMIT_SECONDS, CPU_LIMIT_SECONDS))
    resource.setrlimit(resource.RLIMIT_AS, (MEMORY_LIMIT_BYTES, MEMORY_LIMIT_BYTES))
    resource.setrlimit(resource.RLIMIT_FSIZE, (0, 0))


def run_parser_source(source: str, file_text: str, timeout: float = 10.0) -> list[Any]:
    """
    Validate source, run its parseWeightLog(file_text) in an isolated child
    interpreter (no site, no env, temp cwd, restricted builtins, resource limits,
    wall-clock timeout) and return the list it produced. Raises SandboxError.
    """
    validate_parser_source(source)
    request = json.dumps({
        "source": source,
        "text": file_text,
        "allowed": sorted(ALLOWED_MODULES),
        "function": PARSER_FUNCTION,
    })
    preexec = _limit_child_resources if sys.platform != "win32" else None
    with tempfile.TemporaryDirectory(prefix="weightlog-sandbox-") as workdir:
        try:
            proc = subprocess.run(
                [sys.executable, "-I", "-S", "-c", _RUNNER],
                input=request,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=timeout,
                env={},
                cwd=workdir,
                preexec_fn=preexec,
            )
        except subprocess.TimeoutExpired as e:
            raise SandboxError(f"Generated parser timed out after {timeout:g}s.") from e

    lines = [line for line in proc.stdout.splitlines() if line.strip()]
    if not lines:
        stderr_tail = proc.stderr.strip()[-300:]
        logger.error("Generated parser exited with %s and no output: %s", proc.returncode, stderr_tail)
        raise SandboxError(f"Generated parser crashed (exit code {proc.returncode}).")
    try:
        reply = json.loads(lines[-1])
    except json.JSONDecodeError as e:
        raise SandboxError("Generated parser produced unreadable output.") from e
    if not reply.get("ok"):
        raise SandboxError(reply.get("error") or "Failed to execute the generated parser.")
    result = reply.get("result")
    if not isinstance(result, list):
        raise SandboxError("Generated parser must return a list of entries.")
    return result
