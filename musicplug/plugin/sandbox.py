"""
Plugin Sandbox.

This module evaluates plugin source inside a restricted namespace.

Key features:
- AST screening of private attributes, dunder names and frame introspection
- No global/nonlocal rebinding of host bindings
- Curated builtins (no open/eval/exec/compile/input/globals/vars)
- Import allow-list of pure standard-library modules, handed out as module
  views without private attributes or re-exported modules
- Host bindings: `http` (network only), `trace`, `dev_log`, `app_version`

In-process restriction is hardening for honest mistakes and casual abuse; it
is not an isolation boundary against a determined attacker.
"""

import ast
import builtins
import importlib
import types
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from musicplug.log import dev_log, trace as host_trace
from musicplug.plugin.errors import SandboxViolation

ALLOWED_MODULES = frozenset(
    {
        "base64",
        "collections",
        "datetime",
        "functools",
        "hashlib",
        "html",
        "itertools",
        "json",
        "math",
        "random",
        "re",
        "string",
        "time",
        "urllib.parse",
    }
)

# Generator, coroutine, frame and traceback attributes that lead back to host frames
_INTROSPECTION_ATTRS = frozenset(
    {
        "gi_frame", "gi_code", "gi_yieldfrom",
        "cr_frame", "cr_code", "cr_await", "cr_origin",
        "ag_frame", "ag_code", "ag_await",
        "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
        "tb_frame", "tb_next",
    }
)

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "bytes", "callable", "chr", "dict", "divmod",
    "enumerate", "filter", "float", "format", "frozenset", "hasattr", "hash",
    "int", "isinstance", "issubclass", "iter", "len", "list", "map", "max",
    "min", "next", "object", "ord", "pow", "print", "range", "repr",
    "reversed", "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "Exception", "ArithmeticError", "AttributeError", "IndexError", "KeyError",
    "LookupError", "NotImplementedError", "RuntimeError", "StopIteration",
    "TypeError", "ValueError", "ZeroDivisionError",
)


def _is_blocked_attribute(name: str) -> bool:
    return name.startswith(("_", "co_")) or name in _INTROSPECTION_ATTRS


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    if not isinstance(name, str) or _is_blocked_attribute(name):
        raise SandboxViolation(f"Access to attribute {name!r} is not allowed")
    return getattr(obj, name, *default)


def module_view(name: str) -> types.ModuleType:
    """
    Fresh module object standing in for `name` inside a plugin.

    Allowed modules keep their public attributes except other modules; every
    module (allowed or a bare parent package like `urllib`) also carries views
    of its allowed submodules.
    """
    view = types.ModuleType(name)
    if name in ALLOWED_MODULES:
        for attr, value in vars(importlib.import_module(name)).items():
            if attr.startswith("_") or isinstance(value, types.ModuleType):
                continue
            setattr(view, attr, value)
    prefix = f"{name}."
    for child in ALLOWED_MODULES:
        if child.startswith(prefix) and "." not in child[len(prefix):]:
            setattr(view, child[len(prefix):], module_view(child))
    return view


def _guarded_import(
    name: str,
    globals: dict | None = None,
    locals: dict | None = None,
    fromlist: tuple | None = (),
    level: int = 0,
) -> types.ModuleType:
    if level != 0:
        raise SandboxViolation("Relative imports are not allowed in plugins")

    requested = {name}
    if fromlist and name not in ALLOWED_MODULES:
        # `from urllib import parse` asks for the package plus submodule names
        requested = {f"{name}.{item}" for item in fromlist}
    denied = sorted(m for m in requested if m not in ALLOWED_MODULES)
    if denied:
        raise SandboxViolation(f"Import of {', '.join(denied)} is not allowed in plugins")

    if fromlist:
        return module_view(name)
    # `import urllib.parse` binds the top-level package
    return module_view(name.partition(".")[0])


def _build_builtins() -> dict[str, Any]:
    table = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
    table["getattr"] = _safe_getattr
    table["__import__"] = _guarded_import
    # class statements compile to a __build_class__ call
    table["__build_class__"] = builtins.__build_class__
    return table


class _SourceScreen(ast.NodeVisitor):
    """Rejects private and introspective access before any plugin code runs."""

    def __init__(self, host_names: Iterable[str] = ()):
        self.host_names = frozenset(host_names)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if _is_blocked_attribute(node.attr):
            raise SandboxViolation(
                f"line {node.lineno}: access to attribute {node.attr!r} is not allowed"
            )
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__"):
            raise SandboxViolation(
                f"line {node.lineno}: access to name {node.id!r} is not allowed"
            )
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        key = node.slice
        if isinstance(key, ast.Constant) and isinstance(key.value, str) and key.value.startswith("__"):
            raise SandboxViolation(
                f"line {node.lineno}: subscript {key.value!r} is not allowed"
            )
        self.generic_visit(node)

    def _check_rebinding(self, node: ast.Global | ast.Nonlocal, keyword: str) -> None:
        rebound = sorted(self.host_names.intersection(node.names))
        if rebound:
            raise SandboxViolation(
                f"line {node.lineno}: {keyword} rebinding of host name {rebound[0]!r} is not allowed"
            )

    def visit_Global(self, node: ast.Global) -> None:
        self._check_rebinding(node, "global")

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._check_rebinding(node, "nonlocal")


class HostHttp:
    """
    Network binding handed to plugins as `http`.

    Both methods return the httpx.Response; plugins call .json()/.text on it.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self._client = client
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self._get_client().get(url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        data: Any = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self._get_client().post(url, data=data, json=json, headers=headers)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class Sandbox:
    """Evaluates plugin source against a fixed host surface."""

    def __init__(
        self,
        app_version: str,
        http: HostHttp | None = None,
        trace: Callable[..., None] = host_trace,
    ):
        self.app_version = app_version
        self.http = http or HostHttp()
        self._trace = trace
        self._builtins = _build_builtins()

    def bindings(self) -> dict[str, Any]:
        return {
            "http": self.http,
            "trace": self._trace,
            "dev_log": dev_log,
            "app_version": self.app_version,
        }

    def check_source(self, source: str, filename: str = "<plugin>") -> ast.Module:
        """
        Parse and screen plugin source.

        Raises:
            SyntaxError: If the source does not parse
            SandboxViolation: If the source touches a screened name or attribute
        """
        tree = ast.parse(source, filename=filename, mode="exec")
        _SourceScreen(self.bindings()).visit(tree)
        return tree

    def evaluate(self, source: str, filename: str = "<plugin>") -> dict[str, Any]:
        """
        Run plugin source and return its module namespace.

        Raises:
            SyntaxError, SandboxViolation, or whatever the plugin raises at
            module level.
        """
        tree = self.check_source(source, filename)
        code = compile(tree, filename, "exec")
        namespace: dict[str, Any] = {
            "__builtins__": dict(self._builtins),
            "__name__": "musicplug_plugin",
        }
        namespace.update(self.bindings())
        exec(code, namespace)  # noqa: S102
        return namespace
