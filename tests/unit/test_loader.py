"""
Tests for the plugin sandbox and loader.

This test suite covers:
1. Source screening (private and frame attributes, host rebinding) and the curated builtins
2. Import allow-list and module views
3. Load classification (OK / CANNOT_PARSE / VERSION_NOT_MATCH)
4. Capability extraction and content-hash identity
"""

import textwrap

import pytest

from musicplug.plugin.errors import SandboxViolation
from musicplug.plugin.identity import compute_hash
from musicplug.plugin.loader import PluginStateCode, extract_instance, load
from musicplug.plugin.sandbox import Sandbox, module_view


def plugin_source(body: str = "", name: str = "demo-source") -> str:
    return textwrap.dedent(f'name = "{name}"\nversion = "1.0.0"\n') + textwrap.dedent(body)


@pytest.fixture
def sandbox():
    return Sandbox("0.1.0", trace=lambda *args: None)


class TestSandbox:
    """Test evaluation inside the sandbox."""

    def test_bindings_are_visible(self, sandbox):
        namespace = sandbox.evaluate("host = app_version\nclient = http\n")

        assert namespace["host"] == "0.1.0"
        assert namespace["client"] is sandbox.http

    def test_allowed_imports(self, sandbox):
        namespace = sandbox.evaluate(
            textwrap.dedent(
                """
                import json
                from urllib.parse import quote
                from urllib import parse
                from collections import OrderedDict

                encoded = quote("a b")
                joined = parse.urljoin("https://a.example/x/", "y.py")
                data = json.dumps(OrderedDict(a=1))
                """
            )
        )

        assert namespace["encoded"] == "a%20b"
        assert namespace["joined"] == "https://a.example/x/y.py"
        assert namespace["data"] == '{"a": 1}'

    @pytest.mark.parametrize(
        "source",
        [
            "import os",
            "import subprocess",
            "from pathlib import Path",
            "from urllib import request",
            "import importlib",
        ],
    )
    def test_forbidden_imports(self, sandbox, source):
        with pytest.raises(SandboxViolation, match="not allowed"):
            sandbox.evaluate(source)

    @pytest.mark.parametrize(
        "source",
        [
            "x = ().__class__",
            "x = __import__('os')",
            "x = __builtins__",
            "def f():\n    return f.__globals__",
        ],
    )
    def test_dunder_access_rejected_before_running(self, sandbox, source):
        with pytest.raises(SandboxViolation, match="not allowed"):
            sandbox.evaluate(source)

    def test_getattr_rejects_private_names(self, sandbox):
        with pytest.raises(SandboxViolation, match="'_secret'"):
            sandbox.evaluate("x = getattr(object(), '_secret', None)")

    @pytest.mark.parametrize(
        "source",
        [
            "import random\nx = random._os",
            "x = http._client",
            "it = (i for i in ())\nx = it.gi_frame",
            "def walk(frame):\n    return frame.f_back.f_globals",
            "def code(fn):\n    return fn.co_consts",
            "try:\n    1 / 0\nexcept ZeroDivisionError as e:\n    tb = e.tb_frame",
            "x = {}['__builtins__']",
        ],
    )
    def test_private_and_frame_access_rejected_before_running(self, sandbox, source):
        with pytest.raises(SandboxViolation, match="not allowed"):
            sandbox.evaluate(source)

    @pytest.mark.parametrize("name", ["_os", "gi_frame", "f_globals", "co_code"])
    def test_getattr_rejects_introspection(self, sandbox, name):
        with pytest.raises(SandboxViolation, match=repr(name)):
            sandbox.evaluate(f"import random\nx = getattr(random, {name!r}, None)")

    def test_imported_modules_hide_other_modules(self, sandbox):
        with pytest.raises(AttributeError, match="codecs"):
            sandbox.evaluate("import json\nopener = json.codecs")
        with pytest.raises(ImportError):
            sandbox.evaluate("from re import copyreg")

    def test_module_view_contents(self):
        json_view = module_view("json")
        urllib_view = module_view("urllib")

        assert json_view.loads("[1]") == [1]
        assert not hasattr(json_view, "codecs")
        assert urllib_view.parse.quote("a b") == "a%20b"
        assert not hasattr(urllib_view, "request")

    @pytest.mark.parametrize(
        "source",
        [
            "def reset():\n    global http\n    http = None",
            "def outer():\n    def inner():\n        nonlocal trace\n        trace = print\n    return inner",
        ],
    )
    def test_host_name_rebinding_rejected(self, sandbox, source):
        with pytest.raises(SandboxViolation, match="rebinding of host name"):
            sandbox.evaluate(source)

    def test_global_of_plugin_name_allowed(self, sandbox):
        namespace = sandbox.evaluate(
            "counter = 0\ndef bump():\n    global counter\n    counter += 1\nbump()\n"
        )

        assert namespace["counter"] == 1

    @pytest.mark.parametrize("name", ["open", "eval", "exec", "compile", "globals", "input"])
    def test_dangerous_builtins_missing(self, sandbox, name):
        with pytest.raises(NameError):
            sandbox.evaluate(f"x = {name}")

    def test_classes_can_be_defined(self, sandbox):
        namespace = sandbox.evaluate(
            textwrap.dedent(
                """
                class Parser:
                    def parse(self, text):
                        return text.upper()

                result = Parser().parse("ok")
                """
            )
        )
        assert namespace["result"] == "OK"


class TestLoad:
    """Test load classification."""

    def test_load_ok(self, sandbox):
        source = plugin_source(
            """
            src_url = "https://example.com/demo.py"
            app_version = ">=0.1.0,<1.0.0"
            author = "someone"

            async def search(query, page, media_type):
                return {"is_end": True, "data": []}

            def get_lyric(music_item):
                return {"raw_lrc": ""}
            """
        )

        result = load(source, "demo.py", sandbox)

        assert result.ok
        assert result.hash == compute_hash(source)
        assert result.source_url == "demo.py"
        instance = result.instance
        assert instance.name == "demo-source"
        assert instance.version == "1.0.0"
        assert instance.src_url == "https://example.com/demo.py"
        assert instance.author == "someone"
        assert sorted(instance.capabilities) == ["get_lyric", "search"]
        assert instance.has("search")
        assert not instance.has("get_media_source")

    def test_capabilities_are_optional(self, sandbox):
        result = load(plugin_source(), None, sandbox)

        assert result.ok
        assert dict(result.instance.capabilities) == {}

    def test_non_callable_capability_ignored(self, sandbox):
        result = load(plugin_source("search = 'not a function'\n"), None, sandbox)

        assert result.ok
        assert not result.instance.has("search")

    def test_missing_name(self, sandbox):
        result = load('version = "1.0.0"\n', "nameless.py", sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert result.instance is None
        assert "name" in result.error

    def test_raising_plugin(self, sandbox):
        result = load(plugin_source("raise RuntimeError('boom')\n"), None, sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert result.error == "RuntimeError: boom"

    def test_syntax_error(self, sandbox):
        result = load("name = 'x'\ndef broken(:\n", None, sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert result.error.startswith("SyntaxError")

    def test_sandbox_violation_cannot_parse(self, sandbox):
        result = load(plugin_source("import os\n"), None, sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert "SandboxViolation" in result.error

    def test_module_internals_cannot_parse(self, sandbox):
        result = load(plugin_source("import random\ncwd = random._os.getcwd()\n"), None, sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert "'_os'" in result.error

    def test_version_not_match(self, sandbox):
        result = load(plugin_source("app_version = '>=2.0.0'\n"), None, sandbox)

        assert result.state_code is PluginStateCode.VERSION_NOT_MATCH
        assert result.instance is not None
        assert result.instance.name == "demo-source"
        assert ">=2.0.0" in result.error

    def test_invalid_app_version(self, sandbox):
        result = load(plugin_source("app_version = 'soon'\n"), None, sandbox)

        assert result.state_code is PluginStateCode.CANNOT_PARSE
        assert result.error.startswith("Invalid app_version")

    def test_hash_depends_only_on_source(self, sandbox):
        source = plugin_source()

        first = load(source, "a.py", sandbox)
        second = load(source, "https://example.com/b.py", sandbox)
        changed = load(source + "\n", "a.py", sandbox)

        assert first.hash == second.hash
        assert first.hash != changed.hash
        assert len(first.hash) == 64


class TestExtractInstance:
    """Test metadata extraction from an evaluated namespace."""

    def test_name_is_stripped(self):
        assert extract_instance({"name": "  spaced  "}).name == "spaced"

    def test_numeric_version_becomes_string(self):
        assert extract_instance({"name": "x", "version": 2}).version == "2"

    def test_bad_metadata_type(self):
        with pytest.raises(TypeError, match="'src_url' must be a string"):
            extract_instance({"name": "x", "src_url": ["a"]})


class TestHostBindings:
    def test_plugin_can_call_dev_log(self):
        from musicplug import log

        sandbox = Sandbox("0.1.0", trace=lambda *args: None)
        previous = log.get_options()
        try:
            log.configure(log.LogOptions(dev_log=True))
            namespace = sandbox.evaluate("dev_log('info', 'loaded')\nok = True\n")
        finally:
            log.configure(previous)

        assert namespace["ok"] is True
        assert namespace["dev_log"] is log.dev_log
