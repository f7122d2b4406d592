"""Tests for ToolSpec, ToolRegistry, and load_scopes_file.

Covers:
- ToolSpec creation, immutability, and hashable scopes
- ToolRegistry filtering (no filter, scope filter, empty scopes)
- ToolRegistry list_tools, tool_count, call_tool and error translation
- load_scopes_file parsing, validation, and error cases
"""

import asyncio
import dataclasses
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import mcp.types as types

from repo_sync.core.exceptions import RemoteNotFoundError, VersionMismatchError
from repo_sync.mcp.tools.registry import (
    BRANCH_CREATE,
    REPO_READ,
    REPO_WRITE,
    ToolRegistry,
    ToolSpec,
    load_scopes_file,
)
from repo_sync.sync.orchestrator import NotConnectedError


def _make_spec(
    name: str,
    scopes: frozenset[str] | None = None,
    handler=None,
) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if scopes is None:
        scopes = frozenset()
    if handler is None:

        async def handler(orchestrator, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}},
        ),
        scopes=scopes,
        handler=handler,
    )


def _raising(exc: Exception):
    async def handler(orchestrator, args):
        raise exc

    return handler


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestToolSpec(unittest.TestCase):
    """Test ToolSpec dataclass."""

    def test_creation(self):
        spec = _make_spec("repo_sync", frozenset({REPO_WRITE}))
        self.assertEqual(spec.tool.name, "repo_sync")
        self.assertEqual(spec.scopes, frozenset({REPO_WRITE}))

    def test_frozen(self):
        spec = _make_spec("repo_sync")
        with self.assertRaises(dataclasses.FrozenInstanceError):
            spec.scopes = frozenset({REPO_READ})  # type: ignore[misc]

    def test_scopes_hashable(self):
        spec = _make_spec("repo_create_branch", frozenset({REPO_WRITE, BRANCH_CREATE}))
        self.assertIn(BRANCH_CREATE, {s for s in spec.scopes})
        hash(spec.scopes)


class TestToolRegistry(unittest.TestCase):
    """Test ToolRegistry class."""

    def setUp(self):
        self.specs = [
            _make_spec("ping", frozenset()),
            _make_spec("repo_disconnect", frozenset()),
            _make_spec("repo_sync_status", frozenset({REPO_READ})),
            _make_spec("repo_sync", frozenset({REPO_WRITE})),
            _make_spec(
                "repo_create_branch",
                frozenset({REPO_WRITE, BRANCH_CREATE}),
            ),
        ]

    def test_no_filter_all_tools_registered(self):
        """With None scopes, all specs are included."""
        registry = ToolRegistry(self.specs)
        self.assertEqual(registry.tool_count(), 5)

    def test_filter_by_scopes(self):
        """Only tools with matching or empty scopes are included."""
        registry = ToolRegistry(self.specs, frozenset({REPO_READ}))
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["ping", "repo_disconnect", "repo_sync_status"])

    def test_subset_check(self):
        """Multi-scope spec included only when ALL scopes are allowed."""
        registry = ToolRegistry(self.specs, frozenset({REPO_WRITE}))
        names = [t.name for t in registry.list_tools()]
        self.assertIn("repo_sync", names)
        self.assertNotIn("repo_create_branch", names)

        registry2 = ToolRegistry(
            self.specs, frozenset({REPO_WRITE, BRANCH_CREATE})
        )
        names2 = [t.name for t in registry2.list_tools()]
        self.assertIn("repo_create_branch", names2)

    def test_list_tools_returns_tool_objects(self):
        registry = ToolRegistry(self.specs)
        for tool in registry.list_tools():
            self.assertIsInstance(tool, types.Tool)

    def test_call_tool_dispatches_to_handler(self):
        """call_tool() invokes the registered handler with (orchestrator, args)."""
        calls = []

        async def handler(orchestrator, args):
            calls.append((orchestrator, args))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="dispatched")]
            )

        registry = ToolRegistry([_make_spec("t", handler=handler)])
        orchestrator = MagicMock()

        result = asyncio.run(registry.call_tool("t", {"key": "val"}, orchestrator))

        self.assertEqual(calls, [(orchestrator, {"key": "val"})])
        self.assertEqual(_text(result), "dispatched")

    def test_call_tool_none_arguments(self):
        """call_tool() converts None arguments to empty dict."""
        calls = []

        async def handler(orchestrator, args):
            calls.append(args)
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="ok")]
            )

        registry = ToolRegistry([_make_spec("t", handler=handler)])
        asyncio.run(registry.call_tool("t", None, MagicMock()))

        self.assertEqual(calls, [{}])

    def test_call_tool_unknown_raises(self):
        registry = ToolRegistry(self.specs)
        with self.assertRaisesRegex(ValueError, "Unknown tool: nope"):
            asyncio.run(registry.call_tool("nope", {}, MagicMock()))

    def test_call_tool_filtered_out_raises(self):
        registry = ToolRegistry(self.specs, frozenset({REPO_READ}))
        with self.assertRaisesRegex(ValueError, "Unknown tool: repo_sync"):
            asyncio.run(registry.call_tool("repo_sync", {}, MagicMock()))


class TestCallToolErrors(unittest.TestCase):
    """Exceptions raised by handlers become structured error results."""

    def _call(self, exc: Exception, args: dict | None = None):
        registry = ToolRegistry([_make_spec("t", handler=_raising(exc))])
        return asyncio.run(registry.call_tool("t", args, MagicMock()))

    def test_not_connected(self):
        result = self._call(NotConnectedError())
        self.assertTrue(result.isError)
        text = _text(result)
        self.assertIn("Error (not_connected): No repository connected", text)
        self.assertIn("repo_connect", text)

    def test_remote_not_found_uses_branch_argument(self):
        result = self._call(
            RemoteNotFoundError("Branch dev not found", 404),
            {"branch": "dev", "path": "a.txt"},
        )
        text = _text(result)
        self.assertIn("Error (not_found)", text)
        self.assertIn("similar to 'dev'", text)

    def test_remote_not_found_uses_path_when_no_branch(self):
        result = self._call(
            RemoteNotFoundError("missing", 404), {"path": "docs/a.md"}
        )
        self.assertIn("similar to 'docs/a.md'", _text(result))

    def test_version_mismatch(self):
        result = self._call(VersionMismatchError("a.txt", "abc", status_code=409))
        self.assertIn("Error (version_conflict)", _text(result))

    def test_value_error(self):
        result = self._call(ValueError("repo_id is required"))
        self.assertEqual(
            _text(result),
            "Error (validation_error): repo_id is required\n\n"
            "Action: Check parameter values and retry.",
        )

    def test_unexpected_exception(self):
        result = self._call(KeyError("boom"))
        self.assertTrue(result.isError)
        self.assertIn("Error (server_error)", _text(result))


class TestLoadScopesFile(unittest.TestCase):
    """Test load_scopes_file function."""

    def _write(self, content: str) -> Path:
        handle = tempfile.NamedTemporaryFile(
            "w", suffix=".scopes", delete=False
        )
        with handle:
            handle.write(content)
        path = Path(handle.name)
        self.addCleanup(path.unlink)
        return path

    def test_basic(self):
        path = self._write("REPO_READ\nREPO_WRITE\n")
        self.assertEqual(
            load_scopes_file(path), frozenset({REPO_READ, REPO_WRITE})
        )

    def test_comments_and_blank_lines(self):
        path = self._write("# read-only\n\n  REPO_READ  \n# end\n")
        self.assertEqual(load_scopes_file(str(path)), frozenset({REPO_READ}))

    def test_invalid_scope(self):
        path = self._write("REPO_READ\nrepo-write\n")
        with self.assertRaisesRegex(ValueError, "line 2"):
            load_scopes_file(path)

    def test_lowercase_rejected(self):
        path = self._write("repo_read\n")
        with self.assertRaisesRegex(ValueError, "UPPER_SNAKE_CASE"):
            load_scopes_file(path)

    def test_empty_file(self):
        path = self._write("# nothing granted\n")
        with self.assertRaisesRegex(ValueError, "No scopes found"):
            load_scopes_file(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_scopes_file("/nonexistent/repo-sync.scopes")

    def test_unknown_scope_kept_with_warning(self):
        path = self._write("REPO_READ\nREPO_ADMIN\n")
        with self.assertLogs("repo_sync.mcp.tools.registry", "WARNING") as logs:
            scopes = load_scopes_file(path)
        self.assertEqual(scopes, frozenset({REPO_READ, "REPO_ADMIN"}))
        self.assertIn("REPO_ADMIN", logs.output[0])
