import sys
import types

import pytest

from fb_marketing_mcp.core.registry import DuplicateToolError, ToolRegistry, discover_tools
from fb_marketing_mcp.tools import TOOL_MODULES

from conftest import make_tool


async def noop(arguments):
    return {}


@pytest.fixture
def fake_modules(monkeypatch):
    """Register throwaway tool modules in sys.modules."""
    def install(**modules):
        for name, tools in modules.items():
            module = types.ModuleType(name)
            if tools is not None:
                module.TOOLS = tools
            monkeypatch.setitem(sys.modules, name, module)
    return install


def test_registry_keeps_registration_order():
    registry = ToolRegistry([make_tool("b", noop), make_tool("a", noop), make_tool("c", noop)])
    assert registry.names() == ["b", "a", "c"]
    assert [tool.name for tool in registry] == ["b", "a", "c"]
    assert len(registry) == 3
    assert "a" in registry
    assert registry.get("missing") is None


def test_duplicate_name_is_rejected():
    registry = ToolRegistry([make_tool("echo", noop)])
    with pytest.raises(DuplicateToolError):
        registry.register(make_tool("echo", noop))


def test_tool_without_name_is_rejected():
    with pytest.raises(ValueError):
        ToolRegistry([make_tool("", noop)])


def test_required_and_projection():
    tool = make_tool("echo", noop, required=["msg"])
    assert tool.required == ["msg"]
    projected = tool.to_tool()
    assert projected.name == "echo"
    assert projected.inputSchema["required"] == ["msg"]


def test_schema_without_required_list():
    tool = make_tool("bare", noop, properties={"x": {"type": "string"}})
    assert tool.required == []


def test_discovery_skips_broken_module_and_keeps_the_rest(fake_modules):
    fake_modules(
        good_tools_one=[make_tool("one", noop)],
        empty_tools=None,
        good_tools_two=[make_tool("two", noop)],
    )
    registry = discover_tools(["good_tools_one", "missing_tools_module_xyz", "empty_tools", "good_tools_two"])

    assert registry.names() == ["one", "two"]
    assert set(registry.load_errors) == {"missing_tools_module_xyz", "empty_tools"}
    assert registry.get("one").path == "good_tools_one"


def test_discovery_records_duplicate_names(fake_modules):
    fake_modules(first_tools=[make_tool("same", noop)], second_tools=[make_tool("same", noop)])
    registry = discover_tools(["first_tools", "second_tools"])

    assert registry.names() == ["same"]
    assert registry.get("same").path == "first_tools"
    assert "second_tools" in registry.load_errors


def test_builtin_manifest_loads_every_tool():
    registry = discover_tools(TOOL_MODULES)

    assert registry.load_errors == {}
    assert set(registry.names()) == {
        "get-ad-account",
        "get-campaigns-details",
        "create-campaign",
        "create-ad-set",
        "upload-ad-image",
        "create-ad-creative",
        "create-ad",
        "get-report-for-insight",
    }
    for tool in registry:
        assert "access_token" in tool.properties
        assert set(tool.required) <= set(tool.properties)
