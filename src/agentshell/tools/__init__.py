"""
Built-in tools for agentshell.

:func:`build_default_registry` wires the file and code tools into a frozen
:class:`~agentshell.agent.tool_executor.ToolRegistry` with the parameter schemas the model sees.
"""

from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Tuple,
)

from agentshell.agent.tool_executor import (
    ToolRegistry,
    ToolRegistryBuilder,
)
from agentshell.core.schema import ToolSpec
from agentshell.tools import code_tools
from agentshell.tools.file_tools import FileTools


def _schema(required: List[str], **properties: str) -> Dict[str, Any]:
    """JSON schema with string-typed *properties* (name -> description)."""
    return {
        "type": "object",
        "properties": {
            name: {"type": "string", "description": desc} for name, desc in properties.items()
        },
        "required": required,
    }


def _tool_table(files: FileTools) -> List[Tuple[str, Callable[..., Any], str, Dict[str, Any]]]:
    return [
        (
            "read_file",
            files.read_file,
            "Read the contents of a file",
            _schema(["path"], path="File path to read"),
        ),
        (
            "write_file",
            files.write_file,
            "Write content to a file",
            _schema(["path", "content"], path="File path to write", content="Content to write"),
        ),
        (
            "list_files",
            files.list_files,
            "List files in a directory",
            _schema(["path"], path="Directory path", pattern="Optional glob pattern"),
        ),
        (
            "search_files",
            files.search_files,
            "Search for pattern in files",
            _schema(["pattern"], pattern="Search pattern (regex)", path="Directory to search in"),
        ),
        (
            "create_directory",
            files.create_directory,
            "Create a directory",
            _schema(["path"], path="Directory path to create"),
        ),
        (
            "analyze_code",
            code_tools.analyze_code,
            "Analyze code for issues, complexity, and quality",
            _schema(["code"], code="Code to analyze", language="Programming language"),
        ),
        (
            "generate_code",
            code_tools.generate_code,
            "Generate code from description",
            _schema(
                ["description"],
                description="What code to generate",
                language="Programming language",
                framework="Framework or library to use",
            ),
        ),
        (
            "refactor_code",
            code_tools.refactor_code,
            "Refactor code to improve quality",
            _schema(
                ["code", "refactor_type"],
                code="Code to refactor",
                refactor_type="Type of refactoring",
            ),
        ),
        (
            "debug_code",
            code_tools.debug_code,
            "Debug code and find issues",
            _schema(["code"], code="Code to debug", error="Error message if any"),
        ),
        (
            "test_code",
            code_tools.test_code,
            "Generate tests for code",
            _schema(["code"], code="Code to test", framework="Test framework"),
        ),
    ]


def register_default_tools(builder: ToolRegistryBuilder, working_dir: str | Path) -> None:
    """Register the model-facing built-in tools on *builder*."""
    for name, handler, description, parameters in _tool_table(FileTools(working_dir)):
        builder.register(
            name, handler, ToolSpec(name=name, description=description, parameters=parameters)
        )


def build_default_registry(working_dir: str | Path = ".") -> ToolRegistry:
    """Registry with the file tools (rooted at *working_dir*) and the code tools."""
    builder = ToolRegistryBuilder()
    register_default_tools(builder, working_dir)
    return builder.build()
