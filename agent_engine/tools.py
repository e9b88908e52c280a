from typing import Any, Iterable, Optional

from pydantic import BaseModel, ValidationError

from agent_engine.exceptions import ToolNotFound, ToolValidationError


class ToolInput(BaseModel):
    """Subclass this for tool-specific input validation."""


class Tool:
    name: str
    description: str
    input_model: type[BaseModel] = ToolInput

    def schema(self) -> dict:
        """Return JSON schema from Pydantic model."""
        return self.input_model.model_json_schema()

    def signature(self) -> str:
        """Render the call shape shown to the model, e.g. ``echo(text: string)``."""
        schema = self.schema()
        required = set(schema.get("required", []))
        params = []
        for field_name, prop in schema.get("properties", {}).items():
            type_name = prop.get("type", "any")
            if field_name in required:
                params.append(f"{field_name}: {type_name}")
            elif "default" in prop:
                params.append(f"{field_name}?: {type_name} = {prop['default']!r}")
            else:
                params.append(f"{field_name}?: {type_name}")
        return f"{self.name}({', '.join(params)})"

    def validate(self, params: dict) -> BaseModel:
        """Check ``params`` against ``input_model``.

        Raises:
            ToolValidationError: On any schema mismatch.
        """
        try:
            return self.input_model(**params)
        except ValidationError as e:
            raise ToolValidationError(
                f"Invalid parameters for tool '{self.name}': {e}"
            ) from e

    async def execute(self, **kwargs) -> Any:
        """Execute tool. Always async; sync tools wrap sync code.

        Pydantic validates inputs before this is called. Return a string, a
        Pydantic model or anything JSON-serializable.
        """
        raise NotImplementedError


class Toolkit:
    """Name-indexed, read-only set of tools.

    Args:
        tools: Tools to register. Names must be unique.
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name '{tool.name}'")
            self._tools[tool.name] = tool

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tool(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(f"Tool '{name}' not found") from None

    def names(self) -> list[str]:
        return list(self._tools)

    async def execute_tool(self, name: str, params: dict) -> Any:
        """Validate ``params`` and run the named tool.

        Raises:
            ToolNotFound: If no tool has that name.
            ToolValidationError: If ``params`` don't fit the tool's schema.
        """
        tool = self.get_tool(name)
        validated = tool.validate(params)
        return await tool.execute(**validated.model_dump())

    def list_tools(self) -> str:
        """Describe every tool, one per line, for prompt injection."""
        if not self._tools:
            return "(no tools available)"
        return "\n".join(
            f"- {tool.signature()}: {tool.description}" for tool in self._tools.values()
        )

    def __len__(self) -> int:
        return len(self._tools)
