"""Base abstractions for tools exposed to the model."""

import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentcore.config.exceptions import InvalidAgentConfigError

if TYPE_CHECKING:
    from agentcore.runtime.context import ToolExecutionContext

ToolExecute = Callable[[dict[str, Any], "ToolExecutionContext | None"], Any | Awaitable[Any]]


class Tool(BaseModel):
    """
    A named, schema-described function the model may invoke.

    `parameters` is either a pydantic model class (arguments are validated
    before execution) or a plain JSON-schema dict. `output_schema` is an
    optional pydantic model class the result must satisfy.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    parameters: Any = None
    output_schema: Any = None
    execute: Any

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("tool name must not be empty")
        return value

    @field_validator("execute")
    @classmethod
    def _execute_callable(cls, value: Any) -> Any:
        if not callable(value):
            raise ValueError("tool execute must be callable")
        return value

    def get_parameters_schema(self) -> dict[str, Any]:
        """Return the JSON schema describing `execute` arguments."""
        if isinstance(self.parameters, type) and issubclass(self.parameters, BaseModel):
            return self.parameters.model_json_schema()
        if isinstance(self.parameters, dict):
            return self.parameters
        return {"type": "object", "properties": {}}

    def validate_args(self, args: dict[str, Any] | None) -> dict[str, Any]:
        """Validate arguments against a pydantic parameters model."""
        args = args or {}
        if isinstance(self.parameters, type) and issubclass(self.parameters, BaseModel):
            return self.parameters.model_validate(args).model_dump()
        return dict(args)

    async def run(self, args: dict[str, Any], context: "ToolExecutionContext | None" = None) -> Any:
        """Invoke `execute`, awaiting it when it is a coroutine."""
        result = self.execute(args, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.get_parameters_schema(),
        }


class Toolkit(BaseModel):
    """A named group of tools with optional prompt instructions."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    instructions: str | None = None
    add_instructions: bool = False
    tools: list[Tool] = Field(default_factory=list)


def create_tool(
    name: str,
    execute: ToolExecute,
    description: str = "",
    parameters: Any = None,
    output_schema: Any = None,
) -> Tool:
    """Create a Tool, raising InvalidAgentConfigError for invalid definitions."""
    try:
        return Tool(
            name=name,
            description=description or name,
            parameters=parameters,
            output_schema=output_schema,
            execute=execute,
        )
    except ValueError as e:
        raise InvalidAgentConfigError(f"Invalid tool '{name}': {e}") from e


__all__ = ["Tool", "Toolkit", "create_tool", "ToolExecute"]
