"""
Parameter schema translation.

Remote tools describe their parameters as a flat list of
{name, type, required, description}. These are turned into a pydantic
model whose fields are aliased to the exact remote parameter names, so the
model validates incoming argument maps and produces the JSON schema the
local protocol advertises.

Only four shapes exist:

    string  → str
    number  → float
    boolean → bool
    other   → Any   (logged, never an error)
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from mcp_relay.models import ParameterDefinition

logger = logging.getLogger(__name__)

TYPE_MAP: dict[str, Any] = {
    "string": str,
    "number": float,
    "boolean": bool,
}


class ToolArguments(BaseModel):
    """Base for translated argument models. Unknown keys are forwarded; declared ones are checked strictly."""
    model_config = ConfigDict(extra="allow", strict=True)


def python_type_for(type_tag: str | None, param_name: str = "") -> Any:
    """Map a remote type tag to a Python type, falling back to Any."""
    python_type = TYPE_MAP.get((type_tag or "").lower())
    if python_type is None:
        logger.warning(
            f"Parameter '{param_name}' has unsupported type {type_tag!r}; accepting any value"
        )
        return Any
    return python_type


def translate(
    parameters: list[ParameterDefinition],
    model_name: str = "ToolArguments",
) -> type[ToolArguments]:
    """
    Build an argument model from remote parameter definitions.

    Field keys are the parameter names verbatim (as aliases), since the
    remote call expects the exact keys it declared.
    """
    fields: dict[str, Any] = {}
    seen: set[str] = set()

    for index, param in enumerate(parameters):
        if param.name in seen:
            logger.warning(f"Duplicate parameter '{param.name}' in {model_name}; keeping the first")
            continue
        seen.add(param.name)

        python_type = python_type_for(param.type, param.name)
        if param.required:
            info = Field(..., alias=param.name, description=param.description)
        else:
            info = Field(default=None, alias=param.name, description=param.description)
        fields[f"arg_{index}"] = (python_type, info)

    return create_model(_model_name(model_name), __base__=ToolArguments, **fields)


def input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON schema for a translated model, keyed by the remote parameter names."""
    schema = model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("properties", {})
    schema["type"] = "object"
    return schema


def validate_arguments(model: type[BaseModel], arguments: dict[str, Any] | None) -> dict[str, Any]:
    """
    Check an argument map against a translated model.

    Returns the arguments unchanged; raises ValueError with a readable
    message when they do not fit.
    """
    arguments = arguments or {}
    try:
        model.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValueError(f"Invalid arguments: {problems}") from e
    return arguments


def _model_name(name: str) -> str:
    cleaned = re.sub(r"\W", "_", name) or "ToolArguments"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned
