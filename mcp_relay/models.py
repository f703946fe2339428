"""Definitions served by the remote backend."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Definition(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class ParameterDefinition(_Definition):
    """A single tool parameter. `type` is one of string/number/boolean, anything else is untyped."""
    name: str
    description: str | None = None
    type: str | None = None
    required: bool = False


class ToolDefinition(_Definition):
    id: str = ""
    name: str
    slug: str = Field(description="Stable remote invocation key, unique within a server")
    description: str | None = None
    parameters: list[ParameterDefinition] = Field(default_factory=list)


class ResourceDefinition(_Definition):
    name: str
    uri: str
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class PromptArgumentDefinition(_Definition):
    name: str
    description: str | None = None
    required: bool = False


class PromptDefinition(_Definition):
    name: str
    description: str | None = None
    arguments: list[PromptArgumentDefinition] = Field(default_factory=list)


class ServerDefinition(_Definition):
    id: str
    name: str
    description: str | None = None
    tools: list[ToolDefinition] = Field(default_factory=list)
    resources: list[ResourceDefinition] = Field(default_factory=list)
    prompts: list[PromptDefinition] = Field(default_factory=list)
