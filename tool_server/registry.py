# Copyright (c) MONAI Consortium
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#     http://www.apache.org/licenses/LICENSE-2.0
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Named, schema-validated tools.

A tool is registered with a name, an input schema (parameter name -> ParamSpec)
and an async handler. ``call_tool`` validates the arguments, runs the handler
and wraps whatever it returns into a ToolResult made of text blocks, so the
result can cross a process boundary unchanged.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError, create_model

from .errors import DuplicateToolError, InvalidArguments, ToolError, ToolExecutionError, ToolNotFound
from .schemas import ToolResult, text_block

logger = logging.getLogger(__name__)

ParamType = Literal["string", "number", "array"]

_PYDANTIC_TYPES = {
    "string": StrictStr,
    "number": Union[StrictInt, StrictFloat],
    "array": List[StrictStr],
}

_JSON_SCHEMA_TYPES = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "array": {"type": "array", "items": {"type": "string"}},
}

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class ParamSpec:
    type: ParamType
    required: bool = True

    def __post_init__(self):
        if self.type not in _PYDANTIC_TYPES:
            raise ValueError(f"Unsupported parameter type: {self.type}")


def canonical_json(data: Any) -> str:
    """Stable text encoding for structured results: sorted keys, two-space indent."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str)


def to_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    text = value if isinstance(value, str) else canonical_json(value)
    return ToolResult(content=[text_block(text)])


class Tool:
    def __init__(self, name: str, schema: Mapping[str, ParamSpec], handler: Handler, title: str = "", description: str = ""):
        self.name = name
        self.schema = dict(schema)
        self.handler = handler
        self.title = title or name
        self.description = description
        fields: Dict[str, Tuple[Any, Any]] = {}
        for param, spec in self.schema.items():
            py_type = _PYDANTIC_TYPES[spec.type]
            fields[param] = (py_type, ...) if spec.required else (Optional[py_type], None)
        self._model = create_model(
            f"{name}_arguments",
            __config__=ConfigDict(extra="forbid"),
            **fields,
        )

    def validate(self, args: Any) -> Dict[str, Any]:
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise InvalidArguments(None, f"Arguments for {self.name} must be an object")
        try:
            parsed = self._model.model_validate(args)
        except ValidationError as e:
            err = e.errors()[0]
            field = str(err["loc"][0]) if err.get("loc") else None
            if err["type"] == "missing":
                message = f"Missing required argument '{field}'"
            elif err["type"] == "extra_forbidden":
                message = f"Unknown argument '{field}'"
            else:
                message = f"Invalid argument '{field}': {err['msg']}"
            raise InvalidArguments(field, message) from e
        # optional parameters the caller left out are not passed to the handler
        return parsed.model_dump(exclude_unset=True)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": {p: dict(_JSON_SCHEMA_TYPES[s.type]) for p, s in self.schema.items()},
                "required": [p for p, s in self.schema.items() if s.required],
                "additionalProperties": False,
            },
        }


class ToolRegistry:
    """
    Registering a name twice raises DuplicateToolError; the first registration
    stays in place.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register_tool(
        self,
        name: str,
        schema: Mapping[str, ParamSpec],
        handler: Handler,
        title: str = "",
        description: str = "",
    ) -> Tool:
        if name in self._tools:
            raise DuplicateToolError(f"Tool already registered: {name}")
        tool = Tool(name, schema, handler, title=title, description=description)
        self._tools[name] = tool
        logger.debug(f"Registered tool {name}")
        return tool

    def tool(self, name: str, schema: Optional[Mapping[str, ParamSpec]] = None, title: str = "", description: str = ""):
        def decorator(fn: Handler) -> Handler:
            self.register_tool(name, schema or {}, fn, title=title, description=description)
            return fn

        return decorator

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [t.describe() for t in self._tools.values()]

    async def call_tool(self, name: str, args: Any = None) -> ToolResult:
        # Received
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"Call to unknown tool {name}")
            raise ToolNotFound(name)

        kwargs = tool.validate(args)
        # Validated -> Executing
        logger.debug(f"Executing tool {name}")
        start = time.time()
        try:
            value = await tool.handler(**kwargs)
        except ToolError as e:
            logger.info(f"Tool {name} failed with {e.kind}: {e.message}")
            raise
        except Exception as e:
            logger.error(f"Tool {name} raised: {e}", exc_info=True)
            raise ToolExecutionError(str(e)) from e
        result = to_result(value)
        logger.info(f"Tool {name} succeeded in {(time.time() - start) * 1000:.0f} ms")
        return result
