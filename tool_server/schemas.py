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
from typing import List

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

from .errors import ToolError


def text_block(text: str) -> types.TextContent:
    return types.TextContent(type="text", text=text)


class ToolResult(BaseModel):
    """Uniform success envelope: an ordered list of typed content blocks."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[types.TextContent]
    is_error: bool = Field(False, alias="isError")

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content)

    def to_call_result(self) -> types.CallToolResult:
        return types.CallToolResult(content=list(self.content), isError=self.is_error)


def error_result(err: ToolError) -> types.CallToolResult:
    """A failed call: the message as text, the typed error as structured content."""
    return types.CallToolResult(
        content=[text_block(err.message)],
        structuredContent=err.to_error_data(),
        isError=True,
    )
