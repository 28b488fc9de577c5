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
import asyncio
import json
import logging
import os
import sys
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional, Sequence

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.stdio import stdio_client

from .errors import error_from_data
from .schemas import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = (sys.executable, "-m", "tool_server.main")


class ToolClient:
    """
    MCP client for a tool server child process on stdio.

    Calls are serialized: concurrent callers queue on a lock, so at most one
    tool call is in flight. Failed calls are re-raised as the typed ToolError
    named by the result's structured content.

        async with ToolClient() as client:
            text = await client.call_tool_text("get_similar_prescriptions", {...})

    Enter and leave the context from the same task.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        self.command = list(command)
        self.env = env
        self.cwd = cwd
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None
        self._lock: Optional[asyncio.Lock] = None

    async def start(self):
        if self._session is not None:
            return
        env = dict(os.environ)
        if self.env:
            env.update(self.env)
        params = StdioServerParameters(command=self.command[0], args=self.command[1:], env=env, cwd=self.cwd)
        logger.info(f"Starting tool server: {' '.join(self.command)}")

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            info = await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        logger.info(f"Connected to {info.serverInfo.name} (protocol {info.protocolVersion})")
        self._stack, self._session = stack, session
        self._lock = asyncio.Lock()

    async def close(self):
        if self._stack is None:
            return
        stack, self._stack, self._session = self._stack, None, None
        await stack.aclose()
        logger.info("Tool server connection closed")

    async def __aenter__(self) -> "ToolClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("Tool client is not started")
        return self._session

    async def list_tools(self) -> List[Dict[str, Any]]:
        session = self._require_session()
        result = await session.list_tools()
        return [t.model_dump(exclude_none=True) for t in result.tools]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Call one tool; raises the typed ToolError when the server reports a failure."""
        session = self._require_session()
        async with self._lock:
            result = await session.call_tool(name, arguments or {})
        blocks = [block for block in result.content if isinstance(block, types.TextContent)]
        if result.isError:
            message = "\n".join(block.text for block in blocks)
            raise error_from_data(message, result.structuredContent)
        return ToolResult(content=blocks)

    async def call_tool_text(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        return (await self.call_tool(name, arguments)).text

    async def call_tool_json(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        return json.loads(await self.call_tool_text(name, arguments))
