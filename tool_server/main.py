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
import argparse
import asyncio
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

import yaml
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from records.store import RecordStore
from retrieval.embeddings import build_embedding_provider
from retrieval.similar_cases import SimilarCaseRetriever
from .config.logging import configure_logging
from .errors import ToolError, ToolExecutionError
from .registry import ToolRegistry
from .schemas import error_result
from .settings import ToolServerSettings, load_settings
from .tools import register_prescription_tools

SERVER_NAME = "prescription-tools"
SERVER_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


class ToolServer:
    """
    Serves a ToolRegistry as an MCP server.

    Tool calls are handled one at a time in arrival order. A failing call is
    answered with an error result (``isError: true``) whose structured content
    names the error kind; it never stops the server.
    """

    def __init__(self, registry: ToolRegistry, on_close: Optional[Callable[[], None]] = None):
        self.registry = registry
        self._on_close = on_close
        self._call_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.server = Server(SERVER_NAME)

        @self.server.list_tools()
        async def list_tools() -> List[types.Tool]:
            return self.tool_definitions()

        # argument checking is the registry's job, so the typed InvalidArguments reaches the caller
        @self.server.call_tool(validate_input=False)
        async def call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
            return await self.call(name, arguments)

    @classmethod
    def from_settings(cls, settings: ToolServerSettings) -> "ToolServer":
        provider = build_embedding_provider(settings)
        store = RecordStore(settings.database_url)
        store.open()
        retriever = SimilarCaseRetriever(
            store, provider, top_k=settings.retrieval.top_k, timeout=settings.retrieval.timeout
        )
        registry = register_prescription_tools(ToolRegistry(), store, retriever, doctors=settings.doctors)
        return cls(registry, on_close=store.close)

    def close(self):
        if self._on_close is not None:
            self._on_close()
            self._on_close = None

    def tool_definitions(self) -> List[types.Tool]:
        return [types.Tool(**d) for d in self.registry.list_tools()]

    def _lock(self) -> asyncio.Lock:
        # an asyncio.Lock is tied to one event loop
        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            self._call_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._call_lock

    async def call(self, name: str, arguments: Any) -> types.CallToolResult:
        async with self._lock():
            try:
                result = await self.registry.call_tool(name, arguments)
                return result.to_call_result()
            except ToolError as e:
                return error_result(e)
            except Exception as e:
                # should not happen: call_tool already turns handler failures into ToolErrors
                logger.error(f"Unhandled error while calling {name}: {e}", exc_info=True)
                return error_result(ToolExecutionError(f"Internal error: {e}"))

    async def run_stdio(self):
        logger.info(f"{SERVER_NAME} {SERVER_VERSION} running on stdio")
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
        finally:
            self.close()
            logger.info("Input closed, shutting down")


def main(argv=None):
    p = argparse.ArgumentParser(description="Prescription tool server (MCP over stdio)")
    p.add_argument("--config", default=None, help="Path to the tool server YAML config")
    args = p.parse_args(argv)

    try:
        settings = load_settings(args.config)
        configure_logging(settings.log_dir, settings.log_level)
        server = ToolServer.from_settings(settings)
    except (ToolError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error(f"Tool server failed to start: {e}")
        sys.exit(1)
    asyncio.run(server.run_stdio())


if __name__ == "__main__":
    main()
