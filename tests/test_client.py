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
import os
import sys

import pytest

from tool_server.client import ToolClient
from tool_server.errors import InvalidArguments, SubjectNotFound, ToolExecutionError, ToolNotFound

ECHO_SERVER = os.path.join(os.path.dirname(os.path.abspath(__file__)), "echo_server.py")


def run_with_client(fn):
    async def runner():
        async with ToolClient([sys.executable, ECHO_SERVER]) as client:
            return await fn(client)

    return asyncio.run(runner())


def test_call_tool_over_process_boundary():
    async def scenario(client):
        result = await client.call_tool("echo", {"text": "hello from the parent"})
        return result

    result = run_with_client(scenario)
    assert result.content[0].type == "text"
    assert result.text == "hello from the parent"


def test_structured_result_round_trip():
    async def scenario(client):
        return await client.call_tool_json("patient", {"patient_id": "p1"})

    assert run_with_client(scenario) == {"age": 34, "history": ["asthma"], "id": "p1"}


def test_typed_errors_are_rebuilt():
    async def scenario(client):
        errors = []
        for name, args in [
            ("nope", {}),
            ("echo", {}),
            ("patient", {"patient_id": "p9"}),
            ("boom", {}),
        ]:
            try:
                await client.call_tool(name, args)
            except Exception as e:
                errors.append(e)
        # the server survives every failure
        errors.append(await client.call_tool_text("echo", {"text": "ok"}))
        return errors

    not_found, invalid, missing, failed, ok = run_with_client(scenario)
    assert isinstance(not_found, ToolNotFound) and not_found.name == "nope"
    assert isinstance(invalid, InvalidArguments) and invalid.field == "text"
    assert isinstance(missing, SubjectNotFound) and missing.subject_id == "p9"
    assert isinstance(failed, ToolExecutionError) and failed.message == "handler blew up"
    assert ok == "ok"


def test_concurrent_callers_get_their_own_responses():
    async def scenario(client):
        return await asyncio.gather(
            client.call_tool_text("slow", {"delay": 0.05}),
            client.call_tool_text("echo", {"text": "second"}),
            client.call_tool_text("slow", {"delay": 0}),
        )

    assert run_with_client(scenario) == ["slept 0.05", "second", "slept 0"]


def test_list_tools():
    async def scenario(client):
        return await client.list_tools()

    tools = {t["name"]: t for t in run_with_client(scenario)}
    assert set(tools) == {"echo", "patient", "slow", "boom"}
    assert tools["echo"]["description"] == "Return the text unchanged"


def test_request_before_start():
    client = ToolClient([sys.executable, ECHO_SERVER])
    with pytest.raises(RuntimeError):
        asyncio.run(client.call_tool("echo", {"text": "x"}))
