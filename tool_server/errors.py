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
Typed failures shared by the tool server, the record store and the retriever.

Every ToolError knows how to describe itself as the structured content of an
MCP error result (``isError: true``), and ``error_from_data`` turns that
description back into the matching exception on the client side.
"""
from typing import Any, Dict, Optional


class ToolError(Exception):
    kind = "ToolError"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_error_data(self) -> Dict[str, Any]:
        return {"kind": self.kind}


class SubjectNotFound(ToolError):
    kind = "SubjectNotFound"

    def __init__(self, subject_id: str):
        super().__init__(f"Patient not found: {subject_id}")
        self.subject_id = subject_id

    def to_error_data(self) -> Dict[str, Any]:
        return {"kind": self.kind, "subject_id": self.subject_id}


class RecordNotFound(ToolError):
    kind = "RecordNotFound"

    def __init__(self, record_id: str):
        super().__init__(f"Prescription not found: {record_id}")
        self.record_id = record_id

    def to_error_data(self) -> Dict[str, Any]:
        return {"kind": self.kind, "record_id": self.record_id}


class InvalidArguments(ToolError):
    kind = "InvalidArguments"

    def __init__(self, field: Optional[str], message: str):
        super().__init__(message)
        self.field = field

    def to_error_data(self) -> Dict[str, Any]:
        return {"kind": self.kind, "field": self.field}


class ToolNotFound(ToolError):
    kind = "ToolNotFound"

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name

    def to_error_data(self) -> Dict[str, Any]:
        return {"kind": self.kind, "name": self.name}


class EmbeddingUnavailable(ToolError):
    kind = "EmbeddingUnavailable"


class StoreUnavailable(ToolError):
    kind = "StoreUnavailable"


class ToolExecutionError(ToolError):
    """Wraps an unanticipated handler failure; carries the original message."""

    kind = "ToolExecutionError"


class DuplicateToolError(ValueError):
    """Raised at registration time when a tool name is already taken."""


_KINDS = {
    cls.kind: cls
    for cls in (
        SubjectNotFound,
        RecordNotFound,
        InvalidArguments,
        ToolNotFound,
        EmbeddingUnavailable,
        StoreUnavailable,
        ToolExecutionError,
    )
}


def error_from_data(message: str, data: Optional[Dict[str, Any]]) -> ToolError:
    """Rebuild the typed exception described by an error result's structured content."""
    data = data or {}
    kind = data.get("kind")
    if kind == "SubjectNotFound":
        err = SubjectNotFound(data.get("subject_id", ""))
    elif kind == "RecordNotFound":
        err = RecordNotFound(data.get("record_id", ""))
    elif kind == "InvalidArguments":
        err = InvalidArguments(data.get("field"), message)
    elif kind == "ToolNotFound":
        err = ToolNotFound(data.get("name", ""))
    elif kind in _KINDS:
        err = _KINDS[kind](message)
    else:
        err = ToolError(message)
    # keep the server's wording
    err.message = message
    err.args = (message,)
    return err
