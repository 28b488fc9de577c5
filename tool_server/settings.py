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
import logging
import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "configs", "tool_server.yaml"
)


class EmbeddingSettings(BaseModel):
    provider: Literal["sentence_transformers", "inference_api"] = "sentence_transformers"
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    api_url: Optional[str] = None
    api_token: Optional[str] = None
    device: Optional[str] = None
    timeout: float = Field(30.0, gt=0)


class RetrievalSettings(BaseModel):
    top_k: int = Field(2, ge=1)
    timeout: Optional[float] = Field(None, gt=0)


class ToolServerSettings(BaseModel):
    database_url: str = "sqlite:///data/prescriptions.db"
    log_level: str = "INFO"
    log_dir: str = "logs"
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    doctors: Dict[str, str] = Field(default_factory=dict)


def load_settings(path: Optional[str] = None) -> ToolServerSettings:
    """
    Load the tool server config.

    Precedence: ENV > YAML > defaults. ENV keys:
      RX_TOOL_SERVER_CONFIG  path to the YAML file
      RX_DATABASE_URL        database_url
      RX_EMBEDDING_PROVIDER  embedding.provider
      RX_EMBEDDING_MODEL     embedding.model_name
      HF_API_TOKEN           embedding.api_token
      RX_LOG_LEVEL           log_level
    """
    path = path or os.environ.get("RX_TOOL_SERVER_CONFIG") or DEFAULT_CONFIG_PATH
    raw: dict = {}
    if os.path.isfile(path):
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.debug(f"No tool server config at {path}, using defaults")

    raw.setdefault("embedding", {})
    env_overrides = {
        "RX_DATABASE_URL": (raw, "database_url"),
        "RX_LOG_LEVEL": (raw, "log_level"),
        "RX_EMBEDDING_PROVIDER": (raw["embedding"], "provider"),
        "RX_EMBEDDING_MODEL": (raw["embedding"], "model_name"),
        "HF_API_TOKEN": (raw["embedding"], "api_token"),
    }
    for env_key, (section, key) in env_overrides.items():
        value = os.environ.get(env_key)
        if value:
            section[key] = value

    return ToolServerSettings.model_validate(raw)
