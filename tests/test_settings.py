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
import sys

import pytest
from pydantic import ValidationError

from tool_server.config.logging import build_logging_config
from tool_server.settings import DEFAULT_CONFIG_PATH, load_settings

ENV_KEYS = ["RX_TOOL_SERVER_CONFIG", "RX_DATABASE_URL", "RX_EMBEDDING_PROVIDER", "RX_EMBEDDING_MODEL", "HF_API_TOKEN", "RX_LOG_LEVEL"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_repository_config_loads():
    settings = load_settings(DEFAULT_CONFIG_PATH)
    assert settings.retrieval.top_k == 2
    assert settings.embedding.provider == "sentence_transformers"
    assert settings.doctors["doctor1"] == "Dr. Smith - Cardiologist"


def test_defaults_when_file_missing(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yaml"))
    assert settings.database_url == "sqlite:///data/prescriptions.db"
    assert settings.retrieval.timeout is None
    assert settings.doctors == {}


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "server.yaml"
    path.write_text("database_url: sqlite:///from-yaml.db\nembedding:\n  provider: sentence_transformers\n")
    monkeypatch.setenv("RX_TOOL_SERVER_CONFIG", str(path))
    monkeypatch.setenv("RX_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("RX_EMBEDDING_PROVIDER", "inference_api")
    monkeypatch.setenv("HF_API_TOKEN", "hf_secret")

    settings = load_settings()
    assert settings.database_url == "sqlite://"
    assert settings.embedding.provider == "inference_api"
    assert settings.embedding.api_token == "hf_secret"


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "server.yaml"
    path.write_text("retrieval:\n  top_k: 0\n")
    with pytest.raises(ValidationError):
        load_settings(str(path))


def test_logging_keeps_stdout_free(tmp_path):
    config = build_logging_config(str(tmp_path / "logs"), "debug")
    assert config["handlers"]["console"]["stream"] is sys.stderr
    assert config["loggers"][""]["level"] == "DEBUG"
    assert (tmp_path / "logs").is_dir()
