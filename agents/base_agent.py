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

from __future__ import annotations
from abc import ABC, abstractmethod

import asyncio
import logging
import os

import tiktoken
import yaml
from openai import AsyncOpenAI


class Agent(ABC):
    """
    Common functionality for agents that talk to an OpenAI-compatible chat
    endpoint. Each agent keeps at most one completion in flight.
    """

    def __init__(self, settings_path, client: AsyncOpenAI | None = None):
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")
        self._llm_lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

        self.load_settings(settings_path)

        self.tokenizer = tiktoken.get_encoding("cl100k_base")
        self.client = client or AsyncOpenAI(api_key=self.api_key, base_url=self.llm_url)

    def load_settings(self, settings_path):
        """
        Load YAML config and populate the most frequently accessed attributes.
        """
        with open(settings_path, 'r') as f:
            self.agent_settings = yaml.safe_load(f) or {}

        # Precedence: ENV > agent config > default
        # ENV keys:
        #   model_name: VLLM_MODEL_NAME
        #   llm_url:    VLLM_URL
        #   api key:    OPENAI_API_KEY
        self.description = self.agent_settings.get('description', '')
        self.max_prompt_tokens = self.agent_settings.get('max_prompt_tokens', 3000)
        self.ctx_length = self.agent_settings.get('ctx_length', 2048)
        self.temperature = self.agent_settings.get('temperature', 0.0)
        self.agent_prompt = self.agent_settings.get('agent_prompt', '').strip()
        self.model_name = (
            os.environ.get("VLLM_MODEL_NAME")
            or self.agent_settings.get('model_name')
            or 'llama3.2'
        )
        self.llm_url = (
            os.environ.get("VLLM_URL")
            or self.agent_settings.get('llm_url')
            or "http://localhost:8000/v1"
        )
        self.api_key = os.environ.get("OPENAI_API_KEY") or self.agent_settings.get('api_key') or "EMPTY"
        self._logger.debug(
            f"Agent config loaded. llm_url={self.llm_url}, model_name={self.model_name}"
        )

    async def complete(self, prompt: str, temperature: float | None = None) -> str:
        token_usage = self.calculate_token_usage(prompt)
        if token_usage > self.max_prompt_tokens:
            self._logger.warning(
                f"Prompt uses {token_usage} tokens, above max_prompt_tokens={self.max_prompt_tokens}"
            )
        messages = []
        if self.agent_prompt:
            messages.append({"role": "system", "content": self.agent_prompt})
        messages.append({"role": "user", "content": prompt})

        async with self._completion_lock():
            self._logger.debug(
                f"Sending chat request. Model={self.model_name}, prompt tokens={token_usage}"
            )
            completion = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=self.ctx_length,
            )
        response_text = completion.choices[0].message.content if completion.choices else ""
        return (response_text or "").strip()

    def _completion_lock(self) -> asyncio.Lock:
        # an asyncio.Lock is tied to one event loop
        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            self._llm_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._llm_lock

    def calculate_token_usage(self, text):
        return len(self.tokenizer.encode(text))

    @abstractmethod
    async def process_request(self, *args, **kwargs):
        pass
