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
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from retrieval.similar_cases import NO_SIMILAR_CASES
from tool_server.client import ToolClient
from .base_agent import Agent


def compose_prescription_prompt(patient: Dict[str, Any], symptoms: str, similar_text: Optional[str]) -> str:
    """
    Build the generation prompt from the patient chart, the new symptoms and the
    ranked similar-case text. A blank similar-case block is replaced by the
    fallback line so the prompt never carries an empty section.
    """
    similar = (similar_text or "").strip() or NO_SIMILAR_CASES
    history = ", ".join(patient.get("history") or []) or "None recorded"
    return f"""
You are a licensed doctor. Based on the following patient details and symptoms, write a professional, short, and safe prescription using only generic medicine names.

Patient Details:
- Age: {patient.get("age")}
- Diagnosis: {patient.get("diagnosis")}
- History: {history}

Current Symptoms: {symptoms}

Relevant Past Prescriptions:
{similar}

Start the prescription directly. Do not include disclaimers or introductions.
""".strip()


class PrescriptionAgent(Agent):
    """
    Retrieval-augmented prescription drafting over the tool server.

    Config keys (in configs/prescription_agent.yaml):
      - agent_prompt: system prompt instructions
      - max_prompt_tokens: warn when the composed prompt is longer
      - ctx_length: completion token budget
      - model_name / llm_url: OpenAI-compatible endpoint
    """

    def __init__(self, settings_path, tools: ToolClient, client: Optional[AsyncOpenAI] = None):
        super().__init__(settings_path, client=client)
        self._logger = logging.getLogger(__name__)
        self.tools = tools

    async def generate_prescription(
        self, patient_id: str, symptoms: str, final_prescription: Optional[str] = None
    ) -> str:
        if not patient_id or not symptoms:
            raise ValueError("patient_id and symptoms are required")
        # a clinician-edited prescription is used as-is
        if final_prescription:
            return final_prescription

        patient = await self.tools.call_tool_json("get_patient_by_id", {"patient_id": patient_id})
        similar_text = await self.tools.call_tool_text(
            "get_similar_prescriptions", {"patient_id": patient_id, "symptoms": symptoms}
        )
        prompt = compose_prescription_prompt(patient, symptoms, similar_text)
        self._logger.info(f"Generating prescription for patient {patient_id}")
        self._logger.debug(f"Final prompt:\n{prompt}")
        return await self.complete(prompt)

    async def save_prescription(self, patient_id: str, symptoms: str, prescription: str, doctor_id: str) -> str:
        if not patient_id or not symptoms or not prescription:
            raise ValueError("patient_id, symptoms and prescription are required")
        return await self.tools.call_tool_text(
            "add_prescription",
            {"patient_id": patient_id, "symptoms": symptoms, "prescription": prescription, "doctor_id": doctor_id},
        )

    async def process_request(self, patient_id: str, symptoms: str, final_prescription: Optional[str] = None):
        prescription = await self.generate_prescription(patient_id, symptoms, final_prescription)
        return {"name": "PrescriptionAgent", "generated": prescription, "prescription": prescription}
