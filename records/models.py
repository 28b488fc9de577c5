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
from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def format_age(age: Union[int, float]) -> str:
    """Render an age the way it reads in a chart: ``34`` rather than ``34.0``."""
    if isinstance(age, float) and age.is_integer():
        return str(int(age))
    return str(age)


class Subject(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    age: Union[int, float]
    email: str = ""
    diagnosis: str
    history: List[str] = Field(default_factory=list)
    selected_doctor: Optional[str] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if not v.strip():
            raise ValueError("Patient id cannot be empty or whitespace only")
        return v


class CaseRecord(BaseModel):
    """
    One clinical encounter. The age/diagnosis/history fields are a snapshot of
    the patient at the time of the encounter and are never rewritten.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    patient_name: str
    doctor_id: str
    doctor_name: str
    age: Union[int, float]
    diagnosis: str
    history: List[str]
    symptoms: str
    prescription: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        # naive times are taken as UTC; every stored timestamp is UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def embedding_text(self) -> str:
        return " ".join(
            [format_age(self.age), self.diagnosis, " ".join(self.history), self.symptoms, self.prescription]
        )

    def summary_line(self) -> str:
        return f"Patient: {self.patient_id} | Symptoms: {self.symptoms} | Prescription: {self.prescription}"

    def history_line(self) -> str:
        return (
            f"Patient: {self.patient_id} | Age: {format_age(self.age)} | Diagnosis: {self.diagnosis} | "
            f"History: {', '.join(self.history)} | Symptoms: {self.symptoms} | Prescription: {self.prescription}"
        )


def query_text(subject: Subject, symptoms: str) -> str:
    """Canonical text for a new case, in the same field order as CaseRecord.embedding_text."""
    return " ".join([format_age(subject.age), subject.diagnosis, " ".join(subject.history), symptoms])
