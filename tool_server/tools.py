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
The prescription tool catalogue.

Tool names, parameter schemas and result shapes are a contract with every
caller of the tool server; changing any of them is a breaking change.
"""
import logging
from typing import Dict, Optional

from pydantic import ValidationError

from records.models import CaseRecord, Subject
from records.store import RecordStore, new_case_record_id
from retrieval.similar_cases import SimilarCaseRetriever
from .errors import InvalidArguments, RecordNotFound, SubjectNotFound
from .registry import ParamSpec, ToolRegistry

logger = logging.getLogger(__name__)

NO_HISTORY = "No history available."
PRESCRIPTION_LOGGED = "Prescription logged."
UNKNOWN_DOCTOR = "Unknown Doctor"

STRING = ParamSpec("string")
OPTIONAL_STRING = ParamSpec("string", required=False)


def register_prescription_tools(
    registry: ToolRegistry,
    store: RecordStore,
    retriever: SimilarCaseRetriever,
    doctors: Optional[Dict[str, str]] = None,
) -> ToolRegistry:
    doctors = dict(doctors or {})

    @registry.tool("get_all_patients", {}, title="Get All Patients", description="List every patient in the database")
    async def get_all_patients():
        return await store.find_all_subjects()

    @registry.tool(
        "create_or_update_patient",
        {
            "id": STRING,
            "name": STRING,
            "age": ParamSpec("number"),
            "email": STRING,
            "diagnosis": STRING,
            "history": ParamSpec("array"),
            "selected_doctor": OPTIONAL_STRING,
        },
        title="Create or Update Patient",
        description="Create a new patient or update an existing one",
    )
    async def create_or_update_patient(**fields):
        try:
            subject = Subject(**fields)
        except ValidationError as e:
            err = e.errors()[0]
            field = str(err["loc"][0]) if err.get("loc") else None
            raise InvalidArguments(field, f"Invalid argument '{field}': {err['msg']}") from e
        return await store.upsert_subject(subject)

    @registry.tool(
        "get_doctor_patients",
        {"doctor_id": STRING},
        title="Get Doctor's Patients",
        description="Get all patients assigned to a specific doctor",
    )
    async def get_doctor_patients(doctor_id: str):
        return await store.find_subjects_by_doctor(doctor_id)

    @registry.tool(
        "get_patient_by_id",
        {"patient_id": STRING},
        title="Get Patient by ID",
        description="Fetch a single patient record",
    )
    async def get_patient_by_id(patient_id: str):
        subject = await store.find_subject_by_id(patient_id)
        if subject is None:
            raise SubjectNotFound(patient_id)
        return subject

    @registry.tool(
        "get_patient_prescriptions",
        {"patient_id": STRING},
        title="Get Patient Prescriptions",
        description="Get all prescriptions for a specific patient, newest first",
    )
    async def get_patient_prescriptions(patient_id: str):
        return await store.find_all_case_records(patient_id=patient_id, newest_first=True)

    @registry.tool(
        "get_prescription_by_id",
        {"prescription_id": STRING},
        title="Get Prescription by ID",
        description="Get a specific prescription by its ID",
    )
    async def get_prescription_by_id(prescription_id: str):
        record = await store.find_case_record_by_id(prescription_id)
        if record is None:
            raise RecordNotFound(prescription_id)
        return record

    @registry.tool(
        "get_prescription_history",
        {"patient_id": OPTIONAL_STRING},
        title="Get Prescription History",
        description="Past prescriptions as one line per entry, optionally for one patient",
    )
    async def get_prescription_history(patient_id: Optional[str] = None):
        records = await store.find_all_case_records(patient_id=patient_id or None, newest_first=True)
        if not records:
            return NO_HISTORY
        return "\n".join(r.history_line() for r in records)

    @registry.tool(
        "add_prescription",
        {"patient_id": STRING, "symptoms": STRING, "prescription": STRING, "doctor_id": STRING},
        title="Add Prescription",
        description="Store a new prescription entry",
    )
    async def add_prescription(patient_id: str, symptoms: str, prescription: str, doctor_id: str):
        subject = await store.find_subject_by_id(patient_id)
        if subject is None:
            raise SubjectNotFound(patient_id)
        record = CaseRecord(
            id=new_case_record_id(),
            patient_id=patient_id,
            patient_name=subject.name,
            doctor_id=doctor_id,
            doctor_name=doctors.get(doctor_id, UNKNOWN_DOCTOR),
            age=subject.age,
            diagnosis=subject.diagnosis,
            history=list(subject.history),
            symptoms=symptoms,
            prescription=prescription,
        )
        await store.append_case_record(record)
        return PRESCRIPTION_LOGGED

    @registry.tool(
        "get_similar_prescriptions",
        {"patient_id": STRING, "symptoms": STRING},
        title="Get Similar Prescriptions",
        description="Top similar past prescriptions ranked by embedding similarity",
    )
    async def get_similar_prescriptions(patient_id: str, symptoms: str):
        return await retriever.get_similar_cases(patient_id, symptoms)

    @registry.tool(
        "get_doctor_past_appointments",
        {"doctor_id": STRING},
        title="Get Doctor Past Appointments",
        description="Get all past appointments (prescriptions) for a specific doctor",
    )
    async def get_doctor_past_appointments(doctor_id: str):
        return await store.find_case_records_by_doctor(doctor_id)

    logger.info(f"Registered {len(registry)} prescription tools")
    return registry
