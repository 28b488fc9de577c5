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
from datetime import datetime, timedelta, timezone

import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from records.models import CaseRecord, Subject
from records.store import RecordStore
from retrieval.embeddings import EmbeddingProvider

VOCAB = [
    "cough", "fever", "flu", "asthma", "headache", "pressure", "hypertension",
    "rash", "salbutamol", "paracetamol", "amlodipine", "ibuprofen",
]

BASE_TIME = datetime(2024, 3, 1, 9, 30, 0, 123456, tzinfo=timezone.utc)


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Bag-of-keywords vectors plus a constant bias term, so no vector is zero."""

    model_name = "keyword-test"

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    def _compute(self, text):
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            return {"error": "Model is currently loading"}
        words = text.lower().replace(",", " ").split()
        return [float(words.count(w)) for w in VOCAB] + [1.0]


def make_subject(subject_id="p1", **overrides):
    fields = dict(
        id=subject_id,
        name="Asha Rao",
        age=34,
        email="asha@example.com",
        diagnosis="flu",
        history=["asthma"],
    )
    fields.update(overrides)
    return Subject(**fields)


def make_record(subject, symptoms, prescription, n=0, doctor_id="doctor1"):
    return CaseRecord(
        id=f"prescription-{n}",
        patient_id=subject.id,
        patient_name=subject.name,
        doctor_id=doctor_id,
        doctor_name="Dr. Smith - Cardiologist",
        age=subject.age,
        diagnosis=subject.diagnosis,
        history=list(subject.history),
        symptoms=symptoms,
        prescription=prescription,
        timestamp=BASE_TIME + timedelta(minutes=n),
    )


@pytest.fixture
def store():
    s = RecordStore("sqlite://")
    s.open()
    yield s
    s.close()


@pytest.fixture
def provider():
    return KeywordEmbeddingProvider()


@pytest.fixture
def subjects(store):
    people = [
        make_subject("p1"),
        make_subject("p2", name="Tom Becker", age=58, diagnosis="hypertension", history=["type 2 diabetes", "smoker"]),
        make_subject("p3", name="Lena Ortiz", age=40, diagnosis="eczema", history=[]),
    ]
    for person in people:
        asyncio.run(store.upsert_subject(person))
    return {p.id: p for p in people}
