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
from datetime import datetime, timedelta, timezone

import pytest

from conftest import BASE_TIME, make_record, make_subject
from records.models import CaseRecord
from records.store import RecordStore
from tool_server.errors import StoreUnavailable, SubjectNotFound


def test_subject_round_trip(store):
    subject = make_subject("p1", history=["asthma", "penicillin allergy", "appendectomy"], selected_doctor="doctor2")
    asyncio.run(store.upsert_subject(subject))
    fetched = asyncio.run(store.find_subject_by_id("p1"))
    assert fetched == subject
    assert fetched.history == ["asthma", "penicillin allergy", "appendectomy"]


def test_missing_subject_is_none(store):
    assert asyncio.run(store.find_subject_by_id("nobody")) is None


def test_upsert_updates_existing_subject(store):
    asyncio.run(store.upsert_subject(make_subject("p1")))
    asyncio.run(store.upsert_subject(make_subject("p1", diagnosis="bronchitis", selected_doctor="doctor1")))
    all_subjects = asyncio.run(store.find_all_subjects())
    assert len(all_subjects) == 1
    assert all_subjects[0].diagnosis == "bronchitis"
    assert [s.id for s in asyncio.run(store.find_subjects_by_doctor("doctor1"))] == ["p1"]
    assert asyncio.run(store.find_subjects_by_doctor("doctor2")) == []


def test_case_record_round_trip(store, subjects):
    record = make_record(subjects["p2"], "headache, blood pressure 160/100", "Amlodipine 5 mg once daily", n=1)
    stored = asyncio.run(store.append_case_record(record))
    assert stored == record

    fetched = asyncio.run(store.find_all_case_records())
    assert fetched == [record]
    assert fetched[0].history == ["type 2 diabetes", "smoker"]
    assert fetched[0].timestamp == BASE_TIME + timedelta(minutes=1)
    assert asyncio.run(store.find_case_record_by_id(record.id)) == record


def test_naive_timestamp_round_trip(store, subjects):
    fields = make_record(subjects["p1"], "cough", "rest and fluids").model_dump()
    fields.update(id="naive", timestamp=datetime(2024, 3, 1, 9, 30))
    record = CaseRecord(**fields)
    assert record.timestamp == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    asyncio.run(store.append_case_record(record))
    fetched = asyncio.run(store.find_case_record_by_id("naive"))
    assert fetched == record


def test_offset_timestamp_is_kept_as_utc(store, subjects):
    plus_two = timezone(timedelta(hours=2))
    fields = make_record(subjects["p1"], "cough", "rest and fluids").model_dump()
    fields["timestamp"] = datetime(2024, 3, 1, 11, 30, tzinfo=plus_two)
    record = CaseRecord(**fields)
    assert record.timestamp.tzinfo == timezone.utc
    assert record.timestamp.hour == 9

    asyncio.run(store.append_case_record(record))
    assert asyncio.run(store.find_case_record_by_id(record.id)) == record


def test_snapshot_survives_subject_edit(store, subjects):
    record = make_record(subjects["p1"], "cough", "rest and fluids")
    asyncio.run(store.append_case_record(record))
    asyncio.run(store.upsert_subject(make_subject("p1", age=35, diagnosis="pneumonia", history=["asthma", "pneumonia"])))

    fetched = asyncio.run(store.find_all_case_records(patient_id="p1"))[0]
    assert fetched.age == 34
    assert fetched.diagnosis == "flu"
    assert fetched.history == ["asthma"]


def test_append_requires_existing_subject(store):
    orphan = make_record(make_subject("ghost"), "fever", "paracetamol")
    with pytest.raises(SubjectNotFound):
        asyncio.run(store.append_case_record(orphan))
    assert asyncio.run(store.find_all_case_records()) == []


def test_duplicate_record_id_gets_suffix(store, subjects):
    first = asyncio.run(store.append_case_record(make_record(subjects["p1"], "cough", "syrup", n=0)))
    second = asyncio.run(store.append_case_record(make_record(subjects["p1"], "fever", "paracetamol", n=0)))
    assert first.id == "prescription-0"
    assert second.id == "prescription-0-1"
    assert len(asyncio.run(store.find_all_case_records())) == 2


def test_record_ordering_and_filters(store, subjects):
    older = make_record(subjects["p1"], "cough", "syrup", n=5, doctor_id="doctor2")
    newer = make_record(subjects["p1"], "fever", "paracetamol", n=10, doctor_id="doctor1")
    other = make_record(subjects["p2"], "headache", "amlodipine", n=7, doctor_id="doctor1")
    # written out of time order on purpose
    for r in (newer, older, other):
        asyncio.run(store.append_case_record(r))

    assert [r.id for r in asyncio.run(store.find_all_case_records())] == [newer.id, older.id, other.id]
    assert [r.id for r in asyncio.run(store.find_all_case_records(newest_first=True))] == [newer.id, other.id, older.id]
    assert [r.id for r in asyncio.run(store.find_all_case_records(patient_id="p1", newest_first=True))] == [newer.id, older.id]
    assert [r.id for r in asyncio.run(store.find_case_records_by_doctor("doctor1"))] == [newer.id, other.id]


def test_store_must_be_open():
    closed = RecordStore("sqlite://")
    with pytest.raises(StoreUnavailable):
        asyncio.run(closed.find_subject_by_id("p1"))


def test_file_backed_store_persists(tmp_path):
    url = f"sqlite:///{tmp_path / 'nested' / 'rx.db'}"
    first = RecordStore(url)
    first.open()
    asyncio.run(first.upsert_subject(make_subject("p1")))
    first.close()

    second = RecordStore(url)
    second.open()
    assert asyncio.run(second.find_subject_by_id("p1")) == make_subject("p1")
    second.close()
