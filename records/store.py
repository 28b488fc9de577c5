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
import logging
import os
import time
from datetime import timezone
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text, create_engine, make_url, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from tool_server.errors import StoreUnavailable, SubjectNotFound
from .models import CaseRecord, Subject

logger = logging.getLogger(__name__)

Base = declarative_base()


class PatientRow(Base):
    __tablename__ = "patients"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    age = Column(Float, nullable=False)
    email = Column(String, nullable=False, default="")
    diagnosis = Column(Text, nullable=False)
    history = Column(JSON, nullable=False)
    selected_doctor = Column(String, nullable=True, index=True)


class PrescriptionLogRow(Base):
    __tablename__ = "prescription_logs"

    # insertion order, used as the tie-break for equal timestamps
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    patient_id = Column(String, index=True, nullable=False)
    patient_name = Column(String, nullable=False)
    doctor_id = Column(String, index=True, nullable=False)
    doctor_name = Column(String, nullable=False)
    age = Column(Float, nullable=False)
    diagnosis = Column(Text, nullable=False)
    history = Column(JSON, nullable=False)
    symptoms = Column(Text, nullable=False)
    prescription = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False)


def _number(value: float):
    return int(value) if float(value).is_integer() else value


def _to_subject(row: PatientRow) -> Subject:
    return Subject(
        id=row.id,
        name=row.name,
        age=_number(row.age),
        email=row.email,
        diagnosis=row.diagnosis,
        history=list(row.history),
        selected_doctor=row.selected_doctor,
    )


def _to_record(row: PrescriptionLogRow) -> CaseRecord:
    return CaseRecord(
        id=row.id,
        patient_id=row.patient_id,
        patient_name=row.patient_name,
        doctor_id=row.doctor_id,
        doctor_name=row.doctor_name,
        age=_number(row.age),
        diagnosis=row.diagnosis,
        history=list(row.history),
        symptoms=row.symptoms,
        prescription=row.prescription,
        # SQLite drops tzinfo; everything is written as UTC
        timestamp=row.timestamp.replace(tzinfo=timezone.utc),
    )


def new_case_record_id() -> str:
    return f"prescription-{int(time.time() * 1000)}"


class RecordStore:
    """
    Patient and prescription-log persistence behind SQLAlchemy.

    Every public method is a coroutine; the blocking session work runs in the
    default executor. Call ``open()`` before use and ``close()`` on shutdown.
    Any database failure surfaces as ``StoreUnavailable``.
    """

    def __init__(self, database_url: str = "sqlite:///data/prescriptions.db"):
        self.database_url = database_url
        self._engine = None
        self._sessions: Optional[sessionmaker] = None

    def open(self):
        if self._engine is not None:
            return
        kwargs = {}
        if self.database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every thread sees an empty database
                kwargs["poolclass"] = StaticPool
            else:
                db_file = make_url(self.database_url).database
                if db_file and os.path.dirname(db_file):
                    os.makedirs(os.path.dirname(db_file), exist_ok=True)
        try:
            self._engine = create_engine(self.database_url, **kwargs)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            self._engine = None
            raise StoreUnavailable(f"Cannot open record store: {e}") from e
        self._sessions = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Record store opened at {self.database_url}")

    def close(self):
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("Record store closed")

    async def _run(self, fn, *args):
        if self._sessions is None:
            raise StoreUnavailable("Record store is not open")

        def work():
            with self._sessions() as session:
                return fn(session, *args)

        try:
            return await asyncio.get_running_loop().run_in_executor(None, work)
        except SQLAlchemyError as e:
            logger.error(f"Record store failure: {e}")
            raise StoreUnavailable(str(e)) from e

    # ---- subjects ----

    async def find_subject_by_id(self, subject_id: str) -> Optional[Subject]:
        def query(session: Session):
            row = session.get(PatientRow, subject_id)
            return _to_subject(row) if row is not None else None

        return await self._run(query)

    async def find_all_subjects(self) -> List[Subject]:
        def query(session: Session):
            return [_to_subject(r) for r in session.scalars(select(PatientRow).order_by(PatientRow.id))]

        return await self._run(query)

    async def find_subjects_by_doctor(self, doctor_id: str) -> List[Subject]:
        def query(session: Session):
            stmt = select(PatientRow).where(PatientRow.selected_doctor == doctor_id).order_by(PatientRow.id)
            return [_to_subject(r) for r in session.scalars(stmt)]

        return await self._run(query)

    async def upsert_subject(self, subject: Subject) -> Subject:
        def write(session: Session):
            row = session.get(PatientRow, subject.id)
            if row is None:
                row = PatientRow(id=subject.id)
                session.add(row)
            row.name = subject.name
            row.age = subject.age
            row.email = subject.email
            row.diagnosis = subject.diagnosis
            row.history = list(subject.history)
            row.selected_doctor = subject.selected_doctor
            session.commit()
            return _to_subject(row)

        saved = await self._run(write)
        logger.info(f"Patient saved/updated: {saved.id}")
        return saved

    # ---- prescription logs ----

    async def find_all_case_records(self, patient_id: Optional[str] = None, newest_first: bool = False) -> List[CaseRecord]:
        def query(session: Session):
            stmt = select(PrescriptionLogRow)
            if patient_id is not None:
                stmt = stmt.where(PrescriptionLogRow.patient_id == patient_id)
            if newest_first:
                stmt = stmt.order_by(PrescriptionLogRow.timestamp.desc(), PrescriptionLogRow.seq.desc())
            else:
                stmt = stmt.order_by(PrescriptionLogRow.seq)
            return [_to_record(r) for r in session.scalars(stmt)]

        return await self._run(query)

    async def find_case_records_by_doctor(self, doctor_id: str) -> List[CaseRecord]:
        def query(session: Session):
            stmt = (
                select(PrescriptionLogRow)
                .where(PrescriptionLogRow.doctor_id == doctor_id)
                .order_by(PrescriptionLogRow.timestamp.desc(), PrescriptionLogRow.seq.desc())
            )
            return [_to_record(r) for r in session.scalars(stmt)]

        return await self._run(query)

    async def find_case_record_by_id(self, record_id: str) -> Optional[CaseRecord]:
        def query(session: Session):
            row = session.scalars(select(PrescriptionLogRow).where(PrescriptionLogRow.id == record_id)).first()
            return _to_record(row) if row is not None else None

        return await self._run(query)

    async def append_case_record(self, record: CaseRecord) -> CaseRecord:
        """
        Append one record. The referenced patient must exist. If the record id
        is already taken a numeric suffix is added; the stored record is returned.
        """

        def write(session: Session):
            if session.get(PatientRow, record.patient_id) is None:
                raise SubjectNotFound(record.patient_id)
            record_id = record.id
            suffix = 1
            while session.scalars(select(PrescriptionLogRow.seq).where(PrescriptionLogRow.id == record_id)).first():
                record_id = f"{record.id}-{suffix}"
                suffix += 1
            stored = record if record_id == record.id else record.model_copy(update={"id": record_id})
            timestamp = stored.timestamp
            if timestamp.tzinfo is not None:
                timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
            session.add(
                PrescriptionLogRow(
                    id=stored.id,
                    patient_id=stored.patient_id,
                    patient_name=stored.patient_name,
                    doctor_id=stored.doctor_id,
                    doctor_name=stored.doctor_name,
                    age=stored.age,
                    diagnosis=stored.diagnosis,
                    history=list(stored.history),
                    symptoms=stored.symptoms,
                    prescription=stored.prescription,
                    timestamp=timestamp,
                )
            )
            session.commit()
            return stored

        stored = await self._run(write)
        logger.info(f"Prescription {stored.id} logged for patient {stored.patient_id}")
        return stored
