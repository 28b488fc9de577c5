"""
Patient and prescription-log records

Components:
- models: Subject (patient) and CaseRecord (prescription log entry)
- store: SQLAlchemy-backed RecordStore used by the tool server
"""
