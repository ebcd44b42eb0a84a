"""
MediConnect scheduling core

Appointment lifecycle and slot scheduling for practitioners and patients,
served from an in-memory store that mirrors writes to an optional
relational database and keeps working when that database is down.
"""

__version__ = "1.0.0"
