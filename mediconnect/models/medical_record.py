from sqlalchemy import Column, String, ForeignKey, DateTime, Text
from sqlalchemy.sql import func

from ..core.database import Base

class MedicalRecord(Base):
    __tablename__ = "medical_records"

    record_id = Column(String(20), primary_key=True)
    patient_id = Column(String(20), ForeignKey("patients.patient_id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(String(20), ForeignKey("doctors.doctor_id", ondelete="CASCADE"), nullable=False)

    diagnosis = Column(Text, nullable=False)
    prescription = Column(Text, nullable=True)
    treatment = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(30), default="ACTIVE")
    symptoms = Column(Text, nullable=True)  # comma separated
    medications = Column(Text, nullable=True)  # comma separated

    created_date = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<MedicalRecord(record_id='{self.record_id}', patient_id='{self.patient_id}')>"
