from sqlalchemy import Column, Integer, String, ForeignKey, Date, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Prescription(Base):
    __tablename__ = "prescriptions"

    prescription_id = Column(String(20), primary_key=True)
    patient_id = Column(String(20), ForeignKey("patients.patient_id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(String(20), ForeignKey("doctors.doctor_id", ondelete="CASCADE"), nullable=False)

    instructions = Column(Text, nullable=False)
    status = Column(String(30), default="ACTIVE")
    valid_until = Column(Date, nullable=True)
    refills_remaining = Column(Integer, default=0)
    notes = Column(Text, nullable=True)
    created_date = Column(DateTime, server_default=func.now())

    medications = relationship(
        "PrescriptionMedication",
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="PrescriptionMedication.id",
    )

    def __repr__(self):
        return f"<Prescription(prescription_id='{self.prescription_id}', status='{self.status}')>"

class PrescriptionMedication(Base):
    __tablename__ = "prescription_medications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(
        String(20), ForeignKey("prescriptions.prescription_id", ondelete="CASCADE"), nullable=False
    )
    medication_name = Column(String(150), nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(String(100), nullable=False)
    duration = Column(String(100), nullable=False)

    prescription = relationship("Prescription", back_populates="medications")

    def __repr__(self):
        return f"<PrescriptionMedication(prescription_id='{self.prescription_id}', name='{self.medication_name}')>"
