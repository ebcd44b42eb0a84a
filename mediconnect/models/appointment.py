from sqlalchemy import Column, String, ForeignKey, Date, DateTime, Time, Text
from sqlalchemy.sql import func

from ..core.database import Base

class Appointment(Base):
    __tablename__ = "appointments"

    appointment_id = Column(String(20), primary_key=True)

    # Relationships
    doctor_id = Column(String(20), ForeignKey("doctors.doctor_id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id = Column(String(20), ForeignKey("patients.patient_id", ondelete="CASCADE"), nullable=False, index=True)

    # Appointment details
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    time_slot = Column(String(30), nullable=False)
    reason = Column(Text, nullable=False)
    # Stored as text so rows written by older releases (e.g. SCHEDULED) still load
    status = Column(String(30), default="PENDING")
    notes = Column(Text, nullable=True)

    # Tracking
    cancellation_reason = Column(Text, nullable=True)
    denial_reason = Column(Text, nullable=True)
    created_date = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Appointment(appointment_id='{self.appointment_id}', doctor_id='{self.doctor_id}', date='{self.appointment_date}', slot='{self.time_slot}')>"
