from sqlalchemy import Column, Integer, String, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"

    patient_id = Column(String(20), primary_key=True)
    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)

    # Personal information
    age = Column(Integer, nullable=False)
    gender = Column(String(20), nullable=False)
    emergency_contact = Column(String(50), nullable=False)

    # Medical information
    blood_type = Column(String(10), nullable=False)
    medical_history = Column(Text, nullable=True)
    allergies = Column(Text, nullable=True)  # comma separated
    current_medications = Column(Text, nullable=True)  # comma separated

    # Relationships
    user = relationship("User", back_populates="patient")

    def __repr__(self):
        return f"<Patient(patient_id='{self.patient_id}', username='{self.username}')>"
