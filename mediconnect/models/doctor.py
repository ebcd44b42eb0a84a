from sqlalchemy import Column, Integer, String, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..core.database import Base

class Doctor(Base):
    __tablename__ = "doctors"

    doctor_id = Column(String(20), primary_key=True)
    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)

    # Professional information
    specialization = Column(String(150), nullable=False)
    license_number = Column(String(100), nullable=False, unique=True)
    experience_years = Column(Integer, nullable=False, default=0)
    qualifications = Column(Text, nullable=True)  # comma separated
    # Slot template, comma separated; empty means the configured default
    time_slots = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="doctor")

    def __repr__(self):
        return f"<Doctor(doctor_id='{self.doctor_id}', specialization='{self.specialization}')>"
