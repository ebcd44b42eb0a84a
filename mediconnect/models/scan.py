from sqlalchemy import BigInteger, Column, String, ForeignKey, DateTime, Text
from sqlalchemy.sql import func

from ..core.database import Base

class Scan(Base):
    __tablename__ = "scans"

    scan_id = Column(String(50), primary_key=True)
    patient_id = Column(String(50), ForeignKey("patients.patient_id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = Column(String(50), nullable=True, index=True)
    file_path = Column(String(500), nullable=False)
    file_type = Column(String(50), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    uploaded_at = Column(DateTime, server_default=func.now())
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Scan(scan_id='{self.scan_id}', patient_id='{self.patient_id}')>"
