from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class User(Base):
    __tablename__ = "users"

    username = Column(String(50), primary_key=True)
    password = Column(String(255), nullable=False)  # plaintext, matched verbatim
    full_name = Column(String(150), nullable=False)
    email = Column(String(150), unique=True, nullable=False)
    contact_number = Column(String(30), nullable=False, default="")
    address = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    admin = relationship("Admin", back_populates="user", uselist=False)
    doctor = relationship("Doctor", back_populates="user", uselist=False)
    patient = relationship("Patient", back_populates="user", uselist=False)

    def __repr__(self):
        return f"<User(username='{self.username}', email='{self.email}')>"

class Admin(Base):
    __tablename__ = "admins"

    admin_id = Column(String(20), primary_key=True)
    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    permissions = Column(Text, nullable=True)  # comma separated

    user = relationship("User", back_populates="admin")

    def __repr__(self):
        return f"<Admin(admin_id='{self.admin_id}', username='{self.username}')>"
