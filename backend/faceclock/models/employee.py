from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from faceclock.core.database import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    user_code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    department = Column(String, nullable=True)

    # Reference photo as a base64 / data-URL string
    photo = Column(Text, nullable=True)

    # Cached face descriptor (JSON array of floats), recomputed on photo change
    face_descriptor = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    attendances = relationship("Attendance", back_populates="employee")

    @property
    def has_photo(self) -> bool:
        return bool(self.photo)

    @property
    def has_face_descriptor(self) -> bool:
        return self.face_descriptor is not None
