from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from internhub.infra.database import Base
from internhub.models.base import BaseColumns


class Internship(BaseColumns, Base):
    __tablename__ = "internships"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Money: Numeric, jamais Float
    price = Column(Numeric(12, 2), nullable=False)
    # None = pas de remise (distinct d'une remise à 0)
    flat_discount = Column(Numeric(12, 2), nullable=True)
    percentage_discount = Column(Numeric(5, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="INR")

    batches = relationship("InternshipBatch", back_populates="internship")


class InternshipBatch(BaseColumns, Base):
    __tablename__ = "internship_batches"

    internship_id = Column(String(36), ForeignKey("internships.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)

    internship = relationship("Internship", back_populates="batches")
