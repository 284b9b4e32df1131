"""
Venue layout, seeded by the venue management service.

A section is a rectangular block of rowCount x seatsPerRow slots priced at
event.base_price * price_multiplier. Seat rows are generated from it when an
event is created.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)

    sections = relationship(
        "Section",
        back_populates="venue",
        lazy="selectin",
        order_by="Section.id",
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name})>"


class Section(Base):
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    row_count = Column(Integer, nullable=False)
    seats_per_row = Column(Integer, nullable=False)
    price_multiplier = Column(Numeric(5, 2), nullable=False, default=1)

    venue = relationship("Venue", back_populates="sections")

    __table_args__ = (
        # Row labels are single letters A..Z
        CheckConstraint("row_count > 0 AND row_count <= 26", name="check_section_row_count"),
        CheckConstraint("seats_per_row > 0", name="check_section_seats_per_row"),
        CheckConstraint("price_multiplier > 0", name="check_section_price_multiplier"),
    )

    @property
    def capacity(self) -> int:
        return self.row_count * self.seats_per_row

    def __repr__(self) -> str:
        return f"<Section(id={self.id}, venue={self.venue_id}, name={self.name})>"
