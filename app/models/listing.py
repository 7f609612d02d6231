"""ORM model for artwork listings."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from app.models.base import Base

LISTING_STATUSES = ("available", "sold")


class Listing(Base):
    """
    One artwork offered for sale.

    title carries a unique index: the database is the final arbiter of title
    uniqueness, the pre-insert lookup only produces a friendlier error earlier.
    """

    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in LISTING_STATUSES) + ")",
            name="status_valid",
        ),
        CheckConstraint("price > 0", name="price_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)
    image_url = Column(String(2048), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    price = Column(Float, nullable=False)
    status = Column(String(16), nullable=False, default="available", index=True)
    dimensions = Column(String(255), nullable=False)
    material = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    owner = relationship("User", lazy="joined")
