"""Schedule rule store models.

The weekly studio timetable lives in scheduling_rules with product_id NULL;
introductory and couples products carry their own rules under their product_id.
Date-specific overrides replace (or close) a single day's sessions.
"""

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claybook.models.base import Base, NullableJSONType, TimestampMixin


class Technique(str, enum.Enum):
    POTTERS_WHEEL = "potters_wheel"
    HAND_MODELING = "hand_modeling"
    PAINTING = "painting"
    MOLDING = "molding"


class ProductType(str, enum.Enum):
    CLASS_PACKAGE = "CLASS_PACKAGE"
    SINGLE_CLASS = "SINGLE_CLASS"
    INTRODUCTORY_CLASS = "INTRODUCTORY_CLASS"
    COUPLES_EXPERIENCE = "COUPLES_EXPERIENCE"
    CUSTOM_EXPERIENCE = "CUSTOM_EXPERIENCE"
    GROUP_CLASS = "GROUP_CLASS"
    OPEN_STUDIO_SUBSCRIPTION = "OPEN_STUDIO_SUBSCRIPTION"


class Instructor(TimestampMixin, Base):
    __tablename__ = "instructors"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    def __repr__(self) -> str:
        return f"<Instructor {self.id} {self.name}>"


class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_type: Mapped[ProductType] = mapped_column(
        Enum(ProductType, name="product_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    technique: Mapped[str | None] = mapped_column(String(30))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    rules: Mapped[list["SchedulingRule"]] = relationship(back_populates="product", lazy="raise")

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.product_type.value} {self.name!r}>"


class SchedulingRule(TimestampMixin, Base):
    """A recurring weekly session. day_of_week uses 0=Sunday .. 6=Saturday."""

    __tablename__ = "scheduling_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"
    instructor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    technique: Mapped[str | None] = mapped_column(String(30))

    product: Mapped["Product | None"] = relationship(back_populates="rules", lazy="raise")

    __table_args__ = (
        UniqueConstraint(
            "product_id", "day_of_week", "time", "instructor_id", "technique", name="uq_scheduling_rule_slot"
        ),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_scheduling_rules_day"),
        CheckConstraint("capacity > 0", name="ck_scheduling_rules_capacity"),
        Index("ix_scheduling_rules_day", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<SchedulingRule day={self.day_of_week} {self.time} {self.technique} cap={self.capacity}>"


class SessionOverride(TimestampMixin, Base):
    """Replaces one day's sessions. sessions IS NULL means the day is closed."""

    __tablename__ = "session_overrides"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    override_date: Mapped[date] = mapped_column(Date, nullable=False)
    sessions: Mapped[list | None] = mapped_column(NullableJSONType)
    capacity: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("product_id", "override_date", name="uq_session_override_day"),
        Index("ix_session_overrides_date", "override_date"),
    )

    def __repr__(self) -> str:
        state = "closed" if self.sessions is None else f"{len(self.sessions)} sessions"
        return f"<SessionOverride {self.override_date} {state}>"


class TechniqueCapacity(TimestampMixin, Base):
    """Studio-wide max participants per technique pool."""

    __tablename__ = "technique_capacities"

    technique: Mapped[str] = mapped_column(String(30), primary_key=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<TechniqueCapacity {self.technique}={self.capacity}>"
