"""Multi-week course models.

A running course reserves the studio for its sessions; any class slot that
overlaps one of them is blocked outright.
"""

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claybook.models.base import Base, TimestampMixin


class CourseSchedule(TimestampMixin, Base):
    __tablename__ = "course_schedules"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    sessions: Mapped[list["CourseSession"]] = relationship(back_populates="schedule", lazy="raise")

    def __repr__(self) -> str:
        return f"<CourseSchedule {self.id} {self.name!r}>"


class CourseSession(TimestampMixin, Base):
    __tablename__ = "course_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    course_schedule_id: Mapped[int] = mapped_column(
        ForeignKey("course_schedules.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", nullable=False)

    schedule: Mapped["CourseSchedule"] = relationship(back_populates="sessions", lazy="raise")

    __table_args__ = (Index("ix_course_sessions_date", "scheduled_date"),)

    def __repr__(self) -> str:
        return f"<CourseSession {self.scheduled_date} {self.start_time}-{self.end_time}>"
