from __future__ import annotations

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from circlerank.db.base import Base
from circlerank.models.common import TimestampMixin, new_id

USER_STATUS_ACTIVE = "ACTIVE"
USER_STATUS_PENDING = "PENDING"


class UserAccount(TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("status in ('ACTIVE','PENDING')", name="ck_user_status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=USER_STATUS_ACTIVE, nullable=False)
