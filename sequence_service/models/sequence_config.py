from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Boolean, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from sequence_service.db.base import Base
from sequence_service.models.mixins import AuditMixin


class ResetCadence(str, enum.Enum):
    NEVER = "never"
    YEARLY = "yearly"
    QUARTERLY = "quarterly"
    MONTHLY = "monthly"


class SequenceConfig(AuditMixin, Base):
    __tablename__ = "t_sequence_configs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Document-type code, always stored upper-case: 'CONTACT', 'INVOICE', ...
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    # live vs test partition; each has its own counter
    is_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Formatting
    prefix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    separator: Mapped[str] = mapped_column(String(5), nullable=False, default="-")
    suffix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    padding_width: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    include_period: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Counter rules
    reset_cadence: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ResetCadence.NEVER.value,
        server_default=text("'never'"),
    )
    start_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    increment_by: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Counter state. current_value is the last issued value for last_reset_period.
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_reset_period: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_deletable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # One row per tenant/code/environment; soft-deleted rows are revived on create.
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", "is_live", name="uq_sequence_config_key"),
    )

    def __repr__(self) -> str:
        return (
            f"SequenceConfig(id={self.id!r}, tenant_id={self.tenant_id!r}, "
            f"code={self.code!r}, is_live={self.is_live!r}, current_value={self.current_value!r})"
        )
