from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from convoprobe.models.base import Base


class RunRecord(Base):
    __tablename__ = "runs"

    eval_id: Mapped[str | None] = mapped_column(String(64), index=True)
    scenario_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("scenarios.id", ondelete="CASCADE"),
        nullable=False,
    )
    persona_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("personas.id", ondelete="SET NULL"),
    )
    connector_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("connectors.id", ondelete="SET NULL"),
    )
    execution_id: Mapped[int | None] = mapped_column(Integer)
    thread_id: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="queued",
        index=True,
    )
    messages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    output: Mapped[dict | None] = mapped_column(JSON)  # type: ignore[assignment]
    result: Mapped[dict | None] = mapped_column(JSON)  # type: ignore[assignment]
    error: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
