from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from convoprobe.models.base import Base


class ScenarioRecord(Base):
    __tablename__ = "scenarios"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text)
    messages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    max_messages: Mapped[int | None] = mapped_column(Integer)
    success_criteria: Mapped[str | None] = mapped_column(Text)
    failure_criteria: Mapped[str | None] = mapped_column(Text)
    failure_criteria_mode: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="on_max_messages",
    )
    persona_ids: Mapped[list] = mapped_column(JSON, default=list)  # type: ignore[assignment]
    evaluators: Mapped[list] = mapped_column(JSON, default=list)  # type: ignore[assignment]
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class PersonaRecord(Base):
    __tablename__ = "personas"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    system_prompt: Mapped[str | None] = mapped_column(Text)
    headers: Mapped[dict] = mapped_column(JSON, default=dict)  # type: ignore[assignment]


class ConnectorRecord(Base):
    __tablename__ = "connectors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    base_url: Mapped[str] = mapped_column(Text, nullable=False)
    headers: Mapped[dict] = mapped_column(JSON, default=dict)  # type: ignore[assignment]
    auth_type: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    auth_value: Mapped[str | None] = mapped_column(Text)
    config: Mapped[dict | None] = mapped_column(JSON)  # type: ignore[assignment]
