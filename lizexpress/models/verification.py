# lizexpress/models/verification.py
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lizexpress.db import Base


class Verification(Base):
    __tablename__ = "verifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id"), index=True, nullable=False
    )

    identity_document: Mapped[str] = mapped_column(Text, nullable=False)
    address_document: Mapped[str] = mapped_column(Text, nullable=False)
    selfie_image: Mapped[str] = mapped_column(Text, nullable=False)

    # pending | approved | rejected (alleen de review-kant wijzigt dit)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
