import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    hashed_password: Mapped[str | None] = mapped_column(String(255))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Holds a crm.auth.permissions.Role value. Kept as a plain string so a
    # stale or mistyped value still loads and is then denied by the gate.
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="SALES_REP")
    status: Mapped[str] = mapped_column(String(20), default=UserStatus.ACTIVE.value)

    # Required for every role except SYSTEM_ADMIN (enforced at login)
    tenant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tenants.id"), index=True
    )
    business_unit_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("business_units.id"), index=True
    )

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value
