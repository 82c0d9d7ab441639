"""
User model

A user is the principal the authorization layer reasons about: a role,
a stored permission list and an active flag.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from bookstore.core.database import Base


class User(Base):
    """
    User account model.

    ``permissions`` is nullable: accounts created before permission lists
    existed carry NULL, and the admin role does not depend on it.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # RBAC: "user" (customer), "staff", "manager", "admin"
    role = Column(String(20), nullable=False, default="user")
    permissions = Column(JSON, nullable=True, default=list)

    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    subscriptions = relationship(
        "Subscription",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Subscription.created_at.desc()",
    )

    __table_args__ = (
        Index('ix_users_role', 'role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    def record_login(self) -> None:
        """Record successful login."""
        self.last_login_at = datetime.now(timezone.utc)
