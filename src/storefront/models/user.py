from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from storefront.db import Base, BigIntPK, JSONDoc


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """
    A shopper or back-office operator.

    Identity lives with the external auth provider; auth_subject is the
    provider's stable user id (the JWT `sub` claim) and is how every request
    is mapped back to a row here. Rows are created and kept in sync by the
    user lifecycle webhook.
    """

    __tablename__ = "users"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    auth_subject = Column(Text, nullable=False, unique=True, index=True)
    email = Column(Text, nullable=False, index=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="customer")
    tags = Column(JSONDoc, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    marketing_prefs = Column(JSONDoc, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('customer','admin')", name="ck_user_role"),
    )

    addresses = relationship(
        "Address", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or "Anonymous"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "auth_subject": self.auth_subject,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "tags": self.tags or [],
            "notes": self.notes,
            "marketing_prefs": self.marketing_prefs,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"


class Address(Base):
    """
    A saved postal address.

    At most one address per user has is_default set; the service layer
    clears the flag on every sibling before setting it (there is no partial
    unique index so the rule stays portable across backends).
    """

    __tablename__ = "addresses"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label = Column(Text, nullable=False)
    recipient_name = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    type = Column(Text, nullable=False, default="home")
    street = Column(Text, nullable=False)
    apartment = Column(Text, nullable=True)
    city = Column(Text, nullable=False)
    state = Column(Text, nullable=False)
    zip_code = Column(Text, nullable=False)
    country = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User", back_populates="addresses")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "label": self.label,
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "type": self.type,
            "street": self.street,
            "apartment": self.apartment,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "is_default": self.is_default,
        }

    def __repr__(self) -> str:
        return f"<Address id={self.id} city={self.city!r} default={self.is_default}>"
