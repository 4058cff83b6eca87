"""SQLAlchemy models for the subscription server."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Setting(Base):
    """Runtime-tunable key/value setting."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Setting(key={self.key})>"


class Client(Base):
    """Subscriber with traffic counters, addressed by its sub_id."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    sub_id = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, default="")
    enable = Column(Boolean, default=True)

    # Traffic counters (bytes); total == 0 means unlimited
    up = Column(BigInteger, default=0)
    down = Column(BigInteger, default=0)
    total = Column(BigInteger, default=0)

    # Unix milliseconds; 0 = never expires, negative = duration starting on first use
    expiry_time = Column(BigInteger, default=0)
    last_online = Column(BigInteger, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    links = relationship(
        "Link",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="Link.position",
    )

    def __repr__(self):
        return f"<Client(id={self.id}, sub_id={self.sub_id}, email={self.email})>"

    @property
    def used(self) -> int:
        """Uploaded plus downloaded bytes."""
        return (self.up or 0) + (self.down or 0)


class Link(Base):
    """Ready-made proxy link served in a client's subscription."""

    __tablename__ = "links"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, default=0)  # Emission order inside the subscription
    uri = Column(Text, nullable=False)  # vless://, vmess://, trojan://, ss://; may contain {host}
    remark = Column(String(255), nullable=False, default="")  # Inbound remark
    extra = Column(String(255), nullable=False, default="")  # Free-form remark suffix
    is_active = Column(Boolean, default=True)

    # Relationships
    client = relationship("Client", back_populates="links")

    __table_args__ = (
        Index("ix_links_client_position", "client_id", "position"),
    )

    def __repr__(self):
        return f"<Link(id={self.id}, client_id={self.client_id}, remark={self.remark})>"
