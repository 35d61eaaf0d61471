from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Id = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'ADMIN'
    BASE_COMMANDER = 'BASE_COMMANDER'
    LOGISTICS_OFFICER = 'LOGISTICS_OFFICER'


class TransferStatus(str, Enum):
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    REJECTED = 'REJECTED'


class AssignmentType(str, Enum):
    ASSIGNED = 'ASSIGNED'
    EXPENDED = 'EXPENDED'


class MilitaryBase(Base):
    __tablename__ = 'bases'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    location: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole, name='user_role'), nullable=False)
    base_id: Mapped[int | None] = mapped_column(Id, ForeignKey('bases.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Equipment(Base):
    __tablename__ = 'equipment'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryEntry(Base):
    __tablename__ = 'inventory_entries'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='inventory_entries_non_negative_ck'),
    )

    base_id: Mapped[int] = mapped_column(Id, ForeignKey('bases.id'), primary_key=True)
    equipment_id: Mapped[int] = mapped_column(Id, ForeignKey('equipment.id'), primary_key=True)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default='0')
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Purchase(Base):
    __tablename__ = 'purchases'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='purchases_positive_qty_ck'),
        Index('purchases_base_equipment_date_idx', 'base_id', 'equipment_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    base_id: Mapped[int] = mapped_column(Id, ForeignKey('bases.id'), nullable=False)
    equipment_id: Mapped[int] = mapped_column(Id, ForeignKey('equipment.id'), nullable=False)
    user_id: Mapped[int] = mapped_column(Id, ForeignKey('users.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Transfer(Base):
    __tablename__ = 'transfers'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='transfers_positive_qty_ck'),
        CheckConstraint('from_base_id <> to_base_id', name='transfers_distinct_bases_ck'),
        Index('transfers_from_equipment_date_idx', 'from_base_id', 'equipment_id', 'date'),
        Index('transfers_to_equipment_date_idx', 'to_base_id', 'equipment_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    from_base_id: Mapped[int] = mapped_column(Id, ForeignKey('bases.id'), nullable=False)
    to_base_id: Mapped[int] = mapped_column(Id, ForeignKey('bases.id'), nullable=False)
    equipment_id: Mapped[int] = mapped_column(Id, ForeignKey('equipment.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Only COMPLETED is ever written; PENDING and REJECTED are reserved for an approval workflow.
    status: Mapped[TransferStatus] = mapped_column(
        SQLEnum(TransferStatus, name='transfer_status'),
        nullable=False,
        default=TransferStatus.COMPLETED,
        server_default='COMPLETED',
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Assignment(Base):
    __tablename__ = 'assignments'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='assignments_positive_qty_ck'),
        Index('assignments_base_equipment_date_idx', 'base_id', 'equipment_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    user_id: Mapped[int] = mapped_column(Id, ForeignKey('users.id'), nullable=False)
    base_id: Mapped[int] = mapped_column(Id, ForeignKey('bases.id'), nullable=False)
    equipment_id: Mapped[int] = mapped_column(Id, ForeignKey('equipment.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[AssignmentType] = mapped_column(SQLEnum(AssignmentType, name='assignment_type'), nullable=False)
    personnel_name: Mapped[str | None] = mapped_column(Text)
    reason: Mapped[str | None] = mapped_column(Text)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id', ondelete='SET NULL'))
    details: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Id, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
