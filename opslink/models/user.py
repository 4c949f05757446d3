from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from opslink.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_guest = Column(Boolean, nullable=False, default=False)  # created by checkout, never set its own password
    billing_customer_ref = Column(String(255), nullable=True)  # set once, on first checkout or registration
    panel_password_hash = Column(String(255), nullable=True)
    panel_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    orders = relationship("Order", back_populates="user", order_by="Order.created_at")
