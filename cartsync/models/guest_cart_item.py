from sqlalchemy import Column, Integer, String, Float, JSON

from ..db.base import Base
from ..models.base import TimeStampMixin


class GuestCartItem(Base, TimeStampMixin):
    __tablename__ = "guest_cart_items"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(String, nullable=False, unique=True, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    mrp_at_add = Column(Float, nullable=False)
    selling_at_add = Column(Float, nullable=False)
    variant = Column(JSON, nullable=False)  # display copy of the variant taken at add time

    def __repr__(self):
        return f'<GuestCartItem(variant_id={self.variant_id}, quantity={self.quantity})>'
