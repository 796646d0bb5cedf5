import enum


class CouponType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"

    @classmethod
    def from_wire(cls, value) -> "CouponType":
        """Server and admin payloads send PERCENTAGE/FLAT; anything not a percentage is flat."""
        if isinstance(value, str) and value.strip().lower() == cls.PERCENTAGE.value:
            return cls.PERCENTAGE
        return cls.FLAT
