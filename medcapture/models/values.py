from typing import Annotated, Literal

from pydantic import BaseModel, Field


class Quantity(BaseModel):
    """Numeric magnitude with units (DV_QUANTITY)."""

    kind: Literal["quantity"] = "quantity"
    magnitude: float
    units: str

    def to_openehr(self) -> dict:
        return {"_type": "DV_QUANTITY", "magnitude": self.magnitude, "units": self.units}


class Count(BaseModel):
    """Unitless integer count (DV_COUNT)."""

    kind: Literal["count"] = "count"
    magnitude: int

    def to_openehr(self) -> dict:
        return {"_type": "DV_COUNT", "magnitude": self.magnitude}


class Text(BaseModel):
    """Free text (DV_TEXT)."""

    kind: Literal["text"] = "text"
    value: str

    def to_openehr(self) -> dict:
        return {"_type": "DV_TEXT", "value": self.value}


TypedValue = Annotated[Quantity | Count | Text, Field(discriminator="kind")]
