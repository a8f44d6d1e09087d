from typing import Optional, List, Union, Any, Dict
from datetime import datetime

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Payload keys are camelCase on the wire, snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ===== FABRIC CUTS =====

class CutQuantity(CamelModel):
    quantity: float = Field(..., gt=0)


class FabricCutCreate(CamelModel):
    warp_id: int
    fabric_cuts: List[CutQuantity] = Field(..., min_length=1)


class FabricCutOut(CamelModel):
    id: int
    fabric_number: str
    warp_id: Optional[int]
    quantity: float
    cut_number: int
    total_cuts: Optional[int]
    loom_name: Optional[str] = None
    company_name: Optional[str] = None
    inspection_arrival: Optional[datetime] = None
    four_point_completed: bool = False
    four_point_date: Optional[datetime] = None
    unwashed_completed: bool = False
    washed_completed: bool = False
    location: Optional[str] = None
    created_at: datetime


class CreatedFabricCutOut(FabricCutOut):
    qr_data: str
    label: Dict[str, Any]


# ===== INSPECTIONS =====

class InspectionCreate(CamelModel):
    fabric_cut_id: int
    inspection_type: str
    inspected_quantity: float = Field(..., ge=0)
    mistake_quantity: float = Field(0, ge=0)
    inspection_date: Optional[datetime] = None
    inspector: Optional[str] = None
    remarks: Optional[str] = None


class InspectionUpdate(CamelModel):
    inspected_quantity: Optional[float] = Field(None, ge=0)
    mistake_quantity: Optional[float] = Field(None, ge=0)
    inspection_date: Optional[datetime] = None
    inspector: Optional[str] = None
    remarks: Optional[str] = None


class InspectionOut(CamelModel):
    id: int
    fabric_cut_id: int
    fabric_number: Optional[str]
    warp_id: Optional[int]
    inspection_type: str
    inspected_quantity: float
    mistake_quantity: float
    inspection_date: Optional[datetime]
    inspector: Optional[str]
    remarks: Optional[str]

    @field_validator("inspection_type", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


# ===== MOVEMENTS =====

class FabricCutRef(CamelModel):
    fabric_number: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class MovementCreate(CamelModel):
    fabric_cuts: List[Union[str, FabricCutRef]] = Field(..., min_length=1)
    from_location: str
    to_location: str
    moved_by: str
    notes: Optional[str] = None

    def identifiers(self) -> List[str]:
        return [c if isinstance(c, str) else c.fabric_number for c in self.fabric_cuts]


class MovementReceive(CamelModel):
    received_by: str
    received_location: Optional[str] = None


class MovementOut(CamelModel):
    id: int
    movement_order_number: str
    fabric_cuts: List[Dict[str, Any]]
    from_location: str
    to_location: str
    moved_by: str
    notes: Optional[str]
    status: str
    created_at: datetime
    received_at: Optional[datetime] = None
    received_by: Optional[str] = None
    received_location: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


# ===== PROCESSING =====

class SentFabricCut(CamelModel):
    fabric_number: str
    quantity: Optional[float] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class ReceivedFabricCut(CamelModel):
    new_fabric_number: str
    original_fabric_number: Optional[str] = None
    quantity: Optional[float] = None
    delivery_number: Optional[str] = None
    received_by: Optional[str] = None
    location: Optional[str] = None
    received_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"

    @field_validator("new_fabric_number")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("newFabricNumber cannot be blank")
        return v.strip()


class ProcessingOrderCreate(CamelModel):
    order_form_number: str
    processing_center: str
    fabric_cuts: List[SentFabricCut]
    processes: Optional[List[Any]] = None
    order_details: Optional[Dict[str, Any]] = None
    total_fabric_cuts: Optional[int] = None
    total_quantity: Optional[float] = None
    vehicle_number: Optional[str] = None
    delivery_date: Optional[datetime] = None
    delivered_by: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None


class ProcessingOrderUpdate(CamelModel):
    order_form_number: Optional[str] = None
    processing_center: Optional[str] = None
    fabric_cuts: Optional[List[SentFabricCut]] = None
    received_fabric_cuts: Optional[List[ReceivedFabricCut]] = None
    processes: Optional[List[Any]] = None
    order_details: Optional[Dict[str, Any]] = None
    total_fabric_cuts: Optional[int] = None
    total_quantity: Optional[float] = None
    vehicle_number: Optional[str] = None
    delivery_date: Optional[datetime] = None
    delivered_by: Optional[str] = None
    status: Optional[str] = None

    def to_patch(self) -> dict:
        """Fields the client actually sent, JSON lists in stored camelCase form"""
        patch = self.model_dump(exclude_unset=True)
        if self.fabric_cuts is not None:
            patch["fabric_cuts"] = [
                c.model_dump(by_alias=True, exclude_none=True, mode="json") for c in self.fabric_cuts
            ]
        if self.received_fabric_cuts is not None:
            patch["received_fabric_cuts"] = [
                c.model_dump(by_alias=True, exclude_none=True, mode="json") for c in self.received_fabric_cuts
            ]
        return patch


class ProcessingOrderOut(CamelModel):
    id: int
    order_form_number: str
    processing_center: str
    processes: Optional[List[Any]] = None
    fabric_cuts: List[Dict[str, Any]] = []
    received_fabric_cuts: Optional[List[Dict[str, Any]]] = None
    received_fabric_cuts_by_delivery: Optional[Dict[str, Any]] = None
    order_details: Optional[Dict[str, Any]] = None
    total_fabric_cuts: Optional[int] = None
    total_quantity: Optional[float] = None
    vehicle_number: Optional[str] = None
    delivery_date: Optional[datetime] = None
    delivered_by: Optional[str] = None
    status: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProcessingReceiptOut(CamelModel):
    id: int
    fabric_number: Optional[str]
    new_fabric_number: Optional[str]
    original_fabric_number: Optional[str]
    order_form_number: Optional[str]
    processing_order_id: Optional[int]
    processing_center: Optional[str]
    order_number: Optional[str]
    design_name: Optional[str]
    design_number: Optional[str]
    quantity: Optional[float]
    delivery_number: Optional[str]
    received_by: Optional[str]
    received_location: Optional[str]
    received_at: Optional[datetime]
    created_at: datetime

