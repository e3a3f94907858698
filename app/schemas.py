"""
Pydantic Schemas for Request/Response Validation

Request bodies of the marketplace API and the response shapes built from
the ORM rows (``from_attributes``) and the service dataclasses.
"""

import re
from datetime import date, datetime
from typing import Annotated, Any, List, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from app.models import (
    AppRole,
    CookStatus,
    DeliveryStatus,
    DishRequestStatus,
    MarginType,
    OrderStatus,
    ServiceType,
    SettlementStatus,
    StaffType,
    TransactionStatus,
    TransactionType,
)

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


def _check_mobile(v: str) -> str:
    cleaned = re.sub(r'[^\d]', '', v)
    if len(cleaned) < 10:
        raise ValueError('Mobile number must have at least 10 digits')
    return v


MobileNumber = Annotated[str, AfterValidator(_check_mobile)]


# =============================================================================
# ACCOUNTS & GEOGRAPHY
# =============================================================================

class ProfileCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, examples=["Anitha K"])
    mobile_number: MobileNumber = Field(..., min_length=10, max_length=20, examples=["9847012345"])
    email: Optional[str] = Field(None, examples=["anitha@example.com"])
    role: AppRole = AppRole.CUSTOMER
    panchayat_id: Optional[int] = None
    ward_number: Optional[int] = Field(None, ge=1)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not re.match(r'^[\w\.-]+@[\w\.-]+\.\w+$', v):
            raise ValueError('Invalid email format')
        return v


class ProfileResponse(BaseModel):
    id: int
    name: str
    mobile_number: str
    email: Optional[str]
    role: AppRole
    panchayat_id: Optional[int]
    ward_number: Optional[int]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PanchayatCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, examples=["Kodakara"])
    ward_count: int = Field(..., ge=1, le=100, examples=[18])
    code: Optional[str] = Field(None, max_length=20)


class PanchayatResponse(BaseModel):
    id: int
    name: str
    code: Optional[str]
    ward_count: int
    is_active: bool

    class Config:
        from_attributes = True


# =============================================================================
# COOKS & DELIVERY STAFF
# =============================================================================

class CookCreate(BaseModel):
    kitchen_name: str = Field(..., min_length=2, max_length=100, examples=["Amma's Kitchen"])
    mobile_number: MobileNumber = Field(..., min_length=10, max_length=20)
    panchayat_id: Optional[int] = None
    allowed_order_types: Optional[List[ServiceType]] = None
    profile_id: Optional[int] = None


class CookProfileResponse(BaseModel):
    id: int
    profile_id: Optional[int]
    kitchen_name: str
    mobile_number: str
    panchayat_id: Optional[int]
    allowed_order_types: List[ServiceType]
    is_active: bool
    is_available: bool
    rating: float
    total_orders: int

    class Config:
        from_attributes = True


class DeliveryStaffApply(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    mobile_number: MobileNumber = Field(..., min_length=10, max_length=20)
    vehicle_type: str = Field(..., max_length=30, examples=["scooter"])
    vehicle_number: Optional[str] = Field(None, max_length=30, examples=["KL-08-AB-1234"])
    panchayat_id: int
    assigned_panchayat_ids: List[int] = Field(default_factory=list)
    assigned_wards: List[int] = Field(default_factory=list)
    staff_type: StaffType = StaffType.REGISTERED_PARTNER


class DeliveryStaffResponse(BaseModel):
    id: int
    profile_id: Optional[int]
    name: str
    mobile_number: str
    vehicle_type: str
    vehicle_number: Optional[str]
    panchayat_id: Optional[int]
    assigned_panchayat_ids: List[int]
    assigned_wards: List[int]
    staff_type: StaffType
    is_active: bool
    is_available: bool
    is_approved: bool
    approved_at: Optional[datetime]
    total_deliveries: int

    class Config:
        from_attributes = True


class AvailabilityUpdate(BaseModel):
    available: bool


# =============================================================================
# CATALOG
# =============================================================================

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    service_types: List[ServiceType] = Field(..., min_length=1)
    display_order: int = 0


class CategoryResponse(BaseModel):
    id: int
    name: str
    service_types: List[ServiceType]
    is_active: bool
    display_order: int

    class Config:
        from_attributes = True


class FoodItemCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150, examples=["Chicken Biryani"])
    service_type: ServiceType
    price: float = Field(..., gt=0, examples=[180.0])
    description: Optional[str] = None
    category_id: Optional[int] = None
    is_vegetarian: bool = False
    preparation_time_minutes: Optional[int] = Field(None, ge=0)
    platform_margin_type: MarginType = MarginType.PERCENT
    platform_margin_value: float = Field(default=0.0, ge=0)
    set_size: int = Field(default=1, ge=1)
    min_order_sets: int = Field(default=1, ge=1)
    cloud_kitchen_slot_id: Optional[int] = None


class FoodItemResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    category_id: Optional[int]
    service_type: ServiceType
    price: float
    is_vegetarian: bool
    is_available: bool
    preparation_time_minutes: Optional[int]
    platform_margin_type: MarginType
    platform_margin_value: float
    set_size: int
    min_order_sets: int
    cloud_kitchen_slot_id: Optional[int]

    class Config:
        from_attributes = True


class CookOptionResponse(BaseModel):
    cook_id: int
    kitchen_name: str
    rating: float
    price: float

    class Config:
        from_attributes = True


class MenuEntryResponse(BaseModel):
    item: FoodItemResponse
    price: float
    cooks: List[CookOptionResponse]

    class Config:
        from_attributes = True


class SlotCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, examples=["Lunch"])
    start_time: str = Field(..., pattern=_HHMM, examples=["12:00"])
    end_time: str = Field(..., pattern=_HHMM, examples=["14:00"])
    cutoff_hours_before: int = Field(default=2, ge=0, le=23)
    delivery_charge: float = Field(default=0.0, ge=0)
    slot_type: str = "meal"
    display_order: int = 0


class SlotResponse(BaseModel):
    id: int
    name: str
    slot_type: str
    start_time: str
    end_time: str
    cutoff_hours_before: int
    delivery_charge: float
    is_active: bool

    class Config:
        from_attributes = True


class SlotStatusResponse(BaseModel):
    is_open: bool
    status_label: str
    minutes_until_cutoff: Optional[int]
    slot_date: Optional[date]

    class Config:
        from_attributes = True


class SlotViewResponse(BaseModel):
    slot: SlotResponse
    status: SlotStatusResponse
    items: List[FoodItemResponse]

    class Config:
        from_attributes = True


# =============================================================================
# COOK DISHES
# =============================================================================

class DishAllocation(BaseModel):
    cook_id: int
    food_item_id: int
    custom_price: Optional[float] = Field(None, ge=0)


class CookDishResponse(BaseModel):
    id: int
    cook_id: int
    food_item_id: int
    custom_price: Optional[float]
    allocated_at: datetime

    class Config:
        from_attributes = True


class DishRequestCreate(BaseModel):
    """Either an existing ``food_item_id`` or a new dish (name, price, service type)."""
    food_item_id: Optional[int] = None
    dish_name: Optional[str] = Field(None, max_length=150)
    dish_description: Optional[str] = None
    dish_price: Optional[float] = Field(None, gt=0)
    dish_service_type: Optional[ServiceType] = None
    dish_category_id: Optional[int] = None
    dish_is_vegetarian: bool = False
    dish_preparation_time_minutes: Optional[int] = Field(None, ge=0)


class DishRequestReview(BaseModel):
    approve: bool
    admin_notes: Optional[str] = None
    allocate: bool = True
    custom_price: Optional[float] = Field(None, ge=0)


class DishRequestResponse(BaseModel):
    id: int
    cook_id: int
    food_item_id: Optional[int]
    dish_name: Optional[str]
    dish_price: Optional[float]
    dish_service_type: Optional[ServiceType]
    status: DishRequestStatus
    admin_notes: Optional[str]
    reviewed_at: Optional[datetime]
    created_food_item_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# CART & CHECKOUT
# =============================================================================

class CartItemAdd(BaseModel):
    food_item_id: int
    quantity: int = Field(default=1, ge=1, le=99)
    cook_id: Optional[int] = None


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(..., ge=0, le=99)


class CartLineResponse(BaseModel):
    food_item_id: int
    name: str
    quantity: int
    selected_cook_id: Optional[int]
    unit_price: float
    line_total: float


class CartResponse(BaseModel):
    lines: List[CartLineResponse]
    total: float


class OrderLineIn(BaseModel):
    food_item_id: int
    quantity: int = Field(..., ge=1, le=999)
    cook_id: Optional[int] = None
    special_instructions: Optional[str] = Field(None, max_length=500)


class DeliveryLocation(BaseModel):
    delivery_address: str = Field(..., min_length=5, max_length=255)
    panchayat_id: int
    ward_number: int = Field(..., ge=1)
    delivery_instructions: Optional[str] = Field(None, max_length=500)


class HomemadeCheckout(DeliveryLocation):
    pass


class CloudKitchenCheckout(DeliveryLocation):
    slot_id: int
    lines: List[OrderLineIn] = Field(..., min_length=1)


class IndoorEventBooking(BaseModel):
    event_date: datetime
    guest_count: int = Field(..., ge=1, examples=[150])
    panchayat_id: int
    ward_number: int = Field(..., ge=1)
    event_details: Optional[str] = Field(None, max_length=2000)
    delivery_address: Optional[str] = Field(None, max_length=255)
    lines: List[OrderLineIn] = Field(default_factory=list)


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemResponse(BaseModel):
    id: int
    food_item_id: int
    quantity: int
    unit_price: float
    total_price: float
    special_instructions: Optional[str]
    assigned_cook_id: Optional[int]

    class Config:
        from_attributes = True


class AssignmentResponse(BaseModel):
    id: int
    cook_id: int
    cook_status: CookStatus
    assigned_at: datetime
    response_deadline: Optional[datetime]
    responded_at: Optional[datetime]
    notes: Optional[str]

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: int
    order_number: str
    customer_id: int
    service_type: ServiceType
    status: OrderStatus
    cook_status: CookStatus
    delivery_status: DeliveryStatus
    total_amount: float
    delivery_amount: float
    delivery_address: Optional[str]
    delivery_instructions: Optional[str]
    panchayat_id: int
    ward_number: int
    assigned_cook_id: Optional[int]
    cook_response_deadline: Optional[datetime]
    assigned_delivery_id: Optional[int]
    delivery_eta: Optional[datetime]
    delivered_at: Optional[datetime]
    cloud_kitchen_slot_id: Optional[int]
    event_date: Optional[datetime]
    event_details: Optional[str]
    guest_count: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]
    items: List[OrderItemResponse]
    assignments: List[AssignmentResponse]

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class StatusEventResponse(BaseModel):
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    actor_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class VehicleResponse(BaseModel):
    id: int
    order_id: int
    vehicle_number: str
    driver_mobile: str
    driver_name: Optional[str]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ShipOrderRequest(BaseModel):
    """New vehicle details, or ``vehicle_id`` of a recent vehicle record."""
    vehicle_number: Optional[str] = Field(None, max_length=30)
    driver_mobile: Optional[str] = Field(None, max_length=20)
    driver_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    vehicle_id: Optional[int] = None


# =============================================================================
# COOK ASSIGNMENT
# =============================================================================

class CookAssignRequest(BaseModel):
    cook_id: int


class PerDishAssignRequest(BaseModel):
    """order_item_id -> cook_id"""
    assignments: dict[int, int] = Field(..., min_length=1)


class CookReply(BaseModel):
    accept: bool
    notes: Optional[str] = Field(None, max_length=500)


class CookProgressUpdate(BaseModel):
    status: CookStatus


# =============================================================================
# DELIVERY
# =============================================================================

class DeliveryAssignRequest(BaseModel):
    staff_id: int


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus


class DeliveryAlertResponse(BaseModel):
    order_id: int
    order_number: str
    panchayat_id: int
    ward_number: int
    total_amount: float
    seconds_remaining: int

    class Config:
        from_attributes = True


class DeliveryAlertsResponse(BaseModel):
    alerts: List[DeliveryAlertResponse]
    taken_notices: List[str]


class CookAlertResponse(BaseModel):
    order_id: int
    assignment_id: int
    seconds_remaining: Optional[int]

    class Config:
        from_attributes = True


class StaleOrderResponse(BaseModel):
    order_id: int
    order_number: str
    panchayat_id: int
    ward_number: int
    total_amount: float
    seconds_waiting: int

    class Config:
        from_attributes = True


# =============================================================================
# SETTLEMENTS & WALLETS
# =============================================================================

class SettlementResponse(BaseModel):
    id: int
    cook_id: int
    profile_id: Optional[int]
    order_id: int
    amount: float
    status: SettlementStatus
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    panchayat_id: Optional[int]
    ward_number: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class CookSettlementSummary(BaseModel):
    cook_id: int
    kitchen_name: Optional[str]
    pending_amount: float
    total_earned: float
    settlements: List[SettlementResponse]


class BulkApproveRequest(BaseModel):
    settlement_ids: List[int] = Field(..., min_length=1)


class WalletResponse(BaseModel):
    delivery_staff_id: int
    collected_amount: float
    job_earnings: float
    total_settled: float
    pending_collection: float

    class Config:
        from_attributes = True


class WalletTransactionResponse(BaseModel):
    id: int
    delivery_staff_id: int
    order_id: Optional[int]
    transaction_type: TransactionType
    amount: float
    description: Optional[str]
    status: TransactionStatus
    approved_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# RATINGS & REPORTS
# =============================================================================

class RatingCreate(BaseModel):
    order_item_id: int
    rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=1000)


class RatingResponse(BaseModel):
    id: int
    order_id: int
    order_item_id: int
    cook_id: Optional[int]
    food_item_id: int
    rating: int
    review_text: Optional[str]

    class Config:
        from_attributes = True


class ExportResponse(BaseModel):
    success: bool
    message: str
    task_id: Optional[str] = None


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    timestamp: datetime


class ReportResponse(BaseModel):
    data: Any
