"""
SQLAlchemy Database Models

Marketplace records for the three service types:
- Cloud kitchen (meal slots, on-demand)
- Homemade (cook-allocated dishes)
- Indoor events (catering with vehicle hand-off)

Covers profiles and staff (cooks, delivery staff), the catalog and cart,
orders with their cook assignments, and the money side (settlements,
delivery wallets, wallet transactions).
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Text,
    Enum,
    Boolean,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _enum(enum_cls, **kwargs) -> Enum:
    """Store enum values (not member names) in the column."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
        **kwargs,
    )


# =============================================================================
# ENUMS
# =============================================================================

class AppRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    COOK = "cook"
    DELIVERY_STAFF = "delivery_staff"
    CUSTOMER = "customer"


class ServiceType(str, enum.Enum):
    """Marketplace service lines."""
    INDOOR_EVENTS = "indoor_events"
    CLOUD_KITCHEN = "cloud_kitchen"
    HOMEMADE = "homemade"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CookStatus(str, enum.Enum):
    """Status of one cook on one order."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    COOKED = "cooked"
    READY = "ready"
    REJECTED = "rejected"
    EXPIRED = "expired"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"


class StaffType(str, enum.Enum):
    FIXED_SALARY = "fixed_salary"
    REGISTERED_PARTNER = "registered_partner"


class TransactionType(str, enum.Enum):
    COLLECTION = "collection"
    EARNING = "earning"
    SETTLEMENT = "settlement"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class DishRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MarginType(str, enum.Enum):
    PERCENT = "percent"
    FIXED = "fixed"


# =============================================================================
# GEOGRAPHY & PEOPLE
# =============================================================================

class Panchayat(Base):
    """Local administrative area; wards are numbered 1..ward_count."""
    __tablename__ = "panchayats"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    code = Column(String(20), nullable=True)
    ward_count = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Panchayat #{self.id} {self.name}>"


class Profile(Base):
    """
    A person using the marketplace.

    One profile per mobile number; the role decides which endpoints
    the profile may call.
    """
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    mobile_number = Column(String(20), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    role = Column(_enum(AppRole), nullable=False, default=AppRole.CUSTOMER)
    panchayat_id = Column(Integer, ForeignKey("panchayats.id"), nullable=True)
    ward_number = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in (AppRole.ADMIN, AppRole.SUPER_ADMIN)

    def __repr__(self):
        return f"<Profile #{self.id} {self.name} ({self.role.value})>"


class Cook(Base):
    """Kitchen / food partner account that prepares allocated dishes."""
    __tablename__ = "cooks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)
    kitchen_name = Column(String(100), nullable=False, unique=True)
    mobile_number = Column(String(20), nullable=False)
    panchayat_id = Column(Integer, ForeignKey("panchayats.id"), nullable=True)
    allowed_order_types = Column(
        JSON,
        nullable=False,
        default=lambda: [s.value for s in ServiceType],
    )
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0.0)
    total_orders = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Cook #{self.id} {self.kitchen_name}>"


class DeliveryStaff(Base):
    """
    Delivery staff member.

    Serves its own panchayat plus assigned_panchayat_ids. Registered
    partners with a non-empty assigned_wards list only see those wards.
    """
    __tablename__ = "delivery_staff"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    mobile_number = Column(String(20), nullable=False)
    vehicle_type = Column(String(30), nullable=False)
    vehicle_number = Column(String(30), nullable=True)
    panchayat_id = Column(Integer, ForeignKey("panchayats.id"), nullable=True)
    assigned_panchayat_ids = Column(JSON, nullable=False, default=list)
    assigned_wards = Column(JSON, nullable=False, default=list)
    staff_type = Column(_enum(StaffType), nullable=False, default=StaffType.REGISTERED_PARTNER)
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rating = Column(Float, nullable=False, default=0.0)
    total_deliveries = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def panchayat_ids(self) -> set[int]:
        ids = set(self.assigned_panchayat_ids or [])
        if self.panchayat_id is not None:
            ids.add(self.panchayat_id)
        return ids

    def __repr__(self):
        return f"<DeliveryStaff #{self.id} {self.name}>"


class DeliveryWallet(Base):
    """Cash collected and earnings of one delivery staff member."""
    __tablename__ = "delivery_wallets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_staff_id = Column(
        Integer, ForeignKey("delivery_staff.id"), nullable=False, unique=True
    )
    collected_amount = Column(Float, nullable=False, default=0.0)
    job_earnings = Column(Float, nullable=False, default=0.0)
    total_settled = Column(Float, nullable=False, default=0.0)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def pending_collection(self) -> float:
        return round(self.collected_amount - self.total_settled, 2)


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_staff_id = Column(
        Integer, ForeignKey("delivery_staff.id"), nullable=False, index=True
    )
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    transaction_type = Column(_enum(TransactionType), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_enum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


# =============================================================================
# CATALOG
# =============================================================================

class FoodCategory(Base):
    __tablename__ = "food_categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    service_types = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class CloudKitchenSlot(Base):
    """Meal slot ("division") of the cloud kitchen; times are HH:MM strings."""
    __tablename__ = "cloud_kitchen_slots"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slot_type = Column(String(30), nullable=False, default="meal")
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    cutoff_hours_before = Column(Integer, nullable=False, default=2)
    delivery_charge = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class FoodItem(Base):
    __tablename__ = "food_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("food_categories.id"), nullable=True)
    service_type = Column(_enum(ServiceType), nullable=False, index=True)
    price = Column(Float, nullable=False)
    is_vegetarian = Column(Boolean, nullable=False, default=False)
    is_available = Column(Boolean, nullable=False, default=True)
    preparation_time_minutes = Column(Integer, nullable=True)
    platform_margin_type = Column(_enum(MarginType), nullable=False, default=MarginType.PERCENT)
    platform_margin_value = Column(Float, nullable=False, default=0.0)
    set_size = Column(Integer, nullable=False, default=1)
    min_order_sets = Column(Integer, nullable=False, default=1)
    cloud_kitchen_slot_id = Column(Integer, ForeignKey("cloud_kitchen_slots.id"), nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<FoodItem #{self.id} {self.name} - {self.price}>"


class CookDish(Base):
    """A dish a cook is approved to prepare."""
    __tablename__ = "cook_dishes"
    __table_args__ = (UniqueConstraint("cook_id", "food_item_id", name="uq_cook_dish"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cook_id = Column(Integer, ForeignKey("cooks.id", ondelete="CASCADE"), nullable=False, index=True)
    food_item_id = Column(
        Integer, ForeignKey("food_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    custom_price = Column(Float, nullable=True)
    allocated_by = Column(Integer, nullable=True)
    allocated_at = Column(UTCDateTime, default=utcnow, nullable=False)


class CookDishRequest(Base):
    """Cook asking to be allocated an existing dish or proposing a new one."""
    __tablename__ = "cook_dish_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cook_id = Column(Integer, ForeignKey("cooks.id", ondelete="CASCADE"), nullable=False, index=True)
    food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=True)

    # New dish proposal
    dish_name = Column(String(150), nullable=True)
    dish_description = Column(Text, nullable=True)
    dish_price = Column(Float, nullable=True)
    dish_preparation_time_minutes = Column(Integer, nullable=True)
    dish_is_vegetarian = Column(Boolean, nullable=False, default=False)
    dish_category_id = Column(Integer, ForeignKey("food_categories.id"), nullable=True)
    dish_service_type = Column(_enum(ServiceType), nullable=True)

    status = Column(_enum(DishRequestStatus), nullable=False, default=DishRequestStatus.PENDING, index=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(Integer, nullable=True)
    reviewed_at = Column(UTCDateTime, nullable=True)
    created_food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("profile_id", "food_item_id", name="uq_cart_line"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=False)
    selected_cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Main Order table.

    status tracks the customer-facing lifecycle; cook_status aggregates the
    assigned cooks' progress and delivery_status the driver hand-off.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    service_type = Column(_enum(ServiceType), nullable=False, index=True)

    # =========================================================================
    # STATUS
    # =========================================================================
    status = Column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    cook_status = Column(_enum(CookStatus), nullable=False, default=CookStatus.PENDING)
    delivery_status = Column(_enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING)

    # =========================================================================
    # AMOUNTS
    # =========================================================================
    total_amount = Column(Float, nullable=False, default=0.0)
    delivery_amount = Column(Float, nullable=False, default=0.0)

    # =========================================================================
    # LOCATION
    # =========================================================================
    delivery_address = Column(String(255), nullable=True)
    delivery_instructions = Column(Text, nullable=True)
    panchayat_id = Column(Integer, ForeignKey("panchayats.id"), nullable=False, index=True)
    ward_number = Column(Integer, nullable=False)

    # =========================================================================
    # ASSIGNMENT
    # =========================================================================
    assigned_cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=True)
    cook_assigned_at = Column(UTCDateTime, nullable=True)
    cook_response_deadline = Column(UTCDateTime, nullable=True)
    assigned_delivery_id = Column(Integer, ForeignKey("delivery_staff.id"), nullable=True)
    estimated_delivery_minutes = Column(Integer, nullable=False, default=60)
    delivery_eta = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)

    # =========================================================================
    # SERVICE SPECIFIC
    # =========================================================================
    cloud_kitchen_slot_id = Column(Integer, ForeignKey("cloud_kitchen_slots.id"), nullable=True)
    event_date = Column(UTCDateTime, nullable=True)
    event_details = Column(Text, nullable=True)
    guest_count = Column(Integer, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    assignments = relationship(
        "OrderAssignedCook",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderAssignedCook.id",
    )

    @property
    def food_item_ids(self) -> list[int]:
        return sorted({item.food_item_id for item in self.items})

    def __repr__(self):
        return f"<Order #{self.id} {self.order_number} - {self.service_type.value} - {self.status.value}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    special_instructions = Column(Text, nullable=True)
    assigned_cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items")


class OrderAssignedCook(Base):
    """One cook's assignment on one order, with a server-side response deadline."""
    __tablename__ = "order_assigned_cooks"
    __table_args__ = (UniqueConstraint("order_id", "cook_id", name="uq_order_cook"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=False, index=True)
    cook_status = Column(_enum(CookStatus), nullable=False, default=CookStatus.PENDING)
    assigned_at = Column(UTCDateTime, default=utcnow, nullable=False)
    response_deadline = Column(UTCDateTime, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="assignments")


class OrderStatusEvent(Base):
    """Audit trail: one row per order status move."""
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(_enum(OrderStatus), nullable=True)
    to_status = Column(_enum(OrderStatus), nullable=False)
    actor_id = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


class OrderVehicle(Base):
    """Vehicle that took an order out for delivery."""
    __tablename__ = "order_vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_number = Column(String(30), nullable=False)
    driver_mobile = Column(String(20), nullable=False)
    driver_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)


# =============================================================================
# MONEY
# =============================================================================

class Settlement(Base):
    """Amount owed to a cook for a delivered order; approved by an admin."""
    __tablename__ = "settlements"
    __table_args__ = (UniqueConstraint("order_id", "cook_id", name="uq_settlement_order_cook"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=False, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    status = Column(_enum(SettlementStatus), nullable=False, default=SettlementStatus.PENDING, index=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    panchayat_id = Column(Integer, ForeignKey("panchayats.id"), nullable=True)
    ward_number = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Settlement #{self.id} cook={self.cook_id} order={self.order_id} {self.amount} {self.status.value}>"


class OrderRating(Base):
    __tablename__ = "order_ratings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    cook_id = Column(Integer, ForeignKey("cooks.id"), nullable=True, index=True)
    food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
