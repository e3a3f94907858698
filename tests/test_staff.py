import pytest

from app.core.exceptions import (
    AssignmentConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from app.models import AppRole, DishRequestStatus, ServiceType
from app.services import cook_assignment, cook_dishes, staff, wallets


async def test_one_profile_per_mobile(session, customer):
    customer_id = customer.id
    with pytest.raises(AssignmentConflictError) as exc:
        await staff.register_profile(session, "Someone Else", "98470 12345")
    assert exc.value.code == "duplicate_mobile"

    found = await staff.get_profile_by_mobile(session, "9847012345")
    assert found.id == customer_id


def test_short_mobile_numbers_are_rejected():
    with pytest.raises(ValidationFailedError):
        staff.normalize_mobile("12345")


async def test_kitchen_names_are_unique(session, make_cook):
    await make_cook(name="Amma's Kitchen")

    with pytest.raises(AssignmentConflictError):
        await staff.register_cook(session, "Amma's Kitchen", "9847033333")


async def test_cook_registration_promotes_a_customer(session, customer):
    cook = await staff.register_cook(session, "Ammachi's", customer.mobile_number, profile_id=customer.id)

    await session.refresh(customer)
    assert customer.role == AppRole.COOK
    assert cook.allowed_order_types == [t.value for t in ServiceType]
    assert (await staff.cook_for_profile(session, customer.id)).id == cook.id


async def test_approval_opens_the_wallet(session, admin, make_driver):
    applicant = await make_driver(approved=False)
    assert await wallets.get_wallet(session, applicant.id) is None
    assert [s.id for s in await staff.list_delivery_staff(session, approved=False)] == [applicant.id]

    approved = await staff.approve_delivery_staff(session, applicant.id, admin)

    assert approved.is_approved
    assert approved.approved_by == admin.id
    wallet = await wallets.get_wallet(session, applicant.id)
    assert (wallet.collected_amount, wallet.job_earnings, wallet.total_settled) == (0.0, 0.0, 0.0)


async def test_location_must_exist(session, panchayat):
    assert (await staff.validate_location(session, panchayat.id, 10)).id == panchayat.id
    with pytest.raises(ValidationFailedError):
        await staff.validate_location(session, panchayat.id, 0)
    with pytest.raises(ValidationFailedError):
        await staff.validate_location(session, 9999, 1)


# =============================================================================
# DISHES
# =============================================================================

async def test_reallocating_a_dish_updates_the_price(session, admin, dishes, make_cook):
    biryani, _ = dishes
    cook = await make_cook(biryani)

    await cook_dishes.allocate_dish(session, cook.id, biryani.id, 150.0, admin)

    allocations = await cook_dishes.cook_dishes(session, cook.id)
    assert [(dish.custom_price, item.id) for dish, item in allocations] == [(150.0, biryani.id)]


async def test_removed_allocation_stops_qualifying(session, dishes, make_cook):
    biryani, _ = dishes
    cook = await make_cook(biryani)

    await cook_dishes.remove_allocation(session, cook.id, biryani.id)

    assert await cook_assignment.qualified_cooks(session, [biryani.id]) == []
    with pytest.raises(NotFoundError):
        await cook_dishes.remove_allocation(session, cook.id, biryani.id)


async def test_approving_a_new_dish_creates_and_allocates_it(session, admin, make_cook):
    cook = await make_cook()
    request = await cook_dishes.submit_dish_request(
        session,
        cook.id,
        dish_name="Kappa Biryani",
        dish_price=140.0,
        dish_service_type=ServiceType.HOMEMADE,
        dish_is_vegetarian=False,
    )

    reviewed = await cook_dishes.review_dish_request(session, request.id, True, admin, "Looks good")

    assert reviewed.status == DishRequestStatus.APPROVED
    assert reviewed.created_food_item_id is not None
    allocations = await cook_dishes.cook_dishes(session, cook.id)
    assert [item.name for _, item in allocations] == ["Kappa Biryani"]

    with pytest.raises(InvalidTransitionError):
        await cook_dishes.review_dish_request(session, request.id, False, admin)


async def test_rejected_request_allocates_nothing(session, admin, dishes, make_cook):
    _, payasam = dishes
    cook = await make_cook()
    request = await cook_dishes.submit_dish_request(session, cook.id, food_item_id=payasam.id)

    await cook_dishes.review_dish_request(session, request.id, False, admin, "Enough payasam cooks")

    assert await cook_dishes.cook_dishes(session, cook.id) == []
    pending = await cook_dishes.list_dish_requests(session, status=DishRequestStatus.PENDING)
    assert pending == []


async def test_new_dish_request_needs_name_price_and_type(session, make_cook):
    cook = await make_cook()

    with pytest.raises(ValidationFailedError):
        await cook_dishes.submit_dish_request(session, cook.id, dish_name="Mystery")
