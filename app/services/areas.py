"""
Delivery Areas

Which orders a delivery staff member may see and take, by panchayat and
ward membership.
"""

from dataclasses import dataclass, field

from app.models import DeliveryStaff, StaffType


@dataclass(frozen=True)
class StaffArea:
    staff_id: int
    panchayat_ids: frozenset[int]
    wards: frozenset[int] = field(default_factory=frozenset)
    staff_type: StaffType = StaffType.REGISTERED_PARTNER

    @classmethod
    def from_staff(cls, staff: DeliveryStaff) -> "StaffArea":
        return cls(
            staff_id=staff.id,
            panchayat_ids=frozenset(staff.panchayat_ids),
            wards=frozenset(int(w) for w in (staff.assigned_wards or [])),
            staff_type=staff.staff_type,
        )

    def serves(self, panchayat_id: int, ward_number: int) -> bool:
        """
        Own panchayat plus assigned panchayats; registered partners with a
        ward list are limited to those wards.
        """
        if panchayat_id not in self.panchayat_ids:
            return False
        if self.staff_type == StaffType.REGISTERED_PARTNER and self.wards:
            return ward_number in self.wards
        return True
