"""
Ownership checks for billing resources.
Role gating (which roles may call an endpoint) is done with RoleChecker in
core/users.py; these helpers check that the caller owns or belongs to the
specific motel/contract before anything is mutated.
"""

from ..core.constants import UserRole
from ..core.errors import ForbiddenError
from ..models import Contract, Motel, User

STAFF_ROLES = (UserRole.ADMIN, UserRole.STAFF)


def apply_billing_scope(statement, user: User):
    """
    Restrict a statement already joined with Contract and Motel to the rows
    visible to the user. ADMIN and STAFF see everything.
    """
    if user.role in STAFF_ROLES:
        return statement
    if user.role == UserRole.LANDLORD:
        return statement.where(Motel.owner_id == user.id)
    return statement.where(Contract.tenant_id == user.id)


def ensure_can_manage_motel(user: User, motel: Motel, message: str) -> None:
    """Landlords may only bill or collect for their own motels."""
    if user.role == UserRole.LANDLORD and motel.owner_id != user.id:
        raise ForbiddenError(message)


def ensure_can_view(user: User, contract: Contract, motel: Motel, message: str) -> None:
    if user.role in STAFF_ROLES:
        return
    if user.role == UserRole.LANDLORD and motel.owner_id == user.id:
        return
    if contract.tenant_id is not None and contract.tenant_id == user.id:
        return
    raise ForbiddenError(message)


def ensure_can_pay_online(user: User, contract: Contract, motel: Motel, message: str) -> None:
    """The contract's tenant, the motel owner or an admin may start an online payment."""
    is_tenant = contract.tenant_id is not None and contract.tenant_id == user.id
    is_landlord = motel.owner_id == user.id
    if not (is_tenant or is_landlord or user.role == UserRole.ADMIN):
        raise ForbiddenError(message)
