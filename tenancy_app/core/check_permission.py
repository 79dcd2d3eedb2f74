from models.enums import UserRole

from .errors import ForbiddenError


class CheckRolePermission:
    def check_admin(self, current_user):
        if current_user.role != UserRole.ADMIN:
            raise ForbiddenError("Access Denied.")

    def check_tenant(self, current_user):
        if current_user.role not in {UserRole.TENANT, UserRole.ADMIN}:
            raise ForbiddenError("Only tenants can perform this action")

    def check_landlord(self, current_user):
        if current_user.role not in {UserRole.LANDLORD, UserRole.ADMIN}:
            raise ForbiddenError("Only landlords can perform this action")

    def check_party(self, current_user, *party_ids):
        if current_user.role == UserRole.ADMIN:
            return
        if current_user.id not in party_ids:
            raise ForbiddenError("You are not a party to this record")
