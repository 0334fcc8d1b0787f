from shopgate.db.repositories.invitations import InvitationsRepository
from shopgate.db.repositories.memberships import MembershipsRepository
from shopgate.db.repositories.tenants import TenantsRepository
from shopgate.db.repositories.users import UsersRepository

__all__ = [
    "InvitationsRepository",
    "MembershipsRepository",
    "TenantsRepository",
    "UsersRepository",
]
