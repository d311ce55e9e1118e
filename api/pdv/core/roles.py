from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    CASHIER = "cashier"
    VIEWER = "viewer"


class Capability(str, Enum):
    PROCESS_SALES = "process_sales"
    MANAGE_PRODUCTS = "manage_products"
    MANAGE_CUSTOMERS = "manage_customers"
    VIEW_REPORTS = "view_reports"
    EXPORT_REPORTS = "export_reports"
    MANAGE_SETTINGS = "manage_settings"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.CASHIER: frozenset(
        {
            Capability.PROCESS_SALES,
            Capability.MANAGE_PRODUCTS,
            Capability.MANAGE_CUSTOMERS,
            Capability.VIEW_REPORTS,
        }
    ),
    Role.VIEWER: frozenset({Capability.VIEW_REPORTS}),
}


def parse_role(value: str | None) -> Role | None:
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def has_capability(role: Role | None, capability: Capability) -> bool:
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES[role]
