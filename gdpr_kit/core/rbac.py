from enum import Enum


class Role(str, Enum):
    DPO = "DPO"
    SUPPORT = "SUPPORT"
    USER = "USER"


ROLE_PERMISSIONS: dict[Role, set[str]] = {
    Role.DPO: {
        "consent:manage:self",
        "data_request:process",
        "governance:erase:any",
        "governance:export:any",
        "governance:audit",
        "governance:retention",
        "governance:keys",
        "notifications:read",
        "processing:read",
        "audit:read",
        "users:read",
    },
    Role.SUPPORT: {
        "consent:manage:self",
        "data_request:process",
        "processing:read",
    },
    Role.USER: {
        "consent:manage:self",
    },
}


def has_permission(role: Role, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, set())
