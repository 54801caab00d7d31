from seoquota.models.role import ROLE_FREE, ROLE_USER, ROLE_PRO, ROLE_SUPER, ROLE_ADMIN

RESOURCES = {
    "users": ("read", "write"),
    "roles": ("read", "write"),
    "quotas": ("read", "write"),
    "billing": ("read", "write"),
}

_NONE = {resource: {} for resource in RESOURCES}

ROLE_PERMISSIONS = {
    ROLE_FREE: _NONE,
    ROLE_USER: _NONE,
    ROLE_PRO: _NONE,
    ROLE_SUPER: {"quotas": {"read": True}},
    ROLE_ADMIN: {resource: {a: True for a in actions} for resource, actions in RESOURCES.items()},
}


def check_permission(role: str, resource: str, action: str) -> bool:
    perms = ROLE_PERMISSIONS.get(role, {})
    return perms.get(resource, {}).get(action, False)


def get_role_permissions(role: str) -> dict:
    merged = {}
    for resource, actions in ROLE_PERMISSIONS.get(role, {}).items():
        allowed = {action: True for action, ok in actions.items() if ok}
        if allowed:
            merged[resource] = allowed
    return merged
