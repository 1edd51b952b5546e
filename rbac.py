"""
Role and permission checks for the staff dashboard.

Permissions are fetched from the backend once per login and cached in the
session. The backend enforces every rule; these checks only decide what
the UI offers.
"""
import logging
import time
from functools import wraps

from flask import current_app, render_template, session

from api_client import ApiError, AuthenticationError, get_api

logger = logging.getLogger(__name__)

SESSION_KEY = 'rbac'

# Section -> permission needed to open it
ROUTE_PERMISSIONS = {
    'admin': 'users.read.regional',
    'users': 'users.read.regional',
    'beneficiaries': 'beneficiaries.read.regional',
    'applications': 'applications.read.regional',
    'projects': 'projects.read.assigned',
    'schemes': 'schemes.read.assigned',
    'reports': 'reports.read.regional',
    'finances': 'finances.read.regional',
    'donors': 'donors.read.regional',
}

# Role -> landing endpoint after login
ROLE_ROUTES = {
    'super_admin': 'admin.dashboard',
    'state_admin': 'admin.dashboard',
    'district_admin': 'admin.dashboard',
    'area_admin': 'admin.dashboard',
    'unit_admin': 'admin.dashboard',
    'project_coordinator': 'admin.projects',
    'scheme_coordinator': 'admin.schemes',
    'beneficiary': 'portal.dashboard',
}
DEFAULT_ROUTE = 'admin.dashboard'


def normalize_role(assignment):
    """Flatten a user-role assignment into {name, displayName, level, isPrimary, isActive}"""
    role = assignment.get('role') or {}
    level = role.get('level')
    try:
        level = int(level)
    except (TypeError, ValueError):
        level = None
    return {
        'name': role.get('name') or assignment.get('name'),
        'displayName': role.get('displayName') or role.get('name'),
        'level': level,
        'isPrimary': bool(assignment.get('isPrimary')),
        'isActive': assignment.get('isActive', True) is not False,
    }


class PermissionSet:
    def __init__(self, permissions=None, roles=None):
        self.permissions = set(permissions or [])
        self.roles = list(roles or [])

    @property
    def active_roles(self):
        return [role for role in self.roles if role.get('isActive', True)]

    def has_permission(self, name):
        return name in self.permissions

    def has_any(self, names):
        return any(name in self.permissions for name in names)

    def has_all(self, names):
        return all(name in self.permissions for name in names)

    def has_role(self, name):
        return any(role.get('name') == name for role in self.active_roles)

    def primary_role(self):
        roles = self.active_roles
        for role in roles:
            if role.get('isPrimary'):
                return role
        ranked = [role for role in roles if role.get('level') is not None]
        if ranked:
            # Lower level number means higher authority
            return min(ranked, key=lambda role: role['level'])
        return roles[0] if roles else None

    def default_route(self):
        role = self.primary_role()
        if not role:
            return DEFAULT_ROUTE
        return ROLE_ROUTES.get(role.get('name'), DEFAULT_ROUTE)

    def can_access(self, section):
        permission = ROUTE_PERMISSIONS.get(section)
        if permission is None:
            return True
        return self.has_permission(permission)

    def to_dict(self):
        return {'permissions': sorted(self.permissions), 'roles': self.roles}

    @classmethod
    def from_dict(cls, data):
        return cls(data.get('permissions'), data.get('roles'))


def current_user_id():
    user = session.get('user') or {}
    return user.get('id') or user.get('_id')


def fetch_permissions(api, user_id):
    """Roles and permissions for a user; empty when the backend refuses"""
    try:
        roles = [normalize_role(item) for item in api.rbac.user_roles(user_id)]
        permissions = [item.get('name') if isinstance(item, dict) else item
                       for item in api.rbac.user_permissions(user_id)]
    except AuthenticationError as e:
        logger.warning(f"Permissions refused for user {user_id}: {e.message}")
        return PermissionSet()
    except ApiError as e:
        logger.warning(f"Could not load permissions for user {user_id}: {e.message}")
        return PermissionSet()
    return PermissionSet([name for name in permissions if name], roles)


def load_permissions(force=False):
    """Permissions of the logged-in user, cached in the session"""
    user_id = current_user_id()
    if not user_id:
        return PermissionSet()

    cached = session.get(SESSION_KEY)
    ttl = current_app.config.get('PERMISSIONS_CACHE_TTL', 300)
    if cached and not force and cached.get('user_id') == user_id:
        if time.time() - cached.get('loaded_at', 0) < ttl:
            return PermissionSet.from_dict(cached)

    permission_set = fetch_permissions(get_api(), user_id)
    session[SESSION_KEY] = dict(permission_set.to_dict(), user_id=user_id, loaded_at=time.time())
    return permission_set


def clear_permissions():
    session.pop(SESSION_KEY, None)


def permission_required(*names, require_all=False):
    """Render the Access Denied page (403) unless the user holds the permissions"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            permissions = load_permissions()
            allowed = permissions.has_all(names) if require_all else permissions.has_any(names)
            if not allowed:
                logger.info(f"Access denied to {f.__name__} for user {current_user_id()}")
                return render_template('access_denied.html', required=names), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def template_helpers():
    """can/can_any/has_role for Jinja templates"""
    def can(name):
        return 'token' in session and load_permissions().has_permission(name)

    def can_any(*names):
        return 'token' in session and load_permissions().has_any(names)

    def has_role(name):
        return 'token' in session and load_permissions().has_role(name)

    return dict(can=can, can_any=can_any, has_role=has_role)
