# Permission keys and the roles that hold them
PERMISSIONS = {
    # Projects
    'projects.view': 'View projects',
    'projects.create': 'Create projects',
    'projects.edit': 'Edit projects',
    'projects.delete': 'Delete projects',
    'projects.change_status': 'Change project status',

    # Users
    'users.view': 'View users',
    'users.create': 'Create new users',
    'users.edit': 'Edit users and reset their passwords',
    'users.delete': 'Deactivate users',

    # Jobs
    'jobs.view': 'View jobs',
    'jobs.create': 'Create jobs',
    'jobs.edit': 'Edit jobs',
    'jobs.delete': 'Delete jobs',
    'jobs.authorize_reports': 'Authorize job reports',

    # Asbestos and lead clearances
    'asbestos.view': 'View clearances',
    'asbestos.create': 'Create clearances',
    'asbestos.edit': 'Edit clearances',
    'asbestos.delete': 'Delete clearances',

    # Calibrations
    'calibrations.view': 'View calibrations',
    'calibrations.create': 'Create calibrations',
    'calibrations.edit': 'Edit calibrations',
    'calibrations.delete': 'Delete calibrations',

    # Equipment
    'equipment.view': 'View equipment',
    'equipment.create': 'Create equipment',
    'equipment.edit': 'Edit equipment',
    'equipment.delete': 'Delete equipment',

    # Administration (report templates, custom data fields)
    'admin.view': 'View administration data',
    'admin.create': 'Create administration data',
    'admin.edit': 'Edit administration data',
    'admin.delete': 'Delete administration data',

    # Invoicing
    'invoices.view': 'View invoices',
    'invoices.edit': 'Create and edit invoices',
    'invoices.approve': 'Approve invoices',
    'xero.manage': 'Connect and sync Xero',

    'timesheets.approve': 'Approve timesheets',
}

ROLE_PERMISSIONS = {
    'admin': list(PERMISSIONS.keys()),
    'manager': [
        'projects.view',
        'projects.create',
        'projects.edit',
        'projects.change_status',
        'users.view',
        'jobs.view',
        'jobs.create',
        'jobs.edit',
        'jobs.authorize_reports',
        'asbestos.view',
        'asbestos.create',
        'asbestos.edit',
        'asbestos.delete',
        'calibrations.view',
        'calibrations.create',
        'calibrations.edit',
        'calibrations.delete',
        'equipment.view',
        'equipment.create',
        'equipment.edit',
        'equipment.delete',
        'admin.view',
        'invoices.view',
        'invoices.edit',
        'invoices.approve',
        'xero.manage',
        'timesheets.approve',
    ],
    # Employees can work jobs and clearances but not delete, approve or administer
    'employee': [
        'projects.view',
        'projects.create',
        'projects.edit',
        'users.view',
        'jobs.view',
        'jobs.create',
        'jobs.edit',
        'asbestos.view',
        'asbestos.create',
        'asbestos.edit',
        'calibrations.view',
        'calibrations.create',
        'calibrations.edit',
        'equipment.view',
        'equipment.create',
        'equipment.edit',
        'invoices.view',
    ],
}

ROLES = tuple(ROLE_PERMISSIONS.keys())


def get_role_permissions(role):
    return set(ROLE_PERMISSIONS.get(role, []))


def has_permission(role, *permissions):
    """True when the role holds every listed permission"""
    granted = get_role_permissions(role)
    return all(permission in granted for permission in permissions)
