"""
One-off maintenance commands, run as ``flask --app envirotrack.app maintenance <command>``.

Every command takes ``--dry-run`` to report what it would change without writing.
"""

import re

import click
from flask import current_app
from flask.cli import AppGroup

from envirotrack.config.database import db_instance
from envirotrack.models.custom_data_field import CustomDataFieldGroup, DEFAULT_STATUS_COLOR
from envirotrack.models.report_template import ReportTemplate, TEMPLATE_TYPES
from envirotrack.models.user import User
from envirotrack.services import template_service
from envirotrack.services.default_templates import DEFAULT_TEMPLATES
from envirotrack.services.xero_exceptions import XeroError
from envirotrack.services.xero_service import XeroService
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.cli')

maintenance_cli = AppGroup('maintenance', help='Data migrations and cleanup tasks.')

dry_run_option = click.option('--dry-run', is_flag=True, help='Report changes without writing them.')

LEGACY_BULLET = re.compile(r'^[ \t]*(?:•|-(?=\s))[ \t]*', re.MULTILINE)
XERO_LINKED = {'xero_invoice_id': {'$exists': True, '$nin': [None, '']}}


def _summary(dry_run, message):
    click.echo(f"{'[dry run] ' if dry_run else ''}{message}")


@maintenance_cli.command('migrate-laa-licences')
@dry_run_option
def migrate_laa_licences(dry_run):
    """Move legacy laa_licences into licences (type LAA)."""
    users = db_instance.get_db().users
    migrated = 0
    for user in users.find({'laa_licences': {'$exists': True}}):
        licences = [{
            'state': licence.get('state') or '',
            'licence_number': licence.get('licence_number') or '',
            'licence_type': 'LAA',
        } for licence in user.get('laa_licences') or []]
        if not dry_run:
            users.update_one({'_id': user['_id']},
                             {'$set': {'licences': licences}, '$unset': {'laa_licences': ''}})
        migrated += 1

    missing = users.count_documents({'licences': {'$exists': False}})
    if not dry_run and missing:
        users.update_many({'licences': {'$exists': False}}, {'$set': {'licences': []}})
    _summary(dry_run, f'Migrated {migrated} users; added empty licences to {missing} users')


@maintenance_cli.command('restore-invoices')
@dry_run_option
def restore_invoices(dry_run):
    """Clear the soft-delete flags on Xero-linked invoices."""
    invoices = db_instance.get_db().invoices
    query = {'is_deleted': True, **XERO_LINKED}
    found = invoices.count_documents(query)
    if not dry_run and found:
        invoices.update_many(query, {'$set': {'is_deleted': False, 'delete_reason': None, 'deleted_at': None}})
    _summary(dry_run, f'Restored {found} soft-deleted Xero invoices')


@maintenance_cli.command('cleanup-paid-invoices')
@dry_run_option
def cleanup_paid_invoices(dry_run):
    """Soft delete Xero-linked invoices missing from a fresh Xero sync."""
    service = XeroService.for_app(current_app)
    try:
        result = service.sync_invoices()
    except XeroError as e:
        raise click.ClickException(f'Xero sync failed: {e}')

    cleanup = XeroService.cleanup_paid_invoices(result['invoices'], dry_run=dry_run)
    _summary(dry_run, f"Synced {result['processed']} invoices; "
                      f"{cleanup['total_found']} no longer open in Xero, "
                      f"{cleanup['soft_deleted']} soft deleted")


@maintenance_cli.command('create-default-templates')
@dry_run_option
def create_default_templates(dry_run):
    """Create any missing default report templates."""
    missing = [t for t in DEFAULT_TEMPLATES if ReportTemplate.find_by_type(t) is None]
    created = missing if dry_run else template_service.create_default_templates()
    _summary(dry_run, f"Created templates: {', '.join(created) or 'none'}")


@maintenance_cli.command('migrate-custom-fields-to-groups')
@dry_run_option
def migrate_custom_fields_to_groups(dry_run):
    """Fold active custom data fields into one group per type."""
    db = db_instance.get_db()
    created, skipped = [], []
    for field_type in sorted(db.custom_data_fields.distinct('type')):
        fields = list(db.custom_data_fields.find({'type': field_type, 'is_active': True}).sort('created_at', 1))
        if not fields:
            continue
        if CustomDataFieldGroup.find_active_by_type(field_type):
            skipped.append(field_type)
            continue

        group = CustomDataFieldGroup(
            name=f"{field_type.replace('_', ' ').title()} Fields",
            description=f'Custom data fields for {field_type}',
            type=field_type,
            created_by=fields[0].get('created_by'),
        )
        group.fields = CustomDataFieldGroup.build_fields([{
            'text': field['text'],
            'is_active': True,
            'is_active_status': True if field.get('is_active_status') is None else field['is_active_status'],
            'status_color': field.get('status_color') or DEFAULT_STATUS_COLOR,
            'legislation_title': field.get('legislation_title'),
            'jurisdiction': field.get('jurisdiction'),
        } for field in fields], fields[0].get('created_by'))
        if not dry_run:
            try:
                group.save()
            except ValidationError as e:
                logger.error('Skipping %s: %s', field_type, e)
                continue
        created.append(f'{field_type} ({len(fields)})')

    _summary(dry_run, f"Groups created: {', '.join(created) or 'none'}; "
                      f"already grouped: {', '.join(skipped) or 'none'}")


@maintenance_cli.command('fix-bullet-formatting')
@dry_run_option
def fix_bullet_formatting(dry_run):
    """Rewrite legacy bullet characters in template sections as [BULLET] markers."""
    updated = []
    for template_type in TEMPLATE_TYPES:
        template = ReportTemplate.find_by_type(template_type)
        if not template:
            continue
        sections = dict(template.standard_sections or {})
        changed = False
        for key, value in sections.items():
            if isinstance(value, str) and LEGACY_BULLET.search(value):
                sections[key] = LEGACY_BULLET.sub(template_service.BULLET, value)
                changed = True
        if changed:
            updated.append(template_type)
            if not dry_run:
                template.standard_sections = sections
                template.save()
    _summary(dry_run, f"Templates updated: {', '.join(updated) or 'none'}")


@maintenance_cli.command('create-admin')
@click.option('--email', prompt=True)
@click.option('--first-name', prompt=True)
@click.option('--last-name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@dry_run_option
def create_admin(email, first_name, last_name, password, dry_run):
    """Create an admin user."""
    if User.find_by_email(email):
        raise click.ClickException(f'A user with email {email} already exists')

    user = User(email=email, first_name=first_name, last_name=last_name, role='admin')
    try:
        user.set_password(password)
        user.validate()
    except ValidationError as e:
        raise click.ClickException(str(e))
    if not dry_run:
        user.save()
    _summary(dry_run, f'Admin user {user.email} created')
