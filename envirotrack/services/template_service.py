# services/template_service.py
import re

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from envirotrack.models.report_template import ReportTemplate
from envirotrack.models.user import User
from envirotrack.services.default_templates import DEFAULT_TEMPLATES
from envirotrack.utils.date_utils import format_date_sydney
from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.templates')

DEFAULT_LAA_LICENCE = 'AA00031'
SIGNATURE_PLACEHOLDER = '[SIGNATURE_PLACEHOLDER]'
DEFAULT_JURISDICTION = 'ACT'
AIR_MONITORING_RESULT = (
    'Air monitoring was conducted and results were below the clearance indicator of 0.01 fibres per mL.'
)

TIME_24H = re.compile(r'^(\d{1,2}):(\d{2})$')
BOLD = re.compile(r'\*\*(.*?)\*\*')
BULLET = '[BULLET]'


def create_default_template(template_type, created_by=None):
    """Store the built-in template for template_type; None when there is no default"""
    default = DEFAULT_TEMPLATES.get(template_type)
    if not default:
        return None
    if created_by is None:
        admin = User.find_first_admin()
        created_by = admin.id if admin else ObjectId()

    template = ReportTemplate(
        template_type=template_type,
        report_headers=dict(default['report_headers']),
        standard_sections=dict(default['standard_sections']),
        created_by=created_by,
    )
    try:
        template.save()
    except DuplicateKeyError:
        # Created concurrently; use the stored one
        return ReportTemplate.find_by_type(template_type)
    logger.info('Created default %s report template', template_type)
    return template


def create_default_templates(created_by=None):
    """Create every missing default template; returns the types created"""
    created = []
    for template_type in DEFAULT_TEMPLATES:
        if ReportTemplate.find_by_type(template_type):
            continue
        if create_default_template(template_type, created_by):
            created.append(template_type)
    return created


def get_template_by_type(template_type):
    """Stored template for the type, creating the default one when missing"""
    template = ReportTemplate.find_by_type(template_type)
    if template:
        return template
    return create_default_template(template_type)


def format_inspection_time(value):
    """'14:30' -> '2:30 PM'; other strings are returned unchanged"""
    if not value:
        return 'Inspection Time'
    value = str(value)
    match = TIME_24H.match(value.strip())
    if not match:
        return value
    hours, minutes = int(match.group(1)), match.group(2)
    suffix = 'PM' if hours >= 12 else 'AM'
    if hours == 0:
        hours = 12
    elif hours > 12:
        hours -= 12
    return f'{hours}:{minutes} {suffix}'


def appendix_references(has_site_plan, has_air_monitoring, area='Asbestos Removal Area'):
    attachments = [f'Photographs of the {area}']
    if has_site_plan:
        attachments.append('Site Plan')
    if has_air_monitoring:
        attachments.append('Air Monitoring Report')
    if len(attachments) == 1:
        return f'{attachments[0]} are presented in Appendix A.'

    letters = [f'Appendix {chr(ord("A") + i)}' for i in range(len(attachments))]
    if len(attachments) == 2:
        return f'{attachments[0]} and {attachments[1]} are presented in {letters[0]} and {letters[1]} respectively.'
    return (f'{attachments[0]}, {attachments[1]}, and {attachments[2]} are presented in '
            f'{letters[0]}, {letters[1]}, and {letters[2]} respectively.')


def legislation_bullets(items, jurisdiction=None):
    """Bullet lines for the legislation items that apply in the jurisdiction"""
    jurisdiction = jurisdiction or DEFAULT_JURISDICTION
    lines = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        if item.get('jurisdiction') and item['jurisdiction'] != jurisdiction:
            continue
        title = item.get('legislation_title') or item.get('text')
        if title:
            lines.append(f'{BULLET}{title}')
    return '\n'.join(lines)


def lookup_laa(name):
    """(licence number, signature data URL) for the named assessor"""
    licence, signature = DEFAULT_LAA_LICENCE, None
    if not name:
        return licence, signature
    try:
        user = User.find_by_display_name(name)
    except Exception:
        logger.exception('Error looking up licence and signature for %s', name)
        return licence, signature
    if user:
        licence = user.laa_licence_number() or licence
        signature = user.signature or None
    return licence, signature


def _project(data):
    project = data.get('project') or {}
    return project if isinstance(project, dict) else {}


def build_replacements(data):
    """Placeholder -> value map for one report"""
    project = _project(data)
    client = project.get('client') if isinstance(project.get('client'), dict) else {}
    laa_name = data.get('laa') or data.get('laa_name')
    licence, signature = lookup_laa(laa_name)
    clearance_type = data.get('clearance_type')
    clearance_date = format_date_sydney(data.get('clearance_date')) or 'Unknown Date'
    air_monitoring = bool(data.get('air_monitoring'))
    has_site_plan = bool(data.get('site_plan') and data.get('site_plan_file'))

    return {
        '{CLIENT_NAME}': client.get('name') or data.get('client_name') or 'Unknown Client',
        '{ASBESTOS_TYPE}': clearance_type.lower() if clearance_type else 'non-friable',
        '{SITE_NAME}': project.get('name') or data.get('site_name') or 'Unknown Site',
        '{ASBESTOS_REMOVALIST}': data.get('asbestos_removalist') or 'Unknown Removalist',
        '{LEAD_ABATEMENT_CONTRACTOR}': data.get('lead_abatement_contractor') or 'Unknown Contractor',
        '{LAA_NAME}': laa_name or 'Unknown LAA',
        '{LAA_LICENSE}': licence,
        '{INSPECTION_TIME}': format_inspection_time(data.get('inspection_time')),
        '{INSPECTION_DATE}': clearance_date,
        '{REPORT_TYPE}': clearance_type or 'Non-friable',
        '{CLEARANCE_DATE}': clearance_date,
        '{CLEARANCE_TIME}': 'Clearance Time',
        '{PROJECT_NAME}': project.get('name') or 'Unknown Project',
        '{PROJECT_NUMBER}': project.get('project_id') or 'Unknown Project ID',
        '{SITE_ADDRESS}': project.get('name') or 'Unknown Address',
        '{SIGNATURE_IMAGE}': (
            f'<img src="{signature}" alt="Signature" style="max-width: 150px; max-height: 75px;" />'
            if signature else SIGNATURE_PLACEHOLDER
        ),
        '{APPENDIX_REFERENCES}': appendix_references(
            has_site_plan, air_monitoring, data.get('removal_area') or 'Asbestos Removal Area'),
        '{AIR_MONITORING_REFERENCE}': 'and air monitoring' if air_monitoring else '',
        '{AIR_MONITORING_RESULTS}': AIR_MONITORING_RESULT if air_monitoring else '',
        '{LEGISLATION}': legislation_bullets(data.get('legislation'), data.get('jurisdiction')),
    }


def format_content(text):
    """Newlines to <br>, [BULLET] runs to lists, **bold** and [BR] markers"""
    lines = re.sub(r'\r?\n', '<br>', text).split('<br>')
    processed, bullets = [], []
    for raw in lines:
        line = raw.strip()
        if not line:
            # Blank lines inside a bullet run are dropped
            if not bullets:
                processed.append('')
            continue
        if line.startswith(BULLET):
            bullets.append(line[len(BULLET):])
            continue
        if bullets:
            processed.append('<ul class="bullets">' + ''.join(f'<li>{b}</li>' for b in bullets) + '</ul>')
            bullets = []
        processed.append(line)
    if bullets:
        processed.append('<ul class="bullets">' + ''.join(f'<li>{b}</li>' for b in bullets) + '</ul>')

    result = '<br>'.join(processed)
    result = BOLD.sub(r'<strong>\1</strong>', result)
    return result.replace('[BR]', '<br>')


def apply_replacements(content, replacements):
    if not content:
        return ''
    result = content
    for placeholder, value in replacements.items():
        result = result.replace(placeholder, value)
    return format_content(result)


def replace_placeholders(content, data):
    """Fill a template section with report data and apply formatting"""
    if not content:
        return ''
    return apply_replacements(content, build_replacements(data or {}))


def render_template_sections(template, data):
    """Render every *_content section (and the footer) of a template"""
    replacements = build_replacements(data or {})
    sections = template.standard_sections or {}
    return {
        key: apply_replacements(value, replacements)
        for key, value in sections.items()
        if key.endswith('_content') or key == 'footer_text'
    }


def lead_clearance_report_data(clearance):
    """Report data for a lead clearance document (as returned by to_dict)"""
    return {
        'project': clearance.get('project'),
        'clearance_type': 'Lead',
        'laa': clearance.get('consultant'),
        'lead_abatement_contractor': clearance.get('lead_abatement_contractor'),
        'inspection_time': clearance.get('inspection_time'),
        'clearance_date': clearance.get('clearance_date'),
        'site_plan': clearance.get('site_plan'),
        'site_plan_file': clearance.get('site_plan_file'),
        'air_monitoring': clearance.get('lead_monitoring'),
        'removal_area': 'Lead Removal Area',
        'legislation': clearance.get('legislation'),
        'jurisdiction': clearance.get('jurisdiction'),
    }
