# models/lead_clearance.py
from datetime import datetime, time, timedelta, timezone

from bson import ObjectId

from envirotrack.config.database import db_instance
from envirotrack.models.user import User, populate_users
from envirotrack.utils.date_utils import SYDNEY_TZ, to_sydney
from envirotrack.utils.mongo import ValidationError, parse_datetime, to_object_id

STATUSES = ('in progress', 'complete', 'Site Work Complete', 'closed')
JURISDICTIONS = ('ACT', 'NSW')
DEFAULT_JURISDICTION = 'ACT'
VALIDATION_TYPES = ('', 'Visual inspection', 'Visual inspection and validation sampling')
SITE_PLAN_SOURCES = ('uploaded', 'drawn')
MAX_SEQUENCE_NUMBER = 5

ITEM_FIELDS = ('location_description', 'level_floor', 'room_area', 'works_completed',
               'lead_validation_type', 'samples', 'notes')

# Fields a client may set directly through create/update
EDITABLE_FIELDS = (
    'project_id', 'lead_removal_job_id', 'clearance_date', 'inspection_time', 'status',
    'secondary_header', 'consultant', 'lead_abatement_contractor', 'jurisdiction',
    'lead_monitoring', 'lead_monitoring_reports', 'site_plan', 'site_plan_file',
    'site_plan_source', 'site_plan_legend', 'site_plan_legend_title', 'site_plan_figure_title',
    'job_specific_exclusions', 'notes', 'description_of_works', 'vehicle_equipment_description',
    'use_complex_template', 'revision', 'revision_reasons', 'legislation', 'items',
)


def sydney_day_bounds(value):
    """UTC start/end of the Sydney calendar day containing value, as naive datetimes"""
    local = to_sydney(value)
    start_local = datetime.combine(local.date(), time.min, tzinfo=SYDNEY_TZ)
    end_local = start_local + timedelta(days=1)
    to_utc = lambda dt: dt.astimezone(timezone.utc).replace(tzinfo=None)
    return to_utc(start_local), to_utc(end_local)


def new_item(data):
    """Build an embedded clearance item from request data"""
    samples = data.get('samples')
    return {
        'id': ObjectId(),
        'location_description': data.get('location_description') or '',
        'level_floor': data.get('level_floor') or '',
        'room_area': data.get('room_area') or '',
        'works_completed': data.get('works_completed') or '',
        'lead_validation_type': data.get('lead_validation_type') or '',
        'samples': samples if isinstance(samples, list) else [],
        'photographs': [],
        'notes': data.get('notes') or '',
    }


class LeadClearance:
    def __init__(self, project_id, clearance_date, inspection_time, created_by=None, **fields):
        self.id = str(fields.pop('_id')) if fields.get('_id') else None
        fields.pop('_id', None)
        self.project_id = to_object_id(project_id)
        self.clearance_date = clearance_date
        self.inspection_time = inspection_time
        self.created_by = to_object_id(created_by)

        self.lead_removal_job_id = to_object_id(fields.get('lead_removal_job_id'))
        self.status = fields.get('status') or 'in progress'
        self.secondary_header = fields.get('secondary_header') or ''
        self.consultant = fields.get('consultant') or ''
        self.lead_abatement_contractor = fields.get('lead_abatement_contractor') or ''
        self.jurisdiction = fields.get('jurisdiction')
        self.lead_monitoring = bool(fields.get('lead_monitoring', False))
        self.lead_monitoring_reports = fields.get('lead_monitoring_reports') or []
        self.site_plan = bool(fields.get('site_plan', False))
        self.site_plan_file = fields.get('site_plan_file')
        self.site_plan_source = fields.get('site_plan_source')
        self.site_plan_legend = fields.get('site_plan_legend') or []
        self.site_plan_legend_title = fields.get('site_plan_legend_title')
        self.site_plan_figure_title = fields.get('site_plan_figure_title')
        self.job_specific_exclusions = fields.get('job_specific_exclusions')
        self.notes = fields.get('notes')
        self.description_of_works = fields.get('description_of_works')
        self.vehicle_equipment_description = fields.get('vehicle_equipment_description')
        self.use_complex_template = bool(fields.get('use_complex_template', False))
        self.sampling = fields.get('sampling') or {'pre_works_samples': [], 'validation_samples': []}
        self.items = fields.get('items') or []
        self.revision = fields.get('revision', 0)
        self.revision_reasons = fields.get('revision_reasons') or []
        self.report_approved_by = fields.get('report_approved_by')
        self.report_issue_date = fields.get('report_issue_date')
        self.authorisation_requested_by = to_object_id(fields.get('authorisation_requested_by'))
        self.authorisation_requested_by_email = fields.get('authorisation_requested_by_email')
        self.report_viewed_at = fields.get('report_viewed_at')
        self.sequence_number = fields.get('sequence_number')
        self.legislation = fields.get('legislation') or []
        self.updated_by = to_object_id(fields.get('updated_by'))
        self.created_at = fields.get('created_at') or datetime.utcnow()
        self.updated_at = fields.get('updated_at') or datetime.utcnow()

    def apply(self, data):
        """Set every editable field present in data (partial update)"""
        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key in ('project_id', 'lead_removal_job_id'):
                value = to_object_id(value)
            elif key == 'clearance_date':
                value = parse_datetime(value, 'clearance_date')
            elif key == 'items':
                value = [self._normalise_item(item) for item in (value or [])]
            elif key == 'lead_monitoring_reports':
                value = [
                    {**report, 'shift_date': parse_datetime(report.get('shift_date')),
                     'shift_id': to_object_id(report.get('shift_id'))}
                    for report in (value or [])
                ]
            setattr(self, key, value)
        return self

    @staticmethod
    def _normalise_item(item):
        normalised = new_item(item)
        normalised['id'] = to_object_id(item.get('id') or item.get('_id')) or normalised['id']
        normalised['photographs'] = [LeadClearance._normalise_photo(photo)
                                    for photo in item.get('photographs') or [] if isinstance(photo, dict)]
        return normalised

    @staticmethod
    def _normalise_photo(photo):
        """Restore stored types on a photograph echoed back by a client"""
        return {
            'id': to_object_id(photo.get('id') or photo.get('_id')) or ObjectId(),
            'data': photo.get('data'),
            'include_in_report': bool(photo.get('include_in_report', True)),
            'uploaded_at': parse_datetime(photo.get('uploaded_at')) or datetime.utcnow(),
            'photo_number': photo.get('photo_number'),
            'description': photo.get('description'),
        }

    def validate(self):
        if self.project_id is None:
            raise ValidationError('project_id is required')
        if not isinstance(self.clearance_date, datetime):
            raise ValidationError('clearance_date is required')
        if not self.inspection_time:
            raise ValidationError('inspection_time is required')
        if not isinstance(self.inspection_time, str):
            raise ValidationError('inspection_time must be a string')
        if self.status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
        if self.jurisdiction is not None and self.jurisdiction not in JURISDICTIONS:
            raise ValidationError(f"jurisdiction must be one of: {', '.join(JURISDICTIONS)}")
        if self.site_plan_source is not None and self.site_plan_source not in SITE_PLAN_SOURCES:
            raise ValidationError('site_plan_source must be uploaded or drawn')
        if not isinstance(self.revision, int) or self.revision < 0:
            raise ValidationError('revision must be a non-negative integer')
        if self.sequence_number is not None and not 1 <= self.sequence_number <= MAX_SEQUENCE_NUMBER:
            raise ValidationError(f'No more than {MAX_SEQUENCE_NUMBER} clearances can be recorded for a project on one day')
        for item in self.items:
            if item.get('lead_validation_type', '') not in VALIDATION_TYPES:
                raise ValidationError('Invalid lead_validation_type')

    def to_document(self):
        return {
            'project_id': self.project_id,
            'lead_removal_job_id': self.lead_removal_job_id,
            'clearance_date': self.clearance_date,
            'inspection_time': self.inspection_time,
            'status': self.status,
            'secondary_header': self.secondary_header,
            'consultant': self.consultant,
            'lead_abatement_contractor': self.lead_abatement_contractor,
            'jurisdiction': self.jurisdiction,
            'lead_monitoring': self.lead_monitoring,
            'lead_monitoring_reports': self.lead_monitoring_reports,
            'site_plan': self.site_plan,
            'site_plan_file': self.site_plan_file,
            'site_plan_source': self.site_plan_source,
            'site_plan_legend': self.site_plan_legend,
            'site_plan_legend_title': self.site_plan_legend_title,
            'site_plan_figure_title': self.site_plan_figure_title,
            'job_specific_exclusions': self.job_specific_exclusions,
            'notes': self.notes,
            'description_of_works': self.description_of_works,
            'vehicle_equipment_description': self.vehicle_equipment_description,
            'use_complex_template': self.use_complex_template,
            'sampling': self.sampling,
            'items': self.items,
            'revision': self.revision,
            'revision_reasons': self.revision_reasons,
            'report_approved_by': self.report_approved_by,
            'report_issue_date': self.report_issue_date,
            'authorisation_requested_by': self.authorisation_requested_by,
            'authorisation_requested_by_email': self.authorisation_requested_by_email,
            'report_viewed_at': self.report_viewed_at,
            'sequence_number': self.sequence_number,
            'legislation': self.legislation,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    def save(self, user_id=None):
        """Save clearance to database, recording who changed it"""
        if user_id and self.id:
            self.updated_by = to_object_id(user_id)
        self.validate()
        db = db_instance.get_db()
        self.updated_at = datetime.utcnow()
        data = self.to_document()

        if self.id:
            db.lead_clearances.update_one({'_id': to_object_id(self.id)}, {'$set': data})
        else:
            result = db.lead_clearances.insert_one(data)
            self.id = str(result.inserted_id)

        return self

    def delete(self):
        db_instance.get_db().lead_clearances.delete_one({'_id': to_object_id(self.id)})

    @staticmethod
    def from_document(data):
        fields = dict(data)
        return LeadClearance(
            project_id=fields.pop('project_id', None),
            clearance_date=fields.pop('clearance_date', None),
            inspection_time=fields.pop('inspection_time', None),
            created_by=fields.pop('created_by', None),
            **fields
        )

    @staticmethod
    def find_by_id(clearance_id):
        oid = to_object_id(clearance_id)
        if oid is None:
            return None
        data = db_instance.get_db().lead_clearances.find_one({'_id': oid})
        return LeadClearance.from_document(data) if data else None

    @staticmethod
    def find(filters=None, sort_by='created_at', sort_order='desc', page=1, limit=10):
        """Return (clearances, total_count) for one page of results"""
        db = db_instance.get_db()
        query = filters or {}
        direction = -1 if sort_order == 'desc' else 1
        cursor = (db.lead_clearances.find(query)
                  .sort(sort_by, direction)
                  .skip((page - 1) * limit)
                  .limit(limit))
        clearances = [LeadClearance.from_document(data) for data in cursor]
        return clearances, db.lead_clearances.count_documents(query)

    @staticmethod
    def next_sequence_number(project_id, clearance_date):
        """One more than the highest sequence used for the project on that (Sydney) day"""
        if not project_id or not clearance_date:
            return 1
        start, end = sydney_day_bounds(clearance_date)
        existing = db_instance.get_db().lead_clearances.find(
            {'project_id': to_object_id(project_id), 'clearance_date': {'$gte': start, '$lt': end}},
            {'sequence_number': 1}
        )
        numbers = [doc.get('sequence_number') or 1 for doc in existing]
        return max(numbers) + 1 if numbers else 1

    @staticmethod
    def lookup_job_jurisdiction(lead_removal_job_id):
        oid = to_object_id(lead_removal_job_id)
        if oid is None:
            return None
        job = db_instance.get_db().lead_removal_jobs.find_one({'_id': oid}, {'jurisdiction': 1})
        return job.get('jurisdiction') if job else None

    # Items

    def find_item(self, item_id):
        oid = to_object_id(item_id)
        for item in self.items:
            if oid is not None and item.get('id') == oid:
                return item
        return None

    def add_item(self, data):
        item = new_item(data)
        self.items.append(item)
        return item

    def update_item(self, item, data):
        for key in ITEM_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key == 'samples':
                value = value if isinstance(value, list) else []
            elif key == 'lead_validation_type':
                value = value or ''
            item[key] = value
        return item

    def remove_item(self, item):
        self.items = [i for i in self.items if i.get('id') != item.get('id')]

    # Photographs

    @staticmethod
    def find_photo(item, photo_id):
        oid = to_object_id(photo_id)
        for photo in item.get('photographs', []):
            if oid is not None and photo.get('id') == oid:
                return photo
        return None

    @staticmethod
    def add_photo(item, photo_data, include_in_report=True, description=None):
        photographs = item.setdefault('photographs', [])
        numbers = [p.get('photo_number') or 0 for p in photographs]
        photo = {
            'id': ObjectId(),
            'data': photo_data,
            'include_in_report': bool(include_in_report),
            'uploaded_at': datetime.utcnow(),
            'photo_number': max(numbers) + 1 if numbers else 1,
            'description': description,
        }
        photographs.append(photo)
        return photo

    @staticmethod
    def remove_photo(item, photo):
        item['photographs'] = [p for p in item.get('photographs', []) if p.get('id') != photo.get('id')]

    # Report workflow

    def request_authorisation(self, user):
        if self.status != 'complete':
            raise ValidationError('Clearance must be complete before sending for authorisation')
        self.authorisation_requested_by = to_object_id(user.id)
        self.authorisation_requested_by_email = user.email or None

    def authorise(self, user):
        if self.status != 'complete':
            raise ValidationError('Clearance must be complete before authorising the report')
        if self.report_approved_by:
            raise ValidationError('Report has already been authorised')
        self.report_approved_by = user.full_name or user.email or 'Unknown'
        self.report_issue_date = datetime.utcnow()

    def project_summary(self):
        """Project reference populated with its client name, when the project exists"""
        db = db_instance.get_db()
        project = db.projects.find_one({'_id': self.project_id}, {'project_id': 1, 'name': 1, 'client': 1})
        if not project:
            return {'id': str(self.project_id)} if self.project_id else None
        client = None
        if project.get('client'):
            client_doc = db.clients.find_one({'_id': project['client']}, {'name': 1})
            if client_doc:
                client = {'id': str(client_doc['_id']), 'name': client_doc.get('name')}
        return {
            'id': str(project['_id']),
            'project_id': project.get('project_id'),
            'name': project.get('name'),
            'client': client,
        }

    def to_dict(self, populate=True):
        data = self.to_document()
        data['id'] = self.id
        for key in ('project_id', 'lead_removal_job_id', 'created_by', 'updated_by',
                    'authorisation_requested_by'):
            data[key] = str(data[key]) if data[key] else None
        if populate:
            data['project'] = self.project_summary()
            populate_users(data)
            revisers = [r.get('revised_by') for r in self.revision_reasons if r.get('revised_by')]
            summaries = {}
            if revisers:
                summaries = User.summaries(revisers)
            data['revision_reasons'] = [
                {**r, 'revised_by': summaries.get(str(r.get('revised_by')), r.get('revised_by'))}
                for r in self.revision_reasons
            ]
        return data
