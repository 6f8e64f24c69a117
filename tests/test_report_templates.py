"""Tests for the report template routes."""

from envirotrack.models.report_template import ReportTemplate


def _template_payload(**overrides):
    payload = {
        'template_type': 'asbestosAssessment',
        'report_headers': {'title': 'ASBESTOS ASSESSMENT REPORT', 'subtitle': 'Assessment'},
        'standard_sections': {
            'introduction_title': 'INTRODUCTION',
            'introduction_content': 'Assessment for {CLIENT_NAME} at {SITE_NAME}.',
            'footer_text': 'Assessment: {SITE_NAME}',
        },
    }
    payload.update(overrides)
    return payload


class TestReportTemplateRoutes:

    def test_create_and_fetch(self, client, admin_headers):
        response = client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        assert response.status_code == 201
        body = response.get_json()
        assert body['company_details']['name'].startswith('Lancaster')

        fetched = client.get('/api/report-templates/asbestosAssessment', headers=admin_headers)
        assert fetched.status_code == 200
        assert fetched.get_json()['report_headers']['title'] == 'ASBESTOS ASSESSMENT REPORT'

    def test_create_duplicate(self, client, admin_headers):
        client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        response = client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        assert response.status_code == 400

    def test_create_invalid_type(self, client, admin_headers):
        response = client.post('/api/report-templates/', headers=admin_headers,
                               json=_template_payload(template_type='bogus'))
        assert response.status_code == 400

    def test_create_requires_title(self, client, admin_headers):
        response = client.post('/api/report-templates/', headers=admin_headers,
                               json=_template_payload(report_headers={'subtitle': 'x'}))
        assert response.status_code == 400

    def test_employee_cannot_manage(self, client, employee_headers):
        response = client.post('/api/report-templates/', headers=employee_headers, json=_template_payload())
        assert response.status_code == 403

    def test_update_sets_updated_by(self, client, admin, admin_headers):
        client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        response = client.put('/api/report-templates/asbestosAssessment', headers=admin_headers,
                              json={'report_headers': {'title': 'UPDATED'}})
        assert response.status_code == 200
        template = ReportTemplate.find_by_type('asbestosAssessment')
        assert template.report_headers == {'title': 'UPDATED'}
        assert str(template.updated_by) == admin.id

    def test_delete(self, client, admin_headers):
        client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        assert client.delete('/api/report-templates/asbestosAssessment', headers=admin_headers).status_code == 200
        assert client.get('/api/report-templates/asbestosAssessment', headers=admin_headers).status_code == 404

    def test_create_defaults(self, client, admin_headers):
        first = client.post('/api/report-templates/defaults', headers=admin_headers)
        assert first.status_code == 201
        assert 'leadClearance' in first.get_json()['created']

        second = client.post('/api/report-templates/defaults', headers=admin_headers)
        assert second.status_code == 200
        assert second.get_json()['created'] == []


class TestRender:

    def test_render_stored_template(self, client, admin_headers, employee_headers):
        client.post('/api/report-templates/', headers=admin_headers, json=_template_payload())
        response = client.post('/api/report-templates/asbestosAssessment/render', headers=employee_headers,
                               json={'client_name': 'ACME', 'site_name': 'Depot'})
        assert response.status_code == 200
        sections = response.get_json()['sections']
        assert sections == {
            'introduction_content': 'Assessment for ACME at Depot.',
            'footer_text': 'Assessment: Depot',
        }

    def test_render_creates_default(self, client, employee_headers):
        response = client.post('/api/report-templates/leadClearance/render', headers=employee_headers,
                               json={'site_name': 'Depot', 'jurisdiction': 'ACT'})
        assert response.status_code == 200
        body = response.get_json()
        assert body['report_headers']['title'] == 'LEAD CLEARANCE CERTIFICATE'
        assert body['sections']['footer_text'] == 'Lead Clearance Certificate: Depot'

    def test_render_missing_template(self, client, employee_headers):
        response = client.post('/api/report-templates/asbestosAssessment/render', headers=employee_headers, json={})
        assert response.status_code == 404
