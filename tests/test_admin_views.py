import json

import pytest

from conftest import flashes, login_staff

ADMIN = ['projects.read.all', 'projects.create', 'projects.manage', 'projects.update.all',
         'schemes.read.all', 'schemes.create', 'schemes.manage',
         'beneficiaries.read.all', 'beneficiaries.create', 'beneficiaries.update.regional',
         'applications.read.all', 'applications.approve',
         'settings.read', 'settings.update',
         'master_data.read', 'master_data.create', 'master_data.update', 'master_data.delete',
         'partners.read', 'partners.write', 'partners.delete',
         'communications.send']

PROJECT_FORM = {
    'name': 'Education Drive',
    'code': 'edu drive',
    'description': 'School support',
    'category': 'education',
    'priority': 'high',
    'scope': 'district',
    'status': 'active',
    'start_date': '2024-06-01',
    'end_date': '2025-05-31',
    'budget': '100000',
}


@pytest.fixture
def admin(client):
    login_staff(client, ADMIN)
    return client


def test_index_redirects_to_dashboard(admin):
    assert admin.get('/').headers['Location'].endswith('/dashboard')


def test_dashboard_shows_overview(admin, backend):
    backend.ok('GET', '/dashboard/overview', {'overview': {'totalProjects': 12, 'totalBudget': 200000,
                                                           'totalSpent': 50000}})
    backend.ok('GET', '/dashboard/recent-applications', {'applications': [
        {'_id': 'a1', 'applicationNumber': 'APP-001', 'status': 'pending', 'beneficiary': {'name': 'Ravi'}},
    ]})
    response = admin.get('/dashboard')
    assert response.status_code == 200
    assert b'APP-001' in response.data
    assert b'25%' in response.data
    assert backend.last('GET', '/dashboard/recent-applications')['params'] == {'limit': 5}


def test_dashboard_survives_backend_outage(admin, backend, connection_error):
    backend.add('GET', '/dashboard/overview', connection_error)
    response = admin.get('/dashboard')
    assert response.status_code == 200
    assert b'Unable to reach the server' in response.data


def test_projects_list_passes_filters_and_paginates(admin, backend):
    backend.ok('GET', '/projects', {
        'projects': [{'_id': f'p{i}', 'name': f'Project {i}', 'status': 'active'} for i in range(10)],
        'pagination': {'current': 2, 'pages': 4, 'total': 35, 'limit': 10},
    })
    response = admin.get('/projects?page=2&status=active&category=all&search=')
    assert response.status_code == 200
    assert response.data.count(b'class="record-row"') == 10
    assert b'Showing 11 to 20 of 35' in response.data
    assert b'page=1&amp;status=active' in response.data
    assert b'page=3&amp;status=active' in response.data
    assert backend.last('GET', '/projects')['params'] == {'page': 2, 'limit': 10, 'status': 'active'}


def test_projects_denied_without_permission(client, backend):
    login_staff(client, ['schemes.read.all'])
    response = client.get('/projects')
    assert response.status_code == 403
    assert b'Access Denied' in response.data
    assert backend.find('GET', '/projects') == []


def test_navigation_follows_permissions(client, backend):
    backend.ok('GET', '/schemes', {'schemes': []})
    backend.ok('GET', '/projects', {'projects': []})
    login_staff(client, ['schemes.read.all'])
    page = client.get('/schemes').data
    assert b'href="/schemes"' in page
    assert b'href="/projects"' not in page


def test_create_project(admin, backend):
    backend.ok('POST', '/projects', {'project': {'_id': 'p1'}})
    response = admin.post('/projects/new', data=PROJECT_FORM)
    assert response.headers['Location'].endswith('/projects')
    assert 'Project created successfully' in flashes(admin)

    body = backend.last('POST', '/projects')['json']
    assert body['code'] == 'EDU_DRIVE'
    assert body['startDate'] == '2024-06-01'
    assert body['budget'] == {'total': 100000.0, 'allocated': 100000.0, 'spent': 0, 'currency': 'INR'}


def test_project_end_date_must_follow_start(admin, backend):
    response = admin.post('/projects/new', data=dict(PROJECT_FORM, end_date='2024-01-01'))
    assert response.status_code == 200
    assert b'End date must be after the start date' in response.data
    assert backend.find('POST', '/projects') == []


def test_create_project_shows_backend_error(admin, backend):
    backend.fail('POST', '/projects', 409, 'Project code already exists')
    response = admin.post('/projects/new', data=PROJECT_FORM)
    assert response.status_code == 200
    assert b'Project code already exists' in response.data


def test_edit_project_prefills_and_keeps_spent(admin, backend):
    project = {'_id': 'p1', 'name': 'Old', 'code': 'OLD', 'description': 'd', 'category': 'education',
               'priority': 'low', 'scope': 'state', 'status': 'draft', 'startDate': '2024-01-01T00:00:00Z',
               'endDate': '2024-12-31T00:00:00Z', 'budget': {'total': 5000, 'spent': 1200}}
    backend.ok('GET', '/projects/p1', {'project': project})
    backend.ok('PUT', '/projects/p1', {})

    page = admin.get('/projects/p1/edit')
    assert b'value="Old"' in page.data
    assert b'value="2024-01-01"' in page.data

    admin.post('/projects/p1/edit', data=PROJECT_FORM)
    assert backend.last('PUT', '/projects/p1')['json']['budget']['spent'] == 1200


def test_delete_project_returns_to_referrer(admin, backend):
    backend.ok('DELETE', '/projects/p1', {})
    response = admin.post('/projects/p1/delete', headers={'Referer': 'http://localhost/projects?page=3'})
    assert response.headers['Location'].endswith('/projects?page=3')
    assert 'Project deleted successfully' in flashes(admin)


def test_scheme_form_lists_projects(admin, backend):
    backend.ok('GET', '/projects', {'projects': [{'_id': 'p1', 'name': 'Education Drive'}]})
    backend.ok('POST', '/schemes', {})
    page = admin.get('/schemes/new')
    assert b'Education Drive' in page.data

    admin.post('/schemes/new', data={'name': 'Scholarship', 'code': 'sch1', 'description': 'x',
                                     'category': 'education', 'priority': 'medium', 'status': 'active',
                                     'project': 'p1', 'benefit_type': 'scholarship',
                                     'benefit_amount': '2500', 'max_applications': '100'})
    body = backend.last('POST', '/schemes')['json']
    assert body['code'] == 'SCH1'
    assert body['project'] == 'p1'
    assert body['benefits'] == {'type': 'scholarship', 'amount': 2500.0}


def test_scheme_form_config_missing_is_not_an_error(admin, backend):
    backend.ok('GET', '/schemes/s1', {'scheme': {'_id': 's1', 'name': 'Scholarship'}})
    backend.fail('GET', '/schemes/s1/form-config', 404, 'Form configuration not found')
    response = admin.get('/schemes/s1/form')
    assert b'No application form has been configured' in response.data
    assert b'Form configuration not found' not in response.data


def test_publish_scheme_form(admin, backend):
    backend.ok('PATCH', '/schemes/s1/form-config/publish', {})
    admin.post('/schemes/s1/form/publish', data={'published': 'true'})
    assert backend.last('PATCH', '/schemes/s1/form-config/publish')['json'] == {'isPublished': True}
    assert 'Form published successfully' in flashes(admin)


FORM_CONFIG = {
    'title': 'Scholarship Application',
    'description': 'Tell us about your studies',
    'pages': [{'id': 'p1', 'title': 'About you', 'fields': [
        {'id': 1, 'label': 'Full name', 'type': 'text', 'required': True},
        {'id': 2, 'label': 'Course', 'type': 'select', 'options': ['BSc', 'BA']},
    ]}],
}


def test_edit_scheme_form_prefills_current_config(admin, backend):
    backend.ok('GET', '/schemes/s1', {'scheme': {'_id': 's1', 'name': 'Scholarship'}})
    backend.ok('GET', '/schemes/s1/form-config', {'formConfiguration': FORM_CONFIG})
    response = admin.get('/schemes/s1/form/edit')
    assert response.status_code == 200
    assert b'Scholarship Application' in response.data
    assert b'Full name' in response.data


def test_edit_scheme_form_saves_parsed_config(admin, backend):
    backend.ok('GET', '/schemes/s1', {'scheme': {'_id': 's1', 'name': 'Scholarship'}})
    backend.ok('PUT', '/schemes/s1/form-config', {})
    response = admin.post('/schemes/s1/form/edit', data={'configuration': json.dumps(FORM_CONFIG)})
    assert response.headers['Location'].endswith('/schemes/s1/form')
    assert backend.last('PUT', '/schemes/s1/form-config')['json'] == FORM_CONFIG
    assert 'Form configuration saved successfully' in flashes(admin)


@pytest.mark.parametrize('configuration, error', [
    ('{pages', 'Configuration must be valid JSON'),
    ('[]', 'Configuration must be a JSON object'),
    (json.dumps({'title': 'Form', 'description': 'x', 'pages': []}), 'At least one page is required'),
    (json.dumps({'title': 'Form', 'description': 'x', 'pages': [{'fields': []}]}),
     'The form needs at least one field'),
    (json.dumps(dict(FORM_CONFIG, pages=[{'fields': [{'id': 1, 'label': 'A'}, {'id': 1, 'label': 'B'}]}])),
     'Field id 1 is used more than once'),
    (json.dumps(dict(FORM_CONFIG, title='')), 'Form title and description are required'),
])
def test_edit_scheme_form_rejects_bad_config(admin, backend, configuration, error):
    backend.ok('GET', '/schemes/s1', {'scheme': {'_id': 's1', 'name': 'Scholarship'}})
    response = admin.post('/schemes/s1/form/edit', data={'configuration': configuration})
    assert response.status_code == 200
    assert error.encode() in response.data
    assert backend.find('PUT', '/schemes/s1/form-config') == []


def test_export_beneficiaries_csv(admin, backend):
    backend.ok('GET', '/beneficiaries', {'beneficiaries': [
        {'beneficiaryId': 'BEN1', 'name': 'Asha', 'phone': '9123456780', 'status': 'active',
         'isVerified': False, 'district': {'name': 'Kollam'}},
    ]})
    response = admin.get('/beneficiaries/export?status=active')
    assert response.mimetype == 'text/csv'
    assert 'beneficiaries_active_' in response.headers['Content-Disposition']
    lines = response.data.decode().splitlines()
    assert lines[0].startswith('Beneficiary ID,Name,Phone')
    assert lines[1].startswith('BEN1,Asha,9123456780,,active,No,Kollam')
    assert backend.last('GET', '/beneficiaries')['params'] == {'page': 1, 'limit': 10000, 'status': 'active'}


def test_export_with_no_records(admin, backend):
    backend.ok('GET', '/applications', {'applications': []})
    response = admin.get('/applications/export?status=rejected')
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/applications?status=rejected')
    assert 'No records to export' in flashes(admin)


def test_beneficiary_form_cascades_locations(admin, backend):
    backend.ok('GET', '/locations/by-type/district', {'locations': [{'_id': 'd1', 'name': 'Kollam'}]})
    backend.ok('GET', '/locations/by-type/area', {'locations': [{'_id': 'a1', 'name': 'Chavara'}]})

    page = admin.get('/beneficiaries/new')
    assert b'Kollam' in page.data
    assert backend.find('GET', '/locations/by-type/area') == []

    page = admin.post('/beneficiaries/new', data={'name': 'Asha', 'district': 'd1', 'refresh': '1'})
    assert b'Chavara' in page.data
    assert backend.last('GET', '/locations/by-type/area')['params'] == {'parent': 'd1', 'active': 'true'}
    assert backend.find('POST', '/beneficiaries') == []


def test_verify_beneficiary(admin, backend):
    backend.ok('PATCH', '/beneficiaries/b1/verify', {})
    admin.post('/beneficiaries/b1/verify')
    assert 'Beneficiary verified successfully' in flashes(admin)


def test_approve_application(admin, backend):
    backend.ok('PATCH', '/applications/a1/approve', {})
    response = admin.post('/applications/a1/decision', data={'decision': 'approve', 'approved_amount': '4000',
                                                            'comments': 'Eligible'})
    assert response.headers['Location'].endswith('/applications/a1')
    assert backend.last('PATCH', '/applications/a1/approve')['json'] == {'approvedAmount': 4000.0,
                                                                         'comments': 'Eligible'}


def test_reject_application_needs_comments(admin, backend):
    backend.ok('PATCH', '/applications/a1/review', {})
    admin.post('/applications/a1/decision', data={'decision': 'reject'})
    assert 'Please give a reason for rejection' in flashes(admin)
    assert backend.find('PATCH', '/applications/a1/review') == []

    admin.post('/applications/a1/decision', data={'decision': 'reject', 'comments': 'Income too high'})
    assert backend.last('PATCH', '/applications/a1/review')['json'] == {'status': 'rejected',
                                                                        'comments': 'Income too high'}


def test_application_decision_requires_approve_permission(client, backend):
    login_staff(client, ['applications.read.all'])
    response = client.post('/applications/a1/decision', data={'decision': 'approve'})
    assert response.status_code == 403


def test_locations_tab(admin, backend):
    backend.ok('GET', '/locations', {'locations': [{'_id': 'a1', 'name': 'Chavara', 'code': 'CHV',
                                                    'parent': {'name': 'Kollam'}}]})
    backend.ok('GET', '/locations/by-type/district', {'locations': []})
    response = admin.get('/locations?tab=area')
    assert b'Chavara' in response.data
    assert backend.last('GET', '/locations')['params']['type'] == 'area'


def test_create_location(admin, backend):
    backend.ok('GET', '/locations/by-type/state', {'locations': [{'_id': 'st1', 'name': 'Kerala'}]})
    backend.ok('POST', '/locations', {})
    response = admin.post('/locations/district/new', data={'name': 'Kollam', 'code': 'klm', 'parent': 'st1'})
    assert response.headers['Location'].endswith('/locations?tab=district')
    assert backend.last('POST', '/locations')['json'] == {'name': 'Kollam', 'code': 'KLM', 'type': 'district',
                                                          'parent': 'st1'}


def test_master_data_requires_json_object(admin, backend):
    form = {'type': 'scheme_stages', 'name': 'Stages', 'scope': 'global', 'status': 'draft', 'version': '1.0',
            'effective_from': '2024-01-01', 'configuration': '[1, 2]'}
    response = admin.post('/master-data/new', data=form)
    assert b'Configuration must be a JSON object' in response.data

    backend.ok('POST', '/master-data', {})
    admin.post('/master-data/new', data=dict(form, configuration=json.dumps({'stages': ['a']})))
    assert backend.last('POST', '/master-data')['json']['configuration'] == {'stages': ['a']}


def test_clone_master_data(admin, backend):
    backend.ok('POST', '/master-data/m1/clone', {})
    admin.post('/master-data/m1/clone')
    assert 'Master data cloned successfully' in flashes(admin)


def test_partner_crud(admin, backend):
    backend.ok('GET', '/partners', {'partners': [{'_id': 'x1', 'name': 'Rotary', 'status': 'active'}]})
    backend.ok('POST', '/partners', {})
    backend.ok('DELETE', '/partners/x1', {})

    assert b'Rotary' in admin.get('/partners').data
    admin.post('/partners/new', data={'name': 'Lions', 'link': 'https://lions.example.org', 'order': '2',
                                      'status': 'active'})
    assert backend.last('POST', '/partners')['json'] == {'name': 'Lions', 'link': 'https://lions.example.org',
                                                         'logo': '', 'order': 2, 'status': 'active'}
    admin.post('/partners/x1/delete')
    assert 'Partner deleted successfully' in flashes(admin)


def test_send_sms_with_template(admin, backend):
    backend.ok('GET', '/sms/templates', {'templates': [{'key': 'payment.released', 'name': 'Payment released',
                                                        'variables': ['amount']}]})
    backend.ok('POST', '/sms/send', {})
    admin.post('/communications/send', data={'phone': '9876543210', 'template_key': 'payment.released',
                                             'var_amount': '2500', 'priority': 'normal'})
    assert backend.last('POST', '/sms/send')['json'] == {'phone': '9876543210', 'priority': 'normal',
                                                         'templateKey': 'payment.released',
                                                         'variables': {'amount': '2500'}}


def test_send_sms_needs_message_or_template(admin, backend):
    backend.ok('GET', '/sms/templates', {'templates': []})
    admin.post('/communications/send', data={'phone': '9876543210', 'priority': 'normal'})
    assert 'Enter a message or choose a template' in flashes(admin)
    assert backend.find('POST', '/sms/send') == []


def test_send_bulk_sms(admin, backend):
    backend.ok('GET', '/sms/templates', {'templates': []})
    backend.ok('POST', '/sms/send-bulk', {})
    admin.post('/communications/send-bulk', data={'recipients': ['9000000001', '9000000002'],
                                                  'message': 'Camp on Sunday', 'priority': 'normal'})
    body = backend.last('POST', '/sms/send-bulk')['json']
    assert body['recipients'] == ['9000000001', '9000000002']
    assert body['message'] == 'Camp on Sunday'
    assert 'SMS sent to 2 recipients successfully' in flashes(admin)


def test_list_pages_show_summary_cards(admin, backend):
    backend.ok('GET', '/projects', {'projects': []})
    backend.ok('GET', '/projects/stats', {'overview': {'totalProjects': 7, 'activeProjects': 4,
                                                       'totalBudget': 150000, 'totalSpent': 30000}})
    page = admin.get('/projects').data
    assert page.count(b'stat-card') == 4
    assert '₹150,000'.encode() in page

    backend.ok('GET', '/locations', {'locations': []})
    backend.ok('GET', '/locations/by-type/state', {'locations': []})
    backend.ok('GET', '/locations/statistics', {'overview': {'total': 31, 'recentlyAdded': 2}})
    page = admin.get('/locations').data
    assert page.count(b'stat-card') == 2
    assert b'31' in page


def test_summary_failure_only_hides_cards(admin, backend):
    backend.ok('GET', '/schemes', {'schemes': [{'_id': 's1', 'name': 'Scholarship', 'status': 'active'}]})
    backend.ok('GET', '/projects', {'projects': []})
    backend.fail('GET', '/schemes/stats', 500, 'Failed to fetch scheme statistics')
    response = admin.get('/schemes')
    assert response.status_code == 200
    assert b'Scholarship' in response.data
    assert b'stat-card' not in response.data
    assert 'Failed to fetch scheme statistics' not in flashes(admin)
