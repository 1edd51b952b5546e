"""
Staff dashboard pages: projects, schemes, beneficiaries, applications,
locations, master data, partners and communications
"""
import json
import re

from flask import Blueprint, flash, redirect, render_template, request, url_for

from api_client import ApiError, flash_api_error, get_api
from auth import login_required
from exports import APPLICATION_COLUMNS, BENEFICIARY_COLUMNS
from forms import (APPLICATION_STATUSES, BENEFICIARY_STATUSES, CATEGORIES, MASTER_DATA_SCOPES,
                   MASTER_DATA_STATUSES, MASTER_DATA_TYPES, PRIORITIES, PROJECT_STATUSES, SCHEME_STATUSES,
                   ApplicationDecisionForm, BeneficiaryForm, BulkSmsForm, FormConfigForm, LocationForm,
                   MasterDataForm, PartnerForm, ProjectForm, SchemeForm, SmsForm)
from rbac import permission_required
from view_helpers import (back_to, choices, export_records, fetch_items, fetch_one, fetch_page, fetch_stats,
                          filter_args, iso, items_of, number, parse_date, record_id, run_action)

admin_bp = Blueprint('admin', __name__)

PROJECT_READ = ('projects.read.all', 'projects.read.assigned')
PROJECT_UPDATE = ('projects.update.all', 'projects.update.assigned', 'projects.manage')
SCHEME_READ = ('schemes.read.all', 'schemes.read.assigned')
SCHEME_UPDATE = ('schemes.update.assigned', 'schemes.manage')
BENEFICIARY_READ = ('beneficiaries.read.all', 'beneficiaries.read.regional', 'beneficiaries.read.own')
APPLICATION_READ = ('applications.read.all', 'applications.read.regional', 'applications.read.own')
PARTNER_READ = ('website.read', 'partners.read')
PARTNER_WRITE = ('website.write', 'partners.write')
PARTNER_DELETE = ('website.delete', 'partners.delete')

LOCATION_TABS = ('district', 'area', 'unit')
PARENT_TYPES = {'district': 'state', 'area': 'district', 'unit': 'area'}


def location_choices(location_type, parent=None, blank='Select'):
    records = fetch_items(get_api().locations.by_type, 'locations', location_type=location_type, parent=parent)
    return choices(records, blank)


def ref_id(value):
    """Id of a populated reference, or the raw id"""
    if isinstance(value, dict):
        return str(record_id(value) or '')
    return str(value or '')


@admin_bp.route('/')
@login_required
def index():
    return redirect(url_for('admin.dashboard'))


@admin_bp.route('/dashboard')
@login_required
def dashboard():
    api = get_api()
    overview = {}
    recent = []
    try:
        overview = api.dashboard.overview().get('overview') or {}
        recent = items_of(api.dashboard.recent_applications(limit=5), 'applications')
    except ApiError as e:
        flash_api_error(e)

    total_budget = overview.get('totalBudget') or 0
    utilization = round((overview.get('totalSpent') or 0) * 100 / total_budget) if total_budget else 0
    return render_template('dashboard.html', overview=overview, recent_applications=recent,
                           utilization=utilization)


# Projects
@admin_bp.route('/projects')
@login_required
@permission_required(*PROJECT_READ)
def projects():
    filters = filter_args('search', 'status', 'category', 'priority')
    items, pagination = fetch_page(get_api().projects.list, 'projects', filters)
    stats = fetch_stats(get_api().projects.stats)
    return render_template('projects.html', projects=items, pagination=pagination, filters=filters,
                           stats=stats, statuses=PROJECT_STATUSES, categories=CATEGORIES, priorities=PRIORITIES)


def project_payload(form, existing=None):
    budget = number(form.budget.data) or 0
    spent = ((existing or {}).get('budget') or {}).get('spent', 0)
    return {
        'name': form.name.data,
        'code': re.sub(r'\s+', '_', form.code.data.strip().upper()),
        'description': form.description.data,
        'category': form.category.data,
        'priority': form.priority.data,
        'scope': form.scope.data,
        'status': form.status.data,
        'startDate': iso(form.start_date.data),
        'endDate': iso(form.end_date.data),
        'budget': {'total': budget, 'allocated': budget, 'spent': spent, 'currency': 'INR'},
    }


@admin_bp.route('/projects/new', methods=['GET', 'POST'])
@login_required
@permission_required('projects.create')
def new_project():
    form = ProjectForm()
    if form.validate_on_submit():
        if run_action(get_api().projects.create, 'Project created successfully', project_payload(form)):
            return redirect(url_for('admin.projects'))
    return render_template('project_form.html', form=form, project=None)


@admin_bp.route('/projects/<project_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required(*PROJECT_UPDATE)
def edit_project(project_id):
    project = fetch_one(get_api().projects.get, project_id, 'project')
    if project is None:
        return redirect(url_for('admin.projects'))

    form = ProjectForm()
    if request.method == 'GET':
        form.process(data={
            'name': project.get('name'),
            'code': project.get('code'),
            'description': project.get('description'),
            'category': project.get('category'),
            'priority': project.get('priority'),
            'scope': project.get('scope'),
            'status': project.get('status'),
            'start_date': parse_date(project.get('startDate')),
            'end_date': parse_date(project.get('endDate')),
            'budget': (project.get('budget') or {}).get('total'),
        })
    elif form.validate_on_submit():
        if run_action(get_api().projects.update, 'Project updated successfully',
                      project_id, project_payload(form, project)):
            return redirect(url_for('admin.projects'))
    return render_template('project_form.html', form=form, project=project)


@admin_bp.route('/projects/<project_id>/delete', methods=['POST'])
@login_required
@permission_required('projects.manage')
def delete_project(project_id):
    run_action(get_api().projects.delete, 'Project deleted successfully', project_id)
    return back_to('admin.projects')


# Schemes
@admin_bp.route('/schemes')
@login_required
@permission_required(*SCHEME_READ)
def schemes():
    filters = filter_args('search', 'status', 'category', 'project')
    items, pagination = fetch_page(get_api().schemes.list, 'schemes', filters)
    projects = fetch_items(get_api().projects.list, 'projects', limit=100)
    stats = fetch_stats(get_api().schemes.stats)
    return render_template('schemes.html', schemes=items, pagination=pagination, filters=filters,
                           stats=stats, statuses=SCHEME_STATUSES, categories=CATEGORIES, projects=projects)


def scheme_payload(form):
    return {
        'name': form.name.data,
        'code': form.code.data.strip().upper(),
        'description': form.description.data,
        'category': form.category.data,
        'priority': form.priority.data,
        'status': form.status.data,
        'project': form.project.data,
        'budget': {'total': number(form.budget_total.data) or 0, 'currency': 'INR'},
        'benefits': {
            'type': form.benefit_type.data,
            'amount': number(form.benefit_amount.data),
        },
        'applicationSettings': {
            'startDate': iso(form.start_date.data),
            'endDate': iso(form.end_date.data),
            'maxApplications': form.max_applications.data,
        },
    }


def scheme_form():
    form = SchemeForm()
    form.project.choices = choices(fetch_items(get_api().projects.list, 'projects', limit=100), 'Select project')
    return form


@admin_bp.route('/schemes/new', methods=['GET', 'POST'])
@login_required
@permission_required('schemes.create')
def new_scheme():
    form = scheme_form()
    if form.validate_on_submit():
        if run_action(get_api().schemes.create, 'Scheme created successfully', scheme_payload(form)):
            return redirect(url_for('admin.schemes'))
    return render_template('scheme_form.html', form=form, scheme=None)


@admin_bp.route('/schemes/<scheme_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required(*SCHEME_UPDATE)
def edit_scheme(scheme_id):
    scheme = fetch_one(get_api().schemes.get, scheme_id, 'scheme')
    if scheme is None:
        return redirect(url_for('admin.schemes'))

    form = scheme_form()
    if request.method == 'GET':
        settings = scheme.get('applicationSettings') or {}
        benefits = scheme.get('benefits') or {}
        form.process(data={
            'name': scheme.get('name'),
            'code': scheme.get('code'),
            'description': scheme.get('description'),
            'category': scheme.get('category'),
            'priority': scheme.get('priority'),
            'status': scheme.get('status'),
            'project': ref_id(scheme.get('project')),
            'budget_total': (scheme.get('budget') or {}).get('total'),
            'benefit_type': benefits.get('type'),
            'benefit_amount': benefits.get('amount'),
            'max_applications': settings.get('maxApplications'),
            'start_date': parse_date(settings.get('startDate')),
            'end_date': parse_date(settings.get('endDate')),
        })
    elif form.validate_on_submit():
        if run_action(get_api().schemes.update, 'Scheme updated successfully', scheme_id, scheme_payload(form)):
            return redirect(url_for('admin.schemes'))
    return render_template('scheme_form.html', form=form, scheme=scheme)


@admin_bp.route('/schemes/<scheme_id>/delete', methods=['POST'])
@login_required
@permission_required('schemes.manage')
def delete_scheme(scheme_id):
    run_action(get_api().schemes.delete, 'Scheme deleted successfully', scheme_id)
    return back_to('admin.schemes')


@admin_bp.route('/schemes/<scheme_id>/form')
@login_required
@permission_required(*SCHEME_READ)
def scheme_form_config(scheme_id):
    scheme = fetch_one(get_api().schemes.get, scheme_id, 'scheme')
    if scheme is None:
        return redirect(url_for('admin.schemes'))
    config = None
    try:
        data = get_api().schemes.form_config(scheme_id)
        config = data.get('formConfiguration') or data.get('formConfig') or data
    except ApiError as e:
        # No form configured yet
        if e.status_code != 404:
            flash_api_error(e)
    return render_template('scheme_form_config.html', scheme=scheme, config=config or {})


@admin_bp.route('/schemes/<scheme_id>/form/edit', methods=['GET', 'POST'])
@login_required
@permission_required('schemes.manage')
def edit_scheme_form_config(scheme_id):
    scheme = fetch_one(get_api().schemes.get, scheme_id, 'scheme')
    if scheme is None:
        return redirect(url_for('admin.schemes'))

    form = FormConfigForm()
    if request.method == 'GET':
        config = {}
        try:
            data = get_api().schemes.form_config(scheme_id)
            config = data.get('formConfiguration') or data.get('formConfig') or data
        except ApiError as e:
            if e.status_code != 404:
                flash_api_error(e)
        if not config:
            config = {'title': f"{scheme.get('name')} Application", 'description': '', 'pages': []}
        form.configuration.data = json.dumps(config, indent=2)
    elif form.validate_on_submit():
        if run_action(get_api().schemes.update_form_config, 'Form configuration saved successfully',
                      scheme_id, json.loads(form.configuration.data)):
            return redirect(url_for('admin.scheme_form_config', scheme_id=scheme_id))
    return render_template('scheme_form_edit.html', form=form, scheme=scheme)


@admin_bp.route('/schemes/<scheme_id>/form/publish', methods=['POST'])
@login_required
@permission_required('schemes.manage')
def publish_scheme_form(scheme_id):
    published = request.form.get('published') == 'true'
    message = 'Form published successfully' if published else 'Form unpublished successfully'
    run_action(get_api().schemes.publish_form, message, scheme_id, published)
    return redirect(url_for('admin.scheme_form_config', scheme_id=scheme_id))


# Beneficiaries
@admin_bp.route('/beneficiaries')
@login_required
@permission_required(*BENEFICIARY_READ)
def beneficiaries():
    filters = filter_args('search', 'status')
    items, pagination = fetch_page(get_api().beneficiaries.list, 'beneficiaries', filters)
    return render_template('beneficiaries.html', beneficiaries=items, pagination=pagination, filters=filters,
                           statuses=BENEFICIARY_STATUSES)


@admin_bp.route('/beneficiaries/export')
@login_required
@permission_required(*BENEFICIARY_READ)
def export_beneficiaries():
    filters = filter_args('search', 'status')
    return export_records(get_api().beneficiaries.list, 'beneficiaries', BENEFICIARY_COLUMNS,
                          'beneficiaries', filters, 'admin.beneficiaries')


def beneficiary_form(selected=None):
    """Beneficiary form with cascading district/area/unit choices"""
    form = BeneficiaryForm()
    selected = selected or {}
    district = form.district.data or selected.get('district')
    area = form.area.data or selected.get('area')
    form.district.choices = location_choices('district', blank='Select district')
    form.area.choices = location_choices('area', district, 'Select area') if district else [('', 'Select area')]
    form.unit.choices = location_choices('unit', area, 'Select unit') if area else [('', 'Select unit')]
    return form


def beneficiary_payload(form):
    return {
        'name': form.name.data,
        'phone': form.phone.data,
        'district': form.district.data,
        'area': form.area.data,
        'unit': form.unit.data,
        'status': form.status.data,
    }


@admin_bp.route('/beneficiaries/new', methods=['GET', 'POST'])
@login_required
@permission_required('beneficiaries.create')
def new_beneficiary():
    form = beneficiary_form()
    # Changing a parent select re-posts the form to refresh its children
    if request.method == 'POST' and request.form.get('refresh'):
        return render_template('beneficiary_form.html', form=form, beneficiary=None)
    if form.validate_on_submit():
        if run_action(get_api().beneficiaries.create, 'Beneficiary created successfully',
                      beneficiary_payload(form)):
            return redirect(url_for('admin.beneficiaries'))
    return render_template('beneficiary_form.html', form=form, beneficiary=None)


@admin_bp.route('/beneficiaries/<beneficiary_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('beneficiaries.update.regional')
def edit_beneficiary(beneficiary_id):
    beneficiary = fetch_one(get_api().beneficiaries.get, beneficiary_id, 'beneficiary')
    if beneficiary is None:
        return redirect(url_for('admin.beneficiaries'))

    current = {
        'name': beneficiary.get('name'),
        'phone': beneficiary.get('phone'),
        'district': ref_id(beneficiary.get('district')),
        'area': ref_id(beneficiary.get('area')),
        'unit': ref_id(beneficiary.get('unit')),
        'status': beneficiary.get('status'),
    }
    form = beneficiary_form(current)
    if request.method == 'GET':
        form.process(data=current)
        return render_template('beneficiary_form.html', form=form, beneficiary=beneficiary)
    if request.form.get('refresh'):
        return render_template('beneficiary_form.html', form=form, beneficiary=beneficiary)
    if form.validate_on_submit():
        if run_action(get_api().beneficiaries.update, 'Beneficiary updated successfully',
                      beneficiary_id, beneficiary_payload(form)):
            return redirect(url_for('admin.beneficiaries'))
    return render_template('beneficiary_form.html', form=form, beneficiary=beneficiary)


@admin_bp.route('/beneficiaries/<beneficiary_id>/verify', methods=['POST'])
@login_required
@permission_required('beneficiaries.update.regional')
def verify_beneficiary(beneficiary_id):
    run_action(get_api().beneficiaries.verify, 'Beneficiary verified successfully', beneficiary_id)
    return back_to('admin.beneficiaries')


@admin_bp.route('/beneficiaries/<beneficiary_id>/delete', methods=['POST'])
@login_required
@permission_required('beneficiaries.update.regional')
def delete_beneficiary(beneficiary_id):
    run_action(get_api().beneficiaries.delete, 'Beneficiary deleted successfully', beneficiary_id)
    return back_to('admin.beneficiaries')


# Applications
@admin_bp.route('/applications')
@login_required
@permission_required(*APPLICATION_READ)
def applications():
    filters = filter_args('search', 'status', 'scheme')
    items, pagination = fetch_page(get_api().applications.list, 'applications', filters)
    schemes = fetch_items(get_api().schemes.list, 'schemes', limit=100)
    return render_template('applications.html', applications=items, pagination=pagination, filters=filters,
                           statuses=APPLICATION_STATUSES, schemes=schemes)


@admin_bp.route('/applications/export')
@login_required
@permission_required(*APPLICATION_READ)
def export_applications():
    filters = filter_args('search', 'status', 'scheme')
    return export_records(get_api().applications.list, 'applications', APPLICATION_COLUMNS,
                          'applications', filters, 'admin.applications')


@admin_bp.route('/applications/<application_id>', methods=['GET', 'POST'])
@login_required
@permission_required(*APPLICATION_READ)
def application_detail(application_id):
    application = fetch_one(get_api().applications.get, application_id, 'application')
    if application is None:
        return redirect(url_for('admin.applications'))

    form = ApplicationDecisionForm()
    if request.method == 'GET':
        form.approved_amount.data = application.get('approvedAmount') or application.get('requestedAmount')
    return render_template('application_detail.html', application=application, form=form)


@admin_bp.route('/applications/<application_id>/decision', methods=['POST'])
@login_required
@permission_required('applications.approve')
def decide_application(application_id):
    form = ApplicationDecisionForm()
    if not form.validate_on_submit():
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'error')
        return redirect(url_for('admin.application_detail', application_id=application_id))

    api = get_api()
    comments = form.comments.data or ''
    if form.decision.data == 'approve':
        run_action(api.applications.approve, 'Application approved successfully', application_id,
                   {'approvedAmount': number(form.approved_amount.data), 'comments': comments})
    elif form.decision.data == 'reject':
        run_action(api.applications.review, 'Application rejected successfully', application_id,
                   {'status': 'rejected', 'comments': comments})
    else:
        run_action(api.applications.review, 'Application updated successfully', application_id,
                   {'status': form.decision.data, 'comments': comments})
    return redirect(url_for('admin.application_detail', application_id=application_id))


# Locations
@admin_bp.route('/locations')
@login_required
@permission_required('settings.read')
def locations():
    tab = request.args.get('tab', 'district')
    if tab not in LOCATION_TABS:
        tab = 'district'
    filters = filter_args('search', 'parent')
    filters['type'] = tab
    items, pagination = fetch_page(get_api().locations.list, 'locations', filters)
    parents = fetch_items(get_api().locations.by_type, 'locations', location_type=PARENT_TYPES[tab])
    stats = fetch_stats(get_api().locations.stats)
    return render_template('locations.html', tab=tab, tabs=LOCATION_TABS, locations=items,
                           pagination=pagination, filters=filters, parents=parents, stats=stats)


def location_form(tab):
    form = LocationForm()
    form.parent.choices = location_choices(PARENT_TYPES[tab], blank=f'Select {PARENT_TYPES[tab]}')
    return form


@admin_bp.route('/locations/<tab>/new', methods=['GET', 'POST'])
@login_required
@permission_required('settings.update')
def new_location(tab):
    if tab not in LOCATION_TABS:
        return redirect(url_for('admin.locations'))
    form = location_form(tab)
    if form.validate_on_submit():
        payload = {'name': form.name.data, 'code': form.code.data.strip().upper(), 'type': tab,
                   'parent': form.parent.data or None}
        if run_action(get_api().locations.create, f'{tab.title()} created successfully', payload):
            return redirect(url_for('admin.locations', tab=tab))
    return render_template('location_form.html', form=form, tab=tab, location=None)


@admin_bp.route('/locations/<tab>/<location_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('settings.update')
def edit_location(tab, location_id):
    if tab not in LOCATION_TABS:
        return redirect(url_for('admin.locations'))
    location = fetch_one(get_api().locations.get, location_id, 'location')
    if location is None:
        return redirect(url_for('admin.locations', tab=tab))

    form = location_form(tab)
    if request.method == 'GET':
        form.process(data={'name': location.get('name'), 'code': location.get('code'),
                           'parent': ref_id(location.get('parent'))})
    elif form.validate_on_submit():
        payload = {'name': form.name.data, 'code': form.code.data.strip().upper(), 'type': tab,
                   'parent': form.parent.data or None}
        if run_action(get_api().locations.update, f'{tab.title()} updated successfully', location_id, payload):
            return redirect(url_for('admin.locations', tab=tab))
    return render_template('location_form.html', form=form, tab=tab, location=location)


@admin_bp.route('/locations/<tab>/<location_id>/delete', methods=['POST'])
@login_required
@permission_required('settings.update')
def delete_location(tab, location_id):
    run_action(get_api().locations.delete, f'{tab.title()} deleted successfully', location_id)
    return redirect(url_for('admin.locations', tab=tab))


# Master data
@admin_bp.route('/master-data')
@login_required
@permission_required('master_data.read')
def master_data():
    filters = filter_args('search', 'type', 'status', 'scope')
    items, pagination = fetch_page(get_api().master_data.list, 'masterData', filters)
    return render_template('master_data.html', records=items, pagination=pagination, filters=filters,
                           types=MASTER_DATA_TYPES, statuses=MASTER_DATA_STATUSES, scopes=MASTER_DATA_SCOPES)


def master_data_payload(form):
    return {
        'type': form.type.data,
        'name': form.name.data,
        'description': form.description.data,
        'category': form.category.data,
        'scope': form.scope.data,
        'status': form.status.data,
        'version': form.version.data,
        'effectiveFrom': iso(form.effective_from.data),
        'effectiveTo': iso(form.effective_to.data),
        'configuration': json.loads(form.configuration.data or '{}'),
    }


@admin_bp.route('/master-data/new', methods=['GET', 'POST'])
@login_required
@permission_required('master_data.create')
def new_master_data():
    form = MasterDataForm()
    if request.method == 'GET':
        form.type.data = request.args.get('type') or 'scheme_stages'
    if form.validate_on_submit():
        if run_action(get_api().master_data.create, 'Master data created successfully', master_data_payload(form)):
            return redirect(url_for('admin.master_data'))
    return render_template('master_data_form.html', form=form, record=None)


@admin_bp.route('/master-data/<item_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required('master_data.update')
def edit_master_data(item_id):
    record = fetch_one(get_api().master_data.get, item_id, 'masterData')
    if record is None:
        return redirect(url_for('admin.master_data'))

    form = MasterDataForm()
    if request.method == 'GET':
        form.process(data={
            'type': record.get('type'),
            'name': record.get('name'),
            'description': record.get('description'),
            'category': record.get('category'),
            'scope': record.get('scope'),
            'status': record.get('status'),
            'version': record.get('version'),
            'effective_from': parse_date(record.get('effectiveFrom')),
            'effective_to': parse_date(record.get('effectiveTo')),
            'configuration': json.dumps(record.get('configuration') or {}, indent=2),
        })
    elif form.validate_on_submit():
        if run_action(get_api().master_data.update, 'Master data updated successfully',
                      item_id, master_data_payload(form)):
            return redirect(url_for('admin.master_data'))
    return render_template('master_data_form.html', form=form, record=record)


@admin_bp.route('/master-data/<item_id>/clone', methods=['POST'])
@login_required
@permission_required('master_data.create')
def clone_master_data(item_id):
    run_action(get_api().master_data.clone, 'Master data cloned successfully', item_id)
    return back_to('admin.master_data')


@admin_bp.route('/master-data/<item_id>/delete', methods=['POST'])
@login_required
@permission_required('master_data.delete')
def delete_master_data(item_id):
    run_action(get_api().master_data.delete, 'Master data deleted successfully', item_id)
    return back_to('admin.master_data')


# Partners
@admin_bp.route('/partners')
@login_required
@permission_required(*PARTNER_READ)
def partners():
    filters = filter_args('search', 'status')
    items, pagination = fetch_page(get_api().partners.list, 'partners', filters)
    return render_template('partners.html', partners=items, pagination=pagination, filters=filters)


def partner_payload(form):
    return {
        'name': form.name.data,
        'link': form.link.data or '',
        'logo': form.logo.data or '',
        'order': form.order.data or 0,
        'status': form.status.data,
    }


@admin_bp.route('/partners/new', methods=['GET', 'POST'])
@login_required
@permission_required(*PARTNER_WRITE)
def new_partner():
    form = PartnerForm()
    if form.validate_on_submit():
        if run_action(get_api().partners.create, 'Partner created successfully', partner_payload(form)):
            return redirect(url_for('admin.partners'))
    return render_template('partner_form.html', form=form, partner=None)


@admin_bp.route('/partners/<partner_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required(*PARTNER_WRITE)
def edit_partner(partner_id):
    partner = fetch_one(get_api().partners.get, partner_id, 'partner')
    if partner is None:
        return redirect(url_for('admin.partners'))

    form = PartnerForm()
    if request.method == 'GET':
        logo = partner.get('logo')
        form.process(data={
            'name': partner.get('name'),
            'link': partner.get('link'),
            'logo': logo.get('url') if isinstance(logo, dict) else logo,
            'order': partner.get('order'),
            'status': partner.get('status'),
        })
    elif form.validate_on_submit():
        if run_action(get_api().partners.update, 'Partner updated successfully', partner_id, partner_payload(form)):
            return redirect(url_for('admin.partners'))
    return render_template('partner_form.html', form=form, partner=partner)


@admin_bp.route('/partners/<partner_id>/delete', methods=['POST'])
@login_required
@permission_required(*PARTNER_DELETE)
def delete_partner(partner_id):
    run_action(get_api().partners.delete, 'Partner deleted successfully', partner_id)
    return back_to('admin.partners')


# Communications
def sms_templates():
    return fetch_items(get_api().sms.templates, 'templates')


def template_choices(templates):
    options = [('', 'Free text')]
    for template in templates:
        key = template.get('key') or template.get('templateKey') or record_id(template)
        options.append((str(key), template.get('name') or str(key)))
    return options


@admin_bp.route('/communications', methods=['GET'])
@login_required
@permission_required('communications.send')
def communications():
    templates = sms_templates()
    sms_form = SmsForm()
    bulk_form = BulkSmsForm()
    sms_form.template_key.choices = bulk_form.template_key.choices = template_choices(templates)

    usage = {}
    try:
        usage = get_api().sms.usage_stats()
    except ApiError as e:
        flash_api_error(e)

    filters = filter_args('search', 'status')
    recipients = fetch_items(get_api().beneficiaries.list, 'beneficiaries', limit=100, **filters)
    return render_template('communications.html', sms_form=sms_form, bulk_form=bulk_form,
                           templates=templates, usage=usage, recipients=recipients, filters=filters)


def template_variables(form_data):
    """Template variables posted as var_<name> fields"""
    return {key[4:]: value for key, value in form_data.items() if key.startswith('var_') and value}


@admin_bp.route('/communications/send', methods=['POST'])
@login_required
@permission_required('communications.send')
def send_sms():
    form = SmsForm()
    form.template_key.choices = template_choices(sms_templates())
    if form.validate_on_submit():
        run_action(get_api().sms.send, f'SMS sent to {form.phone.data} successfully',
                   form.phone.data, form.message.data, form.template_key.data or None,
                   template_variables(request.form), form.priority.data)
    else:
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'error')
    return redirect(url_for('admin.communications'))


@admin_bp.route('/communications/send-bulk', methods=['POST'])
@login_required
@permission_required('communications.send')
def send_bulk_sms():
    form = BulkSmsForm()
    form.template_key.choices = template_choices(sms_templates())
    recipients = [phone for phone in request.form.getlist('recipients') if phone]
    if not recipients:
        flash('Select at least one recipient', 'error')
    elif form.validate_on_submit():
        run_action(get_api().sms.send_bulk, f'SMS sent to {len(recipients)} recipients successfully',
                   recipients, form.message.data, form.template_key.data or None,
                   template_variables(request.form), form.priority.data)
    else:
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'error')
    return redirect(url_for('admin.communications'))
