"""
Beneficiary self-service portal
"""
import io
import logging

from flask import Blueprint, current_app, flash, redirect, render_template, request, send_file, session, url_for

from api_client import ApiError, flash_api_error, get_portal_api
from auth import beneficiary_login_required
from dynamic_forms import FormDefinition, clear_wizard, collect_values, load_wizard, save_wizard
from exports import payment_receipt_pdf, receipt_filename
from forms import APPLICATION_STATUSES, CancelApplicationForm, ProfileForm
from pagination import Pagination
from view_helpers import choices, current_page_args, items_of, parse_date, record_id

logger = logging.getLogger(__name__)

portal_bp = Blueprint('portal', __name__, url_prefix='/beneficiary')

FORM_NOT_READY_MESSAGE = ('The application form for this scheme is not configured yet. '
                          'Please try another scheme or contact support.')
PROFILE_HINTS = ('complete your profile', 'location information')


def portal_user():
    return session.get('beneficiary_user') or {}


def profile_incomplete(message):
    message = (message or '').lower()
    return any(hint in message for hint in PROFILE_HINTS)


@portal_bp.route('/')
@beneficiary_login_required
def index():
    return redirect(url_for('portal.dashboard'))


@portal_bp.route('/dashboard')
@beneficiary_login_required
def dashboard():
    api = get_portal_api()
    applications = []
    stats = {}
    try:
        applications = items_of(api.portal.applications(limit=5), 'applications')
        data = api.portal.stats()
        stats = data.get('stats') or data
    except ApiError as e:
        flash_api_error(e)
    return render_template('portal/dashboard.html', user=portal_user(), applications=applications, stats=stats)


@portal_bp.route('/schemes')
@beneficiary_login_required
def schemes():
    category = request.args.get('category', '').strip()
    search = request.args.get('search', '').strip()
    data = {}
    try:
        data = get_portal_api().portal.schemes(category=category, search=search)
    except ApiError as e:
        flash_api_error(e)
    return render_template('portal/schemes.html',
                           schemes=items_of(data, 'schemes'),
                           categories=data.get('categories') or [],
                           summary=data.get('summary') or {},
                           category=category,
                           search=search)


def load_scheme(scheme_id):
    """Scheme with its form; None after redirecting reasons are flashed"""
    try:
        data = get_portal_api().portal.scheme(scheme_id)
    except ApiError as e:
        flash_api_error(e)
        if 'not available' in (e.message or '').lower():
            flash(FORM_NOT_READY_MESSAGE, 'error')
        return None
    return data.get('scheme') or data


@portal_bp.route('/schemes/<scheme_id>/apply', methods=['GET', 'POST'])
@beneficiary_login_required
def apply(scheme_id):
    scheme = load_scheme(scheme_id)
    if scheme is None:
        return redirect(url_for('portal.schemes'))

    if scheme.get('hasApplied'):
        clear_wizard(session, scheme_id)
        flash('You have already applied for this scheme', 'error')
        return redirect(url_for('portal.dashboard'))

    definition = FormDefinition(scheme.get('formConfig'))
    if not definition.is_configured:
        flash(FORM_NOT_READY_MESSAGE, 'error')
        return redirect(url_for('portal.schemes'))

    if request.method == 'GET':
        # Answers live in the page being filled in, so a fresh visit starts over
        clear_wizard(session, scheme_id)
        wizard = load_wizard(session, definition, scheme_id)
        return render_template('portal/apply.html', scheme=scheme, definition=definition, wizard=wizard,
                               page=wizard.current_page, errors={}, values=wizard.values)

    wizard = load_wizard(session, definition, scheme_id, request.form)
    action = request.form.get('action', 'next')
    values, documents = collect_values(wizard.current_page, request.form, request.files)
    errors = {}

    if action == 'back':
        wizard.merge(values, documents)
        wizard.back()
    elif action == 'submit' and wizard.is_last:
        payload, errors = wizard.submit(values, request.form.get('agree_terms') == 'on', documents)
        if payload:
            try:
                data = get_portal_api().portal.submit_application(
                    payload['schemeId'], payload['formData'], payload['documents'])
            except ApiError as e:
                if profile_incomplete(e.message):
                    clear_wizard(session, scheme_id)
                    flash(e.message, 'error')
                    return redirect(url_for('portal.profile'))
                flash_api_error(e)
            else:
                clear_wizard(session, scheme_id)
                application = data.get('application') or {}
                number = application.get('applicationId') or application.get('applicationNumber') or ''
                logger.info(f"Application {number} submitted for scheme {scheme_id}")
                flash(f'Application submitted successfully! Your application ID is {number}', 'success')
                return redirect(url_for('portal.dashboard'))
        else:
            flash('Please fix the errors before submitting', 'error')
    else:
        errors = wizard.advance(values, documents)
        if errors:
            flash('Complete all required fields before proceeding', 'error')

    save_wizard(session, wizard)
    return render_template('portal/apply.html', scheme=scheme, definition=definition, wizard=wizard,
                           page=wizard.current_page, errors=errors, values=wizard.values)


@portal_bp.route('/applications')
@beneficiary_login_required
def applications():
    status = request.args.get('status', '').strip()
    page, limit = current_page_args()
    items = []
    pagination = Pagination(page, limit, 0)
    try:
        data = get_portal_api().portal.applications(status=status, page=page, limit=limit)
        items = items_of(data, 'applications')
        block = data.get('pagination')
        pagination = Pagination.from_api(block, limit) if block else Pagination(page, limit, len(items))
    except ApiError as e:
        flash_api_error(e)
    return render_template('portal/applications.html', applications=items, pagination=pagination,
                           status=status, statuses=APPLICATION_STATUSES)


@portal_bp.route('/applications/<application_id>')
@beneficiary_login_required
def application_detail(application_id):
    try:
        data = get_portal_api().portal.application(application_id)
    except ApiError as e:
        flash_api_error(e)
        return redirect(url_for('portal.applications'))
    return render_template('portal/application_detail.html',
                           application=data.get('application') or data,
                           form=CancelApplicationForm())


@portal_bp.route('/track', methods=['GET'])
@beneficiary_login_required
def track():
    application_id = request.args.get('application_id', '').strip()
    tracking = None
    if application_id:
        try:
            tracking = get_portal_api().portal.track(application_id)
        except ApiError as e:
            flash_api_error(e)
    return render_template('portal/track.html', application_id=application_id, tracking=tracking)


@portal_bp.route('/applications/<application_id>/cancel', methods=['POST'])
@beneficiary_login_required
def cancel_application(application_id):
    form = CancelApplicationForm()
    if form.validate_on_submit():
        try:
            get_portal_api().portal.cancel_application(application_id, form.reason.data or None)
            flash('Application cancelled successfully', 'success')
        except ApiError as e:
            flash_api_error(e)
    return redirect(url_for('portal.application_detail', application_id=application_id))


@portal_bp.route('/payments')
@beneficiary_login_required
def payments():
    status = request.args.get('status', '').strip()
    items = []
    try:
        items = items_of(get_portal_api().portal.payments(status=status), 'payments')
    except ApiError as e:
        flash_api_error(e)
    return render_template('portal/payments.html', payments=items, status=status)


@portal_bp.route('/payments/<payment_id>/receipt')
@beneficiary_login_required
def payment_receipt(payment_id):
    try:
        data = get_portal_api().portal.payment(payment_id)
    except ApiError as e:
        flash_api_error(e)
        return redirect(url_for('portal.payments'))

    payment = data.get('payment') or data
    if payment.get('status') != 'completed':
        flash('Receipt can only be generated for completed payments', 'error')
        return redirect(url_for('portal.payments'))

    pdf_buffer = io.BytesIO(payment_receipt_pdf(payment, current_app.config['SOFTWARE_NAME']))
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=receipt_filename(payment)
    )


def portal_locations(location_type, parent=None, blank='Select'):
    try:
        records = items_of(get_portal_api().portal.locations(location_type, parent), 'locations')
    except ApiError as e:
        flash_api_error(e)
        records = []
    return choices(records, blank)


def current_profile(user):
    profile = user.get('profile') or {}
    address = profile.get('address') or {}

    def ref(value):
        return str(record_id(value) or '') if isinstance(value, dict) else str(value or '')

    return {
        'name': user.get('name'),
        'gender': profile.get('gender') or '',
        'date_of_birth': parse_date(profile.get('dateOfBirth')),
        'address': address.get('street') or '',
        'pincode': address.get('pincode') or '',
        'district': ref(address.get('district')),
        'area': ref(address.get('area')),
        'unit': ref(address.get('unit')),
    }


@portal_bp.route('/profile', methods=['GET', 'POST'])
@beneficiary_login_required
def profile():
    user = portal_user()
    form = ProfileForm()
    if request.method == 'GET':
        # The stored copy is from sign-in; show what the backend holds now
        try:
            fresh = get_portal_api().portal.profile().get('user')
        except ApiError as e:
            flash_api_error(e)
        else:
            if fresh:
                user = session['beneficiary_user'] = fresh
        form.process(data=current_profile(user))

    district = form.district.data
    area = form.area.data
    form.district.choices = portal_locations('district', blank='Select district')
    form.area.choices = portal_locations('area', district, 'Select area') if district else [('', 'Select area')]
    form.unit.choices = portal_locations('unit', area, 'Select unit') if area else [('', 'Select unit')]

    # Changing district or area re-posts the form to reload the next select
    if request.method == 'POST' and request.form.get('refresh'):
        return render_template('portal/profile.html', form=form, user=user)

    if form.validate_on_submit():
        profile_data = {
            'name': form.name.data.strip(),
            'profile': {
                'gender': form.gender.data,
                'dateOfBirth': form.date_of_birth.data.isoformat(),
                'address': {
                    'street': form.address.data or '',
                    'pincode': form.pincode.data or '',
                    'district': form.district.data,
                    'area': form.area.data,
                    'unit': form.unit.data,
                },
            },
        }
        try:
            data = get_portal_api().portal.update_profile(profile_data)
        except ApiError as e:
            flash_api_error(e)
        else:
            session['beneficiary_user'] = data.get('user') or dict(user, **profile_data)
            flash('Your profile has been set up successfully!', 'success')
            return redirect(url_for('portal.dashboard'))

    return render_template('portal/profile.html', form=form, user=user)
