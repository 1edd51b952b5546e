"""
Donor records and the donations received from them
"""
import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for

from api_client import ApiError, flash_api_error, get_api
from auth import login_required
from exports import DONATION_COLUMNS, DONOR_COLUMNS
from forms import (DONATION_METHODS, DONATION_STATUSES, DONOR_CATEGORIES, DONOR_STATUSES, DONOR_TYPES,
                   DonationForm, DonorForm)
from rbac import permission_required
from view_helpers import (back_to, choices, export_records, fetch_items, fetch_page, fetch_stats, filter_args,
                          items_of, number, run_action)

logger = logging.getLogger(__name__)

donations_bp = Blueprint('donations', __name__)

DONOR_READ = 'donors.read.regional'
DONOR_UPDATE = 'donors.update.regional'

DONATION_FILTERS = ('search', 'status', 'method', 'dateFrom', 'dateTo')
DONOR_FILTERS = ('search', 'status', 'type', 'category')


def split_tags(text):
    return [tag.strip() for tag in (text or '').split(',') if tag.strip()]


def donation_summary():
    """Flatten the overall / this-month blocks for the summary cards"""
    stats = fetch_stats(get_api().donations.stats, 'stats')
    if not stats:
        return {}
    overall = stats.get('overall') or {}
    month = stats.get('thisMonth') or {}
    return {
        'totalAmount': overall.get('totalAmount', 0),
        'totalDonations': overall.get('totalDonations', 0),
        'averageDonation': overall.get('averageDonation', 0),
        'monthAmount': month.get('totalAmount', 0),
    }


# Donations
@donations_bp.route('/donations')
@login_required
@permission_required(DONOR_READ)
def donations():
    filters = filter_args(*DONATION_FILTERS)
    items, pagination = fetch_page(get_api().donations.list, 'donations', filters)
    return render_template('donations.html', donations=items, pagination=pagination, filters=filters,
                           stats=donation_summary(), statuses=DONATION_STATUSES, methods=DONATION_METHODS)


@donations_bp.route('/donations/export')
@login_required
@permission_required(DONOR_READ)
def export_donations():
    filters = filter_args(*DONATION_FILTERS)
    return export_records(get_api().donations.list, 'donations', DONATION_COLUMNS,
                          'donations', filters, 'donations.donations')


def donation_form():
    """Donation form with the scheme list narrowed to the chosen project"""
    api = get_api()
    form = DonationForm()
    if request.method == 'GET' and request.args.get('donor'):
        form.donor.data = request.args['donor']
    form.donor.choices = choices(fetch_items(api.donors.options, 'donors', status='active'), 'Anonymous')
    form.project.choices = choices(fetch_items(api.donors.project_options, 'projects'), 'General fund')
    form.scheme.choices = choices(fetch_items(api.donors.scheme_options, 'schemes', project=form.project.data),
                                  'Any scheme')
    return form


@donations_bp.route('/donations/new', methods=['GET', 'POST'])
@login_required
@permission_required('donors.create')
def new_donation():
    form = donation_form()
    # Changing the project re-posts the form to reload its schemes
    if request.method == 'POST' and request.form.get('refresh'):
        return render_template('donation_form.html', form=form)
    if form.validate_on_submit():
        payload = {
            'donor': form.donor.data or None,
            'amount': number(form.amount.data),
            'method': form.method.data,
            'project': form.project.data or None,
            'scheme': form.scheme.data or None,
            'notes': form.notes.data or None,
        }
        if run_action(get_api().donations.create, 'Donation recorded successfully', payload):
            logger.info(f"Donation of {payload['amount']} recorded by {form.method.data}")
            if form.donor.data:
                return redirect(url_for('donations.donor_detail', donor_id=form.donor.data))
            return redirect(url_for('donations.donations'))
    return render_template('donation_form.html', form=form)


@donations_bp.route('/donations/<donation_id>/status', methods=['POST'])
@login_required
@permission_required(DONOR_UPDATE)
def update_donation_status(donation_id):
    status = request.form.get('status', '')
    if status not in dict(DONATION_STATUSES):
        flash('Invalid status', 'error')
    else:
        run_action(get_api().donations.update_status, 'Donation status updated successfully',
                   donation_id, status)
    return back_to('donations.donations')


# Donors
@donations_bp.route('/donors')
@login_required
@permission_required(DONOR_READ)
def donors():
    filters = filter_args(*DONOR_FILTERS)
    items, pagination = fetch_page(get_api().donors.list, 'donors', filters)
    return render_template('donors.html', donors=items, pagination=pagination, filters=filters,
                           stats=fetch_stats(get_api().donors.stats), statuses=DONOR_STATUSES,
                           types=DONOR_TYPES, categories=DONOR_CATEGORIES)


@donations_bp.route('/donors/export')
@login_required
@permission_required(DONOR_READ)
def export_donors():
    filters = filter_args(*DONOR_FILTERS)
    return export_records(get_api().donors.list, 'donors', DONOR_COLUMNS, 'donors', filters, 'donations.donors')


def donor_payload(form):
    payload = {
        'name': form.name.data.strip(),
        'email': form.email.data.strip().lower(),
        'phone': form.phone.data.strip(),
        'type': form.type.data,
        'category': form.category.data,
        'status': form.status.data,
        'source': form.source.data,
        'address': {
            'street': form.street.data or '',
            'city': form.city.data or '',
            'state': form.state.data or '',
            'pincode': form.pincode.data or '',
        },
        'donationPreferences': {'frequency': form.frequency.data},
        'tags': split_tags(form.tags.data),
        'notes': form.notes.data or '',
    }
    if form.pan_number.data:
        payload['taxDetails'] = {'panNumber': form.pan_number.data.strip().upper()}
    return payload


def load_donor(donor_id):
    """The donor and its recent donations; (None, []) once the failure is flashed"""
    try:
        data = get_api().donors.get(donor_id)
    except ApiError as e:
        flash_api_error(e)
        return None, []
    return data.get('donor') or data, items_of(data.get('donationHistory') or [], 'donations')


def donor_data(donor):
    address = donor.get('address') or {}
    return {
        'name': donor.get('name'),
        'email': donor.get('email'),
        'phone': donor.get('phone'),
        'type': donor.get('type'),
        'category': donor.get('category'),
        'status': donor.get('status'),
        'source': donor.get('source'),
        'frequency': (donor.get('donationPreferences') or {}).get('frequency'),
        'street': address.get('street'),
        'city': address.get('city'),
        'state': address.get('state'),
        'pincode': address.get('pincode'),
        'pan_number': (donor.get('taxDetails') or {}).get('panNumber'),
        'tags': ', '.join(donor.get('tags') or []),
        'notes': donor.get('notes'),
    }


@donations_bp.route('/donors/new', methods=['GET', 'POST'])
@login_required
@permission_required('donors.create')
def new_donor():
    form = DonorForm()
    if form.validate_on_submit():
        if run_action(get_api().donors.create, 'Donor created successfully', donor_payload(form)):
            return redirect(url_for('donations.donors'))
    return render_template('donor_form.html', form=form, donor=None)


@donations_bp.route('/donors/<donor_id>')
@login_required
@permission_required(DONOR_READ)
def donor_detail(donor_id):
    donor, history = load_donor(donor_id)
    if not donor:
        return redirect(url_for('donations.donors'))
    return render_template('donor_detail.html', donor=donor, history=history, statuses=DONOR_STATUSES)


@donations_bp.route('/donors/<donor_id>/edit', methods=['GET', 'POST'])
@login_required
@permission_required(DONOR_UPDATE)
def edit_donor(donor_id):
    donor, _ = load_donor(donor_id)
    if not donor:
        return redirect(url_for('donations.donors'))

    form = DonorForm()
    if request.method == 'GET':
        form.process(data=donor_data(donor))
    elif form.validate_on_submit():
        if run_action(get_api().donors.update, 'Donor updated successfully', donor_id, donor_payload(form)):
            return redirect(url_for('donations.donor_detail', donor_id=donor_id))
    return render_template('donor_form.html', form=form, donor=donor)


@donations_bp.route('/donors/<donor_id>/verify', methods=['POST'])
@login_required
@permission_required('donors.verify')
def verify_donor(donor_id):
    run_action(get_api().donors.verify, 'Donor verified successfully', donor_id)
    return back_to('donations.donor_detail', donor_id=donor_id)


@donations_bp.route('/donors/<donor_id>/status', methods=['POST'])
@login_required
@permission_required(DONOR_UPDATE)
def update_donor_status(donor_id):
    status = request.form.get('status', '')
    if status not in dict(DONOR_STATUSES):
        flash('Invalid status', 'error')
    else:
        run_action(get_api().donors.update_status, 'Donor status updated successfully', donor_id, status)
    return back_to('donations.donor_detail', donor_id=donor_id)


@donations_bp.route('/donors/<donor_id>/delete', methods=['POST'])
@login_required
@permission_required('donors.delete')
def delete_donor(donor_id):
    if run_action(get_api().donors.delete, 'Donor deleted successfully', donor_id):
        return redirect(url_for('donations.donors'))
    return back_to('donations.donor_detail', donor_id=donor_id)
