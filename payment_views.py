"""
Recurring payment schedules and the payments ledger
"""
import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for

from api_client import ApiError, flash_api_error, get_api
from auth import login_required
from exports import PAYMENT_COLUMNS
from forms import (PAYMENT_METHODS, PAYMENT_PERIODS, CancelPaymentForm, GenerateScheduleForm,
                   RecordPaymentForm)
from rbac import permission_required
from view_helpers import (back_to, export_records, fetch_items, fetch_page, filter_args, items_of, number,
                          run_action)

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__)

FINANCE_READ = ('finances.read.all', 'finances.read.regional', 'finances.manage')

RECURRING_TABS = ('applications', 'upcoming', 'overdue', 'forecast')
UPCOMING_DAYS = (7, 15, 30, 60, 90)
FORECAST_MONTHS = (3, 6, 12, 24)

PAYMENT_STATUSES = [
    ('pending', 'Pending'),
    ('approved', 'Approved'),
    ('processing', 'Processing'),
    ('completed', 'Completed'),
    ('failed', 'Failed'),
    ('cancelled', 'Cancelled'),
]

# Bootstrap colour for each instalment status
INSTALMENT_STYLES = {
    'completed': 'success',
    'scheduled': 'primary',
    'due': 'warning',
    'overdue': 'danger',
    'processing': 'info',
    'failed': 'danger',
    'skipped': 'secondary',
    'cancelled': 'secondary',
}

OPEN_STATUSES = ('scheduled', 'due', 'overdue')


def int_arg(name, default, allowed):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return value if value in allowed else default


def schedule_summary(schedule, summary=None):
    """Counts for the schedule header; computed when the backend sent none"""
    summary = dict(summary or {})
    summary.setdefault('total', len(schedule))
    summary.setdefault('completed', sum(1 for p in schedule if p.get('status') == 'completed'))
    summary.setdefault('scheduled', sum(1 for p in schedule if p.get('status') == 'scheduled'))
    summary.setdefault('overdue', sum(1 for p in schedule if p.get('status') == 'overdue'))
    total = summary['total'] or 0
    summary['progress'] = int(summary['completed'] * 100 / total) if total else 0
    summary['paid_amount'] = sum(p.get('paidAmount') or p.get('amount') or 0
                                 for p in schedule if p.get('status') == 'completed')
    summary['total_amount'] = sum(p.get('amount') or 0 for p in schedule)
    return summary


@payments_bp.route('/recurring-payments')
@login_required
@permission_required(*FINANCE_READ)
def recurring_dashboard():
    api = get_api()
    tab = request.args.get('tab', 'applications')
    if tab not in RECURRING_TABS:
        tab = 'applications'
    filters = filter_args('scheme', 'project', 'status')

    stats = {}
    try:
        stats = api.recurring.stats(**filters)
    except ApiError as e:
        flash_api_error(e)

    context = {'applications': [], 'payments': [], 'forecast': {}}
    days = int_arg('days', 30, UPCOMING_DAYS)
    months = int_arg('months', 12, FORECAST_MONTHS)
    try:
        if tab == 'applications':
            context['applications'] = items_of(api.recurring.applications(**filters), 'applications')
        elif tab == 'upcoming':
            context['payments'] = items_of(api.recurring.upcoming(days=days, **filters), 'payments')
        elif tab == 'overdue':
            context['payments'] = items_of(api.recurring.overdue(**filters), 'payments')
        else:
            context['forecast'] = api.recurring.forecast(months=months, **filters).get('forecast') or {}
    except ApiError as e:
        flash_api_error(e)

    schemes = fetch_items(api.schemes.list, 'schemes', limit=100)
    return render_template('recurring_payments.html', tab=tab, tabs=RECURRING_TABS, stats=stats,
                           filters=filters, schemes=schemes, days=days, months=months,
                           upcoming_days=UPCOMING_DAYS, forecast_months=FORECAST_MONTHS,
                           periods=dict(PAYMENT_PERIODS), **context)


@payments_bp.route('/recurring-payments/applications/<application_id>')
@login_required
@permission_required(*FINANCE_READ)
def payment_schedule(application_id):
    try:
        data = get_api().recurring.schedule(application_id)
    except ApiError as e:
        flash_api_error(e)
        return redirect(url_for('payments.recurring_dashboard'))

    schedule = data.get('schedule') or []
    return render_template('payment_schedule.html',
                           application=data.get('application') or {},
                           schedule=schedule,
                           summary=schedule_summary(schedule, data.get('summary')),
                           styles=INSTALMENT_STYLES,
                           open_statuses=OPEN_STATUSES,
                           methods=dict(PAYMENT_METHODS),
                           record_form=RecordPaymentForm(),
                           cancel_form=CancelPaymentForm())


@payments_bp.route('/recurring-payments/applications/<application_id>/generate', methods=['GET', 'POST'])
@login_required
@permission_required('finances.manage')
def generate_schedule(application_id):
    form = GenerateScheduleForm()
    if form.validate_on_submit():
        config = {
            'period': form.period.data,
            'numberOfPayments': form.number_of_payments.data,
            'amountPerPayment': number(form.amount.data),
            'startDate': form.start_date.data.isoformat(),
        }
        if run_action(get_api().recurring.generate_schedule, 'Payment schedule generated successfully',
                      application_id, config):
            return redirect(url_for('payments.payment_schedule', application_id=application_id))
    return render_template('generate_schedule.html', form=form, application_id=application_id)


@payments_bp.route('/recurring-payments/<payment_id>/record', methods=['POST'])
@login_required
@permission_required('finances.manage')
def record_payment(payment_id):
    form = RecordPaymentForm()
    application_id = request.form.get('application_id')
    if form.validate_on_submit():
        payload = {
            'amount': number(form.amount.data),
            'method': form.method.data,
            'transactionReference': form.transaction_reference.data or None,
            'notes': form.notes.data or None,
        }
        run_action(get_api().recurring.record_payment, 'Payment recorded successfully', payment_id, payload)
    else:
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'error')
    if application_id:
        return redirect(url_for('payments.payment_schedule', application_id=application_id))
    return back_to('payments.recurring_dashboard')


@payments_bp.route('/recurring-payments/<payment_id>/cancel', methods=['POST'])
@login_required
@permission_required('finances.manage')
def cancel_payment(payment_id):
    form = CancelPaymentForm()
    application_id = request.form.get('application_id')
    if form.validate_on_submit():
        run_action(get_api().recurring.cancel_payment, 'Payment cancelled successfully',
                   payment_id, form.reason.data)
    else:
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'error')
    if application_id:
        return redirect(url_for('payments.payment_schedule', application_id=application_id))
    return back_to('payments.recurring_dashboard')


# Payments ledger
@payments_bp.route('/payments')
@login_required
@permission_required(*FINANCE_READ)
def payments():
    filters = filter_args('search', 'status', 'method')
    items, pagination = fetch_page(get_api().payments.list, 'payments', filters)
    return render_template('payments.html', payments=items, pagination=pagination, filters=filters,
                           statuses=PAYMENT_STATUSES, methods=PAYMENT_METHODS)


@payments_bp.route('/payments/export')
@login_required
@permission_required(*FINANCE_READ)
def export_payments():
    filters = filter_args('search', 'status', 'method')
    return export_records(get_api().payments.list, 'payments', PAYMENT_COLUMNS,
                          'payments', filters, 'payments.payments')


@payments_bp.route('/payments/<payment_id>/complete', methods=['POST'])
@login_required
@permission_required('finances.manage')
def complete_payment(payment_id):
    payload = {
        'transactionReference': request.form.get('transaction_reference', '').strip() or None,
        'notes': request.form.get('notes', '').strip() or None,
    }
    if run_action(get_api().payments.complete, 'Payment marked as completed successfully', payment_id, payload):
        logger.info(f"Payment {payment_id} completed")
    return back_to('payments.payments')
