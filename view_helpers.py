"""
Shared plumbing for the list, form and export pages
"""
import logging
from datetime import date, datetime

from flask import current_app, flash, redirect, request, url_for

from api_client import ApiError, AuthenticationError, flash_api_error
from exports import NO_RECORDS_MESSAGE, build_csv, csv_response, export_filename
from pagination import Pagination, page_args
from security import is_safe_url

logger = logging.getLogger(__name__)


def record_id(record):
    if not isinstance(record, dict):
        return record
    return record.get('_id') or record.get('id')


def items_of(data, key):
    """The record list out of a data block, whichever shape the backend used"""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    items = data.get(key)
    if items is None:
        items = data.get('items') or data.get('data') or []
    return items if isinstance(items, list) else []


def parse_date(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        try:
            return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
        except ValueError:
            return None


def iso(value):
    return value.isoformat() if value else None


def number(value):
    return float(value) if value is not None else None


def filter_args(*names):
    """Filter values from the query string, '' when absent"""
    return {name: request.args.get(name, '').strip() for name in names}


def current_page_args():
    return page_args(request.args,
                     current_app.config['DEFAULT_PAGE_SIZE'],
                     current_app.config['PAGE_SIZE_OPTIONS'])


def fetch_page(call, key, filters):
    """One page of records plus its pagination; empty on failure"""
    page, limit = current_page_args()
    try:
        data = call(page=page, limit=limit, **filters)
    except ApiError as e:
        flash_api_error(e)
        return [], Pagination(page, limit, 0)
    items = items_of(data, key)
    block = data.get('pagination') if isinstance(data, dict) else None
    if block:
        return items, Pagination.from_api(block, limit)
    return items, Pagination(page, limit, len(items), pages=1 if items else 0)


def fetch_items(call, key, **params):
    try:
        return items_of(call(**params), key)
    except ApiError as e:
        flash_api_error(e)
        return []


def fetch_one(call, item_id, key):
    """Single record or None (the failure is flashed)"""
    try:
        data = call(item_id)
    except ApiError as e:
        flash_api_error(e)
        return None
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data or None


def fetch_stats(call, key='overview'):
    """Summary figures for a list page; a failure only hides the cards"""
    try:
        data = call()
    except AuthenticationError:
        raise
    except ApiError as e:
        logger.warning(f"Summary unavailable: {e.message}")
        return {}
    block = data.get(key) if isinstance(data, dict) else None
    return block if isinstance(block, dict) else {}


def choices(records, blank=None):
    options = [(str(record_id(r)), r.get('name') or r.get('title') or str(record_id(r))) for r in records]
    if blank is not None:
        options.insert(0, ('', blank))
    return options


def export_records(call, key, columns, prefix, filters, endpoint):
    """CSV download of every record matching the filters"""
    limit = current_app.config['EXPORT_LIMIT']
    try:
        data = call(page=1, limit=limit, **filters)
    except ApiError as e:
        flash_api_error(e)
        return redirect(url_for(endpoint, **{k: v for k, v in filters.items() if v}))
    records = items_of(data, key)
    if not records:
        flash(NO_RECORDS_MESSAGE, 'info')
        return redirect(url_for(endpoint, **{k: v for k, v in filters.items() if v}))
    return csv_response(export_filename(prefix, filters.get('status')), build_csv(columns, records))


def run_action(call, success_message, *args):
    """Perform a mutation and flash its outcome; True on success"""
    try:
        call(*args)
    except ApiError as e:
        flash_api_error(e)
        return False
    flash(success_message, 'success')
    return True


def back_to(endpoint, **values):
    target = request.form.get('next') or request.referrer
    if target and is_safe_url(target):
        return redirect(target)
    return redirect(url_for(endpoint, **values))
