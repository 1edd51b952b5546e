"""
REST client for the NGO operations backend.

Every endpoint answers with the envelope ``{success, data?, message?}``.
Failures are raised as ``ApiError``; 401/403 are raised as
``AuthenticationError`` so the app can send the user back to login.
"""
import logging

import requests
from flask import current_app, flash, session

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'Something went wrong. Please try again.'
NETWORK_ERROR_MESSAGE = 'Unable to reach the server. Please try again.'


class ApiError(Exception):
    """Backend call failed (transport, HTTP status or ``success: false``)"""

    def __init__(self, message=None, status_code=None, payload=None):
        self.message = message or GENERIC_ERROR_MESSAGE
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(self.message)


class AuthenticationError(ApiError):
    """Backend rejected the bearer token (HTTP 401 or 403)"""


def flash_api_error(error):
    """Flash a failed call; rejected credentials propagate to the app handler"""
    if isinstance(error, AuthenticationError):
        raise error
    flash(error.message, 'error')


def clean_params(params):
    """Drop empty query values and the UI-only 'all' sentinel"""
    if not params:
        return {}
    cleaned = {}
    for key, value in params.items():
        if value is None or value == '' or value == 'all':
            continue
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        cleaned[key] = value
    return cleaned


class ApiClient:
    def __init__(self, base_url, token=None, timeout=30, http=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

        self.auth = AuthEndpoints(self)
        self.rbac = RbacEndpoints(self)
        self.dashboard = DashboardEndpoints(self)
        self.projects = ProjectEndpoints(self)
        self.schemes = SchemeEndpoints(self)
        self.beneficiaries = BeneficiaryEndpoints(self)
        self.applications = ApplicationEndpoints(self)
        self.locations = LocationEndpoints(self)
        self.master_data = MasterDataEndpoints(self)
        self.partners = PartnerEndpoints(self)
        self.sms = SmsEndpoints(self)
        self.recurring = RecurringPaymentEndpoints(self)
        self.payments = PaymentEndpoints(self)
        self.donors = DonorEndpoints(self)
        self.donations = DonationEndpoints(self)
        self.portal = PortalEndpoints(self)

    def headers(self):
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def request(self, method, endpoint, params=None, json=None):
        url = f'{self.base_url}{endpoint}'
        try:
            response = self.http.request(
                method,
                url,
                params=clean_params(params),
                json=json,
                headers=self.headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"API request failed: {method} {endpoint}: {e}")
            raise ApiError(NETWORK_ERROR_MESSAGE) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {'data': payload}

        message = payload.get('message')
        if response.status_code in (401, 403):
            logger.warning(f"API rejected credentials: {method} {endpoint} ({response.status_code})")
            raise AuthenticationError(message or 'Authentication required', response.status_code, payload)
        if response.status_code >= 400:
            logger.error(f"API error: {method} {endpoint} ({response.status_code}): {message}")
            raise ApiError(message or f'HTTP error! status: {response.status_code}', response.status_code, payload)
        if payload.get('success') is False:
            logger.error(f"API request unsuccessful: {method} {endpoint}: {message}")
            raise ApiError(message or 'API request failed', response.status_code, payload)
        return payload

    def get(self, endpoint, params=None):
        return self.request('GET', endpoint, params=params)

    def post(self, endpoint, json=None):
        return self.request('POST', endpoint, json=json)

    def put(self, endpoint, json=None):
        return self.request('PUT', endpoint, json=json)

    def patch(self, endpoint, json=None):
        return self.request('PATCH', endpoint, json=json)

    def delete(self, endpoint, json=None):
        return self.request('DELETE', endpoint, json=json)

    def data(self, method, endpoint, params=None, json=None):
        """Shorthand returning only the envelope's ``data`` block"""
        return self.request(method, endpoint, params=params, json=json).get('data') or {}


class Endpoints:
    def __init__(self, client):
        self.client = client


class CrudEndpoints(Endpoints):
    """list/get/create/update/delete against one collection path"""
    path = ''

    def list(self, **params):
        return self.client.data('GET', self.path, params=params)

    def get(self, item_id):
        return self.client.data('GET', f'{self.path}/{item_id}')

    def create(self, data):
        return self.client.post(self.path, json=data)

    def update(self, item_id, data):
        return self.client.put(f'{self.path}/{item_id}', json=data)

    def delete(self, item_id):
        return self.client.delete(f'{self.path}/{item_id}')


class AuthEndpoints(Endpoints):
    def send_otp(self, phone, purpose='login'):
        return self.client.data('POST', '/auth/send-otp', json={'phone': phone, 'purpose': purpose})

    def verify_otp(self, phone, otp, purpose='login'):
        return self.client.data('POST', '/auth/verify-otp', json={'phone': phone, 'otp': otp, 'purpose': purpose})

    def logout(self):
        return self.client.post('/auth/logout')


class RbacEndpoints(Endpoints):
    def user_roles(self, user_id):
        return self.client.get(f'/rbac/users/{user_id}/roles').get('data') or []

    def user_permissions(self, user_id):
        data = self.client.data('GET', f'/rbac/users/{user_id}/permissions')
        return data.get('permissions') or []


class DashboardEndpoints(Endpoints):
    def overview(self):
        return self.client.data('GET', '/dashboard/overview')

    def recent_applications(self, limit=5):
        return self.client.data('GET', '/dashboard/recent-applications', params={'limit': limit})


class ProjectEndpoints(CrudEndpoints):
    path = '/projects'

    def stats(self):
        return self.client.data('GET', '/projects/stats')


class SchemeEndpoints(CrudEndpoints):
    path = '/schemes'

    def stats(self):
        return self.client.data('GET', '/schemes/stats')

    def form_config(self, scheme_id):
        return self.client.data('GET', f'/schemes/{scheme_id}/form-config')

    def update_form_config(self, scheme_id, config):
        return self.client.put(f'/schemes/{scheme_id}/form-config', json=config)

    def publish_form(self, scheme_id, published):
        return self.client.patch(f'/schemes/{scheme_id}/form-config/publish', json={'isPublished': published})


class BeneficiaryEndpoints(CrudEndpoints):
    path = '/beneficiaries'

    def verify(self, beneficiary_id):
        return self.client.patch(f'/beneficiaries/{beneficiary_id}/verify')


class ApplicationEndpoints(CrudEndpoints):
    path = '/applications'

    def review(self, application_id, data):
        return self.client.patch(f'/applications/{application_id}/review', json=data)

    def approve(self, application_id, data):
        return self.client.patch(f'/applications/{application_id}/approve', json=data)


class LocationEndpoints(CrudEndpoints):
    path = '/locations'

    def by_type(self, location_type, parent=None, active=True):
        return self.client.data('GET', f'/locations/by-type/{location_type}',
                                params={'parent': parent, 'active': active})

    def stats(self):
        return self.client.data('GET', '/locations/statistics')


class MasterDataEndpoints(CrudEndpoints):
    path = '/master-data'

    def clone(self, item_id):
        return self.client.post(f'/master-data/{item_id}/clone')


class PartnerEndpoints(CrudEndpoints):
    path = '/partners'


class SmsEndpoints(Endpoints):
    def send(self, phone, message=None, template_key=None, variables=None, priority='normal'):
        body = {'phone': phone, 'priority': priority}
        if template_key:
            body['templateKey'] = template_key
            body['variables'] = variables or {}
        else:
            body['message'] = message
        return self.client.post('/sms/send', json=body)

    def send_bulk(self, recipients, message=None, template_key=None, variables=None, priority='normal'):
        body = {'recipients': recipients, 'priority': priority}
        if template_key:
            body['templateKey'] = template_key
            body['variables'] = variables or {}
        else:
            body['message'] = message
        return self.client.post('/sms/send-bulk', json=body)

    def templates(self):
        return self.client.data('GET', '/sms/templates')

    def usage_stats(self):
        return self.client.data('GET', '/sms/usage-stats')


class RecurringPaymentEndpoints(Endpoints):
    def applications(self, **filters):
        return self.client.data('GET', '/recurring-payments/applications', params=filters)

    def schedule(self, application_id):
        return self.client.data('GET', f'/recurring-payments/applications/{application_id}/schedule')

    def upcoming(self, days=30, **filters):
        return self.client.data('GET', '/recurring-payments/upcoming', params=dict(filters, days=days))

    def overdue(self, **filters):
        return self.client.data('GET', '/recurring-payments/overdue', params=filters)

    def forecast(self, months=12, **filters):
        return self.client.data('GET', '/recurring-payments/forecast', params=dict(filters, months=months))

    def stats(self, **filters):
        return self.client.data('GET', '/recurring-payments/dashboard', params=filters)

    def generate_schedule(self, application_id, recurring_config):
        return self.client.post(f'/recurring-payments/generate-schedule/{application_id}',
                                json={'recurringConfig': recurring_config})

    def record_payment(self, payment_id, data):
        return self.client.post(f'/recurring-payments/{payment_id}/record', json=data)

    def cancel_payment(self, payment_id, reason):
        return self.client.delete(f'/recurring-payments/{payment_id}/cancel', json={'reason': reason})


class PaymentEndpoints(Endpoints):
    def list(self, **params):
        return self.client.data('GET', '/payments', params=params)

    def complete(self, payment_id, data):
        return self.client.patch(f'/payments/{payment_id}/complete', json=data)


class DonorEndpoints(CrudEndpoints):
    path = '/donors'

    def options(self, **params):
        """Unpaginated name list for pickers"""
        return self.client.data('GET', '/donors/all', params=params)

    def verify(self, donor_id):
        return self.client.patch(f'/donors/{donor_id}/verify')

    def update_status(self, donor_id, status):
        return self.client.patch(f'/donors/{donor_id}/status', json={'status': status})

    def stats(self):
        # This endpoint nests its figures one level deeper than the rest
        data = self.client.data('GET', '/donors/analytics/stats')
        return data.get('data') or data

    def project_options(self):
        return self.client.data('GET', '/donors/dropdown/projects')

    def scheme_options(self, project=None):
        return self.client.data('GET', '/donors/dropdown/schemes', params={'projectId': project})


class DonationEndpoints(Endpoints):
    def list(self, **params):
        return self.client.data('GET', '/donations', params=params)

    def create(self, data):
        return self.client.data('POST', '/donations', json=data)

    def update_status(self, donation_id, status):
        return self.client.patch(f'/donations/{donation_id}/status', json={'status': status})

    def stats(self):
        return self.client.data('GET', '/donations/analytics/stats')


class PortalEndpoints(Endpoints):
    """Beneficiary self-service endpoints (beneficiary token)"""

    def send_otp(self, phone):
        return self.client.data('POST', '/beneficiary/auth/send-otp', json={'phone': phone})

    def verify_otp(self, phone, otp):
        return self.client.data('POST', '/beneficiary/auth/verify-otp', json={'phone': phone, 'otp': otp})

    def resend_otp(self, phone):
        return self.client.data('POST', '/beneficiary/auth/resend-otp', json={'phone': phone})

    def profile(self):
        return self.client.data('GET', '/beneficiary/auth/profile')

    def update_profile(self, profile):
        return self.client.data('PUT', '/beneficiary/auth/profile', json=profile)

    def schemes(self, category=None, search=None):
        return self.client.data('GET', '/beneficiary/schemes', params={'category': category, 'search': search})

    def scheme(self, scheme_id):
        return self.client.data('GET', f'/beneficiary/schemes/{scheme_id}')

    def submit_application(self, scheme_id, form_data, documents=None):
        return self.client.data('POST', '/beneficiary/applications', json={
            'schemeId': scheme_id,
            'formData': form_data,
            'documents': documents or [],
        })

    def applications(self, status=None, page=1, limit=10):
        return self.client.data('GET', '/beneficiary/applications',
                                params={'status': status, 'page': page, 'limit': limit})

    def application(self, application_id):
        return self.client.data('GET', f'/beneficiary/applications/{application_id}')

    def track(self, application_id):
        return self.client.data('GET', f'/beneficiary/track/{application_id}')

    def cancel_application(self, application_id, reason=None):
        return self.client.data('PUT', f'/beneficiary/applications/{application_id}/cancel',
                                json={'reason': reason})

    def stats(self):
        return self.client.data('GET', '/beneficiary/applications/stats')

    def payments(self, status=None):
        return self.client.data('GET', '/beneficiary/payments', params={'status': status})

    def payment(self, payment_id):
        return self.client.data('GET', f'/beneficiary/payments/{payment_id}')

    def locations(self, location_type, parent=None):
        return self.client.data('GET', '/beneficiary/locations', params={'type': location_type, 'parent': parent})


def _build_client(token):
    return ApiClient(
        current_app.config['API_BASE_URL'],
        token=token,
        timeout=current_app.config.get('API_TIMEOUT', 30),
        http=current_app.extensions.get('api_http'),
    )


def get_api():
    """Client authorised with the staff session token"""
    return _build_client(session.get('token'))


def get_portal_api():
    """Client authorised with the beneficiary session token"""
    return _build_client(session.get('beneficiary_token'))


def init_api(app, http=None):
    """Share one connection pool between requests"""
    app.extensions['api_http'] = http or requests.Session()
