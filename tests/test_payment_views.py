import pytest

from conftest import flashes, login_staff
from payment_views import schedule_summary

FINANCE = ['finances.read.all', 'finances.manage']

SCHEDULE = [
    {'_id': 'pay1', 'paymentNumber': 'PAY-1', 'cycleNumber': 1, 'amount': 1000, 'paidAmount': 1000,
     'status': 'completed', 'scheduledDate': '2024-01-01', 'paymentMethod': 'upi'},
    {'_id': 'pay2', 'paymentNumber': 'PAY-2', 'cycleNumber': 2, 'amount': 1000, 'status': 'overdue',
     'scheduledDate': '2024-02-01'},
    {'_id': 'pay3', 'paymentNumber': 'PAY-3', 'cycleNumber': 3, 'amount': 1000, 'status': 'scheduled',
     'scheduledDate': '2024-03-01'},
    {'_id': 'pay4', 'paymentNumber': 'PAY-4', 'cycleNumber': 4, 'amount': 1000, 'status': 'scheduled',
     'scheduledDate': '2024-04-01'},
]


@pytest.fixture
def finance(client, backend):
    login_staff(client, FINANCE)
    backend.ok('GET', '/recurring-payments/dashboard', {'scheduled': 14, 'overdue': 3, 'completed': 20,
                                                        'amounts': {'completed': 40000, 'pending': 28000}})
    backend.ok('GET', '/schemes', {'schemes': [{'_id': 's1', 'name': 'Scholarship'}]})
    return client


def test_schedule_summary_computed_from_instalments():
    summary = schedule_summary(SCHEDULE)
    assert summary['total'] == 4
    assert summary['completed'] == 1
    assert summary['scheduled'] == 2
    assert summary['overdue'] == 1
    assert summary['progress'] == 25
    assert summary['paid_amount'] == 1000
    assert summary['total_amount'] == 4000


def test_schedule_summary_prefers_backend_counts():
    summary = schedule_summary(SCHEDULE, {'total': 10, 'completed': 5})
    assert summary['total'] == 10
    assert summary['progress'] == 50
    assert summary['overdue'] == 1


def test_schedule_summary_empty():
    assert schedule_summary([])['progress'] == 0


def test_recurring_dashboard_lists_applications(finance, backend):
    backend.ok('GET', '/recurring-payments/applications', {'applications': [
        {'_id': 'a1', 'applicationNumber': 'APP-9', 'recurringConfig': {'period': 'quarterly', 'amount': 1500}},
    ]})
    response = finance.get('/recurring-payments?scheme=s1')
    assert response.status_code == 200
    assert b'APP-9' in response.data
    assert b'Quarterly' in response.data
    assert backend.last('GET', '/recurring-payments/applications')['params'] == {'scheme': 's1'}
    assert backend.last('GET', '/recurring-payments/dashboard')['params'] == {'scheme': 's1'}


def test_upcoming_tab_uses_day_window(finance, backend):
    backend.ok('GET', '/recurring-payments/upcoming', {'payments': [
        {'_id': 'pay3', 'paymentNumber': 'PAY-3', 'amount': 1000, 'status': 'scheduled'},
    ]})
    response = finance.get('/recurring-payments?tab=upcoming&days=15')
    assert b'PAY-3' in response.data
    assert backend.last('GET', '/recurring-payments/upcoming')['params'] == {'days': 15}


def test_upcoming_tab_rejects_unknown_window(finance, backend):
    backend.ok('GET', '/recurring-payments/upcoming', {'payments': []})
    finance.get('/recurring-payments?tab=upcoming&days=1000')
    assert backend.last('GET', '/recurring-payments/upcoming')['params'] == {'days': 30}


def test_overdue_tab(finance, backend):
    backend.ok('GET', '/recurring-payments/overdue', {'payments': [
        {'_id': 'pay2', 'paymentNumber': 'PAY-2', 'amount': 1000, 'status': 'overdue'},
    ]})
    response = finance.get('/recurring-payments?tab=overdue')
    assert response.data.count(b'class="record-row"') == 1


def test_forecast_tab(finance, backend):
    backend.ok('GET', '/recurring-payments/forecast', {'forecast': {
        'summary': {'totalAmount': 36000, 'totalPayments': 24},
        'monthlyForecast': [{'month': '2024-07', 'paymentCount': 2, 'overdueCount': 0, 'totalAmount': 3000}],
    }})
    response = finance.get('/recurring-payments?tab=forecast&months=6')
    assert b'2024-07' in response.data
    assert '₹36,000'.encode() in response.data
    assert backend.last('GET', '/recurring-payments/forecast')['params'] == {'months': 6}


def test_unknown_tab_falls_back_to_applications(finance, backend):
    backend.ok('GET', '/recurring-payments/applications', {'applications': []})
    finance.get('/recurring-payments?tab=bogus')
    assert backend.find('GET', '/recurring-payments/applications')


def test_recurring_requires_finance_permission(client):
    login_staff(client, ['projects.read.all'])
    assert client.get('/recurring-payments').status_code == 403


def test_payment_schedule_page(finance, backend):
    backend.ok('GET', '/recurring-payments/applications/a1/schedule', {
        'application': {'applicationNumber': 'APP-9', 'beneficiary': {'name': 'Asha'}},
        'schedule': SCHEDULE,
    })
    response = finance.get('/recurring-payments/applications/a1')
    assert response.status_code == 200
    assert b'APP-9' in response.data
    assert b'25%' in response.data
    assert b'/recurring-payments/pay2/record' in response.data
    assert b'/recurring-payments/pay1/record' not in response.data


def test_payment_schedule_read_only_without_manage(client, backend):
    login_staff(client, ['finances.read.all'])
    backend.ok('GET', '/recurring-payments/applications/a1/schedule', {'schedule': SCHEDULE})
    response = client.get('/recurring-payments/applications/a1')
    assert b'/record' not in response.data


def test_payment_schedule_failure_returns_to_dashboard(finance, backend):
    backend.fail('GET', '/recurring-payments/applications/a1/schedule', 404, 'Application not found')
    response = finance.get('/recurring-payments/applications/a1')
    assert response.headers['Location'].endswith('/recurring-payments')
    assert 'Application not found' in flashes(finance)


def test_generate_schedule(finance, backend):
    backend.ok('POST', '/recurring-payments/generate-schedule/a1', {})
    response = finance.post('/recurring-payments/applications/a1/generate', data={
        'period': 'monthly', 'number_of_payments': '12', 'amount': '1500', 'start_date': '2024-07-01',
    })
    assert response.headers['Location'].endswith('/recurring-payments/applications/a1')
    assert backend.last('POST', '/recurring-payments/generate-schedule/a1')['json'] == {'recurringConfig': {
        'period': 'monthly', 'numberOfPayments': 12, 'amountPerPayment': 1500.0, 'startDate': '2024-07-01',
    }}


def test_generate_schedule_validates_count(finance, backend):
    response = finance.post('/recurring-payments/applications/a1/generate', data={
        'period': 'monthly', 'number_of_payments': '500', 'amount': '1500', 'start_date': '2024-07-01',
    })
    assert response.status_code == 200
    assert backend.find('POST', '/recurring-payments/generate-schedule/a1') == []


def test_record_payment(finance, backend):
    backend.ok('POST', '/recurring-payments/pay2/record', {})
    response = finance.post('/recurring-payments/pay2/record', data={
        'application_id': 'a1', 'amount': '1000', 'method': 'upi', 'transaction_reference': 'UTR123',
    })
    assert response.headers['Location'].endswith('/recurring-payments/applications/a1')
    assert backend.last('POST', '/recurring-payments/pay2/record')['json'] == {
        'amount': 1000.0, 'method': 'upi', 'transactionReference': 'UTR123', 'notes': None,
    }
    assert 'Payment recorded successfully' in flashes(finance)


def test_record_payment_rejects_zero_amount(finance, backend):
    finance.post('/recurring-payments/pay2/record', data={'application_id': 'a1', 'amount': '0',
                                                          'method': 'upi'})
    assert backend.find('POST', '/recurring-payments/pay2/record') == []


def test_cancel_payment_sends_reason(finance, backend):
    backend.ok('DELETE', '/recurring-payments/pay3/cancel', {})
    finance.post('/recurring-payments/pay3/cancel', data={'application_id': 'a1', 'reason': 'Duplicate'})
    assert backend.last('DELETE', '/recurring-payments/pay3/cancel')['json'] == {'reason': 'Duplicate'}
    assert 'Payment cancelled successfully' in flashes(finance)


def test_cancel_payment_needs_reason(finance, backend):
    finance.post('/recurring-payments/pay3/cancel', data={'application_id': 'a1', 'reason': ''})
    assert 'A reason is required' in flashes(finance)
    assert backend.find('DELETE', '/recurring-payments/pay3/cancel') == []


def test_payments_ledger(finance, backend):
    backend.ok('GET', '/payments', {
        'payments': [{'_id': 'p1', 'paymentNumber': 'PAY-100', 'amount': 5000, 'status': 'pending'}],
        'pagination': {'page': 1, 'pages': 1, 'total': 1, 'limit': 10},
    })
    response = finance.get('/payments?status=pending&method=all')
    assert b'PAY-100' in response.data
    assert backend.last('GET', '/payments')['params'] == {'page': 1, 'limit': 10, 'status': 'pending'}


def test_export_payments(finance, backend):
    backend.ok('GET', '/payments', {'payments': [
        {'paymentNumber': 'PAY-100', 'beneficiaryName': 'Asha', 'amount': 5000, 'status': 'completed',
         'dueDate': '2024-05-01T00:00:00Z'},
    ]})
    response = finance.get('/payments/export?status=completed')
    lines = response.data.decode().splitlines()
    assert lines[0].startswith('Payment Number,Beneficiary Name')
    assert lines[1].startswith('PAY-100,Asha')
    assert '2024-05-01' in lines[1]
    assert 'payments_completed_' in response.headers['Content-Disposition']


def test_complete_payment(finance, backend):
    backend.ok('PATCH', '/payments/p1/complete', {})
    finance.post('/payments/p1/complete', data={'transaction_reference': ' UTR9 '})
    assert backend.last('PATCH', '/payments/p1/complete')['json'] == {'transactionReference': 'UTR9',
                                                                      'notes': None}
    assert 'Payment marked as completed successfully' in flashes(finance)
