"""
OTP login for staff and beneficiaries, and the session guards
"""
import logging
import time
from functools import wraps

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for
from jose import JWTError, jwt

from api_client import ApiError, get_api, get_portal_api
from forms import OtpForm, PhoneForm, RoleForm
from rbac import clear_permissions, load_permissions
from security import is_safe_url

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

SESSION_EXPIRED_MESSAGE = 'Your session has expired. Please log in again.'

STAFF_KEYS = ('token', 'user', 'rbac', 'login_step', 'login_phone', 'login_dev_otp', 'login_next')
BENEFICIARY_KEYS = ('beneficiary_token', 'beneficiary_user', 'user_phone', 'application_drafts',
                    'portal_login_step', 'portal_login_phone', 'portal_login_dev_otp')


def token_expired(token):
    """True when a JWT carries an exp in the past; opaque tokens never expire here"""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return False
    exp = claims.get('exp')
    if exp is None:
        return False
    try:
        return float(exp) < time.time()
    except (TypeError, ValueError):
        return False


def clear_staff_session():
    for key in STAFF_KEYS:
        session.pop(key, None)


def clear_beneficiary_session():
    for key in BENEFICIARY_KEYS:
        session.pop(key, None)


def current_path():
    return request.full_path.rstrip('?')


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = session.get('token')
        if not token:
            return redirect(url_for('auth.login', next=current_path()))
        if token_expired(token):
            clear_staff_session()
            flash(SESSION_EXPIRED_MESSAGE, 'error')
            return redirect(url_for('auth.login', next=current_path()))
        return f(*args, **kwargs)
    return decorated_function


def beneficiary_login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = session.get('beneficiary_token')
        if not token:
            return redirect(url_for('auth.beneficiary_login'))
        if token_expired(token):
            clear_beneficiary_session()
            flash(SESSION_EXPIRED_MESSAGE, 'error')
            return redirect(url_for('auth.beneficiary_login'))
        return f(*args, **kwargs)
    return decorated_function


def development_otp(data):
    if not current_app.config.get('SHOW_DEVELOPMENT_OTP'):
        return None
    return data.get('developmentOTP') or data.get('staticOTP')


def landing_url(permissions):
    target = session.pop('login_next', None)
    if target and is_safe_url(target):
        return target
    return url_for(permissions.default_route())


# Staff login: role -> phone -> otp
@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'GET':
        next_url = request.args.get('next')
        if next_url and is_safe_url(next_url):
            session['login_next'] = next_url

    if session.get('token') and not token_expired(session['token']):
        return redirect(landing_url(load_permissions()))

    if request.method == 'GET' and request.args.get('restart'):
        session['login_step'] = 'role'

    step = session.get('login_step', 'role')
    action = request.form.get('action') if request.method == 'POST' else None

    role_form = RoleForm()
    phone_form = PhoneForm(phone=session.get('login_phone'))
    otp_form = OtpForm(otp=session.get('login_dev_otp'))

    if action == 'back':
        step = {'otp': 'phone', 'phone': 'role'}.get(step, 'role')
        session.pop('login_dev_otp', None)
        session['login_step'] = step
        return redirect(url_for('auth.login'))

    if action == 'role' and role_form.validate_on_submit():
        if role_form.role.data == 'beneficiary':
            session.pop('login_step', None)
            return redirect(url_for('auth.beneficiary_login'))
        session['login_step'] = 'phone'
        return redirect(url_for('auth.login'))

    if action == 'phone' and phone_form.validate_on_submit():
        phone = phone_form.phone.data
        try:
            data = get_api().auth.send_otp(phone)
            session['login_phone'] = phone
            session['login_step'] = 'otp'
            otp = development_otp(data)
            if otp:
                session['login_dev_otp'] = otp
            flash(f'OTP sent to {phone}', 'success')
            return redirect(url_for('auth.login'))
        except ApiError as e:
            flash(e.message or 'Failed to send OTP', 'error')

    if action == 'resend' and session.get('login_phone'):
        try:
            data = get_api().auth.send_otp(session['login_phone'])
            otp = development_otp(data)
            if otp:
                session['login_dev_otp'] = otp
            flash('OTP resent successfully', 'success')
        except ApiError as e:
            flash(e.message or 'Failed to resend OTP', 'error')
        return redirect(url_for('auth.login'))

    if action == 'otp' and otp_form.validate_on_submit():
        phone = session.get('login_phone')
        if not phone:
            session['login_step'] = 'phone'
            flash('Please enter your mobile number first', 'error')
            return redirect(url_for('auth.login'))
        try:
            data = get_api().auth.verify_otp(phone, otp_form.otp.data)
        except ApiError as e:
            flash(e.message or 'Failed to verify OTP', 'error')
        else:
            token = (data.get('tokens') or {}).get('accessToken') or data.get('token')
            if not token:
                flash('Login failed. Please try again.', 'error')
                return redirect(url_for('auth.login'))

            for key in ('login_step', 'login_phone', 'login_dev_otp'):
                session.pop(key, None)
            session['token'] = token
            session['user'] = data.get('user') or {}
            session.permanent = True

            permissions = load_permissions(force=True)
            logger.info(f"Staff user {session['user'].get('id')} logged in")
            flash('Login successful! Welcome back.', 'success')
            return redirect(landing_url(permissions))

    return render_template('login.html',
                           step=step,
                           role_form=role_form,
                           phone_form=phone_form,
                           otp_form=otp_form,
                           phone=session.get('login_phone'),
                           development_otp=session.get('login_dev_otp'))


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout():
    if session.get('token'):
        try:
            get_api().auth.logout()
        except ApiError as e:
            logger.warning(f"Logout request failed: {e.message}")
        logger.info(f"Staff user {(session.get('user') or {}).get('id')} logged out")
    clear_permissions()
    clear_staff_session()
    flash('You have been logged out successfully!', 'info')
    return redirect(url_for('auth.login'))


# Beneficiary login: phone -> otp
@auth_bp.route('/beneficiary/login', methods=['GET', 'POST'])
def beneficiary_login():
    if session.get('beneficiary_token') and not token_expired(session['beneficiary_token']):
        return redirect(url_for('portal.dashboard'))

    step = session.get('portal_login_step', 'phone')
    action = request.form.get('action') if request.method == 'POST' else None

    phone_form = PhoneForm(phone=session.get('portal_login_phone'))
    otp_form = OtpForm(otp=session.get('portal_login_dev_otp'))

    if action == 'back':
        for key in ('portal_login_step', 'portal_login_dev_otp'):
            session.pop(key, None)
        return redirect(url_for('auth.beneficiary_login'))

    if action == 'phone' and phone_form.validate_on_submit():
        phone = phone_form.phone.data
        try:
            data = get_portal_api().portal.send_otp(phone)
            session['portal_login_phone'] = phone
            session['portal_login_step'] = 'otp'
            otp = development_otp(data)
            if otp:
                session['portal_login_dev_otp'] = otp
            flash(f'OTP sent to {phone}', 'success')
            return redirect(url_for('auth.beneficiary_login'))
        except ApiError as e:
            flash(e.message or 'Failed to send OTP', 'error')

    if action == 'resend' and session.get('portal_login_phone'):
        try:
            data = get_portal_api().portal.resend_otp(session['portal_login_phone'])
            otp = development_otp(data)
            if otp:
                session['portal_login_dev_otp'] = otp
            flash('OTP resent successfully', 'success')
        except ApiError as e:
            flash(e.message or 'Failed to resend OTP', 'error')
        return redirect(url_for('auth.beneficiary_login'))

    if action == 'otp' and otp_form.validate_on_submit():
        phone = session.get('portal_login_phone')
        if not phone:
            session.pop('portal_login_step', None)
            flash('Please enter your mobile number first', 'error')
            return redirect(url_for('auth.beneficiary_login'))
        try:
            data = get_portal_api().portal.verify_otp(phone, otp_form.otp.data)
        except ApiError as e:
            flash(e.message or 'Please check your OTP and try again', 'error')
        else:
            if not data.get('token'):
                flash('Login failed. Please try again.', 'error')
                return redirect(url_for('auth.beneficiary_login'))
            for key in ('portal_login_step', 'portal_login_phone', 'portal_login_dev_otp'):
                session.pop(key, None)
            user = data.get('user') or {}
            session['beneficiary_token'] = data['token']
            session['beneficiary_user'] = user
            session['user_phone'] = phone
            session.permanent = True
            logger.info(f"Beneficiary {user.get('id')} logged in")
            flash(f"Welcome, {user.get('name') or 'Beneficiary'}!", 'success')
            return redirect(url_for('portal.dashboard'))

    return render_template('beneficiary_login.html',
                           step=step,
                           phone_form=phone_form,
                           otp_form=otp_form,
                           phone=session.get('portal_login_phone'),
                           development_otp=session.get('portal_login_dev_otp'))


@auth_bp.route('/beneficiary/logout', methods=['GET', 'POST'])
def beneficiary_logout():
    clear_beneficiary_session()
    flash('You have been logged out successfully!', 'info')
    return redirect(url_for('auth.beneficiary_login'))
