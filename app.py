import logging
import os
from datetime import datetime

from flask import Flask, flash, redirect, render_template, request, send_from_directory, session, url_for
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf

from api_client import AuthenticationError, init_api
from auth import SESSION_EXPIRED_MESSAGE, clear_beneficiary_session, clear_staff_session
from config import get_config
from rbac import clear_permissions, template_helpers
from security import init_security, is_safe_url
from view_helpers import record_id

logger = logging.getLogger(__name__)

csrf = CSRFProtect()

STATUS_STYLES = {
    'active': 'success',
    'approved': 'success',
    'completed': 'success',
    'verified': 'success',
    'disbursed': 'success',
    'pending': 'warning',
    'due': 'warning',
    'under_review': 'info',
    'field_verification': 'info',
    'interview_scheduled': 'info',
    'interview_completed': 'info',
    'processing': 'info',
    'scheduled': 'primary',
    'draft': 'secondary',
    'inactive': 'secondary',
    'archived': 'secondary',
    'cancelled': 'secondary',
    'on_hold': 'secondary',
    'rejected': 'danger',
    'overdue': 'danger',
    'failed': 'danger',
    'suspended': 'danger',
}


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    root.setLevel(level)
    app.logger.setLevel(level)


def register_template_helpers(app):
    # Custom Jinja2 filter for number formatting with commas
    @app.template_filter('comma')
    def comma_filter(value):
        """Format number with comma separators (2 decimal places)"""
        try:
            return "{:,.2f}".format(float(value))
        except (ValueError, TypeError):
            return value

    @app.template_filter('comma_int')
    def comma_int_filter(value):
        """Format number with comma separators (no decimal places)"""
        try:
            return "{:,}".format(int(float(value)))
        except (ValueError, TypeError):
            return value

    @app.template_filter('currency')
    def currency_filter(value):
        try:
            return "₹{:,.0f}".format(float(value or 0))
        except (ValueError, TypeError):
            return value

    @app.template_filter('date')
    def date_filter(value, fmt='%d %b %Y'):
        if not value:
            return ''
        try:
            return datetime.fromisoformat(str(value).replace('Z', '+00:00')).strftime(fmt)
        except ValueError:
            return str(value)[:10]

    @app.template_filter('label')
    def label_filter(value):
        return str(value or '').replace('_', ' ').title()

    @app.template_filter('status_style')
    def status_style_filter(value):
        return STATUS_STYLES.get(str(value or '').lower(), 'secondary')

    @app.template_filter('name')
    def name_filter(value):
        """Display name of a populated reference"""
        if isinstance(value, dict):
            return value.get('name') or value.get('title') or ''
        return value or ''

    def page_url(page):
        """Current list URL with a different page, filters kept"""
        args = request.args.to_dict()
        args['page'] = page
        return url_for(request.endpoint, **dict(request.view_args or {}, **args))

    app.add_template_global(page_url)
    app.add_template_global(generate_csrf, 'csrf_token')

    # Make datetime, the signed-in user and permission helpers available in templates
    @app.context_processor
    def inject_globals():
        return dict(
            datetime=datetime,
            software_name=app.config['SOFTWARE_NAME'],
            staff_user=session.get('user') if 'token' in session else None,
            portal_user=session.get('beneficiary_user') if 'beneficiary_token' in session else None,
            rid=record_id,
            **template_helpers()
        )


def register_error_handlers(app):
    @app.errorhandler(AuthenticationError)
    def handle_authentication_error(error):
        # The backend rejected the token: sign the user out of that surface
        if request.blueprint == 'portal':
            clear_beneficiary_session()
            flash(SESSION_EXPIRED_MESSAGE, 'error')
            return redirect(url_for('auth.beneficiary_login'))
        clear_permissions()
        clear_staff_session()
        flash(SESSION_EXPIRED_MESSAGE, 'error')
        return redirect(url_for('auth.login'))

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        flash('Your form expired. Please try again.', 'error')
        target = request.referrer
        if target and is_safe_url(target):
            return redirect(target)
        return redirect(url_for('admin.index'))

    @app.errorhandler(403)
    def forbidden(error):
        return render_template('access_denied.html', required=()), 403

    @app.errorhandler(404)
    def not_found(error):
        return render_template('error.html', code=404, message='The page you requested was not found.'), 404

    @app.errorhandler(500)
    def server_error(error):
        logger.error(f"Unhandled error on {request.path}: {error}")
        return render_template('error.html', code=500, message='Something went wrong. Please try again.'), 500


def create_app(config=None):
    app = Flask(
        __name__,
        template_folder=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates'),
        static_folder=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static'),
    )

    if config is None or isinstance(config, str):
        config = get_config(config)
    app.config.from_object(config)
    config.init_app(app)

    configure_logging(app)
    csrf.init_app(app)
    init_security(app)
    init_api(app)

    register_template_helpers(app)
    register_error_handlers(app)

    from admin_views import admin_bp
    from auth import auth_bp
    from donation_views import donations_bp
    from health import health_bp
    from payment_views import payments_bp
    from portal import portal_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(donations_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(health_bp)

    # Serve favicon if present, otherwise return 204 to avoid log spam
    @app.route('/favicon.ico')
    def favicon():
        icon_path = os.path.join(app.static_folder, 'favicon.ico')
        if os.path.exists(icon_path):
            return send_from_directory(app.static_folder, 'favicon.ico', mimetype='image/x-icon')
        return ('', 204)

    logger.info(f"{app.config['SOFTWARE_NAME']} started against {app.config['API_BASE_URL']}")
    return app


if __name__ == '__main__':
    app = create_app('development')

    # This block is for local development only.
    # In production, gunicorn serves wsgi:app.
    print("\n" + "=" * 50)
    print("Starting local development server...")
    print("Access the dashboard at: http://127.0.0.1:5001")
    print("=" * 50 + "\n")
    app.run(host='127.0.0.1', port=5001, debug=True)
