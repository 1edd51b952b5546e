import json
import re

from flask_wtf import FlaskForm
from wtforms import (DateField, DecimalField, IntegerField, RadioField, SelectField,
                     StringField, TextAreaField)
from wtforms.validators import URL, DataRequired, Length, NumberRange, Optional, Regexp, ValidationError

from dynamic_forms import FormDefinition

PAYMENT_METHODS = [
    ('bank_transfer', 'Bank Transfer'),
    ('cheque', 'Cheque'),
    ('cash', 'Cash'),
    ('digital_wallet', 'Digital Wallet'),
    ('upi', 'UPI'),
]

PAYMENT_PERIODS = [
    ('monthly', 'Monthly'),
    ('quarterly', 'Quarterly'),
    ('semi_annually', 'Semi-annually'),
    ('annually', 'Annually'),
]

GENDERS = [('', 'Select gender'), ('male', 'Male'), ('female', 'Female'), ('other', 'Other')]


class RoleForm(FlaskForm):
    role = RadioField('Login as', choices=[('admin', 'Administrator'), ('beneficiary', 'Beneficiary')],
                      default='admin', validators=[DataRequired()])


class PhoneForm(FlaskForm):
    phone = StringField('Mobile Number', validators=[
        DataRequired(message='Phone number is required'),
        Regexp(r'^[0-9]{10}$', message='Enter a valid 10-digit mobile number'),
    ])


class OtpForm(FlaskForm):
    otp = StringField('OTP', validators=[
        DataRequired(message='OTP is required'),
        Regexp(r'^[0-9]{6}$', message='Enter the 6-digit OTP'),
    ])


class RecordPaymentForm(FlaskForm):
    amount = DecimalField('Amount', places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    method = SelectField('Payment Method', choices=PAYMENT_METHODS, default='bank_transfer')
    transaction_reference = StringField('Transaction Reference', validators=[Optional(), Length(max=100)])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])


class CancelPaymentForm(FlaskForm):
    reason = TextAreaField('Reason', validators=[DataRequired(message='A reason is required'), Length(max=500)])


class GenerateScheduleForm(FlaskForm):
    period = SelectField('Period', choices=PAYMENT_PERIODS, default='monthly')
    number_of_payments = IntegerField('Number of Payments', validators=[DataRequired(), NumberRange(min=1, max=120)])
    amount = DecimalField('Amount per Payment', places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    start_date = DateField('Start Date', validators=[DataRequired()])


class SmsForm(FlaskForm):
    phone = StringField('Phone', validators=[
        DataRequired(message='Phone number is required'),
        Regexp(r'^[+]?[0-9]{10,15}$', message='Enter a valid phone number'),
    ])
    template_key = SelectField('Template', choices=[('', 'Free text')], default='', validate_choice=False)
    message = TextAreaField('Message', validators=[Optional(), Length(max=1000)])
    priority = SelectField('Priority', choices=[('normal', 'Normal'), ('high', 'High')], default='normal')

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        if not self.template_key.data and not (self.message.data or '').strip():
            self.message.errors.append('Enter a message or choose a template')
            return False
        return True


class CancelApplicationForm(FlaskForm):
    reason = TextAreaField('Reason for cancellation', validators=[Optional(), Length(max=500)])


class ProfileForm(FlaskForm):
    name = StringField('Full Name', validators=[DataRequired(message='Name is required'), Length(min=2, max=100)])
    gender = SelectField('Gender', choices=GENDERS, validators=[DataRequired(message='Gender is required')])
    date_of_birth = DateField('Date of Birth', validators=[DataRequired(message='Date of birth is required')])
    address = TextAreaField('Address', validators=[Optional(), Length(max=300)])
    pincode = StringField('Pincode', validators=[Optional(), Regexp(r'^[0-9]{6}$', message='Enter a valid pincode')])
    district = SelectField('District', choices=[], validate_choice=False,
                           validators=[DataRequired(message='District is required')])
    area = SelectField('Area', choices=[], validate_choice=False,
                       validators=[DataRequired(message='Area is required')])
    unit = SelectField('Unit', choices=[], validate_choice=False,
                       validators=[DataRequired(message='Unit is required')])


CATEGORIES = [
    ('education', 'Education'),
    ('healthcare', 'Healthcare'),
    ('housing', 'Housing'),
    ('livelihood', 'Livelihood'),
    ('emergency_relief', 'Emergency Relief'),
    ('infrastructure', 'Infrastructure'),
    ('social_welfare', 'Social Welfare'),
    ('other', 'Other'),
]

PRIORITIES = [('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('critical', 'Critical')]

PROJECT_SCOPES = [
    ('state', 'State'),
    ('district', 'District'),
    ('area', 'Area'),
    ('unit', 'Unit'),
    ('multi_region', 'Multi Region'),
]

PROJECT_STATUSES = [
    ('draft', 'Draft'),
    ('approved', 'Approved'),
    ('active', 'Active'),
    ('on_hold', 'On Hold'),
    ('completed', 'Completed'),
    ('cancelled', 'Cancelled'),
]

SCHEME_STATUSES = [
    ('draft', 'Draft'),
    ('active', 'Active'),
    ('suspended', 'Suspended'),
    ('closed', 'Closed'),
    ('completed', 'Completed'),
]

BENEFIT_TYPES = [
    ('cash', 'Cash'),
    ('kind', 'Kind'),
    ('service', 'Service'),
    ('scholarship', 'Scholarship'),
    ('loan', 'Loan'),
    ('subsidy', 'Subsidy'),
]

BENEFICIARY_STATUSES = [('pending', 'Pending'), ('active', 'Active'), ('inactive', 'Inactive')]

APPLICATION_STATUSES = [
    ('pending', 'Pending'),
    ('under_review', 'Under Review'),
    ('field_verification', 'Field Verification'),
    ('interview_scheduled', 'Interview Scheduled'),
    ('interview_completed', 'Interview Completed'),
    ('approved', 'Approved'),
    ('rejected', 'Rejected'),
    ('on_hold', 'On Hold'),
    ('cancelled', 'Cancelled'),
    ('disbursed', 'Disbursed'),
    ('completed', 'Completed'),
]

MASTER_DATA_TYPES = [
    ('scheme_stages', 'Scheme Stages'),
    ('project_stages', 'Project Stages'),
    ('application_stages', 'Application Stages'),
    ('distribution_timeline_templates', 'Distribution Timeline Templates'),
    ('status_configurations', 'Status Configurations'),
]

MASTER_DATA_STATUSES = [('draft', 'Draft'), ('active', 'Active'), ('inactive', 'Inactive'), ('archived', 'Archived')]

MASTER_DATA_SCOPES = [
    ('global', 'Global'),
    ('state', 'State'),
    ('district', 'District'),
    ('area', 'Area'),
    ('unit', 'Unit'),
    ('project_specific', 'Project Specific'),
    ('scheme_specific', 'Scheme Specific'),
]

DONOR_TYPES = [
    ('individual', 'Individual'),
    ('corporate', 'Corporate'),
    ('foundation', 'Foundation'),
    ('trust', 'Trust'),
    ('ngo', 'NGO'),
]

DONOR_CATEGORIES = [('regular', 'Regular'), ('patron', 'Patron'), ('major', 'Major'), ('corporate', 'Corporate')]

DONOR_STATUSES = [
    ('active', 'Active'),
    ('inactive', 'Inactive'),
    ('blocked', 'Blocked'),
    ('pending_verification', 'Pending Verification'),
]

DONOR_SOURCES = [
    ('website', 'Website'),
    ('event', 'Event'),
    ('referral', 'Referral'),
    ('social_media', 'Social Media'),
    ('direct', 'Direct'),
    ('campaign', 'Campaign'),
    ('other', 'Other'),
]

DONATION_FREQUENCIES = [('one-time', 'One-time'), ('monthly', 'Monthly'), ('quarterly', 'Quarterly'),
                        ('yearly', 'Yearly')]

DONATION_METHODS = [
    ('online', 'Online'),
    ('upi', 'UPI'),
    ('bank_transfer', 'Bank Transfer'),
    ('card', 'Card'),
    ('cheque', 'Cheque'),
    ('cash', 'Cash'),
]

DONATION_STATUSES = [
    ('pending', 'Pending'),
    ('processing', 'Processing'),
    ('completed', 'Completed'),
    ('failed', 'Failed'),
    ('cancelled', 'Cancelled'),
]


class ProjectForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=200)])
    code = StringField('Code', validators=[DataRequired(message='Code is required'), Length(max=50)])
    description = TextAreaField('Description', validators=[DataRequired(message='Description is required')])
    category = SelectField('Category', choices=CATEGORIES)
    priority = SelectField('Priority', choices=PRIORITIES, default='medium')
    scope = SelectField('Scope', choices=PROJECT_SCOPES)
    status = SelectField('Status', choices=PROJECT_STATUSES, default='draft')
    start_date = DateField('Start Date', validators=[DataRequired(message='Start date is required')])
    end_date = DateField('End Date', validators=[DataRequired(message='End date is required')])
    budget = DecimalField('Budget', places=2, validators=[Optional(), NumberRange(min=0)])

    def validate_end_date(self, field):
        if self.start_date.data and field.data and field.data < self.start_date.data:
            raise ValidationError('End date must be after the start date')


class SchemeForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=200)])
    code = StringField('Code', validators=[DataRequired(message='Code is required'), Length(max=50)])
    description = TextAreaField('Description', validators=[DataRequired(message='Description is required')])
    category = SelectField('Category', choices=CATEGORIES)
    priority = SelectField('Priority', choices=PRIORITIES, default='medium')
    status = SelectField('Status', choices=SCHEME_STATUSES, default='draft')
    project = SelectField('Project', choices=[], validate_choice=False,
                          validators=[DataRequired(message='Project is required')])
    budget_total = DecimalField('Total Budget', places=2, validators=[Optional(), NumberRange(min=0)])
    benefit_type = SelectField('Benefit Type', choices=BENEFIT_TYPES, default='cash')
    benefit_amount = DecimalField('Benefit Amount', places=2, validators=[Optional(), NumberRange(min=0)])
    max_applications = IntegerField('Max Applications', default=1000, validators=[Optional(), NumberRange(min=1)])
    start_date = DateField('Applications Open', validators=[Optional()])
    end_date = DateField('Applications Close', validators=[Optional()])


class BeneficiaryForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(min=2, max=100)])
    phone = StringField('Phone', validators=[
        DataRequired(message='Phone number is required'),
        Regexp(r'^[0-9]{10}$', message='Enter a valid 10-digit mobile number'),
    ])
    district = SelectField('District', choices=[], validate_choice=False,
                           validators=[DataRequired(message='District is required')])
    area = SelectField('Area', choices=[], validate_choice=False,
                       validators=[DataRequired(message='Area is required')])
    unit = SelectField('Unit', choices=[], validate_choice=False,
                       validators=[DataRequired(message='Unit is required')])
    status = SelectField('Status', choices=BENEFICIARY_STATUSES, default='pending')


class ApplicationDecisionForm(FlaskForm):
    decision = SelectField('Decision', choices=[
        ('approve', 'Approve'),
        ('reject', 'Reject'),
        ('under_review', 'Mark Under Review'),
        ('on_hold', 'Put On Hold'),
    ])
    approved_amount = DecimalField('Approved Amount', places=2, validators=[Optional(), NumberRange(min=0)])
    comments = TextAreaField('Comments', validators=[Length(max=1000)])

    def validate_comments(self, field):
        if self.decision.data == 'reject' and not (field.data or '').strip():
            raise ValidationError('Please give a reason for rejection')


class LocationForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=100)])
    code = StringField('Code', validators=[DataRequired(message='Code is required'), Length(max=20)])
    parent = SelectField('Parent', choices=[], validate_choice=False, validators=[Optional()])


class MasterDataForm(FlaskForm):
    type = SelectField('Type', choices=MASTER_DATA_TYPES)
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=200)])
    description = TextAreaField('Description', validators=[Optional()])
    category = StringField('Category', validators=[Optional(), Length(max=100)])
    scope = SelectField('Scope', choices=MASTER_DATA_SCOPES, default='global')
    status = SelectField('Status', choices=MASTER_DATA_STATUSES, default='draft')
    version = StringField('Version', default='1.0', validators=[DataRequired()])
    effective_from = DateField('Effective From', validators=[DataRequired()])
    effective_to = DateField('Effective To', validators=[Optional()])
    configuration = TextAreaField('Configuration (JSON)', default='{}')

    def validate_configuration(self, field):
        try:
            value = json.loads(field.data or '{}')
        except ValueError:
            raise ValidationError('Configuration must be valid JSON')
        if not isinstance(value, dict):
            raise ValidationError('Configuration must be a JSON object')


class FormConfigForm(FlaskForm):
    configuration = TextAreaField('Form configuration (JSON)', validators=[DataRequired()])

    def validate_configuration(self, field):
        try:
            value = json.loads(field.data)
        except ValueError:
            raise ValidationError('Configuration must be valid JSON')
        if not isinstance(value, dict):
            raise ValidationError('Configuration must be a JSON object')
        if not str(value.get('title') or '').strip() or not str(value.get('description') or '').strip():
            raise ValidationError('Form title and description are required')

        pages = value.get('pages')
        if not isinstance(pages, list) or not pages:
            raise ValidationError('At least one page is required')
        seen = set()
        for number, page in enumerate(pages, 1):
            if not isinstance(page, dict) or not isinstance(page.get('fields', []), list):
                raise ValidationError(f'Page {number} must be an object with a list of fields')
            for item in page.get('fields', []):
                if not isinstance(item, dict) or item.get('id') in (None, ''):
                    raise ValidationError(f'Every field on page {number} needs an id')
                if str(item['id']) in seen:
                    raise ValidationError(f"Field id {item['id']} is used more than once")
                seen.add(str(item['id']))

        if not FormDefinition(value).is_configured:
            raise ValidationError('The form needs at least one field')


class PartnerForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=100)])
    link = StringField('Website', validators=[Optional(), URL(message='Enter a valid URL')])
    logo = StringField('Logo URL', validators=[Optional(), URL(message='Enter a valid URL')])
    order = IntegerField('Display Order', default=0, validators=[Optional(), NumberRange(min=0)])
    status = SelectField('Status', choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active')


class DonorForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=100)])
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Regexp(r'^[^\s@]+@[^\s@]+\.[^\s@]{2,}$', message='Please enter a valid email'),
    ])
    phone = StringField('Phone', validators=[
        DataRequired(message='Phone number is required'),
        Regexp(r'^[+]?[\d\s\-()]{10,15}$', message='Please enter a valid phone number'),
    ])
    type = SelectField('Donor Type', choices=DONOR_TYPES, default='individual')
    category = SelectField('Category', choices=DONOR_CATEGORIES, default='regular')
    status = SelectField('Status', choices=DONOR_STATUSES, default='active')
    source = SelectField('Source', choices=DONOR_SOURCES, default='direct')
    frequency = SelectField('Giving Frequency', choices=DONATION_FREQUENCIES, default='one-time')
    street = StringField('Street', validators=[Optional(), Length(max=200)])
    city = StringField('City', validators=[Optional(), Length(max=100)])
    state = StringField('State', validators=[Optional(), Length(max=100)])
    pincode = StringField('Pincode', validators=[Optional(), Regexp(r'^[0-9]{6}$', message='Enter a valid pincode')])
    pan_number = StringField('PAN', validators=[Optional()])
    tags = StringField('Tags', validators=[Optional(), Length(max=200)])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])

    def validate_pan_number(self, field):
        if not re.match(r'^[A-Z]{5}[0-9]{4}[A-Z]$', field.data.strip().upper()):
            raise ValidationError('Please enter a valid PAN number')


class DonationForm(FlaskForm):
    donor = SelectField('Donor', choices=[], validate_choice=False, validators=[Optional()])
    amount = DecimalField('Amount', places=2, validators=[
        DataRequired(message='Amount is required'),
        NumberRange(min=1, message='Amount must be at least 1'),
    ])
    method = SelectField('Method', choices=DONATION_METHODS, default='upi')
    project = SelectField('Project', choices=[], validate_choice=False, validators=[Optional()])
    scheme = SelectField('Scheme', choices=[], validate_choice=False, validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])


class BulkSmsForm(FlaskForm):
    template_key = SelectField('Template', choices=[('', 'Free text')], default='', validate_choice=False)
    message = TextAreaField('Message', validators=[Length(max=1000)])
    priority = SelectField('Priority', choices=[('normal', 'Normal'), ('high', 'High')], default='normal')

    def validate_message(self, field):
        if not self.template_key.data and not (field.data or '').strip():
            raise ValidationError('Enter a message or choose a template')
