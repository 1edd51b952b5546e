"""
Scheme application forms.

A scheme's ``formConfig`` describes a multi-page form: pages of typed
fields, each with optional validation rules and single-level conditional
visibility. ``ApplicationWizard`` walks a beneficiary through the visible
pages and builds the submission payload.
"""
import logging
import math
import re

logger = logging.getLogger(__name__)

FIELD_TYPES = (
    'text', 'email', 'phone', 'number', 'url', 'textarea',
    'select', 'radio', 'checkbox', 'date', 'datetime', 'file',
)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^[+]?[0-9]{10,15}$')

TERMS_ERROR = 'Please agree to the terms and conditions'


def is_empty(value):
    if value is None or value is False:
        return True
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return str(value).strip() == ''


def as_text(value):
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ','.join(str(item) for item in value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def condition_met(logic, values):
    """True when a conditionalLogic block is satisfied by the current values"""
    if not logic or logic.get('field') in (None, ''):
        return True
    current = as_text(values.get(f"field_{logic['field']}"))
    expected = as_text(logic.get('value'))
    if logic.get('operator') == 'notEquals':
        matched = current != expected
    else:
        matched = current == expected
    if logic.get('action', 'show') == 'hide':
        return not matched
    return matched


class FormField:
    def __init__(self, data):
        self.id = data.get('id')
        self.label = data.get('label') or f'Field {self.id}'
        field_type = data.get('type') or 'text'
        self.type = field_type if field_type in FIELD_TYPES else 'text'
        self.required = bool(data.get('required'))
        self.enabled = data.get('enabled', True) is not False
        self.placeholder = data.get('placeholder') or ''
        self.help_text = data.get('helpText') or ''
        self.options = [self._option(item) for item in data.get('options') or []]
        self.validation = data.get('validation') or {}
        self.columns = data.get('columns') or 1
        self.conditional_logic = data.get('conditionalLogic')

    @staticmethod
    def _option(item):
        if isinstance(item, dict):
            value = item.get('value', item.get('label'))
            return {'value': as_text(value), 'label': item.get('label') or as_text(value)}
        return {'value': as_text(item), 'label': as_text(item)}

    @property
    def key(self):
        return f'field_{self.id}'

    @property
    def option_values(self):
        return [option['value'] for option in self.options]

    @property
    def multiple(self):
        return self.type == 'checkbox' and bool(self.options)

    @property
    def input_type(self):
        """HTML input type for single-line fields"""
        return {
            'email': 'email',
            'phone': 'tel',
            'number': 'number',
            'url': 'url',
            'date': 'date',
            'datetime': 'datetime-local',
        }.get(self.type, 'text')

    def is_visible(self, values):
        return self.enabled and condition_met(self.conditional_logic, values)


class FormPage:
    def __init__(self, data, position=0):
        self.id = data.get('id', position)
        self.title = data.get('title') or f'Page {position + 1}'
        self.description = data.get('description') or ''
        self.order = data.get('order', position)
        self.fields = [FormField(item) for item in data.get('fields') or []]
        self.conditional_logic = data.get('conditionalLogic')

    def is_visible(self, values):
        return condition_met(self.conditional_logic, values)

    def visible_fields(self, values):
        return [f for f in self.fields if f.is_visible(values)]


class FormDefinition:
    def __init__(self, config):
        config = config or {}
        self.title = config.get('title') or ''
        self.description = config.get('description') or ''
        self.confirmation_message = config.get('confirmationMessage') or ''
        pages = [FormPage(item, position) for position, item in enumerate(config.get('pages') or [])]
        self.pages = sorted(pages, key=lambda page: page.order if page.order is not None else 0)

    @property
    def is_configured(self):
        return any(page.fields for page in self.pages)


def validate_field(field, value):
    """Error message for a single field value, or '' when valid"""
    if field.required and is_empty(value):
        return f'{field.label} is required'
    if is_empty(value):
        return ''

    rules = field.validation
    custom = rules.get('customMessage')

    def message(default):
        return custom or default

    text = as_text(value)

    if field.type == 'email' and not EMAIL_RE.match(text):
        return message('Please enter a valid email address')

    if field.type == 'phone' and not PHONE_RE.match(re.sub(r'\s', '', text)):
        return message('Please enter a valid phone number')

    if field.type == 'number':
        try:
            number = float(text)
        except ValueError:
            return message('Please enter a valid number')
        if not math.isfinite(number):
            return message('Please enter a valid number')
        if rules.get('min') is not None and number < float(rules['min']):
            return message(f"Minimum value is {rules['min']}")
        if rules.get('max') is not None and number > float(rules['max']):
            return message(f"Maximum value is {rules['max']}")

    if field.type in ('text', 'textarea'):
        if rules.get('minLength') is not None and len(text) < int(rules['minLength']):
            return message(f"Minimum length is {rules['minLength']} characters")
        if rules.get('maxLength') is not None and len(text) > int(rules['maxLength']):
            return message(f"Maximum length is {rules['maxLength']} characters")

    if field.type in ('select', 'radio') and field.options and text not in field.option_values:
        return message('Please select a valid option')

    if rules.get('pattern'):
        try:
            matched = re.search(rules['pattern'], text)
        except re.error as e:
            logger.warning(f"Ignoring invalid pattern on field {field.id}: {e}")
        else:
            if not matched:
                return message('Please enter a valid value')

    return ''


def validate_page(page, values):
    """Errors keyed by field key for the enabled, visible fields of a page"""
    errors = {}
    for field in page.visible_fields(values):
        error = validate_field(field, values.get(field.key))
        if error:
            errors[field.key] = error
    return errors


def collect_values(page, form, files=None):
    """Read a page's field values out of a submitted form"""
    values = {}
    documents = {}
    for field in page.fields:
        if field.type == 'file':
            upload = files.get(field.key) if files is not None else None
            if upload is not None and upload.filename:
                values[field.key] = upload.filename
                documents[field.key] = {'type': field.key, 'filename': upload.filename}
            continue
        if field.multiple:
            values[field.key] = form.getlist(field.key)
        elif field.type == 'checkbox':
            values[field.key] = 'true' if form.get(field.key) else ''
        else:
            values[field.key] = form.get(field.key, '').strip()
    return values, documents


class ApplicationWizard:
    def __init__(self, definition, scheme_id, page_index=None, values=None, documents=None):
        self.definition = definition
        self.scheme_id = scheme_id
        self.values = dict(values or {})
        self.documents = dict(documents or {})
        visible = self.visible_page_indexes()
        if page_index is None or page_index not in visible:
            page_index = visible[0] if visible else 0
        self.page_index = page_index

    def visible_page_indexes(self):
        return [i for i, page in enumerate(self.definition.pages) if page.is_visible(self.values)]

    @property
    def current_page(self):
        return self.definition.pages[self.page_index]

    @property
    def step_number(self):
        visible = self.visible_page_indexes()
        return visible.index(self.page_index) + 1 if self.page_index in visible else 1

    @property
    def total_steps(self):
        return len(self.visible_page_indexes())

    @property
    def is_first(self):
        return self.step_number == 1

    @property
    def is_last(self):
        return self.step_number >= self.total_steps

    @property
    def progress(self):
        if not self.total_steps:
            return 0
        return int(self.step_number * 100 / self.total_steps)

    def merge(self, values, documents=None):
        self.values.update(values or {})
        for key, document in (documents or {}).items():
            self.documents[key] = document

    def advance(self, values, documents=None):
        """Store the page values; move on when the page validates"""
        self.merge(values, documents)
        errors = validate_page(self.current_page, self.values)
        if errors:
            return errors
        visible = self.visible_page_indexes()
        later = [i for i in visible if i > self.page_index]
        if later:
            self.page_index = later[0]
        return {}

    def back(self):
        earlier = [i for i in self.visible_page_indexes() if i < self.page_index]
        if earlier:
            self.page_index = earlier[-1]

    def form_data(self):
        data = {}
        for i in self.visible_page_indexes():
            for field in self.definition.pages[i].visible_fields(self.values):
                if field.key in self.values:
                    data[field.key] = self.values[field.key]
        return data

    def submit(self, values, agreed_to_terms, documents=None):
        """Payload for the backend, or (None, errors)"""
        self.merge(values, documents)
        errors = validate_page(self.current_page, self.values)
        if errors:
            return None, errors

        for i in self.visible_page_indexes():
            errors = validate_page(self.definition.pages[i], self.values)
            if errors:
                self.page_index = i
                return None, errors

        if not agreed_to_terms:
            return None, {'terms': TERMS_ERROR}

        form_data = self.form_data()
        documents = [doc for key, doc in self.documents.items() if key in form_data]
        return {'schemeId': self.scheme_id, 'formData': form_data, 'documents': documents}, {}

    def carried_inputs(self):
        """(name, value) pairs echoing the answers the current page does not show"""
        shown = {field.key for field in self.current_page.visible_fields(self.values) if field.type != 'file'}
        pairs = []
        for page in self.definition.pages:
            for field in page.fields:
                if field.key in shown or self.values.get(field.key) is None:
                    continue
                value = self.values[field.key]
                if isinstance(value, (list, tuple)):
                    pairs.extend((field.key, item) for item in value)
                else:
                    pairs.append((field.key, value))
        return pairs


DRAFTS_KEY = 'application_drafts'


def carried_values(definition, form):
    """Answers posted back by the wizard page, hidden inputs included"""
    values = {}
    documents = {}
    for page in definition.pages:
        for field in page.fields:
            if field.key not in form:
                continue
            if field.multiple:
                values[field.key] = form.getlist(field.key)
            elif field.type == 'file':
                filename = form.get(field.key, '').strip()
                if filename:
                    values[field.key] = filename
                    documents[field.key] = {'type': field.key, 'filename': filename}
            else:
                values[field.key] = form.get(field.key, '').strip()
    return values, documents


def load_wizard(session, definition, scheme_id, form=None):
    """Wizard at the page saved for this scheme, answers read from the posted form.

    Only the page position lives in the session; the answers travel with the
    page as form inputs so the session cookie stays small.
    """
    page_index = (session.get(DRAFTS_KEY) or {}).get(str(scheme_id))
    values, documents = carried_values(definition, form) if form is not None else ({}, {})
    return ApplicationWizard(definition, scheme_id, page_index, values, documents)


def save_wizard(session, wizard):
    drafts = dict(session.get(DRAFTS_KEY) or {})
    drafts[str(wizard.scheme_id)] = wizard.page_index
    session[DRAFTS_KEY] = drafts


def clear_wizard(session, scheme_id):
    drafts = dict(session.get(DRAFTS_KEY) or {})
    drafts.pop(str(scheme_id), None)
    session[DRAFTS_KEY] = drafts
