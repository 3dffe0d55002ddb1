from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from .exceptions import RequestValidationError
from .naming import build_category_key

MAX_PRICING_OPTIONS = 20
MAX_ADDITIONAL_EMAILS = 10


class BookingRequestForm(forms.Form):
    """
    Submission payload shared by the public link form and the internal form.
    Accepts a JSON body decoded to a dict; pricing_options is a list of
    {"title", "price", "terms"} objects (an optional "resource" is kept).
    """
    merchant_name = forms.CharField(max_length=200, label='Business Name')
    contact_email = forms.EmailField(label='Contact Email')
    contact_phone = forms.CharField(max_length=40, required=False, label='Contact Phone')
    additional_emails = forms.JSONField(required=False, label='Additional Approval Emails')
    pricing_options = forms.JSONField(label='Pricing Options')
    start_date = forms.DateField(label='Start Date')
    end_date = forms.DateField(label='End Date')
    description = forms.CharField(required=False, max_length=5000)
    category = forms.CharField(required=False, max_length=200)
    subcategories = forms.JSONField(required=False)

    def clean_merchant_name(self):
        name = self.cleaned_data['merchant_name'].strip()
        if '#' in name:
            raise forms.ValidationError('Business name cannot contain "#".')
        return name

    def clean_additional_emails(self):
        raw = self.cleaned_data.get('additional_emails') or []
        if isinstance(raw, str):
            raw = raw.split(',')
        if not isinstance(raw, list):
            raise forms.ValidationError('Enter a list of email addresses.')
        emails = []
        for value in raw:
            value = str(value).strip().lower()
            if not value:
                continue
            try:
                validate_email(value)
            except ValidationError:
                raise forms.ValidationError(f'"{value}" is not a valid email address.')
            if value not in emails:
                emails.append(value)
        if len(emails) > MAX_ADDITIONAL_EMAILS:
            raise forms.ValidationError(f'At most {MAX_ADDITIONAL_EMAILS} additional emails.')
        return emails

    def clean_pricing_options(self):
        options = self.cleaned_data.get('pricing_options')
        if not isinstance(options, list) or not options:
            raise forms.ValidationError('Add at least one pricing option.')
        if len(options) > MAX_PRICING_OPTIONS:
            raise forms.ValidationError(f'At most {MAX_PRICING_OPTIONS} pricing options.')

        cleaned = []
        for position, option in enumerate(options, start=1):
            if not isinstance(option, dict):
                raise forms.ValidationError(f'Pricing option {position} is malformed.')
            title = str(option.get('title') or '').strip()
            price = option.get('price')
            if not title:
                raise forms.ValidationError(f'Pricing option {position} needs a title.')
            if price in (None, '') or isinstance(price, bool):
                raise forms.ValidationError(f'Pricing option {position} needs a price.')
            entry = {
                'title': title,
                'price': price,
                'terms': str(option.get('terms') or '').strip(),
            }
            if option.get('resource'):
                entry['resource'] = str(option['resource']).strip()
            cleaned.append(entry)
        return cleaned

    def clean_subcategories(self):
        subs = self.cleaned_data.get('subcategories') or []
        if not isinstance(subs, list):
            raise forms.ValidationError('Enter a list of subcategories.')
        return [str(s) for s in subs]

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get('start_date'), cleaned.get('end_date')
        if start and end and start > end:
            self.add_error('end_date', 'End date must be on or after the start date.')
        if 'category' in cleaned:
            cleaned['category'] = build_category_key(
                cleaned.get('category'), *cleaned.pop('subcategories', []),
            )
        else:
            cleaned.pop('subcategories', None)
        return cleaned


def validate_submission(data) -> dict:
    """
    Validate a submission payload and return model-ready fields.
    Raises RequestValidationError with {field: [messages]} before anything is written.
    """
    if not isinstance(data, dict):
        raise RequestValidationError({'__all__': ['Expected a JSON object.']})
    form = BookingRequestForm(data=data)
    if not form.is_valid():
        errors = {field: [e['message'] for e in items] for field, items in form.errors.get_json_data().items()}
        raise RequestValidationError(errors)
    return form.cleaned_data
