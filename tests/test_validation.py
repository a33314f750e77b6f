from datetime import date

import pytest

from config.settings import STEP_CONFIRMATION, STEP_DEMOGRAPHICS, STEP_INTERESTS, STEP_PAYMENT, STEP_PERSONAL
from utils.errors import ValidationError
from utils.validation import (
    calculate_age, check_date_of_birth, check_email, check_instagram_handle, check_linkedin_url,
    check_name, check_occupation, sanitize_json_input, validate_signup_payload, validate_step,
)

TODAY = date(2026, 10, 19)


class TestAge:

    def test_one_day_short_of_eighteen(self):
        assert check_date_of_birth('2008-10-20', today=TODAY) == 'You must be at least 18 years old to join'

    def test_eighteenth_birthday(self):
        assert check_date_of_birth('2008-10-19', today=TODAY) is None

    def test_leap_day_birthday(self):
        assert calculate_age(date(2008, 2, 29), date(2026, 2, 28)) == 17
        assert calculate_age(date(2008, 2, 29), date(2026, 3, 1)) == 18

    def test_future_date(self):
        assert check_date_of_birth('2027-01-01', today=TODAY) == 'Date of birth must be in the past'

    def test_implausibly_old(self):
        assert check_date_of_birth('1900-01-01', today=TODAY) == 'Please enter a valid date of birth'

    def test_unparseable(self):
        assert check_date_of_birth('15/06/1995', today=TODAY) == 'Please enter a valid birth date'
        assert check_date_of_birth('', today=TODAY) == 'Date of birth is required'


class TestFieldChecks:

    @pytest.mark.parametrize('name', ['Sarah', "O'Brien", 'Mary-Jane', 'Ana Lucía'])
    def test_valid_names(self, name):
        assert check_name(name, 'First name') is None

    @pytest.mark.parametrize('name', ['R2D2', 'Sarah!', 'x' * 51, '  '])
    def test_invalid_names(self, name):
        assert check_name(name, 'First name') is not None

    def test_email_typo_suggestion(self):
        assert check_email('sarah@gmial.com') is None
        assert check_email('sarah@gmai.com') == 'Did you mean sarah@gmail.com?'
        assert check_email('sarah@') == 'Please enter a valid email address'

    def test_instagram_handle(self):
        assert check_instagram_handle('@sarah.c_01') is None
        assert check_instagram_handle('') is None
        assert check_instagram_handle('sarah-c') is not None
        assert check_instagram_handle('a' * 31) is not None

    def test_linkedin_url(self):
        assert check_linkedin_url('https://www.linkedin.com/in/sarah-connor/') is None
        assert check_linkedin_url('https://linkedin.com/company/acme') is not None

    def test_occupation_length(self):
        assert check_occupation('x' * 500) is None
        assert check_occupation('x' * 501) is not None
        assert check_occupation('') == 'Please describe your occupation'


class TestSteps:

    def test_each_step_reports_its_own_fields(self, applicant_data):
        empty = {}
        assert set(validate_step(STEP_PERSONAL, empty, today=TODAY)) == {
            'first_name', 'last_name', 'email', 'date_of_birth'
        }
        assert set(validate_step(STEP_DEMOGRAPHICS, empty)) == {'age_range', 'neighborhood', 'occupation'}
        assert set(validate_step(STEP_INTERESTS, empty)) == {'interests'}
        assert set(validate_step(STEP_PAYMENT, empty)) == {'terms_accepted', 'card'}
        assert validate_step(STEP_CONFIRMATION, empty) == {}

    def test_payment_step_needs_terms_and_card(self):
        assert validate_step(STEP_PAYMENT, {'terms_accepted': True}, card_complete=True) == {}
        assert set(validate_step(STEP_PAYMENT, {'terms_accepted': True})) == {'card'}

    def test_unknown_interest(self):
        errors = validate_step(STEP_INTERESTS, {'interests': ['Yachting']})
        assert errors['interests'] == 'Unknown interest: Yachting'

    def test_unknown_step(self):
        with pytest.raises(ValueError):
            validate_step(9, {})


class TestSignupPayload:

    def test_valid_payload_is_normalised(self, applicant_data):
        applicant_data.update(email=' Sarah@Example.com', neighborhood='brickell', referral_code='john1234')

        cleaned = validate_signup_payload(applicant_data, today=TODAY)

        assert cleaned['email'] == 'sarah@example.com'
        assert cleaned['neighborhood'] == 'Brickell'
        assert cleaned['instagram_handle'] == 'sarah.c'
        assert cleaned['referral_code'] == 'JOHN1234'

    def test_over_long_occupation_is_rejected_not_truncated(self, applicant_data):
        applicant_data['occupation'] = 'x' * 800
        with pytest.raises(ValidationError) as exc_info:
            validate_signup_payload(applicant_data, today=TODAY)
        assert 'occupation' in exc_info.value.field_errors

    def test_underage_applicant(self, applicant_data):
        applicant_data['date_of_birth'] = '2010-01-01'
        with pytest.raises(ValidationError) as exc_info:
            validate_signup_payload(applicant_data, today=TODAY)
        assert exc_info.value.field_errors == {'date_of_birth': 'You must be at least 18 years old to join'}

    def test_non_object_body(self):
        with pytest.raises(ValidationError):
            validate_signup_payload(['not', 'a', 'dict'])


def test_sanitize_json_input_schema():
    schema = {
        'email': {'type': 'email'},
        'marketing_opt_in': {'type': 'bool'},
        'age_range': {'type': 'enum', 'allowed_values': ['20s', '30s']},
    }
    cleaned = sanitize_json_input({'email': 'A@B.com', 'marketing_opt_in': 'true', 'age_range': '30s'}, schema)
    assert cleaned == {'email': 'a@b.com', 'marketing_opt_in': True, 'age_range': '30s'}

    with pytest.raises(ValueError):
        sanitize_json_input({'age_range': '70s'}, schema)
