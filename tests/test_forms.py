from __future__ import annotations

from portal.api.forms import ContactForm, LoginForm, ProfileForm, SignupForm, parse_form


def test_login_form_normalizes_email() -> None:
    form, errors = parse_form(LoginForm, {"email": "  Alice@Example.COM ", "password": "x"})
    assert errors == []
    assert form.email == "alice@example.com"


def test_signup_form_messages() -> None:
    form, errors = parse_form(SignupForm, {"email": "alice@example", "password": "abc", "confirm_password": "abc"})
    assert form is None
    assert sorted(errors) == ["Email is not valid", "Password must be at least 4 characters long"]

    form, errors = parse_form(SignupForm, {"email": "a@example.com", "password": "abcd", "confirm_password": "abcx"})
    assert form is None
    assert errors == ["Passwords do not match"]


def test_missing_fields_use_defaults() -> None:
    form, errors = parse_form(LoginForm, {})
    assert form is None
    assert "Password cannot be blank" in errors


def test_unknown_and_non_string_fields_are_ignored() -> None:
    form, errors = parse_form(ContactForm, {"name": "Dana", "email": "d@example.com", "message": "hi", "extra": "x"})
    assert errors == []
    assert form.name == "Dana"


def test_profile_form_blank_values_become_none() -> None:
    form, errors = parse_form(ProfileForm, {"email": "a@example.com", "name": "  ", "website": " https://a.example "})
    assert errors == []
    assert form.name is None
    assert form.website == "https://a.example"
