"""Tests for login page form fields."""

from mfabridge.flow.forms import (
    FORM_CANCEL,
    FORM_OTP,
    FORM_POLLING_INTERVAL,
    FORM_TOKEN_TYPE_CHANGED,
    PresentationState,
    SubmittedForm,
    TokenType,
)


class TestTokenType:
    """Tests for TokenType.parse."""

    def test_push(self):
        assert TokenType.parse("push") is TokenType.PUSH

    def test_otp(self):
        assert TokenType.parse("otp") is TokenType.OTP

    def test_anything_else_means_otp(self):
        assert TokenType.parse("PUSH") is TokenType.OTP
        assert TokenType.parse("") is TokenType.OTP
        assert TokenType.parse(None) is TokenType.OTP


class TestPresentationState:
    """Tests for PresentationState serialization."""

    def _state(self) -> PresentationState:
        return PresentationState(
            token_type=TokenType.PUSH,
            push_message="Confirm",
            otp_message="Enter OTP",
            push_token_present=True,
            polling_interval=3,
        )

    def test_attributes_use_native_types(self):
        attributes = self._state().to_attributes()

        assert attributes[FORM_POLLING_INTERVAL] == 3
        assert attributes["pushToken"] is True
        assert attributes["otpToken"] is True
        assert attributes["tokenType"] == "push"

    def test_form_fields_are_strings(self):
        fields = self._state().to_form_fields()

        assert fields["pushToken"] == "true"
        assert fields["otpToken"] == "true"
        assert fields[FORM_TOKEN_TYPE_CHANGED] == "false"
        assert all(isinstance(value, str) for value in fields.values())

    def test_form_fields_parse_back(self):
        form = SubmittedForm.from_fields(self._state().to_form_fields())

        assert form.token_type is TokenType.PUSH
        assert form.push_token_present is True
        assert form.push_message == "Confirm"
        assert form.otp_message == "Enter OTP"
        assert form.token_type_changed is False
        assert form.cancelled is False


class TestSubmittedForm:
    """Tests for SubmittedForm.from_fields."""

    def test_empty_submission(self):
        form = SubmittedForm.from_fields({})

        assert form == SubmittedForm()
        assert form.push_message is None
        assert form.otp == ""

    def test_cancel_marker_value_is_irrelevant(self):
        assert SubmittedForm.from_fields({FORM_CANCEL: ""}).cancelled is True
        assert SubmittedForm.from_fields({FORM_CANCEL: "false"}).cancelled is True

    def test_booleans_require_literal_true(self):
        form = SubmittedForm.from_fields({"pushToken": "True", "tokenTypeChanged": "yes"})

        assert form.push_token_present is False
        assert form.token_type_changed is False

    def test_first_value_of_list_wins(self):
        form = SubmittedForm.from_fields({FORM_OTP: ["111111", "222222"]})

        assert form.otp == "111111"

    def test_empty_list_is_absent(self):
        form = SubmittedForm.from_fields({"pushMessage": []})

        assert form.push_message is None
