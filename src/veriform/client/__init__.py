"""Client-side evaluation for Veriform.

Reads encoded rules from form markup, validates fields as the user works,
gates submission, and reconciles server errors after a round trip.

Usage:
    from veriform.client import ClientEvaluator, Form, submit_form

    form = Form.from_html(markup)
    evaluator = ClientEvaluator()
    evaluator.attach(form)
    result = await submit_form(form, evaluator, http_client)
"""

from veriform.client.dom import ErrorTarget, Form, FormElement, parse_forms, render_field, render_form
from veriform.client.evaluator import BindingState, ClientEvaluator, FormValues, field_value
from veriform.client.reconcile import apply_problem_response, clear_form_errors, reconcile_errors
from veriform.client.remote import RemoteValidator, interpret_remote_response
from veriform.client.submission import SubmissionResult, submit_form

__all__ = [
    "BindingState",
    "ClientEvaluator",
    "ErrorTarget",
    "Form",
    "FormElement",
    "FormValues",
    "RemoteValidator",
    "SubmissionResult",
    "apply_problem_response",
    "clear_form_errors",
    "field_value",
    "interpret_remote_response",
    "parse_forms",
    "reconcile_errors",
    "render_field",
    "render_form",
    "submit_form",
]
