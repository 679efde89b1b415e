"""Error reconciliation: showing server-side errors after a rejected submission.

Every display target in the form is cleared first, so errors that the server
no longer reports disappear. Then each field named in the problem payload gets
its first message. Field names the form doesn't know are ignored.
"""

import logging
from typing import Any, Mapping

from veriform.client.dom import Form
from veriform.client.evaluator import (
    ERROR_ATTR,
    INPUT_ERROR_CLASS,
    INPUT_VALID_CLASS,
    TARGET_ERROR_CLASS,
    TARGET_VALID_CLASS,
)
from veriform.validation.problems import parse_problem_details

logger = logging.getLogger(__name__)


def clear_form_errors(form: Form) -> None:
    """Reset every display target and field error marker in the form."""
    for target in form.error_targets:
        target.text = ""
        target.visible = False
        target.remove_class(TARGET_ERROR_CLASS)
        target.add_class(TARGET_VALID_CLASS)
    for element in form.elements:
        element.remove_class(INPUT_ERROR_CLASS)
        element.remove_attribute(ERROR_ATTR)


def reconcile_errors(form: Form, errors: Mapping[str, Any]) -> list[str]:
    """Display a field -> messages map on the form.

    Args:
        form: Form that was submitted
        errors: The `errors` member of a problem payload. Values are lists of
            messages; a bare string counts as a single message.

    Returns:
        Names of the fields that now show an error
    """
    clear_form_errors(form)

    shown: list[str] = []
    for name, messages in errors.items():
        if isinstance(messages, str):
            messages = [messages]
        if not isinstance(messages, list) or not messages:
            continue
        message = str(messages[0])

        target = form.error_target(name)
        if target is not None:
            target.text = message
            target.visible = True
            target.add_class(TARGET_ERROR_CLASS)
            target.remove_class(TARGET_VALID_CLASS)

        elements = form.elements_named(name)
        for element in elements:
            element.add_class(INPUT_ERROR_CLASS)
            element.remove_class(INPUT_VALID_CLASS)
            element.set_attribute(ERROR_ATTR, message)

        if target is None and not elements:
            logger.debug("Server reported errors for unknown field %s", name)
            continue
        shown.append(name)

    return shown


def apply_problem_response(form: Form, status_code: int, body: Any) -> bool:
    """Reconcile a submission response.

    Only 4xx responses whose body carries an `errors` object are applied.

    Returns:
        True when errors were reconciled onto the form
    """
    if not 400 <= status_code < 500:
        return False
    errors = parse_problem_details(body)
    if errors is None:
        return False
    reconcile_errors(form, errors)
    return True
