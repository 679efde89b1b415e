"""In-memory form model used by the client evaluator.

A small stand-in for the browser DOM: forms, their input elements and the
display targets (elements carrying ``data-valmsg-for``) that show a field's
error. Forms can be built in code or parsed from rendered markup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape
from html.parser import HTMLParser
from typing import Any

from veriform.metadata.loader import FieldDefinition, FormModel
from veriform.validation.encoding import DATA_VAL, encode_field

ERROR_TARGET_ATTR = "data-valmsg-for"
VALID_TARGET_CLASS = "field-validation-valid"

_ELEMENT_TAGS = ("input", "select", "textarea")

# Elements without an end tag never enclose anything
_VOID_TAGS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)


def _is_hidden(attributes: dict[str, str]) -> bool:
    return "hidden" in attributes or _style_hidden(attributes)


def _style_hidden(attributes: dict[str, str]) -> bool:
    style = attributes.get("style", "").replace(" ", "").lower()
    return "display:none" in style or "visibility:hidden" in style


def _classes(attributes: dict[str, str]) -> set[str]:
    return set(attributes.get("class", "").split())


# =============================================================================
# Elements
# =============================================================================


@dataclass(eq=False)
class FormElement:
    """One form control (input, select or textarea).

    Attribute names are stored lowercase, as HTML treats them.
    """

    name: str
    type: str = "text"
    value: str = ""
    checked: bool = False
    disabled: bool = False
    hidden: bool = False
    tag: str = "input"
    attributes: dict[str, str] = field(default_factory=dict)
    classes: set[str] = field(default_factory=set)
    form: Form | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.attributes = {k.lower(): v for k, v in self.attributes.items()}

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name.lower())

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name.lower()] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name.lower(), None)

    def has_class(self, name: str) -> bool:
        return name in self.classes

    def add_class(self, name: str) -> None:
        self.classes.add(name)

    def remove_class(self, name: str) -> None:
        self.classes.discard(name)

    @property
    def is_checkable(self) -> bool:
        return self.type in ("checkbox", "radio")

    @property
    def has_rules(self) -> bool:
        return self.get_attribute(DATA_VAL) == "true"


@dataclass(eq=False)
class ErrorTarget:
    """Display target for one field's error message."""

    for_name: str
    text: str = ""
    visible: bool = False
    classes: set[str] = field(default_factory=lambda: {VALID_TARGET_CLASS})

    def has_class(self, name: str) -> bool:
        return name in self.classes

    def add_class(self, name: str) -> None:
        self.classes.add(name)

    def remove_class(self, name: str) -> None:
        self.classes.discard(name)


@dataclass(eq=False)
class Form:
    """A form: its controls, display targets and attributes."""

    id: str = ""
    action: str = ""
    method: str = "post"
    attributes: dict[str, str] = field(default_factory=dict)
    elements: list[FormElement] = field(default_factory=list)
    error_targets: list[ErrorTarget] = field(default_factory=list)

    def add(self, element: FormElement) -> FormElement:
        element.form = self
        self.elements.append(element)
        return element

    def add_error_target(self, target: ErrorTarget) -> ErrorTarget:
        self.error_targets.append(target)
        return target

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name.lower())

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name.lower()] = value

    def elements_named(self, name: str) -> list[FormElement]:
        return [e for e in self.elements if e.name == name]

    def element(self, name: str) -> FormElement | None:
        for e in self.elements:
            if e.name == name:
                return e
        return None

    def checked_radio(self, name: str) -> FormElement | None:
        for e in self.elements:
            if e.name == name and e.type == "radio" and e.checked:
                return e
        return None

    def error_target(self, name: str) -> ErrorTarget | None:
        for target in self.error_targets:
            if target.for_name == name:
                return target
        return None

    def names(self) -> list[str]:
        """Distinct control names in document order."""
        return list(dict.fromkeys(e.name for e in self.elements))

    def field_types(self) -> dict[str, str]:
        """Control name -> input type, first control of each name."""
        types: dict[str, str] = {}
        for e in self.elements:
            types.setdefault(e.name, e.type)
        return types

    def validatable_elements(self) -> list[FormElement]:
        return [e for e in self.elements if e.has_rules]

    def form_data(self) -> dict[str, Any]:
        """Successful controls as submitted by a browser (repeated names become lists)."""
        data: dict[str, Any] = {}
        for e in self.elements:
            if not e.name or e.disabled:
                continue
            if e.is_checkable and not e.checked:
                continue
            value = e.value if (e.value or not e.is_checkable) else "on"
            if e.name in data:
                existing = data[e.name]
                data[e.name] = (existing if isinstance(existing, list) else [existing]) + [value]
            else:
                data[e.name] = value
        return data

    @classmethod
    def from_html(cls, markup: str) -> Form:
        """Build the first form found in the markup.

        Raises:
            ValueError: The markup contains no form
        """
        forms = parse_forms(markup)
        if not forms:
            raise ValueError("No <form> element found in markup")
        return forms[0]


# =============================================================================
# Markup parsing
# =============================================================================


class _FormParser(HTMLParser):
    """Collects forms, their controls and display targets from markup."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.forms: list[Form] = []
        self._form: Form | None = None
        self._select: FormElement | None = None
        self._options: list[dict[str, Any]] = []
        self._option: dict[str, Any] | None = None
        self._textarea: FormElement | None = None
        self._target: ErrorTarget | None = None
        self._target_tag = ""
        # (tag, hidden) for every open element; a control under a hidden one is hidden
        self._open: list[tuple[str, bool]] = []

    @property
    def _in_hidden(self) -> bool:
        return any(hidden for _, hidden in self._open)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attributes = {name.lower(): value if value is not None else "" for name, value in attrs}
        in_hidden = self._in_hidden
        if tag not in _VOID_TAGS:
            self._open.append((tag, _is_hidden(attributes)))

        if tag == "form":
            self._form = Form(
                id=attributes.get("id", ""),
                action=attributes.get("action", ""),
                method=attributes.get("method", "get").lower(),
                attributes=attributes,
            )
            self.forms.append(self._form)
            return
        if self._form is None:
            return

        if ERROR_TARGET_ATTR in attributes:
            self._target = self._form.add_error_target(
                ErrorTarget(
                    for_name=attributes[ERROR_TARGET_ATTR],
                    visible=not _is_hidden(attributes),
                    classes=_classes(attributes),
                )
            )
            self._target_tag = tag
            return

        if tag in _ELEMENT_TAGS and attributes.get("name"):
            element = self._form.add(self._element(tag, attributes))
            element.hidden = element.hidden or in_hidden
            if tag == "select":
                self._select = element
                self._options = []
            elif tag == "textarea":
                self._textarea = element
        elif tag == "option" and self._select is not None:
            self._option = {
                "value": attributes.get("value"),
                "selected": "selected" in attributes,
                "text": "",
            }
            self._options.append(self._option)

    def handle_data(self, data: str) -> None:
        if self._option is not None:
            self._option["text"] += data
        elif self._textarea is not None:
            self._textarea.value += data
        elif self._target is not None:
            self._target.text += data

    def handle_endtag(self, tag: str) -> None:
        self._close(tag)
        if tag == "form":
            self._form = None
        elif tag == "option":
            self._option = None
        elif tag == "select" and self._select is not None:
            self._select.value = self._selected_value()
            self._select = None
            self._option = None
        elif tag == "textarea":
            self._textarea = None
        elif self._target is not None and tag == self._target_tag:
            self._target.text = self._target.text.strip()
            self._target = None

    def _close(self, tag: str) -> None:
        """Pop open elements up to the matching start tag, if there is one."""
        for index in range(len(self._open) - 1, -1, -1):
            if self._open[index][0] == tag:
                del self._open[index:]
                return

    def _selected_value(self) -> str:
        chosen = next((o for o in self._options if o["selected"]), None)
        if chosen is None and self._options:
            chosen = self._options[0]
        if chosen is None:
            return ""
        value = chosen["value"]
        return value if value is not None else chosen["text"].strip()

    def _element(self, tag: str, attributes: dict[str, str]) -> FormElement:
        field_type = attributes.get("type", "text").lower() if tag == "input" else tag
        return FormElement(
            name=attributes["name"],
            type=field_type,
            value=attributes.get("value", "") if tag == "input" else "",
            checked="checked" in attributes,
            disabled="disabled" in attributes,
            hidden=_is_hidden(attributes),
            tag=tag,
            attributes=attributes,
            classes=_classes(attributes),
        )


def parse_forms(markup: str) -> list[Form]:
    """Parse every form in the markup."""
    parser = _FormParser()
    parser.feed(markup)
    parser.close()
    return parser.forms


# =============================================================================
# Markup rendering
# =============================================================================

_INPUT_TYPES = {"text", "password", "email", "tel", "url", "number", "hidden"}


def _attrs(attributes: dict[str, str]) -> str:
    return " ".join(f'{name}="{escape(value, quote=True)}"' for name, value in attributes.items())


def render_field(field_def: FieldDefinition, value: str = "") -> str:
    """Render a field's control(s) with its rule attributes, plus its display target."""
    rule_attrs = encode_field(field_def.rules)
    parts = [f'<label for="{escape(field_def.name)}">{escape(field_def.display_name)}</label>']

    if field_def.type == "select":
        attrs = {"name": field_def.name, "id": field_def.name, **rule_attrs}
        options = "".join(
            f'<option value="{escape(o.value)}"{" selected" if o.value == value else ""}>'
            f"{escape(o.label)}</option>"
            for o in field_def.options
        )
        parts.append(f"<select {_attrs(attrs)}>{options}</select>")
    elif field_def.type == "textarea":
        attrs = {"name": field_def.name, "id": field_def.name, **rule_attrs}
        parts.append(f"<textarea {_attrs(attrs)}>{escape(value)}</textarea>")
    elif field_def.type == "checkbox":
        attrs = {"type": "checkbox", "name": field_def.name, "id": field_def.name, "value": "true", **rule_attrs}
        checked = " checked" if value == "true" else ""
        parts.append(f"<input {_attrs(attrs)}{checked}>")
    elif field_def.type == "radio":
        for index, option in enumerate(field_def.options):
            attrs = {
                "type": "radio",
                "name": field_def.name,
                "id": f"{field_def.name}_{index}",
                "value": option.value,
                **rule_attrs,
            }
            checked = " checked" if option.value == value else ""
            parts.append(f"<input {_attrs(attrs)}{checked}> {escape(option.label)}")
    else:
        field_type = field_def.type if field_def.type in _INPUT_TYPES else "text"
        attrs = {"type": field_type, "name": field_def.name, "id": field_def.name, "value": value, **rule_attrs}
        parts.append(f"<input {_attrs(attrs)}>")

    parts.append(
        f'<span class="{VALID_TARGET_CLASS}" {ERROR_TARGET_ATTR}="{escape(field_def.name)}"></span>'
    )
    return "\n".join(parts)


def render_form(form: FormModel, action: str = "", values: dict[str, str] | None = None) -> str:
    """Render a whole form model, one block per field."""
    values = values or {}
    fields = "\n".join(
        f"<div>\n{render_field(f, values.get(f.name, ''))}\n</div>" for f in form.fields
    )
    return (
        f'<form id="{escape(form.name)}" method="post" action="{escape(action)}">\n'
        f"{fields}\n</form>"
    )
