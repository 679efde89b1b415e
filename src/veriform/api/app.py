"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from veriform.client.dom import render_form
from veriform.config import VeriformConfig
from veriform.metadata.loader import FormModel, MetadataLoader
from veriform.metadata.validator import validate_metadata_dir
from veriform.validation import (
    create_problem_response,
    create_success_response,
    encode_field,
    register_builtin_rules,
    register_canned_checks,
)
from veriform.validation.services import InMemoryLookupService, ServerEvaluator

logger = logging.getLogger(__name__)

# Global instances (initialized on startup)
config: VeriformConfig | None = None
metadata_loader: MetadataLoader | None = None
evaluator: ServerEvaluator | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup."""
    global config, metadata_loader, evaluator

    # Register rule kinds and imperative checks
    register_builtin_rules()
    register_canned_checks()

    config = VeriformConfig.from_env()
    metadata_path = config.metadata_path

    # Validate metadata YAML files against JSON Schemas (warn on errors, don't block startup)
    schema_issues = validate_metadata_dir(metadata_path)
    if schema_issues:
        error_count = sum(1 for i in schema_issues if i.severity == "error")
        warn_count = sum(1 for i in schema_issues if i.severity == "warning")
        for issue in schema_issues:
            if issue.severity == "error":
                logger.error("Metadata schema error: %s", issue)
            else:
                logger.warning("Metadata schema warning: %s", issue)
        logger.warning(
            "Metadata validation: %d error(s), %d warning(s). "
            "Run 'veriform forms validate' for details.",
            error_count,
            warn_count,
        )

    # Load forms; configuration errors abort startup
    metadata_loader = MetadataLoader(metadata_path)
    metadata_loader.load_all()

    evaluator = ServerEvaluator(InMemoryLookupService(metadata_loader.lookups))
    for name in metadata_loader.list_forms():
        form = metadata_loader.get_form(name)
        if form:
            evaluator.register(form)

    logger.info("Loaded %d forms from %s", len(metadata_loader.forms), metadata_path)

    yield


app = FastAPI(title="Veriform API", lifespan=lifespan)


def _get_form(form: str) -> FormModel:
    if not metadata_loader:
        raise HTTPException(500, "Metadata loader not initialized")
    form_model = metadata_loader.get_form(form)
    if not form_model:
        raise HTTPException(404, f"Form '{form}' not found")
    return form_model


def _get_evaluator() -> ServerEvaluator:
    if not evaluator:
        raise HTTPException(500, "Evaluator not initialized")
    return evaluator


async def _read_submission(request: Request) -> dict[str, Any]:
    """Read submitted values from a JSON or form-encoded body, plus the query string."""
    data: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        data.setdefault(key, []).append(value)

    if request.method in ("POST", "PUT", "PATCH"):
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            body = await request.json()
            if not isinstance(body, dict):
                raise HTTPException(400, "Request body must be a JSON object")
            data.update(body)
        else:
            form_data = await request.form()
            for key, value in form_data.multi_items():
                if isinstance(value, str):
                    data.setdefault(key, []).append(value)

    return data


# --- Form Metadata Endpoints ---


class FormSummary(BaseModel):
    """Entry of the form listing."""

    name: str
    displayName: str


class FormList(BaseModel):
    forms: list[FormSummary]


class RemoteCheckResult(BaseModel):
    """Answer to a remote check."""

    valid: bool


@app.get("/api/forms", response_model=FormList)
async def list_forms() -> FormList:
    """List all available forms."""
    if not metadata_loader:
        raise HTTPException(500, "Metadata loader not initialized")

    forms = []
    for name in metadata_loader.list_forms():
        form = metadata_loader.get_form(name)
        if form:
            forms.append(FormSummary(name=form.name, displayName=form.display_name))

    return FormList(forms=forms)


@app.get("/api/forms/{form}")
async def get_form_metadata(form: str) -> dict[str, Any]:
    """Get a form's fields with their encoded rule attributes."""
    form_model = _get_form(form)

    fields = []
    for field in form_model.fields:
        fields.append({
            "name": field.name,
            "type": field.type,
            "displayName": field.display_name,
            "attributes": encode_field(field.rules),
            "rules": [rule.to_dict() for rule in field.rules],
            "options": [{"value": o.value, "label": o.label} for o in field.options],
        })

    return {
        "form": form_model.name,
        "displayName": form_model.display_name,
        "fields": fields,
        "checks": [c.to_dict() for c in form_model.checks],
    }


@app.get("/api/forms/{form}/markup", response_class=HTMLResponse)
async def get_form_markup(form: str) -> HTMLResponse:
    """Render the form with its rule attributes and display targets."""
    form_model = _get_form(form)
    return HTMLResponse(render_form(form_model, action=f"/api/forms/{form_model.name}"))


# --- Submission Endpoints ---


@app.post("/api/forms/{form}")
async def submit_form(form: str, request: Request):
    """Validate a submission; 400 with problem details when it fails."""
    form_model = _get_form(form)
    server = _get_evaluator()

    data = await _read_submission(request)
    report = await server.validate(form_model, data)

    if not report.valid:
        response = create_problem_response(report)
        return JSONResponse(
            status_code=response.status_code,
            content=response.to_dict(),
            media_type=response.media_type,
        )

    response = create_success_response(server.schema(form_model).bind(data))
    return JSONResponse(status_code=response.status_code, content=response.to_dict())


@app.api_route("/api/remote/{form}/{field}", methods=["GET", "POST"], response_model=RemoteCheckResult)
async def remote_check(form: str, field: str, request: Request) -> RemoteCheckResult:
    """Answer a client remote check for one field."""
    form_model = _get_form(form)
    server = _get_evaluator()

    if form_model.get_field(field) is None:
        raise HTTPException(404, f"Field '{field}' not found on form '{form}'")

    data = await _read_submission(request)
    valid = await server.check_field(form_model, field, data)
    return RemoteCheckResult(valid=valid)
