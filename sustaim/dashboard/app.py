"""
Sustaim: HTTP API for the batch ledger.

FastAPI application exposing every ledger entry point:

- Roles (grant / revoke / renounce / lookup)
- Projects (create / rename / describe / lookup / counters)
- Batches (issue / retire / transfer / counters)
- Balances and metadata URIs
- A small HTML overview page

The acting principal is taken from the `X-Principal` request header. Ledger
errors are mapped onto HTTP status codes by a single exception handler.
"""

from __future__ import annotations

import html
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from sustaim.config import settings
from sustaim.ledger.errors import LedgerError
from sustaim.ledger.schema import CounterBucket, Project, Role
from sustaim.ledger.service import LedgerService

logger = logging.getLogger(__name__)


# ── Pydantic request / response models ────────────────────────


class RoleRequest(BaseModel):
    role: Role
    principal: str


class RenounceRequest(BaseModel):
    role: Role


class CreateProjectRequest(BaseModel):
    id: int
    name: str
    description: str = ""


class NameRequest(BaseModel):
    name: str


class DescriptionRequest(BaseModel):
    description: str


class IssueRequest(BaseModel):
    to: str
    amount: int
    project_id: int


class RetireRequest(BaseModel):
    holder: str
    amount: int


class TransferRequest(BaseModel):
    sender: str
    recipient: str
    amount: int


class MetadataRequest(BaseModel):
    uri: str


class BatchView(BaseModel):
    batch_id: int
    project_id: int
    amounts: CounterBucket
    uri: str


class SummaryView(BaseModel):
    total_issued: int
    total_burned: int
    num_projects: int
    projects: list[Project] = Field(default_factory=list)


class DashboardState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.ledger_service: LedgerService | None = None


state = DashboardState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the ledger unless one was already injected."""
    if state.ledger_service is None:
        from sustaim.runtime import build_service

        state.ledger_service = build_service(settings)
        logger.info("API connected to ledger at %s", settings.database_url)
    yield
    logger.info("Sustaim API shut down")


app = FastAPI(
    title="Sustaim Ledger",
    description="Role-gated issuance and retirement ledger for project batches",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _ledger() -> LedgerService:
    if state.ledger_service is None:
        raise HTTPException(status_code=503, detail="Ledger service not initialized")
    return state.ledger_service


# ── Routes: Overview ───────────────────────────────────────────


@app.get("/api/summary", response_model=SummaryView)
def api_summary():
    ledger = _ledger()
    return SummaryView(
        total_issued=ledger.total_issued(),
        total_burned=ledger.total_burned(),
        num_projects=ledger.num_projects(),
        projects=ledger.list_projects(),
    )


@app.get("/", response_class=HTMLResponse)
def overview():
    """Ledger home: global counters and project table."""
    ledger = _ledger()
    rows = ""
    for project in ledger.list_projects():
        amounts = ledger.project_amounts(project.id)
        rows += f"""<tr>
            <td>{project.id}</td>
            <td>{html.escape(project.name)}</td>
            <td>{amounts.issued_amount}</td>
            <td>{amounts.burned_amount}</td>
        </tr>"""

    return HTMLResponse(f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Sustaim Ledger</title></head>
<body>
    <h1>Sustaim Ledger</h1>
    <p>Issued: {ledger.total_issued()} · Retired: {ledger.total_burned()}
       · Projects: {ledger.num_projects()}</p>
    <table>
        <thead><tr><th>ID</th><th>Name</th><th>Issued</th><th>Retired</th></tr></thead>
        <tbody>{rows}</tbody>
    </table>
</body>
</html>""")


# ── Routes: Roles ──────────────────────────────────────────────


@app.post("/api/roles/grant", status_code=204)
def api_grant_role(req: RoleRequest, x_principal: str = Header(...)):
    _ledger().grant_role(x_principal, req.role, req.principal)


@app.post("/api/roles/revoke", status_code=204)
def api_revoke_role(req: RoleRequest, x_principal: str = Header(...)):
    _ledger().revoke_role(x_principal, req.role, req.principal)


@app.post("/api/roles/renounce", status_code=204)
def api_renounce_role(req: RenounceRequest, x_principal: str = Header(...)):
    _ledger().renounce_role(x_principal, req.role)


@app.get("/api/roles/{role}")
def api_role_members(role: Role):
    return {"role": role.value, "members": _ledger().role_members(role)}


@app.get("/api/roles/{role}/{principal}")
def api_has_role(role: Role, principal: str):
    return {
        "role": role.value,
        "principal": principal,
        "has_role": _ledger().has_role(role, principal),
    }


# ── Routes: Projects ───────────────────────────────────────────


@app.post("/api/projects", response_model=Project, status_code=201)
def api_create_project(req: CreateProjectRequest, x_principal: str = Header(...)):
    return _ledger().create_project(x_principal, req.id, req.name, req.description)


@app.get("/api/projects", response_model=list[Project])
def api_list_projects():
    return _ledger().list_projects()


@app.get("/api/projects/{project_id}", response_model=Project)
def api_get_project(project_id: int):
    return _ledger().get_project(project_id)


@app.patch("/api/projects/{project_id}/name", response_model=Project)
def api_update_project_name(
    project_id: int, req: NameRequest, x_principal: str = Header(...)
):
    ledger = _ledger()
    ledger.update_project_name(x_principal, project_id, req.name)
    return ledger.get_project(project_id)


@app.patch("/api/projects/{project_id}/description", response_model=Project)
def api_update_project_description(
    project_id: int, req: DescriptionRequest, x_principal: str = Header(...)
):
    ledger = _ledger()
    ledger.update_project_description(x_principal, project_id, req.description)
    return ledger.get_project(project_id)


@app.get("/api/projects/{project_id}/amounts", response_model=CounterBucket)
def api_project_amounts(project_id: int):
    return _ledger().project_amounts(project_id)


# ── Routes: Batches ────────────────────────────────────────────


def _batch_view(ledger: LedgerService, batch_id: int) -> BatchView:
    return BatchView(
        batch_id=batch_id,
        project_id=ledger.project_id_for_batch(batch_id),
        amounts=ledger.batch_amounts(batch_id),
        uri=ledger.uri(batch_id),
    )


@app.get("/api/batches/{batch_id}", response_model=BatchView)
def api_batch(batch_id: int):
    return _batch_view(_ledger(), batch_id)


@app.post("/api/batches/{batch_id}/issue", response_model=BatchView)
def api_issue(batch_id: int, req: IssueRequest, x_principal: str = Header(...)):
    ledger = _ledger()
    ledger.issue(x_principal, req.to, batch_id, req.amount, req.project_id)
    return _batch_view(ledger, batch_id)


@app.post("/api/batches/{batch_id}/retire", response_model=BatchView)
def api_retire(batch_id: int, req: RetireRequest, x_principal: str = Header(...)):
    ledger = _ledger()
    ledger.retire(x_principal, req.holder, batch_id, req.amount)
    return _batch_view(ledger, batch_id)


@app.post("/api/batches/{batch_id}/transfer", status_code=204)
def api_transfer(batch_id: int, req: TransferRequest, x_principal: str = Header(...)):
    _ledger().transfer(x_principal, req.sender, req.recipient, batch_id, req.amount)


@app.get("/api/balances/{owner}/{batch_id}")
def api_balance(owner: str, batch_id: int):
    return {
        "owner": owner,
        "batch_id": batch_id,
        "balance": _ledger().balance_of(owner, batch_id),
    }


# ── Routes: Metadata ───────────────────────────────────────────


@app.put("/api/metadata/uri", status_code=204)
def api_set_metadata_uri(req: MetadataRequest, x_principal: str = Header(...)):
    _ledger().set_metadata_uri(x_principal, req.uri)


@app.get("/api/metadata/uri/{batch_id}")
def api_metadata_uri(batch_id: int):
    return {"batch_id": batch_id, "uri": _ledger().uri(batch_id)}
