"""
Analysis endpoints.

POST /analyze              → Accept a new analysis (returns request_id, 201)
GET  /analyze/{request_id} → Poll an analysis by id

The API layer is intentionally thin:
- Validate input (Pydantic does this automatically)
- Resolve the caller from the bearer token
- Hand off to the orchestrator

It does NOT generate anything. POST returns as soon as the job is QUEUED
and the delayed callback is scheduled; the work happens later when QStash
calls the webhook.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from api.dependencies import get_current_owner, get_orchestrator
from api.schemas.analysis import AnalysisCreated
from models.analysis import AnalysisInput, AnalysisView
from models.errors import NotFoundError
from worker.orchestrator import AnalysisOrchestrator

router = APIRouter(prefix="/analyze", tags=["analyze"])


@router.post("", response_model=AnalysisCreated, status_code=201)
async def create_analysis(
    analysis_in: AnalysisInput,
    owner_id: str = Depends(get_current_owner),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> AnalysisCreated:
    """
    Submit a new analysis.

    Storage or QStash failures surface as 503/502 through the app's
    exception handlers; the client may simply retry.
    """
    request_id = await orchestrator.create(owner_id, analysis_in)
    return AnalysisCreated(request_id=request_id)


@router.get("/{request_id}", response_model=AnalysisView)
async def get_analysis(
    request_id: UUID,
    owner_id: str = Depends(get_current_owner),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> AnalysisView:
    """
    Get an analysis by id.

    Someone else's analysis answers 404, same as an unknown one, so ids
    cannot be probed. NotFoundError becomes 404 in the app's exception handler.
    """
    view = await orchestrator.get_analysis(str(request_id))
    if view is None or view.owner_id != owner_id:
        raise NotFoundError(str(request_id))
    return view
