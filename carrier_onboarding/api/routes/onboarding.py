"""Carrier onboarding routes: one endpoint per workflow action."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from carrier_onboarding.api.deps import get_current_carrier, get_workflow_registry
from carrier_onboarding.api.schemas.onboarding import (
    BusinessEmailRequest,
    CompletionResponse,
    ConfirmCodeRequest,
    ConfirmCodeResponse,
    DocumentSlotItem,
    DocumentUploadRequest,
    IdentityMethodRequest,
    LinkAccountResponse,
    LookupRequest,
    OnboardingStateResponse,
    PayoutMethodRequest,
    ReviewSummaryResponse,
)
from carrier_onboarding.api.workflows import WorkflowRegistry
from carrier_onboarding.domain import User
from carrier_onboarding.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    OnboardingError,
    PersistError,
    StaleRequestError,
    ValidationError,
    VerificationLockedError,
)
from carrier_onboarding.domain.models import DocumentKind
from carrier_onboarding.domain.services.documents import DocumentUpload
from carrier_onboarding.domain.services.workflow import OnboardingWorkflow

logger = structlog.get_logger()
router = APIRouter(prefix="/onboarding", tags=["Onboarding"])

# Checked in order; subclasses before their parents.
_STATUS_BY_ERROR: tuple[tuple[type[OnboardingError], int], ...] = (
    (StaleRequestError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (VerificationLockedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PersistError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error(exc: OnboardingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    if exc.retryable:
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


def state_response(workflow: OnboardingWorkflow) -> OnboardingStateResponse:
    state = workflow.state
    return OnboardingStateResponse(
        carrier_id=state.carrier_id,
        stage=state.stage,
        progress_percentage=workflow.progress_percentage,
        can_submit=workflow.can_submit,
        business_email=state.business_email,
        identifying_number=state.identifying_number,
        record=state.record.to_record() if state.record else None,
        gate_result=state.gate_result.to_record() if state.gate_result else None,
        identity={
            **state.identity.to_record(),
            "established": state.identity.identity_established,
        },
        documents=state.documents.to_record(),
        payout=state.payout.to_record(),
        risk=(
            {"score": state.risk.score, "indicators": list(state.risk.indicators)}
            if state.risk
            else None
        ),
    )


async def _saved(registry: WorkflowRegistry, workflow: OnboardingWorkflow) -> OnboardingStateResponse:
    try:
        await registry.save(workflow)
    except PersistError as exc:
        raise _http_error(exc) from exc
    return state_response(workflow)


@router.get("", response_model=OnboardingStateResponse)
async def get_onboarding(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    """Current stage and everything collected so far; starts a workflow on first visit."""
    workflow = await registry.get(user.user_id)
    return state_response(workflow)


@router.post("/email", response_model=OnboardingStateResponse)
async def submit_business_email(
    payload: BusinessEmailRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.submit_business_email(payload.email)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/lookup", response_model=OnboardingStateResponse)
async def lookup_carrier(
    payload: LookupRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    """
    Fetch the registry record and run the eligibility gates.

    The carrier lands in identity_verification when every gate passes and in
    rejected otherwise; the failure reasons are part of the response.
    """
    workflow = await registry.get(user.user_id)
    try:
        await workflow.lookup(payload.identifying_number)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/lookup/retry", response_model=OnboardingStateResponse)
async def retry_lookup(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.retry_lookup()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/identity/method", response_model=OnboardingStateResponse)
async def choose_identity_method(
    payload: IdentityMethodRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.choose_identity_method(payload.method)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/identity/code", response_model=OnboardingStateResponse)
async def send_verification_code(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    """Email a one-time code to the contact address on the registry record."""
    workflow = await registry.get(user.user_id)
    try:
        await workflow.send_code()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/identity/code/confirm", response_model=ConfirmCodeResponse)
async def confirm_verification_code(
    payload: ConfirmCodeRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> ConfirmCodeResponse:
    workflow = await registry.get(user.user_id)
    try:
        matched = await workflow.confirm_code(payload.code)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return ConfirmCodeResponse(matched=matched, state=await _saved(registry, workflow))


@router.post("/identity/attestation", response_model=OnboardingStateResponse)
async def request_attestation(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    """Ask the insurance agent on file to vouch for the carrier."""
    workflow = await registry.get(user.user_id)
    try:
        await workflow.request_attestation()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/documents/{kind}", response_model=OnboardingStateResponse)
async def upload_document(
    kind: DocumentKind,
    payload: DocumentUploadRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    upload = DocumentUpload(
        filename=payload.filename, content=payload.content, content_type=payload.content_type
    )
    try:
        await workflow.upload_document(kind, upload)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.delete("/documents/{kind}", response_model=OnboardingStateResponse)
async def clear_document(
    kind: DocumentKind,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.clear_document(kind)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/continue-to-payout", response_model=OnboardingStateResponse)
async def continue_to_payout(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.continue_to_payout()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/payout/method", response_model=OnboardingStateResponse)
async def choose_payout_method(
    payload: PayoutMethodRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.choose_payout_method(payload.method)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.post("/payout/link", response_model=LinkAccountResponse)
async def link_payout_account(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> LinkAccountResponse:
    """
    Start or resume the bank connection.

    While the connected account is not yet able to receive payouts the
    response carries the hosted onboarding URL; call again once the carrier
    returns from it.
    """
    workflow = await registry.get(user.user_id)
    try:
        result = await workflow.link_account()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return LinkAccountResponse(
        account_id=result.account_id,
        connected=result.connected,
        onboarding_url=result.onboarding_url,
        state=await _saved(registry, workflow),
    )


@router.post("/payout/documents/{kind}", response_model=OnboardingStateResponse)
async def upload_payout_document(
    kind: DocumentKind,
    payload: DocumentUploadRequest,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    upload = DocumentUpload(
        filename=payload.filename, content=payload.content, content_type=payload.content_type
    )
    try:
        await workflow.upload_payout_document(kind, upload)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.delete("/payout/documents/{kind}", response_model=OnboardingStateResponse)
async def clear_payout_document(
    kind: DocumentKind,
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    workflow = await registry.get(user.user_id)
    try:
        workflow.clear_payout_document(kind)
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return await _saved(registry, workflow)


@router.get("/review", response_model=ReviewSummaryResponse)
async def review_summary(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> ReviewSummaryResponse:
    workflow = await registry.get(user.user_id)
    try:
        summary = workflow.review_summary()
    except OnboardingError as exc:
        raise _http_error(exc) from exc
    return ReviewSummaryResponse(
        legal_name=summary.legal_name,
        identifying_number=summary.identifying_number,
        identity_method=summary.identity_method,
        identity_status=summary.identity_status,
        documents=[DocumentSlotItem(**slot.to_record()) for slot in summary.documents],
        payout_method=summary.payout_method,
        instant_settlement=summary.instant_settlement,
        risk_score=summary.risk_score,
        risk_indicators=list(summary.risk_indicators),
        flags=list(summary.flags),
        can_submit=summary.can_submit,
    )


@router.post("/submit", response_model=CompletionResponse)
async def submit_onboarding(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> CompletionResponse:
    """Write the consolidated profile and clear the in-progress workflow."""
    workflow = await registry.get(user.user_id)
    try:
        receipt = await workflow.submit()
    except OnboardingError as exc:
        raise _http_error(exc) from exc

    try:
        await registry.discard(user.user_id)
    except PersistError as exc:
        # Profile is already written at this point.
        await logger.awarning("onboarding_discard_failed", carrier_id=user.user_id, error=str(exc))

    return CompletionResponse(
        carrier_id=receipt.carrier_id,
        completed_at=receipt.completed_at,
        identifying_number=receipt.profile.record.identifying_number,
        legal_name=receipt.profile.record.legal_name,
        instant_settlement=receipt.profile.instant_settlement,
        flags=list(receipt.flags),
    )


@router.post("/reset", response_model=OnboardingStateResponse)
async def reset_onboarding(
    user: User = Depends(get_current_carrier),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> OnboardingStateResponse:
    """Start over from the business email step."""
    workflow = await registry.get(user.user_id)
    workflow.reset()
    return await _saved(registry, workflow)
