"""
Review Router - reviewer actions on verification requests

All actions return the updated request. A request that was already
decided (or changed by another reviewer) answers 409 with
`"error": "illegal_transition"`.
"""
from typing import Optional
from fastapi import APIRouter, Depends

from staff_verify.dependencies import get_admin_id, get_workflow, verify_api_key
from staff_verify.schemas import (
    ErrorResponse, InfoRequestIn, RejectRequest, VerificationRequestOut
)
from staff_verify.services.workflow import VerificationWorkflow

router = APIRouter(
    dependencies=[Depends(verify_api_key)],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@router.post("/{request_id}/approve", response_model=VerificationRequestOut)
async def approve_request(
    request_id: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
    admin_id: Optional[str] = Depends(get_admin_id)
):
    """Approve and mark the applicant verified"""
    return VerificationRequestOut.from_model(workflow.approve(request_id, admin_id))


@router.post("/{request_id}/reject", response_model=VerificationRequestOut)
async def reject_request(
    request_id: str,
    body: RejectRequest,
    workflow: VerificationWorkflow = Depends(get_workflow),
    admin_id: Optional[str] = Depends(get_admin_id)
):
    """Reject with a reason code; the applicant gets matching guidance"""
    return VerificationRequestOut.from_model(workflow.reject(request_id, body.reason, admin_id))


@router.post("/{request_id}/request-info", response_model=VerificationRequestOut)
async def request_more_info(
    request_id: str,
    body: InfoRequestIn,
    workflow: VerificationWorkflow = Depends(get_workflow),
    admin_id: Optional[str] = Depends(get_admin_id)
):
    """Ask the applicant a follow-up question (status becomes needs_info)"""
    return VerificationRequestOut.from_model(
        workflow.request_info(request_id, body.message, admin_id)
    )


@router.post("/{request_id}/remind", response_model=VerificationRequestOut)
async def send_reminder(
    request_id: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
    admin_id: Optional[str] = Depends(get_admin_id)
):
    """Nudge the applicant; status is unchanged"""
    return VerificationRequestOut.from_model(workflow.send_reminder(request_id, admin_id))
