"""
Roster Router - store and staff roster import
"""
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from staff_verify.dependencies import get_db, verify_api_key
from staff_verify.exceptions import InvalidSubmissionError
from staff_verify.schemas import RosterImportResponse
from staff_verify.services.roster_service import roster_service

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.post("/import", response_model=RosterImportResponse)
async def import_roster(
    file: UploadFile = File(..., description="Roster CSV"),
    db: Session = Depends(get_db)
):
    """
    Import stores and staff from CSV.

    Columns required: storeId, storeName, lat, lng, rosterEmail, rosterName.
    Optional: address.
    """
    content = await file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise InvalidSubmissionError("Roster CSV must be UTF-8")
    return roster_service.import_csv(db, text)
