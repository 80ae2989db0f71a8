# grading_progress/api/v1/endpoints/uploads.py
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from grading_progress.api.deps import get_grading_state
from grading_progress.core.errors import BatchNotFoundError
from grading_progress.core.state import GradingState
from grading_progress.schemas.grading_item import SourceType
from grading_progress.schemas.upload import BatchUpload
from grading_progress.services.upload_service import UploadItem

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", response_model=BatchUpload, status_code=status.HTTP_202_ACCEPTED)
async def create_batch_upload(
    assessment_id: int = Form(...),
    student_ids: List[int] = Form(...),
    source_type: SourceType | None = Form(None),
    files: List[UploadFile] = File(...),
    state: GradingState = Depends(get_grading_state),
):
    """
    Upload answer documents for one assessment; files[i] belongs to student_ids[i].

    Returns the new batch right away; per-file progress is read from GET /uploads/{batch_id}.
    """
    if len(files) != len(student_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Every file needs exactly one student id",
        )

    items = [
        UploadItem(
            student_id=student_id,
            file_name=upload.filename or f"file_{index}",
            content=await upload.read(),
            content_type=upload.content_type,
        )
        for index, (upload, student_id) in enumerate(zip(files, student_ids))
    ]
    return state.start_batch_upload(assessment_id, items, source_type=source_type)


@router.get("", response_model=List[BatchUpload])
def list_batch_uploads(state: GradingState = Depends(get_grading_state)):
    return state.uploads.list()


@router.get("/{batch_id}", response_model=BatchUpload)
def get_batch_upload(batch_id: str, state: GradingState = Depends(get_grading_state)):
    try:
        return state.uploads.get(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch upload not found")


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_batch_upload(batch_id: str, state: GradingState = Depends(get_grading_state)):
    try:
        state.uploads.clear(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch upload not found")
