from fastapi import APIRouter

from ...ingest.mapping import detect_mapping
from ...schemas import REQUIRED_COLUMNS, MappingRequest, MappingResponse

router = APIRouter()


@router.post("/traffic/mapping", response_model=MappingResponse)
def detect_columns(payload: MappingRequest):
    mapping = detect_mapping(payload.header)
    if mapping is None:
        return MappingResponse(mapping=None, missing=[c.value for c in REQUIRED_COLUMNS])
    return MappingResponse(mapping=mapping, missing=mapping.missing_required())
