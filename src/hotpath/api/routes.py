from fastapi import APIRouter, HTTPException, Request
from ..schemas import ProfileData, ResolveRequest, SourceMatch, SCHEMA_VERSION
from ..controller.pipeline import decode_async
from ..resolver.source_resolver import score
from ..wire.errors import ProfileDecodeError
from ..utils.logger import get_logger

log = get_logger("API")

router = APIRouter()

@router.get("/healthz")
async def health_check():
    log.info("Health check request received")
    return {
        "status": "healthy",
        "service": "hotpath",
        "version": SCHEMA_VERSION
    }

@router.post("/profiles/decode", response_model=ProfileData)
async def decode_profile(request: Request):
    body = await request.body()
    log.info(f"=== Decode request received ({len(body)} bytes) ===")

    try:
        return await decode_async(body)
    except ProfileDecodeError as e:
        log.error(f"Profile rejected: {e}")
        raise HTTPException(status_code=422, detail=e.describe())

@router.post("/sources/resolve", response_model=SourceMatch)
async def resolve_source(req: ResolveRequest):
    log.info(f"Resolve request: {req.profiled_path} ({len(req.candidates)} candidates)")
    match = score(req.profiled_path, req.function_name, req.candidates, req.sibling_functions)
    if match is None:
        raise HTTPException(status_code=404, detail=f"No local file matches {req.profiled_path}")
    return match
