# api/proof.py
from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from errors import BBRNGError, VerificationError
from models import RecomputeIn, VerifyIn, VerifyOut
from services.proof import extract_line, verify
from services.sample import recompute

router = APIRouter()


@router.post("/proof/verify", response_model=VerifyOut)
async def proof_verify(body: VerifyIn = Body(...)):
    try:
        extract_line(body.text)
        kind = "proof"
    except VerificationError:
        kind = "commitment"
    return VerifyOut(valid=verify(body.text), kind=kind)


@router.post("/draws/recompute")
async def draws_recompute(body: RecomputeIn = Body(...)):
    """Re-run the draws from published block hashes."""
    try:
        results = recompute(body.hashes, body.min, body.max, body.n)
    except BBRNGError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {
        "min": body.min, "max": body.max, "rangeSize": body.max - body.min + 1,
        "nums": [d.value for d in results],
        "draws": [d.to_dict() for d in results],
    }
