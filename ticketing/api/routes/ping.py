from fastapi import APIRouter

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Liveness check for the ticketing API")
async def ping() -> dict[str, str]:
    return {"status": "ok"}
