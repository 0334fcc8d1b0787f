from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def health() -> dict[str, bool]:
    return {"ok": True}
