from fastapi import APIRouter

router = APIRouter()


@router.get("/")
def root():
    return {"status": "success", "message": "Detection API is running"}


@router.get("/health")
def health():
    """
    Health check endpoint
    """
    return {"status": "ok"}
