from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/z")
def healthz(request: Request):
    # Check si l'API est up
    return {"status": "ok", "attachments": request.app.state.attachments.strategy}
