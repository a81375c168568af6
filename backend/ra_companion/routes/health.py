from fastapi import APIRouter, Request


router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "cache": request.app.state.response_cache.backend,
        "active_generations": request.app.state.stream_handler.active_generations,
    }
