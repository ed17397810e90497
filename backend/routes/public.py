"""Public routes: supported languages and Clerk configuration status."""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from auth import get_clerk_status
from services.languages import LANGUAGES, AUTO_DETECT
from services.translation_providers import OPENROUTER_MODEL_PRESETS, OPENROUTER_DEFAULT_MODEL, DEFAULT_PROVIDER

router = APIRouter(prefix="/api", tags=["public"])


@router.get("/languages")
async def list_languages():
    return {"languages": [AUTO_DETECT] + LANGUAGES}


@router.get("/translation-options")
async def translation_options():
    """Provider and model choices for the admin translate form."""
    return {
        "default_provider": DEFAULT_PROVIDER.value,
        "openrouter_default_model": OPENROUTER_DEFAULT_MODEL,
        "openrouter_models": OPENROUTER_MODEL_PRESETS,
    }


@router.get("/clerk-status")
async def clerk_status():
    return JSONResponse(
        content=get_clerk_status(),
        headers={"Cache-Control": "no-store, no-cache, must-revalidate"},
    )
