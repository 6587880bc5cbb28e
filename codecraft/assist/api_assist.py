"""Code-assist endpoint proxying prompts to the code-generation API."""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from codecraft.assist.gemini import generate_code_response

logger = logging.getLogger("codecraft.assist.api_assist")

router = APIRouter(prefix="/api")


class ProcessCodeRequest(BaseModel):
    code: str = ""
    prompt: str = Field(min_length=1)


@router.post("/process-code")
async def process_code(body: ProcessCodeRequest, request: Request):
    """Return the model's answer for a code snippet and instruction."""
    settings = request.app.state.settings
    text = await generate_code_response(
        body.code,
        body.prompt,
        api_key=settings.gemini_api_key,
        model_name=settings.gemini_model,
        api_base=settings.gemini_api_base,
        transport=getattr(request.app.state, "assist_transport", None),
    )
    logger.info("Code assist answered with %d chars", len(text))
    return {"response": text}
