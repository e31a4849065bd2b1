import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    ActivePromptRead, AnswerRequest, AnswerResponse, CleanupResponse,
    NextPromptResponse, PromptHistoryRead, SkipRequest, SkipResponse,
)
from ..services.generator import PromptGenerator
from ..services.lifecycle import PromptLifecycle, PromptNotFound, PromptRefRequired
from ..services.repository import SqlPromptRepository
from ..services.selector import PromptSelector
from ..utils import require_authenticated_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


# ---------------------------------------------
# Dependencies
# ---------------------------------------------
async def get_prompt_repository(db: AsyncSession = Depends(get_db)):
    return SqlPromptRepository(db)


async def get_selector(repo=Depends(get_prompt_repository)) -> PromptSelector:
    return PromptSelector(repo, PromptGenerator(repo))


async def get_lifecycle(
    repo=Depends(get_prompt_repository),
    selector: PromptSelector = Depends(get_selector),
) -> PromptLifecycle:
    return PromptLifecycle(repo, selector)


def _prompt_out(prompt) -> dict:
    return ActivePromptRead.model_validate(prompt).model_dump(mode="json")


async def _read_body(request: Request, model: type[BaseModel]):
    # only called once require_authenticated_user has resolved
    raw = await request.body()
    if not raw.strip():
        return model()
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.debug("Rejected body on %s: %s", request.url.path, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body")


# ---------------------------------------------
# Routes
# ---------------------------------------------
@router.get("/next", response_model=NextPromptResponse)
async def next_prompt(
    user=Depends(require_authenticated_user),
    selector: PromptSelector = Depends(get_selector),
):
    prompt = await selector.get_next(user.id)
    return {"prompt": _prompt_out(prompt)}


@router.post("/skip", response_model=SkipResponse)
async def skip_prompt(
    request: Request,
    user=Depends(require_authenticated_user),
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    payload = await _read_body(request, SkipRequest)
    try:
        result = await lifecycle.skip(
            user.id,
            prompt_id=payload.prompt_id,
            prompt_text=payload.prompt_text,
        )
    except PromptRefRequired as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PromptNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {
        "success": True,
        "retired": result.retired,
        "nextPrompt": _prompt_out(result.next_prompt),
    }


@router.post("/answer", response_model=AnswerResponse)
async def answer_prompt(
    request: Request,
    user=Depends(require_authenticated_user),
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    payload = await _read_body(request, AnswerRequest)
    try:
        entry = await lifecycle.answer(user.id, payload.prompt_id, story_id=payload.story_id)
    except PromptRefRequired as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PromptNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    nxt = await lifecycle.selector.get_next(user.id)
    return {
        "success": True,
        "history": PromptHistoryRead.model_validate(entry).model_dump(mode="json"),
        "nextPrompt": _prompt_out(nxt),
    }


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_prompts(
    dry_run: bool = Query(False),
    user=Depends(require_authenticated_user),
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    report = await lifecycle.sweep(user.id, dry_run=dry_run)
    summary = report.as_dict()
    return {"success": True, "summary": summary, "issues": summary["invalid_prompts"]}
