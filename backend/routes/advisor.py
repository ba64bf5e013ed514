"""AI advisor route: free-text analysis of the current tree."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.trees import load_controller
from backend.services.advisor_service import DEFAULT_MODELS, AdvisorError, TreeAdvisor, get_provider

router = APIRouter()


class AnalyzeRequest(BaseModel):
    provider: Optional[Literal["openai", "anthropic", "deepseek"]] = Field(
        None, description="Advisor provider for this analysis; EMVLAB_ADVISOR_PROVIDER when omitted"
    )
    model: Optional[str] = Field(None, description="Model name; the provider's default when omitted")


def get_advisor() -> TreeAdvisor:
    """Dependency: advisor configured from the environment (overridden in tests)."""
    return TreeAdvisor()


@router.post("/{tree_id}/analyze")
async def analyze_tree(
    tree_id: str,
    body: Optional[AnalyzeRequest] = None,
    db: Session = Depends(get_db),
    advisor: TreeAdvisor = Depends(get_advisor),
):
    """
    Ask an LLM for a recommendation, risk assessment and sensitivity hints.
    The request body may pick the provider and model for this call only.
    Failures return 502; solve state is not touched.
    """
    controller = load_controller(db, tree_id)
    if body is not None and (body.provider or body.model):
        if body.provider:
            advisor = TreeAdvisor(provider=get_provider(body.provider), model=body.model or DEFAULT_MODELS[body.provider])
        else:
            advisor = TreeAdvisor(model=body.model)
    try:
        analysis = await advisor.analyze(controller.root)
    except AdvisorError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "tree_id": tree_id,
        "provider": advisor.provider_name,
        "model": advisor.model,
        "analysis": analysis,
    }
