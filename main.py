from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Depends, APIRouter, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session
import logging
import os
from typing import Optional

from ai.error_handling import AllModelsFailedError, AnalysisError, TextTooShortError
from ai.llm.model_config import PreferredModel
from models.database import User
from services.analysis_pipeline import get_analysis_pipeline
from services.budget_ledger import get_budget_ledger
from services.plan_catalog import (
    Feature,
    get_ai_budget,
    get_ai_upgrade_recommendation,
    get_monthly_limit,
    get_upgrade_recommendation,
    has_feature,
)
from services.usage_tracker import get_usage_tracker
import auth
from db import get_db, init_db

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

init_db()

app = FastAPI()

CORS_ORIGINS = [origin.strip() for origin in os.environ.get("CORS_ORIGINS", "*").split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Pydantic Schemas for API requests/responses ---
class AnalyzeRequest(BaseModel):
    text: Optional[str] = None
    source: Optional[str] = None

class AISettingsUpdate(BaseModel):
    preferred_model: Optional[str] = None
    allow_premium_ai: Optional[bool] = None

class AISettingsOut(BaseModel):
    preferred_model: str
    allow_premium_ai: bool


# --- Analysis Router ---
analysis_router = APIRouter()

@analysis_router.post("/analyze")
def analyze_text(request: AnalyzeRequest, db: Session = Depends(get_db), current_user: User = Depends(auth.get_current_user)):
    logger.info(f"Analysis request from user {current_user.id}: source={request.source}, chars={len(request.text or '')}")

    if not request.text or not request.source:
        raise HTTPException(status_code=400, detail="Missing field (text or source).")

    if request.source == "ocr" and not has_feature(current_user.plan, Feature.OCR_PROCESSING):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="OCR analysis requires a Standard plan or higher.",
        )

    pipeline = get_analysis_pipeline(db)
    try:
        result = pipeline.process_analysis(current_user, request.text, request.source)
    except TextTooShortError as e:
        raise HTTPException(status_code=400, detail=e.user_message)
    except AllModelsFailedError as e:
        logger.error(f"Analysis failed for user {current_user.id}: {e.failure_kind}")
        raise HTTPException(status_code=500, detail=e.user_message)
    except AnalysisError as e:
        logger.error(f"Analysis failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail=e.user_message)

    if result["quota_reached"]:
        used = current_user.monthly_quota_used or 0
        recommendation = get_upgrade_recommendation(current_user.plan, used)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                **result,
                "current_plan": current_user.plan,
                "used_analyses": used,
                "limit": get_monthly_limit(current_user.plan),
                "upgrade_required": True,
                "upgrade": recommendation.to_dict() if recommendation else None,
            },
        )

    return result


# --- AI Settings Router ---
ai_settings_router = APIRouter()

@ai_settings_router.get("/ai-settings")
def get_ai_settings(db: Session = Depends(get_db), current_user: User = Depends(auth.get_current_user)):
    ledger = get_budget_ledger(db)
    ledger.prepare(current_user)
    recommendation = get_ai_upgrade_recommendation(
        current_user.plan,
        current_user.total_analyses or 0,
        current_user.ai_budget_allocated,
        current_user.ai_budget_used,
    )
    last_reset = current_user.ai_budget_last_reset
    return {
        "ai_settings": {
            "preferred_model": current_user.ai_preferred_model or PreferredModel.AUTO.value,
            "allow_premium_ai": current_user.ai_allow_premium is not False,
            "monthly_ai_budget": {
                "allocated": current_user.ai_budget_allocated or 0.0,
                "used": current_user.ai_budget_used or 0.0,
                "remaining": ledger.display_remaining(current_user),
                "last_reset": last_reset.isoformat() if last_reset else None,
            },
        },
        "ai_usage_stats": get_usage_tracker(db).get_stats(current_user),
        "plan": current_user.plan,
        "plan_budget": get_ai_budget(current_user.plan),
        "upgrade": recommendation.to_dict() if recommendation else None,
    }

@ai_settings_router.put("/ai-settings", response_model=AISettingsOut)
def update_ai_settings(update: AISettingsUpdate, db: Session = Depends(get_db), current_user: User = Depends(auth.get_current_user)):
    if update.preferred_model is not None:
        try:
            preferred = PreferredModel(update.preferred_model)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid AI model")

    get_budget_ledger(db).sync_budget_with_plan(current_user)

    if update.preferred_model is not None:
        current_user.ai_preferred_model = preferred.value
    if update.allow_premium_ai is not None:
        current_user.ai_allow_premium = update.allow_premium_ai

    db.commit()
    db.refresh(current_user)
    logger.info(
        f"AI settings updated for user {current_user.id}: "
        f"model={current_user.ai_preferred_model}, allow_premium={current_user.ai_allow_premium}"
    )
    return AISettingsOut(
        preferred_model=current_user.ai_preferred_model,
        allow_premium_ai=current_user.ai_allow_premium,
    )

@ai_settings_router.get("/ai-settings/usage")
def get_ai_usage(db: Session = Depends(get_db), current_user: User = Depends(auth.get_current_user)):
    get_budget_ledger(db).prepare(current_user)
    return get_usage_tracker(db).get_usage_summary(current_user)


# --- App Integration ---
app.include_router(analysis_router, prefix="/api", tags=["Analysis"])
app.include_router(ai_settings_router, prefix="/api", tags=["AI Settings"])

@app.get("/api/health")
def health_check():
    return {"status": "ok"}
