"""Investment plan routes."""

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Database
from ..investments import claim_return, invest, list_investments, list_plans
from ..logging_config import get_logger
from ..system import require_feature

logger = get_logger("earnhub.routes.investments")
router = APIRouter(
    prefix="/investments",
    tags=["investments"],
    dependencies=[require_feature("is_invest_enabled")],
)


class InvestRequest(BaseModel):
    plan_id: str
    amount: Decimal | None = Field(None, gt=0, description="Defaults to the plan minimum")


@router.get("/plans")
async def get_plans(db: Database):
    return {"plans": await list_plans(db)}


@router.get("")
async def get_my_investments(auth: CurrentUser, db: Database):
    return {"investments": await list_investments(db, auth.user_id)}


@router.post("")
async def create_investment(body: InvestRequest, auth: CurrentUser, db: Database):
    logger.info(f"POST /investments | {auth.user_id} | plan={body.plan_id} | {body.amount}")
    return await invest(db, auth.user_id, body.plan_id, body.amount)


@router.post("/{investment_id}/claim")
async def claim(investment_id: str, auth: CurrentUser, db: Database):
    logger.info(f"POST /investments/{investment_id}/claim | {auth.user_id}")
    return await claim_return(db, auth.user_id, investment_id)
