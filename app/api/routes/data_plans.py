"""Data plan catalogue endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import InvalidRequestError
from app.core.logging import get_logger
from app.models.plan import DataPlan
from app.schemas.data_plan import DataPlanList, DataPlanResponse
from app.services.phone import SUPPORTED_NETWORKS, normalize_network

logger = get_logger(__name__)

router = APIRouter()


@router.get("/data-plans/{network}", response_model=DataPlanList)
def list_data_plans(network: str, db: Session = Depends(get_db)) -> DataPlanList:
    """List the available plans for one network, cheapest first."""
    key = normalize_network(network)
    if key is None:
        raise InvalidRequestError(
            f"Invalid network '{network}'. Supported: {', '.join(SUPPORTED_NETWORKS)}",
            code="invalid_network",
        )

    plans = (
        db.query(DataPlan)
        .filter(DataPlan.network == key)
        .filter(DataPlan.is_available.is_(True))
        .order_by(DataPlan.price.asc())
        .all()
    )
    logger.debug("Listing %d plans for %s", len(plans), key)

    return DataPlanList(
        network=key,
        plans=[DataPlanResponse.model_validate(p) for p in plans],
    )
