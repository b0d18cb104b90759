from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from starledger.containers import Container
from starledger.schemas.health import HealthCheckResponse

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
@inject
async def health_check(
    db: Session = Depends(Provide[Container.repositories.get_db]),
) -> HealthCheckResponse:
    """Health check endpoint."""

    try:
        db.execute(text("SELECT 1"))
        return HealthCheckResponse()
    except SQLAlchemyError as e:
        return HealthCheckResponse(status="degraded", database=False, error=e.__class__.__name__)
    finally:
        # 읽기 전용 트랜잭션 종료
        db.rollback()
