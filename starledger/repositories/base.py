from abc import ABC
from typing import TypeVar, Generic, Optional, Any, Type
from sqlalchemy.orm import Session
from pydantic import BaseModel

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """모든 리포지토리의 베이스 클래스 - Pydantic 응답 보장

    리포지토리는 flush까지만 수행하고, commit 여부는 호출자가 `commit` 인자로
    결정합니다. 여러 단계를 하나의 트랜잭션으로 묶는 것은 서비스 계층의 책임입니다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None

        # Pydantic v2의 model_validate를 사용하여 from_attributes 활용
        return self.schema_class.model_validate(model_instance, from_attributes=True)

    def _finish(self, commit: bool) -> None:
        """commit=True면 커밋, 아니면 flush만 (상위 트랜잭션에 합류)"""
        if commit:
            self.db.commit()
        else:
            self.db.flush()
