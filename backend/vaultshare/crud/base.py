from typing import Any, Generic, List, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm import Query, Session

from vaultshare.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        """
        CRUD object with default methods to Get and Paginate.

        **Parameters**

        * `model`: A SQLAlchemy model class
        """
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def paginate(self, query: Query, *, page: int = 1, limit: int = 10) -> Tuple[List[ModelType], int]:
        total = query.order_by(None).count()
        items = query.offset((page - 1) * limit).limit(limit).all()
        return items, total
