from typing import List, Optional

from sqlalchemy import Column, DateTime, Integer, String, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .domain import Order

Base = declarative_base()


class OrderRow(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    status = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_order(self) -> Order:
        return Order(
            id=self.id,
            product_id=self.product_id,
            quantity=self.quantity,
            status=self.status,
            created_at=self.created_at,
        )


class OrderStore:
    """Owns the ``orders`` table. Rows are only ever inserted and read."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session = sessionmaker(bind=engine)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def insert(self, product_id: str, quantity: int, status: str) -> Order:
        with self._session() as session:
            row = OrderRow(product_id=str(product_id), quantity=quantity, status=status)
            session.add(row)
            session.commit()
            # pick up id and created_at generated by the database
            session.refresh(row)
            return row.to_order()

    def list_all(self) -> List[Order]:
        with self._session() as session:
            rows = session.scalars(select(OrderRow).order_by(OrderRow.id.desc())).all()
            return [row.to_order() for row in rows]

    def get_by_id(self, order_id: int) -> Optional[Order]:
        with self._session() as session:
            row = session.get(OrderRow, order_id)
            return row.to_order() if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


def create_store(database_url: str) -> OrderStore:
    if database_url.startswith("sqlite"):
        # single shared connection so in-memory databases survive across sessions and threads
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    return OrderStore(engine)
