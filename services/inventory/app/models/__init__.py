# Package exports - these allow cleaner imports like:
# from app.models import Product, Store, StockMovement
# Used by alembic/env.py for migration autogenerate
from app.models.store import Store
from app.models.product import Product
from app.models.stock_movement import StockMovement, MovementType
