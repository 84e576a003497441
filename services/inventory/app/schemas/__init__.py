# Package exports - these allow cleaner imports like:
# from app.schemas import StockAddRequest, MovementResponse
from app.schemas.stock import (
    StockAddRequest, SaleRequest, RemovalRequest, TransferRequest,
    MovementResponse, StockMutationResponse, StockTransferResponse, MovementListResponse,
)
from app.schemas.inventory import (
    InventoryItem, InventoryResponse, InventorySummaryResponse, AlertsResponse,
    InventoryValueResponse, ProductInventoryResponse,
)
from app.schemas.rate_limit import RateLimitConfigResponse
