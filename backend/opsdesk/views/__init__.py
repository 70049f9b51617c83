from .state import ViewState, OptimisticChange, ViewStateError, apply_optimistic
from .live import View, LiveView
from .boards import OrdersBoard, LogisticsBoard, InventoryBoard, LocationsBoard

__all__ = [
    'ViewState', 'OptimisticChange', 'ViewStateError', 'apply_optimistic',
    'View', 'LiveView',
    'OrdersBoard', 'LogisticsBoard', 'InventoryBoard', 'LocationsBoard',
]
