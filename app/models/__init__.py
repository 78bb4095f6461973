import importlib

from app.models.medicine import Medicine
from app.models.stock_history import StockHistory


def import_all_models() -> None:
    for module_name in (
        "app.models.medicine",
        "app.models.stock_history",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Medicine",
    "StockHistory",
    "import_all_models",
]
