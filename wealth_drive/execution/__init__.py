from wealth_drive.execution.order_book import OrderBook, stop_triggered, validate_order_request

__all__ = ["OrderBook", "stop_triggered", "validate_order_request"]
