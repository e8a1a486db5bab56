"""Tạp Hóa Đơn Giản - grocery storefront REST service."""

__version__ = "1.0.0"
