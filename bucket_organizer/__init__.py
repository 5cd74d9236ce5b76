"""
Bucket Organizer

Утилита для переноса объектов из плоского префикса бакета в структуру по датам (YYYY/MM/DD).
"""

__version__ = "1.0.0"
__author__ = "Bucket Organizer Team"
__description__ = "Utility for organizing bucket objects from a flat prefix into a date-based layout"
