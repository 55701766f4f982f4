"""
                        Services Module

External collaborators of the ordering engine.

Services:
    - identity: Identity providers (request header, static session)
    - excel_manager: Process-safe revenue workbook export
"""

from tableside.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
