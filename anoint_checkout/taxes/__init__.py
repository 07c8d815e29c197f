from .service import TaxBreakdown, TaxLine, calculate_tax, jurisdiction_for

__all__ = ["TaxBreakdown", "TaxLine", "calculate_tax", "jurisdiction_for"]
