"""Pipeline operations -- the form handlers behind every user action.

Each service validates input synchronously (raising ValidationError before
any write), writes through the SyncCache, then refreshes the views that
depend on the touched collections. Write failures raise WriteFailedError or
CascadeError naming the action, for a blocking notification.
"""

from src.dealdesk.pipeline.catalog import CatalogService
from src.dealdesk.pipeline.deals import DealService
from src.dealdesk.pipeline.quotes import QuoteService, QuoteTotals, compute_totals
from src.dealdesk.pipeline.roi import RoiInputs, RoiResults, RoiService, calculate_roi
from src.dealdesk.pipeline.sow import SowService, render_template

__all__ = [
    "CatalogService",
    "DealService",
    "QuoteService",
    "QuoteTotals",
    "compute_totals",
    "RoiInputs",
    "RoiResults",
    "RoiService",
    "calculate_roi",
    "SowService",
    "render_template",
]
