from .pricing import calculate_price, select_rule, applicable_rules, price_order, validate_rule
from .stats import compute_stats
from .extractor import OrderExtractor, CsvOrderExtractor, SimulatedExtractor, ExtractionError
from .sink import OrderSink
from .uploads import check_upload, file_from_path
from .batch import BatchPipeline
from .category_mapper import CategoryMapper
from .rule_store import RuleStore
from .database import Database
from .webhook_export import WebhookExportService
from .backup import BackupService

__all__ = [
    "calculate_price", "select_rule", "applicable_rules", "price_order", "validate_rule",
    "compute_stats",
    "OrderExtractor", "CsvOrderExtractor", "SimulatedExtractor", "ExtractionError",
    "OrderSink", "check_upload", "file_from_path",
    "BatchPipeline", "CategoryMapper", "RuleStore",
    "Database", "WebhookExportService", "BackupService",
]
