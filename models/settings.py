from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BulkProcessingConfig(BaseModel):
    """
    Batch tuning knobs.  Stored alongside the pricing rules and loaded by
    RuleStore; the generation/optimisation toggles are carried for the
    downstream product sync and are not interpreted by the pipeline itself.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_size: int = Field(default=50, ge=1)           # max files accepted per add
    processing_delay: int = Field(default=500, ge=0)    # ms between jobs
    auto_approve_threshold: float = Field(default=95, ge=0, le=100)
    skip_duplicates: bool = True
    update_existing_products: bool = False
    create_missing_categories: bool = True
    enable_image_processing: bool = False
    enable_description_generation: bool = True
    enable_seo_optimization: bool = True
    backup_before_processing: bool = True
