from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# NVD JSON 1.0 feed. Field names follow the feed's own keys through aliases;
# unknown keys (references, CVE_data_version, ...) are ignored.


class FeedModel(BaseModel):
    model_config = {"populate_by_name": True}


class CveDataMeta(FeedModel):
    id: Optional[str] = Field(default=None, alias="ID")
    assigner: Optional[str] = Field(default=None, alias="ASSIGNER")


class LangString(FeedModel):
    lang: Optional[str] = None
    value: Optional[str] = None


class ProblemTypeData(FeedModel):
    description: Optional[list[LangString]] = None


class ProblemType(FeedModel):
    problemtype_data: Optional[list[ProblemTypeData]] = None


class VersionData(FeedModel):
    version_value: Optional[str] = None


class Version(FeedModel):
    version_data: Optional[list[VersionData]] = None


class ProductData(FeedModel):
    product_name: str
    version: Optional[Version] = None


class ProductContainer(FeedModel):
    product_data: Optional[list[ProductData]] = None


class VendorData(FeedModel):
    vendor_name: str
    product: Optional[ProductContainer] = None


class VendorContainer(FeedModel):
    vendor_data: Optional[list[VendorData]] = None


class Affects(FeedModel):
    vendor: Optional[VendorContainer] = None


class Description(FeedModel):
    description_data: Optional[list[LangString]] = None


class Cve(FeedModel):
    cve_data_meta: Optional[CveDataMeta] = Field(default=None, alias="CVE_data_meta")
    problemtype: Optional[ProblemType] = None
    affects: Optional[Affects] = None
    description: Optional[Description] = None


class BaseMetricV2(FeedModel):
    severity: Optional[str] = None


class Impact(FeedModel):
    base_metric_v2: Optional[BaseMetricV2] = Field(default=None, alias="baseMetricV2")


class NodeCpe(FeedModel):
    cpe22_uri: Optional[str] = Field(default=None, alias="cpe22Uri")
    cpe23_uri: Optional[str] = Field(default=None, alias="cpe23Uri")
    vulnerable: bool = False

    @field_validator("vulnerable", mode="before")
    @classmethod
    def normalize_vulnerable(cls, value):
        if value is None:
            return False
        return value


class Node(FeedModel):
    operator: Optional[str] = None
    cpe: Optional[list[NodeCpe]] = None
    children: Optional[list["Node"]] = None


class Configurations(FeedModel):
    nodes: Optional[list[Node]] = None


class CveItem(FeedModel):
    cve: Optional[Cve] = None
    published_date: Optional[str] = Field(default=None, alias="publishedDate")
    last_modified_date: Optional[str] = Field(default=None, alias="lastModifiedDate")
    impact: Optional[Impact] = None
    configurations: Optional[Configurations] = None


class NvdFeed(FeedModel):
    items: Optional[list[CveItem]] = Field(default=None, alias="CVE_Items")


class ImportSummary(BaseModel):
    processed: int = 0
    skipped: int = 0
    advisory_ids: list[int] = Field(default_factory=list)


# Read API


class VendorOut(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class ProductOut(BaseModel):
    id: int
    name: str
    version: Optional[str] = None
    vendor: VendorOut

    model_config = {"from_attributes": True}


class ConfigNodeCpeOut(BaseModel):
    id: int
    cpe22_uri: Optional[str] = None
    cpe23_uri: Optional[str] = None
    vulnerable: bool

    model_config = {"from_attributes": True}


class ConfigNodeOut(BaseModel):
    id: int
    operator: str
    parent_id: Optional[int] = None
    cpes: list[ConfigNodeCpeOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AdvisoryOut(BaseModel):
    id: int
    cve_id: str
    problem_type: str
    published_date: Optional[datetime] = None
    last_modified_date: Optional[datetime] = None
    description: Optional[str] = None
    severity: Optional[str] = None

    model_config = {"from_attributes": True}


class AdvisoryDetailOut(AdvisoryOut):
    products: list[ProductOut] = Field(default_factory=list)
    config_nodes: list[ConfigNodeOut] = Field(default_factory=list)

    @field_validator("products", mode="before")
    @classmethod
    def sort_products(cls, value):
        if value is None:
            return []
        return sorted(value, key=lambda product: product.id)
