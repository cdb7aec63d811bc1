from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


advisory_products = Table(
    "advisory_products",
    Base.metadata,
    Column("advisory_id", ForeignKey("advisories.id"), primary_key=True),
    Column("product_id", ForeignKey("products.id"), primary_key=True),
)


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # no unique constraint: uniqueness comes from find-before-create only
    name: Mapped[str] = mapped_column(String(255), index=True)

    products: Mapped[list["Product"]] = relationship(back_populates="vendor")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    version: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id"))

    vendor: Mapped["Vendor"] = relationship(back_populates="products")
    advisories: Mapped[set["Advisory"]] = relationship(secondary=advisory_products, back_populates="products")


class Advisory(Base):
    __tablename__ = "advisories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cve_id: Mapped[str] = mapped_column(String(50), index=True)
    problem_type: Mapped[str] = mapped_column(Text, default="")
    published_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_modified_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    severity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    products: Mapped[set["Product"]] = relationship(secondary=advisory_products, back_populates="advisories")
    config_nodes: Mapped[list["ConfigNode"]] = relationship(
        back_populates="advisory", order_by="ConfigNode.id"
    )


class ConfigNode(Base):
    __tablename__ = "config_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    advisory_id: Mapped[int] = mapped_column(ForeignKey("advisories.id"))
    operator: Mapped[str] = mapped_column(String(16))
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("config_nodes.id"), nullable=True)

    advisory: Mapped["Advisory"] = relationship(back_populates="config_nodes")
    cpes: Mapped[list["ConfigNodeCpe"]] = relationship(
        back_populates="config_node", order_by="ConfigNodeCpe.id"
    )


class ConfigNodeCpe(Base):
    __tablename__ = "config_node_cpes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    config_node_id: Mapped[int] = mapped_column(ForeignKey("config_nodes.id"))
    cpe22_uri: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    cpe23_uri: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    vulnerable: Mapped[bool] = mapped_column(Boolean, default=False)

    config_node: Mapped["ConfigNode"] = relationship(back_populates="cpes")
