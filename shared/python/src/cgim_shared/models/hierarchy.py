"""
models/hierarchy.py — Pydantic models for the category → subcategory → NCM tree.

Node ids are built by cgim_pipeline.transforms.hierarchy.node_id() and are
a pure function of the node path, so two trees built from the same
taxonomy (e.g. import and export) line up by id.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from cgim_shared.models.trade import Metrics


class NodeMeta(BaseModel):
    category: str | None = None
    subcategory: str | None = None
    code: str | None = None


class ProductNode(BaseModel):
    """Leaf: one NCM code with its raw measurement."""

    level: Literal["ncm"] = "ncm"
    id: str
    name: str
    metrics: Metrics = Field(default_factory=Metrics)
    meta: NodeMeta = Field(default_factory=NodeMeta)

    @property
    def children(self) -> list:
        return []


class SubcategoryNode(BaseModel):
    level: Literal["subcategory"] = "subcategory"
    id: str
    name: str
    metrics: Metrics = Field(default_factory=Metrics)
    meta: NodeMeta = Field(default_factory=NodeMeta)
    children: list[ProductNode] = Field(default_factory=list)


class CategoryNode(BaseModel):
    level: Literal["category"] = "category"
    id: str
    name: str
    metrics: Metrics = Field(default_factory=Metrics)
    meta: NodeMeta = Field(default_factory=NodeMeta)
    children: list[SubcategoryNode] = Field(default_factory=list)


HierarchyNode = CategoryNode | SubcategoryNode | ProductNode


class MergedNode(BaseModel):
    """A primary-tree node carrying both flows' metrics."""

    id: str
    level: Literal["category", "subcategory", "ncm"]
    name: str
    primary: Metrics = Field(default_factory=Metrics)
    secondary: Metrics = Field(default_factory=Metrics)
    meta: NodeMeta = Field(default_factory=NodeMeta)
    children: list[MergedNode] = Field(default_factory=list)
