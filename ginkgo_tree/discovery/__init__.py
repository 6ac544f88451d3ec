"""Test discovery: report ingestion, key derivation and tree reconciliation."""

from ginkgo_tree.discovery.builder import BuildResult, TreeReconciler, build_suite
from ginkgo_tree.discovery.index import LookupIndex
from ginkgo_tree.discovery.report import (
    Location,
    SpecEntry,
    SuiteReport,
    index_report,
    parse_report,
    read_report_file,
)
from ginkgo_tree.discovery.scheduler import RediscoveryScheduler
from ginkgo_tree.discovery.tree import ContainerNode, LeafNode, SuiteNode, TestTree

__all__ = [
    "BuildResult",
    "ContainerNode",
    "LeafNode",
    "Location",
    "LookupIndex",
    "RediscoveryScheduler",
    "SpecEntry",
    "SuiteNode",
    "SuiteReport",
    "TestTree",
    "TreeReconciler",
    "build_suite",
    "index_report",
    "parse_report",
    "read_report_file",
]
