"""Discover, reconcile and run Ginkgo test suites as a stable test tree."""
