"""
codegen-orchestrator — integration test package

File: tests/integration/__init__.py

Purpose
- Package marker for tests that drive the CLI in a subprocess or touch git.
"""
