# payroll_engine/compliance/__init__.py

from .harness import ComplianceReport, Diff, Scenario, check_invariants, load_scenarios, run
